from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class ChatRequest(BaseModel):
    telegram_user_id: str
    message: str
    chat_id: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("message must not be empty")
        return v


class ChatResponse(BaseModel):
    response: str
    intent: Optional[str] = None
    buttons: List[List[dict]] = Field(default_factory=list)
    flow_step: Optional[str] = None
    qr_code: Optional[str] = None  # data URL when a link was created
