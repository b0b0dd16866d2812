from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class McpContent(BaseModel):
    type: Literal["text", "image"]
    text: Optional[str] = None
    data: Optional[str] = None  # base64 for images
    mimeType: Optional[str] = None


class McpButton(BaseModel):
    text: str
    data: Optional[str] = None
    url: Optional[str] = None


class McpToolResult(BaseModel):
    content: List[McpContent]
    isInteractive: bool = False
    nextStep: Optional[str] = None
    sessionId: Optional[str] = None
    buttons: Optional[List[List[McpButton]]] = None

    @property
    def text(self) -> str:
        return next((c.text for c in self.content if c.type == "text" and c.text), "")


class McpTool(BaseModel):
    name: str
    description: str
    inputSchema: Dict[str, Any]


class McpToolList(BaseModel):
    tools: List[McpTool]


class CallToolRequest(BaseModel):
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ContinueFlowRequest(BaseModel):
    userId: str
    input: str


class McpChatRequest(BaseModel):
    userId: str
    message: str


class McpChatResponse(BaseModel):
    response: str
