"""Intent Schema - output of the rule-based classifier."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class IntentType(str, Enum):
    """Fixed set of intents the agent can dispatch on."""
    BALANCE_CHECK = "balance_check"
    SEND_TOKENS = "send_tokens"
    PAYMENT_LINK = "payment_link"
    PAYMENT_LINK_STATS = "payment_link_stats"
    HELP = "help"
    GREETING = "greeting"
    UNKNOWN = "unknown"


class ClassifiedIntent(BaseModel):
    """
    Best-matching intent for a message.

    confidence is the raw pattern score (0.3 per matching pattern plus an
    optional 0.2 context boost); it is not clamped to 1.
    """
    intent: IntentType = IntentType.UNKNOWN
    confidence: float = 0.0
    entities: Dict[str, Any] = Field(default_factory=dict)
    context: Optional[str] = None
    scores: Dict[str, float] = Field(default_factory=dict)

    @field_validator("confidence")
    @classmethod
    def round_confidence(cls, v: float) -> float:
        # 0.3 + 0.3 + 0.3 is 0.8999999999999999 otherwise
        return round(v, 4)

    @property
    def is_unknown(self) -> bool:
        return self.intent == IntentType.UNKNOWN
