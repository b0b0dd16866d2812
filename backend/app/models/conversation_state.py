"""
Conversation State Model: persistent storage for payment-link flow sessions.

Used by DatabaseSessionStore so any process instance can resume a user's
flow. Rows older than the session TTL are treated as absent and removed.
"""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.types import JSON
from app.db.base import Base


class ConversationState(Base):
    """
    One row per Telegram user with an active flow.

    Schema:
        user_id: Telegram user identifier (unique)
        step: Current flow step ("name", "token", "amount", "details", "confirm")
        payload: JSON blob with collected data (name, token, amount, details, chat_id)
        updated_at: Last activity timestamp (drives TTL expiry)
    """
    __tablename__ = "conversation_states"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), unique=True, nullable=False, index=True)
    step = Column(String(32), nullable=False)
    payload = Column(JSON, nullable=True, default=dict)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<ConversationState user_id={self.user_id} step={self.step}>"
