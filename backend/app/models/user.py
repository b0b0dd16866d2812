from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
from app.db.base import Base


class User(Base):
    """A Telegram user. Identity is the Telegram user id (stored as a string)."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    telegram_id = Column(String(64), unique=True, nullable=False, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    username = Column(String(255), nullable=True, index=True)
    language_code = Column(String(16), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    preferences = Column(JSON, nullable=True, default=dict)  # default stablecoin, notifications
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_seen_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<User telegram_id={self.telegram_id}>"
