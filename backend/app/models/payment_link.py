"""
PaymentLink: a shareable request for a fixed amount of a fixed token.

Status flow: active -> completed (uses exhausted) | expired | disabled.
Links are never deleted. `payments` is append-only; `current_uses` never
exceeds `max_uses` unless max_uses is -1 (unlimited).
"""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
from app.db.base import Base


class PaymentLinkStatus:
    ACTIVE = "active"
    EXPIRED = "expired"
    DISABLED = "disabled"
    COMPLETED = "completed"


class PaymentLinkType:
    ONE_TIME = "one_time"
    MULTIPLE_USE = "multiple_use"
    SUBSCRIPTION = "subscription"


UNLIMITED_USES = -1


class PaymentLink(Base):
    __tablename__ = "payment_links"

    id = Column(Integer, primary_key=True, index=True)
    link_id = Column(String(16), unique=True, nullable=False, index=True)
    creator_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    creator_wallet_id = Column(Integer, ForeignKey("wallets.id", ondelete="CASCADE"), nullable=False)

    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(String(64), nullable=False)  # decimal string
    token = Column(String(16), nullable=False)
    token_address = Column(String(64), nullable=False)
    network = Column(String(32), nullable=False, default="mantle")
    type = Column(String(32), nullable=False, default=PaymentLinkType.ONE_TIME)
    status = Column(String(32), nullable=False, default=PaymentLinkStatus.ACTIVE, index=True)
    link_url = Column(String(512), nullable=False)

    details = Column(JSON, nullable=False, default=dict)  # field name -> placeholder
    payer_details = Column(JSON, nullable=True)  # field name -> "" until a payer fills it
    payments = Column(JSON, nullable=False, default=list)  # [{payerAddress, amount, transactionHash, paidAt}]

    view_count = Column(Integer, nullable=False, default=0)
    current_uses = Column(Integer, nullable=False, default=0)
    max_uses = Column(Integer, nullable=False, default=1)
    total_amount_received = Column(String(64), nullable=False, default="0")

    telegram_chat_id = Column(String(64), nullable=True)
    link_metadata = Column("metadata", JSON, nullable=True)  # {"source": "telegram" | "mcp" | ...}

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    last_viewed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    creator = relationship("User", backref="payment_links")
    wallet = relationship("Wallet")

    @property
    def is_unlimited(self) -> bool:
        return self.max_uses == UNLIMITED_USES

    def __repr__(self):
        return f"<PaymentLink link_id={self.link_id} status={self.status}>"
