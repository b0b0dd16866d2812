"""Transaction: written after the provider returns a hash. Never written for failed submissions."""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
from app.db.base import Base


class TransactionType:
    SEND = "send"
    RECEIVE = "receive"
    PAYMENT_LINK = "payment_link"


class TransactionStatus:
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    wallet_id = Column(Integer, ForeignKey("wallets.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(32), nullable=False, default=TransactionType.SEND)
    status = Column(String(32), nullable=False, default=TransactionStatus.PENDING)
    hash = Column(String(80), unique=True, nullable=True)
    amount = Column(String(64), nullable=False)
    token = Column(String(16), nullable=False)
    token_address = Column(String(64), nullable=True)  # None for MNT
    network = Column(String(32), nullable=False, default="mantle")
    from_address = Column(String(64), nullable=False)
    to_address = Column(String(64), nullable=False)
    gas_used = Column(String(64), nullable=True)
    memo = Column(Text, nullable=True)
    tx_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    wallet = relationship("Wallet", backref="transactions")

    def __repr__(self):
        return f"<Transaction hash={self.hash} {self.amount} {self.token}>"
