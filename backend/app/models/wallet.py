"""
Custodial wallet record.

The private key never lives here: the provider holds the wallet and we keep
its identifier, the public address and the opaque user key share it returns.
"""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base import Base


class WalletStatus:
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CLOSED = "closed"


class Wallet(Base):
    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    provider_wallet_id = Column(String(128), unique=True, nullable=False)
    address = Column(String(64), unique=True, nullable=False, index=True)
    key_share = Column(Text, nullable=True)
    status = Column(String(32), nullable=False, default=WalletStatus.ACTIVE)
    network = Column(String(32), nullable=False, default="mantle")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_used_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", backref="wallets")

    def __repr__(self):
        return f"<Wallet address={self.address} status={self.status}>"
