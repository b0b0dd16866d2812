from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from app.services.transfer_service import parse_amount


class PaymentRecord(BaseModel):
    payerAddress: str
    amount: str
    transactionHash: str
    paidAt: str


class PaymentLinkResponse(BaseModel):
    """Public view of a payment link (what the pay page renders)."""
    link_id: str
    title: str
    description: Optional[str] = None
    amount: str
    token: str
    token_address: str
    network: str
    status: str
    link_url: str
    details: Dict[str, str] = Field(default_factory=dict)
    view_count: int = 0
    current_uses: int = 0
    max_uses: int = 1
    total_amount_received: str = "0"
    created_at: Optional[datetime] = None

    @field_validator("details", mode="before")
    @classmethod
    def none_details(cls, v):
        return v or {}

    class Config:
        from_attributes = True


class PaymentLinkDetail(PaymentLinkResponse):
    payments: List[PaymentRecord] = Field(default_factory=list)

    @field_validator("payments", mode="before")
    @classmethod
    def none_payments(cls, v):
        return v or []


class RecordPaymentRequest(BaseModel):
    payer_address: str
    amount: str
    transaction_hash: str
    paid_at: Optional[datetime] = None

    @field_validator("amount")
    @classmethod
    def positive_amount(cls, v: str) -> str:
        if parse_amount(v) is None:
            raise ValueError("amount must be a positive number")
        return v

    @field_validator("transaction_hash")
    @classmethod
    def hash_shape(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("0x") or len(v) != 66:
            raise ValueError("transaction_hash must be a 0x-prefixed 32-byte hex string")
        return v
