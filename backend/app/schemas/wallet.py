from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class BalanceStatus(str, Enum):
    """Per-token read outcome. A failed read is never reported as a real zero."""
    OK = "ok"
    UNAVAILABLE = "unavailable"
    NOT_FOUND = "not_found"


class TokenBalance(BaseModel):
    symbol: str
    status: BalanceStatus
    amount: Optional[Decimal] = None
    decimals: Optional[int] = None
    contract_address: Optional[str] = None

    @property
    def is_ok(self) -> bool:
        return self.status == BalanceStatus.OK

    def display(self, places: int = 6) -> str:
        if self.status == BalanceStatus.OK:
            return f"{self.amount:.{places}f}"
        return self.status.value


class WalletBalances(BaseModel):
    address: str
    native: Optional[TokenBalance] = None
    tokens: Dict[str, TokenBalance] = Field(default_factory=dict)

    def get(self, symbol: str) -> Optional[TokenBalance]:
        return self.tokens.get(symbol.upper())

    def as_legacy_dict(self) -> dict:
        """Flattened view: unavailable reads become "0" (the original wire contract)."""
        def _value(balance: Optional[TokenBalance]) -> str:
            if balance is None or not balance.is_ok:
                return "0"
            return f"{balance.amount:.6f}"

        return {
            "address": self.address,
            "native": _value(self.native),
            "tokens": {symbol: _value(balance) for symbol, balance in self.tokens.items()},
        }


class BalanceRequest(BaseModel):
    telegram_user_id: Optional[str] = None
    wallet_address: Optional[str] = None
    tokens: Optional[List[str]] = None

    @field_validator("tokens")
    @classmethod
    def upper_tokens(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if not v:
            return None
        return [t.strip().upper() for t in v if t and t.strip()]
