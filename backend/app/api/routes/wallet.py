"""Wallet balance endpoints (tri-state per token: ok / unavailable / not_found)."""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_container, get_db
from app.container import Services
from app.core.exceptions import BusinessError, WalletError
from app.schemas.wallet import BalanceRequest, WalletBalances

router = APIRouter()


async def _check(services: Services, db: Session, request: BalanceRequest) -> WalletBalances:
    try:
        return await services.balances.check_balance(
            db,
            telegram_user_id=request.telegram_user_id,
            wallet_address=request.wallet_address,
            tokens=request.tokens,
        )
    except WalletError as e:
        raise BusinessError.from_wallet_error(e)


@router.get("/{telegram_user_id}/balance", response_model=WalletBalances)
async def get_user_balance(
    telegram_user_id: str,
    tokens: Optional[str] = None,
    db: Session = Depends(get_db),
    services: Services = Depends(get_container),
):
    """`tokens` is an optional comma list, e.g. ?tokens=USDC,DAI"""
    token_list = tokens.split(",") if tokens else None
    return await _check(services, db, BalanceRequest(telegram_user_id=telegram_user_id, tokens=token_list))


@router.post("/balance", response_model=WalletBalances)
async def post_balance(payload: BalanceRequest, db: Session = Depends(get_db), services: Services = Depends(get_container)):
    return await _check(services, db, payload)
