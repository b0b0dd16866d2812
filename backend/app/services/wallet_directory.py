"""
Wallet directory: resolve Telegram user id <-> user row <-> wallet, and
register new users with a custodial wallet.
"""
import logging
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from app.core.audit import AuditLog
from app.models.user import User
from app.models.wallet import Wallet, WalletStatus

logger = logging.getLogger(__name__)


def get_user(db: Session, telegram_id) -> Optional[User]:
    return db.query(User).filter(User.telegram_id == str(telegram_id)).first()


def get_wallet(db: Session, user: User) -> Optional[Wallet]:
    """The user's active wallet (the oldest one, if several exist)."""
    return (
        db.query(Wallet)
        .filter(Wallet.user_id == user.id, Wallet.status == WalletStatus.ACTIVE)
        .order_by(Wallet.id.asc())
        .first()
    )


def get_user_and_wallet(db: Session, telegram_id) -> Tuple[Optional[User], Optional[Wallet]]:
    user = get_user(db, telegram_id)
    if not user:
        return None, None
    return user, get_wallet(db, user)


async def register_user(
    db: Session,
    provider,
    telegram_id,
    first_name: str = None,
    last_name: str = None,
    username: str = None,
    language_code: str = None,
) -> Tuple[User, Wallet, bool]:
    """
    Create (or fetch) the user and make sure they own a custodial wallet.

    Returns (user, wallet, created) where `created` is True only when a new
    wallet row was stored in this call. Provider errors propagate.
    """
    telegram_id = str(telegram_id)
    user = get_user(db, telegram_id)
    if not user:
        user = User(
            telegram_id=telegram_id,
            first_name=first_name,
            last_name=last_name,
            username=username,
            language_code=language_code,
            preferences={},
        )
        db.add(user)
        db.flush()
        logger.info(f"[Register] New user telegram_id={telegram_id}")

    wallet = get_wallet(db, user)
    if wallet:
        db.commit()
        AuditLog.log_wallet_created(telegram_id, wallet.address, created=False)
        return user, wallet, False

    provider_wallet = await provider.get_or_create_wallet(telegram_id)
    wallet = Wallet(
        user_id=user.id,
        provider_wallet_id=provider_wallet.wallet_id,
        address=provider_wallet.address,
        key_share=provider_wallet.key_share,
        status=WalletStatus.ACTIVE,
    )
    db.add(wallet)
    db.commit()
    db.refresh(wallet)

    AuditLog.log_wallet_created(telegram_id, wallet.address, created=True)
    return user, wallet, True
