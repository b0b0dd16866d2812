"""
Payment Link Store.

Creation, lookup, ownership checks, view counting and payment recording for
PaymentLink rows. Link ids are 8 random characters from a 62-symbol alphabet;
uniqueness is enforced by the unique index on link_id and a clash retries
with a fresh id.
"""
import logging
import secrets
import string
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.audit import AuditLog
from app.core.config import settings
from app.core.exceptions import WalletError, WalletErrorKind
from app.core.tokens import NETWORK, PAYMENT_LINK_TOKENS, TOKEN_ADDRESSES
from app.models.payment_link import PaymentLink, PaymentLinkStatus, PaymentLinkType, UNLIMITED_USES
from app.models.user import User
from app.models.wallet import Wallet
from app.services.transfer_service import parse_amount

logger = logging.getLogger(__name__)

LINK_ID_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
LINK_ID_LENGTH = 8
MAX_TITLE_LENGTH = 100


def generate_link_id(length: int = LINK_ID_LENGTH) -> str:
    return "".join(secrets.choice(LINK_ID_ALPHABET) for _ in range(length))


def payer_details_for(details: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
    """Every requested field starts empty; None when nothing is collected."""
    if not details:
        return None
    return {key: "" for key in details}


class PaymentLinkService:
    def __init__(
        self,
        link_base_url: str = None,
        id_generator: Callable[[], str] = generate_link_id,
        max_attempts: int = 3,
    ):
        self.link_base_url = (link_base_url or settings.LINK_BASE_URL).rstrip("/")
        self.id_generator = id_generator
        self.max_attempts = max_attempts

    def link_url(self, link_id: str) -> str:
        return f"{self.link_base_url}/pay/{link_id}"

    def create_link(
        self,
        db: Session,
        user: User,
        wallet: Wallet,
        name: str,
        token: str,
        amount,
        details: Optional[Dict[str, str]] = None,
        chat_id: Optional[str] = None,
        source: str = "telegram",
        link_type: str = PaymentLinkType.ONE_TIME,
        max_uses: int = 1,
    ) -> PaymentLink:
        name = (name or "").strip()
        if not name or len(name) > MAX_TITLE_LENGTH:
            raise WalletError(
                WalletErrorKind.VALIDATION_FAILED,
                f"Payment name must be between 1 and {MAX_TITLE_LENGTH} characters.",
            )
        token = (token or "").strip().upper()
        if token not in PAYMENT_LINK_TOKENS:
            raise WalletError(
                WalletErrorKind.VALIDATION_FAILED,
                f"Unsupported token {token}. Choose one of {', '.join(PAYMENT_LINK_TOKENS)}.",
            )
        parsed = parse_amount(amount)
        if parsed is None:
            raise WalletError(
                WalletErrorKind.INVALID_AMOUNT,
                "Invalid amount. Please provide a positive number.",
            )
        details = dict(details or {})

        for attempt in range(1, self.max_attempts + 1):
            link_id = self.id_generator()
            if db.query(PaymentLink.id).filter(PaymentLink.link_id == link_id).first():
                logger.warning(f"[PaymentLink] id clash on {link_id} (attempt {attempt}/{self.max_attempts})")
                continue

            link = PaymentLink(
                link_id=link_id,
                creator_user_id=user.id,
                creator_wallet_id=wallet.id,
                title=name,
                amount=format(parsed, "f"),
                token=token,
                token_address=TOKEN_ADDRESSES[token],
                network=NETWORK,
                type=link_type,
                status=PaymentLinkStatus.ACTIVE,
                link_url=self.link_url(link_id),
                details=details,
                payer_details=payer_details_for(details),
                payments=[],
                max_uses=max_uses,
                telegram_chat_id=str(chat_id) if chat_id is not None else None,
                link_metadata={"source": source},
                created_at=datetime.now(timezone.utc),
            )
            db.add(link)
            try:
                db.commit()
            except IntegrityError:
                # Lost a race on the unique index
                db.rollback()
                logger.warning(f"[PaymentLink] unique index rejected {link_id} (attempt {attempt}/{self.max_attempts})")
                continue

            db.refresh(link)
            logger.info(f"[PaymentLink] Created {link_id} for user {user.telegram_id}: {link.amount} {token}")
            AuditLog.log_payment_link(
                "create", link_id, user.telegram_id,
                changes={"amount": link.amount, "token": token, "source": source},
            )
            return link

        raise WalletError(
            WalletErrorKind.UNKNOWN,
            "Could not allocate a unique payment link id. Please try again.",
        )

    def get_by_link_id(self, db: Session, link_id: str) -> Optional[PaymentLink]:
        return db.query(PaymentLink).filter(PaymentLink.link_id == link_id).first()

    def list_for_user(self, db: Session, user: User) -> List[PaymentLink]:
        """Newest first."""
        return (
            db.query(PaymentLink)
            .filter(PaymentLink.creator_user_id == user.id)
            .order_by(PaymentLink.created_at.desc(), PaymentLink.id.desc())
            .all()
        )

    def get_owned_link(self, db: Session, link_id: str, user: User) -> PaymentLink:
        link = self.get_by_link_id(db, link_id)
        if not link:
            raise WalletError(WalletErrorKind.NOT_FOUND, f"Payment link with ID {link_id} not found")
        if link.creator_user_id != user.id:
            AuditLog.log_access_denied("payment_link", link_id, user.telegram_id, "not the creator")
            raise WalletError(WalletErrorKind.UNAUTHORIZED, f"You don't have access to payment link {link_id}")
        return link

    def record_view(self, db: Session, link: PaymentLink) -> PaymentLink:
        link.view_count = (link.view_count or 0) + 1
        link.last_viewed_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(link)
        return link

    def record_payment(
        self,
        db: Session,
        link: PaymentLink,
        payer_address: str,
        amount,
        transaction_hash: str,
        paid_at: Optional[datetime] = None,
    ) -> PaymentLink:
        """
        Append a confirmed payment. Keeps current_uses <= max_uses and
        completes the link when its uses are exhausted.
        """
        if link.status != PaymentLinkStatus.ACTIVE:
            raise WalletError(
                WalletErrorKind.VALIDATION_FAILED,
                f"Payment link {link.link_id} is {link.status} and cannot accept payments.",
            )
        if not link.is_unlimited and link.current_uses >= link.max_uses:
            raise WalletError(
                WalletErrorKind.VALIDATION_FAILED,
                f"Payment link {link.link_id} has no uses left.",
            )
        parsed = parse_amount(amount)
        if parsed is None:
            raise WalletError(WalletErrorKind.INVALID_AMOUNT, "Invalid amount. Please provide a positive number.")

        paid_at = paid_at or datetime.now(timezone.utc)
        payment = {
            "payerAddress": payer_address,
            "amount": format(parsed, "f"),
            "transactionHash": transaction_hash,
            "paidAt": paid_at.isoformat(),
        }
        # Reassign so the JSON column is flagged dirty
        link.payments = list(link.payments or []) + [payment]
        link.current_uses = (link.current_uses or 0) + 1
        total = Decimal(link.total_amount_received or "0") + parsed
        link.total_amount_received = format(total.normalize(), "f")

        if link.max_uses != UNLIMITED_USES and link.current_uses >= link.max_uses:
            link.status = PaymentLinkStatus.COMPLETED
            link.completed_at = paid_at

        db.commit()
        db.refresh(link)
        AuditLog.log_payment_link("payment", link.link_id, changes=payment)
        return link
