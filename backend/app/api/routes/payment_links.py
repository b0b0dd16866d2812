"""
Public payment-link endpoints used by the pay page.

Viewing a link counts a view. Recording a payment is called once the payer's
transfer is confirmed; the creator is notified on Telegram when possible.
"""
import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from app.api.deps import get_container, get_db
from app.container import Services
from app.core.exceptions import BusinessError, WalletError
from app.schemas.payment_link import PaymentLinkDetail, PaymentLinkResponse, RecordPaymentRequest
from app.services.qr_service import render_qr_png
from app.telegram.bot import send_telegram_message

logger = logging.getLogger(__name__)
router = APIRouter()


def _load_link(services: Services, db: Session, link_id: str):
    link = services.links.get_by_link_id(db, link_id)
    if not link:
        raise BusinessError.not_found("Payment link", reason=link_id)
    return link


@router.get("/{link_id}", response_model=PaymentLinkResponse)
def get_payment_link(link_id: str, db: Session = Depends(get_db), services: Services = Depends(get_container)):
    link = _load_link(services, db, link_id)
    return services.links.record_view(db, link)


@router.get("/{link_id}/qr")
def get_payment_link_qr(link_id: str, db: Session = Depends(get_db), services: Services = Depends(get_container)):
    link = _load_link(services, db, link_id)
    try:
        png = render_qr_png(link.link_url)
    except Exception as e:
        raise BusinessError.server_error(e)
    return Response(content=png, media_type="image/png")


@router.post("/{link_id}/payments", response_model=PaymentLinkDetail)
async def record_payment(
    link_id: str,
    payload: RecordPaymentRequest,
    db: Session = Depends(get_db),
    services: Services = Depends(get_container),
):
    link = _load_link(services, db, link_id)
    if any(p.get("transactionHash") == payload.transaction_hash for p in (link.payments or [])):
        raise BusinessError.conflict(f"Payment {payload.transaction_hash} is already recorded")
    try:
        link = services.links.record_payment(
            db, link, payload.payer_address, payload.amount, payload.transaction_hash, payload.paid_at
        )
    except WalletError as e:
        raise BusinessError.from_wallet_error(e)

    if link.telegram_chat_id:
        await send_telegram_message(
            link.telegram_chat_id,
            f"💰 *Payment received!*\n\n🔗 {link.title}\n💵 {payload.amount} {link.token}\n"
            f"🆔 `{link.link_id}` ({link.current_uses} payment(s) so far)",
        )
    return link
