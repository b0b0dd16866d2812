"""
Transfer Validator & Executor.

    received -> validated -> executing -> confirmed | failed

Validation is fail-fast and ordered; the first violation is returned as a
structured {"success": False, "error", "errorKind"} result and never raised
past this module. Amount checks run before any balance read. Only a valid
request reaches the provider, and it is submitted exactly once. Once
broadcast a transfer cannot be rolled back, so recording the Transaction row
is best-effort.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_DOWN
from typing import Optional

from eth_abi import encode
from sqlalchemy.orm import Session

from app.core.audit import AuditLog
from app.core.config import settings
from app.core.exceptions import WalletError, WalletErrorKind
from app.core.tokens import (
    GAS_RESERVE,
    GAS_TOKEN,
    MIN_GAS_FOR_FEES,
    MIN_TRANSFER,
    NETWORK,
    TOKEN_ADDRESSES,
    TOKEN_DECIMALS,
    TRANSFERABLE_TOKENS,
    token_emoji,
)
from app.models.transaction import Transaction, TransactionStatus, TransactionType
from app.models.user import User
from app.models.wallet import Wallet
from app.services import wallet_directory
from app.services.chain_client import is_address, to_checksum

logger = logging.getLogger(__name__)

# keccak("transfer(address,uint256)")[:4]
ERC20_TRANSFER_SELECTOR = "a9059cbb"


@dataclass
class ValidatedTransfer:
    user: User
    wallet: Wallet
    to_address: str
    amount: Decimal
    token: str
    memo: Optional[str]
    balance: Decimal


# Accepted amount magnitudes, as Decimal.adjusted() exponents
MAX_AMOUNT_EXPONENT = 30
MIN_AMOUNT_EXPONENT = -18


def parse_amount(value) -> Optional[Decimal]:
    """Finite positive decimal within sane magnitude, normalized, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite() or amount <= 0:
            return None
        if not MIN_AMOUNT_EXPONENT <= amount.adjusted() <= MAX_AMOUNT_EXPONENT:
            return None
        amount = amount.normalize()
    except (ArithmeticError, ValueError):
        return None
    if amount <= 0:
        return None
    return amount


def to_base_units(amount: Decimal, decimals: int) -> int:
    return int((amount * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN))


def encode_erc20_transfer(to_address: str, base_amount: int) -> str:
    args = encode(["address", "uint256"], [to_checksum(to_address), base_amount])
    return "0x" + ERC20_TRANSFER_SELECTOR + args.hex()


def _plain(amount: Decimal) -> str:
    """Decimal as a plain string without exponent or trailing zeros."""
    return format(amount.normalize(), "f")


class TransferService:
    def __init__(self, balances, provider, explorer_url: str = None):
        self.balances = balances
        self.provider = provider
        self.explorer_url = (explorer_url or settings.EXPLORER_URL).rstrip("/")

    async def validate(
        self,
        db: Session,
        telegram_user_id: str,
        to_address: str,
        amount,
        token: str,
        memo: Optional[str] = None,
    ) -> ValidatedTransfer:
        """Run every check in order. Raises WalletError on the first failure."""
        user, wallet = wallet_directory.get_user_and_wallet(db, telegram_user_id)
        if not user:
            raise WalletError(
                WalletErrorKind.NOT_REGISTERED,
                "User not found. Please use /start to register first.",
            )
        if not wallet:
            raise WalletError(
                WalletErrorKind.NOT_REGISTERED,
                "No wallet found. Please use /start to create a wallet first.",
            )

        to_address = (to_address or "").strip()
        if not is_address(to_address):
            raise WalletError(
                WalletErrorKind.INVALID_ADDRESS,
                "Invalid destination address. Please provide a valid Ethereum address.",
            )

        if to_address.lower() == wallet.address.lower():
            raise WalletError(
                WalletErrorKind.SELF_TRANSFER,
                "Cannot send tokens to your own wallet address.",
            )

        parsed = parse_amount(amount)
        if parsed is None:
            raise WalletError(
                WalletErrorKind.INVALID_AMOUNT,
                "Invalid amount. Please provide a positive number.",
            )

        token = (token or "").strip().upper()
        if token not in TRANSFERABLE_TOKENS:
            raise WalletError(
                WalletErrorKind.VALIDATION_FAILED,
                f"Unsupported token {token or '(none)'}. Supported tokens: {', '.join(TRANSFERABLE_TOKENS)}.",
            )

        minimum = MIN_TRANSFER[token]
        if parsed < minimum:
            raise WalletError(
                WalletErrorKind.BELOW_MINIMUM,
                f"Minimum transfer amount for {token} is {minimum} {token}.",
            )

        # Live reads, never cached
        try:
            balance = await self.balances.fetch_balance(token, wallet.address)
            gas_balance = balance if token == GAS_TOKEN else await self.balances.fetch_balance(GAS_TOKEN, wallet.address)
        except Exception as e:
            logger.error(f"Balance check failed for {telegram_user_id}: {e}", exc_info=True)
            raise WalletError(
                WalletErrorKind.BALANCE_UNAVAILABLE,
                "Failed to check wallet balance. Please try again later.",
            ) from e

        if balance < parsed:
            raise WalletError(
                WalletErrorKind.INSUFFICIENT_BALANCE,
                f"Insufficient balance. You have {balance:.6f} {token}, "
                f"but trying to send {_plain(parsed)} {token}.",
            )

        if token == GAS_TOKEN and balance - parsed < GAS_RESERVE:
            raise WalletError(
                WalletErrorKind.INSUFFICIENT_GAS_RESERVE,
                f"Insufficient balance for gas fees. Please keep at least {GAS_RESERVE} MNT for transaction fees.",
            )

        if token != GAS_TOKEN and gas_balance < MIN_GAS_FOR_FEES:
            raise WalletError(
                WalletErrorKind.INSUFFICIENT_GAS_FOR_FEES,
                f"Insufficient MNT balance for gas fees. You need at least {MIN_GAS_FOR_FEES} MNT "
                f"to send {token} tokens.",
            )

        return ValidatedTransfer(
            user=user,
            wallet=wallet,
            to_address=to_address,
            amount=parsed,
            token=token,
            memo=(memo or "").strip() or None,
            balance=balance,
        )

    def build_transaction(self, transfer: ValidatedTransfer) -> dict:
        """Provider payload. Amounts are scaled with the static decimals table."""
        decimals = TOKEN_DECIMALS[transfer.token]
        base_amount = to_base_units(transfer.amount, decimals)
        if transfer.token == GAS_TOKEN:
            return {
                "to": to_checksum(transfer.to_address),
                "value": str(base_amount),
                "data": "0x",
            }
        return {
            "to": TOKEN_ADDRESSES[transfer.token],
            "value": "0",
            "data": encode_erc20_transfer(transfer.to_address, base_amount),
        }

    async def execute(self, db: Session, transfer: ValidatedTransfer) -> dict:
        telegram_user_id = transfer.user.telegram_id
        amount_text = _plain(transfer.amount)
        tx = self.build_transaction(transfer)

        logger.info(f"[Transfer] {telegram_user_id} sending {amount_text} {transfer.token} to {transfer.to_address}")
        try:
            submitted = await self.provider.send_transaction(
                telegram_user_id, transfer.wallet.provider_wallet_id, tx
            )
        except Exception as e:
            logger.error(f"[Transfer] Submission failed for {telegram_user_id}: {e}", exc_info=True)
            AuditLog.log_transfer(
                telegram_user_id, transfer.token, amount_text, transfer.to_address, False, reason=str(e)
            )
            return WalletError(
                WalletErrorKind.TRANSFER_FAILED,
                f"{transfer.token} transfer failed: {e}",
            ).to_result()

        tx_hash = submitted["hash"]
        AuditLog.log_transfer(
            telegram_user_id, transfer.token, amount_text, transfer.to_address, True, tx_hash=tx_hash
        )
        self._record_transaction(db, transfer, tx_hash, submitted.get("gasUsed"))

        return {
            "success": True,
            "error": None,
            "errorKind": None,
            "data": {
                "transactionHash": tx_hash,
                "fromAddress": transfer.wallet.address,
                "toAddress": transfer.to_address,
                "amount": amount_text,
                "token": transfer.token,
                "memo": transfer.memo,
                "gasUsed": None if submitted.get("gasUsed") is None else str(submitted["gasUsed"]),
                "confirmationUrl": f"{self.explorer_url}/tx/{tx_hash}",
            },
        }

    def _record_transaction(self, db: Session, transfer: ValidatedTransfer, tx_hash: str, gas_used):
        """Best effort: the transfer is already on-chain, so a failure here is logged, not raised."""
        try:
            record = Transaction(
                wallet_id=transfer.wallet.id,
                user_id=transfer.user.id,
                type=TransactionType.SEND,
                status=TransactionStatus.CONFIRMED,
                hash=tx_hash,
                amount=_plain(transfer.amount),
                token=transfer.token,
                token_address=TOKEN_ADDRESSES.get(transfer.token),
                network=NETWORK,
                from_address=transfer.wallet.address,
                to_address=transfer.to_address,
                gas_used=None if gas_used is None else str(gas_used),
                memo=transfer.memo,
                tx_metadata={
                    "source": "transfer_tool",
                    "memo": transfer.memo,
                    "timestamp": _utc_iso(),
                },
            )
            db.add(record)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"[Transfer] Failed to record transaction {tx_hash}: {e}", exc_info=True)

    async def send_tokens(
        self,
        db: Session,
        telegram_user_id: str,
        to_address: str,
        amount,
        token: str,
        memo: Optional[str] = None,
    ) -> dict:
        try:
            transfer = await self.validate(db, telegram_user_id, to_address, amount, token, memo)
        except WalletError as e:
            logger.info(f"[Transfer] Rejected for {telegram_user_id}: {e.kind.value} - {e.message}")
            return e.to_result()
        return await self.execute(db, transfer)


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def format_transfer_result(result: dict) -> str:
    if not result.get("success"):
        return f"❌ {result.get('error')}"
    data = result["data"]
    lines = [
        "✅ *Transfer Successful!*",
        "",
        f"{token_emoji(data['token'])} Amount: {data['amount']} {data['token']}",
        f"📤 From: `{data['fromAddress']}`",
        f"📥 To: `{data['toAddress']}`",
        f"🔗 Hash: `{data['transactionHash']}`",
    ]
    if data.get("memo"):
        lines.append(f"📝 Memo: {data['memo']}")
    lines.append("")
    lines.append(f"🔍 View on explorer: {data['confirmationUrl']}")
    return "\n".join(lines)
