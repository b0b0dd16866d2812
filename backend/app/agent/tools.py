"""
Tool layer: the operations every front door (orchestrator, LLM agent, MCP
service, Telegram handlers, HTTP routes) calls into.

Each tool opens its own short-lived DB session and returns a result dict:

    {"success": bool, "error": str | None, "errorKind": str | None, "data": ..., "message": str}

`message` is the chat-ready rendering. Domain failures (WalletError) are
converted to results here and never raised past this layer.
"""
import logging
from typing import Dict, Iterable, Optional

from app.core.exceptions import WalletError, WalletErrorKind
from app.services import wallet_directory
from app.services.balance_service import format_balances
from app.services.payment_link_stats import (
    build_tracking_report,
    filter_links,
    format_all_links_stats,
    format_link_stats,
    format_tracking_miss,
    format_tracking_report,
    link_statistics,
)
from app.services.qr_service import try_render_qr_png
from app.services.transfer_service import format_transfer_result
from app.services.wallet_provider import ProviderError

logger = logging.getLogger(__name__)


def _ok(data, message: str) -> dict:
    return {"success": True, "error": None, "errorKind": None, "data": data, "message": message}


def _fail(err: WalletError) -> dict:
    result = err.to_result()
    result["message"] = f"❌ {err.message}"
    return result


class WalletTools:
    def __init__(self, session_factory, balances, transfers, links, provider=None, chain=None):
        self.session_factory = session_factory
        self.balances = balances
        self.transfers = transfers
        self.links = links
        self.provider = provider
        self.chain = chain

    async def register_user(self, telegram_user_id, first_name=None, last_name=None, username=None,
                            language_code=None) -> dict:
        db = self.session_factory()
        try:
            user, wallet, created = await wallet_directory.register_user(
                db, self.provider, telegram_user_id,
                first_name=first_name, last_name=last_name,
                username=username, language_code=language_code,
            )
            return _ok(
                {"telegramUserId": user.telegram_id, "address": wallet.address, "created": created},
                f"Wallet address: `{wallet.address}`",
            )
        except ProviderError as e:
            db.rollback()
            logger.error(f"[Tools] wallet provider failed for user {telegram_user_id}: {e}")
            return _fail(WalletError(WalletErrorKind.UNKNOWN, "Failed to create your wallet. Please try again later."))
        finally:
            db.close()

    async def get_wallet(self, telegram_user_id) -> dict:
        db = self.session_factory()
        try:
            user, wallet = wallet_directory.get_user_and_wallet(db, telegram_user_id)
            if not user or not wallet:
                return _fail(WalletError(
                    WalletErrorKind.NOT_REGISTERED,
                    "No wallet found. Please use /start to create a wallet first.",
                ))
            return _ok(
                {"address": wallet.address, "network": wallet.network, "status": wallet.status},
                f"👛 *Your Wallet*\n\n📍 Address: `{wallet.address}`\n🌐 Network: Mantle",
            )
        finally:
            db.close()

    async def check_balance(self, telegram_user_id=None, tokens: Optional[Iterable[str]] = None,
                            wallet_address: Optional[str] = None) -> dict:
        db = self.session_factory()
        try:
            balances = await self.balances.check_balance(
                db, telegram_user_id=telegram_user_id, wallet_address=wallet_address, tokens=tokens
            )
        except WalletError as e:
            return _fail(e)
        finally:
            db.close()
        return _ok(balances, format_balances(balances))

    async def send_tokens(self, telegram_user_id, to_address, amount, token, memo=None) -> dict:
        db = self.session_factory()
        try:
            result = await self.transfers.send_tokens(db, str(telegram_user_id), to_address, amount, token, memo)
        finally:
            db.close()
        result["message"] = format_transfer_result(result)
        return result

    async def create_payment_link(self, telegram_user_id, chat_id, name, token, amount,
                                  details: Optional[Dict[str, str]] = None, source: str = "telegram") -> dict:
        db = self.session_factory()
        try:
            user, wallet = wallet_directory.get_user_and_wallet(db, telegram_user_id)
            if not user or not wallet:
                return _fail(WalletError(
                    WalletErrorKind.NOT_REGISTERED,
                    "No wallet found. Please use /start to create a wallet first.",
                ))
            link = self.links.create_link(
                db, user, wallet, name, token, amount,
                details=details, chat_id=chat_id, source=source,
            )
            data = {
                "linkId": link.link_id,
                "linkUrl": link.link_url,
                "name": link.title,
                "token": link.token,
                "amount": link.amount,
                "details": dict(link.details or {}),
                "status": link.status,
            }
        except WalletError as e:
            return _fail(e)
        finally:
            db.close()

        data["qrPng"] = try_render_qr_png(data["linkUrl"])
        message = (
            f"✅ *Payment link created!*\n\n"
            f"🔗 {data['name']}\n"
            f"💰 {data['amount']} {data['token']}\n"
            f"🆔 `{data['linkId']}`\n"
            f"🌐 {data['linkUrl']}"
        )
        if data["details"]:
            message += f"\n📋 Collecting: {', '.join(data['details'])}"
        message += "\n\n💬 Share this link to receive payments!"
        return _ok(data, message)

    async def get_payment_link_stats(self, link_id: str, telegram_user_id) -> dict:
        db = self.session_factory()
        try:
            user = wallet_directory.get_user(db, telegram_user_id)
            if not user:
                return _fail(WalletError(
                    WalletErrorKind.NOT_REGISTERED,
                    "User not found. Please use /start to register first.",
                ))
            link = self.links.get_owned_link(db, link_id, user)
            return _ok(link_statistics(link), format_link_stats(link))
        except WalletError as e:
            return _fail(e)
        finally:
            db.close()

    async def get_all_payment_links_stats(self, telegram_user_id) -> dict:
        db = self.session_factory()
        try:
            user = wallet_directory.get_user(db, telegram_user_id)
            if not user:
                return _fail(WalletError(
                    WalletErrorKind.NOT_REGISTERED,
                    "User not found. Please use /start to register first.",
                ))
            links = self.links.list_for_user(db, user)
            data = [link_statistics(link) for link in links]
            return _ok(data, format_all_links_stats(links))
        finally:
            db.close()

    async def track_payments(self, telegram_user_id, timeframe: str = "30d",
                             link_id: Optional[str] = None, link_name: Optional[str] = None) -> dict:
        db = self.session_factory()
        try:
            user = wallet_directory.get_user(db, telegram_user_id)
            if not user:
                return _fail(WalletError(WalletErrorKind.NOT_REGISTERED, "User not found"))
            all_links = self.links.list_for_user(db, user)
            links = filter_links(all_links, link_id=link_id, link_name=link_name)
            if not links:
                suggestions = [link.title for link in all_links[:5] if link.title] if link_name else []
                err = WalletError(
                    WalletErrorKind.NOT_FOUND,
                    f"Payment link with ID \"{link_id}\" not found" if link_id
                    else f"No payment links found matching \"{link_name}\"" if link_name
                    else "No payment links found for this user",
                )
                result = err.to_result()
                result["data"] = {"suggestions": suggestions}
                result["message"] = format_tracking_miss(link_id, link_name, suggestions)
                return result
            report = build_tracking_report(links, timeframe)
            return _ok(report, format_tracking_report(report))
        finally:
            db.close()

    async def get_recent_transactions(self, telegram_user_id, limit: int = 5) -> dict:
        db = self.session_factory()
        try:
            _, wallet = wallet_directory.get_user_and_wallet(db, telegram_user_id)
            address = wallet.address if wallet else None
        finally:
            db.close()
        if not address:
            return _fail(WalletError(
                WalletErrorKind.NOT_REGISTERED,
                "No wallet found. Use /start to create a wallet.",
            ))

        native = await self.chain.get_transactions(address, limit)
        transfers = await self.chain.get_token_transfers(address, limit)
        return _ok(
            {"nativeTransactions": native, "tokenTransfers": transfers},
            format_recent_transactions(address, native, transfers, limit),
        )


def format_recent_transactions(address: str, native: list, transfers: list, limit: int = 5) -> str:
    if not native and not transfers:
        return "📭 No transactions found for your wallet yet."
    lines = ["📜 *Recent Transactions*", ""]
    own = address.lower()
    for tx in transfers[:limit]:
        direction = "📤 Sent" if str(tx.get("from", "")).lower() == own else "📥 Received"
        try:
            decimals = int(tx.get("tokenDecimal") or 18)
            value = int(tx.get("value") or 0) / (10 ** decimals)
        except (TypeError, ValueError):
            value = 0
        lines.append(f"{direction} {value:.4f} {tx.get('tokenSymbol', '?')} - `{str(tx.get('hash', ''))[:12]}...`")
    for tx in native[:limit]:
        direction = "📤 Sent" if str(tx.get("from", "")).lower() == own else "📥 Received"
        try:
            value = int(tx.get("value") or 0) / 10 ** 18
        except (TypeError, ValueError):
            value = 0
        lines.append(f"{direction} {value:.4f} MNT - `{str(tx.get('hash', ''))[:12]}...`")
    return "\n".join(lines)
