"""
Telegram handlers: commands, free text, inline buttons.

Free text always goes to the configured agent (rule-based orchestrator or
Groq agent), which records it in conversation memory and hands it to the
payment-link flow when one is active for the user.

Handlers only translate between Telegram and the shared services; no step
rules or wallet logic live here. Transfers always need an explicit tap on
the Confirm button; the pending transfer waits in user_data under a short
nonce so callback data stays within Telegram's 64-byte limit.
"""
import logging
import secrets
from typing import List, Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update, error
from telegram.constants import ParseMode
from telegram.ext import ContextTypes

from app.agent.orchestrator import HELP_TEXT, map_error_to_message
from app.container import get_services
from app.core.tokens import TRANSFERABLE_TOKENS, token_emoji
from app.services.chain_client import is_address
from app.services.transfer_service import parse_amount

logger = logging.getLogger(__name__)

CALLBACK_DATA_LIMIT = 64  # bytes, Telegram limit
PENDING_SENDS_KEY = "pending_sends"

MAIN_MENU = [
    [("💰 Balance", "balance"), ("📊 Transactions", "transactions")],
    [("💸 Send", "send"), ("🔗 Payment Link", "payment")],
]

SEND_USAGE = (
    "💸 *Send Tokens*\n\n"
    "*Usage:* `/send <amount> <token> <address> [memo]`\n\n"
    "*Examples:*\n"
    "• `/send 10 USDC 0x123...abc`\n"
    "• `/send 0.5 MNT 0x456...def Payment for coffee`\n\n"
    "*Supported tokens:* MNT, USDC, USDT, DAI"
)


def _services(context: ContextTypes.DEFAULT_TYPE):
    return context.application.bot_data.get("services") or get_services()


def _keyboard(rows) -> Optional[InlineKeyboardMarkup]:
    """Rows of (text, callback) tuples or flow button dicts."""
    if not rows:
        return None
    keyboard = []
    for row in rows:
        buttons = []
        for button in row:
            if isinstance(button, dict):
                buttons.append(InlineKeyboardButton(button["text"], callback_data=button["callback"]))
            else:
                text, data = button
                buttons.append(InlineKeyboardButton(text, callback_data=data))
        keyboard.append(buttons)
    return InlineKeyboardMarkup(keyboard)


async def _send(message, text: str, rows=None, qr_png: Optional[bytes] = None) -> None:
    """Reply with Markdown, falling back to plain text when user content breaks the markup."""
    markup = _keyboard(rows)
    try:
        await message.reply_text(text, parse_mode=ParseMode.MARKDOWN, reply_markup=markup)
    except error.BadRequest as e:
        logger.warning(f"[Telegram] Markdown rejected ({e}); resending as plain text")
        await message.reply_text(text, reply_markup=markup)
    if qr_png:
        try:
            await message.reply_photo(photo=qr_png, caption="📱 Scan to pay")
        except error.TelegramError as e:
            logger.error(f"[Telegram] Failed to send QR photo: {e}")


def remember_pending_send(user_data: dict, amount: str, token: str, address: str, memo: Optional[str] = None) -> str:
    """Park the transfer in user_data and return the Confirm button's callback data."""
    nonce = secrets.token_hex(4)
    user_data.setdefault(PENDING_SENDS_KEY, {})[nonce] = {
        "amount": amount,
        "token": token,
        "address": address,
        "memo": memo,
    }
    return f"confirm_send_{nonce}"


# ==============================================================================
# COMMAND HANDLERS
# ==============================================================================

async def handle_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/start - register the user and make sure they have a custodial wallet."""
    user = update.effective_user
    services = _services(context)
    result = await services.tools.register_user(
        user.id,
        first_name=user.first_name,
        last_name=user.last_name,
        username=user.username,
        language_code=user.language_code,
    )
    if not result["success"]:
        await _send(update.message, result["message"])
        return

    data = result["data"]
    heading = "🎉 *Welcome to Obverse!*" if data["created"] else "🎉 *Welcome back!*"
    await _send(
        update.message,
        f"{heading}\n\n"
        "Your wallet is ready to use.\n\n"
        f"*Wallet Address:*\n`{data['address']}`\n\n"
        "What would you like to do?\n\n"
        "💰 /balance - Check your balance\n"
        "📊 /transactions - View transaction history\n"
        "💸 /send - Send tokens\n"
        "🔗 /payment - Create payment link",
        MAIN_MENU,
    )


async def handle_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _send(update.message, HELP_TEXT)


async def handle_wallet(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    result = await _services(context).tools.get_wallet(update.effective_user.id)
    await _send(update.message, result["message"], MAIN_MENU if result["success"] else None)


async def handle_balance(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    tokens = [arg.upper() for arg in (context.args or [])] or None
    await _show_balance(update.message, update.effective_user.id, context, tokens)


async def handle_transactions(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _show_transactions(update.message, update.effective_user.id, context)


async def handle_send(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/send <amount> <token> <address> [memo] -> confirmation buttons."""
    await _prepare_send(update.message, update.effective_user.id, context, context.args or [])


async def handle_payment(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _start_payment(update.message, update.effective_user.id, update.effective_chat.id, context)


async def handle_linkstats(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    tools = _services(context).tools
    user_id = update.effective_user.id
    if context.args:
        result = await tools.get_payment_link_stats(context.args[0], user_id)
    else:
        result = await tools.get_all_payment_links_stats(user_id)
    await _send(update.message, result["message"])


async def handle_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    reply = _services(context).flow.cancel(update.effective_user.id)
    await _send(update.message, reply.text)


# ==============================================================================
# FREE TEXT
# ==============================================================================

async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    message = update.message
    if not message or not message.text:
        return

    user_id = str(update.effective_user.id)
    chat_id = str(update.effective_chat.id)
    services = _services(context)
    logger.info(f"[Telegram] user={user_id} text={message.text[:50]!r}")

    try:
        reply = await services.agent.respond(
            message.text, user_id, chat_id,
            context={
                "source": "telegram",
                "userInfo": {
                    "firstName": update.effective_user.first_name,
                    "username": update.effective_user.username,
                },
            },
        )
        rows = reply.buttons if reply.flow_step else (reply.buttons or MAIN_MENU)
        await _send(message, reply.text, rows, reply.qr_png)
    except Exception as e:
        logger.error(f"[Telegram] user={user_id} message handling failed: {e}", exc_info=True)
        await _send(message, map_error_to_message(e))


# ==============================================================================
# INLINE BUTTONS
# ==============================================================================

async def handle_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    data = query.data or ""
    user_id = str(query.from_user.id)
    chat_id = str(query.message.chat.id) if query.message else user_id
    message = query.message
    services = _services(context)
    logger.info(f"[Telegram] user={user_id} callback={data}")

    if data == "balance":
        await _show_balance(message, user_id, context)
    elif data == "transactions":
        await _show_transactions(message, user_id, context)
    elif data == "send":
        await _send(message, SEND_USAGE)
    elif data == "payment":
        await _start_payment(message, user_id, chat_id, context)
    elif data.startswith("payment_token_"):
        await _flow_input(message, user_id, data[len("payment_token_"):], context)
    elif data == "payment_done":
        await _flow_input(message, user_id, "done", context)
    elif data == "payment_confirm_yes":
        await _flow_input(message, user_id, "yes", context)
    elif data == "payment_confirm_no":
        await _flow_input(message, user_id, "no", context)
    elif data.startswith("confirm_send_"):
        nonce = data[len("confirm_send_"):]
        pending = context.user_data.get(PENDING_SENDS_KEY, {}).pop(nonce, None)
        if pending is None:
            await _send(message, "❌ This transfer is no longer pending. Please use /send again.")
            return
        await _send(message, "⏳ Processing your transfer...")
        result = await services.tools.send_tokens(
            user_id, pending["address"], pending["amount"], pending["token"], pending["memo"]
        )
        rows = [[("💰 Check Balance", "balance"), ("📊 Transactions", "transactions")]]
        await _send(message, result["message"], rows)
    elif data == "cancel_send":
        context.user_data.pop(PENDING_SENDS_KEY, None)
        await _send(message, "❌ Transfer cancelled.")
    else:
        await _send(message, "❓ Unknown action.")


# ==============================================================================
# SHARED ACTIONS
# ==============================================================================

async def _show_balance(message, user_id, context, tokens: Optional[List[str]] = None) -> None:
    result = await _services(context).tools.check_balance(user_id, tokens=tokens)
    rows = [
        [("🔄 Refresh", "balance"), ("💸 Send", "send")],
        [("📊 Transactions", "transactions"), ("🔗 Payment Link", "payment")],
    ] if result["success"] else None
    await _send(message, result["message"], rows)


async def _show_transactions(message, user_id, context) -> None:
    result = await _services(context).tools.get_recent_transactions(user_id, limit=5)
    rows = [[("🔄 Refresh", "transactions"), ("💰 Balance", "balance")]] if result["success"] else None
    await _send(message, result["message"], rows)


async def _start_payment(message, user_id, chat_id, context) -> None:
    services = _services(context)
    wallet = await services.tools.get_wallet(user_id)
    if not wallet["success"]:
        await _send(message, wallet["message"])
        return
    reply = services.flow.start(str(user_id), chat_id=chat_id, source="telegram")
    await _send(message, reply.text, reply.buttons)


async def _flow_input(message, user_id, text: str, context) -> None:
    reply = await _services(context).flow.handle(str(user_id), text)
    await _send(message, reply.text, reply.buttons, reply.qr_png)


async def _prepare_send(message, user_id, context, args: List[str]) -> None:
    wallet = await _services(context).tools.get_wallet(user_id)
    if not wallet["success"]:
        await _send(message, "❌ No wallet found. Use /start to create a wallet first.")
        return
    if len(args) < 3:
        await _send(message, SEND_USAGE, [[("💰 Check Balance", "balance"), ("📊 Transactions", "transactions")]])
        return

    amount, token, address = args[0], args[1].upper(), args[2]
    memo = " ".join(args[3:]) or None
    if parse_amount(amount) is None:
        await _send(message, "❌ Invalid amount. Please provide a positive number.")
        return
    if token not in TRANSFERABLE_TOKENS:
        await _send(message, f"❌ Unsupported token {token}. Supported tokens: {', '.join(TRANSFERABLE_TOKENS)}")
        return
    if not is_address(address):
        await _send(message, "❌ Invalid recipient address format")
        return

    callback = remember_pending_send(context.user_data, amount, token, address, memo)
    text = (
        "📤 *Confirm Transfer*\n\n"
        f"{token_emoji(token)} Amount: {amount} {token}\n"
        f"📥 To: `{address}`\n"
    )
    if memo:
        text += f"📝 Memo: {memo}\n"
    text += "\nPlease confirm this transaction."
    await _send(message, text, [[("✅ Confirm", callback), ("❌ Cancel", "cancel_send")]])
