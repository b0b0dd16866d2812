import asyncio
import logging
import threading
from typing import Optional

from telegram import error
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, MessageHandler, filters

from app.core.config import settings
from app.telegram.handlers import (
    handle_balance,
    handle_callback,
    handle_cancel,
    handle_help,
    handle_linkstats,
    handle_message,
    handle_payment,
    handle_send,
    handle_start,
    handle_transactions,
    handle_wallet,
)

logger = logging.getLogger(__name__)

_bot_app: Optional[Application] = None
_bot_loop: Optional[asyncio.AbstractEventLoop] = None

COMMANDS = {
    "start": handle_start,
    "help": handle_help,
    "wallet": handle_wallet,
    "balance": handle_balance,
    "transactions": handle_transactions,
    "send": handle_send,
    "payment": handle_payment,
    "linkstats": handle_linkstats,
    "cancel": handle_cancel,
}


class InvalidBotToken(Exception):
    pass


def build_application(token: str, services=None) -> Application:
    app = Application.builder().token(token).build()
    if services is not None:
        app.bot_data["services"] = services
    for name, handler in COMMANDS.items():
        app.add_handler(CommandHandler(name, handler))
    app.add_handler(CallbackQueryHandler(handle_callback))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_message))
    return app


async def validate_token(app: Application, timeout: float = None) -> None:
    """getMe under a timeout; raises InvalidBotToken with a readable reason."""
    timeout = timeout or settings.TELEGRAM_TOKEN_TIMEOUT_SECONDS
    try:
        me = await asyncio.wait_for(app.bot.get_me(), timeout=timeout)
        logger.info(f"[Telegram] ✓ Bot token valid: @{me.username}")
    except asyncio.TimeoutError:
        raise InvalidBotToken(f"Token validation timed out after {timeout}s")
    except error.InvalidToken as e:
        raise InvalidBotToken(f"Invalid bot token: {e}")
    except error.TelegramError as e:
        raise InvalidBotToken(f"Token validation failed: {e}")


async def _start_polling_with_retry(app, max_retries: int = None, backoff_seconds: float = None) -> bool:
    """Linear backoff: backoff_seconds * attempt between tries."""
    max_retries = max_retries or settings.TELEGRAM_POLL_RETRIES
    backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.TELEGRAM_POLL_BACKOFF_SECONDS
    for attempt in range(1, max_retries + 1):
        try:
            logger.info(f"[Telegram] Starting polling (attempt {attempt}/{max_retries})...")
            await app.updater.start_polling(drop_pending_updates=True)
            logger.info("[Telegram] ✓ Polling started successfully")
            return True
        except (error.Conflict, error.NetworkError, error.TimedOut) as e:
            if attempt < max_retries:
                wait = backoff_seconds * attempt
                logger.warning(f"[Telegram] ⚠ Polling failed: {e}. Retrying in {wait}s...")
                await asyncio.sleep(wait)
            else:
                logger.error(f"[Telegram] ✗ Failed after {max_retries} attempts. Bot disabled. Error: {e}")
                return False
    return False


def _run_bot(services=None):
    global _bot_app, _bot_loop
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    _bot_loop = loop

    try:
        _bot_app = build_application(settings.TELEGRAM_BOT_TOKEN, services)
        loop.run_until_complete(_bot_app.initialize())
        loop.run_until_complete(validate_token(_bot_app))
        loop.run_until_complete(_bot_app.start())
        if not loop.run_until_complete(_start_polling_with_retry(_bot_app)):
            return
        loop.run_forever()
    except InvalidBotToken as e:
        logger.error(f"[Telegram] {e}. Bot disabled.")
    except Exception as e:
        logger.error(f"[Telegram] Bot error: {e}", exc_info=True)
    finally:
        try:
            if _bot_app and _bot_app.running:
                loop.run_until_complete(_bot_app.stop())
            if _bot_app:
                loop.run_until_complete(_bot_app.shutdown())
        except Exception as e:
            logger.warning(f"[Telegram] Shutdown error: {e}")
        loop.close()
        _bot_loop = None


def start_bot_background(services=None):
    if not settings.TELEGRAM_BOT_TOKEN:
        return
    t = threading.Thread(target=_run_bot, args=(services,), daemon=True, name="telegram-bot")
    t.start()


def stop_bot_background():
    """Stop polling. Called on FastAPI shutdown."""
    if _bot_loop and _bot_loop.is_running():
        _bot_loop.call_soon_threadsafe(_bot_loop.stop)


async def send_telegram_message(chat_id, message: str) -> bool:
    """
    Send a message to a Telegram chat (payment notifications).

    Returns:
        True if sent successfully, False otherwise
    """
    if not _bot_app or not _bot_loop:
        logger.warning("Telegram bot not initialized")
        return False

    try:
        # The bot owns its own loop in the background thread
        future = asyncio.run_coroutine_threadsafe(
            _bot_app.bot.send_message(chat_id=int(chat_id), text=message, parse_mode="Markdown"),
            _bot_loop,
        )
        await asyncio.wrap_future(future)
        return True
    except Exception as e:
        logger.error(f"Failed to send Telegram message to {chat_id}: {e}")
        return False
