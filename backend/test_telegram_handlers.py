"""
Telegram handlers with mocked Update / Context objects.

Covers /start registration, the payment flow driven by text and buttons,
and the two-step /send confirmation (callback data stays within 64 bytes).
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.telegram.handlers import (
    CALLBACK_DATA_LIMIT,
    PENDING_SENDS_KEY,
    handle_callback,
    handle_message,
    handle_send,
    handle_start,
    remember_pending_send,
)
from conftest import OWNER_ADDRESS, RECIPIENT


def _message(text=None):
    message = MagicMock()
    message.text = text
    message.reply_text = AsyncMock()
    message.reply_photo = AsyncMock()
    message.chat.id = 900
    return message


def _update(text=None, user_id=42):
    update = MagicMock()
    update.message = _message(text)
    update.effective_user.id = user_id
    update.effective_user.first_name = "Ada"
    update.effective_user.last_name = None
    update.effective_user.username = "ada"
    update.effective_user.language_code = "en"
    update.effective_chat.id = 900
    return update


def _context(services, args=None):
    context = MagicMock()
    context.application.bot_data = {"services": services}
    context.user_data = {}
    context.args = args or []
    return context


def _callback_update(data, user_id=42):
    update = MagicMock()
    update.callback_query.data = data
    update.callback_query.answer = AsyncMock()
    update.callback_query.from_user.id = user_id
    update.callback_query.message = _message()
    return update


def _texts(message):
    return [call.args[0] for call in message.reply_text.await_args_list]


def test_start_registers_wallet(services):
    update = _update("/start")
    asyncio.run(handle_start(update, _context(services)))

    text = _texts(update.message)[0]
    assert "Welcome to Obverse" in text
    assert OWNER_ADDRESS in text

    again = _update("/start")
    asyncio.run(handle_start(again, _context(services)))
    assert "Welcome back" in _texts(again.message)[0]


def test_start_reports_provider_failure(services, provider):
    provider.fail_create = True
    update = _update("/start")
    asyncio.run(handle_start(update, _context(services)))
    assert _texts(update.message) == ["❌ Failed to create your wallet. Please try again later."]


def test_free_text_goes_to_agent_then_flow(services, registered):
    context = _context(services)

    update = _update("create payment link")
    asyncio.run(handle_message(update, context))
    assert "Step 1 of 4" in _texts(update.message)[0]

    update = _update("Coffee")
    asyncio.run(handle_message(update, context))
    assert "Step 2 of 4" in _texts(update.message)[0]
    assert update.message.reply_text.await_args.kwargs["reply_markup"] is not None
    history = services.memory.history(registered)
    assert [e["content"] for e in history if e["role"] == "user"] == ["create payment link", "Coffee"]
    assert "Step 2 of 4" in services.memory.last_assistant_message(registered)

    button = _callback_update("payment_token_USDC")
    asyncio.run(handle_callback(button, context))
    assert "Step 3 of 4" in _texts(button.callback_query.message)[0]


def test_send_needs_confirmation(services, registered, provider):
    context = _context(services, ["10", "usdc", RECIPIENT, "lunch"])
    update = _update("/send")
    asyncio.run(handle_send(update, context))

    assert provider.sent == []
    markup = update.message.reply_text.await_args.kwargs["reply_markup"]
    confirm = markup.inline_keyboard[0][0].callback_data
    nonce = confirm[len("confirm_send_"):]
    assert context.user_data[PENDING_SENDS_KEY][nonce] == {
        "amount": "10", "token": "USDC", "address": RECIPIENT, "memo": "lunch",
    }

    button = _callback_update(confirm)
    asyncio.run(handle_callback(button, context))

    assert len(provider.sent) == 1
    assert "Transfer Successful" in _texts(button.callback_query.message)[-1]
    assert "lunch" in _texts(button.callback_query.message)[-1]
    assert context.user_data[PENDING_SENDS_KEY] == {}

    replay = _callback_update(confirm)
    asyncio.run(handle_callback(replay, context))
    assert len(provider.sent) == 1
    assert "no longer pending" in _texts(replay.callback_query.message)[0]


@pytest.mark.parametrize("amount", ["1000", "10.5", "0.123456", "250000.75"])
def test_confirm_button_fits_callback_limit_for_any_amount(services, registered, amount):
    context = _context(services, [amount, "USDC", RECIPIENT, "a memo far too long to ever fit in callback data"])
    update = _update("/send")
    asyncio.run(handle_send(update, context))

    markup = update.message.reply_text.await_args.kwargs["reply_markup"]
    for button in markup.inline_keyboard[0]:
        assert len(button.callback_data.encode("utf-8")) <= CALLBACK_DATA_LIMIT
    pending = next(iter(context.user_data[PENDING_SENDS_KEY].values()))
    assert pending["amount"] == amount
    assert pending["memo"].startswith("a memo far too long")


def test_send_rejects_bad_arguments(services, registered, provider):
    update = _update("/send")
    asyncio.run(handle_send(update, _context(services, ["ten", "USDC", RECIPIENT])))
    assert "Invalid amount" in _texts(update.message)[0]

    update = _update("/send")
    asyncio.run(handle_send(update, _context(services, ["10", "USDC", "0x123"])))
    assert "Invalid recipient address" in _texts(update.message)[0]
    assert provider.sent == []


def test_cancel_send_button(services, registered, provider):
    context = _context(services)
    remember_pending_send(context.user_data, "10", "USDC", RECIPIENT, "lunch")
    button = _callback_update("cancel_send")
    asyncio.run(handle_callback(button, context))
    assert _texts(button.callback_query.message) == ["❌ Transfer cancelled."]
    assert context.user_data == {}


def test_unknown_callback(services):
    button = _callback_update("launch_rockets")
    asyncio.run(handle_callback(button, _context(services)))
    assert _texts(button.callback_query.message) == ["❓ Unknown action."]


def test_pending_send_callback_is_short_and_unique():
    user_data = {}
    first = remember_pending_send(user_data, "1000000.123456", "USDC", RECIPIENT, "x" * 200)
    second = remember_pending_send(user_data, "1", "DAI", RECIPIENT)

    assert first != second
    assert len(first.encode("utf-8")) <= CALLBACK_DATA_LIMIT
    assert len(user_data[PENDING_SENDS_KEY]) == 2
