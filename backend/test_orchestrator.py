"""
Rule-based orchestrator: classification, dispatch to tools, hand-off to the
payment-link flow, and intent-specific error replies.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

from app.agent.memory import ConversationMemory
from app.agent.orchestrator import (
    GREETING_TEXT,
    SEND_USAGE_TEXT,
    UNKNOWN_TEXT,
    AgentOrchestrator,
    handle_error,
    map_error_to_message,
)
from app.agent.payment_flow import FlowStep, PaymentLinkFlow
from app.agent.session_store import InMemorySessionStore
from app.models.payment_link import PaymentLink
from app.models.transaction import Transaction
from app.schemas.intent import IntentType
from conftest import RECIPIENT, usdc


def _respond(agent, text, user_id="42", **kwargs):
    return asyncio.run(agent.respond(text, user_id, **kwargs))


def test_balance_question_reads_wallet(services, registered):
    reply = _respond(services.orchestrator, "What's my balance?")

    assert reply.intent == IntentType.BALANCE_CHECK
    assert "🔵 USDC: 500.123456" in reply.text
    history = services.memory.history(registered)
    assert [e["role"] for e in history] == ["user", "assistant"]
    assert history[-1]["content"] == reply.text


def test_payment_link_request_starts_flow_and_messages_follow_it(services, registered):
    orchestrator = services.orchestrator

    started = _respond(orchestrator, "create payment link")
    assert started.flow_step == FlowStep.NAME

    named = _respond(orchestrator, "Coffee")
    assert named.flow_step == FlowStep.TOKEN
    assert "Step 2 of 4" in named.text

    bad_token = _respond(orchestrator, "USD")
    assert bad_token.flow_step == FlowStep.TOKEN
    assert "Invalid token" in bad_token.text


def test_one_shot_payment_link(services, registered, db):
    reply = _respond(
        services.orchestrator,
        "create payment link for Coffee $5 USDC collect email",
        context={"source": "api"},
    )

    assert "Payment link created" in reply.text
    assert reply.qr_png and reply.qr_png.startswith(b"\x89PNG")
    link = db.query(PaymentLink).one()
    assert link.title == "Coffee"
    assert link.amount == "5"
    assert link.details == {"email": ""}
    assert link.telegram_chat_id == registered
    assert link.link_metadata == {"source": "api"}
    assert not services.flow.is_active(registered)


def test_full_send_command_executes_transfer(services, registered, provider, db):
    reply = _respond(services.orchestrator, f"send 10 USDC to {RECIPIENT}")

    assert reply.intent == IntentType.SEND_TOKENS
    assert "Transfer Successful" in reply.text
    assert len(provider.sent) == 1
    assert db.query(Transaction).count() == 1


def test_send_message_beyond_balance_is_refused(services, registered, chain, provider, db):
    chain.balances["USDC"] = usdc(5)
    reply = _respond(services.orchestrator, "send 10 USDC to 0x0000000000000000000000000000000000000000")

    assert reply.intent == IntentType.SEND_TOKENS
    assert reply.text == "❌ Insufficient balance. You have 5.000000 USDC, but trying to send 10 USDC."
    assert provider.sent == []
    assert db.query(Transaction).count() == 0


def test_partial_send_shows_usage(services, registered, provider):
    reply = _respond(services.orchestrator, "send 10 USDC")
    assert reply.text == SEND_USAGE_TEXT
    assert provider.sent == []


def test_stats_overview_for_user_without_links(services, registered):
    reply = _respond(services.orchestrator, "show my payment link stats")
    assert reply.intent == IntentType.PAYMENT_LINK_STATS
    assert "No Payment Links Found" in reply.text


def test_greeting_and_unknown(services, registered):
    assert _respond(services.orchestrator, "hello").text == GREETING_TEXT
    unknown = _respond(services.orchestrator, "asdf qwerty")
    assert unknown.text == UNKNOWN_TEXT
    assert unknown.intent == IntentType.UNKNOWN


def test_tool_exception_becomes_intent_specific_apology():
    tools = MagicMock()
    tools.check_balance = AsyncMock(side_effect=RuntimeError("rpc exploded"))
    flow = PaymentLinkFlow(InMemorySessionStore(), AsyncMock())
    orchestrator = AgentOrchestrator(tools, flow, ConversationMemory())

    text = asyncio.run(orchestrator.process_message("what's my balance", "42"))

    assert text == handle_error(IntentType.BALANCE_CHECK)
    assert "checking your balance" in text
    assert "1️⃣ Try /balance command" in text
    assert "rpc exploded" not in text


def test_direct_operations_return_messages(services, registered):
    orchestrator = services.orchestrator
    created = asyncio.run(orchestrator.create_payment_link(
        registered, "900", {"name": "Tea", "token": "DAI", "amount": "3"}
    ))
    assert "Payment link created" in created

    stats = asyncio.run(orchestrator.get_all_payment_links_stats(registered))
    assert "Tea" in stats

    report = asyncio.run(orchestrator.track_payments(registered, "7d"))
    assert "PAYMENT ANALYTICS REPORT" in report


def test_handle_error_defaults():
    text = handle_error(None)
    assert "processing your request" in text
    assert "2️⃣ Type /help for assistance" in text


def test_map_error_to_message():
    assert "/start" in map_error_to_message(Exception("Wallet missing"))
    assert "network" in map_error_to_message(Exception("Connection refused"))
    assert "too long" in map_error_to_message(Exception("read timeout"))
    assert "technical difficulties" in map_error_to_message(Exception("boom"))
