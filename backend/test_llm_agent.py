"""
Groq-backed agent: regex fast paths, tool-calling rounds and the fallback
to the rule-based orchestrator. Groq itself is always mocked.
"""
import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
from groq import APITimeoutError

from ai.agent import LlmWalletAgent, collect_details
from ai.groq_client import GroqClient
from ai.prompts import PAYMENT_LINK_GUIDANCE
from app.agent.orchestrator import GREETING_TEXT, handle_error
from app.agent.payment_flow import FlowStep
from app.container import build_services
from app.models.payment_link import PaymentLink
from app.schemas.intent import IntentType


def _groq(*messages, available=True):
    groq = MagicMock()
    groq.is_available.return_value = available
    groq.chat = AsyncMock(side_effect=list(messages))
    return groq


def _tool_call(name, arguments=None, call_id="call_1"):
    return SimpleNamespace(
        id=call_id,
        function=SimpleNamespace(name=name, arguments=json.dumps(arguments or {})),
    )


def _message(content=None, tool_calls=None):
    return SimpleNamespace(content=content, tool_calls=tool_calls)


def _agent(session_factory, chain, provider, groq):
    services = build_services(
        session_factory=session_factory,
        chain=chain,
        provider=provider,
        groq=groq,
        session_backend="memory",
        agent_mode="llm",
    )
    assert isinstance(services.agent, LlmWalletAgent)
    asyncio.run(services.tools.register_user("42"))
    return services


def _respond(services, text):
    return asyncio.run(services.agent.respond(text, "42"))


def test_balance_fast_path_skips_llm(session_factory, chain, provider):
    groq = _groq()
    services = _agent(session_factory, chain, provider, groq)

    reply = _respond(services, "check my wallet balance")

    assert reply.intent == IntentType.BALANCE_CHECK
    assert "500.123456" in reply.text
    groq.chat.assert_not_awaited()
    assert [e["role"] for e in services.memory.history("42")] == ["user", "assistant"]


def test_tracking_fast_path(session_factory, chain, provider):
    groq = _groq()
    services = _agent(session_factory, chain, provider, groq)

    reply = _respond(services, "track my payments")

    assert reply.intent == IntentType.PAYMENT_LINK_STATS
    assert "No Payment Links Found" in reply.text
    groq.chat.assert_not_awaited()


def test_one_shot_link_fast_path(session_factory, chain, provider, db):
    groq = _groq()
    services = _agent(session_factory, chain, provider, groq)

    reply = _respond(services, "create payment link for Coffee 5 USDC collect email, phone")

    assert "Payment link created" in reply.text
    assert reply.qr_png is not None
    link = db.query(PaymentLink).one()
    assert link.details == {"email": "", "phone": ""}
    assert link.payer_details == {"email": "", "phone": ""}
    assert link.link_metadata == {"source": "agent"}
    groq.chat.assert_not_awaited()


def test_link_info_fast_path(session_factory, chain, provider):
    groq = _groq()
    services = _agent(session_factory, chain, provider, groq)
    services.links.id_generator = lambda: "Tx7mQ2pL"
    created = asyncio.run(services.tools.create_payment_link("42", None, "Tea", "DAI", "3"))
    link_id = created["data"]["linkId"]
    assert link_id == "Tx7mQ2pL"

    reply = _respond(services, f"show payment link {link_id} details")

    assert "Payment Link Statistics" in reply.text
    assert link_id in reply.text


def test_link_guidance_without_amount(session_factory, chain, provider):
    groq = _groq()
    services = _agent(session_factory, chain, provider, groq)
    reply = _respond(services, "I need a payment link")
    assert reply.text == PAYMENT_LINK_GUIDANCE


def test_llm_tool_round_then_answer(session_factory, chain, provider):
    groq = _groq(
        _message(tool_calls=[_tool_call("check_balance", {"tokens": ["USDC"]})]),
        _message(content="You hold 500.123456 USDC."),
    )
    services = _agent(session_factory, chain, provider, groq)

    reply = _respond(services, "how rich am I?")

    assert reply.text == "You hold 500.123456 USDC."
    assert groq.chat.await_count == 2
    second_call_messages = groq.chat.await_args_list[1].args[0]
    tool_message = second_call_messages[-1]
    assert tool_message["role"] == "tool"
    assert "500.123456" in json.loads(tool_message["content"])["result"]
    assert second_call_messages[0]["role"] == "system"
    assert "42" in second_call_messages[0]["content"]


def test_llm_created_link_uses_flow_detail_schema(session_factory, chain, provider, db):
    groq = _groq(
        _message(tool_calls=[_tool_call("create_payment_link", {
            "name": "Tip jar", "token": "usdt", "amount": "2", "details": ["Email", "Twitter Handle"],
        })]),
        _message(content="Your tip jar is ready."),
    )
    services = _agent(session_factory, chain, provider, groq)

    reply = _respond(services, "set me up a tip jar")

    assert reply.text == "Your tip jar is ready."
    assert reply.qr_png is not None
    link = db.query(PaymentLink).one()
    assert link.token == "USDT"
    assert link.details == {"email": "", "twitter handle": ""}


def test_llm_out_of_rounds_returns_last_tool_output(session_factory, chain, provider):
    call = _message(tool_calls=[_tool_call("track_payments", {"timeframe": "7d"})])
    groq = _groq(call, call, call)
    services = _agent(session_factory, chain, provider, groq)

    reply = _respond(services, "how are things going?")

    assert groq.chat.await_count == 3
    assert "No Payment Links Found" in reply.text


def test_unavailable_groq_falls_back_to_rules(session_factory, chain, provider):
    groq = _groq(available=False)
    services = _agent(session_factory, chain, provider, groq)

    reply = _respond(services, "hello")

    assert reply.text == GREETING_TEXT
    assert len(services.memory.history("42")) == 2


def test_failed_llm_call_falls_back_to_rules(session_factory, chain, provider):
    groq = _groq(None)
    services = _agent(session_factory, chain, provider, groq)
    reply = _respond(services, "hello")
    assert reply.text == GREETING_TEXT


def test_active_flow_is_handled_by_state_machine(session_factory, chain, provider):
    groq = _groq()
    services = _agent(session_factory, chain, provider, groq)
    services.flow.start("42")

    reply = _respond(services, "Coffee")

    assert reply.flow_step == FlowStep.TOKEN
    groq.chat.assert_not_awaited()


def test_tool_exception_returns_apology(session_factory, chain, provider):
    groq = _groq()
    services = _agent(session_factory, chain, provider, groq)
    services.agent.tools = MagicMock()
    services.agent.tools.check_balance = AsyncMock(side_effect=RuntimeError("boom"))

    reply = _respond(services, "balance please")

    assert reply.text == handle_error(None)


def test_collect_details():
    assert collect_details(None) == {}
    assert collect_details("Email, , phone") == {"email": "", "phone": ""}
    assert collect_details(["Email", " Wallet Address "]) == {"email": "", "wallet address": ""}


def test_groq_client_without_key_is_unavailable():
    client = GroqClient(api_key="")
    assert not client.is_available()
    assert asyncio.run(client.chat([{"role": "user", "content": "hi"}])) is None


def test_groq_client_retries_timeouts(monkeypatch):
    client = GroqClient(api_key="test-key")
    message = _message(content="hi")
    timeout = APITimeoutError(request=httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions"))
    client.client = MagicMock()
    client.client.chat.completions.create = AsyncMock(
        side_effect=[timeout, SimpleNamespace(choices=[SimpleNamespace(message=message)])]
    )
    sleep = AsyncMock()
    monkeypatch.setattr("ai.groq_client.asyncio.sleep", sleep)

    assert asyncio.run(client.chat([{"role": "user", "content": "hi"}])) is message
    sleep.assert_awaited_once_with(0.5)


def test_groq_client_unexpected_error_returns_none():
    client = GroqClient(api_key="test-key")
    client.client = MagicMock()
    client.client.chat.completions.create = AsyncMock(side_effect=ValueError("bad payload"))
    assert asyncio.run(client.chat([{"role": "user", "content": "hi"}])) is None
