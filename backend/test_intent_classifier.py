"""Intent classifier: pattern scoring, tie-breaks, context boost and entities."""
import pytest

from app.agent.intent_classifier import (
    classify_intent,
    extract_link_id,
    extract_payment_link_entities,
    extract_transfer_entities,
    has_full_payment_link,
    has_full_transfer,
)
from app.schemas.intent import IntentType
from conftest import RECIPIENT


def _assistant(text):
    return [{"role": "user", "content": "hi"}, {"role": "assistant", "content": text}]


def test_balance_question():
    result = classify_intent("What's my balance?")
    assert result.intent == IntentType.BALANCE_CHECK
    assert result.confidence == 0.6


def test_balance_with_token_filter():
    result = classify_intent("check my USDC balance")
    assert result.intent == IntentType.BALANCE_CHECK
    assert result.entities == {"token": "USDC"}


def test_send_with_all_entities():
    result = classify_intent(f"send 10 USDC to {RECIPIENT}")
    assert result.intent == IntentType.SEND_TOKENS
    assert result.confidence == 0.9
    assert result.entities == {"address": RECIPIENT, "amount": "10", "token": "USDC"}
    assert has_full_transfer(result.entities)


def test_send_without_address_is_partial():
    result = classify_intent("transfer 5 usdt")
    assert result.intent == IntentType.SEND_TOKENS
    assert not has_full_transfer(result.entities)


def test_one_shot_payment_link():
    result = classify_intent("create payment link for Coffee $5 USDC collect email, phone")
    assert result.intent == IntentType.PAYMENT_LINK
    assert result.entities == {"name": "Coffee", "amount": "5", "token": "USDC", "details": ["email", "phone"]}
    assert has_full_payment_link(result.entities)


def test_payment_link_without_details():
    result = classify_intent("create payment link")
    assert result.intent == IntentType.PAYMENT_LINK
    assert result.entities == {}
    assert not has_full_payment_link(result.entities)


def test_stats_with_link_id_keeps_case():
    result = classify_intent("stats for link Ab3dEf9h")
    assert result.intent == IntentType.PAYMENT_LINK_STATS
    assert result.entities == {"link_id": "Ab3dEf9h"}


def test_stats_overview_has_no_link_id():
    result = classify_intent("show my payment link stats")
    assert result.intent == IntentType.PAYMENT_LINK_STATS
    assert result.entities == {}


def test_ties_follow_priority_order():
    result = classify_intent("send payment link")
    assert result.scores == {"send_tokens": 0.3, "payment_link": 0.3}
    assert result.intent == IntentType.SEND_TOKENS


def test_context_boost_can_change_the_winner():
    result = classify_intent("send payment link", _assistant("Want to create a payment link?"))
    assert result.intent == IntentType.PAYMENT_LINK
    assert result.confidence == 0.5
    assert result.context is not None


def test_context_boost_only_applies_to_matched_categories():
    result = classify_intent("hello", _assistant("Your wallet balance is 5 USDC"))
    assert result.intent == IntentType.GREETING
    assert "balance_check" not in result.scores
    assert result.confidence == 0.3


def test_context_boost_uses_last_assistant_message():
    result = classify_intent("check", _assistant("Your wallet balance is 5 USDC"))
    assert result.intent == IntentType.BALANCE_CHECK
    assert result.confidence == 0.5


@pytest.mark.parametrize("text", ["", "   ", "asdf qwerty"])
def test_unknown(text):
    result = classify_intent(text)
    assert result.is_unknown
    assert result.confidence == 0.0
    assert result.entities == {}


@pytest.mark.parametrize("text,intent", [
    ("/help", IntentType.HELP),
    ("what can you do", IntentType.HELP),
    ("hi there", IntentType.GREETING),
    ("good morning", IntentType.GREETING),
])
def test_help_and_greeting(text, intent):
    assert classify_intent(text).intent == intent


def test_extract_link_id_skips_plain_words():
    assert extract_link_id("payments ANALYTIC Overview") is None
    assert extract_link_id("details on abcd1234 please") == "abcd1234"
    assert extract_link_id("link xYzwQrSt") == "xYzwQrSt"


def test_extract_transfer_entities_ignores_address_digits():
    entities = extract_transfer_entities(f"send to {RECIPIENT} 2.5 mnt")
    assert entities == {"address": RECIPIENT, "amount": "2.5", "token": "MNT"}


def test_extract_payment_link_entities_rejects_unsupported_token():
    assert extract_payment_link_entities("link for Coffee 5 MNT") == {}
