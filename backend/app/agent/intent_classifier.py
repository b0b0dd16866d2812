"""
Intent Classifier - pattern scoring with conversational context boost

Scoring:
1. Every category has an ordered list of regexes; each match adds 0.3
2. If the previous assistant reply mentions one of the category's context
   keywords, a category that already matched gets +0.2
3. Highest score wins; ties go to the category listed first in PRIORITY
4. Nothing matched -> unknown, confidence 0

Entities are extracted only for the winning category.
"""
import logging
import re
from typing import Dict, Iterable, List, Optional

from app.core.tokens import PAYMENT_LINK_TOKENS, TRANSFERABLE_TOKENS
from app.schemas.intent import ClassifiedIntent, IntentType

logger = logging.getLogger(__name__)

PATTERN_WEIGHT = 0.3
CONTEXT_BOOST = 0.2

PATTERNS: Dict[IntentType, List[re.Pattern]] = {
    IntentType.PAYMENT_LINK_STATS: [
        re.compile(p, re.IGNORECASE) for p in (
            r"\b(payment.*link.*stat|link.*stat|track.*payment.*link|payment.*link.*transaction)\b",
            r"\b(how.*many.*transaction|total.*transaction.*link|payment.*link.*analytics)\b",
            r"\b(link.*performance|payment.*received.*link)\b",
            r"\b(show.*payment.*link.*stat|show.*link.*stat|show.*all.*payment.*link)\b",
            r"\b(my.*payment.*link.*stat|all.*my.*payment.*link)\b",
            r"\b(payment.*link.*overview|link.*overview|statistics.*payment.*link)\b",
            r"\b(view.*payment.*link.*stat|display.*payment.*link)\b",
            r"\b(track.*payment.*links?|track.*links?)\b",
            r"\b(show.*payment.*link|view.*payment.*link)\b",
            r"\b(stats|statistics|analytics)\b",
        )
    ],
    IntentType.SEND_TOKENS: [
        re.compile(p, re.IGNORECASE) for p in (
            r"\b(send|transfer)\b",
            r"\b(send|transfer|pay)\b.*\d+(\.\d+)?\s*(usdc|usdt|dai|mnt)\b",
            r"\bto\s+0x[a-f0-9]{40}\b",
        )
    ],
    IntentType.PAYMENT_LINK: [
        re.compile(p, re.IGNORECASE) for p in (
            r"\b(create|make|generate|new)\b.*\b(payment\s*link|link)\b",
            r"\bpayment\s*link\b",
            r"\b(request|collect|receive)\b.*\bpayments?\b",
        )
    ],
    IntentType.BALANCE_CHECK: [
        re.compile(p, re.IGNORECASE) for p in (
            r"\b(balance|wallet|how much|check)\b",
            r"\b(show.*balance|show.*wallet)\b",
            r"\b(my.*balance|account|funds|money)\b",
            r"\b(usdc|usdt|dai|mnt).*balance\b",
            r"\b(what.*have)\b",
        )
    ],
    IntentType.HELP: [
        re.compile(p, re.IGNORECASE) for p in (
            r"^\s*/?help\b",
            r"\b(commands|what can you do|how do i|how to use)\b",
        )
    ],
    IntentType.GREETING: [
        re.compile(p, re.IGNORECASE) for p in (
            r"^\s*(hi|hello|hey|hiya|yo|gm|good (morning|afternoon|evening))\b",
        )
    ],
}

# Explicit tie-break order (earlier wins)
PRIORITY = [
    IntentType.PAYMENT_LINK_STATS,
    IntentType.SEND_TOKENS,
    IntentType.PAYMENT_LINK,
    IntentType.BALANCE_CHECK,
    IntentType.HELP,
    IntentType.GREETING,
]

CONTEXT_KEYWORDS: Dict[IntentType, List[str]] = {
    IntentType.BALANCE_CHECK: ["balance", "wallet", "funds"],
    IntentType.SEND_TOKENS: ["send", "transfer", "recipient"],
    IntentType.PAYMENT_LINK: ["payment link", "create", "collect"],
    IntentType.PAYMENT_LINK_STATS: ["statistics", "stats", "views", "link id"],
    IntentType.HELP: ["help", "commands"],
    IntentType.GREETING: [],
}

ADDRESS_RE = re.compile(r"0x[a-fA-F0-9]{40}")
AMOUNT_RE = re.compile(r"(?<![\w.])\$?(\d+(?:\.\d+)?)(?![\w.])")
LINK_ID_RE = re.compile(r"\b([A-Za-z0-9]{8})\b")
ONE_SHOT_LINK_RE = re.compile(
    r"\b(?:for|called|named)\s+(.+?)\s+\$?(\d+(?:\.\d+)?)\s*(usdc|usdt|dai)\b(?:\s+collect(?:ing)?\s+(.+))?$",
    re.IGNORECASE,
)


def _token_pattern(tokens: Iterable[str]) -> re.Pattern:
    return re.compile(r"\b(" + "|".join(tokens) + r")\b", re.IGNORECASE)


TRANSFER_TOKEN_RE = _token_pattern(TRANSFERABLE_TOKENS)


def extract_link_id(text: str) -> Optional[str]:
    """
    First 8-char alphanumeric word that looks like a generated id.

    Plain words are skipped: all-lowercase ("payments"), all-uppercase
    ("ANALYTIC") and capitalized ("Overview") letter-only words are not ids.
    Case is preserved.
    """
    for candidate in LINK_ID_RE.findall(text):
        if candidate.isalpha() and (
            candidate.islower() or candidate.isupper() or (candidate[0].isupper() and candidate[1:].islower())
        ):
            continue
        return candidate
    return None


def extract_transfer_entities(text: str) -> dict:
    entities = {}
    address = ADDRESS_RE.search(text)
    if address:
        entities["address"] = address.group(0)
    # Addresses contain digits; drop them before looking for the amount
    stripped = ADDRESS_RE.sub(" ", text)
    amount = AMOUNT_RE.search(stripped)
    if amount:
        entities["amount"] = amount.group(1)
    token = TRANSFER_TOKEN_RE.search(stripped)
    if token:
        entities["token"] = token.group(1).upper()
    return entities


def extract_payment_link_entities(text: str) -> dict:
    """'create payment link for Coffee $5 USDC collect email, phone'"""
    match = ONE_SHOT_LINK_RE.search(text.strip())
    if not match:
        return {}
    name, amount, token, collect = match.groups()
    entities = {"name": name.strip(), "amount": amount, "token": token.upper()}
    if collect:
        entities["details"] = [f.strip().lower() for f in collect.split(",") if f.strip()]
    return entities


def _extract_entities(intent: IntentType, text: str) -> dict:
    if intent == IntentType.SEND_TOKENS:
        return extract_transfer_entities(text)
    if intent == IntentType.BALANCE_CHECK:
        token = TRANSFER_TOKEN_RE.search(text)
        return {"token": token.group(1).upper()} if token else {}
    if intent == IntentType.PAYMENT_LINK_STATS:
        link_id = extract_link_id(text)
        return {"link_id": link_id} if link_id else {}
    if intent == IntentType.PAYMENT_LINK:
        return extract_payment_link_entities(text)
    return {}


def _last_assistant_message(history: Optional[List[dict]]) -> Optional[str]:
    for entry in reversed(history or []):
        if entry.get("role") == "assistant":
            return entry.get("content")
    return None


def classify_intent(text: str, history: Optional[List[dict]] = None) -> ClassifiedIntent:
    """
    Classify a free-text message.

    Args:
        text: user message
        history: recent memory entries ({role, content, timestamp}), oldest first
    """
    text = (text or "").strip()
    if not text:
        return ClassifiedIntent()

    scores: Dict[IntentType, float] = {}
    for intent, patterns in PATTERNS.items():
        hits = sum(1 for pattern in patterns if pattern.search(text))
        if hits:
            scores[intent] = hits * PATTERN_WEIGHT

    if not scores:
        logger.debug(f"[Intent] no pattern matched: {text!r}")
        return ClassifiedIntent()

    previous = (_last_assistant_message(history) or "").lower()
    context = None
    if previous:
        for intent in scores:
            if any(keyword in previous for keyword in CONTEXT_KEYWORDS[intent]):
                scores[intent] += CONTEXT_BOOST
                context = previous[:200]

    best = max(scores.values())
    winner = next(intent for intent in PRIORITY if abs(scores.get(intent, -1) - best) < 1e-9)

    result = ClassifiedIntent(
        intent=winner,
        confidence=best,
        entities=_extract_entities(winner, text),
        context=context,
        scores={intent.value: round(score, 4) for intent, score in scores.items()},
    )
    logger.info(f"[Intent] {result.intent.value} ({result.confidence}) entities={result.entities}")
    return result


def has_full_transfer(entities: dict) -> bool:
    return all(entities.get(key) for key in ("amount", "token", "address"))


def has_full_payment_link(entities: dict) -> bool:
    return all(entities.get(key) for key in ("name", "amount", "token")) and \
        entities["token"] in PAYMENT_LINK_TOKENS
