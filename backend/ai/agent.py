"""
LLM Wallet Agent: Groq tool calling with deterministic fast paths.

Order of resolution:
1. Active payment-link flow -> rule-based orchestrator (state machine)
2. Regex fast paths (balance, tracking, link info, one-shot link creation,
   link guidance): answered straight from the tool layer, no LLM call
3. Groq chat with tool calling, at most MAX_TOOL_ROUNDS rounds
4. Groq unavailable or failing -> rule-based orchestrator

Same contract as AgentOrchestrator.process_message and the same tools, so
neither path can report data a tool did not return.
"""

import json
import logging
import re
from typing import List, Optional

from ai.groq_client import GroqClient, get_groq_client
from ai.prompts import PAYMENT_LINK_GUIDANCE, TOOL_SCHEMAS, build_system_prompt
from app.agent.intent_classifier import extract_link_id
from app.agent.orchestrator import AgentReply, handle_error
from app.agent.payment_flow import parse_detail_fields
from app.schemas.intent import IntentType

logger = logging.getLogger(__name__)

MAX_TOOL_ROUNDS = 3
HISTORY_ENTRIES = 4

BALANCE_KEYWORDS = ("balance", "check my", "wallet")

TRACKING_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"(?:track|monitor|analytics?).*payment",
        r"payment.*(?:track|monitor|analytics?)",
        r"(?:payment|link).*(?:stats|statistics|metrics)",
        r"(?:show|get).*payment.*(?:data|analytics?|tracking)",
    )
]

LINK_INFO_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"(?:payment.*link.*info|link.*info|info.*link).*?\b([a-zA-Z0-9]{8})\b",
        r"(?:get|show|check).*(?:payment.*link|link).*?\b([a-zA-Z0-9]{8})\b",
        r"\b([a-zA-Z0-9]{8})\b.*(?:info|stats|details)",
    )
]

LINK_CREATE_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"create.*payment.*link.*for\s+(.+?)\s+\$?(\d+\.?\d*)\s+(usdc|usdt|dai)(?:\s+collect\s+(.+))?$",
        r"payment.*link.*?(?:for\s+)?(\S.*?)\s+\$?(\d+\.?\d*)\s+(usdc|usdt|dai)(?:\s+collect\s+(.+))?$",
        r"create.*link.*?(?:for\s+)?(\S.*?)\s+\$?(\d+\.?\d*)\s+(usdc|usdt|dai)(?:\s+collect\s+(.+))?$",
    )
]

AMOUNT_AND_TOKEN_RE = re.compile(r"\$?\d+\.?\d*\s+(usdc|usdt|dai)", re.IGNORECASE)


def _first_match(patterns, text: str):
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match
    return None


def collect_details(fields) -> dict:
    """'Email, phone' or ["Email", "phone"] -> {"email": "", "phone": ""}, the flow's schema."""
    if not fields:
        return {}
    if isinstance(fields, str):
        fields = [fields]
    return {name: "" for field in fields for name in parse_detail_fields(str(field))}


class LlmWalletAgent:
    def __init__(self, tools, memory, fallback, groq: Optional[GroqClient] = None):
        """
        Args:
            tools: WalletTools
            memory: ConversationMemory shared with the rule-based orchestrator
            fallback: AgentOrchestrator (also owns the payment-link flow)
            groq: GroqClient; defaults to the shared instance
        """
        self.tools = tools
        self.memory = memory
        self.fallback = fallback
        self.groq = groq or get_groq_client()

    async def process_message(self, text: str, user_id, chat_id=None, context: Optional[dict] = None) -> str:
        reply = await self.respond(text, user_id, chat_id, context)
        return reply.text

    async def respond(self, text: str, user_id, chat_id=None, context: Optional[dict] = None) -> AgentReply:
        user_id = str(user_id)
        chat_id = str(chat_id) if chat_id is not None else user_id

        if self.fallback.flow.is_active(user_id):
            return await self.fallback.respond(text, user_id, chat_id, context)

        history = self.memory.history(user_id, limit=HISTORY_ENTRIES)
        try:
            reply = await self._fast_path(text, user_id, chat_id)
            if reply is None:
                reply = await self._ask_llm(text, user_id, chat_id, history)
            if reply is None:
                logger.info(f"[LLM] user={user_id} falling back to rule-based agent")
                return await self.fallback.respond(text, user_id, chat_id, context)
        except Exception as e:
            logger.error(f"[LLM] user={user_id} failed: {e}", exc_info=True)
            reply = AgentReply(text=handle_error(None))

        self.memory.add(user_id, "user", text)
        self.memory.add(user_id, "assistant", reply.text)
        return reply

    # ==========================================================================
    # FAST PATHS
    # ==========================================================================

    async def _fast_path(self, text: str, user_id: str, chat_id: str) -> Optional[AgentReply]:
        lowered = text.lower()

        if any(keyword in lowered for keyword in BALANCE_KEYWORDS):
            result = await self.tools.check_balance(user_id)
            return AgentReply(text=result["message"], intent=IntentType.BALANCE_CHECK)

        link_id = extract_link_id(text)

        if link_id is None and _first_match(TRACKING_PATTERNS, text):
            result = await self.tools.track_payments(user_id, "30d")
            return AgentReply(text=result["message"], intent=IntentType.PAYMENT_LINK_STATS)

        if link_id is not None and _first_match(LINK_INFO_PATTERNS, text):
            result = await self.tools.get_payment_link_stats(link_id, user_id)
            return AgentReply(text=result["message"], intent=IntentType.PAYMENT_LINK_STATS)

        create = _first_match(LINK_CREATE_PATTERNS, text.strip())
        if create:
            name, amount, token, fields = create.groups()
            details = collect_details(fields)
            result = await self.tools.create_payment_link(
                user_id, chat_id, name.strip(), token.upper(), amount.strip(),
                details=details or None, source="agent",
            )
            data = result.get("data") or {}
            return AgentReply(text=result["message"], intent=IntentType.PAYMENT_LINK, qr_png=data.get("qrPng"))

        if ("payment link" in lowered or "create link" in lowered) and not AMOUNT_AND_TOKEN_RE.search(text):
            return AgentReply(text=PAYMENT_LINK_GUIDANCE, intent=IntentType.PAYMENT_LINK)

        return None

    # ==========================================================================
    # LLM TOOL CALLING
    # ==========================================================================

    async def _ask_llm(self, text: str, user_id: str, chat_id: str, history: List[dict]) -> Optional[AgentReply]:
        if not self.groq.is_available():
            return None

        messages = [{"role": "system", "content": build_system_prompt(user_id)}]
        messages += [{"role": entry["role"], "content": entry["content"]} for entry in history]
        messages.append({"role": "user", "content": text})

        qr_png = None
        last_tool_text = None
        for round_number in range(MAX_TOOL_ROUNDS):
            message = await self.groq.chat(messages, tools=TOOL_SCHEMAS)
            if message is None:
                return None

            tool_calls = getattr(message, "tool_calls", None) or []
            if not tool_calls:
                content = (message.content or "").strip()
                if not content:
                    return None
                return AgentReply(text=content, qr_png=qr_png)

            messages.append({
                "role": "assistant",
                "content": message.content or "",
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.function.name, "arguments": call.function.arguments},
                    }
                    for call in tool_calls
                ],
            })
            for call in tool_calls:
                result = await self._run_tool(call.function.name, call.function.arguments, user_id, chat_id)
                data = result.get("data")
                if isinstance(data, dict) and data.get("qrPng"):
                    qr_png = data["qrPng"]
                last_tool_text = result["message"]
                messages.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": json.dumps({
                        "success": result["success"],
                        "error": result.get("error"),
                        "result": result["message"],
                    }),
                })
            logger.info(f"[LLM] user={user_id} tool round {round_number + 1}: {[c.function.name for c in tool_calls]}")

        # Out of rounds: answer with the last real tool output rather than nothing
        return AgentReply(text=last_tool_text, qr_png=qr_png) if last_tool_text else None

    async def _run_tool(self, name: str, raw_arguments: str, user_id: str, chat_id: str) -> dict:
        try:
            args = json.loads(raw_arguments or "{}")
        except json.JSONDecodeError:
            args = {}

        if name == "check_balance":
            return await self.tools.check_balance(user_id, tokens=args.get("tokens"))
        if name == "create_payment_link":
            details = collect_details(args.get("details"))
            return await self.tools.create_payment_link(
                user_id, chat_id, str(args.get("name", "")), str(args.get("token", "")).upper(),
                str(args.get("amount", "")), details=details or None, source="agent",
            )
        if name == "get_payment_link_info":
            return await self.tools.get_payment_link_stats(str(args.get("link_id", "")), user_id)
        if name == "track_payments":
            return await self.tools.track_payments(
                user_id, args.get("timeframe") or "30d",
                link_id=args.get("link_id"), link_name=args.get("link_name"),
            )
        logger.warning(f"[LLM] model requested unknown tool {name!r}")
        return {"success": False, "error": f"Unknown tool {name}", "data": None, "message": f"❌ Unknown tool {name}"}
