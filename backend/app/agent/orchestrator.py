"""
Agent Orchestrator - rule-based entry point for free-text messages.

Pipeline per message:
1. Append the user message to memory
2. Active payment-link flow? -> state machine step handler (no classification)
3. Otherwise classify intent and dispatch to the matching tool
4. Append the reply to memory and return it

Every exception is turned into an intent-specific apology with numbered
suggestions. Raw error text never reaches the transport.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from app.agent.intent_classifier import classify_intent, has_full_payment_link, has_full_transfer
from app.agent.payment_flow import FlowReply
from app.schemas.intent import ClassifiedIntent, IntentType

logger = logging.getLogger(__name__)


HELP_TEXT = (
    "🤖 *Obverse Wallet Help*\n\n"
    "*Available Commands:*\n\n"
    "💰 /balance - Check your wallet balance\n"
    "📊 /transactions - View transaction history\n"
    "💸 /send - Send tokens to another wallet\n"
    "🔗 /payment - Create a payment link for receiving payments\n"
    "📈 /linkstats [linkId] - View payment link statistics\n"
    "👤 /wallet - Show wallet information\n"
    "❌ /cancel - Cancel the current operation\n"
    "❓ /help - Show this help message\n\n"
    "*Natural Language:*\n"
    "You can also talk to me naturally! Try saying:\n"
    "• \"Show my balance\"\n"
    "• \"Send 100 USDC to 0x...\"\n"
    "• \"Create payment link for Coffee $5 USDC\"\n"
    "• \"Show my payment link stats\""
)

GREETING_TEXT = (
    "👋 Hello! I'm your Obverse wallet assistant on Mantle.\n\n"
    "I can check your balance, send tokens and create payment links.\n"
    "What would you like to do?"
)

UNKNOWN_TEXT = (
    "🤔 I'm not sure what you mean.\n\n"
    "Try one of these:\n"
    "💰 \"What's my balance?\"\n"
    "💸 \"Send 10 USDC to 0x...\"\n"
    "🔗 \"Create payment link\"\n"
    "📈 \"Show my payment link stats\"\n\n"
    "Or type /help to see all commands."
)

SEND_USAGE_TEXT = (
    "💸 *Send Tokens*\n\n"
    "Usage: `/send <amount> <token> <address> [memo]`\n\n"
    "Example: `/send 10 USDC 0x742d35Cc6634C0532925a3b844Bc454e4438f44e`\n\n"
    "Supported tokens: MNT, USDC, USDT, DAI"
)

ERROR_CONTEXTS: Dict[IntentType, dict] = {
    IntentType.BALANCE_CHECK: {
        "message": "checking your balance",
        "suggestions": ["Try /balance command", "Check if wallet is set up with /wallet", "Contact support"],
    },
    IntentType.SEND_TOKENS: {
        "message": "processing your transfer",
        "suggestions": ["Use /send command for secure transfers", "Check your balance first", "Verify recipient address"],
    },
    IntentType.PAYMENT_LINK: {
        "message": "creating your payment link",
        "suggestions": ["Try /payment command", "Check your wallet setup", "Try again in a moment"],
    },
}
DEFAULT_ERROR_CONTEXT = {
    "message": "processing your request",
    "suggestions": ["Try using specific commands", "Type /help for assistance"],
}


def handle_error(intent: Optional[IntentType]) -> str:
    """Apology for a failure while serving `intent`, with numbered suggestions."""
    ctx = ERROR_CONTEXTS.get(intent, DEFAULT_ERROR_CONTEXT)
    suggestions = "\n".join(f"{i}️⃣ {s}" for i, s in enumerate(ctx["suggestions"], start=1))
    return (
        f"❌ Something went wrong while {ctx['message']}.\n\n"
        f"🔧 **Try these solutions:**\n{suggestions}\n\n"
        "💡 If the problem persists, the issue might be temporary. Please try again in a few minutes."
    )


def map_error_to_message(error: Exception) -> str:
    """Transport-level mapping for failures that escape an agent."""
    text = str(error).lower()
    if "wallet" in text:
        return "❌ I couldn't access your wallet information. Please make sure you've set up your wallet with /start command."
    if "network" in text or "connection" in text:
        return "🌐 I'm having network connectivity issues. Please try again in a moment, or use specific commands like /balance or /payment."
    if "timeout" in text:
        return "⏱️ The request took too long to process. Please try again with a specific command like /balance or /payment."
    return (
        "❌ I'm experiencing some technical difficulties. Please try using specific commands:\n\n"
        "💰 /balance - Check your wallet\n"
        "🔗 /payment - Create payment link\n"
        "💸 /send - Send tokens\n"
        "📊 /transactions - View history\n\n"
        "🔧 If issues persist, please contact support."
    )


@dataclass
class AgentReply:
    text: str
    intent: Optional[IntentType] = None
    buttons: List[List[dict]] = field(default_factory=list)
    qr_png: Optional[bytes] = None
    flow_step: Optional[str] = None

    @classmethod
    def from_flow(cls, reply: FlowReply) -> "AgentReply":
        return cls(
            text=reply.text,
            intent=IntentType.PAYMENT_LINK,
            buttons=reply.buttons,
            qr_png=reply.qr_png,
            flow_step=reply.step,
        )


class AgentOrchestrator:
    def __init__(self, tools, flow, memory):
        self.tools = tools
        self.flow = flow
        self.memory = memory

    async def process_message(self, text: str, user_id, chat_id=None, context: Optional[dict] = None) -> str:
        reply = await self.respond(text, user_id, chat_id, context)
        return reply.text

    async def respond(self, text: str, user_id, chat_id=None, context: Optional[dict] = None) -> AgentReply:
        """Same pipeline as process_message, keeping buttons and QR image for rich transports."""
        user_id = str(user_id)
        chat_id = str(chat_id) if chat_id is not None else user_id
        source = (context or {}).get("source", "telegram")
        self.memory.add(user_id, "user", text)

        intent: Optional[IntentType] = None
        try:
            if self.flow.is_active(user_id):
                reply = AgentReply.from_flow(await self.flow.handle(user_id, text))
            else:
                classified = classify_intent(text, self.memory.history(user_id))
                intent = classified.intent
                reply = await self._dispatch(classified, user_id, chat_id, source)
        except Exception as e:
            logger.error(f"[Agent] user={user_id} intent={intent} failed: {e}", exc_info=True)
            reply = AgentReply(text=handle_error(intent), intent=intent)

        self.memory.add(user_id, "assistant", reply.text)
        return reply

    async def _dispatch(self, classified: ClassifiedIntent, user_id: str, chat_id: str, source: str) -> AgentReply:
        intent = classified.intent
        entities = classified.entities

        if intent == IntentType.BALANCE_CHECK:
            tokens = [entities["token"]] if entities.get("token") else None
            result = await self.tools.check_balance(user_id, tokens=tokens)
            return AgentReply(text=result["message"], intent=intent)

        if intent == IntentType.SEND_TOKENS:
            if not has_full_transfer(entities):
                return AgentReply(text=SEND_USAGE_TEXT, intent=intent)
            result = await self.tools.send_tokens(
                user_id, entities["address"], entities["amount"], entities["token"]
            )
            return AgentReply(text=result["message"], intent=intent)

        if intent == IntentType.PAYMENT_LINK:
            if has_full_payment_link(entities):
                details = {field_name: "" for field_name in entities.get("details", [])}
                result = await self.tools.create_payment_link(
                    user_id, chat_id, entities["name"], entities["token"], entities["amount"],
                    details=details or None, source=source,
                )
                data = result.get("data") or {}
                return AgentReply(text=result["message"], intent=intent, qr_png=data.get("qrPng"))
            return AgentReply.from_flow(self.flow.start(user_id, chat_id, source=source))

        if intent == IntentType.PAYMENT_LINK_STATS:
            if entities.get("link_id"):
                result = await self.tools.get_payment_link_stats(entities["link_id"], user_id)
            else:
                result = await self.tools.get_all_payment_links_stats(user_id)
            return AgentReply(text=result["message"], intent=intent)

        if intent == IntentType.HELP:
            return AgentReply(text=HELP_TEXT, intent=intent)
        if intent == IntentType.GREETING:
            return AgentReply(text=GREETING_TEXT, intent=intent)
        return AgentReply(text=UNKNOWN_TEXT, intent=IntentType.UNKNOWN)

    # ==========================================================================
    # DIRECT TOOL OPERATIONS (commands and HTTP routes bypass classification)
    # ==========================================================================

    async def check_balance(self, user_id, tokens: Optional[List[str]] = None) -> str:
        result = await self.tools.check_balance(str(user_id), tokens=tokens)
        return result["message"]

    async def create_payment_link(self, user_id, chat_id, params: dict) -> str:
        result = await self.tools.create_payment_link(
            str(user_id), chat_id, params["name"], params["token"], params["amount"],
            details=params.get("details"), source=params.get("source", "telegram"),
        )
        return result["message"]

    async def send_tokens(self, user_id, to_address: str, amount, token: str, memo: Optional[str] = None) -> str:
        result = await self.tools.send_tokens(str(user_id), to_address, amount, token, memo)
        return result["message"]

    async def get_payment_link_stats(self, link_id: str, user_id) -> str:
        result = await self.tools.get_payment_link_stats(link_id, str(user_id))
        return result["message"]

    async def get_all_payment_links_stats(self, user_id) -> str:
        result = await self.tools.get_all_payment_links_stats(str(user_id))
        return result["message"]

    async def track_payments(self, user_id, timeframe: str = "30d", link_id: Optional[str] = None,
                             link_name: Optional[str] = None) -> str:
        result = await self.tools.track_payments(str(user_id), timeframe, link_id=link_id, link_name=link_name)
        return result["message"]
