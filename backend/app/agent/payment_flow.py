"""
Payment-link creation flow: the single state machine behind every adapter.

    name -> token -> amount -> details -> confirm -> (link created)

Strictly forward. "cancel" / "quit" / "exit" removes the session from any
step. Only the confirm step has a persistent side effect. Any exception while
handling a step discards the session and asks the user to start over.

Telegram handlers, the MCP service and the orchestrator all drive this class;
none of them keep their own copy of the step rules.
"""
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from app.core.tokens import PAYMENT_LINK_TOKENS, token_emoji
from app.services.transfer_service import parse_amount

logger = logging.getLogger(__name__)


# ==============================================================================
# FLOW STATES
# ==============================================================================

class FlowStep:
    NAME = "name"
    TOKEN = "token"
    AMOUNT = "amount"
    DETAILS = "details"
    CONFIRM = "confirm"


STEP_NUMBERS = {FlowStep.NAME: 1, FlowStep.TOKEN: 2, FlowStep.AMOUNT: 3, FlowStep.DETAILS: 4}

CANCEL_WORDS = {"cancel", "quit", "exit", "/cancel"}
DONE_WORDS = {"done", "finish", "complete"}
CONFIRM_YES = {"yes", "create", "confirm"}
CONFIRM_NO = {"no", "cancel"}

MAX_NAME_LENGTH = 100


@dataclass
class FlowReply:
    text: str
    step: Optional[str] = None  # next step; None once the flow has ended
    buttons: List[List[dict]] = field(default_factory=list)
    completed: bool = False
    cancelled: bool = False
    error: bool = False
    link: Optional[dict] = None
    qr_png: Optional[bytes] = None

    @property
    def active(self) -> bool:
        return self.step is not None


LinkCreator = Callable[..., Awaitable[dict]]


def _button(text: str, value: str, callback: str) -> dict:
    return {"text": text, "value": value, "callback": callback}


TOKEN_BUTTONS = [[
    _button(f"{token_emoji(t)} {t}", t, f"payment_token_{t}") for t in PAYMENT_LINK_TOKENS
]]
DONE_BUTTONS = [[_button("✅ Done", "done", "payment_done")]]
CONFIRM_BUTTONS = [[
    _button("✅ Yes, create", "yes", "payment_confirm_yes"),
    _button("❌ No, cancel", "no", "payment_confirm_no"),
]]


def parse_detail_fields(text: str) -> List[str]:
    """
    "Email, Phone" -> ["email", "phone"]; "a, b, , c" -> ["a", "b", "c"].
    Fields are trimmed and lowercased; empty fragments are dropped.
    """
    parts = text.split(",") if "," in text else [text]
    return [part.strip().lower() for part in parts if part.strip()]


def new_state(chat_id=None, source: str = "telegram") -> dict:
    return {
        "step": FlowStep.NAME,
        "name": None,
        "token": None,
        "amount": None,
        "details": {},
        "chat_id": None if chat_id is None else str(chat_id),
        "source": source,
    }


class PaymentLinkFlow:
    def __init__(self, store, create_link: LinkCreator):
        """
        Args:
            store: session store (get / set / delete keyed by user id)
            create_link: async callable(telegram_user_id, chat_id, name, token,
                amount, details, source) returning a tool result dict
        """
        self.store = store
        self.create_link = create_link

    # ==========================================================================
    # SESSION LIFECYCLE
    # ==========================================================================

    def is_active(self, user_id) -> bool:
        return self.store.get(user_id) is not None

    def current_step(self, user_id) -> Optional[str]:
        state = self.store.get(user_id)
        return state["step"] if state else None

    def start(self, user_id, chat_id=None, source: str = "telegram") -> FlowReply:
        """Begin (or restart) the flow. Any previous session for the user is replaced."""
        self.store.set(user_id, new_state(chat_id, source))
        logger.info(f"[Flow] user={user_id} started payment link flow (source={source})")
        return FlowReply(
            text=(
                "💳 *Create Payment Link*\n\n"
                "Step 1 of 4: What's the name of this payment?\n"
                "(e.g. \"Coffee\", \"Consulting session\")\n\n"
                "Type *cancel* at any time to stop."
            ),
            step=FlowStep.NAME,
        )

    def cancel(self, user_id) -> FlowReply:
        existed = self.store.delete(user_id)
        if existed:
            logger.info(f"[Flow] user={user_id} cancelled payment link flow")
            return FlowReply(text="❌ Payment link creation cancelled.", cancelled=True)
        return FlowReply(text="ℹ️ There is no payment link creation in progress.")

    async def handle(self, user_id, text: str) -> FlowReply:
        state = self.store.get(user_id)
        if state is None:
            return FlowReply(text="ℹ️ No payment link creation in progress. Use /payment to start.")

        text = (text or "").strip()
        if text.lower() in CANCEL_WORDS:
            return self.cancel(user_id)

        handlers = {
            FlowStep.NAME: self._on_name,
            FlowStep.TOKEN: self._on_token,
            FlowStep.AMOUNT: self._on_amount,
            FlowStep.DETAILS: self._on_details,
            FlowStep.CONFIRM: self._on_confirm,
        }
        try:
            handler = handlers[state["step"]]
            return await handler(user_id, state, text)
        except Exception as e:
            logger.error(f"[Flow] user={user_id} step={state.get('step')} failed: {e}", exc_info=True)
            self.store.delete(user_id)
            return FlowReply(
                text="❌ An error occurred while creating your payment link. Please start over with /payment.",
                error=True,
            )

    # ==========================================================================
    # STEP HANDLERS
    # ==========================================================================

    async def _on_name(self, user_id, state: dict, text: str) -> FlowReply:
        if not text or len(text) > MAX_NAME_LENGTH:
            return FlowReply(
                text=f"❌ Please enter a name between 1 and {MAX_NAME_LENGTH} characters.",
                step=FlowStep.NAME,
            )
        state["name"] = text
        state["step"] = FlowStep.TOKEN
        self.store.set(user_id, state)
        return FlowReply(
            text=f"✅ Name: {text}\n\nStep 2 of 4: Which token should payers use?",
            step=FlowStep.TOKEN,
            buttons=TOKEN_BUTTONS,
        )

    async def _on_token(self, user_id, state: dict, text: str) -> FlowReply:
        token = text.upper()
        if token not in PAYMENT_LINK_TOKENS:
            return FlowReply(
                text=f"❌ Invalid token. Please choose {', '.join(PAYMENT_LINK_TOKENS[:-1])}, or {PAYMENT_LINK_TOKENS[-1]}.",
                step=FlowStep.TOKEN,
                buttons=TOKEN_BUTTONS,
            )
        state["token"] = token
        state["step"] = FlowStep.AMOUNT
        self.store.set(user_id, state)
        return FlowReply(
            text=f"✅ Token: {token_emoji(token)} {token}\n\nStep 3 of 4: How much {token} should each payer send?",
            step=FlowStep.AMOUNT,
        )

    async def _on_amount(self, user_id, state: dict, text: str) -> FlowReply:
        amount = parse_amount(text.lstrip("$"))
        if amount is None:
            return FlowReply(
                text="❌ Invalid amount. Please enter a positive number (e.g. 10 or 25.50).",
                step=FlowStep.AMOUNT,
            )
        state["amount"] = format(amount, "f")
        state["details"] = {}
        state["step"] = FlowStep.DETAILS
        self.store.set(user_id, state)
        return FlowReply(
            text=(
                f"✅ Amount: {state['amount']} {state['token']}\n\n"
                "Step 4 of 4: What details should payers provide?\n"
                "Send field names one at a time or comma-separated (e.g. \"email, phone\").\n"
                "Send *done* when finished."
            ),
            step=FlowStep.DETAILS,
            buttons=DONE_BUTTONS,
        )

    async def _on_details(self, user_id, state: dict, text: str) -> FlowReply:
        if text.lower() in DONE_WORDS:
            state["step"] = FlowStep.CONFIRM
            self.store.set(user_id, state)
            return FlowReply(text=self.summary(state), step=FlowStep.CONFIRM, buttons=CONFIRM_BUTTONS)

        fields = parse_detail_fields(text)
        if not fields:
            return FlowReply(
                text="❌ Please send a field name (e.g. \"email\") or *done* to continue.",
                step=FlowStep.DETAILS,
                buttons=DONE_BUTTONS,
            )

        details: Dict[str, str] = state.get("details") or {}
        added = []
        for name in fields:
            if name not in details:
                details[name] = ""
                added.append(name)
        state["details"] = details
        self.store.set(user_id, state)

        added_text = ", ".join(added) if added else "nothing new"
        return FlowReply(
            text=(
                f"✅ Added: {added_text}\n"
                f"📋 Collecting: {', '.join(details)}\n\n"
                "Add more fields or send *done*."
            ),
            step=FlowStep.DETAILS,
            buttons=DONE_BUTTONS,
        )

    async def _on_confirm(self, user_id, state: dict, text: str) -> FlowReply:
        answer = text.lower()
        if answer in CONFIRM_NO:
            return self.cancel(user_id)
        if answer not in CONFIRM_YES:
            return FlowReply(
                text="Please reply *yes* to create the payment link or *no* to cancel.",
                step=FlowStep.CONFIRM,
                buttons=CONFIRM_BUTTONS,
            )

        result = await self.create_link(
            user_id,
            state.get("chat_id"),
            state["name"],
            state["token"],
            state["amount"],
            dict(state.get("details") or {}),
            state.get("source", "telegram"),
        )
        # Session ends either way: a failed creation must be restarted from scratch
        self.store.delete(user_id)
        if not result.get("success"):
            logger.warning(f"[Flow] user={user_id} link creation failed: {result.get('error')}")
            return FlowReply(text=f"❌ {result.get('error')}", error=True)

        data = dict(result["data"])
        qr_png = data.pop("qrPng", None)
        logger.info(f"[Flow] user={user_id} created link {data.get('linkId')}")
        return FlowReply(text=result["message"], completed=True, link=data, qr_png=qr_png)

    # ==========================================================================
    # PROMPTS
    # ==========================================================================

    @staticmethod
    def summary(state: dict) -> str:
        details = state.get("details") or {}
        return (
            "📋 *Confirm Payment Link*\n\n"
            f"🔗 Name: {state['name']}\n"
            f"{token_emoji(state['token'])} Amount: {state['amount']} {state['token']}\n"
            f"📝 Details: {', '.join(details) if details else 'None'}\n\n"
            "Create this payment link? (yes/no)"
        )

    def prompt_for(self, user_id) -> Optional[FlowReply]:
        """Re-render the prompt for the user's current step (used when resuming)."""
        state = self.store.get(user_id)
        if not state:
            return None
        step = state["step"]
        if step == FlowStep.CONFIRM:
            return FlowReply(text=self.summary(state), step=step, buttons=CONFIRM_BUTTONS)
        prompts = {
            FlowStep.NAME: ("What's the name of this payment?", []),
            FlowStep.TOKEN: ("Which token should payers use?", TOKEN_BUTTONS),
            FlowStep.AMOUNT: (f"How much {state.get('token')} should each payer send?", []),
            FlowStep.DETAILS: ("What details should payers provide? Send *done* when finished.", DONE_BUTTONS),
        }
        question, buttons = prompts[step]
        return FlowReply(text=f"Step {STEP_NUMBERS[step]} of 4: {question}", step=step, buttons=buttons)
