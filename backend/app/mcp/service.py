"""
MCP tool service: the wallet exposed as MCP-style tools over HTTP.

A thin adapter. Payment-link creation runs on the shared PaymentLinkFlow
(source "mcp"), balances and stats come from the shared WalletTools. Results
use the MCP content shape: text blocks, base64 PNG image blocks, and button
rows for interactive steps.
"""
import base64
import logging
from typing import List, Optional

from app.agent.payment_flow import CANCEL_WORDS, FlowReply
from app.schemas.mcp import McpButton, McpContent, McpTool, McpToolResult

logger = logging.getLogger(__name__)

USER_ID_SCHEMA = {"type": "string", "description": "The telegram user ID"}

TOOLS = [
    McpTool(
        name="get_wallet_balance",
        description="Get the wallet balance for a user including MNT and stablecoin balances",
        inputSchema={"type": "object", "properties": {"userId": USER_ID_SCHEMA}, "required": ["userId"]},
    ),
    McpTool(
        name="create_payment_link",
        description="Start the interactive payment link creation process (like /payment command)",
        inputSchema={
            "type": "object",
            "properties": {"userId": {"type": "string", "description": "The telegram user ID of the payment link creator"}},
            "required": ["userId"],
        },
    ),
    McpTool(
        name="cancel_payment_creation",
        description="Cancel the current payment link creation process",
        inputSchema={"type": "object", "properties": {"userId": USER_ID_SCHEMA}, "required": ["userId"]},
    ),
    McpTool(
        name="get_payment_link_stats",
        description="Statistics for one payment link, or an overview of all of the user's links",
        inputSchema={
            "type": "object",
            "properties": {
                "userId": USER_ID_SCHEMA,
                "linkId": {"type": "string", "description": "8-character payment link id (optional)"},
            },
            "required": ["userId"],
        },
    ),
]

BALANCE_KEYWORDS = ["balance", "wallet", "money", "funds", "tokens", "mnt", "usdc", "usdt", "dai"]
PAYMENT_KEYWORDS = ["payment", "link", "create payment", "payment link", "receive money", "get paid"]


def text_result(text: str, **kwargs) -> McpToolResult:
    return McpToolResult(content=[McpContent(type="text", text=text)], **kwargs)


def _mcp_buttons(rows: List[List[dict]]) -> Optional[List[List[McpButton]]]:
    if not rows:
        return None
    return [[McpButton(text=b["text"], data=b["value"]) for b in row] for row in rows]


class McpToolService:
    def __init__(self, tools, flow):
        self.tools = tools
        self.flow = flow

    def list_tools(self) -> List[McpTool]:
        return list(TOOLS)

    async def call_tool(self, name: str, arguments: Optional[dict] = None,
                        telegram_user_id: Optional[str] = None) -> McpToolResult:
        arguments = arguments or {}
        user_id = str(telegram_user_id or arguments.get("userId") or "")
        logger.info(f"[MCP] call_tool {name} user={user_id}")

        if not user_id and name in {t.name for t in TOOLS}:
            return text_result("❌ userId is required.")

        if name == "get_wallet_balance":
            return await self._wallet_balance(user_id)
        if name == "create_payment_link":
            return await self._start_payment_link(user_id)
        if name == "cancel_payment_creation":
            return self._cancel(user_id)
        if name == "get_payment_link_stats":
            link_id = arguments.get("linkId")
            if link_id:
                result = await self.tools.get_payment_link_stats(link_id, user_id)
            else:
                result = await self.tools.get_all_payment_links_stats(user_id)
            return text_result(result["message"])
        return text_result(f"Unknown tool: {name}")

    async def continue_interactive_flow(self, user_id, user_input: str) -> McpToolResult:
        user_id = str(user_id)
        if not self.flow.is_active(user_id):
            return text_result("❌ No active payment creation session. Please start with create_payment_link.")
        # The flow itself discards its session on any step failure
        reply = await self.flow.handle(user_id, user_input)
        return self._from_flow(user_id, reply)

    async def process_natural_language(self, user_id, message: str) -> str:
        user_id = str(user_id)
        lowered = (message or "").lower().strip()

        if lowered in CANCEL_WORDS and self.flow.is_active(user_id):
            logger.info(f"[MCP] Cancelling payment creation flow for user {user_id}")
            return self._cancel(user_id).text

        if self.flow.is_active(user_id):
            logger.info(f"[MCP] Continuing payment creation flow for user {user_id}")
            return (await self.continue_interactive_flow(user_id, message)).text

        if any(keyword in lowered for keyword in BALANCE_KEYWORDS):
            return (await self.call_tool("get_wallet_balance", {"userId": user_id})).text

        if any(keyword in lowered for keyword in PAYMENT_KEYWORDS):
            return (await self.call_tool("create_payment_link", {"userId": user_id})).text

        return (
            f"🤖 I understand you want to: \"{message}\"\n\n"
            "I can help you with:\n"
            "• Check your wallet balance\n"
            "• View transaction history\n"
            "• Create payment links\n"
            "• Send payments\n\n"
            "Try saying: \"show my balance\", \"create payment link\" or use commands like /balance"
        )

    # ==========================================================================
    # TOOL IMPLEMENTATIONS
    # ==========================================================================

    async def _wallet_balance(self, user_id: str) -> McpToolResult:
        result = await self.tools.check_balance(user_id)
        if result["success"]:
            return text_result(result["message"])
        if result.get("errorKind") == "NotFound":
            return text_result("❌ No wallet found for this user. User needs to create a wallet first using /start.")
        return text_result(result["message"])

    async def _start_payment_link(self, user_id: str) -> McpToolResult:
        wallet = await self.tools.get_wallet(user_id)
        if not wallet["success"]:
            return text_result("❌ No wallet found for this user. User needs to create a wallet first using /start.")
        reply = self.flow.start(user_id, chat_id=user_id, source="mcp")
        result = self._from_flow(user_id, reply)
        result.buttons = [[McpButton(text="❌ Cancel", data="cancel")]]
        return result

    def _cancel(self, user_id: str) -> McpToolResult:
        if not self.flow.is_active(user_id):
            return text_result("❌ No active payment creation session to cancel.")
        self.flow.cancel(user_id)
        return text_result(
            "❌ Payment link creation cancelled. You can start a new one anytime by saying \"create payment link\"."
        )

    def _from_flow(self, user_id: str, reply: FlowReply) -> McpToolResult:
        content = [McpContent(type="text", text=reply.text)]
        if reply.qr_png:
            content.append(McpContent(
                type="image",
                data=base64.b64encode(reply.qr_png).decode("ascii"),
                mimeType="image/png",
            ))

        buttons = _mcp_buttons(reply.buttons)
        if reply.completed and reply.link:
            link_id = reply.link["linkId"]
            buttons = [
                [McpButton(text="🌐 Open in Browser", url=reply.link["linkUrl"]),
                 McpButton(text="📋 Copy Link", data=f"copy_link_{link_id}")],
                [McpButton(text="📊 View Details", data=f"view_payment_{link_id}"),
                 McpButton(text="🔗 Create Another", data="create_payment")],
            ]

        return McpToolResult(
            content=content,
            isInteractive=reply.active,
            nextStep=reply.step,
            sessionId=user_id if reply.active else None,
            buttons=buttons,
        )
