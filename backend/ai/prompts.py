"""
System prompt and tool schemas for the Groq-backed wallet agent.

================================================================================
CRITICAL: THE LLM NEVER PRODUCES FINANCIAL DATA
================================================================================

Balances, links and statistics only ever come from tool results. The model
picks a tool and phrases the answer; it never invents numbers, addresses or
link ids. Transfers are not exposed as a tool: moving funds goes through the
/send command with an explicit confirmation button.

================================================================================
"""

SYSTEM_PROMPT = """You are a crypto wallet assistant on the Mantle network. ALWAYS use the provided tools for user requests. Be very brief.

IMPORTANT:
- For balance checks: ALWAYS use the check_balance tool
- For payment links: ALWAYS use the create_payment_link tool
- For payment link info: ALWAYS use the get_payment_link_info tool with the linkId
- For payment tracking: ALWAYS use the track_payments tool for analytics
- For transfers: Guide users to the /send command
- NEVER generate fake data - only use tool results

Keep responses under 30 words. Use tools first, then respond with results.

User ID: {telegram_user_id}"""


TOOL_SCHEMAS = [
    {
        "type": "function",
        "function": {
            "name": "check_balance",
            "description": "Get the user's wallet balances (MNT and stablecoins).",
            "parameters": {
                "type": "object",
                "properties": {
                    "tokens": {
                        "type": "array",
                        "items": {"type": "string", "enum": ["USDC", "USDT", "DAI"]},
                        "description": "Only these tokens. Omit for all balances.",
                    },
                },
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "create_payment_link",
            "description": "Create a shareable payment link that collects a fixed amount of a stablecoin.",
            "parameters": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Title shown to payers (max 100 chars)"},
                    "token": {"type": "string", "enum": ["USDC", "USDT", "DAI"]},
                    "amount": {"type": "string", "description": "Positive decimal amount, e.g. \"25.50\""},
                    "details": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Fields to collect from payers, e.g. [\"email\", \"phone\"]",
                    },
                },
                "required": ["name", "token", "amount"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_payment_link_info",
            "description": "Statistics for one of the user's payment links.",
            "parameters": {
                "type": "object",
                "properties": {
                    "link_id": {"type": "string", "description": "8-character payment link id"},
                },
                "required": ["link_id"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "track_payments",
            "description": "Payment analytics across the user's payment links.",
            "parameters": {
                "type": "object",
                "properties": {
                    "timeframe": {"type": "string", "enum": ["24h", "7d", "30d", "90d", "all"]},
                    "link_id": {"type": "string"},
                    "link_name": {"type": "string", "description": "Case-insensitive name filter"},
                },
            },
        },
    },
]


PAYMENT_LINK_GUIDANCE = """To create a payment link, I need:
• Name/title for the payment
• Token (USDC, USDT, or DAI)
• Amount
• Payment details to collect from payers (optional)

Example: "Create payment link for Coffee $5 USDC collect email,phone"
Or: "Create payment link for Service $10 USDT collect name,address,notes\""""


def build_system_prompt(telegram_user_id: str) -> str:
    return SYSTEM_PROMPT.format(telegram_user_id=telegram_user_id)
