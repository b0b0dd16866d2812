"""
Fixed token tables for the Mantle network.

No dynamic registry: addresses, decimals, minimums and gas reserves are
hard-coded per network and shared by the balance and transfer paths.
"""
from decimal import Decimal

NETWORK = "mantle"
CHAIN_ID = 5000

GAS_TOKEN = "MNT"

# ERC-20 contracts on Mantle mainnet
TOKEN_ADDRESSES = {
    "USDC": "0x09Bc4E0D864854c6aFB6eB9A9cdF58ac190D0dF9",
    "USDT": "0x201EBa5CC46D216Ce6DC03F6a759e8E766e956Ae",
    "DAI": "0xdA10009cBd5D07dd0CeCc66161FC93D7c9000da1",
}

# Fallback when a contract's decimals() call fails, and the only source at execution time
TOKEN_DECIMALS = {
    "USDC": 6,
    "USDT": 6,
    "DAI": 18,
    "MNT": 18,
}

STABLECOINS = ("USDC", "USDT", "DAI")
TRANSFERABLE_TOKENS = ("MNT",) + STABLECOINS
PAYMENT_LINK_TOKENS = STABLECOINS

MIN_TRANSFER = {
    "MNT": Decimal("0.001"),
    "USDC": Decimal("0.01"),
    "USDT": Decimal("0.01"),
    "DAI": Decimal("0.01"),
}

# MNT left behind after sending MNT
GAS_RESERVE = Decimal("0.01")
# MNT required to pay for an ERC-20 transfer
MIN_GAS_FOR_FEES = Decimal("0.001")

TOKEN_EMOJIS = {
    "USDC": "🔵",
    "USDT": "🟢",
    "DAI": "🟡",
    "MNT": "🔷",
}


def token_emoji(symbol: str) -> str:
    return TOKEN_EMOJIS.get(symbol.upper(), "🪙")
