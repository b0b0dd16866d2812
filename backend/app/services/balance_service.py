"""
Balance Aggregator.

Reads native, MNT and ERC-20 balances for one address in parallel. Pure read,
no state. One failing token never aborts the aggregate: it is reported as
UNAVAILABLE, distinct from a real zero.
"""
import asyncio
import logging
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import WalletError, WalletErrorKind
from app.core.tokens import GAS_TOKEN, STABLECOINS, TOKEN_ADDRESSES, TOKEN_DECIMALS, token_emoji
from app.schemas.wallet import BalanceStatus, TokenBalance, WalletBalances
from app.services import wallet_directory

logger = logging.getLogger(__name__)


def from_base_units(raw: int, decimals: int) -> Decimal:
    return Decimal(int(raw)).scaleb(-decimals)


class BalanceAggregator:
    def __init__(self, chain):
        self.chain = chain

    async def _token_decimals(self, symbol: str, token_address: str) -> int:
        """Contract decimals(), falling back to the static table when the call fails."""
        try:
            return await self.chain.get_token_decimals(token_address)
        except Exception as e:
            logger.debug(f"decimals() failed for {symbol}, using table value: {e}")
            return TOKEN_DECIMALS[symbol]

    async def fetch_balance(self, symbol: str, address: str) -> Decimal:
        """
        Live balance of one token. Raises on read failure; callers that
        need graceful degradation use get_balances().
        """
        symbol = symbol.upper()
        if symbol == GAS_TOKEN:
            raw = await self.chain.get_mnt_balance(address)
            return from_base_units(raw, TOKEN_DECIMALS[GAS_TOKEN])

        token_address = TOKEN_ADDRESSES[symbol]
        raw = await self.chain.get_token_balance(token_address, address)
        decimals = await self._token_decimals(symbol, token_address)
        return from_base_units(raw, decimals)

    async def _safe_token(self, symbol: str, address: str) -> TokenBalance:
        if symbol != GAS_TOKEN and symbol not in TOKEN_ADDRESSES:
            return TokenBalance(symbol=symbol, status=BalanceStatus.NOT_FOUND)
        try:
            amount = await self.fetch_balance(symbol, address)
        except Exception as e:
            logger.warning(f"Balance read failed for {symbol} at {address}: {e}")
            return TokenBalance(symbol=symbol, status=BalanceStatus.UNAVAILABLE)
        return TokenBalance(
            symbol=symbol,
            status=BalanceStatus.OK,
            amount=amount,
            decimals=TOKEN_DECIMALS.get(symbol),
            contract_address=TOKEN_ADDRESSES.get(symbol),
        )

    async def _safe_native(self, address: str) -> TokenBalance:
        try:
            raw = await self.chain.get_native_balance(address)
        except Exception as e:
            logger.warning(f"Native balance read failed at {address}: {e}")
            return TokenBalance(symbol="native", status=BalanceStatus.UNAVAILABLE)
        return TokenBalance(
            symbol="native",
            status=BalanceStatus.OK,
            amount=from_base_units(raw, TOKEN_DECIMALS[GAS_TOKEN]),
            decimals=TOKEN_DECIMALS[GAS_TOKEN],
        )

    async def get_balances(self, address: str, tokens: Optional[Iterable[str]] = None) -> WalletBalances:
        """
        All balances for `address`, fetched concurrently.

        `tokens` filters the symbol set (case-insensitive); the native line
        is only included when no filter is given.
        """
        if tokens:
            symbols = []
            for t in tokens:
                if t.upper() not in symbols:
                    symbols.append(t.upper())
        else:
            symbols = [GAS_TOKEN] + list(STABLECOINS)

        jobs = [self._safe_token(symbol, address) for symbol in symbols]
        if not tokens:
            jobs.append(self._safe_native(address))

        results = await asyncio.gather(*jobs)

        native = results[-1] if not tokens else None
        token_results = results[:-1] if not tokens else results
        return WalletBalances(
            address=address,
            native=native,
            tokens={balance.symbol: balance for balance in token_results},
        )

    async def check_balance(
        self,
        db: Session,
        telegram_user_id: Optional[str] = None,
        wallet_address: Optional[str] = None,
        tokens: Optional[Iterable[str]] = None,
    ) -> WalletBalances:
        """Resolve the address from a user id or take it literally, then aggregate."""
        if not telegram_user_id and not wallet_address:
            raise WalletError(
                WalletErrorKind.VALIDATION_FAILED,
                "Either telegramUserId or walletAddress must be provided",
            )

        address = wallet_address
        if not address:
            _, wallet = wallet_directory.get_user_and_wallet(db, telegram_user_id)
            if not wallet:
                raise WalletError(WalletErrorKind.NOT_FOUND, "No wallet found for this user")
            address = wallet.address

        return await self.get_balances(address, tokens)


def format_balances(balances: WalletBalances) -> str:
    lines = [
        "💰 *Wallet Balance*",
        "",
        f"📍 Address: `{balances.address}`",
        "",
    ]
    if balances.native is not None:
        lines.append(f"⛽ Native: {balances.native.display()}")
    for symbol, balance in balances.tokens.items():
        if balance.status == BalanceStatus.NOT_FOUND:
            lines.append(f"❔ {symbol}: unsupported token")
            continue
        lines.append(f"{token_emoji(symbol)} {symbol}: {balance.display()}")

    if any(b.status == BalanceStatus.UNAVAILABLE for b in balances.tokens.values()):
        lines.append("")
        lines.append("⚠️ Some balances could not be fetched right now. Try again in a moment.")
    return "\n".join(lines)
