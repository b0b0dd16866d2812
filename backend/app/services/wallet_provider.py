"""
Custodial wallet provider client (Para REST API).

Wallets are pre-generated per Telegram user id; the provider holds the key
material, signs and broadcasts. This module never sees a private key.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from app.core.config import settings
from app.core.tokens import CHAIN_ID

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Raised when the wallet provider rejects or fails a request."""


@dataclass
class ProviderWallet:
    wallet_id: str
    address: str
    key_share: Optional[str] = None
    created: bool = False


class ParaWalletProvider:
    """
    Thin async client for the provider.

    Identity is the Telegram user id, sent as a custom user identifier, so
    the same user always maps to the same pre-generated wallet.
    """

    def __init__(self, api_key: str = None, base_url: str = None, timeout: float = None):
        self.api_key = api_key if api_key is not None else settings.PARA_API_KEY
        self.base_url = (base_url or settings.PARA_API_URL).rstrip("/")
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        if not self.api_key:
            logger.warning("⚠️ PARA_API_KEY not set. Wallet creation and transfers will fail.")

    def _headers(self) -> dict:
        return {"X-API-Key": self.api_key, "Content-Type": "application/json"}

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, url, headers=self._headers(), **kwargs)
                response.raise_for_status()
                return response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            detail = e.response.text[:200]
            logger.error(f"Provider {method} {path} returned {e.response.status_code}: {detail}")
            raise ProviderError(f"provider returned {e.response.status_code}: {detail}") from e
        except httpx.HTTPError as e:
            logger.error(f"Provider {method} {path} failed: {e}")
            raise ProviderError(str(e)) from e

    async def find_wallet(self, telegram_user_id: str) -> Optional[ProviderWallet]:
        body = await self._request(
            "GET",
            "/v1/wallets",
            params={"userIdentifier": telegram_user_id, "userIdentifierType": "TELEGRAM"},
        )
        wallets = body.get("wallets") or []
        if not wallets:
            return None
        first = wallets[0]
        return ProviderWallet(wallet_id=first["id"], address=first["address"])

    async def get_or_create_wallet(self, telegram_user_id: str) -> ProviderWallet:
        """Idempotent: returns the existing wallet when the user already has one."""
        existing = await self.find_wallet(telegram_user_id)
        if existing:
            logger.info(f"User {telegram_user_id} already has a provider wallet")
            return existing

        body = await self._request(
            "POST",
            "/v1/wallets",
            json={
                "type": "EVM",
                "userIdentifier": telegram_user_id,
                "userIdentifierType": "TELEGRAM",
            },
        )
        wallet = body.get("wallet", body)
        logger.info(f"Provider wallet created for user {telegram_user_id}: {wallet['address']}")
        return ProviderWallet(
            wallet_id=wallet["id"],
            address=wallet["address"],
            key_share=body.get("keyShare"),
            created=True,
        )

    async def send_transaction(self, telegram_user_id: str, wallet_id: str, transaction: dict) -> dict:
        """
        Sign and broadcast `transaction` ({to, value, data}) from the user's wallet.

        Returns {"hash": ..., "gasUsed": ...}. Raises ProviderError on any failure.
        """
        body = await self._request(
            "POST",
            f"/v1/wallets/{wallet_id}/transactions",
            json={
                "chainId": str(CHAIN_ID),
                "userIdentifier": telegram_user_id,
                "transaction": transaction,
            },
        )
        tx_hash = body.get("hash") or body.get("transactionHash")
        if not tx_hash:
            raise ProviderError("provider did not return a transaction hash")
        return {"hash": tx_hash, "gasUsed": body.get("gasUsed")}


_provider: Optional[ParaWalletProvider] = None


def get_wallet_provider() -> ParaWalletProvider:
    global _provider
    if _provider is None:
        _provider = ParaWalletProvider()
    return _provider
