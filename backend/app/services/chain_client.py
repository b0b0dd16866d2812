"""
Mantle chain client: balance reads over JSON-RPC (web3) and history over the
explorer API (httpx).

Pure reads. Writes never happen here; transfers are signed and broadcast by
the custodial wallet provider.
"""
import logging
from typing import Optional

import httpx
from web3 import AsyncWeb3, Web3
from web3.providers import AsyncHTTPProvider

from app.core.config import settings

logger = logging.getLogger(__name__)


ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
]


def is_address(value: str) -> bool:
    return bool(value) and Web3.is_address(value)


def to_checksum(value: str) -> str:
    return Web3.to_checksum_address(value)


class MantleChainClient:
    """
    Reads balances and history for Mantle addresses.

    Two RPC endpoints are used: the primary Mantle RPC for MNT and token
    reads, and a secondary endpoint for the native balance line of the
    balance report.
    """

    def __init__(
        self,
        rpc_url: str = None,
        balance_rpc_url: str = None,
        explorer_api_url: str = None,
        timeout: float = 15.0,
    ):
        self.rpc_url = rpc_url or settings.MANTLE_RPC_URL
        self.balance_rpc_url = balance_rpc_url or settings.BALANCE_RPC_URL
        self.explorer_api_url = explorer_api_url or settings.EXPLORER_API_URL
        self.timeout = timeout
        self._w3 = AsyncWeb3(AsyncHTTPProvider(self.rpc_url))
        self._balance_w3 = AsyncWeb3(AsyncHTTPProvider(self.balance_rpc_url))

    async def get_native_balance(self, address: str) -> int:
        """Native balance in wei from the secondary RPC."""
        return await self._balance_w3.eth.get_balance(to_checksum(address))

    async def get_mnt_balance(self, address: str) -> int:
        """MNT balance in wei from the primary Mantle RPC."""
        return await self._w3.eth.get_balance(to_checksum(address))

    async def get_token_balance(self, token_address: str, owner: str) -> int:
        """Raw ERC-20 balance (base units)."""
        contract = self._w3.eth.contract(address=to_checksum(token_address), abi=ERC20_ABI)
        return await contract.functions.balanceOf(to_checksum(owner)).call()

    async def get_token_decimals(self, token_address: str) -> int:
        contract = self._w3.eth.contract(address=to_checksum(token_address), abi=ERC20_ABI)
        return int(await contract.functions.decimals().call())

    async def get_transactions(self, address: str, limit: int = 5) -> list:
        return await self._explorer_list("txlist", address, limit)

    async def get_token_transfers(self, address: str, limit: int = 5) -> list:
        return await self._explorer_list("tokentx", address, limit)

    async def _explorer_list(self, action: str, address: str, limit: int) -> list:
        """
        Explorer account listing. Returns [] on any failure or when the
        explorer reports status != "1" (which it also does for "no results").
        """
        params = {
            "module": "account",
            "action": action,
            "address": address,
            "startblock": 0,
            "endblock": 99999999,
            "page": 1,
            "offset": limit,
            "sort": "desc",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.explorer_api_url, params=params)
                response.raise_for_status()
                body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Explorer {action} failed for {address}: {e}")
            return []

        if body.get("status") != "1":
            logger.debug(f"Explorer {action} for {address}: {body.get('message')}")
            return []
        return body.get("result") or []


_chain_client: Optional[MantleChainClient] = None


def get_chain_client() -> MantleChainClient:
    """Get or create singleton chain client."""
    global _chain_client
    if _chain_client is None:
        _chain_client = MantleChainClient()
    return _chain_client
