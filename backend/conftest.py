"""Shared fixtures: in-memory DB and fake chain / wallet provider."""
import asyncio
import itertools
from decimal import Decimal

import pytest

from app.container import build_services
from app.core.tokens import TOKEN_ADDRESSES
from app.db.init_db import init_db
from app.db.session import create_db_engine, make_session_factory
from app.services.wallet_provider import ProviderError, ProviderWallet

OWNER_ADDRESS = "0x1111111111111111111111111111111111111111"
RECIPIENT = "0x742d35cc6634c0532925a3b844bc454e4438f44e"

_ADDRESS_TO_SYMBOL = {address.lower(): symbol for symbol, address in TOKEN_ADDRESSES.items()}


class FakeChain:
    """Balances in base units keyed by symbol; symbols in `failing` raise on read."""

    def __init__(self, balances=None, native=0, decimals=None, failing=()):
        self.balances = dict(balances or {})
        self.native = native
        self.decimals = dict(decimals or {})
        self.failing = set(failing)
        self.reads = []
        self.transactions = []
        self.token_transfers = []

    def _read(self, symbol):
        self.reads.append(symbol)
        if symbol in self.failing:
            raise ConnectionError(f"rpc down for {symbol}")
        return self.balances.get(symbol, 0)

    async def get_native_balance(self, address):
        if "native" in self.failing:
            raise ConnectionError("rpc down")
        return self.native

    async def get_mnt_balance(self, address):
        return self._read("MNT")

    async def get_token_balance(self, token_address, owner):
        return self._read(_ADDRESS_TO_SYMBOL[token_address.lower()])

    async def get_token_decimals(self, token_address):
        symbol = _ADDRESS_TO_SYMBOL[token_address.lower()]
        if symbol not in self.decimals:
            raise ValueError("decimals() reverted")
        return self.decimals[symbol]

    async def get_transactions(self, address, limit=5):
        return self.transactions[:limit]

    async def get_token_transfers(self, address, limit=5):
        return self.token_transfers[:limit]


class FakeProvider:
    def __init__(self, address=OWNER_ADDRESS, fail_send=False, fail_create=False):
        self.address = address
        self.fail_send = fail_send
        self.fail_create = fail_create
        self.sent = []
        self.wallets = {}
        self._hashes = itertools.count(1)

    async def get_or_create_wallet(self, telegram_user_id):
        """The first user gets `address`; later users get distinct generated ones."""
        if self.fail_create:
            raise ProviderError("provider unavailable")
        key = str(telegram_user_id)
        if key not in self.wallets:
            self.wallets[key] = self.address if not self.wallets else f"0x{len(self.wallets) + 1:040x}"
        return ProviderWallet(wallet_id=f"w-{key}", address=self.wallets[key], created=True)

    async def send_transaction(self, telegram_user_id, wallet_id, transaction):
        self.sent.append((telegram_user_id, wallet_id, transaction))
        if self.fail_send:
            raise ProviderError("nonce too low")
        return {"hash": "0x" + f"{next(self._hashes):064x}", "gasUsed": 21000}


def usdc(amount) -> int:
    return int(Decimal(str(amount)) * 10 ** 6)


def mnt(amount) -> int:
    return int(Decimal(str(amount)) * 10 ** 18)


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(bind=engine)
    return engine


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def chain():
    return FakeChain(
        balances={"USDC": usdc(500.123456), "USDT": 0, "DAI": 0, "MNT": mnt(1)},
        native=mnt(1),
        decimals={"USDC": 6, "USDT": 6, "DAI": 18},
    )


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def services(session_factory, chain, provider):
    return build_services(
        session_factory=session_factory,
        chain=chain,
        provider=provider,
        session_backend="memory",
        agent_mode="rules",
    )


@pytest.fixture
def registered(services):
    """Telegram user "42" with a wallet at OWNER_ADDRESS."""
    result = asyncio.run(services.tools.register_user("42", first_name="Ada"))
    assert result["success"]
    return "42"
