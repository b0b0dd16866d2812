"""
Balance aggregation: parallel reads, decimals fallback and the
ok / unavailable / not-found distinction.
"""
import asyncio
from decimal import Decimal

import pytest

from app.core.exceptions import WalletError, WalletErrorKind
from app.schemas.wallet import BalanceStatus
from app.services.balance_service import BalanceAggregator, format_balances, from_base_units
from conftest import OWNER_ADDRESS, FakeChain, mnt, usdc


def test_reads_every_token_and_native(chain):
    balances = asyncio.run(BalanceAggregator(chain).get_balances(OWNER_ADDRESS))

    assert list(balances.tokens) == ["MNT", "USDC", "USDT", "DAI"]
    assert balances.get("usdc").amount == Decimal("500.123456")
    assert balances.get("USDT").amount == Decimal("0")
    assert balances.native.amount == Decimal("1")
    assert all(b.is_ok for b in balances.tokens.values())


def test_decimals_fall_back_to_table():
    chain = FakeChain(balances={"DAI": 3 * 10 ** 18}, decimals={})
    balance = asyncio.run(BalanceAggregator(chain).fetch_balance("DAI", OWNER_ADDRESS))
    assert balance == Decimal("3")


def test_failed_read_is_unavailable_not_zero(chain):
    chain.failing.add("USDT")
    balances = asyncio.run(BalanceAggregator(chain).get_balances(OWNER_ADDRESS))

    usdt = balances.get("USDT")
    assert usdt.status == BalanceStatus.UNAVAILABLE
    assert usdt.amount is None
    assert balances.get("USDC").is_ok
    assert balances.as_legacy_dict()["tokens"]["USDT"] == "0"


def test_native_failure_does_not_abort(chain):
    chain.failing.add("native")
    balances = asyncio.run(BalanceAggregator(chain).get_balances(OWNER_ADDRESS))
    assert balances.native.status == BalanceStatus.UNAVAILABLE
    assert balances.get("MNT").is_ok


def test_filter_is_case_insensitive_and_skips_native(chain):
    balances = asyncio.run(BalanceAggregator(chain).get_balances(OWNER_ADDRESS, ["usdc", "USDC", "wbtc"]))

    assert list(balances.tokens) == ["USDC", "WBTC"]
    assert balances.native is None
    assert balances.get("WBTC").status == BalanceStatus.NOT_FOUND
    assert chain.reads == ["USDC"]


def test_format_balances_uses_six_places(chain):
    chain.failing.add("DAI")
    balances = asyncio.run(BalanceAggregator(chain).get_balances(OWNER_ADDRESS))
    text = format_balances(balances)

    assert "🔵 USDC: 500.123456" in text
    assert "🔷 MNT: 1.000000" in text
    assert "🟡 DAI: unavailable" in text
    assert "Some balances could not be fetched" in text


def test_check_balance_resolves_user_wallet(services, registered, db):
    balances = asyncio.run(services.balances.check_balance(db, telegram_user_id=registered, tokens=["USDC"]))
    assert balances.address == OWNER_ADDRESS
    assert balances.get("USDC").amount == Decimal("500.123456")


def test_check_balance_needs_user_or_address(services, db):
    with pytest.raises(WalletError) as exc:
        asyncio.run(services.balances.check_balance(db))
    assert exc.value.kind == WalletErrorKind.VALIDATION_FAILED


def test_check_balance_for_unknown_user(services, db):
    with pytest.raises(WalletError) as exc:
        asyncio.run(services.balances.check_balance(db, telegram_user_id="404"))
    assert exc.value.kind == WalletErrorKind.NOT_FOUND


def test_check_balance_tool_result(services, registered):
    result = asyncio.run(services.tools.check_balance(registered))
    assert result["success"]
    assert "500.123456" in result["message"]

    missing = asyncio.run(services.tools.check_balance("404"))
    assert not missing["success"]
    assert missing["errorKind"] == "NotFound"


def test_check_balance_twice_reads_the_same(services, registered, chain):
    first = asyncio.run(services.tools.check_balance(registered))
    reads_after_first = len(chain.reads)
    second = asyncio.run(services.tools.check_balance(registered))

    assert first["message"] == second["message"]
    assert first["data"] == second["data"]
    assert len(chain.reads) == 2 * reads_after_first


def test_from_base_units():
    assert from_base_units(usdc("1.5"), 6) == Decimal("1.5")
    assert from_base_units(mnt("0.01"), 18) == Decimal("0.01")
