"""
Transfer validation and execution.

Checks run in a fixed order and the first failure wins; amount problems are
reported before any balance read, and only a fully valid transfer reaches
the wallet provider (exactly once).
"""
import asyncio
from decimal import Decimal

import pytest
from eth_abi import decode

from app.core.tokens import TOKEN_ADDRESSES
from app.models.transaction import Transaction
from app.services.transfer_service import (
    encode_erc20_transfer,
    format_transfer_result,
    parse_amount,
    to_base_units,
)
from conftest import OWNER_ADDRESS, RECIPIENT, mnt, usdc


def _send(services, user_id, to_address, amount, token, memo=None):
    return asyncio.run(services.tools.send_tokens(user_id, to_address, amount, token, memo))


def test_unregistered_user_is_rejected(services):
    result = _send(services, "404", RECIPIENT, "1", "USDC")
    assert not result["success"]
    assert result["errorKind"] == "NotRegistered"


def test_invalid_address_is_rejected_before_amount(services, registered, chain):
    result = _send(services, registered, "0x123", "abc", "USDC")
    assert result["errorKind"] == "InvalidAddress"
    assert chain.reads == []


def test_self_transfer_is_rejected(services, registered):
    result = _send(services, registered, OWNER_ADDRESS, "1", "USDC")
    assert result["errorKind"] == "SelfTransfer"


@pytest.mark.parametrize("amount", ["abc", "0", "-5", "NaN", "Infinity", None, "1e1000000", "1e-5000000", "1e31"])
def test_invalid_amount_never_reads_balances(services, registered, chain, provider, amount):
    result = _send(services, registered, RECIPIENT, amount, "USDC")
    assert result["errorKind"] == "InvalidAmount"
    assert chain.reads == []
    assert provider.sent == []


def test_unsupported_token(services, registered, chain):
    result = _send(services, registered, RECIPIENT, "1", "WBTC")
    assert result["errorKind"] == "ValidationFailed"
    assert "Supported tokens: MNT, USDC, USDT, DAI" in result["error"]
    assert chain.reads == []


def test_below_minimum(services, registered, chain):
    result = _send(services, registered, RECIPIENT, "0.001", "USDC")
    assert result["errorKind"] == "BelowMinimum"
    assert result["error"] == "Minimum transfer amount for USDC is 0.01 USDC."
    assert chain.reads == []


def test_insufficient_balance_reports_both_amounts(services, registered, chain, provider):
    chain.balances["USDC"] = usdc(5)
    result = _send(services, registered, RECIPIENT, "10", "USDC")

    assert result["errorKind"] == "InsufficientBalance"
    assert result["error"] == (
        "Insufficient balance. You have 5.000000 USDC, but trying to send 10 USDC."
    )
    assert provider.sent == []


def test_largest_accepted_amount_is_reported_in_plain_digits(services, registered, provider):
    result = _send(services, registered, RECIPIENT, "1e30", "USDC")

    assert result["errorKind"] == "InsufficientBalance"
    assert result["error"].endswith("trying to send 1" + "0" * 30 + " USDC.")
    assert provider.sent == []


def test_mnt_transfer_must_leave_gas_reserve(services, registered, chain, provider):
    chain.balances["MNT"] = mnt("1")
    result = _send(services, registered, RECIPIENT, "0.995", "MNT")
    assert result["errorKind"] == "InsufficientGasReserve"
    assert provider.sent == []


def test_token_transfer_needs_mnt_for_fees(services, registered, chain, provider):
    chain.balances["MNT"] = mnt("0.0005")
    result = _send(services, registered, RECIPIENT, "10", "USDC")
    assert result["errorKind"] == "InsufficientGasForFees"
    assert provider.sent == []


def test_balance_read_failure_is_unavailable_not_zero(services, registered, chain, provider):
    chain.failing.add("USDC")
    result = _send(services, registered, RECIPIENT, "10", "USDC")
    assert result["errorKind"] == "BalanceUnavailable"
    assert provider.sent == []


def test_successful_token_transfer(services, registered, provider, db):
    result = _send(services, registered, RECIPIENT, "10", "usdc", memo="  lunch  ")

    assert result["success"], result
    data = result["data"]
    assert data["amount"] == "10"
    assert data["token"] == "USDC"
    assert data["memo"] == "lunch"
    assert data["fromAddress"] == OWNER_ADDRESS
    assert data["confirmationUrl"].endswith(f"/tx/{data['transactionHash']}")

    assert len(provider.sent) == 1
    telegram_user_id, wallet_id, tx = provider.sent[0]
    assert telegram_user_id == registered
    assert wallet_id == f"w-{registered}"
    assert tx["to"] == TOKEN_ADDRESSES["USDC"]
    assert tx["value"] == "0"
    assert tx["data"].startswith("0xa9059cbb")

    records = db.query(Transaction).all()
    assert len(records) == 1
    assert records[0].hash == data["transactionHash"]
    assert records[0].amount == "10"
    assert records[0].memo == "lunch"
    assert records[0].gas_used == "21000"
    assert "Transfer Successful" in result["message"]


def test_successful_mnt_transfer_uses_value_field(services, registered, chain, provider):
    chain.balances["MNT"] = mnt("2")
    result = _send(services, registered, RECIPIENT, "0.5", "MNT")

    assert result["success"], result
    _, _, tx = provider.sent[0]
    assert tx["value"] == str(mnt("0.5"))
    assert tx["data"] == "0x"


def test_provider_failure_records_nothing(services, registered, provider, db):
    provider.fail_send = True
    result = _send(services, registered, RECIPIENT, "10", "USDC")

    assert result["errorKind"] == "TransferFailed"
    assert result["error"] == "USDC transfer failed: nonce too low"
    assert len(provider.sent) == 1
    assert db.query(Transaction).count() == 0


def test_encode_erc20_transfer_round_trips_arguments():
    data = encode_erc20_transfer(RECIPIENT, 10_000_000)
    to_address, amount = decode(["address", "uint256"], bytes.fromhex(data[10:]))
    assert to_address.lower() == RECIPIENT
    assert amount == 10_000_000


def test_parse_amount_and_scaling():
    assert parse_amount("25.50") == Decimal("25.50")
    assert parse_amount(True) is None
    assert str(parse_amount("10.500")) == "10.5"
    assert parse_amount("1e30") == Decimal("1e30")
    assert parse_amount("1e400") is None
    assert parse_amount("1e-19") is None
    assert parse_amount("0.000000000000000001") == Decimal("1e-18")
    assert to_base_units(Decimal("0.1234567"), 6) == 123456
    assert to_base_units(Decimal("1"), 18) == 10 ** 18


def test_format_failed_result():
    assert format_transfer_result({"success": False, "error": "boom"}) == "❌ boom"
