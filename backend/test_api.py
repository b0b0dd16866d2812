"""
HTTP API: chat, MCP tools, payment-link pages and balances.

Routes run against the test container and database through FastAPI
dependency overrides; the lifespan (table creation, bot start) is not run.
"""
import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_container, get_db
from app.main import app
from conftest import RECIPIENT

TX_HASH = "0x" + "ab" * 32


@pytest.fixture
def client(services, session_factory):
    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_container] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def link_id(services, registered):
    services.links.id_generator = lambda: "Pq4wZ8xN"
    result = asyncio.run(services.tools.create_payment_link(registered, "900", "Coffee", "USDC", "5"))
    return result["data"]["linkId"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["network"] == "mantle"
    assert response.headers["X-Frame-Options"] == "DENY"


def test_agent_chat(client, registered):
    response = client.post("/agent/chat", json={"telegram_user_id": registered, "message": "What's my balance?"})
    assert response.status_code == 200
    body = response.json()
    assert body["intent"] == "balance_check"
    assert "500.123456" in body["response"]


def test_agent_chat_returns_qr_for_new_link(client, registered):
    response = client.post("/agent/chat", json={
        "telegram_user_id": registered,
        "message": "create payment link for Coffee $5 USDC",
    })
    assert response.json()["qr_code"].startswith("data:image/png;base64,")


def test_agent_chat_rejects_blank_message(client):
    response = client.post("/agent/chat", json={"telegram_user_id": "42", "message": "   "})
    assert response.status_code == 422


def test_agent_chat_hides_raw_errors(client, services, registered):
    services.orchestrator.respond = AsyncMock(side_effect=RuntimeError("connection reset by peer"))
    response = client.post("/agent/chat", json={"telegram_user_id": registered, "message": "hi"})
    assert response.status_code == 200
    assert "network connectivity" in response.json()["response"]
    assert "reset by peer" not in response.json()["response"]


def test_mcp_endpoints(client, registered):
    tools = client.get("/mcp/tools").json()["tools"]
    assert {t["name"] for t in tools} >= {"get_wallet_balance", "create_payment_link"}

    started = client.post("/mcp/tools/call", json={"name": "create_payment_link", "arguments": {"userId": registered}})
    assert started.json()["isInteractive"] is True
    assert started.json()["nextStep"] == "name"

    step = client.post("/mcp/flow/continue", json={"userId": registered, "input": "Coffee"})
    assert step.json()["nextStep"] == "token"

    chat = client.post("/mcp/chat", json={"userId": registered, "message": "cancel"})
    assert "cancelled" in chat.json()["response"]


def test_view_payment_link_counts_views(client, link_id):
    first = client.get(f"/payment-links/{link_id}")
    second = client.get(f"/payment-links/{link_id}")

    assert first.status_code == 200
    assert first.json()["view_count"] == 1
    assert second.json()["view_count"] == 2
    assert second.json()["link_url"].endswith(f"/pay/{link_id}")


def test_unknown_payment_link(client):
    response = client.get("/payment-links/NOPE0000")
    assert response.status_code == 404
    assert response.json()["detail"] == "Payment link not found"


def test_payment_link_qr(client, link_id):
    response = client.get(f"/payment-links/{link_id}/qr")
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.content.startswith(b"\x89PNG")


def test_record_payment_notifies_creator(client, link_id, monkeypatch):
    notify = AsyncMock(return_value=True)
    monkeypatch.setattr("app.api.routes.payment_links.send_telegram_message", notify)

    response = client.post(f"/payment-links/{link_id}/payments", json={
        "payer_address": RECIPIENT,
        "amount": "5",
        "transaction_hash": TX_HASH,
    })

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["current_uses"] == 1
    assert body["payments"][0]["transactionHash"] == TX_HASH
    notify.assert_awaited_once()
    assert notify.await_args.args[0] == "900"


def test_record_payment_rejects_duplicates_and_exhausted_links(client, link_id, monkeypatch):
    monkeypatch.setattr("app.api.routes.payment_links.send_telegram_message", AsyncMock(return_value=True))
    payment = {"payer_address": RECIPIENT, "amount": "5", "transaction_hash": TX_HASH}
    client.post(f"/payment-links/{link_id}/payments", json=payment)

    duplicate = client.post(f"/payment-links/{link_id}/payments", json=payment)
    assert duplicate.status_code == 409

    exhausted = client.post(f"/payment-links/{link_id}/payments", json=dict(payment, transaction_hash="0x" + "cd" * 32))
    assert exhausted.status_code == 400


def test_record_payment_validates_body(client, link_id):
    response = client.post(f"/payment-links/{link_id}/payments", json={
        "payer_address": RECIPIENT,
        "amount": "-1",
        "transaction_hash": "0x123",
    })
    assert response.status_code == 422


def test_wallet_balance_routes(client, registered):
    response = client.get(f"/wallet/{registered}/balance", params={"tokens": "usdc"})
    assert response.status_code == 200
    body = response.json()
    assert list(body["tokens"]) == ["USDC"]
    assert body["tokens"]["USDC"]["status"] == "ok"
    assert body["tokens"]["USDC"]["amount"] == "500.123456"

    assert client.get("/wallet/404/balance").status_code == 404
    assert client.post("/wallet/balance", json={}).status_code == 400
