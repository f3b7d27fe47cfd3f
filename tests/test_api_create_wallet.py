"""
Tests for POST /api/child/create-wallet: status mapping and stored policy.
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from backend_allowance.api_server.server import create_app

from conftest import PARENT, FakePaymentVerifier, FakeWalletProvider, make_settings


def test_create_wallet_dev_mode(provisioning_client, store):
    """200 with the policy summary; the policy is stored under the returned address."""
    r = provisioning_client.post(
        "/api/child/create-wallet",
        json={"parentWalletAddress": PARENT, "restrictToBase": True, "maxUsd": 15, "devMode": True},
    )
    assert r.status_code == 200
    data = r.json()
    assert data["success"] is True
    assert data["walletId"] == "wallet-1"
    assert data["policy"] == {
        "name": "Child Allowance Policy",
        "allowedChains": ["8453"],
        "hasUsdLimit": True,
        "usdLimit": 15,
        "restrictToBase": True,
    }
    assert store.get(data["walletAddress"]).parent_address == PARENT


def test_create_wallet_missing_parent_is_400(provisioning_client):
    r = provisioning_client.post("/api/child/create-wallet", json={"devMode": True})
    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "Parent wallet address required"}


def test_create_wallet_malformed_parent_is_400(provisioning_client):
    r = provisioning_client.post("/api/child/create-wallet", json={"parentWalletAddress": "0x12", "devMode": True})
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid wallet address format"


def test_create_wallet_wrong_body_type_is_400(provisioning_client):
    """Pydantic validation errors are answered with 400, not 422."""
    r = provisioning_client.post(
        "/api/child/create-wallet",
        json={"parentWalletAddress": PARENT, "maxUsd": "lots", "devMode": True},
    )
    assert r.status_code == 400
    assert r.json()["success"] is False
    assert "maxUsd" in r.json()["error"]


def test_create_wallet_without_payment_backend_is_402(provisioning_client, fake_provider):
    r = provisioning_client.post("/api/child/create-wallet", json={"parentWalletAddress": PARENT})
    assert r.status_code == 402
    assert r.json()["error"] == "Payment processing not configured. Contact administrator."
    assert fake_provider.created == []


def test_create_wallet_payment_token_required(tmp_path, store):
    app = create_app(
        make_settings(tmp_path),
        store=store,
        provider=FakeWalletProvider(),
        payment_verifier=FakePaymentVerifier(),
    )
    client = TestClient(app)
    r = client.post("/api/child/create-wallet", json={"parentWalletAddress": PARENT, "devMode": True})
    assert r.status_code == 402
    assert r.json()["error"] == "Payment token required"
    r = client.post("/api/child/create-wallet", json={"parentWalletAddress": PARENT, "paymentToken": "pi_ok"})
    assert r.status_code == 200


def test_create_wallet_provider_not_configured_is_500(client, store):
    r = client.post("/api/child/create-wallet", json={"parentWalletAddress": PARENT, "devMode": True})
    assert r.status_code == 500
    assert "PARA_SECRET_KEY" in r.json()["error"]
    assert store.list_all() == []


def test_create_wallet_provider_bad_address_is_500(tmp_path, store):
    app = create_app(
        make_settings(tmp_path),
        store=store,
        provider=FakeWalletProvider(address=""),
        payment_verifier=None,
    )
    r = TestClient(app).post("/api/child/create-wallet", json={"parentWalletAddress": PARENT, "devMode": True})
    assert r.status_code == 500
    assert r.json() == {"success": False, "error": "Para SDK returned no wallet address"}
    assert store.list_all() == []
