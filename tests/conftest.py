"""
Pytest fixtures for Backend Allowance tests. Uses a temporary JSON policy store,
fake wallet provider / payment verifier, and a TestClient over create_app().
"""

from __future__ import annotations

from pathlib import Path

import pytest

from backend_allowance.core.exceptions import ProviderRejectedError
from backend_allowance.payments.verifier import PaymentResult
from backend_allowance.providers.para import CreatedWallet, SignedTransaction

PARENT = "0x" + "a" * 40
PARENT_2 = "0x" + "b" * 40
CHILD = "0x" + "c" * 40


class FakeWalletProvider:
    """In-memory wallet provider: hands out sequential valid addresses, signs unless told to reject."""

    def __init__(self, address: str | None = None, reject_with: str | None = None):
        self.address = address
        self.reject_with = reject_with
        self.created: list[tuple[str, str]] = []
        self.signed: list[tuple[str | None, str]] = []

    def create_wallet(self, kind: str, identity_seed: str) -> CreatedWallet:
        self.created.append((kind, identity_seed))
        n = len(self.created)
        address = self.address if self.address is not None else "0x" + f"{n:040x}"
        return CreatedWallet(address=address, id=f"wallet-{n}", type=kind)

    def sign_transaction(self, wallet_id, wallet_address, tx) -> SignedTransaction:
        self.signed.append((wallet_id, wallet_address))
        if self.reject_with:
            raise ProviderRejectedError(self.reject_with, upstream_status=403)
        return SignedTransaction(signature="0xsigned", raw={"signature": "0xsigned"})


class FakePaymentVerifier:
    """Accepts exactly the tokens it was given."""

    def __init__(self, valid_tokens: tuple[str, ...] = ("pi_ok",)):
        self.valid_tokens = valid_tokens
        self.seen: list[str] = []

    def verify(self, token: str) -> PaymentResult:
        self.seen.append(token)
        if token in self.valid_tokens:
            return PaymentResult(success=True)
        return PaymentResult(success=False, error="Payment not completed")


def make_settings(tmp_path: Path, **overrides):
    """Settings for tests: development, no keys, store under tmp_path."""
    from backend_allowance.config import Settings

    values = dict(
        app_env="development",
        para_secret_key=None,
        para_env="development",
        para_api_url="https://para.test",
        stripe_secret_key=None,
        stripe_api_url="https://stripe.test",
        policy_store_path=tmp_path / "policies.json",
        policy_store_strict=False,
        provider_timeout_sec=5.0,
        debug_endpoints_enabled=True,
        debug_token=None,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "policies.json"


@pytest.fixture
def store(store_path):
    """Fresh PolicyStore backed by a file in tmp_path."""
    from backend_allowance.policy.storage import PolicyStore

    return PolicyStore(store_path)


@pytest.fixture
def fake_provider():
    return FakeWalletProvider()


@pytest.fixture
def fake_verifier():
    return FakePaymentVerifier()


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def client(settings, store):
    """
    FastAPI TestClient with simulated signing (no Para key) and no payment
    backend, so wallet creation needs devMode and a provider is injected per test.
    """
    from fastapi.testclient import TestClient

    from backend_allowance.api_server.server import create_app

    app = create_app(settings, store=store, provider=None, payment_verifier=None)
    return TestClient(app)


@pytest.fixture
def provisioning_client(settings, store, fake_provider):
    """TestClient whose provisioning goes through FakeWalletProvider (dev-mode payment)."""
    from fastapi.testclient import TestClient

    from backend_allowance.api_server.server import create_app

    app = create_app(settings, store=store, provider=fake_provider, payment_verifier=None)
    return TestClient(app)
