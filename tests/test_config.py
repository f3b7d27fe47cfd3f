"""
Tests for environment-driven settings.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from backend_allowance.config import get_settings
from backend_allowance.config.env import PARA_BETA_API_URL, PARA_PROD_API_URL

_VARS = (
    "APP_ENV",
    "NODE_ENV",
    "PARA_SECRET_KEY",
    "VITE_PARA_ENV",
    "PARA_ENV",
    "PARA_API_URL",
    "STRIPE_SECRET_KEY",
    "POLICY_STORE_PATH",
    "POLICY_STORE_STRICT",
    "PROVIDER_TIMEOUT_SEC",
    "DEBUG_ENDPOINTS_ENABLED",
    "DEBUG_TOKEN",
    "CORS_ORIGINS",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Unset every variable settings read; load_dotenv never overrides what tests set."""
    for name in _VARS:
        monkeypatch.setenv(name, "")
    return monkeypatch


def test_defaults(clean_env):
    settings = get_settings()
    assert settings.app_env == "development"
    assert settings.para_secret_key is None
    assert settings.provider_configured is False
    assert settings.payments_configured is False
    assert settings.para_api_url == PARA_BETA_API_URL
    assert settings.policy_store_path.name == "para-wallet-policies.json"
    assert settings.policy_store_strict is False
    assert settings.provider_timeout_sec == 15.0
    assert settings.debug_endpoints_enabled is False


def test_overrides(clean_env, tmp_path):
    clean_env.setenv("PARA_SECRET_KEY", "sk_live")
    clean_env.setenv("VITE_PARA_ENV", "production")
    clean_env.setenv("STRIPE_SECRET_KEY", "sk_stripe")
    clean_env.setenv("POLICY_STORE_PATH", str(tmp_path / "p.json"))
    clean_env.setenv("POLICY_STORE_STRICT", "1")
    clean_env.setenv("PROVIDER_TIMEOUT_SEC", "3.5")
    clean_env.setenv("DEBUG_ENDPOINTS_ENABLED", "true")
    settings = get_settings()
    assert settings.provider_configured is True
    assert settings.payments_configured is True
    assert settings.para_api_url == PARA_PROD_API_URL
    assert settings.policy_store_path == Path(tmp_path / "p.json")
    assert settings.policy_store_strict is True
    assert settings.provider_timeout_sec == 3.5
    assert settings.debug_endpoints_enabled is True


def test_production_disables_debug_endpoints(clean_env):
    clean_env.setenv("APP_ENV", "production")
    clean_env.setenv("DEBUG_ENDPOINTS_ENABLED", "1")
    settings = get_settings()
    assert settings.is_production is True
    assert settings.debug_endpoints_enabled is False


def test_para_api_url_override(clean_env):
    clean_env.setenv("PARA_API_URL", "https://para.example/")
    assert get_settings().para_api_url == "https://para.example"


def test_cors_origins(clean_env):
    assert get_settings().cors_origins == ("*",)
    clean_env.setenv("CORS_ORIGINS", "https://a.example/, https://b.example ,")
    assert get_settings().cors_origins == ("https://a.example", "https://b.example")
