"""
Application settings.

Responsibilities:
- Resolve configuration from environment variables and .env (via config.env).
- Expose a frozen Settings object for the API server, orchestration services
  and provider clients.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from backend_allowance.config import env


@dataclass(frozen=True)
class Settings:
    """Resolved service configuration."""

    app_env: str
    para_secret_key: str | None
    para_env: str
    para_api_url: str
    stripe_secret_key: str | None
    stripe_api_url: str
    policy_store_path: Path
    policy_store_strict: bool
    provider_timeout_sec: float
    debug_endpoints_enabled: bool
    debug_token: str | None = None
    cors_origins: tuple[str, ...] = ("*",)
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def provider_configured(self) -> bool:
        """True when a Para key is set; otherwise signing is simulated locally."""
        return bool(self.para_secret_key)

    @property
    def payments_configured(self) -> bool:
        return bool(self.stripe_secret_key)


def get_settings() -> Settings:
    """
    Return the current application settings.

    Read fresh on every call so tests (monkeypatched env) and long-running
    processes see the same values the handlers will use.
    """
    return Settings(
        app_env=env.get_app_env(),
        para_secret_key=env.get_para_secret_key(),
        para_env=env.get_para_env(),
        para_api_url=env.get_para_api_url(),
        stripe_secret_key=env.get_stripe_secret_key(),
        stripe_api_url=env.get_stripe_api_url(),
        policy_store_path=env.get_policy_store_path(),
        policy_store_strict=env.get_policy_store_strict(),
        provider_timeout_sec=env.get_provider_timeout_sec(),
        debug_endpoints_enabled=env.get_debug_endpoints_enabled(),
        debug_token=env.get_debug_token(),
        cors_origins=env.get_cors_origins(),
        api_host=(os.getenv("API_HOST") or "0.0.0.0").strip(),
        api_port=int((os.getenv("API_PORT") or "8000").strip() or "8000"),
    )
