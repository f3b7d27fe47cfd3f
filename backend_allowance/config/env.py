"""
Environment variable loading for Backend Allowance.

- APP_ENV: development | production (default: development)
- PARA_SECRET_KEY: Para server API key; when unset, signing is simulated locally
- VITE_PARA_ENV / PARA_ENV: development | production (selects Para API host)
- PARA_API_URL: override the Para REST base URL
- STRIPE_SECRET_KEY: enables payment verification; when unset only devMode may bypass
- CORS_ORIGINS: comma-separated origins for browser clients (default: *)
- POLICY_STORE_PATH: JSON file backing the policy store
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

# Project root: config is backend_allowance/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

PARA_BETA_API_URL = "https://api.beta.getpara.com"
PARA_PROD_API_URL = "https://api.getpara.com"
STRIPE_API_URL = "https://api.stripe.com"

DEFAULT_POLICY_STORE_FILENAME = "para-wallet-policies.json"
DEFAULT_PROVIDER_TIMEOUT_SEC = 15.0

_TRUTHY = ("1", "true", "yes", "on")


def load_allowance_env() -> None:
    """Load .env from project root. Safe to call multiple times."""
    from dotenv import load_dotenv

    load_dotenv(_ENV_PATH)


def _env(name: str) -> str:
    return (os.getenv(name) or "").strip()


def _env_flag(name: str) -> bool:
    return _env(name).lower() in _TRUTHY


def get_app_env() -> str:
    """Return APP_ENV: development | production. Default: development."""
    load_allowance_env()
    raw = (_env("APP_ENV") or _env("NODE_ENV") or "development").lower()
    return "production" if raw in ("production", "prod") else "development"


def is_production() -> bool:
    return get_app_env() == "production"


def get_para_secret_key() -> str | None:
    """PARA_SECRET_KEY, or None when not configured."""
    load_allowance_env()
    return _env("PARA_SECRET_KEY") or None


def get_para_env() -> str:
    """Para environment: production maps to the PROD API, anything else to BETA."""
    load_allowance_env()
    raw = (_env("VITE_PARA_ENV") or _env("PARA_ENV") or "development").lower()
    return "production" if raw == "production" else "development"


def get_para_api_url() -> str:
    """
    Resolve the Para REST base URL.
    Order: PARA_API_URL > PROD/BETA default for the Para environment.
    """
    load_allowance_env()
    url = _env("PARA_API_URL")
    if url:
        return url.rstrip("/")
    return PARA_PROD_API_URL if get_para_env() == "production" else PARA_BETA_API_URL


def get_stripe_secret_key() -> str | None:
    load_allowance_env()
    return _env("STRIPE_SECRET_KEY") or None


def get_stripe_api_url() -> str:
    load_allowance_env()
    return (_env("STRIPE_API_URL") or STRIPE_API_URL).rstrip("/")


def get_policy_store_path() -> Path:
    """POLICY_STORE_PATH, or para-wallet-policies.json in the system temp dir."""
    load_allowance_env()
    raw = _env("POLICY_STORE_PATH")
    if raw:
        return Path(raw)
    return Path(tempfile.gettempdir()) / DEFAULT_POLICY_STORE_FILENAME


def get_policy_store_strict() -> bool:
    """POLICY_STORE_STRICT=1 turns persistence failures into errors instead of log lines."""
    load_allowance_env()
    return _env_flag("POLICY_STORE_STRICT")


def get_provider_timeout_sec() -> float:
    load_allowance_env()
    raw = _env("PROVIDER_TIMEOUT_SEC")
    if not raw:
        return DEFAULT_PROVIDER_TIMEOUT_SEC
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_PROVIDER_TIMEOUT_SEC
    return value if value > 0 else DEFAULT_PROVIDER_TIMEOUT_SEC


def get_debug_endpoints_enabled() -> bool:
    """
    Debug/test endpoints are on only when DEBUG_ENDPOINTS_ENABLED=1 and APP_ENV is not production.
    """
    load_allowance_env()
    return _env_flag("DEBUG_ENDPOINTS_ENABLED") and not is_production()


def get_debug_token() -> str | None:
    load_allowance_env()
    return _env("DEBUG_TOKEN") or None


def get_cors_origins() -> tuple[str, ...]:
    """CORS_ORIGINS: comma-separated browser origins allowed to call the API. Default: * (any)."""
    load_allowance_env()
    origins = tuple(o.strip().rstrip("/") for o in _env("CORS_ORIGINS").split(",") if o.strip())
    return origins or ("*",)


def print_allowance_startup(script_name: str) -> None:
    """Print environment, Para mode and store path at script start."""
    load_allowance_env()
    para_mode = "live" if get_para_secret_key() else "simulated"
    print(
        f"[allowance] {script_name} | env={get_app_env()} | para={get_para_env()}/{para_mode} "
        f"| store={get_policy_store_path()}"
    )
