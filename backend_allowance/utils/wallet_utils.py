"""Wallet address utilities."""

from __future__ import annotations

import re

from backend_allowance.core.exceptions import InvalidAddressError

EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


def is_valid_wallet(w: str | None) -> bool:
    """Return True if w is a 0x-prefixed, 40-hex-character EVM address."""
    if not isinstance(w, str):
        return False
    return EVM_ADDRESS_RE.match(w.strip()) is not None


def normalize_address(address: str) -> str:
    """Lowercase form used as the policy store key."""
    return address.strip().lower()


def require_wallet(w: str | None, field: str = "Wallet address") -> str:
    """Return the stripped address or raise InvalidAddressError (missing vs malformed)."""
    if not w or not str(w).strip():
        raise InvalidAddressError(f"{field} required")
    if not is_valid_wallet(w):
        raise InvalidAddressError("Invalid wallet address format")
    return str(w).strip()
