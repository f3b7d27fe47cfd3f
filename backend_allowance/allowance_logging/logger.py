"""
Structured JSON logging: timestamp, event_type, wallet / parent context.

structlog with ISO timestamps and log level, one JSON object per line on
stdout. Every module logs through get_logger(__name__) with an event name as
the first argument and context as keyword arguments.

Address fields (wallet, parent, wallet_address, ...) are truncated by a
processor before rendering, so a full EVM address or payment token never
reaches the log stream even if a caller forgets short_address().

Uses only Python stdlib logging and structlog; no backend_allowance imports to avoid circular imports.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

SHORT_ADDRESS_LEN = 10
ADDRESS_KEYS = frozenset({"wallet", "parent", "wallet_address", "parent_address", "token"})


def short_address(address: str | None) -> str:
    """Truncate an address for log output: first 10 chars + '...'."""
    if not address:
        return ""
    if len(address) <= SHORT_ADDRESS_LEN or address.endswith("..."):
        return address
    return address[:SHORT_ADDRESS_LEN] + "..."


def _stamp(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """ISO 8601 UTC timestamp unless the caller supplied one."""
    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    return event_dict


def _event_type(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog's 'event' becomes event_type; message mirrors it for log viewers that key on message."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    if "event_type" in event_dict:
        event_dict.setdefault("message", str(event_dict["event_type"]))
    return event_dict


def _truncate_addresses(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in ADDRESS_KEYS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str):
            event_dict[key] = short_address(value)
    return event_dict


def configure_structlog(level: str | None = None, fmt: str | None = None) -> None:
    """
    Configure structlog: LOG_LEVEL (default INFO) and LOG_FORMAT (json | console, default json).
    Called once at import; call again to reconfigure (e.g. from a CLI).
    """
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    render = (fmt or os.getenv("LOG_FORMAT") or "json").strip().lower()

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _stamp,
        _event_type,
        _truncate_addresses,
    ]
    if render == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level_name, logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Return a structured logger for the given module name.

        logger = get_logger(__name__)
        logger.info("policy_stored", wallet=addr, condition_count=3)
    Output (JSON): {"event_type": "policy_stored", "wallet": "0x12345678...", "condition_count": 3,
                    "timestamp": "...", "level": "info", "logger": "module.name"}
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_wallet(wallet_address: str) -> structlog.BoundLogger:
    """Return a logger with the wallet address bound to all subsequent log calls."""
    return get_logger("backend_allowance").bind(wallet=wallet_address)
