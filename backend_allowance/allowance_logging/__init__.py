"""
Structured logging for Backend Allowance.

JSON logs with timestamp, event_type and wallet context.
Use get_logger() in all modules for aggregation-friendly output.
"""

from backend_allowance.allowance_logging.logger import bind_wallet, get_logger, short_address

__all__ = ["bind_wallet", "get_logger", "short_address"]
