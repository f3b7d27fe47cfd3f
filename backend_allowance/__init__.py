"""
Backend Allowance — parent/child allowance wallets on top of the Para wallet provider.

Parents provision child wallets with a spending policy (allowed chains, USD
per-transaction limit, blocked actions). Until the provider's own enforcement
is reachable, policies are stored server-side and evaluated locally before
any signing request is forwarded.
"""

__version__ = "0.1.0"
