#!/usr/bin/env python3
"""
Policy store status — console listing of stored child wallet policies.

Reads the JSON store at POLICY_STORE_PATH (or --store) and prints one row per
wallet: truncated addresses, allowed chains, USD limit, blocked actions.
With --wallet and --chain, evaluates that transaction locally instead and
prints the verdict.

Usage:
  py -m backend_allowance.tools.policy_status
  py -m backend_allowance.tools.policy_status --parent 0xabc...
  py -m backend_allowance.tools.policy_status --wallet 0xdef... --chain 8453 --usd 12.5
"""

from __future__ import annotations

import argparse
from pathlib import Path

from backend_allowance.allowance_logging import get_logger, short_address
from backend_allowance.config.env import get_policy_store_path, print_allowance_startup
from backend_allowance.core.exceptions import AllowanceError
from backend_allowance.policy.builder import chain_name
from backend_allowance.policy.models import ActionKind, TransactionRequest, WalletPolicyRecord
from backend_allowance.policy.storage import PolicyStore
from backend_allowance.policy.validator import format_usd, validate_wallet_transaction
from backend_allowance.utils.wallet_utils import require_wallet

logger = get_logger(__name__)

SEP = "=" * 72
SEP_THIN = "-" * 72


def _log(msg: str) -> None:
    print(f"[policy_status] {msg}")


def _row(record: WalletPolicyRecord) -> str:
    policy = record.policy
    chains = ",".join(chain_name(c) for c in policy.allowed_chains)
    limit = f"${format_usd(policy.max_usd)}" if policy.max_usd is not None else "none"
    blocked = ",".join(a.value for a in policy.blocked_actions) or "-"
    return (
        f"{short_address(record.wallet_address):<14} {short_address(record.parent_address):<14} "
        f"{limit:>8}  {blocked:<10} {chains}"
    )


def print_listing(store: PolicyStore, parent: str | None) -> int:
    records = store.list_by_parent(parent) if parent else store.list_all()
    print(SEP)
    print(f"Stored policies: {len(records)}  ({store.path})")
    print(SEP_THIN)
    print(f"{'wallet':<14} {'parent':<14} {'usd/tx':>8}  {'blocked':<10} chains")
    print(SEP_THIN)
    for record in sorted(records, key=lambda r: r.created_at):
        print(_row(record))
    print(SEP)
    return 0


def check_transaction(store: PolicyStore, wallet: str, chain_id: str, usd: float | None, action: str) -> int:
    tx = TransactionRequest(chain_id=chain_id, action=ActionKind(action), value_usd=usd)
    result = validate_wallet_transaction(store, wallet, tx)
    if result.allowed:
        _log(f"ALLOWED {short_address(wallet)} chain={chain_name(chain_id)} action={action} usd={usd}")
        return 0
    _log(f"DENIED  {short_address(wallet)} [{result.code.value}] {result.error}")
    return 1


def main() -> int:
    ap = argparse.ArgumentParser(description="List stored child wallet policies or check a transaction locally.")
    ap.add_argument("--store", default=None, help="Policy store JSON file (overrides POLICY_STORE_PATH)")
    ap.add_argument("--parent", default=None, help="Only list wallets owned by this parent address")
    ap.add_argument("--wallet", default=None, help="Child wallet address to check a transaction for")
    ap.add_argument("--chain", default=None, help="Chain ID of the transaction (e.g. 8453)")
    ap.add_argument("--usd", type=float, default=None, help="USD value of the transaction")
    ap.add_argument(
        "--action",
        default=ActionKind.TRANSFER.value,
        choices=[a.value for a in ActionKind],
        help="Transaction type (default: transfer)",
    )
    args = ap.parse_args()

    print_allowance_startup("policy_status")
    store = PolicyStore(Path(args.store) if args.store else get_policy_store_path())

    try:
        if args.wallet:
            if not args.chain:
                ap.error("--chain is required with --wallet")
            return check_transaction(store, require_wallet(args.wallet), args.chain.strip(), args.usd, args.action)
        parent = require_wallet(args.parent, "Parent wallet address") if args.parent else None
        return print_listing(store, parent)
    except AllowanceError as e:
        logger.warning("policy_status_invalid_input", error=e.message)
        _log(f"Error: {e.message}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
