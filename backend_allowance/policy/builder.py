"""
Build the Para policy document from a parent's selections.

Deterministic: the same options always produce the same document.

- restrict_to_base selects Base only, otherwise every supported chain
- max_usd adds a value ceiling only when it is a finite, positive number
- contract deployment is always blocked; callers cannot turn this off
"""

from __future__ import annotations

import math

from backend_allowance.policy.models import (
    ActionKind,
    BlockedActionCondition,
    ChainAllowlistCondition,
    MaxValueCondition,
    PolicyCondition,
    PolicyDocument,
    PolicyScope,
    ScopePermission,
)
from backend_allowance.policy.validator import format_usd

BASE_CHAIN_ID = "8453"
ALL_CHAINS: tuple[str, ...] = ("8453", "1", "137", "42161", "10")

CHAIN_NAMES: dict[str, str] = {
    "8453": "Base",
    "1": "Ethereum",
    "137": "Polygon",
    "42161": "Arbitrum",
    "10": "Optimism",
}

DEFAULT_POLICY_NAME = "Child Allowance Policy"
ALWAYS_BLOCKED_ACTION = ActionKind.DEPLOY


def chain_name(chain_id: str) -> str:
    return CHAIN_NAMES.get(chain_id, f"Chain {chain_id}")


def effective_usd_limit(max_usd: float | None) -> float | None:
    """Return max_usd when it imposes a limit (finite and > 0), else None."""
    if max_usd is None or isinstance(max_usd, bool):
        return None
    try:
        value = float(max_usd)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def build_policy(
    restrict_to_base: bool,
    max_usd: float | None = None,
    name: str | None = None,
) -> PolicyDocument:
    allowed_chains = (BASE_CHAIN_ID,) if restrict_to_base else ALL_CHAINS
    limit = effective_usd_limit(max_usd)

    conditions: list[PolicyCondition] = [ChainAllowlistCondition(chains=allowed_chains)]
    if limit is not None:
        conditions.append(MaxValueCondition(ceiling=limit))
    conditions.append(BlockedActionCondition(action=ALWAYS_BLOCKED_ACTION))

    desc_parts = ["Base only" if restrict_to_base else "Multiple chains"]
    if limit is not None:
        desc_parts.append(f"max ${format_usd(limit)} USD/tx")

    send_desc = "Allow sending ETH"
    if limit is not None:
        send_desc += f" up to ${format_usd(limit)} USD"
    if restrict_to_base:
        send_desc += " on Base"

    return PolicyDocument(
        name=(name or "").strip() or DEFAULT_POLICY_NAME,
        description=f"Child wallet policy: {', '.join(desc_parts)}",
        allowed_chains=allowed_chains,
        global_conditions=tuple(conditions),
        scopes=(
            PolicyScope(
                name="Send Funds",
                description=send_desc,
                required=True,
                permissions=(ScopePermission(type=ActionKind.TRANSFER.value),),
            ),
            PolicyScope(
                name="Sign Messages",
                description="Allow signing messages for verification",
                required=False,
                permissions=(ScopePermission(type=ActionKind.SIGN.value),),
            ),
        ),
    )
