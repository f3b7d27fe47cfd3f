"""
Domain models for wallet policies.

A policy is the Para Permissions document the parent configures for a child
wallet: allowed chains plus an ordered list of global conditions. Conditions
form a closed tagged union of three kinds, each carrying only its own value:

    ChainAllowlistCondition   {"type": "chain",  "operator": "in",              "value": ["8453"]}
    MaxValueCondition         {"type": "value",  "operator": "lessThanOrEqual", "value": 15}
    BlockedActionCondition    {"type": "action", "operator": "notEquals",       "value": "deploy"}

The wire format (to_dict/from_dict) is the JSON persisted by the policy store
and returned to clients; no ORM coupling.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Union

from backend_allowance.core.exceptions import PolicyFormatError

POLICY_VERSION = "1.0"


class ConditionKind(str, Enum):
    CHAIN = "chain"
    VALUE = "value"
    ACTION = "action"


class ConditionOperator(str, Enum):
    IN = "in"
    LESS_THAN_OR_EQUAL = "lessThanOrEqual"
    NOT_EQUALS = "notEquals"


class ActionKind(str, Enum):
    TRANSFER = "transfer"
    SIGN = "sign"
    CONTRACT_CALL = "contractCall"
    DEPLOY = "deploy"


def _parse_action(raw: Any) -> ActionKind:
    try:
        return ActionKind(raw)
    except ValueError:
        raise PolicyFormatError(f"Unknown action type: {raw!r}") from None


@dataclass(frozen=True)
class ChainAllowlistCondition:
    """Requested chain must be a member of `chains`."""

    kind: ClassVar[ConditionKind] = ConditionKind.CHAIN
    operator: ClassVar[ConditionOperator] = ConditionOperator.IN

    chains: tuple[str, ...]

    def value(self) -> list[str]:
        return list(self.chains)


@dataclass(frozen=True)
class MaxValueCondition:
    """Requested USD value must be <= `ceiling`."""

    kind: ClassVar[ConditionKind] = ConditionKind.VALUE
    operator: ClassVar[ConditionOperator] = ConditionOperator.LESS_THAN_OR_EQUAL

    ceiling: float

    def __post_init__(self) -> None:
        if isinstance(self.ceiling, bool) or not isinstance(self.ceiling, (int, float)):
            raise PolicyFormatError(f"USD ceiling must be a number, got {self.ceiling!r}")
        if not math.isfinite(self.ceiling) or self.ceiling < 0:
            raise PolicyFormatError(f"USD ceiling must be finite and non-negative, got {self.ceiling!r}")

    def value(self) -> float | int:
        # Integral ceilings stay ints on the wire ({"value": 15}, not 15.0)
        return int(self.ceiling) if float(self.ceiling).is_integer() else self.ceiling


@dataclass(frozen=True)
class BlockedActionCondition:
    """Requested action must not equal `action`."""

    kind: ClassVar[ConditionKind] = ConditionKind.ACTION
    operator: ClassVar[ConditionOperator] = ConditionOperator.NOT_EQUALS

    action: ActionKind

    def value(self) -> str:
        return self.action.value


PolicyCondition = Union[ChainAllowlistCondition, MaxValueCondition, BlockedActionCondition]

_CONDITION_TYPES: dict[ConditionKind, type] = {
    ConditionKind.CHAIN: ChainAllowlistCondition,
    ConditionKind.VALUE: MaxValueCondition,
    ConditionKind.ACTION: BlockedActionCondition,
}


def condition_to_dict(condition: PolicyCondition) -> dict[str, Any]:
    return {
        "type": condition.kind.value,
        "operator": condition.operator.value,
        "value": condition.value(),
    }


def condition_from_dict(raw: dict[str, Any]) -> PolicyCondition:
    """
    Parse a wire condition. The operator must match the kind
    (chain→in, value→lessThanOrEqual, action→notEquals).
    """
    if not isinstance(raw, dict):
        raise PolicyFormatError("Condition must be an object")
    try:
        kind = ConditionKind(raw.get("type"))
    except ValueError:
        raise PolicyFormatError(f"Unknown condition type: {raw.get('type')!r}") from None
    cls = _CONDITION_TYPES[kind]
    if raw.get("operator") != cls.operator.value:
        raise PolicyFormatError(
            f"Condition '{kind.value}' requires operator '{cls.operator.value}', got {raw.get('operator')!r}"
        )
    value = raw.get("value")
    if cls is ChainAllowlistCondition:
        if not isinstance(value, (list, tuple)):
            raise PolicyFormatError("Chain condition value must be a list of chain IDs")
        return ChainAllowlistCondition(chains=tuple(str(c) for c in value))
    if cls is MaxValueCondition:
        return MaxValueCondition(ceiling=value)
    return BlockedActionCondition(action=_parse_action(value))


@dataclass(frozen=True)
class ScopePermission:
    type: str
    conditions: tuple[PolicyCondition, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "conditions": [condition_to_dict(c) for c in self.conditions]}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ScopePermission":
        return cls(
            type=str(raw.get("type", "")),
            conditions=tuple(condition_from_dict(c) for c in raw.get("conditions") or []),
        )


@dataclass(frozen=True)
class PolicyScope:
    """Named consent grouping shown to the user. Informational; not evaluated."""

    name: str
    description: str
    required: bool
    permissions: tuple[ScopePermission, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "required": self.required,
            "permissions": [p.to_dict() for p in self.permissions],
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "PolicyScope":
        return cls(
            name=str(raw.get("name", "")),
            description=str(raw.get("description", "")),
            required=bool(raw.get("required", False)),
            permissions=tuple(ScopePermission.from_dict(p) for p in raw.get("permissions") or []),
        )


@dataclass(frozen=True)
class PolicyDocument:
    """
    Versioned Para policy document.

    Invariants (checked on construction):
    - version is "1.0"
    - allowed_chains is non-empty
    - every chain condition allows exactly the chains in allowed_chains
    """

    name: str
    description: str
    allowed_chains: tuple[str, ...]
    global_conditions: tuple[PolicyCondition, ...] = ()
    scopes: tuple[PolicyScope, ...] = ()
    version: str = POLICY_VERSION

    def __post_init__(self) -> None:
        if self.version != POLICY_VERSION:
            raise PolicyFormatError(f"Unsupported policy version: {self.version!r}")
        if not self.allowed_chains:
            raise PolicyFormatError("Policy must allow at least one chain")
        allowed = set(self.allowed_chains)
        for cond in self.global_conditions:
            if isinstance(cond, ChainAllowlistCondition) and set(cond.chains) != allowed:
                raise PolicyFormatError("Chain condition does not match allowedChains")

    def conditions_of(self, kind: type) -> list[Any]:
        return [c for c in self.global_conditions if isinstance(c, kind)]

    @property
    def max_usd(self) -> float | None:
        """Tightest USD ceiling, or None when the policy has no value limit."""
        ceilings = [c.ceiling for c in self.conditions_of(MaxValueCondition)]
        return min(ceilings) if ceilings else None

    @property
    def has_usd_limit(self) -> bool:
        return bool(self.conditions_of(MaxValueCondition))

    @property
    def blocked_actions(self) -> list[ActionKind]:
        return [c.action for c in self.conditions_of(BlockedActionCondition)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "name": self.name,
            "description": self.description,
            "allowedChains": list(self.allowed_chains),
            "globalConditions": [condition_to_dict(c) for c in self.global_conditions],
            "scopes": [s.to_dict() for s in self.scopes],
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "PolicyDocument":
        if not isinstance(raw, dict):
            raise PolicyFormatError("Policy must be an object")
        return cls(
            version=str(raw.get("version", "")),
            name=str(raw.get("name", "")),
            description=str(raw.get("description", "")),
            allowed_chains=tuple(str(c) for c in raw.get("allowedChains") or []),
            global_conditions=tuple(condition_from_dict(c) for c in raw.get("globalConditions") or []),
            scopes=tuple(PolicyScope.from_dict(s) for s in raw.get("scopes") or []),
        )


@dataclass(frozen=True)
class WalletPolicyRecord:
    """Persisted unit: one per lowercased child wallet address."""

    wallet_address: str
    parent_address: str
    policy: PolicyDocument
    created_at: int
    """Epoch milliseconds."""
    updated_at: int
    """Epoch milliseconds."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "walletAddress": self.wallet_address,
            "parentAddress": self.parent_address,
            "policy": self.policy.to_dict(),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "WalletPolicyRecord":
        return cls(
            wallet_address=str(raw["walletAddress"]).lower(),
            parent_address=str(raw["parentAddress"]).lower(),
            policy=PolicyDocument.from_dict(raw["policy"]),
            created_at=int(raw.get("createdAt") or 0),
            updated_at=int(raw.get("updatedAt") or 0),
        )


@dataclass(frozen=True)
class TransactionRequest:
    """Proposed transaction; validator input only, never persisted."""

    chain_id: str
    action: ActionKind = ActionKind.TRANSFER
    value_usd: float | None = None
    """USD value; None means the request carries no value to check."""
    to: str | None = None
    value_wei: str | None = None
    data: str | None = None
