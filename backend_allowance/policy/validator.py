"""
Transaction validation against a stored wallet policy.

Local stand-in for the enforcement Para performs at signing time: every
request is evaluated against the policy's global conditions and the first
failing condition rejects it. Used only while PARA_SECRET_KEY is not
configured; once Para signs for real its response replaces this verdict.

Evaluation order is fixed (chain, then action, then value) regardless of how
conditions are ordered in the document, and stops at the first failure.
Absent condition kinds impose no constraint.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from backend_allowance.allowance_logging import get_logger, short_address
from backend_allowance.policy.models import (
    BlockedActionCondition,
    ChainAllowlistCondition,
    MaxValueCondition,
    PolicyDocument,
    TransactionRequest,
)

if TYPE_CHECKING:
    from backend_allowance.policy.storage import PolicyStore

logger = get_logger(__name__)


class RejectionCode(str, Enum):
    NO_POLICY = "no_policy"
    CHAIN_RESTRICTION = "chain_restriction"
    ACTION_RESTRICTION = "action_restriction"
    VALUE_LIMIT = "value_limit"
    PROVIDER_REJECTION = "provider_rejection"


@dataclass(frozen=True)
class ValidationResult:
    """Allow/deny verdict. Denials carry a stable code and a human-readable message."""

    allowed: bool
    code: RejectionCode | None = None
    error: str | None = None
    policy: PolicyDocument | None = None

    @classmethod
    def allow(cls, policy: PolicyDocument) -> "ValidationResult":
        return cls(allowed=True, policy=policy)

    @classmethod
    def deny(
        cls,
        code: RejectionCode,
        error: str,
        policy: PolicyDocument | None = None,
    ) -> "ValidationResult":
        return cls(allowed=False, code=code, error=error, policy=policy)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"allowed": self.allowed}
        if not self.allowed:
            out["error"] = self.error
            out["condition"] = self.code.value if self.code else None
        if self.policy is not None:
            out["policy"] = self.policy.to_dict()
        return out


def format_usd(amount: float) -> str:
    """15.0 -> '15', 12.5 -> '12.5'."""
    return str(int(amount)) if float(amount).is_integer() else str(amount)


def _check_chain(policy: PolicyDocument, tx: TransactionRequest) -> ValidationResult | None:
    for cond in policy.conditions_of(ChainAllowlistCondition):
        if tx.chain_id not in cond.chains:
            return ValidationResult.deny(
                RejectionCode.CHAIN_RESTRICTION,
                f"Chain {tx.chain_id} is not allowed. Allowed chains: {', '.join(cond.chains)}",
                policy,
            )
    return None


def _check_action(policy: PolicyDocument, tx: TransactionRequest) -> ValidationResult | None:
    for cond in policy.conditions_of(BlockedActionCondition):
        if tx.action == cond.action:
            return ValidationResult.deny(
                RejectionCode.ACTION_RESTRICTION,
                f'Action "{tx.action.value}" is blocked by policy',
                policy,
            )
    return None


def _check_value(policy: PolicyDocument, tx: TransactionRequest) -> ValidationResult | None:
    if tx.value_usd is None:
        return None
    for cond in policy.conditions_of(MaxValueCondition):
        if tx.value_usd > cond.ceiling:
            return ValidationResult.deny(
                RejectionCode.VALUE_LIMIT,
                f"Value ${tx.value_usd:.2f} exceeds ${format_usd(cond.ceiling)} limit",
                policy,
            )
    return None


_CHECKS = (_check_chain, _check_action, _check_value)


def evaluate(policy: PolicyDocument, tx: TransactionRequest) -> ValidationResult:
    """Evaluate tx against policy; first failing check wins, otherwise allow with the full policy."""
    for check in _CHECKS:
        rejection = check(policy, tx)
        if rejection is not None:
            return rejection
    return ValidationResult.allow(policy)


def validate_wallet_transaction(
    store: "PolicyStore",
    wallet_address: str,
    tx: TransactionRequest,
) -> ValidationResult:
    """
    Look up the wallet's policy and evaluate tx against it.

    A wallet with no stored policy is denied with no_policy, never with a
    condition-specific code.
    """
    record = store.get(wallet_address)
    if record is None:
        logger.info("validation_no_policy", wallet=short_address(wallet_address))
        return ValidationResult.deny(RejectionCode.NO_POLICY, "No policy found for this wallet")
    result = evaluate(record.policy, tx)
    logger.info(
        "validation_evaluated",
        wallet=short_address(wallet_address),
        chain_id=tx.chain_id,
        action=tx.action.value,
        value_usd=tx.value_usd,
        allowed=result.allowed,
        condition=result.code.value if result.code else None,
    )
    return result
