"""
Wallet policies — models, builder, local validator and the stopgap policy store.
"""

from backend_allowance.policy.builder import build_policy
from backend_allowance.policy.models import (
    ActionKind,
    BlockedActionCondition,
    ChainAllowlistCondition,
    MaxValueCondition,
    PolicyDocument,
    TransactionRequest,
    WalletPolicyRecord,
)
from backend_allowance.policy.storage import PolicyStore
from backend_allowance.policy.validator import (
    RejectionCode,
    ValidationResult,
    evaluate,
    validate_wallet_transaction,
)

__all__ = [
    "ActionKind",
    "BlockedActionCondition",
    "ChainAllowlistCondition",
    "MaxValueCondition",
    "PolicyDocument",
    "PolicyStore",
    "RejectionCode",
    "TransactionRequest",
    "ValidationResult",
    "WalletPolicyRecord",
    "build_policy",
    "evaluate",
    "validate_wallet_transaction",
]
