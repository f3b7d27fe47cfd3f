"""
Enforcement self-check.

Provisions two throwaway wallets with different USD limits in an isolated
policy store and runs the canonical checks against the local validator:
over-limit, wrong chain, valid transfer, blocked deploy. Never touches the
real store; used by the /api/test/enforcement endpoint and by tests.
"""

from __future__ import annotations

import secrets
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from backend_allowance.allowance_logging import get_logger
from backend_allowance.policy.builder import BASE_CHAIN_ID, build_policy
from backend_allowance.policy.models import ActionKind, TransactionRequest
from backend_allowance.policy.storage import PolicyStore
from backend_allowance.policy.validator import RejectionCode, validate_wallet_transaction

logger = get_logger(__name__)

ETHEREUM_CHAIN_ID = "1"


def random_evm_address() -> str:
    return "0x" + secrets.token_hex(20)


@dataclass
class EnforcementStep:
    step: str
    passed: bool
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"step": self.step, "result": "PASS" if self.passed else "FAIL", "details": self.details}


@dataclass
class EnforcementReport:
    steps: list[EnforcementStep]
    stored_policies: int

    @property
    def all_passed(self) -> bool:
        return all(s.passed for s in self.steps)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "summary": "ALL TESTS PASSED" if self.all_passed else "SOME TESTS FAILED",
            "serverSideEnforcement": True,
            "storedPoliciesCount": self.stored_policies,
            "results": [s.to_dict() for s in self.steps],
        }


def _expect_denied(
    steps: list[EnforcementStep],
    label: str,
    store: PolicyStore,
    wallet: str,
    tx: TransactionRequest,
    code: RejectionCode,
) -> None:
    result = validate_wallet_transaction(store, wallet, tx)
    steps.append(
        EnforcementStep(
            label,
            passed=not result.allowed and result.code is code,
            details={"allowed": result.allowed, "error": result.error, "condition": result.code.value if result.code else None},
        )
    )


def run_enforcement_scenario(store: PolicyStore | None = None) -> EnforcementReport:
    """Run the two-wallet scenario. A temp-dir store is used (and removed) when none is given."""
    if store is None:
        with tempfile.TemporaryDirectory(prefix="allowance-enforcement-") as tmp_dir:
            return _run(PolicyStore(Path(tmp_dir) / "policies.json"))
    return _run(store)


def _run(store: PolicyStore) -> EnforcementReport:
    steps: list[EnforcementStep] = []
    wallet_a, wallet_b = random_evm_address(), random_evm_address()
    parent_a, parent_b = random_evm_address(), random_evm_address()

    store.put(wallet_a, parent_a, build_policy(True, 15, "Wallet A - $15 Limit"))
    steps.append(EnforcementStep("1. Create Wallet A (max $15, Base only)", True, {"walletAddress": wallet_a, "usdLimit": 15}))
    store.put(wallet_b, parent_b, build_policy(True, 5, "Wallet B - $5 Limit"))
    steps.append(EnforcementStep("2. Create Wallet B (max $5, Base only)", True, {"walletAddress": wallet_b, "usdLimit": 5}))

    steps.append(
        EnforcementStep(
            "3. Verify addresses are different",
            wallet_a.lower() != wallet_b.lower(),
            {"walletA": wallet_a, "walletB": wallet_b},
        )
    )

    _expect_denied(
        steps,
        "4. Wallet B: $10 transfer (above $5 limit)",
        store,
        wallet_b,
        TransactionRequest(chain_id=BASE_CHAIN_ID, action=ActionKind.TRANSFER, value_usd=10),
        RejectionCode.VALUE_LIMIT,
    )
    _expect_denied(
        steps,
        "5. Wallet A: transfer on Ethereum (only Base allowed)",
        store,
        wallet_a,
        TransactionRequest(chain_id=ETHEREUM_CHAIN_ID, action=ActionKind.TRANSFER, value_usd=5),
        RejectionCode.CHAIN_RESTRICTION,
    )

    valid = validate_wallet_transaction(
        store, wallet_a, TransactionRequest(chain_id=BASE_CHAIN_ID, action=ActionKind.TRANSFER, value_usd=10)
    )
    steps.append(EnforcementStep("6. Wallet A: $10 transfer on Base (valid)", valid.allowed, {"allowed": valid.allowed}))

    _expect_denied(
        steps,
        "7. Wallet A: contract deploy (always blocked)",
        store,
        wallet_a,
        TransactionRequest(chain_id=BASE_CHAIN_ID, action=ActionKind.DEPLOY, value_usd=0),
        RejectionCode.ACTION_RESTRICTION,
    )

    report = EnforcementReport(steps=steps, stored_policies=len(store.list_all()))
    logger.info("enforcement_scenario_finished", all_passed=report.all_passed, steps=len(steps))
    return report
