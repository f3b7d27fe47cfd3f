"""
Transaction signing — child action.

received -> address/chain validated -> policy lookup
  not found                       -> NO_POLICY
  found, no Para key configured   -> local validator (simulated=True) -> ALLOWED | DENIED
  found, Para key configured      -> Para signs or rejects            -> ALLOWED | DENIED

With Para configured, walletId is required (400). Only a policy refusal from
Para becomes DENIED; other Para failures propagate as ProviderError (500).

Local evaluation is a stand-in for Para's own enforcement and its outcome has
the same shape Para's approval/rejection maps to. No retries within a request.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from backend_allowance.allowance_logging import get_logger, short_address
from backend_allowance.core.exceptions import InvalidRequestError, ProviderRejectedError
from backend_allowance.policy.builder import chain_name
from backend_allowance.policy.models import ActionKind, TransactionRequest, WalletPolicyRecord
from backend_allowance.policy.storage import PolicyStore
from backend_allowance.policy.validator import RejectionCode, ValidationResult, evaluate
from backend_allowance.providers.para import WalletProvider
from backend_allowance.utils.wallet_utils import require_wallet

logger = get_logger(__name__)


class SigningStatus(str, Enum):
    ALLOWED = "allowed"
    DENIED = "denied"
    NO_POLICY = "no_policy"


@dataclass(frozen=True)
class SignTransactionRequest:
    wallet_address: str | None
    chain_id: str | None
    transaction_type: str = ActionKind.TRANSFER.value
    to: str | None = None
    value_usd: float | None = None
    value_wei: str | None = None
    data: str | None = None
    wallet_id: str | None = None


@dataclass(frozen=True)
class SigningOutcome:
    status: SigningStatus
    wallet_address: str
    chain_id: str
    simulated: bool
    result: ValidationResult | None = None
    record: WalletPolicyRecord | None = None
    signature: str | None = None

    @property
    def allowed(self) -> bool:
        return self.status is SigningStatus.ALLOWED

    def policy_summary(self) -> dict[str, Any] | None:
        if self.record is None:
            return None
        policy = self.record.policy
        return {
            "name": policy.name,
            "allowedChains": list(policy.allowed_chains),
            "allowedChainNames": [chain_name(c) for c in policy.allowed_chains],
            "hasUsdLimit": policy.has_usd_limit,
            "usdLimit": policy.max_usd,
            "blockedActions": [a.value for a in policy.blocked_actions],
        }


def parse_transaction(req: SignTransactionRequest) -> tuple[str, TransactionRequest]:
    """Validate the request fields; returns (wallet_address, TransactionRequest)."""
    wallet = require_wallet(req.wallet_address)
    chain_id = str(req.chain_id).strip() if req.chain_id is not None else ""
    if not chain_id:
        raise InvalidRequestError("Chain ID required")
    try:
        action = ActionKind(req.transaction_type or ActionKind.TRANSFER.value)
    except ValueError:
        raise InvalidRequestError(f"Unknown transaction type: {req.transaction_type!r}") from None
    value_usd = req.value_usd
    if value_usd is not None:
        if isinstance(value_usd, bool) or not isinstance(value_usd, (int, float)) or not math.isfinite(value_usd):
            raise InvalidRequestError("valueUsd must be a finite number")
        value_usd = float(value_usd)
    return wallet, TransactionRequest(
        chain_id=chain_id,
        action=action,
        value_usd=value_usd,
        to=req.to,
        value_wei=req.value_wei,
        data=req.data,
    )


class SigningService:
    def __init__(self, store: PolicyStore, provider: WalletProvider | None) -> None:
        self.store = store
        self.provider = provider

    def sign_transaction(self, req: SignTransactionRequest) -> SigningOutcome:
        wallet, tx = parse_transaction(req)
        log = logger.bind(wallet=short_address(wallet), chain_id=tx.chain_id, action=tx.action.value)
        log.info("sign_transaction_requested", chain=chain_name(tx.chain_id), value_usd=tx.value_usd)

        record = self.store.get(wallet)
        simulated = self.provider is None
        if record is None:
            log.info("sign_transaction_no_policy")
            return SigningOutcome(
                status=SigningStatus.NO_POLICY,
                wallet_address=wallet,
                chain_id=tx.chain_id,
                simulated=simulated,
                result=ValidationResult.deny(RejectionCode.NO_POLICY, "No policy found for this wallet"),
            )

        if self.provider is None:
            result = evaluate(record.policy, tx)
            log.info(
                "sign_transaction_simulated",
                allowed=result.allowed,
                condition=result.code.value if result.code else None,
            )
            return SigningOutcome(
                status=SigningStatus.ALLOWED if result.allowed else SigningStatus.DENIED,
                wallet_address=wallet,
                chain_id=tx.chain_id,
                simulated=True,
                result=result,
                record=record,
            )

        if not req.wallet_id:
            raise InvalidRequestError("walletId required")
        try:
            signed = self.provider.sign_transaction(req.wallet_id, wallet, tx)
        except ProviderRejectedError as e:
            if not e.is_policy_rejection:
                log.warning("sign_transaction_provider_error", error=e.message, upstream_status=e.upstream_status)
                raise
            log.info("sign_transaction_provider_rejected", error=e.message, upstream_status=e.upstream_status)
            return SigningOutcome(
                status=SigningStatus.DENIED,
                wallet_address=wallet,
                chain_id=tx.chain_id,
                simulated=False,
                result=ValidationResult.deny(RejectionCode.PROVIDER_REJECTION, e.message, record.policy),
                record=record,
            )
        log.info("sign_transaction_signed")
        return SigningOutcome(
            status=SigningStatus.ALLOWED,
            wallet_address=wallet,
            chain_id=tx.chain_id,
            simulated=False,
            result=ValidationResult.allow(record.policy),
            record=record,
            signature=signed.signature,
        )
