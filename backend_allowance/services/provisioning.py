"""
Child wallet provisioning — parent action.

Fixed sequence, each step gated on the previous one:

1. verify payment (or dev-mode bypass when no payment backend is configured)
2. build the policy document from the parent's selections
3. create the wallet via Para
4. store the policy under the address Para returned

Para's wallet creation API takes no policy, so per-wallet limits live in the
policy store and are checked before signing (see services.signing).
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

from backend_allowance.allowance_logging import get_logger, short_address
from backend_allowance.core.exceptions import ProviderRejectedError, ProviderUnavailableError
from backend_allowance.payments.verifier import PaymentVerifier, verify_payment
from backend_allowance.policy.builder import build_policy
from backend_allowance.policy.models import PolicyDocument, WalletPolicyRecord
from backend_allowance.policy.storage import PolicyStore
from backend_allowance.providers.para import WALLET_KIND_EVM, WalletProvider
from backend_allowance.utils.wallet_utils import is_valid_wallet, normalize_address, require_wallet

logger = get_logger(__name__)


@dataclass(frozen=True)
class CreateChildWalletRequest:
    parent_wallet_address: str | None
    restrict_to_base: bool = False
    max_usd: float | None = None
    policy_name: str | None = None
    payment_token: str | None = None
    dev_mode: bool = False


@dataclass(frozen=True)
class ProvisioningResult:
    wallet_address: str
    wallet_id: str | None
    record: WalletPolicyRecord
    restrict_to_base: bool

    @property
    def policy(self) -> PolicyDocument:
        return self.record.policy

    def policy_summary(self) -> dict[str, Any]:
        return {
            "name": self.policy.name,
            "allowedChains": list(self.policy.allowed_chains),
            "hasUsdLimit": self.policy.has_usd_limit,
            "usdLimit": self.policy.max_usd,
            "restrictToBase": self.restrict_to_base,
        }


def child_identity_seed(parent_address: str, now_ms: int) -> str:
    """Custom ID for the pregenerated wallet: child_<parent lowercase>_<epoch ms>."""
    return f"child_{normalize_address(parent_address)}_{now_ms}"


class ProvisioningService:
    def __init__(
        self,
        store: PolicyStore,
        provider: WalletProvider | None,
        payment_verifier: PaymentVerifier | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.store = store
        self.provider = provider
        self.payment_verifier = payment_verifier
        self._clock = clock or (lambda: int(time.time() * 1000))

    def create_child_wallet(self, req: CreateChildWalletRequest) -> ProvisioningResult:
        parent = require_wallet(req.parent_wallet_address, "Parent wallet address")
        logger.info(
            "create_wallet_requested",
            parent=short_address(parent),
            restrict_to_base=req.restrict_to_base,
            max_usd=req.max_usd,
            dev_mode=req.dev_mode,
        )

        verify_payment(self.payment_verifier, req.payment_token, req.dev_mode)

        policy = build_policy(req.restrict_to_base, req.max_usd, req.policy_name)
        logger.info(
            "policy_built",
            policy_name=policy.name,
            allowed_chains=list(policy.allowed_chains),
            condition_count=len(policy.global_conditions),
        )

        if self.provider is None:
            raise ProviderUnavailableError("Para API key not configured. Set PARA_SECRET_KEY in environment.")
        seed = child_identity_seed(parent, self._clock())
        wallet = self.provider.create_wallet(WALLET_KIND_EVM, seed)
        if not wallet.address or not is_valid_wallet(wallet.address):
            logger.error("provider_bad_wallet_address", parent=short_address(parent), wallet_id=wallet.id)
            raise ProviderRejectedError("Para SDK returned no wallet address")

        record = self.store.put(wallet.address, parent, policy)
        logger.info(
            "child_wallet_provisioned",
            wallet=short_address(wallet.address),
            parent=short_address(parent),
            wallet_id=wallet.id,
        )
        return ProvisioningResult(
            wallet_address=wallet.address,
            wallet_id=wallet.id,
            record=record,
            restrict_to_base=req.restrict_to_base,
        )

    def update_child_policy(
        self,
        wallet_address: str,
        parent_wallet_address: str | None,
        restrict_to_base: bool,
        max_usd: float | None = None,
        policy_name: str | None = None,
    ) -> WalletPolicyRecord | None:
        """Rebuild and replace a child's policy. None when the wallet is missing or not owned by the parent."""
        wallet = require_wallet(wallet_address)
        parent = require_wallet(parent_wallet_address, "Parent wallet address")
        policy = build_policy(restrict_to_base, max_usd, policy_name)
        record = self.store.update(wallet, parent, policy)
        if record is None:
            logger.info("policy_update_refused", wallet=short_address(wallet), parent=short_address(parent))
        return record

    def revoke_child_wallet(self, wallet_address: str, parent_wallet_address: str | None) -> bool:
        wallet = require_wallet(wallet_address)
        parent = require_wallet(parent_wallet_address, "Parent wallet address")
        return self.store.delete(wallet, parent)
