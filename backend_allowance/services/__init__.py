"""
Orchestration services: provisioning (parent) and signing (child).
"""

from backend_allowance.services.provisioning import (
    CreateChildWalletRequest,
    ProvisioningResult,
    ProvisioningService,
)
from backend_allowance.services.signing import (
    SignTransactionRequest,
    SigningOutcome,
    SigningService,
    SigningStatus,
)

__all__ = [
    "CreateChildWalletRequest",
    "ProvisioningResult",
    "ProvisioningService",
    "SignTransactionRequest",
    "SigningOutcome",
    "SigningService",
    "SigningStatus",
]
