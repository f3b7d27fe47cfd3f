"""
External wallet provider clients. Para is the only provider.
"""

from backend_allowance.providers.para import (
    CreatedWallet,
    ParaWalletProvider,
    SignedTransaction,
    WalletProvider,
    WALLET_KIND_EVM,
)

__all__ = [
    "CreatedWallet",
    "ParaWalletProvider",
    "SignedTransaction",
    "WalletProvider",
    "WALLET_KIND_EVM",
]
