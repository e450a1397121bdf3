"""
Wallet brand drivers built on the popup machinery.

Brands are selected by configuration and differ only in their profile.
"""

from walletpilot.wallets.base import (
    ButtonStep,
    PopupAction,
    WalletBrand,
    WalletDriver,
    WalletProfile,
)
from walletpilot.wallets.driver import PopupWalletDriver, create_wallet_driver
from walletpilot.wallets.profiles import (
    COINBASE,
    METAMASK,
    METAMASK_SIGNATURES,
    PHANTOM,
    PHANTOM_SIGNATURES,
    PROFILES,
    get_profile,
)

__all__ = [
    "ButtonStep",
    "PopupAction",
    "WalletBrand",
    "WalletDriver",
    "WalletProfile",
    "PopupWalletDriver",
    "create_wallet_driver",
    "COINBASE",
    "METAMASK",
    "METAMASK_SIGNATURES",
    "PHANTOM",
    "PHANTOM_SIGNATURES",
    "PROFILES",
    "get_profile",
]
