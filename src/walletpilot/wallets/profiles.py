"""Built-in wallet profiles and the brand registry."""

from __future__ import annotations

from walletpilot.errors import WalletPilotError
from walletpilot.popup.classifier import NotificationType, SignatureTable
from walletpilot.wallets.base import ButtonStep, PopupAction, WalletBrand, WalletProfile

METAMASK_SIGNATURES = SignatureTable.from_pairs([
    (NotificationType.SPENDING_CAP, "Spending cap request"),
    (NotificationType.SIGNATURE, "Signature request"),
    (NotificationType.TRANSACTION, "Network fee"),
    (NotificationType.REMOVE_SPEND_CAP, "Remove Permission"),
])

# Matching is case-insensitive substring; bare words like "sign" would also
# hit "Design", so signatures are matched by phrase and connect is tested first.
PHANTOM_SIGNATURES = SignatureTable.from_pairs([
    (NotificationType.CONNECT, "connect"),
    (NotificationType.SPENDING_CAP, "spending cap"),
    (NotificationType.TOKEN_PERMISSION, "permission"),
    (NotificationType.SIGNATURE, "sign message"),
    (NotificationType.SIGNATURE, "signature request"),
])

METAMASK = WalletProfile(
    brand=WalletBrand.METAMASK,
    notification_path="notification.html",
    signatures=METAMASK_SIGNATURES,
    viewport={"width": 360, "height": 580},
    actions={
        PopupAction.CONNECT: ButtonStep("Connect"),
        PopupAction.CONFIRM_TRANSACTION: ButtonStep("Confirm"),
        PopupAction.REJECT_TRANSACTION: ButtonStep("Cancel"),
        PopupAction.APPROVE_TOKEN_PERMISSION: ButtonStep("Confirm"),
        PopupAction.REJECT_TOKEN_PERMISSION: ButtonStep("Reject"),
        PopupAction.CONFIRM_SPENDING_CAP_REMOVAL: ButtonStep("Confirm"),
        PopupAction.REJECT_SPENDING_CAP_REMOVAL: ButtonStep("Cancel"),
        PopupAction.SIGN: ButtonStep("Confirm"),
        PopupAction.REJECT_SIGNATURE: ButtonStep("Cancel"),
        PopupAction.APPROVE_ADD_NETWORK: ButtonStep("Approve"),
        PopupAction.REJECT_ADD_NETWORK: ButtonStep("Cancel"),
        PopupAction.APPROVE_SWITCH_NETWORK: ButtonStep("Switch network"),
        PopupAction.REJECT_SWITCH_NETWORK: ButtonStep("Cancel"),
    },
    recoverable=frozenset({
        PopupAction.CONFIRM_TRANSACTION,
        PopupAction.REJECT_TRANSACTION,
        PopupAction.APPROVE_TOKEN_PERMISSION,
        PopupAction.REJECT_TOKEN_PERMISSION,
        PopupAction.CONFIRM_SPENDING_CAP_REMOVAL,
        PopupAction.REJECT_SPENDING_CAP_REMOVAL,
    }),
)

COINBASE = WalletProfile(
    brand=WalletBrand.COINBASE,
    notification_path="index.html?inPageRequest=true",
    viewport={"width": 360, "height": 592},
    actions={
        PopupAction.CONNECT: ButtonStep("Connect"),
        PopupAction.CONFIRM_TRANSACTION: ButtonStep("Confirm"),
        PopupAction.REJECT_TRANSACTION: ButtonStep("Cancel"),
        PopupAction.SIGN: ButtonStep("Sign"),
        PopupAction.REJECT_SIGNATURE: ButtonStep("Cancel"),
    },
    recoverable=frozenset({
        PopupAction.CONFIRM_TRANSACTION,
        PopupAction.REJECT_TRANSACTION,
    }),
)

PHANTOM = WalletProfile(
    brand=WalletBrand.PHANTOM,
    notification_path="notification.html",
    signatures=PHANTOM_SIGNATURES,
    viewport={"width": 360, "height": 580},
    actions={
        PopupAction.CONNECT: ButtonStep("Connect"),
        PopupAction.CONFIRM_TRANSACTION: ButtonStep("Confirm"),
        PopupAction.REJECT_TRANSACTION: ButtonStep("Cancel"),
    },
)

PROFILES: dict[WalletBrand, WalletProfile] = {
    profile.brand: profile for profile in (METAMASK, COINBASE, PHANTOM)
}


def get_profile(brand: WalletBrand | str) -> WalletProfile:
    """Look up the profile for a brand name."""
    try:
        return PROFILES[WalletBrand(brand)]
    except ValueError as e:
        raise WalletPilotError(
            f"Unknown wallet brand {brand!r}; expected one of {', '.join(WalletBrand)}"
        ) from e
