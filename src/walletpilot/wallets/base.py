"""
Shared wallet capability interface and profile types.

Brand differences are data (a WalletProfile), not subclasses: one driver
implementation composes a NotificationSession with whichever profile the
configuration selects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Mapping, Protocol

from walletpilot.driver import PageHandle, ViewportSize
from walletpilot.popup.classifier import NotificationType, SignatureTable


class WalletBrand(StrEnum):
    """Supported extension wallets."""

    METAMASK = "metamask"
    COINBASE = "coinbase"
    PHANTOM = "phantom"


class PopupAction(StrEnum):
    """Approve/reject actions performed inside a notification popup."""

    CONNECT = "connect"
    CONFIRM_TRANSACTION = "confirm_transaction"
    REJECT_TRANSACTION = "reject_transaction"
    APPROVE_TOKEN_PERMISSION = "approve_token_permission"
    REJECT_TOKEN_PERMISSION = "reject_token_permission"
    CONFIRM_SPENDING_CAP_REMOVAL = "confirm_spending_cap_removal"
    REJECT_SPENDING_CAP_REMOVAL = "reject_spending_cap_removal"
    SIGN = "sign"
    REJECT_SIGNATURE = "reject_signature"
    APPROVE_ADD_NETWORK = "approve_add_network"
    REJECT_ADD_NETWORK = "reject_add_network"
    APPROVE_SWITCH_NETWORK = "approve_switch_network"
    REJECT_SWITCH_NETWORK = "reject_switch_network"


@dataclass(frozen=True)
class ButtonStep:
    """Click the element with this accessible role and name."""

    name: str
    role: str = "button"

    async def perform(self, page: PageHandle) -> None:
        await page.get_by_role(self.role, name=self.name).click()


@dataclass(frozen=True)
class WalletProfile:
    """Everything brand-specific the popup driver needs."""

    brand: WalletBrand
    notification_path: str
    """Path of the popup inside the extension, e.g. ``notification.html``."""

    actions: Mapping[PopupAction, ButtonStep]
    signatures: SignatureTable | None = None
    """Classification table; None when the brand cannot be classified."""

    recoverable: frozenset[PopupAction] = field(default_factory=frozenset)
    """Actions run under stale-window recovery."""

    viewport: ViewportSize | None = None

    def notification_url(self, extension_id: str) -> str:
        return f"chrome-extension://{extension_id}/{self.notification_path}"

    def supports(self, action: PopupAction) -> bool:
        return action in self.actions


class WalletDriver(Protocol):
    """Capability interface every wallet brand driver satisfies."""

    @property
    def brand(self) -> WalletBrand: ...

    @property
    def notification_url(self) -> str: ...

    async def resolve_notification_page(self) -> PageHandle: ...

    async def identify_notification(self) -> NotificationType: ...

    async def handle(self, action: PopupAction) -> None: ...
