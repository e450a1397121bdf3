"""Profile-driven implementation of the wallet capability interface."""

from __future__ import annotations

import structlog

from walletpilot.config import PopupSettings
from walletpilot.driver import BrowserSession, PageHandle
from walletpilot.errors import UnsupportedActionError
from walletpilot.popup.classifier import NotificationType
from walletpilot.popup.session import NotificationSession
from walletpilot.popup.waiter import wait_for_page_close
from walletpilot.wallets.base import PopupAction, WalletBrand, WalletProfile
from walletpilot.wallets.profiles import get_profile

logger = structlog.get_logger(__name__)


class PopupWalletDriver:
    """
    Drives one wallet's notification popups according to its profile.

    Each action clicks the profile's button and then waits for the popup to
    close, so the next lookup cannot pick up the window just handled.
    """

    def __init__(
        self,
        profile: WalletProfile,
        session: BrowserSession,
        extension_id: str,
        settings: PopupSettings | None = None,
    ) -> None:
        settings = settings or PopupSettings()
        if profile.viewport is not None and settings.viewport != profile.viewport:
            settings = settings.model_copy(update={"viewport": dict(profile.viewport)})

        self._profile = profile
        self._extension_id = extension_id
        self._popups = NotificationSession(
            session, profile.notification_url(extension_id), settings
        )
        self._log = logger.bind(component="wallet_driver", brand=str(profile.brand))

    @property
    def brand(self) -> WalletBrand:
        return self._profile.brand

    @property
    def profile(self) -> WalletProfile:
        return self._profile

    @property
    def notification_url(self) -> str:
        return self._profile.notification_url(self._extension_id)

    @property
    def popups(self) -> NotificationSession:
        return self._popups

    async def resolve_notification_page(self) -> PageHandle:
        return await self._popups.get_page()

    async def identify_notification(self) -> NotificationType:
        if self._profile.signatures is None:
            raise UnsupportedActionError(
                f"{self._profile.brand} notifications cannot be classified"
            )
        return await self._popups.identify(self._profile.signatures)

    async def handle(self, action: PopupAction) -> None:
        """
        Perform a popup action.

        Raises:
            UnsupportedActionError: If the profile has no step for the action
        """
        step = self._profile.actions.get(PopupAction(action))
        if step is None:
            raise UnsupportedActionError(
                f"{self._profile.brand} does not support {action}"
            )

        close_timeout = self._popups.settings.close_wait_timeout_ms

        async def perform(page: PageHandle) -> None:
            await step.perform(page)
            if not await wait_for_page_close(page, close_timeout):
                self._log.debug("Popup still open after action", action=str(action))

        self._log.info("Handling popup action", action=str(action))
        if action in self._profile.recoverable:
            await self._popups.run(perform)
        else:
            await self._popups.run_once(perform)


def create_wallet_driver(
    brand: WalletBrand | str,
    session: BrowserSession,
    extension_id: str,
    settings: PopupSettings | None = None,
) -> PopupWalletDriver:
    """Build the driver for a configured wallet brand."""
    return PopupWalletDriver(get_profile(brand), session, extension_id, settings)
