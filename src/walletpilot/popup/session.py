"""
Session-scoped owner of the cached notification page.

Classification resolves the popup and keeps it in a single slot so the
action that immediately follows does not look the popup up a second time
(and risk picking a stale window). The slot lives on this object, one per
wallet session, never at module level.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

from walletpilot.config import PopupSettings
from walletpilot.driver import BrowserSession, PageHandle, UrlPredicate, describe_matcher
from walletpilot.popup.classifier import NotificationType, SignatureTable, classify
from walletpilot.popup.recovery import run_with_recovery
from walletpilot.popup.waiter import resolve_page

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class NotificationSession:
    """
    Resolves, classifies and acts on one wallet's notification popups.

    Usage:
        popups = NotificationSession(context, "chrome-extension://abc/notification.html")
        kind = await popups.identify(METAMASK_SIGNATURES)
        await popups.run(lambda page: page.get_by_role("button", name="Confirm").click())
    """

    def __init__(
        self,
        session: BrowserSession,
        url_predicate: str | UrlPredicate,
        settings: PopupSettings | None = None,
    ) -> None:
        self._session = session
        self._url_predicate = url_predicate
        self._settings = settings or PopupSettings()
        self._cached_page: PageHandle | None = None
        self._log = logger.bind(
            component="notification_session",
            url=describe_matcher(url_predicate),
        )

    @property
    def settings(self) -> PopupSettings:
        return self._settings

    @property
    def url_predicate(self) -> str | UrlPredicate:
        return self._url_predicate

    @property
    def cached(self) -> PageHandle | None:
        """Currently cached page, without consuming it."""
        return self._cached_page

    def clear(self) -> None:
        """Invalidate the cached page."""
        self._cached_page = None

    async def _take_cached(self) -> PageHandle | None:
        """Consume the cached page if it is still open and responsive."""
        cached = self._cached_page
        self._cached_page = None
        if cached is None or cached.is_closed():
            return None

        try:
            await cached.evaluate("() => document.readyState")
        except Exception as e:
            self._log.debug("Cached notification page unusable", error=str(e))
            return None
        return cached

    async def _resolve_fresh(self) -> PageHandle:
        return await resolve_page(
            self._session,
            self._url_predicate,
            self._settings.page_timeout_ms,
            self._settings.viewport_size,
            poll_interval_ms=self._settings.poll_interval_ms,
            load_state=self._settings.load_state,
        )

    async def get_page(self) -> PageHandle:
        """
        Return the notification page: the cached one if still usable,
        otherwise a freshly resolved one.

        Raises:
            PageNotFoundError: If no popup appeared within page_timeout_ms
        """
        cached = await self._take_cached()
        if cached is not None:
            self._log.debug("Reusing cached notification page")
            return cached
        return await self._resolve_fresh()

    async def identify(
        self,
        signature_table: SignatureTable,
        global_timeout_ms: int | None = None,
        poll_interval_ms: int | None = None,
    ) -> NotificationType:
        """
        Resolve the current popup, cache it and classify it.

        The cache is cleared first so classification never runs against a
        popup left over from an earlier request.

        Raises:
            PageNotFoundError: If no popup appeared
            PageClosedError: If the popup closed before it could be classified
            ClassificationTimeoutError: If no signature became visible in time
        """
        self.clear()
        page = await self._resolve_fresh()
        self._cached_page = page

        if self._settings.classify_settle_ms:
            await asyncio.sleep(self._settings.classify_settle_ms / 1000)

        try:
            kind = await classify(
                page,
                signature_table,
                self._settings.classify_timeout_ms if global_timeout_ms is None else global_timeout_ms,
                self._settings.classify_poll_interval_ms if poll_interval_ms is None else poll_interval_ms,
            )
        except Exception:
            self.clear()
            raise
        self._log.info("Notification identified", type=str(kind))
        return kind

    async def run(self, action: Callable[[PageHandle], Awaitable[T]]) -> T:
        """Run an action on the popup with one stale-window retry."""
        return await run_with_recovery(
            self.get_page,
            action,
            self._session,
            self._url_predicate,
            viewport=self._settings.viewport_size,
            settle_delay_ms=self._settings.stale_settle_ms,
            load_state=self._settings.load_state,
        )

    async def run_once(self, action: Callable[[PageHandle], Awaitable[T]]) -> T:
        """Run an action on the popup without recovery."""
        page = await self.get_page()
        return await action(page)
