"""
Single-retry recovery for actions against a popup torn down mid-interaction.

Wallets reuse or replace notification windows without reliably emitting a
new "page" event, so recovery re-scans the open pages directly instead of
subscribing. Only the "target closed/detached" error class is retried, and
only once; anything else is a selector or logic bug and fails fast.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

from walletpilot.driver import (
    BrowserSession,
    PageHandle,
    UrlPredicate,
    ViewportSize,
    describe_matcher,
)
from walletpilot.errors import PageNotFoundError, StaleTargetError, is_target_closed_error
from walletpilot.popup.waiter import DEFAULT_LOAD_STATE, find_latest_live_page, prepare_page

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_SETTLE_DELAY_MS = 1000

PageAction = Callable[[PageHandle], Awaitable[T]]


async def run_with_recovery(
    resolve_page: Callable[[], Awaitable[PageHandle]],
    action: PageAction[T],
    session: BrowserSession,
    url_predicate: str | UrlPredicate,
    *,
    viewport: ViewportSize | None = None,
    settle_delay_ms: int = DEFAULT_SETTLE_DELAY_MS,
    load_state: str = DEFAULT_LOAD_STATE,
) -> T:
    """
    Run ``action`` on a resolved page, retrying once on a fresh page if the
    first one was closed underneath it.

    Args:
        resolve_page: Produces the initial page (cache-or-resolve)
        action: Interaction to perform on the page
        session: Session re-scanned for a replacement page
        url_predicate: Matcher the replacement page must satisfy
        viewport: Viewport re-applied to the replacement page
        settle_delay_ms: Wait for the stale page to detach before re-scanning
        load_state: Load state awaited on the replacement page

    Returns:
        The action's result

    Raises:
        StaleTargetError: If no replacement page exists or the retry failed
        Exception: Any non closed-target error from the first attempt, unchanged
    """
    page = await resolve_page()
    try:
        return await action(page)
    except Exception as original:
        if not is_target_closed_error(original):
            raise

        logger.info(
            "Notification page was stale, retrying with fresh page",
            url=describe_matcher(url_predicate),
            error=str(original),
        )
        await asyncio.sleep(settle_delay_ms / 1000)

        fresh = find_latest_live_page(session, url_predicate)
        if fresh is None:
            missing = PageNotFoundError(describe_matcher(url_predicate), settle_delay_ms)
            raise StaleTargetError(original, missing) from missing

        await prepare_page(fresh, viewport, load_state)

        try:
            return await action(fresh)
        except Exception as retry_error:
            logger.warning(
                "Retry on fresh notification page failed",
                original_error=str(original),
                retry_error=str(retry_error),
            )
            raise StaleTargetError(original, retry_error) from retry_error
