"""
Resolve a live page out of a browser session's changing page collection.

Extension popups open asynchronously relative to the code that triggered
them. Checking ``session.pages`` and then subscribing to the "page" event
leaves a gap: a popup that opens in between is in neither. The waiter closes
that gap by racing the event subscription against a periodic re-scan of the
open pages, after an initial synchronous scan.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import Any

import structlog

from walletpilot.driver import (
    BrowserSession,
    PageHandle,
    UrlPredicate,
    ViewportSize,
    as_url_predicate,
    describe_matcher,
)
from walletpilot.errors import PageNotFoundError

logger = structlog.get_logger(__name__)

DEFAULT_POLL_INTERVAL_MS = 300
DEFAULT_LOAD_STATE = "domcontentloaded"


def is_live_match(page: Any, predicate: UrlPredicate) -> bool:
    """True if the page is still open and its current URL satisfies the predicate."""
    return not page.is_closed() and predicate(page.url)


def find_live_page(session: BrowserSession, matcher: str | UrlPredicate) -> PageHandle | None:
    """First open page matching the predicate, in session order."""
    predicate = as_url_predicate(matcher)
    for page in session.pages:
        if is_live_match(page, predicate):
            return page
    return None


def find_latest_live_page(session: BrowserSession, matcher: str | UrlPredicate) -> PageHandle | None:
    """Most recently opened open page matching the predicate."""
    predicate = as_url_predicate(matcher)
    matches = [p for p in session.pages if is_live_match(p, predicate)]
    return matches[-1] if matches else None


async def _await_page_event(session: BrowserSession, predicate: UrlPredicate) -> PageHandle:
    """Push channel: resolve on the first created page that is a live match."""
    found: asyncio.Future[PageHandle] = asyncio.get_running_loop().create_future()

    def on_page(page: PageHandle) -> None:
        if not found.done() and is_live_match(page, predicate):
            found.set_result(page)

    session.on("page", on_page)
    try:
        return await found
    finally:
        session.remove_listener("page", on_page)


async def _poll_open_pages(
    session: BrowserSession,
    predicate: UrlPredicate,
    interval_ms: int,
) -> PageHandle:
    """Pull channel: re-scan open pages until a live match shows up."""
    while True:
        await asyncio.sleep(interval_ms / 1000)
        for page in session.pages:
            if is_live_match(page, predicate):
                return page


async def prepare_page(
    page: PageHandle,
    viewport: ViewportSize | None = None,
    load_state: str = DEFAULT_LOAD_STATE,
    timeout_ms: int | None = None,
) -> None:
    """
    Wait for a minimal load state and apply the viewport.

    Both steps are best-effort: a popup may close the instant after it was
    found, and that is for the caller's action to discover.
    """
    kwargs: dict[str, Any] = {}
    if timeout_ms is not None:
        kwargs["timeout"] = timeout_ms

    try:
        await page.wait_for_load_state(load_state, **kwargs)
    except Exception as e:
        logger.debug("Load state wait failed", state=load_state, url=page.url, error=str(e))

    if viewport is None or page.is_closed():
        return

    try:
        await page.set_viewport_size(viewport)
    except Exception as e:
        logger.debug("Setting viewport failed", url=page.url, error=str(e))


async def resolve_page(
    session: BrowserSession,
    url_predicate: str | UrlPredicate,
    timeout_ms: int,
    viewport: ViewportSize | None = None,
    *,
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    load_state: str = DEFAULT_LOAD_STATE,
) -> PageHandle:
    """
    Find an open page matching ``url_predicate``, waiting up to ``timeout_ms``.

    Args:
        session: Browser session whose pages are searched
        url_predicate: URL substring or predicate over the page URL
        timeout_ms: Total time to wait for a match
        viewport: Viewport to apply once resolved
        poll_interval_ms: Re-scan interval for the polling strategy
        load_state: Load state awaited after resolution

    Returns:
        A page that was open and matching when it was selected. It may close
        at any point afterwards.

    Raises:
        PageNotFoundError: If no live match appeared within the timeout
    """
    predicate = as_url_predicate(url_predicate)
    label = describe_matcher(url_predicate)
    started = time.monotonic()

    page = find_live_page(session, predicate)
    if page is None:
        page = await _race_for_page(session, predicate, label, timeout_ms, poll_interval_ms)
        logger.debug(
            "Page resolved after waiting",
            url=page.url,
            waited_ms=int((time.monotonic() - started) * 1000),
        )
    else:
        logger.debug("Page already open", url=page.url)

    await prepare_page(page, viewport, load_state, timeout_ms)
    return page


async def _race_for_page(
    session: BrowserSession,
    predicate: UrlPredicate,
    label: str,
    timeout_ms: int,
    poll_interval_ms: int,
) -> PageHandle:
    """Run the event and polling strategies together; first live match wins."""
    watchers = {
        asyncio.create_task(_await_page_event(session, predicate), name="page-event"),
        asyncio.create_task(_poll_open_pages(session, predicate, poll_interval_ms), name="page-poll"),
    }

    try:
        done, _ = await asyncio.wait(
            watchers,
            timeout=timeout_ms / 1000,
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        for task in watchers:
            task.cancel()
        for task in watchers:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    if not done:
        logger.warning("Page not found before timeout", url=label, timeout_ms=timeout_ms)
        raise PageNotFoundError(label, timeout_ms)

    # Both strategies can finish in the same tick; either result is valid.
    winner = next(iter(done))
    return winner.result()


async def wait_for_page_close(
    page: PageHandle,
    timeout_ms: int = 5000,
    poll_interval_ms: int = 200,
) -> bool:
    """
    Poll until the page reports closed or the timeout passes.

    Wallets sometimes reuse a popup instead of closing it, so waiting on a
    "close" event can hang forever. Returns whether the page closed.
    """
    deadline = time.monotonic() + timeout_ms / 1000
    while not page.is_closed():
        if time.monotonic() >= deadline:
            return False
        await asyncio.sleep(poll_interval_ms / 1000)
    return True
