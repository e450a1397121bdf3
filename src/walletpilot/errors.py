"""
Error taxonomy for walletpilot.

Every failure surfaced by the popup and retry machinery derives from
WalletPilotError so callers can catch the whole family at once.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from playwright.async_api import Error as PlaywrightError

if TYPE_CHECKING:
    from walletpilot.retry import Attempt


# Substrings Playwright uses when an operation hits a torn-down page
TARGET_CLOSED_MARKERS: tuple[str, ...] = (
    "Target page, context or browser has been closed",
    "Target closed",
    "has been closed",
    "Execution context was destroyed",
)


class WalletPilotError(Exception):
    """Base exception for walletpilot errors."""


class PageNotFoundError(WalletPilotError):
    """Raised when no live page matched the predicate within the timeout."""

    def __init__(self, url_hint: str, timeout_ms: int) -> None:
        self.url_hint = url_hint
        self.timeout_ms = timeout_ms
        super().__init__(
            f"No open page matching {url_hint!r} found after {timeout_ms}ms"
        )


class PageClosedError(WalletPilotError):
    """Raised when the target page closed while it was still needed."""


class ClassificationTimeoutError(WalletPilotError):
    """Raised when no signature matched within the classification timeout."""

    def __init__(self, timeout_ms: int, checked: list[str] | None = None) -> None:
        self.timeout_ms = timeout_ms
        self.checked = checked or []
        super().__init__(
            f"Timed out after {timeout_ms}ms waiting for notification type "
            f"(checked: {', '.join(self.checked) or 'nothing'})"
        )


class StaleTargetError(WalletPilotError):
    """Raised when the single recovery retry on a fresh page also failed."""

    def __init__(self, original: BaseException, retry_error: BaseException) -> None:
        self.original = original
        self.retry_error = retry_error
        super().__init__(
            f"Notification page was stale and recovery failed. "
            f"Original error: {original}. Retry error: {retry_error}"
        )


class AggregateFailureError(WalletPilotError):
    """Raised when a retried operation exhausts its attempt budget."""

    def __init__(
        self,
        attempts: int,
        last_error: BaseException,
        history: list[Attempt] | None = None,
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        self.history = history or []
        super().__init__(
            f"Operation failed after {attempts} attempts. Last error: {last_error}"
        )


class ExtensionNotFoundError(WalletPilotError):
    """Raised when a loaded extension's id cannot be discovered."""


class NodeStartupError(WalletPilotError):
    """Raised when the local chain node fails to start or answer RPC."""


class UnsupportedActionError(WalletPilotError):
    """Raised when a wallet profile has no handler for the requested action."""


def is_target_closed_error(exc: BaseException) -> bool:
    """
    Check whether an exception is the driver's "target closed/detached" signal.

    Matches Playwright's TargetClosedError by class name (it lives in a
    private module), any Playwright Error carrying one of the known closed
    markers, and our own PageClosedError.
    """
    if isinstance(exc, PageClosedError):
        return True

    if any(cls.__name__ == "TargetClosedError" for cls in type(exc).__mro__):
        return True

    if isinstance(exc, PlaywrightError):
        message = exc.message if hasattr(exc, "message") else str(exc)
        return any(marker in message for marker in TARGET_CLOSED_MARKERS)

    return False
