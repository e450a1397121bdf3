"""
Browser automation driver boundary.

The popup machinery never owns pages or sessions; it only queries them.
These protocols describe the slice of Playwright's async API that the core
relies on, so a Playwright BrowserContext/Page satisfies them directly and
tests can substitute in-memory fakes.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol, TypedDict, runtime_checkable


class ViewportSize(TypedDict):
    """Viewport dimensions in CSS pixels."""

    width: int
    height: int


UrlPredicate = Callable[[str], bool]
"""Predicate over a page's current URL."""


class LocatorHandle(Protocol):
    """A lazily-evaluated element query on a page."""

    async def is_visible(self) -> bool: ...

    async def click(self, **kwargs: Any) -> None: ...

    async def fill(self, value: str, **kwargs: Any) -> None: ...


@runtime_checkable
class PageHandle(Protocol):
    """One open page. Opaque apart from URL, liveness and interaction."""

    @property
    def url(self) -> str: ...

    def is_closed(self) -> bool: ...

    async def wait_for_load_state(self, state: str = ..., **kwargs: Any) -> None: ...

    async def set_viewport_size(self, viewport_size: ViewportSize) -> None: ...

    async def wait_for_url(self, url: Any, **kwargs: Any) -> None: ...

    async def evaluate(self, expression: str, arg: Any = ...) -> Any: ...

    def get_by_text(self, text: str, **kwargs: Any) -> LocatorHandle: ...

    def get_by_role(self, role: str, **kwargs: Any) -> LocatorHandle: ...


@runtime_checkable
class BrowserSession(Protocol):
    """
    Externally-owned collection of open pages plus a "page" event channel.

    Matches playwright.async_api.BrowserContext: ``pages`` is a snapshot list
    and ``on("page", handler)`` delivers newly created pages.
    """

    @property
    def pages(self) -> list[Any]: ...

    def on(self, event: str, f: Callable[..., Any]) -> None: ...

    def remove_listener(self, event: str, f: Callable[..., Any]) -> None: ...


def as_url_predicate(matcher: str | UrlPredicate) -> UrlPredicate:
    """Normalize a substring or callable into a URL predicate."""
    if isinstance(matcher, str):
        fragment = matcher
        return lambda url: fragment in url
    return matcher


def describe_matcher(matcher: str | UrlPredicate) -> str:
    """Human-readable label for a matcher, used in errors and logs."""
    if isinstance(matcher, str):
        return matcher
    return getattr(matcher, "__name__", repr(matcher))
