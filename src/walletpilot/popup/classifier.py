"""
Notification classification by rendered text.

A popup that was just resolved may still be mid-navigation, so a single
sweep over the signatures is unreliable. Classification polls the page
until one fragment is visible, the page closes, or the deadline passes.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Iterable, Iterator, Mapping, NamedTuple

import structlog

from walletpilot.driver import PageHandle
from walletpilot.errors import ClassificationTimeoutError, PageClosedError

logger = structlog.get_logger(__name__)


class NotificationType(StrEnum):
    """Semantic kind of request a wallet popup represents."""

    SPENDING_CAP = "spending-cap"
    SIGNATURE = "signature"
    TRANSACTION = "transaction"
    REMOVE_SPEND_CAP = "remove-spend-cap"
    CONNECT = "connect"
    TOKEN_PERMISSION = "token-permission"
    ADD_NETWORK = "add-network"
    SWITCH_NETWORK = "switch-network"


class Signature(NamedTuple):
    """A text fragment whose visibility implies a notification type."""

    type: NotificationType
    fragment: str


@dataclass(frozen=True)
class SignatureTable:
    """
    Ordered signatures. Earlier entries win when several fragments match.

    Usage:
        table = SignatureTable.from_pairs([
            (NotificationType.SPENDING_CAP, "Spending cap request"),
            (NotificationType.TRANSACTION, "Network fee"),
        ])
    """

    entries: tuple[Signature, ...]

    def __post_init__(self) -> None:
        if not self.entries:
            raise ValueError("SignatureTable needs at least one signature")

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[NotificationType, str]]) -> "SignatureTable":
        return cls(tuple(Signature(NotificationType(t), text) for t, text in pairs))

    @classmethod
    def from_mapping(cls, mapping: Mapping[NotificationType, str]) -> "SignatureTable":
        """Build from an insertion-ordered mapping."""
        return cls.from_pairs(mapping.items())

    def __iter__(self) -> Iterator[Signature]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def types(self) -> list[NotificationType]:
        return [s.type for s in self.entries]


async def _is_fragment_visible(page: PageHandle, fragment: str) -> bool:
    try:
        return await page.get_by_text(fragment, exact=False).is_visible()
    except Exception as e:
        # Closure mid-sweep is detected at the top of the next cycle
        logger.debug("Visibility probe failed", fragment=fragment, error=str(e))
        return False


async def classify(
    page: PageHandle,
    signature_table: SignatureTable,
    global_timeout_ms: int = 15000,
    poll_interval_ms: int = 500,
) -> NotificationType:
    """
    Poll the page until a signature fragment is visible.

    Args:
        page: Resolved notification popup
        signature_table: Signatures tested in priority order each cycle
        global_timeout_ms: Deadline for the whole classification
        poll_interval_ms: Pause between sweeps

    Returns:
        Type of the first visible signature in table order

    Raises:
        PageClosedError: As soon as the page is seen closed
        ClassificationTimeoutError: If nothing matched before the deadline
    """
    deadline = time.monotonic() + global_timeout_ms / 1000
    sweeps = 0

    while time.monotonic() < deadline:
        if page.is_closed():
            raise PageClosedError("Notification page closed before type could be identified")

        sweeps += 1
        for signature in signature_table:
            if await _is_fragment_visible(page, signature.fragment):
                logger.debug(
                    "Notification classified",
                    type=str(signature.type),
                    fragment=signature.fragment,
                    sweeps=sweeps,
                )
                return signature.type

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        await asyncio.sleep(min(poll_interval_ms / 1000, remaining))

    # Closed during the final sleep counts as closed, not timed out
    if page.is_closed():
        raise PageClosedError("Notification page closed before type could be identified")

    logger.warning("Notification type not identified", timeout_ms=global_timeout_ms, sweeps=sweeps)
    raise ClassificationTimeoutError(
        global_timeout_ms, [s.fragment for s in signature_table]
    )
