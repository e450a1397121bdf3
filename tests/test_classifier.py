"""
Tests for notification classification.

These tests verify table priority, waiting for late-rendering text, and
the distinction between a closed popup and a classification timeout.
"""

from __future__ import annotations

import time

import pytest

from walletpilot.errors import ClassificationTimeoutError, PageClosedError
from walletpilot.popup.classifier import (
    NotificationType,
    Signature,
    SignatureTable,
    classify,
)
from walletpilot.wallets import METAMASK_SIGNATURES, PHANTOM_SIGNATURES

from tests.fakes import NOTIFICATION_URL, FakePage

TABLE = SignatureTable.from_pairs([
    (NotificationType.SPENDING_CAP, "Spending cap request"),
    (NotificationType.SIGNATURE, "Signature request"),
    (NotificationType.TRANSACTION, "Network fee"),
])


class TestSignatureTable:
    """Test SignatureTable construction."""

    def test_empty_table_rejected(self) -> None:
        """A table needs at least one signature."""
        with pytest.raises(ValueError):
            SignatureTable(())

    def test_from_mapping_keeps_order(self) -> None:
        """Mapping insertion order becomes priority order."""
        table = SignatureTable.from_mapping({
            NotificationType.CONNECT: "Connect with",
            NotificationType.TRANSACTION: "Network fee",
        })

        assert table.types == [NotificationType.CONNECT, NotificationType.TRANSACTION]
        assert len(table) == 2
        assert list(table)[0] == Signature(NotificationType.CONNECT, "Connect with")

    def test_type_values(self) -> None:
        """Types serialize to their kebab-case names."""
        assert str(NotificationType.SPENDING_CAP) == "spending-cap"
        assert NotificationType("remove-spend-cap") is NotificationType.REMOVE_SPEND_CAP


class TestClassify:
    """Test classify."""

    async def test_visible_fragment_classifies(self) -> None:
        """A visible fragment yields its type."""
        page = FakePage(NOTIFICATION_URL, ["Review: Network fee 0.001 ETH"])

        assert await classify(page, TABLE, 500, 20) is NotificationType.TRANSACTION

    async def test_earlier_entry_wins(self) -> None:
        """When several fragments are visible the first in table order wins."""
        page = FakePage(NOTIFICATION_URL, ["Network fee", "Spending cap request"])

        assert await classify(page, TABLE, 500, 20) is NotificationType.SPENDING_CAP

    async def test_late_rendering_text_is_found(self) -> None:
        """Text that appears after a few polls is still classified."""
        page = FakePage(NOTIFICATION_URL, ["Loading..."])
        page.show_later("Signature request", 0.08)

        assert await classify(page, TABLE, 1000, 20) is NotificationType.SIGNATURE

    async def test_closed_page_fails_fast(self) -> None:
        """A closed page raises PageClosedError without waiting out the timeout."""
        page = FakePage(NOTIFICATION_URL)
        page.close()
        started = time.monotonic()

        with pytest.raises(PageClosedError):
            await classify(page, TABLE, 2000, 20)

        assert time.monotonic() - started < 0.5

    async def test_page_closing_mid_poll_is_not_a_timeout(self) -> None:
        """A popup closing during classification is reported as closed."""
        page = FakePage(NOTIFICATION_URL, ["Loading..."])
        page.close_later(0.05)

        with pytest.raises(PageClosedError):
            await classify(page, TABLE, 1000, 20)

    async def test_timeout_lists_checked_fragments(self) -> None:
        """No visible fragment raises ClassificationTimeoutError near the deadline."""
        page = FakePage(NOTIFICATION_URL, ["Something else entirely"])
        started = time.monotonic()

        with pytest.raises(ClassificationTimeoutError) as exc_info:
            await classify(page, TABLE, 150, 20)

        elapsed = time.monotonic() - started
        assert 0.14 <= elapsed < 0.6
        assert exc_info.value.timeout_ms == 150
        assert exc_info.value.checked == ["Spending cap request", "Signature request", "Network fee"]

    async def test_visibility_errors_count_as_not_visible(self) -> None:
        """A fragment whose visibility check fails is skipped, later entries still match."""
        page = FakePage(NOTIFICATION_URL, ["Spending cap request", "Network fee"])
        page.failing_texts.add("Spending cap request")

        assert await classify(page, TABLE, 500, 20) is NotificationType.TRANSACTION

    async def test_matching_is_case_insensitive_substring(self) -> None:
        """Fragments match anywhere in the text regardless of case."""
        page = FakePage(NOTIFICATION_URL, ["REMOVE PERMISSION for USDC"])

        assert await classify(page, METAMASK_SIGNATURES, 500, 20) is NotificationType.REMOVE_SPEND_CAP

    async def test_phantom_connect_with_sign_inside_words(self) -> None:
        """Words merely containing "sign" do not turn a connect screen into a signature."""
        page = FakePage(NOTIFICATION_URL, ["Design Studio wants to connect", "Assign an account"])

        assert await classify(page, PHANTOM_SIGNATURES, 500, 20) is NotificationType.CONNECT

    async def test_phantom_sign_message(self) -> None:
        """Phantom message signing is classified by its phrase."""
        page = FakePage(NOTIFICATION_URL, ["Sign Message", "Only sign this message if you trust the site"])

        assert await classify(page, PHANTOM_SIGNATURES, 500, 20) is NotificationType.SIGNATURE
