"""Pytest fixtures for walletpilot tests."""

from __future__ import annotations

import pytest

from walletpilot.config import PopupSettings

from tests.fakes import FakeSession


@pytest.fixture
def session() -> FakeSession:
    """Empty fake browser session."""
    return FakeSession()


@pytest.fixture
def fast_settings() -> PopupSettings:
    """Popup settings with timings shrunk for tests."""
    return PopupSettings(
        page_timeout_ms=500,
        poll_interval_ms=20,
        classify_timeout_ms=500,
        classify_poll_interval_ms=20,
        classify_settle_ms=0,
        stale_settle_ms=10,
        close_wait_timeout_ms=200,
    )
