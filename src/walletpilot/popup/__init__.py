"""
Popup synchronization for extension wallet notifications.

- Page resolution racing an event subscription against polling
- Bounded-poll classification against an ordered signature table
- Single-retry recovery when a popup is replaced mid-interaction
- Session-scoped cache of the most recently classified popup
"""

from walletpilot.popup.classifier import (
    NotificationType,
    Signature,
    SignatureTable,
    classify,
)
from walletpilot.popup.recovery import run_with_recovery
from walletpilot.popup.session import NotificationSession
from walletpilot.popup.waiter import (
    find_latest_live_page,
    find_live_page,
    prepare_page,
    resolve_page,
    wait_for_page_close,
)

__all__ = [
    # Resolution
    "resolve_page",
    "find_live_page",
    "find_latest_live_page",
    "prepare_page",
    "wait_for_page_close",
    # Classification
    "NotificationType",
    "Signature",
    "SignatureTable",
    "classify",
    # Recovery
    "run_with_recovery",
    "NotificationSession",
]
