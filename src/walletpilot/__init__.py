"""
walletpilot - Popup synchronization for browser-extension wallet E2E tests.

Wallet extensions open approval popups asynchronously and sometimes swap
one window for another mid-interaction. walletpilot resolves those popups
reliably, classifies them by their visible text, retries an action once
when its window went stale, and retries flaky infrastructure steps with
bounded backoff.
"""

from walletpilot.config import PopupSettings
from walletpilot.errors import (
    AggregateFailureError,
    ClassificationTimeoutError,
    ExtensionNotFoundError,
    NodeStartupError,
    PageClosedError,
    PageNotFoundError,
    StaleTargetError,
    UnsupportedActionError,
    WalletPilotError,
    is_target_closed_error,
)
from walletpilot.extension import get_extension_id, launch_extension_context
from walletpilot.log_config import configure_logging
from walletpilot.node import LocalNodeManager, NodeConfig
from walletpilot.popup import (
    NotificationSession,
    NotificationType,
    SignatureTable,
    classify,
    resolve_page,
    run_with_recovery,
)
from walletpilot.retry import (
    BackoffStrategy,
    RetryOptions,
    RetryPolicy,
    compute_delay,
    execute_with_retry,
    retrying,
)
from walletpilot.wallets import (
    PopupAction,
    WalletBrand,
    create_wallet_driver,
)

__version__ = "1.0.0"
__author__ = "walletpilot contributors"

__all__ = [
    # Popup core
    "resolve_page",
    "classify",
    "run_with_recovery",
    "NotificationSession",
    "NotificationType",
    "SignatureTable",
    "PopupSettings",
    # Retry
    "BackoffStrategy",
    "RetryOptions",
    "RetryPolicy",
    "compute_delay",
    "execute_with_retry",
    "retrying",
    # Wallets
    "PopupAction",
    "WalletBrand",
    "create_wallet_driver",
    # Infrastructure
    "get_extension_id",
    "launch_extension_context",
    "LocalNodeManager",
    "NodeConfig",
    "configure_logging",
    # Errors
    "WalletPilotError",
    "PageNotFoundError",
    "PageClosedError",
    "ClassificationTimeoutError",
    "StaleTargetError",
    "AggregateFailureError",
    "ExtensionNotFoundError",
    "NodeStartupError",
    "UnsupportedActionError",
    "is_target_closed_error",
]
