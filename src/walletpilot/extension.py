"""
Loading a wallet extension into Chromium and discovering its id.

The extension's service worker registers some time after the persistent
context starts, so id discovery runs under the retry executor.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from walletpilot.errors import AggregateFailureError, ExtensionNotFoundError
from walletpilot.retry import RetryPolicy, execute_with_retry

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext, Playwright

logger = structlog.get_logger(__name__)

EXTENSION_URL_PATTERN = re.compile(r"^chrome-extension://([a-p]{32})(?:/|$)")

DISCOVERY_POLICY = RetryPolicy(
    base_delay_ms=100,
    max_delay_ms=1000,
    multiplier=1.5,
    jitter=False,
    max_attempts=20,
)


def parse_extension_id(url: str) -> str | None:
    """Extract the 32-character extension id from a chrome-extension:// URL."""
    match = EXTENSION_URL_PATTERN.match(url)
    return match.group(1) if match else None


async def launch_extension_context(
    playwright: Playwright,
    extension_path: str | Path,
    user_data_dir: str | Path,
    *,
    headless: bool = False,
    slow_mo: float = 0,
    args: list[str] | None = None,
    **launch_options: Any,
) -> BrowserContext:
    """
    Launch a persistent Chromium context with one unpacked extension loaded.

    Extensions only load in persistent contexts; headless runs use the
    bundled chromium channel, which supports them.
    """
    extension_dir = Path(extension_path).resolve()
    if not (extension_dir / "manifest.json").is_file():
        raise ExtensionNotFoundError(f"No manifest.json in extension directory {extension_dir}")

    launch_args = [
        f"--disable-extensions-except={extension_dir}",
        f"--load-extension={extension_dir}",
        *(args or []),
    ]
    if headless:
        launch_options.setdefault("channel", "chromium")

    logger.info(
        "Launching browser with extension",
        extension=str(extension_dir),
        user_data_dir=str(user_data_dir),
        headless=headless,
    )
    return await playwright.chromium.launch_persistent_context(
        str(user_data_dir),
        headless=headless,
        slow_mo=slow_mo,
        args=launch_args,
        **launch_options,
    )


async def _manifest_name(worker: Any) -> str | None:
    try:
        return await worker.evaluate("() => chrome.runtime.getManifest().name")
    except Exception as e:
        logger.debug("Could not read extension manifest", url=worker.url, error=str(e))
        return None


async def get_extension_id(
    context: BrowserContext,
    name_hint: str | None = None,
    policy: RetryPolicy | None = None,
) -> str:
    """
    Discover the id of a loaded extension.

    Args:
        context: Persistent context the extension was loaded into
        name_hint: Case-insensitive substring of the manifest name, needed
            when several extensions are loaded
        policy: Retry policy for waiting on the worker registration

    Raises:
        ExtensionNotFoundError: If no matching extension appeared in time
    """

    async def lookup() -> str:
        workers = [*context.service_workers, *context.background_pages]
        for worker in workers:
            extension_id = parse_extension_id(worker.url)
            if extension_id is None:
                continue
            if name_hint is None:
                return extension_id
            name = await _manifest_name(worker)
            if name and name_hint.lower() in name.lower():
                return extension_id
        raise ExtensionNotFoundError(
            f"No extension worker registered yet (hint: {name_hint or 'any'})"
        )

    try:
        extension_id = await execute_with_retry(lookup, policy or DISCOVERY_POLICY)
    except AggregateFailureError as e:
        label = name_hint or "extension"
        raise ExtensionNotFoundError(
            f"{label} not found after {e.attempts} attempts"
        ) from e

    logger.info("Extension discovered", extension_id=extension_id, name=name_hint)
    return extension_id
