"""Browser helpers — launch Chromium for deterministic WebGL/WebXR captures."""

from __future__ import annotations

import logging
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Error as PlaywrightError, Page, Playwright

logger = logging.getLogger(__name__)

LAUNCH_TIMEOUT_MS = 30000

BROWSER_ARGS = [
    "--no-sandbox",
    "--use-gl=angle",
    "--ignore-gpu-blocklist",
]


async def launch_browser(
    playwright: Playwright,
    headless: bool = True,
    watch: bool = False,
    channel: Optional[str] = None,
) -> Browser:
    """Launch Chromium with GPU-friendly arguments.

    Watch mode disables the launch timeout since an operator may be
    debugging the page indefinitely.
    """
    kwargs: dict = {
        "headless": headless,
        "args": BROWSER_ARGS,
        "timeout": 0 if watch else LAUNCH_TIMEOUT_MS,
    }
    if channel:
        kwargs["channel"] = channel
    logger.debug("Launching Chromium (headless=%s, channel=%s)", headless, channel or "bundled")
    return await playwright.chromium.launch(**kwargs)


async def create_capture_context(browser: Browser) -> BrowserContext:
    """Create an isolated context (separate cookies and storage)."""
    return await browser.new_context(
        device_scale_factor=1,
        locale="en-US",
        timezone_id="UTC",
    )


async def disable_cache(page: Page) -> None:
    """Disable the HTTP cache of ``page`` through the Chromium devtools protocol."""
    try:
        session = await page.context.new_cdp_session(page)
        await session.send("Network.setCacheDisabled", {"cacheDisabled": True})
    except PlaywrightError as e:
        # Only Chromium exposes CDP sessions
        logger.debug("Could not disable HTTP cache: %s", e)
