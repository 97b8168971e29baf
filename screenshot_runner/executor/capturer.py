"""Event-synchronized capturer — drives one project inside one browser context.

The application under test calls ``window.testScreenshot(eventId)`` and awaits
the returned promise; it resolves once the screenshot for that event has been
taken. A ``wle-scene-ready`` DOM event carrying ``detail.filename`` is forwarded
to the same function as ``wle-scene-ready:<filename>``.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time

from playwright.async_api import BrowserContext, Error as PlaywrightError, Page

from screenshot_runner.executor.log_sink import BrowserLogSink
from screenshot_runner.models.config import (
    SCENE_READY_PREFIX,
    PageErrorPolicy,
    Project,
    RunConfig,
)
from screenshot_runner.models.results import (
    CaptureResult,
    Captured,
    Failure,
    FailureKind,
    not_dispatched,
)
from screenshot_runner.utils.browser import disable_cache
from screenshot_runner.utils.webxr import install_webxr_emulation

logger = logging.getLogger(__name__)

SCREENSHOT_FUNCTION = "testScreenshot"
PROJECT_HEADER = "test-project"
NAVIGATION_TIMEOUT_MS = 30000

SCENE_READY_BRIDGE = f"""
document.addEventListener('{SCENE_READY_PREFIX}', (e) => {{
    window.{SCREENSHOT_FUNCTION}(`{SCENE_READY_PREFIX}:${{e.detail.filename}}`);
}});
"""


class CaptureState(enum.Enum):
    RUNNING = 1
    WATCHING = 2
    ERROR = 3


class ProjectCaptureError(Exception):
    """Fatal error for one project; sibling projects keep running."""

    def __init__(self, message: str, kind: FailureKind):
        super().__init__(message)
        self.kind = kind


class ProjectCapturer:
    """Captures one screenshot per scenario event of a single project."""

    def __init__(
        self,
        config: RunConfig,
        index: int,
        project: Project,
        base_url: str,
        log_sink: BrowserLogSink | None = None,
    ):
        self.config = config
        self.index = index
        self.project = project
        self.base_url = base_url.rstrip("/")
        self.log_sink = log_sink or BrowserLogSink(config.log)
        self.results: list[CaptureResult] = [not_dispatched(s.event) for s in project.scenarios]
        self.state = CaptureState.RUNNING
        self.page_errors: list[str] = []
        self.event_count = 0
        self._event_to_index = {s.event: s.index for s in project.scenarios}
        self._claimed: set[str] = set()
        self._page: Page | None = None
        self._deadline = 0.0

    @property
    def entry_url(self) -> str:
        return f"{self.base_url}/index.html"

    @property
    def is_complete(self) -> bool:
        return self.event_count >= len(self.results)

    async def capture(self, context: BrowserContext) -> list[CaptureResult]:
        """Run the project until every event fired, the timeout elapsed, or it failed.

        Raises:
            ProjectCaptureError: on navigation failure, page crash, or an
                uncaught page error under the ``abort`` policy.
        """
        name = self.project.name
        self._deadline = time.monotonic() + self.project.timeout / 1000
        page = await context.new_page()
        self._page = page
        try:
            await self._setup_page(page)

            # No network-idle wait: the event sink must exist before the
            # application starts dispatching.
            logger.debug("[%s] Navigating to %s", name, self.entry_url)
            try:
                await page.goto(
                    self.entry_url,
                    wait_until="domcontentloaded",
                    timeout=0 if self.config.watch else NAVIGATION_TIMEOUT_MS,
                )
            except PlaywrightError as e:
                raise ProjectCaptureError(
                    f"Navigation to {self.entry_url} failed: {e}", FailureKind.NAVIGATION
                ) from e

            await self._wait_for_events()

            match self.state:
                case CaptureState.WATCHING:
                    logger.info("Watching scenario '%s'...", self.config.watch)
                    await self._wait_for_operator(page)
                case CaptureState.ERROR if self.config.watch:
                    logger.error("[%s] Uncaught browser top-level error: %s",
                                 name, self.page_errors[-1])
                    await self._wait_for_operator(page)
                case CaptureState.ERROR:
                    raise ProjectCaptureError(
                        f"Uncaught browser top-level error: {self.page_errors[-1]}",
                        FailureKind.PAGE_ERROR,
                    )
        finally:
            try:
                await page.close()
            except PlaywrightError as e:
                logger.debug("[%s] Page already closed: %s", name, e)

        return self.results

    def fail_pending(self, failure: Failure) -> list[CaptureResult]:
        """Replace every slot still waiting for its event with ``failure``."""
        for i, result in enumerate(self.results):
            match result:
                case Failure(kind=FailureKind.NOT_DISPATCHED):
                    self.results[i] = failure
        return self.results

    async def on_event(self, event: str) -> None:
        """Host function exposed to the page as ``window.testScreenshot``."""
        name = self.project.name
        index = self._event_to_index.get(event)
        if index is None:
            logger.warning("[%s] Received non-existing event: '%s'", name, event)
            return
        if event in self._claimed:
            logger.warning("[%s] Event '%s' already captured, ignoring duplicate", name, event)
            return
        self._claimed.add(event)

        try:
            png = await self._page.screenshot(full_page=True, omit_background=False, type="png")
            self.results[index] = Captured(png)
            logger.info("[%s] Event '%s' received", name, event)
        except PlaywrightError as e:
            self.results[index] = Failure(
                FailureKind.CAPTURE, f"Screenshot for event '{event}' failed: {e}"
            )
            logger.error("[%s] Screenshot for event '%s' failed: %s", name, event, e)

        # Counted only once stored, so the wait loop never closes the page mid-capture
        self.event_count += 1
        if event == self.config.watch and self.state is CaptureState.RUNNING:
            self.state = CaptureState.WATCHING

    async def _setup_page(self, page: Page) -> None:
        project = self.project
        page.on("pageerror", self._on_page_error)
        page.on("crash", self._on_crash)
        self.log_sink.setup_listeners(page, project.name)

        await page.set_viewport_size({"width": project.width, "height": project.height})
        # Lets the shared static server pick this project's files
        await page.set_extra_http_headers({PROJECT_HEADER: str(self.index)})
        await disable_cache(page)

        await page.expose_function(SCREENSHOT_FUNCTION, self.on_event)
        await page.add_init_script(script=SCENE_READY_BRIDGE)
        if self.config.webxr_polyfill:
            await install_webxr_emulation(page, self.config.webxr_polyfill)

    async def _wait_for_events(self) -> None:
        interval = self.config.poll_interval_ms / 1000
        while self.state is CaptureState.RUNNING and not self.is_complete:
            remaining = self._deadline - time.monotonic()
            if remaining <= 0:
                logger.warning("[%s] Timed out after %dms: %d/%d event(s) received",
                               self.project.name, self.project.timeout,
                               self.event_count, len(self.results))
                return
            await asyncio.sleep(min(interval, remaining))

    async def _wait_for_operator(self, page: Page) -> None:
        """Block until the page navigates away or is closed."""
        closed = asyncio.ensure_future(page.wait_for_event("close", timeout=0))
        navigated = asyncio.ensure_future(page.wait_for_event(
            "framenavigated", predicate=lambda frame: frame == page.main_frame, timeout=0,
        ))
        done, pending = await asyncio.wait({closed, navigated}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            if task.exception():
                logger.debug("[%s] Stopped watching: %s", self.project.name, task.exception())

    def _on_page_error(self, error: PlaywrightError) -> None:
        text = error.stack or str(error)
        self.page_errors.append(text)
        self.log_sink.record_error(self.project.name, text)
        if self.config.on_page_error is PageErrorPolicy.ABORT or self.config.watch:
            self.state = CaptureState.ERROR
        else:
            logger.error("[%s] Uncaught browser top-level error: %s", self.project.name, text)

    def _on_crash(self, page: Page) -> None:
        self.page_errors.append("page crashed")
        self.log_sink.record_error(self.project.name, "page crashed")
        self.state = CaptureState.ERROR
