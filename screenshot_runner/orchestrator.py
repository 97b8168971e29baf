"""Run orchestrator — coordinates capture, comparison, and save stages."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from functools import partial

from playwright.async_api import BrowserContext, async_playwright

from screenshot_runner.executor.capturer import ProjectCaptureError, ProjectCapturer
from screenshot_runner.executor.log_sink import BrowserLogSink
from screenshot_runner.executor.scheduler import ContextPool, run_capture_pool
from screenshot_runner.imaging.references import load_references
from screenshot_runner.models.config import Project, RunConfig, RunnerMode, SaveMode
from screenshot_runner.models.results import CaptureResult, Failure, ReferenceResult
from screenshot_runner.models.run_result import RunResult
from screenshot_runner.reporter.artifact_writer import ArtifactWriter
from screenshot_runner.reporter.comparison import (
    ProjectComparison,
    collect_captures,
    compare_project,
)
from screenshot_runner.reporter.json_report import build_project_result, tally
from screenshot_runner.server.static_server import StaticFileServer
from screenshot_runner.utils.browser import create_capture_context, launch_browser

logger = logging.getLogger(__name__)


class ScreenshotRunner:
    """Captures every project of a run and compares it against its references."""

    def __init__(self, config: RunConfig, log_sink: BrowserLogSink | None = None):
        self.config = config
        self.log_sink = log_sink or BrowserLogSink(config.log)
        self.captures: list[list[CaptureResult]] = []
        self.references: list[list[ReferenceResult]] = []
        self.comparisons: list[ProjectComparison] = []
        self.result: RunResult | None = None

    @property
    def compares(self) -> bool:
        return self.config.mode is RunnerMode.CAPTURE_AND_COMPARE

    @property
    def save_mode(self) -> SaveMode:
        # Capture-only runs exist to produce screenshots
        if not self.compares:
            return self.config.save | SaveMode.SUCCESSES
        return self.config.save

    def run(self) -> bool:
        """Execute the run. Returns True if no scenario failed."""
        return asyncio.run(self.run_async())

    async def run_async(self) -> bool:
        config = self.config
        start = time.time()
        started_at = datetime.now(timezone.utc).isoformat()
        logger.info("=== Running %d project(s) in %s mode ===",
                    len(config.projects), config.mode.value)

        writer = ArtifactWriter(config, self.save_mode)
        can_save = bool(self.save_mode) and writer.prepare()

        # Stage 1: Capture
        logger.info("--- Stage 1: Capture ---")
        stage_start = time.time()
        self.captures, self.references = await self._capture_all()
        logger.info("--- Stage 1 complete in %.1fs ---", time.time() - stage_start)

        # Stage 2: Compare
        if self.compares:
            logger.info("--- Stage 2: Compare ---")
            self.comparisons = [
                compare_project(
                    project, captures, references, config.metric,
                    generate_diffs=bool(self.save_mode & SaveMode.DIFFERENCES),
                )
                for project, captures, references
                in zip(config.projects, self.captures, self.references)
            ]
        else:
            self.comparisons = [
                collect_captures(project, captures)
                for project, captures in zip(config.projects, self.captures)
            ]

        # Stage 3: Save
        if can_save:
            logger.info("--- Stage 3: Save ---")
            for comparison in self.comparisons:
                writer.save_project(comparison)

        self.result = tally(RunResult(
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
            duration_seconds=round(time.time() - start, 1),
            mode=config.mode.value,
            metric=config.metric.value,
            saved_files=[str(p) for p in writer.written],
            projects=[build_project_result(c) for c in self.comparisons],
        ))

        failed = [c for c in self.comparisons if not c.success]
        for comparison in failed:
            logger.warning("Project '%s' failed scenario(s): %s", comparison.project.name,
                           ", ".join(f"'{o.scenario.event}'" for o in comparison.failed))
        logger.info("=== Run complete in %.1fs: %d/%d project(s) passed ===",
                    time.time() - start, len(self.comparisons) - len(failed),
                    len(self.comparisons))
        return not failed

    async def _capture_all(self) -> tuple[list[list[CaptureResult]], list[list[ReferenceResult]]]:
        """Load references while the projects are captured.

        The server and browser are always torn down, even when capture fails.
        """
        config = self.config
        projects = config.projects
        reference_tasks = [
            asyncio.create_task(load_references(project.scenarios))
            for project in projects
        ] if self.compares else []

        server = StaticFileServer([p.root for p in projects], port=config.port)
        try:
            server.start()
            async with async_playwright() as playwright:
                browser = await launch_browser(
                    playwright,
                    headless=config.is_headless,
                    watch=bool(config.watch),
                    channel=config.browser_channel,
                )
                try:
                    contexts = [
                        await create_capture_context(browser)
                        for _ in range(config.context_bound())
                    ]
                    pool = ContextPool(contexts, config.pool_poll_interval_ms / 1000)
                    logger.info("Capturing %d project(s) with %d context(s)",
                                len(projects), pool.size)
                    try:
                        captures = await run_capture_pool(
                            projects, pool, partial(self._capture_project, server.base_url),
                        )
                    finally:
                        await pool.close()
                finally:
                    await browser.close()

            references = list(await asyncio.gather(*reference_tasks))
        finally:
            server.close()
            pending = [t for t in reference_tasks if not t.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        return captures, references

    async def _capture_project(
        self, base_url: str, context: BrowserContext, index: int, project: Project,
    ) -> list[CaptureResult]:
        logger.info("Capturing project '%s' (%d scenario(s))", project.name, len(project.scenarios))
        capturer = ProjectCapturer(self.config, index, project, base_url, self.log_sink)
        try:
            results = await capturer.capture(context)
        except ProjectCaptureError as e:
            logger.error("Project '%s' aborted: %s", project.name, e)
            return capturer.fail_pending(Failure(e.kind, str(e)))
        logger.info("Project '%s' done: %d/%d event(s) received",
                    project.name, capturer.event_count, len(project.scenarios))
        return results
