"""Context pool scheduler — runs project captures on a bounded set of browser contexts."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence

from playwright.async_api import BrowserContext, Error as PlaywrightError

from screenshot_runner.models.config import Project
from screenshot_runner.models.results import CaptureResult, Failure, FailureKind

logger = logging.getLogger(__name__)

CaptureFn = Callable[[BrowserContext, int, Project], Awaitable[list[CaptureResult]]]


class ContextPool:
    """Fixed slot array of execution contexts, each either free or busy."""

    def __init__(self, contexts: Sequence[BrowserContext], poll_interval: float = 0.5):
        if not contexts:
            raise ValueError("A context pool needs at least one context")
        self.poll_interval = poll_interval
        self._contexts = tuple(contexts)
        self._busy = [False] * len(self._contexts)

    @property
    def size(self) -> int:
        return len(self._contexts)

    @property
    def busy_count(self) -> int:
        return sum(self._busy)

    def context(self, slot: int) -> BrowserContext:
        return self._contexts[slot]

    def try_acquire(self) -> int | None:
        for slot, busy in enumerate(self._busy):
            if not busy:
                self._busy[slot] = True
                return slot
        return None

    async def acquire(self) -> int:
        """Wait for a free slot and mark it busy."""
        while (slot := self.try_acquire()) is None:
            await asyncio.sleep(self.poll_interval)
        return slot

    def release(self, slot: int) -> None:
        self._busy[slot] = False

    async def close(self) -> None:
        for context in self._contexts:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.debug("Context already closed: %s", e)


def _failed_project(project: Project, error: BaseException) -> list[CaptureResult]:
    failure = Failure(FailureKind.CAPTURE, f"Capture of project '{project.name}' failed: {error}")
    return [failure] * len(project.scenarios)


async def run_capture_pool(
    projects: Sequence[Project],
    pool: ContextPool,
    capture: CaptureFn,
) -> list[list[CaptureResult]]:
    """Capture every project, at most ``pool.size`` at a time.

    Projects start in submission order and may finish in any order;
    ``results[i]`` always belongs to ``projects[i]``. Cancelling the call
    cancels and awaits every capture already started.
    """
    tasks: list[asyncio.Task] = []
    try:
        for index, project in enumerate(projects):
            slot = await pool.acquire()
            logger.debug("Project '%s' acquired context slot %d", project.name, slot)
            task = asyncio.create_task(capture(pool.context(slot), index, project))
            # Runs on success, error and cancellation alike
            task.add_done_callback(lambda _task, slot=slot: pool.release(slot))
            tasks.append(task)

        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
    finally:
        pending = [task for task in tasks if not task.done()]
        if pending:
            logger.warning("Cancelling %d running capture(s)", len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    results: list[list[CaptureResult]] = []
    for project, outcome in zip(projects, outcomes):
        if isinstance(outcome, BaseException):
            logger.error("Capture of project '%s' crashed: %s", project.name, outcome)
            results.append(_failed_project(project, outcome))
        else:
            results.append(outcome)
    return results
