"""Browser log sink — collects console output from every project page."""

from __future__ import annotations

import logging
from pathlib import Path

from playwright.async_api import ConsoleMessage, Page

from screenshot_runner.models.config import LogLevel
from screenshot_runner.utils.paths import ensure_directory

logger = logging.getLogger(__name__)
browser_logger = logging.getLogger("screenshot_runner.browser")

CONSOLE_TYPE_TO_LEVEL = {
    "log": LogLevel.INFO,
    "info": LogLevel.INFO,
    "debug": LogLevel.INFO,
    "warning": LogLevel.WARN,
    "error": LogLevel.ERROR,
}

_PYTHON_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class BrowserLogSink:
    """Keeps every browser log line and forwards the selected levels to the process output."""

    def __init__(self, levels: LogLevel = LogLevel.WARN | LogLevel.ERROR):
        self.levels = levels
        self.logs: list[str] = []

    def setup_listeners(self, page: Page, project_name: str) -> None:
        page.on("console", lambda msg: self.on_console(project_name, msg))

    def on_console(self, project_name: str, message: ConsoleMessage) -> None:
        self.logs.append(f"[{project_name}] [{message.type}] {message.text}")
        level = CONSOLE_TYPE_TO_LEVEL.get(message.type)
        if level is not None and self.levels & level:
            browser_logger.log(_PYTHON_LEVELS[level], "[browser] [%s] %s", project_name, message.text)

    def record_error(self, project_name: str, text: str) -> None:
        self.logs.append(f"[{project_name}] [pageerror] {text}")

    def clear(self) -> None:
        self.logs.clear()

    def save(self, path: Path) -> None:
        """Persist collected logs to ``path``."""
        ensure_directory(path.parent)
        with open(path, "w") as f:
            f.write("\n".join(self.logs))
        logger.info("Browser logs saved to %s", path)
