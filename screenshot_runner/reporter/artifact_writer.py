"""Artifact writer — persists screenshots and diff images per the save policy."""

from __future__ import annotations

import logging
from pathlib import Path

from screenshot_runner.imaging.image import encode_png
from screenshot_runner.models.config import Project, RunConfig, SaveMode, Scenario
from screenshot_runner.models.results import Captured
from screenshot_runner.reporter.comparison import ProjectComparison, ScenarioOutcome
from screenshot_runner.utils.paths import ensure_directory, summarize_path

logger = logging.getLogger(__name__)

DIFF_SUFFIX = "-diff"


class ArtifactWriter:
    """Writes captured screenshots and diffs after the comparison pass.

    Writing is best-effort: a failed write is logged and never changes
    the outcome of the run.
    """

    def __init__(self, config: RunConfig, save: SaveMode | None = None):
        self.config = config
        self.save = config.save if save is None else save
        self.written: list[Path] = []

    def prepare(self) -> bool:
        """Create the output root. Returns False if it cannot be used."""
        if self.config.output is None:
            return True
        try:
            ensure_directory(self.config.output)
        except OSError as e:
            logger.error("Could not create output folder '%s': %s", self.config.output, e)
            return False
        return True

    def target_path(self, project: Project, scenario: Scenario) -> Path:
        """Where the screenshot of ``scenario`` gets written."""
        if self.config.output is None:
            return scenario.reference
        return self.config.output / project.path.name / scenario.reference.name

    def diff_path(self, project: Project, scenario: Scenario) -> Path:
        target = self.target_path(project, scenario)
        return target.with_name(f"{target.stem}{DIFF_SUFFIX}.png")

    def save_project(self, comparison: ProjectComparison) -> list[Path]:
        """Write the artifacts of one project. Returns the paths written."""
        project = comparison.project
        selected: list[ScenarioOutcome] = []
        if self.save & SaveMode.FAILURES:
            selected.extend(comparison.failed)
        if self.save & SaveMode.SUCCESSES:
            selected.extend(comparison.succeeded)
        selected.sort(key=lambda o: o.scenario.index)

        written = []
        for outcome in selected:
            match outcome.capture:
                case Captured(png=png):
                    path = self.target_path(project, outcome.scenario)
                    if self._write(path, png):
                        written.append(path)

        if self.save & SaveMode.DIFFERENCES:
            for outcome in comparison.outcomes:
                if outcome.diff is None:
                    continue
                path = self.diff_path(project, outcome.scenario)
                if self._write(path, encode_png(outcome.diff)):
                    written.append(path)

        if written:
            logger.info("Saved %d file(s) for project '%s'", len(written), project.name)
        self.written.extend(written)
        return written

    def _write(self, path: Path, data: bytes) -> bool:
        try:
            ensure_directory(path.parent)
            path.write_bytes(data)
        except OSError as e:
            logger.error("Failed to write '%s': %s", summarize_path(str(path)), e)
            return False
        logger.debug("Wrote %s", path)
        return True
