"""Configuration models for the screenshot runner."""

from __future__ import annotations

import enum
import json
import logging
import os
from pathlib import Path
from typing import Annotated, Optional

from PIL import Image
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    PlainValidator,
    ValidationError,
    field_validator,
)

from screenshot_runner.utils.paths import summarize_path

logger = logging.getLogger(__name__)

CONFIG_NAME = "config.screenshot.json"
SCENE_READY_PREFIX = "wle-scene-ready"

DEFAULT_WIDTH = 480
DEFAULT_HEIGHT = 270
DEFAULT_TIMEOUT_MS = 60000


class ConfigError(Exception):
    """Raised when the configuration cannot be loaded or is invalid."""


class SaveMode(enum.IntFlag):
    """Which artifacts get written to disk after a run."""

    NONE = 0
    FAILURES = 1
    SUCCESSES = 2
    DIFFERENCES = 4
    ALL = FAILURES | SUCCESSES


class LogLevel(enum.IntFlag):
    """Browser console levels forwarded to the process output."""

    INFO = 1
    WARN = 2
    ERROR = 4


class RunnerMode(str, enum.Enum):
    CAPTURE = "capture"
    CAPTURE_AND_COMPARE = "capture-and-compare"


class PageErrorPolicy(str, enum.Enum):
    CONTINUE = "continue"  # log and keep waiting for events
    ABORT = "abort"  # stop the project on the first uncaught error


class ComparisonMetric(str, enum.Enum):
    PIXEL_COUNT = "pixel-count"
    RMSE = "rmse"


SaveModeField = Annotated[SaveMode, PlainValidator(SaveMode), PlainSerializer(int)]
LogLevelField = Annotated[LogLevel, PlainValidator(LogLevel), PlainSerializer(int)]


def convert_ready_event(filename: str) -> str:
    """Convert a scene-ready filename into the event id the page dispatches."""
    return f"{SCENE_READY_PREFIX}:{filename}"


class ScenarioConfig(BaseModel):
    """Raw scenario entry as written in ``config.screenshot.json``."""

    model_config = ConfigDict(populate_by_name=True)

    event: Optional[str] = None
    ready_event: Optional[str] = Field(default=None, alias="readyEvent")
    reference: str
    tolerance: float = Field(default=0.005, ge=0.0, le=1.0)
    per_pixel_tolerance: float = Field(default=0.1, ge=0.0, le=1.0, alias="perPixelTolerance")

    def resolve_event(self) -> str:
        if self.event:
            return self.event
        if self.ready_event:
            return convert_ready_event(self.ready_event)
        return ""


class ProjectConfigFile(BaseModel):
    """Raw project configuration file."""

    model_config = ConfigDict(populate_by_name=True)

    timeout: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)
    root: str = "deploy"
    scenarios: list[ScenarioConfig] = Field(default_factory=list)

    @field_validator("scenarios", mode="before")
    @classmethod
    def wrap_single_scenario(cls, v):
        if isinstance(v, dict):
            return [v]
        return v


class Scenario(BaseModel):
    """One capture-and-compare point of a project."""

    model_config = ConfigDict(frozen=True)

    event: str
    reference: Path
    tolerance: float
    per_pixel_tolerance: float
    index: int


class Project(BaseModel):
    """One application under test."""

    model_config = ConfigDict(frozen=True)

    path: Path
    name: str
    root: Path
    timeout: int  # milliseconds
    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    scenarios: list[Scenario] = Field(default_factory=list)

    def scenario_for_event(self, event: str) -> Scenario | None:
        for scenario in self.scenarios:
            if scenario.event == event:
                return scenario
        return None


def _reference_dimensions(references: list[Path]) -> tuple[int, int] | None:
    """Read the size of the first decodable reference, header only."""
    for reference in references:
        try:
            with Image.open(reference) as img:
                return img.size
        except (OSError, ValueError):
            continue
    return None


def _find_config_files(path: Path) -> list[Path]:
    return sorted(p for p in path.rglob(CONFIG_NAME) if p.is_file())


def _default_context_bound() -> int:
    return min(max(os.cpu_count() or 1, 2), 6)


class RunConfig(BaseModel):
    # Projects
    projects: list[Project] = Field(default_factory=list)

    # Output
    output: Optional[Path] = None  # None overwrites references in place
    save: SaveModeField = SaveMode.NONE
    mode: RunnerMode = RunnerMode.CAPTURE_AND_COMPARE
    metric: ComparisonMetric = ComparisonMetric.PIXEL_COUNT

    # Browser
    max_contexts: Optional[int] = Field(default=None, gt=0)
    headless: bool = True
    browser_channel: Optional[str] = None
    webxr_polyfill: Optional[Path] = None
    port: int = Field(default=8080, ge=0, le=65535)

    # Capture
    watch: Optional[str] = None
    on_page_error: PageErrorPolicy = PageErrorPolicy.CONTINUE
    poll_interval_ms: int = Field(default=1000, gt=0)
    pool_poll_interval_ms: int = Field(default=500, gt=0)

    # Overrides applied while loading projects
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)

    # Browser logs forwarded to the process output
    log: LogLevelField = LogLevel.WARN | LogLevel.ERROR

    @property
    def is_headless(self) -> bool:
        """Watch mode always opens a visible browser."""
        return self.headless and not self.watch

    def context_bound(self) -> int:
        bound = self.max_contexts or _default_context_bound()
        return max(1, min(len(self.projects), bound))

    def add(self, config_path: str | Path) -> Project:
        """Append the project described by one configuration file.

        Using multiple configuration files runs several projects without
        restarting the browser.
        """
        config_path = Path(config_path).resolve()
        with open(config_path) as f:
            data = json.load(f)
        raw = ProjectConfigFile.model_validate(data)

        path = config_path.parent
        scenarios = [
            Scenario(
                event=s.resolve_event(),
                reference=(path / s.reference).resolve(),
                tolerance=s.tolerance,
                per_pixel_tolerance=s.per_pixel_tolerance,
                index=i,
            )
            for i, s in enumerate(raw.scenarios)
        ]

        width = self.width or raw.width
        height = self.height or raw.height
        if width is None or height is None:
            size = _reference_dimensions([s.reference for s in scenarios])
            ref_width, ref_height = size or (DEFAULT_WIDTH, DEFAULT_HEIGHT)
            width = width or ref_width
            height = height or ref_height

        project = Project(
            path=path,
            name=path.name,
            root=(path / raw.root).resolve(),
            timeout=raw.timeout,
            width=width,
            height=height,
            scenarios=scenarios,
        )
        self.projects.append(project)
        logger.debug("Loaded project '%s' (%d scenarios, %dx%d)",
                     project.name, len(scenarios), width, height)
        return project

    def load(self, path: str | Path) -> None:
        """Load a configuration file, or every configuration found under a directory."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration path not found: {path}")
        files = _find_config_files(path) if path.is_dir() else [path]
        if not files:
            raise ConfigError(f"No '{CONFIG_NAME}' found under {path}")

        errors = []
        for file in files:
            try:
                self.add(file)
            except (OSError, json.JSONDecodeError, ValidationError) as e:
                errors.append(f"- Could not resolve configuration '{file}', reason:\n  {e}")
        if errors:
            raise ConfigError("\n".join(errors))

    def validate_projects(self) -> None:
        """Check every project before any browser work starts.

        Raises:
            ConfigError: listing every problem found in the first invalid project.
        """
        if not self.projects:
            raise ConfigError("No configuration to test")

        for project in self.projects:
            if not project.scenarios:
                raise ConfigError(f"'{project.name}' has no scenarios")

            missing = [
                f"  - Missing 'event' / 'readyEvent' keys for scenario {s.index}"
                for s in project.scenarios if not s.event
            ]
            if missing:
                raise ConfigError(
                    f"'{project.name}' contains scenario(s) with missing events:\n"
                    + "\n".join(missing)
                )

            seen: set[str] = set()
            duplicates = []
            for s in project.scenarios:
                if s.event in seen:
                    duplicates.append(f"  - Event '{s.event}' used by more than one scenario")
                seen.add(s.event)
            if duplicates:
                raise ConfigError(
                    f"'{project.name}' contains duplicated events:\n" + "\n".join(duplicates)
                )

            folders = sorted({s.reference.parent for s in project.scenarios})
            missing_folders = [
                f"  - Missing {summarize_path(str(folder))}"
                for folder in folders if not folder.is_dir()
            ]
            if missing_folders:
                raise ConfigError(
                    f"'{project.name}' contains scenario(s) with missing reference folder:\n"
                    + "\n".join(missing_folders)
                )

    def scenario_for_event(self, event: str) -> Scenario | None:
        for project in self.projects:
            scenario = project.scenario_for_event(event)
            if scenario:
                return scenario
        return None

    def resolve_watch(self) -> None:
        """Normalize ``watch`` into a declared event id.

        The watched event may be given as-is or as a scene-ready filename.
        """
        if not self.watch:
            return
        scenario = (
            self.scenario_for_event(self.watch)
            or self.scenario_for_event(convert_ready_event(self.watch))
        )
        if scenario is None:
            raise ConfigError(f"Could not find scenario to watch: '{self.watch}'")
        self.watch = scenario.event
