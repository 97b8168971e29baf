"""Comparison pass — turns captures and references into per-scenario verdicts."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Optional

from PIL import UnidentifiedImageError

from screenshot_runner.imaging.comparator import (
    ComparisonResult,
    DimensionMismatch,
    compare_images,
    generate_image_diff,
)
from screenshot_runner.imaging.image import Image2d, decode_png
from screenshot_runner.models.config import ComparisonMetric, Project, Scenario
from screenshot_runner.models.results import (
    CaptureResult,
    Captured,
    Failure,
    FailureKind,
    Loaded,
    ReferenceResult,
)

logger = logging.getLogger(__name__)


class ScenarioStatus(str, enum.Enum):
    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"
    CAPTURED = "captured"  # capture-only mode, no verdict


@dataclass
class ScenarioOutcome:
    scenario: Scenario
    status: ScenarioStatus
    message: str = ""
    capture: Optional[CaptureResult] = None
    comparison: Optional[ComparisonResult] = None
    diff: Optional[Image2d] = None
    failure_kind: Optional[FailureKind] = None

    @property
    def failed(self) -> bool:
        return self.status in (ScenarioStatus.FAIL, ScenarioStatus.ERROR)


@dataclass
class ProjectComparison:
    project: Project
    outcomes: list[ScenarioOutcome] = field(default_factory=list)

    @property
    def failed(self) -> list[ScenarioOutcome]:
        return [o for o in self.outcomes if o.failed]

    @property
    def succeeded(self) -> list[ScenarioOutcome]:
        return [o for o in self.outcomes if not o.failed]

    @property
    def failed_indices(self) -> list[int]:
        return [o.scenario.index for o in self.failed]

    @property
    def success(self) -> bool:
        return not self.failed


def describe_comparison(result: ComparisonResult) -> str:
    match result.metric:
        case ComparisonMetric.PIXEL_COUNT:
            relation = ">" if result.distance > result.tolerance else "<="
            return (f"{result.differing_pixels} different pixels | "
                    f"{result.distance * 100:.2f}% {relation} {result.tolerance * 100:.2f}%")
        case _:
            return (f"rmse: {result.distance:.4f} | tolerance: {result.tolerance:.4f}, "
                    f"max: {result.max_deviation:.4f} | tolerance: {result.per_pixel_tolerance:.4f}")


def _error(scenario: Scenario, failure: Failure, capture: CaptureResult | None = None) -> ScenarioOutcome:
    logger.warning("[FAIL] Scenario '%s' failed with error:\n  %s", scenario.event, failure.message)
    return ScenarioOutcome(
        scenario=scenario, status=ScenarioStatus.ERROR, message=failure.message,
        capture=capture, failure_kind=failure.kind,
    )


def compare_scenario(
    scenario: Scenario,
    capture: CaptureResult,
    reference: ReferenceResult,
    metric: ComparisonMetric = ComparisonMetric.PIXEL_COUNT,
    generate_diff: bool = False,
) -> ScenarioOutcome:
    """Compare one capture against its reference."""
    match capture, reference:
        case Failure() as failure, _:
            return _error(scenario, failure)
        case Captured(), Failure() as failure:
            return _error(scenario, failure, capture)
        case Captured(png=png), Loaded(image=expected):
            pass
        case _:
            raise TypeError(f"Unexpected capture/reference pair for '{scenario.event}'")

    try:
        actual = decode_png(png)
    except (OSError, UnidentifiedImageError, ValueError) as e:
        return _error(scenario, Failure(FailureKind.DECODE, f"Failed to decode screenshot: {e}"), capture)

    try:
        result = compare_images(
            actual, expected, scenario.tolerance, scenario.per_pixel_tolerance, metric,
        )
    except DimensionMismatch as e:
        return _error(scenario, Failure(FailureKind.DIMENSION_MISMATCH, str(e)), capture)

    message = describe_comparison(result)
    if result.passed:
        logger.info("[PASS] Scenario '%s' passed (%s)", scenario.event, message)
        return ScenarioOutcome(scenario, ScenarioStatus.PASS, message, capture, result)

    logger.warning("[FAIL] Scenario '%s' failed!\n  %s", scenario.event, message)
    diff = generate_image_diff(actual, expected, scenario.per_pixel_tolerance) if generate_diff else None
    return ScenarioOutcome(scenario, ScenarioStatus.FAIL, message, capture, result, diff)


def compare_project(
    project: Project,
    captures: list[CaptureResult],
    references: list[ReferenceResult],
    metric: ComparisonMetric = ComparisonMetric.PIXEL_COUNT,
    generate_diffs: bool = False,
) -> ProjectComparison:
    """Compare every scenario of ``project``."""
    logger.info("Comparing %d scenarios in project '%s'...", len(project.scenarios), project.name)
    outcomes = [
        compare_scenario(s, captures[s.index], references[s.index], metric, generate_diffs)
        for s in project.scenarios
    ]
    return ProjectComparison(project, outcomes)


def collect_captures(project: Project, captures: list[CaptureResult]) -> ProjectComparison:
    """Capture-only mode: report captures without comparing them."""
    outcomes = []
    for s in project.scenarios:
        match captures[s.index]:
            case Captured() as capture:
                outcomes.append(ScenarioOutcome(s, ScenarioStatus.CAPTURED, "captured", capture))
            case Failure() as failure:
                outcomes.append(_error(s, failure))
    return ProjectComparison(project, outcomes)
