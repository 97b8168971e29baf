"""JSON report output."""

from __future__ import annotations

import json
from pathlib import Path

from screenshot_runner.models.run_result import ProjectResult, RunResult, ScenarioResult
from screenshot_runner.reporter.comparison import ProjectComparison, ScenarioStatus
from screenshot_runner.utils.paths import ensure_directory


def build_project_result(comparison: ProjectComparison) -> ProjectResult:
    project = comparison.project
    scenarios = []
    for outcome in comparison.outcomes:
        scenario = outcome.scenario
        result = ScenarioResult(
            index=scenario.index,
            event=scenario.event,
            reference=str(scenario.reference),
            status=outcome.status.value,
            tolerance=scenario.tolerance,
            per_pixel_tolerance=scenario.per_pixel_tolerance,
            failure_kind=outcome.failure_kind.value if outcome.failure_kind else None,
            message=outcome.message,
        )
        if outcome.comparison is not None:
            result.metric = outcome.comparison.metric.value
            result.distance = outcome.comparison.distance
            result.max_deviation = outcome.comparison.max_deviation
            result.differing_pixels = outcome.comparison.differing_pixels
        scenarios.append(result)
    return ProjectResult(
        name=project.name,
        path=str(project.path),
        width=project.width,
        height=project.height,
        scenarios=scenarios,
    )


def tally(run_result: RunResult) -> RunResult:
    """Fill the run-level counters from the project results."""
    statuses = [s.status for p in run_result.projects for s in p.scenarios]
    run_result.total = len(statuses)
    run_result.passed = statuses.count(ScenarioStatus.PASS.value)
    run_result.failed = statuses.count(ScenarioStatus.FAIL.value)
    run_result.errors = statuses.count(ScenarioStatus.ERROR.value)
    run_result.captured = statuses.count(ScenarioStatus.CAPTURED.value)
    return run_result


def generate_json_report(run_result: RunResult, output_path: Path) -> None:
    """Write a machine-readable JSON report."""
    output_path = Path(output_path)
    ensure_directory(output_path.parent)
    report = run_result.model_dump()
    report["success"] = run_result.success

    with open(output_path, "w") as f:
        json.dump(report, f, indent=2, default=str)
