"""Tests for the JSON report output."""

import json

import pytest

from screenshot_runner.imaging.image import Image2d
from screenshot_runner.models.results import Captured, Loaded, not_dispatched
from screenshot_runner.models.run_result import RunResult
from screenshot_runner.reporter.comparison import collect_captures, compare_project
from screenshot_runner.reporter.json_report import (
    build_project_result,
    generate_json_report,
    tally,
)


@pytest.fixture
def run_result(project, red, red_png, blue_png) -> RunResult:
    """Scenario a passes, scenario b fails."""
    captures = [Captured(red_png), Captured(blue_png)]
    references = [Loaded(Image2d.solid(8, 6, red)), Loaded(Image2d.solid(8, 6, red))]
    comparison = compare_project(project, captures, references)
    return tally(RunResult(
        started_at="2026-01-01T00:00:00",
        mode="capture-and-compare",
        metric="pixel-count",
        projects=[build_project_result(comparison)],
    ))


class TestBuildProjectResult:
    """Tests for converting comparisons into report models."""

    def test_scenario_fields(self, run_result):
        result = run_result.projects[0]
        assert result.name == "project"
        assert (result.width, result.height) == (8, 6)

        passed, failed = result.scenarios
        assert passed.status == "pass"
        assert passed.distance == 0.0
        assert failed.status == "fail"
        assert failed.differing_pixels == 48
        assert failed.metric == "pixel-count"
        assert result.failed == 1
        assert not result.success

    def test_error_has_failure_kind(self, project, red_png):
        comparison = collect_captures(project, [Captured(red_png), not_dispatched("b")])
        result = build_project_result(comparison)
        assert result.scenarios[0].status == "captured"
        assert result.scenarios[1].failure_kind == "not-dispatched"
        assert result.scenarios[1].distance is None


class TestTally:
    """Tests for run-level counters."""

    def test_counts(self, run_result):
        run = run_result
        assert (run.total, run.passed, run.failed, run.errors, run.captured) == (2, 1, 1, 0, 0)
        assert not run.success


class TestGenerateJsonReport:
    """Tests for writing the report file."""

    def test_writes_report(self, run_result, tmp_path):
        path = tmp_path / "reports" / "report.json"
        generate_json_report(run_result, path)

        data = json.loads(path.read_text())
        assert data["success"] is False
        assert data["failed"] == 1
        assert data["projects"][0]["scenarios"][1]["event"] == "b"
        assert data["projects"][0]["scenarios"][1]["message"].startswith("48 different pixels")
