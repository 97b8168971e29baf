"""Tests for configuration models."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from screenshot_runner.models.config import (
    CONFIG_NAME,
    DEFAULT_HEIGHT,
    DEFAULT_WIDTH,
    ConfigError,
    LogLevel,
    PageErrorPolicy,
    ProjectConfigFile,
    RunConfig,
    RunnerMode,
    SaveMode,
    ScenarioConfig,
    convert_ready_event,
)


class TestEnums:
    """Tests for flag enums and their serialization."""

    def test_save_all_combines_failures_and_successes(self):
        assert SaveMode.ALL == SaveMode.FAILURES | SaveMode.SUCCESSES
        assert not SaveMode.ALL & SaveMode.DIFFERENCES

    def test_default_log_mask(self):
        config = RunConfig()
        assert config.log & LogLevel.WARN
        assert config.log & LogLevel.ERROR
        assert not config.log & LogLevel.INFO

    def test_flags_serialize_as_int(self):
        config = RunConfig(save=SaveMode.FAILURES | SaveMode.DIFFERENCES)
        data = config.model_dump()
        assert data["save"] == 5
        assert data["log"] == 6

    def test_flags_accept_int(self):
        config = RunConfig(save=2, log=1)
        assert config.save is SaveMode.SUCCESSES
        assert config.log is LogLevel.INFO

    def test_defaults(self):
        config = RunConfig()
        assert config.mode is RunnerMode.CAPTURE_AND_COMPARE
        assert config.on_page_error is PageErrorPolicy.CONTINUE
        assert config.port == 8080
        assert config.output is None


class TestScenarioConfig:
    """Tests for raw scenario entries."""

    def test_aliases_and_defaults(self):
        s = ScenarioConfig.model_validate({"readyEvent": "Scene.bin", "reference": "a.png"})
        assert s.tolerance == 0.005
        assert s.per_pixel_tolerance == 0.1
        assert s.resolve_event() == "wle-scene-ready:Scene.bin"

    def test_event_takes_precedence(self):
        s = ScenarioConfig.model_validate(
            {"event": "custom", "readyEvent": "Scene.bin", "reference": "a.png"}
        )
        assert s.resolve_event() == "custom"

    def test_unresolved_event_is_empty(self):
        assert ScenarioConfig(reference="a.png").resolve_event() == ""

    def test_tolerance_out_of_range(self):
        with pytest.raises(ValidationError):
            ScenarioConfig.model_validate({"event": "a", "reference": "a.png", "tolerance": 2})

    def test_reference_required(self):
        with pytest.raises(ValidationError):
            ScenarioConfig.model_validate({"event": "a"})

    def test_convert_ready_event(self):
        assert convert_ready_event("Other.bin") == "wle-scene-ready:Other.bin"


class TestProjectConfigFile:
    """Tests for the raw project file."""

    def test_single_scenario_object_is_wrapped(self):
        raw = ProjectConfigFile.model_validate({"scenarios": {"event": "a", "reference": "a.png"}})
        assert len(raw.scenarios) == 1
        assert raw.scenarios[0].event == "a"

    def test_defaults(self):
        raw = ProjectConfigFile()
        assert raw.timeout == 60000
        assert raw.root == "deploy"
        assert raw.width is None


class TestRunConfigAdd:
    """Tests for adding one project from its configuration file."""

    def test_resolves_paths_and_indices(self, project_factory):
        config_path = project_factory()
        config = RunConfig()
        project = config.add(config_path)

        assert project.name == "project"
        assert project.path == config_path.parent.resolve()
        assert project.root == config_path.parent.resolve() / "deploy"
        assert [s.index for s in project.scenarios] == [0, 1]
        assert [s.event for s in project.scenarios] == ["a", "b"]
        assert project.scenarios[0].reference == config_path.parent.resolve() / "references" / "a.png"

    def test_size_from_reference(self, project_factory):
        project = RunConfig().add(project_factory())
        assert (project.width, project.height) == (8, 6)

    def test_size_from_json(self, project_factory):
        project = RunConfig().add(project_factory(width=100, height=50))
        assert (project.width, project.height) == (100, 50)

    def test_override_wins(self, project_factory):
        project = RunConfig(width=320).add(project_factory(width=100, height=50))
        assert (project.width, project.height) == (320, 50)

    def test_default_size_without_references(self, project_factory):
        project = RunConfig().add(project_factory(references={}))
        assert (project.width, project.height) == (DEFAULT_WIDTH, DEFAULT_HEIGHT)

    def test_skips_unreadable_reference_for_size(self, project_factory, png_factory):
        project = RunConfig().add(project_factory(references={
            "references/a.png": b"junk",
            "references/b.png": png_factory(12, 10),
        }))
        assert (project.width, project.height) == (12, 10)

    def test_custom_root_and_timeout(self, project_factory):
        project = RunConfig().add(project_factory(root="build", timeout=1234))
        assert project.root.name == "build"
        assert project.timeout == 1234


class TestRunConfigLoad:
    """Tests for loading one file or a whole directory."""

    def test_directory_is_searched_recursively(self, tmp_path, project_factory):
        project_factory("alpha")
        nested = tmp_path / "nested"
        nested.mkdir()
        config_path = project_factory("beta")
        config_path.rename(nested / CONFIG_NAME)

        config = RunConfig()
        config.load(tmp_path)
        assert sorted(p.name for p in config.projects) == ["alpha", "nested"]

    def test_single_file(self, project_factory):
        config = RunConfig()
        config.load(project_factory("alpha"))
        assert [p.name for p in config.projects] == ["alpha"]

    def test_missing_path(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            RunConfig().load(tmp_path / "nope")

    def test_directory_without_configs(self, tmp_path):
        with pytest.raises(ConfigError, match=CONFIG_NAME):
            RunConfig().load(tmp_path)

    def test_errors_are_aggregated(self, tmp_path, project_factory):
        project_factory("good")
        for name in ("bad1", "bad2"):
            folder = tmp_path / name
            folder.mkdir()
            (folder / CONFIG_NAME).write_text("{ not json")

        config = RunConfig()
        with pytest.raises(ConfigError) as exc:
            config.load(tmp_path)
        assert "bad1" in str(exc.value)
        assert "bad2" in str(exc.value)
        # Valid projects are still loaded
        assert [p.name for p in config.projects] == ["good"]

    def test_invalid_schema_is_config_error(self, tmp_path):
        (tmp_path / CONFIG_NAME).write_text(json.dumps({"scenarios": [{"event": "a"}]}))
        with pytest.raises(ConfigError, match="reference"):
            RunConfig().load(tmp_path / CONFIG_NAME)


class TestValidateProjects:
    """Tests for pre-flight validation."""

    def test_valid(self, project_factory):
        config = RunConfig()
        config.load(project_factory())
        config.validate_projects()

    def test_no_projects(self):
        with pytest.raises(ConfigError, match="No configuration"):
            RunConfig().validate_projects()

    def test_no_scenarios(self, project_factory):
        config = RunConfig()
        config.load(project_factory(scenarios=[]))
        with pytest.raises(ConfigError, match="no scenarios"):
            config.validate_projects()

    def test_missing_event(self, project_factory):
        config = RunConfig()
        config.load(project_factory(scenarios=[{"reference": "references/a.png"}]))
        with pytest.raises(ConfigError, match="missing events"):
            config.validate_projects()

    def test_duplicate_events(self, project_factory):
        config = RunConfig()
        config.load(project_factory(scenarios=[
            {"event": "a", "reference": "references/a.png"},
            {"event": "a", "reference": "references/b.png"},
        ]))
        with pytest.raises(ConfigError, match="duplicated"):
            config.validate_projects()

    def test_missing_reference_folder(self, project_factory):
        config = RunConfig()
        config.load(project_factory(
            scenarios=[{"event": "a", "reference": "missing/a.png"}], references={},
        ))
        with pytest.raises(ConfigError, match="missing reference folder"):
            config.validate_projects()

    def test_missing_reference_file_is_not_config_error(self, project_factory, red_png):
        config = RunConfig()
        config.load(project_factory(references={"references/a.png": red_png}))
        config.validate_projects()


class TestWatchAndBounds:
    """Tests for watch resolution and the context bound."""

    def test_resolve_raw_event(self, project_factory):
        config = RunConfig(watch="b")
        config.load(project_factory())
        config.resolve_watch()
        assert config.watch == "b"

    def test_resolve_ready_event_filename(self, project_factory):
        config = RunConfig(watch="Scene.bin")
        config.load(project_factory(scenarios=[
            {"readyEvent": "Scene.bin", "reference": "references/a.png"},
        ]))
        config.resolve_watch()
        assert config.watch == "wle-scene-ready:Scene.bin"

    def test_unknown_watch(self, project_factory):
        config = RunConfig(watch="zzz")
        config.load(project_factory())
        with pytest.raises(ConfigError, match="zzz"):
            config.resolve_watch()

    def test_watch_forces_headed(self):
        assert RunConfig().is_headless
        assert not RunConfig(watch="a").is_headless
        assert not RunConfig(headless=False).is_headless

    def test_context_bound_capped_by_projects(self, project_factory):
        config = RunConfig(max_contexts=8)
        config.load(project_factory("one"))
        config.load(project_factory("two"))
        assert config.context_bound() == 2

    def test_context_bound_explicit(self, project_factory):
        config = RunConfig(max_contexts=1)
        config.load(project_factory("one"))
        config.load(project_factory("two"))
        assert config.context_bound() == 1

    @pytest.mark.parametrize("cpus,expected", [(None, 2), (1, 2), (4, 4), (64, 6)])
    def test_default_bound_clamps_cpu_count(self, project_factory, cpus, expected):
        config = RunConfig()
        for i in range(8):
            config.load(project_factory(f"p{i}"))
        with patch("screenshot_runner.models.config.os.cpu_count", return_value=cpus):
            assert config.context_bound() == expected
