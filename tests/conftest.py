"""Pytest configuration and shared fixtures."""

import io
import json
from pathlib import Path
from typing import Any, Callable
from unittest.mock import AsyncMock, Mock

import numpy as np
import pytest
from PIL import Image

from screenshot_runner.imaging.image import Image2d
from screenshot_runner.models.config import (
    CONFIG_NAME,
    Project,
    RunConfig,
    Scenario,
)

RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 255)


# ============================================================================
# Image Fixtures
# ============================================================================


def make_png(width: int, height: int, rgba: tuple[int, int, int, int] = RED) -> bytes:
    """Encode a solid-color RGBA PNG."""
    buffer = io.BytesIO()
    Image.new("RGBA", (width, height), rgba).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def red() -> tuple[int, int, int, int]:
    return RED


@pytest.fixture
def blue() -> tuple[int, int, int, int]:
    return BLUE


@pytest.fixture
def png_factory() -> Callable[..., bytes]:
    return make_png


@pytest.fixture
def red_png() -> bytes:
    return make_png(8, 6, RED)


@pytest.fixture
def blue_png() -> bytes:
    return make_png(8, 6, BLUE)


@pytest.fixture
def red_image() -> Image2d:
    return Image2d.solid(4, 4, RED)


@pytest.fixture
def blue_image() -> Image2d:
    return Image2d.solid(4, 4, BLUE)


@pytest.fixture
def gradient_image() -> Image2d:
    data = np.zeros((3, 5, 4), dtype=np.uint8)
    data[..., 0] = np.arange(5) * 50
    data[..., 1] = np.arange(3)[:, None] * 100
    data[..., 3] = 255
    return Image2d.from_array(data)


# ============================================================================
# Project Fixtures
# ============================================================================


def write_project(
    base_dir: Path,
    name: str,
    scenarios: Any,
    references: dict[str, bytes] | None = None,
    extra: dict[str, Any] | None = None,
) -> Path:
    """Create a project folder with a config file and reference images.

    ``extra`` holds additional config keys such as ``root`` or ``timeout``.
    """
    project_dir = base_dir / name
    (project_dir / "deploy").mkdir(parents=True, exist_ok=True)
    (project_dir / "deploy" / "index.html").write_text("<html><body>test</body></html>")
    for ref, data in (references or {}).items():
        path = project_dir / ref
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    config = {"scenarios": scenarios, **(extra or {})}
    config_path = project_dir / CONFIG_NAME
    config_path.write_text(json.dumps(config))
    return config_path


@pytest.fixture
def project_factory(tmp_path: Path) -> Callable[..., Path]:
    def factory(name: str = "project", scenarios: Any = None, references=None, **extra):
        if scenarios is None:
            scenarios = [
                {"event": "a", "reference": "references/a.png"},
                {"event": "b", "reference": "references/b.png"},
            ]
        if references is None:
            references = {
                "references/a.png": make_png(8, 6, RED),
                "references/b.png": make_png(8, 6, BLUE),
            }
        return write_project(tmp_path, name, scenarios, references, extra)
    return factory


@pytest.fixture
def project(tmp_path: Path) -> Project:
    """A two-scenario project whose references live under tmp_path."""
    path = tmp_path / "project"
    return Project(
        path=path,
        name="project",
        root=path / "deploy",
        timeout=2000,
        width=8,
        height=6,
        scenarios=[
            Scenario(event="a", reference=path / "references" / "a.png",
                     tolerance=0.005, per_pixel_tolerance=0.1, index=0),
            Scenario(event="b", reference=path / "references" / "b.png",
                     tolerance=0.005, per_pixel_tolerance=0.1, index=1),
        ],
    )


@pytest.fixture
def run_config(project: Project) -> RunConfig:
    return RunConfig(projects=[project], poll_interval_ms=10, pool_poll_interval_ms=10)


# ============================================================================
# Playwright Mocks
# ============================================================================


def make_mock_page(screenshot: bytes = b"png") -> AsyncMock:
    """AsyncMock page whose ``on`` registrations are kept in ``page.handlers``."""
    page = AsyncMock()
    page.handlers = {}
    page.on = Mock(side_effect=lambda event, cb: page.handlers.setdefault(event, cb))
    page.screenshot = AsyncMock(return_value=screenshot)
    page.main_frame = Mock()
    page.context.new_cdp_session = AsyncMock(return_value=AsyncMock())
    return page


@pytest.fixture
def mock_page_factory() -> Callable[..., AsyncMock]:
    return make_mock_page


@pytest.fixture
def mock_page() -> AsyncMock:
    return make_mock_page()


@pytest.fixture
def mock_context(mock_page: AsyncMock) -> AsyncMock:
    context = AsyncMock()
    context.new_page = AsyncMock(return_value=mock_page)
    return context
