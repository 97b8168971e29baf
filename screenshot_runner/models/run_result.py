"""Run summary data structures produced after the comparison pass."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ScenarioResult(BaseModel):
    index: int
    event: str
    reference: str
    status: str  # pass, fail, error, captured
    metric: Optional[str] = None
    distance: Optional[float] = None
    max_deviation: Optional[float] = None
    differing_pixels: Optional[int] = None
    tolerance: float = 0.0
    per_pixel_tolerance: float = 0.0
    failure_kind: Optional[str] = None
    message: str = ""


class ProjectResult(BaseModel):
    name: str
    path: str
    width: int
    height: int
    scenarios: list[ScenarioResult] = Field(default_factory=list)

    @property
    def failed(self) -> int:
        return sum(1 for s in self.scenarios if s.status in ("fail", "error"))

    @property
    def success(self) -> bool:
        return self.failed == 0


class RunResult(BaseModel):
    started_at: str
    completed_at: str = ""
    duration_seconds: float = 0.0
    mode: str
    metric: str
    total: int = 0
    passed: int = 0
    failed: int = 0
    errors: int = 0
    captured: int = 0
    saved_files: list[str] = Field(default_factory=list)
    projects: list[ProjectResult] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0 and self.errors == 0
