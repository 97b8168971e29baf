"""Tagged result values passed between the capture, loading and comparison stages."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Union

from screenshot_runner.imaging.image import Image2d


class FailureKind(str, enum.Enum):
    NOT_DISPATCHED = "not-dispatched"
    PAGE_ERROR = "page-error"
    NAVIGATION = "navigation"
    CAPTURE = "capture"
    DECODE = "decode"
    REFERENCE = "reference"
    DIMENSION_MISMATCH = "dimension-mismatch"


@dataclass(frozen=True)
class Failure:
    """Expected failure for a single scenario."""

    kind: FailureKind
    message: str


@dataclass(frozen=True)
class Captured:
    """Encoded PNG screenshot taken when the scenario event fired."""

    png: bytes


@dataclass(frozen=True)
class Loaded:
    """Decoded golden reference."""

    image: Image2d


CaptureResult = Union[Captured, Failure]
ReferenceResult = Union[Loaded, Failure]


def not_dispatched(event: str) -> Failure:
    return Failure(FailureKind.NOT_DISPATCHED, f"event '{event}' wasn't dispatched")
