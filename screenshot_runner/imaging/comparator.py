"""Image comparator — per-pixel metrics and diff visualisation for RGBA buffers.

Two metric families are supported:

* ``pixel-count`` (default): a pixel is *different* once any channel deviates
  by more than ``per_pixel_tolerance`` (normalized to [0, 1]). The scenario
  fails when the fraction of different pixels is strictly greater than
  ``tolerance``.
* ``rmse``: channel deltas are normalized to [0, 1] and the per-pixel distance
  is the euclidean norm over RGBA scaled back to [0, 1]. The scenario fails
  when the root mean square of those distances exceeds ``tolerance`` or when
  the worst pixel exceeds ``per_pixel_tolerance``.

All functions are pure: no I/O, no state, inputs are never modified.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from screenshot_runner.imaging.image import Image2d
from screenshot_runner.models.config import ComparisonMetric

DIFF_COLOR = np.array([255.0, 0.0, 255.0])


class DimensionMismatch(ValueError):
    """Raised when two images with different sizes are compared."""

    def __init__(self, actual: Image2d, expected: Image2d):
        super().__init__(
            f"image has dimensions {actual.width}x{actual.height}, "
            f"but expected dimensions {expected.width}x{expected.height}"
        )
        self.actual_size = (actual.width, actual.height)
        self.expected_size = (expected.width, expected.height)


@dataclass(frozen=True)
class ComparisonResult:
    passed: bool
    metric: ComparisonMetric
    distance: float  # fraction of different pixels, or rmse
    max_deviation: float
    differing_pixels: int
    total_pixels: int
    tolerance: float
    per_pixel_tolerance: float


def _check_dimensions(actual: Image2d, expected: Image2d) -> None:
    if actual.width != expected.width or actual.height != expected.height:
        raise DimensionMismatch(actual, expected)


def _channel_deltas(actual: Image2d, expected: Image2d) -> np.ndarray:
    return np.abs(actual.data.astype(np.int16) - expected.data.astype(np.int16))


def _difference_mask(deltas: np.ndarray, per_pixel_tolerance: float) -> np.ndarray:
    return (deltas > per_pixel_tolerance * 255.0).any(axis=2)


def compare_pixel_count(
    actual: Image2d, expected: Image2d, tolerance: float, per_pixel_tolerance: float,
) -> ComparisonResult:
    _check_dimensions(actual, expected)
    deltas = _channel_deltas(actual, expected)
    total = actual.width * actual.height
    differing = int(np.count_nonzero(_difference_mask(deltas, per_pixel_tolerance)))
    fraction = differing / total if total else 0.0
    max_deviation = float(deltas.max()) / 255.0 if total else 0.0
    return ComparisonResult(
        passed=not fraction > tolerance,
        metric=ComparisonMetric.PIXEL_COUNT,
        distance=fraction,
        max_deviation=max_deviation,
        differing_pixels=differing,
        total_pixels=total,
        tolerance=tolerance,
        per_pixel_tolerance=per_pixel_tolerance,
    )


def compare_rmse(
    actual: Image2d, expected: Image2d, tolerance: float, per_pixel_tolerance: float,
) -> ComparisonResult:
    _check_dimensions(actual, expected)
    total = actual.width * actual.height
    if total == 0:
        return ComparisonResult(True, ComparisonMetric.RMSE, 0.0, 0.0, 0, 0,
                                tolerance, per_pixel_tolerance)

    normalized = _channel_deltas(actual, expected) / 255.0
    # Squared distance per pixel, in [0, 4]
    square = np.sum(normalized * normalized, axis=2)
    rmse = float(np.sqrt(square.mean())) / 2.0
    max_deviation = float(np.sqrt(square.max())) / 2.0
    differing = int(np.count_nonzero(np.sqrt(square) / 2.0 > per_pixel_tolerance))
    return ComparisonResult(
        passed=not (rmse > tolerance or max_deviation > per_pixel_tolerance),
        metric=ComparisonMetric.RMSE,
        distance=rmse,
        max_deviation=max_deviation,
        differing_pixels=differing,
        total_pixels=total,
        tolerance=tolerance,
        per_pixel_tolerance=per_pixel_tolerance,
    )


def compare_images(
    actual: Image2d,
    expected: Image2d,
    tolerance: float,
    per_pixel_tolerance: float,
    metric: ComparisonMetric = ComparisonMetric.PIXEL_COUNT,
) -> ComparisonResult:
    """Compare ``actual`` against ``expected`` with the selected metric.

    Raises:
        DimensionMismatch: if the images do not share width and height.
    """
    match metric:
        case ComparisonMetric.PIXEL_COUNT:
            return compare_pixel_count(actual, expected, tolerance, per_pixel_tolerance)
        case ComparisonMetric.RMSE:
            return compare_rmse(actual, expected, tolerance, per_pixel_tolerance)
        case _:
            raise ValueError(f"Unknown comparison metric: {metric}")


def generate_image_diff(actual: Image2d, expected: Image2d, per_pixel_tolerance: float = 0.0) -> Image2d:
    """Highlight differences between two images.

    Every different pixel of ``actual`` is blended toward magenta, each channel
    proportionally to its deviation, so stronger differences show as stronger
    shades of pink. Other pixels are copied as-is. Alpha is forced opaque.
    """
    _check_dimensions(actual, expected)
    deltas = _channel_deltas(actual, expected)
    mask = _difference_mask(deltas, per_pixel_tolerance)

    result = actual.data.copy()
    rgb = actual.data[..., :3].astype(np.float64)
    alpha = deltas[..., :3] / 255.0
    blended = rgb * (1.0 - alpha) + alpha * DIFF_COLOR
    result[..., :3][mask] = np.clip(np.rint(blended[mask]), 0, 255).astype(np.uint8)
    result[..., 3] = 255
    return Image2d(width=actual.width, height=actual.height, data=result)
