"""Reference loader — reads and decodes golden images for a scenario list."""

from __future__ import annotations

import asyncio
import logging

from PIL import UnidentifiedImageError

from screenshot_runner.imaging.image import decode_png
from screenshot_runner.models.config import Scenario
from screenshot_runner.models.results import Failure, FailureKind, Loaded, ReferenceResult

logger = logging.getLogger(__name__)


def load_reference(scenario: Scenario) -> ReferenceResult:
    """Load one reference. Errors become a ``Failure`` for that scenario only."""
    try:
        data = scenario.reference.read_bytes()
        return Loaded(decode_png(data))
    except (OSError, UnidentifiedImageError, ValueError) as e:
        logger.debug("Reference for '%s' unavailable: %s", scenario.event, e)
        return Failure(
            FailureKind.REFERENCE,
            f"Failed to open reference for scenario {scenario.event}:\n  {e}",
        )


async def load_references(scenarios: list[Scenario]) -> list[ReferenceResult]:
    """Load every reference concurrently, one result per scenario, same order."""
    return list(await asyncio.gather(
        *(asyncio.to_thread(load_reference, s) for s in scenarios)
    ))
