"""Invocation entry point for isodistance polygons.

Wires the domain orchestrator to a distance oracle. Callers may pass their
own oracle; otherwise an OSRM oracle is built from the map identifier and
closed when the run ends.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from domain.isodistance.orchestrator import IsolineOrchestrator
from domain.isodistance.ports import DistanceOracle, IsodistanceObserver
from domain.isodistance.value_objects import (
    GeoPoint,
    IsodistanceOptions,
    ResultCollection,
)
from infrastructure.routing import OsrmTableOracle

logger = logging.getLogger(__name__)


async def isodistance(
    origin: GeoPoint,
    stops: Sequence[float],
    options: IsodistanceOptions | None = None,
    *,
    oracle: DistanceOracle | None = None,
    observer: IsodistanceObserver | None = None,
) -> ResultCollection:
    """Compute one isodistance polygon per stop around `origin`.

    Args:
        origin: Start point
        stops: Travel distances in miles
        options: Map identifier, initial resolution, metadata table
        oracle: Distance oracle; defaults to OSRM for `options.map`
        observer: Progress/failure sink; defaults to logging

    Returns:
        ResultCollection sorted by descending distance

    Raises:
        FatalIsodistanceError: Any non-recoverable pipeline failure
        ValueError: If the stops or options are invalid
    """
    options = options if options is not None else IsodistanceOptions()

    if oracle is not None:
        orchestrator = IsolineOrchestrator(oracle, observer=observer)
        return await orchestrator.run(origin, stops, options)

    logger.info("Connecting to OSRM for map %s", options.map)
    async with OsrmTableOracle.from_environment(options.map) as osrm:
        orchestrator = IsolineOrchestrator(osrm, observer=observer)
        return await orchestrator.run(origin, stops, options)
