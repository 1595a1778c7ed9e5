"""Domain Port(s) for the isodistance pipeline.

Defines interfaces (Protocols) that infrastructure adapters and test doubles
must implement. No concrete I/O here.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

from .value_objects import DistanceField, GeoPoint, Isoline, ResultCollection

if TYPE_CHECKING:
    from .errors import IsodistanceError, MissingMetadataWarning
    from .orchestrator import PipelineStage, RetryState


class DistanceOracle(Protocol):
    """Port for road-network travel distances.

    Implementations live in infrastructure (e.g., OSRM table adapter).
    """

    async def distances(
        self, origin: GeoPoint, points: Sequence[GeoPoint]
    ) -> Sequence[float | None]:
        """Return one distance in miles per point, None where unreachable."""
        ...


class ContourTracer(Protocol):
    """Extracts the isoline of a distance field at one threshold."""

    def __call__(self, field: DistanceField, threshold: float) -> Isoline: ...


class IsodistanceObserver(Protocol):
    """Receives pipeline progress and failures from the orchestrator."""

    def on_stage(self, stage: "PipelineStage", state: "RetryState") -> None: ...

    def on_kink(self, previous: "RetryState", escalated: "RetryState") -> None: ...

    def on_missing_metadata(self, warning: "MissingMetadataWarning") -> None: ...

    def on_failure(self, error: "IsodistanceError") -> None: ...

    def on_complete(self, result: ResultCollection) -> None: ...
