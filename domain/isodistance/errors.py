"""Isodistance Bounded Context - Error Hierarchy.

Recoverable and fatal failures are distinct exception types, so the
orchestrator dispatches on type:

- KinkError: the only recoverable failure. Raised by the contour tracer and
  handled inside the retry loop by escalating the resolution.
- FatalIsodistanceError and its subclasses: terminate the pipeline with no
  partial result.
"""

from __future__ import annotations


class IsodistanceError(Exception):
    """Base error for isodistance operations."""


class KinkError(IsodistanceError):
    """Traced contour self-intersects or degenerates at the current resolution."""

    def __init__(self, message: str = "Contour contains a kink") -> None:
        super().__init__(message)


class FatalIsodistanceError(IsodistanceError):
    """Non-recoverable failure; never retried."""


class OracleError(FatalIsodistanceError):
    """Distance oracle failed or returned malformed data."""


class GeometryError(FatalIsodistanceError):
    """Contour tracing failed for a reason other than a kink (e.g. empty region)."""


class ConsistencyError(FatalIsodistanceError):
    """Post-processing produced a different number of isolines than stops.

    Attributes:
        expected: Number of requested stops
        produced: Number of isolines produced
    """

    def __init__(self, expected: int, produced: int) -> None:
        self.expected = expected
        self.produced = produced
        super().__init__(f"Expected {expected} polygons but produced {produced}")


class RetryExhaustedError(FatalIsodistanceError):
    """Kinks persisted past the retry ceiling.

    Attributes:
        attempts: Sampling attempts performed
        resolution: Resolution of the last attempt, in miles
    """

    def __init__(self, attempts: int, resolution: float) -> None:
        self.attempts = attempts
        self.resolution = resolution
        super().__init__(
            f"Could not eliminate kinks in isoline polygons after {attempts} "
            f"attempts (last resolution {resolution:g} mi)"
        )


class MissingMetadataWarning(UserWarning):
    """No metadata entry exists for an isoline distance. Reported, never raised."""

    def __init__(self, distance: float) -> None:
        self.distance = distance
        super().__init__(f"No data found for d={distance:g}")
