"""Straight-line adapter for the DistanceOracle port.

Answers with the WGS84 geodesic distance, optionally inflated by a detour
factor to approximate road distance. Needs no routing server, which makes it
the oracle for offline runs and tests.
"""

from __future__ import annotations

from collections.abc import Sequence

from pyproj import Geod

from domain.isodistance.value_objects import GeoPoint
from shared.constants import METERS_PER_MILE

# WGS84 ellipsoid for geodesic calculations (same as GPS, EPSG:4326)
_geod = Geod(ellps="WGS84")


class GeodesicOracle:
    """Distance oracle returning `detour_factor` x geodesic distance, in miles."""

    def __init__(self, detour_factor: float = 1.0) -> None:
        if detour_factor < 1.0:
            raise ValueError(f"detour_factor must be >= 1, got {detour_factor}")
        self.detour_factor = detour_factor

    async def distances(
        self, origin: GeoPoint, points: Sequence[GeoPoint]
    ) -> list[float | None]:
        if not points:
            return []
        n = len(points)
        _, _, meters = _geod.inv(
            [origin.longitude] * n,
            [origin.latitude] * n,
            [p.longitude for p in points],
            [p.latitude for p in points],
        )
        return [abs(float(m)) / METERS_PER_MILE * self.detour_factor for m in meters]
