"""Isodistance Bounded Context - Value Objects.

Immutable data structures for the sampling-and-contouring pipeline.
All validation occurs at construction time via Pydantic.
"""

from __future__ import annotations

import math
from typing import Any

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict, Field, model_validator
from shapely.geometry import Polygon, mapping

from shared.constants import DEFAULT_BATCH_SIZE, DEFAULT_MAP, DEFAULT_RESOLUTION_MI


# ---------------------------------------------------------------------------
# GeoPoint
# ---------------------------------------------------------------------------
class GeoPoint(BaseModel):
    """Geographic coordinate in WGS84 (Value Object).

    Invariants:
        latitude in [-90, 90]
        longitude in [-180, 180]

    Pydantic frozen models compare and hash by value, so GeoPoints can key
    a DistanceField mapping.
    """

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

    model_config = ConfigDict(frozen=True)

    def as_lonlat(self) -> tuple[float, float]:
        """Return (longitude, latitude), the GeoJSON coordinate order."""
        return (self.longitude, self.latitude)


# ---------------------------------------------------------------------------
# BoundingBox
# ---------------------------------------------------------------------------
class BoundingBox(BaseModel):
    """Geographic extent in EPSG:4326 (Value Object).

    Invariants are enforced at construction time - invalid BoundingBox
    cannot be instantiated.
    """

    min_x: float  # Western boundary (longitude)
    min_y: float  # Southern boundary (latitude)
    max_x: float  # Eastern boundary (longitude)
    max_y: float  # Northern boundary (latitude)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_bounds(self) -> "BoundingBox":
        # Longitude range
        if not (-180 <= self.min_x <= 180):
            raise ValueError(f"min_x longitude out of range: {self.min_x}")
        if not (-180 <= self.max_x <= 180):
            raise ValueError(f"max_x longitude out of range: {self.max_x}")
        # Latitude range
        if not (-90 <= self.min_y <= 90):
            raise ValueError(f"min_y latitude out of range: {self.min_y}")
        if not (-90 <= self.max_y <= 90):
            raise ValueError(f"max_y latitude out of range: {self.max_y}")
        # Ordering
        if not (self.min_x < self.max_x):
            raise ValueError(
                f"Invalid x ordering: min_x={self.min_x} >= max_x={self.max_x}"
            )
        if not (self.min_y < self.max_y):
            raise ValueError(
                f"Invalid y ordering: min_y={self.min_y} >= max_y={self.max_y}"
            )
        return self

    def contains(self, point: GeoPoint) -> bool:
        """Check if point is within bounds (inclusive)."""
        return (
            self.min_x <= point.longitude <= self.max_x
            and self.min_y <= point.latitude <= self.max_y
        )

    def center(self) -> GeoPoint:
        return GeoPoint(
            latitude=(self.min_y + self.max_y) / 2,
            longitude=(self.min_x + self.max_x) / 2,
        )


# ---------------------------------------------------------------------------
# Grid
# ---------------------------------------------------------------------------
def _frozen_axis(values: Any, name: str) -> NDArray[np.float64]:
    axis = np.array(values, dtype=np.float64, copy=True, order="C")
    if axis.ndim != 1:
        raise ValueError(f"{name} must be 1D, got {axis.ndim}D")
    if axis.size == 0:
        raise ValueError(f"{name} cannot be empty")
    if not np.all(np.isfinite(axis)):
        raise ValueError(f"{name} must be finite")
    if axis.size > 1 and not np.all(np.diff(axis) > 0):
        raise ValueError(f"{name} must be strictly increasing")
    axis.flags.writeable = False
    return axis


class Grid(BaseModel):
    """Regular lattice of sample points covering a BoundingBox (Value Object).

    Points are ordered row-major: rows run south to north, and each row runs
    west to east. The axes are owned, read-only copies, so a Grid never
    changes after construction; a new resolution means a new Grid.
    """

    bounds: BoundingBox
    lons: NDArray[np.float64]  # Column axis (longitude), strictly increasing
    lats: NDArray[np.float64]  # Row axis (latitude), strictly increasing
    resolution: float = Field(gt=0)  # Point spacing in miles

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @model_validator(mode="after")
    def validate_grid(self) -> "Grid":
        object.__setattr__(self, "lons", _frozen_axis(self.lons, "lons"))
        object.__setattr__(self, "lats", _frozen_axis(self.lats, "lats"))
        return self

    @property
    def shape(self) -> tuple[int, int]:
        """(rows, columns)"""
        return (int(self.lats.size), int(self.lons.size))

    @property
    def size(self) -> int:
        return int(self.lats.size * self.lons.size)

    def point_at(self, row: int, col: int) -> GeoPoint:
        return GeoPoint(latitude=float(self.lats[row]), longitude=float(self.lons[col]))

    def points(self) -> tuple[GeoPoint, ...]:
        """Return every grid point in row-major order."""
        return tuple(
            GeoPoint(latitude=float(lat), longitude=float(lon))
            for lat in self.lats
            for lon in self.lons
        )


# ---------------------------------------------------------------------------
# DistanceField
# ---------------------------------------------------------------------------
class DistanceField(BaseModel):
    """Travel distance from the origin at every grid point (Value Object).

    `values[row, col]` is the distance in miles to `grid.point_at(row, col)`.
    `+inf` marks points the oracle could not reach; NaN and negative values
    are rejected. The array is an owned, read-only copy.
    """

    origin: GeoPoint
    grid: Grid
    values: NDArray[np.float64]

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @model_validator(mode="after")
    def validate_field(self) -> "DistanceField":
        values = np.array(self.values, dtype=np.float64, copy=True, order="C")
        if values.shape != self.grid.shape:
            raise ValueError(
                f"Field shape {values.shape} does not match grid shape {self.grid.shape}"
            )
        if np.isnan(values).any():
            raise ValueError("Field contains NaN distances")
        if (values < 0).any():
            raise ValueError("Field contains negative distances")
        values.flags.writeable = False
        object.__setattr__(self, "values", values)
        return self

    def distance_at(self, row: int, col: int) -> float:
        return float(self.values[row, col])

    def as_mapping(self) -> dict[GeoPoint, float]:
        """Return the field as a grid point -> distance mapping."""
        rows, cols = self.grid.shape
        return {
            self.grid.point_at(r, c): float(self.values[r, c])
            for r in range(rows)
            for c in range(cols)
        }

    def reachable_count(self) -> int:
        return int(np.isfinite(self.values).sum())


# ---------------------------------------------------------------------------
# Isoline
# ---------------------------------------------------------------------------
Ring = tuple[GeoPoint, ...]


def _check_ring(ring: Ring, name: str) -> None:
    if len(ring) < 4:
        raise ValueError(f"{name} must have >= 4 points, got {len(ring)}")
    if ring[0] != ring[-1]:
        raise ValueError(f"{name} must be closed (first point == last point)")


class Isoline(BaseModel):
    """Closed polygon bounding everything reachable within `distance` (Value Object).

    Invariants:
        distance >= 0
        exterior and every hole are closed rings with >= 4 points
    """

    distance: float = Field(ge=0)  # Stop this contour was traced for, in miles
    exterior: Ring
    holes: tuple[Ring, ...] = ()
    properties: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_rings(self) -> "Isoline":
        _check_ring(self.exterior, "exterior")
        for hole in self.holes:
            _check_ring(hole, "hole")
        return self

    def with_metadata(self, data: dict[str, Any]) -> "Isoline":
        """Return a copy with `data` merged into the properties."""
        return self.model_copy(update={"properties": {**self.properties, **data}})

    def feature_properties(self) -> dict[str, Any]:
        return {"distance": self.distance, **self.properties}

    def to_polygon(self) -> Polygon:
        return Polygon(
            [p.as_lonlat() for p in self.exterior],
            [[p.as_lonlat() for p in hole] for hole in self.holes],
        )

    def to_feature(self) -> dict[str, Any]:
        """Return a GeoJSON Feature dict."""
        return {
            "type": "Feature",
            "geometry": mapping(self.to_polygon()),
            "properties": self.feature_properties(),
        }


# ---------------------------------------------------------------------------
# ResultCollection
# ---------------------------------------------------------------------------
class ResultCollection(BaseModel):
    """Isolines for every requested stop, outermost first (Value Object)."""

    features: tuple[Isoline, ...]

    model_config = ConfigDict(frozen=True)

    def __len__(self) -> int:
        return len(self.features)

    def distances(self) -> tuple[float, ...]:
        return tuple(f.distance for f in self.features)

    def to_geojson(self) -> dict[str, Any]:
        """Return an RFC 7946 FeatureCollection dict."""
        return {
            "type": "FeatureCollection",
            "features": [f.to_feature() for f in self.features],
        }


# ---------------------------------------------------------------------------
# IsodistanceOptions
# ---------------------------------------------------------------------------
class IsodistanceOptions(BaseModel):
    """Caller configuration for one invocation. Never mutated by the pipeline.

    `data` maps a stop distance to the properties merged into its isoline.
    JSON-style string keys ("1", "2.5") are coerced to floats.
    """

    map: str = DEFAULT_MAP  # Dataset identifier, passed through to the oracle
    resolution: float = Field(default=DEFAULT_RESOLUTION_MI, gt=0)  # Miles
    data: dict[float, dict[str, Any]] = Field(default_factory=dict)
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_data_keys(self) -> "IsodistanceOptions":
        for key in self.data:
            if not math.isfinite(key):
                raise ValueError(f"Metadata key must be a finite distance: {key}")
        return self
