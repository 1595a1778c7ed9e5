"""Isodistance Bounded Context - Domain Services.

Pure domain logic for the sampling-and-contouring pipeline:
bounding box -> point grid -> distance field -> traced isoline.

NO I/O here. Distances come from a DistanceOracle port implemented by
infrastructure adapters under `src/infrastructure/routing/`.
"""

from __future__ import annotations

import asyncio
import logging
import math
import numbers
from collections.abc import Sequence

import numpy as np
from numpy.typing import NDArray
from pyproj import Geod
from shapely.geometry import LinearRing, Polygon
from shapely.geometry.polygon import orient

from domain.isodistance.errors import GeometryError, KinkError, OracleError
from domain.isodistance.ports import DistanceOracle
from domain.isodistance.value_objects import (
    BoundingBox,
    DistanceField,
    GeoPoint,
    Grid,
    Isoline,
)
from shared.constants import DEFAULT_BATCH_SIZE, METERS_PER_MILE

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
BBOX_PADDING = 1.25  # Box reaches 25% past the largest stop
MIN_BBOX_EXTENT_MI = 1.0  # Floor on the box half-extent (zero stops)

# WGS84 ellipsoid for geodesic calculations (same as GPS, EPSG:4326)
_geod = Geod(ellps="WGS84")


# ---------------------------------------------------------------------------
# Helper: degree steps for a distance in miles
# ---------------------------------------------------------------------------
def _degree_steps(at: GeoPoint, miles: float) -> tuple[float, float]:
    """Return (dlon, dlat) in degrees spanning `miles` east and north of `at`."""
    meters = miles * METERS_PER_MILE
    lon_east, _, _ = _geod.fwd(at.longitude, at.latitude, 90.0, meters)
    _, lat_north, _ = _geod.fwd(at.longitude, at.latitude, 0.0, meters)
    return (float(lon_east - at.longitude), float(lat_north - at.latitude))


# ---------------------------------------------------------------------------
# BoundingBoxResolver
# ---------------------------------------------------------------------------
def resolve_bounding_box(origin: GeoPoint, max_distance: float) -> BoundingBox:
    """Compute a box containing every isoline up to `max_distance` miles.

    Projects the origin along the four cardinal bearings on the WGS84
    ellipsoid by the padded distance and takes the extremes.

    Args:
        origin: Isoline origin
        max_distance: Largest requested stop, in miles

    Returns:
        BoundingBox containing the origin

    Raises:
        ValueError: If max_distance is negative or not finite, or if the box
            would cross the antimeridian or reach a pole
    """
    if not math.isfinite(max_distance) or max_distance < 0:
        raise ValueError(f"max_distance must be finite and >= 0, got {max_distance}")

    extent_m = max(max_distance * BBOX_PADDING, MIN_BBOX_EXTENT_MI) * METERS_PER_MILE
    lons, lats, _ = _geod.fwd(
        [origin.longitude] * 4,
        [origin.latitude] * 4,
        [0.0, 90.0, 180.0, 270.0],
        [extent_m] * 4,
    )
    north, _, south, _ = (float(lat) for lat in lats)
    _, east, _, west = (float(lon) for lon in lons)

    # Geod.fwd wraps longitudes into [-180, 180] and walks over the pole
    if north <= origin.latitude or south >= origin.latitude:
        raise ValueError(
            f"Bounding box around {origin.as_lonlat()} with extent "
            f"{max_distance:g} mi reaches a pole"
        )
    if east <= origin.longitude or west >= origin.longitude:
        raise ValueError(
            f"Bounding box around {origin.as_lonlat()} with extent "
            f"{max_distance:g} mi crosses the antimeridian"
        )

    return BoundingBox(
        min_x=float(min(lons)),
        max_x=float(max(lons)),
        min_y=float(min(lats)),
        max_y=float(max(lats)),
    )


# ---------------------------------------------------------------------------
# GridSampler
# ---------------------------------------------------------------------------
def sample_grid(
    box: BoundingBox, resolution: float, center: GeoPoint | None = None
) -> Grid:
    """Tile `box` with a regular point lattice spaced `resolution` miles apart.

    The lattice is anchored on `center` (the box centre by default) and
    extends by whole steps in each direction while staying inside the box,
    so `center` is always a grid node. Steps are measured geodesically at
    `center`.

    Raises:
        ValueError: If resolution is not a positive finite number, or if
            `center` lies outside the box
    """
    if not math.isfinite(resolution) or resolution <= 0:
        raise ValueError(f"resolution must be positive, got {resolution}")

    center = center if center is not None else box.center()
    if not box.contains(center):
        raise ValueError(f"Grid anchor {center.as_lonlat()} is outside the box")
    dlon, dlat = _degree_steps(center, resolution)

    west = int(math.floor((center.longitude - box.min_x) / dlon))
    east = int(math.floor((box.max_x - center.longitude) / dlon))
    south = int(math.floor((center.latitude - box.min_y) / dlat))
    north = int(math.floor((box.max_y - center.latitude) / dlat))

    lons = center.longitude + np.arange(-west, east + 1, dtype=np.float64) * dlon
    lats = center.latitude + np.arange(-south, north + 1, dtype=np.float64) * dlat

    # Floor keeps the extremes inside the box; clip absorbs rounding
    lons = np.clip(lons, box.min_x, box.max_x)
    lats = np.clip(lats, box.min_y, box.max_y)

    return Grid(bounds=box, lons=lons, lats=lats, resolution=resolution)


# ---------------------------------------------------------------------------
# DistanceFieldComputer
# ---------------------------------------------------------------------------
def _coerce_distance(value: object) -> float:
    """Validate one oracle answer. None (unreachable) becomes +inf."""
    if value is None:
        return math.inf
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise OracleError(f"Oracle returned a non-numeric distance: {value!r}")
    distance = float(value)
    if math.isnan(distance) or distance < 0:
        raise OracleError(f"Oracle returned an invalid distance: {distance}")
    return distance


async def compute_distance_field(
    oracle: DistanceOracle,
    origin: GeoPoint,
    grid: Grid,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> DistanceField:
    """Query the oracle for every grid point and assemble the distance field.

    Batches of `batch_size` points are issued concurrently; the field is only
    built once every batch has answered.

    Raises:
        OracleError: If any oracle call fails or returns malformed data
        ValueError: If batch_size < 1
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    points = grid.points()
    batches = [points[i : i + batch_size] for i in range(0, len(points), batch_size)]

    # TaskGroup cancels the sibling batches as soon as one of them fails
    try:
        async with asyncio.TaskGroup() as tg:
            tasks = [
                tg.create_task(oracle.distances(origin, batch)) for batch in batches
            ]
    except ExceptionGroup as group:
        first = group.exceptions[0]
        if isinstance(first, OracleError):
            raise first
        raise OracleError(f"Distance oracle failed: {first}") from first

    values = np.empty(len(points), dtype=np.float64)
    offset = 0
    for batch, task in zip(batches, tasks):
        answer = task.result()
        if answer is None or len(answer) != len(batch):
            produced = "no" if answer is None else len(answer)
            raise OracleError(
                f"Oracle returned {produced} distances for {len(batch)} points"
            )
        for k, distance in enumerate(answer):
            values[offset + k] = _coerce_distance(distance)
        offset += len(batch)

    field = DistanceField(origin=origin, grid=grid, values=values.reshape(grid.shape))
    logger.debug(
        "Distance field: %d points in %d batches, %d reachable",
        grid.size,
        len(batches),
        field.reachable_count(),
    )
    return field


# ---------------------------------------------------------------------------
# ContourTracer
# ---------------------------------------------------------------------------
# Cell corners: c0=(r, c)  c1=(r, c+1)  c2=(r+1, c+1)  c3=(r+1, c)
# Cell edges:   e0=c0-c1   e1=c1-c2     e2=c3-c2       e3=c0-c3
# Case index bit k is set when corner ck is inside the region.
_SEGMENTS: dict[int, tuple[tuple[int, int], ...]] = {
    1: ((3, 0),),
    2: ((0, 1),),
    3: ((3, 1),),
    4: ((1, 2),),
    6: ((0, 2),),
    7: ((3, 2),),
    8: ((2, 3),),
    9: ((0, 2),),
    11: ((1, 2),),
    12: ((1, 3),),
    13: ((0, 1),),
    14: ((0, 3),),
}

# Saddles, keyed by (case, cell centre inside)
_SADDLE_SEGMENTS: dict[tuple[int, bool], tuple[tuple[int, int], ...]] = {
    (5, True): ((0, 1), (2, 3)),
    (5, False): ((3, 0), (1, 2)),
    (10, True): ((3, 0), (1, 2)),
    (10, False): ((0, 1), (2, 3)),
}

# Grid edge id: ("h", r, c) joins (r, c)-(r, c+1); ("v", r, c) joins (r, c)-(r+1, c)
Edge = tuple[str, int, int]


def _edge_key(r: int, c: int, k: int) -> Edge:
    if k == 0:
        return ("h", r, c)
    if k == 1:
        return ("v", r, c + 1)
    if k == 2:
        return ("h", r + 1, c)
    return ("v", r, c)


def _padded_axis(axis: NDArray[np.float64], step: float) -> NDArray[np.float64]:
    if axis.size > 1:
        step = float(axis[1] - axis[0])
    return np.concatenate(([axis[0] - step], axis, [axis[-1] + step]))


def _crossing(
    values: NDArray[np.float64],
    lons: NDArray[np.float64],
    lats: NDArray[np.float64],
    edge: Edge,
    threshold: float,
) -> tuple[float, float]:
    """Locate the threshold crossing on a grid edge as (lon, lat).

    Interpolates from the inside endpoint, so a node sitting exactly on the
    threshold yields the node itself.
    """
    kind, r, c = edge
    a = (r, c)
    b = (r, c + 1) if kind == "h" else (r + 1, c)
    if values[a] <= threshold:
        p_in, p_out = a, b
    else:
        p_in, p_out = b, a
    v_in = float(values[p_in])
    v_out = float(values[p_out])
    s = (threshold - v_in) / (v_out - v_in)
    lon = float(lons[p_in[1]] + s * (lons[p_out[1]] - lons[p_in[1]]))
    lat = float(lats[p_in[0]] + s * (lats[p_out[0]] - lats[p_in[0]]))
    return (lon, lat)


def _segment_graph(
    values: NDArray[np.float64], threshold: float
) -> dict[Edge, list[Edge]]:
    """Run marching squares and return the crossing-point adjacency."""
    inside = values <= threshold
    cases = (
        inside[:-1, :-1].astype(np.uint8)
        | (inside[:-1, 1:].astype(np.uint8) << 1)
        | (inside[1:, 1:].astype(np.uint8) << 2)
        | (inside[1:, :-1].astype(np.uint8) << 3)
    )
    rows, cols = np.nonzero((cases != 0) & (cases != 15))

    neighbours: dict[Edge, list[Edge]] = {}
    for r, c in zip(rows.tolist(), cols.tolist()):
        case = int(cases[r, c])
        if case in (5, 10):
            centre = (
                values[r, c] + values[r, c + 1] + values[r + 1, c + 1] + values[r + 1, c]
            ) / 4.0
            pairs = _SADDLE_SEGMENTS[(case, bool(centre <= threshold))]
        else:
            pairs = _SEGMENTS[case]
        for ka, kb in pairs:
            a = _edge_key(r, c, ka)
            b = _edge_key(r, c, kb)
            neighbours.setdefault(a, []).append(b)
            neighbours.setdefault(b, []).append(a)
    return neighbours


def _stitch_rings(neighbours: dict[Edge, list[Edge]]) -> list[list[Edge]]:
    """Walk the adjacency graph into closed loops of edge ids."""
    visited: set[Edge] = set()
    rings: list[list[Edge]] = []
    for start in neighbours:
        if start in visited:
            continue
        ring = [start]
        visited.add(start)
        prev, current = start, neighbours[start][0]
        while current != start:
            links = neighbours[current]
            if len(links) != 2:
                raise GeometryError(f"Open contour at grid edge {current}")
            ring.append(current)
            visited.add(current)
            nxt = links[1] if links[0] == prev else links[0]
            prev, current = current, nxt
        rings.append(ring)
    return rings


def _ring_coordinates(
    ring: list[Edge],
    values: NDArray[np.float64],
    lons: NDArray[np.float64],
    lats: NDArray[np.float64],
    threshold: float,
) -> list[tuple[float, float]]:
    coords: list[tuple[float, float]] = []
    for edge in ring:
        point = _crossing(values, lons, lats, edge, threshold)
        if not coords or coords[-1] != point:
            coords.append(point)
    while len(coords) > 1 and coords[0] == coords[-1]:
        coords.pop()
    return coords


def _to_ring(coords: Sequence[tuple[float, float]]) -> tuple[GeoPoint, ...]:
    return tuple(GeoPoint(latitude=lat, longitude=lon) for lon, lat in coords)


def trace_contour(field: DistanceField, threshold: float) -> Isoline:
    """Extract the isoline bounding `{p : field(p) <= threshold}`.

    Steps:
        1. Clip unreachable/far values to a finite ceiling and pad the field
           with one ring of outside samples so every contour closes
        2. Marching squares over every cell (saddles resolved by cell mean)
        3. Stitch crossing points into rings
        4. Reject degenerate or self-intersecting rings (KinkError)
        5. Nest rings into exteriors and holes, keep the largest exterior

    Args:
        field: Distance field for one sampling pass
        threshold: Stop distance in miles

    Returns:
        Isoline with `distance == threshold` and empty properties

    Raises:
        KinkError: If a ring self-intersects or collapses at this resolution
        GeometryError: If the region is empty or has zero area, or the
            threshold is invalid
    """
    if not math.isfinite(threshold) or threshold < 0:
        raise GeometryError(f"Invalid threshold: {threshold}")

    ceiling = 2.0 * threshold + 1.0
    values = np.pad(
        np.minimum(field.values, ceiling), 1, mode="constant", constant_values=ceiling
    )
    if not (values <= threshold).any():
        raise GeometryError(f"No grid point within d={threshold:g}")
    # Every inside node sits on the threshold; no resolution gives it an area
    if not (values < threshold).any():
        raise GeometryError(f"Region for d={threshold:g} has zero area")

    dlon, dlat = _degree_steps(field.grid.bounds.center(), field.grid.resolution)
    lons = _padded_axis(field.grid.lons, dlon)
    lats = _padded_axis(field.grid.lats, dlat)

    shells: list[Polygon] = []
    for ring in _stitch_rings(_segment_graph(values, threshold)):
        coords = _ring_coordinates(ring, values, lons, lats, threshold)
        if len(coords) < 3:
            raise KinkError(f"Degenerate ring at d={threshold:g}")
        if not LinearRing(coords).is_simple:
            raise KinkError(f"Self-intersecting ring at d={threshold:g}")
        shells.append(Polygon(coords))

    if not shells:
        raise GeometryError(f"No contour found for d={threshold:g}")

    # Depth = number of rings enclosing this one; odd depth means a hole
    depths = [
        sum(1 for j, other in enumerate(shells) if j != i and other.contains(shell))
        for i, shell in enumerate(shells)
    ]
    exteriors = [i for i, depth in enumerate(depths) if depth % 2 == 0]
    chosen = max(exteriors, key=lambda i: shells[i].area)
    holes = [
        shells[i]
        for i, depth in enumerate(depths)
        if depth == depths[chosen] + 1 and shells[chosen].contains(shells[i])
    ]
    if len(exteriors) > 1:
        logger.debug(
            "d=%g: dropped %d disjoint region(s)", threshold, len(exteriors) - 1
        )

    polygon = orient(
        Polygon(shells[chosen].exterior.coords, [h.exterior.coords for h in holes]),
        sign=1.0,
    )
    if not polygon.is_valid:
        raise KinkError(f"Invalid polygon at d={threshold:g}")

    return Isoline(
        distance=threshold,
        exterior=_to_ring(polygon.exterior.coords),
        holes=tuple(_to_ring(h.coords) for h in polygon.interiors),
    )


