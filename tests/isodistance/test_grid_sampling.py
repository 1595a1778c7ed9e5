"""Tests for bounding box resolution and grid sampling.

Distances are checked against pyproj.Geod directly, the same ellipsoid the
domain services use.
"""

from __future__ import annotations

import math

import numpy as np
import pytest
from pyproj import Geod

from domain.isodistance.services import (
    BBOX_PADDING,
    MIN_BBOX_EXTENT_MI,
    resolve_bounding_box,
    sample_grid,
)
from domain.isodistance.value_objects import GeoPoint
from shared.constants import METERS_PER_MILE
from tests.doubles import ORIGIN

_geod = Geod(ellps="WGS84")


def _miles_between(a: GeoPoint, b: GeoPoint) -> float:
    _, _, meters = _geod.inv(a.longitude, a.latitude, b.longitude, b.latitude)
    return meters / METERS_PER_MILE


# ===========================================================================
# TC-001: Bounding box covers the padded distance
# ===========================================================================
def test_bounding_box_reaches_padded_distance():
    """TC-001: Each edge of the box lies at the padded distance from the origin."""
    box = resolve_bounding_box(ORIGIN, 2.0)
    expected = 2.0 * BBOX_PADDING

    north = GeoPoint(latitude=box.max_y, longitude=ORIGIN.longitude)
    east = GeoPoint(latitude=ORIGIN.latitude, longitude=box.max_x)

    assert box.contains(ORIGIN)
    assert _miles_between(ORIGIN, north) == pytest.approx(expected, rel=1e-6)
    assert _miles_between(ORIGIN, east) == pytest.approx(expected, rel=1e-6)


def test_bounding_box_is_centred_on_origin():
    """TC-002: The box is symmetric about the origin at the equator."""
    box = resolve_bounding_box(ORIGIN, 5.0)
    center = box.center()

    assert center.latitude == pytest.approx(0.0, abs=1e-9)
    assert center.longitude == pytest.approx(0.0, abs=1e-9)


def test_bounding_box_widens_in_degrees_at_high_latitude():
    """TC-003: Meridians converge, so the box spans more longitude than latitude."""
    origin = GeoPoint(latitude=60.0, longitude=10.0)
    box = resolve_bounding_box(origin, 10.0)

    assert (box.max_x - box.min_x) > 1.5 * (box.max_y - box.min_y)


def test_bounding_box_zero_distance_uses_minimum_extent():
    """TC-004: A zero stop still produces a non-degenerate box."""
    box = resolve_bounding_box(ORIGIN, 0.0)
    north = GeoPoint(latitude=box.max_y, longitude=ORIGIN.longitude)

    assert _miles_between(ORIGIN, north) == pytest.approx(MIN_BBOX_EXTENT_MI, rel=1e-6)


@pytest.mark.parametrize("distance", [-1.0, math.nan, math.inf])
def test_bounding_box_rejects_invalid_distance(distance):
    """TC-005: Negative and non-finite distances are rejected."""
    with pytest.raises(ValueError, match="max_distance"):
        resolve_bounding_box(ORIGIN, distance)


@pytest.mark.parametrize("longitude", [179.99, -179.99])
def test_bounding_box_rejects_antimeridian_crossing(longitude):
    """TC-005b: A box that would wrap past +/-180 degrees is refused."""
    origin = GeoPoint(latitude=0.0, longitude=longitude)
    with pytest.raises(ValueError, match="antimeridian"):
        resolve_bounding_box(origin, 2.0)


@pytest.mark.parametrize("latitude", [89.99, -89.99])
def test_bounding_box_rejects_pole_crossing(latitude):
    """TC-005c: A box that would walk over a pole is refused."""
    origin = GeoPoint(latitude=latitude, longitude=10.0)
    with pytest.raises(ValueError, match="pole"):
        resolve_bounding_box(origin, 2.0)


def test_bounding_box_near_antimeridian_still_contains_origin():
    """TC-005d: Close to, but not across, 180 degrees the box is valid."""
    origin = GeoPoint(latitude=0.0, longitude=179.9)
    box = resolve_bounding_box(origin, 2.0)

    assert box.contains(origin)
    assert box.max_x - box.min_x < 0.1


# ===========================================================================
# TC-006: Grid sampling
# ===========================================================================
def test_grid_contains_box_center_as_node():
    """TC-006: Without an anchor, the box centre is a grid node."""
    box = resolve_bounding_box(ORIGIN, 2.0)
    grid = sample_grid(box, 0.1)

    assert box.center() in grid.points()


def test_grid_anchored_on_origin_away_from_equator():
    """TC-006b: The anchor is a node even where the box centre drifts off it."""
    origin = GeoPoint(latitude=45.0, longitude=10.0)
    box = resolve_bounding_box(origin, 2.0)

    grid = sample_grid(box, 0.1, center=origin)

    assert box.center() != origin
    assert origin in grid.points()


def test_grid_rejects_anchor_outside_box():
    box = resolve_bounding_box(ORIGIN, 1.0)
    with pytest.raises(ValueError, match="outside the box"):
        sample_grid(box, 0.1, center=GeoPoint(latitude=10.0, longitude=10.0))


def test_grid_spacing_matches_resolution():
    """TC-007: Adjacent nodes are `resolution` miles apart."""
    box = resolve_bounding_box(ORIGIN, 2.0)
    grid = sample_grid(box, 0.1)
    mid_r, mid_c = grid.shape[0] // 2, grid.shape[1] // 2

    east = _miles_between(grid.point_at(mid_r, mid_c), grid.point_at(mid_r, mid_c + 1))
    north = _miles_between(grid.point_at(mid_r, mid_c), grid.point_at(mid_r + 1, mid_c))

    assert east == pytest.approx(0.1, rel=1e-3)
    assert north == pytest.approx(0.1, rel=1e-3)
    assert grid.resolution == 0.1


def test_grid_stays_inside_box():
    """TC-008: Every node lies inside the bounding box."""
    box = resolve_bounding_box(GeoPoint(latitude=45.0, longitude=-93.0), 3.0)
    grid = sample_grid(box, 0.25)

    assert all(box.contains(p) for p in grid.points())
    assert grid.bounds == box


def test_grid_coarser_resolution_has_fewer_points():
    """TC-009: Doubling the spacing thins the lattice."""
    box = resolve_bounding_box(ORIGIN, 2.0)

    fine = sample_grid(box, 0.1)
    coarse = sample_grid(box, 0.2)

    assert coarse.size < fine.size
    assert fine.shape[0] == pytest.approx(2 * coarse.shape[0] - 1, abs=2)


def test_grid_resolution_larger_than_box_is_single_node():
    """TC-010: A spacing wider than the box collapses to the centre node."""
    box = resolve_bounding_box(ORIGIN, 1.0)
    grid = sample_grid(box, 100.0)

    assert grid.shape == (1, 1)
    assert grid.point_at(0, 0) == box.center()


def test_grid_sampling_is_deterministic():
    """TC-011: Same box and resolution give identical lattices."""
    box = resolve_bounding_box(GeoPoint(latitude=37.8, longitude=-122.4), 2.0)

    a = sample_grid(box, 0.1)
    b = sample_grid(box, 0.1)

    np.testing.assert_array_equal(a.lons, b.lons)
    np.testing.assert_array_equal(a.lats, b.lats)


@pytest.mark.parametrize("resolution", [0.0, -0.1, math.nan])
def test_grid_rejects_invalid_resolution(resolution):
    """TC-012: Resolution must be a positive finite spacing."""
    box = resolve_bounding_box(ORIGIN, 1.0)
    with pytest.raises(ValueError, match="resolution"):
        sample_grid(box, resolution)
