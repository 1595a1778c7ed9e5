"""Root pytest configuration for all tests.

Provides fixtures shared by the domain, infrastructure and CLI tests. The
test doubles themselves live in tests/doubles.py so test modules can import
them directly.
"""

import pytest

from domain.isodistance.value_objects import GeoPoint
from infrastructure.routing import GeodesicOracle
from tests.doubles import ORIGIN, RecordingObserver


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def origin() -> GeoPoint:
    return ORIGIN


@pytest.fixture
def geodesic_oracle() -> GeodesicOracle:
    return GeodesicOracle()
