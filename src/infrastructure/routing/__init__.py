"""Infrastructure adapters for the isodistance bounded context.

Implementations of the DistanceOracle port: an OSRM `table` client and an
offline geodesic oracle.
"""

from .geodesic_adapter import GeodesicOracle
from .osrm_adapter import OsrmTableOracle

__all__ = ["GeodesicOracle", "OsrmTableOracle"]
