"""OSRM adapter for the DistanceOracle port.

Queries the OSRM HTTP `table` service for distances from the origin to a
batch of points:

    GET {base_url}/table/v1/{profile}/{lon,lat;lon,lat;...}?sources=0&annotations=distance

The origin is coordinate 0, so row 0 of the `distances` matrix holds the
answers (first cell is origin -> origin). OSRM reports metres; the port
speaks miles. `null` cells are unreachable points.

Lifecycle (to avoid leaked connections):
1) Session is created lazily on the first request
2) `close()` (or leaving `async with`) releases it
"""

from __future__ import annotations

import asyncio
import logging
import math
import os
from collections.abc import Sequence
from typing import Any

import aiohttp

from domain.isodistance.errors import OracleError
from domain.isodistance.value_objects import GeoPoint
from shared.constants import METERS_PER_MILE

# Module-level logger (reused across all calls)
logger = logging.getLogger(__name__)

OSRM_URL_ENV = "ISODIST_OSRM_URL"
DEFAULT_OSRM_URL = "http://localhost:5000"
HTTP_OK = 200


def _format_coordinates(origin: GeoPoint, points: Sequence[GeoPoint]) -> str:
    return ";".join(
        f"{p.longitude:.6f},{p.latitude:.6f}" for p in (origin, *points)
    )


def _parse_row(payload: Any, expected: int) -> list[float | None]:
    """Extract origin -> point distances (miles) from an OSRM table payload."""
    if not isinstance(payload, dict):
        raise OracleError("OSRM response is not a JSON object")
    code = payload.get("code")
    if code != "Ok":
        message = payload.get("message", "no message")
        raise OracleError(f"OSRM returned code={code}: {message}")

    matrix = payload.get("distances")
    if not isinstance(matrix, list) or not matrix or not isinstance(matrix[0], list):
        raise OracleError("OSRM response has no distances matrix")
    row = matrix[0][1:]
    if len(row) != expected:
        raise OracleError(f"OSRM returned {len(row)} distances for {expected} points")

    result: list[float | None] = []
    for meters in row:
        if meters is None:
            result.append(None)
            continue
        if not isinstance(meters, (int, float)) or isinstance(meters, bool):
            raise OracleError(f"OSRM returned a non-numeric distance: {meters!r}")
        if math.isnan(meters) or meters < 0:
            raise OracleError(f"OSRM returned an invalid distance: {meters}")
        result.append(float(meters) / METERS_PER_MILE)
    return result


class OsrmTableOracle:
    """Infrastructure adapter answering distance queries with OSRM `table`.

    Parameters
    ----------
    base_url: str
        OSRM server root, e.g. "http://localhost:5000".
    profile: str
        OSRM profile / dataset the server routes on (the map identifier).
    max_concurrency: int
        Upper bound on in-flight requests across concurrent batches.
    timeout_s: float
        Total timeout per request in seconds.
    """

    def __init__(
        self,
        base_url: str,
        profile: str,
        *,
        max_concurrency: int = 4,
        timeout_s: float = 30.0,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._session: aiohttp.ClientSession | None = None

    @classmethod
    def from_environment(cls, map_id: str) -> "OsrmTableOracle":
        """Build an oracle for `map_id` on the server named by ISODIST_OSRM_URL."""
        base_url = os.getenv(OSRM_URL_ENV) or DEFAULT_OSRM_URL
        return cls(base_url, map_id)

    async def __aenter__(self) -> "OsrmTableOracle":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    def table_url(self, origin: GeoPoint, points: Sequence[GeoPoint]) -> str:
        coordinates = _format_coordinates(origin, points)
        return f"{self.base_url}/table/v1/{self.profile}/{coordinates}"

    async def distances(
        self, origin: GeoPoint, points: Sequence[GeoPoint]
    ) -> list[float | None]:
        """Return origin -> point distances in miles, None where unreachable.

        Raises:
            OracleError: On transport failure, non-200 status, OSRM error code
                or malformed payload
        """
        if not points:
            return []

        url = self.table_url(origin, points)
        params = {"sources": "0", "annotations": "distance"}
        async with self._semaphore:
            try:
                async with self._get_session().get(url, params=params) as resp:
                    status = resp.status
                    # OSRM answers errors with a JSON body too
                    payload = await resp.json(content_type=None)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise OracleError(f"OSRM request failed: {e}") from e
            except ValueError as e:
                raise OracleError(f"OSRM returned invalid JSON: {e}") from e

        if status != HTTP_OK:
            detail = payload.get("message") if isinstance(payload, dict) else None
            raise OracleError(f"OSRM HTTP {status}: {detail or 'no message'}")

        row = _parse_row(payload, len(points))
        logger.debug(
            "OSRM %s: %d points, %d unreachable",
            self.profile,
            len(points),
            sum(1 for d in row if d is None),
        )
        return row
