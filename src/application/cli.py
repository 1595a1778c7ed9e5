"""
Command-line interface for isodistance polygons.

Reads a JSON request from a file or stdin:

    {"origin": [lon, lat], "stops": [1, 2], "map": "car",
     "resolution": 0.1, "data": {"1": {"fill": "#f00"}}}

and writes the resulting GeoJSON FeatureCollection. Flags override the
corresponding request fields.

Usage:
    isodist request.json --output polygons.geojson
    echo '{"origin": [-122.4, 37.8], "stops": [2]}' | isodist --oracle geodesic
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from application.service import isodistance
from domain.isodistance.errors import IsodistanceError
from domain.isodistance.ports import DistanceOracle
from domain.isodistance.value_objects import GeoPoint, IsodistanceOptions
from infrastructure.routing import GeodesicOracle

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_BAD_INPUT = 2


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="isodist",
        description="Isodistance polygons from a road-network distance oracle",
    )
    parser.add_argument(
        "request",
        nargs="?",
        default="-",
        help="JSON request file (default: stdin)",
    )
    parser.add_argument("--lat", type=float, help="Origin latitude")
    parser.add_argument("--lon", type=float, help="Origin longitude")
    parser.add_argument(
        "--stop",
        type=float,
        action="append",
        dest="stops",
        help="Travel distance in miles (repeatable)",
    )
    parser.add_argument("--map", help="Map / OSRM profile identifier")
    parser.add_argument(
        "--resolution", type=float, help="Initial grid spacing in miles"
    )
    parser.add_argument(
        "--oracle",
        choices=("osrm", "geodesic"),
        default="osrm",
        help="Distance oracle (default: osrm)",
    )
    parser.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def load_request(source: str) -> dict[str, Any]:
    """Read the JSON request; an absent stdin yields an empty request."""
    if source == "-":
        if sys.stdin.isatty():
            return {}
        text = sys.stdin.read()
    else:
        text = Path(source).read_text(encoding="utf-8")
    if not text.strip():
        return {}
    request = json.loads(text)
    if not isinstance(request, dict):
        raise ValueError("Request must be a JSON object")
    return request


def _parse_origin(raw: Any) -> GeoPoint:
    if isinstance(raw, dict) and raw.get("type") == "Point":
        raw = raw.get("coordinates")
    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        raise ValueError(f"origin must be [lon, lat], got {raw!r}")
    return GeoPoint(longitude=float(raw[0]), latitude=float(raw[1]))


def build_inputs(
    request: dict[str, Any], args: argparse.Namespace
) -> tuple[GeoPoint, list[float], IsodistanceOptions]:
    """Merge the request with command-line overrides."""
    if args.lat is not None and args.lon is not None:
        origin = GeoPoint(latitude=args.lat, longitude=args.lon)
    elif "origin" in request:
        origin = _parse_origin(request["origin"])
    else:
        raise ValueError("An origin is required (request 'origin' or --lat/--lon)")

    stops = args.stops if args.stops else request.get("stops")
    if not stops:
        raise ValueError("At least one stop is required (request 'stops' or --stop)")

    fields: dict[str, Any] = {
        key: request[key] for key in ("map", "resolution", "data") if key in request
    }
    if args.map is not None:
        fields["map"] = args.map
    if args.resolution is not None:
        fields["resolution"] = args.resolution

    return origin, [float(s) for s in stops], IsodistanceOptions(**fields)


def build_oracle(name: str) -> DistanceOracle | None:
    """Return the oracle for `name`; None lets the service build OSRM."""
    if name == "geodesic":
        return GeodesicOracle()
    return None


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        request = load_request(args.request)
        origin, stops, options = build_inputs(request, args)
    except (OSError, ValueError) as e:
        print(f"isodist: {e}", file=sys.stderr)
        return EXIT_BAD_INPUT

    try:
        result = asyncio.run(
            isodistance(origin, stops, options, oracle=build_oracle(args.oracle))
        )
    except IsodistanceError as e:
        print(f"isodist: {e}", file=sys.stderr)
        return EXIT_FATAL
    except ValueError as e:
        print(f"isodist: {e}", file=sys.stderr)
        return EXIT_BAD_INPUT

    text = json.dumps(result.to_geojson())
    if args.output is not None:
        args.output.write_text(text, encoding="utf-8")
        logger.info("Wrote %d isolines to %s", len(result), args.output.name)
    else:
        print(text)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
