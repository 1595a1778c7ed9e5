"""Tests for the isodist command line and the service entry point."""

from __future__ import annotations

import io
import json

import pytest

from domain.isodistance.errors import OracleError
from domain.isodistance.value_objects import IsodistanceOptions
from infrastructure.routing import GeodesicOracle, OsrmTableOracle
from tests.doubles import ORIGIN, RecordingObserver


def _write_request(tmp_path, request: dict):
    path = tmp_path / "request.json"
    path.write_text(json.dumps(request), encoding="utf-8")
    return path


# ===========================================================================
# TC-001: Successful runs
# ===========================================================================
def test_cli_writes_feature_collection(tmp_path):
    """TC-001: A request file produces a GeoJSON FeatureCollection."""
    from application.cli import EXIT_OK, main

    request = _write_request(
        tmp_path,
        {
            "origin": [0.0, 0.0],
            "stops": [1],
            "resolution": 0.25,
            "data": {"1": {"fill": "#f00"}},
        },
    )
    output = tmp_path / "out.geojson"

    code = main([str(request), "--oracle", "geodesic", "--output", str(output)])

    assert code == EXIT_OK
    geojson = json.loads(output.read_text(encoding="utf-8"))
    assert geojson["type"] == "FeatureCollection"
    (feature,) = geojson["features"]
    assert feature["geometry"]["type"] == "Polygon"
    assert feature["properties"] == {"distance": 1.0, "fill": "#f00"}


def test_cli_flags_without_request(monkeypatch, capsys):
    """TC-002: Flags alone are a complete request; output goes to stdout."""
    from application.cli import EXIT_OK, main

    monkeypatch.setattr("sys.stdin", io.StringIO(""))

    code = main(
        [
            "--lat", "0", "--lon", "0",
            "--stop", "1", "--stop", "0.5",
            "--resolution", "0.25",
            "--oracle", "geodesic",
        ]
    )

    assert code == EXIT_OK
    geojson = json.loads(capsys.readouterr().out)
    distances = [f["properties"]["distance"] for f in geojson["features"]]
    assert distances == [1.0, 0.5]


def test_cli_reads_request_from_stdin(monkeypatch, capsys):
    """TC-003: '-' (the default) reads the request from stdin."""
    from application.cli import EXIT_OK, main

    request = {"origin": {"type": "Point", "coordinates": [0.0, 0.0]}, "stops": [1]}
    monkeypatch.setattr("sys.stdin", io.StringIO(json.dumps(request)))

    code = main(["--oracle", "geodesic", "--resolution", "0.25"])

    assert code == EXIT_OK
    assert len(json.loads(capsys.readouterr().out)["features"]) == 1


# ===========================================================================
# TC-004: Exit codes
# ===========================================================================
def test_cli_missing_origin_is_bad_input(tmp_path, capsys):
    """TC-004: Invalid input exits with 2 and a message on stderr."""
    from application.cli import EXIT_BAD_INPUT, main

    request = _write_request(tmp_path, {"stops": [1]})

    assert main([str(request), "--oracle", "geodesic"]) == EXIT_BAD_INPUT
    assert "origin" in capsys.readouterr().err


def test_cli_unreadable_request_is_bad_input(tmp_path, capsys):
    from application.cli import EXIT_BAD_INPUT, main

    assert main([str(tmp_path / "missing.json")]) == EXIT_BAD_INPUT
    assert "isodist:" in capsys.readouterr().err


def test_cli_negative_stop_is_bad_input(tmp_path):
    from application.cli import EXIT_BAD_INPUT, main

    request = _write_request(tmp_path, {"origin": [0.0, 0.0], "stops": [-1]})

    assert main([str(request), "--oracle", "geodesic"]) == EXIT_BAD_INPUT


def test_cli_fatal_error_exits_one(tmp_path, monkeypatch, capsys):
    """TC-005: A fatal pipeline error exits with 1."""
    import application.cli as cli

    async def failing(*args, **kwargs):
        raise OracleError("OSRM request failed: connection refused")

    monkeypatch.setattr(cli, "isodistance", failing)
    request = _write_request(tmp_path, {"origin": [0.0, 0.0], "stops": [1]})

    assert cli.main([str(request)]) == cli.EXIT_FATAL
    assert "connection refused" in capsys.readouterr().err


def test_build_oracle():
    from application.cli import build_oracle

    assert isinstance(build_oracle("geodesic"), GeodesicOracle)
    assert build_oracle("osrm") is None


# ===========================================================================
# TC-006: Service entry point
# ===========================================================================
class ClosingOracle(GeodesicOracle):
    """Geodesic oracle with the OSRM adapter's async context protocol."""

    def __init__(self) -> None:
        super().__init__()
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True


@pytest.mark.asyncio
async def test_service_builds_and_closes_osrm_oracle(monkeypatch):
    """TC-006: Without an oracle the service opens one for options.map."""
    from application.service import isodistance

    built: list[str] = []
    oracle = ClosingOracle()

    def from_environment(map_id):
        built.append(map_id)
        return oracle

    monkeypatch.setattr(OsrmTableOracle, "from_environment", from_environment)
    options = IsodistanceOptions(map="car", resolution=0.25)

    result = await isodistance(ORIGIN, [1.0], options)

    assert built == ["car"]
    assert oracle.closed
    assert result.distances() == (1.0,)


@pytest.mark.asyncio
async def test_service_uses_given_oracle_and_observer():
    from application.service import isodistance

    observer = RecordingObserver()
    options = IsodistanceOptions(resolution=0.25)

    result = await isodistance(
        ORIGIN, [1.0], options, oracle=GeodesicOracle(), observer=observer
    )

    assert observer.completed == [result]
