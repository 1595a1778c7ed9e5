"""Isodistance Bounded Context - Isoline Orchestrator.

Drives the adaptive-resolution loop:

    SAMPLING -> FIELD_COMPUTE -> TRACING -> {SUCCESS | KINK_RETRY | FATAL}

A KinkError from any stop discards the whole attempt and resamples with the
resolution multiplied by the kink coefficient. Every other failure is fatal.
The retry state is local to one `run()` call; the caller's options are
never modified.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from domain.isodistance.errors import (
    ConsistencyError,
    FatalIsodistanceError,
    GeometryError,
    IsodistanceError,
    KinkError,
    MissingMetadataWarning,
    RetryExhaustedError,
)
from domain.isodistance.observers import LoggingObserver
from domain.isodistance.ports import ContourTracer, DistanceOracle, IsodistanceObserver
from domain.isodistance.services import (
    compute_distance_field,
    resolve_bounding_box,
    sample_grid,
    trace_contour,
)
from domain.isodistance.value_objects import (
    DistanceField,
    GeoPoint,
    IsodistanceOptions,
    Isoline,
    ResultCollection,
)
from shared.constants import KINK_COEFFICIENT, MAX_RETRIES


class PipelineStage(str, Enum):
    SAMPLING = "sampling"
    FIELD_COMPUTE = "field_compute"
    TRACING = "tracing"
    KINK_RETRY = "kink_retry"
    SUCCESS = "success"
    FATAL = "fatal"  # Terminal error state, reported through on_failure


class RetryState(BaseModel):
    """Resolution and attempt counter carried across attempts of one run."""

    resolution: float = Field(gt=0)  # Miles
    attempt: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True)

    def escalate(self, coefficient: float = KINK_COEFFICIENT) -> "RetryState":
        return RetryState(
            resolution=self.resolution * coefficient, attempt=self.attempt + 1
        )


def _validate_stops(stops: Sequence[float]) -> tuple[float, ...]:
    if len(stops) == 0:
        raise ValueError("At least one stop is required")
    values = tuple(float(s) for s in stops)
    for stop in values:
        if not math.isfinite(stop) or stop < 0:
            raise ValueError(f"Stops must be finite and >= 0, got {stop}")
    return values


class IsolineOrchestrator:
    """Runs sample -> field -> trace until every stop traces cleanly.

    Parameters
    ----------
    oracle: DistanceOracle
        Source of travel distances for the grid points.
    tracer: ContourTracer
        Contour extraction; `trace_contour` unless a test substitutes it.
    observer: IsodistanceObserver | None
        Receives progress and failures. Defaults to LoggingObserver.
    max_retries: int
        Retries after the first attempt; 10 allows 11 sampling passes.
    kink_coefficient: float
        Factor applied to the resolution after a kink.
    """

    def __init__(
        self,
        oracle: DistanceOracle,
        *,
        tracer: ContourTracer = trace_contour,
        observer: IsodistanceObserver | None = None,
        max_retries: int = MAX_RETRIES,
        kink_coefficient: float = KINK_COEFFICIENT,
    ) -> None:
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        if kink_coefficient <= 0:
            raise ValueError(f"kink_coefficient must be positive, got {kink_coefficient}")
        self.oracle = oracle
        self.tracer = tracer
        self.observer = observer if observer is not None else LoggingObserver()
        self.max_retries = max_retries
        self.kink_coefficient = kink_coefficient

    async def run(
        self,
        origin: GeoPoint,
        stops: Sequence[float],
        options: IsodistanceOptions | None = None,
    ) -> ResultCollection:
        """Compute one isoline per stop, sorted by descending distance.

        Raises:
            ValueError: If stops is empty or holds a negative distance
            OracleError: If the distance field cannot be computed
            GeometryError: If a stop fails to trace for a reason other than a kink
            RetryExhaustedError: If kinks persist past the retry ceiling
            ConsistencyError: If post-processing loses or gains isolines
        """
        options = options if options is not None else IsodistanceOptions()
        requested = _validate_stops(stops)

        try:
            isolines = await self._sample_until_clean(origin, requested, options)
            result = self.finalize(isolines, requested, options)
        except FatalIsodistanceError as e:
            self.observer.on_failure(e)
            raise

        self.observer.on_complete(result)
        return result

    async def _sample_until_clean(
        self,
        origin: GeoPoint,
        stops: tuple[float, ...],
        options: IsodistanceOptions,
    ) -> list[Isoline]:
        box = resolve_bounding_box(origin, max(stops))
        state = RetryState(resolution=options.resolution)
        last_resolution = state.resolution

        while True:
            if state.attempt > self.max_retries:
                raise RetryExhaustedError(state.attempt, last_resolution)

            self.observer.on_stage(PipelineStage.SAMPLING, state)
            grid = sample_grid(box, state.resolution, center=origin)

            self.observer.on_stage(PipelineStage.FIELD_COMPUTE, state)
            field = await compute_distance_field(
                self.oracle, origin, grid, options.batch_size
            )

            self.observer.on_stage(PipelineStage.TRACING, state)
            outcomes = [self._trace(field, stop) for stop in stops]
            last_resolution = state.resolution

            # A fatal outcome wins over kinks; resampling would not fix it
            for outcome in outcomes:
                if isinstance(outcome, FatalIsodistanceError):
                    raise outcome

            if any(isinstance(outcome, KinkError) for outcome in outcomes):
                escalated = state.escalate(self.kink_coefficient)
                self.observer.on_stage(PipelineStage.KINK_RETRY, state)
                self.observer.on_kink(state, escalated)
                state = escalated
                continue

            self.observer.on_stage(PipelineStage.SUCCESS, state)
            return [o for o in outcomes if isinstance(o, Isoline)]

    def _trace(self, field: DistanceField, stop: float) -> Isoline | IsodistanceError:
        """Run the tracer for one stop and return its result or its error."""
        try:
            return self.tracer(field, stop)
        except (KinkError, FatalIsodistanceError) as e:
            return e
        except Exception as e:
            error = GeometryError(f"Tracing d={stop:g} failed: {e}")
            error.__cause__ = e
            return error

    def finalize(
        self,
        isolines: Sequence[Isoline],
        stops: Sequence[float],
        options: IsodistanceOptions,
    ) -> ResultCollection:
        """Post-process a clean attempt: sort, merge metadata, sanity-check.

        A missing metadata entry is reported to the observer and leaves that
        isoline's properties untouched.

        Raises:
            ConsistencyError: If the isoline count differs from the stop count
        """
        ordered = sorted(isolines, key=lambda isoline: -isoline.distance)

        merged: list[Isoline] = []
        for isoline in ordered:
            data = options.data.get(isoline.distance)
            if data is None:
                self.observer.on_missing_metadata(
                    MissingMetadataWarning(isoline.distance)
                )
                merged.append(isoline)
                continue
            merged.append(isoline.with_metadata(data))

        if len(merged) != len(stops):
            raise ConsistencyError(expected=len(stops), produced=len(merged))

        return ResultCollection(features=tuple(merged))
