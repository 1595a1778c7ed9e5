"""Default observer: reports pipeline events through the logging module."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from domain.isodistance.errors import IsodistanceError, MissingMetadataWarning
    from domain.isodistance.orchestrator import PipelineStage, RetryState
    from domain.isodistance.value_objects import ResultCollection

# Module-level logger (reused across all calls)
logger = logging.getLogger(__name__)


class LoggingObserver:
    """IsodistanceObserver that writes every event to a logger.

    Stages go to DEBUG, resolution increases and missing metadata to WARNING,
    fatal failures to ERROR and completion to INFO.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log if log is not None else logger

    def on_stage(self, stage: "PipelineStage", state: "RetryState") -> None:
        self.log.debug(
            "Attempt %d (resolution %g mi): %s",
            state.attempt,
            state.resolution,
            stage.value,
        )

    def on_kink(self, previous: "RetryState", escalated: "RetryState") -> None:
        self.log.warning(
            "Increased resolution from %g to %g due to polygon kinks",
            previous.resolution,
            escalated.resolution,
        )

    def on_missing_metadata(self, warning: "MissingMetadataWarning") -> None:
        self.log.warning("%s", warning)

    def on_failure(self, error: "IsodistanceError") -> None:
        self.log.error("Isodistance failed: %s", error)

    def on_complete(self, result: "ResultCollection") -> None:
        self.log.info("Complete: %d isolines", len(result))
