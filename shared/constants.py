"""Unit constants and pipeline defaults shared by every layer.

Domain services, infrastructure adapters and the CLI all import from here,
so the oracle adapters and the grid sampler agree on what a mile is.
"""

from __future__ import annotations

from typing import Final

# International mile
METERS_PER_MILE: Final[float] = 1609.344

# Pipeline defaults
DEFAULT_RESOLUTION_MI: Final[float] = 0.1
DEFAULT_BATCH_SIZE: Final[int] = 1000
DEFAULT_MAP: Final[str] = "default"

# Resolution is multiplied by this factor whenever a kink is detected
KINK_COEFFICIENT: Final[float] = 2.0

# Retries after the first attempt before giving up on kinks
MAX_RETRIES: Final[int] = 10
