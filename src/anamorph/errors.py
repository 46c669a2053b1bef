"""Exception types for the anamorphic mesh pipeline.

Per-sample optical failures (``SampleError`` subclasses) are recoverable:
the raycaster catches them, logs them and marks the grid slot as failed.
Configuration errors are raised before any tracing starts.
"""

import enum
from typing import Optional


class SampleStatus(enum.Enum):
    """Outcome of tracing one grid sample; everything but HIT is a failure."""
    HIT = "hit"
    MISSED_LENS = "missed_lens"
    MISSED_EXIT = "missed_exit"
    INVALID_REFRACTION = "invalid_refraction"
    MISSED_TARGET = "missed_target"


class AnamorphError(Exception):
    """Base class for every error raised by this package."""


class SampleError(AnamorphError):
    """A single grid sample could not be traced to the target."""

    status = SampleStatus.MISSED_LENS

    def __init__(self, message: str, status: Optional[SampleStatus] = None):
        super().__init__(message)
        if status is not None:
            self.status = status


class NoIntersection(SampleError):
    """A ray query reported no surface along the ray."""


class InvalidRefraction(SampleError):
    """Snell's law has no real solution (total internal reflection)."""

    status = SampleStatus.INVALID_REFRACTION


class ConfigError(AnamorphError, ValueError):
    """Invalid configuration supplied by the caller."""


class InvalidGridDimensions(ConfigError):
    """Grid row/column counts that cannot be sampled."""
