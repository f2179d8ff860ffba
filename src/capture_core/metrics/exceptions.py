"""Exceptions raised at the metrics orchestration boundary."""
from typing import Optional

from ..commerce.exceptions import ErrorKind


class MetricsError(Exception):
    """Base exception for metrics computation errors."""

    kind = ErrorKind.UNKNOWN


class InvalidDateRangeError(MetricsError):
    """Raised when the requested range is malformed (start after end)."""

    kind = ErrorKind.VALIDATION


class MetricsComputationError(MetricsError):
    """Raised when a computation fails; no partial result is returned."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        processing_time: float = 0.0,
        period: Optional[str] = None,
    ):
        self.kind = kind
        self.processing_time = processing_time
        self.period = period
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "kind": self.kind.value,
            "processing_time": round(self.processing_time, 3),
            "period": self.period,
        }
