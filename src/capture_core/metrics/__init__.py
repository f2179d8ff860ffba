"""Data capture metrics layer.

Turns Commerce7 orders and customer profiles into per-associate and
company-wide capture and subscription rates:
- name_matching: free-text associate names to known staff
- engine: attribution reconciliation and aggregation
- cache: TTL cache keyed by day range
- service: orchestration (single range, year over year)
"""
from .cache import MetricsCache
from .engine import compute_metrics
from .exceptions import InvalidDateRangeError, MetricsComputationError, MetricsError
from .name_matching import NameMatch, find_best_match
from .service import DataCaptureService, MetricsLookup
from .settings import CaptureSettings, CaptureSettingsStore

__all__ = [
    "DataCaptureService",
    "MetricsLookup",
    "MetricsCache",
    "CaptureSettings",
    "CaptureSettingsStore",
    "compute_metrics",
    "find_best_match",
    "NameMatch",
    "MetricsError",
    "InvalidDateRangeError",
    "MetricsComputationError",
]
