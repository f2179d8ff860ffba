"""Record and result models."""
from .metrics import (
    AggregateMetrics,
    CompanyMetrics,
    MetricsResult,
    MonthlyComparison,
    StaffMetrics,
)
from .records import CustomerProfile, LineItem, Order, StaffMember

__all__ = [
    "Order",
    "LineItem",
    "CustomerProfile",
    "StaffMember",
    "StaffMetrics",
    "AggregateMetrics",
    "CompanyMetrics",
    "MetricsResult",
    "MonthlyComparison",
]
