"""Pydantic models for computed data capture metrics."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class StaffMetrics(BaseModel):
    """Capture metrics for one attribution bucket (staff member or fallback)."""

    model_config = ConfigDict(frozen=True)

    name: str
    profiles_created: int = 0
    manual_profiles: int = 0
    profiles_with_email: int = 0
    profiles_with_phone: int = 0
    profiles_with_data: int = 0
    profiles_with_data_no_wedding: int = 0
    profiles_with_subscription: int = 0
    profiles_with_subscription_no_wedding: int = 0
    profiles_with_wedding_tag: int = 0
    guest_count: int = 0
    total_orders: int = 0
    capture_rate: float = Field(0.0, description="with data / guest count x 100")
    subscription_rate: float = Field(0.0, description="subscribed / guest count x 100")


class AggregateMetrics(BaseModel):
    """Pooled totals over a set of buckets (rates from summed counts)."""

    model_config = ConfigDict(frozen=True)

    label: str
    bucket_count: int = 0
    profiles_created: int = 0
    manual_profiles: int = 0
    profiles_with_email: int = 0
    profiles_with_phone: int = 0
    profiles_with_data: int = 0
    profiles_with_subscription: int = 0
    profiles_with_wedding_tag: int = 0
    guest_count: int = 0
    total_orders: int = 0
    capture_rate: float = 0.0
    subscription_rate: float = 0.0


class CompanyMetrics(BaseModel):
    """The three aggregate flavors reported alongside per-staff rows."""

    model_config = ConfigDict(frozen=True)

    staff: AggregateMetrics = Field(
        ..., description="Buckets with guest count > 0 only"
    )
    company: AggregateMetrics = Field(..., description="All buckets")
    company_less_weddings: AggregateMetrics = Field(
        ..., description="Wedding-lead profiles removed from the numerators"
    )

    @property
    def overall_capture_rate(self) -> float:
        return self.company.capture_rate

    @property
    def capture_rate_excluding_wedding_leads(self) -> float:
        return self.company_less_weddings.capture_rate

    @property
    def staff_capture_rate(self) -> float:
        return self.staff.capture_rate

    @property
    def total_profiles(self) -> int:
        return self.company.profiles_created

    @property
    def total_guest_count(self) -> int:
        return self.company.guest_count

    @property
    def profiles_with_wedding_lead_tag(self) -> int:
        return self.company.profiles_with_wedding_tag


class MetricsResult(BaseModel):
    """Data capture metrics for one date range."""

    model_config = ConfigDict(frozen=True)

    period: str
    start_date: datetime
    end_date: datetime
    staff: list[StaffMetrics] = Field(default_factory=list)
    company: CompanyMetrics
    generated_at: datetime


class MonthlyComparison(BaseModel):
    """One month of the year-over-year comparison."""

    model_config = ConfigDict(frozen=True)

    month: str
    current_year: MetricsResult
    previous_year: MetricsResult
    percentage_change: float
