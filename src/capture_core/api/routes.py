"""FastAPI routes for data capture analytics."""
import logging
from datetime import date, datetime, timezone
from time import monotonic
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from ..commerce.exceptions import ErrorKind
from ..metrics.exceptions import MetricsError
from ..metrics.service import DataCaptureService
from ..schemas.metrics import MetricsResult, MonthlyComparison
from ..schemas.records import StaffMember
from .auth import require_api_key


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["analytics"])


_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
}


class MetricsRequest(BaseModel):
    """Request payload for a date-range metrics computation."""

    start_date: date = Field(..., description="First day of the range (inclusive)")
    end_date: date = Field(..., description="Last day of the range (inclusive)")
    refresh: bool = Field(
        False, description="If true, discard any cached result and recompute"
    )


class MetricsResponse(MetricsResult):
    """Metrics plus cache provenance."""

    cached: bool = Field(..., description="True when served from the cache")
    cache_timestamp: datetime = Field(
        ..., description="When the returned result was computed"
    )


class YearComparisonMetadata(BaseModel):
    processing_time: float = Field(..., description="Seconds spent on the comparison")
    months_processed: int
    timestamp: datetime


class YearComparisonResponse(BaseModel):
    data: list[MonthlyComparison]
    metadata: YearComparisonMetadata


class AssociatesResponse(BaseModel):
    associates: list[StaffMember]
    count: int


def get_service(request: Request) -> DataCaptureService:
    """Resolve the process-wide service created at startup.

    Raises:
        HTTPException: 503 if Commerce7 is not configured
    """
    service: Optional[DataCaptureService] = getattr(
        request.app.state, "service", None
    )
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Commerce7 credentials are not configured",
        )
    return service


def _http_error(exc: MetricsError) -> HTTPException:
    status_code = _STATUS_BY_KIND.get(exc.kind, status.HTTP_502_BAD_GATEWAY)
    return HTTPException(status_code=status_code, detail=str(exc))


@router.post(
    "/analytics/metrics",
    response_model=MetricsResponse,
    dependencies=[Depends(require_api_key)],
    summary="Compute data capture metrics for a date range",
)
async def compute_range_metrics(
    payload: MetricsRequest,
    service: DataCaptureService = Depends(get_service),
) -> MetricsResponse:
    """Return per-associate and company capture metrics.

    Results are cached per day range; ``refresh`` forces recomputation.
    """
    try:
        lookup = await service.lookup_metrics(
            payload.start_date, payload.end_date, refresh=payload.refresh
        )
    except MetricsError as exc:
        logger.error(
            "Metrics request %s to %s failed: %s",
            payload.start_date,
            payload.end_date,
            exc,
        )
        raise _http_error(exc) from exc

    return MetricsResponse(
        **lookup.result.model_dump(),
        cached=lookup.cached,
        cache_timestamp=lookup.result.generated_at,
    )


@router.get(
    "/analytics/year-comparison",
    response_model=YearComparisonResponse,
    dependencies=[Depends(require_api_key)],
    summary="Compare this year's monthly capture rates with last year's",
)
async def year_comparison(
    service: DataCaptureService = Depends(get_service),
) -> YearComparisonResponse:
    started = monotonic()
    try:
        comparisons = await service.get_year_over_year()
    except MetricsError as exc:
        logger.error("Year-over-year comparison failed: %s", exc)
        raise _http_error(exc) from exc

    return YearComparisonResponse(
        data=comparisons,
        metadata=YearComparisonMetadata(
            processing_time=round(monotonic() - started, 3),
            months_processed=len(comparisons),
            timestamp=datetime.now(timezone.utc),
        ),
    )


@router.get(
    "/associates",
    response_model=AssociatesResponse,
    dependencies=[Depends(require_api_key)],
    summary="List sales associates seen on recent orders",
)
async def list_associates(
    days: int = 14,
    service: DataCaptureService = Depends(get_service),
) -> AssociatesResponse:
    if days < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="days must be at least 1",
        )

    try:
        staff = await service.list_staff(days)
    except MetricsError as exc:
        logger.error("Associate listing failed: %s", exc)
        raise _http_error(exc) from exc

    return AssociatesResponse(associates=staff, count=len(staff))
