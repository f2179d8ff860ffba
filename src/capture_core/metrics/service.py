"""Data capture metrics orchestrator.

Coordinates the cache, the Commerce7 client and the aggregation engine for
single date ranges and for the month-by-month year-over-year comparison.
"""
import asyncio
import calendar
import logging
import os
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from time import monotonic
from typing import Callable, Optional

import aiohttp
from redis.asyncio import Redis

from ..commerce.client import CommerceClient, DateLike
from ..commerce.exceptions import CommerceClientError, ErrorKind
from ..commerce.rate_limiter import RequestQueue
from ..commerce.retry import RetryPolicy
from ..schemas.metrics import MetricsResult, MonthlyComparison
from ..schemas.records import StaffMember
from .cache import DEFAULT_TTL, MetricsCache
from .engine import compute_metrics, round_rate
from .exceptions import InvalidDateRangeError, MetricsComputationError
from .name_matching import DEFAULT_THRESHOLD
from .settings import CaptureSettingsStore


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_datetime(value: DateLike, end_of_day: bool = False) -> datetime:
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.combine(value, time.max if end_of_day else time.min)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def month_window(year: int, month: int) -> tuple[datetime, datetime]:
    """First and last instant of a calendar month (UTC)."""
    last_day = calendar.monthrange(year, month)[1]
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    end = datetime.combine(
        date(year, month, last_day), time.max, tzinfo=timezone.utc
    )
    return start, end


def shift_years(value: datetime, years: int) -> datetime:
    """Same instant ``years`` years away (Feb 29 becomes Feb 28)."""
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        return value.replace(year=value.year + years, day=28)


def percentage_change(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return round_rate((current - previous) / previous * 100)


@dataclass(frozen=True)
class MetricsLookup:
    """A metrics result plus where it came from."""

    result: MetricsResult
    cached: bool
    retrieved_at: datetime


class DataCaptureService:
    """Orchestrates cache lookups, Commerce7 fetches and metric computation."""

    def __init__(
        self,
        client: CommerceClient,
        cache: MetricsCache,
        settings_store: CaptureSettingsStore,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.client = client
        self.cache = cache
        self.settings_store = settings_store
        self._clock = clock

    @classmethod
    def from_env(
        cls,
        session: aiohttp.ClientSession,
        redis: Optional[Redis] = None,
        cache: Optional[MetricsCache] = None,
    ) -> "DataCaptureService":
        """Build the service from environment variables.

        Raises:
            RuntimeError: If Commerce7 credentials are not configured
        """
        app_id = os.getenv("C7_APP_ID")
        api_key = os.getenv("C7_API_KEY")
        tenant_id = os.getenv("C7_TENANT_ID")

        if not app_id or not api_key or not tenant_id:
            raise RuntimeError("C7_APP_ID, C7_API_KEY and C7_TENANT_ID must be set")

        request_queue = RequestQueue(
            requests_per_second=float(os.getenv("C7_REQUESTS_PER_SECOND", "4")),
            burst=int(os.getenv("C7_BURST", "4")),
        )
        retry_policy = RetryPolicy(
            max_attempts=int(os.getenv("C7_MAX_RETRIES", "3")) + 1,
        )

        client = CommerceClient(
            app_id=app_id,
            api_key=api_key,
            tenant_id=tenant_id,
            session=session,
            request_queue=request_queue,
            retry_policy=retry_policy,
            base_url=os.getenv("C7_BASE_URL", CommerceClient.BASE_URL),
        )

        if cache is None:
            ttl_hours = float(
                os.getenv("CAPTURE_CACHE_TTL_HOURS", str(DEFAULT_TTL.total_seconds() / 3600))
            )
            cache = MetricsCache(ttl=timedelta(hours=ttl_hours))

        settings_store = CaptureSettingsStore(
            redis,
            match_threshold=float(
                os.getenv("CAPTURE_MATCH_THRESHOLD", str(DEFAULT_THRESHOLD))
            ),
        )

        logger.info("DataCaptureService initialized for tenant %s", tenant_id)
        return cls(client=client, cache=cache, settings_store=settings_store)

    async def get_metrics(
        self,
        start: DateLike,
        end: DateLike,
        refresh: bool = False,
    ) -> MetricsResult:
        """Metrics for one date range, served from cache when fresh."""
        lookup = await self.lookup_metrics(start, end, refresh=refresh)
        return lookup.result

    async def lookup_metrics(
        self,
        start: DateLike,
        end: DateLike,
        refresh: bool = False,
    ) -> MetricsLookup:
        """Like get_metrics, also reporting whether the cache answered.

        Raises:
            InvalidDateRangeError: If start is after end
            MetricsComputationError: If fetching or computing fails
        """
        start_dt = _as_datetime(start)
        end_dt = _as_datetime(end, end_of_day=True)
        if start_dt > end_dt:
            raise InvalidDateRangeError(
                f"Start date {start_dt.date()} is after end date {end_dt.date()}"
            )

        if refresh:
            logger.info("Refresh requested, bypassing cache")
            self.cache.clear(start_dt, end_dt)
        else:
            cached = self.cache.get(start_dt, end_dt)
            if cached is not None:
                return MetricsLookup(result=cached, cached=True, retrieved_at=self._clock())

        result = await self._compute(start_dt, end_dt)
        self.cache.set(start_dt, end_dt, result)
        return MetricsLookup(result=result, cached=False, retrieved_at=self._clock())

    async def _compute(self, start: datetime, end: datetime) -> MetricsResult:
        started = monotonic()
        logger.info(
            "Computing data capture metrics for %s to %s",
            start.date().isoformat(),
            end.date().isoformat(),
        )

        try:
            orders, profiles = await self._fetch_sources(start, end)
            settings = await self.settings_store.load()

            result = compute_metrics(
                orders,
                profiles,
                guest_skus=settings.guest_count_skus,
                wedding_tag_id=settings.wedding_lead_tag_id,
                start=start,
                end=end,
                match_threshold=settings.match_threshold,
                generated_at=self._clock(),
            )

        except CommerceClientError as exc:
            raise self._failure(exc, exc.kind, start, end, started) from exc
        except Exception as exc:
            raise self._failure(exc, ErrorKind.UNKNOWN, start, end, started) from exc

        logger.info(
            "Computed metrics for %s in %.2fs", result.period, monotonic() - started
        )
        return result

    async def _fetch_sources(self, start: datetime, end: datetime):
        """Fetch orders and profiles concurrently.

        If either fetch fails the other is cancelled and awaited before the
        error propagates, so no orphaned fetch keeps using the request queue.
        """
        orders_task = asyncio.create_task(self.client.fetch_orders(start, end))
        profiles_task = asyncio.create_task(self.client.fetch_profiles(start, end))

        try:
            return await asyncio.gather(orders_task, profiles_task)
        except BaseException:
            for task in (orders_task, profiles_task):
                task.cancel()
            await asyncio.gather(orders_task, profiles_task, return_exceptions=True)
            raise

    @staticmethod
    def _failure(
        exc: Exception,
        kind: ErrorKind,
        start: datetime,
        end: datetime,
        started: float,
    ) -> MetricsComputationError:
        elapsed = monotonic() - started
        logger.error(
            "Metrics computation failed for %s to %s after %.2fs: %s",
            start.date().isoformat(),
            end.date().isoformat(),
            elapsed,
            exc,
            exc_info=True,
        )
        return MetricsComputationError(
            str(exc),
            kind=kind,
            processing_time=elapsed,
            period=f"{start.date().isoformat()}|{end.date().isoformat()}",
        )

    async def get_year_over_year(
        self, today: Optional[date] = None
    ) -> list[MonthlyComparison]:
        """Compare each elapsed month of this year with the same month last year.

        Months run one after another so the shared request queue is not
        flooded by 24 concurrent computations.
        """
        today = today or self._clock().date()
        comparisons: list[MonthlyComparison] = []

        for month in range(1, 13):
            current_start, current_end = month_window(today.year, month)
            if current_start.date() > today:
                break

            previous_start = shift_years(current_start, -1)
            previous_end = shift_years(current_end, -1)

            current = await self.get_metrics(current_start, current_end)
            previous = await self.get_metrics(previous_start, previous_end)

            comparisons.append(
                MonthlyComparison(
                    month=current_start.strftime("%B"),
                    current_year=current,
                    previous_year=previous,
                    percentage_change=percentage_change(
                        current.company.overall_capture_rate,
                        previous.company.overall_capture_rate,
                    ),
                )
            )

        logger.info("Year-over-year comparison covered %s months", len(comparisons))
        return comparisons

    async def list_staff(self, days: int = 14) -> list[StaffMember]:
        """Sales associates seen on orders in the last ``days`` days."""
        try:
            return await self.client.fetch_staff(days, today=self._clock().date())
        except CommerceClientError as exc:
            raise MetricsComputationError(str(exc), kind=exc.kind) from exc
