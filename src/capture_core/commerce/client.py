"""Async Commerce7 REST client with paging, request pacing and retry."""
import asyncio
import base64
import functools
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Union

import aiohttp

from ..schemas.records import CustomerProfile, Order, StaffMember
from .exceptions import (
    CommerceClientError,
    CommerceUnreachableError,
    CommerceUpstreamError,
    error_for_status,
)
from .rate_limiter import RequestQueue
from .retry import RequestLifecycle, RetryPolicy


DateLike = Union[date, datetime]


def as_utc_date(value: DateLike) -> date:
    """Calendar day (UTC) of a date or datetime bound."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


class CommerceClient:
    """Async client for the Commerce7 order and customer search endpoints.

    All attempts go through a shared RequestQueue; failed attempts are
    retried according to RetryPolicy before a typed error is raised.
    """

    BASE_URL = "https://api.commerce7.com/v1"
    PAGE_SIZE = 50  # Commerce7 maximum
    MAX_PAGES = 100
    REQUEST_TIMEOUT_SECONDS = 30

    def __init__(
        self,
        app_id: str,
        api_key: str,
        tenant_id: str,
        session: aiohttp.ClientSession,
        request_queue: Optional[RequestQueue] = None,
        retry_policy: Optional[RetryPolicy] = None,
        base_url: str = BASE_URL,
        page_size: int = PAGE_SIZE,
        max_pages: int = MAX_PAGES,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize Commerce7 client.

        Args:
            app_id: Commerce7 app id
            api_key: Commerce7 app secret key (never logged)
            tenant_id: Tenant slug sent in the ``tenant`` header
            session: Injected aiohttp ClientSession
            request_queue: Shared request queue (one per process)
            retry_policy: Backoff configuration
            base_url: API root
            page_size: Records per page
            max_pages: Safety cap on pages per search
            logger: Optional logger instance
        """
        self.tenant_id = tenant_id
        self.session = session
        self.request_queue = request_queue or RequestQueue()
        self.retry_policy = retry_policy or RetryPolicy()
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.max_pages = max_pages
        self.logger = logger or logging.getLogger(__name__)

        token = base64.b64encode(f"{app_id}:{api_key}".encode()).decode()
        self._auth_token = token
        self._secrets = [api_key, token]

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Basic {self._auth_token}",
            "tenant": self.tenant_id,
            "Content-Type": "application/json",
        }

    def _redact(self, text: str) -> str:
        if not text:
            return text
        for secret in self._secrets:
            if secret:
                text = text.replace(secret, "[REDACTED]")
        return text

    async def fetch_orders(self, start: DateLike, end: DateLike) -> list[Order]:
        """Fetch orders paid between start and end (inclusive calendar days)."""
        start_day = as_utc_date(start)
        end_day = as_utc_date(end)
        self.logger.info("Fetching orders paid %s to %s", start_day, end_day)

        records = await self._paginate(
            "/order",
            {"orderPaidDate": f"btw:{start_day.isoformat()}|{end_day.isoformat()}"},
            records_key="orders",
        )
        orders = [Order.model_validate(record) for record in records]

        self.logger.info("Found %s orders in date range", len(orders))
        return orders

    async def fetch_profiles(
        self, start: DateLike, end: DateLike
    ) -> list[CustomerProfile]:
        """Fetch customer profiles created between start and end.

        Commerce7 treats the upper createdAt bound as the start of that day,
        so the bound is advanced one day to include profiles created on the
        final day of the range.
        """
        start_day = as_utc_date(start)
        upper_day = as_utc_date(end) + timedelta(days=1)
        self.logger.info(
            "Fetching customers created %s to %s (upper bound %s)",
            start_day,
            as_utc_date(end),
            upper_day,
        )

        records = await self._paginate(
            "/customer",
            {
                "createdAt": f"btw:{start_day.isoformat()}|{upper_day.isoformat()}",
                "include": "tags,metadata",
            },
            records_key="customers",
        )
        profiles = [CustomerProfile.model_validate(record) for record in records]

        manual = sum(1 for profile in profiles if profile.manual_attribution)
        self.logger.info(
            "Found %s customers in date range (%s with sign-up attribution)",
            len(profiles),
            manual,
        )
        return profiles

    async def fetch_recent_orders(
        self, days: int, today: Optional[date] = None
    ) -> list[Order]:
        """Fetch orders paid within the last ``days`` days."""
        today = today or datetime.now(timezone.utc).date()
        since = today - timedelta(days=days)

        records = await self._paginate(
            "/order",
            {"orderPaidDate": f"gte:{since.isoformat()}"},
            records_key="orders",
        )
        return [Order.model_validate(record) for record in records]

    async def fetch_staff(
        self, days: int = 14, today: Optional[date] = None
    ) -> list[StaffMember]:
        """List sales associates seen on recent orders.

        Commerce7 exposes no associate endpoint, so staff are derived from
        the ``salesAssociate`` of orders paid in the last ``days`` days.
        """
        orders = await self.fetch_recent_orders(days, today=today)

        staff: dict[str, StaffMember] = {}
        for order in orders:
            associate = order.sales_associate
            if associate is None or not associate.name:
                continue
            staff[associate.name] = StaffMember(
                id=associate.account_id or associate.name,
                name=associate.name,
            )

        self.logger.info(
            "Found %s unique associates from %s orders", len(staff), len(orders)
        )
        return list(staff.values())

    async def _paginate(
        self, path: str, params: dict[str, Any], records_key: str
    ) -> list[dict]:
        """Collect every page of a search endpoint.

        Stops at the first short page or after ``max_pages`` requests.
        """
        all_records: list[dict] = []
        page = 1

        while True:
            page_params = {**params, "page": page, "limit": self.page_size}
            data = await self._get_json(path, page_params)

            records = data.get(records_key) or []
            if not isinstance(records, list):
                records = []
            all_records.extend(record for record in records if isinstance(record, dict))

            self.logger.debug(
                "Fetched %s page %s: %s records (total: %s)",
                path,
                page,
                len(records),
                len(all_records),
            )

            if len(records) < self.page_size:
                break

            if page >= self.max_pages:
                self.logger.warning(
                    "Reached page limit of %s for %s", self.max_pages, path
                )
                break

            page += 1

        return all_records

    async def _get_json(self, path: str, params: dict[str, Any]) -> dict:
        """Execute a GET through the request queue with retry.

        Raises:
            CommerceClientError: After retries are exhausted or on a
                non-retryable response
        """
        lifecycle = RequestLifecycle(policy=self.retry_policy)

        try:
            while True:
                lifecycle.enqueue()
                try:
                    data = await self.request_queue.submit(
                        functools.partial(self._send, path, params, lifecycle)
                    )
                except CommerceClientError as exc:
                    delay = lifecycle.fail(exc)
                    if delay is None:
                        self.logger.error(
                            "Commerce7 GET %s failed after %s attempts: %s",
                            path,
                            lifecycle.attempt,
                            exc,
                        )
                        raise

                    self.logger.warning(
                        "Commerce7 GET %s %s, backoff=%.2fs, attempt=%s",
                        path,
                        exc.kind.value,
                        delay,
                        lifecycle.attempt,
                    )
                    await asyncio.sleep(delay)
                    continue

                lifecycle.succeed()
                return data
        except asyncio.CancelledError:
            self.logger.info(
                "Commerce7 GET %s cancelled while %s", path, lifecycle.state.value
            )
            lifecycle.abandon()
            raise

    async def _send(
        self, path: str, params: dict[str, Any], lifecycle: RequestLifecycle
    ) -> dict:
        """Perform a single HTTP attempt and classify failures."""
        lifecycle.start()
        url = f"{self.base_url}{path}"

        try:
            timeout = aiohttp.ClientTimeout(total=self.REQUEST_TIMEOUT_SECONDS)
            async with self.session.get(
                url,
                params=params,
                headers=self._headers,
                timeout=timeout,
            ) as resp:
                if resp.status >= 400:
                    try:
                        text = await resp.text(errors="replace")
                    except (UnicodeDecodeError, LookupError):
                        text = ""
                    body = self._redact(text)
                    raise error_for_status(
                        resp.status,
                        body[:200],
                        retry_after=self._retry_after(resp),
                    )

                try:
                    data = await resp.json()
                except (ValueError, aiohttp.ContentTypeError) as exc:
                    raise CommerceUpstreamError(
                        f"Commerce7 returned malformed JSON: {exc}", resp.status
                    ) from exc

                if not isinstance(data, dict):
                    return {}
                return data

        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise CommerceUnreachableError(
                f"Commerce7 API is unreachable: {self._redact(str(exc))}"
            ) from exc

    @staticmethod
    def _retry_after(resp: aiohttp.ClientResponse) -> Optional[float]:
        value = resp.headers.get("Retry-After") if resp.headers else None
        if value is None:
            return None
        try:
            return max(0.0, float(value))
        except (TypeError, ValueError):
            return None
