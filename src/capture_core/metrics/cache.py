"""In-process TTL cache for computed metrics, keyed by calendar-day range."""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ..commerce.client import DateLike, as_utc_date
from ..schemas.metrics import MetricsResult


logger = logging.getLogger(__name__)


DEFAULT_TTL = timedelta(hours=48)
DEFAULT_CLEANUP_INTERVAL_SECONDS = 3600


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheEntry:
    result: MetricsResult
    created_at: datetime
    expires_at: datetime


class MetricsCache:
    """TTL key-value store for MetricsResult.

    Two requests for the same UTC day window share an entry regardless of
    time of day. Intended for a single event loop; not thread-safe.
    """

    def __init__(
        self,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def make_key(start: DateLike, end: DateLike) -> str:
        return f"analytics:{as_utc_date(start).isoformat()}:{as_utc_date(end).isoformat()}"

    def get(self, start: DateLike, end: DateLike) -> Optional[MetricsResult]:
        key = self.make_key(start, end)
        entry = self._entries.get(key)

        if entry is None:
            logger.debug("Cache miss for %s", key)
            return None

        now = self._clock()
        if now > entry.expires_at:
            logger.info(
                "Cache expired for %s (expired at %s)",
                key,
                entry.expires_at.isoformat(),
            )
            del self._entries[key]
            return None

        logger.info(
            "Cache hit for %s (age: %s minutes)",
            key,
            round((now - entry.created_at).total_seconds() / 60),
        )
        return entry.result

    def set(self, start: DateLike, end: DateLike, result: MetricsResult) -> None:
        key = self.make_key(start, end)
        now = self._clock()
        entry = CacheEntry(result=result, created_at=now, expires_at=now + self.ttl)
        self._entries[key] = entry
        logger.info("Cached %s (expires at %s)", key, entry.expires_at.isoformat())

    def clear(self, start: DateLike, end: DateLike) -> bool:
        key = self.make_key(start, end)
        deleted = self._entries.pop(key, None) is not None
        logger.info("%s cache entry %s", "Cleared" if deleted else "No", key)
        return deleted

    def clear_all(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        logger.info("Cleared all %s cache entries", count)
        return count

    def cleanup(self) -> int:
        """Delete every expired entry; returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.info("Cleaned up %s expired cache entries", len(expired))
        return len(expired)

    def stats(self) -> dict:
        now = self._clock()
        return {
            "total_entries": len(self._entries),
            "entries": [
                {
                    "key": key,
                    "age_minutes": round((now - entry.created_at).total_seconds() / 60),
                    "expires_at": entry.expires_at.isoformat(),
                }
                for key, entry in self._entries.items()
            ],
        }

    async def run_periodic_cleanup(
        self, interval: float = DEFAULT_CLEANUP_INTERVAL_SECONDS
    ) -> None:
        """Sweep expired entries every ``interval`` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            self.cleanup()
