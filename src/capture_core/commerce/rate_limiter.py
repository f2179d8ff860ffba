"""Single-lane FIFO request queue with token-bucket pacing.

Every outbound Commerce7 request goes through one RequestQueue so the
process never exceeds the configured requests-per-second ceiling, no matter
how many fetches are awaiting concurrently.
"""
import asyncio
import logging
from collections import deque
from time import monotonic
from typing import Any, Awaitable, Callable, Optional


logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]


class RequestQueue:
    """Serializes jobs in submission order and paces their start times.

    The drainer task is started on demand and exits when the queue is empty.
    """

    DEFAULT_REQUESTS_PER_SECOND = 4.0
    DEFAULT_BURST = 4

    def __init__(
        self,
        requests_per_second: float = DEFAULT_REQUESTS_PER_SECOND,
        burst: int = DEFAULT_BURST,
        clock: Callable[[], float] = monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")

        self.requests_per_second = requests_per_second
        self.burst = burst
        self._clock = clock
        self._sleep = sleep

        self._pending: deque[tuple[Job, asyncio.Future]] = deque()
        self._drainer: Optional[asyncio.Task] = None
        self._tokens = float(burst)
        self._last_refill = clock()

    @property
    def min_interval(self) -> float:
        """Steady-state spacing between request starts, in seconds."""
        return 1.0 / self.requests_per_second

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def submit(self, job: Job) -> Any:
        """Enqueue a job and wait for its result (or exception)."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._pending.append((job, future))

        if self._drainer is None or self._drainer.done():
            self._drainer = loop.create_task(self._drain())

        return await future

    async def _drain(self) -> None:
        while self._pending:
            job, future = self._pending.popleft()
            if future.cancelled():
                continue

            await self._acquire_slot()

            try:
                result = await job()
            except Exception as exc:
                if not future.cancelled():
                    future.set_exception(exc)
            else:
                if not future.cancelled():
                    future.set_result(result)

    async def _acquire_slot(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(
            float(self.burst), self._tokens + elapsed * self.requests_per_second
        )
        self._last_refill = now

        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return

        wait = (1.0 - self._tokens) / self.requests_per_second
        logger.debug("Request queue throttling for %.3fs", wait)
        await self._sleep(wait)
        self._tokens = 0.0
        self._last_refill = self._clock()
