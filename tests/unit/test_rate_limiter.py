"""Unit tests for the paced FIFO request queue."""
import asyncio

import pytest

from capture_core.commerce.rate_limiter import RequestQueue


class FakeTime:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_time():
    return FakeTime()


def make_queue(fake_time, requests_per_second=2.0, burst=1):
    return RequestQueue(
        requests_per_second=requests_per_second,
        burst=burst,
        clock=fake_time.clock,
        sleep=fake_time.sleep,
    )


@pytest.mark.asyncio
async def test_jobs_run_in_submission_order(fake_time):
    """Test jobs start in FIFO order."""
    queue = make_queue(fake_time, requests_per_second=100.0, burst=10)
    started = []

    def job(label):
        async def run():
            started.append(label)
            return label

        return run

    results = await asyncio.gather(*(queue.submit(job(i)) for i in range(5)))

    assert results == [0, 1, 2, 3, 4]
    assert started == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_start_times_are_spaced_by_rate(fake_time):
    """Test consecutive starts are at least 1/rps apart once the bucket is empty."""
    queue = make_queue(fake_time, requests_per_second=2.0, burst=1)
    start_times = []

    async def job():
        start_times.append(fake_time.now)

    await asyncio.gather(*(queue.submit(job) for _ in range(3)))

    assert start_times == [0.0, 0.5, 1.0]
    assert fake_time.sleeps == [0.5, 0.5]
    assert queue.min_interval == 0.5


@pytest.mark.asyncio
async def test_burst_allows_immediate_starts(fake_time):
    """Test the first `burst` jobs start without waiting."""
    queue = make_queue(fake_time, requests_per_second=1.0, burst=3)

    async def job():
        return fake_time.now

    times = await asyncio.gather(*(queue.submit(job) for _ in range(4)))

    assert times == [0.0, 0.0, 0.0, 1.0]
    assert fake_time.sleeps == [1.0]


@pytest.mark.asyncio
async def test_tokens_refill_over_time(fake_time):
    """Test idle time refills the bucket so no wait is needed."""
    queue = make_queue(fake_time, requests_per_second=2.0, burst=1)

    async def job():
        return None

    await queue.submit(job)
    fake_time.now += 10.0
    await queue.submit(job)

    assert fake_time.sleeps == []


@pytest.mark.asyncio
async def test_job_exception_is_forwarded(fake_time):
    """Test a failing job raises to its submitter and the queue keeps going."""
    queue = make_queue(fake_time, requests_per_second=100.0, burst=10)

    async def failing():
        raise ValueError("boom")

    async def ok():
        return "ok"

    with pytest.raises(ValueError, match="boom"):
        await queue.submit(failing)

    assert await queue.submit(ok) == "ok"
    assert queue.pending == 0


@pytest.mark.asyncio
async def test_cancelled_submission_is_skipped(fake_time):
    """Test a job whose caller gave up while queued never runs."""
    queue = make_queue(fake_time, requests_per_second=100.0, burst=10)
    release = asyncio.Event()
    called = []

    async def blocker():
        await release.wait()
        return "first"

    async def second():
        called.append("second")

    first_task = asyncio.create_task(queue.submit(blocker))
    second_task = asyncio.create_task(queue.submit(second))
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    second_task.cancel()
    release.set()

    assert await first_task == "first"
    with pytest.raises(asyncio.CancelledError):
        await second_task

    await asyncio.sleep(0)
    assert called == []
    assert queue.pending == 0


@pytest.mark.parametrize(
    "kwargs",
    [{"requests_per_second": 0}, {"requests_per_second": -1}, {"burst": 0}],
)
def test_invalid_configuration_rejected(kwargs):
    """Test non-positive rate or burst raises ValueError."""
    with pytest.raises(ValueError):
        RequestQueue(**kwargs)
