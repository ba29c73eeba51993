import asyncio
import time
from itertools import islice

import pytest

from waitroom import ProcessFailedError, Waiter
from waitroom.persistence import InMemoryProcessRepository
from waitroom.utils.retry import poll_intervals


class FlakyRepository(InMemoryProcessRepository):
    """Fail the first ``failures`` reads, then behave normally."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.reads = 0

    async def read(self, correlation_key):
        self.reads += 1
        if self.reads <= self.failures:
            raise ConnectionError("store unavailable")
        return await super().read(correlation_key)


class SlowRepository(InMemoryProcessRepository):
    async def read(self, correlation_key):
        await asyncio.sleep(1)
        return await super().read(correlation_key)


def test_poll_intervals_double_up_to_ceiling():
    assert list(islice(poll_intervals(0.05, 1.0), 7)) == [
        0.05,
        0.1,
        0.2,
        0.4,
        0.8,
        1.0,
        1.0,
    ]


def test_rejects_floor_above_ceiling():
    with pytest.raises(ValueError):
        Waiter(InMemoryProcessRepository(), poll_floor_ms=500, poll_ceiling_ms=100)


@pytest.mark.asyncio
async def test_wait_returns_result_when_completed():
    repo = InMemoryProcessRepository()
    await repo.upsert_pending("K")
    waiter = Waiter(repo, timeout_ms=2_000)

    async def complete_soon():
        await asyncio.sleep(0.1)
        await repo.complete("K", {"x": 1})

    completer = asyncio.create_task(complete_soon())
    outcome = await waiter.wait("K")
    await completer

    assert outcome.completed
    assert not outcome.timed_out
    assert outcome.result == {"x": 1}


@pytest.mark.asyncio
async def test_wait_resolves_immediately_for_terminal_record():
    repo = InMemoryProcessRepository()
    await repo.complete("K", "ready")
    waiter = Waiter(repo, timeout_ms=1_000)

    start = time.monotonic()
    outcome = await waiter.wait("K")

    assert outcome.result == "ready"
    assert time.monotonic() - start < 0.1


@pytest.mark.asyncio
async def test_wait_times_out_near_deadline():
    repo = InMemoryProcessRepository()
    await repo.upsert_pending("K")
    waiter = Waiter(repo, timeout_ms=200)

    start = time.monotonic()
    outcome = await waiter.wait("K")
    elapsed = time.monotonic() - start

    assert outcome.timed_out
    assert outcome.correlation_key == "K"
    assert outcome.result is None
    assert 0.19 <= elapsed < 0.4
    # timing out leaves the record alone
    assert (await repo.read("K")).status.value == "PENDING"


@pytest.mark.asyncio
async def test_wait_override_timeout():
    repo = InMemoryProcessRepository()
    waiter = Waiter(repo, timeout_ms=10_000)

    start = time.monotonic()
    outcome = await waiter.wait("never", timeout_ms=100)

    assert outcome.timed_out
    assert time.monotonic() - start < 0.3


@pytest.mark.asyncio
async def test_wait_raises_on_error_record():
    repo = InMemoryProcessRepository()
    await repo.upsert_pending("K")
    await repo.fail("K", {"message": "boom", "code": 7})
    waiter = Waiter(repo, timeout_ms=500)

    with pytest.raises(ProcessFailedError) as excinfo:
        await waiter.wait("K")

    assert excinfo.value.correlation_key == "K"
    assert excinfo.value.error == {"message": "boom", "code": 7}
    assert str(excinfo.value) == "boom"


@pytest.mark.asyncio
async def test_missing_record_is_treated_as_pending():
    repo = InMemoryProcessRepository()
    waiter = Waiter(repo, timeout_ms=1_000)

    async def complete_soon():
        await asyncio.sleep(0.1)
        await repo.complete("late", {"ok": True})

    completer = asyncio.create_task(complete_soon())
    outcome = await waiter.wait("late")
    await completer

    assert outcome.result == {"ok": True}


@pytest.mark.asyncio
async def test_read_failures_do_not_abort_wait():
    repo = FlakyRepository(failures=2)
    await repo.complete("K", {"ok": True})
    waiter = Waiter(repo, timeout_ms=2_000)

    outcome = await waiter.wait("K")

    assert outcome.completed
    assert repo.reads == 3


@pytest.mark.asyncio
async def test_slow_reads_are_bounded():
    repo = SlowRepository()
    await repo.upsert_pending("K")
    waiter = Waiter(repo, timeout_ms=300, poll_floor_ms=50, read_timeout_ms=50)

    start = time.monotonic()
    outcome = await waiter.wait("K")

    assert outcome.timed_out
    assert time.monotonic() - start < 0.3 + 0.05


@pytest.mark.asyncio
async def test_hanging_read_does_not_outlive_deadline():
    repo = SlowRepository()
    await repo.upsert_pending("K")
    waiter = Waiter(repo, timeout_ms=100, poll_floor_ms=50, read_timeout_ms=200)

    start = time.monotonic()
    outcome = await waiter.wait("K")
    elapsed = time.monotonic() - start

    assert outcome.timed_out
    assert 0.09 <= elapsed < 0.1 + 0.05


@pytest.mark.asyncio
async def test_many_concurrent_waits():
    repo = InMemoryProcessRepository()
    keys = [f"key-{i}" for i in range(50)]
    for key in keys:
        await repo.upsert_pending(key)
    waiter = Waiter(repo, timeout_ms=3_000)

    async def complete_all():
        await asyncio.sleep(0.1)
        for i, key in enumerate(keys):
            await repo.complete(key, i)

    completer = asyncio.create_task(complete_all())
    outcomes = await asyncio.gather(*(waiter.wait(key) for key in keys))
    await completer

    assert [o.result for o in outcomes] == list(range(50))


@pytest.mark.asyncio
async def test_is_pending():
    repo = InMemoryProcessRepository()
    waiter = Waiter(repo)
    assert await waiter.is_pending("K") is False

    await repo.upsert_pending("K")
    assert await waiter.is_pending("K") is True

    await repo.complete("K", None)
    assert await waiter.is_pending("K") is False
