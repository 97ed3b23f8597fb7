"""Tests for the priority delay queue engine."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import pytest

from laneq.config import Settings
from laneq.errors import InvalidId, UnsupportedPriority
from laneq.queue import (
    JobStatus,
    PriorityQueue,
    QueueStats,
    ReservedJob,
    parse_job_id,
)
from laneq.store.memory import MemoryStore

if TYPE_CHECKING:
    from conftest import ManualClock

NOW = 1_700_000_000


async def assert_forgotten(store: MemoryStore, job_id: int) -> None:
    """The id is gone from every per-job table."""
    assert not await store.hexists("test.messages", job_id)
    assert not await store.hexists("test.priority", job_id)
    assert not await store.hexists("test.attempts", job_id)
    assert store.zscore("test.delayed", job_id) is None
    assert store.zscore("test.reserved", job_id) is None
    for lane in ("high", "low"):
        assert str(job_id).encode() not in store.lrange(f"test.waiting.{lane}")


class TestConstruction:
    """Tests for engine construction."""

    def test_requires_a_lane(self, store: MemoryStore) -> None:
        """An empty lane list is rejected."""
        with pytest.raises(ValueError):
            PriorityQueue(store, priorities=())

    def test_rejects_duplicate_lanes(self, store: MemoryStore) -> None:
        """Lane names must be unique."""
        with pytest.raises(ValueError, match="Duplicate"):
            PriorityQueue(store, priorities=("a", "b", "a"))

    def test_rejects_non_positive_default_ttr(self, store: MemoryStore) -> None:
        """The default time-to-run must be positive."""
        with pytest.raises(ValueError):
            PriorityQueue(store, default_ttr=0)

    def test_from_settings(self, store: MemoryStore) -> None:
        """Channel, lanes and ttr come from settings."""
        config = Settings(channel="mail", priorities="urgent, bulk", default_ttr=60)
        queue = PriorityQueue.from_settings(store, config)

        assert queue.channel == "mail"
        assert queue.priorities == ("urgent", "bulk")
        assert queue.default_ttr == 60


class TestEnqueue:
    """Tests for adding jobs."""

    @pytest.mark.asyncio
    async def test_ids_increase(self, queue: PriorityQueue) -> None:
        """Each job gets the next id."""
        assert await queue.enqueue(b"a") == 1
        assert await queue.enqueue(b"b") == 2
        assert await queue.enqueue(b"c", priority="low") == 3

    @pytest.mark.asyncio
    async def test_writes_message_and_lane(
        self, queue: PriorityQueue, store: MemoryStore
    ) -> None:
        """The body is stored as "ttr;payload" and the id enters its lane."""
        job_id = await queue.enqueue(b"hello", ttr=7, priority="low")

        assert await store.hget("test.messages", job_id) == b"7;hello"
        assert await store.hget("test.priority", job_id) == b"low"
        assert store.lrange("test.waiting.low") == [b"1"]
        assert store.lrange("test.waiting.high") == []

    @pytest.mark.asyncio
    async def test_defaults(self, queue: PriorityQueue, store: MemoryStore) -> None:
        """No priority means the first lane, no ttr means the default."""
        job_id = await queue.enqueue("text")

        assert await store.hget("test.messages", job_id) == b"5;text"
        assert await store.hget("test.priority", job_id) == b"high"

    @pytest.mark.asyncio
    async def test_payload_may_contain_separator(
        self, queue: PriorityQueue, store: MemoryStore
    ) -> None:
        """Only the first ';' separates ttr from payload."""
        await queue.enqueue(b"a;b;c", ttr=3)

        job = await queue.reserve()

        assert job is not None
        assert job.payload == b"a;b;c"
        assert job.ttr == 3

    @pytest.mark.asyncio
    async def test_delayed_job_is_scored(self, queue: PriorityQueue, store: MemoryStore) -> None:
        """A delayed job waits in the delayed set, scored by its ready time."""
        job_id = await queue.enqueue(b"later", delay=30)

        assert store.zscore("test.delayed", job_id) == NOW + 30
        assert store.lrange("test.waiting.high") == []

    @pytest.mark.asyncio
    async def test_unsupported_priority_writes_nothing(
        self, queue: PriorityQueue, store: MemoryStore
    ) -> None:
        """An unknown lane is rejected before any key is touched."""
        with pytest.raises(UnsupportedPriority) as exc_info:
            await queue.enqueue(b"x", priority="urgent")

        assert exc_info.value.priority == "urgent"
        assert await store.keys("test.*") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"ttr": 0},
            {"ttr": -1},
            {"ttr": 0.5},
            {"ttr": True},
            {"delay": -1},
            {"delay": 1.5},
            {"delay": True},
        ],
    )
    async def test_rejects_bad_timing(
        self, queue: PriorityQueue, store: MemoryStore, kwargs: dict
    ) -> None:
        """ttr must be a positive int and delay a non-negative int; nothing is written."""
        with pytest.raises(ValueError):
            await queue.enqueue(b"x", **kwargs)

        assert await store.keys("test.*") == []


class TestReserve:
    """Tests for taking jobs."""

    @pytest.mark.asyncio
    async def test_round_trip(self, queue: PriorityQueue, store: MemoryStore) -> None:
        """A pushed job comes back with its payload, ttr and first attempt."""
        job_id = await queue.enqueue(b"payload", ttr=5, priority="high")

        job = await queue.reserve(0)

        assert job == ReservedJob(id=job_id, payload=b"payload", ttr=5, attempt=1, priority="high")
        assert store.zscore("test.reserved", job_id) == NOW + 5
        assert await store.hget("test.attempts", job_id) == b"1"
        assert await queue.status(job_id) == JobStatus.RESERVED

    @pytest.mark.asyncio
    async def test_empty_queue(self, queue: PriorityQueue) -> None:
        """Nothing ready returns None."""
        assert await queue.reserve(0) is None

    @pytest.mark.asyncio
    async def test_negative_timeout_rejected(self, queue: PriorityQueue) -> None:
        """A negative timeout is an error."""
        with pytest.raises(ValueError):
            await queue.reserve(-1)

    @pytest.mark.asyncio
    async def test_higher_lane_first(self, queue: PriorityQueue) -> None:
        """A ready job in an earlier lane wins over an older one in a later lane."""
        low = await queue.enqueue(b"low", priority="low")
        high = await queue.enqueue(b"high", priority="high")

        first = await queue.reserve()
        second = await queue.reserve()

        assert first is not None and first.id == high
        assert second is not None and second.id == low
        assert second.priority == "low"

    @pytest.mark.asyncio
    async def test_fresh_jobs_oldest_first(self, queue: PriorityQueue) -> None:
        """Within a lane, jobs pushed without delay come out in push order."""
        ids = [await queue.enqueue(f"job-{n}".encode(), priority="low") for n in range(3)]

        served = []
        for _ in ids:
            job = await queue.reserve()
            assert job is not None
            served.append(job.id)

        assert served == ids

    @pytest.mark.asyncio
    async def test_delay_gates_visibility(
        self, queue: PriorityQueue, clock: ManualClock
    ) -> None:
        """A delayed job is invisible until its ready time passes."""
        job_id = await queue.enqueue(b"later", delay=2)

        assert await queue.reserve() is None
        clock.advance(1)
        assert await queue.reserve() is None
        clock.advance(1)

        job = await queue.reserve()

        assert job is not None
        assert job.id == job_id
        assert job.attempt == 1

    @pytest.mark.asyncio
    async def test_lapsed_lease_is_redelivered(
        self, queue: PriorityQueue, clock: ManualClock
    ) -> None:
        """A job whose ttr passes without acknowledgement comes back with attempt 2."""
        job_id = await queue.enqueue(b"work", ttr=1)

        first = await queue.reserve()
        assert first is not None and first.attempt == 1
        assert await queue.reserve() is None

        clock.advance(1)
        second = await queue.reserve()

        assert second is not None
        assert second.id == job_id
        assert second.attempt == 2
        assert second.payload == b"work"

    @pytest.mark.asyncio
    async def test_live_lease_is_not_redelivered(
        self, queue: PriorityQueue, clock: ManualClock
    ) -> None:
        """A job stays reserved while its ttr runs."""
        await queue.enqueue(b"work", ttr=5)
        await queue.reserve()

        clock.advance(4)

        assert await queue.reserve() is None

    @pytest.mark.asyncio
    async def test_swept_job_served_before_waiting_jobs(
        self, queue: PriorityQueue, clock: ManualClock
    ) -> None:
        """A job returned by the sweep is served before fresh jobs already waiting."""
        swept = await queue.enqueue(b"retry", ttr=1)
        await queue.reserve()
        fresh = [await queue.enqueue(b"fresh"), await queue.enqueue(b"fresh")]

        clock.advance(1)
        served = []
        for _ in range(3):
            job = await queue.reserve()
            assert job is not None
            served.append(job.id)

        assert served == [swept, *fresh]

    @pytest.mark.asyncio
    async def test_sweep_serves_earliest_due_first(
        self, queue: PriorityQueue, clock: ManualClock
    ) -> None:
        """Delayed jobs released by one sweep come out in ready-time order."""
        late = await queue.enqueue(b"late", delay=3, priority="low")
        early = await queue.enqueue(b"early", delay=1, priority="low")
        middle = await queue.enqueue(b"middle", delay=2, priority="low")

        clock.advance(3)
        served = []
        for _ in range(3):
            job = await queue.reserve()
            assert job is not None
            served.append(job.id)

        assert served == [early, middle, late]

    @pytest.mark.asyncio
    async def test_sweep_skipped_while_lease_held_elsewhere(
        self, queue: PriorityQueue, store: MemoryStore, clock: ManualClock
    ) -> None:
        """Without the moving lease, due jobs stay where they are."""
        job_id = await queue.enqueue(b"later", delay=1)
        clock.advance(2)
        await store.set_if_absent("test.moving_lock", "other-engine", ttl=10)

        assert await queue.reserve() is None
        assert store.zscore("test.delayed", job_id) == NOW + 1

    @pytest.mark.asyncio
    async def test_sweep_drops_ids_without_lane(
        self, queue: PriorityQueue, store: MemoryStore
    ) -> None:
        """An expired id whose lane entry is gone is removed, not re-queued."""
        await store.zadd("test.delayed", 99, NOW - 1)

        assert await queue.reserve() is None
        assert await store.zcard("test.delayed") == 0
        assert store.lrange("test.waiting.high") == []

    @pytest.mark.asyncio
    async def test_vanished_message_is_skipped(
        self, queue: PriorityQueue, store: MemoryStore
    ) -> None:
        """An id whose message disappeared is dropped and dispatch continues."""
        gone = await queue.enqueue(b"gone")
        kept = await queue.enqueue(b"kept")
        await store.hdel("test.messages", gone)

        job = await queue.reserve()

        assert job is not None
        assert job.id == kept
        assert not await store.hexists("test.attempts", gone)
        assert store.zscore("test.reserved", gone) is None

    @pytest.mark.asyncio
    async def test_only_vanished_messages(self, queue: PriorityQueue, store: MemoryStore) -> None:
        """Nothing is reserved when every popped id has vanished."""
        gone = await queue.enqueue(b"gone")
        await store.hdel("test.messages", gone)

        assert await queue.reserve() is None

    @pytest.mark.asyncio
    async def test_cancel_between_pop_and_claim(
        self,
        queue: PriorityQueue,
        store: MemoryStore,
        clock: ManualClock,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A job cancelled after its id was popped is not reserved."""
        job_id = await queue.enqueue(b"x")
        original_claim = store.claim
        cancelled: list[bool] = []

        async def cancel_then_claim(*args: object) -> tuple[bytes, int] | None:
            if not cancelled:
                # Let the lease taken by reserve lapse so cancel can run
                clock.advance(1)
                cancelled.append(await queue.cancel(job_id))
            return await original_claim(*args)

        monkeypatch.setattr(store, "claim", cancel_then_claim)

        assert await queue.reserve() is None
        assert cancelled == [True]
        assert await queue.status(job_id) == JobStatus.DONE
        await assert_forgotten(store, job_id)

    @pytest.mark.asyncio
    async def test_acknowledge_between_pop_and_claim(
        self, queue: PriorityQueue, store: MemoryStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """An id acknowledged after the pop leaves no reservation behind."""
        job_id = await queue.enqueue(b"x")
        original_claim = store.claim

        async def acknowledge_then_claim(*args: object) -> tuple[bytes, int] | None:
            await queue.acknowledge(job_id)
            return await original_claim(*args)

        monkeypatch.setattr(store, "claim", acknowledge_then_claim)

        assert await queue.reserve() is None
        assert not await store.hexists("test.attempts", job_id)
        assert await store.zcard("test.reserved") == 0


class TestBlockingReserve:
    """Tests for reserve with a positive timeout."""

    @pytest.mark.asyncio
    async def test_times_out(self, queue: PriorityQueue) -> None:
        """An empty queue returns None after roughly the timeout."""
        started = time.monotonic()

        assert await queue.reserve(timeout=0.05) is None
        assert time.monotonic() - started < 1

    @pytest.mark.asyncio
    async def test_ready_job_returned_immediately(self, queue: PriorityQueue) -> None:
        """A ready job does not wait for the timeout."""
        await queue.enqueue(b"low", priority="low")
        high = await queue.enqueue(b"high")

        job = await queue.reserve(timeout=5)

        assert job is not None
        assert job.id == high

    @pytest.mark.asyncio
    async def test_receives_job_pushed_while_waiting(self, queue: PriorityQueue) -> None:
        """A job pushed during the wait is delivered."""

        async def produce() -> int:
            await asyncio.sleep(0.05)
            return await queue.enqueue(b"late", priority="low")

        producer = asyncio.create_task(produce())
        job = await queue.reserve(timeout=2)
        job_id = await producer

        assert job is not None
        assert job.id == job_id
        assert job.payload == b"late"
        assert job.priority == "low"


class TestAcknowledge:
    """Tests for finishing jobs."""

    @pytest.mark.asyncio
    async def test_acknowledged_job_is_final(
        self, queue: PriorityQueue, store: MemoryStore, clock: ManualClock
    ) -> None:
        """An acknowledged job is forgotten and never re-delivered."""
        job_id = await queue.enqueue(b"work", ttr=1)
        job = await queue.reserve()
        assert job is not None

        await queue.acknowledge(job.id)
        clock.advance(5)

        assert await queue.reserve() is None
        assert await queue.status(job_id) == JobStatus.DONE
        await assert_forgotten(store, job_id)

    @pytest.mark.asyncio
    async def test_idempotent(self, queue: PriorityQueue) -> None:
        """Acknowledging twice, or an unknown id, is harmless."""
        job_id = await queue.enqueue(b"work")
        await queue.reserve()

        await queue.acknowledge(job_id)
        await queue.acknowledge(job_id)
        await queue.acknowledge(999)

        assert await queue.status(job_id) == JobStatus.DONE


class TestCancel:
    """Tests for removing jobs."""

    @pytest.mark.asyncio
    async def test_cancel_waiting_job(self, queue: PriorityQueue, store: MemoryStore) -> None:
        """A waiting job is removed from its lane."""
        job_id = await queue.enqueue(b"x", priority="low")

        assert await queue.cancel(job_id) is True
        assert await queue.reserve() is None
        await assert_forgotten(store, job_id)

    @pytest.mark.asyncio
    async def test_cancel_delayed_job(
        self, queue: PriorityQueue, store: MemoryStore, clock: ManualClock
    ) -> None:
        """A delayed job never becomes visible."""
        job_id = await queue.enqueue(b"x", delay=10)

        assert await queue.cancel(job_id) is True
        clock.advance(20)
        assert await queue.reserve() is None
        await assert_forgotten(store, job_id)

    @pytest.mark.asyncio
    async def test_cancel_reserved_job(
        self, queue: PriorityQueue, store: MemoryStore, clock: ManualClock
    ) -> None:
        """A reserved job is not re-delivered after its lease lapses."""
        job_id = await queue.enqueue(b"x", ttr=1)
        await queue.reserve()
        clock.advance(1)

        assert await queue.cancel(job_id) is True
        clock.advance(10)
        assert await queue.reserve() is None
        await assert_forgotten(store, job_id)

    @pytest.mark.asyncio
    async def test_cancel_unknown(self, queue: PriorityQueue) -> None:
        """Unknown ids report False."""
        assert await queue.cancel(42) is False

    @pytest.mark.asyncio
    async def test_cancel_done_job(self, queue: PriorityQueue, clock: ManualClock) -> None:
        """An acknowledged job cannot be cancelled."""
        job_id = await queue.enqueue(b"x")
        await queue.reserve()
        await queue.acknowledge(job_id)
        clock.advance(1)

        assert await queue.cancel(job_id) is False

    @pytest.mark.asyncio
    async def test_cancel_releases_lease(self, queue: PriorityQueue, store: MemoryStore) -> None:
        """The moving lease is free once cancel returns."""
        job_id = await queue.enqueue(b"x")

        await queue.cancel(job_id)

        assert await store.get("test.moving_lock") is None

    @pytest.mark.asyncio
    async def test_cancel_waits_for_lease(
        self, queue: PriorityQueue, store: MemoryStore, clock: ManualClock
    ) -> None:
        """Cancel blocks while another engine holds the moving lease."""
        job_id = await queue.enqueue(b"x")
        await store.set_if_absent("test.moving_lock", "other-engine", ttl=1)

        task = asyncio.create_task(queue.cancel(job_id))
        await asyncio.sleep(0.05)
        assert not task.done()

        clock.advance(1)

        assert await asyncio.wait_for(task, timeout=2) is True


class TestStatus:
    """Tests for job status."""

    @pytest.mark.asyncio
    async def test_lifecycle(self, queue: PriorityQueue, clock: ManualClock) -> None:
        """Status follows waiting, reserved, done."""
        job_id = await queue.enqueue(b"x", ttr=1)
        assert await queue.status(job_id) == JobStatus.WAITING

        await queue.reserve()
        assert await queue.status(job_id) == JobStatus.RESERVED

        # A lapsed lease still reads as reserved
        clock.advance(2)
        assert await queue.status(job_id) == JobStatus.RESERVED

        await queue.acknowledge(job_id)
        assert await queue.status(job_id) == JobStatus.DONE

    @pytest.mark.asyncio
    async def test_delayed_job_is_waiting(self, queue: PriorityQueue) -> None:
        """Delayed jobs report waiting."""
        job_id = await queue.enqueue(b"x", delay=60)

        assert await queue.status(job_id) == JobStatus.WAITING

    @pytest.mark.asyncio
    async def test_unknown_id_is_done(self, queue: PriorityQueue) -> None:
        """Ids never issued report done."""
        assert await queue.status(12345) == JobStatus.DONE

    @pytest.mark.asyncio
    async def test_accepts_numeric_string(self, queue: PriorityQueue) -> None:
        """Decimal strings are accepted."""
        await queue.enqueue(b"x")

        assert await queue.status("1") == JobStatus.WAITING

    @pytest.mark.asyncio
    @pytest.mark.parametrize("job_id", [0, -1, "abc", "1.5", "", "²", "٣", None, True, 2.5])
    async def test_rejects_invalid_ids(self, queue: PriorityQueue, job_id: object) -> None:
        """Anything but a positive integer raises InvalidId."""
        with pytest.raises(InvalidId):
            await queue.status(job_id)


class TestParseJobId:
    """Tests for job id validation."""

    @pytest.mark.parametrize("value,expected", [(1, 1), ("17", 17), (b"3", 3), (" 8 ", 8)])
    def test_valid(self, value: object, expected: int) -> None:
        """Positive integers and decimal strings parse."""
        assert parse_job_id(value) == expected

    def test_invalid_id_is_value_error(self) -> None:
        """InvalidId can be caught as ValueError."""
        with pytest.raises(ValueError, match="Unknown message ID"):
            parse_job_id("nope")


class TestClear:
    """Tests for clearing a channel."""

    @pytest.mark.asyncio
    async def test_clear_removes_channel_keys(
        self, queue: PriorityQueue, store: MemoryStore, clock: ManualClock
    ) -> None:
        """Every key of the channel goes, other channels stay."""
        other = PriorityQueue(store, channel="other", clock=clock)
        await other.enqueue(b"keep")
        await queue.enqueue(b"a")
        await queue.enqueue(b"b", delay=10, priority="low")

        await queue.clear()

        assert await store.keys("test.*") == []
        assert await store.keys("other.*") != []
        assert (await other.stats()).waiting == 1

    @pytest.mark.asyncio
    async def test_ids_restart_after_clear(self, queue: PriorityQueue) -> None:
        """The id counter is part of the channel."""
        await queue.enqueue(b"a")
        await queue.clear()

        assert await queue.enqueue(b"b") == 1


class TestStats:
    """Tests for channel statistics."""

    @pytest.mark.asyncio
    async def test_counts(self, queue: PriorityQueue) -> None:
        """Counts follow jobs through the tables."""
        await queue.enqueue(b"a")
        await queue.enqueue(b"b")
        await queue.enqueue(b"c", priority="low")
        await queue.enqueue(b"d", delay=30)
        job = await queue.reserve()
        assert job is not None

        stats = await queue.stats()
        assert stats == QueueStats(
            waiting=2, delayed=1, reserved=1, total=4, done=0, lanes={"high": 1, "low": 1}
        )

        await queue.acknowledge(job.id)
        stats = await queue.stats()
        assert stats.reserved == 0
        assert stats.done == 1

    @pytest.mark.asyncio
    async def test_empty_channel(self, queue: PriorityQueue) -> None:
        """A fresh channel counts zero everywhere."""
        stats = await queue.stats()

        assert stats.to_dict() == {
            "waiting": 0,
            "delayed": 0,
            "reserved": 0,
            "total": 0,
            "done": 0,
            "lanes": {"high": 0, "low": 0},
        }
