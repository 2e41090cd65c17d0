"""Tests for the bounded task pool."""

from __future__ import annotations

import asyncio

import pytest

from reelsync.client.sync.pool import PoolState, TaskPool
from reelsync.core.types import TransferStatus


class Tracker:
    """Records start order and concurrent activity of pool jobs."""

    def __init__(self) -> None:
        self.active = 0
        self.peak = 0
        self.started: list[str] = []
        self.finished: list[str] = []

    def job(self, key: str, delay: float = 0.01, result: object = None, error: Exception | None = None):  # type: ignore[no-untyped-def]
        async def run() -> object:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.started.append(key)
            try:
                await asyncio.sleep(delay)
                if error is not None:
                    raise error
                return result
            finally:
                self.active -= 1
                self.finished.append(key)

        return run


class TestPoolBasics:
    """Tests for submission and state."""

    def test_rejects_zero_concurrency(self) -> None:
        """Should require at least one worker."""
        with pytest.raises(ValueError):
            TaskPool(concurrency=0)

    def test_rejects_duplicate_keys(self) -> None:
        """Should refuse a key submitted twice."""
        pool = TaskPool()
        tracker = Tracker()
        pool.submit("a", tracker.job("a"))
        with pytest.raises(ValueError):
            pool.submit("a", tracker.job("a"))

    def test_initial_state(self) -> None:
        """Should start stopped with an empty queue."""
        pool = TaskPool(concurrency=2)
        assert pool.state == PoolState.STOPPED
        assert pool.concurrency == 2
        assert pool.queue_size == 0
        assert pool.active_count == 0

    @pytest.mark.asyncio
    async def test_empty_run(self) -> None:
        """Should return immediately with no tasks."""
        pool = TaskPool()
        assert await pool.run() == []
        assert pool.state == PoolState.STOPPED


class TestPoolExecution:
    """Tests for running jobs."""

    @pytest.mark.asyncio
    async def test_concurrency_bound(self) -> None:
        """Should never run more jobs at once than the ceiling."""
        tracker = Tracker()
        pool = TaskPool(concurrency=3)
        for i in range(10):
            pool.submit(str(i), tracker.job(str(i), delay=0.02))

        tasks = await pool.run()

        assert tracker.peak == 3
        assert pool.peak_active == 3
        assert all(t.status == TransferStatus.COMPLETE for t in tasks)

    @pytest.mark.asyncio
    async def test_sequential_preserves_order(self) -> None:
        """Should run jobs one by one in submission order with concurrency 1."""
        tracker = Tracker()
        pool = TaskPool(concurrency=1)
        keys = ["c", "a", "b", "project"]
        for key in keys:
            pool.submit(key, tracker.job(key, delay=0))

        await pool.run()

        assert tracker.started == keys
        assert tracker.finished == keys
        assert tracker.peak == 1

    @pytest.mark.asyncio
    async def test_results_in_submission_order(self) -> None:
        """Should return every task in submission order with its result."""
        tracker = Tracker()
        pool = TaskPool(concurrency=3)
        for i, delay in enumerate([0.03, 0.0, 0.01]):
            pool.submit(f"k{i}", tracker.job(f"k{i}", delay=delay, result=i))

        tasks = await pool.run()

        assert [t.key for t in tasks] == ["k0", "k1", "k2"]
        assert [t.result for t in tasks] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_failure_isolated(self) -> None:
        """Should record a failed job without affecting siblings."""
        tracker = Tracker()
        pool = TaskPool(concurrency=2)
        pool.submit("ok1", tracker.job("ok1"))
        pool.submit("bad", tracker.job("bad", error=RuntimeError("boom")))
        pool.submit("ok2", tracker.job("ok2"))

        tasks = {t.key: t for t in await pool.run()}

        assert tasks["bad"].status == TransferStatus.FAILED
        assert tasks["bad"].reason == "boom"
        assert isinstance(tasks["bad"].error, RuntimeError)
        assert tasks["ok1"].status == TransferStatus.COMPLETE
        assert tasks["ok2"].status == TransferStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_failure_without_message(self) -> None:
        """Should fall back to the exception type name as reason."""
        tracker = Tracker()
        pool = TaskPool(concurrency=1)
        pool.submit("bad", tracker.job("bad", error=KeyError()))

        (task,) = await pool.run()

        assert task.status == TransferStatus.FAILED
        assert task.reason == "KeyError"

    @pytest.mark.asyncio
    async def test_timestamps_recorded(self) -> None:
        """Should stamp start and finish times."""
        tracker = Tracker()
        pool = TaskPool(concurrency=1)
        pool.submit("a", tracker.job("a"))

        (task,) = await pool.run()

        assert task.started_at is not None
        assert task.finished_at is not None
        assert task.finished_at >= task.started_at


class TestPoolCancellation:
    """Tests for stop, cancel and cancel_all."""

    @pytest.mark.asyncio
    async def test_cancel_single_active_job(self) -> None:
        """Should abort one active job and let the others finish."""
        tracker = Tracker()
        pool = TaskPool(concurrency=3)
        pool.submit("slow", tracker.job("slow", delay=10))
        pool.submit("a", tracker.job("a", delay=0.02))
        pool.submit("b", tracker.job("b", delay=0.02))

        async def cancel_soon() -> None:
            await asyncio.sleep(0.005)
            assert pool.cancel("slow")

        tasks, _ = await asyncio.gather(pool.run(), cancel_soon())
        by_key = {t.key: t for t in tasks}

        assert by_key["slow"].status == TransferStatus.CANCELLED
        assert by_key["a"].status == TransferStatus.COMPLETE
        assert by_key["b"].status == TransferStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_cancel_queued_job(self) -> None:
        """Should drop a queued job before it starts."""
        tracker = Tracker()
        pool = TaskPool(concurrency=1)
        pool.submit("a", tracker.job("a"))
        pool.submit("b", tracker.job("b"))
        assert pool.cancel("b")

        tasks = {t.key: t for t in await pool.run()}

        assert tasks["b"].status == TransferStatus.CANCELLED
        assert "b" not in tracker.started

    @pytest.mark.asyncio
    async def test_cancel_settled_or_unknown(self) -> None:
        """Should return False for settled or unknown keys."""
        tracker = Tracker()
        pool = TaskPool(concurrency=1)
        pool.submit("a", tracker.job("a", delay=0))
        await pool.run()
        assert not pool.cancel("a")
        assert not pool.cancel("missing")

    @pytest.mark.asyncio
    async def test_stop_lets_active_jobs_finish(self) -> None:
        """Should finish active jobs and cancel queued ones after stop()."""
        tracker = Tracker()
        pool = TaskPool(concurrency=1)
        for key in ["a", "b", "c"]:
            pool.submit(key, tracker.job(key, delay=0.02))

        async def stop_soon() -> None:
            await asyncio.sleep(0.005)
            pool.stop()

        tasks, _ = await asyncio.gather(pool.run(), stop_soon())
        statuses = [t.status for t in tasks]

        assert statuses == [TransferStatus.COMPLETE, TransferStatus.CANCELLED, TransferStatus.CANCELLED]
        assert tracker.started == ["a"]
        assert pool.stop_requested
        assert pool.state == PoolState.STOPPED

    @pytest.mark.asyncio
    async def test_stop_before_run(self) -> None:
        """Should settle every job cancelled when stopped before running."""
        tracker = Tracker()
        pool = TaskPool(concurrency=2)
        pool.submit("a", tracker.job("a"))
        pool.stop()

        (task,) = await pool.run()

        assert task.status == TransferStatus.CANCELLED
        assert tracker.started == []

    @pytest.mark.asyncio
    async def test_cancel_all(self) -> None:
        """Should abort active jobs and never start queued ones."""
        tracker = Tracker()
        pool = TaskPool(concurrency=2)
        for i in range(5):
            pool.submit(str(i), tracker.job(str(i), delay=10))

        async def cancel_soon() -> None:
            await asyncio.sleep(0.005)
            pool.cancel_all()

        tasks, _ = await asyncio.gather(pool.run(), cancel_soon())

        assert all(t.status == TransferStatus.CANCELLED for t in tasks)
        assert tracker.started == ["0", "1"]
        assert tracker.active == 0

    @pytest.mark.asyncio
    async def test_every_task_settles_once(self) -> None:
        """Should account for every submitted job in exactly one terminal state."""
        tracker = Tracker()
        pool = TaskPool(concurrency=3)
        for i in range(9):
            error = RuntimeError("x") if i % 4 == 0 else None
            pool.submit(str(i), tracker.job(str(i), delay=0.01 * (i % 3), error=error))

        async def cancel_some() -> None:
            await asyncio.sleep(0.001)
            pool.cancel("8")
            pool.cancel("5")

        tasks, _ = await asyncio.gather(pool.run(), cancel_some())

        assert len(tasks) == 9
        assert all(t.status.is_terminal for t in tasks)
        assert pool.active_count == 0
        assert pool.queue_size == 0

    @pytest.mark.asyncio
    async def test_outer_cancellation(self) -> None:
        """Should cancel running jobs when the run itself is cancelled."""
        tracker = Tracker()
        pool = TaskPool(concurrency=2)
        for key in ["a", "b", "c"]:
            pool.submit(key, tracker.job(key, delay=10))

        run = asyncio.create_task(pool.run())
        await asyncio.sleep(0.005)
        run.cancel()
        with pytest.raises(asyncio.CancelledError):
            await run

        assert all(pool.get(k).status == TransferStatus.CANCELLED for k in ["a", "b", "c"])  # type: ignore[union-attr]
        assert pool.state == PoolState.STOPPED
