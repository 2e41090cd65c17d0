"""Bounded task pool shared by the push and pull orchestrators.

This module provides:
- TaskPool: runs keyed coroutine jobs with a fixed concurrency ceiling
- PoolTask: one submitted job and its terminal state
- PoolState: lifecycle of the pool
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any

from reelsync.core.types import TransferStatus

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]


class PoolState(Enum):
    """State of the task pool."""

    STOPPED = auto()
    RUNNING = auto()
    STOPPING = auto()


@dataclass
class PoolTask:
    """A job submitted to the pool.

    Attributes:
        key: Unique key within the pool, also the cancellation handle.
        job: Zero-argument coroutine factory.
        status: QUEUED, ACTIVE, then exactly one of COMPLETE, FAILED, CANCELLED.
        result: Return value of the job when COMPLETE.
        error: Exception raised by the job when FAILED.
    """

    key: str
    job: Job
    status: TransferStatus = TransferStatus.QUEUED
    result: Any = None
    error: BaseException | None = None
    reason: str = ""
    cancel_requested: bool = False
    started_at: float | None = None
    finished_at: float | None = None
    _handle: asyncio.Task[Any] | None = field(default=None, repr=False)

    def _settle(self, status: TransferStatus, reason: str = "") -> None:
        if self.status.is_terminal:
            return
        self.status = status
        self.reason = reason
        self.finished_at = time.monotonic()


class TaskPool:
    """Runs queued jobs on at most ``concurrency`` worker coroutines.

    Each job runs as its own asyncio task so it can be cancelled individually
    while the worker that picked it up carries on with the queue. With
    concurrency 1 the pool executes jobs strictly in submission order.

    Usage:
        pool = TaskPool(concurrency=3)
        for key, job in jobs:
            pool.submit(key, job)
        tasks = await pool.run()

    Cancellation:
        stop()        - no new job starts, active jobs finish
        cancel_all()  - stop() and abort every active job
        cancel(key)   - abort or unqueue a single job
    """

    def __init__(self, concurrency: int = 3, name: str = "pool") -> None:
        """Initialize the pool.

        Args:
            concurrency: Maximum number of jobs active at once.
            name: Label used in log messages.
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._concurrency = concurrency
        self._name = name
        self._state = PoolState.STOPPED
        self._stop_requested = False

        self._queue: deque[PoolTask] = deque()
        self._tasks: dict[str, PoolTask] = {}
        self._active: dict[str, PoolTask] = {}
        self._peak_active = 0

    @property
    def state(self) -> PoolState:
        """Get current pool state."""
        return self._state

    @property
    def concurrency(self) -> int:
        """Get the concurrency ceiling."""
        return self._concurrency

    @property
    def active_count(self) -> int:
        """Get number of active jobs."""
        return len(self._active)

    @property
    def peak_active(self) -> int:
        """Get the highest number of jobs ever active at once."""
        return self._peak_active

    @property
    def queue_size(self) -> int:
        """Get number of queued jobs."""
        return len(self._queue)

    @property
    def stop_requested(self) -> bool:
        """Whether stop() or cancel_all() was called."""
        return self._stop_requested

    def get(self, key: str) -> PoolTask | None:
        """Get a submitted task by key."""
        return self._tasks.get(key)

    def submit(self, key: str, job: Job) -> PoolTask:
        """Queue a job.

        Raises:
            ValueError: If the key was already submitted.
        """
        if key in self._tasks:
            raise ValueError(f"Duplicate task key: {key}")
        task = PoolTask(key=key, job=job)
        self._tasks[key] = task
        self._queue.append(task)
        return task

    async def run(self) -> list[PoolTask]:
        """Run every queued job and wait until all of them settle.

        Returns:
            All submitted tasks in submission order, each in a terminal state.
        """
        if self._state != PoolState.STOPPED:
            raise RuntimeError(f"{self._name} is already running")
        self._state = PoolState.STOPPING if self._stop_requested else PoolState.RUNNING
        worker_count = min(self._concurrency, len(self._queue))
        logger.debug(f"{self._name}: starting {worker_count} workers for {len(self._queue)} tasks")

        workers = [asyncio.create_task(self._worker_loop()) for _ in range(worker_count)]
        try:
            await asyncio.gather(*workers)
        finally:
            for worker in workers:
                worker.cancel()
            while self._queue:
                self._queue.popleft()._settle(TransferStatus.CANCELLED, "Cancelled")
            self._state = PoolState.STOPPED

        return list(self._tasks.values())

    def stop(self) -> None:
        """Stop picking up new jobs. Active jobs run to completion."""
        self._stop_requested = True
        if self._state == PoolState.RUNNING:
            self._state = PoolState.STOPPING
            logger.info(f"{self._name}: stopping after {len(self._active)} active tasks")

    def cancel_all(self) -> None:
        """Stop the pool and abort every active job."""
        self.stop()
        for task in list(self._active.values()):
            task.cancel_requested = True
            if task._handle is not None and not task._handle.done():
                task._handle.cancel()

    def cancel(self, key: str) -> bool:
        """Cancel one job, queued or active, without touching the others.

        Returns:
            True if the job had not settled yet.
        """
        task = self._tasks.get(key)
        if task is None or task.status.is_terminal:
            return False
        task.cancel_requested = True
        if task._handle is not None and not task._handle.done():
            task._handle.cancel()
        logger.debug(f"{self._name}: cancel requested for {key}")
        return True

    async def _worker_loop(self) -> None:
        """Pull jobs from the queue until it is empty or the pool stops."""
        while self._state == PoolState.RUNNING and self._queue:
            task = self._queue.popleft()
            if task.cancel_requested:
                task._settle(TransferStatus.CANCELLED, "Cancelled")
                continue
            await self._execute(task)

    async def _execute(self, task: PoolTask) -> None:
        """Run one job in its own asyncio task and record how it ended."""
        task.status = TransferStatus.ACTIVE
        task.started_at = time.monotonic()
        self._active[task.key] = task
        self._peak_active = max(self._peak_active, len(self._active))

        handle = asyncio.create_task(task.job())
        task._handle = handle
        try:
            await asyncio.wait({handle})
        except asyncio.CancelledError:
            handle.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await handle
            task._settle(TransferStatus.CANCELLED, "Cancelled")
            raise
        finally:
            self._active.pop(task.key, None)
            task._handle = None

        if handle.cancelled():
            task._settle(TransferStatus.CANCELLED, "Cancelled")
            return
        error = handle.exception()
        if error is not None:
            task.error = error
            task._settle(TransferStatus.FAILED, str(error) or type(error).__name__)
            return
        task.result = handle.result()
        task._settle(TransferStatus.COMPLETE)
