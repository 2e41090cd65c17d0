"""Retry logic with exponential backoff for object store transfers.

This module provides:
- backoff_delay: delay before the next attempt, honouring Retry-After
- dynamic_timeout: request timeout scaled to payload size
- retry_transfer: run an async operation with the transfer retry policy
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from reelsync.client.drive import DriveError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 4  # total attempts, first one included
DEFAULT_INITIAL_BACKOFF = 1.0  # seconds
DEFAULT_MAX_BACKOFF = 30.0  # seconds
MAX_JITTER = 0.5  # seconds

# Timeout scaling: assume a worst case of ~0.5 MB/s
MIN_TRANSFER_TIMEOUT = 10 * 60.0
MAX_TRANSFER_TIMEOUT = 2 * 60 * 60.0
WORST_CASE_BYTES_PER_SECOND = 0.5 * 1024 * 1024

SleepFunc = Callable[[float], Awaitable[None]]


def backoff_delay(attempt: int, retry_after: float | None = None) -> float:
    """Compute the wait before retrying after a failed attempt.

    Args:
        attempt: Number of the attempt that just failed (1-based).
        retry_after: Server-supplied delay in seconds, if any.

    Returns:
        Delay in seconds.
    """
    if retry_after and retry_after > 0:
        return retry_after
    base = min(DEFAULT_MAX_BACKOFF, DEFAULT_INITIAL_BACKOFF * 2 ** (attempt - 1))
    return base + random.uniform(0, MAX_JITTER)


def dynamic_timeout(size_bytes: int) -> float:
    """Request timeout for a payload, clamped to [10 min, 2 h]."""
    estimated = math.ceil(size_bytes / WORST_CASE_BYTES_PER_SECOND)
    return min(MAX_TRANSFER_TIMEOUT, max(MIN_TRANSFER_TIMEOUT, float(estimated)))


async def retry_transfer(
    func: Callable[[], Awaitable[T]],
    description: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    sleep: SleepFunc = asyncio.sleep,
) -> T:
    """Execute an async operation with the transfer retry policy.

    Only DriveError instances flagged retriable (network failure, timeout,
    408/429/5xx) are retried. Anything else, including cancellation,
    propagates immediately.

    Args:
        func: Zero-argument coroutine factory, called once per attempt.
        description: What is being attempted, for log messages.
        max_attempts: Total attempts before giving up.
        sleep: Sleep coroutine (injectable for tests).

    Returns:
        Result of the operation.

    Raises:
        DriveError: The last error once attempts are exhausted, or the first
            non-retriable one.
    """
    attempt = 1
    while True:
        try:
            return await func()
        except DriveError as e:
            if not e.retriable or attempt >= max_attempts:
                if e.retriable:
                    logger.error(f"{description}: all {max_attempts} attempts failed: {e}")
                raise
            wait = backoff_delay(attempt, e.retry_after)
            logger.warning(
                f"{description}: attempt {attempt}/{max_attempts} failed: {e}. "
                f"Retrying in {wait:.1f}s..."
            )
            await sleep(wait)
            attempt += 1
