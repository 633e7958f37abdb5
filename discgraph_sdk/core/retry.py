# discgraph_sdk/core/retry.py
# SPDX-License-Identifier: Apache-2.0
"""
Async retry with exponential backoff for caller-side retry policies.

The ingestion engine never retries on its own; callers that want retries
(the service facade, the CLI) wrap a whole ``ingest`` call here. That is safe
because every write the engine performs is an idempotent overwrite.

Usage:
    policy = RetryPolicy(max_attempts=3, base_ms=200)
    await retry_async(lambda: engine.ingest(...), policy=policy)
"""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from discgraph_sdk.core.errors import is_retryable

LOG = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryStats:
    """
    Attributes:
        attempts: Attempts made, including the successful one.
        total_delay: Seconds spent sleeping between attempts.
    """
    attempts: int
    total_delay: float


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry configuration with exponential backoff.

    Attributes:
        max_attempts: Total tries including the first attempt.
        base_ms:      Initial backoff in milliseconds.
        max_ms:       Maximum backoff cap in milliseconds.
        multiplier:   Exponential growth factor per attempt.
        use_jitter:   Randomize sleep in [0, backoff].
    """

    max_attempts: int = 3
    base_ms: int = 150
    max_ms: int = 5_000
    multiplier: float = 2.0
    use_jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_ms <= 0 or self.max_ms <= 0:
            raise ValueError("Backoff times must be positive")
        if self.multiplier < 1.0:
            raise ValueError("Multiplier must be >= 1.0")
        if self.base_ms > self.max_ms:
            raise ValueError("base_ms cannot exceed max_ms")

    def backoff_ms(self, attempt_index: int) -> int:
        """Compute exponential backoff for a given retry index."""
        raw = int(self.base_ms * (self.multiplier ** attempt_index))
        return min(raw, self.max_ms)


NO_RETRY = RetryPolicy(max_attempts=1)


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy = NO_RETRY,
    retryable: Callable[[BaseException], bool] = is_retryable,
    on_backoff: Optional[Callable[[int, float, BaseException], None]] = None,
    stats: Optional[list] = None,
) -> T:
    """
    Run ``fn`` until it succeeds, a non-retryable error occurs, or attempts
    run out. The last error is re-raised unchanged.

    ``retry_after_ms`` on an error raises the sleep to at least that hint.
    When ``stats`` is a list, a RetryStats is appended on success.
    """
    attempts = max(1, policy.max_attempts)
    total_delay = 0.0

    for attempt in range(1, attempts + 1):
        try:
            result = await fn()
        except Exception as exc:
            if not retryable(exc) or attempt >= attempts:
                raise

            backoff = policy.backoff_ms(attempt_index=attempt - 1) / 1000.0
            sleep_for = random.random() * backoff if policy.use_jitter else backoff
            hint = getattr(exc, "retry_after_ms", None)
            if hint:
                sleep_for = max(sleep_for, hint / 1000.0)
            total_delay += sleep_for

            LOG.debug("attempt %d failed (%s); retrying in %.3fs", attempt, exc, sleep_for)
            if on_backoff:
                try:
                    on_backoff(attempt, sleep_for, exc)
                except Exception:
                    LOG.debug("on_backoff hook failed", exc_info=True)

            await asyncio.sleep(sleep_for)
        else:
            if stats is not None:
                stats.append(RetryStats(attempts=attempt, total_delay=total_delay))
            return result

    raise AssertionError("unreachable")  # pragma: no cover


__all__ = ["RetryPolicy", "RetryStats", "NO_RETRY", "retry_async"]
