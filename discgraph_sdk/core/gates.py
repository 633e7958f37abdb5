# discgraph_sdk/core/gates.py
# SPDX-License-Identifier: Apache-2.0
"""
Shared call gates for the graph store and ledger source adapters.

Mode Strategy
-------------
mode: "thin" (default)
    - For composition under an external supervisor.
    - All policies are no-ops: no breaker, no rate limiter.

mode: "standalone"
    - For direct use in a service process.
    - Enables OutageBreaker (per collection or program) and TokenBucket.
    - Per-process helpers only; NOT a distributed control plane.

Metrics are always routed through a MetricsSink (NoopMetrics by default) and
a failing sink never breaks the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Mapping, Optional, Protocol, TypeVar

from discgraph_sdk.core.errors import DiscGraphError, is_retryable

LOG = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Metrics
# =============================================================================

class MetricsSink(Protocol):
    """Metrics collection protocol (low-cardinality labels only)."""

    def observe(
        self,
        *,
        component: str,
        op: str,
        ms: float,
        ok: bool,
        code: str = "OK",
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        ...

    def counter(
        self,
        *,
        component: str,
        name: str,
        value: int = 1,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        ...


class NoopMetrics:
    def observe(self, **_: Any) -> None:
        ...

    def counter(self, **_: Any) -> None:
        ...


# =============================================================================
# Breaker / limiter
# =============================================================================

class CircuitBreaker(Protocol):
    def allow(self, scope: str) -> bool:
        ...

    def remaining_s(self, scope: str) -> float:
        ...

    def on_success(self, scope: str) -> None:
        ...

    def on_error(self, scope: str, err: BaseException) -> None:
        ...


class RateLimiter(Protocol):
    async def acquire(self) -> None:
        ...


class NoopBreaker:
    def allow(self, scope: str) -> bool:
        return True

    def remaining_s(self, scope: str) -> float:
        return 0.0

    def on_success(self, scope: str) -> None:
        ...

    def on_error(self, scope: str, err: BaseException) -> None:
        ...


class OutageBreaker:
    """
    Per-scope breaker that trips on outages only.

    A scope is a collection for the graph store and a program id for the
    ledger, so a backend failing for one scope keeps serving the others.
    Only retryable errors count towards ``threshold``; a rejected document or
    a bad request says nothing about availability. Once ``cooldown_s`` has
    passed, calls are let through again and the first success closes the
    scope; another failure re-opens it for a fresh cool-down.
    """

    def __init__(self, *, threshold: int = 5, cooldown_s: float = 10.0) -> None:
        self.threshold = max(1, int(threshold))
        self.cooldown_s = max(0.1, float(cooldown_s))
        self._streaks: Dict[str, int] = {}
        self._opened: Dict[str, float] = {}

    @property
    def open_scopes(self) -> FrozenSet[str]:
        return frozenset(self._opened)

    def remaining_s(self, scope: str) -> float:
        opened = self._opened.get(scope)
        if opened is None:
            return 0.0
        return max(0.0, opened + self.cooldown_s - time.monotonic())

    def allow(self, scope: str) -> bool:
        return self.remaining_s(scope) <= 0.0

    def on_success(self, scope: str) -> None:
        self._streaks.pop(scope, None)
        if self._opened.pop(scope, None) is not None:
            LOG.info("circuit for %s closed", scope)

    def on_error(self, scope: str, err: BaseException) -> None:
        if not is_retryable(err):
            return
        streak = self._streaks.get(scope, 0) + 1
        self._streaks[scope] = streak
        if streak >= self.threshold:
            if scope not in self._opened:
                LOG.warning("circuit for %s opened after %d failures", scope, streak)
            self._opened[scope] = time.monotonic()


class NoopLimiter:
    async def acquire(self) -> None:
        ...


class TokenBucket:
    """
    Paces calls to one backend at ``rate_per_s`` with bursts up to ``burst``.

    Each caller reserves a token up front; when the bucket is empty the level
    goes negative and the caller sleeps exactly until its token is due, so
    concurrent pollers queue in arrival order without busy waiting.
    """

    def __init__(self, rate_per_s: float = 50.0, burst: int = 100) -> None:
        self.rate_per_s = max(0.1, float(rate_per_s))
        self.burst = max(1, int(burst))
        self._level = float(self.burst)
        self._stamp = time.monotonic()

    @property
    def level(self) -> float:
        return self._level

    def _reserve(self) -> float:
        """Take one token; return how long the caller must wait for it."""
        now = time.monotonic()
        self._level = min(float(self.burst), self._level + (now - self._stamp) * self.rate_per_s)
        self._stamp = now
        self._level -= 1.0
        return 0.0 if self._level >= 0 else -self._level / self.rate_per_s

    async def acquire(self) -> None:
        wait_s = self._reserve()
        if wait_s > 0:
            await asyncio.sleep(wait_s)


# =============================================================================
# Gate runner
# =============================================================================

class Gates:
    """
    Breaker + limiter + metrics around one async call.

    ``unavailable`` is the error class raised while a scope's circuit is
    open, so each component surfaces its own error kind. The error carries
    the remaining cool-down as ``retry_after_ms``.
    """

    def __init__(
        self,
        *,
        component: str,
        unavailable: Callable[..., DiscGraphError],
        mode: str = "thin",
        metrics: Optional[MetricsSink] = None,
        breaker: Optional[CircuitBreaker] = None,
        limiter: Optional[RateLimiter] = None,
    ) -> None:
        self._component = component
        self._unavailable = unavailable
        self._metrics: MetricsSink = metrics or NoopMetrics()

        m = (mode or "thin").strip().lower()
        if m not in {"thin", "standalone"}:
            m = "thin"
        self.mode = m

        if self.mode == "standalone":
            self._breaker = breaker or OutageBreaker()
            self._limiter = limiter or TokenBucket()
        else:
            self._breaker = breaker or NoopBreaker()
            self._limiter = limiter or NoopLimiter()

    def _record(self, op: str, t0: float, ok: bool, *, code: str = "OK", **extra: Any) -> None:
        try:
            self._metrics.observe(
                component=self._component,
                op=op,
                ms=(time.monotonic() - t0) * 1000.0,
                ok=ok,
                code=code,
                extra=extra or None,
            )
        except Exception:
            LOG.debug("metrics sink failed for %s.%s", self._component, op, exc_info=True)

    async def run(
        self,
        op: str,
        call: Callable[[], Awaitable[T]],
        *,
        scope: Optional[str] = None,
        **metric_extra: Any,
    ) -> T:
        """
        Run ``call`` under the gates.

        ``scope`` selects the breaker state (defaults to ``op``); it is kept
        out of the metric labels since program ids are unbounded.
        """
        key = scope or op
        if not self._breaker.allow(key):
            t0 = time.monotonic()
            err = self._unavailable(
                f"{self._component} circuit open for {key}",
                retry_after_ms=int(self._breaker.remaining_s(key) * 1000) or None,
                details={"op": op, "scope": key},
            )
            self._record(op, t0, False, code=err.code, **metric_extra)
            raise err

        await self._limiter.acquire()
        t0 = time.monotonic()
        try:
            result = await call()
        except DiscGraphError as e:
            self._record(op, t0, False, code=e.code, **metric_extra)
            self._breaker.on_error(key, e)
            raise
        except Exception as e:
            self._record(op, t0, False, code="UnhandledException", **metric_extra)
            self._breaker.on_error(key, e)
            raise
        self._record(op, t0, True, **metric_extra)
        self._breaker.on_success(key)
        return result


__all__ = [
    "MetricsSink",
    "NoopMetrics",
    "CircuitBreaker",
    "RateLimiter",
    "NoopBreaker",
    "OutageBreaker",
    "NoopLimiter",
    "TokenBucket",
    "Gates",
]
