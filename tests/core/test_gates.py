# SPDX-License-Identifier: Apache-2.0
"""
Breaker, limiter and metrics gates shared by the store and the ledger.

Asserts:
  • metrics record every call with its outcome code
  • a failing metrics sink never breaks the call
  • an open breaker short-circuits with the component's own error and cool-down
  • circuits are per scope and only outages trip them
  • the token bucket queues callers once the burst is spent
"""
import pytest

from discgraph_sdk.core.errors import SourceUnavailable, StoreError, StoreUnavailable
from discgraph_sdk.core.gates import (
    Gates,
    NoopBreaker,
    OutageBreaker,
    TokenBucket,
)

pytestmark = pytest.mark.asyncio


class RecordingMetrics:
    def __init__(self):
        self.observations = []

    def observe(self, **kw):
        self.observations.append(kw)

    def counter(self, **kw):
        pass


class BrokenMetrics:
    def observe(self, **kw):
        raise RuntimeError("sink down")

    def counter(self, **kw):
        raise RuntimeError("sink down")


async def _ok():
    return 42


async def _fail():
    raise StoreError("nope")


async def _outage():
    raise StoreUnavailable("down")


async def _rpc_down():
    raise SourceUnavailable("rpc down")


async def test_metrics_record_success_and_failure():
    metrics = RecordingMetrics()
    gates = Gates(component="graph_store", unavailable=StoreUnavailable, metrics=metrics)

    assert await gates.run("upsert_node", _ok, collection="Users") == 42
    with pytest.raises(StoreError):
        await gates.run("upsert_node", _fail)

    ok, failed = metrics.observations
    assert ok["ok"] is True and ok["code"] == "OK"
    assert ok["extra"] == {"collection": "Users"}
    assert failed["ok"] is False and failed["code"] == "STORE_ERROR"
    assert failed["component"] == "graph_store"


async def test_broken_metrics_sink_is_ignored():
    gates = Gates(component="ledger_source", unavailable=SourceUnavailable, metrics=BrokenMetrics())
    assert await gates.run("list_accounts", _ok) == 42


async def test_open_breaker_raises_component_error_with_cooldown():
    breaker = OutageBreaker(threshold=2, cooldown_s=60)
    gates = Gates(component="ledger_source", unavailable=SourceUnavailable, breaker=breaker)

    for _ in range(2):
        with pytest.raises(SourceUnavailable):
            await gates.run("list_accounts", _rpc_down, scope="P1")
    assert breaker.open_scopes == frozenset({"P1"})

    with pytest.raises(SourceUnavailable) as ei:
        await gates.run("list_accounts", _ok, scope="P1")
    assert ei.value.details == {"op": "list_accounts", "scope": "P1"}
    assert 0 < ei.value.retry_after_ms <= 60_000


async def test_open_scope_does_not_block_other_scopes():
    breaker = OutageBreaker(threshold=1, cooldown_s=60)
    gates = Gates(component="graph_store", unavailable=StoreUnavailable, breaker=breaker)

    with pytest.raises(StoreUnavailable):
        await gates.run("upsert_node", _outage, scope="Users")

    assert await gates.run("upsert_node", _ok, scope="Discriminators") == 42
    assert not breaker.allow("Users")


async def test_rejections_do_not_trip_the_breaker():
    breaker = OutageBreaker(threshold=1, cooldown_s=60)
    gates = Gates(component="graph_store", unavailable=StoreUnavailable, breaker=breaker)

    for _ in range(3):
        with pytest.raises(StoreError):
            await gates.run("upsert_node", _fail, scope="Users")
    assert breaker.open_scopes == frozenset()


async def test_scope_defaults_to_operation():
    breaker = OutageBreaker(threshold=1, cooldown_s=60)
    gates = Gates(component="graph_store", unavailable=StoreUnavailable, breaker=breaker)
    with pytest.raises(StoreUnavailable):
        await gates.run("list_program_ids", _outage)
    assert breaker.open_scopes == frozenset({"list_program_ids"})


async def test_breaker_closes_after_success():
    breaker = OutageBreaker(threshold=1, cooldown_s=0.1)
    breaker.on_error("Users", ConnectionError())
    assert not breaker.allow("Users")
    breaker.on_success("Users")
    assert breaker.allow("Users") and breaker.remaining_s("Users") == 0.0


async def test_mode_selects_gate_implementations():
    thin = Gates(component="c", unavailable=StoreUnavailable)
    standalone = Gates(component="c", unavailable=StoreUnavailable, mode="standalone")
    unknown = Gates(component="c", unavailable=StoreUnavailable, mode="bogus")
    assert isinstance(thin._breaker, NoopBreaker)
    assert isinstance(standalone._breaker, OutageBreaker)
    assert isinstance(standalone._limiter, TokenBucket)
    assert unknown.mode == "thin"


async def test_token_bucket_serves_burst_then_queues_callers():
    bucket = TokenBucket(rate_per_s=10, burst=2)
    waits = [bucket._reserve() for _ in range(4)]
    assert waits[:2] == [0.0, 0.0]
    assert waits[2] == pytest.approx(0.1, abs=0.02)
    assert waits[3] == pytest.approx(0.2, abs=0.02)


async def test_token_bucket_acquire_within_burst_does_not_wait():
    bucket = TokenBucket(rate_per_s=1, burst=3)
    for _ in range(3):
        await bucket.acquire()
    assert bucket.level == pytest.approx(0.0, abs=0.01)
