# SPDX-License-Identifier: Apache-2.0
"""
Error taxonomy and caller-side retries.

Asserts:
  • retryability follows the error kind (and the cause for write errors)
  • retry_async retries retryable errors only, up to max_attempts
  • retry_after_ms raises the backoff to at least the hint
  • invalid policies are rejected
"""
import pytest

from discgraph_sdk.core.errors import (
    DiscGraphError,
    InvalidInputError,
    NodeWriteError,
    SourceUnavailable,
    StoreError,
    StoreUnavailable,
    is_retryable,
)
from discgraph_sdk.core.retry import RetryPolicy, retry_async

pytestmark = pytest.mark.asyncio

FAST = RetryPolicy(max_attempts=3, base_ms=1, max_ms=2, use_jitter=False)


async def test_retryable_kinds():
    assert is_retryable(SourceUnavailable("x"))
    assert is_retryable(StoreUnavailable("x"))
    assert not is_retryable(StoreError("x"))
    assert not is_retryable(InvalidInputError("x"))
    assert is_retryable(ConnectionError())
    assert not is_retryable(ValueError())


async def test_write_error_retryability_follows_cause():
    assert NodeWriteError("Users", StoreUnavailable("down")).retryable
    assert not NodeWriteError("Users", StoreError("bad")).retryable


async def test_write_error_carries_collection_and_cause():
    cause = StoreUnavailable("down")
    err = NodeWriteError("Users", cause)
    assert err.collection == "Users"
    assert err.cause is cause
    assert err.details["collection"] == "Users"
    assert err.code == "NODE_WRITE_ERROR"


async def test_error_str_includes_code_and_details():
    err = DiscGraphError("boom", code="X", retry_after_ms=5, details={"a": 1})
    text = str(err)
    assert "boom" in text and "code=X" in text and "retry_after_ms=5" in text


async def test_retry_succeeds_after_transient_failures():
    calls = []

    async def fn():
        calls.append(1)
        if len(calls) < 3:
            raise StoreUnavailable("flaky")
        return "ok"

    stats = []
    assert await retry_async(fn, policy=FAST, stats=stats) == "ok"
    assert len(calls) == 3
    assert stats[0].attempts == 3


async def test_retry_gives_up_after_max_attempts():
    calls = []

    async def fn():
        calls.append(1)
        raise SourceUnavailable("down")

    with pytest.raises(SourceUnavailable):
        await retry_async(fn, policy=FAST)
    assert len(calls) == 3


async def test_non_retryable_error_is_raised_immediately():
    calls = []

    async def fn():
        calls.append(1)
        raise InvalidInputError("bad")

    with pytest.raises(InvalidInputError):
        await retry_async(fn, policy=FAST)
    assert len(calls) == 1


async def test_retry_after_hint_raises_backoff():
    calls = []
    delays = []

    async def fn():
        calls.append(1)
        if len(calls) == 1:
            raise SourceUnavailable("slow down", retry_after_ms=20)
        return "ok"

    await retry_async(fn, policy=FAST, on_backoff=lambda a, d, e: delays.append(d))
    assert delays == [0.02]


async def test_on_backoff_hook_failure_does_not_break_retry():
    calls = []

    async def fn():
        calls.append(1)
        if len(calls) == 1:
            raise StoreUnavailable("x")
        return "ok"

    def hook(attempt, delay, exc):
        raise RuntimeError("hook broke")

    assert await retry_async(fn, policy=FAST, on_backoff=hook) == "ok"


async def test_backoff_is_capped():
    policy = RetryPolicy(max_attempts=10, base_ms=100, max_ms=300, use_jitter=False)
    assert [policy.backoff_ms(i) for i in range(4)] == [100, 200, 300, 300]


@pytest.mark.parametrize(
    "kwargs",
    [{"max_attempts": 0}, {"base_ms": 0}, {"multiplier": 0.5}, {"base_ms": 10, "max_ms": 5}],
)
async def test_invalid_policy_rejected(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)
