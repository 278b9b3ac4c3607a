"""
Tests for chainvault_core.retry: bounded calls and backoff.
"""

import asyncio

import aiohttp
import pytest

from chainvault_core.errors import (
    AddressNotPresentError,
    IncorrectEncryptionKeyError,
    IncorrectPinError,
    OracleUnavailableError,
)
from chainvault_core.retry import RetryPolicy, call_with_retry, call_with_timeout

FAST = RetryPolicy(timeout=1.0, max_retries=3, backoff_base=0.0, backoff_max=0.0)


class Scripted:
    """Raises the queued errors in order, then returns ``value``."""

    def __init__(self, errors, value="ok"):
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


class TestRetryPolicy:

    def test_exponential(self):
        policy = RetryPolicy(backoff_base=0.5, backoff_max=100.0)
        assert [policy.delay(i) for i in range(4)] == [0.5, 1.0, 2.0, 4.0]

    def test_capped(self):
        policy = RetryPolicy(backoff_base=1.0, backoff_max=3.0)
        assert policy.delay(10) == 3.0


@pytest.mark.asyncio
class TestCallWithRetry:

    async def test_success_first_try(self):
        fn = Scripted([])
        assert await call_with_retry(fn, FAST) == "ok"
        assert fn.calls == 1

    @pytest.mark.parametrize("error", [
        ConnectionError("reset"),
        asyncio.TimeoutError(),
        aiohttp.ClientConnectionError("down"),
        OracleUnavailableError(),
    ])
    async def test_transient_retried(self, error):
        fn = Scripted([error, error])
        assert await call_with_retry(fn, FAST) == "ok"
        assert fn.calls == 3

    async def test_gives_up(self):
        fn = Scripted([ConnectionError()] * 10)
        with pytest.raises(ConnectionError):
            await call_with_retry(fn, FAST)
        assert fn.calls == FAST.max_retries + 1

    @pytest.mark.parametrize("error", [
        IncorrectPinError(),
        IncorrectEncryptionKeyError(),
        AddressNotPresentError(),
        ValueError("bad input"),
    ])
    async def test_non_transient_propagates_immediately(self, error):
        fn = Scripted([error])
        with pytest.raises(type(error)):
            await call_with_retry(fn, FAST)
        assert fn.calls == 1

    async def test_slow_call_times_out_and_retries(self):
        attempts = []

        async def slow_then_fast():
            attempts.append(1)
            if len(attempts) == 1:
                await asyncio.sleep(5)
            return "done"

        policy = RetryPolicy(timeout=0.05, max_retries=1, backoff_base=0.0, backoff_max=0.0)
        assert await call_with_retry(slow_then_fast, policy) == "done"
        assert len(attempts) == 2

    async def test_zero_retries(self):
        fn = Scripted([OracleUnavailableError()])
        policy = RetryPolicy(timeout=1.0, max_retries=0)
        with pytest.raises(OracleUnavailableError):
            await call_with_retry(fn, policy)
        assert fn.calls == 1


@pytest.mark.asyncio
class TestCallWithTimeout:

    async def test_returns(self):
        assert await call_with_timeout(Scripted([]), FAST) == "ok"

    async def test_no_retry(self):
        fn = Scripted([ConnectionError()])
        with pytest.raises(ConnectionError):
            await call_with_timeout(fn, FAST)
        assert fn.calls == 1

    async def test_timeout(self):
        async def never():
            await asyncio.sleep(5)

        with pytest.raises(asyncio.TimeoutError):
            await call_with_timeout(never, RetryPolicy(timeout=0.05))
