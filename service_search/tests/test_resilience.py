"""
Tests for the shared circuit breaker and retry helpers.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException, CircuitBreakerState
from shared.retry import RetryConfig, RetryError, call_with_retry


class TransientError(Exception):
    pass


class TestCircuitBreaker:
    """Test cases for CircuitBreaker."""

    @staticmethod
    async def _opened_breaker(now):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30.0,
                                 expected_exception=TransientError, name="test", clock=lambda: now[0])
        with pytest.raises(TransientError):
            await breaker.call(AsyncMock(side_effect=TransientError("down")))
        return breaker

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60.0,
                                 expected_exception=TransientError, name="test")
        failing = AsyncMock(side_effect=TransientError("down"))

        for _ in range(2):
            with pytest.raises(TransientError):
                await breaker.call(failing)

        with pytest.raises(CircuitBreakerOpenException):
            await breaker.call(failing)
        assert failing.await_count == 2

    @pytest.mark.asyncio
    async def test_unexpected_exceptions_do_not_count(self):
        breaker = CircuitBreaker(failure_threshold=1, expected_exception=TransientError, name="test")
        failing = AsyncMock(side_effect=KeyError("missing"))

        with pytest.raises(KeyError):
            await breaker.call(failing)

        assert breaker.is_open() is False

    @pytest.mark.asyncio
    async def test_half_open_success_closes(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0.0,
                                 expected_exception=TransientError, name="test")
        with pytest.raises(TransientError):
            await breaker.call(AsyncMock(side_effect=TransientError("down")))
        assert breaker.is_open() is True

        assert await breaker.call(AsyncMock(return_value="ok")) == "ok"
        assert breaker.is_open() is False

    @pytest.mark.asyncio
    async def test_half_open_admits_one_concurrent_trial(self):
        now = [0.0]
        breaker = await self._opened_breaker(now)
        now[0] = 31.0
        release = asyncio.Event()
        entered = []

        async def slow():
            entered.append(True)
            await release.wait()
            return "ok"

        tasks = [asyncio.ensure_future(breaker.call(slow)) for _ in range(5)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert len(entered) == 1
        assert results.count("ok") == 1
        assert sum(isinstance(result, CircuitBreakerOpenException) for result in results) == 4
        assert breaker.state == CircuitBreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_failed_trial_reopens_until_next_timeout(self):
        now = [0.0]
        breaker = await self._opened_breaker(now)
        now[0] = 31.0

        with pytest.raises(TransientError):
            await breaker.call(AsyncMock(side_effect=TransientError("still down")))

        assert breaker.is_open() is True
        with pytest.raises(CircuitBreakerOpenException):
            await breaker.call(AsyncMock(return_value="ok"))
        now[0] = 62.0
        assert await breaker.call(AsyncMock(return_value="ok")) == "ok"

    @pytest.mark.asyncio
    async def test_unexpected_error_in_trial_frees_the_slot(self):
        now = [0.0]
        breaker = await self._opened_breaker(now)
        now[0] = 31.0

        with pytest.raises(KeyError):
            await breaker.call(AsyncMock(side_effect=KeyError("missing")))

        assert breaker.state == CircuitBreakerState.HALF_OPEN
        assert await breaker.call(AsyncMock(return_value="ok")) == "ok"
        assert breaker.state == CircuitBreakerState.CLOSED


class TestCallWithRetry:
    """Test cases for call_with_retry."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failure(self):
        func = AsyncMock(side_effect=[TransientError("once"), "done"])

        result = await call_with_retry(func, exceptions=(TransientError,),
                                       config=RetryConfig(max_attempts=3, base_delay=0.0))

        assert result == "done"
        assert func.await_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_attempts_raise_retry_error(self):
        func = AsyncMock(side_effect=TransientError("always"))

        with pytest.raises(RetryError) as exc_info:
            await call_with_retry(func, exceptions=(TransientError,),
                                  config=RetryConfig(max_attempts=3, base_delay=0.0))

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_exception, TransientError)

    @pytest.mark.asyncio
    async def test_other_exceptions_propagate_immediately(self):
        func = AsyncMock(side_effect=ValueError("bad input"))

        with pytest.raises(ValueError):
            await call_with_retry(func, exceptions=(TransientError,),
                                  config=RetryConfig(max_attempts=3, base_delay=0.0))

        assert func.await_count == 1
