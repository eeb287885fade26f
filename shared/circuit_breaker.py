"""
Circuit breaker for calls to external dependencies.
"""

import time
from enum import Enum
from typing import Any, Callable, Awaitable

from shared.logging import get_logger


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, requests blocked
    HALF_OPEN = "half_open"  # One trial call allowed


class CircuitBreakerOpenException(Exception):
    """Raised instead of calling the dependency while the breaker is open."""


class CircuitBreaker:
    """Stops calling a dependency after consecutive failures.

    Only exceptions matching ``expected_exception`` count as failures; anything
    else (e.g. a 404 mapped to a domain error) passes through untouched and
    leaves the breaker as it was. After ``recovery_timeout`` seconds an open
    breaker lets one trial call through; its outcome closes or reopens it.
    """

    def __init__(self,
                 failure_threshold: int = 5,
                 recovery_timeout: float = 60.0,
                 expected_exception: type = Exception,
                 name: str = "default",
                 clock: Callable[[], float] = time.monotonic):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self.name = name
        self._clock = clock
        self.logger = get_logger(f"circuit_breaker.{name}")

        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitBreakerState:
        return self._state

    def is_open(self) -> bool:
        """Check if circuit breaker is in OPEN state."""
        return self._state == CircuitBreakerState.OPEN

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Await ``func`` unless the breaker is open."""
        if not self._allow_call():
            raise CircuitBreakerOpenException(
                f"Circuit breaker '{self.name}' is OPEN - blocking call"
            )

        trial = self._state == CircuitBreakerState.HALF_OPEN
        try:
            result = await func(*args, **kwargs)
        except self.expected_exception:
            self._on_failure()
            raise
        finally:
            if trial:
                self._trial_in_flight = False

        self._on_success()
        return result

    def _allow_call(self) -> bool:
        if self._state == CircuitBreakerState.CLOSED:
            return True
        if self._trial_in_flight:
            return False
        if self._state == CircuitBreakerState.HALF_OPEN or \
                self._clock() - self._opened_at >= self.recovery_timeout:
            self._state = CircuitBreakerState.HALF_OPEN
            self._trial_in_flight = True
            self.logger.info("Circuit breaker half-open, allowing trial call", breaker=self.name)
            return True
        return False

    def _on_success(self):
        if self._state == CircuitBreakerState.HALF_OPEN:
            self.logger.info("Circuit breaker closed after successful trial call", breaker=self.name)
        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0

    def _on_failure(self):
        self._failure_count += 1
        if self._state == CircuitBreakerState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitBreakerState.OPEN
            self._opened_at = self._clock()
            self.logger.warning(
                "Circuit breaker opened",
                breaker=self.name,
                failure_count=self._failure_count,
                threshold=self.failure_threshold
            )
