"""
Per-tenant token bucket rate limiter for the Search Gateway.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from shared.logging import get_logger


DEFAULT_PERMITS_PER_SECOND = 100.0


class TokenBucket:
    """Thread-safe token bucket; capacity equals the refill rate."""

    def __init__(self, rate: float, clock: Callable[[], float] = time.monotonic):
        self.capacity = rate
        self.rate = rate
        self._clock = clock
        self._tokens = rate
        self._last_refill = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        """Add tokens based on elapsed time. Caller holds the lock."""
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._last_refill = now

    def try_acquire(self) -> bool:
        """Take one permit if available, without waiting."""
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def available(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    tenant_id: str
    limit: float
    remaining: int


class TenantRateLimiter:
    """Lazily creates one bucket per tenant and never evicts it.

    The registry lock is only taken when a tenant is seen for the first time;
    admission for known tenants contends on that tenant's bucket alone.
    """

    def __init__(self,
                 permits_per_second: float = DEFAULT_PERMITS_PER_SECOND,
                 clock: Callable[[], float] = time.monotonic):
        if permits_per_second <= 0:
            raise ValueError("permits_per_second must be positive")
        self.permits_per_second = permits_per_second
        self._clock = clock
        self._buckets: Dict[str, TokenBucket] = {}
        self._registry_lock = threading.Lock()
        self.logger = get_logger("search_gateway.rate_limiter")

    def _bucket(self, tenant_id: str) -> TokenBucket:
        bucket = self._buckets.get(tenant_id)
        if bucket is not None:
            return bucket
        with self._registry_lock:
            bucket = self._buckets.get(tenant_id)
            if bucket is None:
                bucket = TokenBucket(self.permits_per_second, self._clock)
                self._buckets[tenant_id] = bucket
                self.logger.debug("Created token bucket", tenant_id=tenant_id, rate=self.permits_per_second)
            return bucket

    def try_acquire(self, tenant_id: str) -> bool:
        """Admit one request for ``tenant_id`` if its bucket holds a permit."""
        allowed = self._bucket(tenant_id).try_acquire()
        if not allowed:
            self.logger.warning("Rate limit exceeded", tenant_id=tenant_id, limit=self.permits_per_second)
        return allowed

    def check(self, tenant_id: str) -> RateLimitDecision:
        """Like :meth:`try_acquire` but also reports the remaining permits."""
        bucket = self._bucket(tenant_id)
        allowed = bucket.try_acquire()
        if not allowed:
            self.logger.warning("Rate limit exceeded", tenant_id=tenant_id, limit=self.permits_per_second)
        return RateLimitDecision(
            allowed=allowed,
            tenant_id=tenant_id,
            limit=self.permits_per_second,
            remaining=int(bucket.available()),
        )

    def available_permits(self, tenant_id: str) -> Optional[float]:
        """Current permits for a known tenant, ``None`` for an unseen one."""
        bucket = self._buckets.get(tenant_id)
        return bucket.available() if bucket is not None else None

    def tenant_count(self) -> int:
        return len(self._buckets)
