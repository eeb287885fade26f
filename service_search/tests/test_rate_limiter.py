"""
Unit tests for the per-tenant token bucket rate limiter.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from service_search.app.ratelimit.token_bucket import TenantRateLimiter, TokenBucket


class TestTokenBucket:
    """Test cases for TokenBucket."""

    def test_starts_full(self, clock):
        bucket = TokenBucket(5, clock=clock)

        assert bucket.available() == 5
        assert all(bucket.try_acquire() for _ in range(5))
        assert bucket.try_acquire() is False

    def test_refills_at_rate(self, clock):
        bucket = TokenBucket(10, clock=clock)
        for _ in range(10):
            bucket.try_acquire()

        clock.advance(0.25)
        assert bucket.available() == pytest.approx(2.5)
        assert bucket.try_acquire() is True
        assert bucket.try_acquire() is True
        assert bucket.try_acquire() is False

    def test_never_exceeds_capacity(self, clock):
        bucket = TokenBucket(3, clock=clock)

        clock.advance(3600)
        assert bucket.available() == 3


class TestTenantRateLimiter:
    """Test cases for TenantRateLimiter."""

    def test_admits_up_to_rate_then_rejects(self, clock):
        limiter = TenantRateLimiter(100, clock=clock)

        admitted = sum(1 for _ in range(101) if limiter.try_acquire("acme"))
        assert admitted == 100

    def test_one_second_restores_full_budget(self, clock):
        limiter = TenantRateLimiter(100, clock=clock)
        for _ in range(100):
            limiter.try_acquire("acme")
        assert limiter.try_acquire("acme") is False

        clock.advance(1.0)
        admitted = sum(1 for _ in range(150) if limiter.try_acquire("acme"))
        assert admitted == 100

    def test_tenants_are_isolated(self, clock):
        limiter = TenantRateLimiter(5, clock=clock)
        for _ in range(5):
            assert limiter.try_acquire("noisy") is True
        assert limiter.try_acquire("noisy") is False

        assert limiter.try_acquire("quiet") is True
        assert limiter.available_permits("quiet") == 4

    def test_check_reports_remaining(self, clock):
        limiter = TenantRateLimiter(3, clock=clock)

        first = limiter.check("acme")
        assert first.allowed is True
        assert first.tenant_id == "acme"
        assert first.limit == 3
        assert first.remaining == 2

        limiter.check("acme")
        limiter.check("acme")
        rejected = limiter.check("acme")
        assert rejected.allowed is False
        assert rejected.remaining == 0

    def test_unseen_tenant_has_no_bucket(self, clock):
        limiter = TenantRateLimiter(10, clock=clock)

        assert limiter.available_permits("ghost") is None
        assert limiter.tenant_count() == 0

        limiter.try_acquire("ghost")
        assert limiter.tenant_count() == 1

    def test_rejects_non_positive_rate(self):
        with pytest.raises(ValueError):
            TenantRateLimiter(0)

    def test_concurrent_acquire_never_over_admits(self, clock):
        limiter = TenantRateLimiter(100, clock=clock)
        start = threading.Barrier(8)

        def worker():
            start.wait()
            return sum(1 for _ in range(50) if limiter.try_acquire("acme"))

        with ThreadPoolExecutor(max_workers=8) as pool:
            admitted = sum(pool.map(lambda _: worker(), range(8)))

        assert admitted == 100

    def test_concurrent_first_use_creates_one_bucket(self, clock):
        limiter = TenantRateLimiter(1000, clock=clock)

        with ThreadPoolExecutor(max_workers=16) as pool:
            list(pool.map(lambda _: limiter.try_acquire("fresh"), range(64)))

        assert limiter.tenant_count() == 1
        assert limiter.available_permits("fresh") == 1000 - 64
