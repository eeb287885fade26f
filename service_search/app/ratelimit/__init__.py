"""
Rate limiting package for the Search Gateway.

Holds the per-tenant token bucket that admits at most the configured
number of requests per second for each tenant.
"""

from .token_bucket import DEFAULT_PERMITS_PER_SECOND, RateLimitDecision, TenantRateLimiter, TokenBucket

__all__ = ["DEFAULT_PERMITS_PER_SECOND", "RateLimitDecision", "TenantRateLimiter", "TokenBucket"]
