"""
Shared utilities for the Search Gateway.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- tracing: OpenTelemetry tracing config
- errors: Canonical error types and responses
- retry: Retry helpers with backoff
- circuit_breaker: Resilient external call protection

Do not import from service packages into shared/.
"""
