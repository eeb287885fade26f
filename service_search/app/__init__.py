"""
Search Gateway service package.

Exposes a multi-tenant HTTP API in front of an Elasticsearch-compatible
search engine:

- app.main: Application entrypoint that wires routes and lifecycle.
- app.auth: Issuing and validating tenant tokens.
- app.ratelimit: Per-tenant token bucket admission.
- app.domain: Authentication middleware, models and the search orchestrator.
- app.adapters: Async client for the search engine's REST API.

Design notes:
- Module import performs no network calls; the engine client connects
  lazily on the first request.
- Use the shared/ utilities for logging, metrics, tracing, and errors.
- Tenant identity comes only from the validated token, never from
  request bodies.
"""
