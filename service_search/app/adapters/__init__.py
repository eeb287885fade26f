"""
Adapters package for the Search Gateway.

Wraps the external search engine behind a small async client that owns:

- Base URL, credentials and timeouts
- Retry policy for reads and a circuit breaker for every call
- Mapping of transport and HTTP failures onto ``SearchEngineError``
"""

from .search_engine_client import SearchEngineClient, SearchEngineError

__all__ = [
    "SearchEngineClient",
    "SearchEngineError",
]
