"""
Async client for the search engine's Elasticsearch-compatible REST API.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

import httpx

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, call_with_retry


class SearchEngineError(RuntimeError):
    """Raised when the search engine rejects a request or cannot be reached."""

    def __init__(self, message: str, *, status_code: Optional[int] = None,
                 error_type: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_type = error_type


class _TransientEngineError(SearchEngineError):
    """Transport failure or 5xx answer; counts against the circuit breaker."""


_READ_METHODS = frozenset({"GET", "HEAD"})

# Path segments the HTTP layer would collapse instead of sending.
_DOT_SEGMENTS = frozenset({".", ".."})


class SearchEngineClient:
    """Thin async wrapper over the engine endpoints the gateway uses.

    Every call goes through a circuit breaker. Reads (``GET``/``HEAD`` and
    searches) are retried on transient failures; writes are sent once.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        username: Optional[str] = None,
        password: Optional[str] = None,
        max_attempts: int = 3,
        retry_base_delay: float = 0.2,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.logger = get_logger("search_gateway.search_engine")
        auth = (username, password or "") if username else None
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            auth=auth,
            transport=transport,
        )
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            expected_exception=_TransientEngineError,
            name="search_engine",
        )
        self.retry_config = RetryConfig(
            max_attempts=max_attempts,
            base_delay=retry_base_delay,
            max_delay=2.0,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    # Index management

    async def index_exists(self, index: str) -> bool:
        response = await self._request("HEAD", f"/{index}", allowed_statuses=(404,))
        return response.status_code == 200

    async def create_index(self, index: str, body: Dict[str, Any]) -> bool:
        """Create ``index``; returns False when it already exists."""
        try:
            await self._request("PUT", f"/{index}", json=body)
        except SearchEngineError as exc:
            if exc.error_type == "resource_already_exists_exception":
                return False
            raise
        return True

    async def get_index(self, index: str) -> Dict[str, Any]:
        response = await self._request("GET", f"/{index}")
        return response.json()

    async def count(self, index: str) -> int:
        response = await self._request("GET", f"/{index}/_count")
        return int(response.json().get("count", 0))

    # Documents

    async def index_document(self, index: str, doc_id: str, document: Dict[str, Any],
                             *, refresh: Optional[str] = "wait_for") -> str:
        params = {"refresh": refresh} if refresh else None
        response = await self._request("PUT", _document_path(index, doc_id), json=document, params=params)
        return response.json().get("_id", doc_id)

    async def get_document(self, index: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored ``_source`` or ``None`` when the document or index is missing."""
        response = await self._request("GET", _document_path(index, doc_id), allowed_statuses=(404,))
        if response.status_code == 404:
            return None
        payload = response.json()
        if not payload.get("found"):
            return None
        return payload.get("_source")

    async def delete_document(self, index: str, doc_id: str,
                              *, refresh: Optional[str] = "wait_for") -> str:
        """Delete a document; returns the engine's ``result`` (``deleted`` or ``not_found``)."""
        params = {"refresh": refresh} if refresh else None
        response = await self._request("DELETE", _document_path(index, doc_id), params=params,
                                       allowed_statuses=(404,))
        return response.json().get("result", "not_found")

    async def bulk(self, actions: Iterable[Tuple[Dict[str, Any], Dict[str, Any]]],
                   *, refresh: Optional[str] = "wait_for") -> Dict[str, Any]:
        """Send ``(action, source)`` pairs as one NDJSON ``_bulk`` request."""
        lines: List[str] = []
        for action, source in actions:
            lines.append(json.dumps(action))
            lines.append(json.dumps(source))
        payload = "\n".join(lines) + "\n"
        params = {"refresh": refresh} if refresh else None
        response = await self._request(
            "POST",
            "/_bulk",
            content=payload.encode("utf-8"),
            params=params,
            headers={"Content-Type": "application/x-ndjson"},
        )
        return response.json()

    async def search(self, index: str, body: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request("POST", f"/{index}/_search", json=body, idempotent=True)
        return response.json()

    # Cluster

    async def cluster_health(self) -> Dict[str, Any]:
        response = await self._request("GET", "/_cluster/health")
        return response.json()

    async def ping(self) -> bool:
        """Return True when the engine answers its root endpoint."""
        try:
            await self._request("GET", "/")
            return True
        except SearchEngineError:
            return False

    # Transport

    async def _request(self, method: str, path: str, *,
                       allowed_statuses: Tuple[int, ...] = (),
                       idempotent: Optional[bool] = None,
                       **kwargs: Any) -> httpx.Response:
        if idempotent is None:
            idempotent = method in _READ_METHODS

        async def _send() -> httpx.Response:
            return await self.circuit_breaker.call(self._send, method, path, allowed_statuses, **kwargs)

        try:
            if idempotent:
                return await call_with_retry(
                    _send,
                    exceptions=(_TransientEngineError,),
                    config=self.retry_config,
                )
            return await _send()
        except RetryError as exc:
            last = exc.last_exception
            raise SearchEngineError(
                str(last),
                status_code=getattr(last, "status_code", None),
                error_type=getattr(last, "error_type", None),
            ) from last
        except CircuitBreakerOpenException as exc:
            self.logger.warning("Search engine circuit open", method=method, path=path)
            raise SearchEngineError(str(exc), error_type="circuit_open") from exc

    async def _send(self, method: str, path: str, allowed_statuses: Tuple[int, ...],
                    **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            self.logger.error("Search engine request timed out", method=method, path=path)
            raise _TransientEngineError(f"Search engine timed out: {method} {path}",
                                        error_type="timeout") from exc
        except httpx.HTTPError as exc:
            self.logger.error("Search engine request failed", method=method, path=path, error=str(exc))
            raise _TransientEngineError(f"Search engine unreachable: {exc}",
                                        error_type="transport") from exc

        if response.is_success or response.status_code in allowed_statuses:
            return response

        error_type, reason = _parse_error(response)
        self.logger.error(
            "Search engine returned an error",
            method=method,
            path=path,
            status_code=response.status_code,
            error_type=error_type,
            reason=reason,
        )
        error_cls = _TransientEngineError if response.status_code >= 500 else SearchEngineError
        raise error_cls(
            f"{method} {path} failed with {response.status_code}: {reason}",
            status_code=response.status_code,
            error_type=error_type,
        )


def _parse_error(response: httpx.Response) -> Tuple[Optional[str], str]:
    """Extract ``(type, reason)`` from an Elasticsearch error body."""
    if not response.content:
        return None, response.reason_phrase
    try:
        payload = response.json()
    except ValueError:
        return None, response.text[:200]
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return error.get("type"), str(error.get("reason", ""))
    if isinstance(error, str):
        return None, error
    return None, response.reason_phrase


def _document_path(index: str, doc_id: str) -> str:
    """Build ``/<index>/_doc/<id>`` with the id escaped into a single path segment."""
    if doc_id in _DOT_SEGMENTS:
        raise SearchEngineError(
            f"Document id {doc_id!r} cannot be addressed",
            status_code=400,
            error_type="invalid_document_id",
        )
    return f"/{index}/_doc/{quote(doc_id, safe='')}"
