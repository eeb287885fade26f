"""
Search orchestration for tenant-scoped document operations.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError

from shared.errors import BackendError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.tracing import start_span

from ..adapters.search_engine_client import SearchEngineClient, SearchEngineError
from .models import (
    DEFAULT_INDEX_PREFIX,
    BulkIndexResult,
    QueryStats,
    SearchDocument,
    SearchResponse,
    SearchResult,
    ServiceMetrics,
    TenantStats,
    tenant_index_name,
)


class OrchestratorCounters:
    """Process-wide cumulative counters shared by all requests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total_queries = 0
        self._total_documents = 0
        self._total_query_time_ms = 0.0

    def record_query(self, query_time_ms: float) -> None:
        with self._lock:
            self._total_queries += 1
            self._total_query_time_ms += query_time_ms

    def record_documents(self, count: int) -> None:
        if count <= 0:
            return
        with self._lock:
            self._total_documents += count

    def snapshot(self) -> Tuple[int, int, float]:
        """Return ``(total_queries, total_documents, avg_query_time_ms)``."""
        with self._lock:
            queries = self._total_queries
            documents = self._total_documents
            total_time = self._total_query_time_ms
        average = total_time / queries if queries > 0 else 0.0
        return queries, documents, average


class SearchOrchestrator:
    """Maps tenant-scoped operations onto the search engine.

    Callers are already authenticated; the orchestrator only sees tenant
    identities. Engine failures never leave this class as
    ``SearchEngineError``: they become ``BackendError``, booleans, empty
    results or a ``BulkIndexResult``.
    """

    def __init__(
        self,
        engine: SearchEngineClient,
        *,
        counters: Optional[OrchestratorCounters] = None,
        metrics: Optional[MetricsCollector] = None,
        index_prefix: str = DEFAULT_INDEX_PREFIX,
        shards: int = 5,
        replicas: int = 2,
        refresh_interval: str = "1s",
    ) -> None:
        self.engine = engine
        self.counters = counters or OrchestratorCounters()
        self.metrics = metrics
        self.index_prefix = index_prefix
        self.shards = shards
        self.replicas = replicas
        self.refresh_interval = refresh_interval
        self.logger = get_logger("search_gateway.orchestrator")

    def resource_name(self, tenant_id: str) -> str:
        return tenant_index_name(tenant_id, self.index_prefix)

    def index_definition(self) -> Dict[str, Any]:
        """Settings and mappings used when provisioning a tenant index."""
        return {
            "settings": {
                "number_of_shards": self.shards,
                "number_of_replicas": self.replicas,
                "refresh_interval": self.refresh_interval,
            },
            "mappings": {
                "properties": {
                    "content": {"type": "text", "analyzer": "standard"},
                    "doc_id": {"type": "keyword"},
                    "tenant_id": {"type": "keyword"},
                    "timestamp": {"type": "date"},
                    "metadata": {"type": "object", "enabled": True},
                }
            },
        }

    async def ensure_resource(self, tenant_id: str) -> bool:
        """Create the tenant index if missing. Returns True when this call created it."""
        index = self.resource_name(tenant_id)
        try:
            if await self.engine.index_exists(index):
                return False
            self.logger.info("Creating index for tenant", tenant_id=tenant_id, index=index)
            created = await self.engine.create_index(index, self.index_definition())
        except SearchEngineError as exc:
            raise self._backend_error("ensure_resource", exc, tenant_id=tenant_id, index=index) from exc

        if created:
            self.logger.info("Index created", tenant_id=tenant_id, index=index)
        else:
            self.logger.debug("Index already provisioned concurrently", tenant_id=tenant_id, index=index)
        return created

    async def index_document(self, document: SearchDocument) -> str:
        """Write one document and wait until it is searchable."""
        tenant_id = document.tenant_id
        index = self.resource_name(tenant_id)

        await self.ensure_resource(tenant_id)
        try:
            with start_span("search_engine.index", tenant_id=tenant_id, index=index):
                doc_id = await self.engine.index_document(index, document.doc_id, document.to_source())
        except SearchEngineError as exc:
            raise self._backend_error("index_document", exc, tenant_id=tenant_id,
                                      index=index, doc_id=document.doc_id) from exc

        self.counters.record_documents(1)
        if self.metrics:
            self.metrics.record_documents_indexed(1, mode="single")
        self.logger.debug("Indexed document", doc_id=doc_id, index=index)
        return doc_id

    async def index_batch(self, documents: Sequence[SearchDocument]) -> BulkIndexResult:
        """Write many documents in one bulk round trip. Never raises for backend failures."""
        if not documents:
            return BulkIndexResult(success_count=0, failure_count=0, time_ms=0.0)

        start = time.perf_counter()
        total = len(documents)
        success = 0

        by_tenant: Dict[str, List[SearchDocument]] = {}
        for document in documents:
            by_tenant.setdefault(document.tenant_id, []).append(document)

        try:
            for tenant_id in by_tenant:
                await self.ensure_resource(tenant_id)

            actions = [
                (
                    {"index": {"_index": self.resource_name(doc.tenant_id), "_id": doc.doc_id}},
                    doc.to_source(),
                )
                for doc in documents
            ]
            with start_span("search_engine.bulk", documents=total, tenants=len(by_tenant)):
                response = await self.engine.bulk(actions)
            success = sum(1 for item in response.get("items", []) if not _bulk_item_failed(item))
        except BackendError as exc:
            elapsed = _elapsed_ms(start)
            self.logger.error("Bulk indexing aborted while provisioning", error=str(exc.__cause__ or exc),
                              documents=total, tenants=list(by_tenant))
            return BulkIndexResult(success_count=success, failure_count=total - success, time_ms=elapsed)
        except SearchEngineError as exc:
            elapsed = _elapsed_ms(start)
            self._record_backend_error("index_batch")
            self.logger.error("Bulk indexing failed", error=str(exc), documents=total,
                              tenants=list(by_tenant))
            return BulkIndexResult(success_count=success, failure_count=total - success, time_ms=elapsed)

        success = min(success, total)
        self.counters.record_documents(success)
        if self.metrics:
            self.metrics.record_documents_indexed(success, mode="bulk")

        elapsed = _elapsed_ms(start)
        self.logger.info(
            "Bulk indexed documents",
            documents=total,
            success=success,
            failures=total - success,
            time_ms=round(elapsed, 2),
        )
        return BulkIndexResult(success_count=success, failure_count=total - success, time_ms=elapsed)

    async def search(self, tenant_id: str, query_text: str, top_k: int) -> SearchResponse:
        """Full-text search within one tenant's index.

        A tenant without an index gets an empty response rather than an error.
        """
        start = time.perf_counter()
        index = self.resource_name(tenant_id)

        try:
            with start_span("search_engine.search", tenant_id=tenant_id, index=index, top_k=top_k):
                if not await self.engine.index_exists(index):
                    self.logger.info("Index does not exist for tenant", tenant_id=tenant_id, index=index)
                    return SearchResponse(results=[], stats=QueryStats())

                response = await self.engine.search(index, {
                    "query": {"match": {"content": query_text}},
                    "size": top_k,
                })
        except SearchEngineError as exc:
            raise self._backend_error("search", exc, tenant_id=tenant_id, index=index) from exc

        results: List[SearchResult] = []
        for hit in response.get("hits", {}).get("hits", []):
            source = hit.get("_source")
            if source is None:
                continue
            try:
                document = SearchDocument.from_source(source)
            except PydanticValidationError as exc:
                self.logger.warning("Skipping unreadable hit", index=index, hit_id=hit.get("_id"), error=str(exc))
                continue
            score = hit.get("_score")
            results.append(SearchResult.from_document(document, float(score) if score is not None else 0.0))

        query_time_ms = _elapsed_ms(start)
        shards_queried = int(response.get("_shards", {}).get("successful", 0))
        self.counters.record_query(query_time_ms)
        if self.metrics:
            self.metrics.record_search(query_time_ms / 1000.0)

        self.logger.debug(
            "Search completed",
            tenant_id=tenant_id,
            time_ms=round(query_time_ms, 2),
            results=len(results),
        )
        return SearchResponse(
            results=results,
            stats=QueryStats(
                query_time_ms=query_time_ms,
                docs_scanned=len(results),
                shards_queried=shards_queried,
                results_count=len(results),
            ),
        )

    async def get_document(self, tenant_id: str, doc_id: str) -> Optional[SearchDocument]:
        """Point lookup; ``None`` when the document (or the tenant index) does not exist."""
        index = self.resource_name(tenant_id)
        try:
            source = await self.engine.get_document(index, doc_id)
        except SearchEngineError as exc:
            raise self._backend_error("get_document", exc, tenant_id=tenant_id,
                                      index=index, doc_id=doc_id) from exc

        if source is None:
            self.logger.debug("No document found", doc_id=doc_id, index=index)
            return None
        try:
            return SearchDocument.from_source(source)
        except PydanticValidationError as exc:
            self._record_backend_error("get_document")
            self.logger.error("Stored document is unreadable", index=index, doc_id=doc_id, error=str(exc))
            raise BackendError("get_document", "Failed to retrieve document") from exc

    async def delete_document(self, tenant_id: str, doc_id: str) -> bool:
        """Delete and wait for visibility. Absent documents count as deleted."""
        index = self.resource_name(tenant_id)
        try:
            result = await self.engine.delete_document(index, doc_id)
        except SearchEngineError as exc:
            self._record_backend_error("delete_document")
            self.logger.error("Error deleting document", tenant_id=tenant_id, index=index,
                              doc_id=doc_id, error=str(exc))
            return False

        self.logger.debug("Deleted document", doc_id=doc_id, index=index, result=result)
        return True

    async def tenant_stats(self, tenant_id: str) -> TenantStats:
        index = self.resource_name(tenant_id)
        try:
            if not await self.engine.index_exists(index):
                return TenantStats(index_name=index, index_exists=False)

            total = await self.engine.count(index)
            description = await self.engine.get_index(index)
        except SearchEngineError as exc:
            self._record_backend_error("tenant_stats")
            self.logger.error("Error getting tenant stats", tenant_id=tenant_id, index=index, error=str(exc))
            return TenantStats(index_name=index, index_exists=None, error="Failed to read tenant stats")

        settings = description.get(index, {}).get("settings", {}).get("index", {})
        return TenantStats(
            index_name=index,
            index_exists=True,
            total_documents=total,
            shards=_optional_str(settings.get("number_of_shards")),
            replicas=_optional_str(settings.get("number_of_replicas")),
        )

    async def global_metrics(self) -> ServiceMetrics:
        """Cumulative counters, plus cluster health when the engine answers."""
        total_queries, total_documents, average = self.counters.snapshot()
        try:
            health = await self.engine.cluster_health()
        except SearchEngineError as exc:
            self.logger.warning("Error getting cluster health", error=str(exc))
            return ServiceMetrics(
                total_queries=total_queries,
                total_documents=total_documents,
                avg_query_time_ms=average,
            )

        return ServiceMetrics(
            total_queries=total_queries,
            total_documents=total_documents,
            avg_query_time_ms=average,
            cluster_health=health.get("status"),
            number_of_nodes=health.get("number_of_nodes"),
            number_of_data_nodes=health.get("number_of_data_nodes"),
        )

    def _backend_error(self, operation: str, exc: SearchEngineError, **context: Any) -> BackendError:
        self._record_backend_error(operation)
        self.logger.error(
            "Search backend failure",
            operation=operation,
            error=str(exc),
            status_code=exc.status_code,
            error_type=exc.error_type,
            **context,
        )
        message = {
            "ensure_resource": "Failed to provision tenant index",
            "index_document": "Failed to index document",
            "search": "Search failed",
            "get_document": "Failed to retrieve document",
        }.get(operation, "Search backend error")
        return BackendError(operation, message)

    def _record_backend_error(self, operation: str) -> None:
        if self.metrics:
            self.metrics.record_backend_error(operation)


def _bulk_item_failed(item: Dict[str, Any]) -> bool:
    for outcome in item.values():
        if isinstance(outcome, dict) and outcome.get("error"):
            return True
    return False


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)
