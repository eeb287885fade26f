"""
Domain layer for the Search Gateway: tenant-scoped models, the
authentication middleware and the search orchestrator.
"""

from .auth_middleware import PUBLIC_PATHS, AuthMiddleware, get_tenant_id
from .models import (
    BatchIndexRequest,
    BulkIndexResult,
    IndexDocumentRequest,
    QueryStats,
    SearchDocument,
    SearchRequest,
    SearchResponse,
    SearchResult,
    ServiceMetrics,
    TenantStats,
    TokenRequest,
    tenant_index_name,
)
from .orchestrator import OrchestratorCounters, SearchOrchestrator

__all__ = [
    "PUBLIC_PATHS",
    "AuthMiddleware",
    "get_tenant_id",
    "BatchIndexRequest",
    "BulkIndexResult",
    "IndexDocumentRequest",
    "QueryStats",
    "SearchDocument",
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
    "ServiceMetrics",
    "TenantStats",
    "TokenRequest",
    "tenant_index_name",
    "OrchestratorCounters",
    "SearchOrchestrator",
]
