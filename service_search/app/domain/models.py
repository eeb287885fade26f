"""
Domain models for the Search Gateway.

Documents travel to the search engine in snake_case (``doc_id``,
``tenant_id``); the public HTTP API speaks camelCase (``docId``,
``tenantId``). Request models accept both spellings.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_INDEX_PREFIX = "search-docs-"
SNIPPET_LENGTH = 200
DEFAULT_TOP_K = 10
MAX_TOP_K = 100

_INDEX_NAME_DISALLOWED = re.compile(r"[^a-z0-9-]")
_DOT_SEGMENT_IDS = frozenset({".", ".."})


def tenant_index_name(tenant_id: str, prefix: str = DEFAULT_INDEX_PREFIX) -> str:
    """Map a tenant identity onto its index name.

    Lowercases the identity and replaces every character outside
    ``[a-z0-9-]`` with ``-``. Distinct tenants that normalize to the same
    name share an index; that is a tenant-naming conflict, not resolved here.
    """
    return prefix + _INDEX_NAME_DISALLOWED.sub("-", tenant_id.lower())


def check_doc_id(value: Optional[str]) -> Optional[str]:
    """Reject ids that are a bare path dot-segment; the engine cannot address them."""
    if value in _DOT_SEGMENT_IDS:
        raise ValueError("docId must not be '.' or '..'")
    return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SearchDocument(BaseModel):
    """A tenant-owned document as stored in the search engine."""

    model_config = ConfigDict(populate_by_name=True)

    doc_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    tenant_id: str
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)

    def to_source(self) -> Dict[str, Any]:
        """Serialize to the engine's ``_source`` shape."""
        return self.model_dump(mode="json")

    @classmethod
    def from_source(cls, source: Dict[str, Any]) -> "SearchDocument":
        return cls.model_validate(source)

    def to_api(self) -> Dict[str, Any]:
        """Serialize for the public HTTP API."""
        return {
            "docId": self.doc_id,
            "tenantId": self.tenant_id,
            "content": self.content,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class SearchResult:
    """One hit of a tenant search."""

    doc_id: str
    tenant_id: str
    score: float
    snippet: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_document(cls, document: SearchDocument, score: float) -> "SearchResult":
        content = document.content
        snippet = content[:SNIPPET_LENGTH] + "..." if len(content) > SNIPPET_LENGTH else content
        return cls(
            doc_id=document.doc_id,
            tenant_id=document.tenant_id,
            score=score,
            snippet=snippet,
            metadata=document.metadata,
        )

    def to_api(self) -> Dict[str, Any]:
        return {
            "docId": self.doc_id,
            "score": self.score,
            "snippet": self.snippet,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class QueryStats:
    """Statistics of a single search round trip."""

    query_time_ms: float = 0.0
    docs_scanned: int = 0
    shards_queried: int = 0
    results_count: int = 0

    def to_api(self) -> Dict[str, Any]:
        return {
            "queryTimeMs": self.query_time_ms,
            "docsScanned": self.docs_scanned,
            "shardsQueried": self.shards_queried,
            "resultsCount": self.results_count,
        }


@dataclass(frozen=True)
class SearchResponse:
    results: List[SearchResult]
    stats: QueryStats


@dataclass(frozen=True)
class BulkIndexResult:
    """Outcome of a batch write; ``success_count + failure_count`` is the batch size."""

    success_count: int
    failure_count: int
    time_ms: float


@dataclass(frozen=True)
class TenantStats:
    """Per-tenant index statistics; ``index_exists`` is None when the engine could not be read."""

    index_name: str
    index_exists: Optional[bool]
    total_documents: int = 0
    shards: Optional[str] = None
    replicas: Optional[str] = None
    error: Optional[str] = None

    def to_api(self) -> Dict[str, Any]:
        if self.error is not None:
            return {"indexName": self.index_name, "error": self.error}

        stats: Dict[str, Any] = {
            "indexName": self.index_name,
            "indexExists": self.index_exists,
            "totalDocuments": self.total_documents,
        }
        if self.index_exists:
            stats["shards"] = self.shards
            stats["replicas"] = self.replicas
        return stats


@dataclass(frozen=True)
class ServiceMetrics:
    """Cumulative counters plus best-effort cluster health."""

    total_queries: int
    total_documents: int
    avg_query_time_ms: float
    cluster_health: Optional[str] = None
    number_of_nodes: Optional[int] = None
    number_of_data_nodes: Optional[int] = None

    def to_api(self) -> Dict[str, Any]:
        metrics: Dict[str, Any] = {
            "totalQueries": self.total_queries,
            "totalDocuments": self.total_documents,
            "avgQueryTimeMs": self.avg_query_time_ms,
        }
        if self.cluster_health is not None:
            metrics["clusterHealth"] = self.cluster_health
            metrics["numberOfNodes"] = self.number_of_nodes
            metrics["numberOfDataNodes"] = self.number_of_data_nodes
        return metrics


# Request models


class TokenRequest(BaseModel):
    """Body of ``POST /api/auth/token``."""

    model_config = ConfigDict(populate_by_name=True)

    tenant_id: str = Field(alias="tenantId", min_length=1)


class IndexDocumentRequest(BaseModel):
    """Body of ``POST /documents``."""

    model_config = ConfigDict(populate_by_name=True)

    content: str = Field(min_length=1)
    doc_id: Optional[str] = Field(default=None, alias="docId")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("doc_id")
    @classmethod
    def _valid_doc_id(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("docId must not be blank")
        return check_doc_id(value)

    def to_document(self, tenant_id: str) -> SearchDocument:
        kwargs: Dict[str, Any] = {"tenant_id": tenant_id, "content": self.content, "metadata": self.metadata}
        if self.doc_id:
            kwargs["doc_id"] = self.doc_id
        return SearchDocument(**kwargs)


class BatchDocumentItem(BaseModel):
    """One entry of a batch; entries without content are dropped, not rejected."""

    model_config = ConfigDict(populate_by_name=True)

    content: Optional[str] = None
    doc_id: Optional[str] = Field(default=None, alias="docId")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("doc_id")
    @classmethod
    def _valid_doc_id(cls, value: Optional[str]) -> Optional[str]:
        return check_doc_id(value)

    @property
    def has_content(self) -> bool:
        return bool(self.content)


class BatchIndexRequest(BaseModel):
    """Body of ``POST /documents/batch``."""

    documents: List[BatchDocumentItem] = Field(min_length=1)

    def to_documents(self, tenant_id: str) -> List[SearchDocument]:
        documents = []
        for item in self.documents:
            if not item.has_content:
                continue
            kwargs: Dict[str, Any] = {"tenant_id": tenant_id, "content": item.content, "metadata": item.metadata}
            if item.doc_id:
                kwargs["doc_id"] = item.doc_id
            documents.append(SearchDocument(**kwargs))
        return documents


class SearchRequest(BaseModel):
    """Body of ``POST /search``."""

    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(min_length=1)
    top_k: int = Field(default=DEFAULT_TOP_K, alias="topK", ge=1, le=MAX_TOP_K)
