"""
Tests for Search Gateway domain models.
"""

import pytest
from pydantic import ValidationError

from service_search.app.domain.models import (
    SNIPPET_LENGTH,
    BatchIndexRequest,
    IndexDocumentRequest,
    SearchDocument,
    SearchRequest,
    SearchResult,
    TenantStats,
    TokenRequest,
    tenant_index_name,
)


@pytest.mark.parametrize("tenant_id, expected", [
    ("acme", "search-docs-acme"),
    ("ACME", "search-docs-acme"),
    ("Acme Corp", "search-docs-acme-corp"),
    ("tenant_42", "search-docs-tenant-42"),
    ("a.b/c", "search-docs-a-b-c"),
    ("already-fine-1", "search-docs-already-fine-1"),
])
def test_tenant_index_name(tenant_id, expected):
    assert tenant_index_name(tenant_id) == expected


def test_tenant_index_name_is_deterministic():
    assert tenant_index_name("Mixed_Case") == tenant_index_name("Mixed_Case")


def test_tenant_index_name_custom_prefix():
    assert tenant_index_name("acme", prefix="docs-") == "docs-acme"


def test_search_document_source_round_trip():
    document = SearchDocument(tenant_id="acme", content="hello", metadata={"lang": "en"})

    source = document.to_source()
    restored = SearchDocument.from_source(source)

    assert source["doc_id"] == document.doc_id
    assert isinstance(source["timestamp"], str)
    assert restored == document


def test_search_document_api_shape():
    document = SearchDocument(doc_id="d1", tenant_id="acme", content="hello")

    payload = document.to_api()

    assert payload["docId"] == "d1"
    assert payload["tenantId"] == "acme"
    assert "doc_id" not in payload


def test_search_document_generates_distinct_ids():
    first = SearchDocument(tenant_id="acme", content="a")
    second = SearchDocument(tenant_id="acme", content="a")

    assert first.doc_id != second.doc_id


def test_snippet_keeps_short_content():
    document = SearchDocument(tenant_id="acme", content="short text")

    assert SearchResult.from_document(document, 1.0).snippet == "short text"


def test_snippet_boundary():
    exact = SearchDocument(tenant_id="acme", content="x" * SNIPPET_LENGTH)
    longer = SearchDocument(tenant_id="acme", content="x" * (SNIPPET_LENGTH + 1))

    assert SearchResult.from_document(exact, 1.0).snippet == "x" * SNIPPET_LENGTH
    assert SearchResult.from_document(longer, 1.0).snippet == "x" * SNIPPET_LENGTH + "..."


def test_tenant_stats_api_for_missing_index():
    payload = TenantStats(index_name="search-docs-acme", index_exists=False).to_api()

    assert payload == {"indexName": "search-docs-acme", "indexExists": False, "totalDocuments": 0}


def test_tenant_stats_api_on_backend_failure():
    payload = TenantStats(index_name="search-docs-acme", index_exists=None, error="Failed to read tenant stats").to_api()

    assert payload == {"indexName": "search-docs-acme", "error": "Failed to read tenant stats"}


class TestRequestModels:
    """Validation of request bodies."""

    def test_token_request_requires_tenant(self):
        with pytest.raises(ValidationError):
            TokenRequest.model_validate({"tenantId": ""})

        assert TokenRequest.model_validate({"tenantId": "acme"}).tenant_id == "acme"

    def test_index_request_requires_content(self):
        with pytest.raises(ValidationError):
            IndexDocumentRequest.model_validate({"content": ""})

    def test_index_request_rejects_blank_doc_id(self):
        with pytest.raises(ValidationError):
            IndexDocumentRequest.model_validate({"content": "x", "docId": "  "})

    @pytest.mark.parametrize("doc_id", [".", ".."])
    def test_dot_segment_doc_ids_rejected(self, doc_id):
        with pytest.raises(ValidationError):
            IndexDocumentRequest.model_validate({"content": "x", "docId": doc_id})
        with pytest.raises(ValidationError):
            BatchIndexRequest.model_validate({"documents": [{"content": "x", "docId": doc_id}]})

    def test_path_characters_allowed_in_doc_id(self):
        request = IndexDocumentRequest.model_validate({"content": "x", "docId": "reports/2024?draft#1"})

        assert request.to_document("acme").doc_id == "reports/2024?draft#1"

    def test_index_request_to_document(self):
        request = IndexDocumentRequest.model_validate({"content": "x", "docId": "d1", "metadata": {"k": "v"}})

        document = request.to_document("acme")

        assert document.doc_id == "d1"
        assert document.tenant_id == "acme"
        assert document.metadata == {"k": "v"}

    def test_batch_drops_items_without_content(self):
        request = BatchIndexRequest.model_validate({"documents": [
            {"content": "keep", "docId": "a"},
            {"docId": "b"},
            {"content": "", "docId": "c"},
            {"content": "also keep"},
        ]})

        documents = request.to_documents("acme")

        assert [doc.content for doc in documents] == ["keep", "also keep"]
        assert documents[0].doc_id == "a"
        assert all(doc.tenant_id == "acme" for doc in documents)

    def test_batch_requires_documents(self):
        with pytest.raises(ValidationError):
            BatchIndexRequest.model_validate({"documents": []})

    @pytest.mark.parametrize("top_k", [0, 101, -5])
    def test_search_request_top_k_bounds(self, top_k):
        with pytest.raises(ValidationError):
            SearchRequest.model_validate({"query": "x", "topK": top_k})

    def test_search_request_defaults(self):
        request = SearchRequest.model_validate({"query": "hello"})

        assert request.top_k == 10
