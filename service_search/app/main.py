"""
Search Gateway service.
"""

from typing import Optional

import httpx
from fastapi import Depends, Query, Request

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import BackendError, NotFoundError

from .adapters.search_engine_client import SearchEngineClient
from .auth.tokens import TokenService
from .domain.auth_middleware import AuthMiddleware, get_tenant_id
from .domain.models import (
    DEFAULT_TOP_K,
    MAX_TOP_K,
    BatchIndexRequest,
    IndexDocumentRequest,
    SearchRequest,
    SearchResponse,
    TokenRequest,
)
from .domain.orchestrator import OrchestratorCounters, SearchOrchestrator
from .ratelimit.token_bucket import TenantRateLimiter


SERVICE_NAME = "search_gateway"
DEFAULT_PORT = 8080
BACKEND_NAME = "elasticsearch"


class SearchGatewayService(BaseService):
    """Search Gateway service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(SERVICE_NAME, DEFAULT_PORT, config)

        self.token_service = TokenService(
            self.config.jwt_secret,
            validity_seconds=self.config.token_validity_seconds,
            algorithm=self.config.jwt_algorithm,
        )
        self.rate_limiter = TenantRateLimiter(self.config.rate_limit_permits_per_second)
        self.engine = SearchEngineClient(
            self.config.search_engine_url,
            timeout=self.config.search_engine_timeout,
            username=self.config.search_engine_username,
            password=self.config.search_engine_password,
            max_attempts=self.config.search_engine_max_attempts,
            transport=transport,
        )
        self.counters = OrchestratorCounters()
        self.orchestrator = SearchOrchestrator(
            self.engine,
            counters=self.counters,
            metrics=self.metrics,
            index_prefix=self.config.index_prefix,
            shards=self.config.index_shards,
            replicas=self.config.index_replicas,
            refresh_interval=self.config.index_refresh_interval,
        )
        self.auth_middleware = AuthMiddleware(self.token_service, self.rate_limiter, metrics=self.metrics)
        self.app.state.gateway_service = self

        @self.app.on_event("startup")
        async def _startup():
            if self.config.uses_default_secret and self.config.env != "local":
                self.logger.warning(
                    "Using the default token signing secret outside local environment",
                    env=self.config.env,
                )
            self.logger.info(
                "Search gateway started",
                search_engine_url=self.config.search_engine_url,
                rate_limit=self.config.rate_limit_permits_per_second,
            )

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.engine.close()

        self._setup_search_routes()

    def _setup_middleware(self):
        """Register authentication inside the common CORS and timing middleware."""

        # Resolved per request: the middleware is built after the app exists.
        @self.app.middleware("http")
        async def authenticate(request: Request, call_next):
            return await self.auth_middleware(request, call_next)

        super()._setup_middleware()

    def _setup_search_routes(self):
        """Set up search gateway routes."""

        @self.app.get("/api/health")
        async def api_health():
            """Service and backend status."""
            metrics = await self.orchestrator.global_metrics()
            return {
                "status": "healthy",
                "backend": BACKEND_NAME,
                "metrics": metrics.to_api(),
            }

        @self.app.post("/api/auth/token")
        async def issue_token(request: TokenRequest):
            """Issue a tenant token."""
            token = self.token_service.issue(request.tenant_id)
            return {
                "token": token,
                "tenantId": request.tenant_id,
                "expiresIn": self.token_service.validity_seconds,
            }

        @self.app.post("/documents", status_code=201)
        async def index_document(request: IndexDocumentRequest, tenant_id: str = Depends(get_tenant_id)):
            """Index a single document."""
            document = request.to_document(tenant_id)
            doc_id = await self.orchestrator.index_document(document)
            return {
                "success": True,
                "docId": doc_id,
                "tenantId": tenant_id,
                "indexName": self.orchestrator.resource_name(tenant_id),
            }

        @self.app.post("/documents/batch", status_code=201)
        async def index_documents_batch(request: BatchIndexRequest, tenant_id: str = Depends(get_tenant_id)):
            """Index multiple documents in one bulk request."""
            documents = request.to_documents(tenant_id)
            dropped = len(request.documents) - len(documents)
            if dropped:
                self.logger.info("Dropped batch items without content", tenant_id=tenant_id, dropped=dropped)

            result = await self.orchestrator.index_batch(documents)
            return {
                "success": True,
                "indexed": result.success_count,
                "failed": result.failure_count,
                "total": len(request.documents),
                "dropped": dropped,
                "indexingTimeMs": result.time_ms,
            }

        @self.app.post("/search")
        async def search(request: SearchRequest, tenant_id: str = Depends(get_tenant_id)):
            """Search the caller's documents."""
            response = await self.orchestrator.search(tenant_id, request.query, request.top_k)
            return self._search_payload(tenant_id, response)

        @self.app.get("/search")
        async def search_get(
            q: str = Query(..., min_length=1),
            top_k: int = Query(DEFAULT_TOP_K, alias="topK", ge=1, le=MAX_TOP_K),
            tenant_id: str = Depends(get_tenant_id),
        ):
            """Search the caller's documents with query parameters."""
            response = await self.orchestrator.search(tenant_id, q, top_k)
            return self._search_payload(tenant_id, response)

        @self.app.get("/documents/{doc_id}")
        async def get_document(doc_id: str, tenant_id: str = Depends(get_tenant_id)):
            """Retrieve one document by id."""
            document = await self.orchestrator.get_document(tenant_id, doc_id)
            if document is None:
                raise NotFoundError("No document found", details={"docId": doc_id})
            return {"success": True, "result": document.to_api()}

        @self.app.delete("/documents/{doc_id}")
        async def delete_document(doc_id: str, tenant_id: str = Depends(get_tenant_id)):
            """Delete one document by id."""
            if not await self.orchestrator.delete_document(tenant_id, doc_id):
                raise BackendError("delete_document", "Failed to delete document", details={"docId": doc_id})
            return {"success": True, "docId": doc_id}

        @self.app.get("/api/stats")
        async def tenant_stats(tenant_id: str = Depends(get_tenant_id)):
            """Statistics for the caller's index."""
            stats = await self.orchestrator.tenant_stats(tenant_id)
            return {"tenantId": tenant_id, "stats": stats.to_api()}

        @self.app.get("/api/metrics")
        async def service_metrics():
            """Cumulative gateway counters."""
            metrics = await self.orchestrator.global_metrics()
            return {"backend": BACKEND_NAME, "metrics": metrics.to_api()}

    @staticmethod
    def _search_payload(tenant_id: str, response: SearchResponse):
        return {
            "results": [result.to_api() for result in response.results],
            "stats": response.stats.to_api(),
            "tenantId": tenant_id,
            "backend": BACKEND_NAME,
        }

    async def _check_dependencies(self):
        """Check search gateway dependencies."""
        return {"search_engine": "ok" if await self.engine.ping() else "error"}


def create_app(config: Optional[ServiceConfig] = None,
               transport: Optional[httpx.AsyncBaseTransport] = None):
    """Create FastAPI application."""
    service = SearchGatewayService(config, transport)
    return service.app


def main():
    """Run the search gateway with configuration from the environment."""
    SearchGatewayService().run()


if __name__ == "__main__":
    main()
