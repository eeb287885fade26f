"""
Authentication middleware for the Search Gateway.

Every request outside the public allow-list goes through three fixed steps:
bearer token present and valid, tenant admitted by its token bucket, tenant
bound to ``request.state``. A request with a bad token is never charged a
rate-limit permit.
"""

from typing import Awaitable, Callable, FrozenSet, Iterable, Optional

from fastapi import Request, Response

from shared.base_service import error_response
from shared.errors import AuthenticationError, RateLimitError
from shared.logging import get_logger, set_tenant_context
from shared.metrics import MetricsCollector

from ..auth.tokens import TokenService
from ..ratelimit.token_bucket import RateLimitDecision, TenantRateLimiter


PUBLIC_PATHS: FrozenSet[str] = frozenset({
    "/api/auth/token",
    "/api/health",
    "/api/metrics",
    "/health",
    "/metrics",
    "/docs",
    "/docs/oauth2-redirect",
    "/redoc",
    "/openapi.json",
})

BEARER_PREFIX = "Bearer "


class AuthMiddleware:
    """Authenticates requests, enforces per-tenant rate limits and binds the tenant."""

    def __init__(self,
                 token_service: TokenService,
                 rate_limiter: TenantRateLimiter,
                 metrics: Optional[MetricsCollector] = None,
                 public_paths: Iterable[str] = PUBLIC_PATHS):
        self.token_service = token_service
        self.rate_limiter = rate_limiter
        self.metrics = metrics
        self.public_paths = frozenset(public_paths)
        self.logger = get_logger("search_gateway.auth_middleware")

    def is_public(self, path: str) -> bool:
        return path in self.public_paths

    def extract_token(self, request: Request) -> str:
        """Return the bearer token or raise ``AuthenticationError``."""
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith(BEARER_PREFIX):
            raise AuthenticationError(
                "Missing or invalid authorization header",
                details={"reason": "missing_credentials"}
            )

        token = auth_header[len(BEARER_PREFIX):].strip()
        if not token:
            raise AuthenticationError(
                "Authorization header contained empty bearer token",
                details={"reason": "missing_credentials"}
            )
        return token

    def authenticate_request(self, request: Request) -> RateLimitDecision:
        """Validate the token, then charge the tenant's bucket.

        Raises ``AuthenticationError`` or ``RateLimitError``; on success the
        tenant is stored on ``request.state.tenant_id``.
        """
        token = self.extract_token(request)

        if not self.token_service.validate(token) or self.token_service.is_expired(token):
            raise AuthenticationError("Invalid or expired token", details={"reason": "invalid_token"})

        tenant_id = self.token_service.tenant_id_of(token)

        decision = self.rate_limiter.check(tenant_id)
        if not decision.allowed:
            raise RateLimitError(
                "Rate limit exceeded",
                details={"tenantId": tenant_id, "limit": decision.limit}
            )

        request.state.tenant_id = tenant_id
        set_tenant_context(tenant_id)
        if self.metrics:
            self.metrics.set_gauge("rate_limited_tenants", self.rate_limiter.tenant_count())
        return decision

    async def __call__(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if self.is_public(request.url.path) or self._is_preflight(request):
            return await call_next(request)

        try:
            decision = self.authenticate_request(request)
        except RateLimitError as exc:
            tenant_id = exc.details.get("tenantId")
            if self.metrics:
                self.metrics.record_rate_limit_rejection(tenant_id)
            response = error_response(exc, tenantId=tenant_id)
            response.headers["Retry-After"] = "1"
            return response
        except AuthenticationError as exc:
            reason = exc.details.get("reason", "invalid_token")
            self.logger.warning("Authentication failed", reason=reason, path=request.url.path)
            if self.metrics:
                self.metrics.record_auth_failure(reason)
            return error_response(exc)
        except Exception as exc:
            self.logger.error("Authentication error", error=str(exc), path=request.url.path)
            if self.metrics:
                self.metrics.record_auth_failure("error")
            return error_response(AuthenticationError("Authentication failed"))

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = f"{decision.limit:g}"
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return response

    @staticmethod
    def _is_preflight(request: Request) -> bool:
        return request.method == "OPTIONS" and "access-control-request-method" in request.headers


def get_tenant_id(request: Request) -> str:
    """FastAPI dependency returning the tenant bound by :class:`AuthMiddleware`."""
    tenant_id = getattr(request.state, "tenant_id", None)
    if not tenant_id:
        raise AuthenticationError("Request is not authenticated")
    return tenant_id
