"""
Tenant identity tokens for the Search Gateway.

Tokens are HS256-signed JWTs carrying the tenant identity in ``sub`` (and
``tenant_id``) plus an absolute ``exp``. They are stateless: there is no
revocation list and no refresh, a new token is obtained by issuing again.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict

from jose import JWTError, jwt

from shared.errors import ValidationError
from shared.logging import get_logger


DEFAULT_VALIDITY_SECONDS = 24 * 60 * 60


class TokenService:
    """Issues and validates signed, time-limited tenant tokens."""

    def __init__(
        self,
        secret_key: str,
        *,
        validity_seconds: int = DEFAULT_VALIDITY_SECONDS,
        algorithm: str = "HS256",
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self._secret_key = secret_key
        self.validity_seconds = validity_seconds
        self.algorithm = algorithm
        self._clock = clock
        self.logger = get_logger("search_gateway.tokens")

    def issue(self, tenant_id: str) -> str:
        """Return a token bound to ``tenant_id``, valid for ``validity_seconds``."""
        if not tenant_id:
            raise ValidationError("tenantId is required")

        issued_at = int(self._clock())
        claims = {
            "sub": tenant_id,
            "tenant_id": tenant_id,
            "iat": issued_at,
            "exp": issued_at + self.validity_seconds,
        }
        token = jwt.encode(claims, self._secret_key, algorithm=self.algorithm)
        self.logger.info("Issued tenant token", tenant_id=tenant_id, expires_at=claims["exp"])
        return token

    def validate(self, token: str) -> bool:
        """True iff the signature is intact and the token has not expired. Never raises."""
        # Expiry is compared against self._clock, not jose's wall clock.
        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                options={"verify_aud": False, "verify_exp": False},
            )
        except JWTError as exc:
            self.logger.debug("Token rejected", error=str(exc))
            return False
        except Exception as exc:
            self.logger.debug("Malformed token", error=str(exc))
            return False

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            return False
        return not self._expired(claims)

    def is_expired(self, token: str) -> bool:
        """Compare the embedded expiry with the current time; unreadable tokens count as expired."""
        try:
            claims = self._unverified_claims(token)
        except JWTError:
            return True
        return self._expired(claims)

    def tenant_id_of(self, token: str) -> str:
        """Return the tenant bound to a token. Only call after :meth:`validate`."""
        claims = self._unverified_claims(token)
        return claims["sub"]

    def _expired(self, claims: Dict[str, Any]) -> bool:
        expires_at = claims.get("exp")
        if not isinstance(expires_at, (int, float)):
            return True
        return self._clock() >= expires_at

    @staticmethod
    def _unverified_claims(token: str) -> Dict[str, Any]:
        return jwt.get_unverified_claims(token)
