"""
Authentication primitives for the Search Gateway.
"""

from .tokens import DEFAULT_VALIDITY_SECONDS, TokenService

__all__ = ["DEFAULT_VALIDITY_SECONDS", "TokenService"]
