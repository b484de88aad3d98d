"""HTTP middleware."""

from .oauth2_middleware import RestrictedPathMiddleware

__all__ = ["RestrictedPathMiddleware"]
