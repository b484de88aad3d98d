# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""FastAPI dependencies for the authorization server and resource guards.

This module provides reusable dependencies that can be injected into
API endpoints for cross-cutting concerns.
"""

from uuid import UUID

from beartype import beartype
from fastapi import Depends, Header, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..core.auth.oauth2.errors import OAuth2Error, OAuth2ErrorCode
from ..core.auth.oauth2.models import TokenPrincipal
from ..core.auth.oauth2.scopes import ScopeValidator
from ..core.auth.oauth2.server import OAuth2Server
from ..core.cache import get_cache
from ..core.config import get_settings
from ..core.database import get_database

# Security scheme
bearer_scheme = HTTPBearer(auto_error=False)

_server: OAuth2Server | None = None


@beartype
def get_oauth2_server() -> OAuth2Server:
    """Get the process-wide OAuth2 server instance."""
    global _server
    if _server is None:
        _server = OAuth2Server(get_database(), get_cache(), get_settings())
    return _server


@beartype
def reset_oauth2_server() -> None:
    """Drop the cached server (for testing)."""
    global _server
    _server = None


@beartype
async def get_session_user_id(
    x_authenticated_user_id: str | None = Header(None),
) -> UUID:
    """User id established by the upstream session layer.

    The gateway authenticates the session cookie and forwards the user id;
    this service never sees credentials.
    """
    if not x_authenticated_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User authentication required",
        )
    try:
        return UUID(x_authenticated_user_id)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authenticated user id",
        ) from e


@beartype
async def get_token_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    oauth2_server: OAuth2Server = Depends(get_oauth2_server),
) -> TokenPrincipal:
    """Authenticate the request's OAuth bearer token."""
    if credentials is None or not credentials.credentials:
        raise OAuth2Error(
            OAuth2ErrorCode.INVALID_TOKEN,
            "Bearer access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await oauth2_server.authenticate_bearer(credentials.credentials)
    if result.is_err():
        error = result.unwrap_err()
        error.headers.setdefault(
            "WWW-Authenticate", f'Bearer error="{error.error.value}"'
        )
        raise error
    return result.unwrap()


class RequireScopes:
    """Dependency requiring the token to carry every listed scope."""

    def __init__(self, *scopes: str) -> None:
        self.scopes = scopes

    async def __call__(
        self, principal: TokenPrincipal = Depends(get_token_principal)
    ) -> TokenPrincipal:
        if not ScopeValidator.has_all_scopes(principal.scopes, self.scopes):
            raise OAuth2Error(
                OAuth2ErrorCode.INSUFFICIENT_SCOPE,
                f"Insufficient permissions. Required scopes: {', '.join(self.scopes)}. "
                f"Your token has: {', '.join(principal.scopes) or '(none)'}",
                headers={
                    "WWW-Authenticate": (
                        f'Bearer error="insufficient_scope", scope="{" ".join(self.scopes)}"'
                    )
                },
            )
        return principal


class OAuthRateLimit:
    """Dependency applying the application's sliding-window limit."""

    def __init__(self, limit: int | None = None) -> None:
        self.limit = limit

    async def __call__(
        self,
        request: Request,
        response: Response,
        principal: TokenPrincipal = Depends(get_token_principal),
        oauth2_server: OAuth2Server = Depends(get_oauth2_server),
    ) -> TokenPrincipal:
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)
        result = await oauth2_server.rate_limiter.check_application(
            principal.application,
            principal.user_id,
            f"{request.method} {path}",
            self.limit,
        )
        headers = result.headers()
        if not result.allowed:
            raise OAuth2Error(
                OAuth2ErrorCode.RATE_LIMIT_EXCEEDED,
                f"Rate limit of {result.limit} requests exceeded. "
                f"Try again after {result.reset_at}.",
                headers=headers,
            )
        response.headers.update(headers)
        return principal


__all__ = [
    "OAuthRateLimit",
    "RequireScopes",
    "get_oauth2_server",
    "get_session_user_id",
    "get_token_principal",
    "reset_oauth2_server",
]
