# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""OAuth2 authorization server implementation."""

from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import UUID

from beartype import beartype

from ...cache import Cache
from ...config import Settings
from ...database import Database
from ...rate_limiter import RateLimitResult, SlidingWindowRateLimiter
from ...result_types import Result
from .audit import AuditLogger, DatabaseAuditLogger
from .authorization import AuthorizationCodeIssuer
from .bearer import BearerAuthenticator
from .codec import TokenCodec
from .errors import OAuth2Error
from .grants import TokenExchangeEngine, TokenRequest
from .introspection import IntrospectionService
from .lookup import CredentialResolver
from .models import AuthorizationGrant, Introspection, TokenPrincipal, TokenResponse
from .repository import (
    ApplicationStore,
    PostgresApplicationStore,
    PostgresTokenStore,
    PostgresUserDirectory,
    TokenStore,
    UserDirectory,
)
from .tokens import TokenIssuer, utcnow

TOKEN_ENDPOINT = "POST /oauth2/token"


class OAuth2Server:
    """OAuth2 authorization server.

    Wires the code issuer, token exchange engine, introspection service and
    bearer authenticator over one set of stores. Stores default to the
    PostgreSQL implementations; tests pass in-memory ones.
    """

    def __init__(
        self,
        db: Database,
        cache: Cache,
        settings: Settings,
        *,
        applications: ApplicationStore | None = None,
        users: UserDirectory | None = None,
        tokens: TokenStore | None = None,
        audit: AuditLogger | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db = db
        self._cache = cache
        self._settings = settings

        self.applications = (
            applications if applications is not None else PostgresApplicationStore(db)
        )
        self.users = users if users is not None else PostgresUserDirectory(db)
        self.tokens = tokens if tokens is not None else PostgresTokenStore(db)
        self.audit = audit if audit is not None else DatabaseAuditLogger(db)

        self.codec = TokenCodec(settings)
        self.issuer = TokenIssuer(settings, self.codec, clock)
        self.rate_limiter = SlidingWindowRateLimiter(cache, settings)
        resolver = CredentialResolver(self.tokens, self.codec, self.audit)

        self._code_issuer = AuthorizationCodeIssuer(
            self.applications, self.users, self.tokens, settings, self.audit, clock
        )
        self._engine = TokenExchangeEngine(
            self.applications,
            self.tokens,
            self.codec,
            self.issuer,
            resolver,
            self.audit,
            clock,
        )
        self._introspection = IntrospectionService(
            self.applications,
            self.users,
            self.tokens,
            self.issuer,
            resolver,
            self.audit,
            clock,
        )
        self._bearer = BearerAuthenticator(
            self.applications, self.tokens, self.issuer, resolver, clock
        )

    @beartype
    async def authorize(
        self,
        response_type: str,
        client_id: str,
        redirect_uri: str,
        scope: str | None,
        user_id: UUID,
        state: str | None = None,
        code_challenge: str | None = None,
        code_challenge_method: str | None = None,
    ) -> Result[AuthorizationGrant, OAuth2Error]:
        """Handle authorization request."""
        return await self._code_issuer.authorize(
            response_type=response_type,
            client_id=client_id,
            redirect_uri=redirect_uri,
            scope=scope,
            user_id=user_id,
            state=state,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
        )

    @beartype
    async def token(self, request: TokenRequest) -> Result[TokenResponse, OAuth2Error]:
        """Handle token request."""
        return await self._engine.exchange(request)

    @beartype
    async def introspect(self, token: str) -> Introspection:
        """Introspect a token."""
        return await self._introspection.introspect(token)

    @beartype
    async def revoke(self, token: str) -> None:
        """Revoke a token. Always succeeds from the caller's point of view."""
        await self._introspection.revoke(token)

    @beartype
    async def authenticate_bearer(
        self, token: str
    ) -> Result[TokenPrincipal, OAuth2Error]:
        """Resolve an access token presented to a resource endpoint."""
        return await self._bearer.authenticate(token)

    @beartype
    async def validate_client_rate_limit(
        self, client_id: str, endpoint: str = TOKEN_ENDPOINT
    ) -> RateLimitResult | None:
        """Count a token endpoint request against the client's window.

        Returns None for unknown clients; the grant handler rejects those.
        """
        application = await self.applications.get_by_client_id(client_id)
        if application is None:
            return None
        return await self.rate_limiter.check_application(application, None, endpoint)

    @beartype
    async def get_server_health(self) -> dict[str, Any]:
        """Report backing store health."""
        database = await self._db.health_check()
        cache_ok = await self._cache.health_check()
        return {
            "status": "healthy" if database.is_ok() and cache_ok else "degraded",
            "database": database.ok_value or database.err_value,
            "cache": "healthy" if cache_ok else "unavailable",
        }
