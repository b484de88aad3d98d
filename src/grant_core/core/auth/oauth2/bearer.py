# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Access token authentication for resource endpoints."""

from collections.abc import Callable
from datetime import datetime

from beartype import beartype

from ...result_types import Err, Ok, Result
from .errors import OAuth2Error, invalid_token
from .lookup import CredentialKind, CredentialResolver
from .models import TokenPrincipal
from .repository import ApplicationStore, TokenStore
from .tokens import TokenDecodeStatus, TokenIssuer, TokenKind, utcnow


class BearerAuthenticator:
    """Turn a presented access token into a principal."""

    def __init__(
        self,
        applications: ApplicationStore,
        tokens: TokenStore,
        issuer: TokenIssuer,
        resolver: CredentialResolver,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._applications = applications
        self._tokens = tokens
        self._issuer = issuer
        self._resolver = resolver
        self._clock = clock

    @beartype
    async def authenticate(self, token: str) -> Result[TokenPrincipal, OAuth2Error]:
        """Validate signature, token type, grant state and application status."""
        status, payload = self._issuer.decode(token)
        if status is TokenDecodeStatus.EXPIRED:
            return Err(invalid_token("Access token has expired"))
        if status is not TokenDecodeStatus.VALID:
            return Err(invalid_token())
        if payload.get("type") != TokenKind.ACCESS.value:
            return Err(invalid_token("Token is not an OAuth access token"))

        resolved = await self._resolver.resolve(token, (CredentialKind.ACCESS,))
        if resolved is None:
            return Err(invalid_token())
        record = resolved.record
        now = self._clock()
        if record.revoked:
            return Err(invalid_token("Access token has been revoked"))
        if record.expires_at is None or record.expires_at <= now:
            return Err(invalid_token("Access token has expired"))

        application = await self._applications.get_by_id(record.application_id)
        if application is None or not application.is_active:
            return Err(invalid_token("Application is not active"))

        await self._tokens.touch(record.id, now)
        return Ok(
            TokenPrincipal(
                token_id=record.id,
                application=application,
                user_id=record.user_id,
                scopes=record.scopes,
            )
        )
