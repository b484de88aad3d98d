# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Token introspection (RFC 7662) and revocation (RFC 7009)."""

import logging
from collections.abc import Callable
from datetime import datetime

from beartype import beartype

from .audit import AuditEventType, AuditLogger, SecurityEvent
from .lookup import CredentialKind, CredentialResolver
from .models import INACTIVE, Introspection
from .repository import ApplicationStore, TokenStore, UserDirectory
from .tokens import TokenDecodeStatus, TokenIssuer, utcnow

logger = logging.getLogger(__name__)


class IntrospectionService:
    """Report on and revoke presented tokens."""

    def __init__(
        self,
        applications: ApplicationStore,
        users: UserDirectory,
        tokens: TokenStore,
        issuer: TokenIssuer,
        resolver: CredentialResolver,
        audit: AuditLogger,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._applications = applications
        self._users = users
        self._tokens = tokens
        self._issuer = issuer
        self._resolver = resolver
        self._audit = audit
        self._clock = clock

    @beartype
    async def introspect(self, token: str) -> Introspection:
        """Describe a token to a resource server.

        Expired, revoked, unknown and unverifiable tokens are all reported
        as simply inactive.
        """
        status, _ = self._issuer.decode(token)
        if status is TokenDecodeStatus.EXPIRED:
            return INACTIVE

        resolved = await self._resolver.resolve(token)
        if resolved is None:
            return INACTIVE

        record = resolved.record
        if record.revoked:
            return INACTIVE

        expiry = (
            record.expires_at
            if resolved.kind is CredentialKind.ACCESS
            else record.refresh_expires_at
        )
        if expiry is None or expiry <= self._clock():
            return INACTIVE

        application = await self._applications.get_by_id(record.application_id)
        username = (
            await self._users.get_username(record.user_id)
            if record.user_id is not None
            else None
        )
        return Introspection(
            active=True,
            scope=" ".join(record.scopes),
            client_id=application.client_id if application else None,
            username=username,
            exp=int(expiry.timestamp()),
        )

    @beartype
    async def revoke(self, token: str) -> None:
        """Revoke the grant a token belongs to.

        Unknown and already-revoked tokens succeed silently.
        """
        resolved = await self._resolver.resolve(token)
        if resolved is None:
            logger.info("Revocation requested for unknown token")
            return

        record = resolved.record
        if not await self._tokens.revoke(record.id):
            logger.info("Revocation requested for already revoked token %s", record.id)
            return

        await self._audit.log_event(
            SecurityEvent(
                event_type=AuditEventType.TOKEN_REVOKED,
                application_id=record.application_id,
                user_id=record.user_id,
                token_id=record.id,
                message=f"Grant revoked via {resolved.kind.value} token",
            )
        )
