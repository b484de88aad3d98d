# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Fingerprint-then-verify resolution of presented tokens."""

from enum import Enum

from attrs import field, frozen
from beartype import beartype

from .audit import AuditEventType, AuditLogger, RiskLevel, SecurityEvent
from .codec import TokenCodec
from .models import DelegatedToken
from .repository import TokenStore


class CredentialKind(str, Enum):
    """Which credential of a record matched."""

    ACCESS = "access"
    REFRESH = "refresh"


@frozen
class ResolvedCredential:
    """A record whose fingerprint and hash both matched the presented token."""

    record: DelegatedToken = field()
    kind: CredentialKind = field()


class CredentialResolver:
    """Resolve a presented token to its grant record.

    A fingerprint match alone proves nothing: the adaptive hash must verify
    too. A match that fails verification is recorded as a security event and
    treated as not found.
    """

    def __init__(self, tokens: TokenStore, codec: TokenCodec, audit: AuditLogger) -> None:
        self._tokens = tokens
        self._codec = codec
        self._audit = audit

    @beartype
    async def resolve(
        self, token: str, kinds: tuple[CredentialKind, ...] = tuple(CredentialKind)
    ) -> ResolvedCredential | None:
        """Try each credential kind in order and return the first verified match."""
        fingerprint = self._codec.fingerprint(token)
        for kind in kinds:
            if kind is CredentialKind.ACCESS:
                record = await self._tokens.get_by_access_fingerprint(fingerprint)
                stored_hash = record.access_token_hash if record else None
            else:
                record = await self._tokens.get_by_refresh_fingerprint(fingerprint)
                stored_hash = record.refresh_token_hash if record else None

            if record is None:
                continue
            if not self._codec.verify(token, stored_hash):
                await self.report_collision(record, kind)
                return None
            return ResolvedCredential(record=record, kind=kind)
        return None

    @beartype
    async def report_collision(self, record: DelegatedToken, kind: CredentialKind) -> None:
        """Record a fingerprint match whose hash did not verify."""
        await self._audit.log_event(
            SecurityEvent(
                event_type=AuditEventType.FINGERPRINT_COLLISION,
                risk_level=RiskLevel.CRITICAL,
                application_id=record.application_id,
                user_id=record.user_id,
                token_id=record.id,
                message=f"{kind.value} token fingerprint matched but hash did not verify",
            )
        )
