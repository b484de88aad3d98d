# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Token endpoint grant handling.

Each grant type is a handler in a dispatch table. Single-use guarantees
(code exchange, refresh rotation) rest on conditional store updates, so two
concurrent requests presenting the same credential cannot both succeed.
"""

import base64
import hashlib
import hmac
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from uuid import uuid4

from attrs import field, frozen
from beartype import beartype

from ...result_types import Err, Ok, Result
from .audit import AuditEventType, AuditLogger, RiskLevel, SecurityEvent
from .codec import TokenCodec
from .errors import (
    OAuth2Error,
    invalid_client,
    invalid_grant,
    invalid_request,
    invalid_scope,
    unauthorized_client,
)
from .lookup import CredentialKind, CredentialResolver
from .models import (
    Application,
    DelegatedToken,
    GrantType,
    PKCEMethod,
    TokenResponse,
)
from .repository import ApplicationStore, TokenStore
from .scopes import ScopeValidator
from .tokens import TokenIssuer, utcnow

logger = logging.getLogger(__name__)

PKCE_FAILED = "PKCE verification failed"


@frozen
class TokenRequest:
    """Parameters accepted by the token endpoint."""

    grant_type: str = field()
    client_id: str | None = field(default=None)
    client_secret: str | None = field(default=None, repr=False)
    code: str | None = field(default=None, repr=False)
    redirect_uri: str | None = field(default=None)
    refresh_token: str | None = field(default=None, repr=False)
    scope: str | None = field(default=None)
    code_verifier: str | None = field(default=None, repr=False)


@beartype
def pkce_challenge_for(verifier: str, method: PKCEMethod) -> str:
    """Derive the challenge a verifier should produce."""
    if method is PKCEMethod.S256:
        digest = hashlib.sha256(verifier.encode("ascii")).digest()
        return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier


@beartype
def verify_pkce(verifier: str, challenge: str, method: PKCEMethod) -> bool:
    """Constant-time PKCE check."""
    try:
        expected = pkce_challenge_for(verifier, method)
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(expected.encode("ascii"), challenge.encode("utf-8"))


GrantHandler = Callable[[TokenRequest], Awaitable[Result[TokenResponse, OAuth2Error]]]


class TokenExchangeEngine:
    """Grant-type state machine behind the token endpoint."""

    def __init__(
        self,
        applications: ApplicationStore,
        tokens: TokenStore,
        codec: TokenCodec,
        issuer: TokenIssuer,
        resolver: CredentialResolver,
        audit: AuditLogger,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._applications = applications
        self._tokens = tokens
        self._codec = codec
        self._issuer = issuer
        self._resolver = resolver
        self._audit = audit
        self._clock = clock
        self._handlers: dict[GrantType, GrantHandler] = {
            GrantType.AUTHORIZATION_CODE: self._handle_authorization_code_grant,
            GrantType.REFRESH_TOKEN: self._handle_refresh_token_grant,
            GrantType.CLIENT_CREDENTIALS: self._handle_client_credentials_grant,
        }

    @beartype
    async def exchange(self, request: TokenRequest) -> Result[TokenResponse, OAuth2Error]:
        """Dispatch a token request to its grant handler."""
        try:
            grant_type = GrantType(request.grant_type)
        except ValueError:
            return Err(
                invalid_request(f"Unsupported grant_type '{request.grant_type}'")
            )
        return await self._handlers[grant_type](request)

    async def _authenticate_client(
        self, client_id: str, client_secret: str
    ) -> Result[Application, OAuth2Error]:
        application = await self._applications.get_by_client_id(client_id)
        if application is None or not self._codec.verify_secret(
            client_secret, application.client_secret_hash
        ):
            return Err(invalid_client())
        if not application.is_active:
            return Err(unauthorized_client())
        return Ok(application)

    async def _handle_authorization_code_grant(
        self, request: TokenRequest
    ) -> Result[TokenResponse, OAuth2Error]:
        if not (
            request.code
            and request.client_id
            and request.client_secret
            and request.redirect_uri
        ):
            return Err(
                invalid_request(
                    "code, client_id, client_secret and redirect_uri are required"
                )
            )

        client_result = await self._authenticate_client(
            request.client_id, request.client_secret
        )
        if client_result.is_err():
            return client_result
        application = client_result.unwrap()

        # Tolerate the legacy "code:challenge:method" form.
        code = request.code.split(":", 1)[0]
        record = await self._tokens.get_by_code(code)
        if record is None or record.application_id != application.id:
            return Err(invalid_grant("Invalid authorization code"))
        if record.code_expires_at is None or record.code_expires_at <= self._clock():
            return Err(invalid_grant("Authorization code has expired"))
        if request.redirect_uri != record.redirect_uri:
            return Err(invalid_grant("redirect_uri does not match authorization request"))

        if record.pkce_challenge and record.pkce_method:
            if not request.code_verifier or not verify_pkce(
                request.code_verifier, record.pkce_challenge, record.pkce_method
            ):
                return Err(invalid_grant(PKCE_FAILED))
        elif request.code_verifier:
            return Err(
                invalid_request("code_verifier supplied but no PKCE challenge was issued")
            )

        credentials = self._issuer.issue(application, record.user_id, record.scopes)
        # Losing this update means another request already redeemed the code.
        if not await self._tokens.attach_tokens(record.id, code, credentials):
            return await self._reject_replay(record)

        await self._log_issued(application, record, GrantType.AUTHORIZATION_CODE)
        return Ok(
            self._response(
                credentials.access_token, credentials.refresh_token, record.scopes
            )
        )

    async def _handle_refresh_token_grant(
        self, request: TokenRequest
    ) -> Result[TokenResponse, OAuth2Error]:
        if not request.refresh_token:
            return Err(invalid_request("refresh_token is required"))

        fingerprint = self._codec.fingerprint(request.refresh_token)
        record = await self._tokens.get_by_refresh_fingerprint(fingerprint)
        if record is None:
            return Err(invalid_grant("Invalid refresh token"))
        if record.revoked:
            await self._log_reuse(record, "Revoked refresh token presented")
            return Err(invalid_grant("Refresh token has been revoked"))

        if not self._codec.verify(request.refresh_token, record.refresh_token_hash):
            await self._resolver.report_collision(record, CredentialKind.REFRESH)
            return Err(invalid_grant("Invalid refresh token"))

        if record.refresh_expires_at is None or record.refresh_expires_at <= self._clock():
            return Err(invalid_grant("Refresh token has expired"))

        application = await self._applications.get_by_id(record.application_id)
        if application is None:
            return Err(invalid_grant("Invalid refresh token"))
        if request.client_id is not None and request.client_id != application.client_id:
            return Err(invalid_grant("Refresh token was not issued to this client"))
        if not application.is_active:
            return Err(unauthorized_client())

        # Revoke first: whoever wins this update is the only rotation.
        if not await self._tokens.revoke(record.id):
            await self._log_reuse(record, "Refresh token rotated concurrently")
            return Err(invalid_grant("Refresh token has been revoked"))

        credentials = self._issuer.issue(application, record.user_id, record.scopes)
        now = self._clock()
        await self._tokens.create(
            DelegatedToken(
                id=uuid4(),
                application_id=application.id,
                user_id=record.user_id,
                scopes=record.scopes,
                access_token_hash=credentials.access_token_hash,
                access_token_fingerprint=credentials.access_token_fingerprint,
                refresh_token_hash=credentials.refresh_token_hash,
                refresh_token_fingerprint=credentials.refresh_token_fingerprint,
                expires_at=credentials.expires_at,
                refresh_expires_at=credentials.refresh_expires_at,
                created_at=now,
            )
        )

        await self._audit.log_event(
            SecurityEvent(
                event_type=AuditEventType.TOKEN_ROTATED,
                application_id=application.id,
                user_id=record.user_id,
                token_id=record.id,
                message="Refresh token rotated",
            )
        )
        return Ok(
            self._response(
                credentials.access_token, credentials.refresh_token, record.scopes
            )
        )

    async def _handle_client_credentials_grant(
        self, request: TokenRequest
    ) -> Result[TokenResponse, OAuth2Error]:
        if not (request.client_id and request.client_secret):
            return Err(invalid_request("client_id and client_secret are required"))

        client_result = await self._authenticate_client(
            request.client_id, request.client_secret
        )
        if client_result.is_err():
            return client_result
        application = client_result.unwrap()

        requested = ScopeValidator.parse(request.scope)
        if requested:
            scopes_result = ScopeValidator.resolve_requested_scopes(
                requested, application.approved_scopes
            )
            if scopes_result.is_err():
                return scopes_result
            scopes = scopes_result.unwrap()
        else:
            scopes = application.approved_scopes
        if not scopes:
            return Err(invalid_scope("Application has no approved scopes"))

        credentials = self._issuer.issue(application, None, scopes)
        record = DelegatedToken(
            id=uuid4(),
            application_id=application.id,
            user_id=None,
            scopes=scopes,
            access_token_hash=credentials.access_token_hash,
            access_token_fingerprint=credentials.access_token_fingerprint,
            refresh_token_hash=credentials.refresh_token_hash,
            refresh_token_fingerprint=credentials.refresh_token_fingerprint,
            expires_at=credentials.expires_at,
            refresh_expires_at=credentials.refresh_expires_at,
            created_at=self._clock(),
        )
        await self._tokens.create(record)

        await self._log_issued(application, record, GrantType.CLIENT_CREDENTIALS)
        return Ok(
            self._response(credentials.access_token, credentials.refresh_token, scopes)
        )

    def _response(
        self, access_token: str, refresh_token: str, scopes: tuple[str, ...]
    ) -> TokenResponse:
        return TokenResponse(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self._issuer.access_token_ttl,
            scope=" ".join(scopes),
        )

    async def _log_issued(
        self, application: Application, record: DelegatedToken, grant_type: GrantType
    ) -> None:
        await self._audit.log_event(
            SecurityEvent(
                event_type=AuditEventType.TOKENS_ISSUED,
                application_id=application.id,
                user_id=record.user_id,
                token_id=record.id,
                message=f"Tokens issued via {grant_type.value}",
                event_data={"scopes": list(record.scopes)},
            )
        )

    async def _reject_replay(
        self, record: DelegatedToken
    ) -> Result[TokenResponse, OAuth2Error]:
        await self._audit.log_event(
            SecurityEvent(
                event_type=AuditEventType.CODE_REPLAY,
                risk_level=RiskLevel.HIGH,
                application_id=record.application_id,
                user_id=record.user_id,
                token_id=record.id,
                message="Authorization code presented after use",
            )
        )
        return Err(invalid_grant("Authorization code has already been used"))

    async def _log_reuse(self, record: DelegatedToken, message: str) -> None:
        await self._audit.log_event(
            SecurityEvent(
                event_type=AuditEventType.REFRESH_TOKEN_REUSE,
                risk_level=RiskLevel.HIGH,
                application_id=record.application_id,
                user_id=record.user_id,
                token_id=record.id,
                message=message,
            )
        )
