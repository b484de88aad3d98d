# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Authorization endpoint: validates the request and issues a one-time code."""

from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from beartype import beartype

from ...config import Settings
from ...result_types import Err, Ok, Result
from .audit import AuditEventType, AuditLogger, SecurityEvent
from .codec import TokenCodec
from .errors import (
    OAuth2Error,
    invalid_client,
    invalid_request,
    unauthorized_client,
)
from .models import AuthorizationGrant, DelegatedToken, PKCEMethod
from .repository import ApplicationStore, TokenStore, UserDirectory
from .scopes import ScopeValidator
from .tokens import utcnow


class AuthorizationCodeIssuer:
    """Issue authorization codes for the interactive flow."""

    def __init__(
        self,
        applications: ApplicationStore,
        users: UserDirectory,
        tokens: TokenStore,
        settings: Settings,
        audit: AuditLogger,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._applications = applications
        self._users = users
        self._tokens = tokens
        self._audit = audit
        self._clock = clock
        self._code_ttl = timedelta(seconds=settings.oauth_code_ttl_seconds)

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
        """Handle an authorization request for an authenticated user.

        Args:
            response_type: Must be ``"code"``
            client_id: Client identifier
            redirect_uri: Must exactly match a registered URI
            scope: Space-separated list of requested scopes
            user_id: The authenticated user granting access
            state: Opaque value echoed back to the client
            code_challenge: PKCE code challenge
            code_challenge_method: PKCE challenge method ("S256" or "plain")

        Returns:
            Result containing the code and echoed state, or an OAuth2Error
        """
        if response_type != "code":
            return Err(
                invalid_request(
                    f"Unsupported response_type '{response_type}'. Only 'code' is supported."
                )
            )

        application = await self._applications.get_by_client_id(client_id)
        if application is None:
            return Err(invalid_client("Unknown client_id"))
        if not application.is_active:
            return Err(unauthorized_client())

        if redirect_uri not in application.redirect_uris:
            return Err(invalid_request("Invalid redirect_uri"))

        if not await self._users.exists(user_id):
            return Err(invalid_request("User not found"))

        requested = ScopeValidator.parse(scope)
        if not requested:
            return Err(invalid_request("scope parameter is required"))
        scopes_result = ScopeValidator.resolve_requested_scopes(
            requested, application.approved_scopes
        )
        if scopes_result.is_err():
            return scopes_result
        granted = scopes_result.unwrap()

        pkce_result = self._resolve_pkce(code_challenge, code_challenge_method)
        if pkce_result.is_err():
            return pkce_result
        pkce_method = pkce_result.unwrap()

        now = self._clock()
        record = DelegatedToken(
            id=uuid4(),
            application_id=application.id,
            user_id=user_id,
            scopes=granted,
            code=TokenCodec.generate_code(),
            code_expires_at=now + self._code_ttl,
            redirect_uri=redirect_uri,
            pkce_challenge=code_challenge,
            pkce_method=pkce_method,
            created_at=now,
        )
        await self._tokens.create(record)
        assert record.code is not None

        await self._audit.log_event(
            SecurityEvent(
                event_type=AuditEventType.CODE_ISSUED,
                application_id=application.id,
                user_id=user_id,
                token_id=record.id,
                message="Authorization code issued",
                event_data={"scopes": list(granted), "pkce": pkce_method is not None},
            )
        )
        return Ok(AuthorizationGrant(code=record.code, state=state))

    @staticmethod
    def _resolve_pkce(
        code_challenge: str | None, code_challenge_method: str | None
    ) -> Result[PKCEMethod | None, OAuth2Error]:
        if not code_challenge:
            if code_challenge_method:
                return Err(
                    invalid_request("code_challenge_method requires a code_challenge")
                )
            return Ok(None)
        # RFC 7636 section 4.3: absent method means plain
        method = code_challenge_method or PKCEMethod.PLAIN.value
        try:
            return Ok(PKCEMethod(method))
        except ValueError:
            return Err(
                invalid_request(
                    f"Unsupported code_challenge_method '{method}'. Use 'S256' or 'plain'."
                )
            )
