# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""OAuth2 authorization endpoints."""

from typing import Any
from uuid import UUID

from beartype import beartype
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ...core.auth.oauth2.errors import OAuth2Error, OAuth2ErrorCode, invalid_request
from ...core.auth.oauth2.grants import TokenRequest
from ...core.auth.oauth2.models import GrantType, PKCEMethod, TokenPrincipal
from ...core.auth.oauth2.scopes import ScopeValidator
from ...core.auth.oauth2.server import TOKEN_ENDPOINT, OAuth2Server
from ...schemas.oauth2 import (
    AuthorizationResponse,
    TokenBody,
    TokenRequestBody,
    UserInfoResponse,
)
from ..dependencies import (
    OAuthRateLimit,
    RequireScopes,
    get_oauth2_server,
    get_session_user_id,
)

router = APIRouter(prefix="/oauth2", tags=["oauth2"])

NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


@beartype
async def _read_body(request: Request) -> dict[str, Any]:
    """Read a form-encoded or JSON request body as a flat mapping."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError as e:
            raise invalid_request("Request body is not valid JSON") from e
        if not isinstance(body, dict):
            raise invalid_request("Request body must be a JSON object")
        return body
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


@beartype
async def parse_token_request(request: Request) -> TokenRequestBody:
    """Parse the token endpoint body."""
    try:
        return TokenRequestBody.model_validate(await _read_body(request))
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
        raise invalid_request(f"Malformed token request: {fields}") from e


@beartype
async def parse_token_body(request: Request) -> TokenBody:
    """Parse the introspection and revocation body."""
    try:
        return TokenBody.model_validate(await _read_body(request))
    except ValidationError as e:
        raise invalid_request("token is required") from e


@router.get("/authorize")
@beartype
async def authorize(
    response_type: str = Query(..., description="OAuth2 response type (code)"),
    client_id: str = Query(..., description="OAuth2 client ID"),
    redirect_uri: str = Query(..., description="Redirect URI for response"),
    scope: str | None = Query(None, description="Space-separated list of scopes"),
    state: str | None = Query(None, description="State parameter for CSRF protection"),
    code_challenge: str | None = Query(None, description="PKCE code challenge"),
    code_challenge_method: str | None = Query(
        None, description="PKCE challenge method"
    ),
    user_id: UUID = Depends(get_session_user_id),
    oauth2_server: OAuth2Server = Depends(get_oauth2_server),
) -> AuthorizationResponse:
    """OAuth2 authorization endpoint.

    Issues an authorization code for the signed-in user. Consent is
    collected by the caller before this endpoint is reached.

    Args:
        response_type: Must be ``code``
        client_id: Client identifier
        redirect_uri: Must match the application's registered URIs exactly
        scope: Requested scopes
        state: Opaque value echoed back to the client
        code_challenge: PKCE challenge for public clients
        code_challenge_method: PKCE method (S256 or plain)
        user_id: Authenticated user from the upstream session
        oauth2_server: OAuth2 server instance

    Returns:
        Authorization code and echoed state
    """
    result = await oauth2_server.authorize(
        response_type=response_type,
        client_id=client_id,
        redirect_uri=redirect_uri,
        scope=scope,
        user_id=user_id,
        state=state,
        code_challenge=code_challenge,
        code_challenge_method=code_challenge_method,
    )
    if result.is_err():
        raise result.unwrap_err()

    grant = result.unwrap()
    return AuthorizationResponse(code=grant.code, state=grant.state)


@router.post("/token")
@beartype
async def token(
    body: TokenRequestBody = Depends(parse_token_request),
    oauth2_server: OAuth2Server = Depends(get_oauth2_server),
) -> JSONResponse:
    """OAuth2 token endpoint.

    Handles the authorization_code, refresh_token and client_credentials
    grants. Requests are counted against the client's rate limit before
    any grant processing, client authentication included. A caller that
    knows a client_id can therefore spend that client's token endpoint
    quota with wrong secrets.

    Args:
        body: Token request parameters, form-encoded or JSON
        oauth2_server: OAuth2 server instance

    Returns:
        Token response or OAuth2 error body
    """
    headers = dict(NO_STORE_HEADERS)
    if body.client_id:
        rate_limit = await oauth2_server.validate_client_rate_limit(
            body.client_id, TOKEN_ENDPOINT
        )
        if rate_limit is not None:
            headers.update(rate_limit.headers())
            if not rate_limit.allowed:
                raise OAuth2Error(
                    OAuth2ErrorCode.RATE_LIMIT_EXCEEDED,
                    f"Rate limit of {rate_limit.limit} requests exceeded. "
                    f"Try again after {rate_limit.reset_at}.",
                    headers=headers,
                )

    result = await oauth2_server.token(TokenRequest(**body.model_dump()))
    if result.is_err():
        error = result.unwrap_err()
        return JSONResponse(
            status_code=error.status_code,
            content=error.to_dict(),
            headers={**headers, **error.headers},
        )

    return JSONResponse(content=result.unwrap().to_dict(), headers=headers)


@router.post("/introspect")
@beartype
async def introspect(
    body: TokenBody = Depends(parse_token_body),
    oauth2_server: OAuth2Server = Depends(get_oauth2_server),
) -> dict[str, Any]:
    """OAuth2 token introspection endpoint.

    This endpoint allows resource servers to query the authorization server
    to determine the active state of an OAuth 2.0 token.

    Args:
        body: Token to introspect and optional type hint
        oauth2_server: OAuth2 server instance

    Returns:
        Token introspection response
    """
    introspection = await oauth2_server.introspect(body.token)
    return introspection.to_dict()


@router.post("/revoke")
@beartype
async def revoke(
    body: TokenBody = Depends(parse_token_body),
    oauth2_server: OAuth2Server = Depends(get_oauth2_server),
) -> dict[str, str]:
    """OAuth2 token revocation endpoint.

    Args:
        body: Token to revoke and optional type hint
        oauth2_server: OAuth2 server instance

    Returns:
        Acknowledgement on success
    """
    await oauth2_server.revoke(body.token)

    # RFC 7009: respond 200 even when the token was unknown
    return {"status": "ok"}


@router.get("/userinfo", dependencies=[Depends(RequireScopes("read:profile"))])
@beartype
async def userinfo(
    principal: TokenPrincipal = Depends(OAuthRateLimit()),
    oauth2_server: OAuth2Server = Depends(get_oauth2_server),
) -> UserInfoResponse:
    """Describe the identity behind the presented access token."""
    user_id = principal.user_id
    username = (
        await oauth2_server.users.get_username(user_id)
        if user_id is not None
        else None
    )
    return UserInfoResponse(
        sub=str(user_id or principal.application.id),
        username=username,
        client_id=principal.application.client_id,
        scope=" ".join(principal.scopes),
    )


@router.get("/.well-known/oauth-authorization-server")
@beartype
async def oauth_metadata(request: Request) -> dict[str, Any]:
    """OAuth2 authorization server metadata endpoint (RFC 8414)."""
    base_url = str(request.base_url).rstrip("/")

    return {
        "issuer": base_url,
        "authorization_endpoint": f"{base_url}/api/v1/oauth2/authorize",
        "token_endpoint": f"{base_url}/api/v1/oauth2/token",
        "token_endpoint_auth_methods_supported": ["client_secret_post"],
        "introspection_endpoint": f"{base_url}/api/v1/oauth2/introspect",
        "revocation_endpoint": f"{base_url}/api/v1/oauth2/revoke",
        "userinfo_endpoint": f"{base_url}/api/v1/oauth2/userinfo",
        "response_types_supported": ["code"],
        "grant_types_supported": [grant.value for grant in GrantType],
        "code_challenge_methods_supported": [method.value for method in PKCEMethod],
        "scopes_supported": [scope.id for scope in ScopeValidator.get_all_scopes()],
    }


@router.get("/health")
@beartype
async def oauth2_health(
    oauth2_server: OAuth2Server = Depends(get_oauth2_server),
) -> dict[str, Any]:
    """OAuth2 authorization server health check."""
    return await oauth2_server.get_server_health()
