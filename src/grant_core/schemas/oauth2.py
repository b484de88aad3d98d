# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""OAuth2 request and response schemas."""

from pydantic import BaseModel, ConfigDict, Field


class OAuth2BaseModel(BaseModel):
    """Base configuration for OAuth2 schemas."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )


class TokenRequestBody(OAuth2BaseModel):
    """OAuth2 token request model."""

    grant_type: str = Field(..., min_length=1)
    client_id: str | None = None
    client_secret: str | None = None
    code: str | None = None
    redirect_uri: str | None = None
    refresh_token: str | None = None
    scope: str | None = None
    code_verifier: str | None = None


class TokenBody(OAuth2BaseModel):
    """Body carrying a single token, for introspection and revocation."""

    token: str = Field(..., min_length=1)
    token_type_hint: str | None = None
    client_id: str | None = None
    client_secret: str | None = None


class AuthorizationResponse(OAuth2BaseModel):
    """Authorization code handed back to the client."""

    code: str
    state: str | None = None


class ScopeSchema(OAuth2BaseModel):
    """One entry of the scope catalog."""

    id: str
    name: str
    description: str
    category: str
    group: str
    requires_approval: bool
    is_default: bool


class ScopeListResponse(OAuth2BaseModel):
    """Scope catalog listing."""

    scopes: list[ScopeSchema]


class UserInfoResponse(OAuth2BaseModel):
    """Identity behind the presented access token."""

    sub: str
    username: str | None = None
    client_id: str
    scope: str
