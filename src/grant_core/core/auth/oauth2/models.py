# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Domain records for registered applications and delegated grants."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from attrs import field, frozen
from beartype import beartype


class GrantType(str, Enum):
    """Supported token endpoint grant types."""

    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"
    CLIENT_CREDENTIALS = "client_credentials"


class ApplicationStatus(str, Enum):
    """Lifecycle state of a registered application."""

    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class ApplicationEnvironment(str, Enum):
    """Deployment tier, which drives the default rate limit."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"


class PKCEMethod(str, Enum):
    """PKCE code challenge transformations (RFC 7636)."""

    S256 = "S256"
    PLAIN = "plain"


@frozen
class Application:
    """A registered third-party client. Read-only to the authorization core."""

    id: UUID = field()
    client_id: str = field()
    client_secret_hash: str = field(repr=False)
    name: str = field()
    redirect_uris: tuple[str, ...] = field(converter=tuple)
    approved_scopes: tuple[str, ...] = field(converter=tuple)
    environment: ApplicationEnvironment = field(
        default=ApplicationEnvironment.DEVELOPMENT,
        converter=ApplicationEnvironment,
    )
    rate_limit_override: int | None = field(default=None)
    status: ApplicationStatus = field(
        default=ApplicationStatus.ACTIVE,
        converter=ApplicationStatus,
    )

    @property
    @beartype
    def is_active(self) -> bool:
        """Only active applications may obtain or use tokens."""
        return self.status is ApplicationStatus.ACTIVE


@frozen
class DelegatedToken:
    """One grant lifecycle: code state, then token state, optionally revoked.

    ``code`` is set only until exchange. Access and refresh credentials are
    stored as a fingerprint (indexed lookup key) and an adaptive hash
    (proof), never in plaintext.
    """

    id: UUID = field()
    application_id: UUID = field()
    user_id: UUID | None = field()
    scopes: tuple[str, ...] = field(converter=tuple)
    code: str | None = field(default=None)
    code_expires_at: datetime | None = field(default=None)
    redirect_uri: str | None = field(default=None)
    pkce_challenge: str | None = field(default=None)
    pkce_method: PKCEMethod | None = field(default=None)
    access_token_hash: str | None = field(default=None, repr=False)
    access_token_fingerprint: str | None = field(default=None)
    refresh_token_hash: str | None = field(default=None, repr=False)
    refresh_token_fingerprint: str | None = field(default=None)
    expires_at: datetime | None = field(default=None)
    refresh_expires_at: datetime | None = field(default=None)
    revoked: bool = field(default=False)
    created_at: datetime | None = field(default=None)
    last_used_at: datetime | None = field(default=None)

    @property
    @beartype
    def is_exchanged(self) -> bool:
        """A record whose access fingerprint is set has left the code state."""
        return self.access_token_fingerprint is not None


@frozen
class IssuedCredentials:
    """Plaintext tokens plus the derived storage forms.

    Plaintext lives only long enough to be returned to the caller once.
    """

    access_token: str = field(repr=False)
    access_token_hash: str = field(repr=False)
    access_token_fingerprint: str = field()
    refresh_token: str = field(repr=False)
    refresh_token_hash: str = field(repr=False)
    refresh_token_fingerprint: str = field()
    expires_at: datetime = field()
    refresh_expires_at: datetime = field()
    expires_in: int = field()


@frozen
class AuthorizationGrant:
    """Result of a successful authorization request."""

    code: str = field()
    state: str | None = field(default=None)


@frozen
class TokenResponse:
    """Body returned by the token endpoint."""

    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)
    expires_in: int = field()
    scope: str = field()
    token_type: str = field(default="Bearer")

    @beartype
    def to_dict(self) -> dict[str, str | int]:
        """Serialize for the wire."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "scope": self.scope,
        }


@frozen
class Introspection:
    """Token status as reported to resource servers."""

    active: bool = field()
    scope: str | None = field(default=None)
    client_id: str | None = field(default=None)
    username: str | None = field(default=None)
    exp: int | None = field(default=None)

    @beartype
    def to_dict(self) -> dict[str, bool | str | int | None]:
        """Inactive tokens disclose nothing beyond ``active``."""
        if not self.active:
            return {"active": False}
        return {
            "active": True,
            "scope": self.scope,
            "client_id": self.client_id,
            "username": self.username,
            "exp": self.exp,
        }


INACTIVE = Introspection(active=False)


@frozen
class TokenPrincipal:
    """Identity behind a valid access token."""

    token_id: UUID = field()
    application: Application = field()
    user_id: UUID | None = field()
    scopes: tuple[str, ...] = field(converter=tuple)
