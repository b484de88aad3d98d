# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""OAuth2 error codes and the error type carried in ``Err`` results."""

from enum import Enum
from typing import Any

from beartype import beartype


class OAuth2ErrorCode(str, Enum):
    """Error codes surfaced to clients."""

    INVALID_REQUEST = "invalid_request"
    INVALID_CLIENT = "invalid_client"
    INVALID_GRANT = "invalid_grant"
    UNAUTHORIZED_CLIENT = "unauthorized_client"
    INVALID_SCOPE = "invalid_scope"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    INVALID_TOKEN = "invalid_token"
    INSUFFICIENT_SCOPE = "insufficient_scope"
    SERVER_ERROR = "server_error"


STATUS_CODES: dict[OAuth2ErrorCode, int] = {
    OAuth2ErrorCode.INVALID_REQUEST: 400,
    OAuth2ErrorCode.INVALID_CLIENT: 401,
    OAuth2ErrorCode.INVALID_GRANT: 400,
    OAuth2ErrorCode.UNAUTHORIZED_CLIENT: 403,
    OAuth2ErrorCode.INVALID_SCOPE: 400,
    OAuth2ErrorCode.RATE_LIMIT_EXCEEDED: 429,
    OAuth2ErrorCode.INVALID_TOKEN: 401,
    OAuth2ErrorCode.INSUFFICIENT_SCOPE: 403,
    OAuth2ErrorCode.SERVER_ERROR: 500,
}


class OAuth2Error(Exception):
    """OAuth2 specific errors.

    Services return these inside ``Err``; FastAPI dependencies raise them
    and an application exception handler renders them.
    """

    def __init__(
        self,
        error: OAuth2ErrorCode,
        error_description: str | None = None,
        error_uri: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.error = OAuth2ErrorCode(error)
        self.error_description = error_description
        self.error_uri = error_uri
        self.headers = headers or {}
        super().__init__(error_description or self.error.value)

    @property
    def status_code(self) -> int:
        """HTTP status for this error code."""
        return STATUS_CODES[self.error]

    @beartype
    def to_dict(self) -> dict[str, Any]:
        """Convert to OAuth2 error response."""
        response: dict[str, Any] = {"error": self.error.value}
        if self.error_description:
            response["error_description"] = self.error_description
        if self.error_uri:
            response["error_uri"] = self.error_uri
        return response

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OAuth2Error):
            return NotImplemented
        return (self.error, self.error_description) == (
            other.error,
            other.error_description,
        )

    def __hash__(self) -> int:
        return hash((self.error, self.error_description))

    def __repr__(self) -> str:
        return f"OAuth2Error({self.error.value!r}, {self.error_description!r})"


@beartype
def invalid_request(description: str) -> OAuth2Error:
    """Build an ``invalid_request`` error."""
    return OAuth2Error(OAuth2ErrorCode.INVALID_REQUEST, description)


@beartype
def invalid_client(description: str = "Client authentication failed") -> OAuth2Error:
    """Build an ``invalid_client`` error."""
    return OAuth2Error(OAuth2ErrorCode.INVALID_CLIENT, description)


@beartype
def invalid_grant(description: str) -> OAuth2Error:
    """Build an ``invalid_grant`` error."""
    return OAuth2Error(OAuth2ErrorCode.INVALID_GRANT, description)


@beartype
def unauthorized_client(description: str = "Application is not active") -> OAuth2Error:
    """Build an ``unauthorized_client`` error."""
    return OAuth2Error(OAuth2ErrorCode.UNAUTHORIZED_CLIENT, description)


@beartype
def invalid_scope(description: str) -> OAuth2Error:
    """Build an ``invalid_scope`` error."""
    return OAuth2Error(OAuth2ErrorCode.INVALID_SCOPE, description)


@beartype
def invalid_token(description: str = "Invalid or expired access token") -> OAuth2Error:
    """Build an ``invalid_token`` error."""
    return OAuth2Error(OAuth2ErrorCode.INVALID_TOKEN, description)
