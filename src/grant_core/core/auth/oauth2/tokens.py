# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Access and refresh token minting."""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from beartype import beartype
from jose import ExpiredSignatureError, JWTError, jwt  # type: ignore[import-untyped]

from ...config import Settings
from .codec import TokenCodec
from .models import Application, IssuedCredentials


class TokenKind(str, Enum):
    """Value of the ``type`` claim."""

    ACCESS = "oauth"
    REFRESH = "oauth_refresh"


class TokenDecodeStatus(str, Enum):
    """Outcome of decoding a presented token."""

    VALID = "valid"
    EXPIRED = "expired"
    MALFORMED = "malformed"


@beartype
def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Mints signed tokens and derives their storage forms."""

    def __init__(
        self,
        settings: Settings,
        codec: TokenCodec,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._settings = settings
        self._codec = codec
        self._clock = clock
        self._access_ttl = timedelta(seconds=settings.oauth_access_token_ttl_seconds)
        self._refresh_ttl = timedelta(seconds=settings.oauth_refresh_token_ttl_seconds)

    @property
    def access_token_ttl(self) -> int:
        """Access token lifetime in seconds."""
        return int(self._access_ttl.total_seconds())

    @beartype
    def issue(
        self,
        application: Application,
        user_id: UUID | None,
        scopes: tuple[str, ...],
    ) -> IssuedCredentials:
        """Mint an access/refresh pair and hash both before returning."""
        now = self._clock()
        subject = str(user_id) if user_id is not None else str(application.id)
        expires_at = now + self._access_ttl
        refresh_expires_at = now + self._refresh_ttl

        access_token = self._encode(
            {
                "sub": subject,
                "app": str(application.id),
                "scopes": list(scopes),
                "type": TokenKind.ACCESS.value,
            },
            now,
            expires_at,
        )
        refresh_token = self._encode(
            {
                "sub": subject,
                "app": str(application.id),
                "type": TokenKind.REFRESH.value,
            },
            now,
            refresh_expires_at,
        )

        return IssuedCredentials(
            access_token=access_token,
            access_token_hash=self._codec.verification_hash(access_token),
            access_token_fingerprint=self._codec.fingerprint(access_token),
            refresh_token=refresh_token,
            refresh_token_hash=self._codec.verification_hash(refresh_token),
            refresh_token_fingerprint=self._codec.fingerprint(refresh_token),
            expires_at=expires_at,
            refresh_expires_at=refresh_expires_at,
            expires_in=self.access_token_ttl,
        )

    def _encode(
        self, claims: dict[str, Any], issued_at: datetime, expires_at: datetime
    ) -> str:
        # jti keeps fingerprints unique for tokens minted in the same second
        payload = {
            **claims,
            "jti": uuid4().hex,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        return jwt.encode(
            payload, self._settings.jwt_secret, algorithm=self._settings.jwt_algorithm
        )

    @beartype
    def decode(self, token: str) -> tuple[TokenDecodeStatus, dict[str, Any]]:
        """Verify signature and expiry, returning the claims when valid."""
        try:
            payload = jwt.decode(
                token,
                self._settings.jwt_secret,
                algorithms=[self._settings.jwt_algorithm],
            )
        except ExpiredSignatureError:
            return TokenDecodeStatus.EXPIRED, {}
        except JWTError:
            return TokenDecodeStatus.MALFORMED, {}
        return TokenDecodeStatus.VALID, payload
