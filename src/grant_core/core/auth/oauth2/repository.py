# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Persistence contracts and their PostgreSQL implementations.

State transitions that must happen at most once (code exchange, refresh
rotation, revocation) are conditional single-statement updates that report
whether they matched a row. The caller treats ``False`` as having lost a
race.
"""

from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from beartype import beartype

from ...database import Database
from .models import Application, DelegatedToken, IssuedCredentials, PKCEMethod


class ApplicationStore(Protocol):
    """Lookup of registered applications."""

    async def get_by_client_id(self, client_id: str) -> Application | None: ...

    async def get_by_id(self, application_id: UUID) -> Application | None: ...


class UserDirectory(Protocol):
    """Lookup of platform users."""

    async def exists(self, user_id: UUID) -> bool: ...

    async def get_username(self, user_id: UUID) -> str | None: ...


class TokenStore(Protocol):
    """Delegated grant records."""

    async def create(self, token: DelegatedToken) -> None: ...

    async def get_by_code(self, code: str) -> DelegatedToken | None: ...

    async def get_by_access_fingerprint(
        self, fingerprint: str
    ) -> DelegatedToken | None: ...

    async def get_by_refresh_fingerprint(
        self, fingerprint: str
    ) -> DelegatedToken | None: ...

    async def attach_tokens(
        self, token_id: UUID, code: str, credentials: IssuedCredentials
    ) -> bool: ...

    async def revoke(self, token_id: UUID) -> bool: ...

    async def touch(self, token_id: UUID, used_at: datetime) -> None: ...


_APPLICATION_COLUMNS = """
    id, client_id, client_secret_hash, name, redirect_uris, approved_scopes,
    environment, rate_limit_override, status
"""

_TOKEN_COLUMNS = """
    id, application_id, user_id, scopes, code, code_expires_at, redirect_uri,
    pkce_challenge, pkce_method, access_token_hash, access_token_fingerprint,
    refresh_token_hash, refresh_token_fingerprint, expires_at,
    refresh_expires_at, revoked, created_at, last_used_at
"""


@beartype
def application_from_row(row: Any) -> Application:
    """Build an ``Application`` from a database row."""
    return Application(
        id=row["id"],
        client_id=row["client_id"],
        client_secret_hash=row["client_secret_hash"],
        name=row["name"],
        redirect_uris=row["redirect_uris"] or (),
        approved_scopes=row["approved_scopes"] or (),
        environment=row["environment"],
        rate_limit_override=row["rate_limit_override"],
        status=row["status"],
    )


@beartype
def token_from_row(row: Any) -> DelegatedToken:
    """Build a ``DelegatedToken`` from a database row."""
    return DelegatedToken(
        id=row["id"],
        application_id=row["application_id"],
        user_id=row["user_id"],
        scopes=row["scopes"] or (),
        code=row["code"],
        code_expires_at=row["code_expires_at"],
        redirect_uri=row["redirect_uri"],
        pkce_challenge=row["pkce_challenge"],
        pkce_method=PKCEMethod(row["pkce_method"]) if row["pkce_method"] else None,
        access_token_hash=row["access_token_hash"],
        access_token_fingerprint=row["access_token_fingerprint"],
        refresh_token_hash=row["refresh_token_hash"],
        refresh_token_fingerprint=row["refresh_token_fingerprint"],
        expires_at=row["expires_at"],
        refresh_expires_at=row["refresh_expires_at"],
        revoked=row["revoked"],
        created_at=row["created_at"],
        last_used_at=row["last_used_at"],
    )


class PostgresApplicationStore:
    """Applications stored in ``oauth_applications``."""

    def __init__(self, database: Database) -> None:
        self._db = database

    @beartype
    async def get_by_client_id(self, client_id: str) -> Application | None:
        """Find an application by its public client id."""
        row = await self._db.fetchrow(
            f"SELECT {_APPLICATION_COLUMNS} FROM oauth_applications WHERE client_id = $1",
            client_id,
        )
        return application_from_row(row) if row else None

    @beartype
    async def get_by_id(self, application_id: UUID) -> Application | None:
        """Find an application by primary key."""
        row = await self._db.fetchrow(
            f"SELECT {_APPLICATION_COLUMNS} FROM oauth_applications WHERE id = $1",
            application_id,
        )
        return application_from_row(row) if row else None


class PostgresUserDirectory:
    """Users owned by the platform's account service."""

    def __init__(self, database: Database) -> None:
        self._db = database

    @beartype
    async def exists(self, user_id: UUID) -> bool:
        """Check whether the user exists."""
        return bool(
            await self._db.fetchval(
                "SELECT EXISTS(SELECT 1 FROM users WHERE id = $1)", user_id
            )
        )

    @beartype
    async def get_username(self, user_id: UUID) -> str | None:
        """Return the user's handle, if the user exists."""
        return await self._db.fetchval(
            "SELECT username FROM users WHERE id = $1", user_id
        )


class PostgresTokenStore:
    """Delegated grants stored in ``oauth_tokens``."""

    def __init__(self, database: Database) -> None:
        self._db = database

    @beartype
    async def create(self, token: DelegatedToken) -> None:
        """Insert a new grant record."""
        await self._db.execute(
            f"""
            INSERT INTO oauth_tokens ({_TOKEN_COLUMNS})
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13,
                    $14, $15, $16, COALESCE($17, now()), $18)
            """,
            token.id,
            token.application_id,
            token.user_id,
            list(token.scopes),
            token.code,
            token.code_expires_at,
            token.redirect_uri,
            token.pkce_challenge,
            token.pkce_method.value if token.pkce_method else None,
            token.access_token_hash,
            token.access_token_fingerprint,
            token.refresh_token_hash,
            token.refresh_token_fingerprint,
            token.expires_at,
            token.refresh_expires_at,
            token.revoked,
            token.created_at,
            token.last_used_at,
        )

    @beartype
    async def get_by_code(self, code: str) -> DelegatedToken | None:
        """Find a record still holding ``code``."""
        row = await self._db.fetchrow(
            f"SELECT {_TOKEN_COLUMNS} FROM oauth_tokens WHERE code = $1", code
        )
        return token_from_row(row) if row else None

    @beartype
    async def get_by_access_fingerprint(self, fingerprint: str) -> DelegatedToken | None:
        """Find a record by access token fingerprint."""
        row = await self._db.fetchrow(
            f"SELECT {_TOKEN_COLUMNS} FROM oauth_tokens "
            "WHERE access_token_fingerprint = $1",
            fingerprint,
        )
        return token_from_row(row) if row else None

    @beartype
    async def get_by_refresh_fingerprint(
        self, fingerprint: str
    ) -> DelegatedToken | None:
        """Find a record by refresh token fingerprint."""
        row = await self._db.fetchrow(
            f"SELECT {_TOKEN_COLUMNS} FROM oauth_tokens "
            "WHERE refresh_token_fingerprint = $1",
            fingerprint,
        )
        return token_from_row(row) if row else None

    @beartype
    async def attach_tokens(
        self, token_id: UUID, code: str, credentials: IssuedCredentials
    ) -> bool:
        """Move a record from code state to token state, at most once."""
        updated = await self._db.fetchval(
            """
            UPDATE oauth_tokens
            SET access_token_hash = $3,
                access_token_fingerprint = $4,
                refresh_token_hash = $5,
                refresh_token_fingerprint = $6,
                expires_at = $7,
                refresh_expires_at = $8,
                code = NULL,
                code_expires_at = NULL
            WHERE id = $1
              AND code = $2
              AND access_token_fingerprint IS NULL
              AND revoked = false
            RETURNING id
            """,
            token_id,
            code,
            credentials.access_token_hash,
            credentials.access_token_fingerprint,
            credentials.refresh_token_hash,
            credentials.refresh_token_fingerprint,
            credentials.expires_at,
            credentials.refresh_expires_at,
        )
        return updated is not None

    @beartype
    async def revoke(self, token_id: UUID) -> bool:
        """Revoke a record. False when it was already revoked."""
        updated = await self._db.fetchval(
            """
            UPDATE oauth_tokens SET revoked = true
            WHERE id = $1 AND revoked = false
            RETURNING id
            """,
            token_id,
        )
        return updated is not None

    @beartype
    async def touch(self, token_id: UUID, used_at: datetime) -> None:
        """Record when the access token was last presented."""
        await self._db.execute(
            "UPDATE oauth_tokens SET last_used_at = $2 WHERE id = $1",
            token_id,
            used_at,
        )
