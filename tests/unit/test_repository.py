"""Unit tests for the PostgreSQL stores."""

from datetime import datetime, timezone
from uuid import uuid4

from grant_core.core.auth.oauth2.models import (
    ApplicationEnvironment,
    ApplicationStatus,
    IssuedCredentials,
    PKCEMethod,
)
from grant_core.core.auth.oauth2.repository import (
    PostgresApplicationStore,
    PostgresTokenStore,
    PostgresUserDirectory,
    application_from_row,
    token_from_row,
)


def application_row(**overrides):
    """Row shaped like ``oauth_applications``."""
    row = {
        "id": uuid4(),
        "client_id": "client-1",
        "client_secret_hash": "$argon2id$stub",
        "name": "Client One",
        "redirect_uris": ["https://a.example.com/cb"],
        "approved_scopes": ["read:profile"],
        "environment": "production",
        "rate_limit_override": None,
        "status": "active",
    }
    row.update(overrides)
    return row


def token_row(**overrides):
    """Row shaped like ``oauth_tokens``."""
    now = datetime.now(timezone.utc)
    row = {
        "id": uuid4(),
        "application_id": uuid4(),
        "user_id": uuid4(),
        "scopes": ["read:profile"],
        "code": "abc",
        "code_expires_at": now,
        "redirect_uri": "https://a.example.com/cb",
        "pkce_challenge": "challenge",
        "pkce_method": "S256",
        "access_token_hash": None,
        "access_token_fingerprint": None,
        "refresh_token_hash": None,
        "refresh_token_fingerprint": None,
        "expires_at": None,
        "refresh_expires_at": None,
        "revoked": False,
        "created_at": now,
        "last_used_at": None,
    }
    row.update(overrides)
    return row


def credentials():
    """Issued credentials with placeholder values."""
    now = datetime.now(timezone.utc)
    return IssuedCredentials(
        access_token="a",
        access_token_hash="ah",
        access_token_fingerprint="af",
        refresh_token="r",
        refresh_token_hash="rh",
        refresh_token_fingerprint="rf",
        expires_at=now,
        refresh_expires_at=now,
        expires_in=3600,
    )


class TestRowMapping:
    """Tests for row to record conversion."""

    def test_application_from_row(self):
        """Arrays become tuples and strings become enums."""
        application = application_from_row(application_row())

        assert application.redirect_uris == ("https://a.example.com/cb",)
        assert application.environment is ApplicationEnvironment.PRODUCTION
        assert application.status is ApplicationStatus.ACTIVE
        assert application.is_active

    def test_null_arrays_are_empty(self):
        """NULL arrays map to empty tuples."""
        application = application_from_row(
            application_row(redirect_uris=None, approved_scopes=None)
        )

        assert application.redirect_uris == ()
        assert application.approved_scopes == ()

    def test_token_from_row(self):
        """PKCE method is parsed and the record is in code state."""
        record = token_from_row(token_row())

        assert record.pkce_method is PKCEMethod.S256
        assert not record.is_exchanged

    def test_token_without_pkce(self):
        """An empty method means no PKCE."""
        assert token_from_row(token_row(pkce_method=None)).pkce_method is None


class TestPostgresApplicationStore:
    """Tests for application lookups."""

    async def test_get_by_client_id(self, mock_db):
        """Rows are mapped, misses are None."""
        mock_db.fetchrow.return_value = application_row()
        store = PostgresApplicationStore(mock_db)

        application = await store.get_by_client_id("client-1")

        assert application.client_id == "client-1"
        query, client_id = mock_db.fetchrow.call_args.args
        assert "FROM oauth_applications WHERE client_id = $1" in query
        assert client_id == "client-1"

        mock_db.fetchrow.return_value = None
        assert await store.get_by_id(uuid4()) is None


class TestPostgresUserDirectory:
    """Tests for user lookups."""

    async def test_exists_and_username(self, mock_db):
        """Both read the users table."""
        directory = PostgresUserDirectory(mock_db)
        mock_db.fetchval.return_value = True

        assert await directory.exists(uuid4())

        mock_db.fetchval.return_value = "alice"
        assert await directory.get_username(uuid4()) == "alice"
        assert "FROM users" in mock_db.fetchval.call_args.args[0]


class TestPostgresTokenStore:
    """Tests for grant persistence."""

    async def test_attach_tokens_is_conditional(self, mock_db):
        """The update only matches an unexchanged, unrevoked record."""
        store = PostgresTokenStore(mock_db)
        token_id = uuid4()
        mock_db.fetchval.return_value = token_id

        assert await store.attach_tokens(token_id, "abc", credentials())

        query = mock_db.fetchval.call_args.args[0]
        assert "access_token_fingerprint IS NULL" in query
        assert "revoked = false" in query
        assert "code = NULL" in query
        assert "RETURNING id" in query

    async def test_attach_tokens_lost_race(self, mock_db):
        """No returned row means someone else exchanged the code."""
        store = PostgresTokenStore(mock_db)
        mock_db.fetchval.return_value = None

        assert not await store.attach_tokens(uuid4(), "abc", credentials())

    async def test_revoke_reports_transition(self, mock_db):
        """Only the first revoke reports True."""
        store = PostgresTokenStore(mock_db)
        token_id = uuid4()

        mock_db.fetchval.return_value = token_id
        assert await store.revoke(token_id)
        assert "revoked = false" in mock_db.fetchval.call_args.args[0]

        mock_db.fetchval.return_value = None
        assert not await store.revoke(token_id)

    async def test_create_passes_scopes_as_list(self, mock_db):
        """Arrays are sent as lists and enums as their values."""
        store = PostgresTokenStore(mock_db)
        record = token_from_row(token_row())

        await store.create(record)

        args = mock_db.execute.call_args.args
        assert "INSERT INTO oauth_tokens" in args[0]
        assert args[4] == ["read:profile"]
        assert args[9] == "S256"

    async def test_get_by_refresh_fingerprint(self, mock_db):
        """Lookups go through the fingerprint column."""
        store = PostgresTokenStore(mock_db)
        mock_db.fetchrow.return_value = token_row(refresh_token_fingerprint="rf")

        record = await store.get_by_refresh_fingerprint("rf")

        assert record.refresh_token_fingerprint == "rf"
        assert "WHERE refresh_token_fingerprint = $1" in mock_db.fetchrow.call_args.args[0]
