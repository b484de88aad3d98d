"""In-memory collaborators and factories for authorization server tests.

The stores mirror the conditional-update semantics of the PostgreSQL
implementations: ``attach_tokens`` and ``revoke`` check and write without
yielding to the event loop, so concurrent callers race exactly as they
would on a single row.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

from attrs import evolve

from grant_core.core.auth.oauth2.audit import AuditEventType, SecurityEvent
from grant_core.core.auth.oauth2.codec import TokenCodec
from grant_core.core.auth.oauth2.grants import TokenRequest
from grant_core.core.auth.oauth2.models import (
    Application,
    ApplicationEnvironment,
    ApplicationStatus,
    DelegatedToken,
    IssuedCredentials,
    TokenResponse,
)
from grant_core.core.auth.oauth2.server import OAuth2Server

CLIENT_ID = "test-client"
CLIENT_SECRET = "s3cret-client-value"
REDIRECT_URI = "https://app.example.com/callback"
APPROVED_SCOPES = ("read:profile", "read:posts", "write:posts")


class FrozenClock:
    """Controllable timezone-aware clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class InMemoryApplicationStore:
    """Application registry keyed by client id."""

    def __init__(self) -> None:
        self.by_client_id: dict[str, Application] = {}

    def add(self, application: Application) -> Application:
        self.by_client_id[application.client_id] = application
        return application

    def replace(self, client_id: str, **changes: object) -> Application:
        updated = evolve(self.by_client_id[client_id], **changes)
        self.by_client_id[client_id] = updated
        return updated

    async def get_by_client_id(self, client_id: str) -> Application | None:
        await asyncio.sleep(0)
        return self.by_client_id.get(client_id)

    async def get_by_id(self, application_id: UUID) -> Application | None:
        await asyncio.sleep(0)
        for application in self.by_client_id.values():
            if application.id == application_id:
                return application
        return None


class InMemoryUserDirectory:
    """Users known to the account service."""

    def __init__(self) -> None:
        self.usernames: dict[UUID, str] = {}

    def add(self, username: str) -> UUID:
        user_id = uuid4()
        self.usernames[user_id] = username
        return user_id

    async def exists(self, user_id: UUID) -> bool:
        return user_id in self.usernames

    async def get_username(self, user_id: UUID) -> str | None:
        return self.usernames.get(user_id)


class InMemoryTokenStore:
    """Grant records with single-row conditional updates."""

    def __init__(self) -> None:
        self.records: dict[UUID, DelegatedToken] = {}

    async def create(self, token: DelegatedToken) -> None:
        self.records[token.id] = token

    async def get_by_code(self, code: str) -> DelegatedToken | None:
        await asyncio.sleep(0)
        return next((r for r in self.records.values() if r.code == code), None)

    async def get_by_access_fingerprint(self, fingerprint: str) -> DelegatedToken | None:
        await asyncio.sleep(0)
        return next(
            (
                r
                for r in self.records.values()
                if r.access_token_fingerprint == fingerprint
            ),
            None,
        )

    async def get_by_refresh_fingerprint(
        self, fingerprint: str
    ) -> DelegatedToken | None:
        await asyncio.sleep(0)
        return next(
            (
                r
                for r in self.records.values()
                if r.refresh_token_fingerprint == fingerprint
            ),
            None,
        )

    async def attach_tokens(
        self, token_id: UUID, code: str, credentials: IssuedCredentials
    ) -> bool:
        record = self.records.get(token_id)
        if (
            record is None
            or record.code != code
            or record.access_token_fingerprint is not None
            or record.revoked
        ):
            return False
        self.records[token_id] = evolve(
            record,
            code=None,
            code_expires_at=None,
            access_token_hash=credentials.access_token_hash,
            access_token_fingerprint=credentials.access_token_fingerprint,
            refresh_token_hash=credentials.refresh_token_hash,
            refresh_token_fingerprint=credentials.refresh_token_fingerprint,
            expires_at=credentials.expires_at,
            refresh_expires_at=credentials.refresh_expires_at,
        )
        return True

    async def revoke(self, token_id: UUID) -> bool:
        record = self.records.get(token_id)
        if record is None or record.revoked:
            return False
        self.records[token_id] = evolve(record, revoked=True)
        return True

    async def touch(self, token_id: UUID, used_at: datetime) -> None:
        record = self.records.get(token_id)
        if record is not None:
            self.records[token_id] = evolve(record, last_used_at=used_at)


class RecordingAuditLogger:
    """Audit sink that keeps events for assertions."""

    def __init__(self) -> None:
        self.events: list[SecurityEvent] = []

    async def log_event(self, event: SecurityEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: AuditEventType) -> list[SecurityEvent]:
        return [event for event in self.events if event.event_type is event_type]


def make_application(
    codec: TokenCodec,
    *,
    client_id: str = CLIENT_ID,
    client_secret: str = CLIENT_SECRET,
    approved_scopes: tuple[str, ...] = APPROVED_SCOPES,
    redirect_uris: tuple[str, ...] = (REDIRECT_URI,),
    status: ApplicationStatus = ApplicationStatus.ACTIVE,
    environment: ApplicationEnvironment = ApplicationEnvironment.DEVELOPMENT,
    rate_limit_override: int | None = None,
) -> Application:
    """Build a registered application with a hashed client secret."""
    return Application(
        id=uuid4(),
        client_id=client_id,
        client_secret_hash=codec.hash_secret(client_secret),
        name=f"{client_id} app",
        redirect_uris=redirect_uris,
        approved_scopes=approved_scopes,
        environment=environment,
        rate_limit_override=rate_limit_override,
        status=status,
    )


async def issue_code(server: OAuth2Server, user_id: UUID, **overrides: object) -> str:
    """Run the authorization step and return the issued code."""
    params: dict[str, object] = {
        "response_type": "code",
        "client_id": CLIENT_ID,
        "redirect_uri": REDIRECT_URI,
        "scope": "read:profile read:posts",
        "user_id": user_id,
        **overrides,
    }
    result = await server.authorize(**params)  # type: ignore[arg-type]
    return result.unwrap().code


async def exchange_code(
    server: OAuth2Server, code: str, **overrides: object
) -> TokenResponse:
    """Exchange a code for tokens, failing the test on error."""
    params: dict[str, object] = {
        "grant_type": "authorization_code",
        "client_id": CLIENT_ID,
        "client_secret": CLIENT_SECRET,
        "code": code,
        "redirect_uri": REDIRECT_URI,
        **overrides,
    }
    result = await server.token(TokenRequest(**params))  # type: ignore[arg-type]
    return result.unwrap()
