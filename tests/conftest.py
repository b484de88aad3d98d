"""Test configuration and fixtures.

This module provides pytest fixtures for the GrantCore authorization
server: fast hashing settings, in-memory stores, a fakeredis-backed cache,
a fully wired ``OAuth2Server`` and an ASGI test client.
"""

from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

from grant_core.api.dependencies import get_oauth2_server
from grant_core.core.auth.oauth2.codec import TokenCodec
from grant_core.core.auth.oauth2.models import Application
from grant_core.core.auth.oauth2.server import OAuth2Server
from grant_core.core.cache import Cache
from grant_core.core.config import Settings
from grant_core.core.result_types import Ok
from grant_core.main import create_app
from tests.fixtures.oauth2 import (
    FrozenClock,
    InMemoryApplicationStore,
    InMemoryTokenStore,
    InMemoryUserDirectory,
    RecordingAuditLogger,
    make_application,
)


@pytest.fixture
def settings() -> Settings:
    """Settings with cheap argon2 parameters."""
    return Settings(
        token_hash_time_cost=1,
        token_hash_memory_cost=1024,
        rate_limit_development=20,
        rate_limit_production=200,
    )


@pytest.fixture
def codec(settings: Settings) -> TokenCodec:
    """Token codec using the test settings."""
    return TokenCodec(settings)


@pytest.fixture
def clock() -> FrozenClock:
    """Controllable clock starting at the current time."""
    return FrozenClock()


@pytest_asyncio.fixture  # type: ignore[misc]
async def redis_client() -> AsyncGenerator[Any, None]:
    """Fake Redis with Lua scripting support."""
    client = FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def cache(redis_client: Any) -> Cache:
    """Cache wrapper over fake Redis."""
    return Cache(redis_client)


@pytest.fixture
def mock_db() -> MagicMock:
    """Create mock database for testing."""
    db = MagicMock()
    db.fetchval = AsyncMock(return_value=None)
    db.fetchrow = AsyncMock(return_value=None)
    db.execute = AsyncMock(return_value=None)
    db.health_check = AsyncMock(return_value=Ok("healthy"))
    return db


@pytest.fixture
def applications() -> InMemoryApplicationStore:
    """Empty application registry."""
    return InMemoryApplicationStore()


@pytest.fixture
def users() -> InMemoryUserDirectory:
    """Empty user directory."""
    return InMemoryUserDirectory()


@pytest.fixture
def tokens() -> InMemoryTokenStore:
    """Empty grant store."""
    return InMemoryTokenStore()


@pytest.fixture
def audit() -> RecordingAuditLogger:
    """Audit sink collecting events."""
    return RecordingAuditLogger()


@pytest.fixture
def application(
    applications: InMemoryApplicationStore, codec: TokenCodec
) -> Application:
    """The registered, active test application."""
    return applications.add(make_application(codec))


@pytest.fixture
def user_id(users: InMemoryUserDirectory) -> UUID:
    """A user known to the account service."""
    return users.add("alice")


@pytest.fixture
def server(
    mock_db: MagicMock,
    cache: Cache,
    settings: Settings,
    applications: InMemoryApplicationStore,
    users: InMemoryUserDirectory,
    tokens: InMemoryTokenStore,
    audit: RecordingAuditLogger,
    clock: FrozenClock,
) -> OAuth2Server:
    """Authorization server wired to in-memory collaborators."""
    return OAuth2Server(
        mock_db,
        cache,
        settings,
        applications=applications,
        users=users,
        tokens=tokens,
        audit=audit,
        clock=clock,
    )


@pytest_asyncio.fixture  # type: ignore[misc]
async def async_client(server: OAuth2Server) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the application with the test server injected."""
    app = create_app()
    app.dependency_overrides[get_oauth2_server] = lambda: server

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
