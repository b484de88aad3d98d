"""Unit tests for the sliding-window rate limiter."""

import asyncio
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from grant_core.core.auth.oauth2.models import ApplicationEnvironment
from grant_core.core.rate_limiter import (
    RateLimitResult,
    SlidingWindowRateLimiter,
    build_rate_limit_key,
    normalize_endpoint,
)
from tests.fixtures.oauth2 import make_application


class FakeClock:
    """Float clock in unix seconds."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def fake_clock():
    """Clock the limiter reads instead of wall time."""
    return FakeClock()


@pytest.fixture
def limiter(cache, settings, fake_clock):
    """Limiter over fake Redis."""
    return SlidingWindowRateLimiter(cache, settings, clock=fake_clock)


class TestRateLimitKeys:
    """Tests for key construction."""

    def test_normalize_endpoint(self):
        """Method, query string and stray slashes are dropped."""
        assert normalize_endpoint("GET /api//posts/?page=2") == "api/posts"
        assert normalize_endpoint("/oauth2/token") == "oauth2/token"

    def test_user_key(self):
        """User scoped keys carry the user and endpoint."""
        user_id = uuid4()

        key = build_rate_limit_key("client-1", user_id, "GET /api/posts")

        assert key == f"rate_limit:oauth:app:client-1:user:{user_id}:endpoint:api/posts"

    def test_client_credentials_key(self):
        """Userless requests share the client-credentials window."""
        assert (
            build_rate_limit_key("client-1", None, None)
            == "rate_limit:oauth:app:client-1:client-credentials"
        )


class TestSlidingWindowRateLimiter:
    """Tests for the Redis-backed window."""

    async def test_allows_up_to_limit_then_denies(self, limiter):
        """The request after the limit is refused with Retry-After."""
        results = [
            await limiter.check_rate_limit("client-1", None, "/oauth2/token", 3)
            for _ in range(4)
        ]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        denied = results[-1]
        assert denied.current == 4
        assert denied.retry_after >= 1
        assert denied.headers()["Retry-After"] == str(denied.retry_after)

    async def test_concurrent_checks_never_exceed_limit(self, limiter):
        """Simultaneous requests on one key admit exactly the limit."""
        results = await asyncio.gather(
            *(
                limiter.check_rate_limit("client-1", None, "/oauth2/token", 5)
                for _ in range(12)
            )
        )

        assert sum(r.allowed for r in results) == 5
        assert sorted(r.current for r in results) == list(range(1, 13))

    async def test_window_slides(self, limiter, fake_clock):
        """Old requests fall out of the window."""
        for _ in range(3):
            await limiter.check_rate_limit("client-1", None, None, 3, window_seconds=60)
        assert not (
            await limiter.check_rate_limit("client-1", None, None, 3, window_seconds=60)
        ).allowed

        fake_clock.now += 61

        result = await limiter.check_rate_limit(
            "client-1", None, None, 3, window_seconds=60
        )
        assert result.allowed
        assert result.current == 1

    async def test_reset_tracks_oldest_request(self, limiter, fake_clock):
        """Reset is when the oldest counted request leaves the window."""
        first_at = fake_clock.now
        await limiter.check_rate_limit("client-1", None, None, 10, window_seconds=60)
        fake_clock.now += 30

        result = await limiter.check_rate_limit(
            "client-1", None, None, 10, window_seconds=60
        )

        assert result.reset_at == int(first_at) + 60

    async def test_keys_are_isolated(self, limiter):
        """Different users and endpoints count separately."""
        await limiter.check_rate_limit("client-1", "user-a", "/posts", 1)
        other_user = await limiter.check_rate_limit("client-1", "user-b", "/posts", 1)
        other_endpoint = await limiter.check_rate_limit(
            "client-1", "user-a", "/comments", 1
        )

        assert other_user.allowed
        assert other_endpoint.allowed

    async def test_status_does_not_count(self, limiter):
        """Status reports the window without adding to it."""
        await limiter.check_rate_limit("client-1", None, None, 5)

        first = await limiter.get_rate_limit_status("client-1", None, None, 5)
        second = await limiter.get_rate_limit_status("client-1", None, None, 5)

        assert first.current == second.current == 1
        assert second.remaining == 4

    async def test_fails_open_when_redis_unavailable(self, settings, fake_clock, caplog):
        """Redis errors allow the request and are logged."""
        broken = MagicMock()
        broken.run_script = AsyncMock(side_effect=RedisConnectionError("down"))
        limiter = SlidingWindowRateLimiter(broken, settings, clock=fake_clock)

        with caplog.at_level("ERROR"):
            result = await limiter.check_rate_limit("client-1", None, None, 1)

        assert result.allowed
        assert result.remaining == 1
        assert "allowing request" in caplog.text

    async def test_check_application_uses_client_id_and_override(
        self, limiter, codec, redis_client
    ):
        """The override beats the environment tier."""
        application = make_application(codec, rate_limit_override=1)

        assert (await limiter.check_application(application, None, None)).allowed
        assert not (await limiter.check_application(application, None, None)).allowed
        assert await redis_client.exists(
            f"rate_limit:oauth:app:{application.client_id}:client-credentials"
        )


class TestResolveLimit:
    """Tests for effective limit selection."""

    def test_precedence(self, limiter, codec, settings):
        """Explicit, then override, then environment tier."""
        development = make_application(codec)
        production = make_application(
            codec, environment=ApplicationEnvironment.PRODUCTION
        )
        overridden = make_application(codec, rate_limit_override=7)

        assert limiter.resolve_limit(development) == settings.rate_limit_development
        assert limiter.resolve_limit(production) == settings.rate_limit_production
        assert limiter.resolve_limit(overridden) == 7
        assert limiter.resolve_limit(overridden, 3) == 3


class TestRateLimitResult:
    """Tests for response headers."""

    def test_allowed_headers_have_no_retry_after(self):
        """Retry-After is only sent with a refusal."""
        result = RateLimitResult(
            allowed=True, limit=10, current=4, remaining=6, reset_at=1_700_000_060
        )

        assert result.headers() == {
            "X-RateLimit-Limit": "10",
            "X-RateLimit-Remaining": "6",
            "X-RateLimit-Reset": "1700000060",
            "X-RateLimit-Used": "4",
        }
