# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Sliding-window rate limiting for OAuth applications.

Counters live in a Redis sorted set per (application, user, endpoint), so
every server process sees the same window. The check-and-increment is one
Lua script and therefore atomic. When Redis is unavailable the limiter
fails open and logs the failure.
"""

import logging
import math
import re
import time
import uuid
from collections.abc import Callable
from uuid import UUID

from attrs import field, frozen
from beartype import beartype
from redis.exceptions import RedisError

from .auth.oauth2.models import Application, ApplicationEnvironment
from .cache import Cache
from .config import Settings

logger = logging.getLogger(__name__)

# Keys outlive the window by an hour so a quiet client keeps its history.
KEY_TTL_GRACE_SECONDS = 3600

SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local member = ARGV[3]
local ttl = tonumber(ARGV[4])
local floor = now - window

redis.call('ZREMRANGEBYSCORE', key, '-inf', '(' .. floor)
redis.call('ZADD', key, now, member)
redis.call('EXPIRE', key, ttl)
local count = redis.call('ZCOUNT', key, floor, now)
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
return {count, oldest[2]}
"""

_METHOD_PREFIX = re.compile(r"^[A-Z]+ ")
_QUERY_STRING = re.compile(r"\?.*$")
_REPEATED_SLASHES = re.compile(r"/+")


@frozen
class RateLimitResult:
    """Outcome of a rate limit check."""

    allowed: bool = field()
    limit: int = field()
    current: int = field()
    remaining: int = field()
    reset_at: int = field()  # unix seconds
    retry_after: int = field(default=0)

    @beartype
    def headers(self) -> dict[str, str]:
        """Rate limit headers, attached whether or not the request is allowed."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
            "X-RateLimit-Used": str(self.current),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


@beartype
def normalize_endpoint(endpoint: str) -> str:
    """Reduce ``"GET /api//posts/?page=2"`` to ``"api/posts"``."""
    endpoint = _METHOD_PREFIX.sub("", endpoint)
    endpoint = _QUERY_STRING.sub("", endpoint)
    endpoint = _REPEATED_SLASHES.sub("/", endpoint)
    return endpoint.strip("/")


@beartype
def build_rate_limit_key(
    application_id: str, user_id: UUID | str | None, endpoint: str | None = None
) -> str:
    """Compose the Redis key for one (application, user, endpoint) window."""
    key = f"rate_limit:oauth:app:{application_id}"
    key += f":user:{user_id}" if user_id is not None else ":client-credentials"
    if endpoint:
        key += f":endpoint:{normalize_endpoint(endpoint)}"
    return key


class SlidingWindowRateLimiter:
    """Per-application sliding-window limiter backed by Redis."""

    def __init__(
        self,
        cache: Cache,
        settings: Settings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache = cache
        self._settings = settings
        self._clock = clock

    @beartype
    def resolve_limit(self, application: Application, limit: int | None = None) -> int:
        """Explicit limit, then the application's override, then its tier."""
        if limit is not None:
            return limit
        if application.rate_limit_override is not None:
            return application.rate_limit_override
        if application.environment is ApplicationEnvironment.PRODUCTION:
            return self._settings.rate_limit_production
        return self._settings.rate_limit_development

    @beartype
    async def check_rate_limit(
        self,
        application_id: str,
        user_id: UUID | str | None,
        endpoint: str | None,
        limit: int,
        window_seconds: int | None = None,
    ) -> RateLimitResult:
        """Record one request and report whether it fits in the window."""
        window_seconds = window_seconds or self._settings.rate_limit_window_seconds
        key = build_rate_limit_key(application_id, user_id, endpoint)
        now = self._clock()
        now_ms = int(now * 1000)
        window_ms = window_seconds * 1000

        try:
            count, oldest = await self._cache.run_script(
                "sliding_window",
                SLIDING_WINDOW_SCRIPT,
                keys=[key],
                args=[
                    now_ms,
                    window_ms,
                    f"{now_ms}-{uuid.uuid4().hex}",
                    window_seconds + KEY_TTL_GRACE_SECONDS,
                ],
            )
        except (RedisError, OSError) as e:
            logger.error("Rate limit check failed for %s, allowing request: %s", key, e)
            return self._fail_open(limit, now, window_seconds)

        current = int(count)
        oldest_ms = float(oldest) if oldest is not None else float(now_ms)
        return self._result(current, limit, oldest_ms, window_ms, now)

    @beartype
    async def check_application(
        self,
        application: Application,
        user_id: UUID | str | None,
        endpoint: str | None,
        limit: int | None = None,
    ) -> RateLimitResult:
        """Check using the application's effective limit."""
        return await self.check_rate_limit(
            application.client_id,
            user_id,
            endpoint,
            self.resolve_limit(application, limit),
        )

    @beartype
    async def get_rate_limit_status(
        self,
        application_id: str,
        user_id: UUID | str | None,
        endpoint: str | None,
        limit: int,
        window_seconds: int | None = None,
    ) -> RateLimitResult:
        """Report the current window without counting a request."""
        window_seconds = window_seconds or self._settings.rate_limit_window_seconds
        key = build_rate_limit_key(application_id, user_id, endpoint)
        now = self._clock()
        now_ms = int(now * 1000)
        window_ms = window_seconds * 1000

        try:
            current = await self._cache.zcount(key, now_ms - window_ms, now_ms)
            oldest = await self._cache.zoldest_score(key)
        except (RedisError, OSError) as e:
            logger.error("Rate limit status failed for %s: %s", key, e)
            return self._fail_open(limit, now, window_seconds)

        oldest_ms = oldest if oldest is not None and current else float(now_ms)
        # Stale entries below the window floor are not yet trimmed here.
        oldest_ms = max(oldest_ms, float(now_ms - window_ms))
        return self._result(current, limit, oldest_ms, window_ms, now)

    @staticmethod
    def _result(
        current: int, limit: int, oldest_ms: float, window_ms: int, now: float
    ) -> RateLimitResult:
        reset_at = math.ceil((oldest_ms + window_ms) / 1000)
        allowed = current <= limit
        return RateLimitResult(
            allowed=allowed,
            limit=limit,
            current=current,
            remaining=max(0, limit - current),
            reset_at=reset_at,
            retry_after=0 if allowed else max(1, reset_at - math.floor(now)),
        )

    @staticmethod
    def _fail_open(limit: int, now: float, window_seconds: int) -> RateLimitResult:
        return RateLimitResult(
            allowed=True,
            limit=limit,
            current=0,
            remaining=limit,
            reset_at=math.ceil(now) + window_seconds,
        )
