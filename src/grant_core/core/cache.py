# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Redis access layer shared by every server process."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import redis.asyncio as redis
from attrs import field, frozen
from beartype import beartype

from .config import get_settings

__all__ = [
    "Cache",
    "CacheConfig",
    "get_cache",
    "RedisType",
]

if TYPE_CHECKING:
    from redis.asyncio import Redis as RedisType
    from redis.commands.core import AsyncScript
else:
    RedisType = redis.Redis


@frozen
class CacheConfig:
    """Immutable cache configuration."""

    url: str = field()
    max_connections: int = field(default=10)
    decode_responses: bool = field(default=True)


class Cache:
    """Redis manager with async support.

    The constructor optionally accepts an already-created
    ``redis.asyncio.Redis`` instance, which is how tests hand in a
    ``fakeredis`` client.
    """

    def __init__(self, redis_client: RedisType | None = None) -> None:
        self._redis: RedisType | None = redis_client
        self._config = self._get_config()
        self._scripts: dict[str, AsyncScript] = {}

    @beartype
    def _get_config(self) -> CacheConfig:
        """Get cache configuration from settings."""
        settings = get_settings()
        return CacheConfig(
            url=settings.redis_url,
            max_connections=settings.redis_max_connections,
        )

    @property
    def client(self) -> RedisType:
        """Return the connected client or fail loudly."""
        if self._redis is None:
            raise RuntimeError("Cache not connected")
        return self._redis

    @beartype
    async def connect(self) -> None:
        """Create Redis connection pool."""
        if self._redis is not None:
            return

        self._redis = redis.from_url(
            self._config.url,
            max_connections=self._config.max_connections,
            decode_responses=self._config.decode_responses,
        )

    @beartype
    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._redis is None:
            return

        await self._redis.aclose()
        self._redis = None
        self._scripts.clear()

    @beartype
    async def zcount(self, key: str, minimum: float | str, maximum: float | str) -> int:
        """Count sorted-set members scored within ``[minimum, maximum]``."""
        result = await self.client.zcount(key, minimum, maximum)
        return int(result)

    @beartype
    async def zoldest_score(self, key: str) -> float | None:
        """Score of the lowest-ranked sorted-set member, if any."""
        result = await self.client.zrange(key, 0, 0, withscores=True)
        if not result:
            return None
        return float(result[0][1])

    @beartype
    async def run_script(
        self, name: str, source: str, keys: list[str], args: list[Any]
    ) -> Any:
        """Run a Lua script atomically, registering it on first use.

        Registered scripts are invoked by SHA and reloaded transparently by
        redis-py when the server has flushed its script cache.
        """
        script = self._scripts.get(name)
        if script is None:
            script = self.client.register_script(source)
            self._scripts[name] = script
        return await script(keys=keys, args=args)

    @beartype
    async def health_check(self) -> bool:
        """Perform cache health check."""
        if self._redis is None:
            return False
        try:
            await self._redis.ping()
        except (redis.RedisError, OSError):
            return False
        return True


# Global cache instance
_cache: Cache | None = None


@beartype
def get_cache() -> Cache:
    """Get global cache instance."""
    global _cache
    if _cache is None:
        _cache = Cache()
    return _cache

