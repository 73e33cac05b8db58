"""
Redis-backed response cache, shared between gateway replicas.

Expiry is left to Redis (``SET ... EX``).
"""

import logging
from typing import Optional

import redis.asyncio as redis
from pydantic import ValidationError as PydanticValidationError

from ..core.errors import CacheError
from ..models.response import GenerationResponse
from .base import CacheStats, ResponseCache
from .keys import DEFAULT_KEY_PREFIX

logger = logging.getLogger(__name__)


class RedisResponseCache(ResponseCache):
    """
    Redis response cache.

    Args:
        redis_url: Connection URL
        default_ttl: TTL in seconds when ``set`` gets none
        key_prefix: Namespace used for ``clear`` and ``stats``
        client: Pre-built client (used by tests)
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        default_ttl: int = 3600,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        client: Optional[redis.Redis] = None,
    ):
        self._redis_url = redis_url
        self._default_ttl = default_ttl
        self._key_prefix = key_prefix
        self._client = client
        self._hits = 0
        self._misses = 0

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self._redis_url, decode_responses=False)
        return self._client

    async def get(self, key: str) -> Optional[GenerationResponse]:
        try:
            data = await self._get_client().get(key)
        except redis.RedisError as e:
            raise CacheError(f"Redis get failed: {e}")

        if data is None:
            self._misses += 1
            return None

        try:
            response = GenerationResponse.model_validate_json(data)
        except PydanticValidationError as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            await self.delete(key)
            self._misses += 1
            return None

        self._hits += 1
        return response

    async def set(self, key: str, response: GenerationResponse, ttl: Optional[int] = None) -> None:
        ttl = self._default_ttl if ttl is None else ttl
        try:
            await self._get_client().set(key, response.model_dump_json(), ex=ttl)
        except redis.RedisError as e:
            raise CacheError(f"Redis set failed: {e}")

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._get_client().delete(key))
        except redis.RedisError as e:
            raise CacheError(f"Redis delete failed: {e}")

    async def clear(self) -> None:
        client = self._get_client()
        try:
            async for key in client.scan_iter(match=f"{self._key_prefix}*"):
                await client.delete(key)
        except redis.RedisError as e:
            raise CacheError(f"Redis clear failed: {e}")

    async def cleanup(self) -> int:
        return 0

    async def stats(self) -> CacheStats:
        client = self._get_client()
        entries = 0
        try:
            async for _ in client.scan_iter(match=f"{self._key_prefix}*"):
                entries += 1
        except redis.RedisError as e:
            raise CacheError(f"Redis stats failed: {e}")

        total = self._hits + self._misses
        return CacheStats(
            backend="redis",
            entries=entries,
            hits=self._hits,
            misses=self._misses,
            hit_rate=self._hits / total if total > 0 else 0.0,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
