"""
Response caching.
"""

from .base import CacheStats, ResponseCache
from .keys import TASK_TTLS, build_cache_key, image_fingerprint, ttl_for
from .memory import InMemoryResponseCache
from .redis_cache import RedisResponseCache

__all__ = [
    "CacheStats",
    "ResponseCache",
    "TASK_TTLS",
    "build_cache_key",
    "image_fingerprint",
    "ttl_for",
    "InMemoryResponseCache",
    "RedisResponseCache",
]
