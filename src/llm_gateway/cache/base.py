"""
Response cache interface.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel

from ..models.response import GenerationResponse


class CacheStats(BaseModel):
    """Cache statistics."""
    backend: str
    entries: int
    hits: int
    misses: int
    evictions: int = 0
    hit_rate: float
    size_bytes: int = 0
    max_size_bytes: Optional[int] = None
    max_entries: Optional[int] = None


class ResponseCache(ABC):
    """
    Key/value store of generation responses with per-entry expiry.

    Backends may raise ``CacheError``; the gateway logs and ignores it.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[GenerationResponse]:
        """Stored response, or None when absent or expired."""

    @abstractmethod
    async def set(self, key: str, response: GenerationResponse, ttl: Optional[int] = None) -> None:
        """Store a response. ``ttl`` in seconds overrides the default."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove one entry. Returns True when something was removed."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove all entries."""

    @abstractmethod
    async def cleanup(self) -> int:
        """Drop expired entries. Returns how many were removed."""

    @abstractmethod
    async def stats(self) -> CacheStats:
        """Current statistics."""

    async def start(self) -> None:
        """Start background work, if any."""

    async def close(self) -> None:
        """Stop background work and release connections."""
