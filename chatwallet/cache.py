import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Optional


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    """Simple in-memory TTL cache with LRU eviction"""

    def __init__(
        self,
        default_ttl: float = 300,
        max_size: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._cache: "OrderedDict[Hashable, CacheEntry]" = OrderedDict()
        self._lock = asyncio.Lock()

    def _live(self, key: Hashable) -> Optional[CacheEntry]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            del self._cache[key]
            return None
        self._cache.move_to_end(key)
        return entry

    def _store(self, key: Hashable, value: Any, ttl: Optional[float]) -> None:
        ttl = ttl or self.default_ttl
        self._cache[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)
        self._cache.move_to_end(key)
        while len(self._cache) > self.max_size:
            self._cache.popitem(last=False)

    async def add(self, key: Hashable, value: Any = True, ttl: Optional[float] = None) -> bool:
        """Store ``key`` only if absent; False when it is already live."""
        async with self._lock:
            if self._live(key) is not None:
                return False
            self._store(key, value, ttl)
            return True

    async def discard(self, key: Hashable) -> None:
        async with self._lock:
            self._cache.pop(key, None)

    def size(self) -> int:
        return len(self._cache)


class ConfirmationGuard:
    """Remembers confirmation buttons that were already acted upon.

    Keyed by ``(chat_id, message_id)`` of the message carrying the buttons.
    It covers taps that arrive before that message is deleted; once the
    message is gone there is no button left to press.
    """

    def __init__(self, ttl_seconds: float, cache: Optional[TTLCache] = None):
        self._cache = cache or TTLCache(default_ttl=ttl_seconds)

    async def claim(self, chat_id: int, message_id: int) -> bool:
        return await self._cache.add((chat_id, message_id))

    async def release(self, chat_id: int, message_id: int) -> None:
        """Forget a claim whose operation never reached the ledger."""
        await self._cache.discard((chat_id, message_id))

    def __len__(self) -> int:
        return self._cache.size()
