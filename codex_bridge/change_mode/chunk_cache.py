from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Sequence

from ..config import config
from ..models import EditChunk
from .cache_key_builder import compute_cache_key, default_salt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    chunks: tuple[EditChunk, ...]
    created_at: float


class ChunkCache:
    """
    In-memory store of chunk sequences for paginated retrieval.

    Behavior:
    - Entries expire ``ttl_seconds`` after creation (measured with ``clock``).
    - At most ``max_entries`` entries are kept; the oldest-created is evicted first.
    - Expired and evicted keys look exactly like unknown keys.
    - One lock guards the container; callers never lock per key because each
      synthesis run writes once to a freshly generated key.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        salt_factory: Callable[[], str] = default_salt,
    ) -> None:
        self.ttl_seconds = float(ttl_seconds if ttl_seconds is not None else config.CACHE.TTL_SECONDS)
        self.max_entries = max(1, int(max_entries if max_entries is not None else config.CACHE.MAX_ENTRIES))
        self._clock = clock
        self._salt_factory = salt_factory
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired_locked(self._clock())
            return len(self._entries)

    def store(self, key: str, chunks: Sequence[EditChunk]) -> None:
        now = self._clock()
        entry = CacheEntry(key=key, chunks=tuple(chunks), created_at=now)
        with self._lock:
            self._purge_expired_locked(now)
            self._entries.pop(key, None)
            self._entries[key] = entry
            while len(self._entries) > self.max_entries:
                evicted_key, _ = self._entries.popitem(last=False)
                logger.debug("evicted chunk cache entry %s (capacity %s)", evicted_key, self.max_entries)

    def lookup(self, key: str) -> tuple[EditChunk, ...] | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_expired(entry, now):
                del self._entries[key]
                logger.debug("chunk cache entry %s expired", key)
                return None
            return entry.chunks

    def cache_chunks(self, prompt: str, chunks: Sequence[EditChunk]) -> str:
        """Store ``chunks`` under a fresh key derived from ``prompt`` and return the key."""
        key = compute_cache_key(prompt, self._salt_factory)
        self.store(key, chunks)
        return key

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_expired_locked(self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return (now - entry.created_at) >= self.ttl_seconds

    def _purge_expired_locked(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._entries[key]
        return len(expired)


_default_cache: ChunkCache | None = None
_default_cache_lock = threading.Lock()


def get_chunk_cache() -> ChunkCache:
    global _default_cache
    with _default_cache_lock:
        if _default_cache is None:
            _default_cache = ChunkCache()
        return _default_cache


def reset_chunk_cache() -> None:
    global _default_cache
    with _default_cache_lock:
        _default_cache = None
