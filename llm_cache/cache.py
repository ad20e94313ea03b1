"""Migrating cache: SHA3-256 keys with transparent fallback to legacy SHA-1 keys."""

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from .config import get_db_path
from .storage import MemoryStore, SqliteStore
from .utils import KeyScheme, derive_key

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()


@dataclass(frozen=True)
class LookupResult:
    """Tagged outcome of probing the store for one (prompt, llm_key) pair.

    ``source`` is the scheme whose key matched, or None on a miss.
    """

    source: Optional[KeyScheme] = None
    key: Optional[str] = None
    value: Any = None

    @property
    def hit(self) -> bool:
        return self.source is not None

    @classmethod
    def miss(cls) -> "LookupResult":
        return cls()


class BaseCache(ABC, Generic[T]):
    """Base class for all caches.

    Callers are responsible for storing values of a consistent type per
    cache instance.
    """

    @abstractmethod
    async def lookup(self, prompt: str, llm_key: str) -> Optional[T]:
        """Return the cached value for (prompt, llm_key), or None on a miss."""

    @abstractmethod
    async def update(self, prompt: str, llm_key: str, value: T) -> None:
        """Store value for (prompt, llm_key), replacing any existing entry."""


class MigratingCache(BaseCache[T]):
    """Cache over a key/value store that migrates legacy-keyed entries on read.

    The store must expose ``get(key, default)``, ``set(key, value)`` and
    ``migrate(legacy_key, current_key, default)``. ``migrate`` has to move an
    entry atomically with respect to every other user of the same store,
    including other cache instances and processes.

    Note: Stats tracking is thread-safe.
    """

    def __init__(self, store):
        self.store = store
        self._stats_lock = threading.Lock()
        self.stats = {
            "hits": 0,
            "misses": 0,
            "legacy_hits": 0
        }

    def _count(self, name: str):
        with self._stats_lock:
            self.stats[name] += 1

    def probe(self, prompt: str, llm_key: str) -> LookupResult:
        """Find the entry for (prompt, llm_key) without migrating it.

        Schemes are tried in KeyScheme order, current before legacy, so the
        current key wins when both are present.
        """
        for scheme in KeyScheme:
            key = derive_key(scheme, prompt, llm_key)
            value = self.store.get(key, _MISSING)
            if value is not _MISSING:
                return LookupResult(scheme, key, value)

        return LookupResult.miss()

    def _lookup(self, prompt: str, llm_key: str) -> Optional[T]:
        result = self.probe(prompt, llm_key)

        if result.source is KeyScheme.LEGACY:
            # Re-checked inside the store: another writer may have set the
            # current key since the probe.
            current_key = derive_key(KeyScheme.CURRENT, prompt, llm_key)
            value, migrated = self.store.migrate(result.key, current_key, _MISSING)
            if value is _MISSING:
                result = LookupResult.miss()
            elif migrated:
                logger.debug("Migrated legacy cache entry %s -> %s", result.key, current_key)
                result = LookupResult(KeyScheme.LEGACY, current_key, value)
            else:
                result = LookupResult(KeyScheme.CURRENT, current_key, value)

        if not result.hit:
            self._count("misses")
            logger.debug("Cache miss for llm_key=%s", llm_key)
            return None

        self._count("hits")
        if result.source is KeyScheme.LEGACY:
            self._count("legacy_hits")
        return result.value

    def _update(self, prompt: str, llm_key: str, value: T):
        self.store.set(derive_key(KeyScheme.CURRENT, prompt, llm_key), value)

    async def lookup(self, prompt: str, llm_key: str) -> Optional[T]:
        """Retrieve a value using a prompt and an LLM key.

        A value found only under the legacy key is rewritten under the current
        key and the legacy entry is deleted in one store-level step.

        Args:
            prompt: The prompt used to find the data
            llm_key: The LLM key used to find the data

        Returns:
            The cached value, or None if not found
        """
        return self._lookup(prompt, llm_key)

    async def update(self, prompt: str, llm_key: str, value: T) -> None:
        """Store a value under the current key only.

        Args:
            prompt: The prompt used to store the data
            llm_key: The LLM key used to store the data
            value: The data to be stored
        """
        self._update(prompt, llm_key, value)


# Process-wide store behind InMemoryCache.global_cache()
_global_store = None
_global_store_lock = threading.Lock()


def _get_global_store() -> MemoryStore:
    global _global_store

    if _global_store is None:
        with _global_store_lock:
            # Double-check pattern to avoid race condition
            if _global_store is None:
                logger.debug("Creating global MemoryStore")
                _global_store = MemoryStore()

    return _global_store


def reset_global_store():
    """Drop the global store so the next global_cache() starts empty."""
    global _global_store

    with _global_store_lock:
        _global_store = None


class InMemoryCache(MigratingCache[T]):
    """A cache for LLM generations that stores data in process memory."""

    def __init__(self, store: Optional[MemoryStore] = None):
        """Initialize InMemoryCache.

        Args:
            store: Store to use (defaults to a new, private MemoryStore)
        """
        super().__init__(store if store is not None else MemoryStore())

    @classmethod
    def global_cache(cls) -> "InMemoryCache":
        """Return a handle on the process-wide in-memory store.

        Every handle shares the same store, so writes through one are visible
        to the others. The store is created on first access and lives for the
        rest of the process.
        """
        return cls(_get_global_store())


class SqliteCache(MigratingCache[T]):
    """A migrating cache persisted in a SQLite database.

    SQLite calls block, so lookup and update run them in a worker thread
    via asyncio.to_thread instead of on the event loop.
    """

    def __init__(
        self,
        cache_dir: Optional[str] = None,
        store: Optional[SqliteStore] = None,
    ):
        """Initialize SqliteCache.

        Args:
            cache_dir: Cache directory path (defaults to LLM_CACHE_DIR env var or ~/.cache/llm-cache)
            store: Pre-built store, e.g. one with custom value codecs
        """
        if store is None:
            db_path = get_db_path(cache_dir)
            store = SqliteStore(str(db_path))
        super().__init__(store)

    async def lookup(self, prompt: str, llm_key: str) -> Optional[T]:
        """Retrieve a value, running the SQLite work in a worker thread."""
        return await asyncio.to_thread(self._lookup, prompt, llm_key)

    async def update(self, prompt: str, llm_key: str, value: T) -> None:
        """Store a value, running the SQLite work in a worker thread."""
        await asyncio.to_thread(self._update, prompt, llm_key, value)

    def close(self):
        self.store.close()
