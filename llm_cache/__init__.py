"""Content-addressed LLM result cache with legacy key migration."""

from .cache import (
    BaseCache,
    InMemoryCache,
    LookupResult,
    MigratingCache,
    SqliteCache,
    reset_global_store,
)
from .errors import DeserializationError, LLMCacheError
from .generation import Generation, deserialize_stored_generation, serialize_generation
from .storage import MemoryStore, SqliteStore
from .utils import KeyScheme, generate_cache_key, generate_legacy_cache_key

__version__ = "0.1.0"


def global_cache() -> InMemoryCache:
    """Return a handle on the process-wide in-memory cache.

    Example:
        >>> from llm_cache import global_cache
        >>> cache = global_cache()
        >>> await cache.update("prompt", "llm-key", ["result"])
        >>> await global_cache().lookup("prompt", "llm-key")
        ['result']
    """
    return InMemoryCache.global_cache()


__all__ = [
    "BaseCache",
    "MigratingCache",
    "InMemoryCache",
    "SqliteCache",
    "LookupResult",
    "MemoryStore",
    "SqliteStore",
    "KeyScheme",
    "generate_cache_key",
    "generate_legacy_cache_key",
    "Generation",
    "serialize_generation",
    "deserialize_stored_generation",
    "LLMCacheError",
    "DeserializationError",
    "global_cache",
    "reset_global_store",
]
