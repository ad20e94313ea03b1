"""Cache location configuration."""

import os
from pathlib import Path

CACHE_DIR_ENV_VAR = "LLM_CACHE_DIR"
DB_FILENAME = "cache.db"


def get_cache_dir() -> Path:
    """Get the cache directory path.

    Uses LLM_CACHE_DIR when set, otherwise ~/.cache/llm-cache.
    """
    cache_dir = os.environ.get(CACHE_DIR_ENV_VAR)
    if cache_dir:
        return Path(cache_dir)
    return Path.home() / ".cache" / "llm-cache"


def get_db_path(cache_dir=None) -> Path:
    """Get the SQLite database path inside the cache directory."""
    if cache_dir is None:
        cache_dir = get_cache_dir()
    return Path(cache_dir) / DB_FILENAME
