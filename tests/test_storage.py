"""Tests for the stores and the SQLite-backed cache."""

import sqlite3
import threading
from pathlib import Path

import pytest

from llm_cache.cache import SqliteCache
from llm_cache.errors import DeserializationError
from llm_cache.generation import Generation, pack_generations, unpack_generations
from llm_cache.storage import MemoryStore, SqliteStore
from llm_cache.utils import generate_cache_key, generate_legacy_cache_key

CURRENT_KEY = generate_cache_key("p", "k")
LEGACY_KEY = generate_legacy_cache_key("p", "k")


def _access_count(store, cache_key):
    cursor = store._conn.execute(
        "SELECT access_count FROM entries WHERE cache_key = ?", (cache_key,)
    )
    return cursor.fetchone()[0]


def test_memory_store_basic_operations():
    """MemoryStore supports get/set/delete with a default for misses."""
    store = MemoryStore()
    sentinel = object()

    assert store.get("missing") is None
    assert store.get("missing", sentinel) is sentinel

    store.set("key", None)
    assert store.get("key", sentinel) is None
    assert "key" in store

    store.delete("key")
    store.delete("key")
    assert "key" not in store
    assert len(store) == 0


def test_storage_init_creates_database(temp_cache_dir):
    """Should create database file on initialization."""
    db_path = Path(temp_cache_dir) / "nested" / "test.db"
    SqliteStore(str(db_path))
    assert db_path.exists()


def test_storage_init_creates_table(temp_cache_dir):
    """Should create entries table."""
    store = SqliteStore(str(Path(temp_cache_dir) / "test.db"))

    cursor = store._conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='entries'"
    )
    assert cursor.fetchone() is not None


def test_storage_get_nonexistent(temp_cache_dir):
    """Should return the default for a nonexistent cache key."""
    store = SqliteStore(str(Path(temp_cache_dir) / "test.db"))
    assert store.get("nonexistent_key") is None
    assert store.get("nonexistent_key", "fallback") == "fallback"


def test_storage_set_get_delete(temp_cache_dir):
    """Should store, retrieve and delete msgpack-encoded values."""
    store = SqliteStore(str(Path(temp_cache_dir) / "test.db"))

    store.set("key", ["a", {"b": 1}])
    assert store.get("key") == ["a", {"b": 1}]
    assert "key" in store
    assert list(store.keys()) == ["key"]

    store.delete("key")
    assert "key" not in store
    assert len(store) == 0


def test_storage_updates_access_count(temp_cache_dir):
    """Should increment access count on repeated gets."""
    store = SqliteStore(str(Path(temp_cache_dir) / "test.db"))

    store.set("key", "value")
    store.get("key")
    store.get("key")

    assert _access_count(store, "key") == 3  # 1 from set + 2 from gets


def test_storage_preserves_access_count_on_update(temp_cache_dir):
    """Should preserve access_count when overwriting an entry."""
    store = SqliteStore(str(Path(temp_cache_dir) / "test.db"))

    store.set("key", "first")
    store.get("key")
    store.set("key", "second")

    assert store.get("key") == "second"
    assert _access_count(store, "key") == 3


def test_storage_corrupt_blob_raises(temp_cache_dir):
    """Undecodable values fail explicitly."""
    store = SqliteStore(str(Path(temp_cache_dir) / "test.db"))
    store._conn.execute("""
        INSERT INTO entries (cache_key, value, created_at, access_count, last_accessed)
        VALUES ('corrupt', X'c1', 0, 1, 0)
    """)
    store._conn.commit()

    with pytest.raises(DeserializationError, match="cache_key=corrupt") as exc_info:
        store.get("corrupt")

    assert exc_info.value.cache_key == "corrupt"
    assert isinstance(exc_info.value, ValueError)


def test_storage_custom_codecs(temp_cache_dir):
    """dumps/loads can be swapped, e.g. for generation lists."""
    store = SqliteStore(
        str(Path(temp_cache_dir) / "test.db"),
        dumps=pack_generations,
        loads=unpack_generations,
    )
    value = [Generation("hi"), Generation("there", message={"type": "ai"})]

    store.set("key", value)
    assert store.get("key") == value


def test_storage_context_manager(temp_cache_dir):
    """Context manager closes the connection."""
    with SqliteStore(str(Path(temp_cache_dir) / "test.db")) as store:
        store.set("key", 1)

    with pytest.raises(sqlite3.ProgrammingError):
        store.get("key")


def test_sqlite_cache_uses_env_dir(temp_cache_dir, monkeypatch):
    """SqliteCache defaults to LLM_CACHE_DIR/cache.db."""
    monkeypatch.setenv("LLM_CACHE_DIR", temp_cache_dir)
    cache = SqliteCache()

    assert (Path(temp_cache_dir) / "cache.db").exists()
    cache.close()


@pytest.mark.asyncio
async def test_sqlite_cache_migrates_legacy_entry(temp_cache_dir):
    """Legacy entries migrate in SQLite just like in memory."""
    cache = SqliteCache(cache_dir=temp_cache_dir)
    cache.store.set(LEGACY_KEY, ["v1"])

    assert await cache.lookup("p", "k") == ["v1"]
    assert cache.store.get(CURRENT_KEY) == ["v1"]
    assert LEGACY_KEY not in cache.store

    assert await cache.lookup("p", "k") == ["v1"]
    assert len(cache.store) == 1


@pytest.mark.asyncio
async def test_sqlite_cache_prefers_current_and_keeps_legacy(temp_cache_dir):
    """Current wins; the legacy row is neither deleted nor read."""
    cache = SqliteCache(cache_dir=temp_cache_dir)
    cache.store.set(CURRENT_KEY, ["v1"])
    cache.store.set(LEGACY_KEY, ["v2"])

    assert await cache.lookup("p", "k") == ["v1"]
    assert LEGACY_KEY in cache.store
    assert _access_count(cache.store, LEGACY_KEY) == 1


@pytest.mark.asyncio
async def test_sqlite_cache_persists_across_instances(temp_cache_dir):
    """Values written by one cache are found by the next one on the same directory."""
    cache = SqliteCache(cache_dir=temp_cache_dir)
    await cache.update("p", "k", ["v3"])
    cache.close()

    reopened = SqliteCache(cache_dir=temp_cache_dir)
    assert await reopened.lookup("p", "k") == ["v3"]
    assert await reopened.lookup("other", "k") is None
    assert list(reopened.store.keys()) == [CURRENT_KEY]


def test_sqlite_store_migrate(temp_cache_dir):
    """migrate moves the legacy row unless the current key already exists."""
    store = SqliteStore(str(Path(temp_cache_dir) / "test.db"))
    sentinel = object()

    assert store.migrate(LEGACY_KEY, CURRENT_KEY, sentinel) == (sentinel, False)

    store.set(LEGACY_KEY, ["old"])
    store.get(LEGACY_KEY)
    assert store.migrate(LEGACY_KEY, CURRENT_KEY) == (["old"], True)
    assert LEGACY_KEY not in store
    assert _access_count(store, CURRENT_KEY) == 1

    store.set(LEGACY_KEY, ["stale"])
    assert store.migrate(LEGACY_KEY, CURRENT_KEY) == (["old"], False)
    assert store.get(LEGACY_KEY) == ["stale"]
    assert not store._conn.in_transaction


@pytest.mark.asyncio
async def test_sqlite_update_from_other_cache_survives_migration(temp_cache_dir, mocker):
    """An update made through another connection between probe and migration wins."""
    reader = SqliteCache(cache_dir=temp_cache_dir)
    writer = SqliteCache(cache_dir=temp_cache_dir)
    reader.store.set(LEGACY_KEY, ["old"])

    real_probe = reader.probe

    def probe_then_update(prompt, llm_key):
        result = real_probe(prompt, llm_key)
        writer.store.set(generate_cache_key(prompt, llm_key), ["fresh"])
        return result

    mocker.patch.object(reader, "probe", side_effect=probe_then_update)

    assert await reader.lookup("p", "k") == ["fresh"]
    assert await writer.lookup("p", "k") == ["fresh"]
    assert LEGACY_KEY in writer.store
    assert reader.stats["legacy_hits"] == 0

    reader.close()
    writer.close()


@pytest.mark.asyncio
async def test_sqlite_migration_by_other_cache_is_not_repeated(temp_cache_dir, mocker):
    """If another cache migrates first, the late migration just reads the result."""
    first = SqliteCache(cache_dir=temp_cache_dir)
    second = SqliteCache(cache_dir=temp_cache_dir)
    first.store.set(LEGACY_KEY, ["old"])

    real_probe = second.probe

    def probe_then_migrate_elsewhere(prompt, llm_key):
        result = real_probe(prompt, llm_key)
        first.store.migrate(LEGACY_KEY, CURRENT_KEY)
        return result

    mocker.patch.object(second, "probe", side_effect=probe_then_migrate_elsewhere)

    assert await second.lookup("p", "k") == ["old"]
    assert list(second.store.keys()) == [CURRENT_KEY]
    assert second.stats == {"hits": 1, "misses": 0, "legacy_hits": 0}

    first.close()
    second.close()


@pytest.mark.asyncio
async def test_sqlite_cache_runs_off_event_loop_thread(temp_cache_dir, mocker):
    """SQLite reads and writes happen in a worker thread."""
    cache = SqliteCache(cache_dir=temp_cache_dir)
    loop_thread = threading.get_ident()
    threads = []

    real_get, real_set = cache.store.get, cache.store.set

    def recording_get(key, default=None):
        threads.append(threading.get_ident())
        return real_get(key, default)

    def recording_set(key, value):
        threads.append(threading.get_ident())
        real_set(key, value)

    mocker.patch.object(cache.store, "get", side_effect=recording_get)
    mocker.patch.object(cache.store, "set", side_effect=recording_set)

    await cache.update("p", "k", ["v"])
    assert await cache.lookup("p", "k") == ["v"]

    assert threads
    assert loop_thread not in threads
    cache.close()
