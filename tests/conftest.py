"""Pytest configuration and shared fixtures."""

import pytest

from llm_cache.cache import reset_global_store


@pytest.fixture
def temp_cache_dir(tmp_path):
    """Provide a temporary cache directory for tests."""
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    return str(cache_dir)


@pytest.fixture(autouse=True)
def fresh_global_store():
    """Start and finish every test with an empty global store."""
    reset_global_store()
    yield
    reset_global_store()
