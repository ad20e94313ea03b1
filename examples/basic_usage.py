#!/usr/bin/env python3
"""Basic usage of llm-cache."""

import asyncio

from llm_cache import Generation, InMemoryCache, SqliteCache, global_cache
from llm_cache.generation import pack_generations, unpack_generations
from llm_cache.storage import SqliteStore


async def main():
    # Process-wide cache shared by every global_cache() handle
    cache = global_cache()
    await cache.update("Hello, world!", "gpt-4o-mini", [Generation("Hi there")])
    print(await global_cache().lookup("Hello, world!", "gpt-4o-mini"))

    # Private in-memory cache
    private = InMemoryCache()
    print(await private.lookup("Hello, world!", "gpt-4o-mini"))  # None
    print(f"Cache stats: {private.stats}")

    # Persistent cache storing generation lists
    store = SqliteStore("/tmp/llm-cache-example/cache.db",
                        dumps=pack_generations, loads=unpack_generations)
    persistent = SqliteCache(store=store)
    await persistent.update("Hello, world!", "gpt-4o-mini", [Generation("Hi there")])
    print(await persistent.lookup("Hello, world!", "gpt-4o-mini"))
    persistent.close()


asyncio.run(main())
