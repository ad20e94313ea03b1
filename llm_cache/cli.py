#!/usr/bin/env python3
"""Command-line interface for llm-cache."""

import argparse
import os
import sqlite3
import sys
from collections import Counter

from .config import CACHE_DIR_ENV_VAR, get_cache_dir, get_db_path
from .utils import KeyScheme, key_scheme


def _format_size(size_bytes: int) -> str:
    """Format bytes as human-readable size."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    else:
        return f"{size_bytes / (1024 * 1024):.1f} MB"


def cmd_stats(args):
    """Show cache statistics with key scheme breakdown."""
    cache_dir = get_cache_dir()
    db_path = get_db_path(cache_dir)

    print("Cache Statistics")
    print("=" * 40)
    print(f"Cache directory: {cache_dir}")

    if not db_path.exists():
        print("Status: No cache database found")
        print("Total entries: 0")
        return

    size_bytes = db_path.stat().st_size
    print(f"Database size: {_format_size(size_bytes)}")

    try:
        conn = sqlite3.connect(db_path)

        cursor = conn.execute("SELECT COUNT(*) FROM entries")
        total = cursor.fetchone()[0]
        print(f"Total entries: {total}")

        if total > 0:
            counts = Counter()
            for (cache_key,) in conn.execute("SELECT cache_key FROM entries"):
                try:
                    counts[key_scheme(cache_key)] += 1
                except ValueError:
                    counts[None] += 1
            current = counts[KeyScheme.CURRENT]
            legacy = counts[KeyScheme.LEGACY]
            unknown = counts[None]

            if current > 0:
                pct = (current / total) * 100
                print(f"  - Current keys (SHA3-256): {current} ({pct:.0f}%)")
            if legacy > 0:
                pct = (legacy / total) * 100
                print(f"  - Legacy keys (SHA-1): {legacy} ({pct:.0f}%)")
            if unknown > 0:
                print(f"  - Unrecognized keys: {unknown}")

        conn.close()
    except sqlite3.Error as e:
        print(f"Error reading database: {e}")


def cmd_info(args):
    """Show cache configuration."""
    cache_dir = get_cache_dir()

    print("Cache Configuration")
    print("=" * 40)
    print(f"Cache directory: {cache_dir}")
    print(f"Directory exists: {cache_dir.exists()}")

    env_var = os.environ.get(CACHE_DIR_ENV_VAR)
    if env_var:
        print(f"{CACHE_DIR_ENV_VAR}: {env_var}")
    else:
        print(f"{CACHE_DIR_ENV_VAR}: (not set, using default)")

    db_path = get_db_path(cache_dir)
    print(f"Database path: {db_path}")
    print(f"Database exists: {db_path.exists()}")


def cmd_clear(args):
    """Clear the cache."""
    db_path = get_db_path()

    if not db_path.exists():
        print("No cache to clear.")
        return

    if not args.yes:
        response = input(f"Delete {db_path}? [y/N] ")
        if response.lower() != "y":
            print("Cancelled.")
            return

    db_path.unlink()
    print(f"Deleted: {db_path}")


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="llm-cache",
        description="Manage the LLM result cache",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    stats_parser = subparsers.add_parser("stats", help="Show cache statistics")
    stats_parser.set_defaults(func=cmd_stats)

    info_parser = subparsers.add_parser("info", help="Show cache configuration")
    info_parser.set_defaults(func=cmd_info)

    clear_parser = subparsers.add_parser("clear", help="Clear the cache")
    clear_parser.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")
    clear_parser.set_defaults(func=cmd_clear)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    args.func(args)


if __name__ == "__main__":
    main()
