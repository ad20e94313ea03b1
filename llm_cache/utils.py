"""Cache key derivation."""

import hashlib
from enum import Enum

KEY_SEPARATOR = "_"


class KeyScheme(Enum):
    """Key-derivation scheme. The value is the hex digest length."""

    CURRENT = 64
    LEGACY = 40


def _join(strings) -> str:
    for item in strings:
        if not isinstance(item, str):
            raise TypeError(f"Cache key inputs must be strings, got {type(item).__name__}")
    return KEY_SEPARATOR.join(strings)


def generate_cache_key(*strings: str) -> str:
    """Generate a cache key from an ordered sequence of strings.

    Uses SHA3-256 of the inputs joined with "_".

    Args:
        *strings: Logical key inputs, e.g. prompt and LLM identifier

    Returns:
        64-character lowercase hex string
    """
    return hashlib.sha3_256(_join(strings).encode("utf-8")).hexdigest()


def generate_legacy_cache_key(*strings: str) -> str:
    """Generate a cache key using the legacy SHA-1 scheme.

    Only used to find entries written before the switch to SHA3-256.

    Args:
        *strings: Logical key inputs, e.g. prompt and LLM identifier

    Returns:
        40-character lowercase hex string
    """
    return hashlib.sha1(_join(strings).encode("utf-8")).hexdigest()  # noqa: S324


def derive_key(scheme: KeyScheme, *strings: str) -> str:
    """Generate a cache key under the given scheme."""
    if scheme is KeyScheme.CURRENT:
        return generate_cache_key(*strings)
    return generate_legacy_cache_key(*strings)


def key_scheme(key: str) -> KeyScheme:
    """Classify an existing cache key by its length.

    Raises:
        ValueError: If the key belongs to neither scheme
    """
    for scheme in KeyScheme:
        if len(key) == scheme.value:
            return scheme
    raise ValueError(f"Unrecognized cache key format: {key!r}")
