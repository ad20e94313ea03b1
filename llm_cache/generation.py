"""Serialization of LLM generations for non-memory stores."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import msgpack


@dataclass
class Generation:
    """A single LLM output. ``message`` holds a chat message as a plain dict."""

    text: str
    message: Optional[Dict[str, Any]] = None


def serialize_generation(generation: Generation) -> Dict[str, Any]:
    """Convert a generation to a storable dict.

    The "message" field is only written for chat generations.
    """
    serialized = {"text": generation.text}
    if generation.message is not None:
        serialized["message"] = generation.message
    return serialized


def deserialize_stored_generation(stored: Dict[str, Any]) -> Generation:
    """Rebuild a generation from its stored dict."""
    return Generation(text=stored["text"], message=stored.get("message"))


def pack_generations(generations: List[Generation]) -> bytes:
    """Encode a list of generations with msgpack (SqliteStore ``dumps``)."""
    return msgpack.packb([serialize_generation(g) for g in generations])


def unpack_generations(blob: bytes) -> List[Generation]:
    """Decode a msgpack blob written by pack_generations (SqliteStore ``loads``)."""
    return [deserialize_stored_generation(item) for item in msgpack.unpackb(blob, raw=False)]
