# token_budget/digest.py
"""
Content digests for chat messages.

A digest is a SHA-256 over canonical JSON of the message's role, name and
parts. Every serialized part carries its ``type`` discriminator, so a text
part and a tool result that happen to contain the same string never hash
to the same value. Part order is preserved.

Binary payloads are not embedded: they contribute their media type, size
and a content hash. By default the whole payload is hashed, so any edited
byte changes the digest; conversation-state matching depends on that.

With ``sample_data=True`` payloads larger than two samples are hashed from
the first and last DATA_SAMPLE_BYTES only. The ground-truth cache uses this
to keep digesting a multi-megabyte screenshot cheap; equal-sized images
still differ unless their edges are identical.
"""

from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING, Any, Callable

from .constants import DATA_SAMPLE_BYTES

if TYPE_CHECKING:  # pragma: no cover
    from .models import ChatMessage


def digest_text(text: str) -> str:
    """Short (16 hex chars) digest of a plain string."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def hash_data(data: bytes) -> str:
    """Digest of the full payload."""
    return hashlib.sha256(data).hexdigest()[:16]


def hash_data_sampled(data: bytes) -> str:
    """Digest of the first and last DATA_SAMPLE_BYTES of the payload."""
    if len(data) <= DATA_SAMPLE_BYTES * 2:
        sample = data
    else:
        sample = data[:DATA_SAMPLE_BYTES] + data[-DATA_SAMPLE_BYTES:]
    return hashlib.sha256(sample).hexdigest()[:16]


def _serialize_text(part: Any, sample_data: bool) -> dict[str, Any]:
    return {"type": "text", "value": part.value}


def _serialize_data(part: Any, sample_data: bool) -> dict[str, Any]:
    hasher = hash_data_sampled if sample_data else hash_data
    return {
        "type": "data",
        "mime_type": part.mime_type,
        "size": len(part.data),
        "content_hash": hasher(part.data),
    }


def _serialize_tool_call(part: Any, sample_data: bool) -> dict[str, Any]:
    return {
        "type": "tool_call",
        "name": part.name,
        "call_id": part.call_id,
        "input": part.input,
    }


def _serialize_tool_result(part: Any, sample_data: bool) -> dict[str, Any]:
    return {
        "type": "tool_result",
        "call_id": part.call_id,
        "content": [serialize_part(fragment, sample_data) for fragment in part.content],
    }


_SERIALIZERS: dict[str, Callable[[Any, bool], dict[str, Any]]] = {
    "text": _serialize_text,
    "data": _serialize_data,
    "tool_call": _serialize_tool_call,
    "tool_result": _serialize_tool_result,
}


def serialize_part(part: Any, sample_data: bool = False) -> dict[str, Any]:
    """Return the canonical, digestible form of one content part."""
    serializer = _SERIALIZERS.get(getattr(part, "type", None))
    if serializer is None:
        raise TypeError(f"Unsupported content part: {type(part).__name__}")
    return serializer(part, sample_data)


def digest_message(message: "ChatMessage", sample_data: bool = False) -> str:
    """Return the full SHA-256 hex digest of *message*."""
    payload = {
        "role": message.role,
        "name": message.name,
        "parts": [serialize_part(part, sample_data) for part in message.content],
    }
    # default=str keeps non-JSON tool inputs (datetimes, sets) digestible
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
