# token_budget/engine/counter.py
"""
Approximate token counting.

Uses tiktoken to count tokens for text, messages, tool schemas and system
prompts. Vendor tokenizers differ, but a BPE encoding picked by model family
(o200k_base for the newer OpenAI families, cl100k_base for everything else,
Claude included) is a close-enough approximation; the calibration manager
corrects the remaining bias from API-reported actuals.

The counter never raises. If an encoding cannot be loaded (tiktoken fetches
BPE files on first use, which can fail offline) or encoding a string fails,
the estimate degrades to ceil(len(text) / 3.5).
"""

from __future__ import annotations

import functools
import json
import logging
import math
from collections.abc import Iterable, Mapping
from typing import Any

import tiktoken
from pydantic import ValidationError

from ..cache.lru import LRUCache
from ..constants import (
    ANTHROPIC_IMAGE_TOKENS,
    DEFAULT_ENCODING,
    FALLBACK_CHARS_PER_TOKEN,
    IMAGE_BASE_TOKENS,
    IMAGE_BYTES_PER_PIXEL,
    IMAGE_MAX_DIMENSION,
    IMAGE_MAX_TOKENS,
    IMAGE_TILE_SIZE,
    IMAGE_TILE_TOKENS,
    O200K_ENCODING,
    O200K_FAMILY_MARKERS,
    PER_TOOL_OVERHEAD,
    SYSTEM_PROMPT_OVERHEAD,
    TEXT_CACHE_SIZE,
    TOOL_CALL_OVERHEAD,
    TOOL_RESULT_OVERHEAD,
    TOOL_SAFETY_MULTIPLIER,
    TOOLS_BASE_OVERHEAD,
)
from ..digest import digest_text
from ..models import ChatMessage, DataPart, TextPart, ToolCallPart, ToolResultPart, ToolSchema

logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=None)
def _load_encoding(name: str) -> tiktoken.Encoding | None:
    """
    Cache the tiktoken encoding object; loading it is expensive.

    A failed load is cached as None so the counter does not retry the
    download on every call.
    """
    try:
        return tiktoken.get_encoding(name)
    except Exception as exc:  # network, cache dir, or unknown name
        logger.warning("tiktoken encoding %r unavailable, using character fallback: %s", name, exc)
        return None


def resolve_encoding_name(model_family: str) -> str:
    """Map a model family to the tiktoken encoding that approximates it best."""
    family = model_family.lower()
    if any(marker in family for marker in O200K_FAMILY_MARKERS):
        return O200K_ENCODING
    return DEFAULT_ENCODING


def _to_json(value: Any) -> str:
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):  # circular references
        return str(value)


def _coerce_tools(tools: Iterable[ToolSchema | Mapping[str, Any]] | None) -> list[ToolSchema]:
    schemas: list[ToolSchema] = []
    for tool in tools or ():
        if isinstance(tool, ToolSchema):
            schemas.append(tool)
            continue
        try:
            schemas.append(ToolSchema.model_validate(tool))
        except ValidationError as exc:
            logger.warning("Skipping malformed tool schema: %s", exc)
    return schemas


class TokenCounter:
    """
    Per-family token counter with a bounded memo of text estimates.

    Parameters
    ----------
    text_cache_size:
        Capacity of the memo keyed by (family, text digest). Repeated
        estimates of the same string (common when a host re-renders the
        same prompt) skip the encoder entirely.
    """

    def __init__(self, text_cache_size: int = TEXT_CACHE_SIZE) -> None:
        self._text_cache: LRUCache[str, int] = LRUCache(text_cache_size)

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    def estimate_text(self, text: str, model_family: str) -> int:
        """Return the approximate token count of *text* for *model_family*."""
        if not text:
            return 0

        cache_key = f"{model_family}:{digest_text(text)}"
        cached = self._text_cache.get(cache_key)
        if cached is not None:
            return cached

        count = self._encode_count(text, model_family)
        logger.debug(
            "Text token estimate: %d tokens for %d chars (family: %s)",
            count,
            len(text),
            model_family,
        )
        self._text_cache.put(cache_key, count)
        return count

    def _encode_count(self, text: str, model_family: str) -> int:
        encoding = self._encoding_for(model_family)
        if encoding is None:
            return self._estimate_by_chars(text)
        try:
            # Special tokens such as <|endoftext|> show up in tool output and
            # summarised history; they must be counted, not rejected.
            return len(encoding.encode(text, allowed_special="all", disallowed_special=()))
        except Exception as exc:
            logger.debug("Encoding failed for family %s, using character fallback: %s", model_family, exc)
            return self._estimate_by_chars(text)

    @staticmethod
    def _estimate_by_chars(text: str) -> int:
        return math.ceil(len(text) / FALLBACK_CHARS_PER_TOKEN)

    def _encoding_for(self, model_family: str) -> tiktoken.Encoding | None:
        return _load_encoding(resolve_encoding_name(model_family))

    def uses_character_fallback(self, model_family: str) -> bool:
        """Return True if *model_family* has no tokenizer and uses the heuristic."""
        fallback = self._encoding_for(model_family) is None
        if fallback:
            logger.debug("Using character fallback for family: %s", model_family)
        return fallback

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def estimate_message(self, message: ChatMessage, model_family: str) -> int:
        """Sum the cost of every part of *message*. Structural overhead is not included."""
        total = 0
        for part in message.content:
            if isinstance(part, TextPart):
                total += self.estimate_text(part.value, model_family)
            elif isinstance(part, DataPart):
                total += self._estimate_data(part, model_family)
            elif isinstance(part, ToolCallPart):
                total += self._estimate_tool_call(part, model_family)
            elif isinstance(part, ToolResultPart):
                total += self._estimate_tool_result(part, model_family)
        logger.debug("Message token estimate: %d tokens (family: %s)", total, model_family)
        return total

    def _estimate_data(self, part: DataPart, model_family: str) -> int:
        if part.mime_type.startswith("image/"):
            return self._estimate_image(part, model_family)
        return self.estimate_text(part.data.decode("utf-8", errors="replace"), model_family)

    def _estimate_tool_call(self, part: ToolCallPart, model_family: str) -> int:
        payload = f"{part.name}\n{_to_json(part.input)}"
        return self.estimate_text(payload, model_family) + TOOL_CALL_OVERHEAD

    def _estimate_tool_result(self, part: ToolResultPart, model_family: str) -> int:
        total = self.estimate_text(part.call_id, model_family) + TOOL_RESULT_OVERHEAD
        for fragment in part.content:
            if isinstance(fragment, TextPart):
                total += self.estimate_text(fragment.value, model_family)
            else:
                total += self._estimate_data(fragment, model_family)
        return total

    @staticmethod
    def _estimate_image(part: DataPart, model_family: str) -> int:
        """
        Image cost heuristic.

        Anthropic bills a roughly flat amount per image. For other vendors,
        approximate the 512px tile count from the payload size (assuming
        3 bytes/pixel, square, capped at 2048px per side).
        """
        family = model_family.lower()
        if "anthropic" in family or "claude" in family:
            return ANTHROPIC_IMAGE_TOKENS

        pixels = len(part.data) / IMAGE_BYTES_PER_PIXEL
        dimension = min(math.sqrt(pixels), IMAGE_MAX_DIMENSION)
        tiles_per_side = math.ceil(dimension / IMAGE_TILE_SIZE)
        tokens = IMAGE_BASE_TOKENS + tiles_per_side * tiles_per_side * IMAGE_TILE_TOKENS
        return min(tokens, IMAGE_MAX_TOKENS)

    # ------------------------------------------------------------------
    # Request-level extras
    # ------------------------------------------------------------------

    def count_tools(
        self,
        tools: Iterable[ToolSchema | Mapping[str, Any]] | None,
        model_family: str,
    ) -> int:
        """
        Count tokens for tool schemas.

        Formula: 16 base + per tool (8 + name + description + JSON schema),
        then x1.1. Tool schemas can run to tens of thousands of tokens and
        are the main source of under-estimation, hence the multiplier.
        """
        schemas = _coerce_tools(tools)
        if not schemas:
            return 0

        num_tokens = TOOLS_BASE_OVERHEAD
        for tool in schemas:
            num_tokens += PER_TOOL_OVERHEAD
            num_tokens += self.estimate_text(tool.name, model_family)
            num_tokens += self.estimate_text(tool.description, model_family)
            num_tokens += self.estimate_text(_to_json(tool.input_schema), model_family)

        result = math.ceil(num_tokens * TOOL_SAFETY_MULTIPLIER)
        logger.debug(
            "Tool schema token estimate: %d tokens for %d tools (family: %s)",
            result,
            len(schemas),
            model_family,
        )
        return result

    def count_system_prompt(self, system_prompt: str | None, model_family: str) -> int:
        """Count tokens for a system prompt including its structural wrapping."""
        if not system_prompt:
            return 0
        text_tokens = self.estimate_text(system_prompt, model_family)
        return text_tokens + SYSTEM_PROMPT_OVERHEAD

    @staticmethod
    def apply_margin(tokens: int, margin: float) -> int:
        """Return ceil(tokens * (1 + margin))."""
        return math.ceil(tokens * (1 + margin))
