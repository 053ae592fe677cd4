# token_budget/cache/ground_truth.py
"""
Ground-truth token cache.

Maps (model family, message digest) → the token count an API actually
reported for that message. The same message under two families is tracked
independently, because tokenizers differ per family.

Bounded by an LRU; entries never expire on their own: an actual count for
identical content under an identical tokenizer does not go stale.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from ..constants import GROUND_TRUTH_CACHE_SIZE
from ..digest import digest_message
from ..models import ChatMessage
from .lru import LRUCache

logger = logging.getLogger(__name__)


@dataclass
class CachedTokenCount:
    digest: str
    model_family: str
    actual_tokens: int
    timestamp: float


class TokenCache:
    """LRU-bounded store of API-reported per-message token counts."""

    def __init__(self, max_size: int = GROUND_TRUTH_CACHE_SIZE) -> None:
        self._entries: LRUCache[tuple[str, str], CachedTokenCount] = LRUCache(max_size)

    @staticmethod
    def digest(message: ChatMessage) -> str:
        # head/tail sampling of binary payloads, see hash_data_sampled
        return digest_message(message, sample_data=True)

    def get(self, message: ChatMessage, model_family: str) -> int | None:
        """Return the cached actual for *message*, or None on a miss."""
        entry = self._entries.get((model_family, self.digest(message)))
        return entry.actual_tokens if entry is not None else None

    def put(self, message: ChatMessage, model_family: str, actual_tokens: int) -> None:
        """Record *actual_tokens* as the ground truth for *message*."""
        digest = self.digest(message)
        evicted = self._entries.put(
            (model_family, digest),
            CachedTokenCount(
                digest=digest,
                model_family=model_family,
                actual_tokens=actual_tokens,
                timestamp=time.time(),
            ),
        )
        if evicted is not None:
            logger.debug("Ground-truth cache full; evicted %s:%s", evicted[0], evicted[1][:12])

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
