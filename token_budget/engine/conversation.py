# token_budget/engine/conversation.py
"""
Conversation-state tracking for delta estimation.

After an API response we know the exact input-token count for the message
list that was sent. A later request that *extends* that list only needs the
new tail estimated:

    total ≈ known_actual + estimate(new messages)

which bounds the estimation error to the new messages instead of the whole
history.

Matching
--------
Messages are compared by digest. The stored digest list must match the new
list position-by-position over its whole length:

  equal length, all equal   → "exact"
  new list longer, all equal → "prefix" (new_message_indices = the tail)
  anything else             → "none"

A single differing digest invalidates the whole match.

State is keyed by (model family, conversation id), so a sub-agent's requests
never read or overwrite its parent's state. The table is LRU-bounded and
entries older than the TTL are purged lazily whenever a new state is
recorded; there is no background sweep.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Sequence

from ..cache.lru import LRUCache
from ..constants import CONVERSATION_CAPACITY, CONVERSATION_TTL_SECONDS, DEFAULT_CONVERSATION
from ..models import ChatMessage, ConversationLookup

logger = logging.getLogger(__name__)


@dataclass
class KnownConversationState:
    """A message list whose input-token total was reported by the API."""

    message_digests: list[str]
    actual_tokens: int
    model_family: str
    conversation_id: str
    timestamp: float


class ConversationStateTracker:
    """
    Remembers the last API-measured message list per conversation key.

    Parameters
    ----------
    capacity:
        Maximum number of conversation keys retained (LRU).
    ttl_seconds:
        Age after which a state is purged on the next write.
    clock:
        Wall-clock time source. Injectable for tests.
    """

    def __init__(
        self,
        capacity: int = CONVERSATION_CAPACITY,
        ttl_seconds: int = CONVERSATION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._states: LRUCache[tuple[str, str], KnownConversationState] = LRUCache(capacity)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _key(model_family: str, conversation_id: str | None) -> tuple[str, str]:
        return model_family, conversation_id or DEFAULT_CONVERSATION

    @staticmethod
    def _digests(messages: Sequence[ChatMessage]) -> list[str]:
        return [m.digest() for m in messages]

    def _purge_expired(self, now: float) -> None:
        cutoff = now - self._ttl
        for key, state in self._states.items():
            if state.timestamp < cutoff:
                self._states.pop(key)
                logger.debug("[ConversationState] Expired %s:%s", key[0], key[1])

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def record_actual(
        self,
        messages: Sequence[ChatMessage],
        model_family: str,
        actual_tokens: int,
        conversation_id: str | None = None,
    ) -> KnownConversationState:
        """Store *actual_tokens* as the measured total for exactly *messages*."""
        now = self._clock()
        key = self._key(model_family, conversation_id)
        state = KnownConversationState(
            message_digests=self._digests(messages),
            actual_tokens=actual_tokens,
            model_family=model_family,
            conversation_id=key[1],
            timestamp=now,
        )

        self._purge_expired(now)
        evicted = self._states.put(key, state)
        if evicted is not None:
            logger.debug("[ConversationState] Capacity reached, evicted %s:%s", evicted[0], evicted[1])

        logger.debug(
            "[ConversationState] Recorded: %d messages, %d tokens (%s) key=%s",
            len(state.message_digests),
            actual_tokens,
            model_family,
            key[1],
        )
        return state

    def lookup(
        self,
        messages: Sequence[ChatMessage],
        model_family: str,
        conversation_id: str | None = None,
    ) -> ConversationLookup:
        """Classify *messages* against the stored state as exact, prefix or none."""
        state = self._states.get(self._key(model_family, conversation_id))
        if state is None:
            return ConversationLookup(type="none")

        known = state.message_digests
        if len(messages) < len(known):
            logger.debug("[ConversationState] No match: conversation shorter than known state")
            return ConversationLookup(type="none")

        current = self._digests(messages)
        if current[: len(known)] != known:
            logger.debug("[ConversationState] No match: conversation diverged from known state")
            return ConversationLookup(type="none")

        if len(current) == len(known):
            logger.debug("[ConversationState] Exact match: %d tokens", state.actual_tokens)
            return ConversationLookup(type="exact", known_tokens=state.actual_tokens)

        new_indices = list(range(len(known), len(current)))
        logger.debug(
            "[ConversationState] Prefix match: %d known + %d new messages",
            state.actual_tokens,
            len(new_indices),
        )
        return ConversationLookup(
            type="prefix",
            known_tokens=state.actual_tokens,
            new_message_count=len(new_indices),
            new_message_indices=new_indices,
        )

    def get_state(self, model_family: str, conversation_id: str | None = None) -> KnownConversationState | None:
        """Return the stored state for the key without refreshing its recency."""
        return self._states.peek(self._key(model_family, conversation_id))

    def clear(self) -> None:
        self._states.clear()

    def __len__(self) -> int:
        return len(self._states)
