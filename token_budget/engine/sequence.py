# token_budget/engine/sequence.py
"""
Call-sequence grouping.

A host rendering a prompt asks for a token count many times in quick
succession, once per message or chunk. Those calls belong to one
logical turn, and their summed estimate is what should be compared with the
input-token count the API reports for that turn.

Algorithm
---------
1. On every call, measure the gap since the *previous call* (not since the
   sequence started, so a slow render with large tool schemas is not split).
2. If there is no sequence yet or the gap exceeds gap_ms, start a new one.
3. Append the call and add its tokens to the running total.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from ..constants import SEQUENCE_GAP_MS
from ..models import TokenEstimate

logger = logging.getLogger(__name__)


@dataclass
class SequenceCall:
    """A single estimate call within a sequence."""

    tokens: int
    source: str


@dataclass
class CallSequence:
    """A burst of estimate calls representing a single turn."""

    start_time: float
    last_call_time: float
    calls: list[SequenceCall] = field(default_factory=list)
    total_estimate: int = 0


class CallSequenceTracker:
    """
    Groups estimate calls into sequences separated by idle gaps.

    Parameters
    ----------
    gap_ms:
        Idle time, in milliseconds, after which the next call starts a new
        sequence.
    clock:
        Monotonic time source in seconds. Injectable for tests.
    """

    def __init__(
        self,
        gap_ms: int = SEQUENCE_GAP_MS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._gap = gap_ms / 1000.0
        self._clock = clock
        self._current: CallSequence | None = None

    def on_call(self, estimate: TokenEstimate) -> CallSequence:
        """Record an estimate call and return the sequence it joined."""
        now = self._clock()
        current = self._current

        if current is None or now - current.last_call_time > self._gap:
            if current is not None:
                logger.debug(
                    "New sequence started (gap: %.0fms, previous: %d calls, %d tokens)",
                    (now - current.last_call_time) * 1000,
                    len(current.calls),
                    current.total_estimate,
                )
            current = CallSequence(start_time=now, last_call_time=now)
            self._current = current

        current.last_call_time = now
        current.calls.append(SequenceCall(tokens=estimate.tokens, source=estimate.source))
        current.total_estimate += estimate.tokens

        logger.debug(
            "Sequence call #%d: +%d tokens (%s), total: %d",
            len(current.calls),
            estimate.tokens,
            estimate.source,
            current.total_estimate,
        )
        return current

    def get_current(self) -> CallSequence | None:
        """Return the current sequence, if any."""
        return self._current

    def reset(self) -> None:
        self._current = None
