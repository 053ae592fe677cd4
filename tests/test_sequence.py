# tests/test_sequence.py
"""
Tests for CallSequenceTracker.

Verifies:
  - Calls within the gap accumulate into one sequence.
  - The gap is measured from the previous call, not the sequence start.
  - A call after a longer idle period starts a fresh sequence.
"""

from __future__ import annotations

from token_budget.engine.sequence import CallSequenceTracker
from token_budget.models import TokenEstimate


def _estimate(tokens: int) -> TokenEstimate:
    return TokenEstimate(tokens=tokens, confidence="low", source="tiktoken", margin=0.15)


class TestCallSequenceTracker:
    def test_no_sequence_initially(self, sequence_clock):
        assert CallSequenceTracker(clock=sequence_clock).get_current() is None

    def test_calls_within_gap_accumulate(self, sequence_clock):
        tracker = CallSequenceTracker(clock=sequence_clock)
        tracker.on_call(_estimate(10))
        sequence_clock.advance(0.1)
        sequence = tracker.on_call(_estimate(15))
        assert sequence.total_estimate == 25
        assert [c.tokens for c in sequence.calls] == [10, 15]

    def test_gap_equal_to_threshold_stays_in_sequence(self, sequence_clock):
        tracker = CallSequenceTracker(gap_ms=500, clock=sequence_clock)
        tracker.on_call(_estimate(10))
        sequence_clock.advance(0.5)
        assert tracker.on_call(_estimate(5)).total_estimate == 15

    def test_longer_gap_starts_new_sequence(self, sequence_clock):
        tracker = CallSequenceTracker(clock=sequence_clock)
        first = tracker.on_call(_estimate(10))
        sequence_clock.advance(0.6)
        second = tracker.on_call(_estimate(7))
        assert second is not first
        assert second.total_estimate == 7
        assert len(second.calls) == 1
        assert tracker.get_current() is second

    def test_slow_render_stays_one_sequence(self, sequence_clock):
        tracker = CallSequenceTracker(clock=sequence_clock)
        start = sequence_clock()
        for _ in range(10):
            tracker.on_call(_estimate(1))
            sequence_clock.advance(0.4)
        sequence = tracker.get_current()
        assert sequence.total_estimate == 10
        assert sequence.start_time == start

    def test_custom_gap(self, sequence_clock):
        tracker = CallSequenceTracker(gap_ms=100, clock=sequence_clock)
        tracker.on_call(_estimate(10))
        sequence_clock.advance(0.2)
        assert tracker.on_call(_estimate(3)).total_estimate == 3

    def test_reset(self, sequence_clock):
        tracker = CallSequenceTracker(clock=sequence_clock)
        tracker.on_call(_estimate(10))
        tracker.reset()
        assert tracker.get_current() is None
