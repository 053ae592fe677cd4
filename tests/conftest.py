# tests/conftest.py
"""
Shared pytest fixtures for token-budget tests.

Most tests swap tiktoken for FakeEncoding (one token per whitespace-separated
word) so expected counts can be written down by hand and do not depend on
BPE files being downloadable in the test environment.
"""

from __future__ import annotations

import pytest

from token_budget.engine import counter as counter_module
from token_budget.estimator import HybridTokenEstimator
from token_budget.models import ModelInfo
from token_budget.storage.memory import InMemoryCalibrationStore


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeEncoding:
    """Counts whitespace-separated words; records every encode() call."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def encode(self, text, allowed_special=frozenset(), disallowed_special="all"):
        self.calls.append(text)
        return text.split()


@pytest.fixture
def fake_encoding(monkeypatch):
    enc = FakeEncoding()
    monkeypatch.setattr(counter_module, "_load_encoding", lambda name: enc)
    return enc


@pytest.fixture
def no_tokenizer(monkeypatch):
    """Simulate tiktoken being unable to load any encoding."""
    monkeypatch.setattr(counter_module, "_load_encoding", lambda name: None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sequence_clock():
    return FakeClock(start=50.0)


@pytest.fixture
def claude():
    return ModelInfo(family="claude", max_input_tokens=100_000)


@pytest.fixture
def gpt4o():
    return ModelInfo(family="gpt-4o", max_input_tokens=128_000)


@pytest.fixture
def memory_store():
    return InMemoryCalibrationStore()


@pytest.fixture
def estimator(fake_encoding, memory_store, clock, sequence_clock):
    return HybridTokenEstimator(store=memory_store, clock=clock, sequence_clock=sequence_clock)
