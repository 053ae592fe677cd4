# tests/test_calibration.py
"""
Tests for CalibrationManager.

Verifies:
  - EMA update of the correction factor (alpha = 0.2).
  - Confidence tiers by sample count and latest drift.
  - Non-positive observations are ignored with a warning.
  - State survives a new manager over the same store; broken stores and
    bad records never raise.
"""

from __future__ import annotations

import logging

import pytest

from token_budget.engine.calibration import CalibrationManager
from token_budget.exceptions import PersistenceError
from token_budget.storage.base import AbstractCalibrationStore
from token_budget.storage.memory import InMemoryCalibrationStore


class BrokenStore(AbstractCalibrationStore):
    name = "broken"

    def load(self):
        raise PersistenceError(self.name, "cannot read")

    def save(self, records):
        raise PersistenceError(self.name, "cannot write")


class TestCorrectionFactor:
    def test_uncalibrated_defaults(self):
        manager = CalibrationManager()
        assert manager.get_calibration("claude") is None
        assert manager.get_correction_factor("claude") == 1.0
        assert manager.get_confidence("claude") == "low"

    def test_ema_update(self, clock):
        manager = CalibrationManager(clock=clock)
        manager.calibrate("claude", 100, 110)
        assert manager.get_correction_factor("claude") == pytest.approx(1.02)
        manager.calibrate("claude", 100, 120)
        assert manager.get_correction_factor("claude") == pytest.approx(1.056)

        state = manager.get_calibration("claude")
        assert state.sample_count == 2
        assert state.drift == pytest.approx(0.2)
        assert state.last_calibrated == clock()

    def test_families_are_independent(self):
        manager = CalibrationManager()
        manager.calibrate("claude", 100, 150)
        assert manager.get_correction_factor("gpt-4o") == 1.0

    @pytest.mark.parametrize("estimated, actual", [(0, 100), (100, 0), (-5, 100)])
    def test_invalid_observation_is_ignored(self, estimated, actual, caplog):
        manager = CalibrationManager()
        with caplog.at_level(logging.WARNING):
            manager.calibrate("claude", estimated, actual)
        assert manager.get_calibration("claude") is None
        assert "Invalid calibration data" in caplog.text


class TestConfidence:
    def test_few_samples_is_low(self):
        manager = CalibrationManager()
        for _ in range(3):
            manager.calibrate("claude", 100, 100)
        assert manager.get_confidence("claude") == "low"

    def test_four_samples_is_medium(self):
        manager = CalibrationManager()
        for _ in range(4):
            manager.calibrate("claude", 100, 100)
        assert manager.get_confidence("claude") == "medium"

    def test_ten_samples_is_still_medium(self):
        manager = CalibrationManager()
        for _ in range(10):
            manager.calibrate("claude", 100, 105)
        assert manager.get_confidence("claude") == "medium"

    def test_eleven_accurate_samples_is_high(self):
        manager = CalibrationManager()
        for _ in range(11):
            manager.calibrate("claude", 100, 105)
        assert manager.get_confidence("claude") == "high"

    def test_one_bad_sample_drops_high_to_medium(self):
        manager = CalibrationManager()
        for _ in range(11):
            manager.calibrate("claude", 100, 105)
        manager.calibrate("claude", 100, 150)
        assert manager.get_confidence("claude") == "medium"


class TestPersistence:
    def test_state_survives_new_manager(self, memory_store):
        first = CalibrationManager(store=memory_store)
        first.calibrate("claude", 100, 110)
        second = CalibrationManager(store=memory_store)
        assert second.get_correction_factor("claude") == pytest.approx(1.02)
        assert second.get_calibration("claude").sample_count == 1

    def test_every_calibration_is_persisted(self, memory_store):
        manager = CalibrationManager(store=memory_store)
        manager.calibrate("claude", 100, 110)
        manager.calibrate("claude", 100, 110)
        assert memory_store.save_count == 2
        assert memory_store.snapshot()[0]["model_family"] == "claude"

    def test_invalid_records_are_skipped(self):
        store = InMemoryCalibrationStore(
            initial=[
                {"model_family": "claude", "correction_factor": 1.2, "sample_count": 5, "drift": 0.02},
                {"model_family": "gpt-4o", "correction_factor": -1},
                {"correction_factor": 1.1},
                {"model_family": "gemini", "sample_count": 4, "schema": "future-field"},
            ]
        )
        manager = CalibrationManager(store=store)
        assert manager.get_correction_factor("claude") == pytest.approx(1.2)
        assert manager.get_calibration("gpt-4o") is None
        assert manager.get_calibration("gemini").correction_factor == 1.0
        assert manager.get_confidence("gemini") == "medium"
        assert len(manager.get_all()) == 2

    def test_broken_store_is_swallowed(self, caplog):
        with caplog.at_level(logging.WARNING):
            manager = CalibrationManager(store=BrokenStore())
            manager.calibrate("claude", 100, 110)
        assert manager.get_correction_factor("claude") == pytest.approx(1.02)
        assert "Could not load calibration state" in caplog.text
        assert "Could not persist calibration state" in caplog.text


class TestReset:
    def test_reset_one_family(self, memory_store):
        manager = CalibrationManager(store=memory_store)
        manager.calibrate("claude", 100, 110)
        manager.calibrate("gpt-4o", 100, 90)
        manager.reset("claude")
        assert manager.get_calibration("claude") is None
        assert manager.get_calibration("gpt-4o") is not None
        assert [r["model_family"] for r in memory_store.snapshot()] == ["gpt-4o"]

    def test_reset_unknown_family_does_not_write(self, memory_store):
        manager = CalibrationManager(store=memory_store)
        manager.reset("claude")
        assert memory_store.save_count == 0

    def test_reset_all(self, memory_store):
        manager = CalibrationManager(store=memory_store)
        manager.calibrate("claude", 100, 110)
        manager.reset_all()
        assert manager.get_all() == []
        assert memory_store.snapshot() == []
