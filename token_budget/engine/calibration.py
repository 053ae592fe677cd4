# token_budget/engine/calibration.py
"""
Per-family calibration of counter estimates.

The counter's BPE approximation is systematically off for vendors whose
tokenizer it does not match. Every time the API reports the real input-token
count for something we estimated, the observed ratio actual/estimated is
folded into a per-family correction factor with an exponential moving
average:

    factor = alpha * ratio + (1 - alpha) * factor        (alpha = 0.2)

Confidence
----------
  high   → more than 10 samples and the latest drift |1 - ratio| below 10%
  medium → more than 3 samples
  low    → otherwise (including families never calibrated)

Confidence follows the single most recent drift, not a rolling average, so
one bad sample can drop a long-accurate family from high to medium.

Persistence
-----------
The whole table is read from the store at construction and rewritten after
every mutation. Store failures are logged and ignored: calibration keeps
working in memory and only cross-restart learning is lost.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from pydantic import ValidationError

from ..constants import (
    DEFAULT_CORRECTION_FACTOR,
    EMA_ALPHA,
    HIGH_CONFIDENCE_MAX_DRIFT,
    HIGH_CONFIDENCE_MIN_SAMPLES,
    MEDIUM_CONFIDENCE_MIN_SAMPLES,
)
from ..exceptions import PersistenceError
from ..models import CalibrationState, Confidence
from ..storage.base import AbstractCalibrationStore
from ..storage.memory import InMemoryCalibrationStore

logger = logging.getLogger(__name__)


class CalibrationManager:
    """
    Maintains an EMA correction factor and confidence tier per model family.

    Parameters
    ----------
    store:
        Where the calibration table is persisted. Defaults to an in-memory
        store (nothing survives the process).
    clock:
        Wall-clock time source for ``last_calibrated``.
    """

    def __init__(
        self,
        store: AbstractCalibrationStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store if store is not None else InMemoryCalibrationStore()
        self._clock = clock
        # model family → state
        self._calibrations: dict[str, CalibrationState] = {}
        self._load()

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def calibrate(self, model_family: str, estimated_tokens: int, actual_tokens: int) -> None:
        """
        Fold one actual/estimated observation into *model_family*'s factor.

        Non-positive inputs are rejected with a warning and leave the state
        untouched.
        """
        if estimated_tokens <= 0 or actual_tokens <= 0:
            logger.warning(
                "Invalid calibration data for %s: estimated=%s, actual=%s",
                model_family,
                estimated_tokens,
                actual_tokens,
            )
            return

        previous = self._calibrations.get(model_family)
        previous_factor = previous.correction_factor if previous else DEFAULT_CORRECTION_FACTOR
        sample_count = previous.sample_count if previous else 0

        ratio = actual_tokens / estimated_tokens
        state = CalibrationState(
            model_family=model_family,
            correction_factor=EMA_ALPHA * ratio + (1 - EMA_ALPHA) * previous_factor,
            sample_count=sample_count + 1,
            drift=abs(1 - ratio),
            last_calibrated=self._clock(),
        )
        self._calibrations[model_family] = state
        self._persist()

        logger.debug(
            "Calibrated %s: factor=%.3f, drift=%.1f%%, samples=%d",
            model_family,
            state.correction_factor,
            state.drift * 100,
            state.sample_count,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_calibration(self, model_family: str) -> CalibrationState | None:
        """Return the calibration state for *model_family*, or None."""
        return self._calibrations.get(model_family)

    def get_correction_factor(self, model_family: str) -> float:
        state = self._calibrations.get(model_family)
        return state.correction_factor if state else DEFAULT_CORRECTION_FACTOR

    def get_confidence(self, model_family: str) -> Confidence:
        """Return "high", "medium" or "low" for *model_family*."""
        state = self._calibrations.get(model_family)
        if state is None:
            return "low"
        if state.sample_count > HIGH_CONFIDENCE_MIN_SAMPLES and state.drift < HIGH_CONFIDENCE_MAX_DRIFT:
            return "high"
        if state.sample_count > MEDIUM_CONFIDENCE_MIN_SAMPLES:
            return "medium"
        return "low"

    def get_all(self) -> list[CalibrationState]:
        return list(self._calibrations.values())

    # ------------------------------------------------------------------
    # Reset hooks
    # ------------------------------------------------------------------

    def reset(self, model_family: str) -> None:
        """Forget the calibration for *model_family*."""
        if self._calibrations.pop(model_family, None) is not None:
            self._persist()

    def reset_all(self) -> None:
        self._calibrations.clear()
        self._persist()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> None:
        try:
            records = self._store.load()
        except PersistenceError as exc:
            logger.warning("Could not load calibration state, starting empty: %s", exc)
            return

        for record in records:
            try:
                state = CalibrationState.model_validate(record)
            except ValidationError as exc:
                logger.warning("Skipping invalid calibration record %r: %s", record, exc)
                continue
            self._calibrations[state.model_family] = state

        logger.debug("Loaded %d calibration states from storage", len(self._calibrations))

    def _persist(self) -> None:
        records = [state.model_dump() for state in self._calibrations.values()]
        try:
            self._store.save(records)
        except PersistenceError as exc:
            logger.warning("Could not persist calibration state: %s", exc)
