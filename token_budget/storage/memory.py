# token_budget/storage/memory.py
"""
In-process, in-memory calibration store.

All state is lost when the process exits. Appropriate for tests, short
scripts, and hosts that do their own persistence via ``snapshot()``.
Records are deep-copied on the way in and out so callers can never mutate
the stored table by accident.
"""

from __future__ import annotations

import copy
from typing import Any

from ..constants import STORAGE_KEY
from .base import AbstractCalibrationStore


class InMemoryCalibrationStore(AbstractCalibrationStore):
    """Dict-backed calibration store (default, zero deps)."""

    name = "memory"

    def __init__(self, key: str = STORAGE_KEY, initial: list[dict[str, Any]] | None = None) -> None:
        super().__init__(key)
        # key → records; one key per store, kept as a mapping to mirror the
        # layout of the file and Redis stores
        self._data: dict[str, list[dict[str, Any]]] = {}
        if initial is not None:
            self._data[key] = copy.deepcopy(initial)
        self.save_count = 0

    def load(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self._data.get(self.key, []))

    def save(self, records: list[dict[str, Any]]) -> None:
        self._data[self.key] = copy.deepcopy(records)
        self.save_count += 1

    def snapshot(self) -> list[dict[str, Any]]:
        """Return a copy of the stored records."""
        return self.load()
