# token_budget/storage/base.py
"""
Abstract interface that every calibration store must implement.

A store holds exactly one thing: the calibration table, as a flat list of
plain-dict records under a single key. It is read wholesale once, when the
calibration manager is built, and rewritten wholesale after every change;
there is no partial or merge write path.

Stores signal failure by raising PersistenceError; callers decide whether
to swallow it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..constants import STORAGE_KEY


class AbstractCalibrationStore(ABC):
    """Interface contract for all calibration store implementations."""

    name: str = "abstract"

    def __init__(self, key: str = STORAGE_KEY) -> None:
        self.key = key

    @abstractmethod
    def load(self) -> list[dict[str, Any]]:
        """
        Return every persisted record, or an empty list if nothing is stored.

        Raises
        ------
        PersistenceError
            If the backing storage cannot be read or does not hold a list.
        """

    @abstractmethod
    def save(self, records: list[dict[str, Any]]) -> None:
        """
        Replace the stored table with *records*.

        Raises
        ------
        PersistenceError
            If the backing storage cannot be written.
        """

    def clear(self) -> None:
        """Remove the stored table."""
        self.save([])

    def close(self) -> None:
        """Release any resources held by this store (e.g. Redis connections)."""

    def __repr__(self) -> str:  # pragma: no cover
        return f"{self.__class__.__name__}(key={self.key!r})"
