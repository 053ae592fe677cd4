# token_budget/storage/file.py
"""
JSON-file calibration store.

The file holds one JSON object; the calibration table lives as a flat array
under ``key``. Other top-level keys are preserved on write, so several
tools can share one state file.

Writes go to a sibling temp file and are moved into place with os.replace,
so a crash mid-write never leaves a truncated file behind.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from ..constants import STORAGE_KEY
from ..exceptions import PersistenceError
from .base import AbstractCalibrationStore


class JsonFileCalibrationStore(AbstractCalibrationStore):
    """
    File-backed calibration store.

    Parameters
    ----------
    path:
        Location of the JSON state file. Parent directories are created on
        first write. A missing file reads as an empty table.
    """

    name = "json-file"

    def __init__(self, path: str | os.PathLike[str], key: str = STORAGE_KEY) -> None:
        super().__init__(key)
        self.path = Path(path).expanduser()

    def _read_document(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            document = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as exc:
            raise PersistenceError(self.name, f"cannot read {self.path}: {exc}") from exc
        if not isinstance(document, dict):
            raise PersistenceError(self.name, f"{self.path} does not contain a JSON object")
        return document

    def load(self) -> list[dict[str, Any]]:
        records = self._read_document().get(self.key, [])
        if not isinstance(records, list):
            raise PersistenceError(self.name, f"'{self.key}' in {self.path} is not a list")
        return records

    def save(self, records: list[dict[str, Any]]) -> None:
        try:
            document = self._read_document()
        except PersistenceError:
            # unreadable file: overwrite it rather than losing the new table
            document = {}
        document[self.key] = records

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            raise PersistenceError(self.name, f"cannot write {self.path}: {exc}") from exc

    def __repr__(self) -> str:  # pragma: no cover
        return f"{self.__class__.__name__}(path={str(self.path)!r}, key={self.key!r})"
