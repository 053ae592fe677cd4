# token_budget/cache/lru.py
"""
Fixed-capacity least-recently-used map.

Backed by an OrderedDict: the first key is the least recently used, the
last key the most recently used. ``get`` and ``put`` both refresh recency;
``peek`` does not.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Hashable, Iterator
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class LRUCache(Generic[K, V]):
    """
    Bounded LRU cache.

    Parameters
    ----------
    max_size:
        Maximum number of entries. Inserting beyond it evicts exactly one
        entry, the least recently used.
    """

    def __init__(self, max_size: int) -> None:
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self._max_size = max_size
        self._data: OrderedDict[K, V] = OrderedDict()

    @property
    def max_size(self) -> int:
        return self._max_size

    def get(self, key: K) -> V | None:
        """Return the value for *key* and mark it most recently used."""
        if key not in self._data:
            return None
        self._data.move_to_end(key)
        return self._data[key]

    def peek(self, key: K) -> V | None:
        """Return the value for *key* without touching its recency."""
        return self._data.get(key)

    def put(self, key: K, value: V) -> K | None:
        """
        Insert or overwrite *key*.

        Returns the evicted key, or None when nothing was evicted.
        """
        if key in self._data:
            self._data.move_to_end(key)
        self._data[key] = value
        if len(self._data) > self._max_size:
            evicted, _ = self._data.popitem(last=False)
            return evicted
        return None

    def pop(self, key: K) -> V | None:
        return self._data.pop(key, None)

    def items(self) -> list[tuple[K, V]]:
        """Snapshot of entries, least recently used first."""
        return list(self._data.items())

    def clear(self) -> None:
        self._data.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[K]:
        return iter(list(self._data))
