"""
app/lookup_cache.py

Explicit key/value cache shared by registry clients across runs.
"""

from __future__ import annotations

import copy
from typing import Generic, Hashable, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class LookupCache(Generic[K, V]):
    """
    In-memory cache owned by the orchestrator and injected into clients.

    Values are returned as shallow copies so callers cannot mutate cached lists.
    """

    def __init__(self, name: str, initial: dict[K, V] | None = None) -> None:
        self.name = name
        self._entries: dict[K, V] = dict(initial or {})
        self.hits = 0
        self.misses = 0

    def get(self, key: K) -> V | None:
        if key in self._entries:
            self.hits += 1
            return copy.copy(self._entries[key])
        self.misses += 1
        return None

    def set(self, key: K, value: V) -> None:
        self._entries[key] = copy.copy(value)

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
