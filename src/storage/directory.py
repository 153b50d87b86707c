"""Lookup of live item ids, owned by the authoring system."""

from __future__ import annotations

import threading
from typing import Iterable, Protocol, Set, runtime_checkable


@runtime_checkable
class ItemDirectory(Protocol):
    """Answers which of the given item ids still exist upstream."""

    def existing_item_ids(self, item_ids: Iterable[str]) -> Set[str]:
        ...


class StaticItemDirectory:
    """In-memory directory, used by batch jobs fed from an item export."""

    def __init__(self, item_ids: Iterable[str] = ()):
        self._ids = set(item_ids)
        self._lock = threading.Lock()

    def add(self, item_id: str) -> None:
        with self._lock:
            self._ids.add(item_id)

    def discard(self, item_id: str) -> None:
        with self._lock:
            self._ids.discard(item_id)

    def existing_item_ids(self, item_ids: Iterable[str]) -> Set[str]:
        with self._lock:
            return {item_id for item_id in item_ids if item_id in self._ids}

    def __len__(self) -> int:
        return len(self._ids)


__all__ = ["ItemDirectory", "StaticItemDirectory"]
