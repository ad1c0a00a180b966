"""Practice-history access consumed by the scheduler."""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Iterable
from typing import Protocol

from .models import HistoryEntry, active_history


class HistoryStore(Protocol):
    """Read access to the practice log (plus the two writes the app performs)."""

    def get_history_for_item(self, item_id: str) -> list[HistoryEntry]: ...

    def add_history(self, entry: HistoryEntry) -> None: ...

    def update_history(self, entry: HistoryEntry) -> bool: ...


class InMemoryHistoryStore:
    """Dictionary-backed HistoryStore; used by the CLI snapshot and tests."""

    def __init__(self, entries: Iterable[HistoryEntry] = ()):
        self._by_item: dict[str, list[HistoryEntry]] = defaultdict(list)
        self._lock = threading.Lock()
        for entry in entries:
            self._by_item[entry.item_id].append(entry)

    def get_history_for_item(self, item_id: str) -> list[HistoryEntry]:
        """Non-deleted entries for an item, oldest first."""
        with self._lock:
            return active_history(self._by_item.get(item_id, []))

    def add_history(self, entry: HistoryEntry) -> None:
        with self._lock:
            self._by_item[entry.item_id].append(entry)

    def update_history(self, entry: HistoryEntry) -> bool:
        with self._lock:
            entries = self._by_item.get(entry.item_id, [])
            for i, existing in enumerate(entries):
                if existing.id == entry.id:
                    entries[i] = entry
                    return True
            return False

    def all_entries(self) -> list[HistoryEntry]:
        with self._lock:
            return [e for entries in self._by_item.values() for e in entries]
