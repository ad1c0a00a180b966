"""
Library snapshot: owners, practice items and their history.

The scheduler itself never reads these from disk; the CLI loads one
library.json, hands the records to the services and writes the mutated
items back.

File layout:
    {"owners": [...], "items": [...], "history": [...]}
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

from loguru import logger

from .errors import PersistenceError
from .file_service import JsonFileService
from .history import InMemoryHistoryStore
from .models import HistoryEntry, ItemOwner, PracticeItem


class Library:
    """
    In-memory owners/items/history loaded from a JSON snapshot.

    Args:
        path: library.json location
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._file = JsonFileService(self.path)
        self.owners: dict[str, ItemOwner] = {}
        self.items: dict[str, PracticeItem] = {}
        self.history = InMemoryHistoryStore()
        self._skipped = 0

    @property
    def total_items(self) -> int:
        return len(self.items)

    def load(self) -> int:
        """
        Load the snapshot, skipping malformed records.

        Returns:
            Number of items loaded

        Raises:
            PersistenceError: If the file exists but cannot be read
        """
        self.owners.clear()
        self.items.clear()
        self._skipped = 0

        raw = self._file.read()
        if raw is None:
            logger.warning(f"No library file at {self.path}")
            self.history = InMemoryHistoryStore()
            return 0
        if not isinstance(raw, dict):
            raise PersistenceError(f"{self.path} is not a library snapshot (expected an object)")

        for data in raw.get("owners", []):
            owner = self._parse(ItemOwner, data)
            if owner is not None:
                self.owners[owner.id] = owner

        for data in raw.get("items", []):
            item = self._parse(PracticeItem, data)
            if item is not None:
                self.items[item.id] = item

        entries = [e for e in (self._parse(HistoryEntry, d) for d in raw.get("history", [])) if e is not None]
        self.history = InMemoryHistoryStore(entries)

        logger.info(
            f"Library loaded: {len(self.owners)} owners, {self.total_items} items, "
            f"{len(entries)} history entries ({self._skipped} malformed skipped)"
        )
        return self.total_items

    def _parse(self, record_type, data: dict):
        try:
            return record_type.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            self._skipped += 1
            logger.warning(f"Skipping malformed {record_type.__name__}: {e}")
            return None

    def save(self) -> None:
        """Write owners, items and history back to the snapshot file."""
        payload = {
            "owners": [o.to_dict() for o in self.owners.values()],
            "items": [i.to_dict() for i in self.items.values()],
            "history": [e.to_dict() for e in self.history.all_entries()],
        }
        try:
            self._file.write(payload)
        except PersistenceError:
            logger.error(f"Library snapshot not saved to {self.path}")
            raise
        logger.info(f"Library saved: {self.total_items} items")

    def get_item(self, item_id: str) -> PracticeItem | None:
        return self.items.get(item_id)

    def get_owner(self, owner_id: str) -> ItemOwner | None:
        return self.owners.get(owner_id)

    def __iter__(self) -> Iterator[PracticeItem]:
        return iter(self.items.values())

    def __len__(self) -> int:
        return len(self.items)

    def __contains__(self, item_id: str) -> bool:
        return item_id in self.items
