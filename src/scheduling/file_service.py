"""
Atomic, locked JSON file access.

Writes go to a temporary sibling file which is then moved over the
target with os.replace, so readers never observe a half-written file.
"""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path
from typing import Any

from loguru import logger

from .errors import PersistenceError


class JsonFileService:
    """Read and write one JSON document under a per-file lock."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.RLock()

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> Any | None:
        """
        Load the document.

        Returns:
            The decoded JSON, or None when the file does not exist.

        Raises:
            PersistenceError: The file exists but cannot be read or decoded.
        """
        with self._lock:
            if not self.path.exists():
                return None
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    return json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise PersistenceError(f"Cannot read {self.path}: {e}") from e

    def write(self, data: Any) -> None:
        """
        Replace the document atomically.

        Raises:
            PersistenceError: The document cannot be serialized or written.
        """
        with self._lock:
            tmp = self.path.with_name(self.path.name + ".tmp")
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp, self.path)
            except (OSError, TypeError, ValueError) as e:
                if tmp.exists():
                    tmp.unlink()
                raise PersistenceError(f"Cannot write {self.path}: {e}") from e
            logger.debug(f"Wrote {self.path}")
