"""Persistent key-value storage for the donation screens.

Behaves like a browser's local storage: string keys map to serialized JSON
strings, and every mutation rewrites the whole backing file.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

from parish.domain import StorageError

logger = logging.getLogger(__name__)


class MemoryStorage:
    """In-process storage, used by tests and when no file is configured."""

    def __init__(self, items: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(items or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> tuple[str, ...]:
        return tuple(self._items)


class JsonFileStorage(MemoryStorage):
    """Storage backed by a single JSON object on disk."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        super().__init__(self._read())

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Storage file %s is unreadable, starting empty: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Storage file %s does not hold an object, starting empty", self.path)
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _flush(self) -> None:
        tmp = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".storage-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._items, f, indent=2)
            os.replace(tmp, self.path)
        except OSError as e:
            if tmp and os.path.exists(tmp):
                os.unlink(tmp)
            raise StorageError(f"could not write {self.path}: {e}") from e

    def set_item(self, key: str, value: str) -> None:
        previous = self._items.get(key)
        super().set_item(key, value)
        try:
            self._flush()
        except StorageError:
            if previous is None:
                self._items.pop(key, None)
            else:
                self._items[key] = previous
            raise

    def remove_item(self, key: str) -> None:
        if key not in self._items:
            return
        super().remove_item(key)
        self._flush()
