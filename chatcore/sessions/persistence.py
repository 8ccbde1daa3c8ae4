"""Key/value backends for the persisted session blob.

The store only needs ``get(key) -> str | None`` and ``set(key, value)``; the
blob is already serialized when it reaches the backend. Durability is not
guaranteed by either implementation.
"""
from __future__ import annotations

import os
import pathlib
import tempfile
from threading import RLock
from typing import Dict, Protocol


class KeyValueStorage(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class InMemoryStorage:
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = RLock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonFileStorage:
    """One ``<key>.json`` file per key under ``root``; atomic replace on write."""

    def __init__(self, root: str | pathlib.Path) -> None:
        self.root = pathlib.Path(root)
        self._lock = RLock()

    def _path(self, key: str) -> pathlib.Path:
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return self.root / f"{safe}.json"

    def get(self, key: str) -> str | None:
        p = self._path(key)
        with self._lock:
            if not p.exists():
                return None
            return p.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        p = self._path(key)
        with self._lock:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.root, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(value)
                os.replace(tmp, p)
            except BaseException:
                pathlib.Path(tmp).unlink(missing_ok=True)
                raise

    def remove(self, key: str) -> None:
        with self._lock:
            self._path(key).unlink(missing_ok=True)


__all__ = ["KeyValueStorage", "InMemoryStorage", "JsonFileStorage"]
