"""Small string key-value stores for client-local state (read watermarks)."""

from __future__ import annotations

import json
import os
import tempfile
import threading
from typing import Protocol


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileKeyValueStore:
    """Persists to one JSON object on disk. Writes replace the file atomically."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        self._data: dict[str, str] | None = None

    def _load(self) -> dict[str, str]:
        if self._data is None:
            try:
                with open(self.path, encoding="utf-8") as f:
                    loaded = json.load(f)
            except FileNotFoundError:
                loaded = {}
            except ValueError:
                # Corrupt file: start over rather than block the UI.
                loaded = {}
            self._data = {str(k): str(v) for k, v in loaded.items()} if isinstance(loaded, dict) else {}
        return self._data

    def _flush(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data or {}, f)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._load()[key] = value
            self._flush()

    def remove(self, key: str) -> None:
        with self._lock:
            if self._load().pop(key, None) is not None:
                self._flush()
