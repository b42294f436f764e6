"""Key-value storage behind the conversation and user-state stores.

``JsonFileStore`` keeps one flat JSON document on disk. Every mutation is a
full read-modify-write of that document, made atomic per key inside the
process by a lock and atomic on disk by writing a temp file and renaming it
over the original. Separate processes sharing the same file are not
coordinated.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol


logger = logging.getLogger("prompt2play.storage")


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def put(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...

    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any: ...


class InMemoryStore:
    """Process-local store, mainly for tests and ephemeral deployments."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return copy.deepcopy(self._data.get(key, default))

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        with self._lock:
            value = fn(copy.deepcopy(self._data.get(key, default)))
            self._data[key] = copy.deepcopy(value)
            return value


class JsonFileStore:
    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._lock = threading.RLock()

    def load(self) -> Dict[str, Any]:
        """Read the whole document; missing or unreadable files yield ``{}``."""
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Error loading %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.error("Error loading %s: top-level value is not an object", self.path)
            return {}
        return data

    def save(self, data: Dict[str, Any]) -> bool:
        """Overwrite the document. On failure the previous file is left in place."""
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
            return True
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Error saving %s: %s", self.path, exc)
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            return False

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self.load().get(key, default)

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            data = self.load()
            data[key] = value
            self.save(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self.load()
            if key in data:
                del data[key]
                self.save(data)

    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        """Apply ``fn`` to the current value of ``key`` and persist the result."""
        with self._lock:
            data = self.load()
            value = fn(data.get(key, default))
            data[key] = value
            self.save(data)
            return value
