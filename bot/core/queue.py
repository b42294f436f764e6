"""Durable on-disk queue between the webhook fast-ack and the worker.

Each inbound event is written as one JSON file under ``pending/``. The worker
handles events oldest first; handled events are deleted, events whose handler
raised are moved to ``failed/`` together with the error so they can be
inspected or replayed.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Tuple


logger = logging.getLogger("prompt2play.queue")


class EventQueue:
    def __init__(self, directory: str | os.PathLike):
        self.root = Path(directory)
        self.pending_dir = self.root / "pending"
        self.failed_dir = self.root / "failed"

    def _ensure_dirs(self) -> None:
        self.pending_dir.mkdir(parents=True, exist_ok=True)
        self.failed_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _write(path: Path, data: Dict[str, Any]) -> None:
        tmp = path.with_name(f".{path.name}.tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, path)

    def enqueue(self, payload: Any) -> str:
        self._ensure_dirs()
        event_id = f"{time.time_ns():020d}-{uuid.uuid4().hex[:8]}"
        self._write(self.pending_dir / f"{event_id}.json", {"id": event_id, "payload": payload})
        return event_id

    def pending(self) -> Iterator[Tuple[str, Any]]:
        if not self.pending_dir.exists():
            return
        for path in sorted(self.pending_dir.glob("*.json")):
            try:
                record = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.error("Unreadable queued event %s: %s", path.name, exc)
                self._move_to_failed(path, {"id": path.stem, "payload": None}, str(exc))
                continue
            yield record.get("id", path.stem), record.get("payload")

    def ack(self, event_id: str) -> None:
        path = self.pending_dir / f"{event_id}.json"
        if path.exists():
            path.unlink()

    def fail(self, event_id: str, error: str) -> None:
        path = self.pending_dir / f"{event_id}.json"
        if not path.exists():
            return
        record = json.loads(path.read_text(encoding="utf-8"))
        self._move_to_failed(path, record, error)

    def _move_to_failed(self, path: Path, record: Dict[str, Any], error: str) -> None:
        self._ensure_dirs()
        record["error"] = error
        self._write(self.failed_dir / path.name, record)
        path.unlink()

    def counts(self) -> Dict[str, int]:
        def _count(directory: Path) -> int:
            return len(list(directory.glob("*.json"))) if directory.exists() else 0

        return {"pending": _count(self.pending_dir), "failed": _count(self.failed_dir)}


class QueueWorker:
    def __init__(self, queue: EventQueue, handler: Callable[[Any], None]):
        self.queue = queue
        self.handler = handler
        self._lock = threading.Lock()

    def drain(self, limit: Optional[int] = None) -> int:
        """Handle queued events until the queue is empty. Returns how many ran."""
        handled = 0
        with self._lock:
            for event_id, payload in self.queue.pending():
                if limit is not None and handled >= limit:
                    break
                try:
                    self.handler(payload)
                except Exception as exc:
                    logger.exception("Event %s failed", event_id)
                    self.queue.fail(event_id, f"{type(exc).__name__}: {exc}")
                else:
                    self.queue.ack(event_id)
                handled += 1
        return handled
