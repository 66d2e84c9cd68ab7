"""
Storage backends for completed exercise sessions.

Current strategy:
- JSON file under /tmp (or $REPSENSE_STORE_PATH), rewritten atomically on every create.
- In-memory store for tests and throwaway servers.
"""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path
from typing import List, Protocol

from api.schemas import SessionCreate, SessionRecord

DEFAULT_STORE_PATH = Path(os.getenv("REPSENSE_STORE_PATH", "/tmp/repsense/sessions.json"))


class StorageError(RuntimeError):
    """Raised when the backing store cannot be read or written."""


class SessionStore(Protocol):
    def create(self, session: SessionCreate) -> SessionRecord:
        ...

    def list(self) -> List[SessionRecord]:
        ...


class MemorySessionStore:
    def __init__(self) -> None:
        self._records: List[SessionRecord] = []
        self._lock = threading.Lock()

    def create(self, session: SessionCreate) -> SessionRecord:
        with self._lock:
            record = SessionRecord(id=len(self._records) + 1, **session.model_dump())
            self._records.append(record)
            return record

    def list(self) -> List[SessionRecord]:
        with self._lock:
            return list(self._records)


class JsonFileSessionStore:
    """Keeps every session in a single JSON array on disk."""

    def __init__(self, path: Path = DEFAULT_STORE_PATH) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> List[SessionRecord]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return [SessionRecord.model_validate(item) for item in raw]
        except (OSError, ValueError) as exc:
            raise StorageError(f"Failed to read session store {self.path}: {exc}") from exc

    def _save(self, records: List[SessionRecord]) -> None:
        payload = [r.model_dump(mode="json", by_alias=True) for r in records]
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StorageError(f"Failed to write session store {self.path}: {exc}") from exc

    def create(self, session: SessionCreate) -> SessionRecord:
        with self._lock:
            records = self._load()
            next_id = max((r.id for r in records), default=0) + 1
            record = SessionRecord(id=next_id, **session.model_dump())
            records.append(record)
            self._save(records)
            return record

    def list(self) -> List[SessionRecord]:
        with self._lock:
            return self._load()
