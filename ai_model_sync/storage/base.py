"""
Dataset store contract.

The store owns the current record for each model id. The sync orchestrator
is its only writer; readers never take a lock.
"""

import json
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Protocol

from .models import ModelRecord


class StoreError(Exception):
    """Base class for dataset store failures."""


class StoreUnavailableError(StoreError):
    """The backend cannot be opened, read or written. Fatal for a run."""


class StoreWriteConflict(StoreError):
    """An upsert would break a per-record invariant."""
    def __init__(self, model_id: str, message: str):
        super().__init__(f"{model_id}: {message}")
        self.model_id = model_id


class InvalidModelIdError(StoreError, ValueError):
    """A model id the backend cannot store. Rejects one record, not the run."""


class DatasetStore(Protocol):
    """Read/write contract shared by all store backends."""

    def initialize(self) -> None: ...

    def get(self, model_id: str) -> Optional[ModelRecord]: ...

    def upsert(self, record: ModelRecord) -> None: ...

    def list_all(self) -> List[ModelRecord]: ...

    def lock(self, model_id: str): ...


class KeyedLocks:
    """One lock per key, dropped once no thread holds or waits for it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            key_lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        try:
            with key_lock:
                yield
        finally:
            with self._guard:
                self._users[key] -= 1
                if not self._users[key]:
                    del self._users[key]
                    del self._locks[key]


def check_upsert(existing: Optional[ModelRecord], record: ModelRecord) -> None:
    """Enforce the invariants an upsert must preserve.

    Raises:
        StoreWriteConflict: If the record would move last_verified_at backwards
    """
    if existing is None:
        return
    if existing.model_id != record.model_id:
        raise StoreWriteConflict(record.model_id, f"model id cannot change (stored as {existing.model_id})")
    if record.last_verified_at < existing.last_verified_at:
        raise StoreWriteConflict(
            record.model_id,
            f"last_verified_at would regress from {existing.last_verified_at.isoformat()} "
            f"to {record.last_verified_at.isoformat()}"
        )


def decode_document(text: str, source: str) -> ModelRecord:
    """Parse a persisted document, treating corruption as a store failure.

    Raises:
        StoreUnavailableError: If the document is not a valid record
    """
    try:
        return ModelRecord.from_document(json.loads(text))
    except (ValueError, KeyError, TypeError, ArithmeticError) as e:
        raise StoreUnavailableError(f"Corrupt record document in {source}: {e}") from e
