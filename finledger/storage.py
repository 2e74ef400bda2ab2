"""
Document Store Module

Provides the abstract document-store port the services persist through and
an in-memory implementation (testing, embedding). Records are plain JSON
documents keyed by table and id; monetary values are stored as Decimal
strings.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional
from datetime import datetime
import json
import logging
import threading
from dataclasses import dataclass
from contextlib import contextmanager

from .errors import NotFoundCondition

Snapshot = List[Dict[str, Any]]
SnapshotCallback = Callable[[str, Snapshot], None]

logger = logging.getLogger("finledger.storage")


@dataclass(frozen=True)
class StorageRecord:
    """Base class for all stored records; records are immutable values"""
    id: str
    created_at: datetime
    updated_at: datetime


class StorageInterface(ABC):
    """Abstract interface for document store backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Create or replace a document"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a document, or None if absent"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all documents from a table"""
        pass

    @abstractmethod
    def update(self, table: str, record_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Merge changes into an existing document and return the result"""
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a document; returns False if it did not exist"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        """Check if a document exists"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find documents whose fields equal all filter values"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count documents in table"""
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Remove all documents from a table"""
        pass

    @abstractmethod
    def subscribe(self, table: str, callback: SnapshotCallback) -> Callable[[], None]:
        """
        Register a callback receiving (table, full snapshot) after each write.

        Returns a function that removes the subscription.
        """
        pass

    def begin_transaction(self) -> None:
        """Start a transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except Exception:
            self.rollback()
            raise


def _copy(document: Dict[str, Any]) -> Dict[str, Any]:
    # Deep copy through JSON so callers never share state with the store
    return json.loads(json.dumps(document, default=str))


class InMemoryStorage(StorageInterface):
    """
    In-memory document store.

    atomic() blocks snapshot the data on entry and restore it on error;
    subscribers are notified once per touched table when the outermost
    block commits.
    """

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._subscribers: Dict[str, List[SnapshotCallback]] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self._backup: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None
        self._dirty: List[str] = []

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists"""
        if table not in self._data:
            self._data[table] = {}

    def _changed(self, table: str) -> None:
        if self._depth:
            if table not in self._dirty:
                self._dirty.append(table)
        else:
            self._notify(table)

    def _notify(self, table: str) -> None:
        callbacks = list(self._subscribers.get(table, []))
        if not callbacks:
            return
        snapshot = self.load_all(table)
        for callback in callbacks:
            try:
                callback(table, [_copy(doc) for doc in snapshot])
            except Exception:
                logger.exception(f"Snapshot subscriber failed for table {table}")

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a document to memory"""
        with self._lock:
            self._ensure_table(table)
            self._data[table][record_id] = _copy(data)
            self._changed(table)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a document from memory"""
        with self._lock:
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record is not None:
                return _copy(record)
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all documents from a table"""
        with self._lock:
            self._ensure_table(table)
            return [_copy(record) for record in self._data[table].values()]

    def update(self, table: str, record_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Merge changes into a stored document"""
        with self._lock:
            self._ensure_table(table)
            if record_id not in self._data[table]:
                raise NotFoundCondition(f"{table}/{record_id} does not exist")
            merged = dict(self._data[table][record_id])
            merged.update(_copy(changes))
            self._data[table][record_id] = merged
            self._changed(table)
            return _copy(merged)

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a document from memory"""
        with self._lock:
            self._ensure_table(table)
            if record_id in self._data[table]:
                del self._data[table][record_id]
                self._changed(table)
                return True
            return False

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a document exists"""
        with self._lock:
            self._ensure_table(table)
            return record_id in self._data[table]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find documents matching filters"""
        with self._lock:
            self._ensure_table(table)
            results = []
            for record in self._data[table].values():
                if all(key in record and record[key] == value for key, value in filters.items()):
                    results.append(_copy(record))
            return results

    def count(self, table: str) -> int:
        """Count documents in table"""
        with self._lock:
            self._ensure_table(table)
            return len(self._data[table])

    def clear_table(self, table: str) -> None:
        """Clear all documents from a table"""
        with self._lock:
            self._data[table] = {}
            self._changed(table)

    def subscribe(self, table: str, callback: SnapshotCallback) -> Callable[[], None]:
        with self._lock:
            self._subscribers.setdefault(table, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(table, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def begin_transaction(self) -> None:
        self._lock.acquire()
        if self._depth == 0:
            self._backup = {table: _copy(docs) for table, docs in self._data.items()}
            self._dirty = []
        self._depth += 1

    def commit(self) -> None:
        try:
            self._depth -= 1
            if self._depth == 0:
                self._backup = None
                dirty, self._dirty = self._dirty, []
                for table in dirty:
                    self._notify(table)
        finally:
            self._lock.release()

    def rollback(self) -> None:
        try:
            self._depth -= 1
            if self._depth == 0:
                if self._backup is not None:
                    self._data = self._backup
                self._backup = None
                self._dirty = []
        finally:
            self._lock.release()
