"""
Storage Backend Module

Document-style storage for cooperative records. Every table holds JSON
documents keyed by record id. Monetary values are stored as Decimal strings.
Two backends are provided: in-memory (tests) and SQLite (persistence).
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Union
from datetime import datetime, timezone
from dataclasses import dataclass
from contextlib import contextmanager
from pathlib import Path
import copy
import json
import re
import sqlite3
import threading


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def base_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }

    @staticmethod
    def base_kwargs(data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'id': data['id'],
            'created_at': datetime.fromisoformat(data['created_at']),
            'updated_at': datetime.fromisoformat(data['updated_at']),
        }

    def touch(self) -> None:
        self.updated_at = utcnow()


def _matches(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    return all(key in record and record[key] == value for key, value in filters.items())


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace a record"""

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record, or None"""

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load every record of a table in insertion order"""

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record, returning whether it existed"""

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Remove all records from a table"""

    @abstractmethod
    def close(self) -> None:
        """Release backend resources"""

    def exists(self, table: str, record_id: str) -> bool:
        return self.load(table, record_id) is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Records whose top-level fields equal every filter value"""
        return [record for record in self.load_all(table) if _matches(record, filters)]

    def count(self, table: str) -> int:
        return len(self.load_all(table))

    def load_scope(self, table: str) -> List[Dict[str, Any]]:
        """Records owned by the caller; backends without scoping return everything"""
        return self.load_all(table)

    def begin_transaction(self) -> None:
        pass

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass

    def on_commit(self, callback: Callable[[], Any]) -> None:
        """Run callback after the outermost atomic() block commits, or now when none is open"""
        pending = getattr(self, '_on_commit', None)
        if pending is None:
            callback()
        else:
            pending.append(callback)

    @contextmanager
    def atomic(self):
        """All writes inside the block are kept, or none are"""
        outermost = getattr(self, '_on_commit', None) is None
        if outermost:
            self._on_commit: List[Callable[[], Any]] = []
        queued = len(self._on_commit)
        self.begin_transaction()
        try:
            yield self
        except Exception:
            self.rollback()
            # Callbacks registered by a rolled back block never run
            del self._on_commit[queued:]
            raise
        else:
            self.commit()
        finally:
            if outermost:
                callbacks, self._on_commit = self._on_commit, None
        if outermost:
            for callback in callbacks:
                callback()


class InMemoryStorage(StorageInterface):
    """In-memory storage used by tests and the demo server"""

    def __init__(self):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._snapshots: List[Dict[str, Dict[str, Dict[str, Any]]]] = []

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._tables.setdefault(table, {})

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            # Round-trip through JSON so callers never share mutable state
            self._table(table)[record_id] = json.loads(json.dumps(data, default=str))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._table(table).get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(record) for record in self._table(table).values()]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._table(table).pop(record_id, None) is not None

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._tables[table] = {}

    def close(self) -> None:
        pass

    def begin_transaction(self) -> None:
        with self._lock:
            self._snapshots.append(copy.deepcopy(self._tables))

    def commit(self) -> None:
        with self._lock:
            if self._snapshots:
                self._snapshots.pop()

    def rollback(self) -> None:
        with self._lock:
            if self._snapshots:
                self._tables = self._snapshots.pop()


_TABLE_NAME = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


class SQLiteStorage(StorageInterface):
    """SQLite storage: one table per record type, JSON document per row"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._known_tables = set()

        if self.db_path != ":memory:":
            self._connection.execute("PRAGMA journal_mode = WAL")

    def _ensure_table(self, table: str) -> None:
        if table in self._known_tables:
            return
        if not _TABLE_NAME.match(table):
            raise ValueError(f"Invalid table name: {table}")
        self._connection.execute(
            f"CREATE TABLE IF NOT EXISTS {table} ("
            " id TEXT PRIMARY KEY,"
            " seq INTEGER NOT NULL,"
            " data TEXT NOT NULL)"
        )
        self._known_tables.add(table)

    def _autocommit(self) -> None:
        if self._depth == 0:
            self._connection.commit()

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._ensure_table(table)
            payload = json.dumps(data, default=str)
            updated = self._connection.execute(
                f"UPDATE {table} SET data = ? WHERE id = ?", (payload, record_id)
            )
            if updated.rowcount == 0:
                self._connection.execute(
                    f"INSERT INTO {table} (id, seq, data) VALUES "
                    f"(?, (SELECT COALESCE(MAX(seq), 0) + 1 FROM {table}), ?)",
                    (record_id, payload)
                )
            self._autocommit()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            row = self._connection.execute(
                f"SELECT data FROM {table} WHERE id = ?", (record_id,)
            ).fetchone()
            return json.loads(row['data']) if row else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            rows = self._connection.execute(f"SELECT data FROM {table} ORDER BY seq").fetchall()
            return [json.loads(row['data']) for row in rows]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
            self._autocommit()
            return cursor.rowcount > 0

    def count(self, table: str) -> int:
        with self._lock:
            self._ensure_table(table)
            return self._connection.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._ensure_table(table)
            self._connection.execute(f"DELETE FROM {table}")
            self._autocommit()

    def begin_transaction(self) -> None:
        with self._lock:
            self._depth += 1

    def commit(self) -> None:
        with self._lock:
            if self._depth > 0:
                self._depth -= 1
            if self._depth == 0:
                self._connection.commit()

    def rollback(self) -> None:
        with self._lock:
            self._depth = 0
            self._connection.rollback()
            # Tables created inside the transaction are gone as well
            self._known_tables.clear()

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(database_url: str, use_sqlite: bool = True) -> StorageInterface:
    """Build a backend from a database URL such as sqlite:///cooperative.db"""
    if not use_sqlite or database_url in ("", "memory://"):
        return InMemoryStorage()
    if not database_url.startswith("sqlite:///"):
        raise ValueError(f"Unsupported database URL: {database_url}")
    return SQLiteStorage(database_url[len("sqlite:///"):] or ":memory:")


def next_sequential_id(storage: StorageInterface, table: str, prefix: str, width: int = 3) -> str:
    """
    Next human-readable id for a table, e.g. MEM001, LOAN014.

    Uses the highest existing numeric suffix so deleted records never cause reuse
    of a live id.
    """
    pattern = re.compile(rf'^{re.escape(prefix)}(\d+)$')
    highest = 0
    for record in storage.load_scope(table):
        match = pattern.match(str(record.get('id', '')))
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{prefix}{highest + 1:0{width}d}"
