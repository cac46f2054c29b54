"""
Storage Backends

Tables of JSON documents keyed by record id. Accounts and transaction records
are written through these backends; monetary values arrive already rendered
as Decimal strings. Every backend supports atomic sections: a block of writes
that commits as a whole or is rolled back as a whole.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from datetime import datetime, timezone
from dataclasses import dataclass, fields
from pathlib import Path
from contextlib import contextmanager
import json
import sqlite3
import threading


Row = Dict[str, Any]


def _copy_row(row: Row) -> Row:
    # Rows round-trip through JSON so callers never share mutable state
    return json.loads(json.dumps(row, default=str))


@dataclass
class StorageRecord:
    """Identity and timestamps shared by every persisted entity"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Row:
        """Flat dict of the dataclass fields with timestamps as ISO strings"""
        row = {f.name: getattr(self, f.name) for f in fields(self)}
        row['created_at'] = self.created_at.isoformat()
        row['updated_at'] = self.updated_at.isoformat()
        return row


class StorageInterface(ABC):
    """
    Contract for a storage backend

    Subclasses set ``_lock`` (an RLock guarding every call) and
    ``_in_transaction``; ``atomic()`` is built on both.
    """

    backend_name = "abstract"

    @abstractmethod
    def save(self, table: str, record_id: str, data: Row) -> None:
        """Insert or replace the row stored under ``record_id``"""

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Row]:
        """Return a copy of one row, or None"""

    @abstractmethod
    def load_all(self, table: str) -> List[Row]:
        """Return every row of a table in insertion order"""

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Remove a row; False when it was not there"""

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Row]:
        """Rows whose top-level fields equal every filter value, in insertion order"""

    @abstractmethod
    def count(self, table: str) -> int:
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the backend's resources"""

    @abstractmethod
    def begin_transaction(self) -> None:
        pass

    @abstractmethod
    def commit(self) -> None:
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Discard every write since begin_transaction"""

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @contextmanager
    def atomic(self):
        """
        Run a block of writes as one unit.

        The backend lock is held for the whole block, so other threads
        neither see partial writes nor interleave their own. A nested
        ``atomic()`` joins the enclosing unit and only the outermost block
        commits. Any exception rolls the unit back and propagates.
        """
        with self._lock:
            if self._in_transaction:
                yield
                return

            self.begin_transaction()
            try:
                yield
                self.commit()
            except BaseException:
                self.rollback()
                raise


class InMemoryStorage(StorageInterface):
    """Process-local backend for tests and demos; nothing survives a restart"""

    backend_name = "memory"

    def __init__(self):
        self._tables: Dict[str, Dict[str, Row]] = {}
        self._lock = threading.RLock()
        self._in_transaction = False
        # (table, record_id, row before the write or None) in write order
        self._undo_log: List[Tuple[str, str, Optional[Row]]] = []

    def _table(self, name: str) -> Dict[str, Row]:
        return self._tables.setdefault(name, {})

    def _track(self, name: str, record_ids: Iterable[str]) -> None:
        if not self._in_transaction:
            return
        table = self._table(name)
        for record_id in record_ids:
            self._undo_log.append((name, record_id, table.get(record_id)))

    def save(self, table: str, record_id: str, data: Row) -> None:
        with self._lock:
            self._track(table, [record_id])
            self._table(table)[record_id] = _copy_row(data)

    def load(self, table: str, record_id: str) -> Optional[Row]:
        with self._lock:
            row = self._table(table).get(record_id)
            return _copy_row(row) if row is not None else None

    def load_all(self, table: str) -> List[Row]:
        with self._lock:
            return [_copy_row(row) for row in self._table(table).values()]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            rows = self._table(table)
            if record_id not in rows:
                return False
            self._track(table, [record_id])
            del rows[record_id]
            return True

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            return record_id in self._table(table)

    def find(self, table: str, filters: Dict[str, Any]) -> List[Row]:
        with self._lock:
            return [
                _copy_row(row) for row in self._table(table).values()
                if all(key in row and row[key] == value for key, value in filters.items())
            ]

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))

    def clear_table(self, table: str) -> None:
        with self._lock:
            rows = self._table(table)
            self._track(table, list(rows))
            rows.clear()

    def begin_transaction(self) -> None:
        with self._lock:
            self._in_transaction = True
            self._undo_log = []

    def commit(self) -> None:
        with self._lock:
            self._in_transaction = False
            self._undo_log = []

    def rollback(self) -> None:
        with self._lock:
            # Newest first so a row written twice ends at its original value
            for table, record_id, previous in reversed(self._undo_log):
                rows = self._table(table)
                if previous is None:
                    rows.pop(record_id, None)
                else:
                    rows[record_id] = previous
            self._in_transaction = False
            self._undo_log = []

    def close(self) -> None:
        pass


class SQLiteStorage(StorageInterface):
    """
    File-backed (or ``:memory:``) SQLite backend

    Each table holds one JSON document per row. Writes outside an atomic
    section commit immediately; inside one they commit with the section.
    """

    backend_name = "sqlite"

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS {table} (
            id TEXT PRIMARY KEY,
            data TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """
    INDEX = "CREATE INDEX IF NOT EXISTS idx_{table}_created_at ON {table}(created_at)"

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._in_transaction = False
        self._known_tables = set()
        # One shared connection serialized by _lock; the sqlite3 module opens
        # the transaction implicitly on the first write
        self._connection = sqlite3.connect(
            self.db_path, check_same_thread=False, isolation_level="DEFERRED"
        )
        self._connection.row_factory = sqlite3.Row

        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = FULL")
                self._connection.commit()

    def _execute(self, table: str, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        if table not in self._known_tables:
            self._connection.execute(self.SCHEMA.format(table=table))
            self._connection.execute(self.INDEX.format(table=table))
            self._known_tables.add(table)
        return self._connection.execute(sql.format(table=table), tuple(params))

    def _autocommit(self) -> None:
        if not self._in_transaction:
            self._connection.commit()

    def _rows(self, cursor: sqlite3.Cursor) -> List[Row]:
        return [json.loads(row["data"]) for row in cursor.fetchall()]

    def save(self, table: str, record_id: str, data: Row) -> None:
        with self._lock:
            now = datetime.now(timezone.utc).isoformat()
            document = json.dumps(data, default=str)
            updated = self._execute(
                table, "UPDATE {table} SET data = ?, updated_at = ? WHERE id = ?",
                (document, now, record_id)
            )
            if updated.rowcount == 0:
                self._execute(
                    table,
                    "INSERT INTO {table} (id, data, created_at, updated_at) VALUES (?, ?, ?, ?)",
                    (record_id, document, now, now)
                )
            self._autocommit()

    def load(self, table: str, record_id: str) -> Optional[Row]:
        with self._lock:
            row = self._execute(
                table, "SELECT data FROM {table} WHERE id = ?", (record_id,)
            ).fetchone()
            return json.loads(row["data"]) if row else None

    def load_all(self, table: str) -> List[Row]:
        with self._lock:
            return self._rows(self._execute(
                table, "SELECT data FROM {table} ORDER BY created_at, rowid"
            ))

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            cursor = self._execute(table, "DELETE FROM {table} WHERE id = ?", (record_id,))
            self._autocommit()
            return cursor.rowcount > 0

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._execute(
                table, "SELECT 1 FROM {table} WHERE id = ? LIMIT 1", (record_id,)
            ).fetchone() is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Row]:
        with self._lock:
            clauses = []
            params: List[Any] = []
            for key, value in filters.items():
                clauses.append("json_extract(data, ?) = ?")
                params.extend([f"$.{key}", value])
            where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
            return self._rows(self._execute(
                table, f"SELECT data FROM {{table}} {where} ORDER BY created_at, rowid", params
            ))

    def count(self, table: str) -> int:
        with self._lock:
            return self._execute(table, "SELECT COUNT(*) FROM {table}").fetchone()[0]

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._execute(table, "DELETE FROM {table}")
            self._autocommit()

    def begin_transaction(self) -> None:
        with self._lock:
            self._in_transaction = True

    def commit(self) -> None:
        with self._lock:
            self._connection.commit()
            self._in_transaction = False

    def rollback(self) -> None:
        with self._lock:
            self._connection.rollback()
            self._in_transaction = False
            # A table created inside the unit may be gone again
            self._known_tables.clear()

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None


def create_storage(database_url: str) -> StorageInterface:
    """
    Build a storage backend from a database URL.

    ``memory://`` selects InMemoryStorage, ``sqlite:///path/to/file.db``
    a file-backed SQLiteStorage and ``sqlite://`` an in-memory SQLite db.
    """
    if database_url.startswith("memory://"):
        return InMemoryStorage()
    if database_url.startswith("sqlite://"):
        path = database_url[len("sqlite://"):]
        if path.startswith("/"):
            path = path[1:]
        return SQLiteStorage(path or ":memory:")
    raise ValueError(f"Unsupported database URL: {database_url}")
