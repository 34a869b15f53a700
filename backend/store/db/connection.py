"""SQLite database connection, table mapping, and row access.

``Database`` is the only object that touches the sqlite3 connection. It is
shared by every store and every concurrently running operation, so all access
goes through a re-entrant lock. Operations are blocking and are expected to
run in worker threads (see ``asyncio.to_thread``).
"""

from __future__ import annotations

import contextlib
import os
import sqlite3
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping

    from pydantic import BaseModel

logger = structlog.get_logger()

_DB_FILE_PERMISSIONS = 0o600

DEFAULT_BUSY_TIMEOUT_MS = 5000


def _bool_to_db(value: bool) -> str:  # noqa: FBT001
    return "1" if value else "0"


def _bool_from_db(value: str | None) -> bool:
    return value == "1"


class ColumnMap:
    """Mapping of one model field to a table column."""

    def __init__(self, name: str, python_type: type) -> None:
        self.name = name
        self.max_size = 0
        self.unique = False
        self.is_key = False
        self._to_db: Callable[[Any], Any] | None = None
        self._from_db: Callable[[Any], Any] | None = None
        if python_type is bool:
            self.max_size = 1
            self._to_db = _bool_to_db
            self._from_db = _bool_from_db
        self._python_type = python_type

    def set_max_size(self, size: int) -> ColumnMap:
        self.max_size = size
        return self

    def set_unique(self, unique: bool = True) -> ColumnMap:  # noqa: FBT001, FBT002
        self.unique = unique
        return self

    def to_db(self, value: Any) -> Any:  # noqa: ANN401
        return self._to_db(value) if self._to_db else value

    def from_db(self, value: Any) -> Any:  # noqa: ANN401
        return self._from_db(value) if self._from_db else value

    def ddl(self) -> str:
        """Column definition for CREATE TABLE."""
        if self._python_type is int:
            parts = [self.name, "BIGINT"]
        elif self.max_size:
            parts = [self.name, f"VARCHAR({self.max_size})"]
        else:
            parts = [self.name, "TEXT"]
        if self.is_key:
            parts.append("PRIMARY KEY")
        parts.append("NOT NULL")
        if self.unique:
            parts.append("UNIQUE")
        if self._python_type is str:
            parts.append("COLLATE NOCASE" if self.unique else "")
        if self.max_size and self._python_type is not int:
            # SQLite ignores VARCHAR(n); the length limit has to be a CHECK.
            parts.append(f"CHECK (length({self.name}) <= {self.max_size})")
        return " ".join(p for p in parts if p)


class TableMap:
    """Mapping between a pydantic model class and a table.

    Columns are derived from the model's fields in declaration order.
    """

    def __init__(self, name: str, model: type[BaseModel], key: str) -> None:
        if key not in model.model_fields:
            msg = f"Key column {key!r} is not a field of {model.__name__}"
            raise ValueError(msg)
        self.name = name
        self.model = model
        self.key = key
        self.columns: dict[str, ColumnMap] = {
            field_name: ColumnMap(field_name, field.annotation)  # type: ignore[arg-type]
            for field_name, field in model.model_fields.items()
        }
        self.columns[key].is_key = True

    def column(self, name: str) -> ColumnMap:
        try:
            return self.columns[name]
        except KeyError:
            msg = f"Table {self.name!r} has no column {name!r}"
            raise KeyError(msg) from None

    def create_sql(self) -> str:
        cols = ",\n    ".join(c.ddl() for c in self.columns.values())
        return f"CREATE TABLE IF NOT EXISTS {self.name} (\n    {cols}\n)"

    def to_row(self, obj: BaseModel) -> dict[str, Any]:
        values = obj.model_dump()
        return {name: col.to_db(values[name]) for name, col in self.columns.items()}

    def from_row(self, row: Mapping[str, Any]) -> BaseModel:
        return self.model.model_validate({name: col.from_db(row[name]) for name, col in self.columns.items()})


class Database:
    """SQLite database wrapper: connection lifecycle, schema registration, and mapped row access."""

    def __init__(self, path: str | Path, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        self._path = str(path)
        self._busy_timeout_ms = busy_timeout_ms
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._tables: dict[str, TableMap] = {}
        self._tables_by_model: dict[type[BaseModel], TableMap] = {}

    @property
    def connection(self) -> sqlite3.Connection:
        """Return the active connection or raise if disconnected."""
        if self._conn is None:
            raise RuntimeError("Database is not connected")
        return self._conn

    def connect(self) -> None:
        """Open the database, apply pragmas, and harden file permissions."""
        parent = Path(self._path).parent
        parent.mkdir(parents=True, exist_ok=True)

        # isolation_level=None: every statement commits on its own unless it
        # runs inside transaction().
        conn = sqlite3.connect(self._path, check_same_thread=False, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute(f"PRAGMA busy_timeout={int(self._busy_timeout_ms)}")
        self._conn = conn

        self._harden_permissions()
        logger.info("database connected", path=self._path)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # Schema

    def add_table(self, name: str, model: type[BaseModel], *, key: str = "id") -> TableMap:
        """Register a model class against a table. Column constraints are configured on the returned map."""
        table = TableMap(name, model, key)
        self._tables[name] = table
        self._tables_by_model[model] = table
        return table

    def table_for(self, model: type[BaseModel]) -> TableMap:
        try:
            return self._tables_by_model[model]
        except KeyError:
            msg = f"No table registered for {model.__name__}"
            raise KeyError(msg) from None

    def create_tables_if_not_exists(self) -> None:
        with self._lock:
            for table in self._tables.values():
                self.connection.execute(table.create_sql())

    def create_index_if_not_exists(self, index_name: str, table_name: str, column_name: str) -> None:
        with self._lock:
            self.connection.execute(f"CREATE INDEX IF NOT EXISTS {index_name} ON {table_name} ({column_name})")

    def drop_all_tables(self) -> None:
        """Drop every registered table. Intended for tests."""
        with self._lock:
            for name in self._tables:
                self.connection.execute(f"DROP TABLE IF EXISTS {name}")

    @contextlib.contextmanager
    def transaction(self) -> Iterator[Database]:
        """Hold the connection exclusively and run the enclosed statements in one transaction.

        Other threads block until the transaction commits or rolls back.
        """
        with self._lock:
            conn = self.connection
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield self
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    # Mapped row access

    def insert(self, obj: BaseModel) -> None:
        table = self.table_for(type(obj))
        row = table.to_row(obj)
        cols = ", ".join(row)
        placeholders = ", ".join(f":{c}" for c in row)
        self.exec(f"INSERT INTO {table.name} ({cols}) VALUES ({placeholders})", row)  # noqa: S608

    def get(self, model: type[BaseModel], key: Any) -> BaseModel | None:  # noqa: ANN401
        table = self.table_for(model)
        sql = f"SELECT * FROM {table.name} WHERE {table.key} = :key"  # noqa: S608
        return self.select_one(model, sql, {"key": key})

    def update(self, obj: BaseModel) -> int:
        """Overwrite every non-key column of the row matching obj's key. Returns the affected row count."""
        table = self.table_for(type(obj))
        row = table.to_row(obj)
        assignments = ", ".join(f"{c} = :{c}" for c in row if c != table.key)
        return self.exec(f"UPDATE {table.name} SET {assignments} WHERE {table.key} = :{table.key}", row)  # noqa: S608

    # Raw access

    def exec(self, sql: str, params: Mapping[str, Any] | None = None) -> int:
        """Execute a statement and return the affected row count."""
        with self._lock:
            cursor = self.connection.execute(sql, params or {})
            return cursor.rowcount

    def select(self, model: type[BaseModel], sql: str, params: Mapping[str, Any] | None = None) -> list[Any]:
        table = self.table_for(model)
        with self._lock:
            rows = self.connection.execute(sql, params or {}).fetchall()
        return [table.from_row(row) for row in rows]

    def select_one(
        self,
        model: type[BaseModel],
        sql: str,
        params: Mapping[str, Any] | None = None,
    ) -> Any | None:  # noqa: ANN401
        """Return the single mapped row, None when there is none. Raises LookupError on more than one."""
        rows = self.select(model, sql, params)
        if not rows:
            return None
        if len(rows) > 1:
            msg = f"Expected one row, got {len(rows)}"
            raise LookupError(msg)
        return rows[0]

    def select_int(self, sql: str, params: Mapping[str, Any] | None = None) -> int:
        with self._lock:
            row = self.connection.execute(sql, params or {}).fetchone()
        if row is None or row[0] is None:
            return 0
        return int(row[0])

    def _harden_permissions(self) -> None:
        """Set restrictive file permissions on POSIX systems (best effort).

        Covers the WAL/SHM sibling files too, since they hold database content.
        """
        if os.name != "posix":  # pragma: no cover
            return
        for suffix in ("", "-wal", "-shm"):
            p = Path(self._path + suffix)
            if p.exists():
                try:
                    p.chmod(_DB_FILE_PERMISSIONS)
                except OSError:
                    logger.warning("could not set file permissions", permissions=oct(_DB_FILE_PERMISSIONS), path=str(p))
