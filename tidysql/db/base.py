"""
Backend interface and connections for tidysql.

A Backend knows how to talk to one kind of store. A Connection pairs a
backend with one open store handle and the dialect used to compile SQL
for it. Connections are context managers; closing one releases the
handle, and the store drops any temporary tables written through it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import literal_column, select, table

from tidysql.config import ConnectionSettings
from tidysql.core.dialects import Dialect
from tidysql.core.dialects.sa_dialect import compile_statement
from tidysql.core.execution import ExecutionError
from tidysql.core.relation import LazyRelation

logger = logging.getLogger(__name__)


# -----------------------------
# Data structures
# -----------------------------


@dataclass
class QueryRows:
    """Raw result of one statement."""

    columns: list[str]
    rows: list[tuple[Any, ...]] = field(default_factory=list)


@dataclass(frozen=True)
class TableData:
    """Rows to write, with their column names and inferred logical types."""

    columns: tuple[str, ...]
    rows: list[tuple[Any, ...]]
    types: tuple[str, ...]

    @classmethod
    def from_rows(
        cls,
        rows: Any,
        columns: Sequence[str] | None = None,
    ) -> TableData:
        """
        Normalize records or a result table.

        Accepts a sequence of mappings (all with the same keys), or any
        object with ``columns`` and ``rows`` attributes.
        """
        if hasattr(rows, "columns") and hasattr(rows, "rows"):
            names = tuple(rows.columns)
            values = [tuple(r) for r in rows.rows]
        else:
            records = list(rows)
            if records and not all(isinstance(r, Mapping) for r in records):
                raise TypeError("write_table() expects a sequence of mappings")
            if columns is not None:
                names = tuple(columns)
            elif records:
                names = tuple(records[0].keys())
            else:
                raise ValueError("Cannot infer columns from empty rows; pass columns=")
            for record in records:
                if set(record.keys()) != set(names):
                    raise ValueError(
                        f"Row keys {sorted(record.keys())} do not match columns {list(names)}"
                    )
            values = [tuple(r[c] for c in names) for r in records]

        if not names:
            raise ValueError("Cannot write a table without columns")
        types = tuple(
            infer_column_type(row[i] for row in values) for i in range(len(names))
        )
        return cls(columns=names, rows=values, types=types)


def infer_column_type(values) -> str:
    """
    Infer a logical column type from Python values, ignoring None.

    Returns one of: integer, float, decimal, boolean, string, date,
    timestamp. Mixed int/float widen to float; anything else mixed is
    stored as string.
    """
    kinds: set[str] = set()
    for value in values:
        if value is None:
            continue
        if isinstance(value, bool):
            kinds.add("boolean")
        elif isinstance(value, int):
            kinds.add("integer")
        elif isinstance(value, float):
            kinds.add("float")
        elif isinstance(value, Decimal):
            kinds.add("decimal")
        elif isinstance(value, datetime):
            kinds.add("timestamp")
        elif isinstance(value, date):
            kinds.add("date")
        else:
            kinds.add("string")

    if not kinds:
        return "string"
    if len(kinds) == 1:
        return kinds.pop()
    if kinds <= {"integer", "float"}:
        return "float"
    if kinds <= {"integer", "decimal"}:
        return "decimal"
    return "string"


def columns_query(name: str, dialect: Dialect) -> str:
    """Zero-row query exposing the columns of a table."""
    statement = (
        select(literal_column("*"))
        .select_from(table(name))
        .where(literal_column("1") == literal_column("0"))
    )
    return compile_statement(statement, dialect.sqlalchemy_dialect())


# -----------------------------
# Backend interface
# -----------------------------


class Backend(ABC):
    """Capabilities a store must provide."""

    name: str = ""

    @abstractmethod
    def connect(self, settings: ConnectionSettings) -> Any:
        """Open and return a raw store handle."""

    @abstractmethod
    def close(self, handle: Any) -> None:
        """Release a handle returned by ``connect``."""

    @abstractmethod
    def dialect(self, handle: Any) -> Dialect:
        """Dialect matching the store behind ``handle``."""

    @abstractmethod
    def write_table(
        self,
        handle: Any,
        name: str,
        data: TableData,
        temporary: bool = False,
        overwrite: bool = False,
    ) -> None:
        """Create table ``name`` and insert ``data``."""

    @abstractmethod
    def list_tables(self, handle: Any) -> list[str]:
        """Names of the tables visible on ``handle``, sorted."""

    @abstractmethod
    def execute_query(self, handle: Any, sql: str) -> QueryRows:
        """Run one statement and fetch all rows."""

    def list_columns(self, handle: Any, name: str, dialect: Dialect) -> list[str]:
        """Column names of ``name``, found with a zero-row query."""
        return list(self.execute_query(handle, columns_query(name, dialect)).columns)


# -----------------------------
# Connection
# -----------------------------


class Connection:
    """
    An open connection to a store.

    Example:
        with connect(ConnectionSettings()) as conn:
            conn.write_table("flights", rows)
            conn.table("flights").filter(col("dep_delay") > 60).collect()
    """

    def __init__(
        self,
        backend: Backend,
        handle: Any,
        dialect: Dialect | None = None,
        echo_sql: bool = False,
    ):
        self._backend = backend
        self._handle = handle
        self._dialect = dialect or backend.dialect(handle)
        self._echo_sql = echo_sql
        self._closed = False

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Connection is closed")

    # -------------------------
    # Store operations
    # -------------------------

    def table(self, name: str) -> LazyRelation:
        """Lazy relation over an existing table."""
        self._check_open()
        try:
            columns = self._backend.list_columns(self._handle, name, self._dialect)
        except Exception as e:
            raise ExecutionError(
                f"Cannot read columns of table '{name}': {type(e).__name__}: {e}",
                columns_query(name, self._dialect),
            ) from e
        return LazyRelation.from_table(name, columns, connection=self)

    def write_table(
        self,
        name: str,
        rows: Any,
        columns: Sequence[str] | None = None,
        temporary: bool = False,
        overwrite: bool = False,
    ) -> LazyRelation:
        """Write rows to a new table and return a relation over it."""
        self._check_open()
        data = TableData.from_rows(rows, columns)
        logger.debug(
            "Writing %d rows to %s%s via %s",
            len(data.rows),
            "temporary table " if temporary else "",
            name,
            self._backend.name,
        )
        self._backend.write_table(
            self._handle, name, data, temporary=temporary, overwrite=overwrite
        )
        return LazyRelation.from_table(name, data.columns, connection=self)

    def list_tables(self) -> list[str]:
        self._check_open()
        return self._backend.list_tables(self._handle)

    def execute_query(self, sql: str) -> QueryRows:
        self._check_open()
        logger.log(logging.INFO if self._echo_sql else logging.DEBUG, "SQL: %s", sql)
        return self._backend.execute_query(self._handle, sql)

    # -------------------------
    # Lifecycle
    # -------------------------

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._backend.close(self._handle)
        logger.debug("Closed %s connection", self._backend.name)

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<Connection {self._backend.name} dialect={self._dialect.name} {state}>"


# -----------------------------
# Collaborator functions
# -----------------------------


def write_table(conn: Connection, name: str, rows: Any, **kwargs: Any) -> LazyRelation:
    return conn.write_table(name, rows, **kwargs)


def list_tables(conn: Connection) -> list[str]:
    return conn.list_tables()


def execute_query(conn: Connection, sql: str) -> QueryRows:
    return conn.execute_query(sql)
