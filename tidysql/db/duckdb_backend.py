"""Native DuckDB store."""

import logging

import duckdb
from sqlalchemy import Column, MetaData, Table, insert
from sqlalchemy.schema import CreateTable
from sqlalchemy.types import BIGINT, BOOLEAN, DATE, DECIMAL, DOUBLE, TIMESTAMP, VARCHAR

from tidysql.config import ConnectionSettings
from tidysql.core.dialects import DUCKDB, Dialect
from tidysql.core.dialects.sa_dialect import single_line
from tidysql.db.base import Backend, QueryRows, TableData

logger = logging.getLogger(__name__)

_COLUMN_TYPES = {
    "integer": BIGINT,
    "float": DOUBLE,
    "decimal": lambda: DECIMAL(38, 10),
    "boolean": BOOLEAN,
    "string": VARCHAR,
    "date": DATE,
    "timestamp": TIMESTAMP,
}


class DuckDBBackend(Backend):
    """Embedded DuckDB database, in memory or in a file."""

    name = "duckdb"

    def connect(self, settings: ConnectionSettings) -> duckdb.DuckDBPyConnection:
        logger.debug("Opening DuckDB database %s", settings.database)
        return duckdb.connect(database=settings.database, read_only=settings.read_only)

    def close(self, handle: duckdb.DuckDBPyConnection) -> None:
        handle.close()

    def dialect(self, handle: duckdb.DuckDBPyConnection) -> Dialect:
        return DUCKDB

    def write_table(
        self,
        handle: duckdb.DuckDBPyConnection,
        name: str,
        data: TableData,
        temporary: bool = False,
        overwrite: bool = False,
    ) -> None:
        if not overwrite and name in self.list_tables(handle):
            raise ValueError(f"Table '{name}' already exists")

        prefixes = ["OR REPLACE"] if overwrite else []
        if temporary:
            prefixes.append("TEMPORARY")
        table = Table(
            name,
            MetaData(),
            *[
                Column(column, _COLUMN_TYPES[kind]())
                for column, kind in zip(data.columns, data.types)
            ],
            prefixes=prefixes,
        )

        # DuckDB's Python API binds positional "?" parameters.
        create = CreateTable(table).compile(dialect=DUCKDB.sqlalchemy_dialect())
        handle.execute(single_line(str(create)))
        if data.rows:
            statement = insert(table).compile(
                dialect=DUCKDB.sqlalchemy_dialect(paramstyle="qmark")
            )
            handle.executemany(
                single_line(str(statement)),
                [list(row) for row in data.rows],
            )

    def list_tables(self, handle: duckdb.DuckDBPyConnection) -> list[str]:
        rows = handle.execute(
            "SELECT DISTINCT table_name FROM duckdb_tables() ORDER BY table_name"
        ).fetchall()
        return [row[0] for row in rows]

    def execute_query(self, handle: duckdb.DuckDBPyConnection, sql: str) -> QueryRows:
        cursor = handle.execute(sql)
        if cursor.description is None:
            return QueryRows(columns=[])
        columns = [d[0] for d in cursor.description]
        return QueryRows(columns=columns, rows=cursor.fetchall())
