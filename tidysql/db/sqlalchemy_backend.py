"""SQLAlchemy-backed store for any database SQLAlchemy can reach."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    create_engine,
    inspect,
)
from sqlalchemy.engine import Connection as SAConnection
from sqlalchemy.engine import Engine

from tidysql.config import ConnectionSettings
from tidysql.core.dialects import ANSI, DUCKDB, MYSQL, POSTGRES, SQLITE, Dialect
from tidysql.db.base import Backend, QueryRows, TableData

logger = logging.getLogger(__name__)

_COLUMN_TYPES = {
    "integer": Integer,
    "float": Float,
    "decimal": Numeric,
    "boolean": Boolean,
    "string": String,
    "date": Date,
    "timestamp": DateTime,
}

_DIALECTS_BY_ENGINE: dict[str, Dialect] = {
    "sqlite": SQLITE,
    "postgresql": POSTGRES,
    "mysql": MYSQL,
    "mariadb": MYSQL,
    "duckdb": DUCKDB,
}


@dataclass
class SQLAlchemyHandle:
    """One engine with the single connection held open for its lifetime."""

    engine: Engine
    connection: SAConnection


class SQLAlchemyBackend(Backend):
    """
    Store reached through a SQLAlchemy engine.

    Each handle holds one connection open, so in-memory SQLite databases
    and temporary tables live as long as the tidysql Connection does.
    """

    name = "sqlalchemy"

    def connect(self, settings: ConnectionSettings) -> SQLAlchemyHandle:
        engine = create_engine(settings.database_url)
        logger.debug("Connecting to %s", engine.url.render_as_string(hide_password=True))
        return SQLAlchemyHandle(engine=engine, connection=engine.connect())

    def close(self, handle: SQLAlchemyHandle) -> None:
        handle.connection.close()
        handle.engine.dispose()

    def dialect(self, handle: SQLAlchemyHandle) -> Dialect:
        return _DIALECTS_BY_ENGINE.get(handle.engine.dialect.name, ANSI)

    def write_table(
        self,
        handle: SQLAlchemyHandle,
        name: str,
        data: TableData,
        temporary: bool = False,
        overwrite: bool = False,
    ) -> None:
        conn = handle.connection
        metadata = MetaData()
        table = Table(
            name,
            metadata,
            *[
                Column(column, _COLUMN_TYPES[kind])
                for column, kind in zip(data.columns, data.types)
            ],
            prefixes=["TEMPORARY"] if temporary else [],
        )

        try:
            if inspect(conn).has_table(name):
                if not overwrite:
                    raise ValueError(f"Table '{name}' already exists")
                table.drop(conn)
            table.create(conn)
            if data.rows:
                conn.execute(
                    table.insert(),
                    [dict(zip(data.columns, row)) for row in data.rows],
                )
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def list_tables(self, handle: SQLAlchemyHandle) -> list[str]:
        inspector = inspect(handle.connection)
        names = set(inspector.get_table_names())
        try:
            names.update(inspector.get_temp_table_names())
        except NotImplementedError:
            pass
        return sorted(names)

    def execute_query(self, handle: SQLAlchemyHandle, sql: str) -> QueryRows:
        conn = handle.connection
        try:
            # Driver-level execution: the SQL is complete, with no bind markers.
            result = conn.exec_driver_sql(sql)
            if not result.returns_rows:
                conn.commit()
                return QueryRows(columns=[])
            columns = list(result.keys())
            rows = [tuple(row) for row in result.fetchall()]
        except Exception:
            conn.rollback()
            raise
        conn.commit()
        return QueryRows(columns=columns, rows=rows)
