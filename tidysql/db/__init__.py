"""Database backends and connections."""

from tidysql.config import ConnectionSettings, get_settings
from tidysql.core.dialects import get_dialect
from tidysql.db.base import (
    Backend,
    Connection,
    QueryRows,
    TableData,
    execute_query,
    list_tables,
    write_table,
)
from tidysql.db.duckdb_backend import DuckDBBackend
from tidysql.db.sqlalchemy_backend import SQLAlchemyBackend

_BACKENDS: dict[str, type[Backend]] = {
    "duckdb": DuckDBBackend,
    "sqlalchemy": SQLAlchemyBackend,
}


def connect(settings: ConnectionSettings | None = None, **overrides) -> Connection:
    """
    Open a connection.

    Args:
        settings: Connection settings. Uses environment-derived settings
            if not provided.
        **overrides: Field overrides applied on top of ``settings``,
            e.g. ``connect(backend="sqlalchemy", database_url="sqlite://")``.
    """
    settings = settings or get_settings()
    if overrides:
        settings = settings.model_copy(update=overrides)

    if settings.backend not in _BACKENDS:
        raise ValueError(f"Unknown backend '{settings.backend}'")
    dialect = get_dialect(settings.dialect) if settings.dialect else None
    backend = _BACKENDS[settings.backend]()
    handle = backend.connect(settings)
    return Connection(backend, handle, dialect=dialect, echo_sql=settings.echo_sql)


__all__ = [
    "Backend",
    "Connection",
    "DuckDBBackend",
    "QueryRows",
    "SQLAlchemyBackend",
    "TableData",
    "connect",
    "execute_query",
    "list_tables",
    "write_table",
]
