"""Query execution layer."""

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from tidysql.core.dialects import Dialect
from tidysql.core.relation import LazyRelation
from tidysql.core.sql_compiler import CompiledQuery, SQLCompiler

logger = logging.getLogger(__name__)


class QueryExecutor(Protocol):
    """What materialize() needs from a connection."""

    @property
    def dialect(self) -> Dialect: ...

    def execute_query(self, sql: str) -> Any: ...


@dataclass(frozen=True)
class ResultTable:
    """Materialized rows of a relation."""

    columns: tuple[str, ...]
    rows: list[tuple[Any, ...]]

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[tuple[Any, ...]]:
        return iter(self.rows)

    def column(self, name: str) -> list[Any]:
        """All values of one column."""
        try:
            index = self.columns.index(name)
        except ValueError:
            raise KeyError(name) from None
        return [row[index] for row in self.rows]

    def to_dicts(self) -> list[dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self.rows]


class ExecutionError(Exception):
    """Raised when query execution fails."""

    def __init__(self, message: str, sql: str):
        super().__init__(f"{message}\nSQL: {sql}")
        self.sql = sql


def materialize(
    relation: LazyRelation,
    connection: QueryExecutor | None = None,
) -> ResultTable:
    """
    Compile a relation and execute it.

    This is the only operation in tidysql that performs I/O.

    Args:
        relation: The relation to materialize.
        connection: Connection to run on. Defaults to the connection the
            relation was created from.

    Returns:
        ResultTable with the relation's columns and rows.

    Raises:
        ExecutionError: If execution fails.
        UnsupportedOperationError: If the connection's dialect cannot
            express the relation.
    """
    connection = connection if connection is not None else relation.connection
    if connection is None:
        raise ValueError("Relation is not bound to a connection; pass connection=")

    compiled = SQLCompiler(connection.dialect).compile(relation)
    return execute_compiled(compiled, connection)


def execute_compiled(compiled: CompiledQuery, connection: QueryExecutor) -> ResultTable:
    """
    Execute an already compiled query and return structured results.

    This is a thin execution layer with no business logic.
    """
    logger.debug("Executing: %s", compiled.sql)
    try:
        result = connection.execute_query(compiled.sql)
    except Exception as e:
        raise ExecutionError(
            f"Query execution failed: {type(e).__name__}: {e}", compiled.sql
        ) from e

    rows = [tuple(row) for row in result.rows]
    columns = _result_columns(compiled, result.columns)
    logger.debug("Fetched %d rows", len(rows))
    return ResultTable(columns=columns, rows=rows)


def _result_columns(compiled: CompiledQuery, returned: Sequence[str]) -> tuple[str, ...]:
    """Prefer the relation's names; stores may fold identifier case."""
    returned = tuple(returned)
    if len(returned) != len(compiled.columns):
        raise ExecutionError(
            f"Query returned {len(returned)} columns, expected {len(compiled.columns)}",
            compiled.sql,
        )
    return compiled.columns
