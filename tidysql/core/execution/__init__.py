"""Execution bridge between lazy relations and database connections."""

from .execution import (
    ExecutionError,
    QueryExecutor,
    ResultTable,
    execute_compiled,
    materialize,
)

__all__ = [
    "ExecutionError",
    "QueryExecutor",
    "ResultTable",
    "execute_compiled",
    "materialize",
]
