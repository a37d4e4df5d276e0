"""
tidysql: lazy dataframe-style queries compiled to SQL.

Example:
    from tidysql import col, connect, fn

    with connect() as conn:
        diamonds = conn.write_table("diamonds", records)
        expensive = (
            diamonds.filter(col("price") > 10000)
            .group_by("cut")
            .summarize(n=fn.count(), avg_price=fn.mean(col("price")))
        )
        print(expensive.show_query())
        result = expensive.collect()
"""

from tidysql.core.dialects import Dialect, get_dialect
from tidysql.core.execution import ExecutionError, ResultTable, materialize
from tidysql.core.expressions import case_when, col, desc, fn, if_else, lit
from tidysql.core.relation import LazyRelation, SchemaError, tbl
from tidysql.core.sql_compiler import (
    CompiledQuery,
    SQLCompiler,
    UnsupportedOperationError,
)
from tidysql.db import Connection, connect

__all__ = [
    "CompiledQuery",
    "Connection",
    "Dialect",
    "ExecutionError",
    "LazyRelation",
    "ResultTable",
    "SQLCompiler",
    "SchemaError",
    "UnsupportedOperationError",
    "case_when",
    "col",
    "connect",
    "desc",
    "fn",
    "get_dialect",
    "if_else",
    "lit",
    "materialize",
    "tbl",
]
