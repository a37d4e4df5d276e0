"""
SQL Compiler for tidysql.

Transforms a LazyRelation into a single SQL SELECT statement.
"""

import logging

from tidysql.core.dialects import DUCKDB, Dialect
from tidysql.core.relation import LazyRelation
from tidysql.core.sql_compiler.models import CompiledQuery
from tidysql.core.sql_compiler.planner import QueryPlanner
from tidysql.core.sql_compiler.renderer import SQLRenderer

logger = logging.getLogger(__name__)


class SQLCompiler:
    """
    Compiles lazy relations to SQL for one dialect.

    The compiler holds no per-query state; it can be reused and shared.
    """

    def __init__(self, dialect: Dialect | None = None):
        """
        Initialize the compiler.

        Args:
            dialect: Target dialect. DuckDB syntax is used if not provided.
        """
        self._dialect = dialect or DUCKDB

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    def compile(self, relation: LazyRelation) -> CompiledQuery:
        """
        Compile a relation into SQL.

        Args:
            relation: The relation to compile.

        Returns:
            CompiledQuery with the SQL text and output column names.

        Raises:
            UnsupportedOperationError: If the relation uses an operation the
                dialect cannot express.
        """
        level = QueryPlanner(self._dialect).plan(relation)
        sql = SQLRenderer(self._dialect).render_level(level)
        logger.debug("Compiled relation for %s: %s", self._dialect.name, sql)
        return CompiledQuery(
            sql=sql,
            columns=relation.columns,
            dialect=self._dialect.name,
        )
