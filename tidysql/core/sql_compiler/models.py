"""
Intermediate query model for the tidysql compiler.

A relation chain is folded into nested QueryLevel objects; each level is
one SELECT statement whose FROM is a table, a subquery level or a join.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from tidysql.core.expressions import ColumnRef, Expr
from tidysql.core.relation import JoinKind


# -----------------------------
# Errors
# -----------------------------


class UnsupportedOperationError(Exception):
    """Raised when an operation has no translation for a dialect."""

    def __init__(self, operation: str, dialect: str):
        super().__init__(
            f"Operation '{operation}' is not supported by dialect '{dialect}'"
        )
        self.operation = operation
        self.dialect = dialect


# -----------------------------
# FROM sources
# -----------------------------


@dataclass
class TableFrom:
    name: str
    columns: tuple[str, ...]
    alias: str | None = None


@dataclass
class SubqueryFrom:
    """
    A nested level in FROM.

    ``qualified`` subqueries are read through alias.column references
    (join inputs), so their projection is always spelled out.
    """

    level: QueryLevel
    alias: str
    qualified: bool = False


@dataclass
class JoinFrom:
    kind: JoinKind
    left: TableFrom | SubqueryFrom
    right: TableFrom | SubqueryFrom
    on: tuple[tuple[Expr, Expr], ...]


Source = TableFrom | SubqueryFrom | JoinFrom


@dataclass(frozen=True, eq=False)
class Exists(Expr):
    """
    Correlated EXISTS used for semi and anti joins.

    Carries no column references of its own: the correlation uses
    qualified references only.
    """

    source: TableFrom | SubqueryFrom
    on: tuple[tuple[Expr, Expr], ...]
    negated: bool = False


# -----------------------------
# Query level
# -----------------------------


@dataclass
class SelectItem:
    name: str
    expr: Expr

    @property
    def is_passthrough(self) -> bool:
        return isinstance(self.expr, ColumnRef)


@dataclass
class OrderTerm:
    """
    One ORDER BY term.

    ``by_alias`` terms name an output column of the level; the others are
    expressions over the level's FROM columns.
    """

    expr: Expr
    descending: bool = False
    by_alias: bool = False

    @property
    def alias(self) -> str | None:
        if self.by_alias and isinstance(self.expr, ColumnRef):
            return self.expr.name
        return None


@dataclass
class QueryLevel:
    """
    One SELECT statement.

    ``select`` and ``where`` are expressed over the FROM columns;
    ``having`` is expressed over the level's own output names.
    """

    source: Source
    select: list[SelectItem]
    where: list[Expr] = field(default_factory=list)
    group_by: list[Expr] = field(default_factory=list)
    having: list[Expr] = field(default_factory=list)
    order_by: list[OrderTerm] = field(default_factory=list)
    limit: int | None = None
    distinct: bool = False
    aggregated: bool = False

    @property
    def output_names(self) -> tuple[str, ...]:
        return tuple(item.name for item in self.select)

    def scope(self) -> dict[str, Expr]:
        """Output name -> defining expression."""
        return {item.name: item.expr for item in self.select}

    def item(self, name: str) -> SelectItem:
        for item in self.select:
            if item.name == name:
                return item
        raise KeyError(name)

    def is_computed(self, name: str) -> bool:
        return not self.item(name).is_passthrough

    def is_plain(self) -> bool:
        """A bare table scan with an unqualified projection and no clauses."""
        return (
            isinstance(self.source, TableFrom)
            and self.source.alias is None
            and all(
                isinstance(i.expr, ColumnRef) and i.expr.table is None
                for i in self.select
            )
            and not (self.where or self.group_by or self.having)
            and self.limit is None
            and not self.distinct
        )


# -----------------------------
# Compiled output
# -----------------------------


@dataclass(frozen=True)
class CompiledQuery:
    """SQL text plus the ordered output column names."""

    sql: str
    columns: tuple[str, ...]
    dialect: str

    def __str__(self) -> str:
        return self.sql
