"""
Lazy relation builder for tidysql.

A LazyRelation is an immutable description of a relational query.
Every verb validates its column references against the current output
schema and returns a new relation wrapping the previous one; nothing is
executed until the relation is materialized.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from tidysql.core.expressions import (
    ColumnRef,
    Expr,
    FunctionCall,
    SortKey,
    Window,
    col,
    fn,
    to_expr,
)
from tidysql.core.relation.operations import (
    Arrange,
    Distinct,
    Filter,
    GroupBy,
    Head,
    Join,
    JoinKind,
    Mutate,
    Operation,
    Project,
    Summarize,
    TableSource,
    Ungroup,
)

if TYPE_CHECKING:
    from tidysql.core.dialects import Dialect
    from tidysql.core.execution import ResultTable
    from tidysql.core.sql_compiler import CompiledQuery

logger = logging.getLogger(__name__)


# -----------------------------
# Errors
# -----------------------------


class SchemaError(Exception):
    """Raised when a verb references an undefined or ambiguous column."""

    def __init__(
        self,
        message: str,
        column: str | None = None,
        available: Sequence[str] = (),
    ):
        super().__init__(message)
        self.column = column
        self.available = tuple(available)

    @classmethod
    def missing(cls, column: str, available: Sequence[str]) -> SchemaError:
        return cls(
            f"Column '{column}' not found. Available columns: "
            f"{', '.join(available) or '(none)'}",
            column=column,
            available=available,
        )

    @classmethod
    def ambiguous(cls, column: str, available: Sequence[str]) -> SchemaError:
        return cls(
            f"Column '{column}' would appear more than once in the output",
            column=column,
            available=available,
        )


# -----------------------------
# Relation
# -----------------------------


@dataclass(frozen=True, eq=False)
class LazyRelation:
    """
    A deferred relational expression.

    Attributes:
        source: Table name for a root relation, otherwise the relation
            this one was derived from.
        operation: The verb applied to ``source``.
        columns: Ordered output column names.
        groups: Active grouping columns.
        connection: Optional connection used by ``collect()``.
    """

    source: str | LazyRelation
    operation: Operation
    columns: tuple[str, ...]
    groups: tuple[str, ...] = ()
    connection: Any = field(default=None, repr=False)

    @classmethod
    def from_table(
        cls,
        name: str,
        columns: Iterable[str],
        connection: Any = None,
    ) -> LazyRelation:
        """Create a root relation over a table with known columns."""
        cols = tuple(columns)
        if not cols:
            raise SchemaError(f"Table '{name}' has no columns")
        duplicates = {c for c in cols if cols.count(c) > 1}
        if duplicates:
            raise SchemaError.ambiguous(sorted(duplicates)[0], cols)
        return cls(
            source=name,
            operation=TableSource(name, cols),
            columns=cols,
            connection=connection,
        )

    # -------------------------
    # Internal helpers
    # -------------------------

    def _derive(
        self,
        operation: Operation,
        columns: Sequence[str],
        groups: Sequence[str] | None = None,
        connection: Any = None,
    ) -> LazyRelation:
        return LazyRelation(
            source=self,
            operation=operation,
            columns=tuple(columns),
            groups=self.groups if groups is None else tuple(groups),
            connection=connection if connection is not None else self.connection,
        )

    def _require(self, names: Iterable[str], visible: Sequence[str] | None = None) -> None:
        available = self.columns if visible is None else tuple(visible)
        for name in names:
            if name not in available:
                raise SchemaError.missing(name, available)

    def _require_expr(self, expr: Expr, visible: Sequence[str] | None = None) -> None:
        self._require(expr.column_names(), visible)

    @staticmethod
    def _name_of(item: str | Expr) -> str:
        if isinstance(item, str):
            return item
        if isinstance(item, ColumnRef) and item.table is None:
            return item.name
        raise TypeError(
            f"Expected a column name or col(...), got {type(item).__name__}"
        )

    def _project(self, verb: str, items: Sequence[tuple[str, str]]) -> LazyRelation:
        outputs = [out for out, _ in items]
        for out in outputs:
            if outputs.count(out) > 1:
                raise SchemaError.ambiguous(out, self.columns)
        renames = {src: out for out, src in items}
        groups = [renames[g] for g in self.groups if g in renames]
        return self._derive(Project(verb, tuple(items)), outputs, groups)

    # -------------------------
    # Projection verbs
    # -------------------------

    def select(self, *columns: str | Expr, **renames: str | Expr) -> LazyRelation:
        """
        Keep the named columns, in the given order.

        Keyword arguments rename while selecting: ``select(size="carat")``.
        """
        items: list[tuple[str, str]] = []
        for item in columns:
            name = self._name_of(item)
            items.append((name, name))
        for new_name, item in renames.items():
            items.append((new_name, self._name_of(item)))
        if not items:
            raise ValueError("select() requires at least one column")
        self._require(src for _, src in items)

        selected = {src for _, src in items}
        missing_groups = [g for g in self.groups if g not in selected]
        if missing_groups:
            logger.info(
                "Adding missing grouping variables: %s", ", ".join(missing_groups)
            )
            items = [(g, g) for g in missing_groups] + items
        return self._project("select", items)

    def rename(self, mapping: Mapping[str, str]) -> LazyRelation:
        """Rename columns using an ``{old: new}`` mapping."""
        self._require(mapping)
        items = [(mapping.get(c, c), c) for c in self.columns]
        return self._project("rename", items)

    def relocate(
        self,
        *columns: str | Expr,
        before: str | None = None,
        after: str | None = None,
    ) -> LazyRelation:
        """Move columns to the front, or next to ``before``/``after``."""
        if before is not None and after is not None:
            raise ValueError("relocate() accepts only one of before= and after=")
        moving = [self._name_of(c) for c in columns]
        anchor = before if before is not None else after
        self._require(moving + ([anchor] if anchor is not None else []))
        if anchor in moving:
            raise ValueError(f"Cannot relocate '{anchor}' relative to itself")

        rest = [c for c in self.columns if c not in moving]
        if anchor is None:
            index = 0
        else:
            index = rest.index(anchor) + (1 if after is not None else 0)
        order = rest[:index] + moving + rest[index:]
        return self._project("relocate", [(c, c) for c in order])

    # -------------------------
    # Row and column computation
    # -------------------------

    def mutate(self, **columns: Any) -> LazyRelation:
        """
        Add or replace columns.

        Later assignments may reference earlier ones; a redefined name
        shadows its previous definition. Aggregates become window
        functions over the active groups.
        """
        if not columns:
            raise ValueError("mutate() requires at least one column")
        visible = list(self.columns)
        partition = tuple(col(g) for g in self.groups)
        assignments: list[tuple[str, Expr]] = []
        for name, value in columns.items():
            expr = to_expr(value)
            self._require_expr(expr, visible)
            if expr.has_aggregate():
                expr = _windowed(expr, partition)
            assignments.append((name, expr))
            if name not in visible:
                visible.append(name)
        return self._derive(Mutate(tuple(assignments)), visible)

    def filter(self, *predicates: Expr) -> LazyRelation:
        """Keep rows matching every predicate."""
        if not predicates:
            raise ValueError("filter() requires at least one predicate")
        checked = []
        for predicate in predicates:
            if not isinstance(predicate, Expr):
                raise TypeError(
                    f"filter() predicates must be expressions, got {type(predicate).__name__}"
                )
            self._require_expr(predicate)
            checked.append(predicate)
        return self._derive(Filter(tuple(checked)), self.columns)

    # -------------------------
    # Grouping and aggregation
    # -------------------------

    def group_by(self, *keys: str | Expr, add: bool = False, **computed: Any) -> LazyRelation:
        """
        Group by existing columns, or by keyword expressions computed first.

        ``add=True`` extends the current groups instead of replacing them.
        """
        relation = self.mutate(**computed) if computed else self
        names = [self._name_of(k) for k in keys] + list(computed)
        if not names:
            raise ValueError("group_by() requires at least one key")
        relation._require(names)
        groups = list(self.groups) if add else []
        groups += [n for n in names if n not in groups]
        return relation._derive(GroupBy(tuple(groups)), relation.columns, groups)

    def ungroup(self) -> LazyRelation:
        return self._derive(Ungroup(), self.columns, ())

    def summarize(self, **aggregates: Any) -> LazyRelation:
        """
        Collapse each group to one row.

        Output columns are the grouping keys followed by the aggregates.
        The result is ungrouped.
        """
        if not aggregates:
            raise ValueError("summarize() requires at least one aggregate")
        items: list[tuple[str, Expr]] = []
        for name, value in aggregates.items():
            expr = to_expr(value)
            self._require_expr(expr)
            if not expr.has_aggregate():
                raise ValueError(
                    f"summarize() expression for '{name}' must contain an aggregate function"
                )
            if name in self.groups:
                raise SchemaError.ambiguous(name, self.columns)
            items.append((name, expr))
        outputs = list(self.groups) + [name for name, _ in items]
        return self._derive(Summarize(self.groups, tuple(items)), outputs, ())

    summarise = summarize

    def count(self, *keys: str | Expr, name: str = "n", sort: bool = False) -> LazyRelation:
        """Count rows per group (existing groups plus ``keys``)."""
        relation = self.group_by(*keys, add=True) if keys else self
        counted = relation.summarize(**{name: fn.count()})
        return counted.arrange(SortKey(col(name), descending=True)) if sort else counted

    # -------------------------
    # Ordering and slicing
    # -------------------------

    def arrange(self, *keys: str | Expr | SortKey) -> LazyRelation:
        """Order rows; replaces any previous ordering."""
        if not keys:
            raise ValueError("arrange() requires at least one key")
        sort_keys: list[SortKey] = []
        for key in keys:
            if isinstance(key, str):
                key = SortKey(col(key))
            elif isinstance(key, Expr):
                key = SortKey(key)
            elif not isinstance(key, SortKey):
                raise TypeError(f"Invalid sort key: {key!r}")
            self._require_expr(key.expr)
            if key.expr.has_aggregate():
                raise ValueError("arrange() keys cannot contain aggregate functions")
            sort_keys.append(key)
        return self._derive(Arrange(tuple(sort_keys)), self.columns)

    def head(self, n: int = 6) -> LazyRelation:
        """Keep at most ``n`` rows."""
        if isinstance(n, bool) or not isinstance(n, int) or n < 0:
            raise ValueError(f"head() requires a non-negative integer, got {n!r}")
        return self._derive(Head(n), self.columns)

    def distinct(self, *columns: str | Expr) -> LazyRelation:
        """Drop duplicate rows, optionally after selecting ``columns``."""
        relation = self.select(*columns) if columns else self
        return relation._derive(Distinct(), relation.columns)

    # -------------------------
    # Joins
    # -------------------------

    def inner_join(self, other: LazyRelation, by=None, suffix=("_x", "_y")) -> LazyRelation:
        return self._join(JoinKind.INNER, other, by, suffix)

    def left_join(self, other: LazyRelation, by=None, suffix=("_x", "_y")) -> LazyRelation:
        return self._join(JoinKind.LEFT, other, by, suffix)

    def full_join(self, other: LazyRelation, by=None, suffix=("_x", "_y")) -> LazyRelation:
        return self._join(JoinKind.FULL, other, by, suffix)

    def semi_join(self, other: LazyRelation, by=None) -> LazyRelation:
        return self._join(JoinKind.SEMI, other, by, ("_x", "_y"))

    def anti_join(self, other: LazyRelation, by=None) -> LazyRelation:
        return self._join(JoinKind.ANTI, other, by, ("_x", "_y"))

    def _join(
        self,
        kind: JoinKind,
        other: LazyRelation,
        by: str | Sequence[str] | Mapping[str, str] | None,
        suffix: tuple[str, str],
    ) -> LazyRelation:
        if not isinstance(other, LazyRelation):
            raise TypeError(f"Cannot join with {type(other).__name__}")
        if (
            self.connection is not None
            and other.connection is not None
            and self.connection is not other.connection
        ):
            raise ValueError("Cannot join relations from different connections")

        on = self._resolve_join_keys(other, by)
        self._require(left for left, _ in on)
        other._require(right for _, right in on)

        left_columns = [(c, c) for c in self.columns]
        right_columns: list[tuple[str, str]] = []
        if not kind.is_filtering:
            right_keys = {right for _, right in on}
            left_keys = {left for left, _ in on}
            extra = [c for c in other.columns if c not in right_keys]
            clashes = {c for c in extra if c in self.columns and c not in left_keys}
            clashes |= {c for c in extra if c in left_keys}
            left_columns = [
                (c + suffix[0] if c in clashes else c, c) for c in self.columns
            ]
            right_columns = [
                (c + suffix[1] if c in clashes else c, c) for c in extra
            ]

        outputs = [out for out, _ in left_columns + right_columns]
        for out in outputs:
            if outputs.count(out) > 1:
                raise SchemaError.ambiguous(out, outputs)

        operation = Join(
            kind=kind,
            right=other,
            on=tuple(on),
            left_columns=tuple(left_columns),
            right_columns=tuple(right_columns),
        )
        return self._derive(
            operation,
            outputs,
            connection=self.connection if self.connection is not None else other.connection,
        )

    def _resolve_join_keys(
        self,
        other: LazyRelation,
        by: str | Sequence[str] | Mapping[str, str] | None,
    ) -> list[tuple[str, str]]:
        if by is None:
            common = [c for c in self.columns if c in other.columns]
            if not common:
                raise SchemaError(
                    "No common columns to join on; pass by= explicitly",
                    available=self.columns,
                )
            logger.info("Joining with by=%s", common)
            return [(c, c) for c in common]
        if isinstance(by, str):
            return [(by, by)]
        if isinstance(by, Mapping):
            pairs = list(by.items())
        else:
            pairs = [(k, k) for k in by]
        if not pairs:
            raise ValueError("Join keys must not be empty")
        return pairs

    # -------------------------
    # Compilation and execution
    # -------------------------

    def compile(self, dialect: Dialect | None = None) -> CompiledQuery:
        """Compile to SQL for ``dialect`` (the connection's by default)."""
        from tidysql.core.sql_compiler import SQLCompiler

        if dialect is None and self.connection is not None:
            dialect = self.connection.dialect
        return SQLCompiler(dialect).compile(self)

    def show_query(self, dialect: Dialect | None = None) -> str:
        """Return the SQL this relation compiles to."""
        return self.compile(dialect).sql

    def collect(self) -> ResultTable:
        """Materialize through the relation's connection."""
        from tidysql.core.execution import materialize

        return materialize(self)

    def __repr__(self) -> str:
        op = type(self.operation).__name__
        return f"<LazyRelation {op} columns={list(self.columns)}>"


def _windowed(expr: Expr, partition: tuple[Expr, ...]) -> Expr:
    """Turn aggregate calls into window functions over ``partition``."""

    def _wrap(node: Expr) -> Expr | None:
        if isinstance(node, FunctionCall) and node.is_aggregate:
            return Window(node, partition)
        return None

    return expr.transform(_wrap)


def tbl(name: str, columns: Iterable[str], connection: Any = None) -> LazyRelation:
    """Shorthand for ``LazyRelation.from_table``."""
    return LazyRelation.from_table(name, columns, connection)
