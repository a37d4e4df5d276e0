"""
Query planner for tidysql.

Folds a LazyRelation chain into nested QueryLevel objects. Each verb is
merged into the current SELECT when that is safe; otherwise the current
level becomes a subquery and the verb starts a new level on top of it.
"""

import logging

from tidysql.core.dialects import Dialect
from tidysql.core.expressions import ColumnRef, Expr, FunctionCall, SortKey
from tidysql.core.relation import (
    Arrange,
    Distinct,
    Filter,
    GroupBy,
    Head,
    Join,
    JoinKind,
    LazyRelation,
    Mutate,
    Project,
    Summarize,
    TableSource,
    Ungroup,
)
from tidysql.core.sql_compiler.models import (
    Exists,
    JoinFrom,
    OrderTerm,
    QueryLevel,
    SelectItem,
    SubqueryFrom,
    TableFrom,
    UnsupportedOperationError,
)

logger = logging.getLogger(__name__)


class QueryPlanner:
    """
    Plans one compilation.

    A planner instance numbers subqueries (q01, q02, ...) in the order
    they are created, so it must not be shared between compilations.
    """

    def __init__(self, dialect: Dialect):
        self._dialect = dialect
        self._subquery_count = 0

    def plan(self, relation: LazyRelation) -> QueryLevel:
        """Build the outermost QueryLevel for ``relation``."""
        chain: list[LazyRelation] = []
        node = relation
        while True:
            chain.append(node)
            if not isinstance(node.source, LazyRelation):
                break
            node = node.source
        chain.reverse()

        level: QueryLevel | None = None
        for step in chain:
            level = self._fold(level, step)
        if level is None:
            raise RuntimeError("Relation chain did not produce a query level")
        return level

    # -------------------------
    # Dispatch
    # -------------------------

    def _fold(self, level: QueryLevel | None, relation: LazyRelation) -> QueryLevel:
        op = relation.operation
        match op:
            case TableSource():
                return self._table(op)
            case Project():
                return self._project(level, op)
            case Mutate():
                return self._mutate(level, op)
            case Filter():
                return self._filter(level, op)
            case Summarize():
                return self._summarize(level, op)
            case Arrange():
                return self._arrange(level, op)
            case Head():
                return self._head(level, op)
            case Distinct():
                return self._distinct(level)
            case Join():
                return self._join(level, op)
            case GroupBy() | Ungroup():
                # Grouping only affects later summarize/mutate calls.
                return level
            case _:
                raise UnsupportedOperationError(type(op).__name__, self._dialect.name)

    # -------------------------
    # Subquery boundaries
    # -------------------------

    def _next_alias(self) -> str:
        self._subquery_count += 1
        return f"q{self._subquery_count:02d}"

    def _wrap(self, level: QueryLevel) -> QueryLevel:
        """Turn ``level`` into a subquery and start a new level over it."""
        outer = QueryLevel(
            source=SubqueryFrom(level, self._next_alias()),
            select=[SelectItem(n, ColumnRef(n)) for n in level.output_names],
        )

        hoisted: list[OrderTerm] = []
        for term in level.order_by:
            name = term.alias or self._output_for(level, term.expr)
            if name is None:
                logger.warning(
                    "Dropping ORDER BY term that is not an output column "
                    "of the wrapped subquery"
                )
                continue
            hoisted.append(OrderTerm(ColumnRef(name), term.descending, by_alias=True))
        outer.order_by = hoisted
        if level.limit is None:
            # Ordering inside a subquery is meaningless without LIMIT.
            level.order_by = []
        return outer

    @staticmethod
    def _output_for(level: QueryLevel, expr: Expr) -> str | None:
        """Output name whose passthrough column is exactly ``expr``."""
        if not isinstance(expr, ColumnRef):
            return None
        for item in level.select:
            ref = item.expr
            if isinstance(ref, ColumnRef) and (ref.name, ref.table) == (expr.name, expr.table):
                return item.name
        return None

    @staticmethod
    def _reads_computed(level: QueryLevel, expr: Expr) -> bool:
        return any(level.is_computed(name) for name in expr.column_names())

    # -------------------------
    # Verbs
    # -------------------------

    def _table(self, op: TableSource) -> QueryLevel:
        return QueryLevel(
            source=TableFrom(op.name, op.columns),
            select=[SelectItem(c, ColumnRef(c)) for c in op.columns],
        )

    def _project(self, level: QueryLevel, op: Project) -> QueryLevel:
        kept = {src for _, src in op.items}
        renamed = {src: out for out, src in op.items}
        drops_columns = any(name not in kept for name in level.output_names)
        having_names = {n for h in level.having for n in h.column_names()}
        if (level.distinct and drops_columns) or any(
            renamed.get(n) != n for n in having_names
        ):
            level = self._wrap(level)

        scope = level.scope()
        order_by: list[OrderTerm] = []
        for term in level.order_by:
            alias = term.alias
            if alias is None:
                order_by.append(term)
            elif alias in renamed:
                order_by.append(OrderTerm(ColumnRef(renamed[alias]), term.descending, True))
            else:
                order_by.append(OrderTerm(scope[alias], term.descending))
        level.order_by = order_by
        level.select = [SelectItem(out, scope[src]) for out, src in op.items]
        return level

    def _mutate(self, level: QueryLevel, op: Mutate) -> QueryLevel:
        for name, expr in op.assignments:
            if (
                level.aggregated
                or level.distinct
                or level.limit is not None
                or self._reads_computed(level, expr)
            ):
                level = self._wrap(level)

            scope = level.scope()
            definition = expr.substitute(scope)
            if name in scope:
                # Keep ORDER BY pointing at the value being replaced.
                level.order_by = [
                    OrderTerm(scope[name], t.descending) if t.alias == name else t
                    for t in level.order_by
                ]
                level.item(name).expr = definition
            else:
                level.select.append(SelectItem(name, definition))
        return level

    def _filter(self, level: QueryLevel, op: Filter) -> QueryLevel:
        for predicate in op.predicates:
            if predicate.has_aggregate() or predicate.has_window():
                raise UnsupportedOperationError(
                    "filter on an aggregate function", self._dialect.name
                )
            if level.aggregated:
                if level.group_by and level.limit is None and not level.distinct:
                    level.having.append(predicate)
                    continue
                level = self._wrap(level)
            elif (
                level.limit is not None
                or self._reads_computed(level, predicate)
                # WHERE would run before the window functions of this level.
                or any(item.expr.has_window() for item in level.select)
            ):
                level = self._wrap(level)
            level.where.append(predicate.substitute(level.scope()))
        return level

    def _summarize(self, level: QueryLevel, op: Summarize) -> QueryLevel:
        reads = list(op.keys)
        for _, expr in op.aggregates:
            reads.extend(expr.column_names())
        if (
            level.aggregated
            or level.distinct
            or level.limit is not None
            or any(level.is_computed(n) for n in reads)
        ):
            level = self._wrap(level)

        scope = level.scope()
        if level.order_by:
            logger.debug("summarize() discards the preceding ORDER BY")
        level.order_by = []
        level.select = [SelectItem(k, scope[k]) for k in op.keys] + [
            SelectItem(name, expr.substitute(scope)) for name, expr in op.aggregates
        ]
        level.group_by = [scope[k] for k in op.keys]
        level.aggregated = True
        return level

    def _arrange(self, level: QueryLevel, op: Arrange) -> QueryLevel:
        def _needs_wrap(key: SortKey) -> bool:
            if isinstance(key.expr, ColumnRef):
                return False
            return level.aggregated or level.distinct or self._reads_computed(level, key.expr)

        if level.limit is not None or any(_needs_wrap(k) for k in op.keys):
            level = self._wrap(level)

        scope = level.scope()
        terms = []
        for key in op.keys:
            if isinstance(key.expr, ColumnRef):
                terms.append(OrderTerm(key.expr, key.descending, by_alias=True))
            else:
                terms.append(OrderTerm(key.expr.substitute(scope), key.descending))
        level.order_by = terms
        return level

    def _head(self, level: QueryLevel, op: Head) -> QueryLevel:
        level.limit = op.n if level.limit is None else min(level.limit, op.n)
        return level

    def _distinct(self, level: QueryLevel) -> QueryLevel:
        if level.limit is not None:
            level = self._wrap(level)

        # SELECT DISTINCT may only be ordered by its own output columns.
        outputs = set(level.output_names)
        kept: list[OrderTerm] = []
        for term in level.order_by:
            name = term.alias or self._output_for(level, term.expr)
            if name is None or name not in outputs:
                logger.warning(
                    "Dropping ORDER BY term that is not an output column "
                    "of the DISTINCT query"
                )
                continue
            kept.append(OrderTerm(ColumnRef(name), term.descending, by_alias=True))
        level.order_by = kept
        level.distinct = True
        return level

    # -------------------------
    # Joins
    # -------------------------

    def _join(self, level: QueryLevel, op: Join) -> QueryLevel:
        if op.kind == JoinKind.FULL and not self._dialect.supports_full_join:
            raise UnsupportedOperationError("full_join", self._dialect.name)

        right_level = self.plan(op.right)
        left, left_refs = self._join_side(level, "lhs")
        right, right_refs = self._join_side(right_level, "rhs")
        on = tuple((left_refs[l], right_refs[r]) for l, r in op.on)

        if op.kind.is_filtering:
            exists = Exists(right, on, negated=op.kind == JoinKind.ANTI)
            return QueryLevel(
                source=left,
                select=[SelectItem(out, left_refs[src]) for out, src in op.left_columns],
                where=[exists],
            )

        key_pairs = dict(op.on)
        select: list[SelectItem] = []
        for out, src in op.left_columns:
            expr: Expr = left_refs[src]
            if op.kind == JoinKind.FULL and src in key_pairs:
                expr = FunctionCall("coalesce", (expr, right_refs[key_pairs[src]]))
            select.append(SelectItem(out, expr))
        for out, src in op.right_columns:
            select.append(SelectItem(out, right_refs[src]))

        return QueryLevel(
            source=JoinFrom(op.kind, left, right, on),
            select=select,
        )

    def _join_side(
        self, level: QueryLevel, alias: str
    ) -> tuple[TableFrom | SubqueryFrom, dict[str, ColumnRef]]:
        """
        Express one join input as an aliased FROM item.

        Plain table scans are referenced directly; anything else becomes a
        subquery. Ordering of a join input is dropped.
        """
        if level.is_plain():
            table = level.source
            if not isinstance(table, TableFrom):
                raise TypeError(f"Plain join input must scan a table, got {table!r}")
            refs = {
                item.name: ColumnRef(item.expr.name, table=alias)
                for item in level.select
                if isinstance(item.expr, ColumnRef)
            }
            return TableFrom(table.name, table.columns, alias), refs

        if level.limit is None:
            level.order_by = []
        refs = {name: ColumnRef(name, table=alias) for name in level.output_names}
        return SubqueryFrom(level, alias, qualified=True), refs
