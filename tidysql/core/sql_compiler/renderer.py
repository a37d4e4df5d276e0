"""
SQL renderer for tidysql.

Turns planned QueryLevel objects into SQLAlchemy Core select trees and
compiles them for one dialect. Clauses come out in the order SELECT,
FROM, WHERE, GROUP BY, HAVING, ORDER BY, LIMIT, on a single line.
"""

import math
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    Integer,
    Numeric,
    String,
    and_,
    case,
    cast,
    column,
    distinct,
    join,
    literal,
    literal_column,
    null,
    or_,
    select,
    table,
)
from sqlalchemy.sql import Select, operators
from sqlalchemy.sql.elements import (
    BinaryExpression,
    ColumnElement,
    Grouping,
    UnaryExpression,
)
from sqlalchemy.sql.functions import Function
from sqlalchemy.sql.selectable import FromClause
from sqlalchemy.types import UserDefinedType

from tidysql.core.dialects import Dialect
from tidysql.core.dialects.sa_dialect import compile_statement
from tidysql.core.expressions import (
    Between,
    BinaryOp,
    Case,
    Cast,
    ColumnRef,
    Expr,
    FunctionCall,
    InList,
    IsNull,
    Literal,
    UnaryOp,
    Window,
)
from tidysql.core.relation import JoinKind
from tidysql.core.sql_compiler.models import (
    Exists,
    JoinFrom,
    OrderTerm,
    QueryLevel,
    SubqueryFrom,
    TableFrom,
    UnsupportedOperationError,
)


# -----------------------------
# Operator mapping
# -----------------------------

_BINARY_OPERATORS = {
    "=": operators.eq,
    "!=": operators.ne,
    "<": operators.lt,
    "<=": operators.le,
    ">": operators.gt,
    ">=": operators.ge,
    "LIKE": operators.like_op,
    "+": operators.add,
    "-": operators.sub,
    "*": operators.mul,
    "/": operators.truediv,
    "%": operators.mod,
}

_COMPARISONS = {"=", "!=", "<", "<=", ">", ">=", "LIKE"}

# Keyword arguments of sqlalchemy.join() per join kind.
_JOIN_FLAGS: dict[JoinKind, dict[str, bool]] = {
    JoinKind.INNER: {},
    JoinKind.LEFT: {"isouter": True},
    JoinKind.FULL: {"full": True},
}

# Alias name -> FROM clause that qualified column references resolve against.
Aliases = dict[str, FromClause]


class _TypeName(UserDefinedType):
    """CAST target given by its SQL spelling."""

    cache_ok = True

    def __init__(self, name: str):
        self.name = name

    def get_col_spec(self, **kw) -> str:
        return self.name


class SQLRenderer:
    """Builds and compiles SQLAlchemy statements for one dialect."""

    def __init__(self, dialect: Dialect):
        self._dialect = dialect
        self._sa_dialect = dialect.sqlalchemy_dialect()

    def _unsupported(self, operation: str) -> UnsupportedOperationError:
        return UnsupportedOperationError(operation, self._dialect.name)

    # -------------------------
    # Statements
    # -------------------------

    def render_level(self, level: QueryLevel) -> str:
        """Render one SELECT statement (including nested subqueries)."""
        return compile_statement(self.build_select(level), self._sa_dialect)

    def build_select(self, level: QueryLevel, star: bool = True) -> Select:
        """
        Build the SQLAlchemy select for ``level``.

        With ``star`` False the projection is always spelled out, so the
        result can be referenced column by column as a subquery.
        """
        source, aliases = self._build_source(level.source)

        if star and self._is_star(level):
            columns = [literal_column("*")]
        else:
            columns = [self._select_item(item.name, item.expr, aliases) for item in level.select]

        stmt = select(*columns).select_from(source)
        if level.distinct:
            stmt = stmt.distinct()
        if level.where:
            stmt = stmt.where(*(self.build_expr(p, aliases) for p in level.where))
        if level.group_by:
            stmt = stmt.group_by(*(self.build_expr(e, aliases) for e in level.group_by))
        if level.having:
            stmt = stmt.having(*(self.build_expr(h, aliases) for h in self._having_terms(level)))
        if level.order_by:
            stmt = stmt.order_by(*(self._order_term(t, aliases) for t in level.order_by))
        if level.limit is not None:
            stmt = stmt.limit(level.limit)
        return stmt

    def _select_item(self, name: str, expr: Expr, aliases: Aliases) -> ColumnElement:
        built = self.build_expr(expr, aliases)
        if isinstance(expr, ColumnRef) and expr.name == name:
            return built
        return built.label(name)

    @staticmethod
    def _is_star(level: QueryLevel) -> bool:
        """True when the projection is exactly the source's column list."""
        source = level.source
        if isinstance(source, TableFrom):
            available = source.columns
        elif isinstance(source, SubqueryFrom):
            available = source.level.output_names
        else:
            return False
        if level.output_names != available:
            return False
        return all(
            isinstance(i.expr, ColumnRef) and i.expr.table is None and i.expr.name == i.name
            for i in level.select
        )

    def _build_source(self, source) -> tuple[FromClause, Aliases]:
        match source:
            case TableFrom(name=name, columns=columns, alias=alias):
                base = table(name, *(column(c) for c in columns))
                if alias:
                    aliased = base.alias(alias)
                    return aliased, {alias: aliased}
                return base, {}
            case SubqueryFrom(level=level, alias=alias, qualified=qualified):
                # Join inputs are referenced as alias.column, which needs
                # named subquery columns rather than SELECT *.
                subquery = self.build_select(level, star=not qualified).subquery(alias)
                return subquery, {alias: subquery}
            case JoinFrom(kind=kind, left=left, right=right, on=on):
                flags = _JOIN_FLAGS.get(kind)
                if flags is None:
                    raise self._unsupported(f"{kind.value}_join")
                if kind == JoinKind.FULL and not self._dialect.supports_full_join:
                    raise self._unsupported("full_join")
                left_from, aliases = self._build_source(left)
                right_from, right_aliases = self._build_source(right)
                aliases = {**aliases, **right_aliases}
                condition = self._join_condition(on, aliases)
                return join(left_from, right_from, condition, **flags), aliases
            case _:
                raise TypeError(f"Unknown FROM source: {source!r}")

    def _join_condition(self, on, aliases: Aliases) -> ColumnElement:
        return and_(
            *(
                self._compare("=", self.build_expr(l, aliases), self.build_expr(r, aliases))
                for l, r in on
            )
        )

    def _having_terms(self, level: QueryLevel) -> list[Expr]:
        if self._dialect.having_alias:
            return level.having
        scope = level.scope()
        return [h.substitute(scope) for h in level.having]

    def _order_term(self, term: OrderTerm, aliases: Aliases) -> ColumnElement:
        if term.alias is not None:
            built = column(term.alias)
        else:
            built = self.build_expr(term.expr, aliases)
        return built.desc() if term.descending else built

    # -------------------------
    # Expressions
    # -------------------------

    def build_expr(self, expr: Expr, aliases: Aliases | None = None) -> ColumnElement:
        """Translate an expression tree into a SQLAlchemy column element."""
        aliases = aliases or {}

        def build(node: Expr) -> ColumnElement:
            return self.build_expr(node, aliases)

        match expr:
            case ColumnRef(name=name, table=None):
                return column(name)
            case ColumnRef(name=name, table=alias):
                try:
                    return aliases[alias].c[name]
                except KeyError:
                    raise ValueError(f"Unknown column reference {alias}.{name}") from None
            case Literal(value=value):
                return self._literal(value)
            case BinaryOp(op="AND", left=left, right=right):
                return and_(build(left), build(right))
            case BinaryOp(op="OR", left=left, right=right):
                return or_(build(left), build(right))
            case BinaryOp(op=op, left=left, right=right):
                return self._compare(op, build(left), build(right))
            case UnaryOp(op="NOT", operand=operand):
                return UnaryExpression(build(operand), operator=operators.inv, type_=Boolean())
            case UnaryOp(op="-", operand=operand):
                inner = build(operand)
                if isinstance(operand, Literal):
                    # "-" followed by a negative number would open a comment.
                    inner = Grouping(inner)
                return UnaryExpression(inner, operator=operators.neg)
            case IsNull(operand=operand, negated=negated):
                inner = build(operand)
                return inner.is_not(None) if negated else inner.is_(None)
            case InList(operand=operand, values=values, negated=negated):
                inner = build(operand)
                items = [build(v) for v in values]
                return inner.not_in(items) if negated else inner.in_(items)
            case Between(operand=operand, low=low, high=high):
                return build(operand).between(build(low), build(high))
            case Cast(operand=operand, type_name=type_name):
                return cast(build(operand), _TypeName(type_name))
            case Case(branches=branches, default=default):
                whens = [(build(condition), build(value)) for condition, value in branches]
                return case(*whens, else_=build(default) if default is not None else None)
            case FunctionCall():
                return self._function(expr, aliases)
            case Window(function=function, partition_by=partition_by):
                if not self._dialect.supports_window_functions:
                    raise self._unsupported(f"window function '{function.name}'")
                partitions = [build(p) for p in partition_by] or None
                return self._function(function, aliases).over(partition_by=partitions)
            case Exists(source=source, on=on, negated=negated):
                right, right_aliases = self._build_source(source)
                scope = {**aliases, **right_aliases}
                subquery = (
                    select(literal_column("1"))
                    .select_from(right)
                    .where(self._join_condition(on, scope))
                )
                exists = subquery.exists()
                if negated:
                    return UnaryExpression(exists, operator=operators.inv, type_=Boolean())
                return exists
            case _:
                raise TypeError(f"Cannot render expression: {expr!r}")

    @staticmethod
    def _compare(op: str, left: ColumnElement, right: ColumnElement) -> ColumnElement:
        """
        Binary operator node built directly, so SQLAlchemy applies no type
        coercion (string ``+`` stays ``+``, ``= NULL`` stays ``= NULL``).
        """
        return BinaryExpression(
            left,
            right,
            _BINARY_OPERATORS[op],
            type_=Boolean() if op in _COMPARISONS else None,
        )

    def _function(self, call: FunctionCall, aliases: Aliases) -> Function:
        sql_name = self._dialect.function_name(call.name)
        if sql_name is None:
            raise self._unsupported(f"function '{call.name}'")

        if call.name == "count" and not call.args:
            args = [literal_column("*")]
        elif call.name == "n_distinct":
            if len(call.args) != 1:
                raise ValueError("n_distinct() takes exactly one argument")
            args = [distinct(self.build_expr(call.args[0], aliases))]
        else:
            args = [self.build_expr(a, aliases) for a in call.args]
        return Function(sql_name, *args)

    def _literal(self, value) -> ColumnElement:
        """
        Typed literal for a Python scalar.

        Integers stay integers and floats always carry a decimal point or
        exponent, so ``2`` and ``2.0`` keep their distinct SQL types.
        """
        if value is None:
            return null()
        if isinstance(value, bool):
            return literal(value, Boolean())
        if isinstance(value, int):
            return literal(value, Integer())
        if isinstance(value, float):
            if not math.isfinite(value):
                raise self._unsupported(f"non-finite literal {value!r}")
            return literal(value, Float())
        if isinstance(value, Decimal):
            if not value.is_finite():
                raise self._unsupported(f"non-finite literal {value!r}")
            return literal(value, Numeric())
        if isinstance(value, datetime):
            return literal(value, DateTime())
        if isinstance(value, date):
            return literal(value, Date())
        if isinstance(value, str):
            return literal(value, String())
        raise TypeError(f"Unsupported literal type: {type(value).__name__}")
