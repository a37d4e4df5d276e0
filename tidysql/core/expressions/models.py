"""
Column expression models for tidysql.

Expressions describe scalar and aggregate computations over the columns
of a relation. They are plain immutable trees: nothing here knows about
SQL syntax or dialects, the compiler renders them later.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any


# -----------------------------
# Function classification
# -----------------------------

# Logical function names that collapse many rows into one.
AGGREGATE_FUNCTIONS: frozenset[str] = frozenset(
    {
        "count",
        "n",
        "n_distinct",
        "mean",
        "sum",
        "min",
        "max",
        "sd",
        "var",
        "median",
    }
)

LITERAL_TYPES = (type(None), bool, int, float, Decimal, str, date, datetime)


# -----------------------------
# Base expression
# -----------------------------


class Expr:
    """
    Base class for every column expression node.

    Python operators build new nodes, so ``col("price") > 10000`` is an
    expression, not a boolean.
    """

    __slots__ = ()

    # Comparison operators are overloaded, keep identity hashing.
    __hash__ = object.__hash__

    def children(self) -> tuple[Expr, ...]:
        return ()

    def rebuild(self, children: tuple[Expr, ...]) -> Expr:
        """Return a copy of this node with new children."""
        return self

    # -------------------------
    # Tree utilities
    # -------------------------

    def walk(self) -> Iterator[Expr]:
        """Yield this node and all descendants, depth first."""
        yield self
        for child in self.children():
            yield from child.walk()

    def transform(self, fn: Callable[[Expr], Expr | None]) -> Expr:
        """
        Rebuild the tree bottom-up.

        ``fn`` is called on every node; returning None keeps the node.
        """
        children = self.children()
        node = self.rebuild(tuple(c.transform(fn) for c in children)) if children else self
        replaced = fn(node)
        return node if replaced is None else replaced

    def column_names(self) -> tuple[str, ...]:
        """Names of the unqualified columns referenced, in first-seen order."""
        seen: dict[str, None] = {}
        for node in self.walk():
            if isinstance(node, ColumnRef) and node.table is None:
                seen.setdefault(node.name, None)
        return tuple(seen)

    def has_aggregate(self) -> bool:
        return any(child.has_aggregate() for child in self.children())

    def has_window(self) -> bool:
        return any(isinstance(node, Window) for node in self.walk())

    def substitute(self, mapping: dict[str, Expr]) -> Expr:
        """Replace unqualified column references by the mapped expressions."""

        def _replace(node: Expr) -> Expr | None:
            if isinstance(node, ColumnRef) and node.table is None:
                return mapping.get(node.name)
            return None

        return self.transform(_replace)

    # -------------------------
    # Operators
    # -------------------------

    def _binary(self, op: str, other: Any, reverse: bool = False) -> BinaryOp:
        other = to_expr(other)
        if reverse:
            return BinaryOp(op, other, self)
        return BinaryOp(op, self, other)

    def __add__(self, other: Any) -> BinaryOp:
        return self._binary("+", other)

    def __radd__(self, other: Any) -> BinaryOp:
        return self._binary("+", other, reverse=True)

    def __sub__(self, other: Any) -> BinaryOp:
        return self._binary("-", other)

    def __rsub__(self, other: Any) -> BinaryOp:
        return self._binary("-", other, reverse=True)

    def __mul__(self, other: Any) -> BinaryOp:
        return self._binary("*", other)

    def __rmul__(self, other: Any) -> BinaryOp:
        return self._binary("*", other, reverse=True)

    def __truediv__(self, other: Any) -> BinaryOp:
        return self._binary("/", other)

    def __rtruediv__(self, other: Any) -> BinaryOp:
        return self._binary("/", other, reverse=True)

    def __mod__(self, other: Any) -> BinaryOp:
        return self._binary("%", other)

    def __rmod__(self, other: Any) -> BinaryOp:
        return self._binary("%", other, reverse=True)

    def __neg__(self) -> UnaryOp:
        return UnaryOp("-", self)

    def __eq__(self, other: Any) -> BinaryOp:  # type: ignore[override]
        return self._binary("=", other)

    def __ne__(self, other: Any) -> BinaryOp:  # type: ignore[override]
        return self._binary("!=", other)

    def __lt__(self, other: Any) -> BinaryOp:
        return self._binary("<", other)

    def __le__(self, other: Any) -> BinaryOp:
        return self._binary("<=", other)

    def __gt__(self, other: Any) -> BinaryOp:
        return self._binary(">", other)

    def __ge__(self, other: Any) -> BinaryOp:
        return self._binary(">=", other)

    def __and__(self, other: Any) -> BinaryOp:
        return self._binary("AND", other)

    def __rand__(self, other: Any) -> BinaryOp:
        return self._binary("AND", other, reverse=True)

    def __or__(self, other: Any) -> BinaryOp:
        return self._binary("OR", other)

    def __ror__(self, other: Any) -> BinaryOp:
        return self._binary("OR", other, reverse=True)

    def __invert__(self) -> UnaryOp:
        return UnaryOp("NOT", self)

    def __bool__(self) -> bool:
        raise TypeError(
            "Column expressions have no truth value; "
            "combine predicates with &, | and ~"
        )

    # -------------------------
    # Predicates and helpers
    # -------------------------

    def is_null(self) -> IsNull:
        return IsNull(self)

    def not_null(self) -> IsNull:
        return IsNull(self, negated=True)

    def isin(self, values: Iterable[Any]) -> InList:
        items = tuple(to_expr(v) for v in values)
        if not items:
            raise ValueError("isin() requires at least one value")
        return InList(self, items)

    def not_in(self, values: Iterable[Any]) -> InList:
        return InList(self, self.isin(values).values, negated=True)

    def between(self, low: Any, high: Any) -> Between:
        return Between(self, to_expr(low), to_expr(high))

    def like(self, pattern: str) -> BinaryOp:
        return self._binary("LIKE", pattern)

    def cast(self, type_name: str) -> Cast:
        return Cast(self, type_name)

    def desc(self) -> SortKey:
        return SortKey(self, descending=True)

    def asc(self) -> SortKey:
        return SortKey(self, descending=False)


# -----------------------------
# Leaf nodes
# -----------------------------


@dataclass(frozen=True, eq=False)
class ColumnRef(Expr):
    """
    Reference to a column of the immediate source.

    ``table`` is only set by the compiler for join aliases.
    """

    name: str
    table: str | None = None

    def __repr__(self) -> str:
        if self.table:
            return f"ColumnRef({self.table}.{self.name})"
        return f"ColumnRef({self.name})"


@dataclass(frozen=True, eq=False)
class Literal(Expr):
    """A constant value."""

    value: Any

    def __post_init__(self) -> None:
        if not isinstance(self.value, LITERAL_TYPES):
            raise TypeError(
                f"Unsupported literal type: {type(self.value).__name__}"
            )


# -----------------------------
# Composite nodes
# -----------------------------


@dataclass(frozen=True, eq=False)
class BinaryOp(Expr):
    op: str
    left: Expr
    right: Expr

    def children(self) -> tuple[Expr, ...]:
        return (self.left, self.right)

    def rebuild(self, children: tuple[Expr, ...]) -> Expr:
        return BinaryOp(self.op, children[0], children[1])


@dataclass(frozen=True, eq=False)
class UnaryOp(Expr):
    op: str
    operand: Expr

    def children(self) -> tuple[Expr, ...]:
        return (self.operand,)

    def rebuild(self, children: tuple[Expr, ...]) -> Expr:
        return UnaryOp(self.op, children[0])


@dataclass(frozen=True, eq=False)
class FunctionCall(Expr):
    """
    Call of a logical function.

    The name is translated to a dialect-specific SQL function at compile
    time, e.g. ``mean`` becomes ``AVG``.
    """

    name: str
    args: tuple[Expr, ...] = ()

    @property
    def is_aggregate(self) -> bool:
        return self.name in AGGREGATE_FUNCTIONS

    def has_aggregate(self) -> bool:
        return self.is_aggregate or super().has_aggregate()

    def children(self) -> tuple[Expr, ...]:
        return self.args

    def rebuild(self, children: tuple[Expr, ...]) -> Expr:
        return FunctionCall(self.name, children)


@dataclass(frozen=True, eq=False)
class Case(Expr):
    """Searched CASE expression: first matching branch wins."""

    branches: tuple[tuple[Expr, Expr], ...]
    default: Expr | None = None

    def children(self) -> tuple[Expr, ...]:
        flat: list[Expr] = []
        for condition, value in self.branches:
            flat.extend((condition, value))
        if self.default is not None:
            flat.append(self.default)
        return tuple(flat)

    def rebuild(self, children: tuple[Expr, ...]) -> Expr:
        n = len(self.branches)
        branches = tuple(
            (children[2 * i], children[2 * i + 1]) for i in range(n)
        )
        default = children[2 * n] if self.default is not None else None
        return Case(branches, default)


@dataclass(frozen=True, eq=False)
class IsNull(Expr):
    operand: Expr
    negated: bool = False

    def children(self) -> tuple[Expr, ...]:
        return (self.operand,)

    def rebuild(self, children: tuple[Expr, ...]) -> Expr:
        return IsNull(children[0], self.negated)


@dataclass(frozen=True, eq=False)
class InList(Expr):
    operand: Expr
    values: tuple[Expr, ...]
    negated: bool = False

    def children(self) -> tuple[Expr, ...]:
        return (self.operand, *self.values)

    def rebuild(self, children: tuple[Expr, ...]) -> Expr:
        return InList(children[0], tuple(children[1:]), self.negated)


@dataclass(frozen=True, eq=False)
class Between(Expr):
    operand: Expr
    low: Expr
    high: Expr

    def children(self) -> tuple[Expr, ...]:
        return (self.operand, self.low, self.high)

    def rebuild(self, children: tuple[Expr, ...]) -> Expr:
        return Between(*children)


@dataclass(frozen=True, eq=False)
class Cast(Expr):
    operand: Expr
    type_name: str

    def children(self) -> tuple[Expr, ...]:
        return (self.operand,)

    def rebuild(self, children: tuple[Expr, ...]) -> Expr:
        return Cast(children[0], self.type_name)


@dataclass(frozen=True, eq=False)
class Window(Expr):
    """Aggregate evaluated over a partition instead of collapsing rows."""

    function: FunctionCall
    partition_by: tuple[Expr, ...] = ()

    def children(self) -> tuple[Expr, ...]:
        return (self.function, *self.partition_by)

    def rebuild(self, children: tuple[Expr, ...]) -> Expr:
        function = children[0]
        if not isinstance(function, FunctionCall):
            raise TypeError("Window function must remain a function call")
        return Window(function, tuple(children[1:]))

    def has_aggregate(self) -> bool:
        # The aggregate is consumed by the OVER clause.
        return any(p.has_aggregate() for p in self.partition_by)


# -----------------------------
# Ordering
# -----------------------------


@dataclass(frozen=True, eq=False)
class SortKey:
    """An ORDER BY key."""

    expr: Expr
    descending: bool = False

    def substitute(self, mapping: dict[str, Expr]) -> SortKey:
        return SortKey(self.expr.substitute(mapping), self.descending)


# -----------------------------
# Constructors
# -----------------------------


def to_expr(value: Any) -> Expr:
    """Promote a Python value to an expression."""
    if isinstance(value, Expr):
        return value
    if isinstance(value, SortKey):
        raise TypeError("Sort keys can only be used in arrange()")
    return Literal(value)


def col(name: str) -> ColumnRef:
    """Reference a column by name."""
    if not isinstance(name, str) or not name:
        raise TypeError("Column name must be a non-empty string")
    return ColumnRef(name)


def lit(value: Any) -> Literal:
    """Wrap a Python scalar as a literal."""
    return Literal(value)


def desc(key: str | Expr) -> SortKey:
    """Descending sort key."""
    expr = col(key) if isinstance(key, str) else to_expr(key)
    return SortKey(expr, descending=True)


def if_else(condition: Expr, true: Any, false: Any) -> Case:
    return Case(((to_expr(condition), to_expr(true)),), to_expr(false))


def case_when(*branches: tuple[Any, Any], default: Any = None) -> Case:
    """
    Build a CASE expression from ``(condition, value)`` pairs.

    Example:
        case_when((col("price") > 1000, "high"), default="low")
    """
    if not branches:
        raise ValueError("case_when() requires at least one branch")
    pairs = tuple((to_expr(c), to_expr(v)) for c, v in branches)
    return Case(pairs, None if default is None else to_expr(default))


@dataclass(frozen=True)
class _FunctionNamespace:
    """
    Attribute access builds function calls: ``fn.mean(col("price"))``.

    Any name is accepted; unknown names are passed through the dialect's
    function map or rendered upper-cased.
    """

    _aliases: dict[str, str] = field(
        default_factory=lambda: {"avg": "mean", "n": "count"}
    )

    def __getattr__(self, name: str) -> Callable[..., FunctionCall]:
        if name.startswith("_"):
            raise AttributeError(name)
        logical = self._aliases.get(name, name)

        def _call(*args: Any) -> FunctionCall:
            return FunctionCall(logical, tuple(to_expr(a) for a in args))

        _call.__name__ = logical
        return _call


fn = _FunctionNamespace()
