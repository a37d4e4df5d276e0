"""
Operation records for lazy relations.

Each relational verb is captured as one immutable record. Records hold
everything the SQL compiler needs, already validated against the schema
of the relation they were applied to.
"""

from dataclasses import dataclass
from enum import Enum

from tidysql.core.expressions import Expr, SortKey


class JoinKind(str, Enum):
    """Supported join kinds."""

    INNER = "inner"
    LEFT = "left"
    FULL = "full"
    SEMI = "semi"
    ANTI = "anti"

    @property
    def is_filtering(self) -> bool:
        """Semi and anti joins only filter the left side."""
        return self in (JoinKind.SEMI, JoinKind.ANTI)


# -----------------------------
# Operations
# -----------------------------


@dataclass(frozen=True, eq=False)
class TableSource:
    """Scan of a named table with a known column list."""

    name: str
    columns: tuple[str, ...]


@dataclass(frozen=True, eq=False)
class Project:
    """
    Projection produced by select, rename and relocate.

    ``items`` pairs each output name with the input column it reads.
    """

    verb: str
    items: tuple[tuple[str, str], ...]


@dataclass(frozen=True, eq=False)
class Mutate:
    """Ordered column assignments; later ones may read earlier ones."""

    assignments: tuple[tuple[str, Expr], ...]


@dataclass(frozen=True, eq=False)
class Filter:
    predicates: tuple[Expr, ...]


@dataclass(frozen=True, eq=False)
class GroupBy:
    keys: tuple[str, ...]


@dataclass(frozen=True, eq=False)
class Ungroup:
    pass


@dataclass(frozen=True, eq=False)
class Summarize:
    keys: tuple[str, ...]
    aggregates: tuple[tuple[str, Expr], ...]


@dataclass(frozen=True, eq=False)
class Arrange:
    keys: tuple[SortKey, ...]


@dataclass(frozen=True, eq=False)
class Join:
    """
    Join against another relation.

    ``left_columns`` and ``right_columns`` map output names to the column
    read from each side; ``on`` lists (left key, right key) pairs.
    """

    kind: JoinKind
    right: object  # LazyRelation
    on: tuple[tuple[str, str], ...]
    left_columns: tuple[tuple[str, str], ...]
    right_columns: tuple[tuple[str, str], ...]


@dataclass(frozen=True, eq=False)
class Head:
    n: int


@dataclass(frozen=True, eq=False)
class Distinct:
    pass


Operation = (
    TableSource
    | Project
    | Mutate
    | Filter
    | GroupBy
    | Ungroup
    | Summarize
    | Arrange
    | Join
    | Head
    | Distinct
)
