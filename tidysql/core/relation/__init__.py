"""Lazy relation builder for tidysql."""

from .operations import (
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
from .relation import LazyRelation, SchemaError, tbl

__all__ = [
    "Arrange",
    "Distinct",
    "Filter",
    "GroupBy",
    "Head",
    "Join",
    "JoinKind",
    "LazyRelation",
    "Mutate",
    "Operation",
    "Project",
    "SchemaError",
    "Summarize",
    "TableSource",
    "Ungroup",
    "tbl",
]
