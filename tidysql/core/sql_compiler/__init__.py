"""Lazy relation to SQL compilation."""

from .compiler import SQLCompiler
from .models import CompiledQuery, QueryLevel, UnsupportedOperationError
from .planner import QueryPlanner
from .renderer import SQLRenderer

__all__ = [
    "CompiledQuery",
    "QueryLevel",
    "QueryPlanner",
    "SQLCompiler",
    "SQLRenderer",
    "UnsupportedOperationError",
]
