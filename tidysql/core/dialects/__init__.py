"""SQL dialect descriptors and presets."""

from .models import (
    ANSI,
    DEFAULT_FUNCTION_MAP,
    DUCKDB,
    MYSQL,
    POSTGRES,
    SQLITE,
    Dialect,
    QuotePolicy,
    get_dialect,
    list_dialects,
)

__all__ = [
    "ANSI",
    "DEFAULT_FUNCTION_MAP",
    "DUCKDB",
    "MYSQL",
    "POSTGRES",
    "SQLITE",
    "Dialect",
    "QuotePolicy",
    "get_dialect",
    "list_dialects",
]
