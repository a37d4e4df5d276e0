"""
Dialect descriptors for tidysql.

A dialect captures the syntax variations the SQL compiler must honor for
one database backend: quoting, join support and function naming.
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import String

from tidysql.core.dialects.sa_dialect import TidyDialect, build_dialect


# -----------------------------
# Enums
# -----------------------------


class QuotePolicy(str, Enum):
    """When identifiers are wrapped in the identifier quote."""

    ALWAYS = "always"
    AS_NEEDED = "as_needed"


# Logical function name -> SQL function name shared by all dialects.
DEFAULT_FUNCTION_MAP: dict[str, str | None] = {
    "count": "COUNT",
    "n_distinct": "COUNT",
    "mean": "AVG",
    "sum": "SUM",
    "min": "MIN",
    "max": "MAX",
    "sd": "STDDEV_SAMP",
    "var": "VAR_SAMP",
    "median": "MEDIAN",
    "lower": "LOWER",
    "upper": "UPPER",
    "abs": "ABS",
    "round": "ROUND",
    "coalesce": "COALESCE",
    "length": "LENGTH",
    "substr": "SUBSTR",
    "sqrt": "SQRT",
    "log": "LN",
    "floor": "FLOOR",
    "ceil": "CEIL",
    "concat": "CONCAT",
}


# -----------------------------
# Dialect
# -----------------------------


class Dialect(BaseModel):
    """
    Syntax description of a SQL backend.

    Example:
        Dialect(name="mysql", identifier_quote="`", supports_full_join=False)
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    identifier_quote: str = Field(default='"', min_length=1, max_length=1)
    string_quote: str = Field(default="'", min_length=1, max_length=1)
    quote_identifiers: QuotePolicy = QuotePolicy.AS_NEEDED
    not_equal_operator: Literal["!=", "<>"] = "!="
    supports_full_join: bool = True
    supports_window_functions: bool = True
    having_alias: bool = Field(
        default=True,
        description="HAVING may reference SELECT aliases instead of repeating the aggregate",
    )
    function_map: dict[str, str | None] = Field(
        default_factory=dict,
        description="Overrides of DEFAULT_FUNCTION_MAP; None marks a function unsupported",
    )

    @field_validator("function_map")
    @classmethod
    def normalize_function_names(
        cls, v: dict[str, str | None]
    ) -> dict[str, str | None]:
        return {key.lower(): value for key, value in v.items()}

    # -------------------------
    # Lookup Methods
    # -------------------------

    def function_name(self, logical_name: str) -> str | None:
        """
        Translate a logical function name.

        Returns None when the dialect explicitly lacks the function.
        Unknown names pass through upper-cased.
        """
        key = logical_name.lower()
        if key in self.function_map:
            return self.function_map[key]
        return DEFAULT_FUNCTION_MAP.get(key, logical_name.upper())

    def sqlalchemy_dialect(self, paramstyle: str = "named") -> TidyDialect:
        """SQLAlchemy dialect that compiles statements with this syntax."""
        return build_dialect(
            self.identifier_quote,
            self.string_quote,
            self.quote_identifiers == QuotePolicy.ALWAYS,
            self.not_equal_operator,
            paramstyle,
        )

    def quote_identifier(self, name: str) -> str:
        """Quote an identifier according to the dialect policy."""
        return self.sqlalchemy_dialect().identifier_preparer.quote(name)

    def quote_string(self, value: str) -> str:
        dialect = self.sqlalchemy_dialect()
        return dialect.statement_compiler(dialect, None).render_literal_value(value, String())


# -----------------------------
# Presets
# -----------------------------

ANSI = Dialect(name="ansi", having_alias=False, not_equal_operator="<>")

DUCKDB = Dialect(name="duckdb")

SQLITE = Dialect(
    name="sqlite",
    supports_full_join=False,
    function_map={
        "sd": None,
        "var": None,
        "median": None,
        "sqrt": None,
        "log": None,
        "floor": None,
        "ceil": None,
        "concat": None,
    },
)

POSTGRES = Dialect(
    name="postgres",
    having_alias=False,
    function_map={"median": None, "length": "CHAR_LENGTH"},
)

MYSQL = Dialect(
    name="mysql",
    identifier_quote="`",
    supports_full_join=False,
    function_map={"median": None, "var": "VAR_SAMP", "length": "CHAR_LENGTH"},
)

_DIALECTS: dict[str, Dialect] = {
    d.name: d for d in (ANSI, DUCKDB, SQLITE, POSTGRES, MYSQL)
}


def get_dialect(name: str) -> Dialect:
    """Look up a preset dialect by name."""
    try:
        return _DIALECTS[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown dialect '{name}'. Available: {', '.join(sorted(_DIALECTS))}"
        ) from None


def list_dialects() -> list[str]:
    return sorted(_DIALECTS)
