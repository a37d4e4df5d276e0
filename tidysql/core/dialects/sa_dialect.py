"""
SQLAlchemy dialect configured from a tidysql Dialect descriptor.

Statements built with SQLAlchemy Core are compiled against a
DefaultDialect whose identifier preparer and statement compiler follow
the descriptor's quoting rules, then flattened to a single line.
"""

import re
from functools import lru_cache

from sqlalchemy.engine.default import DefaultDialect
from sqlalchemy.sql import compiler
from sqlalchemy.sql.elements import ClauseElement


# Quoted strings and identifiers are skipped; only the line breaks
# SQLAlchemy inserts between clauses are collapsed.
_QUOTED_OR_BREAK = re.compile(r"""'(?:[^']|'')*'|"(?:[^"]|"")*"|`(?:[^`]|``)*`|\s*\n\s*""")


class TidyIdentifierPreparer(compiler.IdentifierPreparer):
    """
    Identifier quoting driven by the descriptor.

    Under the as-needed policy SQLAlchemy decides: reserved words, mixed
    case and names with illegal characters are quoted.
    """

    def __init__(self, dialect: "TidyDialect"):
        super().__init__(
            dialect,
            initial_quote=dialect.identifier_quote,
            escape_quote=dialect.identifier_quote,
        )

    def _requires_quotes(self, value: str) -> bool:
        if self.dialect.always_quote:
            return True
        return super()._requires_quotes(value)


class TidyStatementCompiler(compiler.SQLCompiler):
    """Renders boolean constants, inequality and strings per descriptor."""

    def visit_true(self, expr, **kw):
        return "TRUE"

    def visit_false(self, expr, **kw):
        return "FALSE"

    def visit_ne_binary(self, binary, operator, **kw):
        return self._generate_generic_binary(
            binary, f" {self.dialect.not_equal_operator} ", **kw
        )

    def render_literal_value(self, value, type_):
        quote = self.dialect.string_quote
        if isinstance(value, str) and quote != "'":
            return quote + value.replace(quote, quote * 2) + quote
        return super().render_literal_value(value, type_)


class TidyDialect(DefaultDialect):
    """DefaultDialect with descriptor-driven quoting and plain division."""

    name = "tidysql"
    statement_compiler = TidyStatementCompiler
    preparer = TidyIdentifierPreparer
    supports_native_boolean = True
    div_is_floordiv = False

    def __init__(
        self,
        identifier_quote: str = '"',
        string_quote: str = "'",
        always_quote: bool = False,
        not_equal_operator: str = "!=",
        paramstyle: str = "named",
    ):
        # Read by the preparer, which DefaultDialect builds in __init__.
        self.identifier_quote = identifier_quote
        self.string_quote = string_quote
        self.always_quote = always_quote
        self.not_equal_operator = not_equal_operator
        super().__init__(paramstyle=paramstyle)


@lru_cache(maxsize=None)
def build_dialect(
    identifier_quote: str,
    string_quote: str,
    always_quote: bool,
    not_equal_operator: str,
    paramstyle: str = "named",
) -> TidyDialect:
    return TidyDialect(
        identifier_quote=identifier_quote,
        string_quote=string_quote,
        always_quote=always_quote,
        not_equal_operator=not_equal_operator,
        paramstyle=paramstyle,
    )


def single_line(sql: str) -> str:
    """Collapse SQLAlchemy's clause line breaks into single spaces."""

    def _replace(match: re.Match) -> str:
        text = match.group(0)
        return text if text[0] in "'\"`" else " "

    return _QUOTED_OR_BREAK.sub(_replace, sql).strip()


def compile_statement(statement: ClauseElement, dialect: TidyDialect) -> str:
    """Compile a Core statement with inlined literals to one line of SQL."""
    compiled = statement.compile(dialect=dialect, compile_kwargs={"literal_binds": True})
    return single_line(str(compiled))
