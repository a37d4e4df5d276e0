"""Column expression trees for tidysql relations."""

from .models import (
    AGGREGATE_FUNCTIONS,
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
    SortKey,
    UnaryOp,
    Window,
    case_when,
    col,
    desc,
    fn,
    if_else,
    lit,
    to_expr,
)

__all__ = [
    "AGGREGATE_FUNCTIONS",
    "Between",
    "BinaryOp",
    "Case",
    "Cast",
    "ColumnRef",
    "Expr",
    "FunctionCall",
    "InList",
    "IsNull",
    "Literal",
    "SortKey",
    "UnaryOp",
    "Window",
    "case_when",
    "col",
    "desc",
    "fn",
    "if_else",
    "lit",
    "to_expr",
]
