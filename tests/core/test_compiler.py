"""
Tests for SQL Compiler.

Tests that LazyRelation chains compile into the expected SQL text.
"""

import logging

import pytest

from tidysql.core.dialects import ANSI, DUCKDB, MYSQL, POSTGRES, SQLITE, Dialect
from tidysql.core.expressions import ColumnRef, case_when, col, desc, fn, if_else, lit
from tidysql.core.relation import LazyRelation, tbl
from tidysql.core.sql_compiler import (
    CompiledQuery,
    QueryLevel,
    QueryPlanner,
    SQLCompiler,
    UnsupportedOperationError,
)
from tidysql.core.sql_compiler.models import SelectItem, SubqueryFrom, TableFrom


DIAMOND_COLUMNS = [
    "carat", "cut", "color", "clarity", "depth", "table", "price", "x", "y", "z",
]


# -----------------------------
# Fixtures
# -----------------------------


@pytest.fixture
def diamonds() -> LazyRelation:
    """Relation over the diamonds table."""
    return tbl("diamonds", DIAMOND_COLUMNS)


@pytest.fixture
def flights() -> LazyRelation:
    return tbl("flights", ["year", "carrier", "dep_delay"])


@pytest.fixture
def airlines() -> LazyRelation:
    return tbl("airlines", ["carrier", "name"])


@pytest.fixture
def compiler() -> SQLCompiler:
    """Compiler with the default (DuckDB) dialect."""
    return SQLCompiler()


# -----------------------------
# Helper to compile SQL string
# -----------------------------


def compile_to_sql(compiler: SQLCompiler, relation: LazyRelation) -> str:
    """Helper to compile a relation to SQL text."""
    return compiler.compile(relation).sql


def count_selects(sql: str) -> int:
    return sql.count("SELECT")


# -----------------------------
# Basic Compilation Tests
# -----------------------------


class TestBasicCompilation:
    """Tests for table scans and projections."""

    def test_whole_table(self, compiler: SQLCompiler, diamonds: LazyRelation) -> None:
        """An untouched table compiles to SELECT *."""
        assert compile_to_sql(compiler, diamonds) == "SELECT * FROM diamonds"

    def test_filter_then_select(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        """Filter and select fold into one SELECT."""
        relation = diamonds.filter(col("price") > 10000).select(
            "carat", "cut", "clarity", "color", "price"
        )
        sql = compile_to_sql(compiler, relation)

        assert sql == (
            "SELECT carat, cut, clarity, color, price FROM diamonds WHERE price > 10000"
        )

    def test_select_then_filter_has_no_subquery(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        """Filtering selected columns never needs a subquery."""
        relation = diamonds.select("carat", "price").filter(col("price") > 500)
        sql = compile_to_sql(compiler, relation)

        assert sql == "SELECT carat, price FROM diamonds WHERE price > 500"

    def test_filter_keeps_star(self, compiler: SQLCompiler, diamonds: LazyRelation) -> None:
        sql = compile_to_sql(compiler, diamonds.filter(col("cut") == "Ideal"))

        assert sql == "SELECT * FROM diamonds WHERE cut = 'Ideal'"

    def test_rename(self, compiler: SQLCompiler, diamonds: LazyRelation) -> None:
        relation = diamonds.select("carat", "price").rename({"price": "price_usd"})

        assert compile_to_sql(compiler, relation) == (
            "SELECT carat, price AS price_usd FROM diamonds"
        )

    def test_select_with_keyword_rename(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = diamonds.select("cut", size="carat")

        assert compile_to_sql(compiler, relation) == (
            "SELECT cut, carat AS size FROM diamonds"
        )

    def test_relocate(self, compiler: SQLCompiler, diamonds: LazyRelation) -> None:
        relation = diamonds.select("carat", "cut", "price").relocate("price")

        assert compile_to_sql(compiler, relation) == (
            "SELECT price, carat, cut FROM diamonds"
        )

    def test_reserved_column_is_quoted(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = diamonds.select("depth", "table")

        assert compile_to_sql(compiler, relation) == (
            'SELECT depth, "table" FROM diamonds'
        )

    @pytest.mark.parametrize(
        "name", ["primary", "check", "unique", "references", "column"]
    )
    def test_reserved_words_quoted_everywhere(
        self, compiler: SQLCompiler, name: str
    ) -> None:
        relation = tbl("t", ["a", "b", name]).select("b", name).filter(col(name) > 0)

        assert compile_to_sql(compiler, relation) == (
            f'SELECT b, "{name}" FROM t WHERE "{name}" > 0'
        )

    def test_compiled_query_metadata(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        """CompiledQuery carries the output columns and dialect name."""
        compiled = compiler.compile(diamonds.select("cut", "price"))

        assert isinstance(compiled, CompiledQuery)
        assert compiled.columns == ("cut", "price")
        assert compiled.dialect == "duckdb"
        assert str(compiled) == compiled.sql


# -----------------------------
# Determinism Tests
# -----------------------------


class TestDeterminism:
    """Compiling the same relation twice yields identical SQL."""

    def test_projection_chain_is_deterministic(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = (
            diamonds.select("carat", "cut", "price")
            .mutate(price_k=col("price") / 1000.0)
            .rename({"cut": "quality"})
            .relocate("price_k")
        )

        first = compile_to_sql(compiler, relation)
        second = compile_to_sql(compiler, relation)

        assert first == second

    def test_subquery_names_restart_per_compile(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = diamonds.mutate(a=col("price") + 1).mutate(b=col("a") + 1)

        assert compile_to_sql(compiler, relation) == compile_to_sql(compiler, relation)
        assert "AS q01" in compile_to_sql(compiler, relation)


# -----------------------------
# Mutate Tests
# -----------------------------


class TestMutate:
    """Tests for computed columns and subquery boundaries."""

    def test_select_alone_has_no_subquery(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        assert compile_to_sql(compiler, diamonds.select("carat")) == (
            "SELECT carat FROM diamonds"
        )

    def test_chained_mutate_needs_one_subquery(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        """carat3 reads carat2, so carat2 must be defined one level down."""
        relation = (
            diamonds.select("carat")
            .mutate(carat2=col("carat") + 2)
            .mutate(carat3=col("carat2") + 1)
        )
        sql = compile_to_sql(compiler, relation)

        assert sql == (
            "SELECT carat, carat2, carat2 + 1 AS carat3 "
            "FROM (SELECT carat, carat + 2 AS carat2 FROM diamonds) AS q01"
        )
        assert count_selects(sql) == 2

    def test_independent_mutates_fold(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = (
            diamonds.select("carat", "price")
            .mutate(a=col("carat") * 2)
            .mutate(b=col("price") * 2)
        )

        assert compile_to_sql(compiler, relation) == (
            "SELECT carat, price, carat * 2 AS a, price * 2 AS b FROM diamonds"
        )

    def test_same_call_reference_splits_levels(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        """Later keywords in one mutate() may read earlier ones."""
        relation = diamonds.select("price").mutate(
            double=col("price") * 2, quadruple=col("double") * 2
        )
        sql = compile_to_sql(compiler, relation)

        assert sql == (
            "SELECT price, double, double * 2 AS quadruple "
            "FROM (SELECT price, price * 2 AS double FROM diamonds) AS q01"
        )

    def test_shadowed_column_resolves_to_latest_definition(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = (
            diamonds.select("carat", "price")
            .mutate(price=col("price") * 2)
            .mutate(price=col("price") + 1)
        )
        sql = compile_to_sql(compiler, relation)

        assert sql == (
            "SELECT carat, price + 1 AS price "
            "FROM (SELECT carat, price * 2 AS price FROM diamonds) AS q01"
        )

    def test_integer_and_float_literals(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        """2 stays an integer, 2.0 keeps its decimal point."""
        relation = diamonds.select("carat").mutate(
            a=col("carat") + 2, b=col("carat") + 2.0
        )
        sql = compile_to_sql(compiler, relation)

        assert "carat + 2 AS a" in sql
        assert "carat + 2.0 AS b" in sql

    def test_window_function_over_groups(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = (
            diamonds.select("cut", "price")
            .group_by("cut")
            .mutate(cut_avg=fn.mean(col("price")))
        )

        assert compile_to_sql(compiler, relation) == (
            "SELECT cut, price, AVG(price) OVER (PARTITION BY cut) AS cut_avg "
            "FROM diamonds"
        )

    def test_ungrouped_window(self, compiler: SQLCompiler, diamonds: LazyRelation) -> None:
        relation = diamonds.select("price").mutate(total=fn.sum(col("price")))

        assert compile_to_sql(compiler, relation) == (
            "SELECT price, SUM(price) OVER () AS total FROM diamonds"
        )

    def test_filter_after_window_wraps(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        """WHERE must not run before the window it follows."""
        relation = (
            diamonds.select("cut", "price")
            .mutate(avg=fn.mean(col("price")))
            .filter(col("cut") == "Ideal")
        )
        sql = compile_to_sql(compiler, relation)

        assert sql == (
            "SELECT * FROM (SELECT cut, price, AVG(price) OVER () AS avg "
            "FROM diamonds) AS q01 WHERE cut = 'Ideal'"
        )


# -----------------------------
# Filter Tests
# -----------------------------


class TestFilters:
    """Tests for WHERE compilation."""

    def test_filter_on_mutated_column_wraps(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = (
            diamonds.select("carat", "price")
            .mutate(ppc=col("price") / col("carat"))
            .filter(col("ppc") > 5000)
        )
        sql = compile_to_sql(compiler, relation)

        assert sql == (
            "SELECT * FROM (SELECT carat, price, price / carat AS ppc FROM diamonds) "
            "AS q01 WHERE ppc > 5000"
        )

    def test_filter_on_untouched_column_after_mutate_folds(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = (
            diamonds.select("carat", "price")
            .mutate(p2=col("price") * 2)
            .filter(col("carat") > 1)
        )

        assert compile_to_sql(compiler, relation) == (
            "SELECT carat, price, price * 2 AS p2 FROM diamonds WHERE carat > 1"
        )

    def test_filter_on_renamed_column_uses_source_name(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = diamonds.select(size="carat").filter(col("size") > 1)

        assert compile_to_sql(compiler, relation) == (
            "SELECT carat AS size FROM diamonds WHERE carat > 1"
        )

    def test_multiple_predicates_and_or_grouping(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = diamonds.filter(
            (col("x") > 1) | (col("y") < 2),
            col("z") == 3,
        )

        assert compile_to_sql(compiler, relation) == (
            "SELECT * FROM diamonds WHERE (x > 1 OR y < 2) AND z = 3"
        )

    def test_predicate_helpers(self, compiler: SQLCompiler, diamonds: LazyRelation) -> None:
        relation = diamonds.filter(
            col("cut").isin(["Ideal", "Premium"]),
            col("price").between(100, 200),
            col("depth").not_null(),
        )

        assert compile_to_sql(compiler, relation) == (
            "SELECT * FROM diamonds WHERE cut IN ('Ideal', 'Premium') "
            "AND price BETWEEN 100 AND 200 AND depth IS NOT NULL"
        )

    def test_negation(self, compiler: SQLCompiler, diamonds: LazyRelation) -> None:
        relation = diamonds.filter(~((col("x") > 1) & (col("y") > 1)))

        assert compile_to_sql(compiler, relation) == (
            "SELECT * FROM diamonds WHERE NOT (x > 1 AND y > 1)"
        )

    def test_negated_negative_literal(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        """A leading minus before a negative number must not form a comment."""
        sql = compile_to_sql(compiler, diamonds.select("price").mutate(x=-lit(-5)))

        assert sql == "SELECT price, -(-5) AS x FROM diamonds"
        assert "--" not in sql

    def test_negated_column(self, compiler: SQLCompiler, diamonds: LazyRelation) -> None:
        sql = compile_to_sql(compiler, diamonds.select("price").mutate(x=-col("price")))

        assert sql == "SELECT price, -price AS x FROM diamonds"

    def test_string_literal_escaping(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        sql = compile_to_sql(compiler, diamonds.filter(col("cut") == "O'Brien"))

        assert sql.endswith("WHERE cut = 'O''Brien'")

    def test_filter_after_head_wraps(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = diamonds.head(5).filter(col("price") > 100)

        assert compile_to_sql(compiler, relation) == (
            "SELECT * FROM (SELECT * FROM diamonds LIMIT 5) AS q01 WHERE price > 100"
        )

    def test_aggregate_in_filter_is_unsupported(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = diamonds.filter(fn.mean(col("price")) > 100)

        with pytest.raises(UnsupportedOperationError) as exc_info:
            compiler.compile(relation)

        assert exc_info.value.dialect == "duckdb"

    def test_no_implicit_null_filtering(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        """Aggregates are emitted as-is; the store decides NULL handling."""
        relation = diamonds.group_by("cut").summarize(avg=fn.mean(col("depth")))
        sql = compile_to_sql(compiler, relation)

        assert "NULL" not in sql
        assert "WHERE" not in sql


# -----------------------------
# Aggregation Tests
# -----------------------------


class TestAggregation:
    """Tests for group_by + summarize compilation."""

    def test_group_by_summarize(self, compiler: SQLCompiler, diamonds: LazyRelation) -> None:
        relation = diamonds.group_by("cut").summarize(
            n=fn.count(), avg_price=fn.mean(col("price"))
        )

        assert compile_to_sql(compiler, relation) == (
            "SELECT cut, COUNT(*) AS n, AVG(price) AS avg_price FROM diamonds GROUP BY cut"
        )

    def test_filter_on_aggregate_becomes_having(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = (
            diamonds.group_by("cut")
            .summarize(n=fn.count(), avg_price=fn.mean(col("price")))
            .filter(col("n") > 10)
        )
        sql = compile_to_sql(compiler, relation)

        assert sql.endswith("HAVING n > 10")
        assert count_selects(sql) == 1

    def test_having_inlines_aggregate_without_alias_support(
        self, diamonds: LazyRelation
    ) -> None:
        relation = (
            diamonds.group_by("cut")
            .summarize(n=fn.count())
            .filter(col("n") > 10)
        )
        sql = SQLCompiler(POSTGRES).compile(relation).sql

        assert sql == (
            "SELECT cut, COUNT(*) AS n FROM diamonds GROUP BY cut HAVING COUNT(*) > 10"
        )

    def test_filter_after_ungrouped_summarize_wraps(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = diamonds.summarize(avg=fn.mean(col("price"))).filter(col("avg") > 100)

        assert compile_to_sql(compiler, relation) == (
            "SELECT * FROM (SELECT AVG(price) AS avg FROM diamonds) AS q01 WHERE avg > 100"
        )

    def test_summarize_computed_column_wraps(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = (
            diamonds.select("cut", "carat", "price")
            .mutate(ppc=col("price") / col("carat"))
            .group_by("cut")
            .summarize(m=fn.mean(col("ppc")))
        )

        assert compile_to_sql(compiler, relation) == (
            "SELECT cut, AVG(ppc) AS m FROM (SELECT cut, carat, price, "
            "price / carat AS ppc FROM diamonds) AS q01 GROUP BY cut"
        )

    def test_count_distinct(self, compiler: SQLCompiler, diamonds: LazyRelation) -> None:
        relation = diamonds.summarize(colors=fn.n_distinct(col("color")))

        assert compile_to_sql(compiler, relation) == (
            "SELECT COUNT(DISTINCT color) AS colors FROM diamonds"
        )

    def test_count_verb_with_sort(self, compiler: SQLCompiler, diamonds: LazyRelation) -> None:
        relation = diamonds.count("cut", sort=True)

        assert compile_to_sql(compiler, relation) == (
            "SELECT cut, COUNT(*) AS n FROM diamonds GROUP BY cut ORDER BY n DESC"
        )

    def test_select_dropping_having_alias_wraps(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = (
            diamonds.group_by("cut")
            .summarize(n=fn.count(), avg_price=fn.mean(col("price")))
            .filter(col("n") > 10)
            .select("cut", "avg_price")
        )

        assert compile_to_sql(compiler, relation) == (
            "SELECT cut, avg_price FROM (SELECT cut, COUNT(*) AS n, "
            "AVG(price) AS avg_price FROM diamonds GROUP BY cut HAVING n > 10) AS q01"
        )

    def test_conditional_aggregate(self, compiler: SQLCompiler, diamonds: LazyRelation) -> None:
        relation = diamonds.group_by("cut").summarize(
            big=fn.sum(if_else(col("carat") > 2, 1, 0))
        )

        assert compile_to_sql(compiler, relation) == (
            "SELECT cut, SUM(CASE WHEN (carat > 2) THEN 1 ELSE 0 END) AS big "
            "FROM diamonds GROUP BY cut"
        )


# -----------------------------
# Order By / Limit Tests
# -----------------------------


class TestOrderAndLimit:
    """Tests for ORDER BY, LIMIT and DISTINCT."""

    def test_arrange(self, compiler: SQLCompiler, diamonds: LazyRelation) -> None:
        relation = diamonds.select("carat", "price").arrange(desc("price"), "carat")

        assert compile_to_sql(compiler, relation) == (
            "SELECT carat, price FROM diamonds ORDER BY price DESC, carat"
        )

    def test_arrange_expression(self, compiler: SQLCompiler, diamonds: LazyRelation) -> None:
        relation = diamonds.select("x", "y").arrange((col("x") * col("y")).desc())

        assert compile_to_sql(compiler, relation) == (
            "SELECT x, y FROM diamonds ORDER BY x * y DESC"
        )

    def test_order_is_hoisted_over_subquery(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = (
            diamonds.select("carat")
            .mutate(c2=col("carat") * 2)
            .arrange("c2")
            .mutate(c3=col("c2") + 1)
        )

        assert compile_to_sql(compiler, relation) == (
            "SELECT carat, c2, c2 + 1 AS c3 FROM (SELECT carat, carat * 2 AS c2 "
            "FROM diamonds) AS q01 ORDER BY c2"
        )

    def test_head(self, compiler: SQLCompiler, diamonds: LazyRelation) -> None:
        relation = diamonds.select("carat").arrange("carat").head(5)

        assert compile_to_sql(compiler, relation) == (
            "SELECT carat FROM diamonds ORDER BY carat LIMIT 5"
        )

    def test_nested_head_keeps_smallest(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        assert compile_to_sql(compiler, diamonds.head(10).head(3)) == (
            "SELECT * FROM diamonds LIMIT 3"
        )

    def test_distinct(self, compiler: SQLCompiler, diamonds: LazyRelation) -> None:
        assert compile_to_sql(compiler, diamonds.distinct("cut")) == (
            "SELECT DISTINCT cut FROM diamonds"
        )

    def test_distinct_drops_order_on_hidden_column(
        self,
        compiler: SQLCompiler,
        diamonds: LazyRelation,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """SELECT DISTINCT cannot be ordered by a column it does not return."""
        relation = diamonds.arrange("price").distinct("cut")

        with caplog.at_level(logging.WARNING, logger="tidysql.core.sql_compiler.planner"):
            sql = compile_to_sql(compiler, relation)

        assert sql == "SELECT DISTINCT cut FROM diamonds"
        assert "not an output column" in caplog.text

    def test_distinct_keeps_order_on_output_column(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = diamonds.arrange(desc("cut"), "price").distinct("cut")

        assert compile_to_sql(compiler, relation) == (
            "SELECT DISTINCT cut FROM diamonds ORDER BY cut DESC"
        )

    def test_mutate_after_distinct_wraps(
        self, compiler: SQLCompiler, diamonds: LazyRelation
    ) -> None:
        relation = diamonds.distinct("cut").mutate(lower_cut=fn.lower(col("cut")))

        assert compile_to_sql(compiler, relation) == (
            "SELECT cut, LOWER(cut) AS lower_cut FROM "
            "(SELECT DISTINCT cut FROM diamonds) AS q01"
        )


# -----------------------------
# Join Tests
# -----------------------------


class TestJoins:
    """Tests for join compilation."""

    def test_left_join(
        self, compiler: SQLCompiler, flights: LazyRelation, airlines: LazyRelation
    ) -> None:
        relation = flights.left_join(airlines, by="carrier")

        assert compile_to_sql(compiler, relation) == (
            "SELECT lhs.year, lhs.carrier, lhs.dep_delay, rhs.name "
            "FROM flights AS lhs LEFT OUTER JOIN airlines AS rhs "
            "ON lhs.carrier = rhs.carrier"
        )

    def test_natural_inner_join(
        self, compiler: SQLCompiler, flights: LazyRelation, airlines: LazyRelation
    ) -> None:
        sql = compile_to_sql(compiler, flights.inner_join(airlines))

        assert " JOIN airlines AS rhs ON lhs.carrier = rhs.carrier" in sql
        assert "OUTER" not in sql

    def test_join_on_different_names(
        self, compiler: SQLCompiler, flights: LazyRelation
    ) -> None:
        codes = tbl("airlines", ["code", "name"])
        relation = flights.inner_join(codes, by={"carrier": "code"})

        assert relation.columns == ("year", "carrier", "dep_delay", "name")
        assert compile_to_sql(compiler, relation).endswith("ON lhs.carrier = rhs.code")

    def test_full_join_coalesces_keys(
        self, compiler: SQLCompiler, flights: LazyRelation, airlines: LazyRelation
    ) -> None:
        sql = compile_to_sql(compiler, flights.full_join(airlines, by="carrier"))

        assert sql == (
            "SELECT lhs.year, COALESCE(lhs.carrier, rhs.carrier) AS carrier, "
            "lhs.dep_delay, rhs.name FROM flights AS lhs FULL OUTER JOIN airlines AS rhs "
            "ON lhs.carrier = rhs.carrier"
        )

    def test_full_join_unsupported_dialect(
        self, flights: LazyRelation, airlines: LazyRelation
    ) -> None:
        with pytest.raises(UnsupportedOperationError) as exc_info:
            SQLCompiler(SQLITE).compile(flights.full_join(airlines, by="carrier"))

        assert exc_info.value.operation == "full_join"
        assert exc_info.value.dialect == "sqlite"

    def test_duplicate_columns_get_suffixes(self, compiler: SQLCompiler) -> None:
        left = tbl("x", ["id", "value"])
        right = tbl("y", ["id", "value"])
        relation = left.inner_join(right, by="id")

        assert relation.columns == ("id", "value_x", "value_y")
        assert compile_to_sql(compiler, relation) == (
            "SELECT lhs.id, lhs.value AS value_x, rhs.value AS value_y "
            "FROM x AS lhs JOIN y AS rhs ON lhs.id = rhs.id"
        )

    def test_semi_join(
        self, compiler: SQLCompiler, flights: LazyRelation, airlines: LazyRelation
    ) -> None:
        relation = flights.semi_join(airlines, by="carrier")

        assert relation.columns == flights.columns
        assert compile_to_sql(compiler, relation) == (
            "SELECT lhs.year, lhs.carrier, lhs.dep_delay FROM flights AS lhs "
            "WHERE EXISTS (SELECT 1 FROM airlines AS rhs WHERE lhs.carrier = rhs.carrier)"
        )

    def test_anti_join(
        self, compiler: SQLCompiler, flights: LazyRelation, airlines: LazyRelation
    ) -> None:
        sql = compile_to_sql(compiler, flights.anti_join(airlines, by="carrier"))

        assert "WHERE NOT (EXISTS (SELECT 1 FROM airlines AS rhs" in sql

    def test_filtered_input_becomes_subquery(
        self, compiler: SQLCompiler, flights: LazyRelation, airlines: LazyRelation
    ) -> None:
        relation = flights.filter(col("dep_delay") > 60).inner_join(airlines, by="carrier")

        assert compile_to_sql(compiler, relation) == (
            "SELECT lhs.year, lhs.carrier, lhs.dep_delay, rhs.name "
            "FROM (SELECT year, carrier, dep_delay FROM flights WHERE dep_delay > 60) "
            "AS lhs JOIN airlines AS rhs ON lhs.carrier = rhs.carrier"
        )

    def test_filter_after_join_folds(
        self, compiler: SQLCompiler, flights: LazyRelation, airlines: LazyRelation
    ) -> None:
        relation = flights.left_join(airlines, by="carrier").filter(col("dep_delay") > 60)

        assert compile_to_sql(compiler, relation).endswith(
            "ON lhs.carrier = rhs.carrier WHERE lhs.dep_delay > 60"
        )


# -----------------------------
# Dialect Tests
# -----------------------------


class TestDialects:
    """Tests for dialect-specific rendering."""

    def test_mysql_backtick_quoting(self, diamonds: LazyRelation) -> None:
        sql = SQLCompiler(MYSQL).compile(diamonds.select("table")).sql

        assert sql == "SELECT `table` FROM diamonds"

    def test_always_quote_policy(self, diamonds: LazyRelation) -> None:
        dialect = Dialect(name="strict", quote_identifiers="always")
        sql = SQLCompiler(dialect).compile(diamonds.select("carat")).sql

        assert sql == 'SELECT "carat" FROM "diamonds"'

    def test_function_map_override(self, diamonds: LazyRelation) -> None:
        dialect = Dialect(name="custom", function_map={"mean": "MEAN"})
        sql = SQLCompiler(dialect).compile(
            diamonds.summarize(m=fn.mean(col("price")))
        ).sql

        assert sql == "SELECT MEAN(price) AS m FROM diamonds"

    def test_unsupported_function(self, diamonds: LazyRelation) -> None:
        relation = diamonds.summarize(s=fn.sd(col("price")))

        with pytest.raises(UnsupportedOperationError) as exc_info:
            SQLCompiler(SQLITE).compile(relation)

        assert exc_info.value.operation == "function 'sd'"
        assert "sqlite" in str(exc_info.value)

    def test_window_functions_unsupported(self, diamonds: LazyRelation) -> None:
        dialect = Dialect(name="legacy", supports_window_functions=False)
        relation = diamonds.mutate(total=fn.sum(col("price")))

        with pytest.raises(UnsupportedOperationError):
            SQLCompiler(dialect).compile(relation)

    def test_case_when(self, compiler: SQLCompiler, diamonds: LazyRelation) -> None:
        relation = diamonds.select("price").mutate(
            band=case_when(
                (col("price") > 10000, "high"),
                (col("price") > 1000, "mid"),
                default="low",
            )
        )

        assert compile_to_sql(compiler, relation) == (
            "SELECT price, CASE WHEN (price > 10000) THEN 'high' "
            "WHEN (price > 1000) THEN 'mid' ELSE 'low' END AS band FROM diamonds"
        )

    def test_ansi_not_equal(self, diamonds: LazyRelation) -> None:
        relation = diamonds.filter(col("cut") != "Ideal")

        assert SQLCompiler(ANSI).compile(relation).sql == (
            "SELECT * FROM diamonds WHERE cut <> 'Ideal'"
        )
        assert SQLCompiler().compile(relation).sql == (
            "SELECT * FROM diamonds WHERE cut != 'Ideal'"
        )


# -----------------------------
# Planner Guard Tests
# -----------------------------


class TestPlannerGuards:
    """Broken planner states raise instead of producing SQL."""

    def test_empty_plan_raises(
        self, diamonds: LazyRelation, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(QueryPlanner, "_fold", lambda self, level, step: None)

        with pytest.raises(RuntimeError):
            QueryPlanner(DUCKDB).plan(diamonds)

    def test_plain_join_input_without_table_raises(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        inner = QueryLevel(
            source=TableFrom("t", ("a",)),
            select=[SelectItem("a", ColumnRef("a"))],
        )
        level = QueryLevel(
            source=SubqueryFrom(inner, "q01"),
            select=[SelectItem("a", ColumnRef("a"))],
        )
        monkeypatch.setattr(QueryLevel, "is_plain", lambda self: True)

        with pytest.raises(TypeError):
            QueryPlanner(DUCKDB)._join_side(level, "lhs")
