"""Tests for the SQL dialect system and AST builder."""

from __future__ import annotations

import pytest

from modelweave.ast.builder import QueryBuilder, and_, col, combine, eq
from modelweave.ast.nodes import (
    Between,
    BinaryOp,
    InList,
    IsNull,
    JoinType,
    Literal,
    TableName,
)
from modelweave.compiler.sqlcheck import validate_sql
from modelweave.dialect import DialectRegistry
from modelweave.dialect.clickhouse import ClickHouseDialect
from modelweave.dialect.mysql import MySQLDialect
from modelweave.dialect.postgres import PostgresDialect
from modelweave.dialect.registry import UnsupportedDialectError
from modelweave.dialect.snowflake import SnowflakeDialect
from modelweave.dialect.sqlite import SQLiteDialect


class TestDialectRegistry:
    def test_available_dialects(self) -> None:
        assert DialectRegistry.available() == ["clickhouse", "mysql", "postgres", "snowflake", "sqlite"]

    def test_get_is_case_insensitive(self) -> None:
        assert isinstance(DialectRegistry.get("Postgres"), PostgresDialect)

    def test_aliases(self) -> None:
        assert isinstance(DialectRegistry.get("postgresql"), PostgresDialect)
        assert isinstance(DialectRegistry.get("mariadb"), MySQLDialect)
        assert DialectRegistry.is_registered("postgresql")
        assert not DialectRegistry.is_registered("oracle")

    def test_unsupported_dialect_error(self) -> None:
        with pytest.raises(UnsupportedDialectError) as exc_info:
            DialectRegistry.get("oracle")
        assert "oracle" in str(exc_info.value)
        assert "postgres" in str(exc_info.value)


class TestQuoting:
    def test_postgres(self) -> None:
        d = PostgresDialect()
        assert d.quote_identifier("name") == '"name"'
        assert d.quote_identifier('has"quote') == '"has""quote"'

    def test_mysql_backticks(self) -> None:
        assert MySQLDialect().quote_identifier("a`b") == "`a``b`"

    def test_clickhouse_backticks(self) -> None:
        assert ClickHouseDialect().quote_identifier("orders") == "`orders`"

    def test_schema_qualified_table(self) -> None:
        assert PostgresDialect().format_table_ref(TableName("orders", "public")) == '"public"."orders"'

    def test_sqlite_main_schema_implicit(self) -> None:
        assert SQLiteDialect().format_table_ref(TableName("orders", "main")) == '"orders"'


class TestCompileSelect:
    def _select(self) -> QueryBuilder:
        return (
            QueryBuilder()
            .select_aliased(col("name", "c"), "c_name")
            .from_(TableName("customers"), alias="c")
        )

    def test_empty_select_list_is_star(self) -> None:
        sql = PostgresDialect().compile(QueryBuilder().from_(TableName("orders")).build())
        assert sql == 'SELECT *\nFROM "orders"'

    def test_join_and_where(self) -> None:
        ast = (
            self._select()
            .join(TableName("orders"), on=eq(col("id", "c"), col("customer_id", "o")), join_type=JoinType.LEFT, alias="o")
            .where(BinaryOp(left=col("amount", "o"), op=">", right=Literal(10)))
            .build()
        )
        sql = PostgresDialect().compile(ast)
        assert 'LEFT JOIN "orders" AS "o" ON ("c"."id" = "o"."customer_id")' in sql
        assert 'WHERE ("o"."amount" > 10)' in sql

    def test_full_join_keyword(self) -> None:
        ast = self._select().join(TableName("o"), on=Literal(True), join_type=JoinType.FULL).build()
        assert "FULL OUTER JOIN" in PostgresDialect().compile(ast)

    def test_cross_join(self) -> None:
        ast = self._select().cross_join(TableName("regions"), alias="r").build()
        assert 'CROSS JOIN "regions" AS "r"' in PostgresDialect().compile(ast)

    def test_string_literal_escaped(self) -> None:
        ast = self._select().where(eq(col("name", "c"), Literal("O'Brien"))).build()
        assert "'O''Brien'" in PostgresDialect().compile(ast)

    def test_predicates(self) -> None:
        d = PostgresDialect()
        assert d.compile_expr(IsNull(expr=col("x"))) == '("x" IS NULL)'
        assert d.compile_expr(IsNull(expr=col("x"), negated=True)) == '("x" IS NOT NULL)'
        assert d.compile_expr(InList(expr=col("x"), values=[Literal(1), Literal(2)])) == '("x" IN (1, 2))'
        assert d.compile_expr(Between(expr=col("x"), low=Literal(1), high=Literal(5))) == '("x" BETWEEN 1 AND 5)'
        assert d.compile_expr(Literal.null()) == "NULL"

    def test_like_is_case_insensitive_where_needed(self) -> None:
        like = BinaryOp(left=col("name"), op="LIKE", right=Literal("a%"))
        assert "ILIKE" in PostgresDialect().compile_expr(like)
        assert "ILIKE" in SnowflakeDialect().compile_expr(like)
        assert "ILIKE" in ClickHouseDialect().compile_expr(like)
        assert "ILIKE" not in SQLiteDialect().compile_expr(like)
        assert "ILIKE" not in MySQLDialect().compile_expr(like)

    def test_nulls_ordering(self) -> None:
        ast = self._select().order_by(col("name", "c"), desc=True, nulls_last=True).build()
        assert 'ORDER BY "c"."name" DESC NULLS LAST' in PostgresDialect().compile(ast)
        assert "NULLS" not in MySQLDialect().compile(ast)

    def test_offset_without_limit(self) -> None:
        ast = self._select().offset(5).build()
        assert "LIMIT -1\nOFFSET 5" in SQLiteDialect().compile(ast)
        assert "LIMIT 18446744073709551615\nOFFSET 5" in MySQLDialect().compile(ast)
        pg = PostgresDialect().compile(ast)
        assert "LIMIT" not in pg
        assert pg.endswith("OFFSET 5")

    def test_limit_and_offset(self) -> None:
        sql = PostgresDialect().compile(self._select().limit(10).offset(20).build())
        assert sql.endswith("LIMIT 10\nOFFSET 20")


class TestBuilderHelpers:
    def test_and_of_nothing_is_true(self) -> None:
        assert and_() == Literal(value=True)

    def test_combine(self) -> None:
        a = eq(col("x"), Literal(1))
        b = eq(col("y"), Literal(2))
        assert combine(None, "AND", a) is a
        assert combine(a, "OR", b) == BinaryOp(left=a, op="OR", right=b)

    def test_where_twice_ands(self) -> None:
        a = eq(col("x"), Literal(1))
        b = eq(col("y"), Literal(2))
        ast = QueryBuilder().from_(TableName("t")).where(a).where(b).build()
        assert ast.where == BinaryOp(left=a, op="AND", right=b)


class TestSqlCheck:
    def test_valid_sql(self) -> None:
        assert validate_sql('SELECT "a" FROM "t"', "postgres") == []

    def test_unknown_dialect_is_a_warning(self) -> None:
        errors = validate_sql("SELECT 1", "oracle")
        assert errors and "oracle" in errors[0]

    def test_garbage_reported(self) -> None:
        assert validate_sql("SELECT (1 FROM", "postgres")
