"""Unit tests for SQL compilation across both dialects."""

import re

import pytest

from common.errors import UnsupportedOperatorError, ValidationError
from dal.dialect import POSTGRESQL, TSQL
from rest.compiler import QueryCompiler
from rest.filters import NOT_NULL, Predicate, parse_query

SCENARIO_FILTERS = {"name": "eq.Alice", "order": "created_at.desc", "limit": "10"}


def _placeholders(sql: str) -> list:
    return re.findall(r"\$\d+|@param\d+", sql)


def test_select_postgres_scenario():
    """Compile an equality filter, descending order and limit for PostgreSQL."""
    sql, params = QueryCompiler(POSTGRESQL).compile_select("users", parse_query(SCENARIO_FILTERS))
    assert sql == (
        'SELECT * FROM "users" WHERE "name" = $1 ORDER BY "created_at" DESC LIMIT 10 OFFSET 0'
    )
    assert params == ["Alice"]


def test_select_tsql_scenario():
    """Compile the same filters with OFFSET/FETCH for T-SQL."""
    sql, params = QueryCompiler(TSQL).compile_select("users", parse_query(SCENARIO_FILTERS))
    assert sql == (
        "SELECT * FROM [users] WHERE [name] = @param0 ORDER BY [created_at] DESC "
        "OFFSET 0 ROWS FETCH NEXT 10 ROWS ONLY"
    )
    assert params == ["Alice"]


@pytest.mark.parametrize("dialect", [POSTGRESQL, TSQL])
def test_in_list_binds_every_value(dialect):
    """Expand an in list into one placeholder per element."""
    sql, params = QueryCompiler(dialect).compile_select(
        "users", parse_query({"age": "in.18,19,20"})
    )
    assert params == [18, 19, 20]
    placeholders = _placeholders(sql)
    assert len(placeholders) == 3
    assert f"IN ({', '.join(placeholders)})" in sql


def test_empty_in_list_matches_nothing():
    """Compile an empty in list to a false predicate without parameters."""
    sql, params = QueryCompiler(POSTGRESQL).compile_select("users", parse_query({"id": "in.()"}))
    assert "WHERE 1 = 0" in sql
    assert params == []


@pytest.mark.parametrize("dialect", [POSTGRESQL, TSQL])
def test_placeholder_count_matches_params(dialect):
    """Keep placeholders and parameters in lockstep across mixed operators."""
    query = parse_query(
        [
            ("name", "ilike.al%"),
            ("age", "gte.18"),
            ("age", "in.(30,40)"),
            ("deleted_at", "is.null"),
            ("nickname", "neq.bob"),
        ]
    )
    compiler = QueryCompiler(dialect)
    for sql, params in (
        compiler.compile_select("users", query),
        compiler.compile_count("users", query),
        compiler.compile_update("users", {"age": 1, "name": "x"}, query.where),
        compiler.compile_delete("users", query.where),
    ):
        assert len(_placeholders(sql)) == len(params)


def test_postgres_placeholders_are_one_based_and_sequential():
    """Number PostgreSQL placeholders from $1 in parameter order."""
    sql, params = QueryCompiler(POSTGRESQL).compile_update(
        "users", {"name": "Bob"}, [Predicate("id", "eq", 7)]
    )
    assert sql == 'UPDATE "users" SET "name" = $1 WHERE "id" = $2'
    assert params == ["Bob", 7]


def test_limit_is_capped_at_max_rows():
    """Cap requested limits at the configured ceiling."""
    compiler = QueryCompiler(POSTGRESQL, max_rows=1000)
    sql, _ = compiler.compile_select("users", parse_query({"limit": "5000"}))
    assert sql.endswith("LIMIT 1000 OFFSET 0")


def test_missing_limit_defaults_to_max_rows():
    """Apply the ceiling when no limit is requested."""
    sql, _ = QueryCompiler(TSQL, max_rows=50).compile_select("users", parse_query({}))
    assert sql == (
        "SELECT * FROM [users] ORDER BY (SELECT NULL) OFFSET 0 ROWS FETCH NEXT 50 ROWS ONLY"
    )


def test_max_rows_must_be_positive():
    """Reject a non-positive row ceiling."""
    with pytest.raises(ValueError):
        QueryCompiler(POSTGRESQL, max_rows=0)


def test_select_columns_and_schema_are_quoted():
    """Quote selected columns and the schema-qualified table."""
    sql, _ = QueryCompiler(POSTGRESQL).compile_select(
        "users", parse_query({"select": "id,name", "offset": "5"}), schema="app"
    )
    assert sql == 'SELECT "id", "name" FROM "app"."users" LIMIT 1000 OFFSET 5'


def test_identifiers_escape_embedded_quotes():
    """Double embedded closing quotes instead of terminating the identifier."""
    sql, _ = QueryCompiler(TSQL).compile_delete("t", [Predicate("a]b", "eq", 1)])
    assert sql == "DELETE FROM [t] WHERE [a]]b] = @param0"


def test_ilike_spelling_per_dialect():
    """Use native ILIKE on PostgreSQL and LOWER() comparisons on T-SQL."""
    predicate = [Predicate("name", "ilike", "al%")]
    pg_sql, _ = QueryCompiler(POSTGRESQL).compile_delete("users", predicate)
    ts_sql, _ = QueryCompiler(TSQL).compile_delete("users", predicate)
    assert pg_sql.endswith('"name" ILIKE $1')
    assert ts_sql.endswith("LOWER([name]) LIKE LOWER(@param0)")


def test_is_predicates_per_dialect():
    """Render null checks the same way and booleans per dialect."""
    predicates = [
        Predicate("deleted_at", "is", None),
        Predicate("email", "is", NOT_NULL),
        Predicate("active", "is", True),
    ]
    pg_sql, pg_params = QueryCompiler(POSTGRESQL).compile_delete("users", predicates)
    ts_sql, ts_params = QueryCompiler(TSQL).compile_delete("users", predicates)
    assert pg_sql.endswith('"deleted_at" IS NULL AND "email" IS NOT NULL AND "active" IS TRUE')
    assert ts_sql.endswith("[deleted_at] IS NULL AND [email] IS NOT NULL AND [active] = 1")
    assert pg_params == ts_params == []


def test_is_rejects_other_operands():
    """Reject is operands other than null, not.null and booleans."""
    with pytest.raises(ValidationError):
        QueryCompiler(POSTGRESQL).compile_delete("users", [Predicate("age", "is", 5)])


def test_unsupported_operator_is_rejected():
    """Raise UnsupportedOperatorError for operators outside the grammar."""
    with pytest.raises(UnsupportedOperatorError) as exc_info:
        QueryCompiler(POSTGRESQL).compile_delete("users", [Predicate("age", "between", 5)])
    assert exc_info.value.operator == "between"


@pytest.mark.parametrize("dialect", [POSTGRESQL, TSQL])
def test_batch_mutations_require_filters(dialect):
    """Refuse unfiltered batch UPDATE and DELETE."""
    compiler = QueryCompiler(dialect)
    with pytest.raises(ValidationError):
        compiler.compile_delete("users", [])
    with pytest.raises(ValidationError):
        compiler.compile_update("users", {"name": "x"}, [])


def test_insert_returns_row_per_dialect():
    """Use RETURNING on PostgreSQL and OUTPUT INSERTED on T-SQL."""
    row = {"name": "Alice", "age": 30}
    pg_sql, pg_params = QueryCompiler(POSTGRESQL).compile_insert("users", row)
    ts_sql, ts_params = QueryCompiler(TSQL).compile_insert("users", row)
    assert pg_sql == 'INSERT INTO "users" ("name", "age") VALUES ($1, $2) RETURNING *'
    assert ts_sql == (
        "INSERT INTO [users] ([name], [age]) OUTPUT INSERTED.* VALUES (@param0, @param1)"
    )
    assert pg_params == ts_params == ["Alice", 30]


def test_insert_rejects_empty_row():
    """Refuse to insert a row without columns."""
    with pytest.raises(ValidationError):
        QueryCompiler(POSTGRESQL).compile_insert("users", {})


def test_single_row_mutations_by_key():
    """Place the row-return clause where each dialect expects it."""
    ts = QueryCompiler(TSQL)
    pg = QueryCompiler(POSTGRESQL)
    assert ts.compile_update_by_key("users", {"age": 31}, "id", 1).sql == (
        "UPDATE [users] SET [age] = @param0 OUTPUT INSERTED.* WHERE [id] = @param1"
    )
    assert pg.compile_delete_by_key("users", "id", 1).sql == (
        'DELETE FROM "users" WHERE "id" = $1 RETURNING *'
    )
    assert ts.compile_delete_by_key("users", "id", 1).sql == (
        "DELETE FROM [users] OUTPUT DELETED.* WHERE [id] = @param0"
    )


def test_count_ignores_order_and_paging():
    """Count with the predicates only."""
    sql, params = QueryCompiler(TSQL).compile_count("users", parse_query(SCENARIO_FILTERS))
    assert sql == "SELECT COUNT(*) AS total FROM [users] WHERE [name] = @param0"
    assert params == ["Alice"]
