"""Unit tests for RestService route semantics against a fake adapter."""

import pytest

from common.errors import (
    BackendQueryError,
    MissingPrimaryKeyError,
    NotFoundError,
    ValidationError,
)
from rest.service import RestService
from schema.result import QueryResult


def _rows(*rows):
    return QueryResult(rows=list(rows), row_count=len(rows))


@pytest.mark.asyncio
async def test_list_rows_returns_page_and_total(fake_adapter):
    """Run the select and count and shape the list envelope."""

    def respond(sql, params):
        if "COUNT(*)" in sql:
            return _rows({"total": 42})
        return _rows({"id": 1, "name": "Alice"}, {"id": 2, "name": "Alicia"})

    fake_adapter.responder = respond
    service = RestService(fake_adapter)

    body = await service.list_rows("users", {"name": "like.Ali%", "limit": "2"})

    assert body == {
        "data": [{"id": 1, "name": "Alice"}, {"id": 2, "name": "Alicia"}],
        "count": 2,
        "total": 42,
    }
    statements = [sql for sql, _ in fake_adapter.calls]
    assert any(sql.startswith('SELECT * FROM "public"."users"') for sql in statements)
    assert all(params == ["Ali%"] for _, params in fake_adapter.calls)


@pytest.mark.asyncio
async def test_failed_select_skips_the_count(fake_adapter):
    """Stop at a failing page query without issuing the count."""

    def respond(sql, params):
        raise BackendQueryError('column "nickname" does not exist', sql=sql)

    fake_adapter.responder = respond
    service = RestService(fake_adapter)

    with pytest.raises(BackendQueryError):
        await service.list_rows("users", {"nickname": "eq.al"})

    assert len(fake_adapter.calls) == 1
    assert "COUNT(*)" not in fake_adapter.calls[0][0]


@pytest.mark.asyncio
async def test_service_uses_configured_schema(tsql_adapter):
    """Qualify tables with the schema given at construction."""
    service = RestService(tsql_adapter, schema="sales")
    await service.delete("users", {"id": "eq.3"})
    assert tsql_adapter.calls == [("DELETE FROM [sales].[users] WHERE [id] = @param0", [3])]


@pytest.mark.asyncio
async def test_unfiltered_batch_delete_issues_no_statements(fake_adapter):
    """Reject a batch delete without filters before touching the backend."""
    service = RestService(fake_adapter)
    with pytest.raises(ValidationError):
        await service.delete("users", {})
    assert fake_adapter.calls == []


@pytest.mark.asyncio
async def test_paging_keys_do_not_count_as_mutation_filters(fake_adapter):
    """Ignore limit and order when deciding whether a mutation is filtered."""
    service = RestService(fake_adapter)
    with pytest.raises(ValidationError):
        await service.update("users", {"limit": "1", "order": "id"}, {"name": "x"})
    assert fake_adapter.calls == []


@pytest.mark.asyncio
async def test_update_returns_affected_count(fake_adapter):
    """Report the backend row count for a batch update."""
    fake_adapter.responder = lambda sql, params: QueryResult(row_count=3, command="UPDATE")
    service = RestService(fake_adapter)

    body = await service.update("users", {"age": "lt.18"}, {"name": "minor"})

    assert body == {"count": 3}
    assert fake_adapter.calls == [
        ('UPDATE "public"."users" SET "name" = $1 WHERE "age" < $2', ["minor", 18])
    ]


@pytest.mark.asyncio
async def test_update_rejects_empty_body(fake_adapter):
    """Require a non-empty object for updates."""
    service = RestService(fake_adapter)
    with pytest.raises(ValidationError):
        await service.update("users", {"id": "eq.1"}, {})


@pytest.mark.asyncio
async def test_insert_single_row(fake_adapter):
    """Insert one object and return the stored row."""
    fake_adapter.responder = lambda sql, params: _rows({"id": 9, "name": params[0]})
    service = RestService(fake_adapter)

    body = await service.insert("users", {"name": "Zoe"})

    assert body == {"data": {"id": 9, "name": "Zoe"}}


@pytest.mark.asyncio
async def test_bulk_insert_runs_one_statement_per_row(fake_adapter):
    """Insert array bodies row by row in order."""
    fake_adapter.responder = lambda sql, params: _rows({"name": params[0]})
    service = RestService(fake_adapter)

    body = await service.insert("users", [{"name": "a"}, {"name": "b"}])

    assert body == {"data": [{"name": "a"}, {"name": "b"}], "count": 2}
    assert [params for _, params in fake_adapter.calls] == [["a"], ["b"]]


@pytest.mark.asyncio
async def test_insert_rejects_scalar_body(fake_adapter):
    """Reject bodies that are neither objects nor arrays of objects."""
    service = RestService(fake_adapter)
    with pytest.raises(ValidationError):
        await service.insert("users", "nope")
    with pytest.raises(ValidationError):
        await service.insert("users", [{"name": "a"}, 3])
    assert fake_adapter.calls == []


@pytest.mark.asyncio
async def test_get_row_coerces_key(fake_adapter):
    """Look rows up by the first primary-key column with a coerced id."""
    fake_adapter.responder = lambda sql, params: _rows({"id": params[0]})
    service = RestService(fake_adapter)

    body = await service.get_row("users", "5")

    assert body == {"data": {"id": 5}}
    assert fake_adapter.calls == [('SELECT * FROM "public"."users" WHERE "id" = $1', [5])]
    assert fake_adapter.introspected == []


@pytest.mark.asyncio
async def test_get_row_missing_raises_not_found(fake_adapter):
    """Raise NotFoundError when no row matches the key."""
    service = RestService(fake_adapter)
    with pytest.raises(NotFoundError):
        await service.get_row("users", "404")


@pytest.mark.asyncio
async def test_single_row_routes_need_primary_key(fake_adapter):
    """Raise MissingPrimaryKeyError for keyless or unknown tables."""
    service = RestService(fake_adapter)
    with pytest.raises(MissingPrimaryKeyError):
        await service.delete_row("audit_log", "1")
    with pytest.raises(MissingPrimaryKeyError):
        await service.replace("ghosts", "1", {"name": "x"})
    assert fake_adapter.calls == []


@pytest.mark.asyncio
async def test_replace_returns_updated_row(tsql_adapter):
    """Update by key and return the OUTPUT row."""
    tsql_adapter.responder = lambda sql, params: _rows({"id": params[1], "name": params[0]})
    service = RestService(tsql_adapter)

    body = await service.replace("users", "2", {"name": "Ann"})

    assert body == {"data": {"id": 2, "name": "Ann"}}
    assert tsql_adapter.calls[0][0] == (
        "UPDATE [dbo].[users] SET [name] = @param0 OUTPUT INSERTED.* WHERE [id] = @param1"
    )


@pytest.mark.asyncio
async def test_delete_row_missing_raises_not_found(fake_adapter):
    """Raise NotFoundError when the keyed delete removes nothing."""
    service = RestService(fake_adapter)
    with pytest.raises(NotFoundError):
        await service.delete_row("users", "1")


@pytest.mark.asyncio
async def test_health_reports_dialect(fake_adapter):
    """Report health status and the dialect name."""
    service = RestService(fake_adapter)
    assert await service.health() == (True, {"status": "ok", "dialect": "postgresql"})
    fake_adapter.healthy = False
    assert await service.health() == (False, {"status": "unhealthy", "dialect": "postgresql"})


@pytest.mark.asyncio
async def test_openapi_lists_every_table(fake_adapter):
    """Build paths for every table and key routes only where a key exists."""
    service = RestService(fake_adapter, base_path="/api")
    document = await service.openapi()
    assert set(document["paths"]) == {"/api/audit_log", "/api/users", "/api/users/{id}"}
