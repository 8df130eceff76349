"""Unit tests for PostgresAdapter against a fake asyncpg pool."""

import datetime
import json

import pytest

from common.errors import BackendConnectionError, ValidationError
from dal.postgres import PostgresAdapter, catalog
from dal.postgres.adapter import row_count_from_status
from schema.change import ChangeOperation
from schema.result import QueryResult
from schema.security import PolicyOperation, SecurityPolicy


class _FakeType:
    def __init__(self, name):
        self.name = name


class _FakeStatement:
    def __init__(self, rows, status, parameters=()):
        self._rows = rows
        self._status = status
        self._parameters = [_FakeType(name) for name in parameters]
        self.bound = None

    def get_attributes(self):
        return []

    def get_parameters(self):
        return self._parameters

    async def fetch(self, *params):
        self.bound = params
        return self._rows

    def get_statusmsg(self):
        return self._status


class _FakeConn:
    """Records statements; answers prepared statements from ``responses``."""

    def __init__(self, responses=None, fail_on=None):
        self.responses = responses or {}
        self.fail_on = fail_on
        self.executed = []
        self.prepared = []
        self.statement = None

    async def execute(self, sql, *params):
        self.executed.append(sql)
        return sql

    async def prepare(self, sql):
        self.prepared.append(sql)
        if self.fail_on and self.fail_on in sql:
            raise OSError("connection reset by peer")
        self.statement = _FakeStatement(*self.responses.get(sql, ([], "SELECT 0")))
        return self.statement


class _FakePool:
    def __init__(self, conn):
        self.conn = conn
        self.acquired = 0
        self.released = 0

    async def acquire(self):
        self.acquired += 1
        return self.conn

    async def release(self, conn):
        self.released += 1

    async def close(self):
        pass


def _adapter(conn):
    adapter = PostgresAdapter()
    adapter._pool = _FakePool(conn)
    return adapter


@pytest.mark.parametrize(
    "status, fallback, expected",
    [
        ("UPDATE 3", 0, 3),
        ("INSERT 0 1", 0, 1),
        ("DELETE 0", 5, 0),
        ("CREATE TABLE", 0, 0),
        (None, 2, 2),
    ],
)
def test_row_count_from_status(status, fallback, expected):
    """Read the affected-row count from the trailing number of the command tag."""
    assert row_count_from_status(status, fallback) == expected


@pytest.mark.asyncio
async def test_query_returns_rows_and_releases_connection():
    """Fold rows, count and command into a QueryResult and release the connection."""
    conn = _FakeConn({"SELECT id FROM t": ([{"id": 1}, {"id": 2}], "SELECT 2")})
    adapter = _adapter(conn)

    result = await adapter.query("SELECT id FROM t")

    assert result.rows == [{"id": 1}, {"id": 2}]
    assert result.row_count == 2
    assert result.command == "SELECT"
    assert adapter._pool.released == 1


@pytest.mark.asyncio
async def test_mutation_count_comes_from_status():
    """Report affected rows for statements that return nothing."""
    conn = _FakeConn({"UPDATE t SET a = $1": ([], "UPDATE 4")})
    result = await _adapter(conn).query("UPDATE t SET a = $1", [1])
    assert result.rows == []
    assert result.row_count == 4


@pytest.mark.asyncio
async def test_query_without_pool_is_a_connection_error():
    """Refuse to query before connect()."""
    with pytest.raises(BackendConnectionError):
        await PostgresAdapter().query("SELECT 1")


@pytest.mark.asyncio
async def test_driver_failure_is_translated_and_connection_released():
    """Translate driver errors into the taxonomy and still release the connection."""
    adapter = _adapter(_FakeConn(fail_on="SELECT"))
    with pytest.raises(BackendConnectionError) as exc_info:
        await adapter.query("SELECT 1")
    assert isinstance(exc_info.value.__cause__, OSError)
    assert adapter._pool.released == 1



@pytest.mark.asyncio
async def test_json_scalars_are_coerced_to_declared_parameter_types():
    """Bind ISO strings as dates and times, and dicts as JSON text."""
    sql = "INSERT INTO t (d, ts, doc, label) VALUES ($1, $2, $3, $4)"
    conn = _FakeConn({sql: ([], "INSERT 0 1", ("date", "timestamptz", "jsonb", "varchar"))})

    await _adapter(conn).query(sql, ["2024-01-02", "2024-01-02T03:04:05Z", {"a": 1}, 42])

    d, ts, doc, label = conn.statement.bound
    assert d == datetime.date(2024, 1, 2)
    assert ts == datetime.datetime(2024, 1, 2, 3, 4, 5, tzinfo=datetime.timezone.utc)
    assert json.loads(doc) == {"a": 1}
    assert label == "42"


@pytest.mark.asyncio
async def test_malformed_date_parameter_is_a_validation_error():
    """Reject a string that is not an ISO date before it reaches the driver."""
    sql = "SELECT * FROM t WHERE d >= $1"
    conn = _FakeConn({sql: ([], "SELECT 0", ("date",))})
    adapter = _adapter(conn)

    with pytest.raises(ValidationError) as exc_info:
        await adapter.query(sql, ["yesterday"])

    assert exc_info.value.details == {"parameter": 1, "type": "date"}
    assert conn.statement.bound is None
    assert adapter._pool.released == 1


@pytest.mark.asyncio
async def test_foreign_key_rows_are_scoped_to_the_owning_table():
    """Look up foreign keys by table oid, not by a per-table constraint name."""
    conn = _FakeConn()
    await _adapter(conn).fetch_foreign_key_rows("orders", "public")

    sql = conn.prepared[-1]
    assert sql == catalog.FOREIGN_KEYS
    assert "pg_constraint" in sql
    assert "c.oid = con.conrelid" in sql
    assert "c.relname = $2" in sql
    assert "information_schema.key_column_usage" not in sql

@pytest.mark.asyncio
async def test_transaction_commits_on_success():
    """Wrap the callback in BEGIN/COMMIT on one connection."""
    conn = _FakeConn()
    adapter = _adapter(conn)

    async def work(tx):
        await tx.query("INSERT INTO t VALUES ($1)", [1])
        await tx.query("INSERT INTO t VALUES ($1)", [2])
        return "done"

    assert await adapter.transaction(work) == "done"
    assert conn.executed == ["BEGIN", "COMMIT"]
    assert len(conn.prepared) == 2
    assert adapter._pool.acquired == adapter._pool.released == 1


@pytest.mark.asyncio
async def test_transaction_rolls_back_and_reraises():
    """Roll back and re-raise when the callback fails."""
    conn = _FakeConn()
    adapter = _adapter(conn)

    async def work(tx):
        await tx.query("DELETE FROM t")
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        await adapter.transaction(work)
    assert conn.executed == ["BEGIN", "ROLLBACK"]
    assert adapter._pool.released == 1


@pytest.mark.asyncio
async def test_explicit_commit_is_not_repeated():
    """Skip the implicit COMMIT when the callback already committed."""
    conn = _FakeConn()

    async def work(tx):
        await tx.commit()
        await tx.commit()

    await _adapter(conn).transaction(work)
    assert conn.executed == ["BEGIN", "COMMIT"]


@pytest.mark.asyncio
async def test_apply_security_policy_skips_existing(monkeypatch):
    """Leave an existing same-named policy alone."""
    adapter = PostgresAdapter()
    issued = []

    async def fake_query(sql, params=None):
        issued.append(sql)
        return QueryResult(rows=[{"exists": 1}], row_count=1)

    monkeypatch.setattr(adapter, "query", fake_query)
    await adapter.apply_security_policy(SecurityPolicy(name="p", table="docs"))
    assert len(issued) == 1
    assert "CREATE POLICY" not in issued[0]


@pytest.mark.asyncio
async def test_apply_security_policy_renders_create_policy(monkeypatch):
    """Relocate the predicates into CREATE POLICY."""
    adapter = PostgresAdapter()
    issued = []

    async def fake_query(sql, params=None):
        issued.append(sql)
        return QueryResult()

    monkeypatch.setattr(adapter, "query", fake_query)
    await adapter.apply_security_policy(
        SecurityPolicy(
            name="tenant_read",
            table="docs",
            operation=PolicyOperation.SELECT,
            using="tenant_id = current_setting('app.tenant')::int",
            role="app_user",
        )
    )
    assert issued[-1] == (
        'CREATE POLICY "tenant_read" ON "public"."docs" FOR SELECT TO app_user '
        "USING (tenant_id = current_setting('app.tenant')::int)"
    )


@pytest.mark.asyncio
async def test_fetch_changes_maps_log_rows(monkeypatch):
    """Decode logged JSON images and use the log id as the position."""
    adapter = PostgresAdapter()
    seen = {}

    async def fake_query(sql, params=None):
        seen["sql"] = sql
        seen["params"] = list(params)
        return QueryResult(
            rows=[
                {
                    "id": 11,
                    "operation": "UPDATE",
                    "old_data": json.dumps({"id": 1, "name": "a"}),
                    "new_data": json.dumps({"id": 1, "name": "b"}),
                    "changed_at": None,
                }
            ]
        )

    monkeypatch.setattr(adapter, "query", fake_query)
    (event,) = await adapter.fetch_changes("users", "public", cursor=10)

    assert seen["params"] == ["users", 10]
    assert '"public"."public_changes"' in seen["sql"]
    assert event.operation == ChangeOperation.UPDATE
    assert event.old_row == {"id": 1, "name": "a"}
    assert event.new_row == {"id": 1, "name": "b"}
    assert event.position == 11
