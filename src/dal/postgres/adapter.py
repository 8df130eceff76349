"""PostgreSQL adapter: an asyncpg pool with traced statements, catalog and change capture."""

import json
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

import asyncpg

from common.errors import BackendConnectionError, BackendQueryError
from dal.adapter import DatabaseAdapter, DatabaseStats, TransactionContext
from dal.dialect import POSTGRESQL
from dal.error_classification import translate_driver_error
from dal.introspection import CatalogRow, build_functions, build_views
from dal.postgres import catalog
from dal.tracing import TRANSACTION_SPAN, TracedAsyncpgConnection, trace_query_operation
from schema.catalog import FunctionInfo, ViewInfo
from schema.change import ChangeEvent, ChangeOperation
from schema.connection import ConnectionConfig
from schema.result import QueryResult
from schema.security import PolicyOperation, SecurityPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

_STATUS_COUNT = re.compile(r"(\d+)\s*$")

CHANGE_FUNCTION_NAME = "record_row_change"


def row_count_from_status(status: Optional[str], fallback: int) -> int:
    """Extract the affected-row count from a command tag such as ``UPDATE 3``."""
    if status:
        match = _STATUS_COUNT.search(status)
        if match:
            return int(match.group(1))
    return fallback


async def run_statement(
    conn: TracedAsyncpgConnection, sql: str, params: Optional[Sequence[Any]] = None
) -> QueryResult:
    """Execute one statement and fold rows, fields and status into a QueryResult."""
    try:
        rows, fields, status = await conn.fetch_with_status(sql, *(params or ()))
    except DRIVER_ERRORS as exc:
        raise translate_driver_error("postgresql", exc, sql) from exc
    command = status.split()[0] if status else None
    return QueryResult(
        rows=rows,
        row_count=row_count_from_status(status, len(rows)),
        fields=fields,
        command=command,
    )


class PostgresTransaction(TransactionContext):
    """Transaction bound to one acquired asyncpg connection."""

    def __init__(self, conn: TracedAsyncpgConnection) -> None:
        """Wrap a connection on which BEGIN has already been issued."""
        self._conn = conn
        self._finished = False

    @property
    def finished(self) -> bool:
        """True once the transaction has been committed or rolled back."""
        return self._finished

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """Execute a statement inside the transaction."""
        return await run_statement(self._conn, sql, params)

    async def commit(self) -> None:
        """Commit; later calls are no-ops."""
        if self._finished:
            return
        self._finished = True
        await self._control("COMMIT")

    async def rollback(self) -> None:
        """Roll back; later calls are no-ops."""
        if self._finished:
            return
        self._finished = True
        await self._control("ROLLBACK")

    async def _control(self, statement: str) -> None:
        try:
            await self._conn.execute(statement)
        except DRIVER_ERRORS as exc:
            raise translate_driver_error("postgresql", exc, statement) from exc


class PostgresAdapter(DatabaseAdapter):
    """PostgreSQL adapter backed by an asyncpg pool."""

    provider = "postgresql"
    dialect = POSTGRESQL
    default_schema = "public"

    type_to_standard = {
        "character varying": "VARCHAR",
        "integer": "INTEGER",
        "bigint": "BIGINT",
        "smallint": "SMALLINT",
        "boolean": "BOOLEAN",
        "timestamp without time zone": "TIMESTAMP",
        "timestamp with time zone": "TIMESTAMPTZ",
        "jsonb": "JSON",
        "uuid": "UUID",
        "text": "TEXT",
        "date": "DATE",
        "time": "TIME",
        "decimal": "DECIMAL",
        "numeric": "NUMERIC",
        "real": "REAL",
        "double precision": "FLOAT",
    }
    standard_to_type = {
        "VARCHAR": "character varying",
        "INTEGER": "integer",
        "BIGINT": "bigint",
        "SMALLINT": "smallint",
        "BOOLEAN": "boolean",
        "TIMESTAMP": "timestamp without time zone",
        "TIMESTAMPTZ": "timestamp with time zone",
        "JSON": "jsonb",
        "JSONB": "jsonb",
        "UUID": "uuid",
        "TEXT": "text",
        "DATE": "date",
        "TIME": "time",
        "DECIMAL": "decimal",
        "NUMERIC": "numeric",
        "REAL": "real",
        "FLOAT": "double precision",
    }

    def __init__(self) -> None:
        """Initialize an adapter with no pool."""
        super().__init__()
        self._pool: Optional[asyncpg.Pool] = None

    async def connect(self, config: ConnectionConfig) -> None:
        """Create the pool and check it with ``SELECT 1``."""
        if self._pool is not None:
            return
        self.config = config
        try:
            pool = await asyncpg.create_pool(
                host=config.host,
                port=config.port or 5432,
                user=config.user,
                password=config.password,
                database=config.database,
                ssl="require" if config.ssl else None,
                min_size=1,
                max_size=config.max_connections,
                timeout=config.connect_timeout,
                command_timeout=config.options.get("command_timeout", 60),
            )
        except Exception as exc:
            raise BackendConnectionError(
                f"Failed to connect to PostgreSQL at {config.host}: {exc}"
            ) from exc

        try:
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
        except Exception as exc:
            await pool.close()
            raise BackendConnectionError(
                f"Failed to connect to PostgreSQL at {config.host}: {exc}"
            ) from exc

        self._pool = pool
        logger.info(
            "Connected to PostgreSQL %s/%s (max_connections=%d)",
            config.host,
            config.database,
            config.max_connections,
        )

    async def disconnect(self) -> None:
        """Close the pool. Safe to call when not connected."""
        pool, self._pool = self._pool, None
        if pool is not None:
            await pool.close()
            logger.info("Disconnected from PostgreSQL")

    def is_connected(self) -> bool:
        """Return True while the pool is open."""
        return self._pool is not None

    @asynccontextmanager
    async def _acquire(self):
        if self._pool is None:
            raise BackendConnectionError("PostgreSQL adapter is not connected")
        try:
            conn = await self._pool.acquire()
        except DRIVER_ERRORS as exc:
            raise translate_driver_error(self.provider, exc) from exc
        try:
            yield TracedAsyncpgConnection(conn, provider=self.provider)
        finally:
            await self._pool.release(conn)

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """Execute parameterized SQL on a pooled connection."""
        async with self._acquire() as conn:
            return await run_statement(conn, sql, params)

    async def transaction(self, fn: Callable[[TransactionContext], Awaitable[T]]) -> T:
        """Run ``fn`` between BEGIN and COMMIT on one connection."""
        return await trace_query_operation(
            TRANSACTION_SPAN,
            provider=self.provider,
            execution_model=self.execution_model,
            sql=None,
            operation=self._run_transaction(fn),
        )

    async def _run_transaction(self, fn: Callable[[TransactionContext], Awaitable[T]]) -> T:
        async with self._acquire() as conn:
            try:
                await conn.execute("BEGIN")
            except DRIVER_ERRORS as exc:
                raise translate_driver_error(self.provider, exc, "BEGIN") from exc
            ctx = PostgresTransaction(conn)
            try:
                result = await fn(ctx)
            except BaseException:
                if not ctx.finished:
                    try:
                        await ctx.rollback()
                    except BackendQueryError as rollback_exc:
                        logger.warning("Rollback failed: %s", rollback_exc.message)
                raise
            await ctx.commit()
            return result

    async def _rows(self, sql: str, *params: Any) -> List[CatalogRow]:
        return (await self.query(sql, params)).rows

    async def list_table_names(self, schema: str) -> List[str]:
        """Return base table names in ``schema``."""
        return [row["table_name"] for row in await self._rows(catalog.LIST_TABLES, schema)]

    async def fetch_column_rows(self, table: str, schema: str) -> List[CatalogRow]:
        """Return information_schema column rows."""
        return await self._rows(catalog.COLUMNS, schema, table)

    async def fetch_primary_key_rows(self, table: str, schema: str) -> List[CatalogRow]:
        """Return primary-key columns in key order."""
        return await self._rows(catalog.PRIMARY_KEYS, schema, table)

    async def fetch_foreign_key_rows(self, table: str, schema: str) -> List[CatalogRow]:
        """Return foreign-key column pairs."""
        return await self._rows(catalog.FOREIGN_KEYS, schema, table)

    async def fetch_index_rows(self, table: str, schema: str) -> List[CatalogRow]:
        """Return indexed columns."""
        return await self._rows(catalog.INDEXES, schema, table)

    async def get_functions(self, schema: Optional[str] = None) -> List[FunctionInfo]:
        """Return functions and procedures with their parameters."""
        resolved = self.schema_or_default(schema)
        functions = await self._rows(catalog.FUNCTIONS, resolved)
        parameters = await self._rows(catalog.FUNCTION_PARAMETERS, resolved)
        return build_functions(functions, parameters)

    async def get_views(self, schema: Optional[str] = None) -> List[ViewInfo]:
        """Return views with their definitions and columns."""
        resolved = self.schema_or_default(schema)
        views = await self._rows(catalog.VIEWS, resolved)
        columns = await self._rows(catalog.VIEW_COLUMNS, resolved)
        return build_views(views, columns)

    async def apply_security_policy(self, policy: SecurityPolicy) -> None:
        """Create the policy unless one with the same name exists on the table."""
        schema = self.schema_or_default(policy.schema_name)
        existing = await self.query_one(catalog.POLICY_EXISTS, [schema, policy.table, policy.name])
        if existing is not None:
            logger.info("Policy %s already exists on %s.%s", policy.name, schema, policy.table)
            return

        name = self.dialect.quote_identifier(policy.name)
        target = self.dialect.quote_qualified(policy.table, schema)
        parts = [
            f"CREATE POLICY {name} ON {target}",
            f"FOR {policy.operation.value}",
        ]
        if policy.role:
            parts.append(f"TO {policy.role}")
        if policy.using:
            parts.append(f"USING ({policy.using})")
        if policy.with_check:
            parts.append(f"WITH CHECK ({policy.with_check})")
        await self.query(" ".join(parts))
        logger.info("Applied policy %s on %s.%s", policy.name, schema, policy.table)

    async def remove_security_policy(
        self, name: str, table: str, schema: Optional[str] = None
    ) -> None:
        """Drop the policy if it exists."""
        target = self.dialect.quote_qualified(table, self.schema_or_default(schema))
        await self.query(f"DROP POLICY IF EXISTS {self.dialect.quote_identifier(name)} ON {target}")

    async def get_security_policies(
        self, table: Optional[str] = None, schema: Optional[str] = None
    ) -> List[SecurityPolicy]:
        """List policies from pg_policy."""
        rows = await self._rows(catalog.POLICIES, self.schema_or_default(schema), table)
        return [
            SecurityPolicy(
                name=row["name"],
                table=row["table_name"],
                schema=row["schema_name"],
                operation=PolicyOperation(row["operation"]),
                using=row.get("using_expression"),
                with_check=row.get("check_expression"),
                role=row.get("role_name"),
            )
            for row in rows
        ]

    async def enable_security(self, table: str, schema: Optional[str] = None) -> None:
        """Enable row level security on the table."""
        target = self.dialect.quote_qualified(table, self.schema_or_default(schema))
        await self.query(f"ALTER TABLE {target} ENABLE ROW LEVEL SECURITY")

    async def disable_security(self, table: str, schema: Optional[str] = None) -> None:
        """Disable row level security on the table."""
        target = self.dialect.quote_qualified(table, self.schema_or_default(schema))
        await self.query(f"ALTER TABLE {target} DISABLE ROW LEVEL SECURITY")

    def _change_log_table(self, schema: str) -> str:
        return self.dialect.quote_qualified(f"{schema}_changes", schema)

    def _change_trigger_name(self, table: str) -> str:
        return self.dialect.quote_identifier(f"{table}_change_capture")

    async def enable_change_tracking(self, table: str, schema: Optional[str] = None) -> None:
        """Install the change log table, trigger function and row trigger."""
        resolved = self.schema_or_default(schema)
        log_table = self._change_log_table(resolved)
        function = self.dialect.quote_qualified(CHANGE_FUNCTION_NAME, resolved)
        target = self.dialect.quote_qualified(table, resolved)
        trigger = self._change_trigger_name(table)
        await self._run_statements(
            [
                catalog.CHANGE_LOG_TABLE.format(log_table=log_table),
                catalog.CHANGE_TRIGGER_FUNCTION.format(function=function, log_table=log_table),
                f"DROP TRIGGER IF EXISTS {trigger} ON {target}",
                catalog.CHANGE_TRIGGER.format(trigger=trigger, table=target, function=function),
            ]
        )
        logger.info("Enabled change tracking on %s.%s", resolved, table)

    async def disable_change_tracking(self, table: str, schema: Optional[str] = None) -> None:
        """Drop the row trigger; the change log table is kept."""
        resolved = self.schema_or_default(schema)
        target = self.dialect.quote_qualified(table, resolved)
        await self.query(f"DROP TRIGGER IF EXISTS {self._change_trigger_name(table)} ON {target}")
        logger.info("Disabled change tracking on %s.%s", resolved, table)

    async def fetch_changes(
        self, table: str, schema: str, cursor: Any = None
    ) -> List[ChangeEvent]:
        """Return up to 100 logged changes with ids greater than ``cursor``."""
        sql = catalog.FETCH_CHANGES.format(log_table=self._change_log_table(schema))
        rows = await self._rows(sql, table, int(cursor or 0))
        return [
            ChangeEvent(
                table=table,
                schema=schema,
                operation=ChangeOperation(row["operation"]),
                new_row=_decode_json(row.get("new_data")),
                old_row=_decode_json(row.get("old_data")),
                timestamp=row.get("changed_at"),
                position=row["id"],
            )
            for row in rows
        ]

    async def get_stats(self) -> DatabaseStats:
        """Return activity and size counters."""
        row = await self.query_one(catalog.STATS, [self.schema_or_default(None)]) or {}
        return DatabaseStats(
            connections=int(row.get("connections") or 0),
            active_queries=int(row.get("active_queries") or 0),
            database_size_bytes=int(row.get("database_size") or 0),
            table_count=int(row.get("table_count") or 0),
        )


def _decode_json(value: Any) -> Optional[dict]:
    """asyncpg returns JSONB as text unless a codec is registered."""
    if value is None:
        return None
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return dict(value)
