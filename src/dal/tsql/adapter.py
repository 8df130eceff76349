"""SQL Server adapter: pymssql connections from a SQLAlchemy pool, run in worker threads."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine

from common.errors import BackendConnectionError, BackendQueryError
from dal.adapter import DatabaseAdapter, DatabaseStats, TransactionContext
from dal.dialect import TSQL
from dal.error_classification import translate_driver_error
from dal.introspection import CatalogRow, build_functions, build_views
from dal.tracing import TRANSACTION_SPAN, trace_query_operation
from dal.tsql import catalog
from dal.tsql.connection import DRIVER_ERRORS, TsqlConnection
from schema.catalog import FunctionInfo, ViewInfo
from schema.change import ChangeEvent, ChangeOperation
from schema.connection import ConnectionConfig
from schema.result import QueryResult
from schema.security import PolicyOperation, SecurityPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Lowest possible (start_lsn, seqval) pair.
CDC_START_CURSOR = (b"\x00" * 10, b"\x00" * 10)

_CDC_OPERATIONS = {
    1: ChangeOperation.DELETE,
    2: ChangeOperation.INSERT,
    4: ChangeOperation.UPDATE,
}

_PREDICATE_FUNCTION = """
    CREATE FUNCTION {function}()
    RETURNS TABLE
    WITH SCHEMABINDING
    AS
    RETURN SELECT 1 AS result WHERE {predicate}
"""


class TsqlTransaction(TransactionContext):
    """Transaction bound to one checked-out pymssql connection."""

    def __init__(self, conn: TsqlConnection) -> None:
        """Wrap a connection on which BEGIN TRANSACTION has already run."""
        self._conn = conn
        self._finished = False

    @property
    def finished(self) -> bool:
        """True once the transaction has been committed or rolled back."""
        return self._finished

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """Execute a statement inside the transaction."""
        return await self._conn.run(sql, params)

    async def commit(self) -> None:
        """Commit; later calls are no-ops."""
        if self._finished:
            return
        self._finished = True
        await self._conn.run("COMMIT TRANSACTION")

    async def rollback(self) -> None:
        """Roll back; later calls are no-ops."""
        if self._finished:
            return
        self._finished = True
        await self._conn.run("IF @@TRANCOUNT > 0 ROLLBACK TRANSACTION")


class TsqlAdapter(DatabaseAdapter):
    """SQL Server / Azure SQL adapter over a SQLAlchemy-pooled pymssql driver."""

    provider = "tsql"
    dialect = TSQL
    default_schema = "dbo"
    execution_model = "sync"

    type_to_standard = {
        "nvarchar": "VARCHAR",
        "varchar": "VARCHAR",
        "int": "INTEGER",
        "bigint": "BIGINT",
        "smallint": "SMALLINT",
        "tinyint": "TINYINT",
        "bit": "BOOLEAN",
        "decimal": "DECIMAL",
        "numeric": "NUMERIC",
        "float": "FLOAT",
        "real": "REAL",
        "date": "DATE",
        "time": "TIME",
        "datetime": "TIMESTAMP",
        "datetime2": "TIMESTAMP",
        "datetimeoffset": "TIMESTAMPTZ",
        "uniqueidentifier": "UUID",
        "binary": "BINARY",
        "varbinary": "VARBINARY",
        "text": "TEXT",
        "ntext": "TEXT",
    }
    standard_to_type = {
        "VARCHAR": "NVARCHAR",
        "TEXT": "NVARCHAR(MAX)",
        "INTEGER": "INT",
        "BIGINT": "BIGINT",
        "SMALLINT": "SMALLINT",
        "TINYINT": "TINYINT",
        "BOOLEAN": "BIT",
        "DECIMAL": "DECIMAL",
        "NUMERIC": "NUMERIC",
        "FLOAT": "FLOAT",
        "REAL": "REAL",
        "DATE": "DATE",
        "TIME": "TIME",
        "TIMESTAMP": "DATETIME2",
        "TIMESTAMPTZ": "DATETIMEOFFSET",
        "UUID": "UNIQUEIDENTIFIER",
        "BINARY": "BINARY",
        "VARBINARY": "VARBINARY",
        "JSON": "NVARCHAR(MAX)",
    }

    def __init__(self) -> None:
        """Initialize an adapter with no engine."""
        super().__init__()
        self._engine: Optional[Engine] = None

    @staticmethod
    def build_engine(config: ConnectionConfig) -> Engine:
        """Create the pooled engine; no connection is opened yet."""
        connect_args = {
            "login_timeout": int(config.connect_timeout),
            "timeout": int(config.options.get("command_timeout", 60)),
            "autocommit": True,
        }
        if config.ssl:
            connect_args["encryption"] = "require"
        connect_args.update(config.options.get("connect_args") or {})
        url = URL.create(
            "mssql+pymssql",
            username=config.user,
            password=config.password,
            host=config.host,
            port=config.port or 1433,
            database=config.database,
        )
        return create_engine(
            url,
            pool_size=config.max_connections,
            max_overflow=0,
            pool_pre_ping=True,
            connect_args=connect_args,
        )

    async def connect(self, config: ConnectionConfig) -> None:
        """Create the engine and check it with ``SELECT 1``."""
        if self._engine is not None:
            return
        self.config = config
        engine = self.build_engine(config)

        def _ping() -> None:
            conn = engine.raw_connection()
            try:
                cursor = conn.cursor()
                cursor.execute("SELECT 1")
                cursor.fetchall()
                cursor.close()
            finally:
                conn.close()

        try:
            await asyncio.to_thread(_ping)
        except Exception as exc:
            await asyncio.to_thread(engine.dispose)
            raise BackendConnectionError(
                f"Failed to connect to SQL Server at {config.host}: {exc}"
            ) from exc

        self._engine = engine
        logger.info(
            "Connected to SQL Server %s/%s (max_connections=%d)",
            config.host,
            config.database,
            config.max_connections,
        )

    async def disconnect(self) -> None:
        """Dispose the engine. Safe to call when not connected."""
        engine, self._engine = self._engine, None
        if engine is not None:
            await asyncio.to_thread(engine.dispose)
            logger.info("Disconnected from SQL Server")

    def is_connected(self) -> bool:
        """Return True while the engine is open."""
        return self._engine is not None

    @asynccontextmanager
    async def _acquire(self):
        if self._engine is None:
            raise BackendConnectionError("SQL Server adapter is not connected")
        try:
            raw = await asyncio.to_thread(self._engine.raw_connection)
        except DRIVER_ERRORS as exc:
            raise translate_driver_error(self.provider, exc) from exc
        conn = TsqlConnection(raw, provider=self.provider)
        try:
            yield conn
        finally:
            await conn.release()

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """Execute parameterized SQL on a pooled connection."""
        async with self._acquire() as conn:
            return await conn.run(sql, params)

    async def transaction(self, fn: Callable[[TransactionContext], Awaitable[T]]) -> T:
        """Run ``fn`` between BEGIN TRANSACTION and COMMIT on one connection."""
        return await trace_query_operation(
            TRANSACTION_SPAN,
            provider=self.provider,
            execution_model=self.execution_model,
            sql=None,
            operation=self._run_transaction(fn),
        )

    async def _run_transaction(self, fn: Callable[[TransactionContext], Awaitable[T]]) -> T:
        async with self._acquire() as conn:
            await conn.run("BEGIN TRANSACTION")
            ctx = TsqlTransaction(conn)
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
        """Return INFORMATION_SCHEMA column rows."""
        return await self._rows(catalog.COLUMNS, schema, table)

    async def fetch_primary_key_rows(self, table: str, schema: str) -> List[CatalogRow]:
        """Return primary-key columns in key order."""
        return await self._rows(catalog.PRIMARY_KEYS, schema, table)

    async def fetch_foreign_key_rows(self, table: str, schema: str) -> List[CatalogRow]:
        """Return foreign-key column pairs from sys.foreign_keys."""
        return await self._rows(catalog.FOREIGN_KEYS, schema, table)

    async def fetch_index_rows(self, table: str, schema: str) -> List[CatalogRow]:
        """Return key columns of named, non-hypothetical indexes."""
        return await self._rows(catalog.INDEXES, schema, table)

    async def get_functions(self, schema: Optional[str] = None) -> List[FunctionInfo]:
        """Return scalar and table-valued functions with their parameters."""
        resolved = self.schema_or_default(schema)
        functions = await self._rows(catalog.FUNCTIONS, resolved)
        parameters = await self._rows(catalog.FUNCTION_PARAMETERS, resolved)
        return build_functions(functions, parameters)

    async def get_views(self, schema: Optional[str] = None) -> List[ViewInfo]:
        """Return views with their CREATE VIEW text and columns."""
        resolved = self.schema_or_default(schema)
        views = await self._rows(catalog.VIEWS, resolved)
        columns = await self._rows(catalog.VIEW_COLUMNS, resolved)
        return build_views(views, columns)

    def _predicate_function(self, policy_name: str, schema: str) -> str:
        return self.dialect.quote_qualified(f"fn_{policy_name}_predicate", schema)

    async def apply_security_policy(self, policy: SecurityPolicy) -> None:
        """Create a predicate function and a security policy that binds it.

        Both steps are guarded by OBJECT_ID checks so reapplying is a no-op. A
        failure in the second step leaves the predicate function in place.
        """
        schema = self.schema_or_default(policy.schema_name)
        function = self._predicate_function(policy.name, schema)
        policy_name = self.dialect.quote_qualified(policy.name, schema)
        target = self.dialect.quote_qualified(policy.table, schema)

        function_ddl = _PREDICATE_FUNCTION.format(
            function=function, predicate=policy.using or "1=1"
        )
        await self.query(
            f"IF OBJECT_ID({self.quote_value(function)}) IS NULL "
            f"EXEC({self.quote_value(function_ddl)})"
        )

        filtered = policy.operation in (PolicyOperation.SELECT, PolicyOperation.ALL)
        kind = "FILTER" if filtered else "BLOCK"
        policy_ddl = (
            f"CREATE SECURITY POLICY {policy_name} "
            f"ADD {kind} PREDICATE {function}() ON {target} "
            f"WITH (STATE = ON)"
        )
        await self.query(
            f"IF OBJECT_ID({self.quote_value(policy_name)}) IS NULL "
            f"EXEC({self.quote_value(policy_ddl)})"
        )
        logger.info("Applied security policy %s on %s.%s", policy.name, schema, policy.table)

    async def remove_security_policy(
        self, name: str, table: str, schema: Optional[str] = None
    ) -> None:
        """Drop the security policy, then its predicate function."""
        resolved = self.schema_or_default(schema)
        await self.query(
            f"DROP SECURITY POLICY IF EXISTS {self.dialect.quote_qualified(name, resolved)}"
        )
        await self.query(f"DROP FUNCTION IF EXISTS {self._predicate_function(name, resolved)}")

    async def get_security_policies(
        self, table: Optional[str] = None, schema: Optional[str] = None
    ) -> List[SecurityPolicy]:
        """List security policies with one entry per predicate."""
        rows = await self._rows(catalog.POLICIES, self.schema_or_default(schema), table)
        return [
            SecurityPolicy(
                name=row["name"],
                table=row["table_name"],
                schema=row["schema_name"],
                operation=(
                    PolicyOperation.SELECT
                    if row.get("predicate_type") == "FILTER"
                    else PolicyOperation.ALL
                ),
                using=row.get("predicate_definition"),
            )
            for row in rows
        ]

    async def _set_policy_state(self, table: str, schema: Optional[str], state: str) -> None:
        resolved = self.schema_or_default(schema)
        rows = await self._rows(catalog.TABLE_POLICY_NAMES, resolved, table)
        for row in rows:
            policy = self.dialect.quote_qualified(row["name"], row["policy_schema"])
            await self.query(f"ALTER SECURITY POLICY {policy} WITH (STATE = {state})")

    async def enable_security(self, table: str, schema: Optional[str] = None) -> None:
        """Switch every security policy on the table on."""
        await self._set_policy_state(table, schema, "ON")

    async def disable_security(self, table: str, schema: Optional[str] = None) -> None:
        """Switch every security policy on the table off."""
        await self._set_policy_state(table, schema, "OFF")

    async def enable_change_tracking(self, table: str, schema: Optional[str] = None) -> None:
        """Enable CDC capture for the table; the database must already have CDC on."""
        resolved = self.schema_or_default(schema)
        await self.query(catalog.ENABLE_CDC, [resolved, table])
        logger.info("Enabled CDC on %s.%s", resolved, table)

    async def disable_change_tracking(self, table: str, schema: Optional[str] = None) -> None:
        """Disable every CDC capture instance of the table."""
        resolved = self.schema_or_default(schema)
        await self.query(catalog.DISABLE_CDC, [resolved, table])
        logger.info("Disabled CDC on %s.%s", resolved, table)

    async def fetch_changes(
        self, table: str, schema: str, cursor: Any = None
    ) -> List[ChangeEvent]:
        """Return CDC rows after ``cursor``, a ``(start_lsn, seqval)`` pair."""
        start_lsn, seqval = tuple(cursor) if cursor else CDC_START_CURSOR
        change_table = self.dialect.quote_qualified(f"{schema}_{table}_CT", "cdc")
        sql = catalog.FETCH_CDC_CHANGES.format(change_table=change_table)
        rows = await self._rows(sql, start_lsn, seqval)

        events: List[ChangeEvent] = []
        for row in rows:
            operation = _CDC_OPERATIONS.get(int(row["__$operation"]))
            if operation is None:
                continue
            data = {key: value for key, value in row.items() if not key.startswith("__$")}
            events.append(
                ChangeEvent(
                    table=table,
                    schema=schema,
                    operation=operation,
                    new_row=None if operation is ChangeOperation.DELETE else data,
                    old_row=data if operation is ChangeOperation.DELETE else None,
                    position=(row["__$start_lsn"], row["__$seqval"]),
                )
            )
        return events

    async def get_stats(self) -> DatabaseStats:
        """Return connection, request and file-size counters."""
        row = await self.query_one(catalog.STATS) or {}
        return DatabaseStats(
            connections=int(row.get("connections") or 0),
            active_queries=int(row.get("active_queries") or 0),
            database_size_bytes=int(row.get("database_size") or 0),
            table_count=int(row.get("table_count") or 0),
        )
