"""The adapter contract every backend implements.

``DatabaseAdapter`` is the single seam between the REST layer and a database.
Concrete variants supply connection handling, raw catalog queries and the
dialect-specific security and change-tracking DDL; the shared pieces
(introspection folding, DDL rendering, schema transfer, health checks) live here
so both variants behave identically.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    TypeVar,
)

from common.errors import PolyrestError, ValidationError
from common.sql.dialect import split_sql_statements
from dal.capabilities import DatabaseCapabilities, capabilities_for_provider
from dal.ddl import (
    render_alter_table,
    render_create_index,
    render_create_table,
    render_drop_table,
    render_foreign_key,
    render_schema_export,
)
from dal.dialect import SqlDialect
from dal.introspection import (
    CatalogRow,
    build_column,
    fold_primary_keys,
    introspect_table,
    introspect_tables,
)
from dal.tracing import INTROSPECT_SPAN, trace_query_operation
from schema.catalog import FunctionInfo, SchemaInfo, ViewInfo
from schema.change import ChangeEvent
from schema.connection import ConnectionConfig
from schema.result import QueryResult, Row
from schema.security import SecurityPolicy
from schema.table import ColumnInfo, IndexInfo, TableAlteration, TableInfo

if TYPE_CHECKING:
    from dal.change_feed import ChangeCallback, Subscription

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class DatabaseStats:
    """Point-in-time counters reported by ``get_stats``."""

    connections: int
    active_queries: int
    database_size_bytes: int
    table_count: int


class TransactionContext(ABC):
    """A unit of work bound to one dedicated connection.

    The connection is exclusive to the transaction until the adapter commits or
    rolls back; statements run in the order they are issued.
    """

    @abstractmethod
    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """Execute a statement on the transaction's connection."""
        pass

    async def query_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Row]:
        """Execute a statement and return its first row, or None."""
        return (await self.query(sql, params)).first()

    @abstractmethod
    async def commit(self) -> None:
        """Commit the transaction; later calls are no-ops."""
        pass

    @abstractmethod
    async def rollback(self) -> None:
        """Roll back the transaction; later calls are no-ops."""
        pass


class DatabaseAdapter(ABC):
    """Interface and shared behaviour for backend adapters."""

    provider: str = "unspecified"
    dialect: SqlDialect
    default_schema: str = "public"
    # "async" for native asyncio drivers, "sync" for threaded DB-API drivers.
    execution_model: str = "async"

    # Native type name -> standard type name, and the reverse.
    type_to_standard: Dict[str, str] = {}
    standard_to_type: Dict[str, str] = {}

    def __init__(self) -> None:
        """Initialize an unconnected adapter."""
        self.config: Optional[ConnectionConfig] = None
        self.capabilities: DatabaseCapabilities = capabilities_for_provider(self.provider)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    @abstractmethod
    async def connect(self, config: ConnectionConfig) -> None:
        """Open the pool and check it; raise BackendConnectionError on failure."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Release every pooled connection. Safe to call repeatedly."""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """Return True while the pool is open."""
        pass

    def schema_or_default(self, schema: Optional[str]) -> str:
        """Resolve an explicit schema, the configured one, or the dialect default."""
        if schema:
            return schema
        if self.config is not None and self.config.options.get("schema"):
            return str(self.config.options["schema"])
        return self.default_schema

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @abstractmethod
    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """Execute parameterized SQL on a pooled connection."""
        pass

    async def query_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Row]:
        """Execute parameterized SQL and return the first row, or None."""
        return (await self.query(sql, params)).first()

    @abstractmethod
    async def transaction(self, fn: Callable[[TransactionContext], Awaitable[T]]) -> T:
        """Run ``fn`` inside BEGIN/COMMIT on one dedicated connection.

        Any exception from ``fn`` rolls the transaction back and is re-raised.
        The connection returns to the pool in every case.
        """
        pass

    # ------------------------------------------------------------------
    # Raw catalog access (consumed by dal.introspection)
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_table_names(self, schema: str) -> List[str]:
        """Return base table names in ``schema``."""
        pass

    @abstractmethod
    async def fetch_column_rows(self, table: str, schema: str) -> List[CatalogRow]:
        """Return one catalog row per column, in ordinal order."""
        pass

    @abstractmethod
    async def fetch_primary_key_rows(self, table: str, schema: str) -> List[CatalogRow]:
        """Return one catalog row per primary-key column."""
        pass

    @abstractmethod
    async def fetch_foreign_key_rows(self, table: str, schema: str) -> List[CatalogRow]:
        """Return one catalog row per foreign-key column."""
        pass

    @abstractmethod
    async def fetch_index_rows(self, table: str, schema: str) -> List[CatalogRow]:
        """Return one catalog row per indexed column."""
        pass

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    async def get_tables(self, schema: Optional[str] = None) -> List[TableInfo]:
        """Return every base table in the schema, ordered by name."""
        return await trace_query_operation(
            INTROSPECT_SPAN,
            provider=self.provider,
            execution_model=self.execution_model,
            sql=None,
            operation=introspect_tables(self, self.schema_or_default(schema)),
        )

    async def get_table(self, name: str, schema: Optional[str] = None) -> Optional[TableInfo]:
        """Return one table, or None if it does not exist."""
        return await trace_query_operation(
            INTROSPECT_SPAN,
            provider=self.provider,
            execution_model=self.execution_model,
            sql=None,
            operation=introspect_table(self, name, self.schema_or_default(schema)),
        )

    async def get_primary_keys(self, table: str, schema: Optional[str] = None) -> List[str]:
        """Return the primary-key columns of a table in key order, empty if it has none."""
        rows = await self.fetch_primary_key_rows(table, self.schema_or_default(schema))
        return fold_primary_keys(rows)

    async def get_columns(self, table: str, schema: Optional[str] = None) -> List[ColumnInfo]:
        """Return the columns of a table in ordinal order."""
        rows = await self.fetch_column_rows(table, self.schema_or_default(schema))
        return [build_column(row) for row in rows]

    @abstractmethod
    async def get_functions(self, schema: Optional[str] = None) -> List[FunctionInfo]:
        """Return stored functions and their parameters."""
        pass

    @abstractmethod
    async def get_views(self, schema: Optional[str] = None) -> List[ViewInfo]:
        """Return views with their definitions."""
        pass

    async def get_schema(self, schema: Optional[str] = None) -> SchemaInfo:
        """Return tables, views and functions of one schema."""
        resolved = self.schema_or_default(schema)
        return SchemaInfo(
            schemas=[resolved],
            tables=await self.get_tables(resolved),
            views=await self.get_views(resolved),
            functions=await self.get_functions(resolved),
        )

    # ------------------------------------------------------------------
    # DDL
    # ------------------------------------------------------------------

    async def create_table(self, table: TableInfo) -> None:
        """Create a table with its primary key, foreign keys and secondary indexes."""
        statements = [render_create_table(self.dialect, table)]
        statements.extend(
            render_foreign_key(self.dialect, table.name, table.schema_name, fk)
            for fk in table.foreign_keys
        )
        statements.extend(
            render_create_index(self.dialect, table.name, table.schema_name, index)
            for index in table.indexes
            if not index.is_primary
        )
        await self._run_statements(statements)
        logger.info("Created table %s.%s", table.schema_name, table.name)

    async def alter_table(
        self, name: str, alteration: TableAlteration, schema: Optional[str] = None
    ) -> None:
        """Apply column additions, drops and modifications."""
        if alteration.is_empty():
            raise ValidationError(f"No changes requested for table '{name}'")
        statements = render_alter_table(
            self.dialect, name, self.schema_or_default(schema), alteration
        )
        await self._run_statements(statements)

    async def drop_table(
        self, name: str, schema: Optional[str] = None, cascade: bool = False
    ) -> None:
        """Drop a table if it exists."""
        await self.query(
            render_drop_table(self.dialect, name, self.schema_or_default(schema), cascade)
        )
        logger.info("Dropped table %s", name)

    async def create_index(
        self, table: str, index: IndexInfo, schema: Optional[str] = None
    ) -> None:
        """Create an index on an existing table."""
        await self.query(
            render_create_index(self.dialect, table, self.schema_or_default(schema), index)
        )

    async def _run_statements(self, statements: Sequence[str]) -> None:
        if not statements:
            return

        async def _apply(ctx: TransactionContext) -> None:
            for statement in statements:
                logger.debug("Executing DDL: %s", statement)
                await ctx.query(statement)

        await self.transaction(_apply)

    # ------------------------------------------------------------------
    # Security policies
    # ------------------------------------------------------------------

    @abstractmethod
    async def apply_security_policy(self, policy: SecurityPolicy) -> None:
        """Create a row-security policy if it does not already exist."""
        pass

    @abstractmethod
    async def remove_security_policy(
        self, name: str, table: str, schema: Optional[str] = None
    ) -> None:
        """Remove a policy; a missing policy is not an error."""
        pass

    @abstractmethod
    async def get_security_policies(
        self, table: Optional[str] = None, schema: Optional[str] = None
    ) -> List[SecurityPolicy]:
        """List policies, optionally restricted to one table."""
        pass

    @abstractmethod
    async def enable_security(self, table: str, schema: Optional[str] = None) -> None:
        """Turn row-level security on for a table."""
        pass

    @abstractmethod
    async def disable_security(self, table: str, schema: Optional[str] = None) -> None:
        """Turn row-level security off for a table."""
        pass

    # ------------------------------------------------------------------
    # Change tracking
    # ------------------------------------------------------------------

    @abstractmethod
    async def enable_change_tracking(self, table: str, schema: Optional[str] = None) -> None:
        """Start recording row changes for a table."""
        pass

    @abstractmethod
    async def disable_change_tracking(self, table: str, schema: Optional[str] = None) -> None:
        """Stop recording row changes for a table."""
        pass

    @abstractmethod
    async def fetch_changes(
        self, table: str, schema: str, cursor: Any = None
    ) -> List[ChangeEvent]:
        """Return recorded changes after ``cursor`` (all retained changes if None)."""
        pass

    async def subscribe_to_changes(
        self,
        table: str,
        callback: "ChangeCallback",
        schema: Optional[str] = None,
        interval: float = 1.0,
    ) -> "Subscription":
        """Poll ``fetch_changes`` in the background and deliver events to ``callback``."""
        from dal.change_feed import ChangePoller

        poller = ChangePoller(
            self, table, self.schema_or_default(schema), callback, interval=interval
        )
        return poller.start()

    # ------------------------------------------------------------------
    # Type mapping and literals
    # ------------------------------------------------------------------

    def map_type_to_standard(self, native_type: str) -> str:
        """Map a backend type name to the standard type vocabulary."""
        return self.type_to_standard.get(native_type.strip().lower(), native_type.upper())

    def map_type_from_standard(self, standard_type: str) -> str:
        """Map a standard type name to this backend's type name."""
        return self.standard_to_type.get(standard_type.strip().upper(), standard_type)

    def escape_identifier(self, name: str) -> str:
        """Quote an identifier for this dialect."""
        return self.dialect.quote_identifier(name)

    def placeholder(self, index: int) -> str:
        """Return the placeholder for the 0-based parameter ``index``."""
        return self.dialect.placeholder(index)

    def quote_value(self, value: Any) -> str:
        """Render a literal for DDL text. Never used for query parameters."""
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return self.dialect.boolean_literal(value)
        if isinstance(value, (int, float, Decimal)):
            return str(value)
        if isinstance(value, (datetime, date)):
            return f"'{value.isoformat()}'"
        text = str(value).replace("'", "''")
        return f"'{text}'"

    # ------------------------------------------------------------------
    # Schema transfer and health
    # ------------------------------------------------------------------

    async def export_schema(self, schema: Optional[str] = None) -> str:
        """Render the schema's tables, views and functions as DDL text."""
        info = await self.get_schema(schema)
        return render_schema_export(
            self.dialect, info.schemas[0], info.tables, info.views, info.functions
        )

    async def import_schema(self, ddl: str) -> int:
        """Execute a DDL script in one transaction; return the statement count."""
        try:
            statements = split_sql_statements(ddl, self.dialect.sqlglot_dialect)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        await self._run_statements(statements)
        logger.info("Imported %d statements", len(statements))
        return len(statements)

    @abstractmethod
    async def get_stats(self) -> DatabaseStats:
        """Return connection and size counters."""
        pass

    async def health_check(self) -> bool:
        """Return True when a trivial query succeeds."""
        try:
            await self.query("SELECT 1")
            return True
        except PolyrestError as exc:
            logger.warning("Health check failed for %s: %s", self.provider, exc.message)
            return False
