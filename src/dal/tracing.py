"""OpenTelemetry spans around adapter round trips.

Spans never carry statement text; the SQL is identified by its sha256 hash only.
"""

import hashlib
import os
from typing import Any, Awaitable, List, Optional, Tuple, TypeVar

from common.config.env import get_env_bool
from dal.util.column_metadata import fields_from_asyncpg_attributes
from dal.util.param_coercion import coerce_params
from schema.result import FieldInfo

T = TypeVar("T")

QUERY_SPAN = "dal.query.execute"
TRANSACTION_SPAN = "dal.transaction"
INTROSPECT_SPAN = "dal.introspect"


def trace_enabled() -> bool:
    """Return True when DAL_TRACE_QUERIES is on, or unset while an OTLP exporter is configured."""
    if (os.getenv("DAL_TRACE_QUERIES") or "").strip():
        return bool(get_env_bool("DAL_TRACE_QUERIES", False))
    return bool((os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT") or "").strip())


def statement_hash(sql: str) -> str:
    return hashlib.sha256(sql.encode("utf-8")).hexdigest()


async def trace_query_operation(
    name: str,
    provider: str,
    execution_model: str,
    sql: Optional[str],
    operation: Awaitable[T],
) -> T:
    """Await ``operation`` inside a span named ``name`` when tracing is enabled."""
    if not trace_enabled():
        return await operation

    from opentelemetry import trace

    with trace.get_tracer("dal").start_as_current_span(name) as span:
        span.set_attribute("db.provider", provider)
        span.set_attribute("db.execution_model", execution_model)
        if sql:
            span.set_attribute("db.statement_hash", statement_hash(sql))
        status = "error"
        try:
            result = await operation
            status = "ok"
            return result
        finally:
            span.set_attribute("db.status", status)


class TracedAsyncpgConnection:
    """Wraps one checked-out asyncpg connection; every call is one traced round trip."""

    def __init__(self, conn: Any, provider: str = "postgresql") -> None:
        self._conn = conn
        self._provider = provider

    @property
    def raw(self) -> Any:
        return self._conn

    def _traced(self, sql: str, operation: Awaitable[T]) -> Awaitable[T]:
        return trace_query_operation(
            QUERY_SPAN,
            provider=self._provider,
            execution_model="async",
            sql=sql,
            operation=operation,
        )

    async def execute(self, sql: str, *params: Any) -> str:
        """Run a statement and return asyncpg's command status."""
        return await self._traced(sql, self._conn.execute(sql, *params))

    async def fetch_with_status(
        self, sql: str, *params: Any
    ) -> Tuple[List[dict], List[FieldInfo], Optional[str]]:
        """Return rows, field descriptors and the command status of one statement.

        A prepared statement is used so the status tag (``UPDATE 3``) is available
        alongside any returned rows, and its parameter types drive value coercion.
        """

        async def _run() -> Tuple[List[dict], List[FieldInfo], Optional[str]]:
            statement = await self._conn.prepare(sql)
            fields = fields_from_asyncpg_attributes(statement.get_attributes())
            args = coerce_params(statement.get_parameters(), params)
            rows = await statement.fetch(*args)
            return [dict(row) for row in rows], fields, statement.get_statusmsg()

        return await self._traced(sql, _run())
