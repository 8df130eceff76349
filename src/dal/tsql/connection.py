"""Async facade over pooled pymssql connections.

pymssql is a blocking DB-API driver, so each statement runs in a worker thread
via ``asyncio.to_thread``. A ``TsqlConnection`` is used by one task at a time:
either a single pooled query or a whole transaction.
"""

import asyncio
from typing import Any, Optional, Sequence

import pymssql
from sqlalchemy.exc import DBAPIError

from dal.error_classification import translate_driver_error
from dal.tracing import QUERY_SPAN, trace_query_operation
from dal.tsql.param_translation import translate_tsql_params
from dal.util.column_metadata import fields_from_cursor_description
from schema.result import QueryResult

DRIVER_ERRORS = (pymssql.Error, DBAPIError, OSError)


def _command_of(sql: str) -> Optional[str]:
    words = sql.split(None, 1)
    return words[0].upper() if words else None


class TsqlConnection:
    """One checked-out DB-API connection with async execution helpers."""

    def __init__(self, raw: Any, provider: str = "tsql") -> None:
        """Wrap a pooled DB-API connection."""
        self._raw = raw
        self._provider = provider

    @property
    def raw(self) -> Any:
        """Return the wrapped DB-API connection."""
        return self._raw

    def _execute(self, sql: str, params: Optional[tuple]) -> QueryResult:
        cursor = self._raw.cursor()
        try:
            if params is None:
                cursor.execute(sql)
            else:
                cursor.execute(sql, params)
            if cursor.description:
                columns = [entry[0] for entry in cursor.description]
                rows = [dict(zip(columns, values)) for values in cursor.fetchall()]
                return QueryResult(
                    rows=rows,
                    row_count=len(rows),
                    fields=fields_from_cursor_description(cursor.description),
                    command=_command_of(sql),
                )
            return QueryResult(row_count=max(cursor.rowcount, 0), command=_command_of(sql))
        finally:
            cursor.close()

    async def run(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """Translate placeholders and execute one statement in a worker thread."""
        translated, bound = translate_tsql_params(sql, params)
        try:
            return await trace_query_operation(
                QUERY_SPAN,
                provider=self._provider,
                execution_model="sync",
                sql=translated,
                operation=asyncio.to_thread(self._execute, translated, bound),
            )
        except DRIVER_ERRORS as exc:
            raise translate_driver_error(self._provider, exc, sql) from exc

    async def release(self) -> None:
        """Return the connection to the pool."""
        await asyncio.to_thread(self._raw.close)
