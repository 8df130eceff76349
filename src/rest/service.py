"""Route semantics for the generated REST API, independent of the HTTP framework."""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from common.errors import MissingPrimaryKeyError, NotFoundError, ValidationError
from dal.adapter import DatabaseAdapter
from rest.compiler import DEFAULT_MAX_ROWS, QueryCompiler
from rest.filters import RESERVED_KEYS, QueryParams, coerce_value, parse_query
from rest.openapi import build_openapi_document

logger = logging.getLogger(__name__)


def _filter_pairs(params: QueryParams) -> List[Tuple[str, Any]]:
    """Drop reserved keys; mutations only honour column filters."""
    items = params.items() if isinstance(params, Mapping) else params
    return [(key, value) for key, value in items if key not in RESERVED_KEYS]


class RestService:
    """Implements every table route on top of one adapter.

    The service compiles requests with the adapter's dialect, executes them
    through the adapter pool and shapes the JSON envelopes the HTTP layer
    returns. Errors are raised from the ``common.errors`` taxonomy.
    """

    def __init__(
        self,
        adapter: DatabaseAdapter,
        schema: Optional[str] = None,
        max_rows: int = DEFAULT_MAX_ROWS,
        base_path: str = "",
    ) -> None:
        """Bind an adapter; ``schema`` defaults to the adapter's configured schema."""
        self.adapter = adapter
        self.schema = adapter.schema_or_default(schema)
        self.compiler = QueryCompiler(adapter.dialect, max_rows=max_rows)
        self.base_path = base_path

    async def primary_key(self, table: str) -> str:
        """Return the first primary-key column of ``table``.

        Only the primary-key catalog query runs. Raises MissingPrimaryKeyError
        when the table has no primary key or does not exist.
        """
        keys = await self.adapter.get_primary_keys(table, self.schema)
        if not keys:
            raise MissingPrimaryKeyError(table)
        return keys[0]

    async def list_rows(self, table: str, params: QueryParams) -> Dict[str, Any]:
        """GET /{table}: rows page plus the total matching count."""
        query = parse_query(params)
        select_sql, select_params = self.compiler.compile_select(table, query, self.schema)
        count_sql, count_params = self.compiler.compile_count(table, query, self.schema)
        # Sequential, so a failed SELECT never leaves the COUNT running.
        result = await self.adapter.query(select_sql, select_params)
        total_row = await self.adapter.query_one(count_sql, count_params)
        total = int(total_row["total"]) if total_row else 0
        return {"data": result.rows, "count": len(result.rows), "total": total}

    async def get_row(self, table: str, key: str) -> Dict[str, Any]:
        """GET /{table}/{id}."""
        key_column = await self.primary_key(table)
        sql, params = self.compiler.compile_select_by_key(
            table, key_column, coerce_value(key), self.schema
        )
        row = await self.adapter.query_one(sql, params)
        if row is None:
            raise NotFoundError(f"No row in '{table}' with {key_column} = {key}")
        return {"data": row}

    async def insert(self, table: str, body: Any) -> Dict[str, Any]:
        """POST /{table} with one object or an array of objects.

        Bulk inserts run one statement per row, in order, outside a transaction:
        a failing row surfaces its error and earlier rows stay committed.
        """
        if isinstance(body, dict):
            return {"data": await self._insert_one(table, body)}
        if isinstance(body, list):
            if not all(isinstance(item, dict) for item in body):
                raise ValidationError("Every element of a bulk insert must be a JSON object")
            inserted = []
            for row in body:
                inserted.append(await self._insert_one(table, row))
            return {"data": inserted, "count": len(inserted)}
        raise ValidationError("Request body must be a JSON object or an array of objects")

    async def _insert_one(self, table: str, row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        sql, params = self.compiler.compile_insert(table, row, self.schema)
        return await self.adapter.query_one(sql, params)

    async def update(self, table: str, params: QueryParams, body: Any) -> Dict[str, Any]:
        """PATCH /{table}?<filters>: batch update, returns the affected count."""
        values = self._require_object(body)
        query = parse_query(_filter_pairs(params))
        sql, sql_params = self.compiler.compile_update(table, values, query.where, self.schema)
        result = await self.adapter.query(sql, sql_params)
        logger.debug("Updated %d rows in %s", result.row_count, table)
        return {"count": result.row_count}

    async def replace(self, table: str, key: str, body: Any) -> Dict[str, Any]:
        """PUT /{table}/{id}: update one row by primary key and return it."""
        values = self._require_object(body)
        key_column = await self.primary_key(table)
        sql, params = self.compiler.compile_update_by_key(
            table, values, key_column, coerce_value(key), self.schema
        )
        row = await self.adapter.query_one(sql, params)
        if row is None:
            raise NotFoundError(f"No row in '{table}' with {key_column} = {key}")
        return {"data": row}

    async def delete(self, table: str, params: QueryParams) -> Dict[str, Any]:
        """DELETE /{table}?<filters>: batch delete, returns the affected count."""
        query = parse_query(_filter_pairs(params))
        sql, sql_params = self.compiler.compile_delete(table, query.where, self.schema)
        result = await self.adapter.query(sql, sql_params)
        logger.debug("Deleted %d rows from %s", result.row_count, table)
        return {"count": result.row_count}

    async def delete_row(self, table: str, key: str) -> Dict[str, Any]:
        """DELETE /{table}/{id}: delete one row by primary key and return it."""
        key_column = await self.primary_key(table)
        sql, params = self.compiler.compile_delete_by_key(
            table, key_column, coerce_value(key), self.schema
        )
        row = await self.adapter.query_one(sql, params)
        if row is None:
            raise NotFoundError(f"No row in '{table}' with {key_column} = {key}")
        return {"data": row}

    async def openapi(self) -> Dict[str, Any]:
        """GET /schema: OpenAPI document for every table in the schema."""
        tables = await self.adapter.get_tables(self.schema)
        return build_openapi_document(tables, self.adapter.provider, self.base_path)

    async def health(self) -> Tuple[bool, Dict[str, Any]]:
        """GET /health: check result and the response body."""
        healthy = await self.adapter.health_check()
        body = {"status": "ok" if healthy else "unhealthy", "dialect": self.adapter.dialect.name}
        return healthy, body

    @staticmethod
    def _require_object(body: Any) -> Dict[str, Any]:
        if not isinstance(body, dict) or not body:
            raise ValidationError("Request body must be a non-empty JSON object")
        return body
