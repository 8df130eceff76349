"""OpenAPI 3.0 document generated from introspected tables."""

from typing import Any, Dict, List, Sequence

from rest.filters import OPERATORS
from schema.table import ColumnInfo, TableInfo

OPENAPI_VERSION = "3.0.3"

_INTEGER_TYPES = frozenset(
    {
        "integer",
        "int",
        "bigint",
        "smallint",
        "tinyint",
        "int2",
        "int4",
        "int8",
        "serial",
        "bigserial",
        "smallserial",
    }
)
_NUMBER_TYPES = frozenset(
    {"numeric", "decimal", "real", "float", "float4", "float8", "double precision", "money"}
)
_BOOLEAN_TYPES = frozenset({"boolean", "bool", "bit"})


def openapi_type(data_type: str) -> str:
    """Map a backend column type to an OpenAPI primitive type."""
    lowered = data_type.lower().split("(")[0].strip()
    if lowered.endswith("[]"):
        return "array"
    if lowered in _INTEGER_TYPES:
        return "integer"
    if lowered in _NUMBER_TYPES:
        return "number"
    if lowered in _BOOLEAN_TYPES:
        return "boolean"
    return "string"


def column_schema(column: ColumnInfo) -> Dict[str, Any]:
    """JSON schema for one column value."""
    schema: Dict[str, Any] = {"type": openapi_type(column.data_type)}
    if schema["type"] == "array":
        schema["items"] = {"type": openapi_type(column.data_type[:-2])}
    if column.nullable:
        schema["nullable"] = True
    if column.max_length and column.max_length > 0 and schema["type"] == "string":
        schema["maxLength"] = column.max_length
    return schema


def table_schema(table: TableInfo) -> Dict[str, Any]:
    """JSON schema for one row of ``table``."""
    schema: Dict[str, Any] = {
        "type": "object",
        "properties": {column.name: column_schema(column) for column in table.columns},
    }
    required = [
        column.name
        for column in table.columns
        if not column.nullable and column.default_value is None and not column.is_identity
    ]
    if required:
        schema["required"] = required
    return schema


def query_parameters(table: TableInfo) -> List[Dict[str, Any]]:
    """Reserved query parameters followed by one filter parameter per column."""
    parameters: List[Dict[str, Any]] = [
        {
            "name": "select",
            "in": "query",
            "schema": {"type": "string"},
            "description": "Columns to select (comma-separated)",
        },
        {
            "name": "order",
            "in": "query",
            "schema": {"type": "string"},
            "description": "Order by column.asc|column.desc (comma-separated)",
        },
        {
            "name": "limit",
            "in": "query",
            "schema": {"type": "integer", "minimum": 0},
            "description": "Maximum rows to return",
        },
        {
            "name": "offset",
            "in": "query",
            "schema": {"type": "integer", "minimum": 0},
            "description": "Rows to skip",
        },
    ]
    operators = ", ".join(OPERATORS)
    parameters.extend(
        {
            "name": column.name,
            "in": "query",
            "schema": {"type": "string"},
            "description": f"Filter by {column.name} (operators: {operators})",
        }
        for column in table.columns
    )
    return parameters


def _json(schema: Dict[str, Any]) -> Dict[str, Any]:
    return {"content": {"application/json": {"schema": schema}}}


def _ref(table: TableInfo) -> Dict[str, Any]:
    return {"$ref": f"#/components/schemas/{table.name}"}


_ERROR = _json(
    {
        "type": "object",
        "properties": {
            "error": {
                "type": "object",
                "properties": {"code": {"type": "string"}, "message": {"type": "string"}},
            }
        },
    }
)
_COUNT = _json({"type": "object", "properties": {"count": {"type": "integer"}}})


def table_paths(table: TableInfo, base_path: str) -> Dict[str, Dict[str, Any]]:
    """Path items for the collection route and, with a primary key, the row route."""
    ref = _ref(table)
    filters = query_parameters(table)[4:]
    paths: Dict[str, Dict[str, Any]] = {
        f"{base_path}/{table.name}": {
            "get": {
                "summary": f"List {table.name}",
                "parameters": query_parameters(table),
                "responses": {
                    "200": {
                        "description": "Matching rows",
                        **_json(
                            {
                                "type": "object",
                                "properties": {
                                    "data": {"type": "array", "items": ref},
                                    "count": {"type": "integer"},
                                    "total": {"type": "integer"},
                                },
                            }
                        ),
                    }
                },
            },
            "post": {
                "summary": f"Create {table.name}",
                "requestBody": _json({"oneOf": [ref, {"type": "array", "items": ref}]}),
                "responses": {
                    "201": {"description": "Created"},
                    "400": {"description": "Invalid row", **_ERROR},
                },
            },
            "patch": {
                "summary": f"Update matching {table.name}",
                "parameters": filters,
                "requestBody": _json(ref),
                "responses": {
                    "200": {"description": "Updated", **_COUNT},
                    "400": {"description": "No filter", **_ERROR},
                },
            },
            "delete": {
                "summary": f"Delete matching {table.name}",
                "parameters": filters,
                "responses": {
                    "200": {"description": "Deleted", **_COUNT},
                    "400": {"description": "No filter", **_ERROR},
                },
            },
        }
    }
    if table.primary_keys:
        key = table.column(table.primary_keys[0])
        key_parameter = {
            "name": "id",
            "in": "path",
            "required": True,
            "schema": {"type": openapi_type(key.data_type) if key else "string"},
            "description": f"Value of {table.primary_keys[0]}",
        }
        row = _json({"type": "object", "properties": {"data": ref}})
        missing = {"description": "No such row", **_ERROR}
        paths[f"{base_path}/{table.name}/{{id}}"] = {
            "parameters": [key_parameter],
            "get": {
                "summary": f"Get one {table.name}",
                "responses": {"200": {"description": "Row", **row}, "404": missing},
            },
            "put": {
                "summary": f"Update one {table.name}",
                "requestBody": _json(ref),
                "responses": {"200": {"description": "Updated row", **row}, "404": missing},
            },
            "delete": {
                "summary": f"Delete one {table.name}",
                "responses": {"200": {"description": "Deleted row", **row}, "404": missing},
            },
        }
    return paths


def build_openapi_document(
    tables: Sequence[TableInfo], provider: str, base_path: str = ""
) -> Dict[str, Any]:
    """Build the OpenAPI document served at ``/schema``."""
    paths: Dict[str, Any] = {}
    for table in tables:
        paths.update(table_paths(table, base_path))
    return {
        "openapi": OPENAPI_VERSION,
        "info": {"title": f"{provider} REST API", "version": "1.0.0"},
        "paths": paths,
        "components": {"schemas": {table.name: table_schema(table) for table in tables}},
    }
