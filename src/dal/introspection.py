"""Schema introspection normalizer.

Adapters return raw catalog rows, one row per column-of-constraint, using a
shared set of column aliases. This module folds those rows into the canonical
``TableInfo`` graph with the same algorithm for every backend:

1. list base tables in a schema, ordered by name;
2. fetch the column, primary-key, foreign-key and index facets of each table
   concurrently;
3. group foreign-key and index rows by constraint name, ordering their columns
   by the catalog ordinal rather than by arrival order;
4. map referential action spellings onto ``ReferentialAction``.

Expected row keys:

- columns: ``column_name``, ``data_type``, ``is_nullable``, ``column_default``,
  ``is_identity``, ``character_maximum_length``, ``numeric_precision``,
  ``numeric_scale``
- primary keys: ``column_name``, ``ordinal_position``
- foreign keys: ``constraint_name``, ``column_name``, ``foreign_table_schema``,
  ``foreign_table_name``, ``foreign_column_name``, ``ordinal_position``,
  ``delete_rule``, ``update_rule``
- indexes: ``index_name``, ``column_name``, ``is_unique``, ``is_primary``,
  ``ordinal_position``
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Protocol

from common.errors import BackendQueryError
from schema.catalog import FunctionInfo, ParameterInfo, ViewInfo
from schema.table import ColumnInfo, ForeignKeyInfo, IndexInfo, ReferentialAction, TableInfo

logger = logging.getLogger(__name__)

CatalogRow = Dict[str, Any]

_ACTION_SPELLINGS: Dict[str, ReferentialAction] = {
    "CASCADE": ReferentialAction.CASCADE,
    "SET NULL": ReferentialAction.SET_NULL,
    "SET DEFAULT": ReferentialAction.SET_DEFAULT,
    "RESTRICT": ReferentialAction.RESTRICT,
    "NO ACTION": ReferentialAction.NO_ACTION,
}


class CatalogSource(Protocol):
    """Raw catalog access an adapter provides to the normalizer."""

    async def list_table_names(self, schema: str) -> List[str]:
        """Return base table names in ``schema``."""
        ...

    async def fetch_column_rows(self, table: str, schema: str) -> List[CatalogRow]:
        """Return one row per column."""
        ...

    async def fetch_primary_key_rows(self, table: str, schema: str) -> List[CatalogRow]:
        """Return one row per primary-key column."""
        ...

    async def fetch_foreign_key_rows(self, table: str, schema: str) -> List[CatalogRow]:
        """Return one row per foreign-key column."""
        ...

    async def fetch_index_rows(self, table: str, schema: str) -> List[CatalogRow]:
        """Return one row per indexed column."""
        ...


def map_referential_action(spelling: Optional[str]) -> ReferentialAction:
    """Map a backend action spelling (``SET_NULL``, ``set null``...) to the enum.

    Unrecognized spellings map to NO ACTION instead of failing introspection.
    """
    if not spelling:
        return ReferentialAction.NO_ACTION
    normalized = " ".join(str(spelling).replace("_", " ").upper().split())
    action = _ACTION_SPELLINGS.get(normalized)
    if action is None:
        logger.debug("Unrecognized referential action '%s'; using NO ACTION", spelling)
        return ReferentialAction.NO_ACTION
    return action


def is_truthy(value: Any) -> bool:
    """Interpret catalog flags that arrive as bools, bits or YES/NO text."""
    if isinstance(value, str):
        return value.strip().upper() in {"YES", "Y", "TRUE", "T", "1"}
    return bool(value)


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value)


def _ordinal(row: CatalogRow) -> int:
    value = row.get("ordinal_position")
    return int(value) if value is not None else 0


def build_column(row: CatalogRow) -> ColumnInfo:
    """Build a ColumnInfo from one catalog column row."""
    return ColumnInfo(
        name=row["column_name"],
        data_type=row["data_type"],
        nullable=is_truthy(row.get("is_nullable", True)),
        default_value=row.get("column_default"),
        is_identity=is_truthy(row.get("is_identity", False)),
        max_length=_optional_int(row.get("character_maximum_length")),
        precision=_optional_int(row.get("numeric_precision")),
        scale=_optional_int(row.get("numeric_scale")),
    )


def fold_primary_keys(rows: Iterable[CatalogRow]) -> List[str]:
    """Return primary-key column names in key ordinal order."""
    return [row["column_name"] for row in sorted(rows, key=_ordinal)]


def fold_foreign_keys(rows: Iterable[CatalogRow]) -> List[ForeignKeyInfo]:
    """Group per-column foreign-key rows into one ForeignKeyInfo per constraint.

    Constraints are returned ordered by name; the columns of each constraint are
    ordered by ordinal position.
    """
    grouped: Dict[str, List[CatalogRow]] = {}
    for row in rows:
        grouped.setdefault(row["constraint_name"], []).append(row)

    foreign_keys: List[ForeignKeyInfo] = []
    for name in sorted(grouped):
        members = sorted(grouped[name], key=_ordinal)
        head = members[0]
        foreign_keys.append(
            ForeignKeyInfo(
                name=name,
                columns=[member["column_name"] for member in members],
                referenced_schema=head.get("foreign_table_schema"),
                referenced_table=head["foreign_table_name"],
                referenced_columns=[member["foreign_column_name"] for member in members],
                on_delete=map_referential_action(head.get("delete_rule")),
                on_update=map_referential_action(head.get("update_rule")),
            )
        )
    return foreign_keys


def fold_indexes(rows: Iterable[CatalogRow]) -> List[IndexInfo]:
    """Group per-column index rows into one IndexInfo per index, ordered by name."""
    grouped: Dict[str, List[CatalogRow]] = {}
    for row in rows:
        grouped.setdefault(row["index_name"], []).append(row)

    indexes: List[IndexInfo] = []
    for name in sorted(grouped):
        members = sorted(grouped[name], key=_ordinal)
        head = members[0]
        indexes.append(
            IndexInfo(
                name=name,
                columns=[member["column_name"] for member in members],
                is_unique=is_truthy(head.get("is_unique")),
                is_primary=is_truthy(head.get("is_primary")),
            )
        )
    return indexes


async def _best_effort(facet: str, table: str, fetch: Awaitable[List[CatalogRow]]):
    """Await a facet fetch, turning a vanished table into an empty facet."""
    try:
        return await fetch
    except BackendQueryError as exc:
        if exc.category != "undefined_object":
            raise
        logger.warning("Skipping %s facet for table '%s': %s", facet, table, exc.message)
        return []


async def introspect_table(source: CatalogSource, table: str, schema: str) -> Optional[TableInfo]:
    """Build the TableInfo for one table, or None if it has no columns (vanished)."""
    column_rows, pk_rows, fk_rows, index_rows = await asyncio.gather(
        _best_effort("columns", table, source.fetch_column_rows(table, schema)),
        _best_effort("primary key", table, source.fetch_primary_key_rows(table, schema)),
        _best_effort("foreign key", table, source.fetch_foreign_key_rows(table, schema)),
        _best_effort("index", table, source.fetch_index_rows(table, schema)),
    )
    if not column_rows:
        return None

    columns = [build_column(row) for row in column_rows]
    column_names = {column.name for column in columns}
    # A concurrent ALTER can leave key rows naming columns we never saw.
    primary_keys = [name for name in fold_primary_keys(pk_rows) if name in column_names]
    return TableInfo(
        schema=schema,
        name=table,
        columns=columns,
        primary_keys=primary_keys,
        foreign_keys=fold_foreign_keys(fk_rows),
        indexes=fold_indexes(index_rows),
    )


async def introspect_tables(source: CatalogSource, schema: str) -> List[TableInfo]:
    """Build TableInfo objects for every base table in ``schema``, ordered by name."""
    names = sorted(await source.list_table_names(schema))
    tables: List[TableInfo] = []
    for name in names:
        table = await introspect_table(source, name, schema)
        if table is None:
            logger.warning("Table '%s.%s' disappeared during introspection", schema, name)
            continue
        tables.append(table)
    return tables


def build_functions(
    function_rows: Iterable[CatalogRow], parameter_rows: Iterable[CatalogRow]
) -> List[FunctionInfo]:
    """Attach parameter rows to their functions by ``specific_name``.

    Function rows carry ``specific_name``, ``schema_name``, ``function_name``,
    ``return_type``, ``language`` and ``definition``; parameter rows carry
    ``specific_name``, ``parameter_name``, ``data_type``, ``parameter_mode`` and
    ``ordinal_position``.
    """
    parameters: Dict[str, List[CatalogRow]] = {}
    for row in parameter_rows:
        parameters.setdefault(row["specific_name"], []).append(row)

    functions: List[FunctionInfo] = []
    for row in function_rows:
        members = sorted(parameters.get(row["specific_name"], []), key=_ordinal)
        functions.append(
            FunctionInfo(
                schema=row["schema_name"],
                name=row["function_name"],
                return_type=row.get("return_type"),
                language=row.get("language"),
                definition=row.get("definition"),
                parameters=[
                    ParameterInfo(
                        name=member.get("parameter_name") or "",
                        data_type=member["data_type"],
                        mode=(member.get("parameter_mode") or "IN").upper(),
                        default_value=member.get("parameter_default"),
                    )
                    for member in members
                ],
            )
        )
    return functions


def build_views(
    view_rows: Iterable[CatalogRow], column_rows: Iterable[CatalogRow]
) -> List[ViewInfo]:
    """Attach column rows (``table_name``, ``column_name``) to view rows."""
    columns: Dict[str, List[str]] = {}
    for row in column_rows:
        columns.setdefault(row["table_name"], []).append(row["column_name"])
    return [
        ViewInfo(
            schema=row["table_schema"],
            name=row["table_name"],
            definition=row.get("view_definition"),
            columns=columns.get(row["table_name"], []),
        )
        for row in view_rows
    ]
