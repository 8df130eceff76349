"""DDL rendering shared by both adapters.

Everything here is text generation over the canonical model; dialect differences
are limited to quoting, identity syntax and how ALTER TABLE batches changes.
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence

from dal.dialect import SqlDialect
from schema.catalog import FunctionInfo, ViewInfo
from schema.table import ColumnInfo, ForeignKeyInfo, IndexInfo, TableAlteration, TableInfo

_LENGTH_TYPES = {
    "character varying",
    "varchar",
    "character",
    "char",
    "nvarchar",
    "nchar",
    "varbinary",
    "binary",
    "bit varying",
}
_PRECISION_TYPES = {"numeric", "decimal"}


def render_type(dialect: SqlDialect, column: ColumnInfo) -> str:
    """Render a column type with its length or precision modifiers."""
    data_type = column.data_type
    if "(" in data_type:
        return data_type
    lowered = data_type.lower()
    if lowered in _LENGTH_TYPES and column.max_length is not None:
        if column.max_length < 0 and dialect.name == "tsql":
            return f"{data_type}(max)"
        if column.max_length > 0:
            return f"{data_type}({column.max_length})"
    if lowered in _PRECISION_TYPES and column.precision is not None:
        if column.scale is not None:
            return f"{data_type}({column.precision},{column.scale})"
        return f"{data_type}({column.precision})"
    return data_type


def render_column_definition(dialect: SqlDialect, column: ColumnInfo) -> str:
    """Render ``name type [identity] [NOT NULL] [DEFAULT expr]``.

    Defaults are emitted verbatim; they are backend expressions, not values.
    """
    parts = [dialect.quote_identifier(column.name), render_type(dialect, column)]
    if column.is_identity:
        if dialect.name == "tsql":
            parts.append("IDENTITY(1,1)")
        else:
            parts.append("GENERATED BY DEFAULT AS IDENTITY")
    if not column.nullable:
        parts.append("NOT NULL")
    if column.default_value is not None and not column.is_identity:
        parts.append(f"DEFAULT {column.default_value}")
    return " ".join(parts)


def render_create_table(dialect: SqlDialect, table: TableInfo) -> str:
    """Render CREATE TABLE with a PRIMARY KEY clause.

    Foreign keys and secondary indexes are separate statements so tables can be
    created in any order.
    """
    lines = [render_column_definition(dialect, column) for column in table.columns]
    if table.primary_keys:
        keys = ", ".join(dialect.quote_identifier(key) for key in table.primary_keys)
        lines.append(f"PRIMARY KEY ({keys})")
    body = ",\n  ".join(lines)
    return f"CREATE TABLE {dialect.quote_qualified(table.name, table.schema_name)} (\n  {body}\n)"


def render_foreign_key(
    dialect: SqlDialect, table: str, schema: Optional[str], foreign_key: ForeignKeyInfo
) -> str:
    """Render ALTER TABLE ... ADD CONSTRAINT ... FOREIGN KEY."""
    columns = ", ".join(dialect.quote_identifier(column) for column in foreign_key.columns)
    referenced = ", ".join(
        dialect.quote_identifier(column) for column in foreign_key.referenced_columns
    )
    target = dialect.quote_qualified(
        foreign_key.referenced_table, foreign_key.referenced_schema or schema
    )
    return (
        f"ALTER TABLE {dialect.quote_qualified(table, schema)} "
        f"ADD CONSTRAINT {dialect.quote_identifier(foreign_key.name)} "
        f"FOREIGN KEY ({columns}) REFERENCES {target} ({referenced}) "
        f"ON DELETE {foreign_key.on_delete.value} ON UPDATE {foreign_key.on_update.value}"
    )


def render_create_index(
    dialect: SqlDialect, table: str, schema: Optional[str], index: IndexInfo
) -> str:
    """Render CREATE [UNIQUE] INDEX."""
    unique = "UNIQUE " if index.is_unique else ""
    columns = ", ".join(dialect.quote_identifier(column) for column in index.columns)
    return (
        f"CREATE {unique}INDEX {dialect.quote_identifier(index.name)} "
        f"ON {dialect.quote_qualified(table, schema)} ({columns})"
    )


def render_drop_table(
    dialect: SqlDialect, table: str, schema: Optional[str], cascade: bool = False
) -> str:
    """Render DROP TABLE IF EXISTS; T-SQL has no CASCADE."""
    sql = f"DROP TABLE IF EXISTS {dialect.quote_qualified(table, schema)}"
    if cascade and dialect.name != "tsql":
        sql += " CASCADE"
    return sql


def render_alter_table(
    dialect: SqlDialect, table: str, schema: Optional[str], alteration: TableAlteration
) -> List[str]:
    """Render the statements for a TableAlteration.

    PostgreSQL takes every change in one comma-separated ALTER TABLE; T-SQL needs
    one statement per change.
    """
    target = dialect.quote_qualified(table, schema)
    if dialect.name == "tsql":
        statements = [
            f"ALTER TABLE {target} ADD {render_column_definition(dialect, column)}"
            for column in alteration.add_columns
        ]
        statements.extend(
            f"ALTER TABLE {target} DROP COLUMN {dialect.quote_identifier(name)}"
            for name in alteration.drop_columns
        )
        for column in alteration.modify_columns:
            nullability = "NULL" if column.nullable else "NOT NULL"
            statements.append(
                f"ALTER TABLE {target} ALTER COLUMN {dialect.quote_identifier(column.name)} "
                f"{render_type(dialect, column)} {nullability}"
            )
        return statements

    clauses = [
        f"ADD COLUMN {render_column_definition(dialect, column)}"
        for column in alteration.add_columns
    ]
    clauses.extend(
        f"DROP COLUMN {dialect.quote_identifier(name)}" for name in alteration.drop_columns
    )
    for column in alteration.modify_columns:
        name = dialect.quote_identifier(column.name)
        clauses.append(f"ALTER COLUMN {name} TYPE {render_type(dialect, column)}")
        clauses.append(f"ALTER COLUMN {name} {'DROP' if column.nullable else 'SET'} NOT NULL")
    if not clauses:
        return []
    return [f"ALTER TABLE {target} " + ", ".join(clauses)]


def render_view(dialect: SqlDialect, view: ViewInfo) -> Optional[str]:
    """Render a view; catalogs that store full CREATE text are passed through."""
    if not view.definition:
        return None
    definition = view.definition.strip().rstrip(";")
    if definition.upper().startswith("CREATE"):
        return definition
    return f"CREATE VIEW {dialect.quote_qualified(view.name, view.schema_name)} AS\n{definition}"


def render_schema_export(
    dialect: SqlDialect,
    schema: str,
    tables: Sequence[TableInfo],
    views: Sequence[ViewInfo] = (),
    functions: Sequence[FunctionInfo] = (),
) -> str:
    """Render a full schema as DDL text: tables, constraints, indexes, views, functions."""
    generated = datetime.now(timezone.utc).isoformat()
    sections = [f"-- Schema export for {schema}\n-- Generated: {generated}"]

    statements = [render_create_table(dialect, table) for table in tables]
    for table in tables:
        statements.extend(
            render_foreign_key(dialect, table.name, table.schema_name, fk)
            for fk in table.foreign_keys
        )
    for table in tables:
        statements.extend(
            render_create_index(dialect, table.name, table.schema_name, index)
            for index in table.indexes
            if not index.is_primary
        )
    statements.extend(ddl for ddl in (render_view(dialect, view) for view in views) if ddl)
    statements.extend(
        function.definition.strip().rstrip(";") for function in functions if function.definition
    )

    sections.extend(f"{statement};" for statement in statements)
    return "\n\n".join(sections) + "\n"
