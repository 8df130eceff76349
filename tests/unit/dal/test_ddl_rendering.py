"""Unit tests for DDL text generation in both dialects."""

import pytest

from dal.ddl import (
    render_alter_table,
    render_create_index,
    render_create_table,
    render_drop_table,
    render_foreign_key,
    render_schema_export,
)
from dal.dialect import POSTGRESQL, TSQL
from schema.catalog import ViewInfo
from schema.table import (
    ColumnInfo,
    ForeignKeyInfo,
    IndexInfo,
    ReferentialAction,
    TableAlteration,
    TableInfo,
)


@pytest.fixture
def orders():
    return TableInfo(
        schema="app",
        name="orders",
        columns=[
            ColumnInfo(name="id", data_type="integer", nullable=False, is_identity=True),
            ColumnInfo(name="total", data_type="numeric", precision=10, scale=2, nullable=False),
            ColumnInfo(name="status", data_type="varchar", max_length=20, default_value="'new'"),
            ColumnInfo(name="customer_id", data_type="integer"),
        ],
        primary_keys=["id"],
        foreign_keys=[
            ForeignKeyInfo(
                name="fk_orders_customer",
                columns=["customer_id"],
                referenced_table="customers",
                referenced_columns=["id"],
                on_delete=ReferentialAction.SET_NULL,
            )
        ],
        indexes=[
            IndexInfo(name="orders_pkey", columns=["id"], is_unique=True, is_primary=True),
            IndexInfo(name="ix_orders_status", columns=["status"]),
        ],
    )


def test_create_table_postgres(orders):
    """Render identity, precision, defaults and the primary key for PostgreSQL."""
    assert render_create_table(POSTGRESQL, orders) == (
        'CREATE TABLE "app"."orders" (\n'
        '  "id" integer GENERATED BY DEFAULT AS IDENTITY NOT NULL,\n'
        '  "total" numeric(10,2) NOT NULL,\n'
        "  \"status\" varchar(20) DEFAULT 'new',\n"
        '  "customer_id" integer,\n'
        '  PRIMARY KEY ("id")\n'
        ")"
    )


def test_create_table_tsql_uses_identity(orders):
    """Render IDENTITY(1,1) and bracket quoting for T-SQL."""
    sql = render_create_table(TSQL, orders)
    assert sql.startswith("CREATE TABLE [app].[orders] (")
    assert "[id] integer IDENTITY(1,1) NOT NULL" in sql
    assert "PRIMARY KEY ([id])" in sql


def test_tsql_max_length_renders_max():
    """Render unbounded T-SQL strings as (max)."""
    table = TableInfo(
        schema="dbo",
        name="notes",
        columns=[ColumnInfo(name="body", data_type="nvarchar", max_length=-1)],
    )
    assert "[body] nvarchar(max)" in render_create_table(TSQL, table)


def test_foreign_key_defaults_to_table_schema(orders):
    """Reference the owning schema when the key names none."""
    assert render_foreign_key(POSTGRESQL, "orders", "app", orders.foreign_keys[0]) == (
        'ALTER TABLE "app"."orders" ADD CONSTRAINT "fk_orders_customer" '
        'FOREIGN KEY ("customer_id") REFERENCES "app"."customers" ("id") '
        "ON DELETE SET NULL ON UPDATE NO ACTION"
    )


def test_create_index():
    """Render unique and plain indexes."""
    index = IndexInfo(name="ux_email", columns=["email"], is_unique=True)
    assert render_create_index(TSQL, "users", "dbo", index) == (
        "CREATE UNIQUE INDEX [ux_email] ON [dbo].[users] ([email])"
    )


def test_drop_table_cascade_only_on_postgres():
    """Append CASCADE only where the dialect supports it."""
    assert render_drop_table(POSTGRESQL, "t", "public", cascade=True) == (
        'DROP TABLE IF EXISTS "public"."t" CASCADE'
    )
    assert render_drop_table(TSQL, "t", "dbo", cascade=True) == "DROP TABLE IF EXISTS [dbo].[t]"


def test_alter_table_postgres_is_one_statement():
    """Combine every change into one PostgreSQL ALTER TABLE."""
    alteration = TableAlteration(
        add_columns=[ColumnInfo(name="note", data_type="text")],
        drop_columns=["legacy"],
        modify_columns=[ColumnInfo(name="total", data_type="bigint", nullable=False)],
    )
    assert render_alter_table(POSTGRESQL, "orders", "public", alteration) == [
        'ALTER TABLE "public"."orders" ADD COLUMN "note" text, DROP COLUMN "legacy", '
        'ALTER COLUMN "total" TYPE bigint, ALTER COLUMN "total" SET NOT NULL'
    ]


def test_alter_table_tsql_is_one_statement_per_change():
    """Issue one T-SQL statement per change."""
    alteration = TableAlteration(
        add_columns=[ColumnInfo(name="note", data_type="nvarchar", max_length=200)],
        drop_columns=["legacy"],
        modify_columns=[ColumnInfo(name="total", data_type="bigint")],
    )
    assert render_alter_table(TSQL, "orders", "dbo", alteration) == [
        "ALTER TABLE [dbo].[orders] ADD [note] nvarchar(200)",
        "ALTER TABLE [dbo].[orders] DROP COLUMN [legacy]",
        "ALTER TABLE [dbo].[orders] ALTER COLUMN [total] bigint NULL",
    ]


def test_schema_export_orders_sections(orders):
    """Emit tables, then constraints, then secondary indexes, then views."""
    view = ViewInfo(schema="app", name="open_orders", definition="SELECT * FROM orders;")
    text = render_schema_export(POSTGRESQL, "app", [orders], views=[view])

    assert text.startswith("-- Schema export for app")
    create = text.index("CREATE TABLE")
    constraint = text.index("ADD CONSTRAINT")
    index = text.index('CREATE INDEX "ix_orders_status"')
    view_at = text.index('CREATE VIEW "app"."open_orders" AS\nSELECT * FROM orders;')
    assert create < constraint < index < view_at
    assert "orders_pkey" not in text
