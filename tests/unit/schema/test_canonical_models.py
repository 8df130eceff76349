"""Unit tests for the canonical table, result and connection models."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from schema import (
    ColumnInfo,
    ConnectionConfig,
    ForeignKeyInfo,
    QueryResult,
    ReferentialAction,
    TableAlteration,
    TableInfo,
)


def test_table_accepts_schema_alias_and_field_name():
    """Populate schema_name from either the alias or the field name."""
    by_alias = TableInfo(schema="public", name="users")
    by_name = TableInfo(schema_name="dbo", name="users")
    assert by_alias.schema_name == "public"
    assert by_name.schema_name == "dbo"
    assert by_alias.column("missing") is None


def test_primary_keys_must_name_columns():
    """Reject primary keys that are not columns of the table."""
    with pytest.raises(PydanticValidationError, match="not columns"):
        TableInfo(
            schema="public",
            name="users",
            columns=[ColumnInfo(name="id", data_type="integer")],
            primary_keys=["uuid"],
        )


def test_foreign_key_columns_must_pair_up():
    """Reject foreign keys with unequal column lists."""
    with pytest.raises(PydanticValidationError, match="pairs 2 columns"):
        ForeignKeyInfo(
            name="fk",
            columns=["tenant_id", "customer_id"],
            referenced_table="customers",
            referenced_columns=["id"],
        )


def test_foreign_key_defaults_to_no_action():
    """Default both referential actions to NO ACTION."""
    fk = ForeignKeyInfo(
        name="fk", columns=["a"], referenced_table="t", referenced_columns=["id"]
    )
    assert fk.on_delete == ReferentialAction.NO_ACTION
    assert fk.on_update.value == "NO ACTION"


def test_alteration_emptiness():
    """Report empty only when no change is requested."""
    assert TableAlteration().is_empty()
    assert not TableAlteration(drop_columns=["legacy"]).is_empty()


def test_query_result_first():
    """Return the first row or None."""
    assert QueryResult().first() is None
    assert QueryResult(rows=[{"id": 1}, {"id": 2}], row_count=2).first() == {"id": 1}


def test_connection_config_from_env(monkeypatch):
    """Read DB_* variables and fall back to defaults."""
    monkeypatch.setenv("DB_HOST", "db.internal")
    monkeypatch.setenv("DB_PORT", "1433")
    monkeypatch.setenv("DB_NAME", "app")
    monkeypatch.setenv("DB_SSL", "true")
    monkeypatch.delenv("DB_USER", raising=False)
    monkeypatch.delenv("DB_MAX_CONNECTIONS", raising=False)

    config = ConnectionConfig.from_env()

    assert config.host == "db.internal"
    assert config.port == 1433
    assert config.database == "app"
    assert config.ssl is True
    assert config.user is None
    assert config.max_connections == 20
