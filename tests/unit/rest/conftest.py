"""Fakes shared by the REST layer tests."""

from typing import Any, Callable, List, Optional, Sequence, Tuple

import pytest

from dal.dialect import POSTGRESQL, TSQL, SqlDialect
from schema.result import QueryResult
from schema.table import ColumnInfo, TableInfo


class FakeAdapter:
    """Records every statement and answers through a responder callable."""

    def __init__(self, dialect: SqlDialect = POSTGRESQL, tables: Sequence[TableInfo] = ()):
        self.provider = dialect.name
        self.dialect = dialect
        self.default_schema = "dbo" if dialect is TSQL else "public"
        self.tables = {table.name: table for table in tables}
        self.calls: List[Tuple[str, List[Any]]] = []
        self.responder: Callable[[str, List[Any]], QueryResult] = lambda sql, params: (
            QueryResult()
        )
        self.healthy = True
        self.introspected: List[str] = []

    def schema_or_default(self, schema: Optional[str]) -> str:
        return schema or self.default_schema

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        bound = list(params or [])
        self.calls.append((sql, bound))
        return self.responder(sql, bound)

    async def query_one(self, sql: str, params: Optional[Sequence[Any]] = None):
        return (await self.query(sql, params)).first()

    async def get_table(self, name: str, schema: Optional[str] = None):
        self.introspected.append(name)
        return self.tables.get(name)

    async def get_primary_keys(self, table: str, schema: Optional[str] = None) -> List[str]:
        info = self.tables.get(table)
        return list(info.primary_keys) if info else []

    async def get_tables(self, schema: Optional[str] = None):
        return [self.tables[name] for name in sorted(self.tables)]

    async def health_check(self) -> bool:
        return self.healthy


@pytest.fixture
def users_table() -> TableInfo:
    return TableInfo(
        schema="public",
        name="users",
        columns=[
            ColumnInfo(name="id", data_type="integer", nullable=False, is_identity=True),
            ColumnInfo(name="name", data_type="character varying", nullable=False, max_length=80),
            ColumnInfo(name="age", data_type="integer"),
            ColumnInfo(name="created_at", data_type="timestamp with time zone"),
        ],
        primary_keys=["id"],
    )


@pytest.fixture
def audit_table() -> TableInfo:
    return TableInfo(
        schema="public",
        name="audit_log",
        columns=[ColumnInfo(name="message", data_type="text", nullable=False)],
    )


@pytest.fixture
def fake_adapter(users_table, audit_table) -> FakeAdapter:
    return FakeAdapter(POSTGRESQL, [users_table, audit_table])


@pytest.fixture
def tsql_adapter(users_table, audit_table) -> FakeAdapter:
    return FakeAdapter(TSQL, [users_table, audit_table])
