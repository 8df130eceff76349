"""Canonical, backend-agnostic data model."""

from .catalog import FunctionInfo, ParameterInfo, SchemaInfo, ViewInfo
from .change import ChangeEvent, ChangeOperation
from .connection import ConnectionConfig
from .result import FieldInfo, QueryResult, Row, RowValue
from .security import PolicyOperation, SecurityPolicy
from .table import (
    ColumnInfo,
    ForeignKeyInfo,
    IndexInfo,
    ReferentialAction,
    TableAlteration,
    TableInfo,
)

__all__ = [
    "ChangeEvent",
    "ChangeOperation",
    "ColumnInfo",
    "ConnectionConfig",
    "FieldInfo",
    "ForeignKeyInfo",
    "FunctionInfo",
    "IndexInfo",
    "ParameterInfo",
    "PolicyOperation",
    "QueryResult",
    "ReferentialAction",
    "Row",
    "RowValue",
    "SchemaInfo",
    "SecurityPolicy",
    "TableAlteration",
    "TableInfo",
    "ViewInfo",
]
