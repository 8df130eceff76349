"""Helpers for building result field descriptors."""

from __future__ import annotations

from typing import Any, List, Optional

from dal.util.logical_types import (
    logical_type_from_asyncpg_oid,
    logical_type_from_cursor_description,
    logical_type_from_db_type,
)
from schema.result import FieldInfo


def _asyncpg_field(attr: Any) -> FieldInfo:
    attr_type = getattr(attr, "type", None)
    oid = getattr(attr_type, "oid", None)
    if oid is not None:
        data_type = logical_type_from_asyncpg_oid(oid)
    else:
        data_type = logical_type_from_db_type(getattr(attr_type, "name", None))
    return FieldInfo(name=getattr(attr, "name", None) or str(attr), data_type=data_type)


def fields_from_asyncpg_attributes(attrs: List[Any]) -> List[FieldInfo]:
    """Build field descriptors from asyncpg statement attributes.

    Result-set nullability is not exposed by the protocol, so every field
    reports ``nullable=True``.
    """
    return [_asyncpg_field(attr) for attr in attrs or []]


def fields_from_cursor_description(description: Optional[list]) -> List[FieldInfo]:
    """Build field descriptors from DB-API cursor description tuples.

    The seventh description slot (``null_ok``) is honoured when the driver
    fills it in; pymssql leaves it unset, so the default stays permissive.
    """
    fields: List[FieldInfo] = []
    for entry in description or []:
        name = (
            entry[0] if isinstance(entry, (list, tuple)) and entry else getattr(entry, "name", None)
        )
        nullable = True
        if isinstance(entry, (list, tuple)) and len(entry) > 6 and entry[6] is not None:
            nullable = bool(entry[6])
        fields.append(
            FieldInfo(
                name=name or "",
                data_type=logical_type_from_cursor_description(entry),
                nullable=nullable,
            )
        )
    return fields
