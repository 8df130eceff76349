"""Driver type metadata folded into the small vocabulary reported in FieldInfo."""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

LogicalType = str

UNKNOWN: LogicalType = "unknown"

# First match wins: temporal names contain "time" and must be tested before
# the integer/string fragments ("datetimeoffset", "timestamptz").
_NAME_RULES: Tuple[Tuple[LogicalType, Tuple[str, ...]], ...] = (
    ("string", ("interval",)),
    ("timestamp", ("timestamp", "datetime", "smalldatetime")),
    ("date", ("date",)),
    ("time", ("time",)),
    ("boolean", ("bool", "bit")),
    ("uuid", ("uuid", "uniqueidentifier")),
    ("json", ("json",)),
    ("numeric", ("numeric", "decimal", "money")),
    ("float", ("double", "float", "real")),
    ("integer", ("int", "serial")),
    ("binary", ("binary", "bytea", "image", "rowversion")),
    ("string", ("char", "text", "string", "xml", "sysname")),
)

_ASYNCPG_OIDS: Dict[LogicalType, Tuple[int, ...]] = {
    "boolean": (16,),
    "binary": (17,),
    "integer": (20, 21, 23),
    "float": (700, 701),
    "numeric": (1700,),
    "date": (1082,),
    "time": (1083, 1266),
    "timestamp": (1114, 1184),
    "json": (114, 3802),
    "uuid": (2950,),
    "string": (18, 25, 1042, 1043),
}
_OID_TO_LOGICAL = {oid: kind for kind, oids in _ASYNCPG_OIDS.items() for oid in oids}

# pymssql DB-API type objects compare equal to these codes.
_PYMSSQL_TYPE_CODES = {
    1: "string",
    2: "binary",
    3: "numeric",
    4: "timestamp",
    5: "numeric",
}


def logical_type_from_db_type(db_type: Optional[str]) -> LogicalType:
    """Classify a backend type name from either dialect."""
    if not db_type:
        return UNKNOWN
    normalized = db_type.strip().lower()
    for kind, fragments in _NAME_RULES:
        if kind == "date" and normalized != "date" and not normalized.endswith(" date"):
            continue
        if kind == "time" and not normalized.startswith("time"):
            continue
        if kind == "boolean" and normalized != "bit" and "bool" not in normalized:
            continue
        if any(fragment in normalized for fragment in fragments):
            return kind
    return UNKNOWN


def logical_type_from_asyncpg_oid(oid: int) -> LogicalType:
    return _OID_TO_LOGICAL.get(int(oid), UNKNOWN)


def logical_type_from_cursor_description(desc_entry: Any) -> LogicalType:
    """Classify one DB-API ``cursor.description`` entry.

    pymssql reports integer type codes; drivers that report a type name are
    classified by name.
    """
    if desc_entry is None:
        return UNKNOWN
    if hasattr(desc_entry, "type_code"):
        type_code = desc_entry.type_code
    elif isinstance(desc_entry, (list, tuple)) and len(desc_entry) > 1:
        type_code = desc_entry[1]
    else:
        return UNKNOWN
    if isinstance(type_code, str):
        return logical_type_from_db_type(type_code)
    if isinstance(type_code, int):
        return _PYMSSQL_TYPE_CODES.get(type_code, UNKNOWN)
    return UNKNOWN
