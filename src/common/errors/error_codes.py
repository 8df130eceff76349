"""Canonical error-code taxonomy for adapter and REST flows."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Bounded canonical error codes for external contracts and logs."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNSUPPORTED_OPERATOR = "UNSUPPORTED_OPERATOR"
    MISSING_PRIMARY_KEY = "MISSING_PRIMARY_KEY"
    NOT_FOUND = "NOT_FOUND"
    UNKNOWN_PROVIDER = "UNKNOWN_PROVIDER"
    DB_CONNECTION_ERROR = "DB_CONNECTION_ERROR"
    DB_QUERY_ERROR = "DB_QUERY_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


_CODE_STATUS: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.UNSUPPORTED_OPERATOR: 400,
    ErrorCode.MISSING_PRIMARY_KEY: 404,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.UNKNOWN_PROVIDER: 500,
    ErrorCode.DB_CONNECTION_ERROR: 503,
    ErrorCode.DB_QUERY_ERROR: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}

_CODE_GROUPS: dict[ErrorCode, str] = {
    ErrorCode.VALIDATION_ERROR: "CLIENT",
    ErrorCode.UNSUPPORTED_OPERATOR: "CLIENT",
    ErrorCode.MISSING_PRIMARY_KEY: "CLIENT",
    ErrorCode.NOT_FOUND: "CLIENT",
    ErrorCode.UNKNOWN_PROVIDER: "CONFIG",
    ErrorCode.DB_CONNECTION_ERROR: "DB",
    ErrorCode.DB_QUERY_ERROR: "DB",
    ErrorCode.INTERNAL_ERROR: "INTERNAL",
}


def parse_error_code(
    value: Any,
    *,
    fallback: ErrorCode = ErrorCode.INTERNAL_ERROR,
) -> ErrorCode:
    """Parse string-like values to `ErrorCode` with safe fallback."""
    if isinstance(value, ErrorCode):
        return value
    if value is None:
        return fallback
    try:
        return ErrorCode(str(value).strip())
    except ValueError:
        return fallback


def http_status_for_code(value: Any) -> int:
    """Return the HTTP status the REST layer uses for an error code."""
    return _CODE_STATUS.get(parse_error_code(value), 500)


def error_code_group(value: Any) -> str:
    """Return a stable coarse grouping for log dimensions."""
    return _CODE_GROUPS.get(parse_error_code(value), "INTERNAL")
