"""Common error taxonomy helpers."""

from common.errors.error_codes import ErrorCode, error_code_group, http_status_for_code
from common.errors.exceptions import (
    BackendConnectionError,
    BackendQueryError,
    MissingPrimaryKeyError,
    NotFoundError,
    PolyrestError,
    UnknownProviderError,
    UnsupportedOperatorError,
    ValidationError,
)

__all__ = [
    "BackendConnectionError",
    "BackendQueryError",
    "ErrorCode",
    "MissingPrimaryKeyError",
    "NotFoundError",
    "PolyrestError",
    "UnknownProviderError",
    "UnsupportedOperatorError",
    "ValidationError",
    "error_code_group",
    "http_status_for_code",
]
