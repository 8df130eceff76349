"""Exception hierarchy shared by the adapters, the compiler and the REST layer."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from common.errors.error_codes import ErrorCode, http_status_for_code


class PolyrestError(Exception):
    """Base class for every error this project raises on purpose."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """Initialize with a human-readable message and optional details."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def status_code(self) -> int:
        """HTTP status the REST layer reports for this error."""
        return http_status_for_code(self.code)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for a JSON error body."""
        payload: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class BackendConnectionError(PolyrestError, ConnectionError):
    """The backend cannot be reached, authenticated against, or was never connected."""

    code = ErrorCode.DB_CONNECTION_ERROR


class BackendQueryError(PolyrestError):
    """The backend rejected or failed to execute a statement.

    The backend's own message is passed through unchanged.
    """

    code = ErrorCode.DB_QUERY_ERROR

    def __init__(
        self,
        message: str,
        sql: Optional[str] = None,
        category: Optional[str] = None,
    ):
        """Initialize with the backend message, the failing SQL and its category."""
        details: Dict[str, Any] = {}
        if category:
            details["category"] = category
        super().__init__(message, details)
        self.sql = sql
        self.category = category


class UnsupportedOperatorError(PolyrestError):
    """A filter references an operator the compiler does not implement."""

    code = ErrorCode.UNSUPPORTED_OPERATOR

    def __init__(self, operator: str, supported: Iterable[str] = ()):
        """Initialize naming the offending operator."""
        supported_list = sorted(supported)
        message = f"Unsupported filter operator: '{operator}'"
        if supported_list:
            message += f". Supported operators: {', '.join(supported_list)}"
        super().__init__(message, {"operator": operator})
        self.operator = operator


class MissingPrimaryKeyError(PolyrestError):
    """A single-row operation targeted a table without a primary key."""

    code = ErrorCode.MISSING_PRIMARY_KEY

    def __init__(self, table: str):
        """Initialize naming the table."""
        super().__init__(f"Table '{table}' has no primary key", {"table": table})
        self.table = table


class NotFoundError(PolyrestError):
    """A single-row operation matched zero rows."""

    code = ErrorCode.NOT_FOUND


class ValidationError(PolyrestError):
    """A request was rejected before any SQL was issued."""

    code = ErrorCode.VALIDATION_ERROR


class UnknownProviderError(PolyrestError, ValueError):
    """The requested adapter provider is not registered."""

    code = ErrorCode.UNKNOWN_PROVIDER

    def __init__(self, provider: str, known: Iterable[str]):
        """Initialize listing the registered providers."""
        known_list = sorted(known)
        super().__init__(
            f"Unknown provider: '{provider}'. Available providers: "
            f"{', '.join(known_list) or '(none)'}",
            {"provider": provider, "available": known_list},
        )
        self.provider = provider
        self.known = known_list
