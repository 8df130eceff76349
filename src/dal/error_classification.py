"""Classify driver exceptions and translate them into the error taxonomy."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from common.errors import BackendConnectionError, BackendQueryError

logger = logging.getLogger(__name__)

CONNECTION_CATEGORIES = frozenset({"connectivity", "auth"})

# Exact SQLSTATEs take precedence over their class prefix.
_SQLSTATE_CODES = {
    "42P01": "undefined_object",
    "42703": "undefined_object",
    "42704": "undefined_object",
    "42883": "undefined_object",
    "3F000": "undefined_object",
    "42501": "permission",
    "57014": "timeout",
    "40P01": "deadlock",
    "57P01": "connectivity",
    "57P02": "connectivity",
    "57P03": "connectivity",
}
_SQLSTATE_CLASSES = {
    "08": "connectivity",
    "28": "auth",
    "23": "constraint",
    "40": "deadlock",
    "42": "syntax",
}

# SQL Server error numbers as reported by pymssql (``exc.args[0]``).
_MSSQL_NUMBERS = {
    208: "undefined_object",
    207: "undefined_object",
    2812: "undefined_object",
    3701: "undefined_object",
    229: "permission",
    230: "permission",
    262: "permission",
    18456: "auth",
    4060: "auth",
    102: "syntax",
    156: "syntax",
    2627: "constraint",
    2601: "constraint",
    547: "constraint",
    515: "constraint",
    1205: "deadlock",
    1222: "timeout",
    20002: "connectivity",
    20003: "timeout",
    20009: "connectivity",
    20047: "connectivity",
}

# Message fallback, checked in order. "does not exist" comes first so object
# names such as network_log or timeout_ms cannot pick another category.
_MESSAGE_RULES = (
    (
        "undefined_object",
        re.compile(
            r"does not exist|invalid object name|invalid column name|undefined table"
            r"|cannot find the object"
        ),
    ),
    (
        "auth",
        re.compile(r"password authentication failed|login failed|no pg_hba\.conf entry"),
    ),
    ("permission", re.compile(r"permission denied|not authorized|access denied")),
    (
        "connectivity",
        re.compile(
            r"could not connect|connection refused|connection reset|connection is closed"
            r"|unable to connect|adaptive server is unavailable|connection failed"
            r"|network is unreachable|server closed the connection"
        ),
    ),
    ("timeout", re.compile(r"\btimeout\b|\btimed out\b")),
    (
        "constraint",
        re.compile(
            r"violates|duplicate key|unique constraint|foreign key constraint"
            r"|cannot insert the value null|conflicted with the"
        ),
    ),
    ("syntax", re.compile(r"syntax error|incorrect syntax|parse error")),
    ("deadlock", re.compile(r"\bdeadlock")),
)


@dataclass(frozen=True)
class ErrorClassification:
    """Provider-aware classification of a driver exception."""

    category: str
    provider: str

    @property
    def is_connection_failure(self) -> bool:
        """True when the backend could not be reached or authenticated against."""
        return self.category in CONNECTION_CATEGORIES


def classify_error(provider: str, exc: BaseException) -> str:
    """Classify an error into a provider-agnostic category."""
    return classify_error_info(provider, exc).category


def _driver_error(exc: BaseException) -> BaseException:
    # SQLAlchemy wraps the DB-API exception in ``orig``.
    orig = getattr(exc, "orig", None)
    return orig if isinstance(orig, BaseException) else exc


def _from_sqlstate(exc: BaseException) -> Optional[str]:
    sqlstate = getattr(exc, "sqlstate", None)
    if not isinstance(sqlstate, str) or len(sqlstate) != 5:
        return None
    return _SQLSTATE_CODES.get(sqlstate) or _SQLSTATE_CLASSES.get(sqlstate[:2])


def _from_mssql_number(exc: BaseException) -> Optional[str]:
    module_name = exc.__class__.__module__.lower()
    if not module_name.startswith(("pymssql", "_mssql")) or not exc.args:
        return None
    number = exc.args[0]
    if isinstance(number, int):
        return _MSSQL_NUMBERS.get(number)
    return None


def classify_error_info(provider: str, exc: BaseException) -> ErrorClassification:
    """Classify an error.

    Driver codes decide first (asyncpg SQLSTATE, pymssql error number), then the
    exception type, and only then message fragments.
    """
    provider = (provider or "unknown").lower()
    driver_exc = _driver_error(exc)

    category = _from_sqlstate(driver_exc) or _from_mssql_number(driver_exc)
    if category:
        return ErrorClassification(category, provider)

    module_name = driver_exc.__class__.__module__.lower()
    if isinstance(driver_exc, TimeoutError):
        return ErrorClassification("timeout", provider)
    if isinstance(driver_exc, OSError) and not module_name.startswith(
        ("asyncpg", "pymssql", "sqlalchemy")
    ):
        return ErrorClassification("connectivity", provider)

    message = str(driver_exc).lower()
    for rule_category, pattern in _MESSAGE_RULES:
        if pattern.search(message):
            return ErrorClassification(rule_category, provider)

    class_name = driver_exc.__class__.__name__.lower()
    if module_name.startswith("asyncpg") and (
        "connectiondoesnotexist" in class_name or "interfaceerror" in class_name
    ):
        return ErrorClassification("connectivity", provider)
    if class_name in {"connectionerror", "interfaceerror"}:
        return ErrorClassification("connectivity", provider)

    return ErrorClassification("unknown", provider)


def translate_driver_error(provider: str, exc: BaseException, sql: str | None = None):
    """Convert a driver exception into the matching taxonomy error.

    The backend message is passed through unchanged. Callers raise the result
    with ``from exc`` so the original traceback stays attached.
    """
    info = classify_error_info(provider, exc)
    logger.error(
        "Backend operation failed (provider=%s, category=%s): %s",
        provider,
        info.category,
        exc,
    )
    if info.is_connection_failure:
        return BackendConnectionError(str(exc), {"category": info.category})
    return BackendQueryError(str(exc), sql=sql, category=info.category)
