"""Unit tests for driver error classification and translation."""

import asyncpg
import pytest

from common.errors import BackendConnectionError, BackendQueryError
from dal.error_classification import classify_error, translate_driver_error


@pytest.mark.parametrize(
    "message, category",
    [
        ('syntax error at or near "SELEC"', "syntax"),
        ("Incorrect syntax near the keyword 'FROM'.", "syntax"),
        ('duplicate key value violates unique constraint "users_pkey"', "constraint"),
        ("Cannot insert the value NULL into column 'name'", "constraint"),
        ('password authentication failed for user "app"', "auth"),
        ("Login failed for user 'sa'.", "auth"),
        ("canceling statement due to statement timeout", "timeout"),
        ('relation "ghosts" does not exist', "undefined_object"),
        ("Invalid object name 'dbo.ghosts'.", "undefined_object"),
        ("deadlock detected", "deadlock"),
        ("something odd happened", "unknown"),
    ],
)
def test_classify_by_message(message, category):
    """Classify backend messages from both dialects."""
    assert classify_error("postgresql", RuntimeError(message)) == category


def test_os_errors_are_connectivity():
    """Treat socket failures as connectivity problems."""
    assert classify_error("tsql", ConnectionRefusedError("refused")) == "connectivity"


def test_timeout_errors_are_timeouts():
    """Classify TimeoutError by type."""
    assert classify_error("postgresql", TimeoutError()) == "timeout"


def test_translate_keeps_backend_message_for_query_errors():
    """Pass the backend message through unchanged on query errors."""
    error = translate_driver_error(
        "postgresql", RuntimeError('relation "t" does not exist'), "SELECT * FROM t"
    )
    assert isinstance(error, BackendQueryError)
    assert error.message == 'relation "t" does not exist'
    assert error.sql == "SELECT * FROM t"
    assert error.category == "undefined_object"


def test_translate_connection_failures():
    """Map connectivity and auth failures to BackendConnectionError."""
    error = translate_driver_error("tsql", RuntimeError("Adaptive Server is unavailable"))
    assert isinstance(error, BackendConnectionError)
    assert isinstance(error, ConnectionError)
    assert error.status_code == 503


@pytest.mark.parametrize(
    "message, category",
    [
        ('relation "network_log" does not exist', "undefined_object"),
        ('column "timeout_ms" does not exist', "undefined_object"),
        ("permission denied for table users", "permission"),
    ],
)
def test_object_names_do_not_steer_classification(message, category):
    """Classify by the failure, not by words inside quoted object names."""
    assert classify_error("postgresql", RuntimeError(message)) == category


@pytest.mark.parametrize(
    "message",
    [
        'relation "network_log" does not exist',
        'column "timeout_ms" does not exist',
        "permission denied for table users",
    ],
)
def test_catalog_and_privilege_failures_are_query_errors(message):
    """Keep missing objects and denied privileges out of the 503 path."""
    error = translate_driver_error("postgresql", RuntimeError(message))
    assert isinstance(error, BackendQueryError)
    assert error.status_code == 500


@pytest.mark.parametrize(
    "exc_type, category",
    [
        (asyncpg.exceptions.UndefinedTableError, "undefined_object"),
        (asyncpg.exceptions.UndefinedColumnError, "undefined_object"),
        (asyncpg.exceptions.InsufficientPrivilegeError, "permission"),
        (asyncpg.exceptions.InvalidPasswordError, "auth"),
        (asyncpg.exceptions.UniqueViolationError, "constraint"),
        (asyncpg.exceptions.DeadlockDetectedError, "deadlock"),
        (asyncpg.exceptions.QueryCanceledError, "timeout"),
        (asyncpg.exceptions.PostgresSyntaxError, "syntax"),
    ],
)
def test_asyncpg_errors_classified_by_sqlstate(exc_type, category):
    """Use the SQLSTATE carried by asyncpg exceptions before the message."""
    assert classify_error("postgresql", exc_type("connection refused")) == category


class _SqlstateError(Exception):
    def __init__(self, sqlstate, message):
        super().__init__(message)
        self.sqlstate = sqlstate


def test_sqlstate_class_08_is_connectivity():
    """Map SQLSTATE class 08 to a connection failure."""
    error = translate_driver_error("postgresql", _SqlstateError("08006", "server gone"))
    assert isinstance(error, BackendConnectionError)


class _MssqlError(Exception):
    pass


_MssqlError.__module__ = "pymssql.exceptions"


@pytest.mark.parametrize(
    "number, category",
    [
        (208, "undefined_object"),
        (229, "permission"),
        (18456, "auth"),
        (2627, "constraint"),
        (1205, "deadlock"),
        (20009, "connectivity"),
    ],
)
def test_pymssql_errors_classified_by_number(number, category):
    """Use the SQL Server error number pymssql reports as the first argument."""
    exc = _MssqlError(number, b"network timeout while reading")
    assert classify_error("tsql", exc) == category


def test_wrapped_driver_error_is_unwrapped():
    """Classify the DB-API error a SQLAlchemy wrapper carries in ``orig``."""

    class _Wrapper(Exception):
        def __init__(self, orig):
            super().__init__(str(orig))
            self.orig = orig

    wrapped = _Wrapper(_SqlstateError("42P01", "connection reset"))
    assert classify_error("postgresql", wrapped) == "undefined_object"
