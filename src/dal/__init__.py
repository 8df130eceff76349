"""Data Abstraction Layer (DAL).

Backend adapters behind one contract (``DatabaseAdapter``), the registry that
selects them, and the shared introspection, DDL and change-feed machinery.
"""

from dal.adapter import DatabaseAdapter, DatabaseStats, TransactionContext
from dal.dialect import POSTGRESQL, TSQL, SqlDialect, dialect_for
from dal.registry import AdapterRegistry, create_adapter_from_env, default_registry

__all__ = [
    "AdapterRegistry",
    "DatabaseAdapter",
    "DatabaseStats",
    "POSTGRESQL",
    "SqlDialect",
    "TSQL",
    "TransactionContext",
    "create_adapter_from_env",
    "default_registry",
    "dialect_for",
]
