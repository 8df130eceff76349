"""PostgreSQL adapter backed by asyncpg."""

from .adapter import PostgresAdapter, PostgresTransaction

__all__ = ["PostgresAdapter", "PostgresTransaction"]
