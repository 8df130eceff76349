"""Dialect facts consumed by the query compiler and the DDL renderer.

A dialect is pure data plus a few string helpers: identifier quoting,
positional placeholders, pagination syntax and the clause that returns the
affected row from a mutation. Nothing here touches a connection.
"""

from dataclasses import dataclass
from typing import Literal, Optional

PaginationStyle = Literal["limit_offset", "offset_fetch"]
ReturningStyle = Literal["returning", "output"]


@dataclass(frozen=True)
class SqlDialect:
    """Syntax facts for one SQL dialect family."""

    name: str
    sqlglot_dialect: str
    quote_open: str
    quote_close: str
    placeholder_prefix: str
    placeholder_base: int
    pagination_style: PaginationStyle
    returning_style: ReturningStyle
    # Offset pagination is only valid after ORDER BY.
    requires_order_for_offset: bool = False
    native_ilike: bool = False
    supports_is_boolean: bool = False
    true_literal: str = "TRUE"
    false_literal: str = "FALSE"

    def quote_identifier(self, name: str) -> str:
        """Quote a single identifier, doubling any embedded closing quote."""
        escaped = name.replace(self.quote_close, self.quote_close * 2)
        return f"{self.quote_open}{escaped}{self.quote_close}"

    def quote_qualified(self, name: str, schema: Optional[str] = None) -> str:
        """Quote ``schema.name`` part by part; a missing schema is omitted."""
        if schema:
            return f"{self.quote_identifier(schema)}.{self.quote_identifier(name)}"
        return self.quote_identifier(name)

    def placeholder(self, index: int) -> str:
        """Return the placeholder for the parameter at 0-based ``index``."""
        if index < 0:
            raise ValueError(f"Invalid placeholder index: {index}")
        return f"{self.placeholder_prefix}{index + self.placeholder_base}"

    def paginate(self, limit: int, offset: int) -> str:
        """Return the pagination clause for ``limit`` rows after ``offset``."""
        if self.pagination_style == "offset_fetch":
            return f"OFFSET {offset} ROWS FETCH NEXT {limit} ROWS ONLY"
        return f"LIMIT {limit} OFFSET {offset}"

    def output_clause(self, pseudo_table: str = "INSERTED") -> str:
        """Return the pre-VALUES/WHERE row-return clause, empty if unsupported."""
        if self.returning_style == "output":
            return f"OUTPUT {pseudo_table}.*"
        return ""

    def returning_clause(self) -> str:
        """Return the trailing row-return clause, empty if unsupported."""
        if self.returning_style == "returning":
            return "RETURNING *"
        return ""

    def boolean_literal(self, value: bool) -> str:
        """Render a boolean constant in this dialect."""
        return self.true_literal if value else self.false_literal


POSTGRESQL = SqlDialect(
    name="postgresql",
    sqlglot_dialect="postgres",
    quote_open='"',
    quote_close='"',
    placeholder_prefix="$",
    placeholder_base=1,
    pagination_style="limit_offset",
    returning_style="returning",
    native_ilike=True,
    supports_is_boolean=True,
)

TSQL = SqlDialect(
    name="tsql",
    sqlglot_dialect="tsql",
    quote_open="[",
    quote_close="]",
    placeholder_prefix="@param",
    placeholder_base=0,
    pagination_style="offset_fetch",
    returning_style="output",
    requires_order_for_offset=True,
    true_literal="1",
    false_literal="0",
)

DIALECTS: dict[str, SqlDialect] = {
    POSTGRESQL.name: POSTGRESQL,
    TSQL.name: TSQL,
}


def dialect_for(name: str) -> SqlDialect:
    """Look up dialect facts by name or provider alias."""
    from dal.util.env import normalize_provider

    normalized = normalize_provider(name)
    try:
        return DIALECTS[normalized]
    except KeyError:
        allowed = ", ".join(sorted(DIALECTS))
        raise ValueError(f"Unknown dialect: '{name}'. Allowed values: {allowed}")
