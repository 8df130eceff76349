"""Shared utilities for SQL dialect handling."""

from typing import List, Optional

from sqlglot.dialects.dialect import Dialect
from sqlglot.errors import TokenError
from sqlglot.tokens import Token, TokenType

# BEGIN followed by one of these opens a transaction, not a block.
_TRANSACTION_WORDS = {"TRANSACTION", "TRAN", "WORK"}


def normalize_sqlglot_dialect(dialect: Optional[str]) -> str:
    """Normalize a dialect name for use with sqlglot.

    Args:
        dialect: The dialect name to normalize (e.g., 'PostgreSQL', 'mssql').

    Returns:
        A normalized lowercase string compatible with sqlglot.
    """
    if not dialect:
        return "postgres"

    d = dialect.lower().strip()

    # Map common aliases to sqlglot names
    mapping = {
        "postgresql": "postgres",
        "pg": "postgres",
        "mssql": "tsql",
        "sqlserver": "tsql",
        "azuresql": "tsql",
        "t-sql": "tsql",
    }

    return mapping.get(d, d)


def _opens_block(tokens: List[Token], index: int) -> bool:
    token = tokens[index]
    if token.token_type == TokenType.CASE:
        return True
    if token.token_type != TokenType.BEGIN:
        return False
    following = tokens[index + 1] if index + 1 < len(tokens) else None
    if following is None or following.token_type == TokenType.SEMICOLON:
        return False
    return following.text.upper() not in _TRANSACTION_WORDS


def split_sql_statements(sql: str, dialect: Optional[str] = None) -> List[str]:
    """Split a script into statements at top-level semicolons.

    Semicolons inside string literals, dollar-quoted bodies and BEGIN...END or
    CASE...END blocks do not split. Chunks holding only comments are dropped.

    Raises:
        ValueError: If the script cannot be tokenized (e.g. an unterminated string).
    """
    try:
        tokens = Dialect.get_or_raise(normalize_sqlglot_dialect(dialect)).tokenize(sql)
    except TokenError as exc:
        raise ValueError(f"Unable to tokenize SQL script: {exc}") from exc

    statements: List[str] = []
    start = 0
    depth = 0
    has_tokens = False
    for index, token in enumerate(tokens):
        if token.token_type == TokenType.SEMICOLON and depth == 0:
            chunk = sql[start : token.start].strip()
            if has_tokens and chunk:
                statements.append(chunk)
            start = token.end + 1
            has_tokens = False
            continue
        has_tokens = True
        if _opens_block(tokens, index):
            depth += 1
        elif token.token_type == TokenType.END and depth > 0:
            depth -= 1

    tail = sql[start:].strip()
    if has_tokens and tail:
        statements.append(tail)
    return statements
