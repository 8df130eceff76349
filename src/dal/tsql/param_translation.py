"""Rewrite numbered ``@paramN`` placeholders into pymssql's positional ``%s`` form."""

import re
from typing import Any, Optional, Sequence, Tuple

PLACEHOLDER_PATTERN = re.compile(r"@param(\d+)\b")


def translate_tsql_params(
    sql: str, params: Optional[Sequence[Any]]
) -> Tuple[str, Optional[Tuple[Any, ...]]]:
    """Translate ``@paramN`` placeholders to pymssql ``%s`` placeholders.

    Placeholders must form the sequence ``@param0..@paramN`` without gaps; a
    placeholder may repeat, and its value is bound once per occurrence. Literal
    ``%`` characters are doubled when parameters are bound, since pymssql then
    applies ``%`` formatting to the statement.
    """
    params = list(params or [])
    matches = list(PLACEHOLDER_PATTERN.finditer(sql))
    if not matches:
        if params:
            raise ValueError("T-SQL query received params but no @paramN placeholders were found.")
        return sql, None

    indices = [int(match.group(1)) for match in matches]
    max_index = max(indices)
    if set(indices) != set(range(max_index + 1)):
        raise ValueError(
            f"Invalid placeholder sequence: expected @param0..@param{max_index} without gaps, "
            f"got {sorted(set(indices))}."
        )
    if max_index >= len(params):
        raise ValueError(
            f"Not enough parameters for placeholders: expected {max_index + 1}, got {len(params)}."
        )

    escaped = sql.replace("%", "%%")
    translated = PLACEHOLDER_PATTERN.sub("%s", escaped)
    return translated, tuple(params[index] for index in indices)
