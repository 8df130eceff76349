"""Bring JSON-shaped parameter values in line with asyncpg's binary codecs.

asyncpg encodes parameters in binary and insists on the Python type that
matches each declared parameter type: ``date`` wants a ``datetime.date``,
``jsonb`` wants a JSON string, ``text`` wants ``str``. REST callers only ever
hold JSON scalars, so each value is converted against the type the server
inferred for its placeholder when the statement was prepared.
"""

from __future__ import annotations

import json
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Sequence, Tuple

from common.errors import ValidationError


def _parse_timestamp(value: str) -> datetime:
    # fromisoformat only learned the trailing "Z" in 3.11.
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _parse_time(value: str) -> time:
    return time.fromisoformat(value.strip())


def _parse_date(value: str) -> date:
    text = value.strip()
    if "T" in text or " " in text:
        return _parse_timestamp(text).date()
    return date.fromisoformat(text)


def _parse_decimal(value: str) -> Decimal:
    try:
        return Decimal(value.strip())
    except InvalidOperation as exc:
        raise ValueError(f"invalid numeric literal {value!r}") from exc


# Conversions applied to ``str`` values, keyed by pg_type name.
_FROM_STRING: Dict[str, Callable[[str], Any]] = {
    "date": _parse_date,
    "timestamp": _parse_timestamp,
    "timestamptz": _parse_timestamp,
    "time": _parse_time,
    "timetz": _parse_time,
    "numeric": _parse_decimal,
    "int2": int,
    "int4": int,
    "int8": int,
    "float4": float,
    "float8": float,
}

_JSON_TYPES = frozenset({"json", "jsonb"})
_TEXT_TYPES = frozenset({"text", "varchar", "bpchar", "name", "citext"})


def coerce_value(type_name: str, value: Any) -> Any:
    """Convert one value for a parameter of pg_type ``type_name``.

    Raises ValueError when a string cannot be read as the declared type.
    """
    if value is None:
        return None
    if type_name in _JSON_TYPES:
        return value if isinstance(value, str) else json.dumps(value)
    if type_name in _TEXT_TYPES:
        if isinstance(value, bool):
            return "true" if value else "false"
        return value if isinstance(value, str) else str(value)
    if isinstance(value, str):
        convert = _FROM_STRING.get(type_name)
        if convert is not None:
            return convert(value)
    if type_name == "numeric" and isinstance(value, float):
        return Decimal(repr(value))
    return value


def coerce_params(parameter_types: Sequence[Any], params: Sequence[Any]) -> Tuple[Any, ...]:
    """Coerce ``params`` against the ``asyncpg.types.Type`` list of a prepared statement."""
    coerced = []
    for index, value in enumerate(params):
        if index >= len(parameter_types):
            coerced.append(value)
            continue
        type_name = getattr(parameter_types[index], "name", "")
        try:
            coerced.append(coerce_value(type_name, value))
        except ValueError as exc:
            raise ValidationError(
                f"Parameter ${index + 1} is not a valid {type_name} value: {value!r}",
                {"parameter": index + 1, "type": type_name},
            ) from exc
    return tuple(coerced)
