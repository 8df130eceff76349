"""Query-string filter grammar.

Every non-reserved key is a column filter whose value reads ``<operator>.<value>``,
for example ``age=gte.18`` or ``name=eq.Alice``. A value with no dot, or whose
text before the first dot is not a plain word, is an equality operand, so
``name=Alice`` and ``name=eq.Alice`` are the same filter. A plain word that is not
an operator (``age=between.5``) is rejected; dotted equality operands need an
explicit ``eq.`` prefix. Reserved keys shape the result set instead:

- ``select=id,name`` picks columns;
- ``order=created_at.desc,name`` sorts, ascending by default;
- ``limit`` and ``offset`` page through rows.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from common.errors import UnsupportedOperatorError, ValidationError

OPERATORS = ("eq", "neq", "gt", "gte", "lt", "lte", "like", "ilike", "in", "is")
RESERVED_KEYS = frozenset({"select", "order", "limit", "offset"})

# Operand of ``is`` that selects non-null rows.
NOT_NULL = "not.null"

_NUMBER = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_INTEGER = re.compile(r"^[+-]?\d+$")
_OPERATOR_WORD = re.compile(r"^[a-z]+$")

QueryParams = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]


@dataclass(frozen=True)
class Predicate:
    """One ``column <operator> value`` condition."""

    column: str
    operator: str
    value: Any = None


@dataclass(frozen=True)
class OrderTerm:
    """One ORDER BY term."""

    column: str
    descending: bool = False


@dataclass
class FilterQuery:
    """Parsed form of a table query string."""

    select: Optional[List[str]] = None
    where: List[Predicate] = field(default_factory=list)
    order: List[OrderTerm] = field(default_factory=list)
    limit: Optional[int] = None
    offset: Optional[int] = None


def coerce_value(raw: Any) -> Any:
    """Coerce query-string text: null, booleans, then numbers, else the text itself."""
    if not isinstance(raw, str):
        return raw
    if raw == "null":
        return None
    if raw == "true":
        return True
    if raw == "false":
        return False
    if _NUMBER.match(raw):
        if _INTEGER.match(raw):
            return int(raw)
        return float(raw)
    return raw


def split_list_operand(raw: str) -> List[Any]:
    """Split an ``in`` operand on commas, accepting optional surrounding parentheses."""
    text = raw.strip()
    if text.startswith("(") and text.endswith(")"):
        text = text[1:-1]
    if not text.strip():
        return []
    return [coerce_value(item.strip()) for item in text.split(",")]


def parse_filter(column: str, raw: Any) -> Predicate:
    """Parse one ``column=<operator>.<value>`` pair."""
    if isinstance(raw, (list, tuple)):
        return Predicate(column, "in", [coerce_value(item) for item in raw])

    text = str(raw)
    operator, separator, operand = text.partition(".")
    if not separator or not _OPERATOR_WORD.match(operator):
        return Predicate(column, "eq", coerce_value(text))
    if operator not in OPERATORS:
        raise UnsupportedOperatorError(operator, OPERATORS)
    if operator == "in":
        return Predicate(column, "in", split_list_operand(operand))
    if operator == "is":
        if operand == NOT_NULL:
            return Predicate(column, "is", NOT_NULL)
        return Predicate(column, "is", coerce_value(operand))
    return Predicate(column, operator, coerce_value(operand))


def parse_select(raw: str) -> Optional[List[str]]:
    """Parse ``select=a,b``; ``*`` or an empty value selects every column."""
    columns = [item.strip() for item in raw.split(",") if item.strip()]
    if not columns or columns == ["*"]:
        return None
    return columns


def parse_order(raw: str) -> List[OrderTerm]:
    """Parse ``order=a.desc,b``."""
    terms: List[OrderTerm] = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        column, separator, direction = item.rpartition(".")
        if not separator:
            terms.append(OrderTerm(item))
            continue
        direction = direction.lower()
        if direction not in ("asc", "desc"):
            raise ValidationError(
                f"Invalid order direction '{direction}' for column '{column}'",
                details={"order": raw},
            )
        terms.append(OrderTerm(column, descending=direction == "desc"))
    return terms


def parse_non_negative_int(name: str, raw: Any) -> int:
    """Parse ``limit``/``offset``."""
    text = str(raw).strip()
    if not _INTEGER.match(text) or int(text) < 0:
        raise ValidationError(f"'{name}' must be a non-negative integer, got '{raw}'")
    return int(text)


def parse_query(params: QueryParams) -> FilterQuery:
    """Parse query-string pairs into a FilterQuery.

    Filters keep the input order; a column may be filtered more than once when
    the pairs come from a multi-valued query string.
    """
    items = params.items() if isinstance(params, Mapping) else params
    query = FilterQuery()
    for key, value in items:
        if key == "select":
            query.select = parse_select(str(value))
        elif key == "order":
            query.order = parse_order(str(value))
        elif key == "limit":
            query.limit = parse_non_negative_int("limit", value)
        elif key == "offset":
            query.offset = parse_non_negative_int("offset", value)
        else:
            query.where.append(parse_filter(key, value))
    return query
