"""Compile parsed filter queries into parameterized SQL for one dialect.

Identifiers are always quoted through the dialect and every literal travels in
the parameter list, so the number of placeholders in the emitted text always
equals ``len(params)``.
"""

from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence

from common.errors import UnsupportedOperatorError, ValidationError
from dal.dialect import SqlDialect
from rest.filters import NOT_NULL, OPERATORS, FilterQuery, OrderTerm, Predicate

DEFAULT_MAX_ROWS = 1000

_COMPARISONS: Dict[str, str] = {
    "eq": "=",
    "neq": "<>",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "like": "LIKE",
}


class CompiledQuery(NamedTuple):
    """SQL text and its positional parameters."""

    sql: str
    params: List[Any]


class _ParamList:
    """Collects parameter values and hands out matching placeholders."""

    def __init__(self, dialect: SqlDialect) -> None:
        self._dialect = dialect
        self.values: List[Any] = []

    def add(self, value: Any) -> str:
        placeholder = self._dialect.placeholder(len(self.values))
        self.values.append(value)
        return placeholder


class QueryCompiler:
    """Builds SELECT, COUNT, INSERT, UPDATE and DELETE statements for a dialect."""

    def __init__(self, dialect: SqlDialect, max_rows: int = DEFAULT_MAX_ROWS) -> None:
        """Bind a dialect and the row ceiling applied to every SELECT."""
        if max_rows <= 0:
            raise ValueError(f"max_rows must be positive, got {max_rows}")
        self.dialect = dialect
        self.max_rows = max_rows

    def _q(self, name: str) -> str:
        return self.dialect.quote_identifier(name)

    def _target(self, table: str, schema: Optional[str]) -> str:
        return self.dialect.quote_qualified(table, schema)

    def effective_limit(self, requested: Optional[int]) -> int:
        """Cap a requested limit at ``max_rows``; no request means ``max_rows``."""
        return min(requested or self.max_rows, self.max_rows)

    def compile_predicate(self, predicate: Predicate, params: _ParamList) -> str:
        """Compile one predicate, appending its values to ``params``."""
        column = self._q(predicate.column)
        operator = predicate.operator

        if operator in _COMPARISONS:
            return f"{column} {_COMPARISONS[operator]} {params.add(predicate.value)}"

        if operator == "ilike":
            placeholder = params.add(predicate.value)
            if self.dialect.native_ilike:
                return f"{column} ILIKE {placeholder}"
            return f"LOWER({column}) LIKE LOWER({placeholder})"

        if operator == "in":
            values = predicate.value
            if not isinstance(values, (list, tuple)):
                values = [values]
            if not values:
                return "1 = 0"
            placeholders = ", ".join(params.add(value) for value in values)
            return f"{column} IN ({placeholders})"

        if operator == "is":
            value = predicate.value
            if value is None:
                return f"{column} IS NULL"
            if value == NOT_NULL:
                return f"{column} IS NOT NULL"
            if isinstance(value, bool):
                if self.dialect.supports_is_boolean:
                    return f"{column} IS {'TRUE' if value else 'FALSE'}"
                return f"{column} = {self.dialect.boolean_literal(value)}"
            raise ValidationError(
                f"Operator 'is' expects null, not.null, true or false; got '{value}'",
                details={"column": predicate.column},
            )

        raise UnsupportedOperatorError(operator, OPERATORS)

    def _where(self, predicates: Sequence[Predicate], params: _ParamList) -> str:
        if not predicates:
            return ""
        return " WHERE " + " AND ".join(
            self.compile_predicate(predicate, params) for predicate in predicates
        )

    def _order_by(self, terms: Sequence[OrderTerm]) -> str:
        if terms:
            return " ORDER BY " + ", ".join(
                f"{self._q(term.column)} {'DESC' if term.descending else 'ASC'}"
                for term in terms
            )
        if self.dialect.requires_order_for_offset:
            return " ORDER BY (SELECT NULL)"
        return ""

    def compile_select(
        self, table: str, query: FilterQuery, schema: Optional[str] = None
    ) -> CompiledQuery:
        """Compile a filtered, ordered and paginated SELECT."""
        params = _ParamList(self.dialect)
        columns = ", ".join(self._q(column) for column in query.select) if query.select else "*"
        sql = (
            f"SELECT {columns} FROM {self._target(table, schema)}"
            + self._where(query.where, params)
            + self._order_by(query.order)
            + " "
            + self.dialect.paginate(self.effective_limit(query.limit), query.offset or 0)
        )
        return CompiledQuery(sql, params.values)

    def compile_count(
        self, table: str, query: FilterQuery, schema: Optional[str] = None
    ) -> CompiledQuery:
        """Compile the COUNT(*) matching a SELECT's predicates."""
        params = _ParamList(self.dialect)
        sql = f"SELECT COUNT(*) AS total FROM {self._target(table, schema)}" + self._where(
            query.where, params
        )
        return CompiledQuery(sql, params.values)

    def _key_predicate(self, key_column: str, key_value: Any, params: _ParamList) -> str:
        return f"{self._q(key_column)} = {params.add(key_value)}"

    def compile_select_by_key(
        self, table: str, key_column: str, key_value: Any, schema: Optional[str] = None
    ) -> CompiledQuery:
        """Compile a single-row lookup by primary key."""
        params = _ParamList(self.dialect)
        sql = (
            f"SELECT * FROM {self._target(table, schema)} "
            f"WHERE {self._key_predicate(key_column, key_value, params)}"
        )
        return CompiledQuery(sql, params.values)

    def compile_insert(
        self, table: str, row: Mapping[str, Any], schema: Optional[str] = None
    ) -> CompiledQuery:
        """Compile a single-row INSERT returning the inserted row."""
        if not row:
            raise ValidationError(f"Cannot insert an empty row into '{table}'")
        params = _ParamList(self.dialect)
        columns = ", ".join(self._q(column) for column in row)
        values = ", ".join(params.add(value) for value in row.values())
        parts = [f"INSERT INTO {self._target(table, schema)} ({columns})"]
        output = self.dialect.output_clause("INSERTED")
        if output:
            parts.append(output)
        parts.append(f"VALUES ({values})")
        returning = self.dialect.returning_clause()
        if returning:
            parts.append(returning)
        return CompiledQuery(" ".join(parts), params.values)

    def _set_clause(self, table: str, values: Mapping[str, Any], params: _ParamList) -> str:
        if not values:
            raise ValidationError(f"No columns to update in '{table}'")
        return ", ".join(
            f"{self._q(column)} = {params.add(value)}" for column, value in values.items()
        )

    def compile_update(
        self,
        table: str,
        values: Mapping[str, Any],
        predicates: Sequence[Predicate],
        schema: Optional[str] = None,
    ) -> CompiledQuery:
        """Compile a batch UPDATE; at least one predicate is required."""
        if not predicates:
            raise ValidationError(
                f"Refusing to update every row of '{table}': at least one filter is required"
            )
        params = _ParamList(self.dialect)
        assignments = self._set_clause(table, values, params)
        sql = f"UPDATE {self._target(table, schema)} SET {assignments}" + self._where(
            predicates, params
        )
        return CompiledQuery(sql, params.values)

    def compile_update_by_key(
        self,
        table: str,
        values: Mapping[str, Any],
        key_column: str,
        key_value: Any,
        schema: Optional[str] = None,
    ) -> CompiledQuery:
        """Compile a single-row UPDATE by primary key returning the new row."""
        params = _ParamList(self.dialect)
        assignments = self._set_clause(table, values, params)
        parts = [f"UPDATE {self._target(table, schema)} SET {assignments}"]
        output = self.dialect.output_clause("INSERTED")
        if output:
            parts.append(output)
        parts.append(f"WHERE {self._key_predicate(key_column, key_value, params)}")
        returning = self.dialect.returning_clause()
        if returning:
            parts.append(returning)
        return CompiledQuery(" ".join(parts), params.values)

    def compile_delete(
        self, table: str, predicates: Sequence[Predicate], schema: Optional[str] = None
    ) -> CompiledQuery:
        """Compile a batch DELETE; at least one predicate is required."""
        if not predicates:
            raise ValidationError(
                f"Refusing to delete every row of '{table}': at least one filter is required"
            )
        params = _ParamList(self.dialect)
        sql = f"DELETE FROM {self._target(table, schema)}" + self._where(predicates, params)
        return CompiledQuery(sql, params.values)

    def compile_delete_by_key(
        self, table: str, key_column: str, key_value: Any, schema: Optional[str] = None
    ) -> CompiledQuery:
        """Compile a single-row DELETE by primary key returning the deleted row."""
        params = _ParamList(self.dialect)
        parts = [f"DELETE FROM {self._target(table, schema)}"]
        output = self.dialect.output_clause("DELETED")
        if output:
            parts.append(output)
        parts.append(f"WHERE {self._key_predicate(key_column, key_value, params)}")
        returning = self.dialect.returning_clause()
        if returning:
            parts.append(returning)
        return CompiledQuery(" ".join(parts), params.values)
