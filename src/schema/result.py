from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Dict, List, Optional, Union
from uuid import UUID

# Values a backend row can carry once decoded by the driver.
RowValue = Union[None, bool, int, float, Decimal, str, bytes, datetime, date, time, UUID]

# Rows preserve the column order of the result set.
Row = Dict[str, RowValue]


@dataclass
class FieldInfo:
    """Describes one column of a raw query result."""

    name: str
    data_type: str = "unknown"
    nullable: bool = True


@dataclass
class QueryResult:
    """Rows and metadata returned by a single statement."""

    rows: List[Row] = field(default_factory=list)
    row_count: int = 0
    fields: List[FieldInfo] = field(default_factory=list)
    command: Optional[str] = None

    def first(self) -> Optional[Row]:
        """Return the first row, or None when the result is empty."""
        return self.rows[0] if self.rows else None
