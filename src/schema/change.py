from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ChangeOperation(str, Enum):
    """Row-level mutation kinds reported by the change feed."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """One row-level change observed after the fact.

    ``position`` is the backend cursor value (a log id or an LSN) the feed
    advances past once the event has been delivered.
    """

    table: str
    schema_name: str = Field(alias="schema")
    operation: ChangeOperation
    new_row: Optional[Dict[str, Any]] = None
    old_row: Optional[Dict[str, Any]] = None
    timestamp: Optional[datetime] = None
    position: Any = None

    model_config = {"frozen": False, "populate_by_name": True}
