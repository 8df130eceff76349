from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PolicyOperation(str, Enum):
    """Statement kinds a row-security policy can target."""

    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ALL = "ALL"


class SecurityPolicy(BaseModel):
    """A row-level security policy.

    ``using`` and ``with_check`` are opaque SQL predicates supplied by the
    caller. Adapters relocate them into dialect DDL without parsing them.
    """

    name: str
    table: str
    schema_name: Optional[str] = Field(default=None, alias="schema")
    operation: PolicyOperation = PolicyOperation.ALL
    using: Optional[str] = None
    with_check: Optional[str] = None
    role: Optional[str] = None

    model_config = {"frozen": False, "populate_by_name": True}
