from typing import List, Optional

from pydantic import BaseModel, Field

from schema.table import TableInfo


class ParameterInfo(BaseModel):
    """A stored function/procedure parameter."""

    name: str
    data_type: str
    mode: str = "IN"
    default_value: Optional[str] = None

    model_config = {"frozen": False}


class FunctionInfo(BaseModel):
    """A stored function or procedure."""

    schema_name: str = Field(alias="schema")
    name: str
    return_type: Optional[str] = None
    language: Optional[str] = None
    definition: Optional[str] = None
    parameters: List[ParameterInfo] = Field(default_factory=list)

    model_config = {"frozen": False, "populate_by_name": True}


class ViewInfo(BaseModel):
    """A view and its defining query."""

    schema_name: str = Field(alias="schema")
    name: str
    definition: Optional[str] = None
    columns: List[str] = Field(default_factory=list)

    model_config = {"frozen": False, "populate_by_name": True}


class SchemaInfo(BaseModel):
    """Everything reachable under one connection for one schema."""

    schemas: List[str] = Field(default_factory=list)
    tables: List[TableInfo] = Field(default_factory=list)
    views: List[ViewInfo] = Field(default_factory=list)
    functions: List[FunctionInfo] = Field(default_factory=list)

    model_config = {"frozen": False}
