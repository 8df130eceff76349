from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class ReferentialAction(str, Enum):
    """Canonical ON DELETE / ON UPDATE actions."""

    CASCADE = "CASCADE"
    SET_NULL = "SET NULL"
    SET_DEFAULT = "SET DEFAULT"
    RESTRICT = "RESTRICT"
    NO_ACTION = "NO ACTION"


class ColumnInfo(BaseModel):
    """Canonical representation of a table column.

    Attributes:
        name: Column name.
        data_type: Backend-native type name as reported by the catalog.
        nullable: Whether the column accepts NULL.
        default_value: Raw default expression in backend syntax, if any.
        is_identity: True for identity / auto-increment columns.
        max_length: Character length limit, if any.
        precision: Numeric precision, if any.
        scale: Numeric scale, if any.
    """

    name: str
    data_type: str
    nullable: bool = True
    default_value: Optional[str] = None
    is_identity: bool = False
    max_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None

    model_config = {"frozen": False}


class ForeignKeyInfo(BaseModel):
    """Canonical representation of a (possibly composite) foreign key constraint."""

    name: str
    columns: List[str]
    referenced_schema: Optional[str] = None
    referenced_table: str
    referenced_columns: List[str]
    on_delete: ReferentialAction = ReferentialAction.NO_ACTION
    on_update: ReferentialAction = ReferentialAction.NO_ACTION

    model_config = {"frozen": False}

    @model_validator(mode="after")
    def _check_column_pairs(self) -> "ForeignKeyInfo":
        if len(self.columns) != len(self.referenced_columns):
            raise ValueError(
                f"Foreign key '{self.name}' pairs {len(self.columns)} columns with "
                f"{len(self.referenced_columns)} referenced columns"
            )
        return self


class IndexInfo(BaseModel):
    """Canonical representation of an index."""

    name: str
    columns: List[str]
    is_unique: bool = False
    is_primary: bool = False

    model_config = {"frozen": False}


class TableInfo(BaseModel):
    """Canonical representation of a base table.

    All adapters must convert their native catalog rows to this representation
    before returning to business logic.
    """

    schema_name: str = Field(alias="schema")
    name: str
    columns: List[ColumnInfo] = Field(default_factory=list)
    primary_keys: List[str] = Field(default_factory=list)
    foreign_keys: List[ForeignKeyInfo] = Field(default_factory=list)
    indexes: List[IndexInfo] = Field(default_factory=list)

    model_config = {"frozen": False, "populate_by_name": True}

    @model_validator(mode="after")
    def _check_primary_keys(self) -> "TableInfo":
        column_names = {column.name for column in self.columns}
        missing = [key for key in self.primary_keys if key not in column_names]
        if missing:
            raise ValueError(
                f"Primary key columns {missing} are not columns of table '{self.name}'"
            )
        return self

    def column(self, name: str) -> Optional[ColumnInfo]:
        """Return the named column, if present."""
        for column in self.columns:
            if column.name == name:
                return column
        return None


class TableAlteration(BaseModel):
    """A batch of column changes applied by ``alter_table``."""

    add_columns: List[ColumnInfo] = Field(default_factory=list)
    drop_columns: List[str] = Field(default_factory=list)
    modify_columns: List[ColumnInfo] = Field(default_factory=list)

    model_config = {"frozen": False}

    def is_empty(self) -> bool:
        """True when the alteration changes nothing."""
        return not (self.add_columns or self.drop_columns or self.modify_columns)
