"""Pydantic models describing table structure.

This module contains schema-domain models:
- SemanticType: closed set of column semantics every consumer dispatches on
- ColumnDescriptor, ForeignKeyDescriptor: per-table introspection results
- TableMetadata: derived column groups (autoincrement keys, timestamps, defaults)
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Table


class SemanticType(str, Enum):
    """Semantic type of a column, independent of the SQL dialect."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ENUM = "enum"
    BLOB = "blob"
    JSON = "json"


TimestampUnit = Literal["s", "ms"]


# ============================================================================
# Introspection Models
# ============================================================================


class ColumnDescriptor(BaseModel):
    """Description of a single table column.

    Example:
        >>> col = ColumnDescriptor(name="id", semantic_type=SemanticType.NUMBER)
        >>> col.nullable
        True
    """

    name: str
    semantic_type: SemanticType
    nullable: bool = True
    is_primary: bool = False
    is_unique: bool = False
    has_default: bool = False
    autoincrement: bool = False
    enum_values: list[str] | None = None
    max_length: int | None = None
    timestamp_unit: TimestampUnit | None = None  # integer epoch columns only
    is_datetime: bool = False  # date with a time component


class ForeignKeyDescriptor(BaseModel):
    """One column of a foreign key constraint and what it references."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    column: str
    foreign_column: str
    foreign_table: Table


class TableMetadata(BaseModel):
    """Column groups that change how list columns and form fields render."""

    primary_autoincrement_columns: list[str] = Field(default_factory=list)
    datetime_columns: list[str] = Field(default_factory=list)
    auto_timestamp_columns: list[str] = Field(default_factory=list)
    default_values: dict[str, Any] = Field(default_factory=dict)
