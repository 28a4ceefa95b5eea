"""Table introspection and write validation.

Usage:
    from db_autoadmin.schema import columns_of, foreign_keys_of, validate_write
"""

from db_autoadmin.schema.introspector import (
    column_descriptor,
    columns_of,
    foreign_keys_of,
    foreign_keys_of_column,
    label_column_of,
    primary_key_column,
    table_metadata,
)
from db_autoadmin.schema.models import (
    ColumnDescriptor,
    ForeignKeyDescriptor,
    SemanticType,
    TableMetadata,
)
from db_autoadmin.schema.validation import build_write_model, coerce_value, validate_write

__all__ = [
    "ColumnDescriptor",
    "ForeignKeyDescriptor",
    "SemanticType",
    "TableMetadata",
    "build_write_model",
    "coerce_value",
    "column_descriptor",
    "columns_of",
    "foreign_keys_of",
    "foreign_keys_of_column",
    "label_column_of",
    "primary_key_column",
    "table_metadata",
    "validate_write",
]
