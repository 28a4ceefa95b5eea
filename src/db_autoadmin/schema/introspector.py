"""Table introspection over SQLAlchemy ``Table`` definitions.

This module reads a declared table (no database round trip) and extracts:
- Columns with their semantic type, nullability, keys and defaults
- Foreign keys, per table and per column
- Primary key and label column
- TableMetadata (autoincrement keys, datetime and auto-timestamp columns)

Integer columns holding epoch timestamps are declared through column info::

    Column("created_at", Integer, info={"timestamp": "ms"})

Usage:
    from db_autoadmin.schema.introspector import columns_of, foreign_keys_of

    for column in columns_of(posts):
        print(column.name, column.semantic_type)
"""

from typing import Any

from sqlalchemy import Column, Index, Table, UniqueConstraint
from sqlalchemy import types as sqltypes

from db_autoadmin.errors import SchemaError
from db_autoadmin.schema.models import (
    ColumnDescriptor,
    ForeignKeyDescriptor,
    SemanticType,
    TableMetadata,
)

# Priority order for the human-readable label column
LABEL_COLUMN_CANDIDATES = ("name", "title", "label", "slug")

# Python types used when a column type is not one of the known SQLAlchemy types
_PYTHON_TYPE_MAP: dict[type, SemanticType] = {
    bool: SemanticType.BOOLEAN,
    int: SemanticType.NUMBER,
    float: SemanticType.NUMBER,
    str: SemanticType.STRING,
    bytes: SemanticType.BLOB,
    dict: SemanticType.JSON,
    list: SemanticType.JSON,
}


def _semantic_type(column: Column) -> SemanticType:
    """Map a SQLAlchemy column type to its semantic type."""
    type_ = column.type
    if isinstance(type_, sqltypes.Enum):
        return SemanticType.ENUM
    if isinstance(type_, sqltypes.Boolean):
        return SemanticType.BOOLEAN
    if isinstance(type_, (sqltypes.DateTime, sqltypes.Date)):
        return SemanticType.DATE
    if isinstance(type_, sqltypes.Integer) and timestamp_unit(column):
        return SemanticType.DATE
    if isinstance(type_, sqltypes.JSON):
        return SemanticType.JSON
    if isinstance(type_, sqltypes.LargeBinary):
        return SemanticType.BLOB
    if isinstance(type_, (sqltypes.Integer, sqltypes.Numeric)):
        return SemanticType.NUMBER
    if isinstance(type_, sqltypes.String):
        return SemanticType.STRING

    try:
        python_type = type_.python_type
    except NotImplementedError:
        return SemanticType.STRING
    for base, semantic in _PYTHON_TYPE_MAP.items():
        if issubclass(python_type, base):
            return semantic
    return SemanticType.STRING


def timestamp_unit(column: Column) -> str | None:
    """Epoch unit (``"s"`` or ``"ms"``) declared on an integer column, if any."""
    unit = column.info.get("timestamp")
    if unit in ("s", "ms"):
        return unit
    return None


def _is_unique(table: Table, column: Column) -> bool:
    if column.unique:
        return True
    for constraint in table.constraints:
        if isinstance(constraint, UniqueConstraint):
            if [c.key for c in constraint.columns] == [column.key]:
                return True
    for index in table.indexes:
        if isinstance(index, Index) and index.unique:
            if [c.key for c in index.columns] == [column.key]:
                return True
    return False


def is_autoincrement(table: Table, column: Column) -> bool:
    """True for a single integer primary key the database generates."""
    return (
        column.primary_key
        and len(table.primary_key.columns) == 1
        and isinstance(column.type, sqltypes.Integer)
        and column.autoincrement in (True, "auto")
        and not column.foreign_keys
    )


def _has_default(column: Column) -> bool:
    return column.default is not None or column.server_default is not None


def describe_column(table: Table, column: Column) -> ColumnDescriptor:
    """Build the ``ColumnDescriptor`` for one column of *table*."""
    semantic_type = _semantic_type(column)
    type_ = column.type
    autoincrement = is_autoincrement(table, column)
    return ColumnDescriptor(
        name=column.key,
        semantic_type=semantic_type,
        nullable=bool(column.nullable) and not column.primary_key,
        is_primary=column.primary_key,
        is_unique=_is_unique(table, column),
        has_default=_has_default(column) or autoincrement,
        autoincrement=autoincrement,
        enum_values=list(type_.enums) if isinstance(type_, sqltypes.Enum) else None,
        max_length=getattr(type_, "length", None) if semantic_type == SemanticType.STRING else None,
        timestamp_unit=timestamp_unit(column),
        is_datetime=semantic_type == SemanticType.DATE and not (
            isinstance(type_, sqltypes.Date) and not isinstance(type_, sqltypes.DateTime)
        ),
    )


def columns_of(table: Table) -> list[ColumnDescriptor]:
    """Describe every column of *table* in declaration order.

    Raises:
        SchemaError: If the table declares no columns.
    """
    if len(table.columns) == 0:
        raise SchemaError(f"Table {table.name} has no columns.")
    return [describe_column(table, column) for column in table.columns]


def column_descriptor(table: Table, column_name: str) -> ColumnDescriptor:
    """Describe a single column by key."""
    if column_name not in table.c:
        raise SchemaError(
            f"Column {column_name!r} does not exist on table {table.name}. "
            f"Available columns: {', '.join(table.c.keys())}"
        )
    return describe_column(table, table.c[column_name])


def foreign_keys_of(table: Table) -> list[ForeignKeyDescriptor]:
    """All foreign key columns of *table*, ordered by column position."""
    descriptors: list[ForeignKeyDescriptor] = []
    for column in table.columns:
        for fk in column.foreign_keys:
            foreign_column = fk.column
            descriptors.append(
                ForeignKeyDescriptor(
                    column=column.key,
                    foreign_column=foreign_column.key,
                    foreign_table=foreign_column.table,
                )
            )
    return descriptors


def foreign_keys_of_column(table: Table, column_name: str) -> list[ForeignKeyDescriptor]:
    """Foreign keys whose local column is *column_name* (empty if none)."""
    return [fk for fk in foreign_keys_of(table) if fk.column == column_name]


def primary_key_column(table: Table) -> Column:
    """The single primary key column of *table*.

    Raises:
        SchemaError: If the table has no primary key or a composite one.
    """
    columns = list(table.primary_key.columns)
    if not columns:
        raise SchemaError(f"Table {table.name} has no primary key.")
    if len(columns) > 1:
        raise SchemaError(f"Table {table.name} has multiple primary keys.")
    return columns[0]


def label_column_of(table: Table) -> str:
    """Column used to represent a row as text (name > title > label > slug > first)."""
    keys = list(table.c.keys())
    if not keys:
        raise SchemaError(f"Table {table.name} has no columns.")
    for candidate in LABEL_COLUMN_CANDIDATES:
        if candidate in keys:
            return candidate
    return keys[0]


def _scalar_default(column: Column) -> Any:
    """Default value a form can prefill, or ``None`` when the DB computes it."""
    default = column.default
    if default is not None and getattr(default, "is_scalar", False):
        return default.arg
    server_default = column.server_default
    arg = getattr(server_default, "arg", None)
    if isinstance(arg, str):
        return arg
    return None


def table_metadata(table: Table) -> TableMetadata:
    """Derive ``TableMetadata`` for *table*."""
    metadata = TableMetadata()
    for column in table.columns:
        descriptor = describe_column(table, column)
        if descriptor.autoincrement:
            metadata.primary_autoincrement_columns.append(descriptor.name)

        if descriptor.is_datetime:
            if descriptor.has_default:
                metadata.auto_timestamp_columns.append(descriptor.name)
            else:
                metadata.datetime_columns.append(descriptor.name)

        default = _scalar_default(column)
        if default is not None:
            metadata.default_values[descriptor.name] = default
    return metadata
