"""Write validation and value coercion derived from a table definition.

``build_write_model()`` generates a pydantic model from the table's columns
(the insert schema): unknown keys, including relation pseudo-fields, are
ignored, ISO strings are parsed into dates, enums are checked against their
declared values and string lengths against the column length.

``coerce_value()`` converts raw query-string or path values into the column's
Python type before they are bound into a statement.
"""

from datetime import date, datetime
from decimal import Decimal
from functools import lru_cache
from typing import Annotated, Any, Literal, Mapping, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, StringConstraints, create_model
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import Column, Table
from sqlalchemy import types as sqltypes

from db_autoadmin.errors import BadRequestError, RecordValidationError
from db_autoadmin.schema.introspector import columns_of
from db_autoadmin.schema.models import ColumnDescriptor, SemanticType

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}


def to_epoch(value: datetime, unit: str) -> int:
    """Epoch seconds or milliseconds for *value* (naive values are local time)."""
    seconds = value.timestamp()
    return int(seconds * 1000) if unit == "ms" else int(seconds)


def _epoch_converter(unit: str):
    def convert(value: Any) -> Any:
        if isinstance(value, str):
            try:
                value = datetime.fromisoformat(value)
            except ValueError:
                return value
        if isinstance(value, datetime):
            return to_epoch(value, unit)
        return value

    return convert


def _annotation(table: Table, descriptor: ColumnDescriptor) -> Any:
    """Python annotation accepted for writes to one column."""
    column = table.c[descriptor.name]
    semantic = descriptor.semantic_type

    if semantic == SemanticType.ENUM:
        return Literal[tuple(descriptor.enum_values or ())]
    if semantic == SemanticType.BOOLEAN:
        return bool
    if semantic == SemanticType.DATE:
        if descriptor.timestamp_unit:
            return Annotated[int, BeforeValidator(_epoch_converter(descriptor.timestamp_unit))]
        if isinstance(column.type, sqltypes.DateTime):
            return datetime
        return date
    if semantic == SemanticType.NUMBER:
        if isinstance(column.type, sqltypes.Integer):
            return int
        if isinstance(column.type, sqltypes.Numeric) and column.type.asdecimal:
            return Decimal
        return float
    if semantic == SemanticType.BLOB:
        return bytes
    if semantic == SemanticType.JSON:
        return Any
    if descriptor.max_length:
        return Annotated[str, StringConstraints(max_length=descriptor.max_length)]
    return str


@lru_cache(maxsize=None)
def build_write_model(table: Table, partial: bool = False) -> type[BaseModel]:
    """Generate the pydantic write model for *table*.

    Args:
        table: Table definition.
        partial: When True every field may be omitted (update / PATCH semantics).

    Returns:
        A pydantic model class.  Dump validated instances with
        ``exclude_unset=True`` so database defaults still apply.

    Only nullable columns accept an explicit ``None``.  Omittable NOT NULL
    columns default to ``None`` without allowing it as input.
    """
    fields: dict[str, Any] = {}
    for descriptor in columns_of(table):
        annotation = _annotation(table, descriptor)
        if descriptor.nullable:
            fields[descriptor.name] = (Optional[annotation], None)
        elif partial or descriptor.has_default:
            fields[descriptor.name] = (annotation, None)
        else:
            fields[descriptor.name] = (annotation, ...)
    suffix = "Update" if partial else "Insert"
    return create_model(
        f"{table.name.title().replace('_', '')}{suffix}",
        __config__=ConfigDict(extra="ignore"),
        **fields,
    )


def validate_write(table: Table, data: Mapping[str, Any], partial: bool = False) -> dict[str, Any]:
    """Validate submitted data and return only the column values that were set.

    Raises:
        RecordValidationError: With one ``{name, message}`` entry per failure.
    """
    model = build_write_model(table, partial)
    try:
        validated = model.model_validate(dict(data))
    except PydanticValidationError as e:
        errors = [
            {"name": str(error["loc"][0]) if error["loc"] else "", "message": error["msg"]}
            for error in e.errors()
        ]
        raise RecordValidationError("Validation Error", errors=errors) from e
    return validated.model_dump(exclude_unset=True)


def coerce_value(column: Column, value: Any) -> Any:
    """Convert a raw request value to the Python type of *column*.

    Raises:
        BadRequestError: If the value cannot represent the column type.
    """
    if value is None or not isinstance(value, str):
        return value

    type_ = column.type
    try:
        if isinstance(type_, sqltypes.Boolean):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
            raise ValueError(value)
        if isinstance(type_, sqltypes.Integer):
            return int(value)
        if isinstance(type_, sqltypes.Numeric):
            return Decimal(value) if type_.asdecimal else float(value)
    except (ValueError, ArithmeticError) as e:
        raise BadRequestError(f"Invalid value {value!r} for {column.key}.") from e
    return value


def coerce_values(column: Column, values: list[Any]) -> list[Any]:
    """Coerce a list of submitted ids, dropping duplicates but keeping order."""
    coerced: list[Any] = []
    for value in values:
        item = coerce_value(column, value)
        if item not in coerced:
            coerced.append(item)
    return coerced
