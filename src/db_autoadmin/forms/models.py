"""Form specification models.

A ``FormSpec`` is a UI-agnostic description of a create/update form: one
``FieldSpec`` per column or relation pseudo-field, optional current values,
and the label of the edited record.
"""

from enum import Enum
from typing import Any

from pydantic import Field

from db_autoadmin.schema.models import SemanticType
from db_autoadmin.wire import WireModel


class FieldType(str, Enum):
    """UI field types shared by list columns and form fields."""

    TEXT = "text"
    EMAIL = "email"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME_LOCAL = "datetime-local"
    SELECT = "select"
    JSON = "json"
    FILE = "file"
    BLOB = "blob"
    IMAGE = "image"
    TEXTAREA = "textarea"
    RICH_TEXT = "rich-text"
    RELATION = "relation"
    RELATION_MANY = "relation-many"


# Field type generated for each semantic column type
FIELD_TYPES: dict[SemanticType, FieldType] = {
    SemanticType.STRING: FieldType.TEXT,
    SemanticType.NUMBER: FieldType.NUMBER,
    SemanticType.BOOLEAN: FieldType.BOOLEAN,
    SemanticType.DATE: FieldType.DATE,
    SemanticType.ENUM: FieldType.SELECT,
    SemanticType.BLOB: FieldType.BLOB,
    SemanticType.JSON: FieldType.JSON,
}
if set(FIELD_TYPES) != set(SemanticType):
    raise RuntimeError(f"FIELD_TYPES misses {set(SemanticType) - set(FIELD_TYPES)}")


class Option(WireModel):
    """A selectable value, optionally with a display label and a row count."""

    label: Any = None
    value: Any
    count: int | None = None


class RelationConfig(WireModel):
    """How a relation field loads and edits its choices."""

    choices_endpoint: str | None = None
    related_config_key: str | None = None
    enable_create: bool | None = None
    enable_update: bool | None = None
    foreign_related_column_name: str | None = None
    foreign_label_column_name: str | None = None


class FileConfig(WireModel):
    """Upload constraints for file/image fields."""

    accept: list[str] | None = None
    prefix: str | None = None
    max_size: int | None = None


class FieldSpec(WireModel):
    """One form field."""

    name: str
    label: str | None = None
    type: FieldType
    required: bool = False
    rules: dict[str, Any] = Field(default_factory=dict)
    options: list[Any] | None = None
    default_value: Any = None
    help: str | None = None
    hint: str | None = None
    description: str | None = None
    input_attrs: dict[str, Any] | None = None
    field_attrs: dict[str, Any] | None = None
    file_config: FileConfig | None = None
    relation_config: RelationConfig | None = None


class FieldOverride(FieldSpec):
    """Per-column override merged over a generated ``FieldSpec``.

    Only attributes explicitly set on the override replace generated ones.
    """

    type: FieldType | None = None
    required: bool | None = None


class FormSpec(WireModel):
    """A complete form: fields, current values and the edited record's label."""

    fields: list[FieldSpec] = Field(default_factory=list)
    values: dict[str, Any] | None = None
    warn_on_unsaved_changes: bool = False
    label_string: Any = None

    def field(self, name: str) -> FieldSpec | None:
        """Field named *name*, or ``None``."""
        for field in self.fields:
            if field.name == name:
                return field
        return None
