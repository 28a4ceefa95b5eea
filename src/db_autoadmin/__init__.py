"""db-autoadmin: configuration-driven async CRUD engine over SQLAlchemy tables.

Builds list queries (joins, search, filters, sorting, pagination), form
specs with relation metadata, and keeps many-to-many and one-to-many
relations in sync on write, for any registered ``Table``.

Usage:
    from db_autoadmin import Database, ModelRegistry, configure_model
    from db_autoadmin import list_records, create_record, get_update_form_spec

    registry = ModelRegistry([configure_model(posts, m2m={"tags": posts_to_tags})])
    db = Database("sqlite:///admin.db")
    page = await list_records(db, registry, "posts", {"search": "hello"})
"""

__version__ = "0.1.0"

# Engine
from db_autoadmin.adapters.engine import Database, create_async_engine_pooled

# Config
from db_autoadmin.config.loader import load_admin_settings
from db_autoadmin.config.models import (
    AdminSettings,
    AggregateField,
    BulkAction,
    CustomFilter,
    CustomSelection,
    FilterField,
    ListField,
    ModelConfig,
)
from db_autoadmin.config.registry import ModelRegistry, configure_model

# Errors
from db_autoadmin.errors import (
    AdminError,
    BadRequestError,
    ConfigurationError,
    ConstraintViolationError,
    DatabaseError,
    ModelNotFoundError,
    OperationNotAllowedError,
    RecordNotFoundError,
    RecordValidationError,
    RelationConstraintError,
    SchemaError,
)

# Models
from db_autoadmin.forms.models import FieldOverride, FieldSpec, FieldType, FormSpec, Option
from db_autoadmin.listing.models import FilterType, ListResponse
from db_autoadmin.relations.fields import FieldId

# Services
from db_autoadmin.services import (
    bulk_delete,
    create_record,
    delete_record,
    get_create_form_spec,
    get_many_to_many_choices,
    get_one_to_many_choices,
    get_record,
    get_relation_choices,
    get_update_form_spec,
    list_records,
    run_bulk_action,
    update_record,
)

__all__ = [
    # Engine
    "Database",
    "create_async_engine_pooled",
    # Config
    "load_admin_settings",
    "AdminSettings",
    "AggregateField",
    "BulkAction",
    "CustomFilter",
    "CustomSelection",
    "FilterField",
    "ListField",
    "ModelConfig",
    "ModelRegistry",
    "configure_model",
    # Errors
    "AdminError",
    "BadRequestError",
    "ConfigurationError",
    "ConstraintViolationError",
    "DatabaseError",
    "ModelNotFoundError",
    "OperationNotAllowedError",
    "RecordNotFoundError",
    "RecordValidationError",
    "RelationConstraintError",
    "SchemaError",
    # Models
    "FieldId",
    "FieldOverride",
    "FieldSpec",
    "FieldType",
    "FilterType",
    "FormSpec",
    "ListResponse",
    "Option",
    # Services
    "bulk_delete",
    "create_record",
    "delete_record",
    "get_create_form_spec",
    "get_many_to_many_choices",
    "get_one_to_many_choices",
    "get_record",
    "get_relation_choices",
    "get_update_form_spec",
    "list_records",
    "run_bulk_action",
    "update_record",
]
