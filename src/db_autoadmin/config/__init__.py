"""Engine settings and model configuration."""

from db_autoadmin.config.loader import load_admin_settings
from db_autoadmin.config.models import (
    DEFAULT_API_PREFIX,
    AdminSettings,
    AggregateField,
    BulkAction,
    CreateOptions,
    CustomFilter,
    CustomSelection,
    DeleteOptions,
    FilterField,
    ListField,
    ListOptions,
    ModelConfig,
    UpdateOptions,
)
from db_autoadmin.config.registry import ModelRegistry, configure_model

__all__ = [
    "DEFAULT_API_PREFIX",
    "AdminSettings",
    "AggregateField",
    "BulkAction",
    "CreateOptions",
    "CustomFilter",
    "CustomSelection",
    "DeleteOptions",
    "FilterField",
    "ListField",
    "ListOptions",
    "ModelConfig",
    "ModelRegistry",
    "UpdateOptions",
    "configure_model",
    "load_admin_settings",
]
