"""Model configuration and the immutable model registry.

``configure_model()`` turns a table plus optional overrides into a validated
``ModelConfig``; ``ModelRegistry`` holds the configs of an application and is
passed explicitly to every service call.

Usage:
    from db_autoadmin.config import ModelRegistry, configure_model

    registry = ModelRegistry([
        configure_model(tags),
        configure_model(posts, m2m={"tags": posts_to_tags}),
    ])
    config = registry.get("posts")
"""

import logging
import re
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping

from sqlalchemy import Table

from db_autoadmin.config.models import (
    DEFAULT_API_PREFIX,
    CreateOptions,
    DeleteOptions,
    ListOptions,
    ModelConfig,
    UpdateOptions,
)
from db_autoadmin.errors import ConfigurationError, ModelNotFoundError
from db_autoadmin.forms.models import FieldOverride
from db_autoadmin.relations.resolver import resolve_many_to_many, resolve_one_to_many
from db_autoadmin.schema.introspector import column_descriptor, label_column_of, table_metadata
from db_autoadmin.text import to_title_case

logger = logging.getLogger(__name__)

DEFAULT_LOOKUP_COLUMN = "id"


def _options(cls, value: Any, defaults: dict[str, Any]):
    """Merge user options (model, dict or None) over generated defaults."""
    if value is None:
        data: dict[str, Any] = {}
    elif isinstance(value, cls):
        data = {name: getattr(value, name) for name in value.model_fields_set}
    else:
        data = dict(value)
    return cls(**{**defaults, **data})


def _validate_lookup_column(table: Table, name: str, label: str) -> None:
    if name not in table.c:
        available = ", ".join(table.c.keys())
        if name == DEFAULT_LOOKUP_COLUMN:
            raise ConfigurationError(
                f'The default lookup field "{name}" does not exist on the table '
                f'"{table.name}". Pass a different "lookup_column_name" value during '
                f"registration. Available columns: {available}"
            )
        raise ConfigurationError(
            f'Invalid lookup_column_name "{name}" provided for model "{label}". '
            f"Field does not exist on the table. Available columns: {available}"
        )
    descriptor = column_descriptor(table, name)
    if not descriptor.is_primary and not descriptor.is_unique:
        raise ConfigurationError(
            f'The lookup field "{name}" is not a primary or unique column on the '
            f'table "{table.name}". Pass a different "lookup_column_name" value '
            f"during registration."
        )


def configure_model(
    table: Table,
    *,
    key: str | None = None,
    label: str | None = None,
    api_prefix: str = DEFAULT_API_PREFIX,
    label_column_name: str | None = None,
    lookup_column_name: str = DEFAULT_LOOKUP_COLUMN,
    list_options: ListOptions | Mapping[str, Any] | None = None,
    create_options: CreateOptions | Mapping[str, Any] | None = None,
    update_options: UpdateOptions | Mapping[str, Any] | None = None,
    delete_options: DeleteOptions | Mapping[str, Any] | None = None,
    m2m: Mapping[str, Table] | None = None,
    o2m: Mapping[str, Table] | None = None,
    fields: Iterable[FieldOverride | Mapping[str, Any]] | None = None,
    form_fields: list[Any] | None = None,
    warn_on_unsaved_changes: bool = False,
) -> ModelConfig:
    """Build a validated ``ModelConfig`` for *table*.

    Defaults: key is the table name, label and list title are the title-cased
    key, every endpoint is ``{api_prefix}/{key}`` and search runs over the
    label column.  ``form_fields`` and ``warn_on_unsaved_changes`` apply to
    both create and update unless those options set their own.

    Raises:
        ConfigurationError: If the lookup column is missing or neither
            primary nor unique, a configured column does not exist, or a
            relation table has no usable foreign key.
    """
    key = re.sub(r"\s+", "", key) if key else table.name
    label = label or to_title_case(key)
    label_column_name = label_column_name or label_column_of(table)
    if label_column_name not in table.c:
        raise ConfigurationError(
            f'Label column "{label_column_name}" does not exist on the table "{table.name}".'
        )
    _validate_lookup_column(table, lookup_column_name, label)

    endpoint = f"{api_prefix}/{key}"
    list_defaults: dict[str, Any] = {"title": to_title_case(label), "endpoint": endpoint}
    list_opts = _options(ListOptions, list_options, list_defaults)
    if "search_fields" not in list_opts.model_fields_set:
        search_fields = [label_column_name] if list_opts.enable_search else []
        list_opts = list_opts.model_copy(update={"search_fields": search_fields})

    form_defaults = {
        "endpoint": endpoint,
        "warn_on_unsaved_changes": warn_on_unsaved_changes,
        "form_fields": form_fields,
    }
    create_opts = _options(CreateOptions, create_options, form_defaults)
    update_opts = _options(UpdateOptions, update_options, form_defaults)
    delete_opts = _options(DeleteOptions, delete_options, {"endpoint": endpoint})

    overrides = None
    if fields is not None:
        overrides = [
            field if isinstance(field, FieldOverride) else FieldOverride(**field)
            for field in fields
        ]

    config = ModelConfig(
        table=table,
        key=key,
        label=label,
        api_prefix=api_prefix,
        label_column_name=label_column_name,
        lookup_column_name=lookup_column_name,
        list_options=list_opts,
        create_options=create_opts,
        update_options=update_opts,
        delete_options=delete_opts,
        m2m=dict(m2m or {}),
        o2m=dict(o2m or {}),
        fields=overrides,
        metadata=table_metadata(table),
    )

    # Fail at registration rather than on the first request
    resolve_many_to_many(config)
    resolve_one_to_many(config)

    logger.debug("Configured model %s on table %s", key, table.name)
    return config


class ModelRegistry(Mapping[str, ModelConfig]):
    """Read-only mapping of model key to ``ModelConfig``.

    Built once at startup; there is no way to register models afterwards.

    Raises:
        ConfigurationError: On duplicate keys.
    """

    def __init__(self, configs: Iterable[ModelConfig] = ()) -> None:
        models: dict[str, ModelConfig] = {}
        for config in configs:
            if config.key in models:
                raise ConfigurationError(f"Model {config.key} is registered twice.")
            models[config.key] = config
        self._models = MappingProxyType(models)

    def __getitem__(self, key: str) -> ModelConfig:
        return self._models[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)

    def get(self, key: str) -> ModelConfig:  # type: ignore[override]
        """Config registered under *key*.

        Raises:
            ModelNotFoundError: If no model uses that key.
        """
        try:
            return self._models[key]
        except KeyError:
            raise ModelNotFoundError(f"Model {key} not registered.") from None

    def find_by_table(self, table: Table) -> ModelConfig | None:
        """Config whose table is *table*, if that table is registered."""
        for config in self._models.values():
            if config.table is table:
                return config
        return None

    def label_column_for(self, table: Table) -> str:
        """Label column of *table*: the registered one, else inferred."""
        config = self.find_by_table(table)
        if config is not None:
            return config.label_column_name
        return label_column_of(table)

    def enabled_statuses(self, table: Table) -> dict[str, Any] | None:
        """Key plus create/update flags of the model backed by *table*."""
        config = self.find_by_table(table)
        if config is None:
            return None
        return {
            "key": config.key,
            "create": config.create_options.enabled,
            "update": config.update_options.enabled,
        }
