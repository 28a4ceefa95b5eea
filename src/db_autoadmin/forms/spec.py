"""Form spec generation.

A form spec is built in passes over the generated column fields:

1. ``schema_to_form_spec()`` - one field per column from the table definition
2. ``apply_defined_fields()`` - configured ``form_fields`` and ``fields``
   overrides; the primary key is kept when the model declares relations
3. ``add_foreign_keys()`` - foreign key columns become ``relation`` fields
4. ``add_one_to_many()`` / ``add_many_to_many()`` - one ``relation-many``
   pseudo-field per declared relation
5. ``apply_metadata()`` - drop generated keys and timestamps, render
   datetimes as ``datetime-local``, fill column defaults

Update specs run the same passes with the record's current values, so
relation fields come back with their selected options preloaded.
"""

import logging
from typing import Any

from sqlalchemy import Table, select
from sqlalchemy.ext.asyncio import AsyncConnection

from db_autoadmin.config.models import CreateOptions, ModelConfig, UpdateOptions
from db_autoadmin.config.registry import ModelRegistry
from db_autoadmin.errors import ConfigurationError, OperationNotAllowedError, RecordNotFoundError
from db_autoadmin.forms.models import (
    FIELD_TYPES,
    FieldOverride,
    FieldSpec,
    FieldType,
    FormSpec,
    Option,
    RelationConfig,
)
from db_autoadmin.relations.resolver import resolve_many_to_many, resolve_one_to_many
from db_autoadmin.schema.introspector import (
    columns_of,
    foreign_keys_of,
    label_column_of,
    primary_key_column,
)
from db_autoadmin.schema.models import SemanticType
from db_autoadmin.schema.validation import coerce_value
from db_autoadmin.text import strip_id_suffix, to_title_case

logger = logging.getLogger(__name__)

# Attributes merged key by key instead of replaced
_MERGED_ATTRS = ("rules", "input_attrs", "field_attrs")


def schema_to_form_spec(table: Table) -> FormSpec:
    """One generated field per column of *table*."""
    fields = []
    for descriptor in columns_of(table):
        rules: dict[str, Any] = {}
        if descriptor.max_length:
            rules["maxLength"] = descriptor.max_length
        options = None
        if descriptor.semantic_type == SemanticType.ENUM:
            options = list(descriptor.enum_values or [])
        fields.append(
            FieldSpec(
                name=descriptor.name,
                label=to_title_case(descriptor.name),
                type=FIELD_TYPES[descriptor.semantic_type],
                required=not (descriptor.nullable or descriptor.has_default),
                rules=rules,
                options=options,
            )
        )
    return FormSpec(fields=fields)


def merge_field(field: FieldSpec, override: FieldOverride) -> FieldSpec:
    """Overlay the attributes explicitly set on *override* onto *field*."""
    update: dict[str, Any] = {}
    for name in override.model_fields_set:
        value = getattr(override, name)
        if value is None:
            continue
        if name in _MERGED_ATTRS:
            value = {**(getattr(field, name) or {}), **value}
        update[name] = value
    return field.model_copy(update=update)


def apply_defined_fields(
    spec: FormSpec,
    config: ModelConfig,
    form_fields: list[str | FieldOverride] | None,
) -> FormSpec:
    """Select, order and override generated fields.

    Raises:
        ConfigurationError: If a form field names no column of the table.
    """
    generated = {field.name: field for field in spec.fields}

    if form_fields is None:
        fields = list(spec.fields)
    else:
        fields = []
        for entry in form_fields:
            name = entry if isinstance(entry, str) else entry.name
            field = generated.get(name)
            if field is None:
                raise ConfigurationError(f"Invalid form field: {name}")
            if isinstance(entry, FieldOverride):
                field = merge_field(field, entry)
            fields.append(field)

    if config.fields is not None:
        fields = [
            merge_field(field, override) if override is not None else field
            for field, override in ((f, config.field_override(f.name)) for f in fields)
        ]

    if config.m2m or config.o2m:
        # Relation sync needs the record's key on submit
        pk_name = primary_key_column(config.table).key
        if not any(field.name == pk_name for field in fields) and pk_name in generated:
            fields.append(generated[pk_name])

    return spec.model_copy(update={"fields": fields})


def _label_column(registry: ModelRegistry | None, table: Table) -> str:
    if registry is not None:
        return registry.label_column_for(table)
    return label_column_of(table)


def _relation_config(
    registry: ModelRegistry | None,
    table: Table,
    choices_endpoint: str,
    foreign_column: str,
) -> RelationConfig:
    statuses = registry.enabled_statuses(table) if registry is not None else None
    statuses = statuses or {}
    return RelationConfig(
        choices_endpoint=choices_endpoint,
        related_config_key=statuses.get("key"),
        enable_create=statuses.get("create"),
        enable_update=statuses.get("update"),
        foreign_related_column_name=foreign_column,
        foreign_label_column_name=_label_column(registry, table),
    )


async def _options_of(
    conn: AsyncConnection,
    stmt,
    label_column: str,
    value_column: str,
) -> list[Option]:
    result = await conn.execute(stmt)
    return [
        Option(label=row[label_column], value=row[value_column])
        for row in result.mappings()
    ]


async def add_foreign_keys(
    conn: AsyncConnection | None,
    spec: FormSpec,
    config: ModelConfig,
    registry: ModelRegistry | None = None,
) -> FormSpec:
    """Turn foreign key columns present in the form into ``relation`` fields.

    With values, the currently referenced row is preloaded as the field's
    only option.
    """
    fields = list(spec.fields)
    for fk in foreign_keys_of(config.table):
        index = next((i for i, field in enumerate(fields) if field.name == fk.column), None)
        if index is None:
            continue
        field = fields[index]
        update: dict[str, Any] = {
            "type": FieldType.RELATION,
            "label": strip_id_suffix(field.label or field.name),
            "relation_config": _relation_config(
                registry,
                fk.foreign_table,
                f"{config.api_prefix}/formspec/{config.key}/choices/{fk.column}",
                fk.foreign_column,
            ),
        }
        current = (spec.values or {}).get(fk.column)
        if conn is not None and current is not None:
            foreign = fk.foreign_table
            update["options"] = await _options_of(
                conn,
                select(foreign).where(foreign.c[fk.foreign_column] == current),
                _label_column(registry, foreign),
                fk.foreign_column,
            )
        fields[index] = field.model_copy(update=update)
    return spec.model_copy(update={"fields": fields})


async def add_one_to_many(
    conn: AsyncConnection | None,
    spec: FormSpec,
    config: ModelConfig,
    registry: ModelRegistry | None = None,
    record: dict[str, Any] | None = None,
) -> FormSpec:
    """Append one ``relation-many`` field per one-to-many relation.

    With a *record*, the children currently attached to it are preloaded as
    options and their keys become the field's value.
    """
    fields = list(spec.fields)
    values = spec.values
    for relation in resolve_one_to_many(config):
        child = relation.child_table
        child_pk = relation.child_primary_column.key
        name = relation.field_id.encode()
        field = FieldSpec(
            name=name,
            label=to_title_case(relation.name),
            type=FieldType.RELATION_MANY,
            required=False,
            options=[],
            relation_config=_relation_config(
                registry,
                child,
                f"{config.api_prefix}/formspec/{config.key}/choices-o2m/___{relation.name}___{child_pk}",
                child_pk,
            ),
        )
        if conn is not None and record is not None and values is not None:
            parent_value = record.get(relation.parent_primary_column.key)
            if parent_value is None:
                raise ConfigurationError(
                    f"Primary key value is required for one-to-many relation. "
                    f"None found for {config.key}."
                )
            options = await _options_of(
                conn,
                select(child).where(relation.child_foreign_column == parent_value),
                _label_column(registry, child),
                child_pk,
            )
            field.options = options
            values[name] = [option.value for option in options]
        fields.append(field)
    return spec.model_copy(update={"fields": fields})


async def add_many_to_many(
    conn: AsyncConnection | None,
    spec: FormSpec,
    config: ModelConfig,
    registry: ModelRegistry | None = None,
    record: dict[str, Any] | None = None,
) -> FormSpec:
    """Append one ``relation-many`` field per many-to-many relation edge."""
    fields = list(spec.fields)
    values = spec.values
    for relation in resolve_many_to_many(config):
        other = relation.other_table
        other_key = relation.other_foreign_column.key
        name = relation.field_id.encode()
        field = FieldSpec(
            name=name,
            label=to_title_case(relation.name),
            type=FieldType.RELATION_MANY,
            required=False,
            options=[],
            relation_config=_relation_config(
                registry,
                other,
                f"{config.api_prefix}/formspec/{config.key}/choices-many/{name}",
                other_key,
            ),
        )
        if conn is not None and record is not None and values is not None:
            self_value = record.get(relation.self_foreign_column.key)
            stmt = (
                select(other)
                .join(
                    relation.junction_table,
                    relation.other_foreign_column == relation.other_column,
                )
                .where(relation.self_column == self_value)
            )
            options = await _options_of(conn, stmt, _label_column(registry, other), other_key)
            if options:
                field.options = options
                values[name] = [option.value for option in options]
        fields.append(field)
    return spec.model_copy(update={"fields": fields})


def apply_metadata(spec: FormSpec, config: ModelConfig) -> FormSpec:
    """Apply table metadata to the generated fields.

    Autoincrement keys and auto timestamps are filled by the database and
    never edited, so their fields are dropped.
    """
    metadata = config.metadata
    hidden = set(metadata.primary_autoincrement_columns) | set(metadata.auto_timestamp_columns)
    fields = []
    for field in spec.fields:
        if field.name in hidden:
            continue
        update: dict[str, Any] = {}
        if field.name in metadata.datetime_columns:
            update["type"] = FieldType.DATETIME_LOCAL
        default = metadata.default_values.get(field.name)
        if default is not None and field.default_value is None:
            update["default_value"] = default
        fields.append(field.model_copy(update=update) if update else field)
    return spec.model_copy(update={"fields": fields})


async def build_form_spec(
    conn: AsyncConnection | None,
    config: ModelConfig,
    options: CreateOptions | UpdateOptions,
    registry: ModelRegistry | None = None,
    record: dict[str, Any] | None = None,
) -> FormSpec:
    """Run every generation pass for *config*.

    Args:
        conn: Connection used to preload relation options; only needed with
            a *record*.
        config: Model configuration.
        options: Create or update options (form fields, unsaved changes flag).
        registry: Registry used for related models' labels and flags.
        record: Full row of the record being edited, or None for a create form.
    """
    spec = apply_defined_fields(schema_to_form_spec(config.table), config, options.form_fields)
    if record is not None:
        names = [field.name for field in spec.fields] + [config.label_column_name]
        spec.values = {name: record[name] for name in names if name in record}

    spec = await add_foreign_keys(conn, spec, config, registry)
    spec = await add_one_to_many(conn, spec, config, registry, record)
    spec = await add_many_to_many(conn, spec, config, registry, record)
    spec = apply_metadata(spec, config)
    spec.warn_on_unsaved_changes = options.warn_on_unsaved_changes
    return spec


async def create_form_spec(
    config: ModelConfig,
    registry: ModelRegistry | None = None,
) -> FormSpec:
    """Form spec for creating a record of *config*.

    Raises:
        OperationNotAllowedError: If the model disables creation.
    """
    if not config.create_options.enabled:
        raise OperationNotAllowedError(f"Model {config.key} does not allow creation.")
    return await build_form_spec(None, config, config.create_options, registry)


async def update_form_spec(
    conn: AsyncConnection,
    config: ModelConfig,
    lookup_value: Any,
    registry: ModelRegistry | None = None,
) -> FormSpec:
    """Form spec for editing the record whose lookup column equals *lookup_value*.

    The record's label column is surfaced as ``label_string`` and only kept
    in ``values`` when it is a visible field.

    Raises:
        OperationNotAllowedError: If the model disables updates.
        RecordNotFoundError: If no record matches.
    """
    if not config.update_options.enabled:
        raise OperationNotAllowedError(f"Model {config.key} does not allow updates.")

    lookup = config.lookup_column
    value = coerce_value(lookup, lookup_value)
    result = await conn.execute(select(config.table).where(lookup == value))
    row = result.mappings().first()
    if row is None:
        raise RecordNotFoundError(f"{config.label} {lookup_value} not found.")

    record = dict(row)
    spec = await build_form_spec(conn, config, config.update_options, registry, record)

    label_column = config.label_column_name
    spec.label_string = record.get(label_column)
    if spec.values is not None and spec.field(label_column) is None:
        spec.values.pop(label_column, None)

    logger.debug("%s: update form for %s=%r", config.key, lookup.key, value)
    return spec
