"""Filter compilation for list queries.

``compile_filters()`` resolves the configured filter fields (or, when none
are configured, every boolean, enum and date column) into ``FilterSpec``
objects, running the option queries the UI needs.  ``filter_conditions()``
turns the request's filter values into SQL conditions for those specs.

Both steps dispatch on ``FilterType`` through tables that must cover every
member; a missing entry fails at import time.
"""

import logging
from typing import Any, Awaitable, Callable, Mapping

from sqlalchemy import Column, func, select
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.sql.elements import ColumnElement

from db_autoadmin.callables import maybe_await
from db_autoadmin.config.models import CustomFilter, FilterField, ModelConfig
from db_autoadmin.config.registry import ModelRegistry
from db_autoadmin.errors import BadRequestError, ConfigurationError
from db_autoadmin.forms.models import FieldType, Option
from db_autoadmin.listing.dates import date_condition, date_range_condition
from db_autoadmin.listing.models import FilterSpec, FilterType
from db_autoadmin.schema.introspector import (
    column_descriptor,
    foreign_keys_of_column,
    label_column_of,
)
from db_autoadmin.schema.models import SemanticType
from db_autoadmin.schema.validation import coerce_value
from db_autoadmin.text import strip_id_suffix, to_title_case

logger = logging.getLogger(__name__)

# Filter inferred from a column's semantic type; None means not filterable
SEMANTIC_FILTER_TYPES: dict[SemanticType, FilterType | None] = {
    SemanticType.STRING: FilterType.TEXT,
    SemanticType.NUMBER: FilterType.TEXT,
    SemanticType.BOOLEAN: FilterType.BOOLEAN,
    SemanticType.DATE: FilterType.DATE,
    SemanticType.ENUM: FilterType.SELECT,
    SemanticType.BLOB: None,
    SemanticType.JSON: None,
}

# Column types included when no filter fields are configured
_DEFAULT_FILTER_SEMANTICS = (SemanticType.BOOLEAN, SemanticType.ENUM, SemanticType.DATE)

_TRUE_VALUES = {"true", "1"}
_FALSE_VALUES = {"false", "0"}


def parse_bool(field: str, value: Any) -> bool:
    """Boolean filter value from ``true``/``false`` (or ``1``/``0``).

    Raises:
        BadRequestError: For anything else.
    """
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise BadRequestError(f"Invalid value {value!r} for boolean filter {field}.")


# ============================================================================
# Filter Specs
# ============================================================================


class _FilterRequest:
    """Everything a spec builder needs for one configured filter field."""

    def __init__(
        self,
        conn: AsyncConnection,
        config: ModelConfig,
        registry: ModelRegistry | None,
        field: str,
        label: str | None,
        declared_type: FilterType | None,
        options: list[Option] | None,
        query: Mapping[str, Any],
    ) -> None:
        self.conn = conn
        self.config = config
        self.registry = registry
        self.field = field
        self.label = label
        self.declared_type = declared_type
        self.options = options
        self.query = query

    @property
    def column(self) -> Column:
        return self.config.table.c[self.field]


async def _boolean_spec(request: _FilterRequest) -> FilterSpec:
    return FilterSpec(
        field=request.field,
        label=request.label or to_title_case(request.field),
        type=FilterType.BOOLEAN,
    )


async def _date_spec(request: _FilterRequest) -> FilterSpec:
    descriptor = column_descriptor(request.config.table, request.field)
    return FilterSpec(
        field=request.field,
        label=request.label or to_title_case(request.field),
        type=request.declared_type or FilterType.DATE,
        timestamp_unit=descriptor.timestamp_unit,
    )


async def _text_spec(request: _FilterRequest) -> FilterSpec:
    options = request.options
    if options is None:
        column = request.column
        stmt = (
            select(column.label("value"), func.count().label("count"))
            .select_from(request.config.table)
            .group_by(column)
            .order_by(column)
        )
        result = await request.conn.execute(stmt)
        options = [
            Option(value=row["value"], count=row["count"]) for row in result.mappings()
        ]
    return FilterSpec(
        field=request.field,
        label=request.label or to_title_case(request.field),
        type=FilterType.TEXT,
        options=options,
    )


async def _select_spec(request: _FilterRequest) -> FilterSpec:
    options = request.options
    if options is None:
        descriptor = column_descriptor(request.config.table, request.field)
        options = [Option(label=value, value=value) for value in descriptor.enum_values or []]
    return FilterSpec(
        field=request.field,
        label=request.label or to_title_case(request.field),
        type=FilterType.SELECT,
        options=options,
    )


async def _relation_spec(request: _FilterRequest) -> FilterSpec:
    config = request.config
    foreign_keys = foreign_keys_of_column(config.table, request.field)
    if not foreign_keys:
        raise ConfigurationError(f"Invalid relation: {request.field!r}")
    fk = foreign_keys[0]

    options = request.options
    current = request.query.get(request.field)
    if options is None and current not in (None, ""):
        foreign_column = fk.foreign_table.c[fk.foreign_column]
        if request.registry is not None:
            label_column = request.registry.label_column_for(fk.foreign_table)
        else:
            label_column = label_column_of(fk.foreign_table)
        stmt = select(fk.foreign_table).where(
            foreign_column == coerce_value(foreign_column, current)
        )
        result = await request.conn.execute(stmt)
        options = [
            Option(label=row[label_column], value=row[fk.foreign_column])
            for row in result.mappings()
        ]

    return FilterSpec(
        field=request.field,
        label=request.label or strip_id_suffix(to_title_case(request.field)),
        type=FilterType.RELATION,
        options=options,
        choices_endpoint=(
            None
            if request.options is not None
            else f"{config.api_prefix}/formspec/{config.key}/choices/{request.field}"
        ),
    )


_SPEC_BUILDERS: dict[FilterType, Callable[[_FilterRequest], Awaitable[FilterSpec]]] = {
    FilterType.BOOLEAN: _boolean_spec,
    FilterType.TEXT: _text_spec,
    FilterType.DATE: _date_spec,
    FilterType.DATERANGE: _date_spec,
    FilterType.RELATION: _relation_spec,
    FilterType.SELECT: _select_spec,
}
if set(_SPEC_BUILDERS) != set(FilterType):
    raise RuntimeError(f"_SPEC_BUILDERS misses {set(FilterType) - set(_SPEC_BUILDERS)}")


def _filter_type(config: ModelConfig, field: str, declared: FilterType | None) -> FilterType:
    """Effective filter type: foreign key columns are always relations."""
    if foreign_keys_of_column(config.table, field):
        return FilterType.RELATION
    if declared is not None:
        return declared
    inferred = SEMANTIC_FILTER_TYPES[column_descriptor(config.table, field).semantic_type]
    if inferred is None:
        raise ConfigurationError(f"Invalid filter: {field!r} cannot be filtered.")
    return inferred


async def _column_filter(
    conn: AsyncConnection,
    config: ModelConfig,
    registry: ModelRegistry | None,
    field: str,
    query: Mapping[str, Any],
    label: str | None = None,
    declared_type: FilterType | None = None,
    options: list[Option] | None = None,
) -> FilterSpec:
    if field not in config.table.c:
        raise ConfigurationError(
            f"Invalid filter: {field!r}. No such column on {config.table.name}."
        )
    filter_type = _filter_type(config, field, declared_type)
    request = _FilterRequest(
        conn,
        config,
        registry,
        field,
        label,
        declared_type if filter_type == FilterType.DATERANGE else None,
        options,
        query,
    )
    return await _SPEC_BUILDERS[filter_type](request)


async def _custom_filter(
    conn: AsyncConnection,
    filter_def: CustomFilter,
    query: Mapping[str, Any],
) -> FilterSpec:
    options = None
    if filter_def.options is not None:
        options = await maybe_await(filter_def.options(conn, query))
    return FilterSpec(
        field=filter_def.parameter_name,
        label=filter_def.label,
        type=filter_def.type,
        options=options,
        query_conditions=filter_def.query_conditions,
    )


def default_filter_fields(config: ModelConfig) -> list[str]:
    """Boolean, then enum, then date columns."""
    table = config.table
    fields: list[str] = []
    for semantic in _DEFAULT_FILTER_SEMANTICS:
        for column in table.columns:
            if column_descriptor(table, column.key).semantic_type == semantic:
                fields.append(column.key)
    return fields


async def compile_filters(
    conn: AsyncConnection,
    config: ModelConfig,
    registry: ModelRegistry | None = None,
    query: Mapping[str, Any] | None = None,
) -> list[FilterSpec]:
    """Resolve the filters of *config* for one request.

    Args:
        conn: Connection used for option queries.
        config: Model configuration.
        registry: Used to find label columns of related tables.
        query: Request query values; the current value of a relation filter
            preloads its option label.

    Raises:
        ConfigurationError: On an unknown or unfilterable field, or a
            relation filter on a column without a foreign key.
    """
    query = query or {}
    configured = config.list_options.filter_fields
    filters: list[FilterSpec] = []

    if configured is None:
        # Auto-selected filters never preload relation labels
        for field in default_filter_fields(config):
            filters.append(await _column_filter(conn, config, registry, field, {}))
    else:
        for filter_def in configured:
            if isinstance(filter_def, str):
                filters.append(await _column_filter(conn, config, registry, filter_def, query))
            elif isinstance(filter_def, FilterField):
                filters.append(
                    await _column_filter(
                        conn,
                        config,
                        registry,
                        filter_def.field,
                        query,
                        label=filter_def.label,
                        declared_type=filter_def.type,
                        options=filter_def.options,
                    )
                )
            elif isinstance(filter_def, CustomFilter):
                filters.append(await _custom_filter(conn, filter_def, query))
            else:
                raise ConfigurationError(f"Invalid filter: {filter_def!r}")

    datetime_columns = set(config.metadata.datetime_columns)
    datetime_columns.update(config.metadata.auto_timestamp_columns)
    for spec in filters:
        if not spec.is_custom and spec.field in datetime_columns:
            spec.original_type = FieldType.DATETIME_LOCAL
    return filters


# ============================================================================
# Filter Conditions
# ============================================================================


def _boolean_condition(spec: FilterSpec, column: Column, value: Any) -> ColumnElement[bool] | None:
    return column == parse_bool(spec.field, value)


def _equals_condition(spec: FilterSpec, column: Column, value: Any) -> ColumnElement[bool] | None:
    return column == coerce_value(column, value)


def _date_condition(spec: FilterSpec, column: Column, value: Any) -> ColumnElement[bool] | None:
    return date_condition(column, str(value), spec.timestamp_unit)


def _daterange_condition(spec: FilterSpec, column: Column, value: Any) -> ColumnElement[bool] | None:
    return date_range_condition(column, str(value), spec.timestamp_unit)


_CONDITION_BUILDERS: dict[FilterType, Callable[[FilterSpec, Column, Any], ColumnElement[bool] | None]] = {
    FilterType.BOOLEAN: _boolean_condition,
    FilterType.TEXT: _equals_condition,
    FilterType.DATE: _date_condition,
    FilterType.DATERANGE: _daterange_condition,
    FilterType.RELATION: _equals_condition,
    FilterType.SELECT: _equals_condition,
}
if set(_CONDITION_BUILDERS) != set(FilterType):
    raise RuntimeError(
        f"_CONDITION_BUILDERS misses {set(FilterType) - set(_CONDITION_BUILDERS)}"
    )


async def filter_conditions(
    conn: AsyncConnection,
    config: ModelConfig,
    filters: list[FilterSpec],
    query: Mapping[str, Any],
) -> list[ColumnElement[bool]]:
    """SQL conditions for the filter values present in *query*.

    Empty values are skipped.  Custom filters receive the raw value (a bool
    for boolean custom filters) and return their own conditions.

    Raises:
        BadRequestError: On a malformed boolean, number or date value.
    """
    conditions: list[ColumnElement[bool]] = []
    for spec in filters:
        value = query.get(spec.field)
        if value is None or value == "":
            continue

        if spec.is_custom:
            if spec.type == FilterType.BOOLEAN:
                value = parse_bool(spec.field, value)
            custom = await maybe_await(spec.query_conditions(conn, value))
            conditions.extend(custom or [])
            continue

        column = config.table.c[spec.field]
        condition = _CONDITION_BUILDERS[spec.type](spec, column, value)
        if condition is not None:
            conditions.append(condition)

    logger.debug("%s: %d filter conditions", config.key, len(conditions))
    return conditions
