"""Pydantic models for engine settings and per-model configuration."""

from typing import Any, Awaitable, Callable, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import Column, Table
from sqlalchemy.sql.elements import ColumnElement

from db_autoadmin.forms.models import FieldOverride, FieldType, Option
from db_autoadmin.listing.models import FilterType
from db_autoadmin.schema.models import TableMetadata

DEFAULT_API_PREFIX = "/api/autoadmin"

AggregateFunction = Literal["avg", "sum", "min", "max", "count"]


# ============================================================================
# Settings
# ============================================================================


class AdminSettings(BaseSettings):
    """Engine settings from ``autoadmin.toml`` and ``AUTOADMIN_*`` env vars."""

    model_config = SettingsConfigDict(env_prefix="AUTOADMIN_")

    database_url: str = ""
    api_prefix: str = DEFAULT_API_PREFIX
    default_page_size: int = Field(default=10, gt=0)
    max_page_size: int = Field(default=100, gt=0)
    echo_sql: bool = False


# ============================================================================
# List Options
# ============================================================================


class _Options(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)


class ListField(_Options):
    """Detailed list column: a column/relation path or an accessor function."""

    field: str | Callable[..., Any]
    label: str | None = None
    type: FieldType | None = None
    sort_key: str | Literal[False] | None = None


class FilterField(_Options):
    """Filter on a column with optional label, type and fixed options."""

    field: str
    label: str | None = None
    type: FilterType | None = None
    options: list[Option] | None = None


class CustomFilter(_Options):
    """Filter whose options and SQL conditions come from caller functions.

    ``options(conn, query)`` returns a list of ``Option``;
    ``query_conditions(conn, value)`` returns a list of SQL expressions.
    Both may be sync or async.
    """

    parameter_name: str
    label: str
    type: FilterType = FilterType.TEXT
    options: Callable[..., Any] | None = None
    query_conditions: Callable[..., Any]


class BulkAction(_Options):
    """Named action run over a set of selected rows."""

    label: str
    icon: str | None = None
    action: Callable[..., Awaitable[Any] | Any]


class AggregateField(_Options):
    """Window aggregate computed over the filtered rows."""

    function: AggregateFunction
    column: str
    label: str | None = None


class CustomSelection(_Options):
    """Extra SQL expression selected into every list row.

    Aggregate selections (usually window functions) are lifted out of the
    rows into the response aggregates.
    """

    sql: ColumnElement
    is_aggregate: bool = False
    label: str | None = None


class ListOptions(_Options):
    show_create_button: bool = True
    enable_search: bool = True
    enable_sort: bool = True
    enable_filter: bool = True
    search_placeholder: str = "Search ..."
    search_fields: list[str] = Field(default_factory=list)
    bulk_actions: list[BulkAction] = Field(default_factory=list)
    custom_selections: dict[str, CustomSelection] = Field(default_factory=dict)
    aggregates: dict[str, AggregateField] = Field(default_factory=dict)
    title: str = ""
    endpoint: str = ""
    filter_fields: list[str | FilterField | CustomFilter] | None = None
    fields: list[str | Callable[..., Any] | ListField] | None = None


class CreateOptions(_Options):
    enabled: bool = True
    endpoint: str = ""
    warn_on_unsaved_changes: bool = False
    form_fields: list[str | FieldOverride] | None = None


class UpdateOptions(_Options):
    enabled: bool = True
    endpoint: str = ""
    warn_on_unsaved_changes: bool = False
    form_fields: list[str | FieldOverride] | None = None


class DeleteOptions(_Options):
    enabled: bool = True
    endpoint: str = ""


# ============================================================================
# Model Configuration
# ============================================================================


class ModelConfig(_Options):
    """Validated configuration of one registered table.

    Built once by ``configure_model()`` and read-only afterwards.
    """

    table: Table
    key: str
    label: str
    api_prefix: str = DEFAULT_API_PREFIX
    label_column_name: str
    lookup_column_name: str
    list_options: ListOptions
    create_options: CreateOptions
    update_options: UpdateOptions
    delete_options: DeleteOptions
    m2m: dict[str, Table] = Field(default_factory=dict)
    o2m: dict[str, Table] = Field(default_factory=dict)
    fields: list[FieldOverride] | None = None
    metadata: TableMetadata = Field(default_factory=TableMetadata)

    @property
    def columns(self):
        """Column collection of the table, keyed by column key."""
        return self.table.c

    @property
    def lookup_column(self) -> Column:
        return self.table.c[self.lookup_column_name]

    def field_override(self, name: str) -> FieldOverride | None:
        for override in self.fields or []:
            if override.name == name:
                return override
        return None
