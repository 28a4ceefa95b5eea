"""Models returned by the list endpoint: columns, filters, pagination."""

from enum import Enum
from typing import Any, Callable

from pydantic import Field

from db_autoadmin.forms.models import FieldType, Option
from db_autoadmin.wire import WireModel


class FilterType(str, Enum):
    """Filter widgets a list can expose."""

    BOOLEAN = "boolean"
    TEXT = "text"
    DATE = "date"
    DATERANGE = "daterange"
    RELATION = "relation"
    SELECT = "select"


class FilterSpec(WireModel):
    """A resolved filter for one list request.

    ``query_conditions`` is only set for custom filters and is never
    serialized.
    """

    field: str
    label: str
    type: FilterType
    options: list[Option] | None = None
    choices_endpoint: str | None = None
    original_type: FieldType | None = None
    timestamp_unit: str | None = Field(default=None, exclude=True)
    query_conditions: Callable[..., Any] | None = Field(default=None, exclude=True)

    @property
    def is_custom(self) -> bool:
        return self.query_conditions is not None


class ListColumnDef(WireModel):
    """A column of the list table."""

    id: str
    accessor_key: str
    header: str
    type: FieldType | None = None
    sort_key: str | None = None
    accessor_fn: Callable[..., Any] | None = Field(default=None, exclude=True)
    path: str | None = Field(default=None, exclude=True)  # configured column or relation path


class BulkActionSpec(WireModel):
    label: str
    icon: str | None = None


class ListSpec(WireModel):
    """UI description of the list page."""

    endpoint: str
    title: str
    columns: list[ListColumnDef]
    lookup_column_name: str
    update_endpoint: str | None = None
    delete_endpoint: str | None = None
    enable_delete: bool = False
    bulk_actions: list[BulkActionSpec] = Field(default_factory=list)
    show_create_button: bool = False
    enable_sort: bool = False
    enable_search: bool = False
    search_placeholder: str | None = None
    search_fields: list[str] | None = None


class Pagination(WireModel):
    count: int
    page: int
    size: int
    pages: int


class Aggregate(WireModel):
    label: str
    value: Any = None


class PaginatedResponse(WireModel):
    """One page of results.  ``pages == ceil(count / size)``."""

    results: list[dict[str, Any]]
    pagination: Pagination
    aggregates: dict[str, Aggregate] | None = None


class ListResponse(PaginatedResponse):
    """Paginated rows plus the filters and UI spec used to produce them."""

    filters: list[FilterSpec] | None = None
    spec: ListSpec
