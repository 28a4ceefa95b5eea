"""List response models.

Query building lives in ``db_autoadmin.listing.query``.
"""

from db_autoadmin.listing.models import (
    Aggregate,
    FilterSpec,
    FilterType,
    ListColumnDef,
    ListResponse,
    ListSpec,
    PaginatedResponse,
    Pagination,
)

__all__ = [
    "Aggregate",
    "FilterSpec",
    "FilterType",
    "ListColumnDef",
    "ListResponse",
    "ListSpec",
    "PaginatedResponse",
    "Pagination",
]
