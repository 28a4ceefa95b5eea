"""Page/size parsing and paginated execution."""

import math
from typing import Any, Mapping

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import Select
from sqlalchemy.ext.asyncio import AsyncConnection

from db_autoadmin.errors import BadRequestError
from db_autoadmin.listing.models import Pagination

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


class PaginationParams(BaseModel):
    """``page`` (1-based) and ``size`` parsed from query values."""

    page: int = Field(default=1, ge=1)
    size: int = Field(default=DEFAULT_PAGE_SIZE, gt=0)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.size

    @classmethod
    def from_query(
        cls,
        query: Mapping[str, Any],
        default_size: int = DEFAULT_PAGE_SIZE,
        max_size: int = MAX_PAGE_SIZE,
    ) -> "PaginationParams":
        """Parse ``page``/``size``; missing or blank values take the defaults.

        Raises:
            BadRequestError: On non-numeric values, a page below 1, or a size
                outside ``1..max_size``.
        """
        data: dict[str, Any] = {"size": default_size}
        for key in ("page", "size"):
            value = query.get(key)
            if value not in (None, ""):
                data[key] = value
        try:
            params = cls.model_validate(data)
        except PydanticValidationError as e:
            errors = [
                {"name": str(error["loc"][0]), "message": error["msg"]} for error in e.errors()
            ]
            raise BadRequestError("Invalid pagination parameters", errors=errors) from e
        if params.size > max_size:
            raise BadRequestError(
                f"Page size must be less than or equal to {max_size}",
                errors=[{"name": "size", "message": f"Must be at most {max_size}."}],
            )
        return params


async def paginate(
    conn: AsyncConnection,
    stmt: Select,
    count_stmt: Select,
    params: PaginationParams,
) -> tuple[list[dict[str, Any]], Pagination]:
    """Run *count_stmt* and one page of *stmt*.

    The count statement is independent of the paginated one, so
    ``LIMIT``/``OFFSET`` never change the reported count.

    Returns:
        Tuple of (rows as dicts, Pagination)
    """
    count = (await conn.execute(count_stmt)).scalar_one()
    result = await conn.execute(stmt.limit(params.size).offset(params.offset))
    rows = [dict(row) for row in result.mappings()]
    pagination = Pagination(
        count=count,
        page=params.page,
        size=params.size,
        pages=math.ceil(count / params.size),
    )
    return rows, pagination
