"""Date filter conditions.

Query values are ``YYYY-MM-DD`` for a single day and ``YYYY-MM-DD,YYYY-MM-DD``
for a range where either side may be empty.  Days run from ``00:00:00`` to
``23:59:59`` local time, both ends inclusive.

Integer epoch columns compare against seconds or milliseconds depending on
the column's declared unit.
"""

from datetime import date, datetime, time
from typing import Any

from sqlalchemy import Column, and_
from sqlalchemy import types as sqltypes
from sqlalchemy.sql.elements import ColumnElement

from db_autoadmin.errors import BadRequestError
from db_autoadmin.schema.validation import to_epoch

_START_OF_DAY = time(0, 0, 0)
_END_OF_DAY = time(23, 59, 59)


def parse_day(value: str) -> date:
    """Parse ``YYYY-MM-DD``.

    Raises:
        BadRequestError: If *value* is not a calendar date.
    """
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise BadRequestError(
            f"Invalid date {value!r}. Expected YYYY-MM-DD."
        ) from None


def _bound(column: Column, day: date, at: time, timestamp_unit: str | None) -> Any:
    moment = datetime.combine(day, at)
    if timestamp_unit:
        return to_epoch(moment, timestamp_unit)
    if isinstance(column.type, sqltypes.Date) and not isinstance(column.type, sqltypes.DateTime):
        return day
    return moment


def _between(
    column: Column,
    start: date | None,
    end: date | None,
    timestamp_unit: str | None,
) -> ColumnElement[bool] | None:
    conditions = []
    if start is not None:
        conditions.append(column >= _bound(column, start, _START_OF_DAY, timestamp_unit))
    if end is not None:
        conditions.append(column <= _bound(column, end, _END_OF_DAY, timestamp_unit))
    if not conditions:
        return None
    return and_(*conditions)


def date_condition(
    column: Column,
    value: str,
    timestamp_unit: str | None = None,
) -> ColumnElement[bool] | None:
    """Match the whole day given as ``YYYY-MM-DD``; ``None`` for a blank value."""
    if not value.strip():
        return None
    day = parse_day(value)
    return _between(column, day, day, timestamp_unit)


def date_range_condition(
    column: Column,
    value: str,
    timestamp_unit: str | None = None,
) -> ColumnElement[bool] | None:
    """Match ``start,end`` inclusively; either side may be omitted.

    A value without a comma is treated as a single day.
    """
    if "," not in value:
        return date_condition(column, value, timestamp_unit)
    start_text, _, end_text = value.partition(",")
    start = parse_day(start_text) if start_text.strip() else None
    end = parse_day(end_text) if end_text.strip() else None
    return _between(column, start, end, timestamp_unit)
