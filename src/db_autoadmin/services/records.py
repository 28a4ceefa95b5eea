"""Record services: list, detail, create, update, delete and bulk operations.

Every function takes the ``Database`` handle and the ``ModelRegistry``
explicitly.  Writes run the parent statement and the relation sync in one
transaction, so a failing relation leaves the parent row untouched.

Usage:
    from db_autoadmin.services import create_record, list_records

    page = await list_records(db, registry, "posts", {"search": "hello"})
    result = await create_record(db, registry, "tags", {"name": "Tag 1"})
"""

import logging
from typing import Any, Mapping, Sequence

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection

from db_autoadmin.adapters.engine import Database
from db_autoadmin.callables import maybe_await
from db_autoadmin.config.models import AdminSettings, ModelConfig
from db_autoadmin.config.registry import ModelRegistry
from db_autoadmin.errors import (
    BadRequestError,
    OperationNotAllowedError,
    RecordNotFoundError,
    translate_db_error,
)
from db_autoadmin.listing.models import ListResponse
from db_autoadmin.listing.query import ListQueryBuilder
from db_autoadmin.relations.synchronizer import sync_relations
from db_autoadmin.schema.validation import coerce_value, coerce_values, validate_write

logger = logging.getLogger(__name__)


async def _execute(conn: AsyncConnection, stmt: Any, operation: str = "write"):
    try:
        return await conn.execute(stmt)
    except DBAPIError as e:
        raise translate_db_error(e, operation) from e


async def _fetch_record(conn: AsyncConnection, config: ModelConfig, lookup_value: Any) -> dict[str, Any]:
    value = coerce_value(config.lookup_column, lookup_value)
    result = await _execute(conn, select(config.table).where(config.lookup_column == value))
    row = result.mappings().first()
    if row is None:
        raise RecordNotFoundError(f"{config.label} {lookup_value} not found.")
    return dict(row)


def _require_delete(config: ModelConfig) -> None:
    if not config.delete_options.enabled:
        raise OperationNotAllowedError(f"Model {config.label} does not allow deletion.")


# ============================================================================
# Reads
# ============================================================================


async def list_records(
    db: Database,
    registry: ModelRegistry,
    key: str,
    query: Mapping[str, Any] | None = None,
    settings: AdminSettings | None = None,
) -> ListResponse:
    """One page of the list of model *key*.

    Raises:
        ModelNotFoundError: If *key* is not registered.
        BadRequestError: On malformed pagination or filter values.
        DatabaseError: If the query fails.
    """
    config = registry.get(key)
    settings = settings or AdminSettings()
    builder = ListQueryBuilder(
        config,
        registry,
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
    )
    async with db.connect() as conn:
        return await builder.execute(conn, query)


async def get_record(
    db: Database,
    registry: ModelRegistry,
    key: str,
    lookup_value: Any,
) -> dict[str, Any]:
    """Full row of the record whose lookup column equals *lookup_value*.

    Raises:
        RecordNotFoundError: If no row matches.
    """
    config = registry.get(key)
    async with db.connect() as conn:
        return await _fetch_record(conn, config, lookup_value)


# ============================================================================
# Writes
# ============================================================================


async def create_record(
    db: Database,
    registry: ModelRegistry,
    key: str,
    data: Mapping[str, Any],
) -> dict[str, Any]:
    """Insert a record and sync the relation fields present in *data*.

    Returns:
        ``{"success": True, "message": ..., "data": <inserted row>}``

    Raises:
        OperationNotAllowedError: If the model disables creation.
        RecordValidationError: If *data* does not validate.
        ConstraintViolationError: On unique or foreign key violations.
        RelationConstraintError: If a one-to-many child cannot be detached.
    """
    config = registry.get(key)
    if not config.create_options.enabled:
        raise OperationNotAllowedError(f"Model {config.label} does not allow creation.")

    values = validate_write(config.table, data)
    async with db.transaction() as conn:
        result = await _execute(
            conn, insert(config.table).values(**values).returning(*config.table.c)
        )
        record = dict(result.mappings().one())
        await sync_relations(conn, config, data, record)

    logger.info("Created %s %r", config.key, record.get(config.lookup_column_name))
    return {
        "success": True,
        "message": f"{config.label} created successfully",
        "data": record,
    }


async def update_record(
    db: Database,
    registry: ModelRegistry,
    key: str,
    lookup_value: Any,
    data: Mapping[str, Any],
) -> dict[str, Any]:
    """Update the columns present in *data* and sync its relation fields.

    Columns missing from *data* keep their stored values.

    Raises:
        OperationNotAllowedError: If the model disables updates.
        RecordNotFoundError: If no record matches *lookup_value*.
        RecordValidationError: If *data* does not validate.
        ConstraintViolationError: On unique or foreign key violations.
        RelationConstraintError: If a one-to-many child cannot be detached.
    """
    config = registry.get(key)
    if not config.update_options.enabled:
        raise OperationNotAllowedError(f"Model {config.label} does not allow updates.")

    values = validate_write(config.table, data, partial=True)
    lookup = config.lookup_column
    lookup_coerced = coerce_value(lookup, lookup_value)

    async with db.transaction() as conn:
        if values:
            result = await _execute(
                conn,
                update(config.table)
                .where(lookup == lookup_coerced)
                .values(**values)
                .returning(*config.table.c),
            )
            row = result.mappings().first()
            if row is None:
                raise RecordNotFoundError(f"{config.label} {lookup_value} not found.")
            record = dict(row)
        else:
            record = await _fetch_record(conn, config, lookup_value)
        await sync_relations(conn, config, data, record)

    logger.info("Updated %s %r", config.key, lookup_value)
    return {
        "success": True,
        "message": f"{config.label} updated successfully",
        "data": record,
    }


async def delete_record(
    db: Database,
    registry: ModelRegistry,
    key: str,
    lookup_value: Any,
) -> dict[str, Any]:
    """Delete one record.

    Raises:
        OperationNotAllowedError: If the model disables deletion.
        RecordNotFoundError: If no record matches *lookup_value*.
        ConstraintViolationError: If another record still references it.
    """
    config = registry.get(key)
    _require_delete(config)
    value = coerce_value(config.lookup_column, lookup_value)

    async with db.transaction() as conn:
        result = await _execute(
            conn, delete(config.table).where(config.lookup_column == value), "delete"
        )
        if result.rowcount == 0:
            raise RecordNotFoundError(f"{config.label} {lookup_value} not found.")

    logger.info("Deleted %s %r", config.key, lookup_value)
    return {
        "success": True,
        "message": f"{config.label} {lookup_value} deleted successfully",
    }


async def bulk_delete(
    db: Database,
    registry: ModelRegistry,
    key: str,
    row_lookups: Sequence[Any],
) -> dict[str, Any]:
    """Delete every record whose lookup value is in *row_lookups*.

    Raises:
        OperationNotAllowedError: If the model disables deletion.
        BadRequestError: If no lookups are given.
        ConstraintViolationError: If a record is still referenced; nothing
            is deleted then.
    """
    config = registry.get(key)
    _require_delete(config)
    if not row_lookups:
        raise BadRequestError("No rows selected.")
    values = coerce_values(config.lookup_column, list(row_lookups))

    async with db.transaction() as conn:
        result = await _execute(
            conn, delete(config.table).where(config.lookup_column.in_(values)), "delete"
        )
        deleted = result.rowcount

    logger.info("Bulk deleted %d of %d %s rows", deleted, len(values), config.key)
    return {
        "success": True,
        "message": f"{config.label} {deleted} rows deleted successfully",
    }


async def run_bulk_action(
    db: Database,
    registry: ModelRegistry,
    key: str,
    action: str,
    row_lookups: Sequence[Any],
) -> Any:
    """Run the bulk action labelled *action* over *row_lookups*.

    The action is called with the list of lookup values and may be sync or
    async; its return value is passed through.

    Raises:
        BadRequestError: If the model declares no action with that label.
    """
    config = registry.get(key)
    bulk_action = next(
        (item for item in config.list_options.bulk_actions if item.label == action),
        None,
    )
    if bulk_action is None:
        raise BadRequestError("Action not found")

    logger.debug("Running bulk action %r on %d %s rows", action, len(row_lookups), config.key)
    return await maybe_await(bulk_action.action(list(row_lookups)))
