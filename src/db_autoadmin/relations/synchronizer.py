"""Keep relation rows in line with submitted pseudo-field values.

Runs after the parent row has been inserted or updated, on the same
connection and inside the same transaction as the parent write.

- Many-to-many: a junction with only its two key columns is cleared and
  refilled; a junction with extra columns is diffed so unchanged links keep
  their extra values.
- One-to-many: children no longer submitted are detached first (FK set to
  NULL), then the submitted children are attached.
"""

import logging
from typing import Any, Mapping

from sqlalchemy import and_, delete, insert, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection

from db_autoadmin.config.models import ModelConfig
from db_autoadmin.errors import (
    BadRequestError,
    RelationConstraintError,
    is_not_null_violation,
    translate_db_error,
)
from db_autoadmin.relations.resolver import (
    ManyToManyRelation,
    OneToManyRelation,
    resolve_many_to_many,
    resolve_one_to_many,
)
from db_autoadmin.schema.validation import coerce_values

logger = logging.getLogger(__name__)


async def _execute(conn: AsyncConnection, stmt: Any, *params: Any):
    try:
        return await conn.execute(stmt, *params)
    except DBAPIError as e:
        raise translate_db_error(e) from e


async def sync_many_to_many(
    conn: AsyncConnection,
    relation: ManyToManyRelation,
    self_value: Any,
    submitted: list[Any],
) -> None:
    """Make the junction rows of *self_value* match *submitted* other ids.

    Calling twice with the same ids leaves the same membership.
    """
    junction = relation.junction_table
    self_column = relation.self_column
    other_column = relation.other_column
    new_values = coerce_values(other_column, submitted)

    if not relation.has_extra_columns:
        await _execute(conn, delete(junction).where(self_column == self_value))
        if new_values:
            await _insert_links(conn, relation, self_value, new_values)
        logger.debug(
            "Replaced %s links of %s=%r: %d rows",
            junction.name, self_column.key, self_value, len(new_values),
        )
        return

    result = await _execute(
        conn, select(other_column).where(self_column == self_value)
    )
    existing = [row[0] for row in result.all()]

    to_delete = [value for value in existing if value not in new_values]
    to_insert = [value for value in new_values if value not in existing]

    if to_delete:
        await _execute(
            conn,
            delete(junction).where(
                and_(self_column == self_value, other_column.in_(to_delete))
            ),
        )
    if to_insert:
        await _insert_links(conn, relation, self_value, to_insert)

    logger.debug(
        "Synced %s links of %s=%r: %d deleted, %d inserted",
        junction.name, self_column.key, self_value, len(to_delete), len(to_insert),
    )


async def _insert_links(
    conn: AsyncConnection,
    relation: ManyToManyRelation,
    self_value: Any,
    other_values: list[Any],
) -> None:
    rows = [
        {relation.self_column.key: self_value, relation.other_column.key: value}
        for value in other_values
    ]
    await _execute(conn, insert(relation.junction_table), rows)


async def sync_one_to_many(
    conn: AsyncConnection,
    relation: OneToManyRelation,
    parent_value: Any,
    submitted: list[Any],
    model_key: str,
) -> None:
    """Re-parent child rows so exactly *submitted* point at *parent_value*.

    Phase 1 detaches children not submitted; phase 2 attaches the submitted
    ones.  Phase 2 only starts after phase 1 has completed.

    Raises:
        RelationConstraintError: If detaching fails because the child foreign
            key is NOT NULL.
    """
    child = relation.child_table
    fk_column = relation.child_foreign_column
    pk_column = relation.child_primary_column
    new_values = coerce_values(pk_column, submitted)

    detach = fk_column == parent_value
    if new_values:
        detach = and_(detach, pk_column.not_in(new_values))
    try:
        await conn.execute(update(child).where(detach).values({fk_column.key: None}))
    except DBAPIError as e:
        if is_not_null_violation(e):
            message = (
                f"Cannot remove the relation to {model_key} ({parent_value}) from existing "
                f"records in {child.name} because this field is required and cannot be null."
            )
            raise RelationConstraintError(
                message,
                errors=[{"name": relation.field_id.encode(), "message": message}],
            ) from e
        raise translate_db_error(e) from e

    if new_values:
        await _execute(
            conn,
            update(child).where(pk_column.in_(new_values)).values({fk_column.key: parent_value}),
        )

    logger.debug(
        "Synced %s children of %s=%r: %d attached",
        child.name, model_key, parent_value, len(new_values),
    )


def _submitted_ids(payload: Mapping[str, Any], field_name: str) -> list[Any] | None:
    """Submitted ids for a relation field, or None when it was not sent."""
    value = payload.get(field_name)
    if value is None:
        return None
    if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple, set)):
        raise BadRequestError(
            f"{field_name} must be a list of ids.",
            errors=[{"name": field_name, "message": "Expected a list of ids."}],
        )
    return list(value)


async def sync_relations(
    conn: AsyncConnection,
    config: ModelConfig,
    payload: Mapping[str, Any],
    record: Mapping[str, Any],
) -> None:
    """Apply every relation field present in *payload* for the saved *record*.

    Relation fields missing from the payload (or sent as null) are left
    untouched; an empty list removes all links.
    """
    for relation in resolve_many_to_many(config):
        submitted = _submitted_ids(payload, relation.field_id.encode())
        if submitted is None:
            continue
        self_value = record[relation.self_foreign_column.key]
        await sync_many_to_many(conn, relation, self_value, submitted)

    for o2m in resolve_one_to_many(config):
        submitted = _submitted_ids(payload, o2m.field_id.encode())
        if submitted is None:
            continue
        parent_value = record[o2m.parent_primary_column.key]
        await sync_one_to_many(conn, o2m, parent_value, submitted, config.key)
