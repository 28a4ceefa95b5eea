"""Selectable options for relation form fields.

Each function returns every row of the related table as an ``Option`` with
the table's label column as label.
"""

from sqlalchemy import Table, select
from sqlalchemy.ext.asyncio import AsyncConnection

from db_autoadmin.config.models import ModelConfig
from db_autoadmin.config.registry import ModelRegistry
from db_autoadmin.errors import BadRequestError, RecordNotFoundError
from db_autoadmin.forms.models import Option
from db_autoadmin.relations.fields import FieldId, FieldKind
from db_autoadmin.relations.resolver import find_many_to_many, find_one_to_many
from db_autoadmin.schema.introspector import foreign_keys_of_column, label_column_of


async def _all_options(
    conn: AsyncConnection,
    table: Table,
    value_column: str,
    registry: ModelRegistry | None,
) -> list[Option]:
    label_column = registry.label_column_for(table) if registry is not None else label_column_of(table)
    result = await conn.execute(select(table))
    return [
        Option(label=row[label_column], value=row[value_column])
        for row in result.mappings()
    ]


def _parse_relation_field(column_def: str) -> FieldId:
    try:
        field_id = FieldId.parse(column_def)
    except ValueError:
        raise BadRequestError(f"Invalid column definition {column_def}.") from None
    if not field_id.is_relation:
        raise BadRequestError(f"Invalid column definition {column_def}.")
    return field_id


async def relation_choices(
    conn: AsyncConnection,
    config: ModelConfig,
    column_name: str,
    registry: ModelRegistry | None = None,
) -> list[Option]:
    """Rows of the table the foreign key *column_name* points at.

    Raises:
        RecordNotFoundError: If the column is not a foreign key.
    """
    foreign_keys = foreign_keys_of_column(config.table, column_name)
    if not foreign_keys:
        raise RecordNotFoundError(f"No relations found for column {column_name}.")
    fk = foreign_keys[0]
    return await _all_options(conn, fk.foreign_table, fk.foreign_column, registry)


async def many_to_many_choices(
    conn: AsyncConnection,
    config: ModelConfig,
    column_def: str,
    registry: ModelRegistry | None = None,
) -> list[Option]:
    """Rows of the other side of the m2m relation ``___<relation>___<column>``.

    Raises:
        BadRequestError: If *column_def* is malformed or names no declared
            relation.
    """
    field_id = _parse_relation_field(column_def)
    if field_id.kind != FieldKind.M2M:
        raise BadRequestError(f"Invalid column definition {column_def}.")
    relation = find_many_to_many(config, field_id)
    return await _all_options(
        conn, relation.other_table, relation.other_foreign_column.key, registry
    )


async def one_to_many_choices(
    conn: AsyncConnection,
    config: ModelConfig,
    column_def: str,
    registry: ModelRegistry | None = None,
) -> list[Option]:
    """Rows of the child table of ``___<relation>___<column>``.

    The o2m encoding ``___o2m___<relation>___<column>`` is accepted as well.

    Raises:
        BadRequestError: If *column_def* is malformed, names no declared
            relation or no column of the child table.
    """
    field_id = _parse_relation_field(column_def)
    relation = find_one_to_many(config, field_id.relation_name)
    child = relation.child_table
    if field_id.column_name not in child.c:
        raise BadRequestError(f"No column {field_id.column_name} found in {child.name}.")
    return await _all_options(conn, child, field_id.column_name, registry)
