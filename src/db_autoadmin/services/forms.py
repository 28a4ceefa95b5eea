"""Form services: create/update form specs and relation choices."""

from typing import Any

from db_autoadmin.adapters.engine import Database
from db_autoadmin.config.registry import ModelRegistry
from db_autoadmin.forms.choices import many_to_many_choices, one_to_many_choices, relation_choices
from db_autoadmin.forms.models import FormSpec, Option
from db_autoadmin.forms.spec import create_form_spec, update_form_spec


async def get_create_form_spec(
    db: Database,
    registry: ModelRegistry,
    key: str,
) -> dict[str, FormSpec]:
    """``{"spec": FormSpec}`` for creating a record of model *key*.

    Raises:
        ModelNotFoundError: If *key* is not registered.
        OperationNotAllowedError: If the model disables creation.
    """
    config = registry.get(key)
    return {"spec": await create_form_spec(config, registry)}


async def get_update_form_spec(
    db: Database,
    registry: ModelRegistry,
    key: str,
    lookup_value: Any,
) -> dict[str, FormSpec]:
    """``{"spec": FormSpec}`` prefilled with the record's current values.

    Raises:
        ModelNotFoundError: If *key* is not registered.
        OperationNotAllowedError: If the model disables updates.
        RecordNotFoundError: If no record matches *lookup_value*.
    """
    config = registry.get(key)
    async with db.connect() as conn:
        spec = await update_form_spec(conn, config, lookup_value, registry)
    return {"spec": spec}


async def get_relation_choices(
    db: Database,
    registry: ModelRegistry,
    key: str,
    column_name: str,
) -> list[Option]:
    config = registry.get(key)
    async with db.connect() as conn:
        return await relation_choices(conn, config, column_name, registry)


async def get_many_to_many_choices(
    db: Database,
    registry: ModelRegistry,
    key: str,
    column_def: str,
) -> list[Option]:
    config = registry.get(key)
    async with db.connect() as conn:
        return await many_to_many_choices(conn, config, column_def, registry)


async def get_one_to_many_choices(
    db: Database,
    registry: ModelRegistry,
    key: str,
    column_def: str,
) -> list[Option]:
    config = registry.get(key)
    async with db.connect() as conn:
        return await one_to_many_choices(conn, config, column_def, registry)
