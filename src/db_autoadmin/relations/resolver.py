"""Resolve declared many-to-many and one-to-many relations.

A model declares relations by name only (``m2m={"tags": posts_to_tags}``,
``o2m={"comments": comments}``); the columns involved are found by scanning
the foreign keys of the junction or child table.
"""

from dataclasses import dataclass

from sqlalchemy import Column, Table

from db_autoadmin.config.models import ModelConfig
from db_autoadmin.errors import BadRequestError, ConfigurationError
from db_autoadmin.relations.fields import FieldId
from db_autoadmin.schema.introspector import foreign_keys_of, primary_key_column


@dataclass(frozen=True, eq=False)
class ManyToManyRelation:
    """One edge of a junction table: owning table -> junction -> other table."""

    name: str
    self_table: Table
    junction_table: Table
    self_column: Column  # junction column referencing the owning table
    self_foreign_column: Column  # owning table column it references
    other_table: Table
    other_column: Column  # junction column referencing the other table
    other_foreign_column: Column  # other table column it references

    @property
    def field_id(self) -> FieldId:
        return FieldId.m2m(self.name, self.other_column.key)

    @property
    def has_extra_columns(self) -> bool:
        return len(self.junction_table.columns) > 2


@dataclass(frozen=True, eq=False)
class OneToManyRelation:
    """Child rows whose foreign key points at the owning (parent) table."""

    name: str
    parent_table: Table
    child_table: Table
    child_foreign_column: Column
    child_primary_column: Column
    parent_primary_column: Column

    @property
    def field_id(self) -> FieldId:
        return FieldId.o2m(self.name, self.child_primary_column.key)


def resolve_many_to_many(config: ModelConfig) -> list[ManyToManyRelation]:
    """Resolve every ``m2m`` declaration of *config*.

    The junction's foreign keys are partitioned into the self side (exactly
    one must reference the owning table) and the other side; a junction
    with several other foreign keys yields one relation per key, all under
    the declared name.

    Raises:
        ConfigurationError: If the junction has no foreign key, or more than
            one, to the owning table.
    """
    relations: list[ManyToManyRelation] = []
    model = config.table
    for name, junction in config.m2m.items():
        foreign_keys = foreign_keys_of(junction)
        self_side = [fk for fk in foreign_keys if fk.foreign_table is model]
        if len(self_side) != 1:
            raise ConfigurationError(
                f"Many-to-many relation {config.key} -> {name} requires exactly one "
                f"foreign key in {junction.name} referencing {model.name}; "
                f"found {len(self_side)}."
            )
        self_fk = self_side[0]
        for fk in foreign_keys:
            if fk.foreign_table is model:
                continue
            relations.append(
                ManyToManyRelation(
                    name=name,
                    self_table=model,
                    junction_table=junction,
                    self_column=junction.c[self_fk.column],
                    self_foreign_column=model.c[self_fk.foreign_column],
                    other_table=fk.foreign_table,
                    other_column=junction.c[fk.column],
                    other_foreign_column=fk.foreign_table.c[fk.foreign_column],
                )
            )
    return relations


def resolve_one_to_many(config: ModelConfig) -> list[OneToManyRelation]:
    """Resolve every ``o2m`` declaration of *config*.

    Raises:
        ConfigurationError: If the child table has no foreign key referencing
            the owning table.
        SchemaError: If either table lacks a single primary key.
    """
    relations: list[OneToManyRelation] = []
    for name, child in config.o2m.items():
        relations.append(_resolve_one_to_many(config, name, child))
    return relations


def _resolve_one_to_many(config: ModelConfig, name: str, child: Table) -> OneToManyRelation:
    model = config.table
    parent_fk = next(
        (fk for fk in foreign_keys_of(child) if fk.foreign_table is model),
        None,
    )
    if parent_fk is None:
        raise ConfigurationError(
            f"One-to-many relation requires a foreign key in related table. None found "
            f"for {config.key} in {child.name} for the relation {config.key} -> {name}."
        )
    return OneToManyRelation(
        name=name,
        parent_table=model,
        child_table=child,
        child_foreign_column=child.c[parent_fk.column],
        child_primary_column=primary_key_column(child),
        parent_primary_column=primary_key_column(model),
    )


def find_many_to_many(config: ModelConfig, field_id: FieldId) -> ManyToManyRelation:
    """The m2m relation edge named by *field_id*.

    Raises:
        BadRequestError: If no declared relation matches.
    """
    for relation in resolve_many_to_many(config):
        if relation.name == field_id.relation_name and relation.other_column.key == field_id.column_name:
            return relation
    raise BadRequestError(
        f"Many-to-many relation {field_id.relation_name}.{field_id.column_name} "
        f"is not declared on {config.key}."
    )


def find_one_to_many(config: ModelConfig, relation_name: str) -> OneToManyRelation:
    """The o2m relation declared as *relation_name*.

    Raises:
        BadRequestError: If the model declares no such relation.
    """
    child = config.o2m.get(relation_name)
    if child is None:
        raise BadRequestError(
            f"One-to-many relation {relation_name} is not declared on {config.key}."
        )
    return _resolve_one_to_many(config, relation_name, child)
