"""List column definitions and dotted relation paths.

A list field is a column name (``title``), a one-hop relation path through a
foreign key column (``author_id.name``), a function computing the value from
the row, or a ``ListField`` wrapping one of those with a label, type or sort
key.  Every path is checked against the table definitions here, before any
SQL is built.
"""

from dataclasses import dataclass

from sqlalchemy import Column, Table

from db_autoadmin.callables import callable_name
from db_autoadmin.config.models import ListField, ModelConfig
from db_autoadmin.errors import ConfigurationError
from db_autoadmin.forms.models import FIELD_TYPES, FieldType
from db_autoadmin.listing.models import ListColumnDef
from db_autoadmin.schema.introspector import describe_column, foreign_keys_of, foreign_keys_of_column
from db_autoadmin.text import relation_header, to_title_case


@dataclass(frozen=True)
class RelationPath:
    """``<fk_column>.<column>``: a column of the table a foreign key points at."""

    fk_column: str
    foreign_table: Table
    foreign_key_column: str  # referenced column in foreign_table
    column: str  # selected column in foreign_table

    @property
    def path(self) -> str:
        return f"{self.fk_column}.{self.column}"

    @property
    def accessor_key(self) -> str:
        return f"{self.fk_column}__{self.column}"

    @property
    def join_key(self) -> str:
        return f"{self.fk_column}_{self.foreign_key_column}"


def parse_relation_path(table: Table, path: str) -> RelationPath:
    """Validate a dotted path against *table* and its foreign keys.

    Raises:
        ConfigurationError: If the path is deeper than one hop, the first part
            is not a foreign key column, or the target column does not exist.
    """
    parts = path.split(".")
    if len(parts) != 2 or not all(parts):
        raise ConfigurationError(f"Invalid field definition: {path!r}")
    fk_column, column = parts
    if fk_column not in table.c:
        raise ConfigurationError(
            f"Invalid field definition, no column {fk_column} found in {table.name}."
        )
    foreign_keys = foreign_keys_of_column(table, fk_column)
    if not foreign_keys:
        raise ConfigurationError(
            f"Invalid field definition: {path!r}. {fk_column} is not a foreign key."
        )
    fk = foreign_keys[0]
    if column not in fk.foreign_table.c:
        raise ConfigurationError(
            f"Invalid field definition: {path!r}. "
            f"No column {column} found in {fk.foreign_table.name}."
        )
    return RelationPath(
        fk_column=fk_column,
        foreign_table=fk.foreign_table,
        foreign_key_column=fk.foreign_column,
        column=column,
    )


def column_field_type(table: Table, column: Column) -> FieldType:
    return FIELD_TYPES[describe_column(table, column).semantic_type]


def validate_field_path(table: Table, path: str) -> RelationPath | None:
    """Check a column name or dotted path; return the relation path if dotted.

    Raises:
        ConfigurationError: If the path names nothing on the schema.
    """
    if "." in path:
        return parse_relation_path(table, path)
    if path not in table.c:
        raise ConfigurationError(
            f"Invalid field definition: {path!r}. Available columns: {', '.join(table.c.keys())}"
        )
    return None


def _path_column(config: ModelConfig, path: str, label: str | None, type_: FieldType | None, sort_key):
    table = config.table
    relation = validate_field_path(table, path)
    if relation is None:
        accessor_key = path
        header = label or to_title_case(path)
        field_type = type_ or column_field_type(table, table.c[path])
    else:
        accessor_key = relation.accessor_key
        header = label or relation_header(accessor_key)
        foreign = relation.foreign_table
        field_type = type_ or column_field_type(foreign, foreign.c[relation.column])

    if sort_key is None:
        sort_key = path
    if sort_key is False or not config.list_options.enable_sort:
        sort_key = None
    else:
        validate_field_path(table, sort_key)

    return ListColumnDef(
        id=accessor_key,
        accessor_key=accessor_key,
        header=header,
        type=field_type,
        sort_key=sort_key,
        path=path,
    )


def _function_column(config: ModelConfig, func, index: int, label, type_, sort_key) -> ListColumnDef:
    name = callable_name(func, index)
    if sort_key is False or not config.list_options.enable_sort:
        sort_key = None
    if sort_key:
        validate_field_path(config.table, sort_key)
    return ListColumnDef(
        id=name,
        accessor_key=name,
        header=label or to_title_case(name),
        type=type_,
        sort_key=sort_key,
        accessor_fn=func,
    )


def _default_columns(config: ModelConfig) -> list[ListColumnDef]:
    table = config.table
    excluded = set(config.metadata.primary_autoincrement_columns)
    excluded.update(config.metadata.auto_timestamp_columns)
    excluded.update(fk.column for fk in foreign_keys_of(table))
    return [
        _path_column(config, column.key, None, None, None)
        for column in table.columns
        if column.key not in excluded
    ]


def build_list_columns(config: ModelConfig) -> list[ListColumnDef]:
    """Column definitions for the list of *config*.

    Without configured fields every column is listed except autoincrement
    keys, auto timestamps and raw foreign key columns.  Types declared in the
    model's ``fields`` overrides win; datetime columns render as
    ``datetime-local``.

    Raises:
        ConfigurationError: On a field that names nothing on the schema.
    """
    fields = config.list_options.fields
    if fields is None:
        columns = _default_columns(config)
    else:
        columns = []
        for index, field in enumerate(fields):
            if isinstance(field, str):
                columns.append(_path_column(config, field, None, None, None))
            elif isinstance(field, ListField):
                if isinstance(field.field, str):
                    columns.append(
                        _path_column(config, field.field, field.label, field.type, field.sort_key)
                    )
                else:
                    columns.append(
                        _function_column(
                            config, field.field, index, field.label, field.type, field.sort_key
                        )
                    )
            elif callable(field):
                columns.append(_function_column(config, field, index, None, None, None))
            else:
                raise ConfigurationError(f"Invalid field definition: {field!r}")

    datetime_columns = set(config.metadata.datetime_columns)
    datetime_columns.update(config.metadata.auto_timestamp_columns)
    for column in columns:
        override = config.field_override(column.accessor_key)
        if override is not None and override.type is not None:
            column.type = override.type
        if column.accessor_key in datetime_columns:
            column.type = FieldType.DATETIME_LOCAL
    return columns


def relation_paths(config: ModelConfig, columns: list[ListColumnDef]) -> list[RelationPath]:
    """Relation paths referenced by dotted list columns, in column order."""
    return [
        parse_relation_path(config.table, column.path)
        for column in columns
        if column.path and "." in column.path
    ]
