"""List query builder.

Turns a ``ModelConfig`` and the request's query values into one paginated
SELECT plus an independent COUNT, both sharing the same joins and predicate:

    WHERE (filter_1 AND filter_2 ...) AND (search_1 OR search_2 ...)

Joined tables are aliased per foreign key column so self references and
several foreign keys to the same table each get their own join.  Ordering is
only possible through a column's declared sort key.

Usage:
    builder = ListQueryBuilder(config, registry)
    async with db.connect() as conn:
        response = await builder.execute(conn, {"search": "tag", "page": "2"})
"""

import logging
from typing import Any, Mapping

from sqlalchemy import Boolean, String, Table, and_, case, cast, func, or_, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.expression import Alias

from db_autoadmin.callables import maybe_await
from db_autoadmin.config.models import ModelConfig
from db_autoadmin.config.registry import ModelRegistry
from db_autoadmin.errors import (
    AdminError,
    ConfigurationError,
    DatabaseError,
    error_code,
    error_message,
)
from db_autoadmin.listing.columns import (
    RelationPath,
    build_list_columns,
    relation_paths,
    validate_field_path,
)
from db_autoadmin.listing.filters import compile_filters, filter_conditions
from db_autoadmin.listing.models import (
    Aggregate,
    BulkActionSpec,
    FilterSpec,
    ListColumnDef,
    ListResponse,
    ListSpec,
)
from db_autoadmin.listing.pagination import PaginationParams, paginate
from db_autoadmin.text import to_title_case

logger = logging.getLogger(__name__)


class _Joins:
    """LEFT JOINs of one query, one aliased table per foreign key column."""

    def __init__(self, table: Table) -> None:
        self.table = table
        self._aliases: dict[str, tuple[RelationPath, Alias]] = {}

    def alias_for(self, path: RelationPath) -> Alias:
        """Aliased foreign table for *path*, joined on first use."""
        entry = self._aliases.get(path.join_key)
        if entry is None:
            alias = path.foreign_table.alias(f"{path.fk_column}_{path.foreign_table.name}")
            entry = (path, alias)
            self._aliases[path.join_key] = entry
        return entry[1]

    def column(self, path: RelationPath) -> ColumnElement[Any]:
        return self.alias_for(path).c[path.column]

    def from_clause(self):
        clause = self.table
        for path, alias in self._aliases.values():
            clause = clause.outerjoin(
                alias, self.table.c[path.fk_column] == alias.c[path.foreign_key_column]
            )
        return clause

    def __len__(self) -> int:
        return len(self._aliases)


class ListQueryBuilder:
    """Builds and runs the list query of one model.

    Args:
        config: Model configuration.
        registry: Registry used to look up label columns of related tables.
        default_page_size: Page size when the request sets none.
        max_page_size: Largest page size a request may ask for.

    Raises:
        ConfigurationError: If a list, search or sort path names nothing on
            the schema.
    """

    def __init__(
        self,
        config: ModelConfig,
        registry: ModelRegistry | None = None,
        default_page_size: int = 10,
        max_page_size: int = 100,
    ) -> None:
        self.config = config
        self.table = config.table
        self.registry = registry
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self.columns: list[ListColumnDef] = build_list_columns(config)
        self.select_all = any(column.accessor_fn is not None for column in self.columns)
        self._search_paths = [
            (field, validate_field_path(self.table, field))
            for field in config.list_options.search_fields
        ]

    # ------------------------------------------------------------------
    # Spec
    # ------------------------------------------------------------------

    def spec(self) -> ListSpec:
        """UI description of the list."""
        config = self.config
        options = config.list_options
        return ListSpec(
            endpoint=options.endpoint,
            title=options.title,
            columns=self.columns,
            lookup_column_name=config.lookup_column_name,
            update_endpoint=config.update_options.endpoint if config.update_options.enabled else None,
            delete_endpoint=config.delete_options.endpoint if config.delete_options.enabled else None,
            enable_delete=config.delete_options.enabled,
            bulk_actions=[
                BulkActionSpec(label=action.label, icon=action.icon)
                for action in options.bulk_actions
            ],
            show_create_button=config.create_options.enabled and options.show_create_button,
            enable_sort=options.enable_sort,
            enable_search=options.enable_search,
            search_placeholder=options.search_placeholder if options.enable_search else None,
            search_fields=options.search_fields if options.enable_search else None,
        )

    # ------------------------------------------------------------------
    # Statement parts
    # ------------------------------------------------------------------

    def search_condition(self, term: Any, joins: _Joins) -> ColumnElement[bool] | None:
        """OR of case-insensitive substring matches over the search fields."""
        if not self.config.list_options.enable_search or term is None:
            return None
        term = str(term).strip()
        if not term or not self._search_paths:
            return None

        conditions = []
        for field, path in self._search_paths:
            column = self.table.c[field] if path is None else joins.column(path)
            if not isinstance(column.type, String):
                column = cast(column, String)
            conditions.append(column.icontains(term, autoescape=True))
        return or_(*conditions)

    def _selections(self, joins: _Joins) -> list[ColumnElement[Any]]:
        table = self.table
        selected: dict[str, ColumnElement[Any]] = {}

        if self.select_all:
            for column in table.columns:
                selected[column.key] = column
        else:
            selected[self.config.lookup_column_name] = table.c[self.config.lookup_column_name]
            for column in self.columns:
                if column.accessor_key in table.c:
                    selected[column.accessor_key] = table.c[column.accessor_key]

        for path in relation_paths(self.config, self.columns):
            selected[path.accessor_key] = joins.column(path)

        for key, selection in self.config.list_options.custom_selections.items():
            selected[key] = selection.sql

        for key, aggregate in self.config.list_options.aggregates.items():
            selected[key] = self._aggregate_expression(aggregate.function, aggregate.column)

        return [expression.label(key) for key, expression in selected.items()]

    def _aggregate_expression(self, function: str, column_name: str) -> ColumnElement[Any]:
        if column_name not in self.table.c:
            raise ConfigurationError(
                f"Invalid aggregate column {column_name!r} on {self.table.name}."
            )
        column = self.table.c[column_name]
        if function == "count":
            truthy = column.is_(True) if isinstance(column.type, Boolean) else column.is_not(None)
            return func.sum(case((truthy, 1), else_=0)).over()
        return getattr(func, function)(column).over()

    def _order_by(self, ordering: Any, joins: _Joins) -> list[ColumnElement[Any]]:
        """ORDER BY for ``<accessorKey>:<asc|desc>``; primary key desc otherwise."""
        if self.config.list_options.enable_sort and isinstance(ordering, str) and ":" in ordering:
            accessor_key, _, direction = ordering.partition(":")
            column_def = next(
                (column for column in self.columns if column.accessor_key == accessor_key),
                None,
            )
            if column_def is not None and column_def.sort_key and direction in ("asc", "desc"):
                path = validate_field_path(self.table, column_def.sort_key)
                column = self.table.c[column_def.sort_key] if path is None else joins.column(path)
                return [column.desc() if direction == "desc" else column.asc()]
            logger.debug("%s: ignoring ordering %r", self.config.key, ordering)
        return [column.desc() for column in self.table.primary_key.columns]

    def build(
        self,
        conditions: list[ColumnElement[bool]],
        query: Mapping[str, Any],
    ):
        """Build the (paginated select, count) statement pair.

        Args:
            conditions: Filter conditions, ANDed together.
            query: Request values (``search``, ``ordering``).

        Returns:
            Tuple of (select statement, count statement)
        """
        joins = _Joins(self.table)
        selections = self._selections(joins)

        predicate = list(conditions)
        search = self.search_condition(query.get("search"), joins)
        if search is not None:
            predicate.append(search)

        order_by = self._order_by(query.get("ordering"), joins)
        from_clause = joins.from_clause()

        stmt = select(*selections).select_from(from_clause)
        count_stmt = select(func.count()).select_from(from_clause)
        if predicate:
            where = and_(*predicate)
            stmt = stmt.where(where)
            count_stmt = count_stmt.where(where)
        stmt = stmt.order_by(*order_by)

        logger.debug(
            "%s: list query with %d joins, %d conditions",
            self.config.key,
            len(joins),
            len(predicate),
        )
        return stmt, count_stmt

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _post_process(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Run accessor functions and project rows to the listed keys."""
        keys = {column.accessor_key for column in self.columns}
        keys.add(self.config.lookup_column_name)
        processed = []
        for row in rows:
            for column in self.columns:
                if column.accessor_fn is not None:
                    row[column.accessor_key] = await maybe_await(column.accessor_fn(row))
            processed.append({key: value for key, value in row.items() if key in keys})
        return processed

    def _aggregate_labels(self) -> dict[str, str]:
        """Keys of the aggregate columns in each row, mapped to their labels."""
        options = self.config.list_options
        labels = {
            key: selection.label or to_title_case(key)
            for key, selection in options.custom_selections.items()
            if selection.is_aggregate
        }
        for key, aggregate in options.aggregates.items():
            labels[key] = aggregate.label or to_title_case(key)
        return labels

    def _extract_aggregates(self, rows: list[dict[str, Any]]) -> dict[str, Aggregate] | None:
        aggregates = self._aggregate_labels()
        if not aggregates or not rows:
            return None
        first = rows[0]
        extracted = {
            key: Aggregate(label=label, value=first.get(key))
            for key, label in aggregates.items()
        }
        for row in rows:
            for key in aggregates:
                row.pop(key, None)
        return extracted

    async def execute(self, conn: AsyncConnection, query: Mapping[str, Any] | None = None) -> ListResponse:
        """Run the list query for one request.

        Raises:
            BadRequestError: On malformed pagination or filter values.
            ConfigurationError: On invalid filter configuration.
            DatabaseError: If a statement fails.
        """
        query = query or {}
        params = PaginationParams.from_query(query, self.default_page_size, self.max_page_size)

        try:
            filters: list[FilterSpec] | None = None
            conditions: list[ColumnElement[bool]] = []
            if self.config.list_options.enable_filter:
                filters = await compile_filters(conn, self.config, self.registry, query)
                conditions = await filter_conditions(conn, self.config, filters, query)

            stmt, count_stmt = self.build(conditions, query)
            rows, pagination = await paginate(conn, stmt, count_stmt, params)
        except AdminError:
            raise
        except DBAPIError as e:
            logger.error(
                "Failed to fetch %s: code=%s message=%s",
                self.config.key,
                error_code(e) or "UNKNOWN",
                error_message(e),
            )
            raise DatabaseError(f"Failed to fetch {self.config.label}") from e

        aggregates = self._extract_aggregates(rows)
        if self.select_all:
            rows = await self._post_process(rows)

        return ListResponse(
            results=rows,
            pagination=pagination,
            aggregates=aggregates,
            filters=filters,
            spec=self.spec(),
        )


async def list_query(
    conn: AsyncConnection,
    config: ModelConfig,
    query: Mapping[str, Any] | None = None,
    registry: ModelRegistry | None = None,
    default_page_size: int = 10,
    max_page_size: int = 100,
) -> ListResponse:
    """Build and run the list query of *config* in one call."""
    builder = ListQueryBuilder(config, registry, default_page_size, max_page_size)
    return await builder.execute(conn, query)
