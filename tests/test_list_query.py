"""Tests for the list query builder against SQLite."""

import pytest
from sqlalchemy import String, cast, func, select

from db_autoadmin.config.models import (
    AggregateField,
    BulkAction,
    CustomSelection,
    ListField,
    ListOptions,
)
from db_autoadmin.config.registry import configure_model
from db_autoadmin.errors import BadRequestError, ConfigurationError
from db_autoadmin.forms.models import FieldType
from db_autoadmin.listing.columns import build_list_columns, parse_relation_path
from db_autoadmin.listing.query import ListQueryBuilder, list_query

from conftest import build_registry, posts, tags, users


async def _run(db, config, query=None, registry=None):
    async with db.connect() as conn:
        return await list_query(conn, config, query or {}, registry)


# ============================================================
# Columns
# ============================================================


class TestListColumns:
    """Column definitions derived from configuration."""

    def test_default_columns(self, registry) -> None:
        """Without fields, keys, FKs and auto timestamps are left out."""
        columns = build_list_columns(registry.get("posts").model_copy(
            update={"list_options": ListOptions()}
        ))
        assert [c.accessor_key for c in columns] == [
            "title", "body", "status", "published", "views", "created_at",
        ]
        created_at = columns[-1]
        assert created_at.type == FieldType.DATETIME_LOCAL
        assert columns[2].type == FieldType.SELECT

    def test_relation_column(self, registry) -> None:
        """Dotted paths get a joined accessor key and a header."""
        columns = {c.accessor_key: c for c in build_list_columns(registry.get("posts"))}
        assert columns["author_id__name"].header == "Author"
        assert columns["reviewer_id__name"].header == "Reviewer Name"
        assert columns["reviewer_id__name"].sort_key == "reviewer_id.name"
        assert columns["author_id__name"].to_wire()["accessorKey"] == "author_id__name"

    def test_function_column(self) -> None:
        """Functions are named after themselves or their position."""

        def word_count(row):
            return len((row["body"] or "").split())

        config = configure_model(
            posts, list_options={"fields": ["title", word_count, lambda row: row["id"]]}
        )
        columns = build_list_columns(config)
        assert [c.accessor_key for c in columns] == ["title", "word_count", "f_2"]
        assert columns[1].header == "Word Count"
        assert columns[1].sort_key is None

    def test_sort_disabled(self) -> None:
        config = configure_model(posts, list_options={"enable_sort": False})
        assert all(c.sort_key is None for c in build_list_columns(config))

    def test_invalid_paths(self) -> None:
        """Unknown columns and deep or non-FK paths are configuration errors."""
        with pytest.raises(ConfigurationError):
            build_list_columns(configure_model(posts, list_options={"fields": ["nope"]}))
        with pytest.raises(ConfigurationError, match="not a foreign key"):
            parse_relation_path(posts, "title.name")
        with pytest.raises(ConfigurationError, match="No column"):
            parse_relation_path(posts, "author_id.nope")
        with pytest.raises(ConfigurationError, match="Invalid field definition"):
            parse_relation_path(posts, "author_id.name.first")


# ============================================================
# Scenarios
# ============================================================


class TestListScenarios:
    """End-to-end list requests."""

    @pytest.mark.asyncio
    async def test_relation_field_without_fk_in_projection(self, seeded_db, registry) -> None:
        """author_id.name is returned as author_id__name; author_id itself is not."""
        response = await _run(seeded_db, registry.get("posts"), {"ordering": "title:asc"}, registry)
        by_title = {row["title"]: row for row in response.results}
        assert by_title["Hello World"]["author_id__name"] == "Alice"
        assert by_title["Second Post"]["author_id__name"] == "Bob"
        assert by_title["100% Organic"]["author_id__name"] is None
        assert "author_id" not in by_title["Hello World"]
        assert set(by_title["Hello World"]) == {
            "id", "title", "author_id__name", "reviewer_id__name", "status", "views",
        }

    @pytest.mark.asyncio
    async def test_two_foreign_keys_to_one_table(self, seeded_db, registry) -> None:
        """Each FK column gets its own aliased join."""
        response = await _run(seeded_db, registry.get("posts"), {}, registry)
        row = next(r for r in response.results if r["id"] == 1)
        assert row["author_id__name"] == "Alice"
        assert row["reviewer_id__name"] == "Bob"

    @pytest.mark.asyncio
    async def test_create_then_list(self, db) -> None:
        """A single inserted tag is the only row listed."""
        from db_autoadmin.config.registry import ModelRegistry
        from db_autoadmin.services.records import create_record, list_records

        registry = ModelRegistry([configure_model(tags)])
        await create_record(db, registry, "tags", {"name": "Tag 1", "color": "red"})
        response = await list_records(db, registry, "tags", {})
        assert response.pagination.count == 1
        assert len(response.results) == 1
        assert response.results[0]["name"] == "Tag 1"

    @pytest.mark.asyncio
    async def test_status_and_day_filter(self, seeded_db, registry) -> None:
        """A day filter on a ms epoch column covers 00:00:00-23:59:59 local time."""
        query = {"status": "published", "created_at": "2025-07-08"}
        response = await _run(seeded_db, registry.get("posts"), query, registry)
        assert [row["title"] for row in response.results] == ["Hello World"]

        response = await _run(seeded_db, registry.get("posts"), {"created_at": "2025-07-08"}, registry)
        assert sorted(row["id"] for row in response.results) == [1, 2]

    @pytest.mark.asyncio
    async def test_default_order_is_primary_key_desc(self, seeded_db, registry) -> None:
        response = await _run(seeded_db, registry.get("posts"), {}, registry)
        assert [row["id"] for row in response.results] == [4, 3, 2, 1]

    @pytest.mark.asyncio
    async def test_invalid_ordering_falls_back(self, seeded_db, registry) -> None:
        """Unknown sort keys and directions never reach SQL."""
        for ordering in ("body:asc", "title:sideways", "title", "id; DROP TABLE posts:asc"):
            response = await _run(seeded_db, registry.get("posts"), {"ordering": ordering}, registry)
            assert [row["id"] for row in response.results] == [4, 3, 2, 1]


# ============================================================
# Search
# ============================================================


class TestSearch:
    """OR of case-insensitive substring matches."""

    @pytest.mark.asyncio
    async def test_search_direct_column(self, seeded_db, registry) -> None:
        response = await _run(seeded_db, registry.get("posts"), {"search": "post"}, registry)
        assert sorted(row["id"] for row in response.results) == [2, 3]

    @pytest.mark.asyncio
    async def test_search_joined_column(self, seeded_db, registry) -> None:
        """Searching the author name matches through the join."""
        response = await _run(seeded_db, registry.get("posts"), {"search": "alice"}, registry)
        assert sorted(row["id"] for row in response.results) == [1, 3]

    @pytest.mark.asyncio
    async def test_wildcards_are_escaped(self, seeded_db, registry) -> None:
        """'%' matches literally."""
        response = await _run(seeded_db, registry.get("posts"), {"search": "100%"}, registry)
        assert [row["id"] for row in response.results] == [4]
        response = await _run(seeded_db, registry.get("posts"), {"search": "%"}, registry)
        assert [row["id"] for row in response.results] == [4]

    @pytest.mark.asyncio
    async def test_search_combined_with_filter(self, seeded_db, registry) -> None:
        """Filters AND the OR of search conditions."""
        query = {"search": "alice", "published": "true", "views": "7"}
        response = await _run(seeded_db, registry.get("posts"), query, registry)
        # views is not a configured filter, only published applies
        assert sorted(row["id"] for row in response.results) == [1, 3]

        query = {"search": "post", "published": "false"}
        response = await _run(seeded_db, registry.get("posts"), query, registry)
        assert [row["id"] for row in response.results] == [2]

    @pytest.mark.asyncio
    async def test_search_disabled(self, seeded_db) -> None:
        registry = build_registry(
            list_options=ListOptions(enable_search=False, fields=["title"])
        )
        response = await _run(seeded_db, registry.get("posts"), {"search": "alice"}, registry)
        assert response.pagination.count == 4
        assert response.spec.search_fields is None


# ============================================================
# Sorting
# ============================================================


class TestSorting:
    """Sorting through declared sort keys."""

    @pytest.mark.asyncio
    async def test_sort_by_column(self, seeded_db, registry) -> None:
        response = await _run(seeded_db, registry.get("posts"), {"ordering": "views:desc"}, registry)
        assert [row["views"] for row in response.results] == [10, 7, 5, 0]

    @pytest.mark.asyncio
    async def test_dotted_sort_matches_manual_join(self, seeded_db, registry) -> None:
        """Sorting by author_id.name orders like a hand-written join."""
        response = await _run(
            seeded_db, registry.get("posts"), {"ordering": "author_id__name:asc"}, registry
        )
        listed = [row["author_id__name"] for row in response.results]

        stmt = (
            select(users.c.name)
            .select_from(posts.outerjoin(users, posts.c.author_id == users.c.id))
            .order_by(users.c.name.asc())
        )
        async with seeded_db.connect() as conn:
            expected = [row[0] for row in (await conn.execute(stmt)).all()]
        assert listed == expected

    @pytest.mark.asyncio
    async def test_custom_sort_key(self, seeded_db) -> None:
        """A column may sort by a different column than it displays."""
        registry = build_registry(
            list_options=ListOptions(
                fields=["title", ListField(field="status", sort_key="views")]
            )
        )
        response = await _run(seeded_db, registry.get("posts"), {"ordering": "status:asc"}, registry)
        assert [row["id"] for row in response.results] == [4, 2, 3, 1]


# ============================================================
# Pagination
# ============================================================


class TestPagination:
    """Page slicing and the independent count."""

    @pytest.mark.asyncio
    async def test_count_independent_of_page(self, seeded_db, registry) -> None:
        config = registry.get("posts")
        counts = set()
        seen = []
        for page in (1, 2, 3):
            response = await _run(seeded_db, config, {"page": str(page), "size": "2"}, registry)
            counts.add(response.pagination.count)
            assert len(response.results) <= 2
            assert response.pagination.pages == 2
            seen.extend(row["id"] for row in response.results)
        assert counts == {4}
        assert seen == [4, 3, 2, 1]

    @pytest.mark.asyncio
    async def test_count_follows_predicate(self, seeded_db, registry) -> None:
        response = await _run(
            seeded_db, registry.get("posts"), {"published": "true", "size": "1"}, registry
        )
        assert response.pagination.count == 2
        assert response.pagination.pages == 2
        assert len(response.results) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", [{"page": "0"}, {"size": "abc"}, {"size": "101"}])
    async def test_invalid_pagination(self, seeded_db, registry, query) -> None:
        with pytest.raises(BadRequestError):
            await _run(seeded_db, registry.get("posts"), query, registry)

    @pytest.mark.asyncio
    async def test_empty_result(self, db, registry) -> None:
        response = await _run(db, registry.get("posts"), {}, registry)
        assert response.results == []
        assert response.pagination.count == 0
        assert response.pagination.pages == 0
        assert response.aggregates is None


# ============================================================
# Accessor functions and aggregates
# ============================================================


class TestAccessorsAndAggregates:
    """Select-all mode and window aggregates."""

    @pytest.mark.asyncio
    async def test_accessor_functions(self, seeded_db) -> None:
        """Sync and async functions see the full row; rows are projected."""

        def shout(row):
            return row["title"].upper()

        async def author_label(row):
            return f"by {row['author_id__name']}" if row["author_id__name"] else "anonymous"

        registry = build_registry(
            list_options=ListOptions(fields=["title", "author_id.name", shout, author_label])
        )
        response = await _run(seeded_db, registry.get("posts"), {"ordering": "title:asc"}, registry)
        first = response.results[0]
        assert first == {
            "id": 4,
            "title": "100% Organic",
            "author_id__name": None,
            "shout": "100% ORGANIC",
            "author_label": "anonymous",
        }
        assert response.results[1]["author_label"] == "by Alice"

    @pytest.mark.asyncio
    async def test_aggregates(self, seeded_db) -> None:
        """Aggregates cover the filtered set and are stripped from rows."""
        registry = build_registry(
            list_options=ListOptions(
                fields=["title", "views"],
                filter_fields=["published"],
                aggregates={
                    "total_views": AggregateField(function="sum", column="views"),
                    "published_count": AggregateField(
                        function="count", column="published", label="Published"
                    ),
                },
            )
        )
        response = await _run(seeded_db, registry.get("posts"), {"size": "1"}, registry)
        assert response.aggregates["total_views"].value == 22
        assert response.aggregates["total_views"].label == "Total Views"
        assert response.aggregates["published_count"].value == 2
        assert "total_views" not in response.results[0]

        response = await _run(seeded_db, registry.get("posts"), {"published": "true"}, registry)
        assert response.aggregates["total_views"].value == 17

    @pytest.mark.asyncio
    async def test_custom_selections(self, seeded_db) -> None:
        """Plain selections stay in the rows; aggregate ones are lifted out."""
        registry = build_registry(
            list_options=ListOptions(
                fields=["title"],
                custom_selections={
                    "slug_with_id": CustomSelection(
                        sql=posts.c.title + "-" + cast(posts.c.id, String)
                    ),
                    "most_views": CustomSelection(
                        sql=func.max(posts.c.views).over(), is_aggregate=True
                    ),
                },
                aggregates={"total_views": AggregateField(function="sum", column="views")},
            )
        )
        query = {"ordering": "title:asc", "size": "2"}
        response = await _run(seeded_db, registry.get("posts"), query, registry)
        assert response.results[0] == {"id": 4, "title": "100% Organic", "slug_with_id": "100% Organic-4"}
        assert list(response.aggregates) == ["most_views", "total_views"]
        assert response.aggregates["most_views"].value == 10
        assert response.aggregates["most_views"].label == "Most Views"

    @pytest.mark.asyncio
    async def test_custom_selection_seen_by_accessor(self, seeded_db) -> None:
        """In select-all mode accessors read custom selections; rows keep listed keys only."""

        def slug(row):
            return row["slug_with_id"].lower()

        registry = build_registry(
            list_options=ListOptions(
                fields=["title", slug],
                custom_selections={
                    "slug_with_id": CustomSelection(
                        sql=posts.c.title + "-" + cast(posts.c.id, String), label="Slug"
                    ),
                },
            )
        )
        response = await _run(seeded_db, registry.get("posts"), {"ordering": "title:asc"}, registry)
        assert response.results[0] == {"id": 4, "title": "100% Organic", "slug": "100% organic-4"}
        assert response.aggregates is None


# ============================================================
# List spec
# ============================================================


class TestListSpec:
    """UI description returned with every page."""

    def test_spec(self, registry) -> None:
        config = registry.get("posts")
        spec = ListQueryBuilder(config, registry).spec()
        wire = spec.to_wire()
        assert wire["endpoint"] == "/api/autoadmin/posts"
        assert wire["title"] == "Posts"
        assert wire["lookupColumnName"] == "id"
        assert wire["updateEndpoint"] == "/api/autoadmin/posts"
        assert wire["enableDelete"] is True
        assert wire["searchPlaceholder"] == "Search ..."
        assert wire["searchFields"] == ["title", "author_id.name"]

    def test_spec_bulk_actions_and_disabled_delete(self) -> None:
        config = configure_model(
            tags,
            delete_options={"enabled": False},
            list_options={"bulk_actions": [BulkAction(label="Archive", icon="archive", action=print)]},
        )
        spec = ListQueryBuilder(config).spec()
        assert spec.delete_endpoint is None
        assert spec.enable_delete is False
        assert [a.label for a in spec.bulk_actions] == ["Archive"]
        assert "action" not in spec.bulk_actions[0].to_wire()
