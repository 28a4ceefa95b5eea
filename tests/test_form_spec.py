"""Tests for form spec generation and relation choices."""

import pytest

from db_autoadmin.config.registry import ModelRegistry, configure_model
from db_autoadmin.errors import (
    BadRequestError,
    ConfigurationError,
    OperationNotAllowedError,
    RecordNotFoundError,
)
from db_autoadmin.forms.choices import many_to_many_choices, one_to_many_choices, relation_choices
from db_autoadmin.forms.models import FieldOverride, FieldType, Option
from db_autoadmin.forms.spec import (
    apply_defined_fields,
    create_form_spec,
    schema_to_form_spec,
    update_form_spec,
)

from conftest import posts, tags


# ============================================================
# Generated fields
# ============================================================


class TestSchemaToFormSpec:
    """One field per column."""

    def test_field_types_and_rules(self) -> None:
        spec = schema_to_form_spec(posts)
        title = spec.field("title")
        assert title.type == FieldType.TEXT
        assert title.required is True
        assert title.rules == {"maxLength": 200}
        assert title.label == "Title"

        status = spec.field("status")
        assert status.type == FieldType.SELECT
        assert status.options == ["draft", "published", "archived"]
        assert status.required is False

        assert spec.field("published").type == FieldType.BOOLEAN
        assert spec.field("views").type == FieldType.NUMBER
        assert spec.field("created_at").type == FieldType.DATE
        assert spec.field("body").required is False
        assert spec.field("author_id").label == "Author Id"

    def test_form_fields_select_and_override(self) -> None:
        """form_fields order the form; overrides merge over generated fields."""
        config = configure_model(posts)
        spec = apply_defined_fields(
            schema_to_form_spec(posts),
            config,
            ["body", FieldOverride(name="title", label="Headline", rules={"minLength": 3})],
        )
        assert [f.name for f in spec.fields] == ["body", "title"]
        title = spec.field("title")
        assert title.label == "Headline"
        assert title.type == FieldType.TEXT
        assert title.rules == {"maxLength": 200, "minLength": 3}

    def test_invalid_form_field(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid form field: nope"):
            apply_defined_fields(schema_to_form_spec(posts), configure_model(posts), ["nope"])

    def test_primary_key_appended_with_relations(self, registry) -> None:
        """Models with relations keep their key field for relation sync."""
        config = registry.get("posts")
        spec = apply_defined_fields(schema_to_form_spec(posts), config, ["title"])
        assert [f.name for f in spec.fields] == ["title", "id"]

    def test_model_field_overrides(self) -> None:
        config = configure_model(
            posts,
            fields=[{"name": "body", "type": "rich-text", "help": "Markdown allowed"}],
        )
        spec = apply_defined_fields(schema_to_form_spec(posts), config, None)
        body = spec.field("body")
        assert body.type == FieldType.RICH_TEXT
        assert body.help == "Markdown allowed"


# ============================================================
# Create form
# ============================================================


class TestCreateFormSpec:
    """The full create pipeline."""

    @pytest.mark.asyncio
    async def test_create_spec(self, registry) -> None:
        spec = await create_form_spec(registry.get("posts"), registry)
        names = [f.name for f in spec.fields]
        # autoincrement key and auto timestamp dropped, relations appended
        assert "id" not in names
        assert "updated_at" not in names
        assert names[-4:] == [
            "___o2m___comments___id",
            "___o2m___attachments___id",
            "___tags___tag_id",
            "___editors___user_id",
        ]
        assert spec.values is None
        assert spec.field("created_at").type == FieldType.DATETIME_LOCAL
        assert spec.field("status").default_value == "draft"
        assert spec.field("views").default_value == 0

    @pytest.mark.asyncio
    async def test_foreign_key_field(self, registry) -> None:
        spec = await create_form_spec(registry.get("posts"), registry)
        author = spec.field("author_id")
        assert author.type == FieldType.RELATION
        assert author.label == "Author"
        assert author.options is None
        config = author.relation_config
        assert config.choices_endpoint == "/api/autoadmin/formspec/posts/choices/author_id"
        assert config.related_config_key == "users"
        assert config.enable_create is True
        assert config.foreign_related_column_name == "id"
        assert config.foreign_label_column_name == "name"

        category = spec.field("category_id").relation_config
        assert category.related_config_key == "categories"
        assert category.enable_update is False

    @pytest.mark.asyncio
    async def test_relation_many_fields(self, registry) -> None:
        spec = await create_form_spec(registry.get("posts"), registry)
        tags_field = spec.field("___tags___tag_id")
        assert tags_field.type == FieldType.RELATION_MANY
        assert tags_field.label == "Tags"
        assert tags_field.required is False
        assert tags_field.relation_config.choices_endpoint == (
            "/api/autoadmin/formspec/posts/choices-many/___tags___tag_id"
        )
        comments_field = spec.field("___o2m___comments___id")
        assert comments_field.relation_config.choices_endpoint == (
            "/api/autoadmin/formspec/posts/choices-o2m/___comments___id"
        )
        assert comments_field.relation_config.foreign_label_column_name == "body"

    @pytest.mark.asyncio
    async def test_create_disabled(self) -> None:
        config = configure_model(tags, create_options={"enabled": False})
        with pytest.raises(OperationNotAllowedError, match="does not allow creation"):
            await create_form_spec(config)

    @pytest.mark.asyncio
    async def test_wire_format(self, registry) -> None:
        spec = await create_form_spec(registry.get("tags"), registry)
        wire = spec.to_wire()
        assert wire["warnOnUnsavedChanges"] is False
        assert wire["fields"][0] == {
            "name": "name",
            "label": "Name",
            "type": "text",
            "required": True,
            "rules": {"maxLength": 50},
        }


# ============================================================
# Update form
# ============================================================


class TestUpdateFormSpec:
    """Update forms carry current values and preloaded relation options."""

    @pytest.mark.asyncio
    async def test_values_and_label(self, seeded_db, registry) -> None:
        async with seeded_db.connect() as conn:
            spec = await update_form_spec(conn, registry.get("posts"), "1", registry)
        assert spec.label_string == "Hello World"
        assert spec.values["title"] == "Hello World"
        assert spec.values["author_id"] == 1
        assert spec.field("author_id").options == [Option(label="Alice", value=1)]

    @pytest.mark.asyncio
    async def test_relation_values(self, seeded_db, registry) -> None:
        async with seeded_db.connect() as conn:
            spec = await update_form_spec(conn, registry.get("posts"), 1, registry)
        assert sorted(spec.values["___tags___tag_id"]) == [1, 2]
        assert sorted(o.label for o in spec.field("___tags___tag_id").options) == ["Tag 1", "Tag 2"]
        assert sorted(spec.values["___editors___user_id"]) == [1, 2]
        assert sorted(spec.values["___o2m___comments___id"]) == [1, 2]
        assert sorted(o.label for o in spec.field("___o2m___comments___id").options) == [
            "First!", "Nice post",
        ]

    @pytest.mark.asyncio
    async def test_post_without_tags(self, seeded_db, registry) -> None:
        """No links leaves the field empty and out of the values."""
        async with seeded_db.connect() as conn:
            spec = await update_form_spec(conn, registry.get("posts"), 3, registry)
        assert "___tags___tag_id" not in spec.values
        assert spec.field("___tags___tag_id").options == []
        assert spec.values["___o2m___comments___id"] == []

    @pytest.mark.asyncio
    async def test_label_column_hidden(self, seeded_db) -> None:
        """A label column outside the form is surfaced only as label_string."""
        config = configure_model(tags, update_options={"form_fields": ["color"]})
        async with seeded_db.connect() as conn:
            spec = await update_form_spec(conn, config, 1)
        assert spec.label_string == "Tag 1"
        assert spec.values == {"color": "red"}

    @pytest.mark.asyncio
    async def test_missing_record(self, seeded_db, registry) -> None:
        async with seeded_db.connect() as conn:
            with pytest.raises(RecordNotFoundError):
                await update_form_spec(conn, registry.get("posts"), 99, registry)

    @pytest.mark.asyncio
    async def test_update_disabled(self, seeded_db, registry) -> None:
        async with seeded_db.connect() as conn:
            with pytest.raises(OperationNotAllowedError, match="does not allow updates"):
                await update_form_spec(conn, registry.get("categories"), 1, registry)

    @pytest.mark.asyncio
    async def test_warn_on_unsaved_changes(self, seeded_db) -> None:
        config = configure_model(tags, warn_on_unsaved_changes=True)
        async with seeded_db.connect() as conn:
            spec = await update_form_spec(conn, config, 1)
        assert spec.warn_on_unsaved_changes is True


# ============================================================
# Choices
# ============================================================


class TestChoices:
    """Options offered by relation fields."""

    @pytest.mark.asyncio
    async def test_relation_choices(self, seeded_db, registry) -> None:
        async with seeded_db.connect() as conn:
            choices = await relation_choices(conn, registry.get("posts"), "author_id", registry)
        assert choices == [Option(label="Alice", value=1), Option(label="Bob", value=2)]

    @pytest.mark.asyncio
    async def test_relation_choices_not_a_foreign_key(self, seeded_db, registry) -> None:
        async with seeded_db.connect() as conn:
            with pytest.raises(RecordNotFoundError, match="No relations found for column title"):
                await relation_choices(conn, registry.get("posts"), "title", registry)

    @pytest.mark.asyncio
    async def test_many_to_many_choices(self, seeded_db, registry) -> None:
        async with seeded_db.connect() as conn:
            choices = await many_to_many_choices(
                conn, registry.get("posts"), "___tags___tag_id", registry
            )
        assert [c.label for c in choices] == ["Tag 1", "Tag 2", "Tag 3"]
        assert [c.value for c in choices] == [1, 2, 3]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("column_def", ["tags", "___tags", "___o2m___comments___id", "___tags___nope"])
    async def test_many_to_many_invalid(self, seeded_db, registry, column_def) -> None:
        async with seeded_db.connect() as conn:
            with pytest.raises(BadRequestError):
                await many_to_many_choices(conn, registry.get("posts"), column_def, registry)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("column_def", ["___comments___id", "___o2m___comments___id"])
    async def test_one_to_many_choices(self, seeded_db, registry, column_def) -> None:
        """Both the endpoint and the field encodings are accepted."""
        async with seeded_db.connect() as conn:
            choices = await one_to_many_choices(conn, registry.get("posts"), column_def, registry)
        assert [c.label for c in choices] == ["First!", "Nice post", "Unattached"]

    @pytest.mark.asyncio
    async def test_one_to_many_unknown_relation(self, seeded_db, registry) -> None:
        async with seeded_db.connect() as conn:
            with pytest.raises(BadRequestError):
                await one_to_many_choices(conn, registry.get("posts"), "___likes___id", registry)

    @pytest.mark.asyncio
    async def test_choices_without_registry(self, seeded_db) -> None:
        """Label columns are inferred when no registry is given."""
        registry = ModelRegistry([configure_model(posts)])
        async with seeded_db.connect() as conn:
            choices = await relation_choices(conn, registry.get("posts"), "category_id")
        assert choices == [Option(label="News", value=1)]
