"""Shared fixtures: a blog schema on a temporary SQLite database.

Tables:
    users, categories, tags              plain models
    posts                                two FKs to users, one to categories,
                                         enum status, ms-epoch created_at
    posts_to_tags                        two-column m2m junction
    post_editors                         m2m junction with an extra column
    comments                             o2m child, nullable FK
    attachments                          o2m child, NOT NULL FK
"""

from datetime import datetime

import pytest
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
    insert,
)

from db_autoadmin.adapters.engine import Database
from db_autoadmin.config.models import ListField, ListOptions
from db_autoadmin.config.registry import ModelRegistry, configure_model

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(100), nullable=False),
    Column("email", String(255), unique=True),
)

categories = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("title", String(50), nullable=False),
)

tags = Table(
    "tags",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(50), nullable=False, unique=True),
    Column("color", String(20)),
)

posts = Table(
    "posts",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("title", String(200), nullable=False),
    Column("body", Text),
    Column(
        "status",
        Enum("draft", "published", "archived", name="post_status"),
        nullable=False,
        default="draft",
    ),
    Column("published", Boolean, nullable=False, default=False),
    Column("views", Integer, nullable=False, default=0),
    Column("author_id", Integer, ForeignKey("users.id")),
    Column("reviewer_id", Integer, ForeignKey("users.id")),
    Column("category_id", Integer, ForeignKey("categories.id")),
    Column("created_at", Integer, info={"timestamp": "ms"}),
    Column("updated_at", DateTime, server_default=func.now()),
)

posts_to_tags = Table(
    "posts_to_tags",
    metadata,
    Column("post_id", Integer, ForeignKey("posts.id"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id"), primary_key=True),
)

post_editors = Table(
    "post_editors",
    metadata,
    Column("post_id", Integer, ForeignKey("posts.id"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), primary_key=True),
    Column("role", String(20), nullable=False, default="editor"),
)

comments = Table(
    "comments",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("body", String(500), nullable=False),
    Column("post_id", Integer, ForeignKey("posts.id")),
)

attachments = Table(
    "attachments",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(100), nullable=False),
    Column("post_id", Integer, ForeignKey("posts.id"), nullable=False),
)


def ms(*args: int) -> int:
    """Epoch milliseconds of a local datetime."""
    return int(datetime(*args).timestamp() * 1000)


def build_registry(**post_options) -> ModelRegistry:
    """Registry of the blog models; keyword arguments override posts options."""
    post_kwargs = {
        "m2m": {"tags": posts_to_tags, "editors": post_editors},
        "o2m": {"comments": comments, "attachments": attachments},
        "list_options": ListOptions(
            fields=[
                "title",
                ListField(field="author_id.name", label="Author"),
                "reviewer_id.name",
                "status",
                "views",
            ],
            search_fields=["title", "author_id.name"],
            filter_fields=["published", "status", "author_id", "created_at"],
        ),
    }
    post_kwargs.update(post_options)
    return ModelRegistry(
        [
            configure_model(users),
            configure_model(categories, update_options={"enabled": False}),
            configure_model(tags),
            configure_model(posts, **post_kwargs),
            configure_model(comments, label_column_name="body"),
            configure_model(attachments),
        ]
    )


@pytest.fixture
def registry() -> ModelRegistry:
    return build_registry()


@pytest.fixture
async def db(tmp_path):
    """Empty database with every table created."""
    database = Database(f"sqlite:///{tmp_path / 'admin.db'}")
    async with database.engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield database
    await database.close()


@pytest.fixture
async def seeded_db(db):
    """Database with two users, three tags, four posts and some relations.

    Posts (id: title, author, status, published, views, created_at):
        1: Hello World    Alice  published  True   10  2025-07-08 09:30
        2: Second Post    Bob    draft      False  5   2025-07-08 23:59:59
        3: Third Post     Alice  published  True   7   2025-07-09 00:00:01
        4: 100% Organic   None   archived   False  0   2025-06-01 12:00
    """
    async with db.transaction() as conn:
        await conn.execute(
            insert(users),
            [
                {"id": 1, "name": "Alice", "email": "alice@example.com"},
                {"id": 2, "name": "Bob", "email": "bob@example.com"},
            ],
        )
        await conn.execute(insert(categories), [{"id": 1, "title": "News"}])
        await conn.execute(
            insert(tags),
            [
                {"id": 1, "name": "Tag 1", "color": "red"},
                {"id": 2, "name": "Tag 2", "color": "green"},
                {"id": 3, "name": "Tag 3", "color": "blue"},
            ],
        )
        await conn.execute(
            insert(posts),
            [
                {
                    "id": 1, "title": "Hello World", "status": "published", "published": True,
                    "views": 10, "author_id": 1, "reviewer_id": 2, "category_id": 1,
                    "created_at": ms(2025, 7, 8, 9, 30),
                },
                {
                    "id": 2, "title": "Second Post", "status": "draft", "published": False,
                    "views": 5, "author_id": 2, "reviewer_id": 1, "category_id": None,
                    "created_at": ms(2025, 7, 8, 23, 59, 59),
                },
                {
                    "id": 3, "title": "Third Post", "status": "published", "published": True,
                    "views": 7, "author_id": 1, "reviewer_id": None, "category_id": None,
                    "created_at": ms(2025, 7, 9, 0, 0, 1),
                },
                {
                    "id": 4, "title": "100% Organic", "status": "archived", "published": False,
                    "views": 0, "author_id": None, "reviewer_id": None, "category_id": None,
                    "created_at": ms(2025, 6, 1, 12, 0),
                },
            ],
        )
        await conn.execute(
            insert(posts_to_tags),
            [{"post_id": 1, "tag_id": 1}, {"post_id": 1, "tag_id": 2}, {"post_id": 2, "tag_id": 3}],
        )
        await conn.execute(
            insert(post_editors),
            [
                {"post_id": 1, "user_id": 1, "role": "owner"},
                {"post_id": 1, "user_id": 2, "role": "reviewer"},
            ],
        )
        await conn.execute(
            insert(comments),
            [
                {"id": 1, "body": "First!", "post_id": 1},
                {"id": 2, "body": "Nice post", "post_id": 1},
                {"id": 3, "body": "Unattached", "post_id": None},
            ],
        )
        await conn.execute(
            insert(attachments),
            [
                {"id": 1, "name": "cover.png", "post_id": 1},
                {"id": 2, "name": "draft.pdf", "post_id": 2},
            ],
        )
    return db
