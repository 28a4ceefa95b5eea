"""Tests for the db-autoadmin command line."""

import json
import textwrap
from unittest.mock import patch

import pytest
from rich.console import Console
from sqlalchemy import create_engine, insert

from db_autoadmin.cli import _parse_filters, load_registry, main
from db_autoadmin.config.registry import ModelRegistry

from conftest import metadata, tags

REGISTRY = "blog_admin_cli:registry"


@pytest.fixture
def registry_module(tmp_path, monkeypatch):
    """Importable module exposing the blog registry and a registry factory."""
    (tmp_path / "blog_admin_cli.py").write_text(
        textwrap.dedent(
            """
            from conftest import build_registry

            registry = build_registry()
            not_a_registry = {"posts": None}


            def make_registry():
                return build_registry()
            """
        )
    )
    monkeypatch.syspath_prepend(str(tmp_path))
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("AUTOADMIN_DATABASE_URL", raising=False)
    return tmp_path


@pytest.fixture
def database_url(tmp_path) -> str:
    """SQLite file with the blog schema and two tags, filled synchronously."""
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    engine = create_engine(url)
    metadata.create_all(engine)
    with engine.begin() as conn:
        conn.execute(
            insert(tags),
            [{"id": 1, "name": "Tag 1", "color": "red"}, {"id": 2, "name": "Tag 2", "color": "blue"}],
        )
    engine.dispose()
    return url


@pytest.fixture
def console():
    """Wide recording console in place of the module console."""
    recording = Console(width=200, record=True)
    with patch("db_autoadmin.cli.console", recording):
        yield recording


# ------------------------------------------------------------------
# load_registry
# ------------------------------------------------------------------


class TestLoadRegistry:
    """Registry import from module:attribute."""

    def test_attribute(self, registry_module) -> None:
        registry = load_registry(REGISTRY)
        assert isinstance(registry, ModelRegistry)
        assert "posts" in registry

    def test_factory(self, registry_module) -> None:
        assert isinstance(load_registry("blog_admin_cli:make_registry"), ModelRegistry)

    @pytest.mark.parametrize(
        "target,message",
        [
            ("blog_admin_cli", "expected module:attribute"),
            ("blog_admin_cli:", "expected module:attribute"),
            ("blog_admin_cli:missing", "has no attribute missing"),
            ("blog_admin_cli:not_a_registry", "is not a ModelRegistry"),
        ],
    )
    def test_invalid_targets(self, registry_module, target, message) -> None:
        with pytest.raises(ValueError, match=message):
            load_registry(target)

    def test_missing_module(self, registry_module) -> None:
        with pytest.raises(ImportError):
            load_registry("no_such_module_xyz:registry")

    def test_parse_filters(self) -> None:
        assert _parse_filters(["published=true", "q=a=b"]) == {"published": "true", "q": "a=b"}
        assert _parse_filters(None) == {}
        with pytest.raises(ValueError, match="expected field=value"):
            _parse_filters(["published"])


# ------------------------------------------------------------------
# Parser
# ------------------------------------------------------------------


class TestParser:
    """Argument parsing and dispatch."""

    def test_dispatches_list(self) -> None:
        argv = [
            "--registry", REGISTRY, "list", "posts",
            "--page", "2", "--filter", "status=draft", "--filter", "published=true",
        ]
        with patch("db_autoadmin.cli.cmd_list", return_value=0) as mock_list:
            assert main(argv) == 0
        args = mock_list.call_args[0][0]
        assert args.registry == REGISTRY
        assert args.key == "posts"
        assert args.page == 2
        assert args.filter == ["status=draft", "published=true"]
        assert args.search is None

    def test_registry_required(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["models"])
        assert exc_info.value.code == 2

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--registry", REGISTRY])
        assert exc_info.value.code == 2


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------


class TestCommands:
    """Commands run against a real registry and SQLite file."""

    def test_models(self, registry_module, console) -> None:
        assert main(["--registry", REGISTRY, "models"]) == 0
        output = console.export_text()
        assert "Registered Models" in output
        assert "posts" in output
        assert "categories" in output

    def test_models_bad_registry(self, registry_module, console) -> None:
        assert main(["--registry", "blog_admin_cli:missing", "models"]) == 1
        assert "Error" in console.export_text()

    def test_list(self, registry_module, database_url, console) -> None:
        argv = ["--registry", REGISTRY, "--database-url", database_url, "list", "tags"]
        assert main(argv) == 0
        output = console.export_text()
        assert "Tag 1" in output
        assert "Tag 2" in output
        assert "Page 1 of 1 (2 rows, 10 per page)" in output

    def test_list_with_search(self, registry_module, database_url, console) -> None:
        argv = [
            "--registry", REGISTRY, "--database-url", database_url,
            "list", "tags", "--search", "2",
        ]
        assert main(argv) == 0
        output = console.export_text()
        assert "Tag 2" in output
        assert "Tag 1" not in output

    def test_list_bad_filter_value(self, registry_module, database_url, console) -> None:
        argv = [
            "--registry", REGISTRY, "--database-url", database_url,
            "list", "posts", "--filter", "published=maybe",
        ]
        assert main(argv) == 1
        assert "boolean filter" in console.export_text()

    def test_list_without_database(self, registry_module, console) -> None:
        assert main(["--registry", REGISTRY, "list", "tags"]) == 1
        assert "no database URL" in console.export_text()

    def test_create_formspec_without_database(self, registry_module, console) -> None:
        """Create specs need no database."""
        assert main(["--registry", REGISTRY, "formspec", "tags"]) == 0
        spec = json.loads(console.export_text())["spec"]
        assert [field["name"] for field in spec["fields"]] == ["name", "color"]

    def test_update_formspec(self, registry_module, database_url, console) -> None:
        argv = [
            "--registry", REGISTRY, "--database-url", database_url,
            "formspec", "tags", "--lookup", "2",
        ]
        assert main(argv) == 0
        spec = json.loads(console.export_text())["spec"]
        assert spec["labelString"] == "Tag 2"
        assert spec["values"]["color"] == "blue"

    def test_formspec_unknown_model(self, registry_module, console) -> None:
        assert main(["--registry", REGISTRY, "formspec", "nope"]) == 1
        assert "Model nope not registered" in console.export_text()
