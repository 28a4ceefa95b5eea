"""CLI for inspecting registered models against a live database.

The registry is imported from ``module:attribute``; the attribute is a
``ModelRegistry`` or a function returning one.

Usage:
    db-autoadmin --registry myapp.admin:registry models
    db-autoadmin --registry myapp.admin:registry list posts --search hello --page 2
    db-autoadmin --registry myapp.admin:registry list posts --filter published=true
    db-autoadmin --registry myapp.admin:registry formspec posts --lookup 3

Commands:
    models    - List registered models and their enabled operations
    list      - Print one page of a model's list
    formspec  - Print the create (or update) form spec as JSON
"""

import argparse
import asyncio
import importlib
import json
import sys

from rich.console import Console
from rich.table import Table

from db_autoadmin.adapters.engine import Database
from db_autoadmin.config.loader import load_admin_settings
from db_autoadmin.config.models import AdminSettings
from db_autoadmin.config.registry import ModelRegistry
from db_autoadmin.errors import AdminError
from db_autoadmin.services.forms import get_create_form_spec, get_update_form_spec
from db_autoadmin.services.records import list_records

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def load_registry(target: str) -> ModelRegistry:
    """Import a registry given as ``module:attribute``.

    Raises:
        ValueError: If *target* is malformed or does not name a registry.
        ImportError: If the module cannot be imported.
    """
    module_name, sep, attribute = target.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Invalid registry {target!r}, expected module:attribute")
    module = importlib.import_module(module_name)
    try:
        registry = getattr(module, attribute)
    except AttributeError:
        raise ValueError(f"Module {module_name} has no attribute {attribute}") from None
    if not isinstance(registry, ModelRegistry) and callable(registry):
        registry = registry()
    if not isinstance(registry, ModelRegistry):
        raise ValueError(f"{target} is not a ModelRegistry")
    return registry


def _settings(args: argparse.Namespace) -> AdminSettings:
    settings = load_admin_settings(args.config)
    if args.database_url:
        settings = settings.model_copy(update={"database_url": args.database_url})
    return settings


def _parse_filters(items: list[str] | None) -> dict[str, str]:
    """``field=value`` pairs from repeated ``--filter`` options."""
    filters: dict[str, str] = {}
    for item in items or []:
        field, sep, value = item.partition("=")
        if not sep or not field:
            raise ValueError(f"Invalid filter {item!r}, expected field=value")
        filters[field] = value
    return filters


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_list(args: argparse.Namespace) -> int:
    """Async implementation for list command.

    Returns:
        0 on success, 1 on failure.
    """
    try:
        registry = load_registry(args.registry)
        settings = _settings(args)
        query = _parse_filters(args.filter)
    except (ValueError, ImportError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    if not settings.database_url:
        console.print("[red]Error: no database URL (use --database-url or AUTOADMIN_DATABASE_URL)[/red]")
        return 1

    for name in ("search", "ordering", "page", "size"):
        value = getattr(args, name)
        if value is not None:
            query[name] = str(value)

    db = Database(settings.database_url, echo=settings.echo_sql)
    try:
        response = await list_records(db, registry, args.key, query, settings)
    except AdminError as e:
        console.print(f"[bold red]x[/bold red] {e.message}")
        return 1
    finally:
        await db.close()

    spec = response.spec
    table = Table(title=spec.title, show_header=True, header_style="bold")
    keys = [spec.lookup_column_name] + [
        column.accessor_key for column in spec.columns
        if column.accessor_key != spec.lookup_column_name
    ]
    headers = {column.accessor_key: column.header for column in spec.columns}
    for key in keys:
        table.add_column(headers.get(key, key))
    for row in response.results:
        table.add_row(*("" if row.get(key) is None else str(row.get(key)) for key in keys))
    console.print(table)

    pagination = response.pagination
    console.print(
        f"[dim]Page {pagination.page} of {pagination.pages} "
        f"({pagination.count} rows, {pagination.size} per page)[/dim]"
    )
    for key, aggregate in (response.aggregates or {}).items():
        console.print(f"  {aggregate.label}: [cyan]{aggregate.value}[/cyan]")
    return 0


async def _async_formspec(args: argparse.Namespace) -> int:
    """Async implementation for formspec command.

    Returns:
        0 on success, 1 on failure.
    """
    try:
        registry = load_registry(args.registry)
        settings = _settings(args)
    except (ValueError, ImportError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    if args.lookup is not None and not settings.database_url:
        console.print("[red]Error: no database URL (use --database-url or AUTOADMIN_DATABASE_URL)[/red]")
        return 1

    db = Database(settings.database_url or "sqlite://", echo=settings.echo_sql)
    try:
        if args.lookup is None:
            result = await get_create_form_spec(db, registry, args.key)
        else:
            result = await get_update_form_spec(db, registry, args.key, args.lookup)
    except AdminError as e:
        console.print(f"[bold red]x[/bold red] {e.message}")
        return 1
    finally:
        await db.close()

    console.print_json(json.dumps({"spec": result["spec"].to_wire()}))
    return 0


# ============================================================================
# Command wrappers
# ============================================================================


def cmd_models(args: argparse.Namespace) -> int:
    """List registered models.

    Reads only the registry -- no database calls.

    Returns:
        0 on success, 1 if the registry cannot be loaded.
    """
    try:
        registry = load_registry(args.registry)
    except (ValueError, ImportError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    table = Table(title="Registered Models", show_header=True, header_style="bold")
    table.add_column("Key", style="cyan")
    table.add_column("Table")
    table.add_column("Label")
    table.add_column("Lookup")
    table.add_column("Create")
    table.add_column("Update")
    table.add_column("Delete")

    def flag(enabled: bool) -> str:
        return "[green]yes[/green]" if enabled else "[dim]no[/dim]"

    for key, config in registry.items():
        table.add_row(
            key,
            config.table.name,
            config.label,
            config.lookup_column_name,
            flag(config.create_options.enabled),
            flag(config.update_options.enabled),
            flag(config.delete_options.enabled),
        )

    console.print(table)
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """Print one page of a model's list.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_list(args))


def cmd_formspec(args: argparse.Namespace) -> int:
    """Print a form spec.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_formspec(args))


# ============================================================================
# Main entry point
# ============================================================================


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="db-autoadmin",
        description="Inspect configuration-driven admin models",
    )
    parser.add_argument(
        "--registry",
        required=True,
        help="Registry to load, as module:attribute (e.g., myapp.admin:registry)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to autoadmin.toml (default: ./autoadmin.toml if present)",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL, overrides the config file and AUTOADMIN_DATABASE_URL",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # models command
    p_models = subparsers.add_parser("models", help="List registered models")
    p_models.set_defaults(func=cmd_models)

    # list command
    p_list = subparsers.add_parser("list", help="Print one page of a model's list")
    p_list.add_argument("key", help="Model key")
    p_list.add_argument("--search", default=None, help="Search term")
    p_list.add_argument(
        "--ordering",
        default=None,
        help="Sort as accessorKey:asc or accessorKey:desc",
    )
    p_list.add_argument("--page", type=int, default=None, help="Page number (1-based)")
    p_list.add_argument("--size", type=int, default=None, help="Rows per page")
    p_list.add_argument(
        "--filter",
        action="append",
        metavar="FIELD=VALUE",
        help="Filter value, may be repeated (e.g., --filter published=true)",
    )
    p_list.set_defaults(func=cmd_list)

    # formspec command
    p_formspec = subparsers.add_parser("formspec", help="Print a form spec as JSON")
    p_formspec.add_argument("key", help="Model key")
    p_formspec.add_argument(
        "--lookup",
        default=None,
        help="Lookup value of the record to edit (default: create form)",
    )
    p_formspec.set_defaults(func=cmd_formspec)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
