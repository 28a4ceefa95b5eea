"""Settings loading for db-autoadmin."""

import tomllib
from pathlib import Path
from typing import Any

from db_autoadmin.config.models import AdminSettings

DEFAULT_CONFIG_FILE = "autoadmin.toml"


def load_admin_settings(config_path: Path | str | None = None) -> AdminSettings:
    """Load engine settings from TOML, overlaid by ``AUTOADMIN_*`` env vars.

    The file is optional when no path is given: a missing
    ``./autoadmin.toml`` yields settings from the environment alone.

    Expected layout::

        [admin]
        api_prefix = "/api/autoadmin"
        default_page_size = 20

        [database]
        url = "sqlite+aiosqlite:///admin.db"
        echo = false

    Args:
        config_path: Path to the TOML file (default: ./autoadmin.toml)

    Returns:
        AdminSettings

    Raises:
        FileNotFoundError: If an explicit config path doesn't exist
        ValueError: If the file cannot be parsed
    """
    explicit = config_path is not None
    path = Path(config_path) if explicit else Path.cwd() / DEFAULT_CONFIG_FILE

    if not path.exists():
        if explicit:
            raise FileNotFoundError(
                f"Admin config not found: {path}\n"
                f"Create it with an [admin] and a [database] table."
            )
        return AdminSettings()

    with open(path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid admin config {path}: {e}") from e

    values: dict[str, Any] = dict(data.get("admin", {}))
    database = data.get("database", {})
    if "url" in database:
        values["database_url"] = database["url"]
    if "echo" in database:
        values["echo_sql"] = database["echo"]

    # Environment wins over the file
    env = AdminSettings()
    for name in env.model_fields_set:
        values[name] = getattr(env, name)

    return AdminSettings(**values)
