"""Dump configuration loader.

Reads ``dump.toml``:

    [dump]
    syntax = "command"
    order_by = "_key"
    defer_index_columns = true

    [tables]
    include = ["Users"]
    exclude = ["Logs"]
    include_patterns = ["^Bookmark"]
    exclude_patterns = []

    [plugins]
    dir = "/usr/lib/columnar/plugins"
    suffix = ".so"
"""

import tomllib
from pathlib import Path

from columnar_dump.config.models import DumpConfig


def load_dump_config(config_path: Path | None = None) -> DumpConfig:
    """Load dump configuration from a TOML file.

    Args:
        config_path: Path to dump.toml (default: ./dump.toml)

    Returns:
        DumpConfig with file values over the defaults

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / "dump.toml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"Dump config not found: {config_path}\n"
            f"Create dump.toml or pass the options on the command line."
        )

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    values = dict(data.get("dump", {}))

    # Parse table filters
    tables = data.get("tables", {})
    for key, field_name in (
        ("include", "tables"),
        ("exclude", "exclude_tables"),
        ("include_patterns", "table_patterns"),
        ("exclude_patterns", "exclude_table_patterns"),
    ):
        if key in tables:
            values[field_name] = tables[key]

    # Parse plugin settings
    plugins = data.get("plugins", {})
    if "dir" in plugins:
        values["plugins_dir"] = plugins["dir"]
    if "suffix" in plugins:
        values["plugin_suffix"] = plugins["suffix"]

    return DumpConfig(**values)
