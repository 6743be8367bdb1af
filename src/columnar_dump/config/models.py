"""Pydantic models for dump configuration."""

import re
from typing import Literal

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class DumpConfig(BaseModel):
    """Dump options, from dump.toml or built in code.

    Example:
        >>> config = DumpConfig(tables=["Users"])
        >>> config.dump_schema
        True
    """

    syntax: Literal["script", "command"] = "script"  # schema-only dumps
    dump_plugins: bool = True
    dump_schema: bool = True
    dump_tables: bool = True
    defer_index_columns: bool = False  # index columns after records

    tables: list[str] = Field(default_factory=list)
    exclude_tables: list[str] = Field(default_factory=list)
    table_patterns: list[re.Pattern] = Field(default_factory=list)
    exclude_table_patterns: list[re.Pattern] = Field(default_factory=list)

    order_by: str | None = None
    max_resolve_depth: int = Field(default=32, ge=1)

    plugins_dir: str = "/usr/lib/columnar/plugins"
    plugin_suffix: str = ".so"
