"""Tests for dump configuration.

Verifies ``DumpConfig`` defaults and validation, and that
``load_dump_config()`` reads every dump.toml section.
"""

import re
import textwrap
from pathlib import Path

import pytest

from columnar_dump.config.loader import load_dump_config
from columnar_dump.config.models import DumpConfig


def _write_config(tmp_path: Path, content: str) -> Path:
    config_path = tmp_path / "dump.toml"
    config_path.write_text(textwrap.dedent(content))
    return config_path


class TestDumpConfig:
    """Model defaults and validation."""

    def test_defaults(self) -> None:
        """Everything is dumped, schema-only output uses script syntax."""
        config = DumpConfig()
        assert config.syntax == "script"
        assert config.dump_plugins is True
        assert config.dump_schema is True
        assert config.dump_tables is True
        assert config.defer_index_columns is False
        assert config.tables == []
        assert config.order_by is None
        assert config.max_resolve_depth == 32

    def test_patterns_compiled(self) -> None:
        """Pattern strings are compiled to ``re.Pattern``."""
        config = DumpConfig(table_patterns=["^Bookmark"])
        assert isinstance(config.table_patterns[0], re.Pattern)
        assert config.table_patterns[0].search("Bookmarks")

    def test_unknown_syntax_rejected(self) -> None:
        """Only script and command syntaxes exist."""
        with pytest.raises(ValueError):
            DumpConfig(syntax="sql")

    def test_depth_must_be_positive(self) -> None:
        """A zero resolution depth is rejected."""
        with pytest.raises(ValueError):
            DumpConfig(max_resolve_depth=0)


class TestLoadDumpConfig:
    """TOML loading."""

    def test_full_file(self, tmp_path: Path) -> None:
        """All three sections are read."""
        config_path = _write_config(
            tmp_path,
            """
            [dump]
            syntax = "command"
            order_by = "_key"
            defer_index_columns = true
            dump_plugins = false

            [tables]
            include = ["Users"]
            exclude = ["Logs"]
            include_patterns = ["^Bookmark"]
            exclude_patterns = ["_tmp$"]

            [plugins]
            dir = "/opt/plugins"
            suffix = ".dylib"
            """,
        )
        config = load_dump_config(config_path)

        assert config.syntax == "command"
        assert config.order_by == "_key"
        assert config.defer_index_columns is True
        assert config.dump_plugins is False
        assert config.tables == ["Users"]
        assert config.exclude_tables == ["Logs"]
        assert [p.pattern for p in config.table_patterns] == ["^Bookmark"]
        assert [p.pattern for p in config.exclude_table_patterns] == ["_tmp$"]
        assert config.plugins_dir == "/opt/plugins"
        assert config.plugin_suffix == ".dylib"

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        """An empty dump.toml is valid."""
        config_path = _write_config(tmp_path, "")
        assert load_dump_config(config_path) == DumpConfig()

    def test_default_path(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without a path, ./dump.toml is read."""
        _write_config(tmp_path, '[dump]\norder_by = "age"\n')
        monkeypatch.chdir(tmp_path)
        assert load_dump_config().order_by == "age"

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing file raises FileNotFoundError naming the path."""
        with pytest.raises(FileNotFoundError, match="dump.toml"):
            load_dump_config(tmp_path / "dump.toml")

    def test_invalid_value(self, tmp_path: Path) -> None:
        """Invalid values surface as ValueError."""
        config_path = _write_config(tmp_path, '[dump]\nsyntax = "sql"\n')
        with pytest.raises(ValueError):
            load_dump_config(config_path)
