"""Tests for the columnar-dump CLI.

Runs the ``cmd_*`` handlers directly with parsed-argument namespaces and
``main()`` through a patched ``sys.argv``.
"""

import argparse
import sys
from pathlib import Path

import pytest

from columnar_dump.adapters.base import TableVariant
from columnar_dump.adapters.memory import MemoryDatabase
from columnar_dump.cli import cmd_convert, cmd_tables, cmd_validate, main
from columnar_dump.dump.database import dump


def _write_dump(tmp_path: Path) -> Path:
    """Write a full dump of Users (two records) and Logs (one record)."""
    db = MemoryDatabase()
    users = db.create_table("Users", TableVariant.HASH_KEY, key_type="ShortText")
    age = users.define_column("age", "Int32")
    age.set_value(users.add("alice").id, 29)
    age.set_value(users.add("bob").id, 31)
    logs = db.create_table("Logs")
    logs.define_column("message", "Text").set_value(logs.add().id, "started")

    dump_file = tmp_path / "backup.dump"
    dump_file.write_text(dump(db), encoding="utf-8")
    return dump_file


def _convert_args(dump_file: Path, **overrides) -> argparse.Namespace:
    values = {
        "dump_file": str(dump_file),
        "config": None,
        "syntax": None,
        "schema_only": False,
        "table": None,
        "exclude_table": None,
        "order_by": None,
        "defer_index_columns": False,
        "no_plugins": False,
        "output": None,
    }
    values.update(overrides)
    return argparse.Namespace(**values)


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's ./dump.toml out of the tests."""
    monkeypatch.chdir(tmp_path)


class TestConvert:
    """``convert`` replays a dump and writes it again."""

    def test_round_trip_to_file(self, tmp_path: Path) -> None:
        """Re-dumping with no options reproduces the input."""
        dump_file = _write_dump(tmp_path)
        output = tmp_path / "out.dump"

        assert cmd_convert(_convert_args(dump_file, output=str(output))) == 0
        assert output.read_text(encoding="utf-8") == dump_file.read_text(encoding="utf-8")

    def test_schema_only_script(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        """``--schema-only --syntax script`` prints DSL calls."""
        dump_file = _write_dump(tmp_path)

        assert cmd_convert(_convert_args(dump_file, schema_only=True, syntax="script")) == 0
        out = capsys.readouterr().out
        assert out.startswith('with schema.create_table("Logs",\n')
        assert '    table.integer32("age")\n' in out
        assert "load" not in out

    def test_table_filter(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        """``--table`` limits the record dumps."""
        dump_file = _write_dump(tmp_path)

        assert cmd_convert(_convert_args(dump_file, table=["Users"])) == 0
        out = capsys.readouterr().out
        assert "load --table Users" in out
        assert "load --table Logs" not in out

    def test_config_file(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        """Options come from ./dump.toml when present."""
        dump_file = _write_dump(tmp_path)
        (tmp_path / "dump.toml").write_text('[tables]\nexclude = ["Users"]\n')

        assert cmd_convert(_convert_args(dump_file)) == 0
        out = capsys.readouterr().out
        assert "load --table Users" not in out
        assert "load --table Logs" in out

    def test_missing_dump(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        """A missing dump file is an error."""
        assert cmd_convert(_convert_args(tmp_path / "missing.dump")) == 1
        assert "Dump file not found" in capsys.readouterr().err

    def test_broken_dump(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        """A dump that cannot be replayed is an error."""
        dump_file = tmp_path / "broken.dump"
        dump_file.write_text("drop_table Users\n")
        assert cmd_convert(_convert_args(dump_file)) == 1
        assert "unknown command" in capsys.readouterr().err


class TestValidate:
    """``validate`` reports structure problems."""

    def test_valid(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        """A dump produced by the dumper is valid."""
        dump_file = _write_dump(tmp_path)
        assert cmd_validate(argparse.Namespace(dump_file=str(dump_file))) == 0
        assert "Dump is valid" in capsys.readouterr().out

    def test_invalid(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        """Unknown flags make the dump invalid."""
        dump_file = tmp_path / "bad.dump"
        dump_file.write_text("table_create Users TABLE_BTREE\n")
        assert cmd_validate(argparse.Namespace(dump_file=str(dump_file))) == 1
        assert "TABLE_BTREE" in capsys.readouterr().out


class TestTables:
    """``tables`` summarizes a dump."""

    def test_lists_tables(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        """Every table appears with its record count."""
        dump_file = _write_dump(tmp_path)
        args = argparse.Namespace(dump_file=str(dump_file), config=None, verbose=True)
        assert cmd_tables(args) == 0
        out = capsys.readouterr().out
        assert "Users" in out
        assert "Logs" in out
        assert "Users.age" in out


class TestMain:
    """Argument parsing and dispatch."""

    def test_validate_command(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """``columnar-dump validate FILE`` returns the handler's exit code."""
        dump_file = _write_dump(tmp_path)
        monkeypatch.setattr(sys, "argv", ["columnar-dump", "validate", str(dump_file)])
        assert main() == 0

    def test_command_required(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Running without a command exits with a usage error."""
        monkeypatch.setattr(sys, "argv", ["columnar-dump"])
        with pytest.raises(SystemExit):
            main()
