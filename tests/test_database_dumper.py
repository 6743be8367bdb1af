"""Tests for the whole-database dumper.

Covers section ordering, plugin registration lines, the table filter,
the ``defer_index_columns`` ordering, and config overrides.
"""

import io
import re

import pytest

from columnar_dump.adapters.base import TableVariant
from columnar_dump.adapters.memory import MemoryDatabase
from columnar_dump.config.models import DumpConfig
from columnar_dump.dump.database import DatabaseDumper, dump


def _users_database() -> MemoryDatabase:
    """Users (hash, ShortText key) with one record, alice aged 29."""
    db = MemoryDatabase()
    users = db.create_table("Users", TableVariant.HASH_KEY, key_type="ShortText")
    age = users.define_column("age", "Int32")
    age.set_value(users.add("alice").id, 29)
    return db


def _users_and_logs_database() -> MemoryDatabase:
    db = _users_database()
    logs = db.create_table("Logs")
    message = logs.define_column("message", "Text")
    message.set_value(logs.add().id, "started")
    return db


class TestDumpLayout:
    """Plugins, schema, then records."""

    def test_full_dump(self):
        db = _users_database()
        db.register_plugin("query_expanders/tsv")

        assert dump(db) == (
            "register query_expanders/tsv\n"
            "\n"
            "table_create Users TABLE_HASH_KEY --key_type ShortText\n"
            "column_create Users age COLUMN_SCALAR Int32\n"
            "\n"
            "\n"
            "\n"
            "load --table Users\n"
            "[\n"
            '["_key","age"],\n'
            '["alice",29]\n'
            "]\n"
        )

    def test_schema_always_in_command_syntax(self):
        db = _users_database()
        text = dump(db, DumpConfig(syntax="script"))
        assert "with schema" not in text
        assert text.startswith("table_create Users")

    def test_records_only(self):
        text = dump(_users_database(), dump_schema=False)
        assert text.startswith("load --table Users\n")

    def test_schema_only(self):
        text = dump(_users_database(), dump_tables=False)
        assert "load" not in text

    def test_deterministic(self):
        db = _users_and_logs_database()
        assert dump(db) == dump(db)

    def test_empty_tables_skipped(self):
        db = _users_database()
        db.create_table("Empty")
        assert "load --table Empty" not in dump(db)

    def test_defer_index_columns(self):
        db = _users_database()
        terms = db.create_table("Terms", TableVariant.PAT_KEY, key_type="ShortText")
        terms.define_index_column("users_key", "Users", sources=["Users"])
        index_line = "column_create Terms users_key COLUMN_INDEX Users _key\n"

        default = dump(db)
        deferred = dump(db, defer_index_columns=True)
        assert default.index(index_line) < default.index("load --table Users")
        assert deferred.index(index_line) > deferred.index("load --table Users")
        assert deferred.endswith("]\n\n" + index_line)

    def test_missing_database(self):
        assert dump(None) is None

    def test_writes_to_output_stream(self):
        output = io.StringIO()
        assert dump(_users_database(), output=output) is None
        assert "load --table Users" in output.getvalue()


class TestPlugins:
    """Plugin registration lines."""

    def test_builtins_skipped(self):
        text = dump(_users_database())
        assert "register" not in text
        assert "TokenBigram" not in text

    def test_path_deduplicated(self):
        db = _users_database()
        path = f"{db.plugins_dir}/tokenizers/mecab.so"
        db.define_procedure("TokenMecabA", path=path)
        db.define_procedure("TokenMecabB", path=path)
        assert dump(db).count("register tokenizers/mecab\n") == 1

    def test_procedures_without_path_skipped(self):
        db = _users_database()
        db.define_procedure("user_defined")
        assert "register" not in dump(db)

    def test_plugin_name_stripping(self):
        config = DumpConfig(plugins_dir="/opt/plugins/", plugin_suffix=".so")
        dumper = DatabaseDumper(MemoryDatabase(), config)
        assert dumper.plugin_name("/opt/plugins/functions/vector.so") == "functions/vector"
        assert dumper.plugin_name("/elsewhere/custom.so") == "/elsewhere/custom"


class TestTableFilter:
    """Include and exclude lists select record dumps."""

    def test_include_filter(self):
        text = dump(_users_and_logs_database(), tables=["Users"], exclude_tables=[])
        assert "load --table Users" in text
        assert "load --table Logs" not in text
        # The schema is never filtered
        assert "table_create Logs" in text

    def test_exclude_wins(self):
        text = dump(_users_and_logs_database(), tables=["Users"], exclude_tables=["Users"])
        assert "load --table" not in text

    def test_patterns(self):
        db = _users_and_logs_database()
        text = dump(db, tables=[re.compile(r"^Us")])
        assert "load --table Users" in text
        assert "load --table Logs" not in text

        text = dump(db, exclude_tables=["Users", re.compile("og")])
        assert "load --table" not in text

    def test_patterns_from_config(self):
        config = DumpConfig(exclude_table_patterns=["^Lo"])
        text = dump(_users_and_logs_database(), config)
        assert "load --table Logs" not in text
        assert "load --table Users" in text

    def test_is_target_table(self):
        db = _users_and_logs_database()
        dumper = DatabaseDumper(db, exclude_tables=["Logs"])
        assert dumper.is_target_table(db["Users"]) is True
        assert dumper.is_target_table(db["Logs"]) is False


class TestOptions:
    """Config and keyword overrides."""

    def test_keyword_overrides_config(self):
        config = DumpConfig(dump_plugins=False, tables=["Logs"])
        dumper = DatabaseDumper(_users_and_logs_database(), config, tables=["Users"])
        text = dumper.dump()
        assert "load --table Users" in text
        assert "load --table Logs" not in text

    def test_invalid_override(self):
        with pytest.raises(ValueError):
            DatabaseDumper(_users_database(), max_resolve_depth=0)

    def test_order_by(self):
        db = _users_database()
        db["Users"].add("aaron")
        text = dump(db, order_by="_key")
        assert text.index('"aaron"') < text.index('"alice"')

    def test_error_output(self):
        db = _users_database()
        users = db["Users"]
        users.define_column("name", "ShortText")
        users.column("name").set_value(users.add("bob").id, b"b\xffob")

        errors = io.StringIO()
        dump(db, error_output=errors)
        assert errors.getvalue().startswith("warning: ignore invalid encoding character: <Users[")
