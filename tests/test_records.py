"""Tests for the record dumper.

Covers the ``load`` payload layout, column selection, recursive value
resolution, encoding repair diagnostics, and the resolution depth bound.
"""

import io
import logging

import pytest

from columnar_dump.adapters.base import Record, TableVariant
from columnar_dump.adapters.memory import MemoryDatabase
from columnar_dump.dump.records import MalformedValueError, TableDumper


def _users_database() -> MemoryDatabase:
    """Users with age, name and a friends reference vector."""
    db = MemoryDatabase()
    users = db.create_table("Users", TableVariant.HASH_KEY, key_type="ShortText")
    users.define_column("age", "Int32")
    users.define_column("name", "ShortText")
    users.define_column("friends", "Users", vector=True)
    return db


class TestPayload:
    """The ``load`` command layout."""

    def test_load_payload(self):
        db = MemoryDatabase()
        users = db.create_table("Users", TableVariant.HASH_KEY, key_type="ShortText")
        age = users.define_column("age", "Int32")
        age.set_value(users.add("alice").id, 29)
        age.set_value(users.add("bob").id, 31)

        assert TableDumper(users).dump() == (
            "load --table Users\n"
            "[\n"
            '["_key","age"],\n'
            '["alice",29],\n'
            '["bob",31]\n'
            "]\n"
        )

    def test_empty_table(self):
        db = _users_database()
        assert TableDumper(db["Users"]).dump() == (
            "load --table Users\n[\n" '["_key","age","friends","name"]' "\n]\n"
        )

    def test_writes_to_output_stream(self):
        db = _users_database()
        db["Users"].add("alice")
        output = io.StringIO()
        assert TableDumper(db["Users"], output=output).dump() is None
        assert output.getvalue().startswith("load --table Users\n")

    def test_non_ascii_kept(self):
        db = _users_database()
        users = db["Users"]
        users.column("name").set_value(users.add("alice").id, "アリス")
        assert '"アリス"' in TableDumper(users).dump()

    def test_order_by_key(self):
        db = _users_database()
        users = db["Users"]
        users.add("carol")
        users.add("alice")
        text = TableDumper(users, order_by="_key").dump()
        assert text.index('"alice"') < text.index('"carol"')


class TestAvailableColumns:
    """Key or id, value, then data columns by local name."""

    def test_keyed_table(self):
        db = _users_database()
        names = [c.local_name for c in TableDumper(db["Users"]).available_columns()]
        assert names == ["_key", "age", "friends", "name"]

    def test_no_key_table_with_value(self):
        db = MemoryDatabase()
        logs = db.create_table("Logs", value_type="Int32")
        logs.define_column("message", "Text")
        names = [c.local_name for c in TableDumper(logs).available_columns()]
        assert names == ["_id", "_value", "message"]

    def test_index_columns_excluded(self):
        db = _users_database()
        terms = db.create_table("Terms", TableVariant.PAT_KEY, key_type="ShortText")
        terms.define_column("weight", "Int32")
        terms.define_index_column("users_name", "Users", sources=["Users.name"])
        names = [c.local_name for c in TableDumper(terms).available_columns()]
        assert names == ["_key", "weight"]


class TestResolveValue:
    """Recursive value resolution."""

    def test_vector_of_three_references(self):
        db = _users_database()
        users = db["Users"]
        alice = users.add("alice")
        friends = users.column("friends")
        friends.set_value(alice.id, ["bob", "carol", "dave"])

        dumper = TableDumper(users)
        value = dumper.resolve_value(alice, friends, friends.value(alice.id))
        assert value == ["bob", "carol", "dave"]

    def test_reference_to_no_key_table_resolves_to_id(self):
        db = MemoryDatabase()
        logs = db.create_table("Logs")
        users = db.create_table("Users", TableVariant.HASH_KEY, key_type="ShortText")
        last_log = users.define_column("last_log", "Logs")
        alice = users.add("alice")
        last_log.set_value(alice.id, 3)

        value = TableDumper(users).resolve_value(alice, last_log, last_log.value(alice.id))
        assert value == 3
        assert len(logs) == 3

    def test_reference_key_resolved_again(self):
        """A key that is itself a record resolves to that record's key."""
        db = _users_database()
        aliases = db.create_table("Aliases", TableVariant.HASH_KEY, key_type="Users")
        aliases.add("alice")
        accounts = db.create_table("Accounts")
        alias = accounts.define_column("alias", "Aliases")
        record = accounts.add()
        alias.set_value(record.id, "alice")

        value = TableDumper(accounts).resolve_value(record, alias, alias.value(record.id))
        assert value == "alice"

    def test_empty_reference(self):
        db = MemoryDatabase()
        users = db.create_table("Users", TableVariant.HASH_KEY, key_type="ShortText")
        best_friend = users.define_column("best_friend", "Users")
        alice = users.add("alice")
        text = TableDumper(users).dump()
        assert '["alice",""]' in text
        assert best_friend.value(alice.id) is None

    def test_time_as_seconds(self):
        db = MemoryDatabase()
        events = db.create_table("Events")
        at = events.define_column("at", "Time")
        record = events.add()
        at.set_value(record.id, 1.5)
        assert TableDumper(events).resolve_value(record, at, at.value(record.id)) == 1.5

    def test_geo_points_as_literals(self):
        db = MemoryDatabase()
        places = db.create_table("Places", TableVariant.HASH_KEY, key_type="ShortText")
        location = places.define_column("location", "WGS84GeoPoint")
        route = places.define_column("route", "WGS84GeoPoint", vector=True)
        tokyo = places.add("tokyo")
        location.set_value(tokyo.id, (35681396, 139766049))
        route.set_value(tokyo.id, [(1, 2), "3x4"])

        assert TableDumper(places).dump() == (
            "load --table Places\n"
            "[\n"
            '["_key","location","route"],\n'
            '["tokyo","35681396x139766049",["1x2","3x4"]]\n'
            "]\n"
        )

    def test_scalars_unchanged(self):
        db = _users_database()
        users = db["Users"]
        alice = users.add("alice")
        dumper = TableDumper(users)
        age = users.column("age")
        assert dumper.resolve_value(alice, age, 29) == 29
        assert dumper.resolve_value(alice, age, 2.5) == 2.5
        assert dumper.resolve_value(alice, age, True) is True

    def test_depth_bound(self):
        db = _users_database()
        users = db["Users"]
        alice = users.add("alice")
        dumper = TableDumper(users, max_resolve_depth=1)
        with pytest.raises(MalformedValueError, match="Users"):
            dumper.resolve_value(alice, users.column("name"), [[["x"]]])

    def test_record_handle_passthrough(self):
        db = _users_database()
        users = db["Users"]
        bob = users.add("bob")
        dumper = TableDumper(users)
        assert dumper.resolve_value(bob, users.column("friends"), [Record(users, bob.id)]) == ["bob"]


class TestEncodingRepair:
    """Invalid characters are dropped and reported, never raised."""

    def test_invalid_bytes_dropped_with_one_diagnostic(self):
        db = _users_database()
        users = db["Users"]
        alice = users.add("alice")
        name = users.column("name")
        name.set_value(alice.id, b"ab\xe3\x81cd")

        errors = io.StringIO()
        value = TableDumper(users, error_output=errors).resolve_value(
            alice, name, name.value(alice.id)
        )

        assert value == "abcd"
        assert errors.getvalue() == (
            "warning: ignore invalid encoding character: "
            f"<Users[{alice.id}].name>: <0xe3 0x81>: before: <ab>\n"
        )

    def test_escaped_byte_in_text(self):
        db = _users_database()
        users = db["Users"]
        alice = users.add("alice")
        name = users.column("name")
        raw = b"caf\xe9!".decode("utf-8", "surrogateescape")

        errors = io.StringIO()
        value = TableDumper(users, error_output=errors).resolve_value(alice, name, raw)

        assert value == "caf!"
        assert "<0xe9>: before: <caf>" in errors.getvalue()
        assert errors.getvalue().count("\n") == 1

    def test_valid_text_untouched(self):
        db = _users_database()
        users = db["Users"]
        alice = users.add("alice")
        errors = io.StringIO()
        dumper = TableDumper(users, error_output=errors)
        assert dumper.resolve_value(alice, users.column("name"), "日本語".encode()) == "日本語"
        assert errors.getvalue() == ""

    def test_diagnostic_logged_without_error_stream(self, caplog):
        db = _users_database()
        users = db["Users"]
        alice = users.add("alice")
        name = users.column("name")

        with caplog.at_level(logging.WARNING, logger="columnar_dump.dump.records"):
            value = TableDumper(users).resolve_value(alice, name, b"a\xffb")

        assert value == "ab"
        assert len(caplog.records) == 1
        assert "<0xff>: before: <a>" in caplog.records[0].getMessage()

    def test_dump_continues_after_repair(self):
        db = _users_database()
        users = db["Users"]
        name = users.column("name")
        name.set_value(users.add("alice").id, b"al\xffice")
        name.set_value(users.add("bob").id, "bob")

        text = TableDumper(users, error_output=io.StringIO()).dump()
        assert '"alice"' in text
        assert '["bob","",[],"bob"]' in text
