"""Replay and validation of command syntax dumps.

``restore_database()`` replays ``register``, ``table_create``,
``column_create`` and ``load`` commands into a store through the
``Database`` protocol.  ``validate_dump()`` checks a dump's structure
without a store.

Usage:
    from columnar_dump.adapters.memory import MemoryDatabase
    from columnar_dump.dump.restore import restore_database, validate_dump

    report = validate_dump(text)
    if report["errors"]:
        raise ValueError("Dump is invalid")

    database = MemoryDatabase()
    summary = restore_database(database, text)
    # {"plugins": 0, "tables": 2, "columns": 5, "records": {"Users": 3}}
"""

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from columnar_dump.adapters.base import Database, ObjectType, TableVariant

TABLE_VARIANTS = {
    "TABLE_NO_KEY": TableVariant.NO_KEY,
    "TABLE_HASH_KEY": TableVariant.HASH_KEY,
    "TABLE_PAT_KEY": TableVariant.PAT_KEY,
}
TABLE_FLAGS = set(TABLE_VARIANTS) | {"KEY_NORMALIZE", "KEY_WITH_SIS"}
COLUMN_FLAGS = {
    "COLUMN_SCALAR",
    "COLUMN_VECTOR",
    "COLUMN_INDEX",
    "WITH_SECTION",
    "WITH_WEIGHT",
    "WITH_POSITION",
}
COMMANDS = {"register", "table_create", "column_create", "load"}


class RestoreError(ValueError):
    """Raised when a dump cannot be replayed."""

    def __init__(self, line_number: int, message: str):
        super().__init__(f"line {line_number}: {message}")
        self.line_number = line_number


def _read_source(source: str | Path) -> str:
    if isinstance(source, Path):
        return source.read_text(encoding="utf-8")
    return source


def _commands(text: str) -> Iterator[tuple[int, list[str], Any]]:
    """Yield ``(line_number, tokens, load_rows)`` per command.

    ``load_rows`` is the decoded JSON array for ``load`` commands and
    ``None`` otherwise.
    """
    lines = text.splitlines()
    index = 0
    while index < len(lines):
        line_number = index + 1
        tokens = lines[index].split()
        index += 1
        if not tokens:
            continue
        if tokens[0] != "load":
            yield line_number, tokens, None
            continue

        body = []
        while index < len(lines):
            body.append(lines[index])
            index += 1
            if lines[index - 1].strip() == "]":
                break
        try:
            rows = json.loads("\n".join(body))
        except json.JSONDecodeError as e:
            raise RestoreError(line_number, f"invalid load payload: {e}") from None
        yield line_number, tokens, rows


def _options(tokens: list[str]) -> dict[str, str]:
    options = {}
    for name, value in zip(tokens[::2], tokens[1::2]):
        if name.startswith("--"):
            options[name[2:]] = value
    return options


def _flags(token: str) -> set[str]:
    return set(token.split("|"))


# ============================================================================
# Restore
# ============================================================================


def restore_database(database: Database, source: str | Path) -> dict[str, Any]:
    """Replay a command syntax dump into ``database``.

    Args:
        database: Store implementing the ``Database`` protocol.
        source: Dump text, or a ``Path`` to a dump file.

    Returns:
        Summary dict with ``plugins``, ``tables`` and ``columns`` counts
        and per-table ``records`` counts.

    Raises:
        RestoreError: If a command is unknown, malformed, or refers to a
            missing object.

    Example:
        summary = restore_database(MemoryDatabase(), Path("backup.dump"))
        print(summary["records"])
    """
    summary: dict[str, Any] = {"plugins": 0, "tables": 0, "columns": 0, "records": {}}

    for line_number, tokens, rows in _commands(_read_source(source)):
        command = tokens[0]
        try:
            if command == "register":
                database.register_plugin(tokens[1])
                summary["plugins"] += 1
            elif command == "table_create":
                _table_create(database, tokens)
                summary["tables"] += 1
            elif command == "column_create":
                _column_create(database, tokens)
                summary["columns"] += 1
            elif command == "load":
                table_name = _options(tokens[1:]).get("table")
                count = _load(database, table_name, rows)
                summary["records"][table_name] = summary["records"].get(table_name, 0) + count
            else:
                raise RestoreError(line_number, f"unknown command: {command}")
        except RestoreError:
            raise
        except (IndexError, KeyError, ValueError, TypeError) as e:
            raise RestoreError(line_number, f"{command} failed: {e}") from e

    return summary


def _table_create(database: Database, tokens: list[str]) -> None:
    name = tokens[1]
    flags = _flags(tokens[2]) if len(tokens) > 2 and not tokens[2].startswith("--") else set()
    variant = TableVariant.NO_KEY
    for flag, table_variant in TABLE_VARIANTS.items():
        if flag in flags:
            variant = table_variant
    options = _options(tokens[3:] if flags else tokens[2:])
    database.create_table(
        name,
        variant,
        key_type=options.get("key_type"),
        value_type=options.get("value_type"),
        normalize_key="KEY_NORMALIZE" in flags,
        key_with_sis="KEY_WITH_SIS" in flags,
        default_tokenizer=options.get("default_tokenizer"),
    )


def _column_create(database: Database, tokens: list[str]) -> None:
    table_name, name, flag_token, type_name = tokens[1:5]
    table = database.resolve(table_name)
    if table is None or table.object_type is not ObjectType.TABLE:
        raise KeyError(f"unknown table: {table_name}")
    flags = _flags(flag_token)

    if "COLUMN_INDEX" not in flags:
        table.define_column(name, type_name, vector="COLUMN_VECTOR" in flags)
        return

    target = database.resolve(type_name)
    if target is None:
        raise KeyError(f"unknown table: {type_name}")
    sources = []
    if len(tokens) > 5:
        for source_name in tokens[5].split(","):
            source = target if source_name == "_key" else target.column(source_name)
            if source is None:
                raise KeyError(f"unknown source: {type_name}.{source_name}")
            sources.append(source)
    table.define_index_column(
        name,
        target,
        sources=sources,
        with_section="WITH_SECTION" in flags,
        with_weight="WITH_WEIGHT" in flags,
        with_position="WITH_POSITION" in flags,
    )


def _load(database: Database, table_name: str | None, rows: Any) -> int:
    table = database.resolve(table_name) if table_name else None
    if table is None or table.object_type is not ObjectType.TABLE:
        raise KeyError(f"unknown table: {table_name}")
    if not rows:
        return 0

    column_names, *records = rows
    id_column = "_key" if table.support_key else "_id"
    if id_column not in column_names:
        raise ValueError(f"load for {table_name} has no {id_column} column")
    id_position = column_names.index(id_column)
    columns = {
        position: table.column(column_name)
        for position, column_name in enumerate(column_names)
        if position != id_position
    }
    for position, column in columns.items():
        if column is None:
            raise KeyError(f"unknown column: {table_name}.{column_names[position]}")

    for values in records:
        record = table.record_for(values[id_position])
        for position, column in columns.items():
            column.set_value(record.id, values[position])
    return len(records)


# ============================================================================
# Validation
# ============================================================================


def validate_dump(source: str | Path) -> dict:
    """Validate a command syntax dump's structure.

    Checks that every command is known and well-formed, flags are
    recognized, ``load`` payloads are JSON arrays with one header row of
    column names, and every row matches the header length.  Columns and
    loads for tables not created in the dump are warnings only (they may
    already exist in the target database).

    This function needs no database.

    Args:
        source: Dump text, or a ``Path`` to a dump file.

    Returns:
        Dict with ``valid`` (bool), ``errors`` (list[str]),
        and ``warnings`` (list[str]).

    Example:
        report = validate_dump(Path("backup.dump"))
        if report["errors"]:
            raise ValueError("Dump is invalid")
    """
    errors: list[str] = []
    warnings: list[str] = []

    try:
        text = _read_source(source)
    except FileNotFoundError:
        errors.append(f"Dump file not found: {source}")
        return {"valid": False, "errors": errors, "warnings": warnings}

    tables: set[str] = set()
    try:
        for line_number, tokens, rows in _commands(text):
            command = tokens[0]
            where = f"line {line_number}"
            if command not in COMMANDS:
                errors.append(f"{where}: unknown command: {command}")
            elif command == "register":
                if len(tokens) != 2:
                    errors.append(f"{where}: register takes one plugin name")
            elif command == "table_create":
                if len(tokens) < 3:
                    errors.append(f"{where}: table_create needs a name and flags")
                    continue
                unknown = _flags(tokens[2]) - TABLE_FLAGS
                if unknown:
                    errors.append(f"{where}: unknown table flags: {', '.join(sorted(unknown))}")
                tables.add(tokens[1])
            elif command == "column_create":
                if len(tokens) < 5:
                    errors.append(f"{where}: column_create needs table, name, flags and type")
                    continue
                unknown = _flags(tokens[3]) - COLUMN_FLAGS
                if unknown:
                    errors.append(f"{where}: unknown column flags: {', '.join(sorted(unknown))}")
                if tokens[1] not in tables:
                    warnings.append(f"{where}: column for table not created in dump: {tokens[1]}")
            else:
                _validate_load(where, tokens, rows, tables, errors, warnings)
    except RestoreError as e:
        errors.append(str(e))

    valid = len(errors) == 0
    return {"valid": valid, "errors": errors, "warnings": warnings}


def _validate_load(
    where: str,
    tokens: list[str],
    rows: Any,
    tables: set[str],
    errors: list[str],
    warnings: list[str],
) -> None:
    table_name = _options(tokens[1:]).get("table")
    if table_name is None:
        errors.append(f"{where}: load without --table")
        return
    if table_name not in tables:
        warnings.append(f"{where}: load into table not created in dump: {table_name}")
    if not isinstance(rows, list) or not rows:
        errors.append(f"{where}: load payload must be a non-empty JSON array")
        return

    header = rows[0]
    if not isinstance(header, list) or not all(isinstance(name, str) for name in header):
        errors.append(f"{where}: first load row must list column names")
        return
    for offset, values in enumerate(rows[1:], 1):
        if not isinstance(values, list) or len(values) != len(header):
            errors.append(
                f"{where}: {table_name} record {offset} does not match "
                f"the {len(header)} columns"
            )
