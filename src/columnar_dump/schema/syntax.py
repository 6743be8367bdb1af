"""Schema syntax renderers.

Two renderers write table and column definitions from a
``DatabaseSchema`` snapshot to a text stream:

- ``ScriptSyntax``: Python builder calls replayable through the schema
  DSL (``columnar_dump.schema.definition``).
- ``CommandSyntax``: ``table_create`` / ``column_create`` command lines
  replayable by the store's command interpreter.

Both implement the same ``BaseSyntax`` operations; the renderer is picked
once per dump with ``create_syntax()``.  Output is append-only.

Usage:
    from columnar_dump.schema.syntax import create_syntax

    syntax = create_syntax("command", schema, output)
    syntax.dump_tables()
    syntax.dump_reference_columns()
    syntax.dump_index_columns()
"""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TextIO

from columnar_dump.adapters.base import TableVariant
from columnar_dump.schema.introspector import group_columns
from columnar_dump.schema.models import (
    FRIENDLY_TYPE_NAMES,
    ColumnKind,
    ColumnSchema,
    DatabaseSchema,
    TableSchema,
)


class UnsupportedColumnError(ValueError):
    """Raised when a column's range type has no script syntax method."""

    def __init__(self, column: ColumnSchema):
        super().__init__(f"unsupported column: {column.name} ({column.range})")
        self.column = column


class BaseSyntax:
    """Renders the three schema passes; subclasses supply the text.

    Args:
        schema: Snapshot to render.
        output: Text stream written to.
    """

    def __init__(self, schema: DatabaseSchema, output: TextIO):
        self._schema = schema
        self._output = output
        self._table_defined = False

    def dump(self) -> None:
        """Run all three passes."""
        self.dump_tables()
        self.dump_reference_columns()
        self.dump_index_columns()

    def dump_tables(self) -> None:
        """Pass 1: every table with its normal columns."""
        for table in self._schema.tables.values():
            self.create_table(table)

    def dump_reference_columns(self) -> None:
        """Pass 2: reference columns, once every table exists."""
        self._dump_grouped_columns(ColumnKind.REFERENCE, self.define_reference_column)

    def dump_index_columns(self) -> None:
        """Pass 3: index columns, once every source column exists."""
        self._dump_grouped_columns(ColumnKind.INDEX, self.define_index_column)

    def create_table(self, table: TableSchema) -> None:
        if self._table_defined:
            self.table_separator()
        self.create_table_header(table)
        for column in table.columns.values():
            if column.kind is ColumnKind.NORMAL:
                self.define_column(table, column)
        self.create_table_footer(table)
        self._table_defined = True

    @contextmanager
    def change_table(self, table: TableSchema) -> Iterator[TableSchema]:
        if self._table_defined:
            self.table_separator()
        self.change_table_header(table)
        yield table
        self.change_table_footer(table)
        self._table_defined = True

    def table_separator(self) -> None:
        self.write("\n")

    def write(self, content: str) -> None:
        self._output.write(content)

    def _dump_grouped_columns(self, kind: ColumnKind, define) -> None:
        grouped = group_columns(self._schema.columns_of_kind(kind))
        for table_name, columns in grouped.items():
            table = self._schema.tables[table_name]
            with self.change_table(table):
                for column in columns:
                    define(table, column)

    # ------------------------------------------------------------------
    # Renderer operations
    # ------------------------------------------------------------------

    def create_table_header(self, table: TableSchema) -> None:
        raise NotImplementedError

    def create_table_footer(self, table: TableSchema) -> None:
        raise NotImplementedError

    def change_table_header(self, table: TableSchema) -> None:
        raise NotImplementedError

    def change_table_footer(self, table: TableSchema) -> None:
        raise NotImplementedError

    def define_column(self, table: TableSchema, column: ColumnSchema) -> None:
        raise NotImplementedError

    def define_reference_column(self, table: TableSchema, column: ColumnSchema) -> None:
        raise NotImplementedError

    def define_index_column(self, table: TableSchema, column: ColumnSchema) -> None:
        raise NotImplementedError


# ============================================================================
# Script syntax
# ============================================================================


def _literal(value: Any) -> str:
    """Python literal for a string, bool or list of strings."""
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, list):
        return "[" + ", ".join(_literal(item) for item in value) + "]"
    return json.dumps(value)


class ScriptSyntax(BaseSyntax):
    """Python builder calls for the schema DSL.

    Example output:
        with schema.create_table("Users",
                                 type="hash",
                                 key_type="ShortText",
                                 force=True) as table:
            table.integer32("age")
    """

    INDENT = "    "

    def __init__(self, schema: DatabaseSchema, output: TextIO):
        super().__init__(schema, output)
        self._block_lines = 0

    def create_table_header(self, table: TableSchema) -> None:
        parameters = []
        if table.variant is not TableVariant.NO_KEY:
            parameters.append(f"type={_literal(table.variant.value)}")
            if table.key_type:
                parameters.append(f"key_type={_literal(table.key_type)}")
                if table.normalize_key:
                    parameters.append("key_normalize=True")
                if table.key_with_sis and table.variant is TableVariant.PAT_KEY:
                    parameters.append("key_with_sis=True")
            if table.default_tokenizer:
                parameters.append(f"default_tokenizer={_literal(table.default_tokenizer)}")
        if table.value_type:
            parameters.append(f"value_type={_literal(table.value_type)}")
        parameters.append("force=True")

        opening = "with schema.create_table("
        separator = ",\n" + " " * len(opening)
        arguments = separator.join([_literal(table.name)] + parameters)
        self.write(f"{opening}{arguments}) as table:\n")
        self._block_lines = 0

    def create_table_footer(self, table: TableSchema) -> None:
        if self._block_lines == 0:
            self.write(f"{self.INDENT}pass\n")

    def change_table_header(self, table: TableSchema) -> None:
        self.write(f"with schema.change_table({_literal(table.name)}) as table:\n")
        self._block_lines = 0

    def change_table_footer(self, table: TableSchema) -> None:
        if self._block_lines == 0:
            self.write(f"{self.INDENT}pass\n")

    def define_column(self, table: TableSchema, column: ColumnSchema) -> None:
        method = self.column_method(column)
        arguments = [_literal(column.local_name)] + self._column_options(column)
        self._write_call(method, arguments)

    def define_reference_column(self, table: TableSchema, column: ColumnSchema) -> None:
        arguments = [
            _literal(column.local_name),
            _literal(column.range),
        ] + self._column_options(column)
        self._write_call("reference", arguments)

    def define_index_column(self, table: TableSchema, column: ColumnSchema) -> None:
        sources = column.sources[0] if len(column.sources) == 1 else column.sources
        arguments = [
            _literal(column.range),
            _literal(sources),
            f"name={_literal(column.local_name)}",
        ]
        for flag in ("with_section", "with_weight", "with_position"):
            if getattr(column, flag):
                arguments.append(f"{flag}=True")
        self._write_call("index", arguments)

    def column_method(self, column: ColumnSchema) -> str:
        """Friendly method name for a normal column's range type.

        Raises:
            UnsupportedColumnError: If the range has no friendly name.
        """
        try:
            return FRIENDLY_TYPE_NAMES[column.range]
        except KeyError:
            raise UnsupportedColumnError(column) from None

    def _column_options(self, column: ColumnSchema) -> list[str]:
        if column.vector:
            return ['type="vector"']
        return []

    def _write_call(self, method: str, arguments: list[str]) -> None:
        self.write(f"{self.INDENT}table.{method}({', '.join(arguments)})\n")
        self._block_lines += 1


# ============================================================================
# Command syntax
# ============================================================================


class CommandSyntax(BaseSyntax):
    """``table_create`` / ``column_create`` lines.

    Example output:
        table_create Users TABLE_HASH_KEY --key_type ShortText
        column_create Users age COLUMN_SCALAR Int32
    """

    TABLE_FLAGS = {
        TableVariant.NO_KEY: "TABLE_NO_KEY",
        TableVariant.HASH_KEY: "TABLE_HASH_KEY",
        TableVariant.PAT_KEY: "TABLE_PAT_KEY",
    }

    def create_table_header(self, table: TableSchema) -> None:
        flags = [self.TABLE_FLAGS[table.variant]]
        if table.key_type:
            if table.normalize_key:
                flags.append("KEY_NORMALIZE")
            if table.variant is TableVariant.PAT_KEY and table.key_with_sis:
                flags.append("KEY_WITH_SIS")

        parameters = ["|".join(flags)]
        if table.key_type:
            parameters.append(f"--key_type {table.key_type}")
        if table.value_type:
            parameters.append(f"--value_type {table.value_type}")
        if table.key_type and table.default_tokenizer:
            parameters.append(f"--default_tokenizer {table.default_tokenizer}")
        self.write(f"table_create {table.name} {' '.join(parameters)}\n")

    def create_table_footer(self, table: TableSchema) -> None:
        pass

    def change_table_header(self, table: TableSchema) -> None:
        pass

    def change_table_footer(self, table: TableSchema) -> None:
        pass

    def define_column(self, table: TableSchema, column: ColumnSchema) -> None:
        flag = "COLUMN_VECTOR" if column.vector else "COLUMN_SCALAR"
        self.write(f"column_create {table.name} {column.local_name} {flag} {column.range}\n")

    def define_reference_column(self, table: TableSchema, column: ColumnSchema) -> None:
        self.define_column(table, column)

    def define_index_column(self, table: TableSchema, column: ColumnSchema) -> None:
        flags = ["COLUMN_INDEX"]
        if column.with_section:
            flags.append("WITH_SECTION")
        if column.with_weight:
            flags.append("WITH_WEIGHT")
        if column.with_position:
            flags.append("WITH_POSITION")
        parameters = [table.name, column.local_name, "|".join(flags), column.range]
        if column.sources:
            parameters.append(",".join(column.sources))
        self.write(f"column_create {' '.join(parameters)}\n")


SYNTAXES: dict[str, type[BaseSyntax]] = {
    "script": ScriptSyntax,
    "command": CommandSyntax,
}


def create_syntax(name: str, schema: DatabaseSchema, output: TextIO) -> BaseSyntax:
    """Create the renderer registered under ``name``.

    Raises:
        ValueError: If ``name`` is not a known syntax.
    """
    try:
        syntax_class = SYNTAXES[name]
    except KeyError:
        raise ValueError(
            f"unknown syntax: {name!r} (expected one of: {', '.join(SYNTAXES)})"
        ) from None
    return syntax_class(schema, output)
