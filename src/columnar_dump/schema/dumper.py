"""Schema dump in script or command syntax.

Runs a syntax renderer over a fresh introspection snapshot in three
passes: tables with their normal columns, then reference columns, then
index columns.  Reference and index columns may point at tables that
sort later, so they are only emitted once every table exists.

Usage:
    from columnar_dump.schema.dumper import SchemaDumper, dump_schema

    text = dump_schema(database)                     # script syntax
    text = dump_schema(database, syntax="command")   # command syntax

    dumper = SchemaDumper(database, syntax="command", output=stream)
    dumper.dump_tables()
"""

import io
import logging
from collections.abc import Callable
from typing import TextIO

from columnar_dump.adapters.base import Database
from columnar_dump.schema.introspector import SchemaIntrospector
from columnar_dump.schema.syntax import BaseSyntax, create_syntax

logger = logging.getLogger(__name__)


class SchemaDumper:
    """Dumps a database schema.

    Each public method runs with a new renderer, so the blank-line
    separator state starts over for every pass.

    Args:
        database: Store to dump.  ``None`` makes every dump return ``None``.
        syntax: ``"script"`` or ``"command"``.
        output: Stream to write to.  When ``None`` the dump is returned as
            a string instead.
    """

    def __init__(
        self,
        database: Database | None,
        syntax: str = "script",
        output: TextIO | None = None,
    ):
        self._database = database
        self._syntax = syntax
        self._output = output

    def dump(self) -> str | None:
        return self._run(lambda syntax: syntax.dump())

    def dump_tables(self) -> str | None:
        return self._run(lambda syntax: syntax.dump_tables())

    def dump_reference_columns(self) -> str | None:
        return self._run(lambda syntax: syntax.dump_reference_columns())

    def dump_index_columns(self) -> str | None:
        return self._run(lambda syntax: syntax.dump_index_columns())

    def _run(self, render: Callable[[BaseSyntax], None]) -> str | None:
        if self._database is None:
            logger.debug("No database to dump schema from")
            return None

        output = self._output if self._output is not None else io.StringIO()
        schema = SchemaIntrospector(self._database).introspect()
        logger.debug(
            "Rendering %s syntax for %d tables", self._syntax, len(schema.tables)
        )
        render(create_syntax(self._syntax, schema, output))

        if self._output is not None:
            return None
        return output.getvalue()


def dump_schema(
    database: Database | None,
    syntax: str = "script",
    output: TextIO | None = None,
) -> str | None:
    """Dump the full schema (all three passes).

    Args:
        database: Store to dump.
        syntax: ``"script"`` (default) or ``"command"``.
        output: Optional stream; when omitted the text is returned.

    Returns:
        Dump text, or ``None`` when writing to ``output`` or when there is
        no database.

    Raises:
        UnsupportedColumnError: Script syntax met a column type it cannot
            express.

    Example:
        >>> print(dump_schema(db, syntax="command"))
        table_create Users TABLE_HASH_KEY --key_type ShortText
        column_create Users age COLUMN_SCALAR Int32
    """
    return SchemaDumper(database, syntax=syntax, output=output).dump()
