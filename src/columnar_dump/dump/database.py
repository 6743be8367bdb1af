"""Whole-database dump.

Writes, in order: plugin registrations, the schema in command syntax
(tables, reference columns, index columns), and a ``load`` payload for
every non-empty table that passes the table filter.  The output replays
through the store's command interpreter, or ``restore_database()``.

Usage:
    from columnar_dump.dump.database import DatabaseDumper, dump
    from columnar_dump.config.models import DumpConfig

    text = dump(database)
    text = dump(database, tables=["Users"], exclude_tables=["Logs"])

    config = DumpConfig(dump_schema=False, order_by="_key")
    DatabaseDumper(database, config, output=sys.stdout).dump()
"""

import io
import logging
import re
from typing import Any, TextIO

from columnar_dump.adapters.base import Database, ObjectType, Table
from columnar_dump.config.models import DumpConfig
from columnar_dump.dump.records import TableDumper
from columnar_dump.schema.dumper import SchemaDumper
from columnar_dump.schema.introspector import SchemaIntrospector

logger = logging.getLogger(__name__)


def _split_matchers(matchers: list[str | re.Pattern]) -> tuple[list[str], list[re.Pattern]]:
    names = [m for m in matchers if isinstance(m, str)]
    patterns = [m for m in matchers if isinstance(m, re.Pattern)]
    return names, patterns


class DatabaseDumper:
    """Dumps plugins, schema and records of a database.

    Args:
        database: Store to dump.  ``None`` makes ``dump()`` return ``None``.
        config: Dump options (defaults to ``DumpConfig()``).
        output: Stream to write to.  When ``None`` the dump is returned.
        error_output: Stream for invalid-encoding warnings.
        **options: ``DumpConfig`` fields overriding ``config``.  ``tables``
            and ``exclude_tables`` also accept compiled ``re.Pattern``
            objects next to plain names.
    """

    def __init__(
        self,
        database: Database | None,
        config: DumpConfig | None = None,
        output: TextIO | None = None,
        error_output: TextIO | None = None,
        **options: Any,
    ):
        config = config or DumpConfig()
        for key, extra_key in (("tables", "table_patterns"),
                               ("exclude_tables", "exclude_table_patterns")):
            if key in options:
                names, patterns = _split_matchers(options.pop(key) or [])
                options[key] = names
                options[extra_key] = getattr(config, extra_key) + patterns
        if options:
            config = DumpConfig.model_validate({**config.model_dump(), **options})

        self._database = database
        self._config = config
        self._output = output
        self._error_output = error_output

    def dump(self) -> str | None:
        """Write the dump.

        Returns:
            Dump text when no output stream was given, otherwise ``None``.
            ``None`` as well when there is no database.
        """
        if self._database is None:
            logger.debug("No database to dump")
            return None

        output = self._output if self._output is not None else io.StringIO()
        config = self._config

        schema_dumper = None
        if config.dump_schema:
            # load payloads are command interpreter input; keep the schema in kind
            schema_dumper = SchemaDumper(self._database, syntax="command", output=output)

        if config.dump_plugins:
            self._dump_plugins(output)
        if schema_dumper is not None:
            schema_dumper.dump_tables()
            output.write("\n")
            schema_dumper.dump_reference_columns()
            if not config.defer_index_columns:
                output.write("\n")
                schema_dumper.dump_index_columns()
        if config.dump_tables:
            self._dump_tables(output)
        if schema_dumper is not None and config.defer_index_columns:
            output.write("\n")
            schema_dumper.dump_index_columns()

        if self._output is not None:
            return None
        return output.getvalue()

    def is_target_table(self, table: Table) -> bool:
        """Apply the include/exclude filter; an exclude match always wins."""
        config = self._config
        if self._matches(config.exclude_tables, config.exclude_table_patterns, table.name, False):
            return False
        return self._matches(config.tables, config.table_patterns, table.name, True)

    def plugin_name(self, path: str) -> str:
        """Strip the plugins directory and the plugin suffix from ``path``."""
        plugins_dir = re.escape(self._config.plugins_dir.rstrip("/"))
        suffix = re.escape(self._config.plugin_suffix)
        return re.sub(rf"\A{plugins_dir}/|{suffix}\Z", "", path)

    def _dump_plugins(self, output: TextIO) -> None:
        plugin_paths: set[str] = set()
        for obj in self._database.objects(order_by="id", ignore_missing=True):
            if obj.object_type is not ObjectType.PROCEDURE:
                continue
            if obj.builtin or obj.path is None:
                continue
            if obj.path in plugin_paths:
                continue
            plugin_paths.add(obj.path)
            output.write(f"register {self.plugin_name(obj.path)}\n")
        if plugin_paths:
            output.write("\n")
        logger.debug("Dumped %d plugins", len(plugin_paths))

    def _dump_tables(self, output: TextIO) -> None:
        first_table = True
        for table in SchemaIntrospector(self._database).tables():
            if len(table) == 0:
                continue
            if not self.is_target_table(table):
                logger.debug("Skipping records of %s (filtered)", table.name)
                continue
            if not first_table or self._config.dump_schema:
                output.write("\n")
            first_table = False
            TableDumper(
                table,
                output=output,
                error_output=self._error_output,
                order_by=self._config.order_by,
                max_resolve_depth=self._config.max_resolve_depth,
            ).dump()

    @staticmethod
    def _matches(
        names: list[str], patterns: list[re.Pattern], table_name: str, default: bool
    ) -> bool:
        if not names and not patterns:
            return default
        return table_name in names or any(p.search(table_name) for p in patterns)


def dump(
    database: Database | None,
    config: DumpConfig | None = None,
    output: TextIO | None = None,
    error_output: TextIO | None = None,
    **options: Any,
) -> str | None:
    """Dump a whole database.

    Args:
        database: Store to dump.
        config: Dump options.
        output: Optional stream; when omitted the text is returned.
        error_output: Optional stream for invalid-encoding warnings.
        **options: ``DumpConfig`` field overrides.

    Returns:
        Dump text, or ``None`` when writing to ``output`` or when there is
        no database.

    Example:
        >>> print(dump(db, dump_plugins=False))
        table_create Users TABLE_HASH_KEY --key_type ShortText
        column_create Users age COLUMN_SCALAR Int32
        ...
    """
    return DatabaseDumper(
        database, config, output=output, error_output=error_output, **options
    ).dump()
