"""CLI module for dump conversion and inspection.

Works on command syntax dumps: replays them into an in-memory store, then
re-dumps, validates, or summarizes them.

Usage:
    columnar-dump convert backup.dump --schema-only --syntax script
    columnar-dump convert backup.dump --table Users --order-by _key -o users.dump
    columnar-dump validate backup.dump
    columnar-dump tables backup.dump

Commands:
    convert   - Replay a dump and dump it again with new options
    validate  - Check a dump's structure without replaying it
    tables    - List the tables in a dump with record counts
"""

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from columnar_dump.adapters.base import ObjectType
from columnar_dump.adapters.memory import MemoryDatabase
from columnar_dump.config.loader import load_dump_config
from columnar_dump.config.models import DumpConfig
from columnar_dump.dump.database import dump
from columnar_dump.dump.records import MalformedValueError
from columnar_dump.dump.restore import RestoreError, restore_database, validate_dump
from columnar_dump.schema.dumper import dump_schema
from columnar_dump.schema.introspector import SchemaIntrospector, classify
from columnar_dump.schema.syntax import UnsupportedColumnError

console = Console()
error_console = Console(stderr=True)


# ============================================================================
# Helpers
# ============================================================================


def _load_config(args: argparse.Namespace) -> DumpConfig:
    """Load ``--config``, else ./dump.toml when present, else defaults."""
    config_path = getattr(args, "config", None)
    if config_path:
        return load_dump_config(Path(config_path))
    default_path = Path.cwd() / "dump.toml"
    if default_path.exists():
        return load_dump_config(default_path)
    return DumpConfig()


def _restore(dump_file: str, config: DumpConfig) -> MemoryDatabase:
    """Replay a dump file into a fresh in-memory store.

    Raises:
        FileNotFoundError: If the dump file does not exist.
        RestoreError: If the dump cannot be replayed.
    """
    dump_path = Path(dump_file)
    if not dump_path.exists():
        raise FileNotFoundError(f"Dump file not found: {dump_path}")
    database = MemoryDatabase(
        plugins_dir=config.plugins_dir,
        plugin_suffix=config.plugin_suffix,
    )
    restore_database(database, dump_path)
    return database


def _write_output(text: str, output: str | None) -> None:
    if output:
        Path(output).write_text(text, encoding="utf-8")
        error_console.print(f"[dim]Wrote[/dim] {output}")
    else:
        sys.stdout.write(text)


# ============================================================================
# Command implementations
# ============================================================================


def cmd_convert(args: argparse.Namespace) -> int:
    """Replay a dump and dump it again.

    ``--schema-only`` writes only the schema, in ``--syntax`` (default from
    config, ``script``).  Otherwise the full dump is written in command
    syntax with the table filter and record order applied.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 on failure.
    """
    try:
        config = _load_config(args)
        overrides = {}
        if args.syntax:
            overrides["syntax"] = args.syntax
        if args.table:
            overrides["tables"] = args.table
        if args.exclude_table:
            overrides["exclude_tables"] = args.exclude_table
        if args.order_by:
            overrides["order_by"] = args.order_by
        if args.defer_index_columns:
            overrides["defer_index_columns"] = True
        if args.no_plugins:
            overrides["dump_plugins"] = False
        if overrides:
            config = DumpConfig.model_validate({**config.model_dump(), **overrides})
        database = _restore(args.dump_file, config)
    except (FileNotFoundError, ValueError) as e:
        error_console.print(f"[red]Error: {e}[/red]")
        return 1

    try:
        if args.schema_only:
            text = dump_schema(database, syntax=config.syntax)
        else:
            text = dump(database, config, error_output=sys.stderr)
    except (UnsupportedColumnError, MalformedValueError) as e:
        error_console.print(f"[red]Error: {e}[/red]")
        return 1

    _write_output(text, args.output)
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a dump's structure.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 if the dump is valid, 1 otherwise.
    """
    report = validate_dump(Path(args.dump_file))

    for error in report["errors"]:
        console.print(f"[bold red]x[/bold red] {error}")
    for warning in report["warnings"]:
        console.print(f"[yellow]![/yellow] {warning}")

    if report["valid"]:
        console.print("[bold green]v[/bold green] Dump is valid")
        return 0
    console.print(f"[bold red]x[/bold red] Dump has {len(report['errors'])} error(s)")
    return 1


def cmd_tables(args: argparse.Namespace) -> int:
    """List tables in a dump with column and record counts.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 on failure.
    """
    try:
        config = _load_config(args)
        database = _restore(args.dump_file, config)
    except (FileNotFoundError, ValueError) as e:
        error_console.print(f"[red]Error: {e}[/red]")
        return 1

    table = Table(title="Tables", show_header=True, header_style="bold")
    table.add_column("Table", style="cyan")
    table.add_column("Type")
    table.add_column("Key")
    table.add_column("Columns", justify="right")
    table.add_column("Indexes", justify="right")
    table.add_column("Records", justify="right")

    introspector = SchemaIntrospector(database)
    for db_table in introspector.tables():
        columns = introspector.columns(db_table)
        indexes = [c for c in columns if c.object_type is ObjectType.INDEX_COLUMN]
        table.add_row(
            db_table.name,
            db_table.variant.value,
            db_table.domain.name if db_table.domain is not None else "-",
            str(len(columns) - len(indexes)),
            str(len(indexes)),
            str(len(db_table)),
        )

    console.print(table)

    if args.verbose:
        for db_table in introspector.tables():
            for column in introspector.columns(db_table):
                range_name = column.range.name if column.range is not None else "-"
                console.print(
                    f"  {column.name} [dim]{classify(column).value}[/dim] {range_name}"
                )

    return 0


# ============================================================================
# Main entry point
# ============================================================================


def main() -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="columnar-dump",
        description="Schema and data dump toolkit for columnar search stores",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # convert command
    p_convert = subparsers.add_parser(
        "convert",
        help="Replay a dump and dump it again with new options",
    )
    p_convert.add_argument("dump_file", help="Command syntax dump to read")
    p_convert.add_argument(
        "--config",
        help="Path to dump.toml (default: ./dump.toml when present)",
    )
    p_convert.add_argument(
        "--syntax",
        choices=["script", "command"],
        help="Schema syntax for --schema-only output",
    )
    p_convert.add_argument(
        "--schema-only",
        action="store_true",
        help="Write only the schema",
    )
    p_convert.add_argument(
        "--table",
        action="append",
        help="Dump records of this table only (repeatable)",
    )
    p_convert.add_argument(
        "--exclude-table",
        action="append",
        help="Skip records of this table (repeatable)",
    )
    p_convert.add_argument(
        "--order-by",
        help="Record order: _id (default), _key, or a column name",
    )
    p_convert.add_argument(
        "--defer-index-columns",
        action="store_true",
        help="Write index columns after the records",
    )
    p_convert.add_argument(
        "--no-plugins",
        action="store_true",
        help="Skip plugin registrations",
    )
    p_convert.add_argument(
        "--output",
        "-o",
        help="Write to this file instead of stdout",
    )
    p_convert.set_defaults(func=cmd_convert)

    # validate command
    p_validate = subparsers.add_parser(
        "validate",
        help="Check a dump's structure without replaying it",
    )
    p_validate.add_argument("dump_file", help="Command syntax dump to check")
    p_validate.set_defaults(func=cmd_validate)

    # tables command
    p_tables = subparsers.add_parser(
        "tables",
        help="List the tables in a dump with record counts",
    )
    p_tables.add_argument("dump_file", help="Command syntax dump to read")
    p_tables.add_argument("--config", help="Path to dump.toml")
    p_tables.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Also list every column",
    )
    p_tables.set_defaults(func=cmd_tables)

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
