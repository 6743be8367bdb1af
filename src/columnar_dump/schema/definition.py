"""Schema definition DSL.

Table and column definitions are staged in memory, then committed
against a live database in staging order.  Redefining a table or column
by name updates the staged definition in place.  Index targets are kept
as names until commit, so an index may point at a table or column that
is staged later in the same batch.

Usage:
    from columnar_dump.schema.definition import define

    with define(database) as schema:
        with schema.create_table("Terms",
                                 type="patricia_trie",
                                 key_type="ShortText",
                                 default_tokenizer="TokenBigram") as table:
            table.index("Articles", "body", name="articles_body",
                        with_position=True)

        with schema.create_table("Articles") as table:
            table.text("body")
            table.column("published", "datetime")
    # committed here: Terms, then Articles, then the index resolves
    # "Articles.body"

Script syntax dumps (``dump_schema(database, syntax="script")``) are
programs in this DSL and replay with ``Schema.load_script()``.
"""

import ast
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from columnar_dump.adapters.base import Database, ObjectType, Table, TableVariant
from columnar_dump.schema.models import FRIENDLY_TYPE_NAMES

logger = logging.getLogger(__name__)


class UnknownTableTypeError(ValueError):
    """Raised when a table is staged with an unknown ``type=``."""


class UnresolvedTargetError(LookupError):
    """Raised at commit when a staged name does not exist in the database."""


# Portable type aliases -> native types.  decimal and boolean have no
# native counterpart and are approximated with integers.
TYPE_ALIASES: dict[str, str] = {
    "string": "ShortText",
    "text": "Text",
    "integer": "Int32",
    "float": "Float",
    "decimal": "Int64",
    "datetime": "Time",
    "timestamp": "Time",
    "time": "Time",
    "date": "Time",
    "binary": "LongText",
    "boolean": "Int32",
}


def normalize_type(value_type: Any) -> Any:
    """Map a portable type alias to its native type name.

    Live objects and unknown names (native type names, table names) are
    returned unchanged.

    Example:
        >>> normalize_type("string")
        'ShortText'
        >>> normalize_type("WGS84GeoPoint")
        'WGS84GeoPoint'
    """
    if not isinstance(value_type, str):
        return value_type
    return TYPE_ALIASES.get(value_type, value_type)


def _table_variant(table_type: Any) -> TableVariant:
    if table_type is None:
        return TableVariant.NO_KEY
    if isinstance(table_type, TableVariant):
        return table_type
    try:
        return TableVariant(str(table_type))
    except ValueError:
        raise UnknownTableTypeError(f"unknown table type: {table_type!r}") from None


# ============================================================================
# Index targets
# ============================================================================


@dataclass(frozen=True)
class UnresolvedTarget:
    """An index source known only by name (``"Table.column"`` or ``"Table"``)."""

    name: str


@dataclass(frozen=True)
class ResolvedTarget:
    """An index source bound to a live table or column."""

    obj: Any


IndexTarget = UnresolvedTarget | ResolvedTarget


def _to_target(target: Any) -> IndexTarget:
    if isinstance(target, (UnresolvedTarget, ResolvedTarget)):
        return target
    if isinstance(target, str):
        return UnresolvedTarget(target)
    return ResolvedTarget(target)


# ============================================================================
# Column definitions
# ============================================================================


class ColumnDefinition:
    """A staged data column.

    Options:
        type: ``"vector"`` for a vector column (default scalar).
    """

    def __init__(self, name: str, options: dict[str, Any] | None = None):
        self.name = str(name)
        self.options = dict(options or {})
        self.value_type: Any = None

    def define(self, table: Table, database: Database) -> Any:
        return table.define_column(
            self.name,
            normalize_type(self.value_type),
            vector=self.options.get("type") == "vector",
        )


class IndexColumnDefinition:
    """A staged index column.

    Targets stay unresolved until ``define()``; they are then bound once
    and never looked up again.  ``table`` names the indexed table when
    there are no sources to derive it from.

    Options:
        with_section, with_weight, with_position: index flags.
    """

    def __init__(self, name: str, options: dict[str, Any] | None = None):
        self.name = str(name)
        self.options = dict(options or {})
        self.targets: list[IndexTarget] = []
        self.table: IndexTarget | None = None

    @property
    def target(self) -> list[IndexTarget]:
        return self.targets

    @target.setter
    def target(self, target: Any) -> None:
        if not isinstance(target, (list, tuple)):
            target = [target]
        self.targets = [_to_target(item) for item in target]

    def define(self, table: Table, database: Database) -> Any:
        self.targets = [ResolvedTarget(self._resolve(t, database)) for t in self.targets]
        sources = [target.obj for target in self.targets]
        if self.table is not None:
            self.table = ResolvedTarget(self._resolve(self.table, database))
            if self.table.obj.object_type is not ObjectType.TABLE:
                raise ValueError(f"index {table.name}.{self.name} target is not a table")
        elif not sources:
            raise ValueError(f"index {table.name}.{self.name} has no target")

        owners = {
            source.name if source.object_type is ObjectType.TABLE else source.table.name
            for source in sources
        }
        if self.table is not None:
            owners.add(self.table.obj.name)
        if len(owners) != 1:
            raise ValueError(
                f"index {table.name}.{self.name} sources span several tables: "
                f"{', '.join(sorted(owners))}"
            )
        if self.table is not None:
            target_table = self.table.obj
        else:
            first = sources[0]
            target_table = first if first.object_type is ObjectType.TABLE else first.table

        return table.define_index_column(
            self.name,
            target_table,
            sources=sources,
            with_section=bool(self.options.get("with_section")),
            with_weight=bool(self.options.get("with_weight")),
            with_position=bool(self.options.get("with_position")),
        )

    def _resolve(self, target: IndexTarget, database: Database) -> Any:
        if isinstance(target, ResolvedTarget):
            return target.obj
        table_name, _, column_name = target.name.partition(".")
        name = table_name if column_name == "_key" else target.name
        obj = database.resolve(name)
        if obj is None:
            raise UnresolvedTargetError(f"index target not found: {target.name}")
        return obj


# ============================================================================
# Table definitions
# ============================================================================


class TableDefinition:
    """A staged table and its columns.

    Options:
        type: ``"array"`` (default), ``"hash"`` or ``"patricia_trie"``.
        key_type, value_type: type names, aliases or live objects.
        key_normalize, key_with_sis: key flags.
        default_tokenizer: tokenizer name or object.
        force: replace an existing table of the same name.
    """

    def __init__(self, name: str, options: dict[str, Any], change: bool = False):
        self.name = str(name)
        self.change = change
        self.options: dict[str, Any] = {}
        self._columns: dict[str, ColumnDefinition | IndexColumnDefinition] = {}
        self.update_options(options)

    def __enter__(self) -> "TableDefinition":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        return None

    def __getitem__(self, name: str) -> ColumnDefinition | IndexColumnDefinition | None:
        return self._columns.get(str(name))

    @property
    def columns(self) -> list[ColumnDefinition | IndexColumnDefinition]:
        return list(self._columns.values())

    def update_options(self, options: dict[str, Any]) -> None:
        merged = {**self.options, **options}
        if not self.change:
            self.variant = _table_variant(merged.get("type"))
        self.options = merged

    def column(self, name: str, value_type: Any, **options: Any) -> "TableDefinition":
        column = self._stage(name, ColumnDefinition)
        column.value_type = value_type
        column.options.update(options)
        return self

    def reference(self, name: str, table: Any, **options: Any) -> "TableDefinition":
        return self.column(name, table, **options)

    def boolean(self, name: str, **options: Any) -> "TableDefinition":
        return self.column(name, "Bool", **options)

    def integer8(self, name: str, **options: Any) -> "TableDefinition":
        return self.column(name, "Int8", **options)

    def integer16(self, name: str, **options: Any) -> "TableDefinition":
        return self.column(name, "Int16", **options)

    def integer32(self, name: str, **options: Any) -> "TableDefinition":
        return self.column(name, "Int32", **options)

    integer = integer32
    int32 = integer32

    def integer64(self, name: str, **options: Any) -> "TableDefinition":
        return self.column(name, "Int64", **options)

    int64 = integer64

    def unsigned_integer8(self, name: str, **options: Any) -> "TableDefinition":
        return self.column(name, "UInt8", **options)

    def unsigned_integer16(self, name: str, **options: Any) -> "TableDefinition":
        return self.column(name, "UInt16", **options)

    def unsigned_integer32(self, name: str, **options: Any) -> "TableDefinition":
        return self.column(name, "UInt32", **options)

    unsigned_integer = unsigned_integer32
    uint32 = unsigned_integer32

    def unsigned_integer64(self, name: str, **options: Any) -> "TableDefinition":
        return self.column(name, "UInt64", **options)

    uint64 = unsigned_integer64

    def float(self, name: str, **options: Any) -> "TableDefinition":
        return self.column(name, "Float", **options)

    def time(self, name: str, **options: Any) -> "TableDefinition":
        return self.column(name, "Time", **options)

    def short_text(self, name: str, **options: Any) -> "TableDefinition":
        return self.column(name, "ShortText", **options)

    string = short_text

    def text(self, name: str, **options: Any) -> "TableDefinition":
        return self.column(name, "Text", **options)

    def long_text(self, name: str, **options: Any) -> "TableDefinition":
        return self.column(name, "LongText", **options)

    def tokyo_geo_point(self, name: str, **options: Any) -> "TableDefinition":
        return self.column(name, "TokyoGeoPoint", **options)

    def wgs84_geo_point(self, name: str, **options: Any) -> "TableDefinition":
        return self.column(name, "WGS84GeoPoint", **options)

    def index(
        self,
        target_table: str,
        sources: str | list[str],
        name: str | None = None,
        **options: Any,
    ) -> "TableDefinition":
        """Stage an index over ``sources`` of ``target_table``.

        ``"_key"`` as a source indexes the target table's key; an empty
        list stages an index with no sources yet.

        Example:
            table.index("Articles", ["title", "body"], name="articles_text",
                        with_section=True)
        """
        if isinstance(sources, str):
            sources = [sources]
        if name is None:
            name = "_".join([target_table, *sources])
        targets = [
            target_table if source == "_key" else f"{target_table}.{source}"
            for source in sources
        ]
        return self.index_column(name, targets, table=target_table, **options)

    def index_column(
        self, name: str, target: Any, table: Any = None, **options: Any
    ) -> "TableDefinition":
        """Stage an index column named ``name`` over ``target``.

        Args:
            name: Local name of the index column.
            target: ``"Table.column"``, ``"Table"`` (its key), a live
                object, or a list of these (may be empty).
            table: Indexed table, by name or live object.  Required when
                ``target`` is empty, derived from the sources otherwise.
        """
        column = self._stage(name, IndexColumnDefinition)
        column.target = target
        column.table = _to_target(table) if table is not None else None
        column.options.update(options)
        return self

    def define(self, database: Database) -> Table:
        """Create (or look up) the table, then define every staged column."""
        table = self.define_table(database)
        self.define_columns(table, database)
        self.define_columns(table, database, index=True)
        return table

    def define_table(self, database: Database) -> Table:
        if self.change:
            table = database.resolve(self.name)
            if table is None or table.object_type is not ObjectType.TABLE:
                raise UnresolvedTargetError(f"table not found: {self.name}")
            return table
        return database.create_table(
            self.name,
            self.variant,
            key_type=normalize_type(self.options.get("key_type")),
            value_type=normalize_type(self.options.get("value_type")),
            normalize_key=bool(self.options.get("key_normalize")),
            key_with_sis=bool(self.options.get("key_with_sis")),
            default_tokenizer=self.options.get("default_tokenizer"),
            force=bool(self.options.get("force")),
        )

    def define_columns(self, table: Table, database: Database, index: bool = False) -> None:
        """Define the staged data columns, or the index columns with ``index=True``."""
        columns = [
            column
            for column in self._columns.values()
            if isinstance(column, IndexColumnDefinition) is index
        ]
        for column in columns:
            column.define(table, database)
        logger.debug(
            "Defined %d %s columns on %s",
            len(columns),
            "index" if index else "data",
            self.name,
        )

    def _stage(self, name: str, definition_class: type) -> Any:
        name = str(name)
        column = self._columns.get(name)
        if not isinstance(column, definition_class):
            # Same position if the name was staged as the other kind
            column = definition_class(name)
            self._columns[name] = column
        return column


# ============================================================================
# Schema
# ============================================================================


class Schema:
    """Staging area for table definitions.

    Args:
        database: Database the definitions are committed to.
        **options: Defaults merged into every staged table's options.
    """

    def __init__(self, database: Database | None, **options: Any):
        self._database = database
        self._options = options
        self._definitions: list[TableDefinition] = []
        self._tables: dict[str, TableDefinition] = {}

    @property
    def definitions(self) -> list[TableDefinition]:
        return list(self._definitions)

    def create_table(self, name: str, **options: Any) -> TableDefinition:
        """Stage a new table, or update the staged table named ``name``."""
        name = str(name)
        definition = self._tables.get(name)
        if definition is None:
            definition = TableDefinition(name, {**self._options, **options})
            self._tables[name] = definition
            self._definitions.append(definition)
        else:
            definition.update_options(options)
        return definition

    define_table = create_table

    def change_table(self, name: str) -> TableDefinition:
        """Stage columns for a table that exists by the time this entry commits."""
        definition = TableDefinition(name, {}, change=True)
        self._definitions.append(definition)
        return definition

    def load_script(self, script: str) -> None:
        """Stage the definitions of a script syntax dump.

        The script is parsed, not run.  Only ``with schema.create_table(...)``
        and ``with schema.change_table(...)`` blocks whose bodies call DSL
        methods on the block's table with literal arguments are accepted.
        Nothing is staged when a statement falls outside this subset.

        Raises:
            ValueError: If the script has a syntax error or a statement
                outside this subset.
        """
        try:
            module = ast.parse(script, "<schema script>")
        except SyntaxError as e:
            raise ValueError(f"invalid schema script: {e}") from None

        blocks = [_script_block(statement) for statement in module.body]
        for header, calls in blocks:
            definition = _apply_script_call(self, header)
            for call in calls:
                _apply_script_call(definition, call)

    def define(self) -> list[Table]:
        """Commit staged definitions.

        Runs three rounds, each in staging order: every table, then every
        data column, then every index column.  A column may therefore
        reference a table, and an index a column, staged later in the
        same batch.  Staged definitions are consumed even when a commit
        step fails.

        Returns:
            The created or changed tables.

        Raises:
            ValueError: If there is no database to commit to.
            UnresolvedTargetError: If an index target or changed table
                does not exist at commit time.
        """
        if self._database is None:
            raise ValueError("no database to define the schema in")
        definitions = self._definitions
        self._definitions = []
        self._tables = {}
        logger.debug("Committing %d table definitions", len(definitions))

        tables = [definition.define_table(self._database) for definition in definitions]
        for index in (False, True):
            for definition, table in zip(definitions, tables):
                definition.define_columns(table, self._database, index=index)
        return tables


# ============================================================================
# Script loading
# ============================================================================

SCRIPT_SCHEMA_METHODS = frozenset({"create_table", "define_table", "change_table"})

SCRIPT_TABLE_METHODS = frozenset(
    {
        "column",
        "reference",
        "index",
        "index_column",
        "integer",
        "int32",
        "int64",
        "unsigned_integer",
        "uint32",
        "uint64",
        "string",
        *FRIENDLY_TYPE_NAMES.values(),
    }
)

ScriptCall = tuple[str, list[Any], dict[str, Any], int]


def _script_error(node: ast.AST, message: str) -> ValueError:
    return ValueError(f"line {getattr(node, 'lineno', '?')}: {message}")


def _script_call(node: ast.AST, receiver: str, methods: frozenset[str]) -> ScriptCall:
    """Validate ``receiver.method(<literals>)`` and evaluate its arguments."""
    if not (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Attribute)
        and isinstance(node.func.value, ast.Name)
        and node.func.value.id == receiver
        and node.func.attr in methods
    ):
        raise _script_error(node, f"expected a call to a {receiver} method")
    if any(keyword.arg is None for keyword in node.keywords):
        raise _script_error(node, "keyword unpacking is not allowed")
    try:
        args = [ast.literal_eval(arg) for arg in node.args]
        kwargs = {keyword.arg: ast.literal_eval(keyword.value) for keyword in node.keywords}
    except (ValueError, TypeError, SyntaxError) as e:
        raise _script_error(node, f"arguments must be literals ({e})") from None
    return node.func.attr, args, kwargs, node.lineno


def _script_block(statement: ast.stmt) -> tuple[ScriptCall, list[ScriptCall]]:
    if not (isinstance(statement, ast.With) and len(statement.items) == 1):
        raise _script_error(statement, "expected a with schema.create_table(...) block")
    item = statement.items[0]
    header = _script_call(item.context_expr, "schema", SCRIPT_SCHEMA_METHODS)
    table_name = item.optional_vars.id if isinstance(item.optional_vars, ast.Name) else None

    calls = []
    for node in statement.body:
        if isinstance(node, ast.Pass):
            continue
        if not isinstance(node, ast.Expr) or table_name is None:
            raise _script_error(node, "expected a table method call")
        calls.append(_script_call(node.value, table_name, SCRIPT_TABLE_METHODS))
    return header, calls


def _apply_script_call(receiver: Any, call: ScriptCall) -> Any:
    method, args, kwargs, lineno = call
    try:
        return getattr(receiver, method)(*args, **kwargs)
    except TypeError as e:
        raise ValueError(f"line {lineno}: {e}") from None


@contextmanager
def define(database: Database | None, **options: Any) -> Iterator[Schema]:
    """Stage definitions inside the block and commit them on exit.

    Nothing is committed if the block raises.
    """
    schema = Schema(database, **options)
    yield schema
    schema.define()


@contextmanager
def create_table(database: Database | None, name: str, **options: Any) -> Iterator[TableDefinition]:
    """Define a single table.

    Example:
        with create_table(database, "Users", type="hash",
                          key_type="ShortText") as table:
            table.integer32("age")
    """
    with define(database) as schema:
        with schema.create_table(name, **options) as table:
            yield table
