"""Schema introspection, rendering, and definition.

Provides live store introspection (``SchemaIntrospector``), the script and
command syntax renderers, the three-pass ``SchemaDumper``, and the staged
definition DSL (``define``, ``Schema``).

Usage:
    from columnar_dump.schema import SchemaIntrospector, dump_schema
    from columnar_dump.schema import define, create_table
"""

from columnar_dump.schema.definition import (
    ColumnDefinition,
    IndexColumnDefinition,
    Schema,
    TableDefinition,
    UnknownTableTypeError,
    UnresolvedTargetError,
    create_table,
    define,
    normalize_type,
)
from columnar_dump.schema.dumper import SchemaDumper, dump_schema
from columnar_dump.schema.introspector import SchemaIntrospector, classify, group_columns
from columnar_dump.schema.models import (
    ColumnKind,
    ColumnSchema,
    DatabaseSchema,
    TableSchema,
)
from columnar_dump.schema.syntax import (
    CommandSyntax,
    ScriptSyntax,
    UnsupportedColumnError,
    create_syntax,
)

__all__ = [
    "SchemaIntrospector",
    "classify",
    "group_columns",
    "ColumnKind",
    "ColumnSchema",
    "TableSchema",
    "DatabaseSchema",
    "ScriptSyntax",
    "CommandSyntax",
    "UnsupportedColumnError",
    "create_syntax",
    "SchemaDumper",
    "dump_schema",
    "Schema",
    "TableDefinition",
    "ColumnDefinition",
    "IndexColumnDefinition",
    "UnknownTableTypeError",
    "UnresolvedTargetError",
    "create_table",
    "define",
    "normalize_type",
]
