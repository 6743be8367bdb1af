"""columnar-dump: schema and data dump toolkit for columnar search stores.

Dumps a store's schema as a Python script or as ``table_create`` /
``column_create`` commands, dumps records as ``load`` payloads with
invalid-encoding repair, and defines schemas through a staged DSL.

Usage:
    from columnar_dump import MemoryDatabase, dump, dump_schema, define
    from columnar_dump import restore_database, validate_dump
    from columnar_dump import DumpConfig, load_dump_config
"""

__version__ = "0.1.0"

# Adapters
from columnar_dump.adapters.base import Database, GeoPoint, ObjectType, Record, TableVariant
from columnar_dump.adapters.memory import MemoryDatabase

# Config
from columnar_dump.config.loader import load_dump_config
from columnar_dump.config.models import DumpConfig

# Schema
from columnar_dump.schema.definition import Schema, create_table, define
from columnar_dump.schema.dumper import SchemaDumper, dump_schema
from columnar_dump.schema.introspector import SchemaIntrospector, classify

# Dump
from columnar_dump.dump.database import DatabaseDumper, dump
from columnar_dump.dump.records import TableDumper
from columnar_dump.dump.restore import restore_database, validate_dump

__all__ = [
    # Adapters
    "Database",
    "GeoPoint",
    "ObjectType",
    "Record",
    "TableVariant",
    "MemoryDatabase",
    # Config
    "load_dump_config",
    "DumpConfig",
    # Schema
    "Schema",
    "create_table",
    "define",
    "SchemaDumper",
    "dump_schema",
    "SchemaIntrospector",
    "classify",
    # Dump
    "DatabaseDumper",
    "dump",
    "TableDumper",
    "restore_database",
    "validate_dump",
]
