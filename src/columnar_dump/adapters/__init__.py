"""Store adapters: protocol definitions and the in-memory store.

Usage:
    from columnar_dump.adapters import Database, MemoryDatabase, TableVariant
"""

from columnar_dump.adapters.base import (
    Column,
    Database,
    GeoPoint,
    ObjectType,
    Procedure,
    Record,
    StoreObject,
    Table,
    TableVariant,
)
from columnar_dump.adapters.memory import MemoryDatabase

__all__ = [
    "Column",
    "Database",
    "GeoPoint",
    "ObjectType",
    "Procedure",
    "Record",
    "StoreObject",
    "Table",
    "TableVariant",
    "MemoryDatabase",
]
