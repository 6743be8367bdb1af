"""Pydantic models for schema introspection.

This module contains the snapshot models the syntax renderers consume:
- ColumnKind: Normal / Reference / Index classification
- ColumnSchema, TableSchema, DatabaseSchema

plus the friendly-name table shared by the script syntax renderer and the
schema DSL.

A snapshot is taken per dump by ``SchemaIntrospector.introspect()``; it
is never kept across mutations of the live database.
"""

from enum import Enum

from pydantic import BaseModel, Field

from columnar_dump.adapters.base import TableVariant


# ============================================================================
# Friendly type names
# ============================================================================

# Native range type -> script syntax method name
FRIENDLY_TYPE_NAMES: dict[str, str] = {
    "Bool": "boolean",
    **{f"Int{bits}": f"integer{bits}" for bits in (8, 16, 32, 64)},
    **{f"UInt{bits}": f"unsigned_integer{bits}" for bits in (8, 16, 32, 64)},
    "Float": "float",
    "Time": "time",
    "ShortText": "short_text",
    "Text": "text",
    "LongText": "long_text",
    "TokyoGeoPoint": "tokyo_geo_point",
    "WGS84GeoPoint": "wgs84_geo_point",
}

# Script syntax method name -> native range type
NATIVE_TYPE_NAMES: dict[str, str] = {
    friendly: native for native, friendly in FRIENDLY_TYPE_NAMES.items()
}


# ============================================================================
# Schema Introspection Models
# ============================================================================


class ColumnKind(str, Enum):
    """How a column is dumped."""

    NORMAL = "normal"
    REFERENCE = "reference"
    INDEX = "index"


class ColumnSchema(BaseModel):
    """Schema for a column.

    Example:
        >>> col = ColumnSchema(table="Users", local_name="age", range="Int32")
        >>> col.name
        'Users.age'
    """

    table: str
    local_name: str
    range: str
    kind: ColumnKind = ColumnKind.NORMAL
    vector: bool = False
    with_section: bool = False
    with_weight: bool = False
    with_position: bool = False
    sources: list[str] = Field(default_factory=list)  # "_key" for the range table's key

    @property
    def name(self) -> str:
        return f"{self.table}.{self.local_name}"


class TableSchema(BaseModel):
    """Schema for a table."""

    name: str
    variant: TableVariant = TableVariant.NO_KEY
    key_type: str | None = None
    value_type: str | None = None
    normalize_key: bool = False
    key_with_sis: bool = False
    default_tokenizer: str | None = None
    columns: dict[str, ColumnSchema] = Field(default_factory=dict)  # by local name, sorted


class DatabaseSchema(BaseModel):
    """Complete database schema, tables sorted by name."""

    tables: dict[str, TableSchema] = Field(default_factory=dict)

    def columns_of_kind(self, kind: ColumnKind) -> list[ColumnSchema]:
        """All columns of ``kind``, in table then local name order."""
        return [
            column
            for table in self.tables.values()
            for column in table.columns.values()
            if column.kind is kind
        ]
