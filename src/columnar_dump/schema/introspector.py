"""Live database schema introspection.

This module reads table and column metadata from a store and orders it
for output:
- Column classification (normal, reference, index)
- Tables in dependency order (a table whose key or value type is
  another table follows that table), ties broken by name, skipping
  objects removed mid-iteration
- Columns in lexical local name order, grouped by owning table
- Full ``DatabaseSchema`` snapshots for the syntax renderers

Ordering is always re-derived here, never taken from definition order,
so the same database state always dumps to the same text.
"""

from collections.abc import Iterable

from columnar_dump.adapters.base import Column, Database, ObjectType, Table
from columnar_dump.schema.models import (
    ColumnKind,
    ColumnSchema,
    DatabaseSchema,
    TableSchema,
)


def classify(column: Column) -> ColumnKind:
    """Classify a live column.

    Pure function of the column's object type and range; call it again
    after any schema change instead of caching the result.

    Example:
        >>> classify(db["Users.age"])
        <ColumnKind.NORMAL: 'normal'>
    """
    if column.object_type is ObjectType.INDEX_COLUMN:
        return ColumnKind.INDEX
    if column.range is not None and column.range.object_type is ObjectType.TABLE:
        return ColumnKind.REFERENCE
    return ColumnKind.NORMAL


def group_columns(columns: Iterable[ColumnSchema]) -> dict[str, list[ColumnSchema]]:
    """Group columns by owning table.

    Returns:
        Dict mapping table name to its columns; tables sorted by name,
        columns sorted by local name.
    """
    grouped: dict[str, list[ColumnSchema]] = {}
    for column in columns:
        grouped.setdefault(column.table, []).append(column)
    return {
        table_name: sorted(grouped[table_name], key=lambda column: column.local_name)
        for table_name in sorted(grouped)
    }


class SchemaIntrospector:
    """Introspects a store's schema.

    Usage:
        introspector = SchemaIntrospector(database)

        # Full snapshot (tables, columns, kinds, index sources)
        schema = introspector.introspect()

        # Or walk live objects in dump order
        for table in introspector.tables():
            for column in introspector.columns(table):
                ...
    """

    def __init__(self, database: Database):
        """Initialize with a live database.

        Args:
            database: Store implementing the ``Database`` protocol
        """
        self._database = database

    def tables(self) -> list[Table]:
        """Get all tables in dependency order.

        A table whose key type or value type is another table comes after
        that table; otherwise tables are sorted by name.  Objects removed
        while iterating are skipped.
        """
        tables = [
            obj
            for obj in self._database.objects(order_by="key", ignore_missing=True)
            if obj.object_type is ObjectType.TABLE
        ]
        return _dependency_order(tables)

    def columns(self, table: Table) -> list[Column]:
        """Get a table's columns sorted by local name."""
        return sorted(table.columns, key=lambda column: column.local_name)

    def introspect(self) -> DatabaseSchema:
        """Introspect the full schema.

        Returns:
            DatabaseSchema with tables and columns in dump order
        """
        db_schema = DatabaseSchema()
        for table in self.tables():
            db_schema.tables[table.name] = self._get_table(table)
        return db_schema

    def reference_columns(self) -> dict[str, list[ColumnSchema]]:
        """Reference columns grouped by owning table, in dump order."""
        return group_columns(self.introspect().columns_of_kind(ColumnKind.REFERENCE))

    def index_columns(self) -> dict[str, list[ColumnSchema]]:
        """Index columns grouped by owning table, in dump order."""
        return group_columns(self.introspect().columns_of_kind(ColumnKind.INDEX))

    def _get_table(self, table: Table) -> TableSchema:
        table_schema = TableSchema(
            name=table.name,
            variant=table.variant,
            key_type=_name_of(table.domain),
            value_type=_name_of(table.range),
            normalize_key=table.normalize_key,
            key_with_sis=table.register_key_with_sis,
            default_tokenizer=_name_of(table.default_tokenizer),
        )
        for column in self.columns(table):
            table_schema.columns[column.local_name] = self._get_column(table, column)
        return table_schema

    def _get_column(self, table: Table, column: Column) -> ColumnSchema:
        kind = classify(column)
        sources = []
        if kind is ColumnKind.INDEX:
            # A table source means the index covers the range table's key
            sources = [
                "_key" if source.object_type is ObjectType.TABLE else source.local_name
                for source in column.sources
            ]
        return ColumnSchema(
            table=table.name,
            local_name=column.local_name,
            range=_name_of(column.range) or "",
            kind=kind,
            vector=column.vector,
            with_section=column.with_section,
            with_weight=column.with_weight,
            with_position=column.with_position,
            sources=sources,
        )


def _name_of(obj) -> str | None:
    return obj.name if obj is not None else None


def _dependency_order(tables: list[Table]) -> list[Table]:
    by_name = {table.name: table for table in tables}
    dependencies = {
        table.name: {
            dependency.name
            for dependency in (table.domain, table.range)
            if dependency is not None
            and dependency.object_type is ObjectType.TABLE
            and dependency.name in by_name
            and dependency.name != table.name
        }
        for table in tables
    }

    ordered: list[Table] = []
    emitted: set[str] = set()
    pending = sorted(by_name)
    while pending:
        ready = [name for name in pending if dependencies[name] <= emitted]
        # A cycle cannot be created through the store; fall back to name order
        name = ready[0] if ready else pending[0]
        pending.remove(name)
        emitted.add(name)
        ordered.append(by_name[name])
    return ordered
