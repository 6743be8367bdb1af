"""In-memory store adapter.

Provides ``MemoryDatabase``, a dict-backed implementation of the
``Database`` protocol.  It carries the builtin scalar types and
tokenizers, tables of every variant, data, reference, vector and index
columns, and plugin registration.  The dumpers, the restore replay and the
test suite run against it.

Usage:
    from columnar_dump.adapters.memory import MemoryDatabase
    from columnar_dump.adapters.base import TableVariant

    db = MemoryDatabase()
    users = db.create_table("Users", TableVariant.HASH_KEY, key_type="ShortText")
    age = users.define_column("age", "Int32")
    alice = users.add("alice")
    age.set_value(alice.id, 29)
"""

from collections.abc import Iterator, Sequence
from datetime import datetime, timezone
from typing import Any, Literal

from columnar_dump.adapters.base import (
    GEO_POINT_TYPES,
    GeoPoint,
    ObjectType,
    Record,
    TableVariant,
)

BUILTIN_TYPES = (
    "Object",
    "Bool",
    "Int8",
    "UInt8",
    "Int16",
    "UInt16",
    "Int32",
    "UInt32",
    "Int64",
    "UInt64",
    "Float",
    "Time",
    "ShortText",
    "Text",
    "LongText",
    "TokyoGeoPoint",
    "WGS84GeoPoint",
)

BUILTIN_TOKENIZERS = ("TokenDelimit", "TokenUnigram", "TokenBigram", "TokenTrigram", "TokenMecab")

# First id handed out to user-defined objects
FIRST_USER_ID = 256


class MemoryObject:
    """Base for every named object held by ``MemoryDatabase``."""

    object_type: ObjectType

    def __init__(self, database: "MemoryDatabase", name: str):
        self.database = database
        self.name = name
        self.id = 0

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} id={self.id}>"


class MemoryType(MemoryObject):
    object_type = ObjectType.TYPE


class MemoryProcedure(MemoryObject):
    object_type = ObjectType.PROCEDURE

    def __init__(
        self,
        database: "MemoryDatabase",
        name: str,
        builtin: bool = False,
        path: str | None = None,
    ):
        super().__init__(database, name)
        self.builtin = builtin
        self.path = path


class MemoryColumn(MemoryObject):
    """A data column; values are kept per record id."""

    object_type = ObjectType.COLUMN

    def __init__(
        self,
        database: "MemoryDatabase",
        table: "MemoryTable",
        local_name: str,
        range: MemoryObject | None,
        vector: bool = False,
    ):
        super().__init__(database, f"{table.name}.{local_name}")
        self.table = table
        self.local_name = local_name
        self.range = range
        self.vector = vector
        self.with_section = False
        self.with_weight = False
        self.with_position = False
        self._values: dict[int, Any] = {}

    @property
    def scalar(self) -> bool:
        return not self.vector

    @property
    def sources(self) -> list[MemoryObject]:
        return []

    def value(self, record_id: int) -> Any:
        if record_id in self._values:
            return self._values[record_id]
        return [] if self.vector else None

    def set_value(self, record_id: int, value: Any) -> None:
        if self.vector:
            if value is None or value == "":
                value = []
            self._values[record_id] = [self._cast(v) for v in value]
        else:
            self._values[record_id] = self._cast(value)

    def _cast(self, value: Any) -> Any:
        if self.range is None or value is None:
            return value
        if self.range.object_type is ObjectType.TABLE:
            return self.range.record_for(value)
        if self.range.name == "Time" and isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, timezone.utc)
        if self.range.name in GEO_POINT_TYPES:
            # An empty literal is an unset point
            return GeoPoint.parse(value) if value != "" else None
        return value


class MemoryPseudoColumn(MemoryColumn):
    """``_id``, ``_key`` and ``_value`` of a table."""

    def __init__(self, table: "MemoryTable", local_name: str):
        if local_name == "_id":
            range = table.database["UInt32"]
        elif local_name == "_key":
            range = table.domain
        else:
            range = table.range
        super().__init__(table.database, table, local_name, range)
        self.id = table.id

    def value(self, record_id: int) -> Any:
        if self.local_name == "_id":
            return record_id
        if self.local_name == "_key":
            return self.table.key_of(record_id)
        return self.table._values.get(record_id)

    def set_value(self, record_id: int, value: Any) -> None:
        if self.local_name != "_value":
            raise ValueError(f"{self.name} is read-only")
        self.table._values[record_id] = self._cast(value)


class MemoryIndexColumn(MemoryColumn):
    """An index column over columns (or the key) of its range table."""

    object_type = ObjectType.INDEX_COLUMN

    def __init__(
        self,
        database: "MemoryDatabase",
        table: "MemoryTable",
        local_name: str,
        range: "MemoryTable",
        with_section: bool = False,
        with_weight: bool = False,
        with_position: bool = False,
    ):
        super().__init__(database, table, local_name, range)
        self.with_section = with_section
        self.with_weight = with_weight
        self.with_position = with_position
        self._sources: list[MemoryObject] = []

    @property
    def sources(self) -> list[MemoryObject]:
        return list(self._sources)

    @sources.setter
    def sources(self, sources: Sequence[MemoryObject]) -> None:
        for source in sources:
            owner = source if source.object_type is ObjectType.TABLE else source.table
            if owner is not self.range:
                raise ValueError(
                    f"index source {source.name} does not belong to "
                    f"{self.range.name} (indexed by {self.name})"
                )
        self._sources = list(sources)

    def value(self, record_id: int) -> Any:
        return None

    def set_value(self, record_id: int, value: Any) -> None:
        raise ValueError(f"{self.name} is an index column")


class MemoryTable(MemoryObject):
    """A table of any variant."""

    object_type = ObjectType.TABLE

    def __init__(
        self,
        database: "MemoryDatabase",
        name: str,
        variant: TableVariant,
        domain: MemoryObject | None = None,
        range: MemoryObject | None = None,
        normalize_key: bool = False,
        register_key_with_sis: bool = False,
        default_tokenizer: MemoryObject | None = None,
    ):
        super().__init__(database, name)
        self.variant = variant
        self.domain = domain
        self.range = range
        self.normalize_key = normalize_key
        self.register_key_with_sis = register_key_with_sis
        self.default_tokenizer = default_tokenizer
        self._columns: dict[str, MemoryColumn] = {}
        self._keys: dict[Any, int] = {}
        self._record_keys: dict[int, Any] = {}
        self._values: dict[int, Any] = {}
        self._next_record_id = 1

    @property
    def encoding(self) -> str:
        return self.database.encoding

    @property
    def support_key(self) -> bool:
        return self.variant is not TableVariant.NO_KEY

    @property
    def columns(self) -> list[MemoryColumn]:
        return list(self._columns.values())

    def __len__(self) -> int:
        return len(self._record_keys)

    def column(self, name: str) -> MemoryColumn | None:
        if name in ("_id", "_key", "_value"):
            return MemoryPseudoColumn(self, name)
        return self._columns.get(name)

    def key_of(self, record_id: int) -> Any:
        if not self.support_key:
            return None
        return self._record_keys.get(record_id)

    def records(self, order_by: str | None = None) -> Iterator[Record]:
        record_ids = sorted(self._record_keys)
        if order_by in ("_key", "key") and self.support_key:
            record_ids.sort(key=lambda record_id: _sort_key(self.key_of(record_id)))
        elif order_by not in (None, "_id", "id"):
            column = self.column(order_by)
            if column is None:
                raise KeyError(f"unknown column: {self.name}.{order_by}")
            record_ids.sort(key=lambda record_id: _sort_key(column.value(record_id)))
        for record_id in record_ids:
            yield Record(self, record_id)

    def add(self, key: Any = None) -> Record:
        if not self.support_key:
            if key is not None:
                raise ValueError(f"{self.name} has no key")
            record_id = self._new_record_id()
            self._record_keys[record_id] = None
            return Record(self, record_id)

        if key is None:
            raise ValueError(f"{self.name} requires a key")
        if self.domain is not None and self.domain.object_type is ObjectType.TABLE:
            key = self.domain.record_for(key)
        elif self.domain is not None and self.domain.name in GEO_POINT_TYPES:
            key = GeoPoint.parse(key)
        if key in self._keys:
            return Record(self, self._keys[key])
        record_id = self._new_record_id()
        self._keys[key] = record_id
        self._record_keys[record_id] = key
        return Record(self, record_id)

    def record_for(self, value: Any) -> Record | None:
        """Turn a reference value (record, key or id) into a record of this table."""
        if isinstance(value, Record):
            return value
        if value is None or value == "":
            return None
        if self.support_key:
            return self.add(value)
        record_id = int(value)
        while self._next_record_id <= record_id:
            self.add()
        return Record(self, record_id)

    def define_column(self, name: str, value_type: Any, vector: bool = False) -> MemoryColumn:
        self._check_column_name(name)
        range = self.database.lookup(value_type)
        column = MemoryColumn(self.database, self, name, range, vector=vector)
        self._columns[name] = column
        self.database._register(column)
        return column

    def define_index_column(
        self,
        name: str,
        target_table: Any,
        sources: Sequence[Any] = (),
        with_section: bool = False,
        with_weight: bool = False,
        with_position: bool = False,
    ) -> MemoryIndexColumn:
        self._check_column_name(name)
        target = self.database.lookup(target_table)
        if target.object_type is not ObjectType.TABLE:
            raise ValueError(f"index target must be a table: {target.name}")
        column = MemoryIndexColumn(
            self.database,
            self,
            name,
            target,
            with_section=with_section,
            with_weight=with_weight,
            with_position=with_position,
        )
        column.sources = [self.database.lookup(source) for source in sources]
        self._columns[name] = column
        self.database._register(column)
        return column

    def _check_column_name(self, name: str) -> None:
        if name in self._columns or name.startswith("_"):
            raise ValueError(f"column already exists or is reserved: {self.name}.{name}")

    def _new_record_id(self) -> int:
        record_id = self._next_record_id
        self._next_record_id += 1
        return record_id


def _sort_key(value: Any) -> tuple:
    if isinstance(value, Record):
        value = value.key if value.support_key else value.id
    return (value is None, value if value is not None else 0)


class MemoryDatabase:
    """Dict-backed database implementing the ``Database`` protocol.

    Args:
        encoding: Text encoding used to decode raw ``bytes`` values.
        plugins_dir: Directory plugin names are resolved against.
        plugin_suffix: File suffix appended to plugin names.
    """

    def __init__(
        self,
        encoding: str = "utf-8",
        plugins_dir: str = "/usr/lib/columnar/plugins",
        plugin_suffix: str = ".so",
    ):
        self.encoding = encoding
        self.plugins_dir = plugins_dir
        self.plugin_suffix = plugin_suffix
        self._objects: dict[int, MemoryObject] = {}
        self._names: dict[str, int] = {}
        self._next_id = 1

        for name in BUILTIN_TYPES:
            self._register(MemoryType(self, name))
        for name in BUILTIN_TOKENIZERS:
            self._register(MemoryProcedure(self, name, builtin=True))
        self._next_id = FIRST_USER_ID

    def __getitem__(self, name: str) -> MemoryObject:
        obj = self.resolve(name)
        if obj is None:
            raise KeyError(name)
        return obj

    def __contains__(self, name: str) -> bool:
        return name in self._names

    def objects(
        self,
        order_by: Literal["id", "key"] = "id",
        ignore_missing: bool = True,
    ) -> Iterator[MemoryObject]:
        if order_by == "key":
            object_ids = [self._names[name] for name in sorted(self._names)]
        else:
            object_ids = sorted(self._objects)
        for object_id in object_ids:
            obj = self._objects.get(object_id)
            if obj is None:
                if ignore_missing:
                    continue
                raise KeyError(f"object removed during iteration: id={object_id}")
            yield obj

    def resolve(self, name: str) -> MemoryObject | None:
        object_id = self._names.get(name)
        if object_id is None:
            return None
        return self._objects.get(object_id)

    def lookup(self, value: Any) -> MemoryObject:
        """Resolve a name to an object; objects are returned unchanged."""
        if isinstance(value, MemoryObject):
            return value
        obj = self.resolve(str(value))
        if obj is None:
            raise KeyError(f"unknown object: {value}")
        return obj

    def create_table(
        self,
        name: str,
        variant: TableVariant = TableVariant.NO_KEY,
        key_type: Any = None,
        value_type: Any = None,
        normalize_key: bool = False,
        key_with_sis: bool = False,
        default_tokenizer: Any = None,
        force: bool = False,
    ) -> MemoryTable:
        if name in self._names:
            if not force:
                raise ValueError(f"object already exists: {name}")
            self.remove(name)
        if variant is TableVariant.NO_KEY and key_type is not None:
            raise ValueError(f"{name}: a table without key cannot have a key type")

        table = MemoryTable(
            self,
            name,
            variant,
            domain=self.lookup(key_type) if key_type is not None else None,
            range=self.lookup(value_type) if value_type is not None else None,
            normalize_key=normalize_key,
            register_key_with_sis=key_with_sis and variant is TableVariant.PAT_KEY,
            default_tokenizer=(
                self.lookup(default_tokenizer) if default_tokenizer is not None else None
            ),
        )
        self._register(table)
        return table

    def define_procedure(
        self, name: str, path: str | None = None, builtin: bool = False
    ) -> MemoryProcedure:
        procedure = MemoryProcedure(self, name, builtin=builtin, path=path)
        self._register(procedure)
        return procedure

    def register_plugin(self, name: str) -> MemoryProcedure:
        if name.startswith("/"):
            path = name
        else:
            path = f"{self.plugins_dir}/{name}{self.plugin_suffix}"
        for obj in self._objects.values():
            if obj.object_type is ObjectType.PROCEDURE and obj.path == path:
                return obj
        return self.define_procedure(name, path=path)

    def remove(self, name: str) -> None:
        """Remove an object; removing a table removes its columns too."""
        obj = self[name]
        if obj.object_type is ObjectType.TABLE:
            for column in obj.columns:
                self._unregister(column)
        elif obj.object_type in (ObjectType.COLUMN, ObjectType.INDEX_COLUMN):
            del obj.table._columns[obj.local_name]
        self._unregister(obj)

    def _register(self, obj: MemoryObject) -> None:
        obj.id = self._next_id
        self._next_id += 1
        self._objects[obj.id] = obj
        self._names[obj.name] = obj.id

    def _unregister(self, obj: MemoryObject) -> None:
        self._objects.pop(obj.id, None)
        self._names.pop(obj.name, None)
