"""Store protocol definitions.

Defines the interface the dumpers and the schema DSL expect from a
columnar store: database object enumeration, table and column metadata,
record iteration, value reads, and the creation calls used when a staged
schema is committed.

All calls are synchronous and blocking.  Every object exposes an
``object_type`` so callers route on the kind of object instead of on its
concrete class.

Usage:
    from columnar_dump.adapters.base import Database, ObjectType

    def table_names(database: Database) -> list[str]:
        return [
            obj.name
            for obj in database.objects(order_by="key")
            if obj.object_type is ObjectType.TABLE
        ]
"""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Protocol


class ObjectType(Enum):
    """Kind of a named object stored in a database."""

    TYPE = "type"
    TABLE = "table"
    COLUMN = "column"
    INDEX_COLUMN = "index_column"
    PROCEDURE = "procedure"


class TableVariant(Enum):
    """Structural kind of a table.

    The values double as the ``type=`` option accepted by the schema DSL.
    """

    NO_KEY = "array"
    HASH_KEY = "hash"
    PAT_KEY = "patricia_trie"


class StoreObject(Protocol):
    """Anything addressable by name inside a database."""

    id: int
    name: str
    object_type: ObjectType


class Procedure(StoreObject, Protocol):
    """A procedure object (tokenizer, command, plugin function)."""

    builtin: bool
    path: str | None


@dataclass(frozen=True)
class Record:
    """Handle to one record of a table.

    Column values referencing another table are returned as ``Record``
    handles by every adapter.
    """

    table: "Table"
    id: int

    @property
    def support_key(self) -> bool:
        return self.table.support_key

    @property
    def key(self) -> Any:
        return self.table.key_of(self.id)


GEO_POINT_TYPES = ("TokyoGeoPoint", "WGS84GeoPoint")


@dataclass(frozen=True, order=True)
class GeoPoint:
    """A geographic point, latitude and longitude in milliseconds of arc.

    Values of ``TokyoGeoPoint`` and ``WGS84GeoPoint`` columns are returned
    as ``GeoPoint``; ``str()`` gives the ``"LATxLNG"`` literal that the
    ``load`` command accepts.

    Example:
        >>> str(GeoPoint(35681396, 139766049))
        '35681396x139766049'
    """

    latitude: int
    longitude: int

    def __str__(self) -> str:
        return f"{self.latitude}x{self.longitude}"

    @classmethod
    def parse(cls, value: Any) -> "GeoPoint":
        """Build a point from a ``"LATxLNG"`` string or a ``(lat, lng)`` pair.

        Raises:
            ValueError: If ``value`` is neither.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            latitude, separator, longitude = value.partition("x")
            if separator:
                return cls(int(latitude), int(longitude))
        elif isinstance(value, (list, tuple)) and len(value) == 2:
            return cls(int(value[0]), int(value[1]))
        raise ValueError(f"invalid geo point: {value!r}")


class Column(StoreObject, Protocol):
    """A data column or an index column of a table."""

    local_name: str
    table: "Table"
    range: StoreObject
    vector: bool
    with_section: bool
    with_weight: bool
    with_position: bool

    @property
    def scalar(self) -> bool:
        """True when the column stores one value per record."""
        ...

    @property
    def sources(self) -> Sequence[StoreObject]:
        """Indexed sources (columns, or the range table for its key)."""
        ...

    def value(self, record_id: int) -> Any:
        """Read the raw value stored for ``record_id``."""
        ...

    def set_value(self, record_id: int, value: Any) -> None:
        """Store ``value`` for ``record_id``."""
        ...


class Table(StoreObject, Protocol):
    """A table and its columns."""

    variant: TableVariant
    domain: StoreObject | None
    range: StoreObject | None
    normalize_key: bool
    register_key_with_sis: bool
    default_tokenizer: StoreObject | None
    encoding: str

    @property
    def support_key(self) -> bool:
        """True for hash and patricia trie tables."""
        ...

    @property
    def columns(self) -> list[Column]:
        """User-defined columns in definition order."""
        ...

    def __len__(self) -> int:
        ...

    def column(self, name: str) -> Column | None:
        """Look up a column by local name.

        Pseudo columns ``_id``, ``_key`` and ``_value`` are always
        available.
        """
        ...

    def key_of(self, record_id: int) -> Any:
        ...

    def records(self, order_by: str | None = None) -> Iterator[Record]:
        """Iterate records, by ``order_by`` field or in natural id order."""
        ...

    def add(self, key: Any = None) -> Record:
        """Add a record (or return the existing record with ``key``)."""
        ...

    def record_for(self, value: Any) -> Record | None:
        """Turn a record, key or id into a record, adding it when missing.

        Returns ``None`` for an empty reference (``None`` or ``""``).
        """
        ...

    def define_column(self, name: str, value_type: Any, vector: bool = False) -> Column:
        ...

    def define_index_column(
        self,
        name: str,
        target_table: Any,
        sources: Sequence[Any] = (),
        with_section: bool = False,
        with_weight: bool = False,
        with_position: bool = False,
    ) -> Column:
        ...


class Database(Protocol):
    """Database interface that all store adapters must implement."""

    encoding: str

    def objects(
        self,
        order_by: Literal["id", "key"] = "id",
        ignore_missing: bool = True,
    ) -> Iterator[StoreObject]:
        """Enumerate every object in the database.

        Args:
            order_by: ``"id"`` for creation order, ``"key"`` for name order.
            ignore_missing: Skip objects removed while iterating instead of
                raising ``KeyError``.
        """
        ...

    def resolve(self, name: str) -> StoreObject | None:
        """Find an object by name (``"Table"`` or ``"Table.column"``)."""
        ...

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
    ) -> Table:
        """Create a table.

        Raises:
            ValueError: If ``name`` is taken and ``force`` is false.
        """
        ...

    def register_plugin(self, name: str) -> Procedure:
        """Register a plugin by name or path."""
        ...
