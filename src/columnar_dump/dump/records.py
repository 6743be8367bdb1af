"""Record dump as a bulk-load payload.

Writes one table's records in the ``load`` command format:

    load --table Users
    [
    ["_key","age","friends"],
    ["alice",29,["bob","carol"]],
    ["bob",31,[]]
    ]

Values are resolved recursively: vectors element-wise, references to
the referenced record's key (or id for tables without key), timestamps
to float seconds, geo points to their ``"LATxLNG"`` literal, ``None`` to
``""``.  Text is checked character by character; invalid byte sequences
are dropped and reported on the error stream, never raised.

Usage:
    from columnar_dump.dump.records import TableDumper

    text = TableDumper(database["Users"], error_output=sys.stderr).dump()
"""

import io
import json
import logging
from collections.abc import Iterator
from datetime import datetime
from typing import Any, TextIO

from columnar_dump.adapters.base import Column, GeoPoint, ObjectType, Record, Table

logger = logging.getLogger(__name__)

# Lone surrogates produced by the "surrogateescape" error handler
_ESCAPED_BYTE_MIN = 0xDC80
_ESCAPED_BYTE_MAX = 0xDCFF


class MalformedValueError(ValueError):
    """Raised when a value keeps resolving to further references."""


def _json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _each_char(value: str | bytes, encoding: str) -> Iterator[tuple[str | None, bytes | None]]:
    """Yield ``(char, None)`` for valid characters, ``(None, raw)`` for invalid ones.

    Undecodable ``bytes`` are split into maximal invalid subparts, so a
    truncated multi-byte sequence is one invalid character.
    """
    if isinstance(value, str):
        for char in value:
            if "\ud800" <= char <= "\udfff":
                code = ord(char)
                if _ESCAPED_BYTE_MIN <= code <= _ESCAPED_BYTE_MAX:
                    yield None, bytes([code - 0xDC00])
                else:
                    yield None, char.encode("utf-8", "surrogatepass")
            else:
                yield char, None
        return

    position = 0
    while position < len(value):
        try:
            text = value[position:].decode(encoding)
        except UnicodeDecodeError as e:
            for char in value[position:position + e.start].decode(encoding):
                yield char, None
            yield None, value[position + e.start:position + e.end]
            position += e.end
        else:
            for char in text:
                yield char, None
            return


def _inspect_invalid_char(raw: bytes) -> str:
    return " ".join(f"{byte:#x}" for byte in raw)


class TableDumper:
    """Dumps one table's records.

    Args:
        table: Table to dump.
        output: Stream to write to.  When ``None`` the payload is returned.
        error_output: Stream for invalid-encoding warnings.  When ``None``
            they go to the module logger.
        order_by: Record ordering field (``None`` for natural id order).
        max_resolve_depth: Nesting bound for value resolution.
    """

    def __init__(
        self,
        table: Table,
        output: TextIO | None = None,
        error_output: TextIO | None = None,
        order_by: str | None = None,
        max_resolve_depth: int = 32,
    ):
        self._table = table
        self._output = output
        self._buffer = output if output is not None else io.StringIO()
        self._error_output = error_output
        self._order_by = order_by
        self._max_resolve_depth = max_resolve_depth

    def dump(self) -> str | None:
        self._write(f"load --table {self._table.name}\n")
        self._write("[\n")
        columns = self.available_columns()
        self._dump_columns(columns)
        count = self._dump_records(columns)
        self._write("\n]\n")
        logger.debug("Dumped %d records from %s", count, self._table.name)

        if self._output is not None:
            return None
        return self._buffer.getvalue()

    def available_columns(self) -> list[Column]:
        """Key (or id), value when declared, then data columns by local name."""
        columns = []
        if self._table.support_key:
            columns.append(self._table.column("_key"))
        else:
            columns.append(self._table.column("_id"))
        if self._table.range is not None:
            columns.append(self._table.column("_value"))
        data_columns = [
            column
            for column in self._table.columns
            if column.object_type is not ObjectType.INDEX_COLUMN
        ]
        columns.extend(sorted(data_columns, key=lambda column: column.local_name))
        return columns

    def resolve_value(self, record: Record, column: Column, value: Any, depth: int = 0) -> Any:
        """Convert a raw stored value into its JSON form.

        Raises:
            MalformedValueError: If resolution nests deeper than
                ``max_resolve_depth`` (a reference cycle through keys).
        """
        if depth > self._max_resolve_depth:
            raise MalformedValueError(
                f"value of {record.table.name}[{record.id}].{column.local_name} "
                f"nests deeper than {self._max_resolve_depth} levels"
            )

        if isinstance(value, (list, tuple)):
            return [self.resolve_value(record, column, v, depth + 1) for v in value]
        if isinstance(value, Record):
            # Keys may themselves be references, so resolve again
            value = value.key if value.support_key else value.id
            return self.resolve_value(record, column, value, depth + 1)
        if isinstance(value, GeoPoint):
            return str(value)
        if isinstance(value, datetime):
            # TODO: emit a UTC time literal once the load command accepts one
            return value.timestamp()
        if value is None:
            # load does not accept null for reference columns
            return ""
        if isinstance(value, (str, bytes)):
            return self._sanitize(record, column, value)
        return value

    def _dump_columns(self, columns: list[Column]) -> None:
        self._write(_json([column.local_name for column in columns]))

    def _dump_records(self, columns: list[Column]) -> int:
        count = 0
        for record in self._table.records(order_by=self._order_by):
            self._write(",\n")
            values = [
                self.resolve_value(record, column, column.value(record.id))
                for column in columns
            ]
            self._write(_json(values))
            count += 1
        return count

    def _sanitize(self, record: Record, column: Column, value: str | bytes) -> str:
        sanitized = []
        for char, invalid in _each_char(value, self._table.encoding):
            if invalid is None:
                sanitized.append(char)
                continue
            self._error_write(
                "warning: ignore invalid encoding character: "
                f"<{record.table.name}[{record.id}].{column.local_name}>: "
                f"<{_inspect_invalid_char(invalid)}>: "
                f"before: <{''.join(sanitized)}>\n"
            )
        return "".join(sanitized)

    def _write(self, content: str) -> None:
        self._buffer.write(content)

    def _error_write(self, content: str) -> None:
        if self._error_output is None:
            logger.warning(content.rstrip("\n"))
            return
        self._error_output.write(content)
