"""Record and whole-database dumps, plus replay of command syntax dumps.

Usage:
    from columnar_dump.dump import DatabaseDumper, TableDumper, dump
    from columnar_dump.dump import restore_database, validate_dump
"""

from columnar_dump.dump.database import DatabaseDumper, dump
from columnar_dump.dump.records import MalformedValueError, TableDumper
from columnar_dump.dump.restore import RestoreError, restore_database, validate_dump

__all__ = [
    "DatabaseDumper",
    "dump",
    "TableDumper",
    "MalformedValueError",
    "RestoreError",
    "restore_database",
    "validate_dump",
]
