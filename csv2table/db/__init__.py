"""MySQL persistence layer: escaping, value coercion, schema and batched writes."""

from .base import DbService
from .batch_writer import BatchMetrics, BatchWriter
from .coercion import ValueCoercer
from .errors import (
    ColumnCountMismatchError,
    DbConnectionError,
    FormatError,
    ImportFileError,
    SchemaError,
    SessionStateError,
    WriteError,
)
from .schema import SchemaManager, TableSchema
from .session import MySqlImportSession, SessionState

__all__ = [
    "DbService",
    "MySqlImportSession",
    "SessionState",
    "SchemaManager",
    "TableSchema",
    "BatchWriter",
    "BatchMetrics",
    "ValueCoercer",
    # errors
    "ImportFileError",
    "DbConnectionError",
    "SchemaError",
    "FormatError",
    "ColumnCountMismatchError",
    "WriteError",
    "SessionStateError",
]
