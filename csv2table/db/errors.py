from __future__ import annotations

"""Error taxonomy for a single file import.

Every error raised while a file is being imported derives from ImportFileError.
The driver catches the base class, marks the file as failed and continues with
the next file. ``error_type`` is the UPPER_SNAKE code written to the error log.
"""

__all__ = [
    "ImportFileError",
    "DbConnectionError",
    "SchemaError",
    "FormatError",
    "ColumnCountMismatchError",
    "WriteError",
    "SessionStateError",
]


class ImportFileError(Exception):
    """Base class for errors that abort the import of one file."""

    error_type = "IMPORT_ERROR"
    row: int = -1


class DbConnectionError(ImportFileError):
    """Connection could not be opened or failed the liveness probe."""

    error_type = "CONNECTION_ERROR"


class SchemaError(ImportFileError):
    """Existence check, DROP, TRUNCATE, CREATE or introspection failed."""

    error_type = "SCHEMA_ERROR"


class FormatError(ImportFileError):
    """A raw value could not be parsed with the column's format hint.

    Attributes:
        value: The offending raw value
        layout: The format hint used for parsing
        column: Column name (set by the session, None inside the coercer)
        row: 1-based data row number, -1 when unknown
    """

    error_type = "FORMAT_ERROR"

    def __init__(
        self,
        value: str,
        layout: str,
        column: str | None = None,
        row: int = -1,
        reason: str | None = None,
    ) -> None:
        self.value = value
        self.layout = layout
        self.column = column
        self.row = row
        self.reason = reason
        msg = f"cannot parse {value!r} with format {layout!r}"
        if column is not None:
            msg = f"column {column}: {msg}"
        if row > 0:
            msg = f"row {row}: {msg}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class ColumnCountMismatchError(ImportFileError):
    """A data row does not have as many cells as the header."""

    error_type = "COLUMN_COUNT_MISMATCH"

    def __init__(self, row: int, expected: int, actual: int) -> None:
        self.row = row
        self.expected = expected
        self.actual = actual
        super().__init__(f"row {row}: expected {expected} columns, got {actual}")


class WriteError(ImportFileError):
    """A multi-row INSERT failed.

    The destination rejects the batch as a whole, so only the row range of the
    failed batch is known, not the individual offending row.
    """

    error_type = "WRITE_ERROR"

    def __init__(self, message: str, first_row: int = -1, last_row: int = -1) -> None:
        self.first_row = first_row
        self.last_row = last_row
        self.row = first_row
        if first_row > 0:
            message = f"rows {first_row}-{last_row}: {message}"
        super().__init__(message)


class SessionStateError(ImportFileError):
    """A session operation was called out of order."""

    error_type = "SESSION_STATE_ERROR"
