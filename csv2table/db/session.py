from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from enum import Enum
from typing import Any

import pymysql

from ..csvfile.reader import sanitize_names
from ..models.column_type import SemanticColumnType
from ..models.config_models import ColumnMapping, ImportConfig
from .base import DbService
from .batch_writer import BatchMetrics, BatchWriter
from .coercion import ValueCoercer
from .errors import ColumnCountMismatchError, DbConnectionError, FormatError, SessionStateError
from .escape import escape_string, escape_strings, row_literal
from .schema import SchemaManager, TableSchema

"""MySQL implementation of the per-file import session.

Lifecycle (strictly linear, no way back):

    CREATED -> CONNECTED -> SCHEMA_READY -> STREAMING -> FLUSHED -> CLOSED

start() connects, process_header() prepares the table, process_line() streams
rows into the batch writer and end() flushes and disconnects. The connection
is released on every exit path: end() closes even when the final flush fails,
and the driver calls close() when an earlier step raised.

Rows are written in autocommit mode, batch by batch; a failure in the middle
of a file keeps the batches already written.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "MySqlImportSession",
    "SessionState",
]

CHARSET = "utf8mb4"


class SessionState(Enum):
    CREATED = "created"
    CONNECTED = "connected"
    SCHEMA_READY = "schema_ready"
    STREAMING = "streaming"
    FLUSHED = "flushed"
    CLOSED = "closed"


class MySqlImportSession(DbService):
    """Imports one CSV file into one MySQL table.

    Args:
        connect: Connection factory with pymysql.connect's signature
            (tests pass a fake)
        metrics_callback: Receives BatchMetrics for every INSERT
    """

    def __init__(
        self,
        connect: Callable[..., Any] | None = None,
        metrics_callback: Callable[[BatchMetrics], None] | None = None,
    ) -> None:
        self._connect = connect or pymysql.connect
        self._metrics_callback = metrics_callback
        self.state = SessionState.CREATED

        self.file_name = ""
        self.config: ImportConfig | None = None
        self.table = ""
        self.schema: TableSchema | None = None

        self._connection: Any = None
        self._columns: list[str] = []
        self._mappings: list[ColumnMapping] = []
        self._column_types: list[SemanticColumnType] = []
        self._coercer: ValueCoercer | None = None
        self._writer: BatchWriter | None = None
        self._lines = 0
        self._step_level = logging.DEBUG

    @property
    def row_count(self) -> int:
        return self._writer.written_rows if self._writer is not None else 0

    @property
    def lines_processed(self) -> int:
        return self._lines

    @property
    def columns(self) -> list[str]:
        return list(self._columns)

    def start(self, file_name: str, config: ImportConfig) -> None:
        self._require("start", SessionState.CREATED)
        self.file_name = file_name
        self.config = config
        self._step_level = logging.INFO if config.verbose else logging.DEBUG
        # テーブル名のエスケープはここで一度だけ
        self.table = escape_string(config.table)

        logger.log(self._step_level, f"Start importing {file_name}")

        db = config.database
        try:
            self._connection = self._connect(
                host=db.host,
                port=db.port,
                user=db.username or "",
                password=db.password or "",
                database=db.db,
                charset=CHARSET,
                autocommit=True,
            )
            self._connection.ping(reconnect=False)
        except (pymysql.MySQLError, OSError) as e:
            self.close()
            raise DbConnectionError(f"cannot connect to {db.host}:{db.port}/{db.db}: {e}") from e

        self.state = SessionState.CONNECTED

    def process_header(self, header: Sequence[str]) -> None:
        self._require("process_header", SessionState.CONNECTED)

        sanitized = sanitize_names(header)
        self._columns = escape_strings(sanitized)
        self._mappings = [self.config.column_mapping(name) for name in sanitized]

        manager = SchemaManager(self._connection, self.config)
        self.schema = manager.ensure_table(self.table, list(zip(self._columns, self._mappings)))
        self._column_types = [self.schema.column_types[c] for c in self._columns]

        self._coercer = ValueCoercer()
        self._writer = BatchWriter(
            self._connection,
            self.table,
            self._columns,
            self.config.bulk_insert_size,
            metrics_callback=self._metrics_callback,
            verbose=self.config.verbose,
        )
        self._lines = 0
        self.state = SessionState.SCHEMA_READY
        logger.log(self._step_level, f"Starting import into {self.table} ({len(self._columns)} columns)")

    def process_line(self, line: Sequence[str]) -> None:
        self._require("process_line", SessionState.SCHEMA_READY, SessionState.STREAMING)

        row_number = self._lines + 1
        if len(line) != len(self._columns):
            raise ColumnCountMismatchError(row_number, len(self._columns), len(line))

        values: list[str | None] = []
        for column, column_type, mapping, raw in zip(
            self._columns, self._column_types, self._mappings, line
        ):
            try:
                values.append(self._coercer.coerce(column_type, mapping, raw))
            except FormatError as e:
                raise FormatError(e.value, e.layout, column=column, row=row_number, reason=e.reason) from e

        self._writer.append(row_literal(values))
        self._lines = row_number
        self.state = SessionState.STREAMING

    def end(self) -> None:
        if self.state is SessionState.CLOSED:
            return
        try:
            if self.state in (SessionState.SCHEMA_READY, SessionState.STREAMING):
                self._writer.close()
                self.state = SessionState.FLUSHED
                logger.log(
                    self._step_level,
                    f"Finished {self.file_name}: {self.lines_processed} lines read, "
                    f"{self.row_count} rows written to {self.table}",
                )
        finally:
            self.close()

    def close(self) -> None:
        if self._connection is not None:
            try:
                self._connection.close()
            except pymysql.MySQLError as e:
                logger.warning(f"failed closing connection for {self.file_name}: {e}")
            finally:
                self._connection = None
        self.state = SessionState.CLOSED

    def _require(self, operation: str, *allowed: SessionState) -> None:
        if self.state not in allowed:
            raise SessionStateError(f"{operation}() not allowed in state {self.state.value}")

    def __enter__(self) -> MySqlImportSession:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
