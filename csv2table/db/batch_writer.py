from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

import pymysql

from .errors import WriteError
from .escape import quote_identifier

"""Batched multi-row INSERT writer.

Rows arrive as rendered VALUES literals (escaped once, by the caller) and are
accumulated until bulk_insert_size is reached, then written with a single
INSERT statement. Insert round-trips are therefore rows / bulk_insert_size.

A failed INSERT is not retried row by row. The destination rejects the batch
as a whole, so WriteError only reports the row range of the batch.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "BatchWriter",
    "BatchMetrics",
]


@dataclass(frozen=True)
class BatchMetrics:
    """Metrics data for a single batch INSERT."""
    batch_size: int  # Number of rows in this batch
    elapsed_seconds: float  # Time spent executing the INSERT
    start_time: float  # Start timestamp (time.time())
    end_time: float  # End timestamp (time.time())


class BatchWriter:
    """Accumulates row literals and flushes them as multi-row INSERTs.

    Parameters
    ----------
    connection: DB-API connection (autocommit)
    table: 出力先テーブル名 (エスケープ済み)
    columns: 挿入列 (エスケープ済み, ヘッダ順)
    bulk_insert_size: rows per INSERT; reaching it triggers a flush
    metrics_callback: receives BatchMetrics after every executed INSERT
    verbose: log every INSERT at INFO instead of DEBUG
    """

    def __init__(
        self,
        connection: Any,
        table: str,
        columns: Sequence[str],
        bulk_insert_size: int,
        metrics_callback: Callable[[BatchMetrics], None] | None = None,
        verbose: bool = False,
    ) -> None:
        if bulk_insert_size < 1:
            raise ValueError(f"bulk_insert_size must be >= 1, got {bulk_insert_size}")
        self._connection = connection
        self._table = table
        self._columns = list(columns)
        self._bulk_insert_size = bulk_insert_size
        self._metrics_callback = metrics_callback
        self._step_level = logging.INFO if verbose else logging.DEBUG

        self._batch: list[str] = []
        self.written_rows = 0
        self.flush_count = 0

    @property
    def pending(self) -> int:
        """Number of rows waiting for the next flush."""
        return len(self._batch)

    def append(self, row_literal: str) -> None:
        """Queue one rendered row; flushes synchronously when the batch is full."""
        self._batch.append(row_literal)
        if len(self._batch) >= self._bulk_insert_size:
            self.flush()

    def flush(self) -> int:
        """Write the pending batch with one INSERT.

        Returns:
            Number of rows written (0 if nothing was pending)

        Raises:
            WriteError: If the INSERT fails. The batch stays pending.
        """
        if not self._batch:
            return 0

        size = len(self._batch)
        first_row = self.written_rows + 1
        logger.log(self._step_level, f"Insert {size} rows into {self._table}")

        sql = self.insert_sql()
        start_time = time.time()
        try:
            with self._connection.cursor() as cursor:
                cursor.execute(sql)
        except pymysql.MySQLError as e:
            raise WriteError(str(e), first_row=first_row, last_row=first_row + size - 1) from e
        finally:
            end_time = time.time()
            if self._metrics_callback is not None:
                self._metrics_callback(
                    BatchMetrics(
                        batch_size=size,
                        elapsed_seconds=end_time - start_time,
                        start_time=start_time,
                        end_time=end_time,
                    )
                )

        self.written_rows += size
        self.flush_count += 1
        self._batch.clear()  # 再確保せずに再利用
        return size

    def close(self) -> int:
        """Flush the trailing partial batch at end of stream."""
        return self.flush()

    def insert_sql(self) -> str:
        cols = ",".join(quote_identifier(c) for c in self._columns)
        values = ",\n".join(self._batch)
        return f"INSERT INTO {quote_identifier(self._table)} ({cols}) VALUES\n{values}"
