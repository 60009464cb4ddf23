from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..config.loader import ConfigError, load_file_config
from ..csvfile.reader import CsvReadError, iter_csv_rows, scan_csv_files
from ..db.base import DbService
from ..db.batch_writer import BatchMetrics
from ..db.errors import ImportFileError
from ..db.session import MySqlImportSession
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.processing_result import BatchStatsAccumulator, ImportFileStatus, ProcessingResult
from .progress import ProgressTracker

"""Service orchestration for the CSV -> MySQL import tool.

Scans a directory for CSV files and imports them one after the other, each
through its own import session. A failing file is logged, recorded in the
error log and reported in its ImportFileStatus; the run continues with the
next file.
"""

logger = logging.getLogger(__name__)

# metrics_callback を受け取り DbService を返す (MySqlImportSession 互換)
SessionFactory = Callable[..., DbService]

# Per-file failures: the file is marked failed and the run continues
FILE_ERRORS = (ImportFileError, ConfigError, CsvReadError)


class ProcessingError(Exception):
    """Fatal error that prevents the whole run (e.g. missing directory)."""


def import_file(
    csv_path: Path,
    global_document: Mapping[str, Any] | None,
    session_factory: SessionFactory = MySqlImportSession,
    error_log: ErrorLogBuffer | None = None,
    env: Mapping[str, str] | None = None,
) -> ImportFileStatus:
    """Import a single CSV file.

    Steps: resolve config, start session, header, data rows, end. On failure
    the session is closed without flushing its pending batch.

    Returns:
        ImportFileStatus with the written row count or the error
    """
    start_time = datetime.now(UTC)
    stats = BatchStatsAccumulator()
    session: DbService | None = None
    table = ""

    def on_batch(metrics: BatchMetrics) -> None:
        stats.add_batch_time(metrics.elapsed_seconds)

    rows = None
    try:
        config = load_file_config(csv_path, global_document, env=env)
        table = config.table
        session = session_factory(metrics_callback=on_batch)
        session.start(csv_path.name, config)

        rows = iter_csv_rows(csv_path, config.delimiter)
        header = next(rows, None)
        if header is None:
            raise CsvReadError(f"{csv_path.name} is empty (no header row)")
        session.process_header(header)

        for line in rows:
            session.process_line(line)

        session.end()
        status = _file_status(csv_path, start_time, stats, session)
    except FILE_ERRORS as e:
        error_type = getattr(e, "error_type", "IMPORT_ERROR")
        logger.error(f"{csv_path.name}: {e}")
        if error_log is not None:
            error_log.append(
                ErrorRecord.create(
                    file=csv_path.name,
                    table=table,
                    row=getattr(e, "row", -1),
                    error_type=error_type,
                    message=str(e),
                )
            )
        return _file_status(csv_path, start_time, stats, session, error=str(e), error_type=error_type)
    finally:
        if rows is not None:
            rows.close()
        # end() 済みでも close() は冪等
        if session is not None:
            session.close()

    logger.info(
        f"{csv_path.name}: imported {status.row_count} rows into {table} "
        f"(batches={status.total_batches} avg_batch_sec={status.avg_batch_seconds:.3f} "
        f"p95_batch_sec={status.p95_batch_seconds:.3f})"
    )
    return status


def _file_status(
    csv_path: Path,
    start_time: datetime,
    stats: BatchStatsAccumulator,
    session: DbService | None,
    error: str | None = None,
    error_type: str | None = None,
) -> ImportFileStatus:
    total_batches, avg_batch, p95_batch = stats.get_stats()
    return ImportFileStatus(
        file_name=csv_path.name,
        error=error,
        error_type=error_type,
        row_count=session.row_count if session is not None else 0,
        elapsed_seconds=(datetime.now(UTC) - start_time).total_seconds(),
        total_batches=total_batches,
        avg_batch_seconds=avg_batch,
        p95_batch_seconds=p95_batch,
    )


def process_all(
    directory: Path,
    global_document: Mapping[str, Any] | None,
    *,
    session_factory: SessionFactory = MySqlImportSession,
    error_log: ErrorLogBuffer | None = None,
    env: Mapping[str, str] | None = None,
    show_progress: bool | None = None,
) -> ProcessingResult:
    """Import every CSV file of a directory.

    Args:
        directory: Directory to scan (non-recursive)
        global_document: Validated global config document (None if absent)
        session_factory: Creates one DbService per file
        error_log: Error log buffer; flushed once at the end of the run
        env: Environment for connection fallbacks (default: os.environ)
        show_progress: Force the progress bar on/off (None = TTY detection)

    Raises:
        ProcessingError: If the directory cannot be scanned
    """
    start_time = datetime.now(UTC)
    error_log = error_log if error_log is not None else ErrorLogBuffer()

    try:
        file_paths = scan_csv_files(directory)
    except CsvReadError as e:
        raise ProcessingError(str(e)) from e

    if not file_paths:
        logger.info(f"no files found in {directory}")

    file_stats: list[ImportFileStatus] = []
    success_count = 0
    failed_count = 0
    total_rows = 0

    with ProgressTracker(len(file_paths), enabled=show_progress) as progress:
        for file_path in file_paths:
            progress.start_file(file_path)
            status = import_file(
                file_path,
                global_document,
                session_factory=session_factory,
                error_log=error_log,
                env=env,
            )
            if status.succeeded:
                success_count += 1
                total_rows += status.row_count
            else:
                failed_count += 1
            file_stats.append(status)

            progress.set_postfix(success=success_count, failed=failed_count, rows=total_rows)
            progress.finish_file(success=status.succeeded)

    try:
        log_path = error_log.flush()
        if log_path is not None:
            logger.info(f"error log written to {log_path}")
    except OSError as e:
        # エラーログ書き込み失敗で全体を失敗させない
        logger.warning(f"failed writing error log: {e}")

    end_time = datetime.now(UTC)
    elapsed_seconds = (end_time - start_time).total_seconds()
    throughput_rps = total_rows / elapsed_seconds if elapsed_seconds > 0 else 0.0

    return ProcessingResult(
        success_files=success_count,
        failed_files=failed_count,
        total_inserted_rows=total_rows,
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=elapsed_seconds,
        throughput_rows_per_sec=throughput_rps,
        file_stats=file_stats,
    )
