from __future__ import annotations

import statistics
from dataclasses import dataclass
from datetime import datetime

"""Processing result models for the CSV -> MySQL import tool.

ImportFileStatus is the per-file outcome consumed by the summary line and by
the email notification; ProcessingResult aggregates a whole run.
"""


@dataclass(frozen=True)
class ImportFileStatus:
    """Outcome of importing one file.

    Includes batch-level timing statistics for performance analysis.
    """
    file_name: str
    error: str | None  # None = success
    row_count: int  # 書き込み済み行数
    elapsed_seconds: float = 0.0
    error_type: str | None = None
    total_batches: int = 0
    avg_batch_seconds: float = 0.0
    p95_batch_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ProcessingResult:
    """Aggregated results of one run, used for the SUMMARY output line."""
    success_files: int
    failed_files: int
    total_inserted_rows: int  # 成功ファイルの行数合計
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    throughput_rows_per_sec: float
    file_stats: list[ImportFileStatus] | None = None

    @property
    def total_files(self) -> int:
        return self.success_files + self.failed_files


class BatchStatsAccumulator:
    """Collects batch timings of one file and summarizes them."""

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Calculate batch statistics.

        Returns:
            tuple: (total_batches, avg_batch_seconds, p95_batch_seconds)
        """
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            # 20 分位の 19 番目 = p95
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]

        return (total_batches, avg_batch_seconds, p95_batch_seconds)
