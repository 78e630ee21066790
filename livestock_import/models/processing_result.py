from __future__ import annotations

import statistics
from dataclasses import dataclass
from datetime import datetime

"""Processing result models for the livestock import pipeline.

Defines per-file statistics, the aggregated run result rendered as the
SUMMARY line, the Progress value emitted after every written chunk and the
terminal PersistResult signal.
"""

__all__ = [
    "FileStat",
    "ProcessingResult",
    "Progress",
    "PersistResult",
    "BatchStatsAccumulator",
]


@dataclass(frozen=True)
class FileStat:
    """Per-file parsing statistics."""
    file_name: str
    status: str  # success/failed
    rows_read: int  # data rows (header excluded, blank lines dropped)
    rows_used: int  # rows that contributed at least one record or unit
    records: int  # records produced from this file
    elapsed_seconds: float
    error: str | None = None


@dataclass(frozen=True)
class ProcessingResult:
    """Aggregated results of one import run (SUMMARY line source)."""
    success_files: int
    failed_files: int
    total_rows: int  # data rows read across all files
    total_records: int  # records produced by parsing
    written_records: int  # records committed to the store
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    throughput_records_per_sec: float  # written / elapsed
    file_stats: list[FileStat] | None = None
    total_batches: int = 0
    avg_batch_seconds: float = 0.0
    p95_batch_seconds: float = 0.0
    error: str | None = None  # persistence or gate failure summary

    @property
    def partial(self) -> bool:
        """True when some, but not all, records were written."""
        return 0 < self.written_records < self.total_records


@dataclass(frozen=True)
class Progress:
    """Upload progress: records written so far out of the run total."""
    current: int
    total: int

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.current / self.total

    @property
    def complete(self) -> bool:
        return self.current == self.total


@dataclass(frozen=True)
class PersistResult:
    """Terminal signal of a persistence run, distinct from per-chunk Progress."""
    written: int
    total: int
    batches: int
    keys: tuple[str, ...] = ()  # generated destination keys, in record order


class BatchStatsAccumulator:
    """Accumulates chunk write timings for the run summary."""

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
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]  # 95th percentile

        return (total_batches, avg_batch_seconds, p95_batch_seconds)
