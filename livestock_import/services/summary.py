from __future__ import annotations

from ..models.processing_result import ProcessingResult

"""SUMMARY line rendering.

Format:
SUMMARY files={total}/{total} success={success} failed={failed} rows={rows}
records={records} written={written} batches={batches} elapsed_sec={elapsed}
throughput_rps={throughput}
(one line, single spaces)
"""

__all__ = [
    "render_summary_line",
    "format_metric",
]


def format_metric(value: float) -> str:
    """Render a float without scientific notation; integral values as ints."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return str(round(value, 3))


def render_summary_line(total_files: int, result: ProcessingResult) -> str:
    """Render a SUMMARY line from ProcessingResult.

    Examples:
        >>> from datetime import datetime, timezone
        >>> start = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2024, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
        >>> result = ProcessingResult(
        ...     success_files=1, failed_files=0, total_rows=12, total_records=10,
        ...     written_records=10, start_time=start, end_time=end,
        ...     elapsed_seconds=2.0, throughput_records_per_sec=5.0, total_batches=1,
        ... )
        >>> render_summary_line(1, result)
        'SUMMARY files=1/1 success=1 failed=0 rows=12 records=10 written=10 batches=1 elapsed_sec=2 throughput_rps=5'
    """
    return (
        f"SUMMARY files={total_files}/{total_files} "
        f"success={result.success_files} "
        f"failed={result.failed_files} "
        f"rows={result.total_rows} "
        f"records={result.total_records} "
        f"written={result.written_records} "
        f"batches={result.total_batches} "
        f"elapsed_sec={format_metric(result.elapsed_seconds)} "
        f"throughput_rps={format_metric(result.throughput_records_per_sec)}"
    )
