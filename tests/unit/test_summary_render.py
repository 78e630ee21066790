from __future__ import annotations

import re
from datetime import datetime, timezone

import pytest

from livestock_import.models.processing_result import BatchStatsAccumulator, ProcessingResult
from livestock_import.services.summary import format_metric, render_summary_line

SUMMARY_PATTERN = re.compile(
    r"^SUMMARY files=([0-9]+)/(\1) success=([0-9]+) failed=([0-9]+) rows=([0-9]+) "
    r"records=([0-9]+) written=([0-9]+) batches=([0-9]+) "
    r"elapsed_sec=([0-9]+\.?[0-9]*) throughput_rps=([0-9]+\.?[0-9]*)$"
)


def _result(**overrides) -> ProcessingResult:
    start = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
    end = datetime(2024, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
    values = dict(
        success_files=2,
        failed_files=0,
        total_rows=120,
        total_records=100,
        written_records=100,
        start_time=start,
        end_time=end,
        elapsed_seconds=2.0,
        throughput_records_per_sec=50.0,
        total_batches=1,
    )
    values.update(overrides)
    return ProcessingResult(**values)


def test_render_summary_line_all_success():
    line = render_summary_line(2, _result())
    match = SUMMARY_PATTERN.match(line)
    assert match, line
    assert match.group(1) == "2"
    assert match.group(3) == "2"
    assert match.group(4) == "0"
    assert match.group(5) == "120"
    assert match.group(6) == "100"
    assert match.group(7) == "100"
    assert match.group(8) == "1"
    assert match.group(9) == "2"
    assert match.group(10) == "50"


def test_render_summary_line_partial_write():
    result = _result(success_files=1, failed_files=1, written_records=40,
                     elapsed_seconds=3.0, throughput_records_per_sec=40 / 3)
    line = render_summary_line(2, result)
    assert SUMMARY_PATTERN.match(line), line
    assert "failed=1" in line
    assert "written=40" in line
    assert "throughput_rps=13.333" in line
    assert result.partial


def test_render_summary_line_zero_files():
    result = _result(success_files=0, total_rows=0, total_records=0, written_records=0,
                     elapsed_seconds=0.0, throughput_records_per_sec=0.0, total_batches=0)
    line = render_summary_line(0, result)
    assert line.startswith("SUMMARY files=0/0 success=0 failed=0 rows=0")
    assert SUMMARY_PATTERN.match(line)
    assert not result.partial


@pytest.mark.parametrize(
    "value,expected",
    [(0, "0"), (2.0, "2"), (1.23456, "1.235"), (0.00123, "0.00123"), (1e-9, "0")],
)
def test_format_metric_never_scientific(value, expected):
    assert format_metric(value) == expected


def test_batch_stats_accumulator():
    acc = BatchStatsAccumulator()
    assert acc.get_stats() == (0, 0.0, 0.0)
    acc.add_batch_time(0.5)
    assert acc.get_stats() == (1, 0.5, 0.5)
    for t in (0.1, 0.2, 0.3):
        acc.add_batch_time(t)
    total, avg, p95 = acc.get_stats()
    assert total == 4
    assert avg == pytest.approx(0.275)
    assert 0.3 <= p95 <= 0.5
