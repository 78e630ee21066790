from __future__ import annotations

import re
from pathlib import Path

import pytest

from livestock_import.cli import main as cli_main

"""SUMMARY line contract: exactly one line, fixed key order, no scientific notation."""

SUMMARY_REGEX = re.compile(
    r"^SUMMARY files=(\d+)/\1 success=(\d+) failed=(\d+) rows=(\d+) records=(\d+) "
    r"written=(\d+) batches=(\d+) elapsed_sec=(\d+(?:\.\d+)?) throughput_rps=(\d+(?:\.\d+)?)$"
)


@pytest.fixture
def mock_mode(monkeypatch):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")


def _summary_lines(out: str) -> list[str]:
    return [line for line in out.splitlines() if line.startswith("SUMMARY")]


def test_summary_line_matches_contract(write_config: Path, write_csv, jane_doe_csv, mock_mode, capsys):
    a = write_csv("a.csv", jane_doe_csv)
    b = write_csv("b.csv", "ID Number,Live Weight 1\n1,30\n2,31\n")

    code = cli_main(["import", str(a), str(b), "--collection", "offtakes", "--role", "chief-admin"])

    [line] = _summary_lines(capsys.readouterr().out)
    match = SUMMARY_REGEX.match(line)
    assert code == 0
    assert match, line
    files, success, failed, rows, records, written, batches = (int(match.group(i)) for i in range(1, 8))
    assert (files, success, failed) == (2, 2, 0)
    assert (rows, records, written) == (3, 3, 3)
    assert batches == 2
    assert "e" not in match.group(8) + match.group(9)


def test_summary_line_on_partial_failure(write_config: Path, write_csv, jane_doe_csv, mock_mode, capsys):
    good = write_csv("good.csv", jane_doe_csv)
    bad = write_csv("bad.csv", "nothing useful\n")

    cli_main(["import", str(good), str(bad), "--collection", "offtakes", "--role", "chief-admin"])

    [line] = _summary_lines(capsys.readouterr().out)
    match = SUMMARY_REGEX.match(line)
    assert match, line
    assert match.group(2) == "1"
    assert match.group(3) == "1"


def test_no_summary_when_denied(write_config: Path, write_csv, jane_doe_csv, mock_mode, capsys):
    path = write_csv("a.csv", jane_doe_csv)
    cli_main(["import", str(path), "--collection", "offtakes", "--role", "viewer"])
    assert _summary_lines(capsys.readouterr().out) == []
