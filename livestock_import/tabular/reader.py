from __future__ import annotations

import json
import re
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd

"""Source readers: line decoding for CSV text, workbook and JSON inputs.

The CSV decoder is deliberately tolerant rather than RFC-4180 complete:
- lines split on LF or CRLF, blank lines dropped
- commas inside double quotes do not separate fields
- a doubled quote inside a quoted field is a literal quote
- an unterminated quote runs to the end of the line (kept as text)

No header/data distinction is made here; the caller hands row 0 to the
header normalizer.
"""

__all__ = [
    "MalformedInputError",
    "MissingIdentityColumnError",
    "RawRow",
    "split_lines",
    "split_fields",
    "decode_rows",
    "require_data_rows",
    "read_workbook_rows",
    "load_json_records",
    "read_source_rows",
    "CSV_SUFFIXES",
    "WORKBOOK_SUFFIXES",
    "JSON_SUFFIXES",
]

RawRow = list[str]

CSV_SUFFIXES = frozenset({".csv", ".txt"})
WORKBOOK_SUFFIXES = frozenset({".xlsx", ".xlsm"})
JSON_SUFFIXES = frozenset({".json"})

_LINE_BREAK = re.compile(r"\r?\n")


class MalformedInputError(Exception):
    """Raised when a file cannot be imported at all (nothing is written)."""


class MissingIdentityColumnError(MalformedInputError):
    """Raised when a required column (e.g. ID Number) is absent from the header."""


def split_lines(text: str) -> list[str]:
    """Split text on LF / CRLF and drop blank (whitespace-only) lines."""
    return [line for line in _LINE_BREAK.split(text) if line.strip()]


def split_fields(line: str) -> RawRow:
    """Split one line into fields, honouring double-quoted sections."""
    fields: RawRow = []
    current: list[str] = []
    in_quotes = False
    i = 0
    length = len(line)
    while i < length:
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < length and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
        i += 1
    fields.append("".join(current))
    return fields


def decode_rows(text: str) -> list[RawRow]:
    """Decode CSV text into rows of raw (untrimmed) cells."""
    return [split_fields(line) for line in split_lines(text)]


def require_data_rows(rows: list[RawRow], source: str) -> None:
    """Reject inputs without a header row plus at least one data row."""
    if len(rows) < 2:
        raise MalformedInputError(
            f"'{source}' is empty or has no data rows (found {len(rows)} non-blank line(s))"
        )


def _cell_text(value: Any) -> str:
    """Render a workbook cell the way it would appear in a CSV export."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        if (value.hour, value.minute, value.second, value.microsecond) == (0, 0, 0, 0):
            return value.strftime("%Y-%m-%d")
        return value.isoformat()
    return str(value)


def read_workbook_rows(path: Path, sheet_name: str | int = 0) -> list[RawRow]:
    """Read one sheet of an Excel workbook as rows of text cells.

    The first row is the header row. Rows whose cells are all empty are
    dropped, matching the blank-line rule of the CSV decoder.
    """
    xls = pd.ExcelFile(path)
    df = xls.parse(sheet_name, header=None, keep_default_na=False, na_values=[])
    rows: list[RawRow] = []
    for raw in df.itertuples(index=False, name=None):
        cells = [_cell_text(v) for v in raw]
        if not any(c.strip() for c in cells):
            continue
        rows.append(cells)
    return rows


def load_json_records(text: str, source: str) -> list[dict[str, Any]]:
    """Parse a JSON array of flat objects.

    Raises:
        MalformedInputError: invalid JSON, a top level other than an array,
            non-object elements, or an empty array
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedInputError(f"'{source}' is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise MalformedInputError(f"'{source}' must contain a JSON array of objects")
    if not data:
        raise MalformedInputError(f"'{source}' contains no records")
    bad = [i for i, item in enumerate(data) if not isinstance(item, dict)]
    if bad:
        raise MalformedInputError(f"'{source}' has non-object elements at positions {bad[:5]}")
    return data


def read_source_rows(path: Path) -> list[RawRow]:
    """Read a CSV or workbook file into raw rows (header row first)."""
    suffix = path.suffix.lower()
    if suffix in WORKBOOK_SUFFIXES:
        return read_workbook_rows(path)
    if suffix in CSV_SUFFIXES:
        text = path.read_text(encoding="utf-8", errors="replace")
        return decode_rows(text)
    raise MalformedInputError(f"unsupported file type '{path.suffix}' for '{path.name}'")
