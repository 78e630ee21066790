from __future__ import annotations

import math
import re
import warnings
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import pandas as pd

"""Type coercion for cell values.

None of these functions raise on bad input: every coercion resolves to a
documented default so one bad cell never rejects a file.

- numbers: non-numeric noise is discarded, result is finite and >= 0
- booleans: {"yes", "true", "1"} (case-insensitive) are true
- dates: DateText | EpochMillis | EpochSeconds, tried in that order;
  failure is None ("unknown"), never epoch zero
- lists: ";"-separated, trimmed, empties dropped
"""

__all__ = [
    "coerce_number",
    "coerce_bool",
    "coerce_list",
    "DateText",
    "EpochMillis",
    "EpochSeconds",
    "DateInput",
    "classify_date_input",
    "parse_date",
    "to_epoch_millis",
    "format_display_date",
    "format_decimal",
    "TRUE_LITERALS",
    "LIST_DELIMITER",
    "DISPLAY_DATE_FORMAT",
]

TRUE_LITERALS = frozenset({"yes", "true", "1"})
LIST_DELIMITER = ";"
DISPLAY_DATE_FORMAT = "%d %b %Y"  # "12 Jan 2024"

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)")
_DIGITS_ONLY = re.compile(r"\d+")


def coerce_number(value: Any) -> float:
    """Coerce a cell to a non-negative finite float.

    "KES 1,200.50" -> 1200.5, "40kg" -> 40.0, "" -> 0.0, "-5" -> 0.0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        cleaned = _NON_NUMERIC.sub("", str(value))
        match = _LEADING_NUMBER.match(cleaned)
        if match is None:
            return 0.0
        try:
            number = float(match.group(0))
        except ValueError:
            return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def coerce_bool(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUE_LITERALS


def coerce_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [token.strip() for token in str(value).split(LIST_DELIMITER) if token.strip()]


def format_decimal(value: Any, places: int) -> str:
    """Canonical string numeric for a unit field; blank stays blank."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return ""
    return f"{coerce_number(value):.{places}f}"


# Date input variants


@dataclass(frozen=True)
class DateText:
    """Written date: ISO 8601 or common formats ("12 Jan 2024", "2024/01/12")."""
    text: str


@dataclass(frozen=True)
class EpochMillis:
    millis: float


@dataclass(frozen=True)
class EpochSeconds:
    """Store-native timestamp object ({"seconds": ...} or {"_seconds": ...})."""
    seconds: float


DateInput = DateText | EpochMillis | EpochSeconds


def classify_date_input(value: Any) -> list[DateInput]:
    """Candidate interpretations of a raw value, in parse order."""
    if value is None or isinstance(value, bool):
        return []
    if isinstance(value, Mapping):
        for key in ("seconds", "_seconds"):
            if key in value:
                try:
                    return [EpochSeconds(float(value[key]))]
                except (TypeError, ValueError):
                    return []
        return []
    if isinstance(value, (int, float)):
        return [EpochMillis(float(value))]
    text = str(value).strip()
    if not text:
        return []
    candidates: list[DateInput] = [DateText(text)]
    try:
        candidates.append(EpochMillis(float(text)))
    except ValueError:
        pass
    return candidates


def _localize(ts: pd.Timestamp, timezone: str) -> datetime | None:
    # wall-clock times in a DST gap shift forward; ambiguous ones are unknown
    if ts.tzinfo is None:
        try:
            ts = ts.tz_localize(timezone, nonexistent="shift_forward", ambiguous="NaT")
        except (ValueError, TypeError, OverflowError):
            return None
    if pd.isna(ts):
        return None
    return ts.to_pydatetime()


def _parse_text(candidate: DateText, timezone: str) -> datetime | None:
    # long digit runs are epoch numbers, not compact dates
    if _DIGITS_ONLY.fullmatch(candidate.text) and len(candidate.text) > 8:
        return None
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            ts = pd.to_datetime(candidate.text, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            return None
    if ts is None or pd.isna(ts):
        return None
    return _localize(ts, timezone)


def _parse_millis(millis: float, timezone: str) -> datetime | None:
    if not math.isfinite(millis):
        return None
    try:
        ts = pd.Timestamp(millis, unit="ms", tz="UTC")
    except (OverflowError, ValueError):
        return None
    return ts.tz_convert(timezone).to_pydatetime()


def _parse_candidate(candidate: DateInput, timezone: str) -> datetime | None:
    match candidate:
        case DateText():
            return _parse_text(candidate, timezone)
        case EpochMillis(millis=millis):
            return _parse_millis(millis, timezone)
        case EpochSeconds(seconds=seconds):
            return _parse_millis(seconds * 1000.0, timezone)
    return None


def parse_date(value: Any, timezone: str = "UTC") -> datetime | None:
    """Parse a raw date cell to an aware datetime, or None when unknown.

    Naive written dates are interpreted in ``timezone``.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return _localize(pd.Timestamp(value), timezone)
        return value
    for candidate in classify_date_input(value):
        parsed = _parse_candidate(candidate, timezone)
        if parsed is not None:
            return parsed
    return None


def to_epoch_millis(value: Any, timezone: str = "UTC") -> int | None:
    parsed = parse_date(value, timezone)
    if parsed is None:
        return None
    return int(parsed.timestamp() * 1000)


def format_display_date(value: Any, timezone: str = "UTC") -> str:
    """Display form ("12 Jan 2024"); raw text when the date is unknown."""
    parsed = parse_date(value, timezone)
    if parsed is None:
        return "" if value is None else str(value).strip()
    return parsed.strftime(DISPLAY_DATE_FORMAT)
