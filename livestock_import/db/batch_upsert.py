from __future__ import annotations

import json
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2.extras import execute_values

"""Batched document upsert / delete against the documents table.

Rows are (path, parent, value) triples; value is serialized to JSON text and
cast to jsonb on the server. One call issues one execute_values statement per
page; the caller owns the transaction boundary.

Table layout:
    path   TEXT PRIMARY KEY  -- "offtakes/-NxY..."
    parent TEXT NOT NULL     -- "offtakes"
    value  JSONB NOT NULL
"""

__all__ = [
    "BatchUpsertError",
    "UpsertResult",
    "DocumentRow",
    "validate_table_name",
    "batch_upsert",
    "batch_delete",
]

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

DocumentRow = tuple[str, str, Any]


class BatchUpsertError(Exception):
    pass


@dataclass(frozen=True)
class UpsertResult:
    upserted_rows: int


def validate_table_name(table: str) -> str:
    if not _IDENTIFIER.match(table):
        raise BatchUpsertError(f"invalid table name: {table!r}")
    return table


def batch_upsert(
    cursor: Any,
    table: str,
    rows: Iterable[DocumentRow],
    page_size: int = 1000,
) -> UpsertResult:
    """Insert or replace documents using psycopg2.extras.execute_values.

    Parameters
    ----------
    cursor: psycopg2 cursor
    table: documents table (validated identifier)
    rows: (path, parent, value) triples; value must be JSON-serializable
    page_size: execute_values page_size
    """
    validate_table_name(table)
    try:
        rows_list = [(path, parent, json.dumps(value, ensure_ascii=False)) for path, parent, value in rows]
    except (TypeError, ValueError) as e:
        raise BatchUpsertError(f"value is not JSON-serializable: {e}") from e
    if not rows_list:
        return UpsertResult(upserted_rows=0)

    sql = (
        f"INSERT INTO {table} (path, parent, value) VALUES %s "
        "ON CONFLICT (path) DO UPDATE SET parent = EXCLUDED.parent, value = EXCLUDED.value"
    )
    try:
        execute_values(cursor, sql, rows_list, template="(%s, %s, %s::jsonb)", page_size=page_size)
    except Exception as e:
        raise BatchUpsertError(str(e)) from e
    return UpsertResult(upserted_rows=len(rows_list))


def batch_delete(cursor: Any, table: str, paths: Sequence[str]) -> int:
    """Delete documents at `paths` and everything below them.

    Returns:
        Number of rows removed (cursor.rowcount; 0 when unknown)
    """
    validate_table_name(table)
    if not paths:
        return 0
    sql = (
        f"DELETE FROM {table} WHERE path = ANY(%s) OR EXISTS ("
        "SELECT 1 FROM unnest(%s::text[]) AS p(prefix) "
        "WHERE left(path, length(p.prefix) + 1) = p.prefix || '/')"
    )
    try:
        cursor.execute(sql, (list(paths), list(paths)))
    except Exception as e:
        raise BatchUpsertError(str(e)) from e
    return max(cursor.rowcount or 0, 0)
