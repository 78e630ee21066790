from __future__ import annotations

import asyncio
import copy
import json
import logging
import random
import string
import time
from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

import psycopg2

from .batch_upsert import BatchUpsertError, batch_delete, batch_upsert, validate_table_name

"""Document store collaborators.

The pipeline needs four operations from a path-addressed document tree:

- generate_key(collection_path) -> unique, time-ordered key
- multi_path_update({path: value}) -> all paths written together;
  a None value removes the path
- read_collection_by_equality(collection_path, field, value) -> {key: doc}
- subscribe(path, on_change) -> unsubscribe callable

InMemoryDocumentStore backs tests and mock mode. PostgresDocumentStore keeps
one row per document in a jsonb table.
"""

__all__ = [
    "StoreError",
    "DocumentStore",
    "PushKeyGenerator",
    "InMemoryDocumentStore",
    "PostgresDocumentStore",
    "split_path",
    "join_path",
]

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


class StoreError(Exception):
    """Raised when the store rejects or cannot complete an operation."""


@runtime_checkable
class DocumentStore(Protocol):
    def generate_key(self, collection_path: str) -> str: ...

    async def multi_path_update(self, updates: Mapping[str, Any]) -> None: ...

    async def read_collection_by_equality(
        self, collection_path: str, field: str, value: Any
    ) -> dict[str, Any]: ...

    def subscribe(self, path: str, on_change: Callable[[Any], None]) -> Unsubscribe: ...


def split_path(path: str) -> list[str]:
    parts = [p for p in path.split("/") if p]
    if not parts:
        raise StoreError(f"invalid path: {path!r}")
    return parts


def join_path(*parts: str) -> str:
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))


class PushKeyGenerator:
    """Chronologically sortable 20-character keys.

    8 characters of millisecond timestamp followed by 12 random characters.
    Keys generated within the same millisecond increment the random suffix,
    so keys stay unique and strictly increasing per generator.
    """

    ALPHABET = "-0123456789" + string.ascii_uppercase + "_" + string.ascii_lowercase

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ) -> None:
        self._clock = clock
        self._rng = rng or random.SystemRandom()
        self._last_millis = -1
        self._last_random: list[int] = [0] * 12

    def __call__(self) -> str:
        millis = int(self._clock() * 1000)
        if millis == self._last_millis:
            for i in range(11, -1, -1):
                if self._last_random[i] != 63:
                    self._last_random[i] += 1
                    break
                self._last_random[i] = 0
        else:
            self._last_random = [self._rng.randrange(64) for _ in range(12)]
        self._last_millis = millis

        stamp = []
        for _ in range(8):
            stamp.append(self.ALPHABET[millis % 64])
            millis //= 64
        return "".join(reversed(stamp)) + "".join(self.ALPHABET[i] for i in self._last_random)


class InMemoryDocumentStore:
    """Dict-tree document store.

    Every successful multi_path_update is recorded in `updates` (a copy of
    the request) so tests can assert on chunking.
    """

    def __init__(self, key_generator: PushKeyGenerator | None = None) -> None:
        self._root: dict[str, Any] = {}
        self._subscribers: dict[int, tuple[list[str], Callable[[Any], None]]] = {}
        self._next_token = 0
        self._keys = key_generator or PushKeyGenerator()
        self.updates: list[dict[str, Any]] = []

    def generate_key(self, collection_path: str) -> str:
        split_path(collection_path)
        return self._keys()

    def get(self, path: str = "") -> Any:
        node: Any = self._root
        for part in [p for p in path.split("/") if p]:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return copy.deepcopy(node)

    def _set(self, parts: list[str], value: Any) -> None:
        node = self._root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = copy.deepcopy(value)

    def _remove(self, parts: list[str]) -> None:
        trail: list[tuple[dict[str, Any], str]] = []
        node: Any = self._root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return
            trail.append((node, part))
            node = node[part]
        parent, last = trail.pop()
        del parent[last]
        # prune emptied ancestors
        while trail:
            parent, last = trail.pop()
            if parent[last]:
                break
            del parent[last]

    async def multi_path_update(self, updates: Mapping[str, Any]) -> None:
        parsed = [(split_path(path), value) for path, value in updates.items()]
        for parts, value in parsed:
            if value is None:
                self._remove(parts)
            else:
                self._set(parts, value)
        self.updates.append(dict(updates))
        self._notify([parts for parts, _ in parsed])

    async def read_collection_by_equality(
        self, collection_path: str, field: str, value: Any
    ) -> dict[str, Any]:
        collection = self.get(collection_path)
        if not isinstance(collection, dict):
            return {}
        return {
            key: doc
            for key, doc in collection.items()
            if isinstance(doc, dict) and doc.get(field) == value
        }

    def subscribe(self, path: str, on_change: Callable[[Any], None]) -> Unsubscribe:
        parts = split_path(path)
        token = self._next_token
        self._next_token += 1
        self._subscribers[token] = (parts, on_change)
        on_change(self.get(path))

        def unsubscribe() -> None:
            self._subscribers.pop(token, None)

        return unsubscribe

    def _notify(self, changed: list[list[str]]) -> None:
        for parts, on_change in list(self._subscribers.values()):
            affected = any(
                c[: len(parts)] == parts or parts[: len(c)] == c
                for c in changed
            )
            if affected:
                on_change(self.get("/".join(parts)))


class PostgresDocumentStore:
    """Document store on a PostgreSQL jsonb table.

    Every path in a multi_path_update addresses a whole document
    ("offtakes/<key>"); the update runs in one transaction. Blocking
    psycopg2 calls run in a worker thread.

    Change subscriptions are not available on this backend.
    """

    def __init__(
        self,
        dsn: str,
        table: str = "documents",
        *,
        key_generator: PushKeyGenerator | None = None,
        connect: Callable[[str], Any] = psycopg2.connect,
    ) -> None:
        self._dsn = dsn
        self._table = validate_table_name(table)
        self._connect = connect
        self._conn: Any = None
        self._keys = key_generator or PushKeyGenerator()

    @property
    def table(self) -> str:
        return self._table

    def _connection(self) -> Any:
        if self._conn is None or getattr(self._conn, "closed", False):
            try:
                self._conn = self._connect(self._dsn)
            except psycopg2.Error as e:
                raise StoreError(f"connection failed: {e}") from e
            self._conn.autocommit = False
        return self._conn

    def ensure_schema(self) -> None:
        conn = self._connection()
        try:
            with conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"CREATE TABLE IF NOT EXISTS {self._table} ("
                        "path TEXT PRIMARY KEY, parent TEXT NOT NULL, value JSONB NOT NULL)"
                    )
                    cur.execute(
                        f"CREATE INDEX IF NOT EXISTS {self._table}_parent_programme_idx "
                        f"ON {self._table} (parent, (value->>'programme'))"
                    )
        except psycopg2.Error as e:
            raise StoreError(f"schema setup failed: {e}") from e

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def generate_key(self, collection_path: str) -> str:
        split_path(collection_path)
        return self._keys()

    def _write(self, updates: Mapping[str, Any]) -> None:
        upserts = []
        deletes = []
        for path, value in updates.items():
            parts = split_path(path)
            normalized = "/".join(parts)
            if value is None:
                deletes.append(normalized)
            else:
                upserts.append((normalized, "/".join(parts[:-1]), value))

        conn = self._connection()
        try:
            with conn:
                with conn.cursor() as cur:
                    deleted = batch_delete(cur, self._table, deletes)
                    result = batch_upsert(cur, self._table, upserts, page_size=max(len(upserts), 1))
        except (psycopg2.Error, BatchUpsertError) as e:
            raise StoreError(f"multi-path update failed: {e}") from e
        logger.debug(f"store: upserted={result.upserted_rows} deleted={deleted}")

    async def multi_path_update(self, updates: Mapping[str, Any]) -> None:
        await asyncio.to_thread(self._write, dict(updates))

    def _read(self, collection_path: str, field: str, value: Any) -> dict[str, Any]:
        parent = "/".join(split_path(collection_path))
        text = value if isinstance(value, str) else json.dumps(value)
        conn = self._connection()
        try:
            with conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"SELECT path, value FROM {self._table} "
                        "WHERE parent = %s AND value->>%s = %s ORDER BY path",
                        (parent, field, text),
                    )
                    rows = cur.fetchall()
        except psycopg2.Error as e:
            raise StoreError(f"read failed: {e}") from e
        return {path.rsplit("/", 1)[-1]: doc for path, doc in rows}

    async def read_collection_by_equality(
        self, collection_path: str, field: str, value: Any
    ) -> dict[str, Any]:
        return await asyncio.to_thread(self._read, collection_path, field, value)

    def subscribe(self, path: str, on_change: Callable[[Any], None]) -> Unsubscribe:
        raise StoreError("change subscriptions are not supported by the PostgreSQL store")
