from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable, Iterator, Sequence
from typing import Any

from ..db.store import DocumentStore, join_path
from ..models.processing_result import BatchStatsAccumulator, PersistResult, Progress
from ..models.records import FlatRecord, ImportBatch, Transaction
from ..tabular.coercion import coerce_number

"""Batch persistence engine.

The final record list is cut into fixed-size chunks. Each chunk becomes one
multi-path update {collection/<new key>: payload}; chunks are written
strictly in order, one at a time, and the event loop gets control back
between chunks.

write_chunks is an async generator: it yields Progress(0, total) before the
first write and Progress(written, total) after every committed chunk, so
`current` never decreases and ends at `total`. persist() drives it and
fires the terminal done callback.

A failed chunk stops the run with PersistenceError. Chunks written before it
stay written; nothing is rolled back.
"""

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "PersistenceError",
    "chunk_records",
    "record_payload",
    "write_chunks",
    "persist",
]

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 2000

PersistableRecord = Transaction | FlatRecord


class PersistenceError(Exception):
    """A chunk write failed; `written` records were committed before it."""

    def __init__(self, message: str, *, written: int, total: int, chunk_index: int) -> None:
        super().__init__(message)
        self.written = written
        self.total = total
        self.chunk_index = chunk_index


def chunk_records(records: Sequence[PersistableRecord], chunk_size: int) -> Iterator[ImportBatch]:
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1 (got {chunk_size})")
    for index, start in enumerate(range(0, len(records), chunk_size)):
        yield ImportBatch(index=index, start=start, records=records[start:start + chunk_size])


def record_payload(record: PersistableRecord) -> dict[str, Any]:
    """Stored document for one record.

    Offtake transactions get totalGoats / totalPrice derived from their units.
    """
    payload = record.to_payload()
    if isinstance(record, Transaction):
        payload["totalGoats"] = len(record.units)
        payload["totalPrice"] = sum(coerce_number(unit.price) for unit in record.units)
    return payload


async def write_chunks(
    store: DocumentStore,
    collection_path: str,
    records: Sequence[PersistableRecord],
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    invalidate: Callable[[], None] | None = None,
    stats: BatchStatsAccumulator | None = None,
    keys_out: list[str] | None = None,
) -> AsyncIterator[Progress]:
    """Write records chunk by chunk, yielding Progress.

    Args:
        store: Destination document store
        collection_path: Collection the new keys are created under
        records: Final record list (insertion order is write order)
        chunk_size: Records per multi-path update
        invalidate: Called after every committed chunk (read-side cache)
        stats: Receives the wall time of every chunk write
        keys_out: Receives generated keys, in record order

    Raises:
        PersistenceError: a chunk write failed; later chunks are not attempted
    """
    total = len(records)
    written = 0
    yield Progress(0, total)

    for batch in chunk_records(records, chunk_size):
        keys = [store.generate_key(collection_path) for _ in batch.records]
        updates = {
            join_path(collection_path, key): record_payload(record)
            for key, record in zip(keys, batch.records, strict=True)
        }
        started = time.perf_counter()
        try:
            await store.multi_path_update(updates)
        except Exception as e:
            logger.debug(f"chunk {batch.index} failed after {written}/{total} records", exc_info=True)
            raise PersistenceError(
                f"chunk {batch.index + 1} write failed after {written} of {total} records: {e}",
                written=written,
                total=total,
                chunk_index=batch.index,
            ) from e
        if stats is not None:
            stats.add_batch_time(time.perf_counter() - started)
        if keys_out is not None:
            keys_out.extend(keys)

        written += len(batch)
        if invalidate is not None:
            invalidate()
        logger.debug(f"chunk {batch.index + 1} written ({written}/{total})")
        yield Progress(written, total)
        # let pending tasks run before the next chunk
        await asyncio.sleep(0)


async def persist(
    store: DocumentStore,
    collection_path: str,
    records: Sequence[PersistableRecord],
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    invalidate: Callable[[], None] | None = None,
    on_progress: Callable[[Progress], None] | None = None,
    on_done: Callable[[PersistResult], None] | None = None,
    stats: BatchStatsAccumulator | None = None,
) -> PersistResult:
    """Drive write_chunks to completion.

    on_done fires once, after the last chunk, and never on failure.
    """
    keys: list[str] = []
    batches = 0
    async for progress in write_chunks(
        store,
        collection_path,
        records,
        chunk_size=chunk_size,
        invalidate=invalidate,
        stats=stats,
        keys_out=keys,
    ):
        if progress.current > 0:
            batches += 1
        if on_progress is not None:
            on_progress(progress)

    result = PersistResult(written=len(keys), total=len(records), batches=batches, keys=tuple(keys))
    if on_done is not None:
        on_done(result)
    return result
