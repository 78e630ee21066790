from __future__ import annotations

import asyncio
import logging
import random
import re
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..db.store import DocumentStore
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.column_map import ColumnMap
from ..models.column_role import ColumnRole
from ..models.config_models import CollectionConfig, ImportConfig, RecordKind
from ..models.processing_result import (
    BatchStatsAccumulator,
    FileStat,
    PersistResult,
    ProcessingResult,
    Progress,
)
from ..models.records import FlatRecord, Transaction
from ..tabular.aggregator import AggregationContext, aggregate_rows
from ..tabular.builder import (
    build_farmer_record,
    build_offtake_row,
    build_passthrough_record,
    is_blank_row,
)
from ..tabular.headers import (
    FARMER_RULES,
    GROUPED_RULES,
    OFFTAKE_RULES,
    normalize_headers,
    require_roles,
    resolve_columns,
)
from ..tabular.reader import (
    JSON_SUFFIXES,
    RawRow,
    load_json_records,
    read_source_rows,
    require_data_rows,
)
from .access import require_privileged
from .cache import DataCache, cache_key
from .persistence import PersistenceError, persist
from .progress import FileProgressIndicator, UploadProgressBar

"""Import orchestration.

process_all() runs one upload:
1. Privilege gate (chief-admin), before anything is read
2. Each file is read and parsed independently; a malformed file is logged
   to the error log and contributes nothing
3. Records of all parsed files are combined and written in one persistence
   run (chunked, sequential)
4. The collection's read-side cache entries are invalidated per chunk
5. ProcessingResult carries the numbers for the SUMMARY line

read_collection() is the matching read side: a programme-filtered read
through the TTL cache.
"""

__all__ = [
    "ProcessingError",
    "ImportContext",
    "ParsedFile",
    "parse_rows",
    "parse_json",
    "parse_source",
    "inspect_source",
    "process_all",
    "import_files",
    "read_collection",
    "collection_cache_key",
    "collection_cache_keys",
]

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")

Record = Transaction | FlatRecord


class ProcessingError(Exception):
    """Fatal error that prevents the run (unknown collection, bad arguments)."""


@dataclass(frozen=True)
class ImportContext:
    """Per-run parsing context."""
    collection: CollectionConfig
    programme: str
    username: str = ""
    timezone: str = "UTC"
    clock: Callable[[], float] = time.time
    rng: random.Random = field(default_factory=random.Random)


@dataclass(frozen=True)
class ParsedFile:
    file_name: str
    records: list[Record]
    rows_read: int
    rows_used: int
    headers: tuple[str, ...] = ()
    column_map: ColumnMap | None = None


def _non_blank(data: Sequence[RawRow]) -> list[tuple[int, RawRow]]:
    return [(number, row) for number, row in enumerate(data, start=1) if not is_blank_row(row)]


def parse_rows(rows: list[RawRow], source: str, ctx: ImportContext) -> ParsedFile:
    """Turn decoded rows (header first) into records for ctx.collection.

    Raises:
        MalformedInputError: no data rows
        MissingIdentityColumnError: offtake file without an ID Number column
    """
    require_data_rows(rows, source)
    header, data = rows[0], rows[1:]
    normalized = normalize_headers(header)
    rows_read = len(data)
    kind = ctx.collection.kind

    if kind is RecordKind.OFFTAKE:
        column_map = resolve_columns(normalized, OFFTAKE_RULES, GROUPED_RULES)
        require_roles(column_map, [ColumnRole.ID_NUMBER], source)
        offtake_rows = [build_offtake_row(row, column_map, number) for number, row in _non_blank(data)]
        transactions, state = aggregate_rows(
            offtake_rows,
            AggregationContext(
                programme=ctx.programme,
                username=ctx.username,
                timezone=ctx.timezone,
                clock=ctx.clock,
                rng=ctx.rng,
            ),
        )
        if state.skipped_rows:
            logger.debug(f"{source}: {state.skipped_rows} row(s) contributed no units")
        return ParsedFile(source, list(transactions), rows_read, state.used_rows, tuple(normalized), column_map)

    if kind is RecordKind.FARMERS:
        column_map = resolve_columns(normalized, FARMER_RULES)
        records: list[Record] = [
            build_farmer_record(
                row, column_map, number, programme=ctx.programme, timezone=ctx.timezone, clock=ctx.clock
            )
            for number, row in _non_blank(data)
        ]
        return ParsedFile(source, records, rows_read, len(records), tuple(normalized), column_map)

    records = [
        build_passthrough_record(row, header, number, programme=ctx.programme, clock=ctx.clock)
        for number, row in _non_blank(data)
    ]
    return ParsedFile(source, records, rows_read, len(records), tuple(normalized))


def parse_json(text: str, source: str, ctx: ImportContext) -> ParsedFile:
    """Parse a JSON array of objects that already use stored field names."""
    objects = load_json_records(text, source)
    created_at = int(ctx.clock() * 1000)

    if ctx.collection.kind is RecordKind.OFFTAKE:
        transactions = []
        for obj in objects:
            txn = Transaction.from_payload(obj, created_at=created_at)
            if not txn.programme:
                txn.programme = ctx.programme
            if not txn.username:
                txn.username = ctx.username or "admin"
            if txn.units:
                transactions.append(txn)
        return ParsedFile(source, list(transactions), len(objects), len(transactions))

    records: list[Record] = []
    for number, obj in enumerate(objects, start=1):
        values = dict(obj)
        values.setdefault("programme", ctx.programme)
        values.setdefault("createdAt", created_at)
        records.append(FlatRecord(row_number=number, values=values))
    return ParsedFile(source, records, len(objects), len(records))


async def parse_source(path: Path, ctx: ImportContext) -> ParsedFile:
    """Read one file off the event loop, then parse it."""
    if path.suffix.lower() in JSON_SUFFIXES:
        text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        return parse_json(text, path.name, ctx)
    rows = await asyncio.to_thread(read_source_rows, path)
    return parse_rows(rows, path.name, ctx)


async def inspect_source(path: Path, ctx: ImportContext, sample_size: int = 3) -> dict[str, Any]:
    """Headers, resolved roles and the first built records of one file."""
    parsed = await parse_source(path, ctx)
    roles: dict[str, Any] = {}
    if parsed.column_map is not None:
        roles = {role.value: idx for role, idx in parsed.column_map.singular.items()}
        units = {
            unit: {role.value: idx for role, idx in parsed.column_map.unit_columns(unit).items()}
            for unit in parsed.column_map.unit_indices
        }
        if units:
            roles["units"] = units
    return {
        "file": parsed.file_name,
        "headers": list(parsed.headers),
        "roles": roles,
        "rows": parsed.rows_read,
        "records": len(parsed.records),
        "sample": [r.to_payload() for r in parsed.records[:sample_size]],
    }


def collection_cache_key(config: ImportConfig, collection: CollectionConfig, programme: str) -> str:
    return cache_key(config.cache.prefix, collection.cache_page or collection.path, programme)


def collection_cache_keys(config: ImportConfig, collection: CollectionConfig, programmes: Sequence[str]) -> list[str]:
    return sorted({collection_cache_key(config, collection, p) for p in programmes if p})


def _record_programme(record: Record) -> str:
    if isinstance(record, Transaction):
        return record.programme
    value = record.values.get("programme")
    return value if isinstance(value, str) else ""


async def process_all(
    paths: Sequence[Path],
    store: DocumentStore,
    config: ImportConfig,
    *,
    collection: str,
    role: str | None,
    programme: str | None = None,
    username: str = "",
    cache: DataCache | None = None,
    error_log: ErrorLogBuffer | None = None,
    on_progress: Callable[[Progress], None] | None = None,
    on_done: Callable[[PersistResult], None] | None = None,
    clock: Callable[[], float] = time.time,
    rng: random.Random | None = None,
) -> ProcessingResult:
    """Parse every file and write the combined records.

    Raises:
        PermissionDeniedError: role is not chief-admin (nothing read or written)
        ProcessingError: unknown collection
    """
    require_privileged(role)
    try:
        target = config.collection(collection)
    except KeyError as e:
        raise ProcessingError(str(e.args[0])) from e

    start_time = datetime.now(UTC)
    error_log = error_log if error_log is not None else ErrorLogBuffer()
    ctx = ImportContext(
        collection=target,
        programme=programme or config.default_programme,
        username=username,
        timezone=config.timezone,
        clock=clock,
        rng=rng or random.Random(),
    )

    file_stats: list[FileStat] = []
    records: list[Record] = []
    success_count = 0
    failed_count = 0
    total_rows = 0

    indicator = FileProgressIndicator(len(paths))
    for path in paths:
        indicator.start_file(path.name)
        file_start = time.perf_counter()
        try:
            parsed = await parse_source(path, ctx)
        except Exception as e:
            failed_count += 1
            error_type = _error_type(e)
            logger.warning(f"file={path.name} failed: {e}")
            error_log.append(ErrorRecord.create(path.name, target.name, -1, error_type, str(e)))
            file_stats.append(
                FileStat(path.name, "failed", 0, 0, 0, time.perf_counter() - file_start, error=str(e))
            )
            indicator.finish_file(success=False)
            continue

        success_count += 1
        total_rows += parsed.rows_read
        records.extend(parsed.records)
        logger.info(
            f"file={parsed.file_name} rows={parsed.rows_read} used={parsed.rows_used} records={len(parsed.records)}"
        )
        file_stats.append(
            FileStat(
                parsed.file_name,
                "success",
                parsed.rows_read,
                parsed.rows_used,
                len(parsed.records),
                time.perf_counter() - file_start,
            )
        )
        indicator.finish_file(success=True, records=len(parsed.records))

    stats = BatchStatsAccumulator()
    written = 0
    run_error: str | None = None
    if records:
        keys = collection_cache_keys(config, target, [ctx.programme, *{_record_programme(r) for r in records}])

        def invalidate() -> None:
            for key in keys:
                cache.invalidate(key)

        with UploadProgressBar(description=f"Uploading {target.name}") as bar:
            def report(progress: Progress) -> None:
                bar.update(progress)
                if on_progress is not None:
                    on_progress(progress)

            try:
                outcome = await persist(
                    store,
                    target.path,
                    records,
                    chunk_size=config.chunk_size,
                    invalidate=invalidate if cache is not None else None,
                    on_progress=report,
                    on_done=on_done,
                    stats=stats,
                )
                written = outcome.written
                logger.info(f"collection={target.path} written={written}/{len(records)}")
            except PersistenceError as e:
                written = e.written
                run_error = str(e)
                logger.error(f"persistence: {e}")
                error_log.append(ErrorRecord.create("<RUN>", target.name, -1, "PERSISTENCE_ERROR", str(e)))
    else:
        logger.warning(f"no records to write for collection={target.name}")

    error_counts = error_log.counts_by_type()
    try:
        log_path = error_log.flush()
        if log_path is not None:
            counts = " ".join(f"{name}={n}" for name, n in sorted(error_counts.items()))
            logger.info(f"error log written: {log_path} ({counts})")
    except OSError as e:
        logger.warning(f"failed to write error log: {e}")

    end_time = datetime.now(UTC)
    elapsed_seconds = (end_time - start_time).total_seconds()
    throughput = written / elapsed_seconds if elapsed_seconds > 0 else 0.0
    total_batches, avg_batch, p95_batch = stats.get_stats()

    return ProcessingResult(
        success_files=success_count,
        failed_files=failed_count,
        total_rows=total_rows,
        total_records=len(records),
        written_records=written,
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=elapsed_seconds,
        throughput_records_per_sec=throughput,
        file_stats=file_stats,
        total_batches=total_batches,
        avg_batch_seconds=avg_batch,
        p95_batch_seconds=p95_batch,
        error=run_error,
    )


def _error_type(error: Exception) -> str:
    """Exception class name in UPPER_SNAKE_CASE (MalformedInputError -> MALFORMED_INPUT_ERROR)."""
    return _CAMEL_BOUNDARY.sub("_", type(error).__name__).upper()


def import_files(paths: Sequence[Path], store: DocumentStore, config: ImportConfig, **kwargs: Any) -> ProcessingResult:
    """Synchronous entry point around process_all()."""
    return asyncio.run(process_all(paths, store, config, **kwargs))


async def read_collection(
    store: DocumentStore,
    cache: DataCache,
    config: ImportConfig,
    collection: str,
    programme: str | None = None,
) -> dict[str, Any]:
    """Programme-filtered collection read through the TTL cache."""
    target = config.collection(collection)
    active = programme or config.default_programme
    key = collection_cache_key(config, target, active)
    cached = cache.read(key, config.cache.ttl_seconds)
    if cached is not None:
        logger.debug(f"cache hit {key}")
        return cached
    data = await store.read_collection_by_equality(target.path, "programme", active)
    cache.write(key, data)
    return data
