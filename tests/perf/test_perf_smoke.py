from __future__ import annotations

import importlib.util
import time
from pathlib import Path

import pytest

from livestock_import.config.loader import build_config
from livestock_import.db.store import InMemoryDocumentStore
from livestock_import.logging.error_log import ErrorLogBuffer
from livestock_import.models.processing_result import Progress
from livestock_import.services.importer import process_all

"""Performance smoke test: synthetic offtake dataset through the full pipeline.

Uses scripts/gen_offtake_dataset.py to build a grouped-layout CSV, imports it
into the in-memory store and checks chunking, progress and a lenient
throughput floor so CI stays fast.
"""

PROJECT_ROOT = Path(__file__).resolve().parents[2]
ROWS = 5_000


def _load_generator():
    spec = importlib.util.spec_from_file_location(
        "gen_offtake_dataset", PROJECT_ROOT / "scripts" / "gen_offtake_dataset.py"
    )
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.mark.perf
@pytest.mark.asyncio
async def test_synthetic_offtake_import_throughput(tmp_path: Path):
    generator = _load_generator()
    frame = generator.generate_offtake_frame(ROWS, units=3, seed=42)
    continuation_rows = int((frame["ID Number"] == "").sum())
    path = generator.write_dataset(tmp_path / "offtake.csv", ROWS, units=3, seed=42)

    config = build_config({"default_programme": "KPMD", "chunk_size": 500})
    store = InMemoryDocumentStore()
    progress: list[Progress] = []

    start = time.perf_counter()
    result = await process_all(
        [path], store, config,
        collection="offtakes", role="chief-admin",
        error_log=ErrorLogBuffer(tmp_path / "logs"),
        on_progress=progress.append,
    )
    elapsed = time.perf_counter() - start

    assert result.failed_files == 0
    assert result.total_rows == ROWS
    # continuation rows merge into the previous transaction
    assert result.total_records <= ROWS - continuation_rows
    assert result.written_records == result.total_records
    assert len(store.updates) == -(-result.total_records // 500)
    assert all(len(update) <= 500 for update in store.updates)

    currents = [p.current for p in progress]
    assert currents == sorted(currents)
    assert progress[-1] == Progress(result.total_records, result.total_records)

    throughput = result.total_records / elapsed
    assert throughput > 200, f"too slow: {throughput:.0f} records/s"


@pytest.mark.perf
def test_generator_is_reproducible():
    generator = _load_generator()
    first = generator.generate_offtake_frame(200, units=2, seed=7)
    second = generator.generate_offtake_frame(200, units=2, seed=7)
    assert first.equals(second)
    assert first.loc[0, "ID Number"] != ""
    assert {"Live Weight 2 (kg)", "Carcass Weight 2 (kg)", "Price 2"} <= set(first.columns)
