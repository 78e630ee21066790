from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from ..config.loader import DEFAULT_CONFIG_PATH, ConfigError, apply_env_overrides, load_config
from ..db.store import DocumentStore, InMemoryDocumentStore, PostgresDocumentStore, StoreError
from ..logging.init import log_summary, setup_logging
from ..models.config_models import DatabaseConfig, ImportConfig
from ..services.access import PermissionDeniedError
from ..services.cache import DataCache, FileCacheBackend, MemoryCacheBackend
from ..services.importer import ImportContext, ProcessingError, inspect_source, process_all, read_collection
from ..services.summary import render_summary_line

"""CLI entrypoint.

    python -m livestock_import.cli import FILE [FILE ...] --collection offtakes
    python -m livestock_import.cli read --collection offtakes --programme KPMD

Store selection:
- DISABLE_DB_CONNECT=1 -> in-memory store (mock mode)
- otherwise PostgreSQL from DATABASE_URL / PGDSN / PG* / config database
  section; a failed connection falls back to mock mode

Exit codes: 0 all files imported, 2 partial failure (a file or a chunk
failed), 1 fatal (config, permission, unknown collection).
"""

__all__ = [
    "main",
    "EXIT_SUCCESS_ALL",
    "EXIT_PARTIAL_FAILURE",
    "EXIT_FATAL",
]

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _build_dsn(db: DatabaseConfig) -> str:
    if db.dsn:
        return db.dsn
    dsn = (
        f"host={db.host or 'localhost'} port={db.port or 5432} "
        f"user={db.user or 'postgres'} dbname={db.database or 'postgres'}"
    )
    if db.password:
        dsn += f" password={db.password}"
    return dsn


def _open_store(cfg: ImportConfig, logger: logging.Logger) -> tuple[DocumentStore, str]:
    if os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
        return InMemoryDocumentStore(), "mock"
    db = apply_env_overrides(cfg.database)
    store = PostgresDocumentStore(_build_dsn(db), db.table)
    try:
        store.ensure_schema()
    except StoreError as e:
        logger.info(f"DB connection failed -> fallback to mock mode: {e}")
        return InMemoryDocumentStore(), "mock"
    return store, "live"


def _open_cache(cfg: ImportConfig) -> DataCache:
    if cfg.cache.directory:
        backend = FileCacheBackend(Path(cfg.cache.directory))
    else:
        backend = MemoryCacheBackend()
    return DataCache(backend, ttl_seconds=cfg.cache.ttl_seconds)


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; .env values win over the process env."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="livestock-import", description="Livestock CSV/JSON/XLSX importer")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Config YAML path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import", help="Import files into a collection")
    imp.add_argument("files", nargs="+", type=Path, help="CSV, XLSX or JSON files")
    imp.add_argument("--collection", required=True, help="Target collection name")
    imp.add_argument("--programme", help="Active programme (default: config default_programme)")
    imp.add_argument("--role", default=os.getenv("IMPORT_ROLE"), help="Role of the importing user")
    imp.add_argument("--user", default=os.getenv("IMPORT_USER", ""), help="Display name of the importing user")
    imp.add_argument("--inspect-data", action="store_true", help="Print headers, roles & first records then exit")

    read = sub.add_parser("read", help="Read a collection filtered by programme")
    read.add_argument("--collection", required=True)
    read.add_argument("--programme")
    return p.parse_args(argv)


def _inspect_data(cfg: ImportConfig, args: argparse.Namespace) -> int:
    try:
        ctx = ImportContext(
            collection=cfg.collection(args.collection),
            programme=args.programme or cfg.default_programme,
            username=args.user,
            timezone=cfg.timezone,
        )
    except KeyError as e:
        print(f"inspect: {e.args[0]}")
        return EXIT_FATAL
    for path in args.files:
        print(f"FILE: {path.name}")
        try:
            report = asyncio.run(inspect_source(path, ctx))
        except Exception as e:
            print(f"  read_error: {e}")
            continue
        print(f"  headers={report['headers']}")
        print(f"  roles={json.dumps(report['roles'], ensure_ascii=False)}")
        print(f"  rows={report['rows']} records={report['records']}")
        print("  sample=", json.dumps(report["sample"], ensure_ascii=False, default=str))
    return EXIT_SUCCESS_ALL


def _run_import(cfg: ImportConfig, args: argparse.Namespace, logger: logging.Logger) -> int:
    store, db_mode = _open_store(cfg, logger)
    try:
        result = asyncio.run(
            process_all(
                args.files,
                store,
                cfg,
                collection=args.collection,
                role=args.role,
                programme=args.programme,
                username=args.user,
                cache=_open_cache(cfg),
            )
        )
    except PermissionDeniedError as e:
        logger.error(f"permission: {e}")
        return EXIT_FATAL
    except ProcessingError as e:
        logger.error(f"processing({db_mode}): {e}")
        return EXIT_FATAL
    finally:
        if isinstance(store, PostgresDocumentStore):
            store.close()

    logger.info(f"mode={db_mode} records={result.total_records} written={result.written_records}")
    total_files = result.success_files + result.failed_files
    summary_line = render_summary_line(total_files, result)
    # log_summary adds the "SUMMARY " label itself
    log_summary(summary_line[len("SUMMARY "):])

    if result.failed_files > 0 or result.error is not None:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def _run_read(cfg: ImportConfig, args: argparse.Namespace, logger: logging.Logger) -> int:
    store, db_mode = _open_store(cfg, logger)
    try:
        data = asyncio.run(read_collection(store, _open_cache(cfg), cfg, args.collection, args.programme))
    except KeyError as e:
        logger.error(f"read: {e.args[0]}")
        return EXIT_FATAL
    except StoreError as e:
        logger.error(f"read({db_mode}): {e}")
        return EXIT_FATAL
    finally:
        if isinstance(store, PostgresDocumentStore):
            store.close()
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    # None only: an explicit [] must not pick up the test runner's argv
    if argv is None:
        argv = sys.argv[1:]
    # .env feeds the --role/--user defaults
    _load_env_file(Path(".env"), override=True)
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    if args.debug:
        logger.debug("debug mode enabled")

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.command == "read":
        return _run_read(cfg, args, logger)
    if args.inspect_data:
        return _inspect_data(cfg, args)
    return _run_import(cfg, args, logger)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
