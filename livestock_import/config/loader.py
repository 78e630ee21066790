from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    CacheConfig,
    CollectionConfig,
    DatabaseConfig,
    ImportConfig,
    RecordKind,
)

"""Config loader.

Responsibilities:
- Load YAML config/import.yml
- Validate against the bundled JSON schema (import_schema.json)
- Apply defaults (timezone=UTC, chunk_size=2000, default collections)
- Overlay database settings from the environment (DATABASE_URL / PGDSN, PG*)
"""

__all__ = [
    "ConfigError",
    "SCHEMA_PATH",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_COLLECTIONS",
    "load_config",
    "build_config",
    "apply_env_overrides",
]

SCHEMA_PATH = Path(__file__).with_name("import_schema.json")
DEFAULT_CONFIG_PATH = Path("config/import.yml")

DEFAULT_COLLECTIONS: dict[str, dict[str, Any]] = {
    "offtakes": {"path": "offtakes", "kind": "offtake", "cache_page": "livestock-offtake"},
    "farmers": {"path": "farmers", "kind": "farmers", "cache_page": "livestock-farmers"},
    "fodderFarmers": {"path": "fodderFarmers", "kind": "passthrough", "cache_page": "fodder-offtake"},
    "capacityBuilding": {"path": "capacityBuilding", "kind": "passthrough", "cache_page": "capacity-building"},
}


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigError: schema file missing or not valid JSON, or the config
            data fails validation (missing keys, wrong types, unknown kind)
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _collections(raw: Mapping[str, Any]) -> dict[str, CollectionConfig]:
    merged = {**DEFAULT_COLLECTIONS, **raw}
    return {
        name: CollectionConfig(
            name=name,
            path=entry.get("path", name),
            kind=RecordKind(entry.get("kind", "passthrough")),
            cache_page=entry.get("cache_page"),
        )
        for name, entry in merged.items()
    }


def build_config(data: Mapping[str, Any]) -> ImportConfig:
    """Build ImportConfig from already-validated config data."""
    cache_raw = data.get("cache") or {}
    db_raw = data.get("database") or {}
    return ImportConfig(
        default_programme=data["default_programme"],
        collections=_collections(data.get("collections") or {}),
        programmes=tuple(data.get("programmes") or ()),
        chunk_size=int(data.get("chunk_size", 2000)),
        timezone=data.get("timezone", "UTC"),
        cache=CacheConfig(
            directory=cache_raw.get("directory"),
            ttl_seconds=float(cache_raw.get("ttl_seconds", 300)),
            prefix=cache_raw.get("prefix", "admin-page"),
        ),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
            table=db_raw.get("table", "documents"),
        ),
    )


def apply_env_overrides(db: DatabaseConfig, env: Mapping[str, str] | None = None) -> DatabaseConfig:
    """Environment wins over the YAML database section.

    DATABASE_URL / PGDSN replace the DSN; PGHOST, PGPORT, PGUSER,
    PGPASSWORD and PGDATABASE replace individual fields.
    """
    env = os.environ if env is None else env
    port_text = env.get("PGPORT")
    try:
        port = int(port_text) if port_text else db.port
    except ValueError as e:
        raise ConfigError(f"invalid PGPORT: {port_text!r}") from e
    return DatabaseConfig(
        host=env.get("PGHOST") or db.host,
        port=port,
        user=env.get("PGUSER") or db.user,
        password=env.get("PGPASSWORD") or db.password,
        database=env.get("PGDATABASE") or db.database,
        dsn=env.get("DATABASE_URL") or env.get("PGDSN") or db.dsn,
        table=db.table,
    )


def load_config(path: Path) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e

    _validate_config_schema(data)
    return build_config(data)
