from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

"""Config dataclasses for the livestock import tool.

Built by livestock_import.config.loader from config/import.yml after schema
validation.
"""

__all__ = [
    "RecordKind",
    "CollectionConfig",
    "CacheConfig",
    "DatabaseConfig",
    "ImportConfig",
]


class RecordKind(Enum):
    """How rows of a collection are turned into records.

    - OFFTAKE: singular fields + per-animal units, grouped into transactions
    - FARMERS: keyword-resolved farmer registry record
    - PASSTHROUGH: header text -> cell text (fodder, training)
    """
    OFFTAKE = "offtake"
    FARMERS = "farmers"
    PASSTHROUGH = "passthrough"


@dataclass(frozen=True)
class CollectionConfig:
    """Target collection for one import type."""
    name: str  # config key, used on the command line
    path: str  # store path, e.g. "offtakes"
    kind: RecordKind
    cache_page: str | None = None  # cache discriminator for the collection's page


@dataclass(frozen=True)
class CacheConfig:
    """Read-side cache settings."""
    directory: str | None = None  # None disables the on-disk cache
    ttl_seconds: float = 300.0
    prefix: str = "admin-page"


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback.

    Environment variables (DATABASE_URL / PGDSN, then PG*) take precedence.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None
    table: str = "documents"


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for the import tool."""
    default_programme: str
    collections: dict[str, CollectionConfig]
    programmes: tuple[str, ...] = ()
    chunk_size: int = 2000
    timezone: str = "UTC"
    cache: CacheConfig = field(default_factory=CacheConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    def collection(self, name: str) -> CollectionConfig:
        try:
            return self.collections[name]
        except KeyError:
            known = ", ".join(sorted(self.collections))
            raise KeyError(f"unknown collection '{name}' (known: {known})") from None
