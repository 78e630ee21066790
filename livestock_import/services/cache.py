from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote

"""Read-side TTL cache.

Values are stored as JSON text inside an envelope
{"value": ..., "timestamp": <epoch ms>} so staleness can be computed against
the caller's TTL. Values written before the envelope existed (raw JSON) are
returned as-is.

The cache is an optimization only: every backend failure is swallowed and
reads as a miss.
"""

__all__ = [
    "DEFAULT_CACHE_TTL_SECONDS",
    "cache_key",
    "CacheBackend",
    "MemoryCacheBackend",
    "FileCacheBackend",
    "DataCache",
]

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 5 * 60
_CACHE_ERRORS = (OSError, ValueError, TypeError)


def cache_key(*parts: str | int | None) -> str:
    """Join non-empty parts with ":" ("admin-page:livestock-offtake:KPMD")."""
    return ":".join(str(p) for p in parts if p is not None and p != "")


class CacheBackend(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryCacheBackend:
    def __init__(self) -> None:
        self.items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


class FileCacheBackend:
    """One file per key under `directory`."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}.json"

    def get_item(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(key).write_text(value, encoding="utf-8")

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def _is_envelope(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and "value" in value
        and isinstance(value.get("timestamp"), (int, float))
        and not isinstance(value.get("timestamp"), bool)
    )


class DataCache:
    """TTL read-through cache over a string key/value backend."""

    def __init__(
        self,
        backend: CacheBackend | None = None,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backend = backend if backend is not None else MemoryCacheBackend()
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def read(self, key: str, ttl_seconds: float | None = None) -> Any | None:
        """Cached value, or None when absent, unparsable or stale."""
        ttl_ms = (self.ttl_seconds if ttl_seconds is None else ttl_seconds) * 1000
        try:
            raw = self.backend.get_item(key)
            if not raw:
                return None
            parsed = json.loads(raw)
            if not _is_envelope(parsed):
                return parsed
            if self._now_ms() - parsed["timestamp"] > ttl_ms:
                self.backend.remove_item(key)
                return None
            return parsed["value"]
        except _CACHE_ERRORS as e:
            logger.debug(f"cache read failed key={key}: {e}")
            return None

    def write(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps({"value": value, "timestamp": int(self._now_ms())}, ensure_ascii=False)
            self.backend.set_item(key, payload)
        except _CACHE_ERRORS as e:
            logger.debug(f"cache write failed key={key}: {e}")

    def invalidate(self, key: str) -> None:
        try:
            self.backend.remove_item(key)
        except _CACHE_ERRORS as e:
            logger.debug(f"cache invalidate failed key={key}: {e}")
