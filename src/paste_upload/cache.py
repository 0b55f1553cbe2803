"""Content-addressed upload cache.

Maps a content fingerprint to the URL issued by a previous upload so that
pasting the same bytes twice reuses the first upload. The cache is storage
agnostic: it reads and writes one mapping through whatever `KeyValueStore`
the host provides (memory for tests, a JSON file for the CLI, the editor's
global state in an extension host).
"""

from __future__ import annotations

from collections.abc import Callable
import json
import logging
from pathlib import Path
import threading
import time
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    import os

logger = logging.getLogger(__name__)

CACHE_KEY = "uploadCache"
VERSION_KEY = "version"
DEFAULT_MAX_ENTRIES = 1000


class KeyValueStore(Protocol):
    """Durable key-value persistence owned by the host."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def update(self, key: str, value: Any) -> None: ...


class MemoryStore:
    """Process-local store; contents vanish with the process."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def update(self, key: str, value: Any) -> None:
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value


class JSONFileStore:
    """Single-file JSON store.

    Uses copy-on-write: write to a temp file and rename for atomicity.
    Unreadable or malformed files read as empty.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str, default: Any = None) -> Any:
        return self._read_all().get(key, default)

    def update(self, key: str, value: Any) -> None:
        data = self._read_all()
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            result = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable store %s: %s", self._path, e)
            return {}
        return result if isinstance(result, dict) else {}

    def _write_all(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        Path.replace(tmp, self._path)


class UploadCache:
    """Bounded fingerprint -> URL cache with batch eviction.

    When an insert finds the cache full, the oldest half of the entries (by
    write timestamp) is removed first. Reads never refresh timestamps.
    Access is serialized with a lock so threaded hosts can share one cache.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._store = store
        self._max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def get(self, fingerprint: str) -> str | None:
        """Return the cached URL for `fingerprint`, if present."""
        with self._lock:
            entry = self._entries().get(fingerprint)
        if isinstance(entry, dict) and isinstance(entry.get("url"), str):
            return entry["url"]
        return None

    def put(self, fingerprint: str, url: str) -> None:
        """Associate `fingerprint` with `url`, evicting if at capacity."""
        with self._lock:
            entries = self._entries()
            if fingerprint not in entries and len(entries) >= self._max_entries:
                entries = self._evict_oldest_half(entries)
            entries[fingerprint] = {"url": url, "timestamp": self._clock()}
            self._store.update(CACHE_KEY, entries)

    def remove(self, fingerprint: str) -> bool:
        """Drop the entry for `fingerprint`; False if there was none."""
        with self._lock:
            entries = self._entries()
            if entries.pop(fingerprint, None) is None:
                return False
            self._store.update(CACHE_KEY, entries)
        return True

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._store.update(CACHE_KEY, {})
        logger.info("Upload cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries())

    def _entries(self) -> dict[str, dict[str, Any]]:
        raw = self._store.get(CACHE_KEY, None)
        if not isinstance(raw, dict):
            return {}
        return {
            k: v
            for k, v in raw.items()
            if isinstance(v, dict) and isinstance(v.get("url"), str)
        }

    def _evict_oldest_half(
        self, entries: dict[str, dict[str, Any]]
    ) -> dict[str, dict[str, Any]]:
        ranked = sorted(entries.items(), key=lambda kv: _timestamp(kv[1]))
        drop = len(ranked) // 2 or 1
        logger.debug("Evicting %d of %d cache entries", drop, len(ranked))
        return dict(ranked[drop:])


def _timestamp(entry: dict[str, Any]) -> float:
    value = entry.get("timestamp", 0)
    return float(value) if isinstance(value, int | float) else 0.0


def check_first_run(store: KeyValueStore, version: str) -> bool:
    """Record `version` and report whether it differs from the stored marker."""
    previous = store.get(VERSION_KEY, None)
    if previous == version:
        return False
    store.update(VERSION_KEY, version)
    logger.info("First run of version %s (previous: %s)", version, previous)
    return True
