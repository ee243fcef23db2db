"""Key -> value caches used in front of the catalog."""

import json
import logging
from pathlib import Path
import time
from typing import Any, Callable, Protocol

LOGGER = logging.getLogger(__name__)


class CacheStore(Protocol):
    def get(self, key: str) -> Any | None: ...

    def put(self, key: str, value: Any) -> None: ...


class MemoryCache:
    """Process-local cache; entries expire after `ttl` seconds."""

    def __init__(self, ttl: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def put(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock() + self.ttl, value)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class JsonFileCache:
    """
    Persistent cache stored as one JSON document.

    Values must be JSON-serialisable. Entries older than `ttl` are ignored
    and the least recently used entries are evicted above `max_entries`.
    Writes go through a temp file so a crash never leaves a torn document.
    """

    def __init__(
        self,
        path: Path | str,
        ttl: float = 86_400.0,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(path)
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, dict] = self._read()

    def _read(self) -> dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            LOGGER.warning("Ignoring corrupt cache file %s: %s", self.path, exc)
            return {}
        return payload if isinstance(payload, dict) else {}

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        temp_path.write_text(json.dumps(self._entries, sort_keys=True), encoding="utf-8")
        temp_path.replace(self.path)

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        now = self._clock()
        if now - entry["stored_at"] > self.ttl:
            del self._entries[key]
            self._write()
            return None
        entry["last_used"] = now
        return entry["value"]

    def put(self, key: str, value: Any) -> None:
        now = self._clock()
        self._entries[key] = {"value": value, "stored_at": now, "last_used": now}
        if len(self._entries) > self.max_entries:
            by_age = sorted(self._entries, key=lambda k: self._entries[k]["last_used"])
            for stale in by_age[: len(self._entries) - self.max_entries]:
                del self._entries[stale]
        self._write()

    def __len__(self) -> int:
        return len(self._entries)
