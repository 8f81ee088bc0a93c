"""Analysis cache: parsed AI-analysis payloads keyed by workspace, with TTL.

``AnalysisCacheStore`` keeps entries in memory and mirrors them to a
persistence backend so they survive restarts.  The default backend writes
one JSON file per key under ``<workspace>/.planview/analysis_cache/``.

Each entry ``{payload, raw_text, written_at}`` is replaced as a whole under a
lock, so a reader never sees a payload from one ``set`` with the text or
timestamp of another.  Backend failures are logged and the store keeps
working from memory.

Public API
----------
``AnalysisCacheStore(persistence=None, clock=time.time)``
    ``get(key)`` → CachedAnalysis | None
    ``set(key, payload, raw_text)``
    ``clear(key)``
    ``age(key)`` → seconds (``math.inf`` when absent)
    ``is_valid(key, ttl)`` → ``age(key) < ttl``
``JsonFilePersistence(directory)``
``workspace_key(path)`` → str
"""

from __future__ import annotations

import hashlib
import json
import math
import os
import re
import threading
import time
from pathlib import Path
from typing import Callable, NamedTuple, Protocol

from pydantic import BaseModel, ConfigDict, ValidationError

from planview.core.logging import get_logger
from planview.parsing.analysis_payload import AnalysisPayload

logger = get_logger("analysis.cache")

DEFAULT_TTL_SECONDS = 24 * 60 * 60
DEFAULT_KEY = "current_workspace"


class AnalysisCacheEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    payload: AnalysisPayload
    raw_text: str = ""
    written_at: float


class CachedAnalysis(NamedTuple):
    payload: AnalysisPayload
    raw_text: str


class CachePersistence(Protocol):
    """Durable key-value backend.  Methods may raise; the store handles it."""

    def load(self, key: str) -> dict | None: ...

    def save(self, key: str, record: dict) -> None: ...

    def delete(self, key: str) -> None: ...


def workspace_key(path: str | Path) -> str:
    """Cache key for a workspace root."""
    return f"workspace:{Path(path).expanduser().resolve()}"


# ---------------------------------------------------------------------------
# JSON file backend
# ---------------------------------------------------------------------------

class JsonFilePersistence:
    """One ``<name>.json`` file per key inside *directory*."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        slug = re.sub(r"[^A-Za-z0-9_-]+", "_", key).strip("_")[:48] or "key"
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:10]
        return self.directory / f"{slug}-{digest}.json"

    def load(self, key: str) -> dict | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def save(self, key: str, record: dict) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(record, indent=2, ensure_ascii=False), encoding="utf-8")
        # os.replace is atomic on the same filesystem
        os.replace(tmp, path)
        logger.info("analysis_cache: saved key=%s (%d bytes)", key, path.stat().st_size)

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class AnalysisCacheStore:
    """Thread-safe TTL cache of analysis results."""

    def __init__(
        self,
        persistence: CachePersistence | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._persistence = persistence
        self._clock = clock
        self._entries: dict[str, AnalysisCacheEntry] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str = DEFAULT_KEY) -> CachedAnalysis | None:
        entry = self._entry(key)
        if entry is None:
            return None
        return CachedAnalysis(entry.payload, entry.raw_text)

    def set(self, key: str, payload: AnalysisPayload, raw_text: str = "") -> None:
        entry = AnalysisCacheEntry(key=key, payload=payload, raw_text=raw_text, written_at=self._clock())
        with self._lock:
            self._entries[key] = entry
            self._persist(entry)

    def clear(self, key: str = DEFAULT_KEY) -> None:
        with self._lock:
            self._entries.pop(key, None)
            if self._persistence is None:
                return
            try:
                self._persistence.delete(key)
            except Exception as exc:
                logger.warning("analysis_cache: failed to delete key=%s: %s", key, exc)

    def age(self, key: str = DEFAULT_KEY) -> float:
        """Seconds since the last ``set`` of *key*; ``math.inf`` when absent."""
        entry = self._entry(key)
        if entry is None:
            return math.inf
        return max(0.0, self._clock() - entry.written_at)

    def is_valid(self, key: str = DEFAULT_KEY, ttl: float = DEFAULT_TTL_SECONDS) -> bool:
        return self.age(key) < ttl

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _entry(self, key: str) -> AnalysisCacheEntry | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._restore(key)
                if entry is not None:
                    self._entries[key] = entry
            return entry

    def _persist(self, entry: AnalysisCacheEntry) -> None:
        if self._persistence is None:
            return
        record = {
            "key": entry.key,
            "payload": entry.payload.to_dict(),
            "raw_text": entry.raw_text,
            "written_at": entry.written_at,
        }
        try:
            self._persistence.save(entry.key, record)
        except Exception as exc:
            logger.warning("analysis_cache: failed to persist key=%s, keeping it in memory: %s", entry.key, exc)

    def _restore(self, key: str) -> AnalysisCacheEntry | None:
        if self._persistence is None:
            return None
        try:
            record = self._persistence.load(key)
        except Exception as exc:
            logger.warning("analysis_cache: failed to load key=%s: %s", key, exc)
            return None
        if not record:
            return None
        try:
            entry = AnalysisCacheEntry(
                key=key,
                payload=AnalysisPayload.from_dict(record.get("payload") or {}),
                raw_text=record.get("raw_text") or "",
                written_at=float(record["written_at"]),
            )
        except (KeyError, TypeError, ValueError, ValidationError) as exc:
            logger.warning("analysis_cache: discarding unreadable entry key=%s: %s", key, exc)
            return None
        logger.info("analysis_cache: cache HIT from disk for key=%s", key)
        return entry
