"""Tests for planview/analysis/cache.py"""

from __future__ import annotations

import logging
import math
import threading

import pytest

from planview.analysis.cache import (
    DEFAULT_TTL_SECONDS,
    AnalysisCacheStore,
    JsonFilePersistence,
    workspace_key,
)
from planview.parsing.analysis_payload import AnalysisPayload


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class BrokenPersistence:
    def load(self, key):
        raise OSError("disk unavailable")

    def save(self, key, record):
        raise OSError("disk unavailable")

    def delete(self, key):
        raise OSError("disk unavailable")


def _payload(name: str = "Shop") -> AnalysisPayload:
    return AnalysisPayload.from_dict({"project_name": name, "tech_stack": {"backend": ["FastAPI"]}})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> AnalysisCacheStore:
    return AnalysisCacheStore(clock=clock)


# ---------------------------------------------------------------------------
# In-memory behaviour
# ---------------------------------------------------------------------------

class TestStore:
    def test_set_then_get(self, store):
        store.set("k", _payload(), "raw text")
        cached = store.get("k")
        assert cached is not None
        assert cached.payload.project_name == "Shop"
        assert cached.raw_text == "raw text"
        assert store.age("k") == 0.0

    def test_absent_key(self, store):
        assert store.get("missing") is None
        assert store.age("missing") == math.inf
        assert store.is_valid("missing") is False

    def test_ttl_expiry(self, store, clock):
        store.set("k", _payload(), "raw")
        clock.advance(100)
        assert store.age("k") == 100
        assert store.is_valid("k", ttl=DEFAULT_TTL_SECONDS) is True
        clock.advance(DEFAULT_TTL_SECONDS)
        assert store.is_valid("k", ttl=DEFAULT_TTL_SECONDS) is False
        # Expired entries are still readable; validity is the caller's decision
        assert store.get("k") is not None

    def test_last_write_wins(self, store, clock):
        store.set("k", _payload("first"), "one")
        clock.advance(10)
        store.set("k", _payload("second"), "two")
        cached = store.get("k")
        assert (cached.payload.project_name, cached.raw_text) == ("second", "two")
        assert store.age("k") == 0.0

    def test_clear(self, store):
        store.set("k", _payload(), "raw")
        store.clear("k")
        assert store.get("k") is None
        assert store.age("k") == math.inf

    def test_keys_are_independent(self, store):
        store.set("a", _payload("A"), "ra")
        store.set("b", _payload("B"), "rb")
        store.clear("a")
        assert store.get("b").payload.project_name == "B"

    def test_concurrent_writers_never_tear(self):
        store = AnalysisCacheStore()
        errors: list[str] = []
        stop = threading.Event()

        def _writer(n: int) -> None:
            for i in range(200):
                name = f"w{n}-{i}"
                store.set("k", _payload(name), f"raw-{name}")

        def _reader() -> None:
            while not stop.is_set():
                cached = store.get("k")
                if cached is not None and cached.raw_text != f"raw-{cached.payload.project_name}":
                    errors.append(cached.raw_text)

        readers = [threading.Thread(target=_reader) for _ in range(2)]
        writers = [threading.Thread(target=_writer, args=(n,)) for n in range(4)]
        for t in readers + writers:
            t.start()
        for t in writers:
            t.join()
        stop.set()
        for t in readers:
            t.join()
        assert errors == []


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class TestJsonFilePersistence:
    def test_survives_restart(self, tmp_path, clock):
        AnalysisCacheStore(JsonFilePersistence(tmp_path), clock=clock).set("k", _payload(), "raw")
        clock.advance(60)

        reopened = AnalysisCacheStore(JsonFilePersistence(tmp_path), clock=clock)
        cached = reopened.get("k")
        assert cached.payload.project_name == "Shop"
        assert cached.payload.tech_stack.backend == ["FastAPI"]
        assert cached.raw_text == "raw"
        assert reopened.age("k") == 60

    def test_clear_removes_file(self, tmp_path):
        persistence = JsonFilePersistence(tmp_path)
        store = AnalysisCacheStore(persistence)
        store.set("k", _payload(), "raw")
        assert persistence.path_for("k").exists()
        store.clear("k")
        assert not persistence.path_for("k").exists()

    def test_file_names_are_safe(self, tmp_path):
        path = JsonFilePersistence(tmp_path).path_for(workspace_key("/some/work space"))
        assert path.parent == tmp_path
        assert "/" not in path.name
        assert path.suffix == ".json"

    def test_corrupt_file_is_ignored(self, tmp_path, caplog):
        persistence = JsonFilePersistence(tmp_path)
        persistence.path_for("k").write_text("{not json", encoding="utf-8")
        with caplog.at_level(logging.WARNING, logger="planview"):
            assert AnalysisCacheStore(persistence).get("k") is None
        assert "failed to load" in caplog.text

    def test_record_without_timestamp_is_discarded(self, tmp_path, caplog):
        persistence = JsonFilePersistence(tmp_path)
        persistence.save("k", {"payload": {"project_name": "x"}, "raw_text": ""})
        with caplog.at_level(logging.WARNING, logger="planview"):
            assert AnalysisCacheStore(persistence).get("k") is None
        assert "unreadable entry" in caplog.text


class TestDegradedPersistence:
    def test_failures_fall_back_to_memory(self, clock, caplog):
        store = AnalysisCacheStore(BrokenPersistence(), clock=clock)
        with caplog.at_level(logging.WARNING, logger="planview"):
            store.set("k", _payload(), "raw")
            cached = store.get("k")
            store.clear("k")
        assert cached.payload.project_name == "Shop"
        assert store.get("k") is None
        assert "failed to persist" in caplog.text
        assert "failed to delete" in caplog.text


def test_workspace_key_resolves_path(tmp_path):
    assert workspace_key(tmp_path / "a" / "..") == workspace_key(tmp_path)
