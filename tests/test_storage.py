"""Tests for the record stores and the dedup cache."""

import json

import pytest

from jobsweep.dedup import DedupCache
from jobsweep.models import JobRecord
from jobsweep.storage import (
    JsonRecordStore,
    MemoryRecordStore,
    StoreError,
    _atomic_write_json,
    _is_store_document,
    _safe_read_json,
    build_store,
)


def _job(n, source="linkedin"):
    return JobRecord(
        id=f"{source}-{n}",
        title=f"Software Engineer {n}",
        company="Acme",
        url=f"https://example.com/jobs/{n}",
        source=source,
    )


# ── Atomic JSON Helpers ─────────────────────────────────────────────────────


class TestAtomicWrite:
    def test_writes_and_leaves_no_tmp(self, tmp_path):
        path = tmp_path / "store.json"
        _atomic_write_json(path, {"a": 1})
        assert json.loads(path.read_text()) == {"a": 1}
        assert not (tmp_path / "store.json.tmp").exists()

    def test_corrupted_file_restored_from_backup(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        (tmp_path / "store.json.bak").write_text(json.dumps({"github": {}}))

        assert _safe_read_json(path, default={}) == {"github": {}}
        assert json.loads(path.read_text()) == {"github": {}}

    def test_corrupted_without_backup_returns_default(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        assert _safe_read_json(path, default={}) == {}

    def test_wrong_layout_restored_from_backup(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("[]")
        (tmp_path / "store.json.bak").write_text(json.dumps({"github": {"github-1": {}}}))

        assert _safe_read_json(path, default={}, validate=_is_store_document) == {
            "github": {"github-1": {}}
        }


# ── JSON Store ──────────────────────────────────────────────────────────────


class TestJsonRecordStore:
    def test_connect_creates_file(self, tmp_path):
        store = JsonRecordStore(tmp_path / "data" / "seen.json")
        assert store.connect()
        assert (tmp_path / "data" / "seen.json").exists()
        assert store.load_all() == {}

    def test_insert_persists_across_instances(self, tmp_path):
        path = tmp_path / "seen.json"
        store = JsonRecordStore(path)
        store.connect()
        store.insert("linkedin", [_job(1), _job(2)])
        store.close()

        reopened = JsonRecordStore(path)
        reopened.connect()
        assert reopened.load_all() == {"linkedin": {"linkedin-1", "linkedin-2"}}
        doc = next(reopened.iter_records("linkedin"))
        assert doc["title"] == "Software Engineer 1"
        assert "scraped_at" in doc

    def test_insert_creates_backup(self, tmp_path):
        path = tmp_path / "seen.json"
        store = JsonRecordStore(path)
        store.connect()
        store.insert("linkedin", [_job(1)])
        store.insert("linkedin", [_job(2)])
        backup = json.loads((tmp_path / "seen.json.bak").read_text())
        assert set(backup["linkedin"]) == {"linkedin-1"}

    def test_prunes_oldest_past_cap(self, tmp_path):
        store = JsonRecordStore(tmp_path / "seen.json", max_records_per_source=2)
        store.connect()
        for n in range(3):
            store.insert("linkedin", [_job(n)])
        assert store.load_all()["linkedin"] == {"linkedin-1", "linkedin-2"}

    def test_remove_and_clear(self, tmp_path):
        store = JsonRecordStore(tmp_path / "seen.json")
        store.connect()
        store.insert("linkedin", [_job(1), _job(2)])
        store.insert("github", [_job(1, "github")])

        assert store.remove("linkedin", ["linkedin-1", "linkedin-9"]) == 1
        store.clear("github")
        assert store.load_all() == {"linkedin": {"linkedin-2"}}

    def test_wrong_layout_degrades_to_empty(self, tmp_path):
        path = tmp_path / "seen.json"
        path.write_text(json.dumps({"linkedin": ["linkedin-1"]}))
        store = JsonRecordStore(path)

        assert store.connect()
        cache = DedupCache(store)
        cache.load()

        assert cache.stats() == {"total": 0}
        cache.insert_many([_job(1)], "linkedin")
        assert set(json.loads(path.read_text())["linkedin"]) == {"linkedin-1"}

    def test_list_document_degrades_to_empty(self, tmp_path):
        path = tmp_path / "seen.json"
        path.write_text("[]")
        store = JsonRecordStore(path)

        assert store.connect()
        assert store.load_all() == {}

    def test_use_before_connect_raises(self, tmp_path):
        store = JsonRecordStore(tmp_path / "seen.json")
        with pytest.raises(StoreError):
            store.load_all()

    def test_failed_write_keeps_previous_state(self, tmp_path, monkeypatch):
        store = JsonRecordStore(tmp_path / "seen.json")
        store.connect()
        store.insert("linkedin", [_job(1)])

        def broken(path, data):
            raise OSError("disk full")

        monkeypatch.setattr("jobsweep.storage._backup_and_write", broken)
        with pytest.raises(StoreError):
            store.insert("linkedin", [_job(2)])
        assert store.load_all() == {"linkedin": {"linkedin-1"}}


def test_build_store():
    assert isinstance(build_store("memory", "", None), MemoryRecordStore)
    assert isinstance(build_store("json", "x.json", 10), JsonRecordStore)
    with pytest.raises(ValueError):
        build_store("mongo", "", None)


# ── Dedup Cache ─────────────────────────────────────────────────────────────


class FailingStore(MemoryRecordStore):
    def load_all(self):
        raise StoreError("connection refused")

    def insert(self, source, records):
        raise StoreError("connection refused")


class TestDedupCache:
    def test_insert_then_exists(self, cache):
        assert not cache.exists("linkedin-1", "linkedin")
        assert cache.insert_many([_job(1)], "linkedin") == 1
        assert cache.exists("linkedin-1", "linkedin")

    def test_sources_are_separate(self, cache):
        cache.insert_many([_job(1)], "linkedin")
        assert not cache.exists("linkedin-1", "github")

    def test_insert_is_idempotent(self, cache, store):
        cache.insert_many([_job(1), _job(2)], "linkedin")
        assert cache.insert_many([_job(1), _job(2), _job(2)], "linkedin") == 0
        assert store.load_all() == {"linkedin": {"linkedin-1", "linkedin-2"}}

    def test_load_reads_existing_store(self, store):
        store.insert("github", [_job(1, "github")])
        cache = DedupCache(store)
        assert not cache.is_loaded
        cache.load()
        assert cache.is_loaded
        assert cache.exists("github-1", "github")

    def test_unavailable_store_degrades_to_memory(self):
        cache = DedupCache(FailingStore())
        cache.load()
        assert cache.is_loaded
        assert cache.insert_many([_job(1)], "linkedin") == 1
        assert cache.exists("linkedin-1", "linkedin")

    def test_stats(self, cache):
        cache.insert_many([_job(1), _job(2)], "linkedin")
        cache.insert_many([_job(1, "github")], "github")
        assert cache.stats() == {
            "linkedin": {"count": 2},
            "github": {"count": 1},
            "total": 3,
        }

    def test_clear_and_forget(self, cache, store):
        cache.insert_many([_job(1), _job(2)], "linkedin")
        cache.insert_many([_job(1, "github")], "github")

        assert cache.forget("linkedin", ["linkedin-1"]) == 1
        cache.clear("github")

        assert not cache.exists("linkedin-1", "linkedin")
        assert cache.exists("linkedin-2", "linkedin")
        assert not cache.exists("github-1", "github")
        assert store.load_all() == {"linkedin": {"linkedin-2"}}
