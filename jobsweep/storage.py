"""Record stores backing the dedup cache.

Two implementations of the same small contract:

1. **JsonRecordStore** (`data/seen_jobs.json`)
   - One JSON object ``{source: {job_id: record}}``
   - Every write uses the atomic write pattern:
       1. Write to .tmp file
       2. fsync
       3. Rename to target (atomic on POSIX)
   - Before each write a .bak backup is created. If the primary file is
     corrupted, it's restored from .bak automatically.
   - Each source is capped at ``max_records_per_source``; the oldest
     records (by ``scraped_at``) are pruned first.

2. **MemoryRecordStore**
   - Plain dict, nothing persisted. Used by tests and as a fallback
     when no durable store is configured.

An insert call either lands completely or not at all, so an interrupted
run never leaves a half-written batch behind.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, Protocol, Sequence

from jobsweep.models import JobRecord

logger = logging.getLogger(__name__)

DEFAULT_STORE_PATH = Path(__file__).resolve().parent.parent / "data" / "seen_jobs.json"


class StoreError(RuntimeError):
    """Raised when the record store cannot be read or written."""


class RecordStore(Protocol):
    def connect(self) -> bool: ...

    def load_all(self) -> dict[str, set[str]]: ...

    def insert(self, source: str, records: Sequence[JobRecord]) -> None: ...

    def remove(self, source: str, ids: Sequence[str]) -> int: ...

    def clear(self, source: str) -> None: ...

    def iter_records(self, source: str) -> Iterator[dict[str, Any]]: ...

    def sources(self) -> list[str]: ...

    def close(self) -> None: ...


def _record_document(record: JobRecord, now: str) -> dict[str, Any]:
    doc = record.to_dict()
    doc["scraped_at"] = now
    return doc


# ── In-memory store ────────────────────────────────────────────────────────


class MemoryRecordStore:
    """Dict-backed store; contents vanish with the process."""

    def __init__(self, max_records_per_source: int | None = None):
        self.max_records_per_source = max_records_per_source
        self._data: dict[str, dict[str, dict[str, Any]]] = {}
        self.connected = False

    def connect(self) -> bool:
        self.connected = True
        return True

    def load_all(self) -> dict[str, set[str]]:
        return {source: set(records) for source, records in self._data.items()}

    def insert(self, source: str, records: Sequence[JobRecord]) -> None:
        now = datetime.now(timezone.utc).isoformat()
        bucket = self._data.setdefault(source, {})
        for record in records:
            bucket[record.id] = _record_document(record, now)
        _prune(bucket, self.max_records_per_source, source)

    def remove(self, source: str, ids: Sequence[str]) -> int:
        bucket = self._data.get(source, {})
        removed = 0
        for job_id in ids:
            if bucket.pop(job_id, None) is not None:
                removed += 1
        return removed

    def clear(self, source: str) -> None:
        self._data.pop(source, None)

    def iter_records(self, source: str) -> Iterator[dict[str, Any]]:
        yield from list(self._data.get(source, {}).values())

    def sources(self) -> list[str]:
        return list(self._data)

    def close(self) -> None:
        self.connected = False


# ── JSON file store ────────────────────────────────────────────────────────


class JsonRecordStore:
    """Persists seen jobs to a single JSON document with atomic writes."""

    def __init__(
        self,
        path: str | Path = DEFAULT_STORE_PATH,
        max_records_per_source: int | None = 5000,
    ):
        self.path = Path(path)
        self.max_records_per_source = max_records_per_source
        self._data: dict[str, dict[str, dict[str, Any]]] | None = None

    def connect(self) -> bool:
        """Ensure the data directory and store file exist, then read it.

        Returns False (and logs) when the store cannot be opened.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if not self.path.exists():
                _atomic_write_json(self.path, {})
                logger.info("Created %s", self.path)
            self._data = _safe_read_json(self.path, default={}, validate=_is_store_document)
        except OSError as exc:
            logger.error("Could not open record store %s: %s", self.path, exc)
            self._data = None
            return False
        return True

    @property
    def data(self) -> dict[str, dict[str, dict[str, Any]]]:
        if self._data is None:
            raise StoreError(f"record store {self.path} is not connected")
        return self._data

    def load_all(self) -> dict[str, set[str]]:
        return {source: set(records) for source, records in self.data.items()}

    def insert(self, source: str, records: Sequence[JobRecord]) -> None:
        """Upsert records for a source and write the whole document once."""
        if not records:
            return

        now = datetime.now(timezone.utc).isoformat()
        updated = {s: dict(bucket) for s, bucket in self.data.items()}
        bucket = updated.setdefault(source, {})
        for record in records:
            bucket[record.id] = _record_document(record, now)
        _prune(bucket, self.max_records_per_source, source)

        self._write(updated)
        logger.debug("Stored %d %s records (total: %d)", len(records), source, len(bucket))

    def remove(self, source: str, ids: Sequence[str]) -> int:
        updated = {s: dict(bucket) for s, bucket in self.data.items()}
        bucket = updated.get(source, {})
        removed = sum(1 for job_id in ids if bucket.pop(job_id, None) is not None)
        if removed:
            self._write(updated)
        return removed

    def clear(self, source: str) -> None:
        updated = {s: bucket for s, bucket in self.data.items() if s != source}
        self._write(updated)
        logger.info("Cleared %s records from %s", source, self.path)

    def iter_records(self, source: str) -> Iterator[dict[str, Any]]:
        yield from list(self.data.get(source, {}).values())

    def sources(self) -> list[str]:
        return list(self.data)

    def close(self) -> None:
        self._data = None

    def _write(self, data: dict[str, dict[str, dict[str, Any]]]) -> None:
        try:
            _backup_and_write(self.path, data)
        except OSError as exc:
            raise StoreError(f"failed to write {self.path}: {exc}") from exc
        # Swap the in-memory copy only after the file is durable
        self._data = data


def build_store(backend: str, path: str | Path, max_records_per_source: int | None) -> RecordStore:
    """Create the record store named by config."""
    if backend == "memory":
        return MemoryRecordStore(max_records_per_source)
    if backend == "json":
        return JsonRecordStore(path, max_records_per_source)
    raise ValueError(f"Unknown store backend: {backend!r}")


# ── Internal Helpers ───────────────────────────────────────────────────────


def _prune(bucket: dict[str, dict[str, Any]], limit: int | None, source: str) -> None:
    """Drop the oldest records once a source exceeds its cap."""
    if not limit or len(bucket) <= limit:
        return
    ordered = sorted(bucket, key=lambda job_id: bucket[job_id].get("scraped_at", ""))
    excess = ordered[: len(bucket) - limit]
    for job_id in excess:
        del bucket[job_id]
    logger.info("Pruned %d old entries from %s store", len(excess), source)


def _is_store_document(data: Any) -> bool:
    """True for the ``{source: {job_id: record}}`` layout."""
    return isinstance(data, dict) and all(isinstance(bucket, dict) for bucket in data.values())


def _safe_read_json(
    path: Path,
    default: Any = None,
    validate: Callable[[Any], bool] | None = None,
) -> Any:
    """Read a JSON file, restoring from .bak if corrupted.

    If the primary file can't be parsed, or parses but fails ``validate``,
    tries .bak. If both fail, returns the default value and logs an error.
    """
    if not path.exists():
        return default if default is not None else {}

    try:
        with open(path, "r") as f:
            data = json.load(f)
        if validate is None or validate(data):
            return data
        logger.warning("Unexpected layout in %s — trying backup", path)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s: %s — trying backup", path, exc)

    bak_path = path.with_suffix(path.suffix + ".bak")
    if bak_path.exists():
        try:
            with open(bak_path, "r") as f:
                data = json.load(f)
            if validate is not None and not validate(data):
                raise ValueError("unexpected layout")
            logger.info("Restored %s from backup", path)
            _atomic_write_json(path, data)
            return data
        except (ValueError, OSError) as exc:
            logger.error("Backup %s also corrupted: %s", bak_path, exc)

    logger.error("Could not read %s or its backup — using default", path)
    return default if default is not None else {}


def _backup_and_write(path: Path, data: Any) -> None:
    """Create a .bak backup of the current file, then atomically write new data."""
    if path.exists():
        bak_path = path.with_suffix(path.suffix + ".bak")
        try:
            shutil.copy2(path, bak_path)
        except OSError as exc:
            logger.warning("Failed to create backup of %s: %s", path, exc)

    _atomic_write_json(path, data)


def _atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON data atomically using temp file + rename.

    1. Write to .tmp file in the same directory
    2. fsync the temp file
    3. Rename temp to target (atomic on POSIX)
    """
    tmp_path = path.with_suffix(path.suffix + ".tmp")

    try:
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())

        tmp_path.replace(path)
    except OSError as exc:
        logger.error("Failed to write %s: %s", path, exc)
        if tmp_path.exists():
            tmp_path.unlink()
        raise
