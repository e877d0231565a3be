"""Dedup cache: which job ids has each source already produced?

The cache keeps an in-memory mirror of the record store so membership
checks never touch disk. Inserts update the mirror first, then persist,
which means a record added mid-run is visible to the very next check.
If the store is unavailable the cache keeps working from memory; a
missed dedup is acceptable, a dropped posting is not.
"""

from __future__ import annotations

import logging
from typing import Sequence

from jobsweep.models import JobRecord
from jobsweep.storage import RecordStore, StoreError

logger = logging.getLogger(__name__)


class DedupCache:
    """Per-source set of previously seen job ids over a RecordStore."""

    def __init__(self, store: RecordStore):
        self.store = store
        self._seen: dict[str, set[str]] = {}
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def load(self) -> None:
        """Populate the mirror from the store.

        On failure the previous mirror (empty on first load) is kept and a
        warning is logged; the run carries on.
        """
        try:
            loaded = self.store.load_all()
        except (StoreError, OSError, ValueError) as exc:
            logger.warning(
                "Record store unavailable, continuing with %d cached ids: %s",
                sum(len(ids) for ids in self._seen.values()),
                exc,
            )
            self._loaded = True
            return

        self._seen = {source: set(ids) for source, ids in loaded.items()}
        self._loaded = True
        for source, ids in self._seen.items():
            logger.info("Loaded %d %s jobs from record store", len(ids), source)

    def exists(self, job_id: str, source: str) -> bool:
        return job_id in self._seen.get(source, ())

    def insert_many(self, jobs: Sequence[JobRecord], source: str) -> int:
        """Mark jobs as seen for ``source``; already-present ids are skipped.

        Returns the number of ids that were new to the cache.
        """
        seen = self._seen.setdefault(source, set())
        fresh: list[JobRecord] = []
        fresh_ids: set[str] = set()
        for job in jobs:
            if job.id in seen or job.id in fresh_ids:
                continue
            fresh.append(job)
            fresh_ids.add(job.id)

        if not fresh:
            return 0

        seen.update(fresh_ids)
        try:
            self.store.insert(source, fresh)
        except (StoreError, OSError) as exc:
            logger.warning(
                "Could not persist %d %s jobs (kept in memory only): %s",
                len(fresh), source, exc,
            )
        else:
            logger.info("Added %d jobs to %s cache (total: %d)", len(fresh), source, len(seen))
        return len(fresh)

    def clear(self, source: str) -> None:
        """Forget every id for a source, in memory and in the store."""
        self._seen.pop(source, None)
        self.store.clear(source)

    def forget(self, source: str, ids: Sequence[str]) -> int:
        """Remove specific ids for a source; returns how many the store dropped."""
        bucket = self._seen.get(source, set())
        bucket.difference_update(ids)
        return self.store.remove(source, ids)

    def stats(self) -> dict:
        """Snapshot of cached id counts: ``{source: {"count": n}, "total": n}``."""
        snapshot: dict = {source: {"count": len(ids)} for source, ids in self._seen.items()}
        snapshot["total"] = sum(len(ids) for ids in self._seen.values())
        return snapshot
