"""Source orchestrator: drives one source's full query plan.

For every keyword x location combination of a source:
  1. Resolve the job limit for the run mode and time window
  2. Call the extraction adapter, retrying with linear backoff
  3. Keep only relevant postings (and, if enabled, recent ones)
  4. Split them into new vs. already seen using the dedup cache
  5. Persist the new ones, then hand them to the delivery router
  6. Pause before the next query, whatever happened

A failing query is counted and skipped; it never aborts the source.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from jobsweep.adapters.base import BaseAdapter
from jobsweep.adapters.github import GithubListAdapter
from jobsweep.adapters.greenhouse import GreenhouseAdapter
from jobsweep.adapters.linkedin import LinkedInAdapter
from jobsweep.adapters.workday import WorkdayAdapter
from jobsweep.config import PipelineConfig, SourceConfig, resolve_job_limit
from jobsweep.dedup import DedupCache
from jobsweep.delivery import DeliveryRouter
from jobsweep.models import JobRecord, QueryDescriptor, RunReport
from jobsweep.relevance import RelevanceFilter, filter_recent

logger = logging.getLogger(__name__)

# Map adapter_type strings to classes
ADAPTER_REGISTRY: dict[str, type[BaseAdapter]] = {
    "greenhouse": GreenhouseAdapter,
    "workday": WorkdayAdapter,
    "github": GithubListAdapter,
    "linkedin": LinkedInAdapter,
}

AdapterFactory = Callable[[SourceConfig, PipelineConfig], BaseAdapter]


def build_adapter(source: SourceConfig, config: PipelineConfig) -> BaseAdapter:
    """Instantiate the adapter registered for ``source.adapter_type``."""
    adapter_cls = ADAPTER_REGISTRY.get(source.adapter_type)
    if adapter_cls is None:
        raise ValueError(
            f"Unknown adapter type '{source.adapter_type}' for source '{source.name}'"
        )
    return adapter_cls(source, config)


class SourceOrchestrator:
    """Runs every query of a source through extract → filter → dedup → deliver."""

    def __init__(
        self,
        config: PipelineConfig,
        cache: DedupCache,
        relevance: RelevanceFilter | None = None,
        router: DeliveryRouter | None = None,
        adapter_factory: AdapterFactory = build_adapter,
        stop_event: threading.Event | None = None,
        mode: str | None = None,
    ):
        self.config = config
        self.cache = cache
        self.relevance = relevance or RelevanceFilter(config.role_categories)
        self.router = router
        self.adapter_factory = adapter_factory
        self.stop_event = stop_event or threading.Event()
        self.mode = mode or config.mode

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def build_queries(self, source: SourceConfig) -> list[QueryDescriptor]:
        """Expand a source's keywords x locations into query descriptors."""
        time_filter = source.time_filter or self.config.time_filter
        job_limit = resolve_job_limit(source, self.mode, time_filter)
        return [
            QueryDescriptor(
                keyword=keyword,
                location=location,
                time_filter=time_filter,
                role_category=source.role_category,
                job_limit=job_limit,
            )
            for keyword in source.query_keywords
            for location in source.query_locations
        ]

    def run_source(self, source: SourceConfig, deliver: bool = True) -> RunReport:
        """Run the full query plan for one source.

        Always returns a RunReport. ``success`` is False only when
        something outside the per-query handling fails (for example the
        adapter cannot be built); individual query failures are counted
        in ``error_count`` instead.
        """
        report = RunReport(source=source.name)
        logger.info("Starting %s job scraping (%s mode)", source.name, self.mode)

        if not self.cache.is_loaded:
            return report.finish(False, "dedup cache was not loaded before the run")

        adapter: BaseAdapter | None = None
        try:
            adapter = self.adapter_factory(source, self.config)
            queries = self.build_queries(source)

            for index, query in enumerate(queries):
                if self.stop_event.is_set():
                    logger.warning(
                        "[%s] Shutdown requested — skipping %d remaining queries",
                        source.name, len(queries) - index,
                    )
                    break

                self._run_query(adapter, source, query, report, deliver)

                # Delay between searches to reduce detection risk
                if index < len(queries) - 1:
                    self._wait(self.config.inter_query_delay_seconds)
        except Exception as exc:
            logger.error("Critical error in %s run: %s", source.name, exc)
            return report.finish(False, str(exc))
        finally:
            if adapter is not None:
                adapter.close()

        logger.info(
            "%s scraping complete: %d new jobs, %d relevant seen, %d query errors",
            source.name, report.jobs_found, len(report.jobs), report.error_count,
        )
        return report.finish(True)

    # ------------------------------------------------------------------
    # Per-query steps
    # ------------------------------------------------------------------

    def _run_query(
        self,
        adapter: BaseAdapter,
        source: SourceConfig,
        query: QueryDescriptor,
        report: RunReport,
        deliver: bool,
    ) -> None:
        report.descriptors_run += 1
        logger.info(
            "[%s] Query %r (limit=%d, time=%s)",
            source.name, query.label, query.job_limit, query.time_filter or "any",
        )

        try:
            jobs = self._extract_with_retry(adapter, source, query)
        except Exception as exc:
            report.record_failure(query, exc)
            logger.error(
                "[%s] All %d attempts failed for %r: %s",
                source.name, self.config.retry.max_attempts, query.label, exc,
            )
            return

        if not jobs:
            logger.info("[%s] No jobs found for %r", source.name, query.label)
            return

        jobs = jobs[: query.job_limit]
        if not source.skip_relevance:
            jobs = self.relevance.filter(jobs, query.role_category)
        if source.recency_filter:
            jobs = filter_recent(jobs, query.time_filter)
        if not jobs:
            logger.info("[%s] No relevant jobs for %r", source.name, query.label)
            return

        jobs = _unique_by_id(jobs)
        report.jobs.extend(jobs)
        new_jobs = [job for job in jobs if not self.cache.exists(job.id, source.name)]
        logger.info(
            "[%s] Found %d relevant jobs, %d new for %r",
            source.name, len(jobs), len(new_jobs), query.label,
        )
        if not new_jobs:
            return

        self.cache.insert_many(new_jobs, source.name)
        report.jobs_found += len(new_jobs)

        if deliver and self.router is not None:
            label = f"{source.name} - {query.label}" if query.label else source.name
            self.router.route(new_jobs, label, query.role_category)

    def _extract_with_retry(
        self, adapter: BaseAdapter, source: SourceConfig, query: QueryDescriptor
    ) -> list[JobRecord]:
        """Call the adapter up to ``retry.max_attempts`` times.

        Waits ``base_delay * attempt`` between attempts and re-raises the
        last error once attempts are exhausted or shutdown is requested.
        """
        attempts = self.config.retry.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                logger.debug("[%s] Attempt %d/%d for %r", source.name, attempt, attempts, query.label)
                return adapter.extract(query)
            except Exception as exc:
                logger.warning(
                    "[%s] Attempt %d/%d failed for %r: %s",
                    source.name, attempt, attempts, query.label, exc,
                )
                if attempt == attempts:
                    raise
                if self.stop_event.is_set():
                    logger.warning(
                        "[%s] Shutdown requested — not retrying %r", source.name, query.label
                    )
                    raise
                self._wait(self.config.retry.base_delay_seconds * attempt)

        raise RuntimeError("Retry loop exited unexpectedly")

    def _wait(self, seconds: float) -> None:
        # Event.wait returns early when shutdown is requested
        if seconds > 0:
            self.stop_event.wait(seconds)


def _unique_by_id(jobs: list[JobRecord]) -> list[JobRecord]:
    """Drop repeated ids inside one batch, keeping the first occurrence."""
    seen: set[str] = set()
    unique = []
    for job in jobs:
        if job.id not in seen:
            seen.add(job.id)
            unique.append(job)
    return unique
