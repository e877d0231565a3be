"""Priority scheduler: runs sources tier by tier, one at a time.

Sources are grouped into tiers 1, 2 and 3 (input order is kept inside a
tier). Tiers run in ascending order and sources inside a tier run
strictly one after another; there is no parallel fan-out, which bounds
the request volume hitting scraped sites at any moment. After every
source, successful or not, the scheduler waits a tier-specific delay
before starting the next one. A failing source is recorded and the
sweep moves on.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Mapping, Sequence

from jobsweep.config import PRIORITY_TIERS
from jobsweep.models import OverallReport, RunReport

logger = logging.getLogger(__name__)

DEFAULT_TIER_DELAYS: dict[int, float] = {1: 2.0, 2: 3.0, 3: 4.0}
_TIER_NAMES = {1: "high", 2: "medium", 3: "low"}


@dataclass(frozen=True)
class SourceSpec:
    """A schedulable unit: a named source, its tier and how to run it."""

    name: str
    priority_tier: int
    orchestrator_fn: Callable[[], RunReport]

    def __post_init__(self) -> None:
        if self.priority_tier not in PRIORITY_TIERS:
            raise ValueError(
                f"source '{self.name}' has invalid priority tier {self.priority_tier}"
            )


def partition_by_tier(sources: Sequence[SourceSpec]) -> list[list[SourceSpec]]:
    """Stable-partition sources into tiers 1, 2, 3 (in that order)."""
    return [[s for s in sources if s.priority_tier == tier] for tier in PRIORITY_TIERS]


class PriorityScheduler:
    """Runs SourceSpecs in priority order with failure isolation."""

    def __init__(
        self,
        tier_delays: Mapping[int, float] | None = None,
        stop_event: threading.Event | None = None,
    ):
        self.tier_delays = dict(DEFAULT_TIER_DELAYS)
        if tier_delays:
            self.tier_delays.update(tier_delays)
        self.stop_event = stop_event or threading.Event()

    def run(self, sources: Sequence[SourceSpec]) -> OverallReport:
        overall = OverallReport()
        tiers = partition_by_tier(sources)
        remaining = len(sources)

        for tier, tier_sources in zip(PRIORITY_TIERS, tiers):
            if not tier_sources:
                continue
            logger.info(
                "Running %d %s-priority sources...", len(tier_sources), _TIER_NAMES[tier]
            )

            for spec in tier_sources:
                if self.stop_event.is_set():
                    logger.warning("Shutdown requested — not starting %s", spec.name)
                    return overall

                self._run_one(spec, overall)
                remaining -= 1

                if remaining > 0:
                    self._wait(self.tier_delays.get(tier, 0.0))

        logger.info(
            "Sweep finished: %d successful, %d failed, %d new jobs",
            len(overall.successful), len(overall.failed), overall.total_jobs_found,
        )
        return overall

    def _run_one(self, spec: SourceSpec, overall: OverallReport) -> None:
        logger.info("Scraping %s...", spec.name)
        try:
            report = spec.orchestrator_fn()
        except Exception as exc:
            logger.error("%s failed: %s", spec.name, exc)
            overall.failed.append({"name": spec.name, "error": str(exc)})
            return

        overall.reports[spec.name] = report
        overall.total_jobs_found += report.jobs_found

        if report.success:
            overall.successful.append(spec.name)
            logger.info("%s completed successfully (%d new jobs)", spec.name, report.jobs_found)
        else:
            error = report.error or "source run did not complete"
            overall.failed.append({"name": spec.name, "error": error})
            logger.error("%s failed: %s", spec.name, error)

    def _wait(self, seconds: float) -> None:
        if seconds > 0:
            self.stop_event.wait(seconds)
