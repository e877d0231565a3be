"""Entry point for the job sweep.

Usage:
    python -m jobsweep.main                       # full priority sweep
    python -m jobsweep.main linkedin              # run a single source
    python -m jobsweep.main --config my.yaml      # use custom config
    python -m jobsweep.main --mode discord        # short preview limits
    python -m jobsweep.main --dry-run             # list queries without scraping
    python -m jobsweep.main --stats               # print dedup cache counts
    python -m jobsweep.main --clear-cache github  # forget a source's seen jobs
    python -m jobsweep.main --cleanup             # drop stored jobs that no longer pass relevance
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
import time
from datetime import datetime, timezone
from pathlib import Path

from jobsweep.config import (
    RUN_MODES,
    TIME_FILTERS,
    ConfigError,
    PipelineConfig,
    load_config,
)
from jobsweep.dedup import DedupCache
from jobsweep.delivery import DeliveryError, DeliveryRouter, DiscordWebhookSink
from jobsweep.discovery import SourceOrchestrator
from jobsweep.models import JobRecord, OverallReport
from jobsweep.relevance import RelevanceFilter
from jobsweep.scheduler import PriorityScheduler, SourceSpec
from jobsweep.storage import MemoryRecordStore, RecordStore, build_store

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the sweep."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jobsweep",
        description="Job sweep: scrape job boards, dedupe against past runs "
        "and post new postings to Discord.",
    )
    parser.add_argument(
        "source",
        nargs="?",
        default=None,
        help="Run only this source (e.g. 'linkedin'); omit to run every enabled source",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--mode",
        choices=RUN_MODES,
        default=None,
        help="Job limit profile: short 'discord' preview or 'comprehensive' (default: from config)",
    )
    parser.add_argument(
        "--time-filter",
        choices=TIME_FILTERS,
        default=None,
        help="Override the time window for sources without their own",
    )
    parser.add_argument(
        "--no-deliver",
        action="store_true",
        help="Scrape and record jobs without posting notifications",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Write the run summary JSON here (default: from config)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Load config and list sources and queries without scraping",
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print dedup cache statistics and exit",
    )
    parser.add_argument(
        "--clear-cache",
        metavar="SOURCE",
        default=None,
        help="Forget every seen job for SOURCE and exit",
    )
    parser.add_argument(
        "--cleanup",
        action="store_true",
        help="Remove stored jobs that no longer pass the relevance filter and exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug-level logging",
    )
    return parser


# ── Startup helpers ─────────────────────────────────────────────────────────


def open_store(config: PipelineConfig) -> RecordStore:
    """Connect the configured store, falling back to memory if it won't open."""
    store = build_store(
        config.store.backend, config.store.path, config.store.max_records_per_source
    )
    if store.connect():
        return store

    logger.warning(
        "Record store %s unavailable — falling back to in-memory dedup for this run",
        config.store.path,
    )
    fallback = MemoryRecordStore(config.store.max_records_per_source)
    fallback.connect()
    return fallback


def build_router(config: PipelineConfig) -> DeliveryRouter:
    """Create webhook sinks from config and verify them.

    Raises DeliveryError if a configured webhook rejects verification.
    """
    delivery = config.delivery
    sinks: dict[str, DiscordWebhookSink] = {}

    def sink_for(name: str, url: str) -> DiscordWebhookSink | None:
        if not url:
            return None
        if url not in sinks:
            sinks[url] = DiscordWebhookSink(
                url, name=name, username=delivery.username,
                timeout=config.request_timeout_seconds,
            )
        return sinks[url]

    default_sink = sink_for("default", delivery.default_webhook)
    role_sinks = {}
    for role, url in delivery.role_webhooks.items():
        sink = sink_for(role, url)
        if sink is not None:
            role_sinks[role] = [sink]
    status_sink = sink_for("status", delivery.status_webhook)

    if delivery.verify_on_startup:
        for sink in sinks.values():
            sink.verify()
            logger.info("Verified webhook for %s", sink.name)

    return DeliveryRouter(
        default_sinks=[default_sink] if default_sink else [],
        role_sinks=role_sinks,
        status_sink=status_sink,
        max_per_batch=delivery.max_per_batch,
        message_delay_seconds=delivery.message_delay_seconds,
    )


def install_signal_handlers(stop_event: threading.Event) -> None:
    """Turn SIGINT/SIGTERM into a graceful stop request."""

    def handle(signum, _frame):
        if stop_event.is_set():
            raise KeyboardInterrupt
        logger.warning(
            "Received %s — finishing the current query, then shutting down",
            signal.Signals(signum).name,
        )
        stop_event.set()

    signal.signal(signal.SIGINT, handle)
    signal.signal(signal.SIGTERM, handle)


# ── Maintenance commands ────────────────────────────────────────────────────


def cleanup_irrelevant(
    config: PipelineConfig, store: RecordStore, cache: DedupCache, relevance: RelevanceFilter
) -> dict[str, int]:
    """Drop stored jobs whose titles no longer pass their source's role filter."""
    removed: dict[str, int] = {}
    for source in config.sources:
        if source.skip_relevance or not source.role_category:
            continue
        stale = [
            doc["id"]
            for doc in store.iter_records(source.name)
            if "id" in doc
            and not relevance.is_relevant(JobRecord.from_dict(doc), source.role_category)
        ]
        removed[source.name] = cache.forget(source.name, stale) if stale else 0
        logger.info("Cleanup %s: removed %d irrelevant jobs", source.name, removed[source.name])
    return removed


def save_summary(overall: OverallReport, output_dir: str | Path) -> Path:
    """Save the run summary to a timestamped JSON file.

    Returns the path to the output file.
    """
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    now = datetime.now(timezone.utc)
    out_path = out_dir / f"run_{now.strftime('%Y%m%d_%H%M%S')}.json"

    data = {
        "finished_at": now.isoformat(),
        **overall.to_dict(),
        "sources": {name: report.to_dict() for name, report in overall.reports.items()},
    }

    with open(out_path, "w") as f:
        json.dump(data, f, indent=2)

    logger.info("Run summary saved to %s", out_path)
    return out_path


def dry_run(config: PipelineConfig, orchestrator: SourceOrchestrator) -> None:
    logger.info("=== Dry Run (%s mode) ===", orchestrator.mode)
    for src in sorted(config.enabled_sources, key=lambda s: s.priority):
        queries = orchestrator.build_queries(src)
        logger.info(
            "  [tier %d] %s (type=%s, role=%s, %d queries, limit=%d)",
            src.priority, src.name, src.adapter_type, src.role_category or "any",
            len(queries), queries[0].job_limit if queries else 0,
        )
        for query in queries:
            logger.debug("      %s", query.label or "(all)")
    logger.info("Dry run complete — no scraping performed.")


# ── Main ────────────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        setup_logging()
        logger.critical("Invalid configuration: %s", exc)
        return 1

    setup_logging("DEBUG" if args.verbose else config.log_level)
    logger.info("Loaded config with %d sources", len(config.sources))

    if args.time_filter:
        config.time_filter = args.time_filter

    selected = None
    if args.source:
        selected = config.get_source(args.source)
        if selected is None:
            available = ", ".join(s.name for s in config.sources) or "none"
            parser.error(f"unknown source '{args.source}' (available: {available})")

    stop_event = threading.Event()
    relevance = RelevanceFilter(config.role_categories)

    if args.dry_run:
        dry_run(config, SourceOrchestrator(config, DedupCache(MemoryRecordStore()),
                                           relevance, mode=args.mode))
        return 0

    store = open_store(config)
    try:
        cache = DedupCache(store)
        cache.load()

        if args.stats:
            print(json.dumps(cache.stats(), indent=2))
            return 0
        if args.clear_cache:
            cache.clear(args.clear_cache)
            logger.info("Cleared dedup cache for %s", args.clear_cache)
            return 0
        if args.cleanup:
            print(json.dumps(cleanup_irrelevant(config, store, cache, relevance), indent=2))
            return 0

        deliver = config.delivery.enabled and not args.no_deliver
        router = None
        if deliver:
            try:
                router = build_router(config)
            except DeliveryError as exc:
                logger.critical("Cannot start: notification channel check failed: %s", exc)
                return 1
            if not router.has_sinks:
                logger.warning("No delivery webhooks configured — new jobs will only be stored")

        install_signal_handlers(stop_event)
        orchestrator = SourceOrchestrator(
            config, cache, relevance, router, stop_event=stop_event, mode=args.mode,
        )

        if selected is not None:
            targets = [selected]
        else:
            targets = config.enabled_sources
        specs = [
            SourceSpec(
                name=src.name,
                priority_tier=src.priority,
                orchestrator_fn=lambda src=src: orchestrator.run_source(src, deliver=deliver),
            )
            for src in targets
        ]

        started = time.monotonic()
        if router is not None:
            router.announce(f"Starting job sweep across {len(specs)} sources...")
        scheduler = PriorityScheduler(config.tier_delays_seconds, stop_event=stop_event)
        overall = scheduler.run(specs)
        duration = time.monotonic() - started

        stats = cache.stats()
        logger.info(
            "Sweep completed in %d seconds: %d successful, %d failed, %d total jobs in cache",
            round(duration), len(overall.successful), len(overall.failed), stats["total"],
        )
        if router is not None:
            router.send_summary(overall, stats, duration)

        save_summary(overall, args.output_dir or config.output_dir)
        print(json.dumps(overall.to_dict(), indent=2))
        return 0
    finally:
        store.close()
        logger.info("Record store closed")


if __name__ == "__main__":
    sys.exit(main())
