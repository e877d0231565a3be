"""Configuration loader for the job sweep pipeline.

Reads config.yaml and returns typed configuration objects that the
scheduler, orchestrator, adapters and delivery router consume.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"

RUN_MODES = ("discord", "comprehensive")
TIME_FILTERS = ("day", "week", "month")
PRIORITY_TIERS = (1, 2, 3)

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigError(ValueError):
    """Raised when config.yaml is structurally invalid."""


@dataclass
class RoleCategory:
    """Allow/deny terms that decide whether a posting fits a role category."""

    name: str
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    match_description: bool = False


@dataclass
class SourceConfig:
    """Configuration for a single job source."""

    name: str
    adapter_type: str  # "greenhouse", "workday", "github", "linkedin"
    enabled: bool = True
    priority: int = 2
    url: str = ""
    company: str = ""
    keywords: list[str] = field(default_factory=list)
    locations: list[str] = field(default_factory=list)
    role_category: str = ""
    time_filter: Optional[str] = None
    recency_filter: bool = False
    skip_relevance: bool = False
    # {"discord": {"day": 7, "week": 10, "default": 8},
    #  "comprehensive": {"week": 75, "default": 50}}
    job_limits: dict[str, dict[str, int]] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def query_locations(self) -> list[Optional[str]]:
        return list(self.locations) or [None]

    @property
    def query_keywords(self) -> list[str]:
        return list(self.keywords) or [""]


@dataclass
class RetryConfig:
    """Orchestrator-level retry around each extraction call."""

    max_attempts: int = 3
    base_delay_seconds: float = 10.0


@dataclass
class DeliveryConfig:
    """Where and how much to post for new jobs."""

    enabled: bool = True
    max_per_batch: int = 10
    message_delay_seconds: float = 1.0
    default_webhook: str = ""
    status_webhook: str = ""
    role_webhooks: dict[str, str] = field(default_factory=dict)
    username: str = "jobsweep"
    verify_on_startup: bool = True


@dataclass
class StoreConfig:
    """Record store backend for the dedup cache."""

    backend: str = "json"  # "json" or "memory"
    path: str = "data/seen_jobs.json"
    max_records_per_source: int = 5000


@dataclass
class PipelineConfig:
    """Top-level pipeline configuration."""

    sources: list[SourceConfig] = field(default_factory=list)
    role_categories: dict[str, RoleCategory] = field(default_factory=dict)
    mode: str = "comprehensive"
    time_filter: Optional[str] = "day"
    output_dir: str = "output"
    log_level: str = "INFO"
    request_delay_seconds: float = 1.0  # polite delay between HTTP requests
    request_timeout_seconds: float = 30.0
    inter_query_delay_seconds: float = 5.0
    tier_delays_seconds: dict[int, float] = field(
        default_factory=lambda: {1: 2.0, 2: 3.0, 3: 4.0}
    )
    retry: RetryConfig = field(default_factory=RetryConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    @property
    def enabled_sources(self) -> list[SourceConfig]:
        return [s for s in self.sources if s.enabled]

    def get_source(self, name: str) -> SourceConfig | None:
        for source in self.sources:
            if source.name.lower() == name.lower():
                return source
        return None


def resolve_job_limit(
    source: SourceConfig, mode: str, time_filter: str | None, fallback: int = 50
) -> int:
    """Pick the per-query job cap for a run mode and time window.

    ``discord`` runs are short previews and fall back to the weekly cap;
    ``comprehensive`` runs fall back to the source's default cap.
    """
    limits = source.job_limits.get(mode) or {}
    if time_filter and time_filter in limits:
        return int(limits[time_filter])
    if mode == "discord" and "week" in limits:
        return int(limits["week"])
    if "default" in limits:
        return int(limits["default"])
    return fallback


def _expand_env(value: Any) -> Any:
    """Replace ${VAR} references with environment values ("" if unset)."""
    if isinstance(value, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), value)
    return value


def _parse_source(src: dict[str, Any]) -> SourceConfig:
    try:
        name = src["name"]
        adapter_type = src["adapter_type"]
    except KeyError as exc:
        raise ConfigError(f"source entry is missing {exc.args[0]!r}: {src!r}") from exc

    priority = int(src.get("priority", 2))
    if priority not in PRIORITY_TIERS:
        raise ConfigError(f"source '{name}' has invalid priority {priority} (expected 1, 2 or 3)")

    time_filter = src.get("time_filter")
    if time_filter is not None and time_filter not in TIME_FILTERS:
        raise ConfigError(f"source '{name}' has invalid time_filter {time_filter!r}")

    return SourceConfig(
        name=name,
        adapter_type=adapter_type,
        enabled=src.get("enabled", True),
        priority=priority,
        url=src.get("url", ""),
        company=src.get("company", ""),
        keywords=src.get("keywords", []) or [],
        locations=src.get("locations", []) or [],
        role_category=src.get("role_category", ""),
        time_filter=time_filter,
        recency_filter=src.get("recency_filter", False),
        skip_relevance=src.get("skip_relevance", False),
        job_limits=src.get("job_limits", {}) or {},
        params=src.get("params", {}) or {},
    )


def load_config(path: Path | str | None = None) -> PipelineConfig:
    """Load and validate the pipeline configuration from a YAML file."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        logger.warning("Config file not found at %s — using defaults", config_path)
        return PipelineConfig()

    with open(config_path, "r") as f:
        raw = yaml.safe_load(f)

    if not raw:
        return PipelineConfig()

    sources = [_parse_source(src) for src in raw.get("sources", [])]

    role_categories = {}
    for name, terms in (raw.get("role_categories") or {}).items():
        terms = terms or {}
        role_categories[name] = RoleCategory(
            name=name,
            include=terms.get("include", []) or [],
            exclude=terms.get("exclude", []) or [],
            match_description=terms.get("match_description", False),
        )

    for source in sources:
        if source.role_category and source.role_category not in role_categories:
            raise ConfigError(
                f"source '{source.name}' references unknown role category "
                f"'{source.role_category}'"
            )

    mode = raw.get("mode", "comprehensive")
    if mode not in RUN_MODES:
        raise ConfigError(f"invalid mode {mode!r} (expected one of {RUN_MODES})")

    retry_raw = raw.get("retry", {}) or {}
    retry = RetryConfig(
        max_attempts=max(1, int(retry_raw.get("max_attempts", 3))),
        base_delay_seconds=float(retry_raw.get("base_delay_seconds", 10.0)),
    )

    delivery_raw = raw.get("delivery", {}) or {}
    delivery = DeliveryConfig(
        enabled=delivery_raw.get("enabled", True),
        max_per_batch=int(delivery_raw.get("max_per_batch", 10)),
        message_delay_seconds=float(delivery_raw.get("message_delay_seconds", 1.0)),
        default_webhook=_expand_env(delivery_raw.get("default_webhook", "")),
        status_webhook=_expand_env(delivery_raw.get("status_webhook", "")),
        role_webhooks={
            role: _expand_env(url)
            for role, url in (delivery_raw.get("role_webhooks", {}) or {}).items()
        },
        username=delivery_raw.get("username", "jobsweep"),
        verify_on_startup=delivery_raw.get("verify_on_startup", True),
    )

    store_raw = raw.get("store", {}) or {}
    store = StoreConfig(
        backend=store_raw.get("backend", "json"),
        path=store_raw.get("path", "data/seen_jobs.json"),
        max_records_per_source=int(store_raw.get("max_records_per_source", 5000)),
    )

    tier_delays = PipelineConfig().tier_delays_seconds
    for tier, delay in (raw.get("tier_delays_seconds", {}) or {}).items():
        tier_delays[int(tier)] = float(delay)

    return PipelineConfig(
        sources=sources,
        role_categories=role_categories,
        mode=mode,
        time_filter=raw.get("time_filter", "day"),
        output_dir=raw.get("output_dir", "output"),
        log_level=raw.get("log_level", "INFO"),
        request_delay_seconds=raw.get("request_delay_seconds", 1.0),
        request_timeout_seconds=raw.get("request_timeout_seconds", 30.0),
        inter_query_delay_seconds=raw.get("inter_query_delay_seconds", 5.0),
        tier_delays_seconds=tier_delays,
        retry=retry,
        delivery=delivery,
        store=store,
        user_agent=raw.get("user_agent", PipelineConfig.user_agent),
    )
