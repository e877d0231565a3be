"""Data models for the job sweep pipeline."""

from __future__ import annotations

import hashlib
import re
import uuid
from dataclasses import dataclass, field, asdict, fields
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import urlparse, parse_qs, urlencode

# Placeholders for display fields an adapter could not extract
UNKNOWN_TITLE = "Position details unavailable"
UNKNOWN_COMPANY = "Company details unavailable"
UNKNOWN_LOCATION = "Location not specified"
UNKNOWN_POSTED = "Recently posted"
UNKNOWN_URL = "URL unavailable"
UNKNOWN_SOURCE = "unknown"

# Tracking params to strip during URL normalization
_TRACKING_PARAMS = {"utm_source", "utm_medium", "utm_campaign", "utm_term",
                    "utm_content", "source", "ref", "src", "trk", "refid",
                    "trackingid"}

_WHITESPACE = re.compile(r"\s+")
_BULLETS = re.compile("[*\u00a0\u2022\u2023\u25e6\u2043\u2219]")


def clean_text(text: Any) -> str:
    """Collapse whitespace and strip bullet characters from scraped text."""
    if text is None:
        return ""
    text = _BULLETS.sub(" ", str(text))
    return _WHITESPACE.sub(" ", text).strip()


def normalize_url(url: str) -> str:
    """Normalize a URL for dedup comparison.

    - Strip trailing slashes
    - Lowercase the hostname
    - Strip common tracking parameters (utm_*, source, ref, etc.)
    """
    url = url.strip()
    parsed = urlparse(url)

    hostname = parsed.hostname or ""

    query_params = parse_qs(parsed.query, keep_blank_values=True)
    filtered_params = {
        k: v for k, v in query_params.items()
        if k.lower() not in _TRACKING_PARAMS
    }
    clean_query = urlencode(sorted(filtered_params.items()), doseq=True) if filtered_params else ""

    path = parsed.path.rstrip("/") or ""

    scheme = parsed.scheme or "https"
    normalized = f"{scheme}://{hostname}{path}"
    if clean_query:
        normalized += f"?{clean_query}"

    return normalized


def make_job_id(
    source: str,
    url: str = "",
    native_id: str = "",
    id_pattern: str | re.Pattern | None = None,
) -> str:
    """Build a source-qualified id that is stable across runs.

    Preference order: the upstream native id, the first group of
    ``id_pattern`` matched against the URL, a hash of the normalized URL.
    A random suffix is used only when there is nothing stable to key on;
    such records will never dedup.
    """
    native_id = str(native_id or "").strip()
    if native_id:
        return f"{source}-{native_id}"

    url = (url or "").strip()
    if url and id_pattern is not None:
        match = re.search(id_pattern, url)
        if match:
            return f"{source}-{match.group(1)}"

    if url:
        digest = hashlib.sha256(normalize_url(url).lower().encode()).hexdigest()[:16]
        return f"{source}-{digest}"

    return f"{source}-{uuid.uuid4().hex[:8]}"


def _or_sentinel(value: Any, sentinel: str) -> str:
    text = clean_text(value)
    if not text:
        return sentinel
    return text


@dataclass(frozen=True)
class JobRecord:
    """A single normalized job posting.

    Display fields are never empty: missing values are replaced with
    placeholder text so notifications always render. Records are
    immutable once an adapter has built them.
    """

    id: str
    title: str = UNKNOWN_TITLE
    company: str = UNKNOWN_COMPANY
    location: str = UNKNOWN_LOCATION
    posted_date: str = UNKNOWN_POSTED
    url: str = UNKNOWN_URL
    source: str = UNKNOWN_SOURCE
    description: str = ""
    salary: str = ""
    work_model: str = ""
    metadata: str = ""
    role_category: str = ""

    def __post_init__(self) -> None:
        for name, sentinel in (
            ("title", UNKNOWN_TITLE),
            ("company", UNKNOWN_COMPANY),
            ("location", UNKNOWN_LOCATION),
            ("posted_date", UNKNOWN_POSTED),
            ("url", UNKNOWN_URL),
            ("source", UNKNOWN_SOURCE),
        ):
            value = getattr(self, name)
            if not value or not str(value).strip():
                object.__setattr__(self, name, sentinel)
        for name in ("description", "salary", "work_model", "metadata", "role_category"):
            if getattr(self, name) is None:
                object.__setattr__(self, name, "")

    @classmethod
    def from_raw(
        cls,
        raw: dict[str, Any],
        source: str,
        id_pattern: str | re.Pattern | None = None,
        role_category: str = "",
    ) -> "JobRecord":
        """Normalize a loosely-shaped adapter dict into a JobRecord.

        Recognized keys: title, company, location, posted_date (or
        postedDate / date_posted), url (or link), id (native id),
        description, salary, work_model (or workModel), metadata.
        """
        url = clean_text(raw.get("url") or raw.get("link"))
        return cls(
            id=make_job_id(source, url, raw.get("id") or "", id_pattern),
            title=_or_sentinel(raw.get("title"), UNKNOWN_TITLE),
            company=_or_sentinel(raw.get("company"), UNKNOWN_COMPANY),
            location=_or_sentinel(raw.get("location"), UNKNOWN_LOCATION),
            posted_date=_or_sentinel(
                raw.get("posted_date") or raw.get("postedDate") or raw.get("date_posted"),
                UNKNOWN_POSTED,
            ),
            url=url or UNKNOWN_URL,
            source=source or UNKNOWN_SOURCE,
            description=clean_text(raw.get("description")),
            salary=clean_text(raw.get("salary")),
            work_model=clean_text(raw.get("work_model") or raw.get("workModel")),
            metadata=clean_text(raw.get("metadata")),
            role_category=role_category,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobRecord":
        """Rebuild a record from its persisted form, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @property
    def has_title(self) -> bool:
        return self.title != UNKNOWN_TITLE

    @property
    def has_url(self) -> bool:
        return self.url != UNKNOWN_URL

    def to_dict(self) -> dict:
        """Serialize to a plain dictionary."""
        return asdict(self)

    def __repr__(self) -> str:
        return (
            f"JobRecord(id={self.id!r}, title={self.title!r}, "
            f"company={self.company!r}, source={self.source!r})"
        )


@dataclass(frozen=True)
class QueryDescriptor:
    """One concrete query against a source: keyword x location x time window."""

    keyword: str
    location: Optional[str] = None
    time_filter: Optional[str] = None  # "day", "week", "month" or None
    role_category: str = ""
    job_limit: int = 50

    @property
    def label(self) -> str:
        if self.location:
            return f"{self.keyword} in {self.location}"
        return self.keyword


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunReport:
    """Aggregate result of one Source Orchestrator run.

    ``jobs`` holds every relevance-passing record seen during the run, new
    or already cached. ``jobs_found`` counts only the new ones.
    """

    source: str
    started_at: datetime = field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None
    success: bool = False
    error_count: int = 0
    jobs_found: int = 0
    jobs: list[JobRecord] = field(default_factory=list)
    error: Optional[str] = None
    descriptors_run: int = 0
    descriptors_failed: list[dict[str, str]] = field(default_factory=list)

    @property
    def new_job_count(self) -> int:
        return self.jobs_found

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or _utcnow()
        return (end - self.started_at).total_seconds()

    def record_failure(self, query: QueryDescriptor, exc: BaseException) -> None:
        self.error_count += 1
        self.descriptors_failed.append({"descriptor": query.label, "error": str(exc)})

    def finish(self, success: bool, error: str | None = None) -> "RunReport":
        self.success = success
        self.error = error
        self.finished_at = _utcnow()
        return self

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "success": self.success,
            "errorCount": self.error_count,
            "jobsFound": self.jobs_found,
            "jobs": [job.to_dict() for job in self.jobs],
            "error": self.error,
            "descriptorsFailed": list(self.descriptors_failed),
        }


@dataclass
class OverallReport:
    """Result of a full priority sweep across sources."""

    successful: list[str] = field(default_factory=list)
    failed: list[dict[str, str]] = field(default_factory=list)
    total_jobs_found: int = 0
    reports: dict[str, RunReport] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """The stable run-summary contract consumed by outer tooling."""
        return {
            "successful": list(self.successful),
            "failed": [dict(f) for f in self.failed],
            "totalJobsFound": self.total_jobs_found,
        }
