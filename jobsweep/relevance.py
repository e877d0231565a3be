"""Relevance and recency filtering for scraped job records.

Two pure filters run between extraction and dedup:
1. Relevance: does the title (optionally description) contain any
   allow-list term of the requested role category, and none of its
   exclude terms?
2. Recency: was the posting published inside the active time window?
   Postings whose date cannot be parsed are treated as not recent.

Neither filter reorders or mutates records.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, Mapping, Sequence

from jobsweep.config import RoleCategory
from jobsweep.models import JobRecord

logger = logging.getLogger(__name__)

TIME_WINDOWS: dict[str, timedelta] = {
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}


# ── Title Matching ──────────────────────────────────────────────────────────


def text_matches_any(text: str, keywords: Iterable[str]) -> bool:
    """Check if text contains any of the keywords (case-insensitive)."""
    text_lower = text.lower()
    return any(kw.lower() in text_lower for kw in keywords if kw)


class RelevanceFilter:
    """Binary include/exclude classifier keyed by role category."""

    def __init__(self, role_categories: Mapping[str, RoleCategory] | None = None):
        self.role_categories = dict(role_categories or {})

    def is_relevant(self, job: JobRecord, role_category: str) -> bool:
        if not job.has_title:
            return False

        category = self.role_categories.get(role_category)
        if category is None:
            # No category configured means include everything
            return True

        if text_matches_any(job.title, category.exclude):
            return False

        if not category.include:
            return True

        haystack = job.title
        if category.match_description and job.description:
            haystack = f"{job.title} {job.description}"
        return text_matches_any(haystack, category.include)

    def filter(self, jobs: Sequence[JobRecord], role_category: str) -> list[JobRecord]:
        """Return the relevant subset of ``jobs`` in input order."""
        passed = [job for job in jobs if self.is_relevant(job, role_category)]
        logger.debug(
            "Relevance filter (%s): %d total -> %d relevant",
            role_category or "any",
            len(jobs),
            len(passed),
        )
        return passed


# ── Date Parsing ────────────────────────────────────────────────────────────

_RELATIVE_UNITS = (
    (re.compile(r"(\d+)\+?\s*(?:minutes?|mins?)\s*ago"), "minutes", 1),
    (re.compile(r"(\d+)\+?\s*(?:hours?|hrs?)\s*ago"), "hours", 1),
    (re.compile(r"(\d+)\+?\s*days?\s*ago"), "days", 1),
    (re.compile(r"(\d+)\+?\s*weeks?\s*ago"), "weeks", 1),
    (re.compile(r"(\d+)\+?\s*months?\s*ago"), "days", 30),
)

# Compact ages used by curated GitHub lists ("3d", "2w", "1mo")
_COMPACT_AGE = re.compile(r"^(\d+)\s*(h|d|w|mo)$")
_COMPACT_UNITS = {"h": timedelta(hours=1), "d": timedelta(days=1),
                  "w": timedelta(weeks=1), "mo": timedelta(days=30)}


def parse_posted_date(date_str: str | None, now: datetime | None = None) -> datetime | None:
    """Parse a posted date string into a datetime.

    Handles various formats:
    - ISO 8601: "2026-02-01", "2026-02-01T00:00:00Z"
    - Relative: "30+ days ago", "2 hours ago", "today", "yesterday", "just posted"
    - Compact ages: "3d", "2w", "1mo"
    - Month day: "Feb 1, 2026", "February 1, 2026", "Feb 01"

    Returns None if parsing fails.
    """
    if not date_str:
        return None

    now = now or datetime.now(timezone.utc)
    date_str = date_str.strip().lower()

    if any(word in date_str for word in ("just posted", "just now", "today", "moments ago")):
        return now
    if "yesterday" in date_str:
        return now - timedelta(days=1)

    for pattern, unit, factor in _RELATIVE_UNITS:
        match = pattern.search(date_str)
        if match:
            return now - timedelta(**{unit: int(match.group(1)) * factor})

    compact = _COMPACT_AGE.match(date_str)
    if compact:
        return now - _COMPACT_UNITS[compact.group(2)] * int(compact.group(1))

    for fmt in [
        "%Y-%m-%d",
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%dT%H:%M:%SZ",
        "%Y-%m-%dT%H:%M:%S%z",
        "%Y-%m-%dT%H:%M:%S.%f%z",
        "%b %d, %Y",
        "%B %d, %Y",
        "%d %b %Y",
        "%d %B %Y",
        "%m/%d/%Y",
        "%m-%d-%Y",
    ]:
        try:
            parsed = datetime.strptime(date_str, fmt)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
        except ValueError:
            continue

    # Month and day without a year ("Feb 01"): assume the most recent one
    for fmt in ("%b %d", "%B %d"):
        try:
            parsed = datetime.strptime(f"{date_str} {now.year}", f"{fmt} %Y")
        except ValueError:
            continue
        parsed = parsed.replace(tzinfo=timezone.utc)
        if parsed > now + timedelta(days=1):
            parsed = parsed.replace(year=now.year - 1)
        return parsed

    logger.debug("Could not parse date: %r", date_str)
    return None


def filter_recent(
    jobs: Sequence[JobRecord],
    time_filter: str | None,
    now: datetime | None = None,
) -> list[JobRecord]:
    """Keep jobs posted within the ``time_filter`` window.

    Unparsable dates fail closed: the job is dropped so stale postings are
    not re-announced. A bare date (midnight, no time of day) is compared by
    calendar day, so "posted yesterday" still passes a one-day window. An
    unknown or missing window keeps everything.
    """
    window = TIME_WINDOWS.get(time_filter or "")
    if window is None:
        return list(jobs)

    now = now or datetime.now(timezone.utc)
    cutoff = now - window

    passed = []
    for job in jobs:
        posted = parse_posted_date(job.posted_date, now=now)
        if posted is None:
            continue
        if _is_bare_date(posted):
            if posted.date() >= cutoff.date():
                passed.append(job)
        elif posted >= cutoff:
            passed.append(job)

    logger.debug(
        "Recency filter (%s): %d total -> %d recent", time_filter, len(jobs), len(passed)
    )
    return passed


def _is_bare_date(value: datetime) -> bool:
    return value.time() == datetime.min.time()
