"""Tests for relevance and recency filtering."""

from datetime import datetime, timedelta, timezone

import pytest

from jobsweep.config import RoleCategory
from jobsweep.models import JobRecord
from jobsweep.relevance import (
    RelevanceFilter,
    filter_recent,
    parse_posted_date,
    text_matches_any,
)

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def relevance():
    return RelevanceFilter({
        "new_grad": RoleCategory(
            name="new_grad",
            include=["software engineer", "new grad", "entry level"],
            exclude=["senior", "staff", "principal"],
        ),
        "intern": RoleCategory(
            name="intern",
            include=["intern", "co-op"],
            exclude=["international"],
            match_description=True,
        ),
        "anything": RoleCategory(name="anything", exclude=["recruiter"]),
    })


def _job(n, title, **kwargs):
    return JobRecord(id=f"t-{n}", title=title, **kwargs)


# ── Title Matching Tests ────────────────────────────────────────────────────


class TestTextMatchesAny:
    def test_case_insensitive(self):
        assert text_matches_any("Software ENGINEER, New Grad", ["new grad"])

    def test_no_match(self):
        assert not text_matches_any("Account Executive", ["engineer"])

    def test_empty_keywords_ignored(self):
        assert not text_matches_any("Engineer", ["", ""])


class TestRelevanceFilter:
    def test_include_match(self, relevance):
        assert relevance.is_relevant(_job(1, "Software Engineer I"), "new_grad")

    def test_exclude_wins_over_include(self, relevance):
        """A title with both an include and exclude term is rejected."""
        assert not relevance.is_relevant(_job(1, "Senior Software Engineer"), "new_grad")

    def test_no_include_term(self, relevance):
        assert not relevance.is_relevant(_job(1, "Product Designer"), "new_grad")

    def test_missing_title_rejected(self, relevance):
        assert not relevance.is_relevant(_job(1, ""), "new_grad")

    def test_unknown_category_passes(self, relevance):
        assert relevance.is_relevant(_job(1, "Product Designer"), "astronaut")

    def test_empty_include_list_passes_non_excluded(self, relevance):
        assert relevance.is_relevant(_job(1, "Product Designer"), "anything")
        assert not relevance.is_relevant(_job(1, "Technical Recruiter"), "anything")

    def test_description_match_when_enabled(self, relevance):
        job = _job(1, "Summer 2026 Program", description="Join us as an intern on the ML team")
        assert relevance.is_relevant(job, "intern")

    def test_description_ignored_when_disabled(self, relevance):
        job = _job(1, "Engineering Program", description="new grad software engineer")
        assert not relevance.is_relevant(job, "new_grad")

    def test_exclude_checks_title_only(self, relevance):
        job = _job(1, "Software Engineer Intern", description="international offices")
        assert relevance.is_relevant(job, "intern")

    def test_filter_preserves_order(self, relevance):
        jobs = [
            _job(1, "Software Engineer"),
            _job(2, "Staff Software Engineer"),
            _job(3, "Entry Level Analyst"),
            _job(4, "New Grad Software Engineer"),
        ]
        assert [j.id for j in relevance.filter(jobs, "new_grad")] == ["t-1", "t-3", "t-4"]

    def test_filter_is_deterministic(self, relevance):
        jobs = [_job(n, title) for n, title in enumerate(
            ["Software Engineer", "Principal Engineer", "New Grad SWE", "Chef"]
        )]
        first = relevance.filter(jobs, "new_grad")
        assert relevance.filter(jobs, "new_grad") == first

    def test_filter_empty(self, relevance):
        assert relevance.filter([], "new_grad") == []


# ── Date Parsing Tests ──────────────────────────────────────────────────────


class TestParsePostedDate:
    def test_iso_date(self):
        assert parse_posted_date("2026-02-01", NOW) == datetime(2026, 2, 1, tzinfo=timezone.utc)

    def test_iso_datetime_with_offset(self):
        result = parse_posted_date("2026-02-01T10:00:00+00:00", NOW)
        assert result == datetime(2026, 2, 1, 10, tzinfo=timezone.utc)

    def test_relative_days(self):
        assert parse_posted_date("3 days ago", NOW) == NOW - timedelta(days=3)

    def test_relative_plus_days(self):
        assert parse_posted_date("30+ days ago", NOW) == NOW - timedelta(days=30)

    def test_relative_hours(self):
        assert parse_posted_date("2 hours ago", NOW) == NOW - timedelta(hours=2)

    def test_relative_weeks(self):
        assert parse_posted_date("1 week ago", NOW) == NOW - timedelta(weeks=1)

    def test_relative_months(self):
        assert parse_posted_date("2 months ago", NOW) == NOW - timedelta(days=60)

    def test_today_and_just_posted(self):
        assert parse_posted_date("Posted Today", NOW) == NOW
        assert parse_posted_date("Just posted", NOW) == NOW

    def test_yesterday(self):
        assert parse_posted_date("Yesterday", NOW) == NOW - timedelta(days=1)

    def test_compact_ages(self):
        assert parse_posted_date("3d", NOW) == NOW - timedelta(days=3)
        assert parse_posted_date("2w", NOW) == NOW - timedelta(weeks=2)
        assert parse_posted_date("1mo", NOW) == NOW - timedelta(days=30)

    def test_month_day_year(self):
        assert parse_posted_date("Feb 1, 2026", NOW) == datetime(2026, 2, 1, tzinfo=timezone.utc)

    def test_month_day_without_year(self):
        assert parse_posted_date("Mar 10", NOW) == datetime(2026, 3, 10, tzinfo=timezone.utc)

    def test_month_day_without_year_rolls_back(self):
        """A date later in the year than today must belong to last year."""
        assert parse_posted_date("Dec 20", NOW) == datetime(2025, 12, 20, tzinfo=timezone.utc)

    def test_unparsable(self):
        assert parse_posted_date("whenever", NOW) is None

    def test_none_and_empty(self):
        assert parse_posted_date(None) is None
        assert parse_posted_date("") is None


class TestFilterRecent:
    def test_keeps_only_window(self):
        jobs = [
            _job(1, "A", posted_date="5 hours ago"),
            _job(2, "B", posted_date="3 days ago"),
            _job(3, "C", posted_date="2026-03-15"),
        ]
        assert [j.id for j in filter_recent(jobs, "day", NOW)] == ["t-1", "t-3"]

    def test_bare_date_compared_by_day(self):
        """A date-only posting from yesterday is inside a one-day window."""
        jobs = [
            _job(1, "A", posted_date="2026-03-14"),
            _job(2, "B", posted_date="2026-03-13"),
            _job(3, "C", posted_date="2026-03-14T09:00:00Z"),
        ]
        assert [j.id for j in filter_recent(jobs, "day", NOW)] == ["t-1"]

    def test_unparsable_is_not_recent(self):
        jobs = [_job(1, "A"), _job(2, "B", posted_date="2d")]
        assert [j.id for j in filter_recent(jobs, "week", NOW)] == ["t-2"]

    def test_unknown_window_keeps_everything(self):
        jobs = [_job(1, "A", posted_date="whenever")]
        assert filter_recent(jobs, None, NOW) == jobs
        assert filter_recent(jobs, "decade", NOW) == jobs
