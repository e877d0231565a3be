"""Tests for the JobRecord data model and id generation."""

import dataclasses

import pytest

from jobsweep.models import (
    UNKNOWN_COMPANY,
    UNKNOWN_LOCATION,
    UNKNOWN_POSTED,
    UNKNOWN_TITLE,
    JobRecord,
    OverallReport,
    QueryDescriptor,
    RunReport,
    make_job_id,
    normalize_url,
)


def test_job_record_creation():
    job = JobRecord(
        id="greenhouse-123",
        title="Software Engineer, New Grad",
        company="Stripe",
        url="https://boards.greenhouse.io/stripe/jobs/123",
        source="stripe",
        location="San Francisco, CA",
    )
    assert job.title == "Software Engineer, New Grad"
    assert job.company == "Stripe"
    assert job.description == ""


def test_missing_display_fields_get_placeholders():
    job = JobRecord(id="x-1", title="", company="  ", location=None)
    assert job.title == UNKNOWN_TITLE
    assert job.company == UNKNOWN_COMPANY
    assert job.location == UNKNOWN_LOCATION
    assert job.posted_date == UNKNOWN_POSTED
    assert not job.has_title
    assert not job.has_url


def test_records_are_immutable():
    job = JobRecord(id="x-1", title="Engineer")
    with pytest.raises(dataclasses.FrozenInstanceError):
        job.title = "Other"


def test_from_raw_normalizes_text_and_aliases():
    job = JobRecord.from_raw(
        {
            "title": "  Data   Engineer • ",
            "company": "Acme",
            "link": "https://example.com/jobs/42",
            "postedDate": "2 days ago",
            "workModel": "Remote",
        },
        source="acme",
        role_category="new_grad",
    )
    assert job.title == "Data Engineer"
    assert job.url == "https://example.com/jobs/42"
    assert job.posted_date == "2 days ago"
    assert job.work_model == "Remote"
    assert job.role_category == "new_grad"
    assert job.id.startswith("acme-")


def test_id_prefers_native_id():
    assert make_job_id("linkedin", "https://x.com/jobs/view/1", native_id="999") == "linkedin-999"


def test_id_uses_url_pattern():
    job_id = make_job_id(
        "linkedin",
        "https://www.linkedin.com/jobs/view/3812345678",
        id_pattern=r"jobs/view/(\d+)",
    )
    assert job_id == "linkedin-3812345678"


def test_id_from_url_is_stable_across_tracking_params():
    a = make_job_id("s", "https://Example.com/jobs/123/?utm_source=x")
    b = make_job_id("s", "https://example.com/jobs/123")
    assert a == b


def test_id_without_url_is_random_fallback():
    a = make_job_id("s")
    b = make_job_id("s")
    assert a.startswith("s-")
    assert a != b


def test_normalize_url_strips_tracking_and_slash():
    assert normalize_url("https://EXAMPLE.com/a/b/?ref=feed&id=7") == "https://example.com/a/b?id=7"


def test_from_dict_ignores_unknown_keys():
    original = JobRecord(id="s-1", title="Engineer", source="s")
    data = original.to_dict()
    data["scraped_at"] = "2026-01-01T00:00:00+00:00"
    assert JobRecord.from_dict(data) == original


def test_query_label():
    assert QueryDescriptor("python developer", "Remote").label == "python developer in Remote"
    assert QueryDescriptor("python developer").label == "python developer"


def test_run_report_failure_accounting():
    report = RunReport(source="s")
    report.record_failure(QueryDescriptor("kw"), RuntimeError("boom"))
    report.finish(True)
    assert report.error_count == 1
    assert report.descriptors_failed == [{"descriptor": "kw", "error": "boom"}]
    assert report.success
    assert report.finished_at is not None


def test_overall_report_contract():
    overall = OverallReport(
        successful=["a"], failed=[{"name": "b", "error": "x"}], total_jobs_found=4
    )
    assert overall.to_dict() == {
        "successful": ["a"],
        "failed": [{"name": "b", "error": "x"}],
        "totalJobsFound": 4,
    }
