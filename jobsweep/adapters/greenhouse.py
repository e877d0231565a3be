"""Greenhouse job board adapter.

Greenhouse provides a public JSON API at:
  https://boards-api.greenhouse.io/v1/boards/{board_token}/jobs

This returns structured data with title, location, department, and
a link to each job's full description. The board API has no search
parameters, so keyword and location matching happen client-side.
"""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup

from jobsweep.adapters.base import AdapterError, BaseAdapter
from jobsweep.config import SourceConfig, PipelineConfig
from jobsweep.models import JobRecord, QueryDescriptor

logger = logging.getLogger(__name__)

API_BASE = "https://boards-api.greenhouse.io/v1/boards"


class GreenhouseAdapter(BaseAdapter):
    """Fetches job listings from the Greenhouse public JSON API."""

    def __init__(self, source_config: SourceConfig, pipeline_config: PipelineConfig):
        super().__init__(source_config, pipeline_config)
        self.board_token = source_config.params.get("board_token", "")
        self.company_name = source_config.company
        self.include_content = source_config.params.get("content", True)
        if not self.board_token:
            raise ValueError(
                f"Greenhouse adapter '{source_config.name}' requires "
                f"params.board_token in config"
            )

    def extract(self, query: QueryDescriptor) -> list[JobRecord]:
        """Fetch the board and keep jobs matching the query keyword/location."""
        logger.info(
            "[%s] Fetching jobs from Greenhouse API (board=%s, query=%r)",
            self.name,
            self.board_token,
            query.label,
        )

        url = f"{API_BASE}/{self.board_token}/jobs"
        params = {"content": "true"} if self.include_content else {}
        resp = self._get(url, params=params)

        try:
            raw_jobs = resp.json().get("jobs", [])
        except ValueError as exc:
            raise AdapterError(f"Greenhouse board {self.board_token} returned invalid JSON") from exc
        logger.info("[%s] API returned %d jobs", self.name, len(raw_jobs))

        keyword = query.keyword.lower()
        location = (query.location or "").lower()

        jobs: list[JobRecord] = []
        for raw in raw_jobs:
            job = self._parse_job(raw, query)
            if job is None:
                continue
            if keyword and keyword not in job.title.lower():
                continue
            if location and location not in job.location.lower():
                continue
            jobs.append(job)
            if len(jobs) >= query.job_limit:
                break

        return jobs

    def _parse_job(self, raw: dict, query: QueryDescriptor) -> JobRecord | None:
        """Convert a single Greenhouse API job object into a JobRecord."""
        title = (raw.get("title") or "").strip()
        if not title:
            return None

        # Greenhouse wraps location in an object
        locations = raw.get("location", {})
        location_name = locations.get("name", "") if isinstance(locations, dict) else ""

        departments = raw.get("departments") or []
        department = departments[0].get("name", "") if departments else ""

        content = raw.get("content", "")
        description = self._html_to_text(content) if content else ""

        return self.record(
            {
                "id": raw.get("id", ""),
                "title": title,
                "company": self.company_name,
                "url": raw.get("absolute_url", ""),
                "location": location_name,
                "description": description,
                "posted_date": raw.get("updated_at", ""),
                "metadata": department,
            },
            query,
        )

    @staticmethod
    def _html_to_text(html: str) -> str:
        """Convert HTML content to plain text.

        The API returns the description HTML entity-escaped, so it is
        parsed twice: once to unescape, once to strip tags.
        """
        if not html:
            return ""
        unescaped = BeautifulSoup(html, "html.parser").get_text()
        return BeautifulSoup(unescaped, "html.parser").get_text(separator="\n", strip=True)
