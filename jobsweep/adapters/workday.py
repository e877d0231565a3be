"""Workday job portal adapter.

Workday portals are JavaScript SPAs that make predictable API calls
under the hood. The key endpoint pattern is:

  POST https://{company}.{wd_instance}.myworkdayjobs.com/wday/cxs/{company}/{site}/jobs

This endpoint accepts JSON with search text and pagination, and
returns structured job data. The query keyword is sent as searchText,
so filtering happens server-side.
"""

from __future__ import annotations

import logging

from jobsweep.adapters.base import AdapterError, BaseAdapter
from jobsweep.config import SourceConfig, PipelineConfig
from jobsweep.models import JobRecord, QueryDescriptor

logger = logging.getLogger(__name__)

# Default page size for Workday API requests
DEFAULT_PAGE_SIZE = 20


class WorkdayAdapter(BaseAdapter):
    """Fetches job listings from Workday career portals via their internal API."""

    def __init__(self, source_config: SourceConfig, pipeline_config: PipelineConfig):
        super().__init__(source_config, pipeline_config)

        self.base_url = source_config.url.rstrip("/")
        self.company_name = source_config.company

        # e.g., "https://nvidia.wd5.myworkdayjobs.com/NVIDIAExternalCareerSite"
        # → tenant = "nvidia", site = "NVIDIAExternalCareerSite"
        self.tenant = source_config.params.get("tenant", "")
        self.site = source_config.params.get("site", "")
        self.max_pages = source_config.params.get("max_pages", 5)
        self.page_size = source_config.params.get("page_size", DEFAULT_PAGE_SIZE)

        if not self.base_url or not self.tenant or not self.site:
            raise ValueError(
                f"Workday adapter '{source_config.name}' requires url, "
                f"params.tenant and params.site in config"
            )

    def extract(self, query: QueryDescriptor) -> list[JobRecord]:
        """Page through the Workday jobs API for one search."""
        logger.info(
            "[%s] Fetching jobs from Workday API (tenant=%s, site=%s, searchText=%r)",
            self.name, self.tenant, self.site, query.keyword,
        )

        jobs: list[JobRecord] = []
        offset = 0
        total: int | None = None  # Capture from first response only

        for page in range(1, self.max_pages + 1):
            logger.debug("[%s] Fetching page %d (offset=%d)", self.name, page, offset)
            data = self._fetch_page(query.keyword, offset)

            job_postings = data.get("jobPostings", [])

            # Workday only returns the real total on the FIRST request.
            # Subsequent requests return total=0. So we capture it once.
            if total is None:
                total = data.get("total", 0)
                logger.info("[%s] API reports %d total jobs", self.name, total)

            if not job_postings:
                break

            for raw in job_postings:
                job = self._parse_job(raw, query)
                if job is None:
                    continue
                if query.location and query.location.lower() not in job.location.lower():
                    continue
                jobs.append(job)

            if len(jobs) >= query.job_limit:
                break

            offset += self.page_size
            if offset >= (total or 0):
                break

        logger.info("[%s] Extracted %d of %d jobs", self.name, len(jobs), total or 0)
        return jobs[: query.job_limit]

    def _fetch_page(self, search_text: str, offset: int) -> dict:
        """Call the Workday jobs API for a single page of results."""
        api_url = f"{self.base_url}/wday/cxs/{self.tenant}/{self.site}/jobs"

        payload = {
            "appliedFacets": {},
            "limit": self.page_size,
            "offset": offset,
            "searchText": search_text,
        }

        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        resp = self._post(api_url, json=payload, headers=headers)
        try:
            return resp.json()
        except ValueError as exc:
            raise AdapterError(f"Workday {self.tenant}/{self.site} returned invalid JSON") from exc

    def _parse_job(self, raw: dict, query: QueryDescriptor) -> JobRecord | None:
        """Convert a Workday API job object into a JobRecord."""
        title = (raw.get("title") or "").strip()
        if not title:
            return None

        external_path = raw.get("externalPath", "")
        job_url = f"{self.base_url}{external_path}" if external_path else ""

        # Requisition id is usually the first bullet field ("JR1234567")
        bullet_fields = raw.get("bulletFields") or []
        native_id = bullet_fields[0] if bullet_fields else ""

        return self.record(
            {
                "id": native_id,
                "title": title,
                "company": self.company_name,
                "url": job_url,
                "location": raw.get("locationsText", ""),
                "posted_date": raw.get("postedOn", ""),
                "metadata": " | ".join(bullet_fields),
            },
            query,
        )
