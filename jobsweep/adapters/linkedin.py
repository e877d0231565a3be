"""LinkedIn public job search adapter.

Uses the guest search fragment endpoint that the logged-out jobs page
calls while scrolling:

  GET https://www.linkedin.com/jobs-guest/jobs/api/seeMoreJobPostings/search
      ?keywords=...&location=...&f_TPR=r86400&start=0

The response is a list of server-rendered <li> job cards (~25 per page).
Class names on these cards shift over time, so each field is read from
the first selector in a short candidate list that yields text.
"""

from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup

from jobsweep.adapters.base import BaseAdapter
from jobsweep.config import SourceConfig, PipelineConfig
from jobsweep.models import JobRecord, QueryDescriptor, clean_text

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.linkedin.com/jobs-guest/jobs/api/seeMoreJobPostings/search"
PAGE_SIZE = 25

TIME_FILTERS = {
    "day": "r86400",
    "week": "r604800",
    "month": "r2592000",
}

JOB_ID_PATTERN = re.compile(r"(?:currentJobId=|jobs/view/(?:[^/?#]*-)?)(\d+)")
URN_PATTERN = re.compile(r"jobPosting:(\d+)")

# Aggregators that repost other boards' listings on LinkedIn
AGGREGATOR_COMPANIES = ("jobright", "indeed", "ziprecruiter", "simplyhired",
                        "monster", "careerbuilder")

_SELECTORS = {
    "title": [".base-search-card__title", ".job-search-card__title", "h3"],
    "company": [".base-search-card__subtitle", ".job-search-card__subtitle", "h4"],
    "location": [".job-search-card__location", ".base-search-card__metadata"],
    "posted": ["time.job-search-card__listdate", "time.job-search-card__listdate--new", "time"],
    "link": ["a.base-card__full-link", "a.job-search-card__title-link", "a[href*='/jobs/view/']"],
}


class LinkedInAdapter(BaseAdapter):
    """Scrapes LinkedIn's guest job search results."""

    def __init__(self, source_config: SourceConfig, pipeline_config: PipelineConfig):
        super().__init__(source_config, pipeline_config)
        # Extra search params from config, e.g. f_JT=F (full-time), f_WT=1 (remote)
        self.extra_params = {
            k: str(v) for k, v in source_config.params.items() if k.startswith("f_")
        }
        self.max_pages = int(source_config.params.get("max_pages", 4))

    def extract(self, query: QueryDescriptor) -> list[JobRecord]:
        jobs: list[JobRecord] = []
        seen_ids: set[str] = set()

        for page in range(self.max_pages):
            params = {"keywords": query.keyword, "start": page * PAGE_SIZE}
            if query.location:
                params["location"] = query.location
            if query.time_filter in TIME_FILTERS:
                params["f_TPR"] = TIME_FILTERS[query.time_filter]
            params.update(self.extra_params)

            logger.info("[%s] Searching %r (page %d)", self.name, query.label, page + 1)
            resp = self._get(SEARCH_URL, params=params)

            cards = self._parse_cards(resp.text, query)
            if not cards:
                break

            for job in cards:
                if job.id in seen_ids:
                    continue
                seen_ids.add(job.id)
                jobs.append(job)

            if len(jobs) >= query.job_limit:
                break

        logger.info("[%s] Extracted %d jobs for %r", self.name, len(jobs), query.label)
        return jobs[: query.job_limit]

    def _parse_cards(self, html: str, query: QueryDescriptor) -> list[JobRecord]:
        soup = BeautifulSoup(html, "html.parser")
        jobs: list[JobRecord] = []

        for card in soup.find_all("li"):
            title = _first_text(card, _SELECTORS["title"])
            company = _first_text(card, _SELECTORS["company"])
            url = _first_href(card, _SELECTORS["link"])

            if not title or not url:
                continue

            if any(agg in company.lower() for agg in AGGREGATOR_COMPANIES):
                logger.debug("[%s] Skipping aggregated listing: %s at %s", self.name, title, company)
                continue

            posted = ""
            time_tag = _first(card, _SELECTORS["posted"])
            if time_tag is not None:
                posted = time_tag.get("datetime") or clean_text(time_tag.get_text())

            native_id = ""
            urn_holder = card.find(attrs={"data-entity-urn": True})
            if urn_holder is not None:
                match = URN_PATTERN.search(urn_holder["data-entity-urn"])
                if match:
                    native_id = match.group(1)

            jobs.append(
                self.record(
                    {
                        "id": native_id,
                        "title": title,
                        "company": company,
                        "location": _first_text(card, _SELECTORS["location"]),
                        "url": url.split("?")[0],
                        "posted_date": posted,
                        "salary": _first_text(card, [".job-search-card__salary-info"]),
                    },
                    query,
                    id_pattern=JOB_ID_PATTERN,
                )
            )

        return jobs


def _first(card, selectors: list[str]):
    for selector in selectors:
        tag = card.select_one(selector)
        if tag is not None:
            return tag
    return None


def _first_text(card, selectors: list[str]) -> str:
    for selector in selectors:
        tag = card.select_one(selector)
        if tag is not None:
            text = clean_text(tag.get_text())
            if text:
                return text
    return ""


def _first_href(card, selectors: list[str]) -> str:
    for selector in selectors:
        tag = card.select_one(selector)
        if tag is not None and tag.get("href"):
            return tag["href"].strip()
    return ""
