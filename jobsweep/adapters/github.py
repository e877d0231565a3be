"""Curated GitHub job list adapter.

Repos like SimplifyJobs/New-Grad-Positions keep their listings in a
README table with columns: Company | Role | Location | Application | Age.
The raw README is fetched from:

  https://raw.githubusercontent.com/{owner}/{repo}/HEAD/README.md

Newer READMEs embed an HTML <table>; older ones use markdown pipe
tables. Both are handled. Rows whose company cell is "↳" belong to the
company of the row above. Rows without an application link (closed
postings) are skipped.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from jobsweep.adapters.base import BaseAdapter
from jobsweep.config import SourceConfig, PipelineConfig
from jobsweep.models import JobRecord, QueryDescriptor, clean_text

logger = logging.getLogger(__name__)

RAW_BASE = "https://raw.githubusercontent.com"
CONTINUATION_MARK = "↳"
MAX_ROWS = 1000

_MD_LINK = re.compile(r"\[([^\]]*)\]\(([^)\s]+)\)")
_HREF = re.compile(r'href="([^"]+)"')


class GithubListAdapter(BaseAdapter):
    """Parses job rows out of a curated repository README."""

    def __init__(self, source_config: SourceConfig, pipeline_config: PipelineConfig):
        super().__init__(source_config, pipeline_config)
        self.repo_url = source_config.url.rstrip("/")
        self.readme_url = source_config.params.get("readme_url") or self._raw_readme_url(
            self.repo_url
        )

    @staticmethod
    def _raw_readme_url(repo_url: str) -> str:
        parts = [p for p in urlparse(repo_url).path.split("/") if p]
        if len(parts) < 2:
            raise ValueError(f"GitHub source url must look like github.com/owner/repo: {repo_url!r}")
        owner, repo = parts[0], parts[1]
        return f"{RAW_BASE}/{owner}/{repo}/HEAD/README.md"

    def extract(self, query: QueryDescriptor) -> list[JobRecord]:
        logger.info("[%s] Fetching README table from %s", self.name, self.readme_url)
        resp = self._get(self.readme_url)

        rows = self._parse_rows(resp.text)
        logger.info("[%s] Found %d rows in README", self.name, len(rows))

        keyword = query.keyword.lower()
        location = (query.location or "").lower()

        jobs: list[JobRecord] = []
        for row in rows:
            if keyword and keyword not in row["title"].lower():
                continue
            if location and location not in row["location"].lower():
                continue
            jobs.append(self.record(row, query))
            if len(jobs) >= query.job_limit:
                break
        return jobs

    def _parse_rows(self, readme: str) -> list[dict]:
        if "<table" in readme:
            rows = self._parse_html_rows(readme)
        else:
            rows = self._parse_markdown_rows(readme)
        return rows[:MAX_ROWS]

    def _parse_html_rows(self, readme: str) -> list[dict]:
        soup = BeautifulSoup(readme, "html.parser")
        rows: list[dict] = []
        last_company = ""
        for table in soup.find_all("table"):
            for tr in table.find_all("tr"):
                cells = tr.find_all("td")
                if len(cells) < 5:
                    continue  # header or malformed row

                company = clean_text(cells[0].get_text())
                if company == CONTINUATION_MARK or not company:
                    company = last_company
                last_company = company

                # Prefer the employer's link over the Simplify mirror
                links = [a["href"] for a in cells[3].find_all("a", href=True)]
                employer_links = [href for href in links if "simplify.jobs" not in href]
                link = (employer_links or links or [""])[0]

                row = self._row(company, cells[1].get_text(), cells[2].get_text(" "), link,
                                cells[4].get_text())
                if row:
                    rows.append(row)
        return rows

    def _parse_markdown_rows(self, readme: str) -> list[dict]:
        rows: list[dict] = []
        last_company = ""
        for line in readme.splitlines():
            line = line.strip()
            if not line.startswith("|") or set(line) <= {"|", "-", ":", " "}:
                continue
            cells = [c.strip() for c in line.strip("|").split("|")]
            if len(cells) < 5 or cells[0].lower() == "company":
                continue

            company = _MD_LINK.sub(r"\1", cells[0]).strip("* ")
            if company == CONTINUATION_MARK or not company:
                company = last_company
            last_company = company

            link_match = _MD_LINK.search(cells[3]) or _HREF.search(cells[3])
            link = link_match.group(link_match.lastindex) if link_match else ""

            row = self._row(company, _MD_LINK.sub(r"\1", cells[1]), cells[2], link, cells[4])
            if row:
                rows.append(row)
        return rows

    def _row(self, company: str, role: str, location: str, link: str, age: str) -> dict | None:
        role = clean_text(role)
        age = clean_text(age)
        if not company or not role or not link:
            return None
        location = clean_text(re.sub(r"<br\s*/?>|</?[^>]+>", " ", location))
        return {
            "title": f"{company} - {role}",
            "company": company,
            "location": location,
            "url": link,
            "posted_date": age,
            "description": f"Role: {role} | Location: {location}",
            "metadata": self.repo_url,
        }
