"""Abstract base class for all extraction adapters."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

import requests

from jobsweep.config import SourceConfig, PipelineConfig
from jobsweep.models import JobRecord, QueryDescriptor

logger = logging.getLogger(__name__)


class AdapterError(RuntimeError):
    """Raised when a source returns something an adapter cannot use."""


class BaseAdapter(ABC):
    """Base class that all source-specific adapters extend.

    Provides shared HTTP utilities (session management, request spacing,
    a short transport-level retry) so individual adapters only need to
    implement `extract()`. Fetch failures are raised, not swallowed: the
    orchestrator owns retry and error accounting for each query.
    """

    def __init__(self, source_config: SourceConfig, pipeline_config: PipelineConfig):
        self.source_config = source_config
        self.pipeline_config = pipeline_config
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": pipeline_config.user_agent})
        self.http_attempts = int(source_config.params.get("http_attempts", 2))
        self._last_request_time: float = 0

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    @abstractmethod
    def extract(self, query: QueryDescriptor) -> list[JobRecord]:
        """Fetch postings matching ``query`` and return normalized records.

        Must be implemented by every subclass. Returns at most
        ``query.job_limit`` records; an empty list means "nothing found".
        """
        ...

    @property
    def name(self) -> str:
        return self.source_config.name

    def close(self) -> None:
        self.session.close()

    def record(self, raw: dict, query: QueryDescriptor, id_pattern=None) -> JobRecord:
        """Normalize one raw listing for this source."""
        return JobRecord.from_raw(
            raw,
            source=self.name,
            id_pattern=id_pattern,
            role_category=query.role_category,
        )

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _get(self, url: str, **kwargs) -> requests.Response:
        """Rate-limited GET request with retries."""
        return self._request("GET", url, **kwargs)

    def _post(self, url: str, **kwargs) -> requests.Response:
        """Rate-limited POST request with retries."""
        return self._request("POST", url, **kwargs)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", self.pipeline_config.request_timeout_seconds)

        for attempt in range(1, self.http_attempts + 1):
            self._rate_limit()
            try:
                resp = self.session.request(method, url, **kwargs)
                resp.raise_for_status()
                return resp
            except requests.RequestException as exc:
                logger.warning(
                    "[%s] %s %s attempt %d failed: %s", self.name, method, url, attempt, exc
                )
                if attempt == self.http_attempts:
                    raise
                time.sleep(2 ** attempt)

        # Unreachable, but keeps type checkers happy
        raise RuntimeError("Retry loop exited unexpectedly")

    def _rate_limit(self) -> None:
        """Enforce minimum delay between requests."""
        delay = self.pipeline_config.request_delay_seconds
        elapsed = time.monotonic() - self._last_request_time
        if elapsed < delay:
            time.sleep(delay - elapsed)
        self._last_request_time = time.monotonic()
