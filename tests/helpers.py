"""Test doubles shared across modules: job factory, fake adapter, recording sink."""

from __future__ import annotations

from jobsweep.adapters.base import BaseAdapter
from jobsweep.models import JobRecord, QueryDescriptor


def make_job(n: int | str, title: str = "Software Engineer", source: str = "fake", **kwargs) -> JobRecord:
    return JobRecord(
        id=f"{source}-{n}",
        title=title,
        company=kwargs.pop("company", "Acme"),
        url=kwargs.pop("url", f"https://example.com/jobs/{n}"),
        source=source,
        **kwargs,
    )


class FakeAdapter(BaseAdapter):
    """Returns canned results per keyword; an Exception value is raised instead."""

    def __init__(self, source_config, pipeline_config, results=None):
        super().__init__(source_config, pipeline_config)
        self.results = results or {}
        self.calls: list[QueryDescriptor] = []

    def extract(self, query):
        self.calls.append(query)
        result = self.results.get(query.keyword, [])
        if isinstance(result, Exception):
            raise result
        return list(result)


class RecordingSink:
    def __init__(self, name: str = "recording", fail: bool = False):
        self.name = name
        self.fail = fail
        self.messages: list = []

    def send(self, message):
        if self.fail:
            raise RuntimeError(f"{self.name} is down")
        self.messages.append(message)

    @property
    def cards(self) -> list[dict]:
        return [m for m in self.messages if isinstance(m, dict)]

    @property
    def texts(self) -> list[str]:
        return [m for m in self.messages if isinstance(m, str)]
