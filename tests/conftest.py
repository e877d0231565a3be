"""Shared fixtures: fast configs and in-memory stores."""

from __future__ import annotations

import pytest

from jobsweep.config import PipelineConfig, RetryConfig, RoleCategory, SourceConfig
from jobsweep.dedup import DedupCache
from jobsweep.storage import MemoryRecordStore


@pytest.fixture
def fast_config() -> PipelineConfig:
    """Pipeline config with every delay set to zero."""
    return PipelineConfig(
        role_categories={
            "new_grad": RoleCategory(
                name="new_grad",
                include=["software engineer", "data engineer"],
                exclude=["senior"],
            ),
        },
        request_delay_seconds=0,
        inter_query_delay_seconds=0,
        tier_delays_seconds={1: 0, 2: 0, 3: 0},
        retry=RetryConfig(max_attempts=3, base_delay_seconds=0),
    )


@pytest.fixture
def source() -> SourceConfig:
    return SourceConfig(
        name="fake",
        adapter_type="fake",
        keywords=["keyword-a", "keyword-b"],
        role_category="new_grad",
        job_limits={"comprehensive": {"default": 50}},
    )


@pytest.fixture
def store() -> MemoryRecordStore:
    s = MemoryRecordStore()
    s.connect()
    return s


@pytest.fixture
def cache(store) -> DedupCache:
    c = DedupCache(store)
    c.load()
    return c
