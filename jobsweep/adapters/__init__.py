from .base import AdapterError, BaseAdapter
from .github import GithubListAdapter
from .greenhouse import GreenhouseAdapter
from .linkedin import LinkedInAdapter
from .workday import WorkdayAdapter

__all__ = [
    "AdapterError",
    "BaseAdapter",
    "GithubListAdapter",
    "GreenhouseAdapter",
    "LinkedInAdapter",
    "WorkdayAdapter",
]
