"""Core functionality: models, duration codec, storage and cache."""

from jira_timekeeper.core.cache import CacheStore
from jira_timekeeper.core.models import Credentials, Task, TrackerUser, WorkLog

__all__ = ["CacheStore", "Credentials", "Task", "TrackerUser", "WorkLog"]
