"""Cached access to Jira tasks and worklogs."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, TypeVar, Union
from urllib.parse import quote, urlencode

from jira_timekeeper.core.cache import CacheStore
from jira_timekeeper.core.exceptions import ConfigurationError, UserNotFoundError
from jira_timekeeper.core.models import Credentials, Task, TrackerUser, WorkLog
from jira_timekeeper.tracker.transport import Transport

logger = logging.getLogger(__name__)

T = TypeVar("T")

CACHE_PREFIX = "jira_"
# Lives outside CACHE_PREFIX so purging tracker data keeps it
OWNER_KEY = "credentials_fingerprint"
OWNER_TTL = 10 * 365 * 24 * 60 * 60
JIRA_STARTED_FORMAT = "%Y-%m-%dT%H:%M:%S.000%z"


@dataclass(frozen=True)
class CacheTTLs:
    """Time to live, in seconds, per cached entity kind."""

    user: float = 24 * 60 * 60
    tasks: float = 30 * 60
    worklogs: float = 15 * 60
    all_worklogs: float = 15 * 60


def _adf_paragraph(text: str) -> dict[str, Any]:
    """Wrap plain text in an Atlassian document with a single paragraph."""
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {
                "type": "paragraph",
                "content": [{"type": "text", "text": text}],
            }
        ],
    }


def format_started(started: Union[datetime, str]) -> str:
    """Format a worklog start time the way Jira expects it.

    Naive datetimes are taken as local time. Strings pass through unchanged.
    """
    if isinstance(started, str):
        return started
    if started.tzinfo is None:
        started = started.astimezone()
    return started.strftime(JIRA_STARTED_FORMAT)


class TrackerClient:
    """Sole path to the Jira API, owning cache policy and aggregation.

    Every read has a cached variant (``get_*``) and a forced variant
    (``refresh_*``). Forced variants drop the relevant cache keys and then
    go through the cached path, so fetching and cache writes live in one
    place.

    Cache keys are scoped to the current email:

    - ``jira_user_{email}``
    - ``jira_tasks_{email}``
    - ``jira_worklogs_{email}_{task_key}``
    - ``jira_all_worklogs_{email}_{month}_{year}`` or ``..._all``
    """

    SEARCH_PAGE_SIZE = 100
    TASKS_JQL = "assignee=currentUser()"
    TASK_FIELDS = "summary,status,updated"

    def __init__(
        self,
        transport: Transport,
        cache: Optional[CacheStore] = None,
        credentials: Optional[Credentials] = None,
        ttls: Optional[CacheTTLs] = None,
        max_concurrent_fetches: int = 1,
    ):
        """Initialize tracker client.

        Args:
            transport: Authenticated transport used for every remote call
            cache: Cache store. Creates an in-memory one if None.
            credentials: Initial credentials
            ttls: Cache lifetimes. Uses defaults if None.
            max_concurrent_fetches: Per-task worklog fetches allowed in flight
                while aggregating; 1 fetches strictly one after another

        Raises:
            ValueError: If max_concurrent_fetches is less than 1
        """
        if max_concurrent_fetches < 1:
            raise ValueError("max_concurrent_fetches must be at least 1")

        self.transport = transport
        self.cache = cache if cache is not None else CacheStore()
        self.ttls = ttls or CacheTTLs()
        self.max_concurrent_fetches = max_concurrent_fetches
        self._credentials = credentials
        self.transport.set_credentials(credentials)
        self._claim_cache()

    # Credentials

    @property
    def credentials(self) -> Optional[Credentials]:
        """Currently active credentials."""
        return self._credentials

    def set_credentials(self, credentials: Optional[Credentials]) -> None:
        """Switch to new credentials.

        Any change purges every cached Jira entry first, since cached data
        belongs to the previous identity.

        Args:
            credentials: New credentials, or None to sign out
        """
        if credentials == self._credentials:
            return

        self._credentials = credentials
        self.transport.set_credentials(credentials)
        self._claim_cache()

    def _claim_cache(self) -> None:
        """Purge cached tracker data written under other credentials.

        The cache records a fingerprint of the credentials that filled it.
        Credentials can change outside this client (config edits, another
        process), so the check runs whenever a client starts as well as on
        every switch. An unknown owner counts as different.
        """
        fingerprint = self._credentials.fingerprint() if self._credentials else None
        if self.cache.get(OWNER_KEY) == fingerprint:
            return

        removed = self.cache.remove_prefix(CACHE_PREFIX)
        if removed:
            logger.info(f"Credentials changed, dropped {removed} cached entries")

        if fingerprint is None:
            self.cache.remove(OWNER_KEY)
        else:
            self.cache.set(OWNER_KEY, fingerprint, ttl=OWNER_TTL)

    def _require_credentials(self) -> Credentials:
        if self._credentials is None:
            raise ConfigurationError("Jira credentials not set")
        return self._credentials

    def get_task_url(self, task_key: str) -> str:
        """Browser URL of a task, or an empty string without credentials."""
        if self._credentials is None:
            return ""
        return f"{self._credentials.base_url}/browse/{task_key}"

    # Cache keys

    def user_cache_key(self) -> str:
        return f"{CACHE_PREFIX}user_{self._require_credentials().email}"

    def tasks_cache_key(self) -> str:
        return f"{CACHE_PREFIX}tasks_{self._require_credentials().email}"

    def task_worklogs_cache_key(self, task_key: str) -> str:
        return f"{CACHE_PREFIX}worklogs_{self._require_credentials().email}_{task_key}"

    def all_worklogs_cache_key(self, month: Optional[int] = None, year: Optional[int] = None) -> str:
        email = self._require_credentials().email
        if month is not None and year is not None:
            return f"{CACHE_PREFIX}all_worklogs_{email}_{month}_{year}"
        return f"{CACHE_PREFIX}all_worklogs_{email}_all"

    def last_refreshed(self, key: str) -> Optional[datetime]:
        """When a cache key was last written, for caller-side staleness checks."""
        return self.cache.last_written(key)

    def _cached(self, key: str, decode: Callable[[Any], T]) -> Optional[T]:
        """Read and decode a cached value.

        A value that no longer decodes is dropped and reported as a miss.
        """
        value = self.cache.get(key)
        if value is None:
            return None
        try:
            return decode(value)
        except (KeyError, TypeError, ValueError) as e:
            logger.debug(f"Dropping undecodable cache value {key}: {e}")
            self.cache.remove(key)
            return None

    async def _call(self, endpoint: str, method: str = "GET", body: Optional[Any] = None) -> Any:
        """Make a remote call, logging failures before re-raising them."""
        self._require_credentials()
        try:
            return await self.transport.call(endpoint, method, body)
        except Exception as e:
            logger.error(f"Jira API call {method} {endpoint} failed: {e}")
            raise

    # Current user

    async def get_current_user(self) -> TrackerUser:
        """Get the Jira user matching the configured email.

        Returns:
            Current user

        Raises:
            ConfigurationError: If credentials are not set
            UserNotFoundError: If no user matches the email
            TransportError: If the remote call fails
        """
        credentials = self._require_credentials()
        key = self.user_cache_key()

        cached = self._cached(key, TrackerUser.from_dict)
        if cached is not None:
            return cached

        endpoint = f"/rest/api/3/user/search?query={quote(credentials.email)}"
        data = await self._call(endpoint)
        if not data:
            raise UserNotFoundError(f"No Jira user found for {credentials.email}")

        user = TrackerUser.from_api(data[0])
        self.cache.set(key, user.to_dict(), ttl=self.ttls.user)
        return user

    async def refresh_current_user(self) -> TrackerUser:
        """Get the current user, bypassing the cache."""
        self.cache.remove(self.user_cache_key())
        return await self.get_current_user()

    # Tasks

    async def get_user_tasks(self) -> list[Task]:
        """Get every task assigned to the current user.

        Returns:
            Tasks in the order Jira returns them

        Raises:
            ConfigurationError: If credentials are not set
            TransportError: If the remote call fails
        """
        key = self.tasks_cache_key()

        cached = self._cached(key, lambda rows: [Task.from_dict(row) for row in rows])
        if cached is not None:
            return cached

        tasks: list[Task] = []
        start_at = 0
        while True:
            query = urlencode(
                {
                    "jql": self.TASKS_JQL,
                    "fields": self.TASK_FIELDS,
                    "startAt": start_at,
                    "maxResults": self.SEARCH_PAGE_SIZE,
                }
            )
            data = await self._call(f"/rest/api/3/search?{query}") or {}
            issues = data.get("issues") or []
            tasks.extend(Task.from_api(issue) for issue in issues)
            start_at += len(issues)

            total = data.get("total", start_at)
            if not issues or start_at >= total:
                break

        logger.debug(f"Fetched {len(tasks)} tasks")
        self.cache.set(key, [task.to_dict() for task in tasks], ttl=self.ttls.tasks)
        return tasks

    async def refresh_user_tasks(self) -> list[Task]:
        """Get assigned tasks, bypassing the cache."""
        self.cache.remove(self.tasks_cache_key())
        return await self.get_user_tasks()

    # Worklogs

    async def get_task_worklogs(self, task_key: str) -> list[WorkLog]:
        """Get the current user's worklogs on one task.

        Authorship is decided by comparing display names with the current
        user's.

        Args:
            task_key: Issue key (e.g. PROJ-123)

        Returns:
            Worklogs authored by the current user

        Raises:
            ConfigurationError: If credentials are not set
            TransportError: If a remote call fails
        """
        key = self.task_worklogs_cache_key(task_key)

        cached = self._cached(key, lambda rows: [WorkLog.from_dict(row) for row in rows])
        if cached is not None:
            return cached

        data = await self._call(f"/rest/api/3/issue/{quote(task_key)}/worklog") or {}
        user = await self.get_current_user()

        worklogs = [
            WorkLog.from_api(raw, task_key)
            for raw in data.get("worklogs") or []
            if (raw.get("author") or {}).get("displayName") == user.display_name
        ]

        self.cache.set(key, [w.to_dict() for w in worklogs], ttl=self.ttls.worklogs)
        return worklogs

    async def refresh_task_worklogs(self, task_key: str) -> list[WorkLog]:
        """Get one task's worklogs, bypassing the cache."""
        self.cache.remove(self.task_worklogs_cache_key(task_key))
        return await self.get_task_worklogs(task_key)

    async def _fetch_worklogs_for(self, tasks: list[Task]) -> list[list[WorkLog]]:
        """Fetch worklogs for each task, results in task order."""
        if self.max_concurrent_fetches == 1:
            results = []
            for task in tasks:
                results.append(await self.get_task_worklogs(task.key))
            return results

        semaphore = asyncio.Semaphore(self.max_concurrent_fetches)

        async def fetch(task_key: str) -> list[WorkLog]:
            async with semaphore:
                return await self.get_task_worklogs(task_key)

        outcomes = await asyncio.gather(
            *(fetch(task.key) for task in tasks), return_exceptions=True
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        return outcomes  # type: ignore[return-value]

    async def get_all_worklogs(
        self, month: Optional[int] = None, year: Optional[int] = None
    ) -> list[WorkLog]:
        """Get the current user's worklogs across all assigned tasks.

        Filtering by period only happens when both month and year are given.

        Args:
            month: Calendar month (1-12)
            year: Calendar year

        Returns:
            Worklogs grouped in task order

        Raises:
            ConfigurationError: If credentials are not set
            TransportError: If a remote call fails
        """
        key = self.all_worklogs_cache_key(month, year)

        cached = self._cached(key, lambda rows: [WorkLog.from_dict(row) for row in rows])
        if cached is not None:
            return cached

        tasks = await self.get_user_tasks()
        if tasks:
            # Shared by every per-task fetch below
            await self.get_current_user()

        worklogs: list[WorkLog] = []
        for task_worklogs in await self._fetch_worklogs_for(tasks):
            worklogs.extend(task_worklogs)

        if month is not None and year is not None:
            worklogs = [w for w in worklogs if _in_month(w, month, year)]

        self.cache.set(key, [w.to_dict() for w in worklogs], ttl=self.ttls.all_worklogs)
        return worklogs

    async def refresh_all_worklogs(
        self, month: Optional[int] = None, year: Optional[int] = None
    ) -> list[WorkLog]:
        """Get aggregated worklogs, rebuilding them from fresh remote data."""
        email = self._require_credentials().email
        self.cache.remove(self.all_worklogs_cache_key(month, year))
        self.cache.remove(self.tasks_cache_key())
        self.cache.remove_prefix(f"{CACHE_PREFIX}worklogs_{email}_")
        return await self.get_all_worklogs(month, year)

    async def add_worklog(
        self,
        task_key: str,
        time_spent: str,
        comment: str,
        started: Optional[Union[datetime, str]] = None,
    ) -> Any:
        """Log work on a task.

        On success the task's worklogs and every aggregated worklog entry of
        the current user are dropped from the cache. On failure nothing is
        invalidated.

        Args:
            task_key: Issue key
            time_spent: Duration string (e.g. "1h 30m")
            comment: Plain-text comment
            started: When the work started

        Returns:
            Created worklog as returned by Jira

        Raises:
            ConfigurationError: If credentials are not set
            TransportError: If the remote call fails
        """
        email = self._require_credentials().email

        payload: dict[str, Any] = {
            "timeSpent": time_spent,
            "comment": _adf_paragraph(comment),
        }
        if started:
            payload["started"] = format_started(started)

        result = await self._call(f"/rest/api/3/issue/{quote(task_key)}/worklog", "POST", payload)

        self.cache.remove(self.task_worklogs_cache_key(task_key))
        removed = self.cache.remove_prefix(f"{CACHE_PREFIX}all_worklogs_{email}_")
        logger.info(f"Logged {time_spent} on {task_key}, invalidated {removed} aggregate entries")
        return result

    async def test_connection(self) -> bool:
        """Check that the credentials work.

        Returns:
            True if the current user could be resolved
        """
        try:
            await self.get_current_user()
            return True
        except Exception as e:
            logger.error(f"Connection test failed: {e}")
            return False


def _in_month(worklog: WorkLog, month: int, year: int) -> bool:
    """Check whether a worklog was updated in the given month of local time."""
    try:
        updated = worklog.updated_at
    except ValueError:
        logger.warning(f"Skipping worklog {worklog.id} with bad timestamp: {worklog.updated!r}")
        return False
    local = updated.astimezone()
    return local.year == year and local.month == month
