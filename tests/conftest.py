"""Pytest configuration and shared fixtures."""

import copy
import os
import time
from typing import Any, Callable, Optional, Union

import pytest  # type: ignore[import-not-found]

from jira_timekeeper.core.cache import CacheStore
from jira_timekeeper.core.exceptions import ConfigurationError, TransportError
from jira_timekeeper.core.models import Credentials
from jira_timekeeper.core.storage import MemoryStore
from jira_timekeeper.tracker.client import TrackerClient
from jira_timekeeper.tracker.transport import Transport

USER_SEARCH = "/rest/api/3/user/search"
SEARCH = "/rest/api/3/search"


def worklog_path(task_key: str) -> str:
    return f"/rest/api/3/issue/{task_key}/worklog"


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest."""
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")


def set_local_timezone(monkeypatch: pytest.MonkeyPatch, tz: str) -> None:
    """Switch the process-local timezone (POSIX TZ string)."""
    monkeypatch.setenv("TZ", tz)
    time.tzset()


@pytest.fixture(autouse=True)
def utc_local_time():
    """Run every test with UTC as local time, so month boundaries are fixed."""
    if not hasattr(time, "tzset"):
        yield
        return

    previous = os.environ.get("TZ")
    os.environ["TZ"] = "UTC"
    time.tzset()
    yield
    if previous is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = previous
    time.tzset()


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, now: float = 1_717_400_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


Response = Union[Any, Exception, Callable[[str, Any], Any]]


class FakeTransport(Transport):
    """Transport answering from registered routes and recording every call.

    Routes are keyed by (method, path without query string). A route value
    can be a JSON-like object, an exception to raise, or a callable
    receiving (endpoint, body).
    """

    def __init__(self) -> None:
        self.credentials: Optional[Credentials] = None
        self.routes: dict[tuple[str, str], Response] = {}
        self.calls: list[tuple[str, str, Any]] = []

    def set_credentials(self, credentials: Optional[Credentials]) -> None:
        self.credentials = credentials

    def route(self, method: str, path: str, response: Response) -> None:
        self.routes[(method, path)] = response

    async def call(self, endpoint: str, method: str = "GET", body: Optional[Any] = None) -> Any:
        if self.credentials is None:
            raise ConfigurationError("Jira credentials not set")

        self.calls.append((method, endpoint, body))
        path = endpoint.split("?", 1)[0]
        if (method, path) not in self.routes:
            raise TransportError(f"{method} {endpoint} failed with HTTP 404", 404)

        response = self.routes[(method, path)]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(endpoint, body)
        return copy.deepcopy(response)

    def count(self, method: str, path: str) -> int:
        """Number of calls made to a route."""
        return sum(1 for m, endpoint, _ in self.calls if m == method and endpoint.split("?")[0] == path)


def make_issue(issue_id: str, key: str, summary: str = "Task", status: str = "In Progress") -> dict:
    """Build a Jira search result issue."""
    return {
        "id": issue_id,
        "key": key,
        "fields": {
            "summary": summary,
            "status": {"name": status},
            "updated": "2024-06-01T09:00:00.000+0000",
        },
    }


def make_worklog(
    worklog_id: str,
    time_spent: str,
    updated: str,
    author: str = "Jane Doe",
    comment: Optional[str] = "Work",
) -> dict:
    """Build a Jira REST worklog object with an ADF comment."""
    data: dict[str, Any] = {
        "id": worklog_id,
        "author": {"accountId": "id-" + author, "displayName": author},
        "timeSpent": time_spent,
        "updated": updated,
        "started": updated,
    }
    if comment is not None:
        data["comment"] = {
            "type": "doc",
            "version": 1,
            "content": [{"type": "paragraph", "content": [{"type": "text", "text": comment}]}],
        }
    return data


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(
        email="jane@example.com",
        api_token="secret-token",
        domain="https://example.atlassian.net",
    )


@pytest.fixture
def other_credentials() -> Credentials:
    return Credentials(
        email="john@example.com",
        api_token="other-token",
        domain="https://example.atlassian.net",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> CacheStore:
    return CacheStore(MemoryStore(), clock=clock)


@pytest.fixture
def transport() -> FakeTransport:
    """Transport serving two tasks with worklogs from two authors."""
    fake = FakeTransport()
    fake.route(
        "GET",
        USER_SEARCH,
        [{"accountId": "abc123", "displayName": "Jane Doe", "emailAddress": "jane@example.com"}],
    )
    fake.route(
        "GET",
        SEARCH,
        {
            "startAt": 0,
            "maxResults": 100,
            "total": 2,
            "issues": [
                make_issue("10001", "PROJ-1", "Build cache layer"),
                make_issue("10002", "PROJ-2", "Write docs", status="To Do"),
            ],
        },
    )
    fake.route(
        "GET",
        worklog_path("PROJ-1"),
        {
            "worklogs": [
                make_worklog("1", "1h", "2024-06-03T10:00:00.000+0000"),
                make_worklog("2", "30m", "2024-05-31T16:00:00.000+0000"),
                make_worklog("3", "2h", "2024-06-04T10:00:00.000+0000", author="Someone Else"),
            ]
        },
    )
    fake.route(
        "GET",
        worklog_path("PROJ-2"),
        {"worklogs": [make_worklog("4", "2h", "2024-06-10T12:00:00.000+0000")]},
    )
    fake.route("POST", worklog_path("PROJ-1"), {"id": "99", "timeSpent": "1h"})
    return fake


@pytest.fixture
def client(transport: FakeTransport, cache: CacheStore, credentials: Credentials) -> TrackerClient:
    return TrackerClient(transport, cache, credentials=credentials)
