"""Core data models for Jira time tracking."""

import hashlib
import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from jira_timekeeper.core.duration import parse_duration
from jira_timekeeper.core.exceptions import CacheCorruptionError

_COMPACT_OFFSET_RE = re.compile(r"([+-]\d{2})(\d{2})$")


def parse_timestamp(value: str) -> datetime:
    """Parse a Jira timestamp such as ``2024-06-03T10:15:00.000+0200``.

    Args:
        value: ISO 8601 timestamp, with compact or colon offset, or ``Z``

    Returns:
        Parsed datetime (timezone-aware when an offset is present)

    Raises:
        ValueError: If the value is not a timestamp
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _COMPACT_OFFSET_RE.sub(r"\1:\2", text)
    return datetime.fromisoformat(text)


@dataclass(frozen=True)
class Credentials:
    """Identity used for every call to the issue tracker.

    Attributes:
        email: Account email, also used to scope cache keys
        api_token: Jira API token
        domain: Base URL of the Jira site (e.g. https://acme.atlassian.net)
    """

    email: str
    api_token: str
    domain: str

    @property
    def base_url(self) -> str:
        """Domain without trailing slash, with https:// added if missing."""
        domain = self.domain.strip().rstrip("/")
        if not domain.startswith(("http://", "https://")):
            domain = f"https://{domain}"
        return domain

    def fingerprint(self) -> str:
        """Stable digest of the identity, safe to persist next to cached data."""
        material = "\n".join([self.email, self.base_url, self.api_token])
        return hashlib.sha256(material.encode("utf-8")).hexdigest()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for config serialization."""
        return {
            "email": self.email,
            "api_token": self.api_token,
            "domain": self.domain,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Optional["Credentials"]:
        """Create Credentials from a config section.

        Returns:
            Credentials, or None if any field is empty
        """
        email = data.get("email") or ""
        api_token = data.get("api_token") or ""
        domain = data.get("domain") or ""
        if not (email and api_token and domain):
            return None
        return cls(email=email, api_token=api_token, domain=domain)


@dataclass(frozen=True)
class TrackerUser:
    """User record returned by the Jira user search."""

    account_id: str
    display_name: str
    email_address: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for caching."""
        return {
            "account_id": self.account_id,
            "display_name": self.display_name,
            "email_address": self.email_address,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrackerUser":
        """Create TrackerUser from a cached dictionary."""
        return cls(
            account_id=data["account_id"],
            display_name=data["display_name"],
            email_address=data.get("email_address"),
        )

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "TrackerUser":
        """Create TrackerUser from a Jira REST user object."""
        return cls(
            account_id=data.get("accountId", ""),
            display_name=data.get("displayName", ""),
            email_address=data.get("emailAddress"),
        )


@dataclass(frozen=True)
class Task:
    """Jira issue assigned to the current user.

    Attributes:
        id: Jira internal issue id
        key: Human-readable issue key (e.g. PROJ-123)
        summary: Issue title
        status: Workflow status name
        last_updated: Jira "updated" timestamp as returned by the API
    """

    id: str
    key: str
    summary: str
    status: str
    last_updated: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for caching."""
        return {
            "id": self.id,
            "key": self.key,
            "summary": self.summary,
            "status": self.status,
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Create Task from a cached dictionary."""
        return cls(
            id=data["id"],
            key=data["key"],
            summary=data["summary"],
            status=data["status"],
            last_updated=data.get("last_updated"),
        )

    @classmethod
    def from_api(cls, issue: dict[str, Any]) -> "Task":
        """Create Task from a Jira search result issue."""
        fields = issue.get("fields") or {}
        status = fields.get("status") or {}
        return cls(
            id=str(issue["id"]),
            key=issue["key"],
            summary=fields.get("summary") or "",
            status=status.get("name") or "",
            last_updated=fields.get("updated"),
        )


def _comment_text(comment: Any) -> str:
    """Extract the first text node of an Atlassian document comment."""
    if comment is None:
        return ""
    if isinstance(comment, str):
        return comment
    try:
        return comment["content"][0]["content"][0]["text"] or ""
    except (KeyError, IndexError, TypeError):
        return ""


@dataclass(frozen=True)
class WorkLog:
    """Time logged by the current user against a Jira issue.

    Attributes:
        id: Jira worklog id
        issue_id: Issue the worklog belongs to
        issue_key: Issue key the worklog belongs to
        time_spent: Duration string as stored in Jira (e.g. "1h 30m")
        time_spent_minutes: Duration in minutes, derived from time_spent
        comment: Plain-text comment
        updated: Last update timestamp as returned by the API
        started: When the logged work started, if provided
    """

    id: str
    issue_id: str
    issue_key: str
    time_spent: str
    time_spent_minutes: int
    comment: str
    updated: str
    started: Optional[str] = None

    @property
    def updated_at(self) -> datetime:
        """Parsed ``updated`` timestamp."""
        return parse_timestamp(self.updated)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for caching."""
        return {
            "id": self.id,
            "issue_id": self.issue_id,
            "issue_key": self.issue_key,
            "time_spent": self.time_spent,
            "time_spent_minutes": self.time_spent_minutes,
            "comment": self.comment,
            "updated": self.updated,
            "started": self.started,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkLog":
        """Create WorkLog from a cached dictionary."""
        return cls(
            id=data["id"],
            issue_id=data["issue_id"],
            issue_key=data["issue_key"],
            time_spent=data["time_spent"],
            time_spent_minutes=int(data["time_spent_minutes"]),
            comment=data.get("comment") or "",
            updated=data["updated"],
            started=data.get("started"),
        )

    @classmethod
    def from_api(cls, data: dict[str, Any], task_key: str) -> "WorkLog":
        """Create WorkLog from a Jira REST worklog object."""
        time_spent = data.get("timeSpent") or ""
        return cls(
            id=str(data["id"]),
            issue_id=task_key,
            issue_key=task_key,
            time_spent=time_spent,
            time_spent_minutes=parse_duration(time_spent),
            comment=_comment_text(data.get("comment")),
            updated=data.get("updated") or data.get("started") or "",
            started=data.get("started"),
        )


@dataclass
class CacheEntry:
    """Envelope persisted for every cached value.

    Timestamps are epoch milliseconds.

    Attributes:
        value: JSON-serializable cached value
        expiry: When the entry stops being valid
        updated_at: When the entry was written
    """

    value: Any
    expiry: int
    updated_at: int

    def is_expired(self, now_ms: int) -> bool:
        """Check whether the entry has expired at ``now_ms``."""
        return now_ms >= self.expiry

    def encode(self) -> str:
        """Serialize to JSON text."""
        return json.dumps(
            {"value": self.value, "expiry": self.expiry, "updatedAt": self.updated_at}
        )

    @classmethod
    def decode(cls, raw: str) -> "CacheEntry":
        """Deserialize from JSON text.

        Raises:
            CacheCorruptionError: If the text is not a valid envelope
        """
        try:
            data = json.loads(raw)
            return cls(
                value=data["value"],
                expiry=int(data["expiry"]),
                updated_at=int(data["updatedAt"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise CacheCorruptionError(f"Malformed cache entry: {e}") from e
