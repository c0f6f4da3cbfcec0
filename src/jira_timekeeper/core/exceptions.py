"""Exceptions raised by Jira Timekeeper."""

from typing import Optional


class TimekeeperError(Exception):
    """Base class for all Jira Timekeeper errors."""

    pass


class ConfigurationError(TimekeeperError):
    """Credentials or settings required for a call are missing."""

    pass


class TransportError(TimekeeperError):
    """Remote issue-tracker call failed (network, auth or non-2xx response)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        """Initialize transport error.

        Args:
            message: Error description
            status_code: HTTP status code, if a response was received
        """
        super().__init__(message)
        self.status_code = status_code


class UserNotFoundError(TimekeeperError):
    """No tracker user matches the configured email."""

    pass


class CacheCorruptionError(TimekeeperError):
    """A persisted cache entry could not be decoded.

    Only raised internally by the cache envelope decoder; the cache store
    treats it as a miss.
    """

    pass
