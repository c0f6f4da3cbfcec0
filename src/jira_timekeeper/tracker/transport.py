"""Authenticated transport to the Jira REST API."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import requests

from jira_timekeeper.core.exceptions import ConfigurationError, TransportError
from jira_timekeeper.core.models import Credentials

logger = logging.getLogger(__name__)


class Transport(ABC):
    """Single path through which every remote call is made."""

    @abstractmethod
    def set_credentials(self, credentials: Optional[Credentials]) -> None:
        """Use credentials for subsequent calls."""

    @abstractmethod
    async def call(self, endpoint: str, method: str = "GET", body: Optional[Any] = None) -> Any:
        """Perform an authenticated call.

        Args:
            endpoint: Path relative to the Jira site, with query string
            method: HTTP verb
            body: JSON body for write requests

        Returns:
            Parsed JSON response, or None for empty responses

        Raises:
            ConfigurationError: If no credentials are set
            TransportError: If the call fails
        """


class HTTPTransport(Transport):
    """Transport using ``requests`` with basic auth (email + API token).

    The blocking request runs in a worker thread so the event loop is
    never blocked.
    """

    def __init__(self, credentials: Optional[Credentials] = None, timeout: float = 30):
        """Initialize HTTP transport.

        Args:
            credentials: Initial credentials
            timeout: Request timeout in seconds
        """
        self.credentials = credentials
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update(
            {"Accept": "application/json", "Content-Type": "application/json"}
        )

    def set_credentials(self, credentials: Optional[Credentials]) -> None:
        self.credentials = credentials

    async def call(self, endpoint: str, method: str = "GET", body: Optional[Any] = None) -> Any:
        if self.credentials is None:
            raise ConfigurationError("Jira credentials not set")

        return await asyncio.to_thread(self._request, self.credentials, endpoint, method, body)

    def _request(
        self, credentials: Credentials, endpoint: str, method: str, body: Optional[Any]
    ) -> Any:
        """Perform the blocking HTTP request.

        Returns:
            Parsed JSON response, or None for empty responses
        """
        url = f"{credentials.base_url}/{endpoint.lstrip('/')}"
        logger.debug(f"{method} {url}")

        try:
            response = self.session.request(
                method,
                url,
                auth=(credentials.email, credentials.api_token),
                json=body,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            detail = e.response.text[:200] if e.response is not None else ""
            raise TransportError(f"{method} {endpoint} failed with HTTP {status}: {detail}", status)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{method} {endpoint} failed: {e}")

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                f"{method} {endpoint} returned invalid JSON: {e}", response.status_code
            )
