"""Tests for the HTTP transport."""

import asyncio
from unittest.mock import Mock

import pytest  # type: ignore[import-not-found]
import requests

from jira_timekeeper.core.exceptions import ConfigurationError, TransportError
from jira_timekeeper.core.models import Credentials
from jira_timekeeper.tracker.transport import HTTPTransport


def make_response(status: int = 200, json_data: object = None, content: bytes = b"{}") -> Mock:
    """Build a mock requests response."""
    response = Mock()
    response.status_code = status
    response.content = content
    response.text = content.decode()
    response.json.return_value = json_data
    if status >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(response=response)
    else:
        response.raise_for_status.return_value = None
    return response


@pytest.fixture
def transport(credentials: Credentials) -> HTTPTransport:
    transport = HTTPTransport(credentials, timeout=5)
    transport.session = Mock()
    return transport


class TestHTTPTransport:
    """Test HTTPTransport."""

    def test_requires_credentials(self) -> None:
        """Test that calls without credentials fail before any request."""
        transport = HTTPTransport()
        transport.session = Mock()

        with pytest.raises(ConfigurationError):
            asyncio.run(transport.call("/rest/api/3/myself"))
        transport.session.request.assert_not_called()

    def test_get_request(self, transport: HTTPTransport) -> None:
        """Test URL building, auth and JSON parsing."""
        transport.session.request.return_value = make_response(json_data={"ok": True})

        result = asyncio.run(transport.call("/rest/api/3/search?jql=x"))

        assert result == {"ok": True}
        args, kwargs = transport.session.request.call_args
        assert args == ("GET", "https://example.atlassian.net/rest/api/3/search?jql=x")
        assert kwargs["auth"] == ("jane@example.com", "secret-token")
        assert kwargs["timeout"] == 5
        assert kwargs["json"] is None

    def test_post_body(self, transport: HTTPTransport) -> None:
        """Test that the body is sent as JSON."""
        transport.session.request.return_value = make_response(json_data={"id": "1"})

        asyncio.run(transport.call("/rest/api/3/issue/A-1/worklog", "POST", {"timeSpent": "1h"}))

        args, kwargs = transport.session.request.call_args
        assert args[0] == "POST"
        assert kwargs["json"] == {"timeSpent": "1h"}

    def test_empty_response(self, transport: HTTPTransport) -> None:
        """Test that an empty body resolves to None."""
        transport.session.request.return_value = make_response(status=204, content=b"")
        assert asyncio.run(transport.call("/x", "DELETE")) is None

    def test_http_error(self, transport: HTTPTransport) -> None:
        """Test that non-2xx responses raise TransportError with the status."""
        transport.session.request.return_value = make_response(
            status=401, content=b"Unauthorized"
        )

        with pytest.raises(TransportError) as exc_info:
            asyncio.run(transport.call("/rest/api/3/myself"))

        assert exc_info.value.status_code == 401
        assert "Unauthorized" in str(exc_info.value)

    def test_network_error(self, transport: HTTPTransport) -> None:
        """Test that connection failures raise TransportError."""
        transport.session.request.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(TransportError, match="refused") as exc_info:
            asyncio.run(transport.call("/rest/api/3/myself"))
        assert exc_info.value.status_code is None

    def test_invalid_json(self, transport: HTTPTransport) -> None:
        """Test that an unparseable body raises TransportError."""
        response = make_response(content=b"<html>")
        response.json.side_effect = ValueError("no json")
        transport.session.request.return_value = response

        with pytest.raises(TransportError, match="invalid JSON"):
            asyncio.run(transport.call("/x"))

    def test_set_credentials(self, transport: HTTPTransport, other_credentials: Credentials) -> None:
        """Test that new credentials are used for later calls."""
        transport.set_credentials(other_credentials)
        transport.session.request.return_value = make_response(json_data=[])

        asyncio.run(transport.call("/x"))

        assert transport.session.request.call_args[1]["auth"] == ("john@example.com", "other-token")
