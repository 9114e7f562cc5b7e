"""
Tests for CmsApiClient.

The HTTP session is a MagicMock; responses are built with ``make_response``.
"""

import json
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from unittest.mock import MagicMock

import pytest
import requests

from ctsync.adapters.providers.rest_client import CmsApiClient, get_retry_after
from ctsync.core.exceptions import (
    AuthenticationError,
    NotFoundError,
    PermissionError,
    PreconditionFailedError,
    ProviderError,
    RateLimitError,
    ServerError,
    TimeoutError,
    TransientError,
)


def make_response(status=200, body=None, headers=None):
    response = MagicMock()
    response.status_code = status
    response.ok = status < 400
    response.headers = headers or {}
    response.text = json.dumps(body) if body is not None else ""
    response.json.return_value = body
    return response


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def client(session):
    return CmsApiClient("https://cms.example.com/", "token-123", session=session)


# =============================================================================
# Requests
# =============================================================================


class TestRequests:
    """Tests for URL building, auth and preconditions."""

    def test_sets_auth_headers(self, session, client):
        """The bearer token is added to the session headers."""
        headers = session.headers.update.call_args[0][0]
        assert headers["Authorization"] == "Bearer token-123"
        assert headers["Accept"] == "application/json"

    def test_versioned_url(self, session, client):
        """Endpoints are joined under the API version."""
        session.request.return_value = make_response(body={"items": []})

        client.list_content_types()

        method, url = session.request.call_args[0]
        assert method == "GET"
        assert url == "https://cms.example.com/preview3/contenttypes"
        assert session.request.call_args[1]["timeout"] == CmsApiClient.DEFAULT_TIMEOUT

    def test_unversioned_url(self, session):
        """``api_version=None`` uses the root directly."""
        session.request.return_value = make_response(body=[])
        client = CmsApiClient("https://cms.example.com", "t", api_version=None, session=session)

        client.list_content_types()

        assert session.request.call_args[0][1] == "https://cms.example.com/contenttypes"

    def test_update_sends_if_match(self, session, client):
        """Updates carry the ETag precondition."""
        session.request.return_value = make_response(
            body={"key": "article"}, headers={"ETag": 'W/"2"'}
        )

        data, etag = client.update_content_type("article", {"key": "article"}, etag='W/"1"')

        kwargs = session.request.call_args[1]
        assert kwargs["headers"] == {"If-Match": 'W/"1"'}
        assert kwargs["json"] == {"key": "article"}
        assert etag == 'W/"2"'
        assert data == {"key": "article"}

    def test_update_without_etag(self, session, client):
        """No precondition header without an ETag."""
        session.request.return_value = make_response()

        data, _ = client.update_content_type("article", {"key": "article"})

        assert session.request.call_args[1]["headers"] is None
        assert data == {"key": "article"}

    def test_create_falls_back_to_payload(self, session, client):
        """An empty create response returns the sent payload."""
        session.request.return_value = make_response(status=201)

        data, etag = client.create_content_type({"key": "hero"})

        assert data == {"key": "hero"}
        assert etag is None

    def test_listing_accepts_items_wrapper(self, session, client):
        """Listings may be wrapped in ``items``; non-objects are dropped."""
        session.request.return_value = make_response(body={"items": [{"key": "a"}, "junk"]})

        assert client.list_content_types() == [{"key": "a"}]

    def test_unexpected_listing(self, session, client):
        """A listing that is not a list is rejected."""
        session.request.return_value = make_response(body={"items": "nope"})

        with pytest.raises(ProviderError, match="Unexpected"):
            client.list_content_types()

    def test_invalid_json(self, session, client):
        """Non-JSON bodies raise ProviderError."""
        response = make_response()
        response.text = "<html>"
        response.json.side_effect = ValueError("no json")
        session.request.return_value = response

        with pytest.raises(ProviderError, match="Invalid JSON"):
            client.list_content_types()


# =============================================================================
# Error Mapping
# =============================================================================


class TestErrorMapping:
    """Tests for turning HTTP failures into typed errors."""

    @pytest.mark.parametrize(
        ("status", "error_type", "retryable"),
        [
            (401, AuthenticationError, False),
            (403, PermissionError, False),
            (404, NotFoundError, False),
            (409, PreconditionFailedError, True),
            (412, PreconditionFailedError, True),
            (429, RateLimitError, True),
            (500, ServerError, True),
            (503, ServerError, True),
            (400, ProviderError, False),
        ],
    )
    def test_status_mapping(self, session, client, status, error_type, retryable):
        """Each status maps to an error with the right retry classification."""
        session.request.return_value = make_response(status=status, body={"error": "x"})

        with pytest.raises(error_type) as exc_info:
            client.request("GET", "contenttypes")

        assert exc_info.value.retryable is retryable

    def test_precondition_carries_current_etag(self, session, client):
        """412 responses expose the server's current ETag."""
        session.request.return_value = make_response(status=412, headers={"ETag": 'W/"7"'})

        with pytest.raises(PreconditionFailedError) as exc_info:
            client.update_content_type("article", {}, etag='W/"6"')

        assert exc_info.value.etag == 'W/"7"'

    def test_rate_limit_retry_after(self, session, client):
        """Retry-After is parsed onto the error."""
        session.request.return_value = make_response(status=429, headers={"Retry-After": "12"})

        with pytest.raises(RateLimitError) as exc_info:
            client.request("GET", "contenttypes")

        assert exc_info.value.retry_after == 12.0

    def test_server_error_status(self, session, client):
        """Server errors keep their status code."""
        session.request.return_value = make_response(status=502)

        with pytest.raises(ServerError) as exc_info:
            client.request("GET", "contenttypes")

        assert exc_info.value.status_code == 502

    def test_timeout(self, session, client):
        """Request timeouts become TimeoutError."""
        session.request.side_effect = requests.exceptions.Timeout("slow")

        with pytest.raises(TimeoutError) as exc_info:
            client.request("GET", "contenttypes")

        assert exc_info.value.timeout_seconds == CmsApiClient.DEFAULT_TIMEOUT
        assert exc_info.value.retryable

    def test_connection_error(self, session, client):
        """Connection failures are transient."""
        session.request.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(TransientError, match="Connection failed"):
            client.request("GET", "contenttypes")

    def test_get_missing_returns_none(self, session, client):
        """A 404 on get means the type does not exist."""
        session.request.return_value = make_response(status=404)

        assert client.get_content_type("missing") is None

    def test_delete_missing_returns_false(self, session, client):
        """A 404 on delete reports nothing was deleted."""
        session.request.return_value = make_response(status=404)

        assert client.delete_content_type("missing") is False

    def test_connection_check(self, session, client):
        """test_connection swallows provider errors into False."""
        session.request.return_value = make_response(status=401)
        assert client.test_connection() is False

        session.request.return_value = make_response(body=[])
        assert client.test_connection() is True


class TestRetryAfter:
    """Tests for Retry-After parsing."""

    def test_missing(self):
        assert get_retry_after(make_response(headers={})) is None

    def test_seconds(self):
        assert get_retry_after(make_response(headers={"Retry-After": "3.5"})) == 3.5

    def test_http_date(self):
        """HTTP dates become seconds from now."""
        when = datetime.now(timezone.utc) + timedelta(seconds=120)
        value = get_retry_after(make_response(headers={"Retry-After": format_datetime(when, usegmt=True)}))

        assert 100 < value <= 120

    def test_past_date_is_zero(self):
        when = datetime.now(timezone.utc) - timedelta(minutes=5)
        assert get_retry_after(make_response(headers={"Retry-After": format_datetime(when, usegmt=True)})) == 0.0

    def test_garbage(self):
        assert get_retry_after(make_response(headers={"Retry-After": "soon"})) is None
