"""
CMS API Client - Low-level HTTP client for the content-type REST API.

This handles the raw HTTP communication with the CMS.
The RestCmsProvider uses this to implement the CmsProviderPort.

Retries are not done here: the sync history manager wraps every provider
call in its own timeout and backoff policy, so this client only turns HTTP
failures into typed, retry-classified errors.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import requests
from requests.adapters import HTTPAdapter

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


def get_retry_after(response: requests.Response) -> float | None:
    """
    Parse the Retry-After header as seconds.

    Accepts both delta-seconds and an HTTP date.
    """
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class CmsApiClient:
    """
    Low-level CMS REST API client.

    Features:
    - Bearer token authentication
    - Connection pooling for performance
    - ETag preconditions through ``If-Match``
    """

    DEFAULT_API_VERSION = "preview3"

    # Connection pool settings
    DEFAULT_POOL_CONNECTIONS = 10
    DEFAULT_POOL_MAXSIZE = 10
    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        base_url: str,
        api_token: str,
        api_version: str | None = DEFAULT_API_VERSION,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: CMS API root (e.g., https://api.cms.example.com)
            api_token: Bearer token
            api_version: Path segment inserted after the root; None for none
            timeout: Request timeout in seconds
            session: Pre-built session (mainly for tests)
        """
        root = base_url.rstrip("/")
        self.api_url = f"{root}/{api_version}" if api_version else root
        self.timeout = timeout
        self.logger = logging.getLogger("CmsApiClient")

        self.headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        }

        self._session = session or requests.Session()
        self._session.headers.update(self.headers)

        if session is None:
            adapter = HTTPAdapter(
                pool_connections=self.DEFAULT_POOL_CONNECTIONS,
                pool_maxsize=self.DEFAULT_POOL_MAXSIZE,
            )
            self._session.mount("https://", adapter)
            self._session.mount("http://", adapter)

    def close(self) -> None:
        self._session.close()

    # -------------------------------------------------------------------------
    # Core Request Methods
    # -------------------------------------------------------------------------

    def request(
        self,
        method: str,
        endpoint: str,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> requests.Response:
        """
        Make an authenticated request.

        Raises:
            ProviderError: Typed subclass matching the failure
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        kwargs.setdefault("timeout", self.timeout)

        try:
            response = self._session.request(method, url, headers=headers, **kwargs)
        except requests.exceptions.Timeout as e:
            raise TimeoutError(
                f"{method} {endpoint} timed out",
                timeout_seconds=kwargs["timeout"],
                operation=f"{method} {endpoint}",
                cause=e,
            ) from e
        except requests.exceptions.ConnectionError as e:
            raise TransientError(f"Connection failed: {e}", cause=e) from e

        self.logger.debug(f"{method} {endpoint} -> {response.status_code}")
        self._handle_response(response, endpoint)
        return response

    # -------------------------------------------------------------------------
    # Response Handling
    # -------------------------------------------------------------------------

    def _handle_response(self, response: requests.Response, endpoint: str) -> None:
        """Convert error statuses to typed exceptions."""
        if response.ok:
            return

        status = response.status_code
        error_body = response.text[:500] if response.text else ""

        if status == 401:
            raise AuthenticationError("CMS authentication failed. Check your API token.")

        if status == 403:
            raise PermissionError(
                f"Permission denied for {endpoint}. Check token permissions.", type_key=endpoint
            )

        if status == 404:
            raise NotFoundError(f"Not found: {endpoint}", type_key=endpoint)

        if status in (409, 412):
            raise PreconditionFailedError(
                f"Precondition failed for {endpoint}: {error_body}",
                type_key=endpoint,
                etag=response.headers.get("ETag"),
            )

        if status == 429:
            raise RateLimitError(
                f"CMS rate limit exceeded for {endpoint}",
                retry_after=get_retry_after(response),
                type_key=endpoint,
            )

        if status >= 500:
            raise ServerError(
                f"CMS server error {status} for {endpoint}: {error_body}",
                status_code=status,
                type_key=endpoint,
            )

        raise ProviderError(f"CMS API error {status}: {error_body}", type_key=endpoint)

    @staticmethod
    def _json(response: requests.Response) -> Any:
        if not response.text:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"Invalid JSON from CMS: {response.text[:200]}", cause=e) from e

    # -------------------------------------------------------------------------
    # Content Types API
    # -------------------------------------------------------------------------

    def list_content_types(self) -> list[dict[str, Any]]:
        data = self._json(self.request("GET", "contenttypes"))
        items = data.get("items", []) if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise ProviderError("Unexpected content type listing from CMS")
        return [item for item in items if isinstance(item, dict)]

    def get_content_type(self, key: str) -> tuple[dict[str, Any], str | None] | None:
        """The content type and its ETag, or None if it does not exist."""
        try:
            response = self.request("GET", f"contenttypes/{key}")
        except NotFoundError:
            return None
        return self._json(response), response.headers.get("ETag")

    def create_content_type(self, data: dict[str, Any]) -> tuple[dict[str, Any], str | None]:
        response = self.request("POST", "contenttypes", json=data)
        return self._json(response) or data, response.headers.get("ETag")

    def update_content_type(
        self, key: str, data: dict[str, Any], etag: str | None = None
    ) -> tuple[dict[str, Any], str | None]:
        headers = {"If-Match": etag} if etag else None
        response = self.request("PUT", f"contenttypes/{key}", headers=headers, json=data)
        return self._json(response) or data, response.headers.get("ETag")

    def delete_content_type(self, key: str) -> bool:
        try:
            self.request("DELETE", f"contenttypes/{key}")
        except NotFoundError:
            return False
        return True

    def test_connection(self) -> bool:
        """Test if the API connection and credentials are valid."""
        try:
            self.list_content_types()
            return True
        except ProviderError:
            return False
