"""
REST CMS Provider - implements CmsProviderPort on top of CmsApiClient.
"""

from __future__ import annotations

import logging
from typing import Any

from ctsync.core.domain.definitions import ContentTypeDefinition
from ctsync.core.ports.cms_provider import CmsProviderPort, RemoteContentType
from ctsync.core.ports.config_provider import ProviderConfig

from .rest_client import CmsApiClient


# Server-side bookkeeping that is not part of a definition
SERVER_METADATA_KEYS = frozenset(
    {"id", "etag", "_etag", "created", "createdBy", "lastModified", "lastModifiedBy", "usage"}
)


class RestCmsProvider(CmsProviderPort):
    """Content types stored in a remote CMS behind a JSON REST API."""

    def __init__(self, config: ProviderConfig, client: CmsApiClient | None = None):
        self.config = config
        self.client = client or CmsApiClient(
            base_url=config.base_url,
            api_token=config.api_token,
            timeout=config.timeout,
        )
        self.logger = logging.getLogger("RestCmsProvider")

    @property
    def name(self) -> str:
        return self.config.platform

    # -------------------------------------------------------------------------
    # Mapping
    # -------------------------------------------------------------------------

    @staticmethod
    def _to_remote(data: dict[str, Any], etag: str | None = None) -> RemoteContentType:
        etag = etag or data.get("etag") or data.get("_etag")
        cleaned = {k: v for k, v in data.items() if k not in SERVER_METADATA_KEYS}
        return RemoteContentType(ContentTypeDefinition.from_dict(cleaned), etag)

    # -------------------------------------------------------------------------
    # CmsProviderPort Implementation
    # -------------------------------------------------------------------------

    def get_content_types(self) -> list[RemoteContentType]:
        return [self._to_remote(item) for item in self.client.list_content_types()]

    def get_content_type(self, key: str) -> RemoteContentType | None:
        found = self.client.get_content_type(key)
        if found is None:
            return None
        data, etag = found
        return self._to_remote(data, etag)

    def create_content_type(self, definition: ContentTypeDefinition) -> RemoteContentType:
        data, etag = self.client.create_content_type(definition.to_dict())
        return self._to_remote(data, etag)

    def update_content_type(
        self,
        key: str,
        definition: ContentTypeDefinition,
        etag: str | None = None,
    ) -> RemoteContentType:
        data, new_etag = self.client.update_content_type(key, definition.to_dict(), etag)
        return self._to_remote(data, new_etag)

    def delete_content_type(self, key: str) -> bool:
        return self.client.delete_content_type(key)

    def test_connection(self) -> bool:
        return self.client.test_connection()
