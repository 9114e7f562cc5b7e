"""
CMS Provider Port - Abstract interface for the remote system of record.

Implementations:
- RestCmsProvider: JSON-over-HTTP CMS API (requests)
- InMemoryCmsProvider: in-process provider for offline runs and tests
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from ctsync.core.domain.definitions import ContentTypeDefinition
from ctsync.core.exceptions import (
    AuthenticationError,
    NotFoundError,
    PreconditionFailedError,
    ProviderError,
    RateLimitError,
    ServerError,
    TransientError,
)


__all__ = [
    "AuthenticationError",
    "CmsProviderPort",
    "NotFoundError",
    "PreconditionFailedError",
    "ProviderError",
    "RateLimitError",
    "RemoteContentType",
    "ServerError",
    "TransientError",
]


@dataclass(frozen=True)
class RemoteContentType:
    """A remote definition together with its precondition token."""

    definition: ContentTypeDefinition
    etag: str | None = None

    @property
    def key(self) -> str:
        return self.definition.key


class CmsProviderPort(ABC):
    """
    Abstract interface for remote CMS providers.

    Methods are blocking; the orchestrator runs them in worker threads and
    applies its own timeout and retry policy. Every method may raise one of
    the typed ProviderError subclasses.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name, used as the target platform in sync records."""
        ...

    @abstractmethod
    def get_content_types(self) -> list[RemoteContentType]:
        """Fetch every content type known to the remote."""
        ...

    @abstractmethod
    def get_content_type(self, key: str) -> RemoteContentType | None:
        """
        Fetch one content type.

        Returns:
            The remote item, or None if it does not exist
        """
        ...

    @abstractmethod
    def create_content_type(self, definition: ContentTypeDefinition) -> RemoteContentType:
        """Create a content type and return it as stored remotely."""
        ...

    @abstractmethod
    def update_content_type(
        self,
        key: str,
        definition: ContentTypeDefinition,
        etag: str | None = None,
    ) -> RemoteContentType:
        """
        Replace a content type.

        Args:
            key: Key of the item to replace
            definition: New definition
            etag: Precondition token from the last read; a mismatch raises
                PreconditionFailedError

        Raises:
            NotFoundError: If the item does not exist
            PreconditionFailedError: If the item changed since it was read
        """
        ...

    @abstractmethod
    def delete_content_type(self, key: str) -> bool:
        """Delete a content type. Returns True if something was deleted."""
        ...

    def test_connection(self) -> bool:
        """Check that the remote is reachable with the configured credentials."""
        try:
            self.get_content_types()
        except ProviderError:
            return False
        return True
