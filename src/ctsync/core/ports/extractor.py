"""
Extractor Port - read-only source of locally authored definitions.
"""

from abc import ABC, abstractmethod

from ctsync.core.domain.definitions import ContentTypeDefinition


class ContentTypeExtractorPort(ABC):
    """Reads local content-type definitions."""

    @abstractmethod
    def extract_content_types(self, website_id: str | None = None) -> list[ContentTypeDefinition]:
        """
        Extract local definitions.

        Args:
            website_id: Restrict to one website; None extracts everything

        Returns:
            Definitions in discovery order
        """
        ...
