"""Local definition sources."""

from .file_extractor import FileContentTypeExtractor


__all__ = ["FileContentTypeExtractor"]
