"""
Adapters - concrete implementations of the core ports.
"""

from .config import EnvironmentConfigProvider, FileConfigProvider, create_config_provider
from .extractors import FileContentTypeExtractor
from .persistence import FileDefinitionStore, SQLiteSyncStore
from .providers import CmsApiClient, InMemoryCmsProvider, RestCmsProvider


__all__ = [
    "CmsApiClient",
    "EnvironmentConfigProvider",
    "FileConfigProvider",
    "FileContentTypeExtractor",
    "FileDefinitionStore",
    "InMemoryCmsProvider",
    "RestCmsProvider",
    "SQLiteSyncStore",
    "create_config_provider",
]
