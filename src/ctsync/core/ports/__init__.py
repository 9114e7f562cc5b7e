"""
Ports - abstract interfaces the application layer depends on.
"""

from .cms_provider import CmsProviderPort, RemoteContentType
from .config_provider import (
    AppConfig,
    ConfigProviderPort,
    ProviderConfig,
    RetryConfig,
    StorageConfig,
    SyncConfig,
)
from .extractor import ContentTypeExtractorPort
from .persistence import (
    ConflictFilter,
    ConflictStorePort,
    DefinitionStorePort,
    SyncHistoryQuery,
    SyncRecordStorePort,
    SyncStateStorePort,
    VersionStorePort,
)


__all__ = [
    "AppConfig",
    "CmsProviderPort",
    "ConfigProviderPort",
    "ConflictFilter",
    "ConflictStorePort",
    "ContentTypeExtractorPort",
    "DefinitionStorePort",
    "ProviderConfig",
    "RemoteContentType",
    "RetryConfig",
    "StorageConfig",
    "SyncConfig",
    "SyncHistoryQuery",
    "SyncRecordStorePort",
    "SyncStateStorePort",
    "VersionStorePort",
]
