"""
Service wiring.

Builds a fully connected SyncOrchestrator from an AppConfig. Adapters are
imported inside the factories so the core layer does not depend on them at
import time.

Usage:
    services = build_services(config)
    result = asyncio.run(services.orchestrator.sync())
    services.close()

Testing:
    services = build_services(
        config,
        provider=InMemoryCmsProvider(),
        store=SQLiteSyncStore(":memory:"),
    )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .ports.cms_provider import CmsProviderPort
from .ports.config_provider import AppConfig, ProviderConfig
from .ports.extractor import ContentTypeExtractorPort
from .ports.persistence import DefinitionStorePort
from .registry import ProviderRegistry


if TYPE_CHECKING:
    from ctsync.adapters.persistence.sqlite_store import SQLiteSyncStore
    from ctsync.application.sync.analytics import SyncAnalytics
    from ctsync.application.sync.orchestrator import SyncOrchestrator


logger = logging.getLogger("Services")


# =============================================================================
# Factory Functions
# =============================================================================


def _create_rest_provider(config: ProviderConfig) -> CmsProviderPort:
    from ctsync.adapters.providers.rest_provider import RestCmsProvider

    return RestCmsProvider(config)


def _create_memory_provider(config: ProviderConfig) -> CmsProviderPort:
    from ctsync.adapters.providers.memory_provider import InMemoryCmsProvider

    return InMemoryCmsProvider(platform=config.platform)


def default_registry() -> ProviderRegistry:
    """A registry with the built-in providers."""
    registry = ProviderRegistry()
    registry.register("rest", _create_rest_provider)
    registry.register("memory", _create_memory_provider)
    return registry


# =============================================================================
# Wiring
# =============================================================================


@dataclass
class SyncServices:
    """Everything a CLI command needs, plus cleanup."""

    config: AppConfig
    orchestrator: SyncOrchestrator
    store: SQLiteSyncStore
    provider: CmsProviderPort | None
    analytics: SyncAnalytics

    def close(self) -> None:
        self.store.close()


def build_services(
    config: AppConfig,
    registry: ProviderRegistry | None = None,
    provider: CmsProviderPort | None = None,
    extractor: ContentTypeExtractorPort | None = None,
    store: SQLiteSyncStore | None = None,
    definition_store: DefinitionStorePort | None = None,
) -> SyncServices:
    """
    Wire the orchestrator and its collaborators.

    When no provider is passed and the configured one lacks credentials the
    orchestrator gets no provider and every run is a dry run.
    """
    from ctsync.adapters.extractors.file_extractor import FileContentTypeExtractor
    from ctsync.adapters.persistence.file_store import FileDefinitionStore
    from ctsync.adapters.persistence.sqlite_store import SQLiteSyncStore
    from ctsync.application.sync import (
        ConflictManager,
        SyncAnalytics,
        SyncHistoryManager,
        SyncOrchestrator,
        SyncStateManager,
        VersionHistory,
    )

    if provider is None:
        if config.provider.is_valid():
            provider = (registry or default_registry()).create(config.provider)
        else:
            logger.warning("Provider not configured, remote operations are disabled")

    store = store or SQLiteSyncStore(config.storage.database_path)
    orchestrator = SyncOrchestrator(
        extractor=extractor or FileContentTypeExtractor(config.sync.source_dir),
        provider=provider,
        versions=VersionHistory(store),
        state_manager=SyncStateManager(store),
        history=SyncHistoryManager(store, retry=config.sync.retry),
        conflict_manager=ConflictManager(store),
        config=config.sync,
        definition_store=definition_store or FileDefinitionStore(config.storage.definitions_dir),
    )
    return SyncServices(
        config=config,
        orchestrator=orchestrator,
        store=store,
        provider=provider,
        analytics=SyncAnalytics(store),
    )
