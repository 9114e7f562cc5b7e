"""
Tests for ProviderRegistry and service wiring.
"""

from pathlib import Path

import pytest

from ctsync.adapters.persistence.sqlite_store import SQLiteSyncStore
from ctsync.adapters.providers.memory_provider import InMemoryCmsProvider
from ctsync.adapters.providers.rest_provider import RestCmsProvider
from ctsync.core.exceptions import ConfigError
from ctsync.core.ports.config_provider import (
    AppConfig,
    ProviderConfig,
    StorageConfig,
    SyncConfig,
)
from ctsync.core.registry import ProviderRegistry
from ctsync.core.services import build_services, default_registry


# =============================================================================
# Registry
# =============================================================================


class TestProviderRegistry:
    """Tests for provider registration and lookup."""

    def test_register_and_create(self):
        """A registered factory builds providers from config."""
        registry = ProviderRegistry()
        registry.register("Memory", lambda config: InMemoryCmsProvider(platform=config.platform))

        provider = registry.create(ProviderConfig(name="memory", platform="staging"))

        assert isinstance(provider, InMemoryCmsProvider)
        assert provider.name == "staging"

    def test_duplicate_registration(self):
        """Registering a name twice needs replace=True."""
        registry = ProviderRegistry()
        registry.register("memory", InMemoryCmsProvider)
        with pytest.raises(ConfigError, match="already registered"):
            registry.register("memory", InMemoryCmsProvider)
        registry.register("memory", InMemoryCmsProvider, replace=True)

    def test_unknown_provider(self):
        """Unknown names list the available providers."""
        registry = ProviderRegistry()
        registry.register("memory", InMemoryCmsProvider)
        with pytest.raises(ConfigError, match="available: memory"):
            registry.create(ProviderConfig(name="graphql"))

    def test_unregister(self):
        """Unregistering reports whether something was removed."""
        registry = ProviderRegistry()
        registry.register("memory", InMemoryCmsProvider)
        assert registry.unregister("MEMORY")
        assert not registry.unregister("memory")
        assert not registry.is_registered("memory")

    def test_default_registry(self):
        """The built-in providers are registered by default."""
        assert default_registry().names() == ["memory", "rest"]

    def test_default_rest_provider(self):
        """The rest factory builds a RestCmsProvider from credentials."""
        provider = default_registry().create(
            ProviderConfig(name="rest", base_url="https://cms.example.com", api_token="t")
        )
        assert isinstance(provider, RestCmsProvider)
        assert provider.client.api_url == "https://cms.example.com/preview3"


# =============================================================================
# Wiring
# =============================================================================


class TestBuildServices:
    """Tests for build_services."""

    def _config(self, tmp_path: Path, provider: ProviderConfig) -> AppConfig:
        return AppConfig(
            provider=provider,
            sync=SyncConfig(source_dir=str(tmp_path / "src")),
            storage=StorageConfig(
                database_path=":memory:", definitions_dir=str(tmp_path / "defs")
            ),
        )

    def test_without_credentials_has_no_provider(self, tmp_path):
        """Missing credentials leave the orchestrator without a provider."""
        services = build_services(self._config(tmp_path, ProviderConfig(name="rest")))
        try:
            assert services.provider is None
            assert services.orchestrator.provider is None
        finally:
            services.close()

    def test_memory_provider_from_config(self, tmp_path):
        """The memory provider needs no credentials."""
        services = build_services(self._config(tmp_path, ProviderConfig(name="memory")))
        try:
            assert isinstance(services.provider, InMemoryCmsProvider)
        finally:
            services.close()

    def test_injected_collaborators(self, tmp_path):
        """Injected provider and store are used as given."""
        provider = InMemoryCmsProvider()
        store = SQLiteSyncStore(":memory:")
        services = build_services(
            self._config(tmp_path, ProviderConfig(name="rest")), provider=provider, store=store
        )
        try:
            assert services.orchestrator.provider is provider
            assert services.store is store
            assert services.orchestrator.state_manager.store is store
        finally:
            services.close()
