"""
Provider Registry - maps provider names to factories.

Registries are plain objects passed to whoever builds providers; there is no
module-level instance.
"""

from __future__ import annotations

from collections.abc import Callable

from .exceptions import ConfigError
from .ports.cms_provider import CmsProviderPort
from .ports.config_provider import ProviderConfig


ProviderFactory = Callable[[ProviderConfig], CmsProviderPort]


class ProviderRegistry:
    """Name -> factory lookup for CMS providers."""

    def __init__(self, factories: dict[str, ProviderFactory] | None = None):
        self._factories: dict[str, ProviderFactory] = dict(factories or {})

    def register(self, name: str, factory: ProviderFactory, replace: bool = False) -> None:
        key = name.strip().lower()
        if key in self._factories and not replace:
            raise ConfigError(f"Provider already registered: {name}")
        self._factories[key] = factory

    def unregister(self, name: str) -> bool:
        return self._factories.pop(name.strip().lower(), None) is not None

    def is_registered(self, name: str) -> bool:
        return name.strip().lower() in self._factories

    def names(self) -> list[str]:
        return sorted(self._factories)

    def create(self, config: ProviderConfig) -> CmsProviderPort:
        """
        Build the provider named by ``config.name``.

        Raises:
            ConfigError: If no provider with that name is registered
        """
        factory = self._factories.get(config.name.strip().lower())
        if factory is None:
            raise ConfigError(
                f"Unknown provider: {config.name} (available: {', '.join(self.names()) or 'none'})"
            )
        return factory(config)
