"""
Configuration Provider Port - Abstract interface for configuration.

Implementations:
- EnvironmentConfigProvider: Load from env vars and .env
- FileConfigProvider: Load from YAML config files
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ProviderConfig:
    """Connection settings for the remote CMS."""

    name: str = "rest"
    base_url: str = ""
    api_token: str = ""
    timeout: float = 30.0
    platform: str = "cms"

    def is_valid(self) -> bool:
        """In-memory providers need no credentials."""
        if self.name == "memory":
            return True
        return bool(self.base_url and self.api_token)


@dataclass
class RetryConfig:
    """Backoff policy for remote calls."""

    max_attempts: int = 3
    backoff_multiplier: float = 2.0
    initial_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    call_timeout: float = 30.0  # per remote call

    def delay_for(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based), capped at max_delay."""
        return min(self.initial_delay * self.backoff_multiplier ** (attempt - 1), self.max_delay)


@dataclass
class StorageConfig:
    """Where local state lives."""

    database_path: str = ".ctsync/ctsync.db"
    definitions_dir: str = ".ctsync/definitions"


@dataclass
class SyncConfig:
    """Configuration for sync runs."""

    dry_run: bool = True
    website_id: str | None = None
    source_dir: str = "content-types"

    # Execution
    max_concurrency: int = 2
    managed_key_prefix: str | None = None

    # Conflicts
    auto_merge: bool = True
    resolved_retention_days: int = 7

    retry: RetryConfig = field(default_factory=RetryConfig)


@dataclass
class AppConfig:
    """Complete application configuration."""

    provider: ProviderConfig = field(default_factory=ProviderConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    def validate(self) -> list[str]:
        """
        Validate configuration.

        Missing provider credentials are not an error here; the engine
        degrades to dry-run instead.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if self.sync.max_concurrency < 1:
            errors.append("max_concurrency must be at least 1")
        if self.sync.retry.max_attempts < 1:
            errors.append("retry.max_attempts must be at least 1")
        if self.sync.retry.initial_delay < 0 or self.sync.retry.max_delay < 0:
            errors.append("retry delays must not be negative")
        if self.provider.timeout <= 0:
            errors.append("provider timeout must be positive")

        return errors


class ConfigProviderPort(ABC):
    """
    Abstract interface for configuration providers.

    Configuration can come from various sources:
    - Environment variables
    - .env files
    - YAML config files
    - Command line arguments
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the provider name."""
        ...

    @abstractmethod
    def load(self) -> AppConfig:
        """Load configuration from source."""
        ...

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a specific configuration value.

        Args:
            key: Configuration key (dot notation supported)
            default: Default value if not found
        """
        ...

    @abstractmethod
    def validate(self) -> list[str]:
        """Return configuration errors (empty if valid)."""
        ...
