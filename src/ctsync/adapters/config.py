"""
Configuration providers.

Precedence, lowest to highest:
    defaults < config source (.env or YAML file) < process environment < CLI

Settings are addressed with dot notation (``sync.max_concurrency``). Every
setting has a ``CTSYNC_*`` environment variable.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values

from ctsync.core.exceptions import ConfigError, ConfigFileError
from ctsync.core.ports.config_provider import (
    AppConfig,
    ConfigProviderPort,
    ProviderConfig,
    RetryConfig,
    StorageConfig,
    SyncConfig,
)


ENV_PREFIX = "CTSYNC_"


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _optional_str(value: Any) -> str | None:
    text = str(value).strip() if value is not None else ""
    return text or None


# setting -> (environment variable suffix, converter)
SETTINGS: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "provider.name": ("PROVIDER", str),
    "provider.base_url": ("BASE_URL", str),
    "provider.api_token": ("API_TOKEN", str),
    "provider.timeout": ("TIMEOUT", float),
    "provider.platform": ("PLATFORM", str),
    "sync.dry_run": ("DRY_RUN", _to_bool),
    "sync.website_id": ("WEBSITE_ID", _optional_str),
    "sync.source_dir": ("SOURCE_DIR", str),
    "sync.max_concurrency": ("MAX_CONCURRENCY", int),
    "sync.managed_key_prefix": ("KEY_PREFIX", _optional_str),
    "sync.auto_merge": ("AUTO_MERGE", _to_bool),
    "sync.resolved_retention_days": ("RESOLVED_RETENTION_DAYS", int),
    "sync.retry.max_attempts": ("RETRY_MAX_ATTEMPTS", int),
    "sync.retry.backoff_multiplier": ("RETRY_BACKOFF_MULTIPLIER", float),
    "sync.retry.initial_delay": ("RETRY_INITIAL_DELAY", float),
    "sync.retry.max_delay": ("RETRY_MAX_DELAY", float),
    "sync.retry.call_timeout": ("CALL_TIMEOUT", float),
    "storage.database_path": ("DATABASE", str),
    "storage.definitions_dir": ("DEFINITIONS_DIR", str),
}

# argparse destination -> setting
CLI_OVERRIDES = {
    "provider": "provider.name",
    "base_url": "provider.base_url",
    "website_id": "sync.website_id",
    "source_dir": "sync.source_dir",
    "max_concurrency": "sync.max_concurrency",
    "key_prefix": "sync.managed_key_prefix",
    "database": "storage.database_path",
}


def flatten_settings(data: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """``{"sync": {"retry": {"max_attempts": 5}}}`` -> ``{"sync.retry.max_attempts": 5}``"""
    flat: dict[str, Any] = {}
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(flatten_settings(value, f"{name}."))
        else:
            flat[name] = value
    return flat


class _LayeredConfigProvider(ConfigProviderPort):
    """Shared resolution and validation for the concrete providers."""

    def __init__(
        self,
        cli_overrides: Mapping[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        self.cli_overrides = dict(cli_overrides or {})
        self.environ = os.environ if environ is None else environ
        self.logger = logging.getLogger(type(self).__name__)
        self._values: dict[str, Any] | None = None
        self._errors: list[str] = []

    def _source_values(self) -> dict[str, Any]:
        """Raw settings from the provider's own source."""
        return {}

    def _resolve(self) -> dict[str, Any]:
        if self._values is not None:
            return self._values

        raw: dict[str, Any] = {}
        self._errors = []
        for name, value in self._source_values().items():
            if name in SETTINGS:
                raw[name] = value
            else:
                self.logger.warning(f"Ignoring unknown setting: {name}")

        for name, (suffix, _) in SETTINGS.items():
            env_value = self.environ.get(f"{ENV_PREFIX}{suffix}")
            if env_value is not None:
                raw[name] = env_value

        for dest, name in CLI_OVERRIDES.items():
            if self.cli_overrides.get(dest) is not None:
                raw[name] = self.cli_overrides[dest]
        if self.cli_overrides.get("execute"):
            raw["sync.dry_run"] = False

        values: dict[str, Any] = {}
        for name, value in raw.items():
            _, convert = SETTINGS[name]
            try:
                values[name] = convert(value)
            except (TypeError, ValueError) as e:
                self._errors.append(f"Invalid value for {name}: {e}")

        self._values = values
        return values

    # -------------------------------------------------------------------------
    # ConfigProviderPort Implementation
    # -------------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        return self._resolve().get(key, default)

    def validate(self) -> list[str]:
        self._resolve()
        errors = list(self._errors)
        if not errors:
            errors.extend(self._build().validate())
        return errors

    def load(self) -> AppConfig:
        errors = self.validate()
        if errors:
            raise ConfigError("Invalid configuration: " + "; ".join(errors))

        config = self._build()
        if not config.provider.is_valid():
            self.logger.warning(
                "No CMS credentials configured (CTSYNC_BASE_URL / CTSYNC_API_TOKEN); "
                "sync will run in dry-run mode"
            )
        return config

    def _build(self) -> AppConfig:
        values = self._resolve()

        def section(prefix: str) -> dict[str, Any]:
            return {
                name[len(prefix):]: value
                for name, value in values.items()
                if name.startswith(prefix) and "." not in name[len(prefix):]
            }

        return AppConfig(
            provider=ProviderConfig(**section("provider.")),
            sync=SyncConfig(**section("sync."), retry=RetryConfig(**section("sync.retry."))),
            storage=StorageConfig(**section("storage.")),
        )


class EnvironmentConfigProvider(_LayeredConfigProvider):
    """
    Loads configuration from the environment and an optional ``.env`` file.

    Values in the process environment win over the ``.env`` file.
    """

    def __init__(
        self,
        config_file: Path | None = None,
        cli_overrides: Mapping[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        super().__init__(cli_overrides=cli_overrides, environ=environ)
        self.config_file = config_file or Path(".env")

    @property
    def name(self) -> str:
        return "environment"

    def _source_values(self) -> dict[str, Any]:
        if not self.config_file.exists():
            return {}
        by_variable = {f"{ENV_PREFIX}{suffix}": name for name, (suffix, _) in SETTINGS.items()}
        values: dict[str, Any] = {}
        for variable, value in dotenv_values(self.config_file).items():
            if variable in by_variable and value is not None:
                values[by_variable[variable]] = value
        return values


class FileConfigProvider(_LayeredConfigProvider):
    """
    Loads configuration from a YAML file.

    Example:

    ```yaml
    provider:
      name: rest
      base_url: https://api.cms.example.com
    sync:
      max_concurrency: 4
      retry:
        max_attempts: 5
    ```
    """

    def __init__(
        self,
        config_file: Path,
        cli_overrides: Mapping[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        super().__init__(cli_overrides=cli_overrides, environ=environ)
        self.config_file = Path(config_file)

    @property
    def name(self) -> str:
        return "file"

    def _source_values(self) -> dict[str, Any]:
        if not self.config_file.exists():
            raise ConfigFileError(f"Config file not found: {self.config_file}", path=str(self.config_file))
        try:
            data = yaml.safe_load(self.config_file.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigFileError(
                f"Invalid YAML in {self.config_file}: {e}", path=str(self.config_file), cause=e
            ) from e
        if data is None:
            return {}
        if not isinstance(data, Mapping):
            raise ConfigFileError(
                f"Config root must be a mapping: {self.config_file}", path=str(self.config_file)
            )
        return flatten_settings(data)


def create_config_provider(
    config_file: Path | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> ConfigProviderPort:
    """YAML files go to FileConfigProvider, anything else is treated as a .env file."""
    if config_file is not None and config_file.suffix.lower() in (".yaml", ".yml"):
        return FileConfigProvider(config_file, cli_overrides=cli_overrides)
    return EnvironmentConfigProvider(config_file=config_file, cli_overrides=cli_overrides)
