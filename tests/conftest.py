"""
Shared pytest fixtures for the ctsync test suite.

Fixture Categories:
- Domain: sample definitions and definition factories
- Persistence: in-memory SQLite store, file definition store
- Sync: version history, state, history and conflict managers
- Orchestrator: fully wired orchestrator over an in-memory CMS
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest

from ctsync.adapters.persistence.file_store import FileDefinitionStore
from ctsync.adapters.persistence.sqlite_store import SQLiteSyncStore
from ctsync.adapters.providers.memory_provider import InMemoryCmsProvider
from ctsync.application.sync import (
    ConflictManager,
    SyncHistoryManager,
    SyncOrchestrator,
    SyncStateManager,
    VersionHistory,
)
from ctsync.core.domain.definitions import ContentTypeDefinition
from ctsync.core.ports.config_provider import RetryConfig, SyncConfig
from ctsync.core.ports.extractor import ContentTypeExtractorPort


# =============================================================================
# Domain Fixtures
# =============================================================================


ARTICLE: dict[str, Any] = {
    "key": "article",
    "category": "page",
    "display_name": "Article",
    "description": "A blog article",
    "fields": [
        {"key": "title", "name": "Title", "type": "string", "required": True},
        {"key": "body", "name": "Body", "type": "richtext"},
    ],
}


def make_definition(key: str = "article", **overrides: Any) -> ContentTypeDefinition:
    """Build a definition from the article template with overrides applied."""
    data = copy.deepcopy(ARTICLE)
    data["key"] = key
    data["display_name"] = overrides.pop("display_name", key.replace("_", " ").title())
    data.update(overrides)
    return ContentTypeDefinition.from_dict(data)


@pytest.fixture
def definition_factory():
    """``make_definition`` for tests that need several keys."""
    return make_definition


@pytest.fixture
def article_data() -> dict[str, Any]:
    """Raw data of a page type with two fields."""
    return copy.deepcopy(ARTICLE)


@pytest.fixture
def article(article_data: dict[str, Any]) -> ContentTypeDefinition:
    """The article definition."""
    return ContentTypeDefinition.from_dict(article_data)


# =============================================================================
# Persistence Fixtures
# =============================================================================


@pytest.fixture
def store():
    """A throwaway SQLite store."""
    with SQLiteSyncStore(":memory:") as sqlite_store:
        yield sqlite_store


@pytest.fixture
def definition_store(tmp_path: Path) -> FileDefinitionStore:
    """Stored copies under a temporary directory."""
    return FileDefinitionStore(tmp_path / "definitions")


# =============================================================================
# Sync Component Fixtures
# =============================================================================


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(max_attempts=3, initial_delay=1.0, backoff_multiplier=2.0, max_delay=30.0)


@pytest.fixture
def versions(store: SQLiteSyncStore) -> VersionHistory:
    return VersionHistory(store)


@pytest.fixture
def state_manager(store: SQLiteSyncStore) -> SyncStateManager:
    return SyncStateManager(store)


@pytest.fixture
def conflict_manager(store: SQLiteSyncStore) -> ConflictManager:
    return ConflictManager(store)


@pytest.fixture
def history(
    store: SQLiteSyncStore, retry_config: RetryConfig, fake_sleep: RecordingSleep
) -> SyncHistoryManager:
    return SyncHistoryManager(store, retry=retry_config, sleep=fake_sleep)


# =============================================================================
# Orchestrator Fixtures
# =============================================================================


class StaticExtractor(ContentTypeExtractorPort):
    """Extractor over an editable in-memory list of definitions."""

    def __init__(self, definitions: list[ContentTypeDefinition] | None = None):
        self.definitions = list(definitions or [])
        self.website_ids: list[str | None] = []

    def extract_content_types(self, website_id: str | None = None) -> list[ContentTypeDefinition]:
        self.website_ids.append(website_id)
        return [copy.deepcopy(d) for d in self.definitions]

    def put(self, definition: ContentTypeDefinition) -> None:
        """Add or replace a definition by key."""
        self.definitions = [d for d in self.definitions if d.key != definition.key]
        self.definitions.append(definition)

    def drop(self, key: str) -> None:
        self.definitions = [d for d in self.definitions if d.key != key]


@pytest.fixture
def extractor() -> StaticExtractor:
    return StaticExtractor()


@pytest.fixture
def provider() -> InMemoryCmsProvider:
    return InMemoryCmsProvider()


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(dry_run=False, max_concurrency=2)


@pytest.fixture
def orchestrator(
    extractor: StaticExtractor,
    provider: InMemoryCmsProvider,
    versions: VersionHistory,
    state_manager: SyncStateManager,
    history: SyncHistoryManager,
    conflict_manager: ConflictManager,
    sync_config: SyncConfig,
    definition_store: FileDefinitionStore,
) -> SyncOrchestrator:
    """Orchestrator wired to an in-memory CMS and a throwaway store."""
    return SyncOrchestrator(
        extractor=extractor,
        provider=provider,
        versions=versions,
        state_manager=state_manager,
        history=history,
        conflict_manager=conflict_manager,
        config=sync_config,
        definition_store=definition_store,
    )
