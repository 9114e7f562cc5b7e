"""
Persistence Ports - durable storage for versions, sync state, sync records,
conflicts and stored definition copies.

Implementations:
- SQLiteSyncStore: one SQLite database holding every table
- FileDefinitionStore: JSON file per stored definition
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from ctsync.core.domain.definitions import ContentTypeDefinition
from ctsync.core.domain.entities import (
    ConflictEntry,
    ResolutionRecord,
    SyncRecord,
    SyncState,
    Version,
)
from ctsync.core.domain.enums import (
    ConflictPriority,
    ConflictStatus,
    ConflictType,
    SyncRecordStatus,
    SyncStatus,
    VersionOrigin,
)


# =============================================================================
# Query Objects
# =============================================================================


@dataclass
class SyncHistoryQuery:
    """Filters for sync record lookups. Results are newest first."""

    type_key: str | None = None
    target_platform: str | None = None
    status: SyncRecordStatus | None = None
    deployment_id: str | None = None
    after: datetime | None = None
    before: datetime | None = None
    limit: int | None = None


@dataclass
class ConflictFilter:
    """Filters for the review queue."""

    status: ConflictStatus | None = ConflictStatus.PENDING_REVIEW
    type_key: str | None = None
    conflict_type: ConflictType | None = None
    priority: ConflictPriority | None = None

    def matches(self, entry: ConflictEntry) -> bool:
        if self.status is not None and entry.status is not self.status:
            return False
        if self.type_key is not None and entry.type_key != self.type_key:
            return False
        if self.conflict_type is not None and entry.conflict_type is not self.conflict_type:
            return False
        return self.priority is None or entry.priority is self.priority


# =============================================================================
# Store Ports
# =============================================================================


class VersionStorePort(ABC):
    """Append-only version rows."""

    @abstractmethod
    def append_version(self, version: Version) -> Version:
        """Persist a version and return it with its assigned sequence."""
        ...

    @abstractmethod
    def get_versions(self, type_key: str, origin: VersionOrigin | None = None) -> list[Version]:
        """All versions of a key in insertion order."""
        ...

    @abstractmethod
    def list_type_keys(self) -> list[str]:
        """Every key with at least one version."""
        ...


class SyncStateStorePort(ABC):
    """One row per type key."""

    @abstractmethod
    def get_state(self, type_key: str) -> SyncState | None: ...

    @abstractmethod
    def save_state(self, state: SyncState) -> None: ...

    @abstractmethod
    def list_states(self, status: SyncStatus | None = None) -> list[SyncState]: ...

    @abstractmethod
    def delete_state(self, type_key: str) -> bool: ...


class SyncRecordStorePort(ABC):
    """Audit trail of sync attempts."""

    @abstractmethod
    def save_record(self, record: SyncRecord) -> None: ...

    @abstractmethod
    def get_record(self, record_id: str) -> SyncRecord | None: ...

    @abstractmethod
    def query_records(self, query: SyncHistoryQuery) -> list[SyncRecord]: ...


class ConflictStorePort(ABC):
    """Review queue rows and the resolution audit list."""

    @abstractmethod
    def save_conflict(self, entry: ConflictEntry) -> None: ...

    @abstractmethod
    def get_conflict(self, conflict_id: str) -> ConflictEntry | None: ...

    @abstractmethod
    def list_conflicts(self) -> list[ConflictEntry]: ...

    @abstractmethod
    def delete_conflicts(self, conflict_ids: list[str]) -> int: ...

    @abstractmethod
    def add_resolution(self, record: ResolutionRecord, keep: int) -> None:
        """Insert a resolution and trim the list to the ``keep`` newest."""
        ...

    @abstractmethod
    def list_resolutions(self) -> list[ResolutionRecord]:
        """Resolutions, most recent first."""
        ...


class DefinitionStorePort(ABC):
    """Copies of local definitions as of the previous run."""

    @abstractmethod
    def load_all_definitions(self) -> list[ContentTypeDefinition]: ...

    @abstractmethod
    def save_definition(self, definition: ContentTypeDefinition) -> None: ...

    @abstractmethod
    def delete_definition(self, key: str) -> bool: ...
