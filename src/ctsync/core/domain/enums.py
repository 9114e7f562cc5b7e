"""
Domain enums - sync status, conflict classification, priorities, sources.
"""

from __future__ import annotations

from enum import Enum


class SyncStatus(Enum):
    """Reconciliation status of one type key."""

    NEW = "new"
    MODIFIED = "modified"
    CONFLICT = "conflict"
    IN_SYNC = "in_sync"

    @classmethod
    def from_string(cls, value: str) -> SyncStatus:
        """Parse a status, accepting hyphen/space variants."""
        normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
        for member in cls:
            if member.value == normalized:
                return member
        raise ValueError(f"Unknown sync status: {value}")

    @property
    def is_pending(self) -> bool:
        """Whether the key still needs work."""
        return self in (SyncStatus.NEW, SyncStatus.MODIFIED)


class ConflictType(Enum):
    """Classification of a three-way divergence."""

    STRUCTURAL = "structural"
    DELETE = "delete"
    FIELD = "field"

    @classmethod
    def from_string(cls, value: str) -> ConflictType:
        normalized = value.strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise ValueError(f"Unknown conflict type: {value}")

    @property
    def requires_manual(self) -> bool:
        """Structural and delete conflicts are never auto-resolved."""
        return self in (ConflictType.STRUCTURAL, ConflictType.DELETE)


class ConflictPriority(Enum):
    """Review priority. Higher value sorts first in the queue."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def from_string(cls, value: str) -> ConflictPriority:
        normalized = value.strip().upper()
        try:
            return cls[normalized]
        except KeyError:
            raise ValueError(f"Unknown priority: {value}") from None

    @property
    def display_name(self) -> str:
        return self.name.lower()

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ConflictPriority):
            return NotImplemented
        return self.value < other.value


class ConflictStatus(Enum):
    """Lifecycle of a review-queue entry. Only PENDING_REVIEW -> RESOLVED."""

    PENDING_REVIEW = "pending_review"
    RESOLVED = "resolved"

    @classmethod
    def from_string(cls, value: str) -> ConflictStatus:
        normalized = value.strip().lower().replace("-", "_")
        if normalized in ("pending", "pending_review"):
            return cls.PENDING_REVIEW
        if normalized == "resolved":
            return cls.RESOLVED
        raise ValueError(f"Unknown conflict status: {value}")


class SyncRecordStatus(Enum):
    """Outcome of one sync attempt."""

    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"

    @classmethod
    def from_string(cls, value: str) -> SyncRecordStatus:
        return cls(value.strip().upper())

    @property
    def is_terminal(self) -> bool:
        return self is not SyncRecordStatus.IN_PROGRESS


class SyncDirection(Enum):
    """Direction of a sync attempt."""

    PUSH = "PUSH"
    PULL = "PULL"


class ChangeSource(Enum):
    """Who produced a version."""

    UI = "UI"
    AI = "AI"
    SYNC = "SYNC"

    @classmethod
    def from_string(cls, value: str) -> ChangeSource:
        return cls(value.strip().upper())


class VersionOrigin(Enum):
    """Which side of the sync a version belongs to."""

    LOCAL = "local"
    REMOTE = "remote"

    @classmethod
    def for_source(cls, source: ChangeSource) -> VersionOrigin:
        """Versions pulled in by sync are remote, everything else is local."""
        return cls.REMOTE if source is ChangeSource.SYNC else cls.LOCAL


class ChangeKind(Enum):
    """Classification of an item during analysis."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SKIP = "skip"


class ChangeType(Enum):
    """Result of comparing two hashes for the same key."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    NO_CHANGE = "NO_CHANGE"


class SyncRunStatus(Enum):
    """Terminal status of one orchestrator run."""

    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    CANCELLED = "cancelled"
