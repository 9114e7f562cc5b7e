"""
Domain entities - versions, sync state, conflicts and sync records.

Entities are plain dataclasses with ``to_dict``/``from_dict`` so that the
persistence adapters can store them as rows of JSON-friendly values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .enums import (
    ChangeSource,
    ConflictPriority,
    ConflictStatus,
    ConflictType,
    SyncDirection,
    SyncRecordStatus,
    SyncStatus,
    VersionOrigin,
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


# =============================================================================
# Versions
# =============================================================================


@dataclass(frozen=True)
class Version:
    """An immutable snapshot of a definition, linked to its parent by hash."""

    hash: str
    type_key: str
    data: dict[str, Any]
    origin: VersionOrigin
    source: ChangeSource
    parent_hash: str | None = None
    actor: str = "system"
    note: str | None = None
    deleted: bool = False
    timestamp: datetime = field(default_factory=datetime.now)
    sequence: int = 0

    @property
    def short_hash(self) -> str:
        return self.hash[:8]

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "type_key": self.type_key,
            "data": self.data,
            "origin": self.origin.value,
            "source": self.source.value,
            "parent_hash": self.parent_hash,
            "actor": self.actor,
            "note": self.note,
            "deleted": self.deleted,
            "timestamp": self.timestamp.isoformat(),
            "sequence": self.sequence,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Version:
        return cls(
            hash=data["hash"],
            type_key=data["type_key"],
            data=data.get("data") or {},
            origin=VersionOrigin(data["origin"]),
            source=ChangeSource.from_string(data["source"]),
            parent_hash=data.get("parent_hash"),
            actor=data.get("actor") or "system",
            note=data.get("note"),
            deleted=bool(data.get("deleted", False)),
            timestamp=_parse_dt(data.get("timestamp")) or datetime.now(),
            sequence=int(data.get("sequence") or 0),
        )


# =============================================================================
# Sync State
# =============================================================================


@dataclass
class SyncProgress:
    """Step progress of an in-flight sync for one key."""

    current_step: int
    total_steps: int
    operation: str = ""
    target_hash: str | None = None
    last_processed_id: str | None = None
    processed_count: int | None = None
    error: str | None = None

    def is_valid(self) -> bool:
        if not isinstance(self.current_step, int) or not isinstance(self.total_steps, int):
            return False
        if self.total_steps < 1 or self.current_step < 0:
            return False
        return self.current_step <= self.total_steps

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_step": self.current_step,
            "total_steps": self.total_steps,
            "operation": self.operation,
            "target_hash": self.target_hash,
            "last_processed_id": self.last_processed_id,
            "processed_count": self.processed_count,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncProgress:
        return cls(
            current_step=data.get("current_step"),  # type: ignore[arg-type]
            total_steps=data.get("total_steps"),  # type: ignore[arg-type]
            operation=data.get("operation", ""),
            target_hash=data.get("target_hash"),
            last_processed_id=data.get("last_processed_id"),
            processed_count=data.get("processed_count"),
            error=data.get("error"),
        )


@dataclass
class SyncState:
    """Current reconciliation status of one type key."""

    type_key: str
    local_hash: str | None = None
    remote_hash: str | None = None
    last_synced_hash: str | None = None
    sync_status: SyncStatus = SyncStatus.NEW
    last_sync_at: datetime | None = None
    updated_at: datetime = field(default_factory=datetime.now)
    previous_status: SyncStatus | None = None
    progress: SyncProgress | None = None

    @property
    def in_flight(self) -> bool:
        return self.progress is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type_key": self.type_key,
            "local_hash": self.local_hash,
            "remote_hash": self.remote_hash,
            "last_synced_hash": self.last_synced_hash,
            "sync_status": self.sync_status.value,
            "last_sync_at": _iso(self.last_sync_at),
            "updated_at": self.updated_at.isoformat(),
            "previous_status": self.previous_status.value if self.previous_status else None,
            "progress": self.progress.to_dict() if self.progress else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncState:
        previous = data.get("previous_status")
        progress = data.get("progress")
        return cls(
            type_key=data["type_key"],
            local_hash=data.get("local_hash"),
            remote_hash=data.get("remote_hash"),
            last_synced_hash=data.get("last_synced_hash"),
            sync_status=SyncStatus(data.get("sync_status", "new")),
            last_sync_at=_parse_dt(data.get("last_sync_at")),
            updated_at=_parse_dt(data.get("updated_at")) or datetime.now(),
            previous_status=SyncStatus(previous) if previous else None,
            progress=SyncProgress.from_dict(progress) if progress else None,
        )


# =============================================================================
# Conflicts
# =============================================================================


@dataclass(frozen=True)
class ConflictingField:
    """A path changed differently on both sides."""

    field: str
    local_value: Any
    remote_value: Any
    ancestor_value: Any

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "local_value": self.local_value,
            "remote_value": self.remote_value,
            "ancestor_value": self.ancestor_value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConflictingField:
        return cls(
            field=data["field"],
            local_value=data.get("local_value"),
            remote_value=data.get("remote_value"),
            ancestor_value=data.get("ancestor_value"),
        )


@dataclass
class ConflictDetails:
    """Everything needed to review or resolve a three-way conflict."""

    type_key: str
    conflict_type: ConflictType
    local_hash: str
    remote_hash: str
    ancestor_hash: str | None
    local_data: dict[str, Any]
    remote_data: dict[str, Any]
    ancestor_data: dict[str, Any]
    local_changes: dict[str, list[str]] = field(default_factory=dict)
    remote_changes: dict[str, list[str]] = field(default_factory=dict)
    conflicting_fields: list[ConflictingField] = field(default_factory=list)
    local_deleted: bool = False
    remote_deleted: bool = False
    detected_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type_key": self.type_key,
            "conflict_type": self.conflict_type.value,
            "local_hash": self.local_hash,
            "remote_hash": self.remote_hash,
            "ancestor_hash": self.ancestor_hash,
            "local_data": self.local_data,
            "remote_data": self.remote_data,
            "ancestor_data": self.ancestor_data,
            "local_changes": self.local_changes,
            "remote_changes": self.remote_changes,
            "conflicting_fields": [f.to_dict() for f in self.conflicting_fields],
            "local_deleted": self.local_deleted,
            "remote_deleted": self.remote_deleted,
            "detected_at": self.detected_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConflictDetails:
        return cls(
            type_key=data["type_key"],
            conflict_type=ConflictType(data["conflict_type"]),
            local_hash=data["local_hash"],
            remote_hash=data["remote_hash"],
            ancestor_hash=data.get("ancestor_hash"),
            local_data=data.get("local_data") or {},
            remote_data=data.get("remote_data") or {},
            ancestor_data=data.get("ancestor_data") or {},
            local_changes=data.get("local_changes") or {},
            remote_changes=data.get("remote_changes") or {},
            conflicting_fields=[
                ConflictingField.from_dict(f) for f in data.get("conflicting_fields") or []
            ],
            local_deleted=bool(data.get("local_deleted", False)),
            remote_deleted=bool(data.get("remote_deleted", False)),
            detected_at=_parse_dt(data.get("detected_at")) or datetime.now(),
        )


@dataclass
class ConflictResult:
    """Outcome of conflict detection for one key."""

    type_key: str
    has_conflict: bool
    type: ConflictType | None = None
    details: ConflictDetails | None = None
    reason: str = ""

    @property
    def conflicting_fields(self) -> list[ConflictingField]:
        return self.details.conflicting_fields if self.details else []


@dataclass
class ConflictEntry:
    """A flagged divergence waiting in (or retired from) the review queue."""

    id: str
    type_key: str
    conflict_type: ConflictType
    local_hash: str
    remote_hash: str
    ancestor_hash: str | None
    priority: ConflictPriority
    details: ConflictDetails
    status: ConflictStatus = ConflictStatus.PENDING_REVIEW
    flagged_at: datetime = field(default_factory=datetime.now)
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    resolution: str | None = None
    resolved_data: dict[str, Any] | None = None

    @property
    def is_resolved(self) -> bool:
        return self.status is ConflictStatus.RESOLVED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type_key": self.type_key,
            "conflict_type": self.conflict_type.value,
            "local_hash": self.local_hash,
            "remote_hash": self.remote_hash,
            "ancestor_hash": self.ancestor_hash,
            "priority": self.priority.display_name,
            "details": self.details.to_dict(),
            "status": self.status.value,
            "flagged_at": self.flagged_at.isoformat(),
            "resolved_at": _iso(self.resolved_at),
            "resolved_by": self.resolved_by,
            "resolution": self.resolution,
            "resolved_data": self.resolved_data,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConflictEntry:
        return cls(
            id=data["id"],
            type_key=data["type_key"],
            conflict_type=ConflictType(data["conflict_type"]),
            local_hash=data["local_hash"],
            remote_hash=data["remote_hash"],
            ancestor_hash=data.get("ancestor_hash"),
            priority=ConflictPriority.from_string(data["priority"]),
            details=ConflictDetails.from_dict(data["details"]),
            status=ConflictStatus(data.get("status", "pending_review")),
            flagged_at=_parse_dt(data.get("flagged_at")) or datetime.now(),
            resolved_at=_parse_dt(data.get("resolved_at")),
            resolved_by=data.get("resolved_by"),
            resolution=data.get("resolution"),
            resolved_data=data.get("resolved_data"),
        )


@dataclass(frozen=True)
class ResolutionRecord:
    """Audit entry written when a conflict is resolved."""

    conflict_id: str
    type_key: str
    conflict_type: ConflictType
    resolution: str
    resolved_by: str
    resolved_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "conflict_id": self.conflict_id,
            "type_key": self.type_key,
            "conflict_type": self.conflict_type.value,
            "resolution": self.resolution,
            "resolved_by": self.resolved_by,
            "resolved_at": self.resolved_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResolutionRecord:
        return cls(
            conflict_id=data["conflict_id"],
            type_key=data["type_key"],
            conflict_type=ConflictType(data["conflict_type"]),
            resolution=data["resolution"],
            resolved_by=data["resolved_by"],
            resolved_at=_parse_dt(data["resolved_at"]) or datetime.now(),
        )


# =============================================================================
# Sync Records
# =============================================================================


@dataclass
class SyncRecord:
    """One attempted sync operation against a remote platform."""

    id: str
    type_key: str
    version_hash: str
    target_platform: str
    direction: SyncDirection
    status: SyncRecordStatus = SyncRecordStatus.IN_PROGRESS
    pushed_data: str = ""
    response_data: str | None = None
    error_message: str | None = None
    retry_count: int = 0
    metadata: dict[str, Any] | None = None
    deployment_id: str | None = None
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type_key": self.type_key,
            "version_hash": self.version_hash,
            "target_platform": self.target_platform,
            "direction": self.direction.value,
            "status": self.status.value,
            "pushed_data": self.pushed_data,
            "response_data": self.response_data,
            "error_message": self.error_message,
            "retry_count": self.retry_count,
            "metadata": self.metadata,
            "deployment_id": self.deployment_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": _iso(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncRecord:
        return cls(
            id=data["id"],
            type_key=data["type_key"],
            version_hash=data["version_hash"],
            target_platform=data["target_platform"],
            direction=SyncDirection(str(data.get("direction") or "PUSH").upper()),
            status=SyncRecordStatus.from_string(data.get("status", "in_progress")),
            pushed_data=data.get("pushed_data") or "",
            response_data=data.get("response_data"),
            error_message=data.get("error_message"),
            retry_count=int(data.get("retry_count") or 0),
            metadata=data.get("metadata"),
            deployment_id=data.get("deployment_id"),
            started_at=_parse_dt(data.get("started_at")) or datetime.now(),
            completed_at=_parse_dt(data.get("completed_at")),
        )
