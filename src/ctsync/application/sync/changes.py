"""
Change Detector - hash-based diff of two sets of definitions.

Used to compare the definitions extracted in this run against the copies
stored by the previous run, and to produce a human-readable diff report.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ctsync.core.domain.definitions import ContentTypeDefinition, FieldDefinition
from ctsync.core.domain.enums import ChangeType

from .hashing import ContentTypeHasher, canonical_json
from .state import SyncStateManager


@dataclass
class DefinitionChange:
    """One key that differs between the two sets."""

    key: str
    current: ContentTypeDefinition | None = None
    previous: ContentTypeDefinition | None = None
    current_hash: str | None = None
    previous_hash: str | None = None


@dataclass
class ChangeSet:
    """Keys grouped by how they changed."""

    created: list[DefinitionChange] = field(default_factory=list)
    updated: list[DefinitionChange] = field(default_factory=list)
    deleted: list[DefinitionChange] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.created or self.updated or self.deleted)

    def changed_keys(self) -> set[str]:
        return {c.key for c in self.created + self.updated + self.deleted}


@dataclass
class FieldChanges:
    added: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[str]]:
        return {"added": self.added, "modified": self.modified, "removed": self.removed}


class ChangeDetector:
    """
    Classifies definitions as created, updated, deleted or unchanged.

    When a SyncStateManager is given, the current hashes are written to the
    sync state table as the local side.
    """

    def __init__(
        self,
        hasher: ContentTypeHasher | None = None,
        state_manager: SyncStateManager | None = None,
    ):
        self.hasher = hasher or ContentTypeHasher()
        self.state_manager = state_manager
        self.logger = logging.getLogger("ChangeDetector")

    def calculate_hashes(
        self, definitions: Iterable[ContentTypeDefinition]
    ) -> dict[str, tuple[str, ContentTypeDefinition]]:
        return {d.key: (self.hasher.hash(d), d) for d in definitions}

    def compare(
        self,
        current: Sequence[ContentTypeDefinition],
        previous: Sequence[ContentTypeDefinition],
    ) -> ChangeSet:
        """
        Diff ``current`` against ``previous``.

        Created keys exist only in ``current``, deleted keys only in
        ``previous``. Order follows ``current`` then ``previous``.
        """
        current_hashes = self.calculate_hashes(current)
        previous_hashes = self.calculate_hashes(previous)
        changes = ChangeSet()

        for key, (current_hash, definition) in current_hashes.items():
            if key not in previous_hashes:
                changes.created.append(
                    DefinitionChange(key, current=definition, current_hash=current_hash)
                )
                continue
            previous_hash, previous_definition = previous_hashes[key]
            if previous_hash != current_hash:
                changes.updated.append(
                    DefinitionChange(
                        key,
                        current=definition,
                        previous=previous_definition,
                        current_hash=current_hash,
                        previous_hash=previous_hash,
                    )
                )
            else:
                changes.unchanged.append(key)

        for key, (previous_hash, previous_definition) in previous_hashes.items():
            if key not in current_hashes:
                changes.deleted.append(
                    DefinitionChange(key, previous=previous_definition, previous_hash=previous_hash)
                )

        if self.state_manager is not None:
            self._persist_states(self.state_manager, current_hashes)

        self.logger.debug(
            f"Changes: {len(changes.created)} created, {len(changes.updated)} updated, "
            f"{len(changes.deleted)} deleted, {len(changes.unchanged)} unchanged"
        )
        return changes

    @staticmethod
    def detect_change_type(local_hash: str | None, remote_hash: str | None) -> ChangeType:
        if not local_hash and remote_hash:
            return ChangeType.CREATE
        if local_hash and not remote_hash:
            return ChangeType.DELETE
        if local_hash != remote_hash:
            return ChangeType.UPDATE
        return ChangeType.NO_CHANGE

    @staticmethod
    def detect_field_changes(
        before: Sequence[FieldDefinition], after: Sequence[FieldDefinition]
    ) -> FieldChanges:
        """Field keys added, modified or removed going from ``before`` to ``after``."""
        before_map = {f.key: f for f in before}
        after_map = {f.key: f for f in after}
        changes = FieldChanges()

        for key, new in after_map.items():
            old = before_map.get(key)
            if old is None:
                changes.added.append(key)
            elif canonical_json(old.to_dict()) != canonical_json(new.to_dict()):
                changes.modified.append(key)

        changes.removed = [key for key in before_map if key not in after_map]
        return changes

    def generate_diff_report(self, changes: ChangeSet, include_details: bool = True) -> dict[str, Any]:
        report: dict[str, Any] = {
            "summary": {
                "total": len(changes.created) + len(changes.updated) + len(changes.deleted),
                "created": len(changes.created),
                "updated": len(changes.updated),
                "deleted": len(changes.deleted),
                "unchanged": len(changes.unchanged),
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        if include_details:
            report["details"] = {
                "created": [
                    {
                        "key": c.key,
                        "name": c.current.display_name if c.current else None,
                        "fields_count": len(c.current.fields) if c.current else 0,
                    }
                    for c in changes.created
                ],
                "updated": [
                    {
                        "key": c.key,
                        "previous_name": c.previous.display_name if c.previous else None,
                        "current_name": c.current.display_name if c.current else None,
                        "field_changes": self.detect_field_changes(
                            c.previous.fields if c.previous else [],
                            c.current.fields if c.current else [],
                        ).to_dict(),
                    }
                    for c in changes.updated
                ],
                "deleted": [
                    {
                        "key": c.key,
                        "name": c.previous.display_name if c.previous else None,
                        "fields_count": len(c.previous.fields) if c.previous else 0,
                    }
                    for c in changes.deleted
                ],
            }

        return report

    @staticmethod
    def _persist_states(
        state_manager: SyncStateManager,
        current_hashes: dict[str, tuple[str, ContentTypeDefinition]],
    ) -> None:
        for key, (current_hash, _definition) in current_hashes.items():
            state_manager.upsert_sync_state(key, local_hash=current_hash)
