"""
Conflict Manager - the review queue for flagged divergences.

The conflict store is the single source of truth. A read cache is kept in
process and dropped on every write so the two views cannot drift apart.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

from ctsync.core.domain.entities import ConflictDetails, ConflictEntry, ResolutionRecord
from ctsync.core.domain.enums import ConflictPriority, ConflictStatus, ConflictType
from ctsync.core.exceptions import ConflictNotFoundError, ConflictStateError
from ctsync.core.ports.persistence import ConflictFilter, ConflictStorePort


MAX_RESOLUTION_HISTORY = 100
MEDIUM_PRIORITY_FIELD_COUNT = 3


def calculate_priority(details: ConflictDetails) -> ConflictPriority:
    """Structural > delete > many fields > single field."""
    if details.conflict_type is ConflictType.STRUCTURAL:
        return ConflictPriority.CRITICAL
    if details.conflict_type is ConflictType.DELETE:
        return ConflictPriority.HIGH
    if len(details.conflicting_fields) > MEDIUM_PRIORITY_FIELD_COUNT:
        return ConflictPriority.MEDIUM
    return ConflictPriority.LOW


def generate_conflict_id() -> str:
    return f"conflict_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class ConflictManager:
    """
    Flags conflicts for review and retires them on resolution.

    Entries only ever move ``pending_review -> resolved``; resolved entries
    are immutable and can only be removed by ``clear_resolved_conflicts``.
    """

    def __init__(self, store: ConflictStorePort, history_limit: int = MAX_RESOLUTION_HISTORY):
        self.store = store
        self.history_limit = history_limit
        self.logger = logging.getLogger("ConflictManager")
        self._cache: dict[str, ConflictEntry] | None = None

    # -------------------------------------------------------------------------
    # Cache
    # -------------------------------------------------------------------------

    def _entries(self) -> dict[str, ConflictEntry]:
        if self._cache is None:
            self._cache = {entry.id: entry for entry in self.store.list_conflicts()}
        return self._cache

    def _invalidate(self) -> None:
        self._cache = None

    # -------------------------------------------------------------------------
    # Queue
    # -------------------------------------------------------------------------

    def flag_for_review(self, type_key: str, details: ConflictDetails) -> ConflictEntry:
        """Add a conflict to the review queue."""
        entry = ConflictEntry(
            id=generate_conflict_id(),
            type_key=type_key,
            conflict_type=details.conflict_type,
            local_hash=details.local_hash,
            remote_hash=details.remote_hash,
            ancestor_hash=details.ancestor_hash,
            priority=calculate_priority(details),
            details=details,
        )
        self.store.save_conflict(entry)
        self._invalidate()
        self.logger.info(
            f"Flagged {entry.conflict_type.value} conflict on {type_key} "
            f"as {entry.priority.display_name} ({entry.id})"
        )
        return entry

    def find_pending(
        self, type_key: str, local_hash: str, remote_hash: str
    ) -> ConflictEntry | None:
        """An open entry for exactly this pair of hashes, if one was already flagged."""
        for entry in self._entries().values():
            if (
                entry.type_key == type_key
                and not entry.is_resolved
                and entry.local_hash == local_hash
                and entry.remote_hash == remote_hash
            ):
                return entry
        return None

    def get_conflict_queue(self, conflict_filter: ConflictFilter | None = None) -> list[ConflictEntry]:
        """
        Entries matching the filter (pending only by default).

        Sorted by priority, highest first, then oldest first within a priority.
        """
        conflict_filter = conflict_filter or ConflictFilter()
        entries = [e for e in self._entries().values() if conflict_filter.matches(e)]
        return sorted(entries, key=lambda e: (-e.priority.value, e.flagged_at))

    def get_conflict(self, conflict_id: str) -> ConflictEntry | None:
        return self._entries().get(conflict_id)

    def resolve_conflict(
        self,
        conflict_id: str,
        resolution: str,
        resolved_data: dict[str, Any] | None,
        resolved_by: str,
    ) -> ConflictEntry:
        """
        Retire a pending conflict.

        Raises:
            ConflictNotFoundError: If no entry has this id
            ConflictStateError: If the entry is already resolved
        """
        entry = self.get_conflict(conflict_id)
        if entry is None:
            raise ConflictNotFoundError(conflict_id)
        if entry.is_resolved:
            raise ConflictStateError(f"Conflict {conflict_id} is already resolved")

        resolved = replace(
            entry,
            status=ConflictStatus.RESOLVED,
            resolved_at=datetime.now(),
            resolved_by=resolved_by,
            resolution=resolution,
            resolved_data=resolved_data,
        )
        self.store.save_conflict(resolved)
        self.store.add_resolution(
            ResolutionRecord(
                conflict_id=resolved.id,
                type_key=resolved.type_key,
                conflict_type=resolved.conflict_type,
                resolution=resolution,
                resolved_by=resolved_by,
                resolved_at=resolved.resolved_at or datetime.now(),
            ),
            keep=self.history_limit,
        )
        self._invalidate()
        self.logger.info(f"Resolved {conflict_id} ({entry.type_key}) via {resolution} by {resolved_by}")
        return resolved

    def clear_resolved_conflicts(self, older_than_days: int = 7) -> int:
        """Delete resolved entries older than the cutoff. Returns the number removed."""
        cutoff = datetime.now() - timedelta(days=older_than_days)
        stale = [
            e.id
            for e in self._entries().values()
            if e.is_resolved and (e.resolved_at or e.flagged_at) < cutoff
        ]
        if not stale:
            return 0
        removed = self.store.delete_conflicts(stale)
        self._invalidate()
        self.logger.info(f"Cleared {removed} resolved conflicts older than {older_than_days} days")
        return removed

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def get_resolution_history(
        self,
        type_key: str | None = None,
        resolved_by: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[ResolutionRecord]:
        """Most recent first."""
        history = self.store.list_resolutions()
        if type_key:
            history = [r for r in history if r.type_key == type_key]
        if resolved_by:
            history = [r for r in history if r.resolved_by == resolved_by]
        if start:
            history = [r for r in history if r.resolved_at >= start]
        if end:
            history = [r for r in history if r.resolved_at <= end]
        return history[:limit] if limit else history

    def get_statistics(self) -> dict[str, Any]:
        entries = list(self._entries().values())
        by_status: dict[str, int] = {}
        by_type: dict[str, int] = {}
        by_priority: dict[str, int] = {}
        for entry in entries:
            by_status[entry.status.value] = by_status.get(entry.status.value, 0) + 1
            by_type[entry.conflict_type.value] = by_type.get(entry.conflict_type.value, 0) + 1
            name = entry.priority.display_name
            by_priority[name] = by_priority.get(name, 0) + 1

        resolved = by_status.get(ConflictStatus.RESOLVED.value, 0)
        return {
            "total": len(entries),
            "by_status": by_status,
            "by_type": by_type,
            "by_priority": by_priority,
            "resolution_rate": round(resolved / len(entries), 4) if entries else 0.0,
        }
