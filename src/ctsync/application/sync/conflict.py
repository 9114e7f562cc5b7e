"""
Conflict Detector - three-way divergence checks between local and remote.

A conflict exists only when local and remote both moved away from their
common ancestor. Hashes are compared, never timestamps, so clock skew
between the two sides cannot produce false positives.
"""

from __future__ import annotations

import logging
from typing import Any

from ctsync.core.domain.entities import (
    ConflictDetails,
    ConflictingField,
    ConflictResult,
    Version,
)
from ctsync.core.domain.enums import ConflictType, VersionOrigin

from .diff import ThreeWayDiff, structure_of
from .versioning import VersionHistory


class ConflictDetector:
    """
    Detects and classifies concurrent edits of a content type.

    Classification order:
    1. ``delete``     - exactly one side is a tombstone
    2. ``structural`` - field names/types differ from the ancestor on both sides
    3. ``delete``     - a path was removed on one side and changed on the other
    4. ``field``      - overlapping field-level edits
    """

    def __init__(self, versions: VersionHistory, differ: ThreeWayDiff | None = None):
        self.versions = versions
        self.differ = differ or ThreeWayDiff()
        self.logger = logging.getLogger("ConflictDetector")

    def detect_conflicts(self, type_key: str) -> ConflictResult:
        """Compare the latest local and remote versions of one key."""
        local = self.versions.get_latest_version(type_key, VersionOrigin.LOCAL)
        remote = self.versions.get_latest_version(type_key, VersionOrigin.REMOTE)

        if local is None or remote is None:
            return ConflictResult(type_key, has_conflict=False, reason="insufficient_data")

        return self.analyze_versions(type_key, local, remote)

    def detect_all(self, type_keys: list[str] | None = None) -> list[ConflictResult]:
        """Run detection for every key (or the given keys); conflicts only."""
        keys = type_keys if type_keys is not None else self.versions.list_type_keys()
        results = []
        for type_key in keys:
            result = self.detect_conflicts(type_key)
            if result.has_conflict:
                results.append(result)
        self.logger.info(f"Scanned {len(keys)} content types, {len(results)} in conflict")
        return results

    def analyze_versions(self, type_key: str, local: Version, remote: Version) -> ConflictResult:
        """Classify two concrete versions of one key."""
        if local.hash == remote.hash:
            return ConflictResult(type_key, has_conflict=False, reason="identical")

        ancestor = self.versions.find_common_ancestor(local, remote)
        if ancestor is None:
            ancestor = self.versions.get_initial_version(type_key)

        ancestor_hash = ancestor.hash if ancestor else None
        if local.hash == ancestor_hash:
            return ConflictResult(type_key, has_conflict=False, reason="remote_ahead")
        if remote.hash == ancestor_hash:
            return ConflictResult(type_key, has_conflict=False, reason="local_ahead")

        ancestor_data: dict[str, Any] = ancestor.data if ancestor else {}
        details = self._build_details(type_key, local, remote, ancestor_hash, ancestor_data)

        self.logger.warning(
            f"Conflict on {type_key}: {details.conflict_type.value} "
            f"(local {local.short_hash}, remote {remote.short_hash}, "
            f"ancestor {ancestor_hash[:8] if ancestor_hash else 'none'})"
        )
        return ConflictResult(
            type_key,
            has_conflict=True,
            type=details.conflict_type,
            details=details,
            reason="diverged",
        )

    def _build_details(
        self,
        type_key: str,
        local: Version,
        remote: Version,
        ancestor_hash: str | None,
        ancestor_data: dict[str, Any],
    ) -> ConflictDetails:
        analysis = self.differ.analyze(ancestor_data, local.data, remote.data)

        if local.deleted != remote.deleted:
            conflict_type = ConflictType.DELETE
        elif self._structure_diverged(ancestor_data, local.data, remote.data):
            conflict_type = ConflictType.STRUCTURAL
        elif any(c.kind != "both_modified" for c in analysis.conflicts):
            conflict_type = ConflictType.DELETE
        else:
            conflict_type = ConflictType.FIELD

        conflicting: list[ConflictingField] = []
        if not (local.deleted or remote.deleted):
            conflicting = [
                ConflictingField(
                    field=c.path,
                    local_value=c.local_value,
                    remote_value=c.remote_value,
                    ancestor_value=c.ancestor_value,
                )
                for c in analysis.conflicts
            ]

        return ConflictDetails(
            type_key=type_key,
            conflict_type=conflict_type,
            local_hash=local.hash,
            remote_hash=remote.hash,
            ancestor_hash=ancestor_hash,
            local_data=local.data,
            remote_data=remote.data,
            ancestor_data=ancestor_data,
            local_changes=analysis.local_changes.to_dict(),
            remote_changes=analysis.remote_changes.to_dict(),
            conflicting_fields=conflicting,
            local_deleted=local.deleted,
            remote_deleted=remote.deleted,
        )

    @staticmethod
    def _structure_diverged(
        ancestor: dict[str, Any], local: dict[str, Any], remote: dict[str, Any]
    ) -> bool:
        base = structure_of(ancestor)
        return structure_of(local) != base and structure_of(remote) != base
