"""
Version History - append-only hash chain of definition versions per type key.

Each key has one head per origin (local, remote). A new version's parent is
the head of its own origin, falling back to the newest version of the key
from any origin so that the first remote version links to the shared base.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from ctsync.core.domain.definitions import ContentTypeDefinition
from ctsync.core.domain.entities import Version
from ctsync.core.domain.enums import ChangeSource, VersionOrigin
from ctsync.core.ports.persistence import VersionStorePort

from .hashing import ContentTypeHasher


class VersionHistory:
    """Records versions and answers ancestry questions."""

    def __init__(self, store: VersionStorePort, hasher: ContentTypeHasher | None = None):
        self.store = store
        self.hasher = hasher or ContentTypeHasher()
        self.logger = logging.getLogger("VersionHistory")

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def record_version(
        self,
        definition: ContentTypeDefinition | Mapping[str, Any],
        source: ChangeSource,
        actor: str = "system",
        note: str | None = None,
        origin: VersionOrigin | None = None,
        parent_hash: str | None = None,
    ) -> Version:
        """
        Record a new version of a definition.

        Recording the hash that is already the head of ``origin`` is a no-op
        and returns that head.

        Args:
            definition: Definition or raw definition data (must carry a key)
            source: Who produced the change
            actor: User or process name
            note: Optional change message
            origin: Side of the sync; derived from ``source`` when omitted
            parent_hash: Explicit parent, overriding head lookup
        """
        data = (
            definition.to_dict()
            if isinstance(definition, ContentTypeDefinition)
            else dict(definition)
        )
        type_key = str(data.get("key") or "")
        if not type_key:
            raise ValueError("Cannot record a version without a type key")

        return self._append(
            type_key=type_key,
            version_hash=self.hasher.hash(data),
            data=data,
            source=source,
            actor=actor,
            note=note,
            origin=origin or VersionOrigin.for_source(source),
            parent_hash=parent_hash,
            deleted=False,
        )

    def record_deletion(
        self,
        type_key: str,
        source: ChangeSource,
        actor: str = "system",
        note: str | None = None,
        origin: VersionOrigin | None = None,
    ) -> Version:
        """Record a tombstone meaning the type was deleted on one side."""
        tombstone = self.hasher.tombstone(type_key)
        return self._append(
            type_key=type_key,
            version_hash=self.hasher.hash(tombstone),
            data=tombstone,
            source=source,
            actor=actor,
            note=note,
            origin=origin or VersionOrigin.for_source(source),
            parent_hash=None,
            deleted=True,
        )

    def _append(
        self,
        type_key: str,
        version_hash: str,
        data: dict[str, Any],
        source: ChangeSource,
        actor: str,
        note: str | None,
        origin: VersionOrigin,
        parent_hash: str | None,
        deleted: bool,
    ) -> Version:
        head = self.get_latest_version(type_key, origin)
        if head is not None and head.hash == version_hash:
            return head

        if parent_hash is None:
            fallback = head or self._latest_any(type_key)
            if fallback is not None and fallback.hash == version_hash:
                # same content arriving from the other side shares its parent
                parent_hash = fallback.parent_hash
            else:
                parent_hash = fallback.hash if fallback else None

        version = self.store.append_version(
            Version(
                hash=version_hash,
                type_key=type_key,
                data=data,
                origin=origin,
                source=source,
                parent_hash=parent_hash,
                actor=actor,
                note=note,
                deleted=deleted,
                timestamp=datetime.now(),
            )
        )
        self.logger.debug(
            f"Recorded {origin.value} version {version.short_hash} of {type_key} "
            f"(parent {parent_hash[:8] if parent_hash else 'none'})"
        )
        return version

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get_latest_version(self, type_key: str, origin: VersionOrigin) -> Version | None:
        versions = self.store.get_versions(type_key, origin)
        return versions[-1] if versions else None

    def get_version_by_hash(self, type_key: str, version_hash: str) -> Version | None:
        """The first recorded version with this hash; equal hashes are the same version."""
        for version in self.store.get_versions(type_key):
            if version.hash == version_hash:
                return version
        return None

    def get_initial_version(self, type_key: str) -> Version | None:
        versions = self.store.get_versions(type_key)
        return versions[0] if versions else None

    def get_version_history(self, type_key: str, limit: int = 10) -> list[Version]:
        """Newest first."""
        versions = self.store.get_versions(type_key)
        return list(reversed(versions))[:limit]

    def list_type_keys(self) -> list[str]:
        return self.store.list_type_keys()

    def _latest_any(self, type_key: str) -> Version | None:
        versions = self.store.get_versions(type_key)
        return versions[-1] if versions else None

    def _index(self, type_key: str) -> dict[str, Version]:
        """Hash to first recorded version, loaded in one query."""
        by_hash: dict[str, Version] = {}
        for version in self.store.get_versions(type_key):
            by_hash.setdefault(version.hash, version)
        return by_hash

    # -------------------------------------------------------------------------
    # Ancestry
    # -------------------------------------------------------------------------

    def get_ancestor_chain(self, version: Version) -> list[Version]:
        """
        Walk parent links to the root.

        Returns:
            ``[version, parent, grandparent, ..., root]``
        """
        by_hash = self._index(version.type_key)
        chain = [version]
        seen = {version.hash}
        parent_hash = version.parent_hash
        while parent_hash and parent_hash not in seen:
            parent = by_hash.get(parent_hash)
            if parent is None:
                self.logger.warning(
                    f"Broken chain for {version.type_key}: missing parent {parent_hash[:8]}"
                )
                break
            chain.append(parent)
            seen.add(parent.hash)
            parent_hash = parent.parent_hash
        return chain

    def get_lineage(self, version: Version) -> list[Version]:
        """Root first."""
        return list(reversed(self.get_ancestor_chain(version)))

    def find_common_ancestor(self, first: Version, second: Version) -> Version | None:
        """
        Most recent version present in both ancestor chains.

        Walks ``first``'s chain newest to oldest and returns the first hash
        that also appears in ``second``'s chain.
        """
        second_hashes = {v.hash for v in self.get_ancestor_chain(second)}
        for candidate in self.get_ancestor_chain(first):
            if candidate.hash in second_hashes:
                return candidate
        return None
