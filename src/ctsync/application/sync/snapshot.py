"""
Sync Snapshot - checksummed, optionally compressed payload captures.

The checksum is always SHA-256 of the uncompressed canonical JSON, and every
restore recomputes it.
"""

from __future__ import annotations

import base64
import binascii
import gzip
import json
import logging
import zlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ctsync.core.exceptions import IntegrityError, SnapshotSizeError

from .hashing import canonical_json, sha256_hex


COMPRESSION_THRESHOLD = 100_000  # bytes; compress when larger
MAX_SNAPSHOT_SIZE = 10_000_000  # bytes; reject when larger
COMPRESSION_LEVEL = 6

logger = logging.getLogger("SyncSnapshot")


@dataclass
class SnapshotData:
    """Envelope stored for every snapshot."""

    data: str
    checksum: str
    is_compressed: bool
    original_size: int
    timestamp: str

    def to_json(self) -> str:
        return json.dumps(
            {
                "data": self.data,
                "checksum": self.checksum,
                "is_compressed": self.is_compressed,
                "original_size": self.original_size,
                "timestamp": self.timestamp,
            }
        )

    @classmethod
    def from_json(cls, text: str) -> SnapshotData:
        try:
            raw = json.loads(text)
            return cls(
                data=raw["data"],
                checksum=raw["checksum"],
                is_compressed=bool(raw["is_compressed"]),
                original_size=int(raw.get("original_size", 0)),
                timestamp=raw.get("timestamp", ""),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise IntegrityError("Snapshot envelope is malformed", cause=e) from e


@dataclass
class SnapshotDiff:
    """Difference between two restored snapshots."""

    added: list[Any] = field(default_factory=list)
    modified: list[dict[str, Any]] = field(default_factory=list)
    removed: list[Any] = field(default_factory=list)
    unchanged: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.modified or self.removed)


class SyncSnapshot:
    """Captures and restores payloads with integrity checks."""

    def __init__(
        self,
        compression_threshold: int = COMPRESSION_THRESHOLD,
        max_size: int = MAX_SNAPSHOT_SIZE,
        compression_level: int = COMPRESSION_LEVEL,
    ):
        self.compression_threshold = compression_threshold
        self.max_size = max_size
        self.compression_level = compression_level

    def capture_snapshot(self, data: Any) -> str:
        """
        Serialize a payload into a snapshot string.

        Raises:
            SnapshotSizeError: If the serialized payload exceeds the size limit
        """
        text = canonical_json(data)
        raw = text.encode("utf-8")
        size = len(raw)

        if size > self.max_size:
            raise SnapshotSizeError(
                f"Snapshot size ({size} bytes) exceeds maximum allowed size ({self.max_size} bytes)",
                size=size,
                limit=self.max_size,
            )

        checksum = sha256_hex(text)

        if size > self.compression_threshold:
            compressed = gzip.compress(raw, compresslevel=self.compression_level)
            payload = base64.b64encode(compressed).decode("ascii")
            is_compressed = True
            logger.debug(
                f"Compressed snapshot {size} -> {len(compressed)} bytes "
                f"({round((1 - len(compressed) / size) * 100)}% reduction)"
            )
        else:
            payload = text
            is_compressed = False

        return SnapshotData(
            data=payload,
            checksum=checksum,
            is_compressed=is_compressed,
            original_size=size,
            timestamp=datetime.now().isoformat(),
        ).to_json()

    def restore_snapshot(self, snapshot: str) -> Any:
        """
        Restore a payload, verifying its checksum.

        Raises:
            IntegrityError: On checksum mismatch or undecodable data
        """
        envelope = SnapshotData.from_json(snapshot)
        text = self._decode(envelope)

        if sha256_hex(text) != envelope.checksum:
            raise IntegrityError("Snapshot integrity check failed: checksum mismatch")

        return json.loads(text)

    def validate_snapshot(self, snapshot: str) -> bool:
        try:
            self.restore_snapshot(snapshot)
        except IntegrityError:
            return False
        return True

    def _decode(self, envelope: SnapshotData) -> str:
        if not envelope.is_compressed:
            return envelope.data
        try:
            compressed = base64.b64decode(envelope.data.encode("ascii"), validate=True)
            return gzip.decompress(compressed).decode("utf-8")
        except (binascii.Error, zlib.error, OSError, EOFError, UnicodeError, ValueError) as e:
            raise IntegrityError("Snapshot payload could not be decompressed", cause=e) from e

    # -------------------------------------------------------------------------
    # Comparison
    # -------------------------------------------------------------------------

    def compare_snapshots(self, first: str, second: str) -> SnapshotDiff:
        """Restore both snapshots and diff them (array-aware and object-aware)."""
        before = self.restore_snapshot(first)
        after = self.restore_snapshot(second)

        if isinstance(before, list) and isinstance(after, list):
            return self._compare_lists(before, after)
        if isinstance(before, dict) and isinstance(after, dict):
            return self._compare_dicts(before, after)

        if canonical_json(before) == canonical_json(after):
            return SnapshotDiff(unchanged=1)
        return SnapshotDiff(modified=[{"old": before, "new": after}])

    @staticmethod
    def _compare_lists(before: list[Any], after: list[Any]) -> SnapshotDiff:
        before_keys = [canonical_json(item) for item in before]
        after_keys = [canonical_json(item) for item in after]
        before_set = set(before_keys)
        after_set = set(after_keys)

        diff = SnapshotDiff()
        diff.added = [item for item, key in zip(after, after_keys) if key not in before_set]
        diff.removed = [item for item, key in zip(before, before_keys) if key not in after_set]
        for index in range(min(len(before), len(after))):
            if before_keys[index] != after_keys[index]:
                diff.modified.append({"index": index, "old": before[index], "new": after[index]})
        diff.unchanged = len(before_set & after_set)
        return diff

    @staticmethod
    def _compare_dicts(before: dict[str, Any], after: dict[str, Any]) -> SnapshotDiff:
        diff = SnapshotDiff()
        diff.added = [key for key in after if key not in before]
        diff.removed = [key for key in before if key not in after]
        for key in before:
            if key not in after:
                continue
            if canonical_json(before[key]) == canonical_json(after[key]):
                diff.unchanged += 1
            else:
                diff.modified.append({"key": key, "old": before[key], "new": after[key]})
        return diff
