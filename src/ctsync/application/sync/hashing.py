"""
Content-type hashing.

One fingerprint scheme is used everywhere: SHA-256 over canonical JSON.
Canonical means sorted object keys, compact separators, fields ordered by
their key and volatile bookkeeping keys dropped.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any

from ctsync.core.domain.definitions import ContentTypeDefinition


VOLATILE_KEYS = frozenset(
    {"id", "_id", "created_at", "updated_at", "createdAt", "updatedAt", "timestamp"}
)


def canonical_json(data: Any) -> str:
    """Serialize with sorted keys and no insignificant whitespace."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class ContentTypeHasher:
    """
    Computes order-independent fingerprints of content-type definitions.

    Two definitions that differ only in key order, field order or volatile
    metadata hash to the same 64-character hex digest.
    """

    def __init__(self, volatile_keys: frozenset[str] = VOLATILE_KEYS):
        self.volatile_keys = volatile_keys

    def hash(self, definition: ContentTypeDefinition | Mapping[str, Any]) -> str:
        """Fingerprint a definition or raw definition data."""
        return sha256_hex(canonical_json(self.normalize(definition)))

    def tombstone_hash(self, type_key: str) -> str:
        """Fingerprint of a deleted type."""
        return self.hash(self.tombstone(type_key))

    @staticmethod
    def tombstone(type_key: str) -> dict[str, Any]:
        return {"key": type_key, "deleted": True}

    def normalize(self, definition: ContentTypeDefinition | Mapping[str, Any]) -> dict[str, Any]:
        if isinstance(definition, ContentTypeDefinition):
            data: Any = definition.to_dict()
        else:
            data = dict(definition)
        return self._strip(data, top_level=True)

    def _strip(self, value: Any, top_level: bool = False) -> Any:
        if isinstance(value, Mapping):
            cleaned = {
                k: self._strip(v)
                for k, v in value.items()
                if k not in self.volatile_keys and v is not None
            }
            fields = cleaned.get("fields")
            if top_level and isinstance(fields, list) and all(
                isinstance(f, Mapping) and "key" in f for f in fields
            ):
                cleaned["fields"] = sorted(fields, key=lambda f: str(f["key"]))
            return cleaned
        if isinstance(value, (list, tuple)):
            return [self._strip(v) for v in value]
        return value
