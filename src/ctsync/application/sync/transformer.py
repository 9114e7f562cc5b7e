"""
Content Type Transformer - turns locally authored definitions into the
shape the remote platform accepts, and validates the result.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace

from ctsync.core.domain.definitions import ContentTypeDefinition, FieldDefinition


MANAGED_BY_KEY = "managed_by"
MANAGED_BY_VALUE = "ctsync"

KEY_PATTERN = re.compile(r"^[A-Za-z][_0-9A-Za-z]*$")
RESERVED_FIELD_KEYS = frozenset({"id", "_id", "__v", "createdAt", "updatedAt", "deletedAt"})
MAX_KEY_LENGTH = 255

_INVALID_KEY_CHARS = re.compile(r"[^A-Za-z0-9_]")


@dataclass
class ValidationResult:
    """Outcome of validating one transformed definition."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def generate_type_key(name: str) -> str:
    """Derive a platform-safe type key: letters, digits and underscores, leading letter."""
    key = _INVALID_KEY_CHARS.sub("", name or "")
    if not key:
        return "UntitledType"
    if not key[0].isalpha():
        key = f"Type{key}"
    return key[:MAX_KEY_LENGTH]


def generate_field_key(name: str) -> str:
    key = _INVALID_KEY_CHARS.sub("", name or "")
    if not key:
        return "field"
    if not key[0].isalpha():
        key = f"field{key}"
    return key


def is_managed(definition: ContentTypeDefinition, key_prefix: str | None = None) -> bool:
    """Whether a remote definition was created by this engine."""
    if definition.extensions.get(MANAGED_BY_KEY) == MANAGED_BY_VALUE:
        return True
    if key_prefix:
        return definition.key.startswith(key_prefix)
    return False


class ContentTypeTransformer:
    """Normalizes keys and stamps the management marker."""

    def __init__(self, key_prefix: str | None = None):
        self.key_prefix = key_prefix
        self.logger = logging.getLogger("ContentTypeTransformer")

    def transform(self, definition: ContentTypeDefinition) -> ContentTypeDefinition:
        key = generate_type_key(definition.key)
        if self.key_prefix and not key.startswith(self.key_prefix):
            key = f"{self.key_prefix}{key}"
        if key != definition.key:
            self.logger.debug(f"Normalized type key {definition.key!r} -> {key!r}")

        fields = [
            replace(
                f,
                key=generate_field_key(f.key),
                name=f.name or f.key,
                type=(f.type or "string").strip().lower(),
            )
            for f in definition.fields
        ]
        extensions = dict(definition.extensions)
        extensions[MANAGED_BY_KEY] = MANAGED_BY_VALUE

        return replace(
            definition,
            key=key,
            display_name=(definition.display_name or "").strip() or key,
            description=(definition.description or "").strip(),
            fields=fields,
            extensions=extensions,
        )

    def transform_batch(self, definitions: list[ContentTypeDefinition]) -> list[ContentTypeDefinition]:
        return [self.transform(d) for d in definitions]

    def validate(self, definition: ContentTypeDefinition) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []

        if not definition.key:
            errors.append("Missing required field: key")
        elif not KEY_PATTERN.match(definition.key):
            errors.append(f"Invalid key format: {definition.key}")
        elif len(definition.key) > MAX_KEY_LENGTH:
            errors.append(f"Key longer than {MAX_KEY_LENGTH} characters: {definition.key}")

        if not definition.display_name:
            errors.append("Missing required field: display_name")

        for key in definition.duplicate_field_keys():
            errors.append(f"Duplicate field key: {key}")

        for index, f in enumerate(definition.fields):
            errors.extend(self._validate_field(index, f))

        if not definition.fields:
            warnings.append("No fields defined for content type")

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    @staticmethod
    def _validate_field(index: int, f: FieldDefinition) -> list[str]:
        problems = []
        if f.key in RESERVED_FIELD_KEYS:
            problems.append(f"Reserved field name at fields[{index}]: {f.key}")
        elif not KEY_PATTERN.match(f.key):
            problems.append(f"Invalid field key at fields[{index}]: {f.key}")
        return problems
