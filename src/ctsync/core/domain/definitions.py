"""
Content-type definitions.

A definition is a tagged union discriminated by ``category``. Each known
shape is its own dataclass; keys the model does not know about are kept in
an ``extensions`` bag so newer payloads survive a round trip unchanged.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from ctsync.core.exceptions import ValidationError


class DefinitionCategory(Enum):
    """Known definition shapes."""

    PAGE = "page"
    COMPONENT = "component"
    FOLDER = "folder"

    @classmethod
    def from_string(cls, value: str | None) -> DefinitionCategory:
        if not value:
            return cls.COMPONENT
        normalized = value.strip().lower().lstrip("_")
        for member in cls:
            if member.value == normalized:
                return member
        raise ValidationError(f"Unknown definition category: {value}")


_FIELD_KEYS = (
    "key",
    "name",
    "type",
    "required",
    "unique",
    "indexed",
    "description",
    "settings",
)


@dataclass
class FieldDefinition:
    """One field of a content type."""

    key: str
    name: str = ""
    type: str = "string"
    required: bool = False
    unique: bool = False
    indexed: bool = False
    description: str = ""
    settings: dict[str, Any] = field(default_factory=dict)
    extensions: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "key": self.key,
            "name": self.name,
            "type": self.type,
            "required": self.required,
            "unique": self.unique,
            "indexed": self.indexed,
            "description": self.description,
            "settings": dict(self.settings),
        }
        if self.extensions:
            data["extensions"] = dict(self.extensions)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FieldDefinition:
        key = data.get("key") or data.get("id") or data.get("name")
        if not key:
            raise ValidationError("Field is missing a key")
        extensions = dict(data.get("extensions") or {})
        for name, value in data.items():
            if name not in _FIELD_KEYS and name not in ("extensions", "id", "label"):
                extensions[name] = value
        return cls(
            key=str(key),
            name=str(data.get("name") or data.get("label") or key),
            type=str(data.get("type") or "string"),
            required=bool(data.get("required", False)),
            unique=bool(data.get("unique", False)),
            indexed=bool(data.get("indexed", False)),
            description=str(data.get("description") or ""),
            settings=dict(data.get("settings") or {}),
            extensions=extensions,
        )


_COMMON_KEYS = ("key", "category", "display_name", "description", "fields", "extensions")
_ALIASES = {"displayName": "display_name", "name": "display_name"}


@dataclass
class ContentTypeDefinition:
    """
    Base of the definition union.

    Use ``from_dict`` to build the right subclass from raw data.
    """

    key: str
    display_name: str = ""
    description: str = ""
    fields: list[FieldDefinition] = field(default_factory=list)
    extensions: dict[str, Any] = field(default_factory=dict)

    category: ClassVar[DefinitionCategory] = DefinitionCategory.COMPONENT
    _shape_keys: ClassVar[tuple[str, ...]] = ()

    def field_map(self) -> dict[str, FieldDefinition]:
        return {f.key: f for f in self.fields}

    def duplicate_field_keys(self) -> list[str]:
        seen: set[str] = set()
        duplicates: list[str] = []
        for f in self.fields:
            if f.key in seen and f.key not in duplicates:
                duplicates.append(f.key)
            seen.add(f.key)
        return duplicates

    def _shape_dict(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "key": self.key,
            "category": self.category.value,
            "display_name": self.display_name,
            "description": self.description,
            "fields": [f.to_dict() for f in self.fields],
        }
        data.update(self._shape_dict())
        if self.extensions:
            data["extensions"] = dict(self.extensions)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ContentTypeDefinition:
        """Build the subclass matching ``data['category']``."""
        if not isinstance(data, Mapping):
            raise ValidationError(f"Definition must be a mapping, got {type(data).__name__}")

        category = DefinitionCategory.from_string(data.get("category"))
        target = _CATEGORY_TYPES[category]

        normalized: dict[str, Any] = {}
        for name, value in data.items():
            normalized[_ALIASES.get(name, name)] = value

        key = normalized.get("key")
        if not key:
            raise ValidationError("Definition is missing a key")

        raw_fields = normalized.get("fields") or []
        if isinstance(raw_fields, Mapping):
            raw_fields = [{"key": k, **v} for k, v in raw_fields.items()]

        extensions = dict(normalized.get("extensions") or {})
        known = set(_COMMON_KEYS) | set(target._shape_keys)
        for name, value in normalized.items():
            if name not in known:
                extensions[name] = value

        shape = {name: list(normalized.get(name) or []) for name in target._shape_keys}
        return target(
            key=str(key),
            display_name=str(normalized.get("display_name") or key),
            description=str(normalized.get("description") or ""),
            fields=[FieldDefinition.from_dict(f) for f in raw_fields],
            extensions=extensions,
            **shape,
        )


@dataclass
class PageTypeDefinition(ContentTypeDefinition):
    """A routable page type."""

    may_contain_types: list[str] = field(default_factory=list)

    category: ClassVar[DefinitionCategory] = DefinitionCategory.PAGE
    _shape_keys: ClassVar[tuple[str, ...]] = ("may_contain_types",)

    def _shape_dict(self) -> dict[str, Any]:
        return {"may_contain_types": list(self.may_contain_types)}


@dataclass
class ComponentTypeDefinition(ContentTypeDefinition):
    """A reusable block embedded in pages."""

    composition_behaviors: list[str] = field(default_factory=list)

    category: ClassVar[DefinitionCategory] = DefinitionCategory.COMPONENT
    _shape_keys: ClassVar[tuple[str, ...]] = ("composition_behaviors",)

    def _shape_dict(self) -> dict[str, Any]:
        return {"composition_behaviors": list(self.composition_behaviors)}


@dataclass
class FolderTypeDefinition(ContentTypeDefinition):
    """A container type with no content of its own."""

    category: ClassVar[DefinitionCategory] = DefinitionCategory.FOLDER


_CATEGORY_TYPES: dict[DefinitionCategory, type[ContentTypeDefinition]] = {
    DefinitionCategory.PAGE: PageTypeDefinition,
    DefinitionCategory.COMPONENT: ComponentTypeDefinition,
    DefinitionCategory.FOLDER: FolderTypeDefinition,
}


Definition = PageTypeDefinition | ComponentTypeDefinition | FolderTypeDefinition


def parse_definition(data: Mapping[str, Any] | ContentTypeDefinition) -> ContentTypeDefinition:
    """Accept either a definition or raw data."""
    if isinstance(data, ContentTypeDefinition):
        return data
    return ContentTypeDefinition.from_dict(data)
