"""
Three-way diff over flattened definitions.

A definition is flattened into paths: every top-level attribute is one path,
and each attribute of each field becomes ``fields.<field key>.<attr>``. Two
sides that touch different paths can be merged; two sides that change the
same path to different values conflict.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .hashing import canonical_json


Path = tuple[str, ...]


class _Missing:
    def __repr__(self) -> str:
        return "<missing>"


MISSING: Any = _Missing()

BOTH_MODIFIED = "both_modified"
ADD_DELETE = "add_delete"
DELETE_ADD = "delete_add"


def path_to_str(path: Path) -> str:
    return ".".join(path)


def _is_field_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(f, Mapping) and "key" in f for f in value)


def flatten_definition(data: Mapping[str, Any]) -> dict[Path, Any]:
    """Flatten definition data into ``{path: value}``."""
    flat: dict[Path, Any] = {}
    for name, value in data.items():
        if name == "fields" and _is_field_list(value):
            for f in value:
                for attr, attr_value in f.items():
                    flat[("fields", str(f["key"]), attr)] = attr_value
        else:
            flat[(name,)] = value
    return flat


def unflatten_definition(
    flat: Mapping[Path, Any], order_hints: Iterable[Mapping[str, Any]] = ()
) -> dict[str, Any]:
    """
    Rebuild definition data from paths.

    ``order_hints`` are the source documents; their key and field order is
    reused so merged output reads like its inputs.
    """
    hints = list(order_hints)
    top_order: list[str] = []
    field_order: list[str] = []
    has_fields = False
    for hint in hints:
        for name in hint:
            if name not in top_order:
                top_order.append(name)
        if "fields" in hint:
            has_fields = True
            for f in hint.get("fields") or []:
                if isinstance(f, Mapping) and str(f.get("key")) not in field_order:
                    field_order.append(str(f.get("key")))

    top: dict[str, Any] = {}
    fields: dict[str, dict[str, Any]] = {}
    for path, value in flat.items():
        if len(path) == 3 and path[0] == "fields":
            has_fields = True
            fields.setdefault(path[1], {})[path[2]] = value
            if path[1] not in field_order:
                field_order.append(path[1])
        else:
            top[path[0]] = value
            if path[0] not in top_order:
                top_order.append(path[0])

    result: dict[str, Any] = {}
    for name in top_order:
        if name == "fields":
            continue
        if name in top:
            result[name] = top[name]
    if has_fields:
        result["fields"] = [fields[key] for key in field_order if key in fields]
    return result


def _same(a: Any, b: Any) -> bool:
    if a is MISSING or b is MISSING:
        return a is b
    return canonical_json(a) == canonical_json(b)


def classify_change(old: Any, new: Any) -> str:
    """Describe how a value changed."""
    if type(old) is not type(new):
        return "type_change"
    if isinstance(old, list):
        return "array_resize" if len(old) != len(new) else "array_content"
    if isinstance(old, dict):
        return "object_structure" if set(old) != set(new) else "object_content"
    return "value_change"


def structure_of(data: Mapping[str, Any]) -> dict[str, str]:
    """
    Structural signature: field key -> field type.

    Data without a field list falls back to top-level key -> value type name.
    """
    fields = data.get("fields")
    if _is_field_list(fields):
        return {str(f["key"]): str(f.get("type", "")) for f in fields}
    return {str(k): type(v).__name__ for k, v in data.items()}


# =============================================================================
# Results
# =============================================================================


@dataclass
class PathChange:
    """One changed path between two documents."""

    path: str
    change_type: str
    old: Any = None
    new: Any = None


@dataclass
class ChangeSummary:
    """Two-way diff of flattened documents."""

    added: list[PathChange] = field(default_factory=list)
    modified: list[PathChange] = field(default_factory=list)
    deleted: list[PathChange] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def changed_paths(self) -> set[str]:
        return {c.path for c in self.added + self.modified + self.deleted}

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.modified or self.deleted)

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "added": [c.path for c in self.added],
            "modified": [c.path for c in self.modified],
            "deleted": [c.path for c in self.deleted],
        }

    def summary(self) -> dict[str, int]:
        return {
            "added": len(self.added),
            "modified": len(self.modified),
            "deleted": len(self.deleted),
            "unchanged": len(self.unchanged),
        }


@dataclass
class PathConflict:
    """A path changed differently on both sides."""

    path: str
    kind: str
    ancestor_value: Any
    local_value: Any
    remote_value: Any
    suggestion: str


@dataclass
class ThreeWayDiffResult:
    """Everything ``ThreeWayDiff.analyze`` learned about two divergent sides."""

    local_changes: ChangeSummary
    remote_changes: ChangeSummary
    conflicts: list[PathConflict] = field(default_factory=list)
    mergeable: list[str] = field(default_factory=list)
    divergence: float = 0.0

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


# =============================================================================
# Diff
# =============================================================================


class ThreeWayDiff:
    """Compares ancestor, local and remote definition data."""

    def calculate_changes(self, base: Mapping[str, Any], other: Mapping[str, Any]) -> ChangeSummary:
        """Two-way diff from ``base`` to ``other``."""
        base_flat = flatten_definition(base)
        other_flat = flatten_definition(other)
        summary = ChangeSummary()

        for path, old in base_flat.items():
            name = path_to_str(path)
            if path not in other_flat:
                summary.deleted.append(PathChange(name, "deleted", old=old))
            elif _same(old, other_flat[path]):
                summary.unchanged.append(name)
            else:
                new = other_flat[path]
                summary.modified.append(PathChange(name, classify_change(old, new), old=old, new=new))

        for path, new in other_flat.items():
            if path not in base_flat:
                summary.added.append(PathChange(path_to_str(path), "added", new=new))

        return summary

    def analyze(
        self,
        ancestor: Mapping[str, Any],
        local: Mapping[str, Any],
        remote: Mapping[str, Any],
    ) -> ThreeWayDiffResult:
        """Find overlapping and mergeable changes of both sides."""
        base_flat = flatten_definition(ancestor)
        local_flat = flatten_definition(local)
        remote_flat = flatten_definition(remote)

        result = ThreeWayDiffResult(
            local_changes=self.calculate_changes(ancestor, local),
            remote_changes=self.calculate_changes(ancestor, remote),
        )

        all_paths = _ordered_union(base_flat, local_flat, remote_flat)
        changed = 0
        for path in all_paths:
            a = base_flat.get(path, MISSING)
            lv = local_flat.get(path, MISSING)
            rv = remote_flat.get(path, MISSING)
            local_changed = not _same(a, lv)
            remote_changed = not _same(a, rv)
            if not (local_changed or remote_changed):
                continue
            changed += 1

            if local_changed and remote_changed and not _same(lv, rv):
                result.conflicts.append(self._conflict(path, a, lv, rv))
            else:
                result.mergeable.append(path_to_str(path))

        if all_paths:
            conflict_ratio = len(result.conflicts) / len(all_paths)
            change_ratio = changed / len(all_paths)
            result.divergence = round(0.7 * conflict_ratio + 0.3 * change_ratio, 3)
        return result

    def merge(
        self,
        ancestor: Mapping[str, Any],
        local: Mapping[str, Any],
        remote: Mapping[str, Any],
    ) -> dict[str, Any] | None:
        """
        Apply both sides' changes onto the ancestor.

        Returns:
            Merged data, or None if any path conflicts
        """
        base_flat = flatten_definition(ancestor)
        local_flat = flatten_definition(local)
        remote_flat = flatten_definition(remote)

        merged = dict(base_flat)
        for path in _ordered_union(base_flat, local_flat, remote_flat):
            a = base_flat.get(path, MISSING)
            lv = local_flat.get(path, MISSING)
            rv = remote_flat.get(path, MISSING)
            local_changed = not _same(a, lv)
            remote_changed = not _same(a, rv)

            if local_changed and remote_changed and not _same(lv, rv):
                return None
            if local_changed:
                value = lv
            elif remote_changed:
                value = rv
            else:
                continue

            if value is MISSING:
                merged.pop(path, None)
            else:
                merged[path] = value

        return unflatten_definition(merged, (ancestor, local, remote))

    @staticmethod
    def _conflict(path: Path, ancestor: Any, local: Any, remote: Any) -> PathConflict:
        if remote is MISSING:
            kind = ADD_DELETE
        elif local is MISSING:
            kind = DELETE_ADD
        else:
            kind = BOTH_MODIFIED

        if kind == BOTH_MODIFIED and isinstance(local, list) and isinstance(remote, list):
            suggestion = "auto_merge_arrays"
        else:
            suggestion = "manual_required"

        def unwrap(value: Any) -> Any:
            return None if value is MISSING else value

        return PathConflict(
            path=path_to_str(path),
            kind=kind,
            ancestor_value=unwrap(ancestor),
            local_value=unwrap(local),
            remote_value=unwrap(remote),
            suggestion=suggestion,
        )


def _ordered_union(*flats: Mapping[Path, Any]) -> list[Path]:
    seen: dict[Path, None] = {}
    for flat in flats:
        for path in flat:
            seen.setdefault(path, None)
    return list(seen)
