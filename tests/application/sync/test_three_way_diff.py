"""
Tests for the three-way diff.
"""

from ctsync.application.sync.diff import (
    ThreeWayDiff,
    classify_change,
    flatten_definition,
    structure_of,
    unflatten_definition,
)


BASE = {
    "key": "article",
    "display_name": "Article",
    "fields": [
        {"key": "title", "type": "string"},
        {"key": "body", "type": "richtext"},
    ],
}


def with_changes(**changes):
    data = {**BASE, "fields": [dict(f) for f in BASE["fields"]]}
    data.update(changes)
    return data


# =============================================================================
# Flattening
# =============================================================================


class TestFlatten:
    """Tests for path flattening."""

    def test_field_attributes_become_paths(self):
        """Each field attribute is addressed by field key."""
        flat = flatten_definition(BASE)
        assert flat[("display_name",)] == "Article"
        assert flat[("fields", "title", "type")] == "string"
        assert ("fields",) not in flat

    def test_unflatten_restores_order(self):
        """Unflattening with the source as hint rebuilds the document."""
        assert unflatten_definition(flatten_definition(BASE), [BASE]) == BASE

    def test_structure_signature(self):
        """The structure is field key to field type."""
        assert structure_of(BASE) == {"title": "string", "body": "richtext"}
        assert structure_of({"a": 1}) == {"a": "int"}

    def test_classify_change(self):
        """Change classification follows value types."""
        assert classify_change(1, "1") == "type_change"
        assert classify_change([1], [1, 2]) == "array_resize"
        assert classify_change([1], [2]) == "array_content"
        assert classify_change({"a": 1}, {"b": 1}) == "object_structure"
        assert classify_change("a", "b") == "value_change"


# =============================================================================
# Two-way and three-way
# =============================================================================


class TestCalculateChanges:
    """Tests for the two-way diff."""

    def test_added_modified_deleted(self):
        """Paths are sorted into added, modified and deleted."""
        other = with_changes(display_name="Post", description="New")
        other["fields"] = [{"key": "title", "type": "string"}]

        summary = ThreeWayDiff().calculate_changes(BASE, other)

        assert summary.to_dict() == {
            "added": ["description"],
            "modified": ["display_name"],
            "deleted": ["fields.body.key", "fields.body.type"],
        }
        assert summary.has_changes

    def test_no_changes(self):
        """Identical documents have no changes."""
        summary = ThreeWayDiff().calculate_changes(BASE, with_changes())
        assert not summary.has_changes
        assert summary.summary()["unchanged"] == 6


class TestAnalyze:
    """Tests for conflict analysis."""

    def test_disjoint_changes_are_mergeable(self):
        """Edits to different paths do not conflict."""
        result = ThreeWayDiff().analyze(
            BASE, with_changes(display_name="Post"), with_changes(description="Remote")
        )
        assert not result.has_conflicts
        assert sorted(result.mergeable) == ["description", "display_name"]

    def test_same_path_different_values_conflict(self):
        """Both sides changing one path to different values is a conflict."""
        result = ThreeWayDiff().analyze(
            BASE, with_changes(display_name="Local"), with_changes(display_name="Remote")
        )
        assert len(result.conflicts) == 1
        conflict = result.conflicts[0]
        assert conflict.path == "display_name"
        assert conflict.kind == "both_modified"
        assert (conflict.local_value, conflict.remote_value) == ("Local", "Remote")
        assert conflict.suggestion == "manual_required"
        assert result.divergence > 0

    def test_same_change_on_both_sides_is_not_conflict(self):
        """Convergent edits merge."""
        result = ThreeWayDiff().analyze(
            BASE, with_changes(display_name="Same"), with_changes(display_name="Same")
        )
        assert not result.has_conflicts

    def test_delete_versus_modify(self):
        """A path deleted on one side and modified on the other is add/delete."""
        local = with_changes()
        del local["display_name"]
        result = ThreeWayDiff().analyze(BASE, local, with_changes(display_name="Remote"))
        assert result.conflicts[0].kind == "delete_add"

    def test_list_values_suggest_array_merge(self):
        """Conflicting list values get the array merge suggestion."""
        result = ThreeWayDiff().analyze(
            with_changes(tags=["a"]), with_changes(tags=["a", "b"]), with_changes(tags=["c"])
        )
        assert result.conflicts[0].suggestion == "auto_merge_arrays"


class TestMerge:
    """Tests for the three-way merge."""

    def test_merge_applies_both_sides(self):
        """Non-overlapping changes are combined onto the ancestor."""
        local = with_changes(display_name="Post")
        remote = with_changes()
        remote["fields"].append({"key": "slug", "type": "string"})

        merged = ThreeWayDiff().merge(BASE, local, remote)

        assert merged["display_name"] == "Post"
        assert [f["key"] for f in merged["fields"]] == ["title", "body", "slug"]

    def test_merge_applies_deletions(self):
        """A field removed on one side is removed from the merge."""
        local = with_changes()
        local["fields"] = [{"key": "title", "type": "string"}]

        merged = ThreeWayDiff().merge(BASE, local, with_changes(description="x"))

        assert [f["key"] for f in merged["fields"]] == ["title"]
        assert merged["description"] == "x"

    def test_merge_refuses_conflicts(self):
        """Conflicting changes produce no merge."""
        assert (
            ThreeWayDiff().merge(
                BASE, with_changes(display_name="A"), with_changes(display_name="B")
            )
            is None
        )
