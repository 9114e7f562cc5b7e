"""
Tests for ConflictDetector.
"""

import pytest

from ctsync.application.sync.conflict import ConflictDetector
from ctsync.core.domain.enums import ChangeSource, ConflictType


@pytest.fixture
def detector(versions):
    return ConflictDetector(versions)


@pytest.fixture
def diverge(versions, definition_factory):
    """Record a shared base, then one local and one remote edit."""

    def _diverge(local=None, remote=None):
        base = definition_factory()
        versions.record_version(base, ChangeSource.UI)
        versions.record_version(base, ChangeSource.SYNC)
        if local is not None:
            versions.record_version(definition_factory(**local), ChangeSource.UI)
        if remote is not None:
            versions.record_version(definition_factory(**remote), ChangeSource.SYNC)
        return base

    return _diverge


SLUG = {"key": "slug", "name": "Slug", "type": "string"}


# =============================================================================
# No conflict
# =============================================================================


class TestNoConflict:
    """Cases where only one side moved or nothing is known."""

    def test_insufficient_data(self, detector, versions, article):
        """A key with only local versions cannot conflict."""
        versions.record_version(article, ChangeSource.UI)
        result = detector.detect_conflicts("article")
        assert not result.has_conflict
        assert result.reason == "insufficient_data"

    def test_identical(self, detector, diverge):
        """Both heads at the same hash are identical."""
        diverge()
        assert detector.detect_conflicts("article").reason == "identical"

    def test_remote_ahead(self, detector, diverge):
        """Only the remote side changed."""
        diverge(remote={"display_name": "Remote"})
        result = detector.detect_conflicts("article")
        assert not result.has_conflict
        assert result.reason == "remote_ahead"

    def test_local_ahead(self, detector, diverge):
        """Only the local side changed."""
        diverge(local={"display_name": "Local"})
        result = detector.detect_conflicts("article")
        assert not result.has_conflict
        assert result.reason == "local_ahead"


# =============================================================================
# Classification
# =============================================================================


class TestClassification:
    """Cases where both sides moved away from the ancestor."""

    def test_field_conflict(self, detector, diverge):
        """Overlapping edits of one attribute are a field conflict."""
        base = diverge(local={"display_name": "Local"}, remote={"display_name": "Remote"})

        result = detector.detect_conflicts("article")

        assert result.has_conflict
        assert result.type is ConflictType.FIELD
        assert result.details.ancestor_data == base.to_dict()
        [conflicting] = result.conflicting_fields
        assert conflicting.field == "display_name"
        assert conflicting.local_value == "Local"
        assert conflicting.remote_value == "Remote"
        assert conflicting.ancestor_value == "Article"

    def test_disjoint_edits_have_no_conflicting_fields(self, detector, diverge):
        """Edits to different attributes are a field conflict with nothing overlapping."""
        diverge(local={"display_name": "Local"}, remote={"description": "Remote"})
        result = detector.detect_conflicts("article")
        assert result.type is ConflictType.FIELD
        assert result.conflicting_fields == []
        assert result.details.local_changes["modified"] == ["display_name"]
        assert result.details.remote_changes["modified"] == ["description"]

    def test_structural_conflict(self, detector, diverge, article_data):
        """Both sides changing the field structure is structural."""
        retyped = [dict(f) for f in article_data["fields"]]
        retyped[0]["type"] = "text"
        extended = [dict(f) for f in article_data["fields"]] + [SLUG]

        diverge(local={"fields": retyped}, remote={"fields": extended})

        assert detector.detect_conflicts("article").type is ConflictType.STRUCTURAL

    def test_one_side_deleted(self, detector, diverge, versions):
        """A tombstone against an edit is a delete conflict."""
        diverge(remote={"display_name": "Remote"})
        versions.record_deletion("article", ChangeSource.UI)

        result = detector.detect_conflicts("article")

        assert result.type is ConflictType.DELETE
        assert result.details.local_deleted
        assert not result.details.remote_deleted
        assert result.conflicting_fields == []

    def test_field_removed_against_edit(self, detector, diverge, article_data):
        """Removing a field the other side edited is a delete conflict."""
        renamed = [dict(f) for f in article_data["fields"]]
        renamed[1]["name"] = "Content"

        diverge(local={"fields": article_data["fields"][:1]}, remote={"fields": renamed})

        assert detector.detect_conflicts("article").type is ConflictType.DELETE

    def test_detect_all_returns_conflicts_only(self, detector, diverge, versions, definition_factory):
        """detect_all skips keys that are not in conflict."""
        diverge(local={"display_name": "Local"}, remote={"display_name": "Remote"})
        versions.record_version(definition_factory("page"), ChangeSource.UI)

        results = detector.detect_all()

        assert [r.type_key for r in results] == ["article"]
        assert detector.detect_all(["page"]) == []
