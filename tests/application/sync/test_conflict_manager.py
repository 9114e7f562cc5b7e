"""
Tests for the conflict review queue.
"""

import re
from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from ctsync.application.sync import ConflictManager
from ctsync.application.sync.conflict_manager import calculate_priority, generate_conflict_id
from ctsync.core.domain.entities import ConflictDetails, ConflictingField
from ctsync.core.domain.enums import ConflictPriority, ConflictStatus, ConflictType
from ctsync.core.exceptions import ConflictNotFoundError, ConflictStateError
from ctsync.core.ports.persistence import ConflictFilter


def make_details(type_key="article", conflict_type=ConflictType.FIELD, fields=1, local="l1"):
    return ConflictDetails(
        type_key=type_key,
        conflict_type=conflict_type,
        local_hash=local,
        remote_hash="r1",
        ancestor_hash="a1",
        local_data={"key": type_key},
        remote_data={"key": type_key},
        ancestor_data={"key": type_key},
        conflicting_fields=[
            ConflictingField(field=f"f{i}", local_value=1, remote_value=2, ancestor_value=0)
            for i in range(fields)
        ],
    )


# =============================================================================
# Priority
# =============================================================================


class TestPriority:
    """Tests for priority calculation."""

    @pytest.mark.parametrize(
        ("conflict_type", "fields", "expected"),
        [
            (ConflictType.STRUCTURAL, 0, ConflictPriority.CRITICAL),
            (ConflictType.DELETE, 0, ConflictPriority.HIGH),
            (ConflictType.FIELD, 4, ConflictPriority.MEDIUM),
            (ConflictType.FIELD, 3, ConflictPriority.LOW),
            (ConflictType.FIELD, 1, ConflictPriority.LOW),
        ],
    )
    def test_calculate_priority(self, conflict_type, fields, expected):
        """Structural beats delete beats many fields beats a few."""
        assert calculate_priority(make_details(conflict_type=conflict_type, fields=fields)) is expected

    def test_conflict_id_format(self):
        """Ids carry a millisecond timestamp and a random suffix."""
        assert re.fullmatch(r"conflict_\d+_[0-9a-f]{8}", generate_conflict_id())
        assert generate_conflict_id() != generate_conflict_id()


# =============================================================================
# Queue
# =============================================================================


class TestQueue:
    """Tests for flagging and listing."""

    def test_flag_for_review(self, conflict_manager):
        """Flagged entries are pending and carry the details' hashes."""
        entry = conflict_manager.flag_for_review("article", make_details())
        assert entry.status is ConflictStatus.PENDING_REVIEW
        assert (entry.local_hash, entry.remote_hash, entry.ancestor_hash) == ("l1", "r1", "a1")
        assert conflict_manager.get_conflict(entry.id) == entry

    def test_queue_sorted_by_priority(self, conflict_manager):
        """Higher priority first, then oldest first."""
        low = conflict_manager.flag_for_review("a", make_details("a"))
        critical = conflict_manager.flag_for_review(
            "b", make_details("b", ConflictType.STRUCTURAL)
        )
        low_later = conflict_manager.flag_for_review("c", make_details("c"))

        queue = conflict_manager.get_conflict_queue()

        assert queue[0].id == critical.id
        assert {e.id for e in queue[1:]} == {low.id, low_later.id}
        assert queue[1].flagged_at <= queue[2].flagged_at

    def test_queue_filters(self, conflict_manager):
        """Filters narrow by key and type; resolved entries are hidden by default."""
        first = conflict_manager.flag_for_review("a", make_details("a"))
        conflict_manager.flag_for_review("b", make_details("b", ConflictType.DELETE))
        conflict_manager.resolve_conflict(first.id, "local_wins", None, "tester")

        assert [e.type_key for e in conflict_manager.get_conflict_queue()] == ["b"]
        assert (
            conflict_manager.get_conflict_queue(ConflictFilter(status=None, type_key="a"))[0].id
            == first.id
        )
        assert conflict_manager.get_conflict_queue(
            ConflictFilter(conflict_type=ConflictType.FIELD)
        ) == []

    def test_find_pending(self, conflict_manager):
        """Open entries are found by exact hash pair."""
        entry = conflict_manager.flag_for_review("article", make_details())
        assert conflict_manager.find_pending("article", "l1", "r1").id == entry.id
        assert conflict_manager.find_pending("article", "l2", "r1") is None


# =============================================================================
# Resolution
# =============================================================================


class TestResolve:
    """Tests for retiring entries."""

    def test_resolve_conflict(self, conflict_manager):
        """Resolving stamps the entry and appends to the audit list."""
        entry = conflict_manager.flag_for_review("article", make_details())

        resolved = conflict_manager.resolve_conflict(
            entry.id, "remote_wins", {"key": "article"}, "alice"
        )

        assert resolved.is_resolved
        assert resolved.resolved_by == "alice"
        assert resolved.resolved_data == {"key": "article"}
        [record] = conflict_manager.get_resolution_history()
        assert (record.conflict_id, record.resolution) == (entry.id, "remote_wins")

    def test_resolve_unknown(self, conflict_manager):
        """Unknown ids raise ConflictNotFoundError."""
        with pytest.raises(ConflictNotFoundError):
            conflict_manager.resolve_conflict("conflict_0_deadbeef", "local_wins", None, "x")

    def test_resolved_entries_are_immutable(self, conflict_manager):
        """A resolved entry cannot be resolved again."""
        entry = conflict_manager.flag_for_review("article", make_details())
        conflict_manager.resolve_conflict(entry.id, "local_wins", None, "x")
        with pytest.raises(ConflictStateError):
            conflict_manager.resolve_conflict(entry.id, "remote_wins", None, "x")

    def test_resolution_history_capped(self, store):
        """The audit list keeps only the newest entries."""
        manager = ConflictManager(store, history_limit=2)
        for key in ("a", "b", "c"):
            entry = manager.flag_for_review(key, make_details(key))
            manager.resolve_conflict(entry.id, "local_wins", None, "x")

        assert [r.type_key for r in manager.get_resolution_history()] == ["c", "b"]

    def test_history_filters(self, conflict_manager):
        """History can be filtered by key and resolver."""
        for key, who in (("a", "alice"), ("b", "bob")):
            entry = conflict_manager.flag_for_review(key, make_details(key))
            conflict_manager.resolve_conflict(entry.id, "local_wins", None, who)

        assert [r.type_key for r in conflict_manager.get_resolution_history(resolved_by="bob")] == [
            "b"
        ]
        assert len(conflict_manager.get_resolution_history(type_key="a")) == 1
        assert len(conflict_manager.get_resolution_history(limit=1)) == 1


class TestMaintenance:
    """Tests for clearing and statistics."""

    def test_clear_resolved_conflicts(self, conflict_manager, store):
        """Only resolved entries past the cutoff are removed."""
        old = conflict_manager.flag_for_review("a", make_details("a"))
        resolved = conflict_manager.resolve_conflict(old.id, "local_wins", None, "x")
        store.save_conflict(replace(resolved, resolved_at=datetime.now() - timedelta(days=30)))
        conflict_manager = ConflictManager(store)
        fresh = conflict_manager.flag_for_review("b", make_details("b"))
        conflict_manager.resolve_conflict(fresh.id, "local_wins", None, "x")
        conflict_manager.flag_for_review("c", make_details("c"))

        assert conflict_manager.clear_resolved_conflicts(older_than_days=7) == 1
        assert conflict_manager.get_conflict(old.id) is None
        assert conflict_manager.get_conflict(fresh.id) is not None
        assert conflict_manager.clear_resolved_conflicts(older_than_days=7) == 0

    def test_statistics(self, conflict_manager):
        """Counts by status, type and priority plus the resolution rate."""
        first = conflict_manager.flag_for_review("a", make_details("a"))
        conflict_manager.flag_for_review("b", make_details("b", ConflictType.STRUCTURAL))
        conflict_manager.resolve_conflict(first.id, "local_wins", None, "x")

        stats = conflict_manager.get_statistics()

        assert stats["total"] == 2
        assert stats["by_status"] == {"resolved": 1, "pending_review": 1}
        assert stats["by_type"] == {"field": 1, "structural": 1}
        assert stats["by_priority"] == {"low": 1, "critical": 1}
        assert stats["resolution_rate"] == 0.5

    def test_empty_statistics(self, conflict_manager):
        """An empty queue has a zero resolution rate."""
        assert conflict_manager.get_statistics()["resolution_rate"] == 0.0
