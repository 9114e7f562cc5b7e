"""
Sync State Manager - per-key reconciliation state machine.

States are recomputed from the hash triplet (local, remote, last synced)
every time one of them changes. In-flight syncs carry a progress record so
an interrupted run can later be resumed or rolled back.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ctsync.core.domain.entities import SyncProgress, SyncState
from ctsync.core.domain.enums import SyncStatus
from ctsync.core.exceptions import SyncStateError
from ctsync.core.ports.persistence import SyncStateStorePort


SYNC_TOTAL_STEPS = 3


def compute_status(
    local_hash: str | None,
    remote_hash: str | None,
    last_synced_hash: str | None,
) -> SyncStatus:
    """
    Derive the status of a key from its hashes.

    Both sides converging on the same hash is ``in_sync`` even without a
    previous sync; divergence is only a conflict when both sides moved away
    from the last synced hash.
    """
    if local_hash and local_hash == remote_hash:
        return SyncStatus.IN_SYNC
    if not last_synced_hash:
        return SyncStatus.NEW

    local_changed = local_hash != last_synced_hash
    remote_changed = remote_hash is not None and remote_hash != last_synced_hash

    if local_changed and remote_changed:
        return SyncStatus.CONFLICT
    if local_changed or remote_changed:
        return SyncStatus.MODIFIED
    return SyncStatus.IN_SYNC


class SyncStateManager:
    """Reads and transitions SyncState rows."""

    def __init__(self, store: SyncStateStorePort):
        self.store = store
        self.logger = logging.getLogger("SyncStateManager")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_sync_state(self, type_key: str) -> SyncState | None:
        return self.store.get_state(type_key)

    def get_all_sync_states(self) -> list[SyncState]:
        return self.store.list_states()

    def get_sync_states_by_status(self, status: SyncStatus) -> list[SyncState]:
        return self.store.list_states(status)

    def get_pending_sync_types(self) -> list[str]:
        """Keys that still need a push (new or modified)."""
        return [s.type_key for s in self.store.list_states() if s.sync_status.is_pending]

    def get_statistics(self) -> dict[str, int]:
        states = self.store.list_states()
        stats = {status.value: 0 for status in SyncStatus}
        for state in states:
            stats[state.sync_status.value] += 1
        stats["total"] = len(states)
        stats["in_flight"] = sum(1 for s in states if s.in_flight)
        return stats

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def upsert_sync_state(
        self,
        type_key: str,
        local_hash: str | None = None,
        remote_hash: str | None = None,
        last_synced_hash: str | None = None,
    ) -> SyncState:
        """
        Update the hashes of a key and recompute its status.

        Hashes passed as None keep their stored value.
        """
        state = self.store.get_state(type_key) or SyncState(type_key=type_key)
        if local_hash is not None:
            state.local_hash = local_hash
        if remote_hash is not None:
            state.remote_hash = remote_hash
        if last_synced_hash is not None:
            state.last_synced_hash = last_synced_hash

        previous = state.sync_status
        state.sync_status = compute_status(
            state.local_hash, state.remote_hash, state.last_synced_hash
        )
        state.updated_at = datetime.now()
        self.store.save_state(state)

        if previous is not state.sync_status:
            self.logger.debug(f"{type_key}: {previous.value} -> {state.sync_status.value}")
        return state

    def mark_as_synced(self, type_key: str, version_hash: str) -> SyncState:
        """Terminal success: both sides and the sync baseline are ``version_hash``."""
        state = self.store.get_state(type_key) or SyncState(type_key=type_key)
        state.local_hash = version_hash
        state.remote_hash = version_hash
        state.last_synced_hash = version_hash
        state.sync_status = SyncStatus.IN_SYNC
        state.last_sync_at = datetime.now()
        state.updated_at = state.last_sync_at
        state.previous_status = None
        state.progress = None
        self.store.save_state(state)
        self.logger.debug(f"{type_key} marked in sync at {version_hash[:8]}")
        return state

    def mark_as_conflicted(
        self, type_key: str, local_hash: str | None = None, remote_hash: str | None = None
    ) -> SyncState:
        state = self.store.get_state(type_key) or SyncState(type_key=type_key)
        if local_hash is not None:
            state.local_hash = local_hash
        if remote_hash is not None:
            state.remote_hash = remote_hash
        state.sync_status = SyncStatus.CONFLICT
        state.updated_at = datetime.now()
        self.store.save_state(state)
        return state

    def detect_conflicts(self) -> list[SyncState]:
        """Flip every state satisfying the three-way divergence rule to ``conflict``."""
        flipped = []
        for state in self.store.list_states():
            if compute_status(
                state.local_hash, state.remote_hash, state.last_synced_hash
            ) is not SyncStatus.CONFLICT:
                continue
            if state.sync_status is not SyncStatus.CONFLICT:
                state.sync_status = SyncStatus.CONFLICT
                state.updated_at = datetime.now()
                self.store.save_state(state)
            flipped.append(state)
        if flipped:
            self.logger.warning(f"{len(flipped)} content types diverged on both sides")
        return flipped

    def clear_sync_state(self, type_key: str) -> bool:
        return self.store.delete_state(type_key)

    # -------------------------------------------------------------------------
    # In-flight tracking
    # -------------------------------------------------------------------------

    def begin_sync(self, type_key: str, operation: str, target_hash: str | None) -> SyncState:
        """Record that an operation on ``type_key`` is about to be issued."""
        state = self.store.get_state(type_key) or SyncState(type_key=type_key)
        if state.progress is None:
            state.previous_status = state.sync_status
        state.progress = SyncProgress(
            current_step=1,
            total_steps=SYNC_TOTAL_STEPS,
            operation=operation,
            target_hash=target_hash,
        )
        state.updated_at = datetime.now()
        self.store.save_state(state)
        return state

    def set_sync_progress(self, type_key: str, progress: SyncProgress) -> SyncState:
        if not progress.is_valid():
            raise SyncStateError(f"Invalid sync progress for {type_key}: {progress.to_dict()}")
        state = self.store.get_state(type_key) or SyncState(type_key=type_key)
        if state.progress is None:
            state.previous_status = state.sync_status
        state.progress = progress
        state.updated_at = datetime.now()
        self.store.save_state(state)
        return state

    def resume_sync(self, type_key: str) -> SyncProgress | None:
        """
        Saved progress of an interrupted sync.

        Invalid progress is discarded and None returned.
        """
        state = self.store.get_state(type_key)
        if state is None or state.progress is None:
            return None
        if not state.progress.is_valid():
            self.logger.warning(f"Invalid sync progress for {type_key}, resetting")
            self.rollback_partial_sync(type_key)
            return None
        return state.progress

    def get_interrupted_syncs(self) -> list[SyncState]:
        return [s for s in self.store.list_states() if s.in_flight]

    def rollback_partial_sync(self, type_key: str) -> bool:
        """
        Restore the pre-attempt status of an in-flight key.

        Safe to call when nothing is in flight.

        Returns:
            True if an in-flight sync was rolled back
        """
        state = self.store.get_state(type_key)
        if state is None or state.progress is None:
            return False

        if state.previous_status is not None:
            state.sync_status = state.previous_status
        state.previous_status = None
        state.progress = None
        state.updated_at = datetime.now()
        self.store.save_state(state)
        self.logger.info(f"Rolled back partial sync of {type_key}")
        return True
