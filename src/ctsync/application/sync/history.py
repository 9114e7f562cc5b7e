"""
Sync History Manager - audit trail of sync attempts plus the retry wrapper
that every remote call goes through.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import datetime
from typing import Any, TypeVar

from ctsync.core.domain.entities import SyncRecord
from ctsync.core.domain.enums import SyncDirection, SyncRecordStatus
from ctsync.core.exceptions import CtsyncError, RateLimitError, SyncStateError, is_retryable
from ctsync.core.exceptions import TimeoutError as CallTimeoutError
from ctsync.core.ports.config_provider import RetryConfig
from ctsync.core.ports.persistence import SyncHistoryQuery, SyncRecordStorePort

from .hashing import canonical_json
from .snapshot import SyncSnapshot


T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]


class SyncHistoryManager:
    """
    Records sync attempts and runs remote operations with bounded retry.

    A record starts IN_PROGRESS and leaves it exactly once, through
    ``update_sync_status``.
    """

    def __init__(
        self,
        store: SyncRecordStorePort,
        retry: RetryConfig | None = None,
        snapshot: SyncSnapshot | None = None,
        sleep: Sleeper | None = None,
    ):
        self.store = store
        self.retry = retry or RetryConfig()
        self.snapshot = snapshot or SyncSnapshot()
        self._sleep = sleep or asyncio.sleep
        self.logger = logging.getLogger("SyncHistoryManager")

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    def record_sync_attempt(
        self,
        type_key: str,
        version_hash: str,
        target_platform: str,
        data: Any,
        direction: SyncDirection = SyncDirection.PUSH,
        deployment_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """
        Create an IN_PROGRESS record holding a snapshot of the pushed data.

        If the payload cannot be captured the attempt is still recorded, as
        FAILED, before the error propagates.
        """
        record = SyncRecord(
            id=uuid.uuid4().hex,
            type_key=type_key,
            version_hash=version_hash,
            target_platform=target_platform,
            direction=direction,
            metadata=metadata,
            deployment_id=deployment_id,
        )
        try:
            record.pushed_data = self.snapshot.capture_snapshot(data)
        except (CtsyncError, TypeError, ValueError) as e:
            self.logger.error(f"Cannot snapshot payload for {type_key}: {e}")
            self.store.save_record(
                replace(
                    record,
                    status=SyncRecordStatus.FAILED,
                    completed_at=datetime.now(),
                    error_message=str(e),
                )
            )
            raise
        self.store.save_record(record)
        return record.id

    def update_sync_status(
        self,
        sync_id: str,
        status: SyncRecordStatus,
        response: Any = None,
        error: BaseException | str | None = None,
    ) -> SyncRecord:
        """
        Move a record to a terminal status and stamp ``completed_at``.

        Raises:
            SyncStateError: If the record is unknown, already terminal, or
                ``status`` is not terminal
        """
        if not status.is_terminal:
            raise SyncStateError(f"Cannot move sync {sync_id} back to {status.value}")
        record = self._require(sync_id)
        if record.status.is_terminal:
            raise SyncStateError(
                f"Sync {sync_id} already finished as {record.status.value}"
            )

        updated = replace(
            record,
            status=status,
            completed_at=datetime.now(),
            response_data=canonical_json(response) if response is not None else None,
            error_message=str(error) if error is not None else None,
        )
        self.store.save_record(updated)
        return updated

    def link_to_version(self, sync_id: str, version_hash: str) -> None:
        record = self._require(sync_id)
        self.store.save_record(replace(record, version_hash=version_hash))

    def get_sync_by_id(self, sync_id: str) -> SyncRecord | None:
        return self.store.get_record(sync_id)

    def get_sync_history(self, query: SyncHistoryQuery | None = None) -> list[SyncRecord]:
        """Newest first."""
        return self.store.query_records(query or SyncHistoryQuery())

    def get_last_successful_sync(self, type_key: str, target_platform: str) -> SyncRecord | None:
        records = self.store.query_records(
            SyncHistoryQuery(
                type_key=type_key,
                target_platform=target_platform,
                status=SyncRecordStatus.SUCCESS,
            )
        )
        if not records:
            return None
        return max(records, key=lambda r: r.completed_at or r.started_at)

    def get_pushed_data(self, sync_id: str) -> Any:
        """Restore the snapshot of what a sync pushed (checksum verified)."""
        return self.snapshot.restore_snapshot(self._require(sync_id).pushed_data)

    def get_unfinished(self) -> list[SyncRecord]:
        return self.store.query_records(SyncHistoryQuery(status=SyncRecordStatus.IN_PROGRESS))

    def _require(self, sync_id: str) -> SyncRecord:
        record = self.store.get_record(sync_id)
        if record is None:
            raise SyncStateError(f"Unknown sync record: {sync_id}")
        return record

    def _set_retry_count(self, sync_id: str | None, attempts: int) -> None:
        if sync_id is None:
            return
        record = self.store.get_record(sync_id)
        if record is not None:
            self.store.save_record(replace(record, retry_count=attempts))

    # -------------------------------------------------------------------------
    # Retry
    # -------------------------------------------------------------------------

    def calculate_delay(self, attempt: int, error: BaseException | None = None) -> float:
        """
        Backoff after failed ``attempt`` (1-based).

        A rate limit's ``retry_after`` raises the delay but never past
        ``max_delay``.
        """
        delay = self.retry.delay_for(attempt)
        if isinstance(error, RateLimitError) and error.retry_after:
            delay = min(max(delay, error.retry_after), self.retry.max_delay)
        return delay

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        sync_id: str | None = None,
        description: str = "operation",
    ) -> T:
        """
        Run ``operation`` with timeout and exponential backoff.

        Invokes the operation at most ``max_attempts`` times. Non-retryable
        errors are raised immediately; the last error is raised once attempts
        run out.
        """
        max_attempts = max(1, self.retry.max_attempts)
        timeout = self.retry.call_timeout

        for attempt in range(1, max_attempts + 1):
            try:
                return await asyncio.wait_for(operation(), timeout=timeout)
            except asyncio.TimeoutError as e:
                error: Exception = CallTimeoutError(
                    f"{description} timed out after {timeout}s",
                    timeout_seconds=timeout,
                    operation=description,
                    cause=e,
                )
            except Exception as e:
                error = e

            self._set_retry_count(sync_id, attempt)

            if not is_retryable(error):
                self.logger.debug(f"{description} failed with non-retryable error: {error}")
                raise error
            if attempt >= max_attempts:
                self.logger.error(f"{description} failed after {attempt} attempts: {error}")
                raise error

            delay = self.calculate_delay(attempt, error)
            self.logger.warning(
                f"{description} failed (attempt {attempt}/{max_attempts}), "
                f"retrying in {delay:.2f}s: {error}"
            )
            await self._sleep(delay)

        raise SyncStateError(f"{description} was never attempted")
