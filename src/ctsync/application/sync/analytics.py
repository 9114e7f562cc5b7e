"""
Sync Analytics - success rates, timings and failure patterns computed from
the persisted sync records.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from ctsync.core.domain.entities import SyncRecord
from ctsync.core.domain.enums import SyncRecordStatus
from ctsync.core.ports.persistence import SyncHistoryQuery, SyncRecordStorePort


FAILURE_SAMPLE_SIZE = 100
RECENT_WINDOW = timedelta(hours=24)

# first match wins; checked against the lowercased error message
ERROR_TYPES: list[tuple[tuple[str, ...], str]] = [
    (("timeout", "timed out"), "Timeout Error"),
    (("401", "unauthorized", "authentication"), "Authentication Error"),
    (("403", "forbidden", "permission"), "Authorization Error"),
    (("404", "not found"), "Not Found Error"),
    (("412", "precondition", "etag mismatch"), "Precondition Failed"),
    (("409", "conflict"), "Conflict Error"),
    (("429", "rate limit"), "Rate Limit Error"),
    (("500", "internal server", "server error"), "Server Error"),
    (("503", "service unavailable"), "Service Unavailable"),
    (("network", "connection"), "Network Error"),
    (("snapshot",), "Snapshot Error"),
    (("validation", "invalid"), "Validation Error"),
]


def classify_error(message: str) -> str:
    """Map an error message to a coarse error type."""
    lowered = message.lower()
    for needles, error_type in ERROR_TYPES:
        if any(needle in lowered for needle in needles):
            return error_type
    return message[:50]


def sync_type_of(record: SyncRecord) -> str:
    """The operation a record performed (create, update, delete) or its direction."""
    operation = (record.metadata or {}).get("operation")
    return str(operation) if operation else record.direction.value.lower()


@dataclass
class TimeRange:
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass
class FailurePattern:
    """Failures sharing an error type."""

    error_type: str
    count: int = 0
    platforms: list[str] = field(default_factory=list)
    sync_types: list[str] = field(default_factory=list)
    type_keys: list[str] = field(default_factory=list)
    last_occurrence: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.error_type,
            "count": self.count,
            "platforms": self.platforms,
            "sync_types": self.sync_types,
            "type_keys": self.type_keys,
            "last_occurrence": self.last_occurrence.isoformat() if self.last_occurrence else None,
        }


@dataclass
class SyncMetrics:
    """Attempt counts and durations for one sync type on one platform."""

    sync_type: str
    platform: str
    total_attempts: int = 0
    success_count: int = 0
    failure_count: int = 0
    average_duration: float = 0.0
    max_duration: float = 0.0
    min_duration: float = 0.0
    average_retries: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "sync_type": self.sync_type,
            "platform": self.platform,
            "total_attempts": self.total_attempts,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "average_duration": round(self.average_duration, 3),
            "max_duration": round(self.max_duration, 3),
            "min_duration": round(self.min_duration, 3),
            "average_retries": round(self.average_retries, 2),
        }


@dataclass
class HealthReport:
    """Health summary of syncs against one platform."""

    platform: str
    success_rate: float = 0.0
    average_duration: float = 0.0
    total_syncs: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    partial_syncs: int = 0
    in_progress_syncs: int = 0
    recent_failures: int = 0
    common_errors: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    last_successful_sync: datetime | None = None
    last_failed_sync: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform": self.platform,
            "success_rate": round(self.success_rate, 2),
            "average_duration": round(self.average_duration, 3),
            "total_syncs": self.total_syncs,
            "successful_syncs": self.successful_syncs,
            "failed_syncs": self.failed_syncs,
            "partial_syncs": self.partial_syncs,
            "in_progress_syncs": self.in_progress_syncs,
            "recent_failures": self.recent_failures,
            "common_errors": self.common_errors,
            "recommendations": self.recommendations,
            "last_successful_sync": (
                self.last_successful_sync.isoformat() if self.last_successful_sync else None
            ),
            "last_failed_sync": self.last_failed_sync.isoformat() if self.last_failed_sync else None,
        }


class SyncAnalytics:
    """
    Read-only reporting over sync records.

    Rates are percentages (0-100) and durations are seconds. A platform with
    no finished syncs has a success rate of 0.
    """

    def __init__(self, store: SyncRecordStorePort, clock: Callable[[], datetime] | None = None):
        self.store = store
        self._now = clock or datetime.now

    def _records(self, platform: str | None = None, **filters: Any) -> list[SyncRecord]:
        return self.store.query_records(SyncHistoryQuery(target_platform=platform, **filters))

    def calculate_success_rate(self, platform: str, time_range: TimeRange | None = None) -> float:
        """Share of finished syncs that succeeded, optionally within a time range."""
        finished = [
            r for r in self._records(platform)
            if r.status.is_terminal and (time_range is None or time_range.contains(r.started_at))
        ]
        if not finished:
            return 0.0
        successful = sum(1 for r in finished if r.status is SyncRecordStatus.SUCCESS)
        return successful / len(finished) * 100

    def get_average_sync_time(self, platform: str) -> float:
        durations = [
            r.duration_seconds
            for r in self._records(platform, status=SyncRecordStatus.SUCCESS)
            if r.duration_seconds is not None
        ]
        if not durations:
            return 0.0
        return sum(durations) / len(durations)

    def detect_failure_patterns(self, platform: str | None = None) -> list[FailurePattern]:
        """
        Group the most recent failures by error type, most frequent first.

        Only the last 100 failures are considered.
        """
        failures = self._records(
            platform, status=SyncRecordStatus.FAILED, limit=FAILURE_SAMPLE_SIZE
        )
        patterns: dict[str, FailurePattern] = {}
        for record in failures:
            if not record.error_message:
                continue
            error_type = classify_error(record.error_message)
            pattern = patterns.setdefault(error_type, FailurePattern(error_type))
            pattern.count += 1
            for values, value in (
                (pattern.platforms, record.target_platform),
                (pattern.sync_types, sync_type_of(record)),
                (pattern.type_keys, record.type_key),
            ):
                if value not in values:
                    values.append(value)
            if pattern.last_occurrence is None or record.started_at > pattern.last_occurrence:
                pattern.last_occurrence = record.started_at

        return sorted(patterns.values(), key=lambda p: p.count, reverse=True)

    def get_sync_metrics(
        self, sync_type: str | None = None, platform: str | None = None
    ) -> list[SyncMetrics]:
        """Per (sync type, platform) attempt counts, durations and retries."""
        grouped: dict[tuple[str, str], list[SyncRecord]] = {}
        for record in self._records(platform):
            record_type = sync_type_of(record)
            if sync_type is not None and record_type != sync_type:
                continue
            grouped.setdefault((record_type, record.target_platform), []).append(record)

        metrics = []
        for (record_type, record_platform), records in sorted(grouped.items()):
            durations = [r.duration_seconds for r in records if r.duration_seconds is not None]
            metrics.append(
                SyncMetrics(
                    sync_type=record_type,
                    platform=record_platform,
                    total_attempts=len(records),
                    success_count=sum(1 for r in records if r.status is SyncRecordStatus.SUCCESS),
                    failure_count=sum(1 for r in records if r.status is SyncRecordStatus.FAILED),
                    average_duration=sum(durations) / len(durations) if durations else 0.0,
                    max_duration=max(durations, default=0.0),
                    min_duration=min(durations, default=0.0),
                    average_retries=sum(r.retry_count for r in records) / len(records),
                )
            )
        return metrics

    def generate_health_report(self, platform: str) -> HealthReport:
        records = self._records(platform)
        by_status = {status: [r for r in records if r.status is status] for status in SyncRecordStatus}
        succeeded = by_status[SyncRecordStatus.SUCCESS]
        failed = by_status[SyncRecordStatus.FAILED]

        since = self._now() - RECENT_WINDOW
        recent_failures = sum(1 for r in failed if r.started_at >= since)
        success_rate = len(succeeded) / len(records) * 100 if records else 0.0

        patterns = self.detect_failure_patterns(platform)
        return HealthReport(
            platform=platform,
            success_rate=success_rate,
            average_duration=self.get_average_sync_time(platform),
            total_syncs=len(records),
            successful_syncs=len(succeeded),
            failed_syncs=len(failed),
            partial_syncs=len(by_status[SyncRecordStatus.PARTIAL]),
            in_progress_syncs=len(by_status[SyncRecordStatus.IN_PROGRESS]),
            recent_failures=recent_failures,
            common_errors=[p.error_type for p in patterns[:5]],
            recommendations=self._recommendations(
                success_rate, recent_failures, patterns, has_records=bool(records)
            ),
            last_successful_sync=max(
                (r.completed_at or r.started_at for r in succeeded), default=None
            ),
            last_failed_sync=max((r.started_at for r in failed), default=None),
        )

    @staticmethod
    def _recommendations(
        success_rate: float,
        recent_failures: int,
        patterns: list[FailurePattern],
        has_records: bool,
    ) -> list[str]:
        recommendations = []
        if has_records and success_rate < 50:
            recommendations.append(
                "Critical: success rate below 50%. Review the sync configuration and error logs."
            )
        elif has_records and success_rate < 80:
            recommendations.append(
                "Warning: success rate below 80%. Consider raising retry attempts."
            )

        if recent_failures > 10:
            recommendations.append(
                "High failure count in the last 24 hours. Check the CMS for availability issues."
            )

        counts = {p.error_type: p.count for p in patterns}
        if counts.get("Authentication Error", 0) + counts.get("Authorization Error", 0) > 5:
            recommendations.append("Repeated authentication failures. Verify the API token.")
        if counts.get("Timeout Error", 0) > 5:
            recommendations.append(
                "Frequent timeouts. Consider raising call_timeout or reducing payload size."
            )
        if counts.get("Rate Limit Error", 0) > 3:
            recommendations.append("Rate limiting detected. Lower max_concurrency.")

        if not recommendations:
            recommendations.append("Sync operating normally.")
        return recommendations
