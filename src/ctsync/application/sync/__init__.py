"""
Sync Module - Versioning, conflict detection and orchestration of content-type sync.
"""

from .analytics import FailurePattern, HealthReport, SyncAnalytics, SyncMetrics, TimeRange
from .cancellation import CancellationToken, KeyedLocks
from .changes import ChangeDetector, ChangeSet, DefinitionChange, FieldChanges
from .conflict import ConflictDetector
from .conflict_manager import ConflictManager, calculate_priority, generate_conflict_id
from .diff import ChangeSummary, PathConflict, ThreeWayDiff, ThreeWayDiffResult
from .hashing import ContentTypeHasher, canonical_json
from .history import SyncHistoryManager
from .orchestrator import (
    FailedOperation,
    ItemResult,
    ResolutionReport,
    SyncOptions,
    SyncOrchestrator,
    SyncResult,
    SyncStatistics,
)
from .resolution import (
    AutoMergeStrategy,
    LocalWinsStrategy,
    ManualMergeStrategy,
    RemoteWinsStrategy,
    Resolution,
    ResolutionOutcome,
    ResolutionStrategy,
    ResolutionStrategyManager,
)
from .snapshot import SnapshotData, SnapshotDiff, SyncSnapshot
from .state import SyncStateManager, compute_status
from .transformer import ContentTypeTransformer, ValidationResult, is_managed
from .versioning import VersionHistory


__all__ = [
    "AutoMergeStrategy",
    "CancellationToken",
    "ChangeDetector",
    "ChangeSet",
    "ChangeSummary",
    "ConflictDetector",
    "ConflictManager",
    "ContentTypeHasher",
    "ContentTypeTransformer",
    "DefinitionChange",
    "FailedOperation",
    "FailurePattern",
    "FieldChanges",
    "HealthReport",
    "ItemResult",
    "KeyedLocks",
    "LocalWinsStrategy",
    "ManualMergeStrategy",
    "PathConflict",
    "RemoteWinsStrategy",
    "Resolution",
    "ResolutionOutcome",
    "ResolutionReport",
    "ResolutionStrategy",
    "ResolutionStrategyManager",
    "SnapshotData",
    "SnapshotDiff",
    "SyncAnalytics",
    "SyncHistoryManager",
    "SyncMetrics",
    "SyncOptions",
    "SyncOrchestrator",
    "SyncResult",
    "SyncSnapshot",
    "SyncStateManager",
    "SyncStatistics",
    "ThreeWayDiff",
    "ThreeWayDiffResult",
    "TimeRange",
    "ValidationResult",
    "VersionHistory",
    "calculate_priority",
    "canonical_json",
    "compute_status",
    "generate_conflict_id",
    "is_managed",
]
