"""
Sync Orchestrator - Coordinates the synchronization process.

This is the main entry point for sync operations. A run has three strictly
ordered phases:

1. Discovery - extract local definitions, load the copies stored by the
   previous run, fetch remote definitions
2. Analysis - transform and validate, then classify each key as create,
   update, skip or delete (conflicts are auto-merged or flagged)
3. Execution - apply creates, then updates, then deletes, with a bounded
   number of remote calls in flight
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ctsync.core.domain.definitions import ContentTypeDefinition, parse_definition
from ctsync.core.domain.entities import ConflictDetails, ConflictEntry, ConflictResult
from ctsync.core.domain.enums import (
    ChangeKind,
    ChangeSource,
    SyncRecordStatus,
    SyncRunStatus,
    SyncStatus,
    VersionOrigin,
)
from ctsync.core.exceptions import (
    ConflictNotFoundError,
    CtsyncError,
    PreconditionFailedError,
    ProviderError,
    SyncCancelledError,
    ValidationError,
)
from ctsync.core.ports.cms_provider import CmsProviderPort, RemoteContentType
from ctsync.core.ports.config_provider import SyncConfig
from ctsync.core.ports.extractor import ContentTypeExtractorPort
from ctsync.core.ports.persistence import ConflictFilter, DefinitionStorePort

from .cancellation import CancellationToken, KeyedLocks
from .changes import ChangeDetector
from .conflict import ConflictDetector
from .conflict_manager import ConflictManager
from .hashing import ContentTypeHasher
from .history import SyncHistoryManager
from .resolution import AutoMergeStrategy, ResolutionStrategyManager
from .state import SyncStateManager
from .transformer import ContentTypeTransformer, is_managed
from .versioning import VersionHistory


# =============================================================================
# Options and Results
# =============================================================================


@dataclass
class SyncOptions:
    """Per-run options. ``dry_run=None`` uses the configured default."""

    website_id: str | None = None
    dry_run: bool | None = None
    type_keys: list[str] | None = None
    cancellation_token: CancellationToken | None = None
    deployment_id: str | None = None


@dataclass
class FailedOperation:
    """
    Details of a failed operation during sync.

    Provides context about what failed, where, and why for
    better error reporting and debugging.
    """

    operation: str  # e.g., "create", "validate"
    type_key: str
    error: str
    recoverable: bool = True

    def __str__(self) -> str:
        return f"[{self.operation}] {self.type_key}: {self.error}"


@dataclass
class SyncStatistics:
    extracted: int = 0
    transformed: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    errors: int = 0

    def count(self, kind: ChangeKind) -> None:
        if kind is ChangeKind.CREATE:
            self.created += 1
        elif kind is ChangeKind.UPDATE:
            self.updated += 1
        elif kind is ChangeKind.DELETE:
            self.deleted += 1
        else:
            self.skipped += 1

    @property
    def applied(self) -> int:
        return self.created + self.updated + self.deleted

    def to_dict(self) -> dict[str, int]:
        return {
            "extracted": self.extracted,
            "transformed": self.transformed,
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "skipped": self.skipped,
            "errors": self.errors,
        }


@dataclass
class ItemResult:
    """Outcome for one type key."""

    type_key: str
    action: ChangeKind
    success: bool = True
    dry_run: bool = False
    cancelled: bool = False
    sync_id: str | None = None
    version_hash: str | None = None
    message: str = ""
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type_key": self.type_key,
            "action": self.action.value,
            "success": self.success,
            "dry_run": self.dry_run,
            "cancelled": self.cancelled,
            "sync_id": self.sync_id,
            "version_hash": self.version_hash,
            "message": self.message,
            "error": self.error,
        }


@dataclass
class SyncResult:
    """
    Result of a sync run with graceful degradation support.

    Per-item failures are collected here instead of aborting the run.
    """

    success: bool = True
    status: SyncRunStatus = SyncRunStatus.COMPLETED
    dry_run: bool = True
    statistics: SyncStatistics = field(default_factory=SyncStatistics)
    results: list[ItemResult] = field(default_factory=list)
    conflicts: list[ConflictEntry] = field(default_factory=list)
    failed_operations: list[FailedOperation] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    change_report: dict[str, Any] | None = None
    error: str | None = None

    def add_failed_operation(
        self, operation: str, type_key: str, error: str, recoverable: bool = True
    ) -> None:
        self.failed_operations.append(
            FailedOperation(operation=operation, type_key=type_key, error=error, recoverable=recoverable)
        )
        self.statistics.errors += 1

    def add_warning(self, warning: str) -> None:
        """Add a warning message (does not affect success status)."""
        self.warnings.append(warning)

    def finalize(self, cancelled: bool = False) -> None:
        """Derive the terminal run status from what happened."""
        if cancelled:
            self.status = SyncRunStatus.CANCELLED
        elif self.error is not None:
            self.status = SyncRunStatus.FAILED
        elif self.failed_operations:
            handled = self.statistics.applied + self.statistics.skipped
            self.status = SyncRunStatus.PARTIAL if handled else SyncRunStatus.FAILED
        else:
            self.status = SyncRunStatus.COMPLETED
        self.success = self.status is SyncRunStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "dry_run": self.dry_run,
            "statistics": self.statistics.to_dict(),
            "results": [r.to_dict() for r in self.results],
            "conflicts": [
                {"id": c.id, "type_key": c.type_key, "type": c.conflict_type.value,
                 "priority": c.priority.display_name}
                for c in self.conflicts
            ],
            "failed_operations": [str(f) for f in self.failed_operations],
            "warnings": self.warnings,
            "error": self.error,
        }

    def summary(self) -> str:
        """
        Generate a human-readable summary of the sync result.

        Returns:
            Multi-line summary string.
        """
        lines = []
        stats = self.statistics

        if self.dry_run:
            lines.append("DRY RUN - No changes made")

        if self.status is SyncRunStatus.COMPLETED:
            lines.append("✓ Sync completed successfully")
        elif self.status is SyncRunStatus.PARTIAL:
            lines.append(f"⚠ Sync completed with errors ({len(self.failed_operations)} failures)")
        elif self.status is SyncRunStatus.CANCELLED:
            lines.append("⚠ Sync cancelled")
        else:
            lines.append(f"✗ Sync failed: {self.error or f'{len(self.failed_operations)} errors'}")

        lines.append(f"  Extracted: {stats.extracted}")
        lines.append(f"  Transformed: {stats.transformed}")
        lines.append(f"  Created: {stats.created}")
        lines.append(f"  Updated: {stats.updated}")
        lines.append(f"  Deleted: {stats.deleted}")
        lines.append(f"  Skipped: {stats.skipped}")
        lines.append(f"  Errors: {stats.errors}")

        if self.conflicts:
            lines.append(f"  Conflicts flagged for review: {len(self.conflicts)}")

        if self.failed_operations:
            lines.append("")
            lines.append("Failed operations:")
            for failed in self.failed_operations[:10]:
                lines.append(f"  • {failed}")
            if len(self.failed_operations) > 10:
                lines.append(f"  ... and {len(self.failed_operations) - 10} more")

        if self.warnings:
            lines.append("")
            lines.append("Warnings:")
            for warning in self.warnings[:5]:
                lines.append(f"  • {warning}")
            if len(self.warnings) > 5:
                lines.append(f"  ... and {len(self.warnings) - 5} more")

        return "\n".join(lines)


@dataclass
class PlannedOperation:
    """One remote mutation decided during analysis."""

    kind: ChangeKind
    type_key: str
    definition: ContentTypeDefinition | None = None
    target_hash: str | None = None
    remote: RemoteContentType | None = None
    # local definition to store as the baseline once the push succeeds
    local_definition: ContentTypeDefinition | None = None
    merged_from: ConflictDetails | None = None


@dataclass
class ResolutionReport:
    """Outcome of resolving one queued conflict."""

    conflict_id: str
    type_key: str
    success: bool
    strategy: str | None = None
    requires_manual: bool = False
    applied: bool = False
    error: str | None = None


# =============================================================================
# Orchestrator
# =============================================================================


class SyncOrchestrator:
    """
    Orchestrates the synchronization between local definitions and the CMS.

    Remote calls are the only suspension points: provider methods run in
    worker threads under the history manager's timeout and retry policy.
    """

    def __init__(
        self,
        extractor: ContentTypeExtractorPort,
        provider: CmsProviderPort | None,
        versions: VersionHistory,
        state_manager: SyncStateManager,
        history: SyncHistoryManager,
        conflict_manager: ConflictManager,
        config: SyncConfig | None = None,
        definition_store: DefinitionStorePort | None = None,
        conflict_detector: ConflictDetector | None = None,
        strategies: ResolutionStrategyManager | None = None,
        transformer: ContentTypeTransformer | None = None,
        change_detector: ChangeDetector | None = None,
    ):
        self.extractor = extractor
        self.provider = provider
        self.versions = versions
        self.state_manager = state_manager
        self.history = history
        self.conflict_manager = conflict_manager
        self.config = config or SyncConfig()
        self.definition_store = definition_store
        self.hasher: ContentTypeHasher = versions.hasher
        self.conflict_detector = conflict_detector or ConflictDetector(versions)
        self.strategies = strategies or ResolutionStrategyManager()
        self.transformer = transformer or ContentTypeTransformer(self.config.managed_key_prefix)
        self.change_detector = change_detector or ChangeDetector(self.hasher)
        self.logger = logging.getLogger("SyncOrchestrator")

        self._locks = KeyedLocks()

    # -------------------------------------------------------------------------
    # Main Entry Points
    # -------------------------------------------------------------------------

    async def sync(self, options: SyncOptions | None = None) -> SyncResult:
        """
        Run discovery, analysis and execution.

        Per-item failures never abort the run. The run fails as a whole only
        when no local definition is valid or discovery itself fails, and is
        marked cancelled (not failed) when its token is triggered.
        """
        options = options or SyncOptions()
        token = options.cancellation_token or CancellationToken()
        dry_run = self.config.dry_run if options.dry_run is None else options.dry_run

        result = SyncResult(dry_run=dry_run)
        if self.provider is None:
            message = "No remote provider configured, running in dry-run mode"
            self.logger.warning(message)
            result.add_warning(message)
            result.dry_run = dry_run = True

        self.logger.info(f"Starting sync{' (dry-run)' if dry_run else ''}")
        cancelled = False
        try:
            token.raise_if_cancelled()
            local, stored, remote = await self._discover(options)

            keys = {d.key for d in local} | {r.key for r in remote}
            async with self._locks.hold(keys):
                token.raise_if_cancelled()
                plan = self._analyze(local, stored, remote, result, dry_run, options)

                token.raise_if_cancelled()
                await self._execute(plan, result, dry_run, token, options)

                if not dry_run:
                    self._forget_removed_definitions(result)

        except SyncCancelledError as e:
            cancelled = True
            result.error = str(e)
            self.logger.warning(f"Sync cancelled: {e}")
        except ValidationError as e:
            result.error = str(e)
            self.logger.error(f"Sync aborted: {e}")
        except ProviderError as e:
            result.error = f"Remote discovery failed: {e}"
            self.logger.error(result.error)

        result.finalize(cancelled=cancelled)
        self.logger.info(
            f"Sync {result.status.value}: "
            + ", ".join(f"{k}={v}" for k, v in result.statistics.to_dict().items())
        )
        return result

    async def detect_conflicts(self, flag: bool = True) -> list[ConflictResult]:
        """
        Scan every known key for three-way divergence.

        Args:
            flag: Add newly found conflicts to the review queue
        """
        self.state_manager.detect_conflicts()
        results = self.conflict_detector.detect_all()
        if flag:
            for detection in results:
                if detection.details is not None:
                    self._flag(detection.details)
        return results

    def get_conflict_queue(self, conflict_filter: ConflictFilter | None = None) -> list[ConflictEntry]:
        return self.conflict_manager.get_conflict_queue(conflict_filter)

    async def resolve_conflicts(
        self,
        conflicts: list[ConflictEntry | str],
        strategy: str | None = None,
        resolved_by: str = "system",
        apply: bool = False,
    ) -> list[ResolutionReport]:
        """
        Resolve queued conflicts with a strategy (best strategy when None).

        With ``apply`` the resolved definition is pushed to the remote, which
        requires a provider.
        """
        reports = []
        for item in conflicts:
            entry = item if isinstance(item, ConflictEntry) else self.conflict_manager.get_conflict(item)
            if entry is None:
                raise ConflictNotFoundError(str(item))

            outcome = self.strategies.resolve_conflict(entry.details, strategy)
            if not outcome.success or outcome.resolution is None:
                reports.append(
                    ResolutionReport(
                        conflict_id=entry.id,
                        type_key=entry.type_key,
                        success=False,
                        strategy=strategy,
                        requires_manual=outcome.requires_manual,
                        error=outcome.error,
                    )
                )
                continue

            resolution = outcome.resolution
            report = ResolutionReport(
                conflict_id=entry.id,
                type_key=entry.type_key,
                success=True,
                strategy=resolution.strategy_used,
            )
            if apply:
                try:
                    await self.push_resolution(entry, resolution.merged)
                    report.applied = True
                except CtsyncError as e:
                    report.success = False
                    report.error = str(e)
                    reports.append(report)
                    continue

            self.conflict_manager.resolve_conflict(
                entry.id,
                resolution.strategy_used or resolution.strategy,
                resolution.merged,
                resolved_by,
            )
            reports.append(report)
        return reports

    async def push_resolution(self, entry: ConflictEntry, data: dict[str, Any]) -> None:
        """Push resolved data for a conflict and adopt it as the synced baseline."""
        if self.provider is None:
            raise CtsyncError("Cannot apply a resolution without a remote provider")
        async with self._locks.hold([entry.type_key]):
            definition = parse_definition(data)
            remote = await self._remote(
                f"get_content_type {entry.type_key}",
                self.provider.get_content_type,
                entry.type_key,
            )
            operation = PlannedOperation(
                kind=ChangeKind.UPDATE if remote else ChangeKind.CREATE,
                type_key=entry.type_key,
                definition=definition,
                target_hash=self.hasher.hash(definition),
                remote=remote,
                local_definition=parse_definition(entry.details.local_data),
            )
            await self._apply(operation, SyncOptions())

    async def check_interrupted_syncs(self) -> dict[str, list[str]]:
        """
        Recover keys left in flight by an interrupted process.

        A key whose remote already matches the operation's target is marked
        synced (resumed); everything else is rolled back to its pre-attempt
        status. Dangling IN_PROGRESS sync records are finalized.
        """
        resumed: list[str] = []
        rolled_back: list[str] = []

        for state in self.state_manager.get_interrupted_syncs():
            key = state.type_key
            progress = self.state_manager.resume_sync(key)
            if progress is None:
                rolled_back.append(key)
                continue

            if self.provider is not None and progress.target_hash:
                async with self._locks.hold([key]):
                    if await self._complete_if_applied(key, progress.operation, progress.target_hash):
                        resumed.append(key)
                        continue

            self.state_manager.rollback_partial_sync(key)
            rolled_back.append(key)

        for record in self.history.get_unfinished():
            if record.type_key in resumed:
                self.history.update_sync_status(record.id, SyncRecordStatus.SUCCESS)
            else:
                self.history.update_sync_status(
                    record.id, SyncRecordStatus.FAILED, error="Interrupted before completion"
                )

        if resumed or rolled_back:
            self.logger.info(
                f"Recovered interrupted syncs: {len(resumed)} resumed, {len(rolled_back)} rolled back"
            )
        return {"resumed": resumed, "rolled_back": rolled_back}

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    async def _discover(
        self, options: SyncOptions
    ) -> tuple[list[ContentTypeDefinition], list[ContentTypeDefinition], list[RemoteContentType]]:
        local = self.extractor.extract_content_types(options.website_id)
        self.logger.debug(f"Extracted {len(local)} local content types")

        stored = self.definition_store.load_all_definitions() if self.definition_store else []

        remote: list[RemoteContentType] = []
        if self.provider is not None:
            remote = await self._remote("get_content_types", self.provider.get_content_types)
            self.logger.debug(f"Fetched {len(remote)} remote content types")

        return local, stored, remote

    # -------------------------------------------------------------------------
    # Analysis
    # -------------------------------------------------------------------------

    def _analyze(
        self,
        local: list[ContentTypeDefinition],
        stored: list[ContentTypeDefinition],
        remote: list[RemoteContentType],
        result: SyncResult,
        dry_run: bool,
        options: SyncOptions,
    ) -> list[PlannedOperation]:
        stats = result.statistics
        stats.extracted = len(local)

        valid: list[ContentTypeDefinition] = []
        local_keys: set[str] = set()
        selected = 0
        for definition in local:
            transformed = self.transformer.transform(definition)
            if not self._selected(transformed.key, definition.key, options):
                local_keys.add(transformed.key)
                continue

            selected += 1
            validation = self.transformer.validate(transformed)
            for warning in validation.warnings:
                result.add_warning(f"{transformed.key}: {warning}")
            if transformed.key in local_keys:
                validation.valid = False
                validation.errors.append(f"Duplicate content type key: {transformed.key}")
            local_keys.add(transformed.key)

            if not validation.valid:
                message = "; ".join(validation.errors)
                self.logger.warning(f"Skipping invalid content type {transformed.key}: {message}")
                result.add_failed_operation("validate", transformed.key, message)
                continue
            valid.append(transformed)

        stats.transformed = len(valid)
        # an empty extraction aborts too, unless only remote keys were selected
        if not valid and (selected or not options.type_keys):
            raise ValidationError(
                "No valid content types to sync",
                errors=[str(f) for f in result.failed_operations],
            )

        stored = [d for d in stored if self._selected(d.key, d.key, options)]
        changes = self.change_detector.compare(valid, stored)
        result.change_report = self.change_detector.generate_diff_report(changes)
        unchanged_since_last_run = set(changes.unchanged)

        remote_map = {r.key: r for r in remote}
        plan: list[PlannedOperation] = []
        for definition in valid:
            operation = self._classify(
                definition, remote_map.get(definition.key), unchanged_since_last_run, result, dry_run
            )
            if operation is not None:
                plan.append(operation)

        for item in remote:
            if item.key in local_keys or not self._selected(item.key, item.key, options):
                continue
            if is_managed(item.definition, self.config.managed_key_prefix):
                plan.append(
                    PlannedOperation(
                        kind=ChangeKind.DELETE,
                        type_key=item.key,
                        target_hash=self.hasher.tombstone_hash(item.key),
                        remote=item,
                    )
                )

        self.logger.info(
            "Analysis: "
            + ", ".join(
                f"{kind.value}={sum(1 for op in plan if op.kind is kind)}"
                for kind in (ChangeKind.CREATE, ChangeKind.UPDATE, ChangeKind.DELETE)
            )
            + f", skip={stats.skipped}, conflicts={len(result.conflicts)}"
        )
        return plan

    def _classify(
        self,
        definition: ContentTypeDefinition,
        remote: RemoteContentType | None,
        unchanged_since_last_run: set[str],
        result: SyncResult,
        dry_run: bool,
    ) -> PlannedOperation | None:
        key = definition.key
        local_hash = self.hasher.hash(definition)
        prior = self.state_manager.get_sync_state(key)

        self.versions.record_version(definition, ChangeSource.UI, actor="extractor")
        remote_hash = None
        if remote is not None:
            remote_hash = self.versions.record_version(remote.definition, ChangeSource.SYNC).hash
        state = self.state_manager.upsert_sync_state(key, local_hash=local_hash, remote_hash=remote_hash)

        def planned(kind: ChangeKind, target: ContentTypeDefinition = definition) -> PlannedOperation:
            return PlannedOperation(
                kind=kind,
                type_key=key,
                definition=target,
                target_hash=self.hasher.hash(target),
                remote=remote,
                local_definition=definition,
            )

        if remote is None:
            return planned(ChangeKind.CREATE)

        if local_hash == remote_hash:
            if not dry_run and (prior is None or prior.last_synced_hash != local_hash):
                self.state_manager.mark_as_synced(key, local_hash)
            self._skip(key, "in sync", result, dry_run, baseline=definition)
            return None

        if prior is None or not prior.last_synced_hash:
            return planned(ChangeKind.UPDATE)

        local_changed = local_hash != prior.last_synced_hash and key not in unchanged_since_last_run
        remote_changed = remote_hash != prior.last_synced_hash

        if local_changed and not remote_changed:
            return planned(ChangeKind.UPDATE)

        if remote_changed and not local_changed:
            message = f"{key} changed remotely since the last sync; not overwriting"
            self.logger.warning(message)
            result.add_warning(message)
            self._skip(key, "remote changed", result, dry_run)
            return None

        if not local_changed:
            # local edits were already merged into the remote
            if not dry_run and state.sync_status is not SyncStatus.IN_SYNC and remote_hash:
                self.state_manager.mark_as_synced(key, remote_hash)
            self._skip(key, "already merged", result, dry_run, baseline=definition)
            return None

        detection = self.conflict_detector.detect_conflicts(key)
        if not detection.has_conflict or detection.details is None:
            if detection.reason == "remote_ahead":
                self._skip(key, "remote ahead", result, dry_run)
                return None
            return planned(ChangeKind.UPDATE)

        details = detection.details
        if self.config.auto_merge:
            outcome = self.strategies.resolve_conflict(details, AutoMergeStrategy.name)
            if outcome.success and outcome.resolution is not None:
                self.logger.info(f"Auto-merged non-overlapping changes on {key}")
                operation = planned(ChangeKind.UPDATE, parse_definition(outcome.resolution.merged))
                operation.merged_from = details
                return operation

        entry = self._flag(details)
        result.conflicts.append(entry)
        result.add_warning(
            f"{key}: {details.conflict_type.value} conflict flagged for review ({entry.id})"
        )
        return None

    def _skip(
        self,
        key: str,
        reason: str,
        result: SyncResult,
        dry_run: bool,
        baseline: ContentTypeDefinition | None = None,
    ) -> None:
        result.statistics.skipped += 1
        result.results.append(ItemResult(key, ChangeKind.SKIP, dry_run=dry_run, message=reason))
        if baseline is not None and not dry_run and self.definition_store is not None:
            self.definition_store.save_definition(baseline)

    def _flag(self, details: ConflictDetails) -> ConflictEntry:
        entry = self.conflict_manager.find_pending(
            details.type_key, details.local_hash, details.remote_hash
        )
        if entry is None:
            entry = self.conflict_manager.flag_for_review(details.type_key, details)
        self.state_manager.mark_as_conflicted(details.type_key)
        return entry

    @staticmethod
    def _selected(key: str, original_key: str, options: SyncOptions) -> bool:
        if not options.type_keys:
            return True
        return key in options.type_keys or original_key in options.type_keys

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def _execute(
        self,
        plan: list[PlannedOperation],
        result: SyncResult,
        dry_run: bool,
        token: CancellationToken,
        options: SyncOptions,
    ) -> None:
        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))

        for kind in (ChangeKind.CREATE, ChangeKind.UPDATE, ChangeKind.DELETE):
            batch = [op for op in plan if op.kind is kind]
            if not batch:
                continue
            token.raise_if_cancelled()

            outcomes = await asyncio.gather(
                *(self._run(op, semaphore, result, dry_run, token, options) for op in batch)
            )
            result.results.extend(outcomes)

        token.raise_if_cancelled()

    async def _run(
        self,
        operation: PlannedOperation,
        semaphore: asyncio.Semaphore,
        result: SyncResult,
        dry_run: bool,
        token: CancellationToken,
        options: SyncOptions,
    ) -> ItemResult:
        key = operation.type_key
        async with semaphore:
            if token.is_cancelled():
                return ItemResult(key, operation.kind, success=False, dry_run=dry_run, cancelled=True)

            if dry_run:
                self.logger.info(f"[DRY-RUN] Would {operation.kind.value} content type {key}")
                result.statistics.count(operation.kind)
                return ItemResult(
                    key, operation.kind, dry_run=True, version_hash=operation.target_hash
                )

            try:
                item = await self._apply(operation, options)
            except PreconditionFailedError as e:
                self.logger.warning(f"Precondition failed for {key}, checking for a conflict")
                result.add_failed_operation(operation.kind.value, key, str(e))
                await self._surface_precondition_conflict(key, result)
                return ItemResult(key, operation.kind, success=False, error=str(e))
            except Exception as e:
                self.logger.error(f"Failed to {operation.kind.value} {key}: {e}")
                result.add_failed_operation(operation.kind.value, key, str(e))
                return ItemResult(key, operation.kind, success=False, error=str(e))

            result.statistics.count(operation.kind)
            return item

    async def _apply(self, operation: PlannedOperation, options: SyncOptions) -> ItemResult:
        """Push one operation through the retry wrapper and record its outcome."""
        provider = self._require_provider()
        key = operation.type_key
        kind = operation.kind
        payload: Any = (
            operation.definition.to_dict()
            if operation.definition is not None
            else self.hasher.tombstone(key)
        )
        target_hash = operation.target_hash or self.hasher.hash(payload)

        # a payload that cannot be snapshotted leaves a FAILED record and nothing in flight
        sync_id = self.history.record_sync_attempt(
            type_key=key,
            version_hash=target_hash,
            target_platform=provider.name,
            data=payload,
            deployment_id=options.deployment_id,
            metadata={"operation": kind.value, "auto_merged": operation.merged_from is not None},
        )

        call: Callable[..., Any]
        args: tuple[Any, ...]
        if kind is ChangeKind.CREATE:
            call, args = provider.create_content_type, (operation.definition,)
        elif kind is ChangeKind.UPDATE:
            etag = operation.remote.etag if operation.remote else None
            call, args = provider.update_content_type, (key, operation.definition, etag)
        else:
            call, args = provider.delete_content_type, (key,)

        try:
            self.state_manager.begin_sync(key, kind.value, target_hash)
            response = await self._remote(f"{kind.value} {key}", call, *args, sync_id=sync_id)
        except Exception as e:
            self.history.update_sync_status(sync_id, SyncRecordStatus.FAILED, error=e)
            self.state_manager.rollback_partial_sync(key)
            raise

        if kind is ChangeKind.DELETE:
            self.history.update_sync_status(sync_id, SyncRecordStatus.SUCCESS, response={"deleted": bool(response)})
            self.versions.record_deletion(key, ChangeSource.SYNC, note=f"deleted by sync {sync_id}")
            self.state_manager.clear_sync_state(key)
            if self.definition_store is not None:
                self.definition_store.delete_definition(key)
            self.logger.info(f"Deleted content type {key}")
            return ItemResult(key, kind, sync_id=sync_id, version_hash=target_hash)

        remote_definition = response.definition
        self.history.update_sync_status(
            sync_id, SyncRecordStatus.SUCCESS, response=remote_definition.to_dict()
        )
        version = self.versions.record_version(
            remote_definition, ChangeSource.SYNC, note=f"{kind.value} by sync {sync_id}"
        )
        if version.hash != target_hash:
            self.history.link_to_version(sync_id, version.hash)
        self.state_manager.mark_as_synced(key, version.hash)

        if operation.merged_from is not None:
            self._record_auto_merge(operation.merged_from, version.hash, remote_definition)
        if self.definition_store is not None and operation.local_definition is not None:
            self.definition_store.save_definition(operation.local_definition)

        self.logger.info(f"{'Created' if kind is ChangeKind.CREATE else 'Updated'} content type {key}")
        return ItemResult(key, kind, sync_id=sync_id, version_hash=version.hash)

    def _record_auto_merge(
        self, details: ConflictDetails, merged_hash: str, merged: ContentTypeDefinition
    ) -> None:
        entry = self.conflict_manager.flag_for_review(details.type_key, details)
        self.conflict_manager.resolve_conflict(
            entry.id, AutoMergeStrategy.name, merged.to_dict(), resolved_by="system"
        )
        self.logger.debug(f"Recorded auto-merge of {details.type_key} as {merged_hash[:8]}")

    async def _surface_precondition_conflict(self, key: str, result: SyncResult) -> None:
        """The remote changed under us: re-read it and flag the divergence."""
        provider = self._require_provider()
        try:
            fresh = await self._remote(f"get_content_type {key}", provider.get_content_type, key)
        except ProviderError as e:
            self.logger.error(f"Could not re-fetch {key} after precondition failure: {e}")
            result.add_warning(f"{key}: precondition failed and re-fetch failed: {e}")
            return

        if fresh is None:
            result.add_warning(f"{key}: precondition failed and the remote item is gone")
            return

        version = self.versions.record_version(fresh.definition, ChangeSource.SYNC)
        self.state_manager.upsert_sync_state(key, remote_hash=version.hash)
        detection = self.conflict_detector.detect_conflicts(key)
        if detection.has_conflict and detection.details is not None:
            entry = self._flag(detection.details)
            result.conflicts.append(entry)
        else:
            result.add_warning(f"{key}: remote changed concurrently; will be re-evaluated next run")

    async def _complete_if_applied(self, key: str, operation: str, target_hash: str) -> bool:
        provider = self._require_provider()
        try:
            fresh = await self._remote(f"get_content_type {key}", provider.get_content_type, key)
        except ProviderError as e:
            self.logger.warning(f"Cannot verify interrupted sync of {key}: {e}")
            return False

        if operation == ChangeKind.DELETE.value:
            if fresh is not None:
                return False
            self.versions.record_deletion(key, ChangeSource.SYNC, note="recovered delete")
            self.state_manager.clear_sync_state(key)
            return True

        if fresh is None or self.hasher.hash(fresh.definition) != target_hash:
            return False
        self.versions.record_version(
            fresh.definition, ChangeSource.SYNC, note="recovered", origin=VersionOrigin.REMOTE
        )
        self.state_manager.mark_as_synced(key, target_hash)
        return True

    def _require_provider(self) -> CmsProviderPort:
        if self.provider is None:
            raise CtsyncError("No remote provider configured")
        return self.provider

    def _forget_removed_definitions(self, result: SyncResult) -> None:
        if self.definition_store is None or not result.change_report:
            return
        for item in result.change_report.get("details", {}).get("deleted", []):
            self.definition_store.delete_definition(item["key"])

    async def _remote(
        self,
        description: str,
        func: Callable[..., Any],
        *args: Any,
        sync_id: str | None = None,
    ) -> Any:
        return await self.history.execute_with_retry(
            lambda: asyncio.to_thread(func, *args),
            sync_id=sync_id,
            description=description,
        )
