"""
Resolution strategies for flagged conflicts.

Strategies never raise for an unresolvable conflict; they return a
ResolutionOutcome with ``requires_manual`` set, and callers must not push
anything for such an outcome.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ctsync.core.domain.entities import ConflictDetails
from ctsync.core.domain.enums import ConflictType
from ctsync.core.exceptions import CtsyncError

from .diff import ThreeWayDiff


@dataclass
class Resolution:
    """Data chosen for a resolved conflict."""

    winner: str
    merged: dict[str, Any]
    strategy: str
    description: str
    changes: dict[str, list[str]] = field(default_factory=dict)
    discarded: dict[str, Any] | None = None
    strategy_used: str | None = None
    auto_resolved: bool = False
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class ResolutionOutcome:
    """Result of applying a strategy."""

    success: bool
    resolution: Resolution | None = None
    error: str | None = None
    requires_manual: bool = False
    manual_data: dict[str, Any] | None = None


# =============================================================================
# Strategies
# =============================================================================


class ResolutionStrategy(ABC):
    """Base class for conflict resolution strategies."""

    name: str = ""
    description: str = "Custom resolution strategy"

    @abstractmethod
    def can_auto_resolve(self, conflict: ConflictDetails) -> bool: ...

    @abstractmethod
    def resolve(self, conflict: ConflictDetails) -> ResolutionOutcome: ...

    def _refuse(self, reason: str) -> ResolutionOutcome:
        return ResolutionOutcome(success=False, error=reason, requires_manual=True)


class LocalWinsStrategy(ResolutionStrategy):
    name = "local_wins"
    description = "Always prefer local changes over remote changes"

    def can_auto_resolve(self, conflict: ConflictDetails) -> bool:
        return not conflict.conflict_type.requires_manual

    def resolve(self, conflict: ConflictDetails) -> ResolutionOutcome:
        if not self.can_auto_resolve(conflict):
            return self._refuse(
                f"Cannot resolve a {conflict.conflict_type.value} conflict with {self.name}"
            )
        return ResolutionOutcome(
            success=True,
            resolution=Resolution(
                winner="local",
                merged=dict(conflict.local_data),
                strategy=self.name,
                description="Resolved by keeping all local changes",
                changes=conflict.local_changes,
                discarded={"source": "remote", "changes": conflict.remote_changes},
            ),
        )


class RemoteWinsStrategy(ResolutionStrategy):
    name = "remote_wins"
    description = "Always prefer remote changes over local changes"

    def can_auto_resolve(self, conflict: ConflictDetails) -> bool:
        return not conflict.conflict_type.requires_manual

    def resolve(self, conflict: ConflictDetails) -> ResolutionOutcome:
        if not self.can_auto_resolve(conflict):
            return self._refuse(
                f"Cannot resolve a {conflict.conflict_type.value} conflict with {self.name}"
            )
        return ResolutionOutcome(
            success=True,
            resolution=Resolution(
                winner="remote",
                merged=dict(conflict.remote_data),
                strategy=self.name,
                description="Resolved by keeping all remote changes",
                changes=conflict.remote_changes,
                discarded={"source": "local", "changes": conflict.local_changes},
            ),
        )


class ManualMergeStrategy(ResolutionStrategy):
    name = "manual_merge"
    description = "Require manual intervention to resolve conflicts"

    def can_auto_resolve(self, conflict: ConflictDetails) -> bool:
        return False

    def resolve(self, conflict: ConflictDetails) -> ResolutionOutcome:
        return ResolutionOutcome(
            success=False,
            requires_manual=True,
            manual_data={
                "strategy": self.name,
                "conflict_type": conflict.conflict_type.value,
                "conflicting_fields": [f.to_dict() for f in conflict.conflicting_fields],
                "local_data": conflict.local_data,
                "remote_data": conflict.remote_data,
                "ancestor_data": conflict.ancestor_data,
                "suggested_actions": self._suggested_actions(conflict),
            },
        )

    @staticmethod
    def _suggested_actions(conflict: ConflictDetails) -> list[dict[str, Any]]:
        actions = []
        for f in conflict.conflicting_fields:
            actions.append(
                {
                    "field": f.field,
                    "options": [
                        {"source": "local", "value": f.local_value, "description": "Use local value"},
                        {"source": "remote", "value": f.remote_value, "description": "Use remote value"},
                        {
                            "source": "ancestor",
                            "value": f.ancestor_value,
                            "description": "Revert to original value",
                        },
                        {"source": "custom", "value": None, "description": "Enter custom value"},
                    ],
                }
            )
        if not actions:
            actions.append(
                {
                    "field": None,
                    "options": [
                        {"source": "local", "description": "Keep the local definition"},
                        {"source": "remote", "description": "Keep the remote definition"},
                        {"source": "ancestor", "description": "Revert to the common ancestor"},
                        {"source": "custom", "description": "Provide a custom definition"},
                    ],
                }
            )
        return actions


class AutoMergeStrategy(ResolutionStrategy):
    """Applies both sides' non-overlapping changes onto the ancestor."""

    name = "auto_merge"
    description = "Automatically merge non-conflicting changes"

    def __init__(self, differ: ThreeWayDiff | None = None):
        self.differ = differ or ThreeWayDiff()

    def can_auto_resolve(self, conflict: ConflictDetails) -> bool:
        if conflict.conflict_type is not ConflictType.FIELD or conflict.conflicting_fields:
            return False
        return self._merge(conflict) is not None

    def resolve(self, conflict: ConflictDetails) -> ResolutionOutcome:
        if conflict.conflict_type is not ConflictType.FIELD or conflict.conflicting_fields:
            return self._refuse("Cannot auto-merge due to overlapping changes")
        merged = self._merge(conflict)
        if merged is None:
            return self._refuse("Cannot auto-merge due to overlapping changes")
        return ResolutionOutcome(
            success=True,
            resolution=Resolution(
                winner="merged",
                merged=merged,
                strategy=self.name,
                description="Merged non-overlapping local and remote changes",
                changes={
                    "local": sorted(
                        {p for paths in conflict.local_changes.values() for p in paths}
                    ),
                    "remote": sorted(
                        {p for paths in conflict.remote_changes.values() for p in paths}
                    ),
                },
            ),
        )

    def _merge(self, conflict: ConflictDetails) -> dict[str, Any] | None:
        return self.differ.merge(conflict.ancestor_data, conflict.local_data, conflict.remote_data)


# =============================================================================
# Manager
# =============================================================================


class ResolutionStrategyManager:
    """Registry of strategies plus the policy for picking one."""

    def __init__(self, differ: ThreeWayDiff | None = None):
        self.logger = logging.getLogger("ResolutionStrategyManager")
        self._strategies: dict[str, ResolutionStrategy] = {}
        self.default_strategy = ManualMergeStrategy.name
        for strategy in (
            LocalWinsStrategy(),
            RemoteWinsStrategy(),
            ManualMergeStrategy(),
            AutoMergeStrategy(differ),
        ):
            self.register_strategy(strategy)

    def register_strategy(self, strategy: ResolutionStrategy) -> None:
        self._strategies[strategy.name] = strategy

    def get_strategy(self, name: str) -> ResolutionStrategy | None:
        return self._strategies.get(name)

    def set_default_strategy(self, name: str) -> None:
        if name not in self._strategies:
            raise CtsyncError(f"Strategy {name} not found")
        self.default_strategy = name

    def get_available_strategies(self) -> list[dict[str, str]]:
        return [{"name": name, "description": s.description} for name, s in self._strategies.items()]

    def select_best_strategy(self, conflict: ConflictDetails) -> str:
        """``auto_merge`` when the edits are disjoint, otherwise the default."""
        auto_merge = self._strategies.get(AutoMergeStrategy.name)
        if auto_merge is not None and auto_merge.can_auto_resolve(conflict):
            return AutoMergeStrategy.name
        return self.default_strategy

    def resolve_conflict(
        self, conflict: ConflictDetails, strategy_name: str | None = None
    ) -> ResolutionOutcome:
        name = strategy_name or self.select_best_strategy(conflict)
        strategy = self._strategies.get(name)
        if strategy is None:
            return ResolutionOutcome(
                success=False, error=f"Strategy {name} not found", requires_manual=True
            )

        outcome = strategy.resolve(conflict)
        if outcome.resolution is not None:
            outcome.resolution.strategy_used = name
            outcome.resolution.auto_resolved = strategy.can_auto_resolve(conflict)
        self.logger.debug(
            f"{conflict.type_key}: {name} -> "
            f"{'resolved' if outcome.success else 'manual' if outcome.requires_manual else 'failed'}"
        )
        return outcome
