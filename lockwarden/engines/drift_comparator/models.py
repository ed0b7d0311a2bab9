"""Data models for epoch drift comparison."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from lockwarden.engines.graph_builder.canonical import node_to_dict
from lockwarden.engines.graph_builder.models import PackageNode


class DriftKind(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    VERSION_CHANGED = "version_changed"
    SOURCE_CHANGED = "source_changed"


DRIFT_KIND_ORDER = {kind: i for i, kind in enumerate(DriftKind)}


class Priority(str, Enum):
    HIGH = "high"
    LOW = "low"


@dataclass(frozen=True)
class DriftRecord:
    identity_key: tuple[str, str]  # (name, source kind)
    kind: DriftKind
    before: PackageNode | None
    after: PackageNode | None
    priority: Priority
    # Same version, different source: the swapped-source supply-chain signature.
    high_risk_source_change: bool = False

    @property
    def name(self) -> str:
        return self.identity_key[0]

    @property
    def is_tcs(self) -> bool:
        return any(n is not None and n.is_tcs for n in (self.before, self.after))

    def describe(self) -> str:
        before = f"{self.before.version} ({self.before.source.describe()})" if self.before else "-"
        after = f"{self.after.version} ({self.after.source.describe()})" if self.after else "-"
        return f"{self.name}: {self.kind.value} {before} -> {after} [{self.priority.value}]"

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity_key": {"name": self.identity_key[0], "source_kind": self.identity_key[1]},
            "kind": self.kind.value,
            "priority": self.priority.value,
            "high_risk_source_change": self.high_risk_source_change,
            "before": node_to_dict(self.before) if self.before else None,
            "after": node_to_dict(self.after) if self.after else None,
        }


@dataclass(frozen=True)
class DriftSummary:
    total: int = 0
    added: int = 0
    removed: int = 0
    version_changed: int = 0
    source_changed: int = 0
    high_priority: int = 0
    low_priority: int = 0
    tcs_drifts: int = 0
    high_risk_source_changes: int = 0

    @property
    def has_high(self) -> bool:
        return self.high_priority > 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "added": self.added,
            "removed": self.removed,
            "version_changed": self.version_changed,
            "source_changed": self.source_changed,
            "high_priority": self.high_priority,
            "low_priority": self.low_priority,
            "tcs_drifts": self.tcs_drifts,
            "high_risk_source_changes": self.high_risk_source_changes,
        }


def summarize(records: Iterable[DriftRecord]) -> DriftSummary:
    records = list(records)
    by_kind = {kind: sum(1 for r in records if r.kind is kind) for kind in DriftKind}
    return DriftSummary(
        total=len(records),
        added=by_kind[DriftKind.ADDED],
        removed=by_kind[DriftKind.REMOVED],
        version_changed=by_kind[DriftKind.VERSION_CHANGED],
        source_changed=by_kind[DriftKind.SOURCE_CHANGED],
        high_priority=sum(1 for r in records if r.priority is Priority.HIGH),
        low_priority=sum(1 for r in records if r.priority is Priority.LOW),
        tcs_drifts=sum(1 for r in records if r.is_tcs),
        high_risk_source_changes=sum(1 for r in records if r.high_risk_source_change),
    )
