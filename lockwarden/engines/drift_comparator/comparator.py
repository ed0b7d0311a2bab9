"""Epoch drift comparator — diff two graph snapshots into ordered drift records.

Nodes are matched by name and source kind rather than full identity, so a
version bump or a source swap on the same logical dependency is one record
instead of an Added/Removed pair. No I/O, no state across calls.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from lockwarden.engines.drift_comparator.models import (
    DRIFT_KIND_ORDER,
    DriftKind,
    DriftRecord,
    Priority,
)
from lockwarden.engines.graph_builder.models import DependencyGraph, PackageNode

if TYPE_CHECKING:
    from lockwarden.epoch import Epoch

_VERSION_PART_RE = re.compile(r"(\d+)")


def version_key(version: str) -> tuple:
    """Natural ordering: ``1.10.0`` sorts after ``1.9.0``."""
    return tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part)
        for part in _VERSION_PART_RE.split(version)
        if part
    )


def _node_key(node: PackageNode) -> tuple:
    return (version_key(node.version), node.identity.sort_key())


def _priority(*nodes: PackageNode | None) -> Priority:
    return Priority.HIGH if any(n is not None and n.is_tcs for n in nodes) else Priority.LOW


def _record(
    kind: DriftKind,
    before: PackageNode | None,
    after: PackageNode | None,
    *,
    priority: Priority | None = None,
    high_risk: bool = False,
) -> DriftRecord:
    anchor = after if after is not None else before
    assert anchor is not None
    return DriftRecord(
        identity_key=(anchor.name, anchor.source.kind),
        kind=kind,
        before=before,
        after=after,
        priority=priority if priority is not None else _priority(before, after),
        high_risk_source_change=high_risk,
    )


def _take(candidates: list[PackageNode], predicate) -> PackageNode | None:
    for i, node in enumerate(candidates):
        if predicate(node):
            return candidates.pop(i)
    return None


def _compare_name(prev: list[PackageNode], cur: list[PackageNode]) -> list[DriftRecord]:
    prev = sorted(prev, key=_node_key)
    cur = sorted(cur, key=_node_key)
    records: list[DriftRecord] = []

    # Pass 1: identical identity. A changed checksum is still a source change.
    for p in list(prev):
        c = _take(cur, lambda n: n.identity == p.identity)
        if c is None:
            continue
        prev.remove(p)
        if p.checksum != c.checksum:
            records.append(
                _record(DriftKind.SOURCE_CHANGED, p, c, priority=Priority.HIGH, high_risk=True)
            )

    # Pass 2: same version, different source.
    for p in list(prev):
        c = _take(cur, lambda n: n.version == p.version)
        if c is not None:
            prev.remove(p)
            records.append(
                _record(DriftKind.SOURCE_CHANGED, p, c, priority=Priority.HIGH, high_risk=True)
            )

    # Pass 3: same source kind, version moved.
    for p in list(prev):
        c = _take(cur, lambda n: n.source.kind == p.source.kind)
        if c is not None:
            prev.remove(p)
            records.append(_record(DriftKind.VERSION_CHANGED, p, c))

    # Pass 4: both version and source kind moved.
    while prev and cur:
        records.append(
            _record(DriftKind.SOURCE_CHANGED, prev.pop(0), cur.pop(0), priority=Priority.HIGH)
        )

    records.extend(_record(DriftKind.REMOVED, p, None) for p in prev)
    records.extend(_record(DriftKind.ADDED, None, c) for c in cur)
    return records


def _sort_key(record: DriftRecord) -> tuple:
    return (
        record.name,
        DRIFT_KIND_ORDER[record.kind],
        _node_key(record.before) if record.before else (),
        _node_key(record.after) if record.after else (),
    )


def compare(previous: DependencyGraph, current: DependencyGraph) -> list[DriftRecord]:
    """Return drift records sorted by package name, then drift kind."""
    prev_by_name: dict[str, list[PackageNode]] = {}
    cur_by_name: dict[str, list[PackageNode]] = {}
    for node in previous.nodes:
        prev_by_name.setdefault(node.name, []).append(node)
    for node in current.nodes:
        cur_by_name.setdefault(node.name, []).append(node)

    records: list[DriftRecord] = []
    for name in sorted(set(prev_by_name) | set(cur_by_name)):
        records.extend(_compare_name(prev_by_name.get(name, []), cur_by_name.get(name, [])))
    return sorted(records, key=_sort_key)


def compare_epochs(previous: Epoch, current: Epoch) -> list[DriftRecord]:
    return compare(previous.graph_snapshot, current.graph_snapshot)
