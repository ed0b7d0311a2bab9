"""Epoch drift comparator engine — categorized, priority-ranked snapshot diffs."""

from lockwarden.engines.drift_comparator.comparator import compare, compare_epochs
from lockwarden.engines.drift_comparator.models import (
    DriftKind,
    DriftRecord,
    DriftSummary,
    Priority,
    summarize,
)

__all__ = [
    "DriftKind",
    "DriftRecord",
    "DriftSummary",
    "Priority",
    "compare",
    "compare_epochs",
    "summarize",
]
