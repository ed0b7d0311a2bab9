"""lockwarden — deterministic dependency graphs and vendoring integrity."""

from lockwarden.engines.drift_comparator import compare
from lockwarden.engines.graph_builder import build, serialize_graph
from lockwarden.engines.trust_classifier import classify, classify_graph
from lockwarden.engines.vendor_verifier import materialize, verify
from lockwarden.exceptions import LockwardenError

__version__ = "0.1.0"

__all__ = [
    "LockwardenError",
    "build",
    "classify",
    "classify_graph",
    "compare",
    "materialize",
    "serialize_graph",
    "verify",
]
