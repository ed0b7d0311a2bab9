"""Custom exceptions for lockwarden.

Every error carries a stable ``code``, a ``category`` and a structured
``context`` dict so callers can act on it without re-running verbosely.
"""

from __future__ import annotations

from typing import Any


class LockwardenError(Exception):
    """Base exception for all lockwarden errors."""

    code = "LOCKWARDEN_ERROR"
    category = "internal"

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "category": self.category,
            "message": self.message,
            "context": dict(self.context),
        }


# ── Graph construction ──────────────────────────────────────────────────


class GraphError(LockwardenError):
    """Raised when a dependency graph cannot be built. No partial graph is returned."""

    code = "GRAPH_ERROR"


class ParseFailure(GraphError):
    """Malformed lockfile or enrichment input."""

    code = "PARSE_FAILURE"
    category = "parse"


class ChecksumConflict(GraphError):
    """The same identity appears twice with different checksums."""

    code = "CHECKSUM_CONFLICT"
    category = "identity"

    def __init__(self, identity: str, first: str | None, second: str | None):
        self.identity = identity
        super().__init__(
            f"Conflicting checksums for {identity}: {first!r} != {second!r}",
            identity=identity,
            expected=first,
            actual=second,
        )


class MissingLocalDependency(GraphError):
    """A local path dependency does not exist on disk."""

    code = "MISSING_LOCAL_DEPENDENCY"
    category = "filesystem"

    def __init__(self, identity: str, path: str):
        self.identity = identity
        self.path = path
        super().__init__(
            f"Local dependency {identity} not found at {path}",
            identity=identity,
            path=path,
        )


class DanglingEdge(GraphError):
    """A dependency reference does not resolve to any node in the lockfile."""

    code = "DANGLING_EDGE"
    category = "identity"

    def __init__(self, from_identity: str, reference: str, reason: str = "no match"):
        self.from_identity = from_identity
        self.reference = reference
        super().__init__(
            f"Dependency '{reference}' of {from_identity} cannot be resolved ({reason})",
            from_identity=from_identity,
            reference=reference,
            reason=reason,
        )


# ── Classification ──────────────────────────────────────────────────────


class ConfigurationError(LockwardenError):
    """Invalid override or pattern definition. Fails the whole classification pass."""

    code = "CONFIGURATION_INVALID"
    category = "configuration"


# ── Vendoring ───────────────────────────────────────────────────────────


class VendorError(LockwardenError):
    """Raised when vendoring or verification cannot proceed at all."""

    code = "VENDOR_ERROR"
    category = "integrity"


class OfflineViolation(VendorError):
    """An operation referenced a non-local resource."""

    code = "OFFLINE_VIOLATION"
    category = "boundary"


class VendorDirectoryNotFound(VendorError):
    """The vendor directory to verify does not exist."""

    code = "VENDOR_DIRECTORY_NOT_FOUND"
    category = "filesystem"


# ── Epochs ──────────────────────────────────────────────────────────────


class EpochError(LockwardenError):
    code = "EPOCH_ERROR"
    category = "epoch"


class EpochExistsError(EpochError):
    """Raised when an epoch id is already stored; epochs are never rewritten."""

    code = "EPOCH_EXISTS"


class EpochNotFoundError(EpochError):
    code = "EPOCH_NOT_FOUND"


# ── External tools ──────────────────────────────────────────────────────


class ToolNotFoundError(LockwardenError):
    """The requested external tool is not on PATH."""

    code = "TOOL_NOT_FOUND"
    category = "tool"

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"Tool not found: {tool}", tool=tool)
