"""Data models for vendor integrity verification."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from lockwarden.engines.graph_builder.models import PackageIdentity


@dataclass(frozen=True)
class VendorEntry:
    """Verification outcome for one vendored package."""

    identity: PackageIdentity
    present: bool
    expected_checksum: str | None = None
    actual_checksum: str | None = None
    expected_commit: str | None = None
    actual_commit: str | None = None
    tree_digest: str | None = None
    checked: bool = True
    error: str | None = None

    @property
    def checksum_ok(self) -> bool:
        return self.expected_checksum is None or self.expected_checksum == self.actual_checksum

    @property
    def commit_ok(self) -> bool:
        return self.expected_commit is None or self.expected_commit == self.actual_commit

    @property
    def ok(self) -> bool:
        return (
            self.checked
            and self.present
            and self.error is None
            and self.checksum_ok
            and self.commit_ok
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity.to_dict(),
            "present": self.present,
            "checked": self.checked,
            "expected_checksum": self.expected_checksum,
            "actual_checksum": self.actual_checksum,
            "expected_commit": self.expected_commit,
            "actual_commit": self.actual_commit,
            "tree_digest": self.tree_digest,
            "error": self.error,
            "ok": self.ok,
        }


@dataclass(frozen=True)
class VendorManifest:
    """All-or-nothing verification result for a vendor directory.

    ``epoch_valid`` is the single pass/fail signal: it is false if any entry
    is missing, mismatched, unreadable or was not checked.
    """

    entries: tuple[VendorEntry, ...]
    vendor_digest: str
    complete: bool = True
    epoch_valid: bool = field(init=False)

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.entries, key=lambda e: e.identity.sort_key()))
        object.__setattr__(self, "entries", ordered)
        object.__setattr__(
            self, "epoch_valid", self.complete and all(e.ok for e in ordered)
        )

    def entry(self, name: str, version: str | None = None) -> VendorEntry | None:
        for e in self.entries:
            if e.identity.name == name and (version is None or e.identity.version == version):
                return e
        return None

    @property
    def missing(self) -> list[VendorEntry]:
        return [e for e in self.entries if e.checked and not e.present]

    @property
    def checksum_mismatches(self) -> list[VendorEntry]:
        return [e for e in self.entries if e.present and not e.checksum_ok]

    @property
    def commit_mismatches(self) -> list[VendorEntry]:
        return [e for e in self.entries if e.present and not e.commit_ok]

    @property
    def unchecked(self) -> list[VendorEntry]:
        return [e for e in self.entries if not e.checked]

    def to_dict(self) -> dict[str, Any]:
        return {
            "vendor_digest": self.vendor_digest,
            "epoch_valid": self.epoch_valid,
            "complete": self.complete,
            "entries": [e.to_dict() for e in self.entries],
        }
