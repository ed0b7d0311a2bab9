"""Adapter registry — one lockfile adapter per ecosystem."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from lockwarden.engines.graph_builder.models import EnrichmentRecord, LockEntry
from lockwarden.exceptions import ConfigurationError


@runtime_checkable
class LockfileAdapter(Protocol):
    """Interface that every ecosystem adapter must satisfy."""

    ecosystem: str
    lockfile_names: list[str]

    def parse(self, content: str) -> list[LockEntry]: ...

    def parse_enrichment(self, content: str) -> list[EnrichmentRecord]: ...


ADAPTER_REGISTRY: dict[str, LockfileAdapter] = {}


def register_adapter(adapter: LockfileAdapter) -> None:
    """Register an adapter instance by its ecosystem name."""
    ADAPTER_REGISTRY[adapter.ecosystem] = adapter


def get_adapter(ecosystem: str) -> LockfileAdapter:
    adapter = ADAPTER_REGISTRY.get(ecosystem)
    if adapter is None:
        known = ", ".join(sorted(ADAPTER_REGISTRY)) or "none"
        raise ConfigurationError(
            f"no lockfile adapter for ecosystem {ecosystem!r} (known: {known})",
            field="ecosystem",
            value=ecosystem,
        )
    return adapter


def detect_adapter(lockfile: Path) -> LockfileAdapter | None:
    """Match a lockfile path to a registered adapter by file name."""
    for adapter in ADAPTER_REGISTRY.values():
        if lockfile.name in adapter.lockfile_names:
            return adapter
    return None
