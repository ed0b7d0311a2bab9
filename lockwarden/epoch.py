"""Epochs — immutable, digest-identified snapshots of a project's dependency state.

An epoch id is derived from its digest fields, so the same dependency state
always maps to the same id. Stores are append-only: an epoch is never
rewritten, a newer one supersedes it.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import structlog

from lockwarden.engines.graph_builder.canonical import (
    canonical_json,
    graph_from_dict,
    graph_to_dict,
    sha256_hex,
)
from lockwarden.engines.graph_builder.models import DependencyGraph
from lockwarden.exceptions import EpochError, EpochExistsError, EpochNotFoundError, GraphError

log = structlog.get_logger("lockwarden.engine.epoch")

_UNSAFE_PATH_RE = re.compile(r"[^A-Za-z0-9._-]")


@dataclass(frozen=True)
class Epoch:
    id: str
    project_id: str
    created_at: str
    lockfile_digest: str
    graph_snapshot: DependencyGraph
    vendor_digest: str | None = None
    config_digest: str | None = None

    @property
    def graph_digest(self) -> str:
        return self.graph_snapshot.digest

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "created_at": self.created_at,
            "lockfile_digest": self.lockfile_digest,
            "vendor_digest": self.vendor_digest,
            "config_digest": self.config_digest,
            "graph_digest": self.graph_digest,
            "graph_snapshot": graph_to_dict(self.graph_snapshot),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Epoch:
        try:
            graph = graph_from_dict(data["graph_snapshot"])
            epoch = cls(
                id=str(data["id"]),
                project_id=str(data["project_id"]),
                created_at=str(data["created_at"]),
                lockfile_digest=str(data["lockfile_digest"]),
                graph_snapshot=graph,
                vendor_digest=data.get("vendor_digest"),
                config_digest=data.get("config_digest"),
            )
        except (KeyError, TypeError, GraphError) as exc:
            raise EpochError(f"invalid epoch document: {exc}") from exc

        expected = epoch_id(
            epoch.project_id,
            epoch.lockfile_digest,
            graph.digest,
            epoch.vendor_digest,
            epoch.config_digest,
        )
        if expected != epoch.id:
            raise EpochError(
                f"epoch {epoch.id} does not match its content",
                epoch_id=epoch.id,
                expected=expected,
            )
        return epoch


def epoch_id(
    project_id: str,
    lockfile_digest: str,
    graph_digest: str,
    vendor_digest: str | None,
    config_digest: str | None,
) -> str:
    payload = {
        "project_id": project_id,
        "lockfile_digest": lockfile_digest,
        "graph_digest": graph_digest,
        "vendor_digest": vendor_digest,
        "config_digest": config_digest,
    }
    return "epoch-" + sha256_hex(canonical_json(payload))[:20]


def create_epoch(
    graph: DependencyGraph,
    lockfile_contents: str | bytes,
    *,
    vendor_digest: str | None = None,
    config_digest: str | None = None,
    created_at: datetime | None = None,
) -> Epoch:
    """Snapshot *graph* (ideally already classified) as a new epoch."""
    lockfile_digest = sha256_hex(lockfile_contents)
    created = (created_at or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return Epoch(
        id=epoch_id(graph.project_id, lockfile_digest, graph.digest, vendor_digest, config_digest),
        project_id=graph.project_id,
        created_at=created.isoformat(timespec="seconds"),
        lockfile_digest=lockfile_digest,
        graph_snapshot=graph,
        vendor_digest=vendor_digest,
        config_digest=config_digest,
    )


class EpochStore(ABC):
    """Append-only epoch storage. v1 uses local files."""

    @abstractmethod
    def save(self, epoch: Epoch) -> None:
        """Persist *epoch*. Raises EpochExistsError if the id is already stored."""
        ...

    @abstractmethod
    def get(self, epoch_id: str) -> Epoch:
        """Load an epoch by id. Raises EpochNotFoundError."""
        ...

    @abstractmethod
    def list(self, project_id: str | None = None) -> list[Epoch]:
        """All stored epochs, oldest first."""
        ...

    def latest(self, project_id: str) -> Epoch | None:
        epochs = self.list(project_id)
        return epochs[-1] if epochs else None


class LocalEpochStore(EpochStore):
    """One JSON file per epoch under ``<base_dir>/<project_id>/``."""

    def __init__(self, base_dir: str | Path = ".lockwarden/epochs") -> None:
        self.base_dir = Path(base_dir)

    def _project_dir(self, project_id: str) -> Path:
        return self.base_dir / _UNSAFE_PATH_RE.sub("_", project_id)

    def save(self, epoch: Epoch) -> None:
        project_dir = self._project_dir(epoch.project_id)
        project_dir.mkdir(parents=True, exist_ok=True)
        path = project_dir / f"{epoch.id}.json"
        try:
            with path.open("x", encoding="utf-8") as fh:
                fh.write(json.dumps(epoch.to_dict(), sort_keys=True, indent=2))
        except FileExistsError:
            raise EpochExistsError(
                f"epoch {epoch.id} already exists", epoch_id=epoch.id, path=str(path)
            ) from None
        log.info("epoch.saved", epoch_id=epoch.id, project_id=epoch.project_id, path=str(path))

    def _load(self, path: Path) -> Epoch:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise EpochError(f"cannot read epoch file {path}: {exc}", path=str(path)) from exc
        return Epoch.from_dict(data)

    def get(self, epoch_id: str) -> Epoch:
        matches = sorted(self.base_dir.glob(f"*/{epoch_id}.json"))
        if not matches:
            raise EpochNotFoundError(f"epoch {epoch_id} not found", epoch_id=epoch_id)
        return self._load(matches[0])

    def list(self, project_id: str | None = None) -> list[Epoch]:
        pattern = f"{self._project_dir(project_id).name}/*.json" if project_id else "*/*.json"
        epochs = [self._load(p) for p in self.base_dir.glob(pattern)]
        return sorted(epochs, key=lambda e: (e.created_at, e.id))
