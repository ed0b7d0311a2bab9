"""Data models for the dependency graph engine.

Identity of a package is ``(name, version, source)``. Source identity covers
the registry URL, the git (url, commit) pair or the local path; registry
checksums and git ref labels are carried as data and excluded from equality.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, ClassVar, Mapping, Union

if TYPE_CHECKING:
    from lockwarden.engines.trust_classifier.models import ClassificationResult


class DependencyKind(str, Enum):
    NORMAL = "normal"
    BUILD = "build"
    DEV = "dev"


_KIND_ORDER = {DependencyKind.NORMAL: 0, DependencyKind.BUILD: 1, DependencyKind.DEV: 2}

# Canonical ordering of source discriminants.
SOURCE_KIND_ORDER = {"registry": 0, "git": 1, "local": 2}


# ── Sources ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RegistrySource:
    registry_url: str
    checksum: str | None = field(default=None, compare=False)

    kind: ClassVar[str] = "registry"

    def sort_key(self) -> tuple[str, ...]:
        return (self.registry_url,)

    def describe(self) -> str:
        return f"registry+{self.registry_url}"

    def identity_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "registry_url": self.registry_url}

    def to_dict(self) -> dict[str, Any]:
        return {**self.identity_dict(), "checksum": self.checksum}


@dataclass(frozen=True)
class GitSource:
    repo_url: str
    commit: str
    # Branch/tag label is metadata only; url + commit are the identity.
    ref_name: str | None = field(default=None, compare=False)

    kind: ClassVar[str] = "git"

    def sort_key(self) -> tuple[str, ...]:
        return (self.repo_url, self.commit)

    def describe(self) -> str:
        return f"git+{self.repo_url}#{self.commit}"

    def identity_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "repo_url": self.repo_url, "commit": self.commit}

    def to_dict(self) -> dict[str, Any]:
        return {**self.identity_dict(), "ref_name": self.ref_name}


@dataclass(frozen=True)
class LocalSource:
    relative_path: str

    kind: ClassVar[str] = "local"

    def sort_key(self) -> tuple[str, ...]:
        return (self.relative_path,)

    def describe(self) -> str:
        return f"path+{self.relative_path}"

    def identity_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "relative_path": self.relative_path}

    def to_dict(self) -> dict[str, Any]:
        return self.identity_dict()


PackageSource = Union[RegistrySource, GitSource, LocalSource]


def source_from_dict(data: Mapping[str, Any]) -> PackageSource:
    """Rebuild a source from its ``to_dict`` form. Raises ValueError on bad input."""
    kind = data.get("kind")
    if kind == "registry":
        return RegistrySource(str(data["registry_url"]), data.get("checksum"))
    if kind == "git":
        return GitSource(str(data["repo_url"]), str(data["commit"]), data.get("ref_name"))
    if kind == "local":
        return LocalSource(str(data["relative_path"]))
    raise ValueError(f"unknown source kind: {kind!r}")


# ── Identity, nodes, edges ───────────────────────────────────────────────


@dataclass(frozen=True)
class PackageIdentity:
    name: str
    version: str
    source: PackageSource

    def sort_key(self) -> tuple:
        return (
            self.name,
            self.version,
            SOURCE_KIND_ORDER[self.source.kind],
            self.source.sort_key(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "source": self.source.identity_dict(),
        }

    def __str__(self) -> str:
        return f"{self.name}@{self.version} ({self.source.describe()})"


@dataclass(frozen=True)
class PackageNode:
    """A resolved package. Annotations never affect identity or graph shape."""

    name: str
    version: str
    source: PackageSource
    dependency_kind: DependencyKind = DependencyKind.NORMAL
    classification: ClassificationResult | None = None
    annotations: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        ordered = {k: self.annotations[k] for k in sorted(self.annotations)}
        object.__setattr__(self, "annotations", MappingProxyType(ordered))

    @property
    def identity(self) -> PackageIdentity:
        return PackageIdentity(self.name, self.version, self.source)

    @property
    def checksum(self) -> str | None:
        return getattr(self.source, "checksum", None)

    @property
    def is_tcs(self) -> bool:
        return self.classification is not None and self.classification.is_tcs


@dataclass(frozen=True)
class DependencyEdge:
    from_identity: PackageIdentity
    to_identity: PackageIdentity
    kind: DependencyKind = DependencyKind.NORMAL

    def sort_key(self) -> tuple:
        return (
            self.from_identity.sort_key(),
            self.to_identity.sort_key(),
            _KIND_ORDER[self.kind],
        )


@dataclass(frozen=True)
class Diagnostic:
    """Non-fatal finding attached to a built graph (e.g. enrichment disagreement)."""

    code: str
    message: str
    context: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "context": dict(self.context)}


@dataclass(frozen=True)
class DependencyGraph:
    """Canonically ordered, content-addressed dependency graph.

    Build through :func:`lockwarden.engines.graph_builder.canonical.finalize_graph`
    so ordering, edge validity and ``digest`` are guaranteed.
    """

    project_id: str
    nodes: tuple[PackageNode, ...]
    edges: tuple[DependencyEdge, ...]
    digest: str
    diagnostics: tuple[Diagnostic, ...] = field(default=(), compare=False)
    _index: dict = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._index.update({n.identity: n for n in self.nodes})

    def node(self, identity: PackageIdentity) -> PackageNode | None:
        return self._index.get(identity)

    def find(self, name: str) -> list[PackageNode]:
        return [n for n in self.nodes if n.name == name]

    def dependencies_of(self, identity: PackageIdentity) -> list[DependencyEdge]:
        return [e for e in self.edges if e.from_identity == identity]

    def dependents_of(self, identity: PackageIdentity) -> list[DependencyEdge]:
        return [e for e in self.edges if e.to_identity == identity]


# ── Adapter-level intermediate records ───────────────────────────────────


@dataclass
class DependencyRef:
    """An unresolved reference from one lock entry to another."""

    name: str
    version: str | None = None
    source_spec: str | None = None
    kind: DependencyKind = DependencyKind.NORMAL

    def __str__(self) -> str:
        text = self.name
        if self.version:
            text += f" {self.version}"
        if self.source_spec:
            text += f" ({self.source_spec})"
        return text


@dataclass
class LockEntry:
    """A single package as written in the lockfile (the identity authority)."""

    name: str
    version: str
    source: PackageSource
    source_spec: str | None = None
    dependencies: list[DependencyRef] = field(default_factory=list)
    annotations: dict[str, Any] = field(default_factory=dict)
    # Other spellings of the same source seen on duplicate entries.
    alias_specs: set[str] = field(default_factory=set)

    @property
    def identity(self) -> PackageIdentity:
        return PackageIdentity(self.name, self.version, self.source)

    @property
    def source_specs(self) -> set[str]:
        specs = set(self.alias_specs)
        if self.source_spec is not None:
            specs.add(self.source_spec)
        return specs


@dataclass
class EnrichmentRecord:
    """Advisory data about a package. Only ``annotations`` may reach the graph."""

    name: str
    version: str
    source: PackageSource | None = None
    checksum: str | None = None
    annotations: dict[str, Any] = field(default_factory=dict)
