"""Graph builder engine — lockfile to canonical, content-addressed dependency graph."""

from lockwarden.engines.graph_builder.builder import build, build_from_path
from lockwarden.engines.graph_builder.canonical import (
    canonical_json,
    finalize_graph,
    graph_from_dict,
    graph_to_dict,
    load_graph,
    serialize_graph,
)
from lockwarden.engines.graph_builder.models import (
    DependencyEdge,
    DependencyGraph,
    DependencyKind,
    Diagnostic,
    GitSource,
    LocalSource,
    PackageIdentity,
    PackageNode,
    PackageSource,
    RegistrySource,
)
from lockwarden.engines.graph_builder.registry import ADAPTER_REGISTRY, detect_adapter, get_adapter

__all__ = [
    "ADAPTER_REGISTRY",
    "DependencyEdge",
    "DependencyGraph",
    "DependencyKind",
    "Diagnostic",
    "GitSource",
    "LocalSource",
    "PackageIdentity",
    "PackageNode",
    "PackageSource",
    "RegistrySource",
    "build",
    "build_from_path",
    "canonical_json",
    "detect_adapter",
    "finalize_graph",
    "get_adapter",
    "graph_from_dict",
    "graph_to_dict",
    "load_graph",
    "serialize_graph",
]
