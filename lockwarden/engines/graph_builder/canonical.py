"""Canonical ordering, serialization and content digest of dependency graphs."""

from __future__ import annotations

import hashlib
import json
from typing import Any, Iterable, Mapping

from lockwarden.engines.graph_builder.models import (
    DependencyEdge,
    DependencyGraph,
    DependencyKind,
    Diagnostic,
    PackageIdentity,
    PackageNode,
    source_from_dict,
)
from lockwarden.exceptions import ChecksumConflict, DanglingEdge, ParseFailure

SCHEMA_VERSION = "1"


def canonical_json(data: Any) -> str:
    """Serialize *data* with sorted keys and compact separators."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sha256_hex(data: str | bytes) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


# ── to dict ──────────────────────────────────────────────────────────────


def node_to_dict(node: PackageNode) -> dict[str, Any]:
    return {
        "name": node.name,
        "version": node.version,
        "source": node.source.to_dict(),
        "dependency_kind": node.dependency_kind.value,
        "classification": node.classification.to_dict() if node.classification else None,
        "annotations": dict(node.annotations),
    }


def edge_to_dict(edge: DependencyEdge) -> dict[str, Any]:
    return {
        "from": edge.from_identity.to_dict(),
        "to": edge.to_identity.to_dict(),
        "kind": edge.kind.value,
    }


def _body(project_id: str, nodes: Iterable[PackageNode], edges: Iterable[DependencyEdge]) -> dict:
    return {
        "schema_version": SCHEMA_VERSION,
        "project_id": project_id,
        "nodes": [node_to_dict(n) for n in nodes],
        "edges": [edge_to_dict(e) for e in edges],
    }


def graph_digest(
    project_id: str, nodes: Iterable[PackageNode], edges: Iterable[DependencyEdge]
) -> str:
    """sha256 over the canonical JSON of the graph body (digest field excluded)."""
    return sha256_hex(canonical_json(_body(project_id, nodes, edges)))


def graph_to_dict(graph: DependencyGraph) -> dict[str, Any]:
    data = _body(graph.project_id, graph.nodes, graph.edges)
    data["digest"] = graph.digest
    return data


def serialize_graph(graph: DependencyGraph) -> bytes:
    """Byte-identical output for semantically identical graphs."""
    return canonical_json(graph_to_dict(graph)).encode("utf-8")


# ── finalize ─────────────────────────────────────────────────────────────


def finalize_graph(
    project_id: str,
    nodes: Iterable[PackageNode],
    edges: Iterable[DependencyEdge],
    diagnostics: Iterable[Diagnostic] = (),
) -> DependencyGraph:
    """Deduplicate, validate and canonically order nodes/edges, then seal the digest.

    Raises :class:`ChecksumConflict` for equal identities with different
    checksums and :class:`DanglingEdge` for edges whose endpoints are absent.
    """
    by_identity: dict[PackageIdentity, PackageNode] = {}
    for node in nodes:
        seen = by_identity.get(node.identity)
        if seen is None:
            by_identity[node.identity] = node
        elif seen.checksum != node.checksum:
            raise ChecksumConflict(str(node.identity), seen.checksum, node.checksum)

    ordered_nodes = tuple(sorted(by_identity.values(), key=lambda n: n.identity.sort_key()))

    unique_edges: dict[tuple, DependencyEdge] = {}
    for edge in edges:
        for endpoint in (edge.from_identity, edge.to_identity):
            if endpoint not in by_identity:
                raise DanglingEdge(
                    str(edge.from_identity), str(endpoint), reason="endpoint not in graph"
                )
        unique_edges.setdefault(edge.sort_key(), edge)
    ordered_edges = tuple(unique_edges[k] for k in sorted(unique_edges))

    return DependencyGraph(
        project_id=project_id,
        nodes=ordered_nodes,
        edges=ordered_edges,
        digest=graph_digest(project_id, ordered_nodes, ordered_edges),
        diagnostics=tuple(diagnostics),
    )


# ── from dict ────────────────────────────────────────────────────────────


def _identity_from_dict(data: Mapping[str, Any]) -> PackageIdentity:
    return PackageIdentity(str(data["name"]), str(data["version"]), source_from_dict(data["source"]))


def graph_from_dict(data: Mapping[str, Any]) -> DependencyGraph:
    """Load a serialized graph, re-canonicalize it and check its digest."""
    from lockwarden.engines.trust_classifier.models import classification_from_dict

    try:
        nodes = [
            PackageNode(
                name=str(raw["name"]),
                version=str(raw["version"]),
                source=source_from_dict(raw["source"]),
                dependency_kind=DependencyKind(raw.get("dependency_kind", "normal")),
                classification=(
                    classification_from_dict(raw["classification"])
                    if raw.get("classification")
                    else None
                ),
                annotations=raw.get("annotations") or {},
            )
            for raw in data["nodes"]
        ]
        edges = [
            DependencyEdge(
                _identity_from_dict(raw["from"]),
                _identity_from_dict(raw["to"]),
                DependencyKind(raw.get("kind", "normal")),
            )
            for raw in data["edges"]
        ]
        project_id = str(data["project_id"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ParseFailure(f"invalid serialized graph: {exc}", document="graph") from exc

    graph = finalize_graph(project_id, nodes, edges)
    recorded = data.get("digest")
    if recorded and recorded != graph.digest:
        raise ParseFailure(
            "serialized graph digest does not match its content",
            document="graph",
            expected=recorded,
            actual=graph.digest,
        )
    return graph


def load_graph(text: str | bytes) -> DependencyGraph:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseFailure(f"graph is not valid JSON: {exc}", document="graph") from exc
    if not isinstance(data, dict):
        raise ParseFailure("graph document must be a JSON object", document="graph")
    return graph_from_dict(data)
