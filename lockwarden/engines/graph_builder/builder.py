"""Graph builder — lockfile (+ optional enrichment) to canonical DependencyGraph.

The lockfile is the sole identity authority. Enrichment is matched to
lockfile nodes by ``(name, version)`` and may only add annotations;
disagreements become :class:`Diagnostic` entries on the result.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import structlog

# Ensure adapters are registered before any build runs.
import lockwarden.engines.graph_builder.adapters  # noqa: F401
from lockwarden.engines.graph_builder.canonical import finalize_graph
from lockwarden.engines.graph_builder.enrichment import ANNOTATION_KEY_RE
from lockwarden.engines.graph_builder.models import (
    DependencyEdge,
    DependencyGraph,
    DependencyKind,
    DependencyRef,
    Diagnostic,
    EnrichmentRecord,
    GitSource,
    LocalSource,
    LockEntry,
    PackageIdentity,
    PackageNode,
)
from lockwarden.engines.graph_builder.registry import detect_adapter, get_adapter
from lockwarden.exceptions import (
    ChecksumConflict,
    DanglingEdge,
    MissingLocalDependency,
    ParseFailure,
)

log = structlog.get_logger("lockwarden.engine.graph")

DEFAULT_PROJECT_ID = "project"


def _decode(content: str | bytes, document: str) -> str:
    if isinstance(content, str):
        return content
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ParseFailure(
            f"{document} is not valid UTF-8", document=document, offset=exc.start
        ) from exc


def _dedupe(entries: list[LockEntry]) -> dict[PackageIdentity, LockEntry]:
    unique: dict[PackageIdentity, LockEntry] = {}
    ref_names: dict[PackageIdentity, set[str | None]] = {}
    for entry in entries:
        if isinstance(entry.source, GitSource):
            ref_names.setdefault(entry.identity, set()).add(entry.source.ref_name)
        seen = unique.get(entry.identity)
        if seen is None:
            unique[entry.identity] = entry
            continue
        seen_checksum = getattr(seen.source, "checksum", None)
        entry_checksum = getattr(entry.source, "checksum", None)
        if seen_checksum != entry_checksum:
            raise ChecksumConflict(str(entry.identity), seen_checksum, entry_checksum)
        seen.alias_specs |= entry.source_specs
        for ref in entry.dependencies:
            if ref not in seen.dependencies:
                seen.dependencies.append(ref)
        for key, value in entry.annotations.items():
            seen.annotations.setdefault(key, value)

    # Label-only duplicates: no label wins, all of them are kept as an annotation.
    for identity, labels in ref_names.items():
        if len(labels) < 2:
            continue
        entry = unique[identity]
        entry.source = replace(entry.source, ref_name=None)
        entry.annotations["git.ref_names"] = sorted(label for label in labels if label)
    return unique


def _check_local_paths(entries: dict[PackageIdentity, LockEntry], root: Path) -> None:
    for identity, entry in entries.items():
        if isinstance(entry.source, LocalSource):
            path = root / entry.source.relative_path
            if not path.exists():
                raise MissingLocalDependency(str(identity), str(path))


def _source_matches(entry: LockEntry, spec: str) -> bool:
    bare = spec.split("#", 1)[0]
    return any(
        known == spec or known.split("#", 1)[0] == bare for known in entry.source_specs
    )


def _resolve(
    ref: DependencyRef, owner: LockEntry, by_name: dict[str, list[LockEntry]]
) -> LockEntry:
    candidates = by_name.get(ref.name, [])
    if not candidates:
        raise DanglingEdge(str(owner.identity), str(ref), reason="no package with that name")
    if ref.version is not None:
        candidates = [c for c in candidates if c.version == ref.version]
    if ref.source_spec is not None:
        candidates = [c for c in candidates if _source_matches(c, ref.source_spec)]
    if not candidates:
        raise DanglingEdge(str(owner.identity), str(ref), reason="no matching version or source")
    if len(candidates) > 1:
        raise DanglingEdge(
            str(owner.identity), str(ref), reason=f"ambiguous, {len(candidates)} candidates"
        )
    return candidates[0]


def _build_edges(entries: dict[PackageIdentity, LockEntry]) -> list[DependencyEdge]:
    by_name: dict[str, list[LockEntry]] = {}
    for entry in entries.values():
        by_name.setdefault(entry.name, []).append(entry)

    edges: list[DependencyEdge] = []
    for entry in entries.values():
        for ref in entry.dependencies:
            target = _resolve(ref, entry, by_name)
            edges.append(DependencyEdge(entry.identity, target.identity, ref.kind))
    return edges


def _node_kinds(
    identities: list[PackageIdentity], edges: list[DependencyEdge]
) -> dict[PackageIdentity, DependencyKind]:
    """A node is Normal if it is a root or reached by a Normal edge, else Build, else Dev."""
    incoming: dict[PackageIdentity, set[DependencyKind]] = {}
    for edge in edges:
        incoming.setdefault(edge.to_identity, set()).add(edge.kind)

    kinds: dict[PackageIdentity, DependencyKind] = {}
    for identity in identities:
        seen = incoming.get(identity)
        if not seen or DependencyKind.NORMAL in seen:
            kinds[identity] = DependencyKind.NORMAL
        elif DependencyKind.BUILD in seen:
            kinds[identity] = DependencyKind.BUILD
        else:
            kinds[identity] = DependencyKind.DEV
    return kinds


def _merge_enrichment(
    entries: dict[PackageIdentity, LockEntry],
    records: list[EnrichmentRecord],
) -> tuple[dict[PackageIdentity, dict], list[Diagnostic]]:
    by_nv: dict[tuple[str, str], list[LockEntry]] = {}
    for entry in entries.values():
        by_nv.setdefault((entry.name, entry.version), []).append(entry)

    extra: dict[PackageIdentity, dict] = {}
    diagnostics: list[Diagnostic] = []
    for record in records:
        label = f"{record.name}@{record.version}"
        matches = by_nv.get((record.name, record.version), [])
        if not matches:
            diagnostics.append(
                Diagnostic(
                    "ENRICHMENT_UNKNOWN_PACKAGE",
                    f"enrichment describes {label}, which is not in the lockfile",
                    {"package": label},
                )
            )
            continue

        if record.source is not None:
            same_source = [m for m in matches if m.source == record.source]
            if not same_source:
                diagnostics.append(
                    Diagnostic(
                        "ENRICHMENT_SOURCE_MISMATCH",
                        f"enrichment source for {label} disagrees with the lockfile; lockfile wins",
                        {
                            "package": label,
                            "expected": matches[0].source.describe(),
                            "actual": record.source.describe(),
                        },
                    )
                )
            else:
                matches = same_source
        if len(matches) > 1:
            diagnostics.append(
                Diagnostic(
                    "ENRICHMENT_AMBIGUOUS",
                    f"enrichment for {label} matches {len(matches)} lockfile entries",
                    {"package": label, "candidates": sorted(m.source.describe() for m in matches)},
                )
            )
            continue

        target = matches[0]
        expected_checksum = getattr(target.source, "checksum", None)
        if record.checksum and expected_checksum and record.checksum != expected_checksum:
            diagnostics.append(
                Diagnostic(
                    "ENRICHMENT_CHECKSUM_MISMATCH",
                    f"enrichment checksum for {label} disagrees with the lockfile; lockfile wins",
                    {"package": label, "expected": expected_checksum, "actual": record.checksum},
                )
            )

        merged = extra.setdefault(target.identity, {})
        for key, value in record.annotations.items():
            if not isinstance(key, str) or not ANNOTATION_KEY_RE.match(key):
                diagnostics.append(
                    Diagnostic(
                        "ENRICHMENT_INVALID_ANNOTATION",
                        f"annotation key {key!r} for {label} is not namespaced (ns.key)",
                        {"package": label, "key": str(key)},
                    )
                )
                continue
            merged[key] = value

    diagnostics.sort(key=lambda d: (d.code, d.message))
    return extra, diagnostics


def _default_project_id(entries: dict[PackageIdentity, LockEntry]) -> str:
    roots = sorted(
        e.name
        for e in entries.values()
        if isinstance(e.source, LocalSource) and e.source.relative_path in (".", "")
    )
    return roots[0] if roots else DEFAULT_PROJECT_ID


def build(
    lockfile_contents: str | bytes,
    enrichment: str | bytes | None = None,
    *,
    ecosystem: str = "cargo",
    project_root: Path | None = None,
    project_id: str | None = None,
) -> DependencyGraph:
    """Build a canonical dependency graph from lockfile contents.

    Args:
        lockfile_contents: Raw lockfile text or bytes.
        enrichment: Optional advisory document (e.g. ``cargo metadata`` JSON).
        ecosystem: Registered adapter name (``cargo``, ``uv``).
        project_root: Directory that local path sources are resolved against.
            Defaults to the current working directory.
        project_id: Graph project identifier. Defaults to the first
            workspace root package name.

    Raises:
        ParseFailure, ChecksumConflict, MissingLocalDependency, DanglingEdge.
        No partial graph is ever returned.
    """
    adapter = get_adapter(ecosystem)
    entries = _dedupe(adapter.parse(_decode(lockfile_contents, "lockfile")))
    _check_local_paths(entries, project_root if project_root is not None else Path.cwd())

    edges = _build_edges(entries)
    kinds = _node_kinds(list(entries), edges)

    extra: dict[PackageIdentity, dict] = {}
    diagnostics: list[Diagnostic] = []
    if enrichment is not None:
        records = adapter.parse_enrichment(_decode(enrichment, "enrichment"))
        extra, diagnostics = _merge_enrichment(entries, records)

    nodes = []
    for identity, entry in entries.items():
        annotations = dict(entry.annotations)
        # Lockfile-derived annotations take precedence over advisory ones.
        for key, value in extra.get(identity, {}).items():
            annotations.setdefault(key, value)
        nodes.append(
            PackageNode(
                name=entry.name,
                version=entry.version,
                source=entry.source,
                dependency_kind=kinds[identity],
                annotations=annotations,
            )
        )

    for diagnostic in diagnostics:
        log.warning("graph.diagnostic", code=diagnostic.code, **diagnostic.context)

    graph = finalize_graph(
        project_id or _default_project_id(entries), nodes, edges, diagnostics
    )
    log.info(
        "graph.built",
        project_id=graph.project_id,
        ecosystem=ecosystem,
        nodes=len(graph.nodes),
        edges=len(graph.edges),
        diagnostics=len(graph.diagnostics),
        digest=graph.digest,
    )
    return graph


def build_from_path(
    lockfile_path: Path,
    enrichment_path: Path | None = None,
    *,
    ecosystem: str | None = None,
    project_root: Path | None = None,
    project_id: str | None = None,
) -> DependencyGraph:
    """Read a lockfile from disk and build its graph.

    The adapter is picked from the file name unless *ecosystem* is given;
    local paths resolve against the lockfile's directory by default.
    """
    if ecosystem is None:
        adapter = detect_adapter(lockfile_path)
        if adapter is None:
            raise ParseFailure(
                f"no adapter recognizes lockfile {lockfile_path.name}",
                path=str(lockfile_path),
            )
        ecosystem = adapter.ecosystem
    enrichment = enrichment_path.read_bytes() if enrichment_path is not None else None
    return build(
        lockfile_path.read_bytes(),
        enrichment,
        ecosystem=ecosystem,
        project_root=project_root if project_root is not None else lockfile_path.parent,
        project_id=project_id,
    )
