"""Adapter for Rust Cargo.lock files (format v1–v4) and ``cargo metadata`` enrichment."""

from __future__ import annotations

import posixpath
import re
import sys
from typing import Any
from urllib.parse import parse_qs, urlsplit, urlunsplit

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from lockwarden.engines.graph_builder.enrichment import (
    load_enrichment_document,
    parse_generic_enrichment,
)
from lockwarden.engines.graph_builder.models import (
    DependencyRef,
    EnrichmentRecord,
    GitSource,
    LocalSource,
    LockEntry,
    PackageSource,
    RegistrySource,
)
from lockwarden.engines.graph_builder.registry import register_adapter
from lockwarden.exceptions import ParseFailure

# "name", "name version" or "name version (source)"
_DEP_REF_RE = re.compile(r"^(?P<name>[^\s()]+)(?: (?P<version>[^\s()]+))?(?: \((?P<source>[^)]+)\))?$")
# v1 lockfiles keep checksums in [metadata] under "checksum name version (source)".
_V1_CHECKSUM_RE = re.compile(r"^checksum (?P<name>\S+) (?P<version>\S+) \((?P<source>[^)]+)\)$")
_TOML_LINE_RE = re.compile(r"line (\d+)")

_GIT_REF_KEYS = ("branch", "tag", "rev")


def parse_source(spec: str | None, checksum: str | None = None) -> PackageSource:
    """Convert a Cargo source string to a :data:`PackageSource`.

    Cargo.lock writes no source for workspace members or path dependencies,
    so every such entry maps to ``LocalSource(".")`` and the lockfile alone
    cannot locate a ``../lib``-style crate or report it missing. With
    ``cargo metadata`` enrichment the real location is recorded as the
    ``cargo.path`` annotation. Raises ValueError for unknown source kinds.
    """
    if spec is None:
        return LocalSource(".")
    kind, sep, rest = spec.partition("+")
    if not sep or not rest:
        raise ValueError(f"unrecognized source {spec!r}")
    if kind == "registry":
        return RegistrySource(rest, checksum)
    if kind == "sparse":
        # Sparse indexes are a different protocol; keep the prefix in the identity.
        return RegistrySource(spec, checksum)
    if kind == "git":
        parts = urlsplit(rest)
        commit = parts.fragment
        if not commit:
            raise ValueError(f"git source without pinned commit: {spec!r}")
        query = parse_qs(parts.query)
        ref_name = next((query[k][0] for k in _GIT_REF_KEYS if k in query), None)
        repo_url = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
        return GitSource(repo_url, commit, ref_name)
    if kind == "path":
        return LocalSource(rest[len("file://") :] if rest.startswith("file://") else rest)
    raise ValueError(f"unsupported source kind {kind!r} in {spec!r}")


def _parse_dep_ref(text: Any, owner: str) -> DependencyRef:
    if not isinstance(text, str):
        raise ParseFailure(
            f"dependency of {owner} must be a string, got {type(text).__name__}",
            ecosystem="cargo",
            package=owner,
        )
    match = _DEP_REF_RE.match(text.strip())
    if match is None:
        raise ParseFailure(
            f"malformed dependency reference {text!r} in {owner}",
            ecosystem="cargo",
            package=owner,
        )
    return DependencyRef(
        name=match.group("name"),
        version=match.group("version"),
        source_spec=match.group("source"),
    )


def _v1_checksums(data: dict[str, Any]) -> dict[tuple[str, str, str], str | None]:
    metadata = data.get("metadata") or {}
    checksums: dict[tuple[str, str, str], str | None] = {}
    for key, value in metadata.items():
        match = _V1_CHECKSUM_RE.match(key)
        if match is None:
            continue
        checksums[(match.group("name"), match.group("version"), match.group("source"))] = (
            None if value == "<none>" else value
        )
    return checksums


class CargoLockAdapter:
    ecosystem = "cargo"
    lockfile_names = ["Cargo.lock"]

    def parse(self, content: str) -> list[LockEntry]:
        try:
            data = tomllib.loads(content)
        except tomllib.TOMLDecodeError as exc:
            line = _TOML_LINE_RE.search(str(exc))
            raise ParseFailure(
                f"Cargo.lock is not valid TOML: {exc}",
                ecosystem="cargo",
                line=int(line.group(1)) if line else None,
            ) from exc

        packages = data.get("package", [])
        if not isinstance(packages, list):
            raise ParseFailure("'package' must be an array of tables", ecosystem="cargo")
        legacy_checksums = _v1_checksums(data)

        entries: list[LockEntry] = []
        for index, pkg in enumerate(packages):
            if not isinstance(pkg, dict):
                raise ParseFailure(f"package #{index} is not a table", ecosystem="cargo")
            name, version = pkg.get("name"), pkg.get("version")
            if not isinstance(name, str) or not name or not isinstance(version, str) or not version:
                raise ParseFailure(
                    f"package #{index} needs non-empty 'name' and 'version'",
                    ecosystem="cargo",
                    index=index,
                )
            spec = pkg.get("source")
            if spec is not None and not isinstance(spec, str):
                raise ParseFailure(f"source of {name} must be a string", ecosystem="cargo")

            checksum = pkg.get("checksum")
            if checksum is None and spec is not None:
                checksum = legacy_checksums.get((name, version, spec))
            try:
                source = parse_source(spec, checksum)
            except ValueError as exc:
                raise ParseFailure(
                    f"{name} {version}: {exc}", ecosystem="cargo", package=name
                ) from exc
            if isinstance(source, RegistrySource) and not source.checksum:
                raise ParseFailure(
                    f"registry package {name} {version} has no checksum",
                    ecosystem="cargo",
                    package=name,
                    version=version,
                )

            deps = pkg.get("dependencies", [])
            if not isinstance(deps, list):
                raise ParseFailure(f"dependencies of {name} must be a list", ecosystem="cargo")
            entries.append(
                LockEntry(
                    name=name,
                    version=version,
                    source=source,
                    source_spec=spec,
                    dependencies=[_parse_dep_ref(d, name) for d in deps],
                )
            )
        return entries

    def parse_enrichment(self, content: str) -> list[EnrichmentRecord]:
        data = load_enrichment_document(content)
        if "workspace_members" in data or "resolve" in data:
            return parse_cargo_metadata(data)
        return parse_generic_enrichment(data)


# ── cargo metadata --format-version 1 ───────────────────────────────────


def _sorted_strings(values: Any) -> list[str]:
    if not isinstance(values, list):
        return []
    return sorted({v for v in values if isinstance(v, str)})


def _resolved_kinds(data: dict[str, Any]) -> tuple[dict[str, set[str]], dict[str, list[str]]]:
    """Collect incoming dependency kinds and enabled features per package id."""
    kinds: dict[str, set[str]] = {}
    features: dict[str, list[str]] = {}
    resolve = data.get("resolve") or {}
    for node in resolve.get("nodes") or []:
        features[node.get("id", "")] = _sorted_strings(node.get("features"))
        for dep in node.get("deps") or []:
            target = dep.get("pkg")
            if not target:
                continue
            for dep_kind in dep.get("dep_kinds") or [{"kind": None}]:
                kinds.setdefault(target, set()).add(dep_kind.get("kind") or "normal")
    return kinds, features


def parse_cargo_metadata(data: dict[str, Any]) -> list[EnrichmentRecord]:
    packages = data.get("packages")
    if not isinstance(packages, list):
        raise ParseFailure("cargo metadata 'packages' must be a list", document="enrichment")

    members = set(data.get("workspace_members") or [])
    workspace_root = data.get("workspace_root")
    kinds, features = _resolved_kinds(data)

    records: list[EnrichmentRecord] = []
    for pkg in packages:
        if not isinstance(pkg, dict) or not pkg.get("name") or not pkg.get("version"):
            raise ParseFailure(
                "cargo metadata package needs 'name' and 'version'", document="enrichment"
            )
        try:
            source = parse_source(pkg.get("source"))
        except ValueError as exc:
            raise ParseFailure(f"cargo metadata: {exc}", document="enrichment") from exc

        pkg_id = pkg.get("id", "")
        target_kinds = {k for t in pkg.get("targets") or [] for k in t.get("kind") or []}
        annotations: dict[str, Any] = {}
        for key in ("categories", "keywords"):
            values = _sorted_strings(pkg.get(key))
            if values:
                annotations[f"cargo.{key}"] = values
        for key in ("license", "edition", "rust_version"):
            if pkg.get(key):
                annotations[f"cargo.{key}"] = pkg[key]
        if isinstance(pkg.get("features"), dict) and pkg["features"]:
            annotations["cargo.declared_features"] = sorted(pkg["features"])
        if features.get(pkg_id):
            annotations["cargo.features"] = features[pkg_id]
        manifest_path = pkg.get("manifest_path")
        if pkg.get("source") is None and manifest_path and workspace_root:
            crate_dir = posixpath.dirname(manifest_path)
            annotations["cargo.path"] = posixpath.relpath(crate_dir, workspace_root)
        if pkg_id in members:
            annotations["workspace.member"] = True
        if "proc-macro" in target_kinds:
            annotations["role.proc_macro"] = True
        if "custom-build" in target_kinds:
            annotations["role.build_script"] = True
        incoming = kinds.get(pkg_id)
        if incoming:
            annotations["role.dependency_kind"] = next(
                k for k in ("normal", "build", "dev") if k in incoming
            )

        records.append(
            EnrichmentRecord(
                name=pkg["name"],
                version=pkg["version"],
                source=source,
                annotations=annotations,
            )
        )
    return records


register_adapter(CargoLockAdapter())
