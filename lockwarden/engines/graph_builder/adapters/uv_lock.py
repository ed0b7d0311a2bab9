"""Adapter for Python ``uv.lock`` files."""

from __future__ import annotations

import re
import sys
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from lockwarden.engines.graph_builder.adapters.cargo_lock import parse_source as parse_cargo_source
from lockwarden.engines.graph_builder.enrichment import (
    load_enrichment_document,
    parse_generic_enrichment,
)
from lockwarden.engines.graph_builder.models import (
    DependencyKind,
    DependencyRef,
    EnrichmentRecord,
    LocalSource,
    LockEntry,
    PackageSource,
    RegistrySource,
)
from lockwarden.engines.graph_builder.registry import register_adapter
from lockwarden.exceptions import ParseFailure

_LOCAL_KINDS = ("editable", "directory", "virtual", "path")
_TOML_LINE_RE = re.compile(r"line (\d+)")

# Packages without a static version (dynamic workspace members).
UNVERSIONED = "unversioned"


def source_spec(raw: Any) -> str | None:
    """Flatten a uv source table into a single comparable string."""
    if not isinstance(raw, dict):
        return None
    if "registry" in raw:
        return f"registry+{raw['registry']}"
    if "git" in raw:
        return f"git+{raw['git']}"
    if "url" in raw:
        return f"url+{raw['url']}"
    for kind in _LOCAL_KINDS:
        if kind in raw:
            return f"path+{raw[kind]}"
    return None


def _checksum(pkg: dict[str, Any]) -> str | None:
    sdist = pkg.get("sdist") or {}
    candidates = [sdist.get("hash")] + [w.get("hash") for w in pkg.get("wheels") or []]
    for value in candidates:
        if isinstance(value, str) and value:
            return value.split(":", 1)[1] if value.startswith("sha256:") else value
    return None


def _parse_source(pkg: dict[str, Any], name: str) -> tuple[PackageSource, dict[str, Any]]:
    raw = pkg.get("source")
    if not isinstance(raw, dict):
        raise ParseFailure(f"package {name} has no source table", ecosystem="uv", package=name)
    if "registry" in raw:
        return RegistrySource(str(raw["registry"]), _checksum(pkg)), {}
    if "url" in raw:
        return RegistrySource(str(raw["url"]), _checksum(pkg)), {}
    if "git" in raw:
        try:
            return parse_cargo_source(f"git+{raw['git']}"), {}
        except ValueError as exc:
            raise ParseFailure(f"{name}: {exc}", ecosystem="uv", package=name) from exc
    for kind in _LOCAL_KINDS:
        if kind in raw:
            return LocalSource(str(raw[kind])), {"uv.source_type": kind}
    raise ParseFailure(
        f"package {name} has an unsupported source {sorted(raw)}", ecosystem="uv", package=name
    )


def _parse_refs(raw: Any, owner: str, kind: DependencyKind) -> list[DependencyRef]:
    if not isinstance(raw, list):
        raise ParseFailure(f"dependencies of {owner} must be a list", ecosystem="uv", package=owner)
    refs: list[DependencyRef] = []
    for item in raw:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            raise ParseFailure(
                f"malformed dependency {item!r} in {owner}", ecosystem="uv", package=owner
            )
        refs.append(
            DependencyRef(
                name=item["name"],
                version=item.get("version"),
                source_spec=source_spec(item.get("source")),
                kind=kind,
            )
        )
    return refs


class UvLockAdapter:
    ecosystem = "uv"
    lockfile_names = ["uv.lock"]

    def parse(self, content: str) -> list[LockEntry]:
        try:
            data = tomllib.loads(content)
        except tomllib.TOMLDecodeError as exc:
            line = _TOML_LINE_RE.search(str(exc))
            raise ParseFailure(
                f"uv.lock is not valid TOML: {exc}",
                ecosystem="uv",
                line=int(line.group(1)) if line else None,
            ) from exc

        packages = data.get("package", [])
        if not isinstance(packages, list):
            raise ParseFailure("'package' must be an array of tables", ecosystem="uv")

        entries: list[LockEntry] = []
        for index, pkg in enumerate(packages):
            if not isinstance(pkg, dict) or not isinstance(pkg.get("name"), str):
                raise ParseFailure(f"package #{index} needs a 'name'", ecosystem="uv", index=index)
            name = pkg["name"]
            source, annotations = _parse_source(pkg, name)
            version = pkg.get("version")
            if version is None and isinstance(source, LocalSource):
                version = UNVERSIONED
            if not isinstance(version, str) or not version:
                raise ParseFailure(f"package {name} has no version", ecosystem="uv", package=name)
            if isinstance(source, RegistrySource) and not source.checksum:
                raise ParseFailure(
                    f"registry package {name} {version} has no sdist or wheel hash",
                    ecosystem="uv",
                    package=name,
                    version=version,
                )

            deps = _parse_refs(pkg.get("dependencies", []), name, DependencyKind.NORMAL)
            optional = pkg.get("optional-dependencies") or {}
            for extra in sorted(optional):
                deps.extend(_parse_refs(optional[extra], name, DependencyKind.NORMAL))
            dev = pkg.get("dev-dependencies") or {}
            for group in sorted(dev):
                deps.extend(_parse_refs(dev[group], name, DependencyKind.DEV))
            if optional:
                annotations["uv.extras"] = sorted(optional)
            if dev:
                annotations["uv.dev_groups"] = sorted(dev)

            entries.append(
                LockEntry(
                    name=name,
                    version=version,
                    source=source,
                    source_spec=source_spec(pkg["source"]),
                    dependencies=deps,
                    annotations=annotations,
                )
            )
        return entries

    def parse_enrichment(self, content: str) -> list[EnrichmentRecord]:
        return parse_generic_enrichment(load_enrichment_document(content))


register_adapter(UvLockAdapter())
