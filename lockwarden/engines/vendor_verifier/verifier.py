"""Vendor integrity verifier — offline materialization and verification.

Layout: ``<vendor>/<name>-<version>/`` per registry or git package (the
``cargo vendor --versioned-dirs`` layout). Local path packages are part of
the project itself and are not vendored.

Neither operation touches the network. A package that could only be
obtained remotely fails the call with :class:`OfflineViolation` before any
file is written.
"""

from __future__ import annotations

import asyncio
import hashlib
import shutil
import tarfile
import tempfile
from pathlib import Path, PurePosixPath
from typing import Callable

import structlog

from lockwarden.engines.graph_builder.models import (
    DependencyGraph,
    GitSource,
    LocalSource,
    PackageNode,
    RegistrySource,
)
from lockwarden.engines.vendor_verifier.checksum import (
    VCS_INFO_FILE,
    content_files,
    digest_of,
    file_digests,
    file_sha256,
    read_checksum_file,
    read_vcs_commit,
    write_checksum_file,
    write_vcs_info,
)
from lockwarden.engines.vendor_verifier.models import VendorEntry, VendorManifest
from lockwarden.exceptions import OfflineViolation, VendorDirectoryNotFound, VendorError

log = structlog.get_logger("lockwarden.engine.vendor")

DEFAULT_CONCURRENCY = 8

StopCheck = Callable[[], bool]


def package_dir_name(node: PackageNode) -> str:
    return f"{node.name}-{node.version}"


def vendored_nodes(graph: DependencyGraph) -> list[PackageNode]:
    """Registry and git nodes, each owning one ``<name>-<version>`` directory.

    Raises VendorError when two sources share a name and version.
    """
    nodes = [n for n in graph.nodes if not isinstance(n.source, LocalSource)]
    owners: dict[str, PackageNode] = {}
    for node in nodes:
        stem = package_dir_name(node)
        other = owners.setdefault(stem, node)
        if other is not node:
            raise VendorError(
                f"{other.identity} and {node.identity} would both vendor into {stem}/",
                directory=stem,
                packages=[str(other.identity), str(node.identity)],
            )
    return nodes


def _as_local_dir(path: Path | str, role: str) -> Path:
    text = str(path)
    if "://" in text:
        raise OfflineViolation(
            f"{role} must be a local directory, got {text}", path=text, operation=role
        )
    return Path(text)


def _file_url_path(url: str) -> Path | None:
    return Path(url[len("file://") :]) if url.startswith("file://") else None


# ── verification ─────────────────────────────────────────────────────────


def check_package(node: PackageNode, vendor_dir: Path) -> VendorEntry:
    """Verify one vendored package. Filesystem errors are recorded, not raised."""
    identity = node.identity
    expected_checksum = node.checksum if isinstance(node.source, RegistrySource) else None
    expected_commit = node.source.commit if isinstance(node.source, GitSource) else None
    pkg_dir = vendor_dir / package_dir_name(node)

    if not pkg_dir.is_dir():
        return VendorEntry(
            identity,
            present=False,
            expected_checksum=expected_checksum,
            expected_commit=expected_commit,
        )

    try:
        files = file_digests(pkg_dir)
        recorded = read_checksum_file(pkg_dir)
        actual_commit = read_vcs_commit(pkg_dir) if expected_commit is not None else None
    except OSError as exc:
        return VendorEntry(
            identity,
            present=True,
            expected_checksum=expected_checksum,
            expected_commit=expected_commit,
            error=f"{exc.strerror or exc}: {exc.filename or pkg_dir}",
        )

    digest = digest_of(content_files(files))
    error = None
    if recorded is not None:
        listed = recorded["files"]
        observed = files if VCS_INFO_FILE in listed else content_files(files)
        if listed != observed:
            error = "vendored files differ from the recorded file checksums"

    actual_checksum = None
    if expected_checksum is not None:
        # A package checksum is only trusted when the file map it was written with still holds.
        if recorded is not None and error is None and recorded.get("package"):
            actual_checksum = recorded["package"]
        else:
            actual_checksum = digest

    return VendorEntry(
        identity,
        present=True,
        expected_checksum=expected_checksum,
        actual_checksum=actual_checksum,
        expected_commit=expected_commit,
        actual_commit=actual_commit,
        tree_digest=digest,
        error=error,
    )


def compute_vendor_digest(entries: list[VendorEntry]) -> str:
    """Aggregate hash over the canonically ordered per-package tree digests."""
    digest = hashlib.sha256()
    for entry in sorted(entries, key=lambda e: e.identity.sort_key()):
        ident = entry.identity
        fields = (ident.name, ident.version, ident.source.describe(), entry.tree_digest or "-")
        digest.update(("\0".join(fields) + "\n").encode("utf-8"))
    return digest.hexdigest()


async def verify_async(
    graph: DependencyGraph,
    existing_dir: Path | str,
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    should_stop: StopCheck | None = None,
) -> VendorManifest:
    """Verify *existing_dir* against *graph* with bounded concurrency.

    Per-package digests run in worker threads; the manifest is assembled in
    canonical order so scheduling never shows in the output. When
    *should_stop* returns true, packages not yet started are recorded as
    unchecked and the manifest is marked incomplete.
    """
    vendor_dir = _as_local_dir(existing_dir, "vendor directory")
    if not vendor_dir.is_dir():
        raise VendorDirectoryNotFound(
            f"vendor directory not found: {vendor_dir}", path=str(vendor_dir)
        )

    sem = asyncio.Semaphore(max(1, concurrency))

    async def _check(node: PackageNode) -> VendorEntry:
        async with sem:
            if should_stop is not None and should_stop():
                return VendorEntry(node.identity, present=False, checked=False)
            return await asyncio.to_thread(check_package, node, vendor_dir)

    entries = list(await asyncio.gather(*(_check(n) for n in vendored_nodes(graph))))
    complete = all(e.checked for e in entries)
    manifest = VendorManifest(
        entries=tuple(entries),
        vendor_digest=compute_vendor_digest(entries),
        complete=complete,
    )

    for entry in manifest.missing:
        log.warning("vendor.missing", package=str(entry.identity))
    for entry in manifest.checksum_mismatches:
        log.warning(
            "vendor.checksum_mismatch",
            package=str(entry.identity),
            expected=entry.expected_checksum,
            actual=entry.actual_checksum,
        )
    for entry in manifest.commit_mismatches:
        log.warning(
            "vendor.commit_mismatch",
            package=str(entry.identity),
            expected=entry.expected_commit,
            actual=entry.actual_commit,
        )
    log.info(
        "vendor.verified",
        vendor_dir=str(vendor_dir),
        packages=len(manifest.entries),
        epoch_valid=manifest.epoch_valid,
        complete=manifest.complete,
        vendor_digest=manifest.vendor_digest,
    )
    return manifest


def verify(
    graph: DependencyGraph,
    existing_dir: Path | str,
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    should_stop: StopCheck | None = None,
) -> VendorManifest:
    """Synchronous wrapper around :func:`verify_async`."""
    return asyncio.run(
        verify_async(graph, existing_dir, concurrency=concurrency, should_stop=should_stop)
    )


# ── materialization ──────────────────────────────────────────────────────


def _locate(node: PackageNode, cache_dir: Path | None) -> Path | None:
    """Find a local copy: a ``.crate`` archive for registry packages, a tree for git."""
    stem = package_dir_name(node)
    candidates: list[Path] = []
    if isinstance(node.source, RegistrySource):
        if cache_dir is not None:
            candidates.append(cache_dir / f"{stem}.crate")
        registry_path = _file_url_path(node.source.registry_url)
        if registry_path is not None:
            candidates.append(registry_path / f"{stem}.crate")
        return next((c for c in candidates if c.is_file()), None)

    assert isinstance(node.source, GitSource)
    if cache_dir is not None:
        candidates.append(cache_dir / stem)
    repo_path = _file_url_path(node.source.repo_url)
    if repo_path is not None:
        candidates.append(repo_path)
    return next((c for c in candidates if c.is_dir()), None)


def _extract_crate(archive: Path, stem: str, dest: Path) -> None:
    """Extract ``<stem>/...`` members of a gzip'd crate into *dest*.

    Only regular files and directories below the package prefix are accepted.
    """
    with tarfile.open(archive, "r:gz") as tar:
        for member in tar.getmembers():
            parts = PurePosixPath(member.name).parts
            if not parts or parts[0] != stem or ".." in parts or member.name.startswith("/"):
                raise VendorError(
                    f"unsafe member {member.name!r} in {archive.name}", path=str(archive)
                )
            target = dest.joinpath(*parts[1:])
            if member.isdir():
                target.mkdir(parents=True, exist_ok=True)
            elif member.isfile():
                target.parent.mkdir(parents=True, exist_ok=True)
                source = tar.extractfile(member)
                assert source is not None
                with source, target.open("wb") as out:
                    shutil.copyfileobj(source, out)


def _materialize_one(node: PackageNode, origin: Path, target_dir: Path) -> None:
    pkg_dir = target_dir / package_dir_name(node)
    with tempfile.TemporaryDirectory(dir=target_dir) as staging:
        staged = Path(staging) / package_dir_name(node)
        if isinstance(node.source, RegistrySource):
            staged.mkdir()
            _extract_crate(origin, package_dir_name(node), staged)
            write_checksum_file(staged, file_sha256(origin))
        else:
            shutil.copytree(origin, staged, symlinks=True, ignore=shutil.ignore_patterns(".git"))
            if read_vcs_commit(staged) is None:
                write_vcs_info(staged, node.source.commit)  # type: ignore[union-attr]
            write_checksum_file(staged, None)
        if pkg_dir.exists():
            shutil.rmtree(pkg_dir)
        staged.rename(pkg_dir)


def materialize(
    graph: DependencyGraph,
    target_dir: Path | str,
    *,
    cache_dir: Path | None = None,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> VendorManifest:
    """Copy every vendorable package from local sources into *target_dir*.

    Registry packages come from ``<name>-<version>.crate`` archives in
    *cache_dir* or a ``file://`` registry; git packages from
    ``<cache_dir>/<name>-<version>/`` trees or a ``file://`` repository. The
    result is re-verified from disk, so the returned manifest reflects what
    was actually written.
    """
    target = _as_local_dir(target_dir, "vendor target")
    if cache_dir is not None:
        cache_dir = _as_local_dir(cache_dir, "source cache")

    nodes = vendored_nodes(graph)
    origins = {n.identity: _locate(n, cache_dir) for n in nodes}
    unavailable = sorted(str(i) for i, origin in origins.items() if origin is None)
    if unavailable:
        raise OfflineViolation(
            f"{len(unavailable)} package(s) are only available from the network",
            packages=unavailable,
            cache_dir=str(cache_dir) if cache_dir else None,
        )

    target.mkdir(parents=True, exist_ok=True)
    for node in nodes:
        origin = origins[node.identity]
        assert origin is not None
        try:
            _materialize_one(node, origin, target)
        except (OSError, tarfile.TarError) as exc:
            # Leave the package absent; verification reports it.
            log.error("vendor.materialize_failed", package=str(node.identity), error=str(exc))
    log.info("vendor.materialized", target=str(target), packages=len(nodes))
    return verify(graph, target, concurrency=concurrency)
