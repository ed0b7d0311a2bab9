"""Content digests of vendored package trees and their metadata files."""

from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from typing import Any

# Written next to each vendored package; never part of its own file map.
CHECKSUM_FILE = ".cargo-checksum.json"
# Shipped in published crates and listed by cargo vendor, but origin metadata
# rather than content: kept out of tree digests.
VCS_INFO_FILE = ".cargo_vcs_info.json"

_CHUNK = 1 << 16


def file_sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def file_digests(root: Path) -> dict[str, str]:
    """Map POSIX relative path to sha256 for every file under *root*.

    Symlinks are not followed; their digest covers the link target text.
    Only the checksum file at the package root is excluded, matching the
    ``files`` map that ``cargo vendor`` records.
    """
    digests: dict[str, str] = {}
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        base = Path(dirpath)
        for name in sorted(filenames) + [d for d in dirnames if (base / d).is_symlink()]:
            path = base / name
            rel = path.relative_to(root).as_posix()
            if rel == CHECKSUM_FILE:
                continue
            if path.is_symlink():
                target = os.readlink(path)
                digests[rel] = hashlib.sha256(f"symlink:{target}".encode()).hexdigest()
            else:
                digests[rel] = file_sha256(path)
    return dict(sorted(digests.items()))


def digest_of(files: dict[str, str]) -> str:
    digest = hashlib.sha256()
    for rel in sorted(files):
        digest.update(f"{rel}\0{files[rel]}\n".encode("utf-8"))
    return digest.hexdigest()


def content_files(files: dict[str, str]) -> dict[str, str]:
    return {rel: digest for rel, digest in files.items() if rel != VCS_INFO_FILE}


def tree_digest(root: Path) -> str:
    """Single sha256 over the canonically ordered (path, file digest) list."""
    return digest_of(content_files(file_digests(root)))


def read_checksum_file(package_dir: Path) -> dict[str, Any] | None:
    """Return ``{"files": {...}, "package": str | None}`` or None if absent/unreadable."""
    path = package_dir / CHECKSUM_FILE
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict) or not isinstance(data.get("files"), dict):
        return None
    return data


def write_checksum_file(package_dir: Path, package_checksum: str | None) -> dict[str, str]:
    files = file_digests(package_dir)
    payload = {"files": files, "package": package_checksum}
    (package_dir / CHECKSUM_FILE).write_text(
        json.dumps(payload, sort_keys=True, separators=(",", ":")), encoding="utf-8"
    )
    return files


def read_vcs_commit(package_dir: Path) -> str | None:
    """The commit a git checkout was vendored from (``{"git": {"sha1": ...}}``)."""
    path = package_dir / VCS_INFO_FILE
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    git = data.get("git") if isinstance(data, dict) else None
    sha1 = git.get("sha1") if isinstance(git, dict) else None
    return sha1 if isinstance(sha1, str) else None


def write_vcs_info(package_dir: Path, commit: str) -> None:
    (package_dir / VCS_INFO_FILE).write_text(
        json.dumps({"git": {"sha1": commit}}, sort_keys=True), encoding="utf-8"
    )
