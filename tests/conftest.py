"""Shared pytest fixtures for lockwarden tests."""

from __future__ import annotations

import pytest

from lockwarden.engines.graph_builder import build

CRATES_IO = "https://github.com/rust-lang/crates.io-index"
SERDE_SUM = "c1" * 32
RING_SUM = "c2" * 32


@pytest.fixture
def serde_ring_lock() -> str:
    """Two registry packages, no workspace root."""
    return (
        "version = 4\n"
        "\n"
        "[[package]]\n"
        'name = "serde"\n'
        'version = "1.0.210"\n'
        f'source = "registry+{CRATES_IO}"\n'
        f'checksum = "{SERDE_SUM}"\n'
        "\n"
        "[[package]]\n"
        'name = "ring"\n'
        'version = "0.17.8"\n'
        f'source = "registry+{CRATES_IO}"\n'
        f'checksum = "{RING_SUM}"\n'
    )


@pytest.fixture
def serde_ring_graph(serde_ring_lock, tmp_path):
    return build(serde_ring_lock, project_root=tmp_path, project_id="demo")


@pytest.fixture
def workspace_lock() -> str:
    """A workspace root with normal, build and dev dependencies."""
    return (
        "version = 3\n"
        "\n"
        "[[package]]\n"
        'name = "app"\n'
        'version = "0.1.0"\n'
        "dependencies = [\n"
        ' "cc",\n'
        ' "serde 1.0.210",\n'
        ' "tempfile",\n'
        "]\n"
        "\n"
        "[[package]]\n"
        'name = "cc"\n'
        'version = "1.0.90"\n'
        f'source = "registry+{CRATES_IO}"\n'
        f'checksum = "{"cc" * 32}"\n'
        "\n"
        "[[package]]\n"
        'name = "serde"\n'
        'version = "1.0.210"\n'
        f'source = "registry+{CRATES_IO}"\n'
        f'checksum = "{SERDE_SUM}"\n'
        "\n"
        "[[package]]\n"
        'name = "tempfile"\n'
        'version = "3.10.1"\n'
        f'source = "registry+{CRATES_IO}"\n'
        f'checksum = "{"ef" * 32}"\n'
    )


@pytest.fixture
def workspace_metadata() -> str:
    """``cargo metadata`` output matching :func:`workspace_lock`."""
    return """{
  "workspace_members": ["path+file:///work/app#0.1.0"],
  "packages": [
    {"name": "app", "version": "0.1.0", "id": "path+file:///work/app#0.1.0",
     "source": null, "features": {}, "targets": [{"kind": ["bin"]}]},
    {"name": "cc", "version": "1.0.90", "id": "cc-id",
     "source": "registry+https://github.com/rust-lang/crates.io-index",
     "license": "MIT OR Apache-2.0", "keywords": ["build-dependencies", "compiler"],
     "categories": ["development-tools::build-utils"], "features": {"parallel": []},
     "targets": [{"kind": ["lib"]}]},
    {"name": "serde", "version": "1.0.210", "id": "serde-id",
     "source": "registry+https://github.com/rust-lang/crates.io-index",
     "keywords": ["serde", "serialization", "no_std"], "edition": "2018",
     "features": {"derive": [], "std": []},
     "targets": [{"kind": ["lib"]}, {"kind": ["custom-build"]}]},
    {"name": "tempfile", "version": "3.10.1", "id": "tempfile-id",
     "source": "registry+https://github.com/rust-lang/crates.io-index",
     "features": {}, "targets": [{"kind": ["lib"]}]}
  ],
  "resolve": {
    "root": "path+file:///work/app#0.1.0",
    "nodes": [
      {"id": "path+file:///work/app#0.1.0", "features": [],
       "deps": [
         {"pkg": "cc-id", "dep_kinds": [{"kind": "build"}]},
         {"pkg": "serde-id", "dep_kinds": [{"kind": null}]},
         {"pkg": "tempfile-id", "dep_kinds": [{"kind": "dev"}]}
       ]},
      {"id": "serde-id", "features": ["std", "derive"], "deps": []},
      {"id": "cc-id", "features": [], "deps": []},
      {"id": "tempfile-id", "features": [], "deps": []}
    ]
  }
}"""
