"""Lockfile adapters — auto-registered on import."""

from lockwarden.engines.graph_builder.adapters import (
    cargo_lock,  # noqa: F401
    uv_lock,  # noqa: F401
)
