"""Environment-driven settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from lockwarden.exceptions import ConfigurationError

_DEFAULT_VENDOR_CONCURRENCY = 8
_DEFAULT_TOOL_TIMEOUT = 300.0
_DEFAULT_EPOCH_DIR = ".lockwarden/epochs"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer", field=name, value=raw) from None
    if value < 1:
        raise ConfigurationError(f"{name} must be >= 1", field=name, value=raw)
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number", field=name, value=raw) from None
    if value <= 0:
        raise ConfigurationError(f"{name} must be > 0", field=name, value=raw)
    return value


@dataclass
class Settings:
    """Runtime knobs shared by the CLI and the engines."""

    vendor_concurrency: int = _DEFAULT_VENDOR_CONCURRENCY
    tool_timeout: float = _DEFAULT_TOOL_TIMEOUT
    epoch_dir: Path = Path(_DEFAULT_EPOCH_DIR)
    cache_dir: Path | None = None

    @classmethod
    def from_env(cls) -> Settings:
        """Read settings from ``LOCKWARDEN_*`` environment variables.

        Supported variables:
            LOCKWARDEN_VENDOR_CONCURRENCY — parallel per-package digests (default: 8)
            LOCKWARDEN_TOOL_TIMEOUT       — external tool timeout in seconds (default: 300)
            LOCKWARDEN_EPOCH_DIR          — epoch store directory
            LOCKWARDEN_CACHE_DIR          — local source mirror used by ``vendor``
        """
        cache = os.environ.get("LOCKWARDEN_CACHE_DIR")
        return cls(
            vendor_concurrency=_env_int(
                "LOCKWARDEN_VENDOR_CONCURRENCY", _DEFAULT_VENDOR_CONCURRENCY
            ),
            tool_timeout=_env_float("LOCKWARDEN_TOOL_TIMEOUT", _DEFAULT_TOOL_TIMEOUT),
            epoch_dir=Path(os.environ.get("LOCKWARDEN_EPOCH_DIR") or _DEFAULT_EPOCH_DIR),
            cache_dir=Path(cache) if cache else None,
        )
