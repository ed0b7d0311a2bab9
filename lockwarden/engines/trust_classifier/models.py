"""Data models for trust classification — categories, signals and results."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Mapping, Union


class TcsCategory(str, Enum):
    CRYPTOGRAPHY = "cryptography"
    AUTHENTICATION = "authentication"
    SERIALIZATION = "serialization"
    TRANSPORT = "transport"
    RANDOM = "random"
    BUILD_TIME_EXECUTION = "build_time_execution"


@dataclass(frozen=True)
class CustomCategory:
    """Operator-defined category, written ``custom:<name>`` in configuration."""

    name: str

    @property
    def value(self) -> str:
        return f"custom:{self.name}"


Category = Union[TcsCategory, CustomCategory]


def parse_category(value: Category | str) -> Category:
    """Parse ``"cryptography"``, ``"Build-Time-Execution"`` or ``"custom:tls"``.

    Raises ValueError for anything else.
    """
    if isinstance(value, (TcsCategory, CustomCategory)):
        return value
    if not isinstance(value, str):
        raise ValueError(f"category must be a string, got {type(value).__name__}")
    text = value.strip()
    if text.lower().startswith("custom:"):
        name = text[len("custom:") :].strip()
        if not name:
            raise ValueError("custom category needs a name: 'custom:<name>'")
        return CustomCategory(name)
    normalized = text.lower().replace("-", "_").replace(" ", "_")
    try:
        return TcsCategory(normalized)
    except ValueError:
        allowed = ", ".join(c.value for c in TcsCategory)
        raise ValueError(
            f"unknown category {value!r} (expected one of {allowed} or custom:<name>)"
        ) from None


# ── Signals ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ExplicitOverride:
    name: str

    tag: ClassVar[str] = "explicit_override"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.tag, "name": self.name}

    def describe(self) -> str:
        return f"explicit override for package {self.name}"


@dataclass(frozen=True)
class BuildRoleUsage:
    kind: str

    tag: ClassVar[str] = "build_role_usage"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.tag, "kind": self.kind}

    def describe(self) -> str:
        return f"executes code at build time ({self.kind})"


@dataclass(frozen=True)
class NamePattern:
    pattern: str

    tag: ClassVar[str] = "name_pattern"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.tag, "pattern": self.pattern}

    def describe(self) -> str:
        return f"name matches pattern {self.pattern}"


@dataclass(frozen=True)
class MetadataTag:
    source_field: str

    tag: ClassVar[str] = "metadata_tag"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.tag, "source_field": self.source_field}

    def describe(self) -> str:
        return f"metadata field {self.source_field} matched"


ClassificationSignal = Union[ExplicitOverride, BuildRoleUsage, NamePattern, MetadataTag]

_SIGNAL_TYPES: dict[str, type] = {
    ExplicitOverride.tag: ExplicitOverride,
    BuildRoleUsage.tag: BuildRoleUsage,
    NamePattern.tag: NamePattern,
    MetadataTag.tag: MetadataTag,
}


def signal_from_dict(data: Mapping[str, Any]) -> ClassificationSignal:
    payload = dict(data)
    tag = payload.pop("type", None)
    cls = _SIGNAL_TYPES.get(tag)  # type: ignore[arg-type]
    if cls is None:
        raise ValueError(f"unknown signal type: {tag!r}")
    return cls(**payload)


# ── Results ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Tcs:
    """Trust-critical classification. Always explained by at least one signal."""

    category: Category
    signals: tuple[ClassificationSignal, ...]

    is_tcs: ClassVar[bool] = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "signals", tuple(self.signals))
        if not self.signals:
            raise ValueError("a Tcs classification requires at least one signal")

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "tcs",
            "category": self.category.value,
            "signals": [s.to_dict() for s in self.signals],
        }


@dataclass(frozen=True)
class Mechanical:
    signals: tuple[ClassificationSignal, ...] = ()

    is_tcs: ClassVar[bool] = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "signals", tuple(self.signals))

    def to_dict(self) -> dict[str, Any]:
        return {"type": "mechanical", "signals": [s.to_dict() for s in self.signals]}


ClassificationResult = Union[Tcs, Mechanical]


def classification_from_dict(data: Mapping[str, Any]) -> ClassificationResult:
    signals = tuple(signal_from_dict(s) for s in data.get("signals", ()))
    kind = data.get("type")
    if kind == "tcs":
        return Tcs(parse_category(data["category"]), signals)
    if kind == "mechanical":
        return Mechanical(signals)
    raise ValueError(f"unknown classification type: {kind!r}")
