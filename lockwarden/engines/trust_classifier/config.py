"""Classification configuration — explicit overrides and ordered pattern rules.

Everything here is validated eagerly: a malformed rule fails the whole
configuration rather than being skipped, since a skipped rule would
silently widen the Mechanical default.
"""

from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import Any, Iterable, Literal, Mapping

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from pydantic import (
    BaseModel,
    ConfigDict,
    PrivateAttr,
    ValidationError,
    field_validator,
    model_validator,
)

from lockwarden.engines.graph_builder.canonical import canonical_json, sha256_hex
from lockwarden.engines.graph_builder.enrichment import ANNOTATION_KEY_RE
from lockwarden.engines.trust_classifier.models import Category, parse_category
from lockwarden.exceptions import ConfigurationError


class PatternRule(BaseModel):
    model_config = ConfigDict(extra="forbid")

    match: Literal["name", "annotation"] = "name"
    pattern: str
    category: str
    field: str | None = None
    description: str | None = None

    _regex: re.Pattern[str] = PrivateAttr()

    @field_validator("pattern")
    @classmethod
    def _compile(cls, v: str) -> str:
        if not v:
            raise ValueError("pattern must not be empty")
        try:
            re.compile(v)
        except re.error as exc:
            raise ValueError(f"invalid regular expression {v!r}: {exc}") from exc
        return v

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, v: Any) -> str:
        return parse_category(v).value

    @model_validator(mode="after")
    def _check_field(self) -> PatternRule:
        if self.match == "annotation":
            if not self.field:
                raise ValueError("annotation patterns need a 'field'")
            if not ANNOTATION_KEY_RE.match(self.field):
                raise ValueError(f"field {self.field!r} is not a namespaced annotation key")
        elif self.field is not None:
            raise ValueError("'field' is only valid for annotation patterns")
        return self

    def model_post_init(self, __context: Any) -> None:
        self._regex = re.compile(self.pattern)

    @property
    def regex(self) -> re.Pattern[str]:
        return self._regex

    @property
    def parsed_category(self) -> Category:
        return parse_category(self.category)


class ClassificationConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    overrides: dict[str, str] = {}
    patterns: list[PatternRule] = []

    @field_validator("overrides", mode="before")
    @classmethod
    def _normalize_overrides(cls, v: Any) -> Any:
        if not isinstance(v, Mapping):
            return v
        normalized: dict[str, str] = {}
        for name, category in v.items():
            if not isinstance(name, str) or not name.strip():
                raise ValueError("override package names must be non-empty strings")
            try:
                normalized[name] = parse_category(category).value
            except ValueError as exc:
                raise ValueError(f"override for {name!r}: {exc}") from None
        return normalized

    def override_for(self, name: str) -> Category | None:
        value = self.overrides.get(name)
        return parse_category(value) if value is not None else None

    def digest(self) -> str:
        """Content digest of the configuration, recorded on epochs as ``config_digest``."""
        data = self.model_dump(mode="json", exclude={"patterns": {"__all__": {"description"}}})
        return sha256_hex(canonical_json(data))


def _error_location(exc: ValidationError) -> str:
    first = exc.errors()[0]
    return ".".join(str(part) for part in first.get("loc", ())) or "<root>"


def _pattern_text(value: Any) -> Any:
    if not isinstance(value, re.Pattern):
        return value
    # Rules are stored as text; an IGNORECASE compile survives as an inline flag.
    return f"(?i){value.pattern}" if value.flags & re.IGNORECASE else value.pattern


def _coerce_pattern(raw: Any) -> Any:
    # ("regex", "category") shorthand is a name matcher.
    if isinstance(raw, tuple) and len(raw) == 2:
        return {"match": "name", "pattern": _pattern_text(raw[0]), "category": raw[1]}
    if isinstance(raw, PatternRule):
        return raw.model_dump()
    return raw


def build_config(
    overrides: Mapping[str, Any] | None = None,
    patterns: Iterable[Any] | None = None,
) -> ClassificationConfig:
    """Validate overrides and patterns into a :class:`ClassificationConfig`.

    Patterns may be :class:`PatternRule` objects, dicts, or ``(regex, category)``
    tuples; their order is preserved. Raises :class:`ConfigurationError`.
    """
    try:
        return ClassificationConfig(
            overrides=dict(overrides or {}),
            patterns=[_coerce_pattern(p) for p in patterns or ()],
        )
    except ValidationError as exc:
        raise ConfigurationError(
            f"invalid classification configuration: {exc.errors()[0]['msg']}",
            field=_error_location(exc),
            errors=len(exc.errors()),
        ) from exc


def load_classification_config(path: Path) -> ClassificationConfig:
    """Load ``[overrides]`` and ``[[patterns]]`` from a TOML file."""
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(f"cannot read {path}: {exc.strerror}", path=str(path)) from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"{path} is not valid TOML: {exc}", path=str(path)) from exc

    unknown = sorted(set(data) - {"overrides", "patterns"})
    if unknown:
        raise ConfigurationError(
            f"unknown configuration sections: {', '.join(unknown)}",
            path=str(path),
            field=unknown[0],
        )
    return build_config(data.get("overrides"), data.get("patterns"))


DEFAULT_PATTERNS: list[PatternRule] = [
    PatternRule(pattern=r".*sha2.*", category="cryptography", description="SHA-2 hash functions"),
    PatternRule(pattern=r".*aes.*", category="cryptography", description="AES ciphers"),
    PatternRule(pattern=r"ring", category="cryptography", description="ring crypto library"),
    PatternRule(pattern=r".*jwt.*", category="authentication", description="JWT handling"),
    PatternRule(pattern=r".*oauth.*", category="authentication", description="OAuth"),
    PatternRule(pattern=r"serde", category="serialization", description="serde framework"),
    PatternRule(pattern=r".*toml.*", category="serialization", description="TOML"),
    PatternRule(pattern=r"tokio", category="transport", description="tokio runtime"),
    PatternRule(pattern=r"hyper", category="transport", description="HTTP client/server"),
    PatternRule(pattern=r".*diesel.*", category="custom:database", description="Diesel ORM"),
    PatternRule(pattern=r".*sqlx.*", category="custom:database", description="SQLx toolkit"),
    PatternRule(pattern=r"rand", category="random", description="random number generation"),
]
