"""Trust classifier engine — deterministic, explainable TCS classification."""

from lockwarden.engines.trust_classifier.classifier import (
    classify,
    classify_graph,
    classify_with_config,
)
from lockwarden.engines.trust_classifier.config import (
    DEFAULT_PATTERNS,
    ClassificationConfig,
    PatternRule,
    build_config,
    load_classification_config,
)
from lockwarden.engines.trust_classifier.models import (
    BuildRoleUsage,
    ClassificationResult,
    CustomCategory,
    ExplicitOverride,
    Mechanical,
    MetadataTag,
    NamePattern,
    Tcs,
    TcsCategory,
    parse_category,
)

__all__ = [
    "DEFAULT_PATTERNS",
    "BuildRoleUsage",
    "ClassificationConfig",
    "ClassificationResult",
    "CustomCategory",
    "ExplicitOverride",
    "Mechanical",
    "MetadataTag",
    "NamePattern",
    "PatternRule",
    "Tcs",
    "TcsCategory",
    "build_config",
    "classify",
    "classify_graph",
    "classify_with_config",
    "load_classification_config",
    "parse_category",
]
