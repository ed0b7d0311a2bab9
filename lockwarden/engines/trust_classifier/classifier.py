"""Trust classifier — ordered-rule evaluation, first match wins.

Pure functions: no I/O, no randomized iteration. The same node and the same
configuration always produce the same category and signal list.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Iterable, Mapping

import structlog

from lockwarden.engines.graph_builder.canonical import finalize_graph
from lockwarden.engines.graph_builder.models import DependencyGraph, DependencyKind, PackageNode
from lockwarden.engines.trust_classifier.config import (
    ClassificationConfig,
    PatternRule,
    build_config,
)
from lockwarden.engines.trust_classifier.models import (
    BuildRoleUsage,
    ClassificationResult,
    ClassificationSignal,
    ExplicitOverride,
    Mechanical,
    MetadataTag,
    NamePattern,
    Tcs,
    TcsCategory,
)

log = structlog.get_logger("lockwarden.engine.classifier")

# Annotation flag → BuildRoleUsage kind, in evaluation order.
_BUILD_ROLE_FLAGS = (
    ("role.proc_macro", "proc_macro"),
    ("role.build_script", "build_script"),
)


def _build_role_signals(node: PackageNode) -> list[ClassificationSignal]:
    signals: list[ClassificationSignal] = []
    for key, kind in _BUILD_ROLE_FLAGS:
        if node.annotations.get(key) is True:
            signals.append(BuildRoleUsage(kind))
    if (
        node.dependency_kind is DependencyKind.BUILD
        or node.annotations.get("role.dependency_kind") == "build"
    ):
        signals.append(BuildRoleUsage("build_dependency"))
    return signals


def _annotation_values(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [v for v in value if isinstance(v, str)]
    return []


def _match_pattern(rule: PatternRule, node: PackageNode) -> ClassificationSignal | None:
    if rule.match == "name":
        return NamePattern(rule.pattern) if rule.regex.fullmatch(node.name) else None
    for value in _annotation_values(node.annotations.get(rule.field)):
        if rule.regex.fullmatch(value):
            return MetadataTag(rule.field)  # type: ignore[arg-type]
    return None


def classify_with_config(node: PackageNode, config: ClassificationConfig) -> ClassificationResult:
    """Classify *node* against an already-validated configuration."""
    # Rule 1: explicit override by exact package name.
    category = config.override_for(node.name)
    if category is not None:
        return Tcs(category, (ExplicitOverride(node.name),))

    # Rule 2: code that runs at build or macro-expansion time.
    signals = _build_role_signals(node)
    if signals:
        return Tcs(TcsCategory.BUILD_TIME_EXECUTION, tuple(signals))

    # Rule 3: operator patterns in configured order.
    for rule in config.patterns:
        signal = _match_pattern(rule, node)
        if signal is not None:
            return Tcs(rule.parsed_category, (signal,))

    return Mechanical()


def classify(
    node: PackageNode,
    overrides: Mapping[str, Any] | None = None,
    patterns: Iterable[Any] | None = None,
) -> ClassificationResult:
    """Classify a single node.

    *overrides* maps exact package names to categories; *patterns* is an
    ordered list of :class:`PatternRule`, rule dicts, or ``(regex, category)``
    tuples. The configuration is validated before any rule is evaluated, so a
    malformed entry raises :class:`ConfigurationError` instead of being skipped.
    """
    return classify_with_config(node, build_config(overrides, patterns))


def classify_graph(graph: DependencyGraph, config: ClassificationConfig) -> DependencyGraph:
    """Return a copy of *graph* with every node classified and the digest resealed."""
    nodes = [replace(n, classification=classify_with_config(n, config)) for n in graph.nodes]
    classified = finalize_graph(graph.project_id, nodes, graph.edges, graph.diagnostics)
    log.info(
        "classifier.graph_classified",
        project_id=classified.project_id,
        nodes=len(nodes),
        tcs=sum(1 for n in nodes if n.is_tcs),
        config_digest=config.digest(),
    )
    return classified
