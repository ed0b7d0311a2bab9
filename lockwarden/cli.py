"""CLI entry point: lockwarden.

Subcommands:
    lockwarden build Cargo.lock -o graph.json          # Canonical dependency graph
    lockwarden classify graph.json -c tcs.toml          # Attach trust classifications
    lockwarden vendor graph.json vendor/ --cache-dir C  # Offline vendoring + verification
    lockwarden verify graph.json vendor/                # Verify an existing vendor dir
    lockwarden drift old.json new.json                  # Drift between two snapshots
    lockwarden epoch create Cargo.lock                  # Record a new epoch
    lockwarden epoch list                               # List recorded epochs
    lockwarden audit cargo-audit                        # Run an auditing tool offline
"""

from __future__ import annotations

import functools
import json
import sys
from pathlib import Path
from typing import Any

import click

from lockwarden.core.logging import setup_logging
from lockwarden.core.settings import Settings
from lockwarden.engines.drift_comparator import compare, compare_epochs, summarize
from lockwarden.engines.graph_builder import build_from_path, load_graph, serialize_graph
from lockwarden.engines.graph_builder.models import DependencyGraph
from lockwarden.engines.trust_classifier import (
    DEFAULT_PATTERNS,
    ClassificationConfig,
    build_config,
    classify_graph,
    load_classification_config,
)
from lockwarden.engines.vendor_verifier import VendorManifest, materialize, verify
from lockwarden.epoch import LocalEpochStore, create_epoch
from lockwarden.exceptions import EpochExistsError, LockwardenError
from lockwarden.tools.runner import run_tool

# Auditing tools runnable through ``lockwarden audit``; none of them fetch.
_AUDIT_COMMANDS = {
    "cargo-audit": ["cargo", "audit", "--json", "--no-fetch"],
    "cargo-vet": ["cargo", "vet", "--locked", "--frozen", "--output-format=json"],
}

_ERROR_EXIT = 2


def _reports_errors(func):
    """Turn LockwardenError into a coded message on stderr and exit status 2."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except LockwardenError as exc:
            click.echo(f"Error [{exc.code}]: {exc.message}", err=True)
            for key, value in sorted(exc.context.items()):
                if value is not None:
                    click.echo(f"  {key}: {value}", err=True)
            sys.exit(_ERROR_EXIT)

    return wrapper


def _write(data: bytes | str, output: str | None) -> None:
    if isinstance(data, str):
        data = data.encode("utf-8")
    if output:
        Path(output).write_bytes(data)
    else:
        click.echo(data)


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, sort_keys=True)


def _read_graph(path: str) -> DependencyGraph:
    return load_graph(Path(path).read_bytes())


def _split_assignment(value: str, option: str) -> tuple[str, str]:
    key, sep, rest = value.partition("=")
    if not sep or not key or not rest:
        raise click.BadParameter(f"expected KEY=CATEGORY, got {value!r}", param_hint=option)
    return key, rest


def _classification_config(
    config_path: str | None,
    overrides: tuple[str, ...],
    patterns: tuple[str, ...],
    default_patterns: bool,
) -> ClassificationConfig:
    base = load_classification_config(Path(config_path)) if config_path else ClassificationConfig()
    merged_overrides = dict(base.overrides)
    merged_overrides.update(_split_assignment(o, "--override") for o in overrides)
    merged_patterns: list[Any] = list(base.patterns)
    merged_patterns.extend(_split_assignment(p, "--pattern") for p in patterns)
    # Built-ins go last so operator patterns win ties.
    if default_patterns:
        merged_patterns.extend(DEFAULT_PATTERNS)
    return build_config(merged_overrides, merged_patterns)


def _classification_options(func):
    func = click.option(
        "--default-patterns", is_flag=True, help="Append the built-in pattern set"
    )(func)
    func = click.option(
        "--pattern", "patterns", multiple=True, metavar="REGEX=CATEGORY",
        help="Name pattern (full match), evaluated in the given order",
    )(func)
    func = click.option(
        "--override", "overrides", multiple=True, metavar="NAME=CATEGORY",
        help="Explicit per-package category",
    )(func)
    func = click.option(
        "-c", "--config", "config_path", type=click.Path(exists=True, dir_okay=False),
        help="Classification TOML ([overrides], [[patterns]])",
    )(func)
    return func


def _report_manifest(manifest: VendorManifest, output: str | None) -> None:
    _write(_dump(manifest.to_dict()), output)
    state = "valid" if manifest.epoch_valid else "INVALID"
    click.echo(
        f"Vendor manifest {state}: {len(manifest.entries)} packages, "
        f"{len(manifest.missing)} missing, {len(manifest.checksum_mismatches)} checksum "
        f"mismatches, {len(manifest.commit_mismatches)} commit mismatches",
        err=True,
    )
    if not manifest.epoch_valid:
        sys.exit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """lockwarden: deterministic dependency graphs, trust classification and vendoring integrity."""
    setup_logging("DEBUG" if verbose else None)
    try:
        ctx.obj = Settings.from_env()
    except LockwardenError as exc:
        click.echo(f"Error [{exc.code}]: {exc.message}", err=True)
        sys.exit(_ERROR_EXIT)


@main.command("build")
@click.argument("lockfile", type=click.Path(exists=True, dir_okay=False))
@click.option("-e", "--enrichment", type=click.Path(exists=True, dir_okay=False),
              help="Advisory metadata (e.g. cargo metadata JSON)")
@click.option("--ecosystem", default=None, help="Adapter name; detected from file name if omitted")
@click.option("--project-root", type=click.Path(exists=True, file_okay=False),
              help="Directory local path dependencies resolve against")
@click.option("--project-id", default=None, help="Project identifier recorded in the graph")
@click.option("-o", "--output", default=None, help="Output file (default: stdout)")
@_reports_errors
def build_cmd(
    lockfile: str,
    enrichment: str | None,
    ecosystem: str | None,
    project_root: str | None,
    project_id: str | None,
    output: str | None,
) -> None:
    """Build the canonical dependency graph of LOCKFILE."""
    graph = build_from_path(
        Path(lockfile),
        Path(enrichment) if enrichment else None,
        ecosystem=ecosystem,
        project_root=Path(project_root) if project_root else None,
        project_id=project_id,
    )
    for diagnostic in graph.diagnostics:
        click.echo(f"warning [{diagnostic.code}]: {diagnostic.message}", err=True)
    _write(serialize_graph(graph), output)


@main.command("classify")
@click.argument("graph_file", type=click.Path(exists=True, dir_okay=False))
@_classification_options
@click.option("-o", "--output", default=None, help="Output file (default: stdout)")
@_reports_errors
def classify_cmd(
    graph_file: str,
    config_path: str | None,
    overrides: tuple[str, ...],
    patterns: tuple[str, ...],
    default_patterns: bool,
    output: str | None,
) -> None:
    """Classify every node of GRAPH_FILE by trust criticality."""
    config = _classification_config(config_path, overrides, patterns, default_patterns)
    graph = classify_graph(_read_graph(graph_file), config)
    _write(serialize_graph(graph), output)
    tcs = [n for n in graph.nodes if n.is_tcs]
    click.echo(f"{len(tcs)} of {len(graph.nodes)} packages are trust-critical", err=True)
    for node in tcs:
        click.echo(f"  {node.name}@{node.version}: {node.classification.category.value}", err=True)


@main.command("vendor")
@click.argument("graph_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("target_dir", type=click.Path(file_okay=False))
@click.option("--cache-dir", type=click.Path(exists=True, file_okay=False), default=None,
              help="Local source mirror (.crate archives, git trees)")
@click.option("-o", "--output", default=None, help="Manifest output file (default: stdout)")
@click.pass_obj
@_reports_errors
def vendor_cmd(
    settings: Settings,
    graph_file: str,
    target_dir: str,
    cache_dir: str | None,
    output: str | None,
) -> None:
    """Materialize every dependency of GRAPH_FILE into TARGET_DIR, offline."""
    cache = Path(cache_dir) if cache_dir else settings.cache_dir
    manifest = materialize(
        _read_graph(graph_file),
        Path(target_dir),
        cache_dir=cache,
        concurrency=settings.vendor_concurrency,
    )
    _report_manifest(manifest, output)


@main.command("verify")
@click.argument("graph_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("vendor_dir", type=click.Path(file_okay=False))
@click.option("-o", "--output", default=None, help="Manifest output file (default: stdout)")
@click.pass_obj
@_reports_errors
def verify_cmd(settings: Settings, graph_file: str, vendor_dir: str, output: str | None) -> None:
    """Verify VENDOR_DIR against the checksums recorded in GRAPH_FILE."""
    manifest = verify(
        _read_graph(graph_file), Path(vendor_dir), concurrency=settings.vendor_concurrency
    )
    _report_manifest(manifest, output)


@main.command("drift")
@click.argument("previous")
@click.argument("current")
@click.option("--epochs", is_flag=True, help="Treat arguments as epoch ids from the store")
@click.option("--epoch-dir", type=click.Path(file_okay=False), default=None,
              help="Epoch store directory (default: LOCKWARDEN_EPOCH_DIR)")
@click.option("--format", "fmt", type=click.Choice(["text", "json"]), default="text")
@click.option("--fail-on-high", is_flag=True, help="Exit 1 if any drift is High priority")
@click.pass_obj
@_reports_errors
def drift_cmd(
    settings: Settings,
    previous: str,
    current: str,
    epochs: bool,
    epoch_dir: str | None,
    fmt: str,
    fail_on_high: bool,
) -> None:
    """Compare two graph snapshots (files, or epoch ids with --epochs)."""
    if epochs:
        store = LocalEpochStore(epoch_dir or settings.epoch_dir)
        records = compare_epochs(store.get(previous), store.get(current))
    else:
        records = compare(_read_graph(previous), _read_graph(current))
    summary = summarize(records)

    if fmt == "json":
        click.echo(_dump({"records": [r.to_dict() for r in records], "summary": summary.to_dict()}))
    else:
        for record in records:
            click.echo(record.describe())
        click.echo(
            f"{summary.total} changes: {summary.added} added, {summary.removed} removed, "
            f"{summary.version_changed} version, {summary.source_changed} source "
            f"({summary.high_priority} high priority)"
        )
    if fail_on_high and summary.has_high:
        sys.exit(1)


@main.group("epoch")
def epoch_group() -> None:
    """Record and list immutable dependency-state epochs."""


@epoch_group.command("create")
@click.argument("lockfile", type=click.Path(exists=True, dir_okay=False))
@click.option("-e", "--enrichment", type=click.Path(exists=True, dir_okay=False))
@click.option("--project-id", default=None)
@click.option("--vendor-dir", type=click.Path(exists=True, file_okay=False), default=None,
              help="Verify this vendor directory and record its digest")
@_classification_options
@click.option("--epoch-dir", type=click.Path(file_okay=False), default=None)
@click.pass_obj
@_reports_errors
def epoch_create(
    settings: Settings,
    lockfile: str,
    enrichment: str | None,
    project_id: str | None,
    vendor_dir: str | None,
    config_path: str | None,
    overrides: tuple[str, ...],
    patterns: tuple[str, ...],
    default_patterns: bool,
    epoch_dir: str | None,
) -> None:
    """Build, classify and (optionally) verify LOCKFILE, then store an epoch."""
    lock_path = Path(lockfile)
    config = _classification_config(config_path, overrides, patterns, default_patterns)
    graph = build_from_path(
        lock_path, Path(enrichment) if enrichment else None, project_id=project_id
    )
    graph = classify_graph(graph, config)

    vendor_digest = None
    if vendor_dir:
        manifest = verify(graph, Path(vendor_dir), concurrency=settings.vendor_concurrency)
        if not manifest.epoch_valid:
            click.echo("Error: vendor manifest is invalid; epoch not created", err=True)
            sys.exit(1)
        vendor_digest = manifest.vendor_digest

    epoch = create_epoch(
        graph,
        lock_path.read_bytes(),
        vendor_digest=vendor_digest,
        config_digest=config.digest(),
    )
    store = LocalEpochStore(epoch_dir or settings.epoch_dir)
    previous = store.latest(epoch.project_id)
    try:
        store.save(epoch)
    except EpochExistsError:
        click.echo(f"Unchanged: {epoch.id}")
        return

    click.echo(f"Created {epoch.id} ({len(graph.nodes)} packages)")
    if previous is not None:
        summary = summarize(compare_epochs(previous, epoch))
        click.echo(
            f"  since {previous.id}: {summary.total} changes, "
            f"{summary.high_priority} high priority"
        )


@epoch_group.command("list")
@click.option("--project-id", default=None)
@click.option("--epoch-dir", type=click.Path(file_okay=False), default=None)
@click.pass_obj
@_reports_errors
def epoch_list(settings: Settings, project_id: str | None, epoch_dir: str | None) -> None:
    """List stored epochs, oldest first."""
    epochs = LocalEpochStore(epoch_dir or settings.epoch_dir).list(project_id)
    if not epochs:
        click.echo("No epochs found.")
        return
    for epoch in epochs:
        vendor = epoch.vendor_digest[:12] if epoch.vendor_digest else "-"
        click.echo(
            f"{epoch.id}  {epoch.created_at}  {epoch.project_id}  "
            f"{len(epoch.graph_snapshot.nodes)} pkgs  graph={epoch.graph_digest[:12]}  "
            f"vendor={vendor}"
        )


@main.command("audit")
@click.argument("tool", type=click.Choice(sorted(_AUDIT_COMMANDS)))
@click.option("--project-root", type=click.Path(exists=True, file_okay=False), default=".")
@click.option("--timeout", type=float, default=None, help="Seconds (default: LOCKWARDEN_TOOL_TIMEOUT)")
@click.pass_obj
@_reports_errors
def audit_cmd(settings: Settings, tool: str, project_root: str, timeout: float | None) -> None:
    """Run an auditing TOOL offline and pass its output through unmodified."""
    result = run_tool(
        _AUDIT_COMMANDS[tool],
        timeout=timeout or settings.tool_timeout,
        cwd=project_root,
    )
    if result.status == "timeout":
        click.echo(f"Error: {tool} timed out after {timeout or settings.tool_timeout}s", err=True)
        sys.exit(_ERROR_EXIT)
    click.echo(result.stdout, nl=False)
    click.echo(result.stderr, nl=False, err=True)
    sys.exit(result.exit_code or 0)


if __name__ == "__main__":
    main()
