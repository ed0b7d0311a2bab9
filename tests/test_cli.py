"""Tests for CLI commands, driven through click's CliRunner."""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from unittest.mock import patch

import click
import pytest
from click.testing import CliRunner

from lockwarden.cli import _split_assignment, main
from lockwarden.engines.graph_builder import load_graph
from lockwarden.engines.vendor_verifier.checksum import write_checksum_file
from lockwarden.tools.runner import ToolResult

SERDE_SUM = "c1" * 32
RING_SUM = "c2" * 32


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def _detach_log_handlers():
    # Root handlers configured by the CLI point at the runner's captured streams.
    yield
    logging.getLogger().handlers.clear()


@pytest.fixture
def lockfile(tmp_path, serde_ring_lock) -> Path:
    path = tmp_path / "Cargo.lock"
    path.write_text(serde_ring_lock)
    return path


@pytest.fixture
def graph_file(runner, lockfile, tmp_path) -> Path:
    out = tmp_path / "graph.json"
    result = runner.invoke(main, ["build", str(lockfile), "--project-id", "demo", "-o", str(out)])
    assert result.exit_code == 0, result.output
    return out


def _created_id(output: str) -> str:
    match = re.search(r"Created (epoch-[0-9a-f]+)", output)
    assert match, output
    return match.group(1)


def _vendor(root: Path, *packages: tuple[str, str]) -> Path:
    for stem, checksum in packages:
        pkg = root / stem
        pkg.mkdir(parents=True)
        (pkg / "lib.rs").write_text(f"// {stem}\n")
        write_checksum_file(pkg, checksum)
    return root


# ── Helpers ──


class TestSplitAssignment:
    def test_valid(self):
        assert _split_assignment("ring=cryptography", "--override") == ("ring", "cryptography")

    def test_regex_with_equals_in_category_side(self):
        assert _split_assignment(".*jwt.*=custom:a=b", "--pattern") == (".*jwt.*", "custom:a=b")

    @pytest.mark.parametrize("value", ["ring", "=cryptography", "ring="])
    def test_invalid(self, value):
        with pytest.raises(click.BadParameter):
            _split_assignment(value, "--override")


# ── build ──


class TestBuildCommand:
    def test_writes_graph(self, graph_file):
        graph = load_graph(graph_file.read_bytes())
        assert graph.project_id == "demo"
        assert [n.name for n in graph.nodes] == ["ring", "serde"]

    def test_stdout(self, runner, lockfile):
        result = runner.invoke(main, ["build", str(lockfile)])
        assert result.exit_code == 0
        assert '"nodes"' in result.output

    def test_byte_identical_rebuilds(self, runner, lockfile, tmp_path):
        outs = [tmp_path / "a.json", tmp_path / "b.json"]
        for out in outs:
            runner.invoke(main, ["build", str(lockfile), "-o", str(out)])
        assert outs[0].read_bytes() == outs[1].read_bytes()

    def test_parse_failure_exit_code(self, runner, tmp_path):
        bad = tmp_path / "Cargo.lock"
        bad.write_text("[[package]\n")
        result = runner.invoke(main, ["build", str(bad)])
        assert result.exit_code == 2
        assert "PARSE_FAILURE" in result.output

    def test_enrichment_diagnostics_reported(self, runner, lockfile, tmp_path):
        enrichment = tmp_path / "meta.json"
        enrichment.write_text(json.dumps({"packages": [{"name": "ghost", "version": "1.0.0"}]}))
        out = tmp_path / "graph.json"
        result = runner.invoke(main, ["build", str(lockfile), "-e", str(enrichment), "-o", str(out)])
        assert result.exit_code == 0
        assert "ENRICHMENT_UNKNOWN_PACKAGE" in result.output

    def test_invalid_settings(self, runner, lockfile):
        with patch.dict(os.environ, {"LOCKWARDEN_VENDOR_CONCURRENCY": "0"}):
            result = runner.invoke(main, ["build", str(lockfile)])
        assert result.exit_code == 2
        assert "CONFIGURATION_INVALID" in result.output


# ── classify ──


class TestClassifyCommand:
    def test_override(self, runner, graph_file, tmp_path):
        out = tmp_path / "classified.json"
        result = runner.invoke(
            main,
            ["classify", str(graph_file), "--override", "ring=cryptography", "-o", str(out)],
        )
        assert result.exit_code == 0, result.output
        assert "1 of 2 packages are trust-critical" in result.output
        graph = load_graph(out.read_bytes())
        assert graph.find("ring")[0].is_tcs
        assert not graph.find("serde")[0].is_tcs

    def test_config_file_and_default_patterns(self, runner, graph_file, tmp_path):
        config = tmp_path / "tcs.toml"
        config.write_text('[overrides]\nring = "cryptography"\n')
        out = tmp_path / "classified.json"
        result = runner.invoke(
            main,
            ["classify", str(graph_file), "-c", str(config), "--default-patterns", "-o", str(out)],
        )
        assert result.exit_code == 0, result.output
        graph = load_graph(out.read_bytes())
        assert graph.find("serde")[0].classification.category.value == "serialization"

    def test_invalid_pattern(self, runner, graph_file):
        result = runner.invoke(main, ["classify", str(graph_file), "--pattern", "(=random"])
        assert result.exit_code == 2
        assert "CONFIGURATION_INVALID" in result.output


# ── verify / vendor ──


class TestVerifyCommand:
    def test_valid(self, runner, graph_file, tmp_path):
        vendor = _vendor(tmp_path / "vendor", ("serde-1.0.210", SERDE_SUM), ("ring-0.17.8", RING_SUM))
        out = tmp_path / "manifest.json"
        result = runner.invoke(main, ["verify", str(graph_file), str(vendor), "-o", str(out)])
        assert result.exit_code == 0, result.output
        assert "Vendor manifest valid" in result.output
        assert json.loads(out.read_text())["epoch_valid"] is True

    def test_missing_package_exits_1(self, runner, graph_file, tmp_path):
        vendor = _vendor(tmp_path / "vendor", ("serde-1.0.210", SERDE_SUM))
        out = tmp_path / "manifest.json"
        result = runner.invoke(main, ["verify", str(graph_file), str(vendor), "-o", str(out)])
        assert result.exit_code == 1
        assert "1 missing" in result.output
        manifest = json.loads(out.read_text())
        assert manifest["epoch_valid"] is False

    def test_missing_directory_exits_2(self, runner, graph_file, tmp_path):
        result = runner.invoke(main, ["verify", str(graph_file), str(tmp_path / "nope")])
        assert result.exit_code == 2
        assert "VENDOR_DIRECTORY_NOT_FOUND" in result.output

    def test_vendor_offline_violation(self, runner, graph_file, tmp_path):
        cache = tmp_path / "cache"
        cache.mkdir()
        result = runner.invoke(
            main, ["vendor", str(graph_file), str(tmp_path / "vendor"), "--cache-dir", str(cache)]
        )
        assert result.exit_code == 2
        assert "OFFLINE_VIOLATION" in result.output
        assert not (tmp_path / "vendor").exists()


# ── drift ──


class TestDriftCommand:
    def _graph(self, runner, tmp_path, lock_text, name) -> Path:
        lock = tmp_path / name / "Cargo.lock"
        lock.parent.mkdir()
        lock.write_text(lock_text)
        out = tmp_path / f"{name}.json"
        result = runner.invoke(main, ["build", str(lock), "-o", str(out)])
        assert result.exit_code == 0, result.output
        return out

    def test_text_report(self, runner, tmp_path, serde_ring_lock):
        before = self._graph(runner, tmp_path, serde_ring_lock, "before")
        after = self._graph(
            runner, tmp_path, serde_ring_lock.replace("0.17.8", "0.17.9"), "after"
        )
        result = runner.invoke(main, ["drift", str(before), str(after)])
        assert result.exit_code == 0
        assert "ring: version_changed 0.17.8" in result.output
        assert "1 changes: 0 added, 0 removed, 1 version, 0 source (0 high priority)" in (
            result.output
        )

    def test_json_and_fail_on_high(self, runner, tmp_path, serde_ring_lock):
        before = self._graph(runner, tmp_path, serde_ring_lock, "before")
        swapped = serde_ring_lock.replace(
            'source = "registry+https://github.com/rust-lang/crates.io-index"\n'
            f'checksum = "{SERDE_SUM}"\n',
            f'source = "git+https://github.com/serde-rs/serde#{"a1" * 20}"\n',
        )
        after = self._graph(runner, tmp_path, swapped, "after")
        result = runner.invoke(
            main, ["drift", str(before), str(after), "--format", "json", "--fail-on-high"]
        )
        assert result.exit_code == 1
        report = json.loads(result.output)
        assert report["summary"]["high_risk_source_changes"] == 1
        assert report["records"][0]["kind"] == "source_changed"


# ── epoch ──


class TestEpochCommands:
    def test_create_and_list(self, runner, lockfile, tmp_path):
        epochs = tmp_path / "epochs"
        args = ["epoch", "create", str(lockfile), "--project-id", "demo",
                "--override", "ring=cryptography", "--epoch-dir", str(epochs)]

        first = runner.invoke(main, args)
        assert first.exit_code == 0, first.output
        assert "Created epoch-" in first.output
        assert "(2 packages)" in first.output

        again = runner.invoke(main, args)
        assert again.exit_code == 0
        assert "Unchanged: epoch-" in again.output

        listing = runner.invoke(main, ["epoch", "list", "--epoch-dir", str(epochs)])
        assert listing.exit_code == 0
        assert "demo" in listing.output
        assert "2 pkgs" in listing.output

    def test_create_reports_drift_since_previous(self, runner, lockfile, tmp_path):
        epochs = tmp_path / "epochs"
        args = ["epoch", "create", str(lockfile), "--project-id", "demo",
                "--override", "ring=cryptography", "--epoch-dir", str(epochs)]
        assert runner.invoke(main, args).exit_code == 0

        lockfile.write_text(lockfile.read_text().replace("0.17.8", "0.17.9"))
        result = runner.invoke(main, args)
        assert result.exit_code == 0, result.output
        assert "1 changes, 1 high priority" in result.output

    def test_create_with_invalid_vendor_dir(self, runner, lockfile, tmp_path):
        vendor = _vendor(tmp_path / "vendor", ("serde-1.0.210", SERDE_SUM))
        epochs = tmp_path / "epochs"
        result = runner.invoke(
            main,
            ["epoch", "create", str(lockfile), "--vendor-dir", str(vendor),
             "--epoch-dir", str(epochs)],
        )
        assert result.exit_code == 1
        assert "epoch not created" in result.output
        assert not epochs.exists()

    def test_create_records_vendor_digest(self, runner, lockfile, tmp_path):
        vendor = _vendor(tmp_path / "vendor", ("serde-1.0.210", SERDE_SUM), ("ring-0.17.8", RING_SUM))
        epochs = tmp_path / "epochs"
        result = runner.invoke(
            main,
            ["epoch", "create", str(lockfile), "--project-id", "demo",
             "--vendor-dir", str(vendor), "--epoch-dir", str(epochs)],
        )
        assert result.exit_code == 0, result.output
        [stored] = list((epochs / "demo").glob("*.json"))
        assert json.loads(stored.read_text())["vendor_digest"]

    def test_list_empty(self, runner, tmp_path):
        result = runner.invoke(main, ["epoch", "list", "--epoch-dir", str(tmp_path / "none")])
        assert result.exit_code == 0
        assert "No epochs found." in result.output

    def test_drift_by_epoch_id(self, runner, lockfile, tmp_path):
        epochs = tmp_path / "epochs"
        args = ["epoch", "create", str(lockfile), "--project-id", "demo",
                "--epoch-dir", str(epochs)]
        first = _created_id(runner.invoke(main, args).output)
        lockfile.write_text(lockfile.read_text().replace("1.0.210", "1.0.211"))
        second = _created_id(runner.invoke(main, args).output)

        result = runner.invoke(
            main, ["drift", first, second, "--epochs", "--epoch-dir", str(epochs)]
        )
        assert result.exit_code == 0, result.output
        assert "serde: version_changed 1.0.210" in result.output


# ── audit ──


class TestAuditCommand:
    def test_passes_output_through(self, runner, tmp_path):
        fake = ToolResult(
            tool="cargo",
            argv=("cargo", "audit", "--json", "--no-fetch"),
            status="failed",
            exit_code=1,
            stdout=b'{"vulnerabilities": {"found": true}}',
            stderr=b"",
            duration=0.1,
        )
        with patch("lockwarden.cli.run_tool", return_value=fake) as run:
            result = runner.invoke(main, ["audit", "cargo-audit", "--project-root", str(tmp_path)])
        assert result.exit_code == 1
        assert '{"vulnerabilities": {"found": true}}' in result.output
        assert run.call_args.kwargs["cwd"] == str(tmp_path)

    def test_timeout_exits_2(self, runner, tmp_path):
        fake = ToolResult("cargo", ("cargo", "vet"), "timeout", None, b"", b"", 5.0)
        with patch("lockwarden.cli.run_tool", return_value=fake):
            result = runner.invoke(
                main, ["audit", "cargo-vet", "--project-root", str(tmp_path), "--timeout", "5"]
            )
        assert result.exit_code == 2
        assert "timed out after 5.0s" in result.output

    def test_missing_tool(self, runner, tmp_path):
        with patch.dict(os.environ, {"PATH": str(tmp_path)}):
            result = runner.invoke(main, ["audit", "cargo-audit", "--project-root", str(tmp_path)])
        assert result.exit_code == 2
        assert "TOOL_NOT_FOUND" in result.output
