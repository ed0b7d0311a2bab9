"""Tests for settings, logging setup and the exception hierarchy."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest
import structlog

from lockwarden.core.logging import setup_logging
from lockwarden.core.settings import Settings
from lockwarden.exceptions import (
    ChecksumConflict,
    ConfigurationError,
    DanglingEdge,
    GraphError,
    LockwardenError,
    MissingLocalDependency,
    OfflineViolation,
    ParseFailure,
    ToolNotFoundError,
    VendorError,
)

_ENV_KEYS = (
    "LOCKWARDEN_VENDOR_CONCURRENCY",
    "LOCKWARDEN_TOOL_TIMEOUT",
    "LOCKWARDEN_EPOCH_DIR",
    "LOCKWARDEN_CACHE_DIR",
)


@pytest.fixture
def clean_env():
    with patch.dict(os.environ, {}, clear=False):
        for key in _ENV_KEYS:
            os.environ.pop(key, None)
        yield


# ── Settings ──


class TestSettings:
    def test_defaults(self, clean_env):
        settings = Settings.from_env()
        assert settings.vendor_concurrency == 8
        assert settings.tool_timeout == 300.0
        assert settings.epoch_dir == Path(".lockwarden/epochs")
        assert settings.cache_dir is None

    def test_from_env(self, clean_env):
        env = {
            "LOCKWARDEN_VENDOR_CONCURRENCY": "2",
            "LOCKWARDEN_TOOL_TIMEOUT": "12.5",
            "LOCKWARDEN_EPOCH_DIR": "/tmp/epochs",
            "LOCKWARDEN_CACHE_DIR": "/srv/crates",
        }
        with patch.dict(os.environ, env):
            settings = Settings.from_env()
        assert settings.vendor_concurrency == 2
        assert settings.tool_timeout == 12.5
        assert settings.epoch_dir == Path("/tmp/epochs")
        assert settings.cache_dir == Path("/srv/crates")

    def test_empty_values_use_defaults(self, clean_env):
        with patch.dict(os.environ, {"LOCKWARDEN_VENDOR_CONCURRENCY": ""}):
            assert Settings.from_env().vendor_concurrency == 8

    @pytest.mark.parametrize(
        "key, value",
        [
            ("LOCKWARDEN_VENDOR_CONCURRENCY", "many"),
            ("LOCKWARDEN_VENDOR_CONCURRENCY", "0"),
            ("LOCKWARDEN_TOOL_TIMEOUT", "soon"),
            ("LOCKWARDEN_TOOL_TIMEOUT", "-1"),
        ],
    )
    def test_invalid(self, clean_env, key, value):
        with patch.dict(os.environ, {key: value}):
            with pytest.raises(ConfigurationError) as exc_info:
                Settings.from_env()
        assert exc_info.value.context["field"] == key


# ── Logging ──


class TestSetupLogging:
    def teardown_method(self):
        logging.getLogger().handlers.clear()
        structlog.reset_defaults()

    def test_explicit_level(self):
        setup_logging("debug")
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("lockwarden").level == logging.DEBUG

    def test_env_level(self):
        with patch.dict(os.environ, {"LOCKWARDEN_LOG_LEVEL": "WARNING"}):
            setup_logging()
        assert logging.getLogger().level == logging.WARNING

    def test_logs_stay_off_stdout(self, capsys):
        setup_logging("INFO")
        structlog.get_logger("lockwarden.test").info("core.stream_check")
        captured = capsys.readouterr()
        assert "core.stream_check" in captured.err
        assert captured.out == ""

    def test_json_format(self, capsys):
        with patch.dict(os.environ, {"LOCKWARDEN_LOG_FORMAT": "json"}):
            setup_logging("INFO")
        structlog.get_logger("lockwarden.test").info("core.check", answer=42)
        err = capsys.readouterr().err
        assert '"event": "core.check"' in err
        assert '"answer": 42' in err


# ── Exceptions ──


class TestExceptions:
    def test_hierarchy(self):
        assert issubclass(ParseFailure, GraphError)
        assert issubclass(GraphError, LockwardenError)
        assert issubclass(OfflineViolation, VendorError)
        assert issubclass(ToolNotFoundError, LockwardenError)

    def test_to_dict(self):
        exc = ParseFailure("bad lockfile", line=3)
        assert exc.to_dict() == {
            "code": "PARSE_FAILURE",
            "category": "parse",
            "message": "bad lockfile",
            "context": {"line": 3},
        }

    def test_checksum_conflict_context(self):
        exc = ChecksumConflict("serde@1.0.0", "aa", "bb")
        assert exc.context == {"identity": "serde@1.0.0", "expected": "aa", "actual": "bb"}
        assert exc.category == "identity"

    def test_missing_local_dependency(self):
        exc = MissingLocalDependency("lib@0.1.0", "/work/lib")
        assert exc.path == "/work/lib"
        assert "/work/lib" in str(exc)

    def test_dangling_edge_reason(self):
        exc = DanglingEdge("app@0.1.0", "rand", "ambiguous, 2 candidates")
        assert exc.context["reason"] == "ambiguous, 2 candidates"
        assert exc.code == "DANGLING_EDGE"
