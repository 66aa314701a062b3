"""Tests for settings and logging configuration."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from trustgate.config import LOG_FORMAT, Settings, configure_logging


class TestSettings:
    """Tests for environment-driven settings."""

    def test_paths_derived_from_home(self, tmp_path):
        """Test paths derived from home."""
        settings = Settings(home_dir=tmp_path)
        assert settings.audit_log_path == tmp_path / "audit.jsonl"
        assert settings.staging_root == tmp_path / "staging"
        assert settings.drafts_dir == tmp_path / "drafts"
        assert settings.manifest_dir is None

    def test_explicit_paths_win(self, tmp_path):
        """Test explicit paths win."""
        settings = Settings(home_dir=tmp_path, audit_log_path=tmp_path / "elsewhere.jsonl")
        assert settings.audit_log_path == tmp_path / "elsewhere.jsonl"

    def test_defaults(self, tmp_path):
        """Test defaults."""
        settings = Settings(home_dir=tmp_path)
        assert settings.redact_audit is True
        assert settings.fsync_audit is False
        assert settings.conflict_resolution == "abort"
        assert settings.retain_baseline is True

    def test_environment_override(self, tmp_path):
        """Test environment override."""
        env = {
            "TRUSTGATE_HOME": str(tmp_path),
            "TRUSTGATE_CONFLICT_RESOLUTION": "merge",
            "TRUSTGATE_FSYNC_AUDIT": "true",
            "TRUSTGATE_LOG_LEVEL": "DEBUG",
        }
        with patch.dict(os.environ, env):
            settings = Settings()

        assert settings.home_dir == Path(tmp_path)
        assert settings.staging_root == Path(tmp_path) / "staging"
        assert settings.conflict_resolution == "merge"
        assert settings.fsync_audit is True
        assert settings.log_level == "DEBUG"

    def test_invalid_resolution_rejected(self, tmp_path):
        """Test invalid resolution rejected."""
        with patch.dict(os.environ, {"TRUSTGATE_CONFLICT_RESOLUTION": "yolo"}):
            with pytest.raises(ValidationError):
                Settings(home_dir=tmp_path)


class TestLogging:
    """Tests for configure_logging."""

    def test_sets_package_level(self):
        """Test sets package level."""
        logger = configure_logging("debug")
        assert logger.name == "trustgate"
        assert logger.level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self):
        """Test unknown level falls back to INFO."""
        assert configure_logging("chatty").level == logging.INFO

    def test_format(self):
        """Test the log format includes the logger name."""
        assert "%(name)s" in LOG_FORMAT
