"""
Tests for Configuration Management.

Test Strategy
-------------
- Focus on public API: expand_env_vars(), Config dataclass, load_config()
- Each test should be self-contained and clear

Organization
------------
- TestExpandEnvVars: Environment variable expansion
- TestConfigDataclass: Config object creation and validation
- TestLoadConfig: YAML loading and JOBFORGE_* overrides
"""

import os
from dataclasses import FrozenInstanceError
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from jobforge.core.config import (
    Config,
    DocumentsConfig,
    NotifierConfig,
    QueueConfig,
    WorkerConfig,
    load_config,
    save_config,
)
from jobforge.core.config_loaders import expand_env_vars
from jobforge.core.exceptions import ConfigValidationError


def _clean_env():
    return {k: v for k, v in os.environ.items() if not k.startswith("JOBFORGE_")}


# ============================================================================
# Test Classes
# ============================================================================


class TestExpandEnvVars:
    """Tests for environment variable expansion."""

    def test_simple_expansion(self):
        """Test basic ${VAR} expansion."""
        with patch.dict(os.environ, {"TEST_VAR": "test_value"}):
            assert expand_env_vars("${TEST_VAR}") == "test_value"

    def test_default_used_when_unset(self):
        """Test ${VAR:default} when VAR is not set."""
        with patch.dict(os.environ, {}, clear=True):
            assert expand_env_vars("${MISSING:fallback}") == "fallback"

    def test_nested_structures(self):
        with patch.dict(os.environ, {"HOOK": "http://owner/hook"}):
            result = expand_env_vars({"notifier": {"urls": ["${HOOK}"]}, "n": 3})

        assert result == {"notifier": {"urls": ["http://owner/hook"]}, "n": 3}


class TestConfigDataclass:
    """Tests for Config creation and validation."""

    def test_defaults(self):
        config = Config()

        assert config.queue.backend == "memory"
        assert config.queue.max_attempts == 3
        assert config.worker.workers == 2
        assert config.notifier.service_token == "processing-service-token"
        assert config.notifier.callback_url is None

    def test_config_is_immutable(self):
        config = Config()

        with pytest.raises(FrozenInstanceError):
            config.queue = QueueConfig()

    def test_unknown_backend_rejected(self):
        with pytest.raises(ConfigValidationError):
            QueueConfig(backend="redis")

    def test_zero_workers_rejected(self):
        with pytest.raises(ConfigValidationError):
            WorkerConfig(workers=0)

    def test_http_source_requires_base_url(self):
        with pytest.raises(ConfigValidationError):
            DocumentsConfig(source="http")

    def test_visibility_timeout_must_exceed_stage_timeout(self):
        with pytest.raises(ConfigValidationError):
            Config(
                queue=QueueConfig(visibility_timeout_seconds=60.0),
                worker=WorkerConfig(stage_timeout_seconds=60.0),
            )

    def test_from_dict_ignores_unknown_keys(self):
        config = Config.from_dict(
            {"queue": {"max_attempts": 5, "bogus": 1}, "api": {"cors_origins": ["*"]}}
        )

        assert config.queue.max_attempts == 5
        assert config.api.cors_origins == ("*",)

    def test_from_dict_expands_env_vars(self):
        with patch.dict(os.environ, {"HOOK_URL": "http://owner:3000/hook"}):
            config = Config.from_dict({"notifier": {"callback_url": "${HOOK_URL}"}})

        assert config.notifier.callback_url == "http://owner:3000/hook"


class TestLoadConfig:
    """Tests for load_config() and save_config()."""

    def test_missing_file_gives_defaults(self, temp_dir: Path):
        with patch.dict(os.environ, _clean_env(), clear=True):
            config = load_config(base_path=temp_dir)

        assert config == Config()

    def test_reads_yaml_file(self, temp_dir: Path):
        path = temp_dir / "config.yaml"
        path.write_text(yaml.safe_dump({"worker": {"workers": 4}}))

        with patch.dict(os.environ, _clean_env(), clear=True):
            config = load_config(base_path=temp_dir)

        assert config.worker.workers == 4

    def test_invalid_yaml_falls_back_to_defaults(self, temp_dir: Path):
        path = temp_dir / "config.yaml"
        path.write_text("worker: [unclosed")

        with patch.dict(os.environ, _clean_env(), clear=True):
            config = load_config(path)

        assert config == Config()

    def test_invalid_values_raise(self, temp_dir: Path):
        path = temp_dir / "config.yaml"
        path.write_text(yaml.safe_dump({"queue": {"max_attempts": 0}}))

        with pytest.raises(ConfigValidationError):
            load_config(path)

    def test_env_overrides_take_precedence(self, temp_dir: Path):
        path = temp_dir / "config.yaml"
        path.write_text(yaml.safe_dump({"worker": {"workers": 4}}))
        env = {
            **_clean_env(),
            "JOBFORGE_WORKERS": "8",
            "JOBFORGE_CALLBACK_URL": "http://owner/hook",
            "JOBFORGE_SERVICE_TOKEN": "s3cret",
            "JOBFORGE_QUEUE_BACKEND": "SQLite",
            "JOBFORGE_LOG_LEVEL": "debug",
        }

        with patch.dict(os.environ, env, clear=True):
            config = load_config(path)

        assert config.worker.workers == 8
        assert config.notifier.callback_url == "http://owner/hook"
        assert config.notifier.service_token == "s3cret"
        assert config.queue.backend == "sqlite"
        assert config.logging.level == "DEBUG"

    def test_invalid_env_values_are_ignored(self, temp_dir: Path):
        env = {
            **_clean_env(),
            "JOBFORGE_WORKERS": "many",
            "JOBFORGE_QUEUE_BACKEND": "redis",
        }

        with patch.dict(os.environ, env, clear=True):
            config = load_config(base_path=temp_dir)

        assert config.worker.workers == 2
        assert config.queue.backend == "memory"

    def test_documents_url_switches_to_http(self, temp_dir: Path):
        env = {**_clean_env(), "JOBFORGE_DOCUMENTS_URL": "http://owner/documents"}

        with patch.dict(os.environ, env, clear=True):
            config = load_config(base_path=temp_dir)

        assert config.documents.source == "http"
        assert config.documents.base_url == "http://owner/documents"

    def test_save_and_reload(self, temp_dir: Path):
        original = Config(notifier=NotifierConfig(callback_url="http://owner/hook"))

        path = save_config(original, temp_dir / "config.yaml")
        with patch.dict(os.environ, _clean_env(), clear=True):
            reloaded = load_config(path)

        assert reloaded == original
