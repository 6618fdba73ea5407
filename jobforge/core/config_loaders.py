"""
Configuration Loading and Management Functions.

Handles loading, saving, and applying environment overrides to the JobForge
configuration.

Environment Overrides
---------------------
    JOBFORGE_CALLBACK_URL     notifier.callback_url
    JOBFORGE_SERVICE_TOKEN    notifier.service_token
    JOBFORGE_WORKERS          worker.workers (1-64)
    JOBFORGE_QUEUE_BACKEND    queue.backend (memory, sqlite)
    JOBFORGE_QUEUE_PATH       queue.sqlite_path
    JOBFORGE_DOCUMENTS_URL    documents.base_url (switches source to http)
    JOBFORGE_DOCUMENTS_DIR    documents.base_dir
    JOBFORGE_API_HOST         api.host
    JOBFORGE_API_PORT         api.port (1-65535)
    JOBFORGE_LOG_LEVEL        logging.level
"""

from __future__ import annotations

import os
import re
from dataclasses import replace
from pathlib import Path
from typing import Any, FrozenSet, Optional, TYPE_CHECKING

import yaml

if TYPE_CHECKING:
    from jobforge.core.config import Config


class _Logger:
    """Lazy logger holder.

    Avoids slow startup from rich library import.
    """

    _instance = None

    @classmethod
    def get(cls) -> Any:
        """Get logger (lazy-loaded)."""
        if cls._instance is None:
            from jobforge.core.logging import get_logger

            cls._instance = get_logger(__name__)
        return cls._instance


CONFIG_FILENAMES = ("config.yaml", "jobforge.yaml")


def expand_env_vars(value: Any) -> Any:
    """Recursively expand environment variables in config values.

    Handles nested structures including:
    - Strings with ${VAR_NAME} or ${VAR_NAME:default} syntax
    - Nested dictionaries
    - Nested lists

    Args:
        value: Configuration value (string, dict, list, or primitive)

    Returns:
        Value with all environment variables expanded
    """
    if isinstance(value, str):
        pattern = r"\$\{([^}:]+)(?::([^}]*))?\}"

        def replace_env_var(match: re.Match) -> str:
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else ""
            return os.environ.get(var_name, default_value)

        return re.sub(pattern, replace_env_var, value)
    elif isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value


def _get_env_int(
    name: str, min_value: Optional[int] = None, max_value: Optional[int] = None
) -> Optional[int]:
    """Read an integer environment variable, clamped to bounds."""
    value = os.environ.get(name)
    if value is None:
        return None

    try:
        int_value = int(value)
    except ValueError:
        _Logger.get().warning("Ignoring invalid integer", variable=name, value=value)
        return None

    if min_value is not None and int_value < min_value:
        return min_value
    if max_value is not None and int_value > max_value:
        return max_value
    return int_value


def _get_env_whitelist(name: str, allowed: FrozenSet[str]) -> Optional[str]:
    """Read an environment variable restricted to a set of allowed values."""
    value = os.environ.get(name)
    if value is None:
        return None

    normalized = value.strip().lower()
    if normalized not in allowed:
        _Logger.get().warning(
            "Ignoring value outside whitelist",
            variable=name,
            value=value,
            allowed=",".join(sorted(allowed)),
        )
        return None
    return normalized


def _apply_env_overrides(config: "Config") -> "Config":
    """
    Apply environment variable overrides to configuration.

    Environment variables take precedence over config file values.
    Returns a new Config since configuration objects are immutable.
    """
    config = _apply_notifier_overrides(config)
    config = _apply_engine_overrides(config)
    config = _apply_documents_overrides(config)
    config = _apply_api_server_overrides(config)
    config = _apply_logging_overrides(config)
    return config


def _apply_notifier_overrides(config: "Config") -> "Config":
    """Apply callback URL and service token overrides."""
    changes = {}

    callback_url = os.environ.get("JOBFORGE_CALLBACK_URL")
    if callback_url:
        changes["callback_url"] = callback_url

    token = os.environ.get("JOBFORGE_SERVICE_TOKEN")
    if token:
        changes["service_token"] = token

    if not changes:
        return config
    return replace(config, notifier=replace(config.notifier, **changes))


def _apply_engine_overrides(config: "Config") -> "Config":
    """Apply worker count and queue backend overrides."""
    from jobforge.core.config.engine import QUEUE_BACKENDS

    workers = _get_env_int("JOBFORGE_WORKERS", min_value=1, max_value=64)
    if workers is not None:
        config = replace(config, worker=replace(config.worker, workers=workers))

    queue_changes = {}
    backend = _get_env_whitelist("JOBFORGE_QUEUE_BACKEND", QUEUE_BACKENDS)
    if backend:
        queue_changes["backend"] = backend

    queue_path = os.environ.get("JOBFORGE_QUEUE_PATH")
    if queue_path:
        queue_changes["sqlite_path"] = queue_path

    if queue_changes:
        config = replace(config, queue=replace(config.queue, **queue_changes))
    return config


def _apply_documents_overrides(config: "Config") -> "Config":
    """Apply document source overrides."""
    changes = {}

    base_url = os.environ.get("JOBFORGE_DOCUMENTS_URL")
    if base_url:
        changes["source"] = "http"
        changes["base_url"] = base_url

    base_dir = os.environ.get("JOBFORGE_DOCUMENTS_DIR")
    if base_dir:
        changes["base_dir"] = base_dir

    if not changes:
        return config
    return replace(config, documents=replace(config.documents, **changes))


def _apply_api_server_overrides(config: "Config") -> "Config":
    """Apply API server host and port overrides."""
    changes: dict[str, Any] = {}

    api_host = os.environ.get("JOBFORGE_API_HOST")
    if api_host and re.match(r"^[a-zA-Z0-9.\-]+$", api_host):
        changes["host"] = api_host

    api_port = _get_env_int("JOBFORGE_API_PORT", min_value=1, max_value=65535)
    if api_port is not None:
        changes["port"] = api_port

    if not changes:
        return config
    return replace(config, api=replace(config.api, **changes))


def _apply_logging_overrides(config: "Config") -> "Config":
    """Apply log level override."""
    from jobforge.core.config.features import LOG_LEVELS

    level = os.environ.get("JOBFORGE_LOG_LEVEL")
    if not level:
        return config
    if level.upper() not in LOG_LEVELS:
        _Logger.get().warning("Ignoring invalid log level", value=level)
        return config
    return replace(config, logging=replace(config.logging, level=level.upper()))


def find_config_file(base_path: Optional[Path] = None) -> Optional[Path]:
    """Return the first config file found in base_path, if any."""
    base_path = base_path or Path.cwd()
    for filename in CONFIG_FILENAMES:
        candidate = base_path / filename
        if candidate.exists():
            return candidate
    return None


def load_config(
    config_path: Optional[Path] = None, base_path: Optional[Path] = None
) -> "Config":
    """
    Load configuration from YAML file with environment variable overrides.

    Configuration precedence: 1. Env vars, 2. YAML file, 3. Defaults

    Args:
        config_path: Path to config file. Defaults to config.yaml in base_path.
        base_path: Base path for the project. Defaults to current directory.

    Returns:
        Config object with all settings.

    Raises:
        ConfigValidationError: If a value is out of range.
    """
    from jobforge.core.config import Config

    if config_path is None:
        config_path = find_config_file(base_path)
    if config_path is None or not config_path.exists():
        return _apply_env_overrides(Config())

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        _Logger.get().warning(
            "Could not read config file, using defaults",
            path=str(config_path),
            error=str(e),
        )
        return _apply_env_overrides(Config())

    return _apply_env_overrides(Config.from_dict(data))


def _to_plain(value: Any) -> Any:
    """Convert tuples to lists so the YAML stays readable by safe_load."""
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    return value


def save_config(config: "Config", config_path: Optional[Path] = None) -> Path:
    """Save configuration to YAML file."""
    config_path = config_path or Path.cwd() / CONFIG_FILENAMES[0]

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(
            _to_plain(config.to_dict()), f, default_flow_style=False, sort_keys=False
        )
    return config_path
