"""
Configuration Management for JobForge.

This module provides the service's configuration system using a hierarchy of
frozen dataclasses that map to YAML configuration files. It supports
environment variable expansion for secrets and deployment-specific values.

Public API
----------
    from jobforge.core.config import Config, load_config
    from jobforge.core.config import QueueConfig, NotifierConfig

Architecture
------------
    config/
    ├── engine.py        # QueueConfig, WorkerConfig, PipelineConfig
    ├── features.py      # NotifierConfig, DocumentsConfig, APIConfig, LoggingConfig
    └── config.py        # Main Config class
"""

from jobforge.core.config.config import Config
from jobforge.core.config.engine import PipelineConfig, QueueConfig, WorkerConfig
from jobforge.core.config.features import (
    APIConfig,
    DocumentsConfig,
    LoggingConfig,
    NotifierConfig,
)
from jobforge.core.config_loaders import expand_env_vars, load_config, save_config

__all__ = [
    "Config",
    "QueueConfig",
    "WorkerConfig",
    "PipelineConfig",
    "NotifierConfig",
    "DocumentsConfig",
    "APIConfig",
    "LoggingConfig",
    "load_config",
    "save_config",
    "expand_env_vars",
]
