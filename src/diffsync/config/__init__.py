"""Configuration loading, schema, and defaults."""

from diffsync.config.loader import ConfigError, load_config
from diffsync.config.schema import DiffSyncConfig

__all__ = [
    "ConfigError",
    "DiffSyncConfig",
    "load_config",
]
