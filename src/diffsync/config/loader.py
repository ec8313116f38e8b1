"""Load and merge configuration from .diffsync.toml and env vars."""

from __future__ import annotations

import dataclasses
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from diffsync.config.schema import (
    LOG_LEVELS,
    DiffConfig,
    DiffSyncConfig,
    GitConfig,
    LoggingConfig,
    RefreshConfig,
    StatusConfig,
)

CONFIG_FILENAME = ".diffsync.toml"


class ConfigError(Exception):
    """Raised when config is malformed or unreadable."""


def find_config_file(repo_root: Path, override: Optional[str] = None) -> Optional[Path]:
    """Locate the config file. *override* takes precedence."""
    if override:
        p = Path(override)
        if not p.is_file():
            raise ConfigError(f"Config file not found: {override}")
        return p
    candidate = repo_root / CONFIG_FILENAME
    return candidate if candidate.is_file() else None


def _parse_toml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Failed to parse {path}: {exc}") from exc


def _build_section(data: Dict[str, Any], cls: type, section: str):
    """Build a dataclass from a TOML section dict, ignoring unknown keys."""
    raw = data.get(section, {})
    if not isinstance(raw, dict):
        raise ConfigError(f"[{section}] must be a table")
    valid_fields = {f.name for f in dataclasses.fields(cls)}
    filtered = {k: v for k, v in raw.items() if k in valid_fields}
    return cls(**filtered)


def _env_number(value: str, *, allow_zero: bool = True) -> Optional[float]:
    try:
        number = float(value)
    except ValueError:
        return None
    if number < 0 or (number == 0 and not allow_zero):
        return None
    return number


def _merge_env_overrides(cfg: DiffSyncConfig) -> None:
    """Apply DIFFSYNC_* environment variable overrides."""
    if (val := os.environ.get("DIFFSYNC_DEBOUNCE_MS")) and (n := _env_number(val)) is not None:
        cfg.refresh.debounce_ms = int(n)
    if (val := os.environ.get("DIFFSYNC_MIN_INTERVAL_MS")) and (n := _env_number(val)) is not None:
        cfg.refresh.min_interval_ms = int(n)
    if (val := os.environ.get("DIFFSYNC_POLL_INTERVAL_S")) and (n := _env_number(val, allow_zero=False)) is not None:
        cfg.refresh.poll_interval_s = n
    if val := os.environ.get("DIFFSYNC_LOG_LEVEL"):
        if val.upper() in LOG_LEVELS:
            cfg.logging.level = val.upper()
    if val := os.environ.get("DIFFSYNC_LOG_FORMAT"):
        if val in ("console", "json"):
            cfg.logging.format = val  # type: ignore[assignment]
    if val := os.environ.get("DIFFSYNC_GIT"):
        cfg.git.executable = val


def _validate(cfg: DiffSyncConfig) -> None:
    if cfg.diff.default_scope not in ("all", "staged", "unstaged"):
        raise ConfigError(f"Invalid diff.default_scope: {cfg.diff.default_scope!r}")
    if cfg.diff.max_lines_per_file <= 0:
        raise ConfigError("diff.max_lines_per_file must be positive")
    if cfg.refresh.poll_interval_s <= 0:
        raise ConfigError("refresh.poll_interval_s must be positive")
    for key in ("debounce_ms", "min_interval_ms", "ignore_window_ms"):
        if getattr(cfg.refresh, key) < 0:
            raise ConfigError(f"refresh.{key} must not be negative")
    if cfg.logging.level.upper() not in LOG_LEVELS:
        raise ConfigError(f"Invalid logging.level: {cfg.logging.level!r}")
    cfg.logging.level = cfg.logging.level.upper()


def load_config(
    repo_root: Path,
    config_override: Optional[str] = None,
) -> DiffSyncConfig:
    """Load, validate, and return a DiffSyncConfig."""
    config_path = find_config_file(repo_root, config_override)

    if config_path is None:
        cfg = DiffSyncConfig()
    else:
        raw = _parse_toml(config_path)
        cfg = DiffSyncConfig(
            version=raw.get("version", "1.0"),
            refresh=_build_section(raw, RefreshConfig, "refresh"),
            diff=_build_section(raw, DiffConfig, "diff"),
            status=_build_section(raw, StatusConfig, "status"),
            git=_build_section(raw, GitConfig, "git"),
            logging=_build_section(raw, LoggingConfig, "logging"),
        )

    _merge_env_overrides(cfg)
    _validate(cfg)
    return cfg
