"""Configuration schema — dataclasses for every config section."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Literal

from diffsync.git.adapter import DEFAULT_EXTRA_PATHS

Scope = Literal["all", "staged", "unstaged"]
LogFormat = Literal["console", "json"]

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class RefreshConfig:
    debounce_ms: int = 150  # quiet period absorbing bursts of triggers
    min_interval_ms: int = 400  # spacing between completed refreshes
    poll_interval_s: float = 2.0
    ignore_window_ms: int = 500  # watcher events dropped after stage/unstage

    @property
    def debounce(self) -> float:
        return self.debounce_ms / 1000

    @property
    def min_interval(self) -> float:
        return self.min_interval_ms / 1000

    @property
    def ignore_window(self) -> float:
        return self.ignore_window_ms / 1000


@dataclass
class DiffConfig:
    max_lines_per_file: int = 10_000
    default_scope: Scope = "all"


@dataclass
class StatusConfig:
    untracked_max_bytes: int = 1_000_000


@dataclass
class GitConfig:
    executable: str = "git"
    gh_executable: str = "gh"
    extra_paths: List[str] = field(default_factory=lambda: list(DEFAULT_EXTRA_PATHS))
    timeout_s: float = 30


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    format: LogFormat = "console"


@dataclass
class DiffSyncConfig:
    version: str = "1.0"
    refresh: RefreshConfig = field(default_factory=RefreshConfig)
    diff: DiffConfig = field(default_factory=DiffConfig)
    status: StatusConfig = field(default_factory=StatusConfig)
    git: GitConfig = field(default_factory=GitConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
