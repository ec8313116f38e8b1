"""Refresh coordination — debounced status refresh, stale-diff guard, fs watch."""

from diffsync.sync.coordinator import RefreshCoordinator
from diffsync.sync.events import PollTick, RefreshRequested, WatchChange, WatchEvent
from diffsync.sync.state import SessionContext, SessionSnapshot
from diffsync.sync.watcher import RepoWatcher

__all__ = [
    "PollTick",
    "RefreshCoordinator",
    "RefreshRequested",
    "RepoWatcher",
    "SessionContext",
    "SessionSnapshot",
    "WatchChange",
    "WatchEvent",
]
