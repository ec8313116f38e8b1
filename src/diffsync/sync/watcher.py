"""Filesystem watch on a repository control directory's index and HEAD."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, Optional, Protocol

import structlog
from watchfiles import Change, awatch

from diffsync.sync.events import WatchChange, WatchEvent

logger = structlog.get_logger(__name__)

WATCHED_NAMES = frozenset({"index", "HEAD"})

# Tools replace index/HEAD atomically, which surfaces as added/deleted.
_CHANGE_MAP = {
    Change.added: WatchChange.RENAME,
    Change.modified: WatchChange.WRITE,
    Change.deleted: WatchChange.DELETE,
}

EventSink = Callable[[WatchEvent], None]


class Watcher(Protocol):
    git_dir: Path

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...


def _watch_filter(change: Change, path: str) -> bool:
    return Path(path).name in WATCHED_NAMES


class RepoWatcher:
    """Post a WatchEvent for every change to ``<git_dir>/index`` or ``HEAD``."""

    def __init__(self, git_dir: Path, sink: EventSink, *, debounce_ms: int = 50) -> None:
        self.git_dir = git_dir
        self._sink = sink
        self._debounce_ms = debounce_ms
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(self._stop_event))
        logger.debug("Watch started", git_dir=str(self.git_dir))

    def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.debug("Watch stopped", git_dir=str(self.git_dir))

    async def _run(self, stop_event: asyncio.Event) -> None:
        try:
            async for changes in awatch(
                self.git_dir,
                watch_filter=_watch_filter,
                stop_event=stop_event,
                recursive=False,
                debounce=self._debounce_ms,
            ):
                for change, path in sorted(changes, key=lambda c: c[1]):
                    self._sink(WatchEvent(_CHANGE_MAP[change], path))
        except OSError as exc:
            logger.warning("Watch failed", git_dir=str(self.git_dir), error=str(exc))
