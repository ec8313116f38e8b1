"""Refresh coordinator — decides when to re-fetch and which result may be shown.

All state transitions happen on the event loop, one at a time. Git
invocations, file reads and diff parsing run in worker threads via
``asyncio.to_thread`` and rejoin the loop before publishing.

Three guarantees:

* single flight: at most one status refresh runs; requests arriving
  while it runs collapse into a single follow-up refresh;
* debounce: non-forced requests wait for a quiet period and a minimum
  spacing after the previous refresh; forced requests skip both;
* staleness: each diff load carries a tag, and its result is published
  only if the tag is still the latest and the selection is unchanged.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from pathlib import Path
from typing import Callable, Coroutine, List, Optional, Set

import structlog

from diffsync.config.schema import DiffSyncConfig
from diffsync.git.adapter import (
    CommandRunner,
    GitError,
    ToolRunner,
    get_diff_text,
    get_pull_request_diff,
    get_repo_root,
    resolve_git_dir,
    stage_path,
    unstage_path,
)
from diffsync.git.diff_parser import parse_unified
from diffsync.git.models import ChangeEntry, DiffScope, DiffSource
from diffsync.git.status import status_entries
from diffsync.sync.events import PollTick, RefreshRequested, SessionEvent, WatchEvent
from diffsync.sync.state import SessionContext, SessionSnapshot
from diffsync.sync.watcher import EventSink, RepoWatcher, Watcher

logger = structlog.get_logger(__name__)

WatcherFactory = Callable[[Path, EventSink], Watcher]


class RefreshCoordinator:
    """Owns one diff-viewing session: its snapshot, timers and watch."""

    def __init__(
        self,
        config: Optional[DiffSyncConfig] = None,
        *,
        runner: Optional[CommandRunner] = None,
        gh_runner: Optional[CommandRunner] = None,
        watcher_factory: WatcherFactory = RepoWatcher,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or DiffSyncConfig()
        git_cfg = self.config.git
        self._runner = runner or ToolRunner(
            git_cfg.executable, extra_paths=git_cfg.extra_paths, timeout=git_cfg.timeout_s
        )
        self._gh_runner = gh_runner or ToolRunner(
            git_cfg.gh_executable, extra_paths=git_cfg.extra_paths, timeout=git_cfg.timeout_s
        )
        self._watcher_factory = watcher_factory
        self._clock = clock

        self._snapshot = SessionSnapshot(scope=DiffScope(self.config.diff.default_scope))
        self._context: Optional[SessionContext] = None
        self._subscribers: List[asyncio.Queue] = []

        self._events: asyncio.Queue = asyncio.Queue()
        self._dispatcher: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

        # refresh scheduling
        self._refresh_task: Optional[asyncio.Task] = None
        self._fetching = False
        self._force_now = False
        self._pending = False
        self._pending_force = False
        self._wake = asyncio.Event()
        self._last_refresh_done: Optional[float] = None
        self._generation = 0

        # diff loading
        self._diff_tag = 0

        # watch / poll
        self._watcher: Optional[Watcher] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._ignore_until = 0.0

    # ── lifecycle ─────────────────────────────────────────────────────────

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    @property
    def context(self) -> Optional[SessionContext]:
        return self._context

    @property
    def is_watching(self) -> bool:
        return self._watcher is not None

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def start(self) -> None:
        """Start the event dispatcher. Must be called from a running loop."""
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.create_task(self._dispatch())

    async def stop(self) -> None:
        """Tear down watch, timers and in-flight work."""
        await self.set_visible(False)
        tasks = [t for t in (self._dispatcher, self._refresh_task, *self._background) if t]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._dispatcher = None
        self._refresh_task = None
        self._background.clear()

    async def __aenter__(self) -> "RefreshCoordinator":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def wait_idle(self) -> None:
        """Wait until no refresh or diff load is running or scheduled."""
        while True:
            tasks = [t for t in (self._refresh_task, *self._background) if t and not t.done()]
            if not tasks:
                return
            await asyncio.wait(tasks)

    # ── publishing ────────────────────────────────────────────────────────

    def subscribe(self) -> asyncio.Queue:
        """Return a queue receiving every published snapshot."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def _publish(self, **changes: object) -> None:
        self._snapshot = replace(self._snapshot, **changes)
        for queue in self._subscribers:
            queue.put_nowait(self._snapshot)

    # ── control surface ───────────────────────────────────────────────────

    async def set_visible(self, visible: bool, context: Optional[SessionContext] = None) -> None:
        if not visible:
            if not self._snapshot.visible and self._watcher is None and self._poll_task is None:
                return
            self._generation += 1
            self._diff_tag += 1
            if self._refresh_task is not None:
                self._refresh_task.cancel()
                self._refresh_task = None
            self._pending = self._pending_force = self._fetching = False
            self._stop_watching()
            self._stop_polling()
            self._publish(
                visible=False,
                selection=None,
                document=None,
                diff_error=None,
                is_loading_diff=False,
                is_refreshing=False,
            )
            logger.debug("Session hidden")
            return

        self.start()
        if context is not None:
            self._set_context(context)
        self._publish(visible=True)
        if self._context is not None and self._context.tracks_working_tree:
            self._start_polling()
        else:
            self._stop_polling()
            self._stop_watching()
        self.request_refresh(force=True)
        if self._context is not None and self._context.pull_request is not None:
            self._spawn(self.load_diff(DiffSource.for_pull_request(self._context.pull_request)))

    def request_refresh(self, context: Optional[SessionContext] = None, force: bool = False) -> None:
        """Schedule a status refresh. Returns immediately."""
        if not (force or self._snapshot.visible):
            return
        if context is not None and context != self._context:
            self._set_context(context)
            force = True

        if self._refresh_task is not None and not self._refresh_task.done():
            if self._fetching:
                self._pending = True
                self._pending_force = self._pending_force or force
                logger.debug("Refresh coalesced", force=force)
            elif force:
                self._force_now = True
                self._wake.set()
            return

        self._force_now = force
        self._refresh_task = asyncio.create_task(self._refresh_loop())

    async def set_scope(self, scope: DiffScope) -> None:
        if scope is self._snapshot.scope:
            return
        self._publish(scope=scope)
        self._reconcile_selection(self._snapshot.entries)

    async def load_diff(self, selection: DiffSource) -> bool:
        """Fetch and parse the diff for *selection*.

        Returns True when the result was published, False when it failed
        or was superseded by a newer request.
        """
        context = self._context
        root = self._snapshot.repo_root
        if root is None and not (selection.is_pull_request and context is not None):
            self._diff_tag += 1
            self._publish(selection=selection, document=None, diff_error="No repository", is_loading_diff=False)
            return False

        self._diff_tag += 1
        tag = self._diff_tag
        same_target = selection == self._snapshot.selection
        self._publish(
            selection=selection,
            document=self._snapshot.document if same_target else None,
            diff_error=None,
            is_loading_diff=True,
            diff_tag=tag,
        )

        try:
            if selection.pull_request is not None:
                cwd = root or context.effective_cwd  # type: ignore[union-attr]
                text = await asyncio.to_thread(
                    get_pull_request_diff, self._gh_runner, cwd, selection.pull_request
                )
            else:
                text = await asyncio.to_thread(get_diff_text, self._runner, root, selection)
            document = await asyncio.to_thread(
                parse_unified,
                text,
                selection,
                max_lines_per_file=self.config.diff.max_lines_per_file,
            )
        except GitError as exc:
            if not self._is_current(tag, selection):
                logger.debug("Dropped stale diff failure", tag=tag, latest=self._diff_tag)
                return False
            logger.warning("Diff fetch failed", path=selection.path, error=exc.message)
            self._publish(document=None, diff_error=exc.message, is_loading_diff=False)
            return False

        if not self._is_current(tag, selection):
            logger.debug("Dropped stale diff", tag=tag, latest=self._diff_tag, path=selection.path)
            return False
        self._publish(document=document, diff_error=None, is_loading_diff=False)
        return True

    async def select_entry(self, entry: ChangeEntry) -> bool:
        return await self.load_diff(DiffSource.for_entry(entry, self._snapshot.scope))

    def clear_diff(self) -> None:
        self._diff_tag += 1
        self._publish(selection=None, document=None, diff_error=None, is_loading_diff=False)

    async def stage(self, path: str) -> bool:
        return await self._mutate(stage_path, path)

    async def unstage(self, path: str) -> bool:
        return await self._mutate(unstage_path, path)

    async def _mutate(self, operation: Callable[[CommandRunner, Path, str], None], path: str) -> bool:
        root = self._snapshot.repo_root
        if root is None:
            self._publish(error_message="No repository")
            return False
        window = self.config.refresh.ignore_window
        self._ignore_until = self._clock() + window
        try:
            await asyncio.to_thread(operation, self._runner, root, path)
        except GitError as exc:
            logger.warning("Index update failed", path=path, error=exc.message)
            self._publish(error_message=exc.message)
            return False
        finally:
            self._ignore_until = max(self._ignore_until, self._clock() + window)
        self.request_refresh(force=True)
        return True

    # ── events ────────────────────────────────────────────────────────────

    def post(self, event: SessionEvent) -> None:
        """Queue an event for in-order handling on the loop."""
        self._events.put_nowait(event)

    async def _dispatch(self) -> None:
        while True:
            event = await self._events.get()
            self.handle_event(event)

    def handle_event(self, event: SessionEvent) -> None:
        if isinstance(event, WatchEvent):
            if event.replaces_file:
                self._restart_watch()
            if self._clock() < self._ignore_until:
                logger.debug("Ignored self-inflicted change", path=event.path)
                return
            self.request_refresh(force=False)
        elif isinstance(event, PollTick):
            if self._snapshot.visible and self._context is not None and self._context.tracks_working_tree:
                self.request_refresh(force=False)
        elif isinstance(event, RefreshRequested):
            self.request_refresh(force=event.force)

    # ── refresh internals ─────────────────────────────────────────────────

    def _set_context(self, context: SessionContext) -> None:
        self._context = context

    async def _sleep_or_wake(self, delay: float) -> bool:
        """Sleep up to *delay* seconds; True if a forced request cut it short."""
        if delay <= 0:
            return False
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _wait_before_refresh(self) -> None:
        if self._force_now:
            return
        self._wake.clear()
        refresh_cfg = self.config.refresh
        if await self._sleep_or_wake(refresh_cfg.debounce):
            return
        if self._last_refresh_done is not None:
            remaining = refresh_cfg.min_interval - (self._clock() - self._last_refresh_done)
            await self._sleep_or_wake(remaining)

    async def _refresh_loop(self) -> None:
        while True:
            await self._wait_before_refresh()
            self._force_now = False
            self._fetching = True
            try:
                await self._refresh_once()
            finally:
                self._fetching = False
                self._last_refresh_done = self._clock()
            if not self._pending:
                return
            self._force_now = self._pending_force
            self._pending = self._pending_force = False

    async def _refresh_once(self) -> None:
        context = self._context
        if context is None:
            return
        generation = self._generation
        self._publish(is_refreshing=True)
        logger.debug("Refresh started", cwd=str(context.effective_cwd))

        root: Optional[Path] = None
        try:
            root = await asyncio.to_thread(get_repo_root, self._runner, context.effective_cwd)
            entries = []
            if root is not None:
                entries = await asyncio.to_thread(
                    status_entries,
                    self._runner,
                    root,
                    untracked_max_bytes=self.config.status.untracked_max_bytes,
                )
        except GitError as exc:
            if self._is_superseded(generation, context):
                return
            logger.warning("Status refresh failed", error=exc.message)
            self._publish(repo_root=root, entries=(), error_message=exc.message, is_refreshing=False)
            return

        if self._is_superseded(generation, context):
            logger.debug("Dropped superseded refresh", cwd=str(context.effective_cwd))
            return

        previous = self._snapshot.entries
        self._publish(
            repo_root=root,
            entries=tuple(entries),
            error_message=None,
            is_refreshing=False,
            refresh_count=self._snapshot.refresh_count + 1,
        )
        logger.debug("Refresh finished", entries=len(entries))
        self._reconcile_selection(previous)
        if root is not None:
            self._ensure_watching(root)

    def _reconcile_selection(self, previous: tuple) -> None:
        """Clear a selection that left the change set or the active scope.

        A selection that survives is reloaded when its entry changed.
        """
        selection = self._snapshot.selection
        if selection is None or selection.is_pull_request:
            return
        snapshot = self._snapshot

        if selection.path is None:
            if snapshot.entries != previous or selection.scope is not snapshot.scope:
                self._spawn(self.load_diff(replace(selection, scope=snapshot.scope)))
            return

        entry = snapshot.entry_for(selection.path)
        if entry is None or not entry.in_scope(snapshot.scope):
            logger.debug("Selection cleared", path=selection.path, scope=snapshot.scope.value)
            self.clear_diff()
            return

        before = next((e for e in previous if e.path == entry.path), None)
        target = DiffSource.for_entry(entry, snapshot.scope)
        if before != entry or target != selection:
            self._spawn(self.load_diff(target))

    def _spawn(self, coro: Coroutine) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # ── watch / poll ──────────────────────────────────────────────────────

    def _ensure_watching(self, repo_root: Path) -> None:
        context = self._context
        if not self._snapshot.visible or context is None or not context.tracks_working_tree:
            return
        git_dir = resolve_git_dir(context.worktree_path or repo_root)
        if git_dir is None:
            return
        if self._watcher is not None and self._watcher.git_dir == git_dir:
            return
        self._stop_watching()
        self._watcher = self._watcher_factory(git_dir, self.post)
        self._watcher.start()

    def _restart_watch(self) -> None:
        if self._watcher is None:
            return
        logger.debug("Restarting watch", git_dir=str(self._watcher.git_dir))
        self._watcher.stop()
        self._watcher.start()

    def _stop_watching(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    def _start_polling(self) -> None:
        if self.is_polling:
            return
        self._poll_task = asyncio.create_task(self._poll_loop())

    def _stop_polling(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    async def _poll_loop(self) -> None:
        interval = self.config.refresh.poll_interval_s
        while True:
            await asyncio.sleep(interval)
            self.post(PollTick())

    # ── helpers ───────────────────────────────────────────────────────────

    def _is_superseded(self, generation: int, context: SessionContext) -> bool:
        """True once the session was hidden or pointed elsewhere mid-refresh."""
        return generation != self._generation or context != self._context

    def _is_current(self, tag: int, selection: DiffSource) -> bool:
        return tag == self._diff_tag and self._snapshot.selection == selection
