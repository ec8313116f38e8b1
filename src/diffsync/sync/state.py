"""Session context and the published snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from diffsync.git.models import ChangeEntry, DiffDocument, DiffScope, DiffSource


@dataclass(frozen=True)
class SessionContext:
    """Where a diff-viewing session points.

    ``worktree_path`` overrides ``cwd`` when a specific worktree is
    selected; ``pull_request`` switches the session to a PR view, which
    is not backed by filesystem watching or polling.
    """

    cwd: Path
    worktree_path: Optional[Path] = None
    pull_request: Optional[int] = None

    @property
    def effective_cwd(self) -> Path:
        return self.worktree_path or self.cwd

    @property
    def tracks_working_tree(self) -> bool:
        return self.pull_request is None


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a session, replaced wholesale on every change."""

    visible: bool = False
    repo_root: Optional[Path] = None
    entries: Tuple[ChangeEntry, ...] = ()
    scope: DiffScope = DiffScope.ALL
    selection: Optional[DiffSource] = None
    document: Optional[DiffDocument] = None
    error_message: Optional[str] = None
    diff_error: Optional[str] = None
    is_refreshing: bool = False
    is_loading_diff: bool = False
    diff_tag: int = 0
    refresh_count: int = 0

    @property
    def selected_path(self) -> Optional[str]:
        return self.selection.path if self.selection else None

    @property
    def scoped_entries(self) -> Tuple[ChangeEntry, ...]:
        return tuple(e for e in self.entries if e.in_scope(self.scope))

    def entry_for(self, path: str) -> Optional[ChangeEntry]:
        for entry in self.entries:
            if entry.path == path:
                return entry
        return None
