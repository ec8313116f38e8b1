"""Data models for change listings and parsed diffs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class ChangeKind(str, Enum):
    MODIFIED = "modified"
    ADDED = "added"
    DELETED = "deleted"
    RENAMED = "renamed"
    COPIED = "copied"
    UNTRACKED = "untracked"
    CONFLICTED = "conflicted"
    UNKNOWN = "unknown"


class DiffScope(str, Enum):
    ALL = "all"
    STAGED = "staged"
    UNSTAGED = "unstaged"


class FileStatus(str, Enum):
    MODIFIED = "modified"
    ADDED = "added"
    DELETED = "deleted"
    RENAMED = "renamed"
    COPIED = "copied"
    BINARY = "binary"
    COMBINED_UNSUPPORTED = "combined_unsupported"


class LineKind(str, Enum):
    CONTEXT = "context"
    ADD = "add"
    DELETE = "delete"
    META = "meta"


@dataclass(frozen=True)
class ChangeEntry:
    """One changed path from the status listing."""

    path: str
    kind: ChangeKind
    status_code: str
    original_path: Optional[str] = None  # set on renames and copies
    additions: int = 0
    deletions: int = 0

    @property
    def display_path(self) -> str:
        if self.original_path:
            return f"{self.path} ← {self.original_path}"
        return self.path

    @property
    def is_staged(self) -> bool:
        return self.status_code[:1] not in (" ", "?", "")

    @property
    def is_unstaged(self) -> bool:
        return self.status_code[1:2] not in (" ", "")

    def in_scope(self, scope: DiffScope) -> bool:
        if scope is DiffScope.STAGED:
            return self.is_staged
        if scope is DiffScope.UNSTAGED:
            return self.is_unstaged
        return True


@dataclass(frozen=True)
class DiffSource:
    """What a DiffDocument was produced from.

    Working-tree sources carry a scope and an optional path (whole tree
    when absent); pull-request sources carry only the PR number.
    """

    scope: DiffScope = DiffScope.ALL
    path: Optional[str] = None
    pull_request: Optional[int] = None
    untracked: bool = False

    @classmethod
    def working_tree(
        cls,
        scope: DiffScope = DiffScope.ALL,
        path: Optional[str] = None,
        *,
        untracked: bool = False,
    ) -> "DiffSource":
        return cls(scope=scope, path=path, untracked=untracked)

    @classmethod
    def for_pull_request(cls, number: int) -> "DiffSource":
        return cls(scope=DiffScope.ALL, pull_request=number)

    @classmethod
    def for_entry(cls, entry: ChangeEntry, scope: DiffScope = DiffScope.ALL) -> "DiffSource":
        return cls(
            scope=scope,
            path=entry.path,
            untracked=entry.kind is ChangeKind.UNTRACKED,
        )

    @property
    def is_pull_request(self) -> bool:
        return self.pull_request is not None


@dataclass(frozen=True, slots=True)
class DiffLine:
    """A single addressed line inside a hunk."""

    id: str
    kind: LineKind
    text: str
    old_line: Optional[int] = None
    new_line: Optional[int] = None


@dataclass(frozen=True)
class DiffHunk:
    id: str
    header: str
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: Tuple[DiffLine, ...] = ()


@dataclass(frozen=True)
class DiffFile:
    """One file section of a unified diff."""

    path_old: Optional[str]
    path_new: Optional[str]
    status: FileStatus = FileStatus.MODIFIED
    additions: int = 0
    deletions: int = 0
    hunks: Tuple[DiffHunk, ...] = ()
    fallback_text: Optional[str] = None  # shown when hunks cannot be rendered
    is_too_large_to_render: bool = False

    @property
    def path(self) -> str:
        return self.path_new or self.path_old or ""


@dataclass(frozen=True)
class DiffDocument:
    source: DiffSource
    files: Tuple[DiffFile, ...] = field(default_factory=tuple)

    @property
    def additions(self) -> int:
        return sum(f.additions for f in self.files)

    @property
    def deletions(self) -> int:
        return sum(f.deletions for f in self.files)
