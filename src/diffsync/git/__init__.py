"""Git interface layer — adapter, status collector, diff parsing, models."""

from diffsync.git.adapter import (
    CommandResult,
    CommandRunner,
    GitError,
    ToolRunner,
    get_diff_text,
    get_pull_request_diff,
    get_repo_root,
    resolve_git_dir,
)
from diffsync.git.diff_parser import DiffParser, parse_unified
from diffsync.git.models import (
    ChangeEntry,
    ChangeKind,
    DiffDocument,
    DiffFile,
    DiffHunk,
    DiffLine,
    DiffScope,
    DiffSource,
    FileStatus,
    LineKind,
)
from diffsync.git.status import status_entries

__all__ = [
    "ChangeEntry",
    "ChangeKind",
    "CommandResult",
    "CommandRunner",
    "DiffDocument",
    "DiffFile",
    "DiffHunk",
    "DiffLine",
    "DiffParser",
    "DiffScope",
    "DiffSource",
    "FileStatus",
    "GitError",
    "LineKind",
    "ToolRunner",
    "get_diff_text",
    "get_pull_request_diff",
    "get_repo_root",
    "parse_unified",
    "resolve_git_dir",
    "status_entries",
]
