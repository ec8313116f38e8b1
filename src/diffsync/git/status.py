"""Status collector — porcelain v1 listing to ChangeEntry records.

The listing is parsed first; additions/deletions are attached afterwards
from ``git diff --numstat`` (unstaged and staged, summed) and, for
untracked files, from a best-effort line count of the file itself.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import structlog

from diffsync.git.adapter import CommandRunner, GitError, get_numstat, get_status_listing
from diffsync.git.models import ChangeEntry, ChangeKind

logger = structlog.get_logger(__name__)

DEFAULT_UNTRACKED_MAX_BYTES = 1_000_000

# Checked in order; the first marker found in either column wins.
KIND_PRECEDENCE: Tuple[Tuple[str, ChangeKind], ...] = (
    ("U", ChangeKind.CONFLICTED),
    ("A", ChangeKind.ADDED),
    ("D", ChangeKind.DELETED),
    ("R", ChangeKind.RENAMED),
    ("C", ChangeKind.COPIED),
    ("M", ChangeKind.MODIFIED),
    ("?", ChangeKind.UNTRACKED),
)

_RENAME_OR_COPY = ("R", "C")


def kind_from_status(index_status: str, worktree_status: str) -> ChangeKind:
    """Map the two status columns to a ChangeKind using KIND_PRECEDENCE."""
    for marker, kind in KIND_PRECEDENCE:
        if index_status == marker or worktree_status == marker:
            return kind
    return ChangeKind.UNKNOWN


def parse_status(output: str) -> List[ChangeEntry]:
    """Parse ``git status --porcelain=v1 -b -z`` output.

    Rename and copy records are followed by a second NUL-terminated token
    holding the origin path: ``R  new.txt\\0old.txt\\0``.
    """
    entries: List[ChangeEntry] = []
    tokens = [t for t in output.split("\0") if t]
    idx = 0
    total = len(tokens)
    while idx < total:
        record = tokens[idx]
        idx += 1
        if record.startswith("## "):
            continue
        if len(record) < 4:
            continue

        x, y = record[0], record[1]
        status_code = record[:2]
        path = record[3:]

        if x == "?" and y == "?":
            entries.append(ChangeEntry(path=path, kind=ChangeKind.UNTRACKED, status_code="??"))
            continue

        original: Optional[str] = None
        if x in _RENAME_OR_COPY or y in _RENAME_OR_COPY:
            if idx >= total:
                logger.warning("Rename record without origin path", path=path, status=status_code)
                continue
            original = tokens[idx]
            idx += 1

        kind = kind_from_status(x, y)
        if kind not in (ChangeKind.RENAMED, ChangeKind.COPIED):
            original = None
        entries.append(
            ChangeEntry(path=path, kind=kind, status_code=status_code, original_path=original)
        )
    return entries


def parse_numstat(output: str) -> Dict[str, Tuple[int, int]]:
    """Parse ``git diff --numstat -z`` output into {path: (added, deleted)}.

    Renamed paths are reported as ``A\\tD\\t\\0old\\0new\\0`` and keyed by
    the new path. Binary files (``-\\t-``) count as zero.
    """
    stats: Dict[str, Tuple[int, int]] = {}
    tokens = output.split("\0")
    idx = 0
    while idx < len(tokens):
        token = tokens[idx]
        idx += 1
        parts = token.split("\t", 2)
        if len(parts) < 3:
            continue
        adds = int(parts[0]) if parts[0].isdigit() else 0
        dels = int(parts[1]) if parts[1].isdigit() else 0
        path = parts[2]
        if not path:
            if idx + 1 >= len(tokens):
                break
            path = tokens[idx + 1]
            idx += 2
        stats[path] = (adds, dels)
    return stats


def count_untracked_additions(
    repo_root: Path,
    path: str,
    max_bytes: int = DEFAULT_UNTRACKED_MAX_BYTES,
) -> int:
    """Return the line count of an untracked file, 0 when too big or not text."""
    target = repo_root / path
    try:
        if not target.is_file() or target.stat().st_size > max_bytes:
            return 0
        data = target.read_bytes()
    except OSError:
        return 0
    if b"\0" in data:
        return 0
    try:
        content = data.decode("utf-8")
    except UnicodeDecodeError:
        return 0
    if not content:
        return 0
    return content.count("\n") + (0 if content.endswith("\n") else 1)


def _numstat_map(runner: CommandRunner, repo_root: Path, *, staged: bool) -> Dict[str, Tuple[int, int]]:
    try:
        return parse_numstat(get_numstat(runner, repo_root, staged=staged))
    except GitError as exc:
        logger.info("numstat unavailable", staged=staged, error=exc.message)
        return {}


def enrich_with_stats(
    runner: CommandRunner,
    repo_root: Path,
    entries: List[ChangeEntry],
    *,
    untracked_max_bytes: int = DEFAULT_UNTRACKED_MAX_BYTES,
) -> List[ChangeEntry]:
    """Return copies of *entries* with additions/deletions filled in."""
    unstaged = _numstat_map(runner, repo_root, staged=False)
    staged = _numstat_map(runner, repo_root, staged=True)

    result: List[ChangeEntry] = []
    for entry in entries:
        if entry.kind is ChangeKind.UNTRACKED:
            adds = count_untracked_additions(repo_root, entry.path, untracked_max_bytes)
            result.append(replace(entry, additions=adds, deletions=0))
            continue
        u_add, u_del = unstaged.get(entry.path, (0, 0))
        s_add, s_del = staged.get(entry.path, (0, 0))
        result.append(replace(entry, additions=u_add + s_add, deletions=u_del + s_del))
    return result


def status_entries(
    runner: CommandRunner,
    repo_root: Path,
    *,
    untracked_max_bytes: int = DEFAULT_UNTRACKED_MAX_BYTES,
) -> List[ChangeEntry]:
    """Collect the change entries for *repo_root*. Raises GitError on failure."""
    entries = parse_status(get_status_listing(runner, repo_root))
    return enrich_with_stats(runner, repo_root, entries, untracked_max_bytes=untracked_max_bytes)
