"""Unified diff parser — raw git diff text to a DiffDocument.

The parser is total: anything it cannot turn into hunks (combined merge
diffs, binary patches, oversized files, mode-only changes) ends up as
``fallback_text`` on the affected DiffFile instead of raising.
"""

from __future__ import annotations

import re
from typing import Iterator, List, Optional, Tuple

from diffsync.git.models import (
    DiffDocument,
    DiffFile,
    DiffHunk,
    DiffLine,
    DiffSource,
    FileStatus,
    LineKind,
)

DEFAULT_MAX_LINES_PER_FILE = 10_000

# Counts may be omitted: @@ -1 +1 @@
_HUNK_HEADER_RE = re.compile(r"^@@\s*-(\d+)(?:,(\d+))?\s*\+(\d+)(?:,(\d+))?\s*@@")
_OLD_MODE_RE = re.compile(r"^old mode (\d+)$")
_NEW_MODE_RE = re.compile(r"^new mode (\d+)$")

_DIFF_GIT = "diff --git "
_DIFF_CC = "diff --cc "
_DIFF_COMBINED = "diff --combined "
_DEV_NULL = "/dev/null"
_SYNTHETIC_HUNK = "@@ -0,0 +0,0 @@"


def _iter_lines(text: str) -> Iterator[str]:
    """Yield newline-delimited lines with a trailing CR removed."""
    if not text:
        return
    parts = text.split("\n")
    if parts[-1] == "":
        parts.pop()
    for part in parts:
        yield part[:-1] if part.endswith("\r") else part


_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "a": "\a", "b": "\b", "f": "\f", "v": "\v"}
_OCTAL = "01234567"


def _tokenize_paths(value: str, limit: int = 2) -> List[str]:
    """Split *value* into at most *limit* path tokens.

    Quoted tokens may contain whitespace and C-style backslash escapes
    (git writes non-ASCII bytes as ``\\ooo`` octal); unquoted tokens end
    at whitespace.
    """
    tokens: List[str] = []
    idx = 0
    total = len(value)
    while len(tokens) < limit:
        while idx < total and value[idx].isspace():
            idx += 1
        if idx >= total:
            break
        if value[idx] == '"':
            idx += 1
            buf = bytearray()
            while idx < total:
                ch = value[idx]
                if ch == '"':
                    idx += 1
                    break
                if ch == "\\" and idx + 1 < total:
                    nxt = value[idx + 1]
                    octal = value[idx + 1:idx + 4]
                    if len(octal) == 3 and all(c in _OCTAL for c in octal):
                        buf.append(int(octal, 8) & 0xFF)
                        idx += 4
                        continue
                    buf.extend(_ESCAPES.get(nxt, nxt).encode("utf-8"))
                    idx += 2
                    continue
                buf.extend(ch.encode("utf-8"))
                idx += 1
            tokens.append(buf.decode("utf-8", errors="replace"))
        else:
            start = idx
            while idx < total and not value[idx].isspace():
                idx += 1
            tokens.append(value[start:idx])
    return tokens


def _strip_prefix(token: str) -> str:
    if token.startswith(("a/", "b/")):
        return token[2:]
    return token


def _clean_path(raw: str) -> Optional[str]:
    """Normalise the path on a metadata or ---/+++ line; /dev/null becomes None."""
    value = raw.split("\t", 1)[0].strip()
    if value.startswith('"'):
        tokens = _tokenize_paths(value, limit=1)
        value = tokens[0] if tokens else ""
    if not value or value == _DEV_NULL:
        return None
    return value


def parse_diff_git_line(line: str) -> Optional[Tuple[str, str]]:
    """Return the (old, new) paths of a ``diff --git`` header, prefixes stripped."""
    if not line.startswith(_DIFF_GIT):
        return None
    rest = line[len(_DIFF_GIT):].strip()
    # Unquoted paths may contain spaces: "a/x y b/x y" splits at the midpoint.
    if not rest.startswith('"') and len(rest) % 2 == 1:
        mid = len(rest) // 2
        left, right = rest[:mid], rest[mid + 1:]
        if rest[mid] == " " and left.startswith("a/") and right.startswith("b/") and left[2:] == right[2:]:
            return left[2:], right[2:]
    tokens = _tokenize_paths(rest)
    if len(tokens) != 2:
        return None
    return _strip_prefix(tokens[0]), _strip_prefix(tokens[1])


def parse_hunk_header(line: str) -> Tuple[int, int, int, int]:
    """Return (old_start, old_count, new_start, new_count).

    Omitted counts default to 1; an unrecognised header yields zeros.
    """
    m = _HUNK_HEADER_RE.match(line)
    if not m:
        return 0, 0, 0, 0
    old_count = int(m.group(2)) if m.group(2) is not None else 1
    new_count = int(m.group(4)) if m.group(4) is not None else 1
    return int(m.group(1)), old_count, int(m.group(3)), new_count


class _HunkAccumulator:
    def __init__(self, hunk_id: str, header: str) -> None:
        self.id = hunk_id
        self.header = header
        self.old_start, self.old_count, self.new_start, self.new_count = parse_hunk_header(header)
        self.old_cursor = self.old_start
        self.new_cursor = self.new_start
        self.lines: List[DiffLine] = []
        self._counter = 0

    def append(self, marker: str, text: str) -> None:
        self._counter += 1
        line_id = f"{self.id}|l{self._counter}"
        if marker == "+":
            self.lines.append(DiffLine(line_id, LineKind.ADD, text, new_line=self.new_cursor))
            self.new_cursor += 1
        elif marker == "-":
            self.lines.append(DiffLine(line_id, LineKind.DELETE, text, old_line=self.old_cursor))
            self.old_cursor += 1
        else:
            self.lines.append(
                DiffLine(
                    line_id,
                    LineKind.CONTEXT,
                    text,
                    old_line=self.old_cursor,
                    new_line=self.new_cursor,
                )
            )
            self.old_cursor += 1
            self.new_cursor += 1

    def append_meta(self, text: str) -> None:
        self._counter += 1
        self.lines.append(DiffLine(f"{self.id}|m{self._counter}", LineKind.META, text))

    def build(self) -> DiffHunk:
        return DiffHunk(
            id=self.id,
            header=self.header,
            old_start=self.old_start,
            old_count=self.old_count,
            new_start=self.new_start,
            new_count=self.new_count,
            lines=tuple(self.lines),
        )


class _FileAccumulator:
    def __init__(
        self,
        path_old: Optional[str],
        path_new: Optional[str],
        status: FileStatus,
        max_lines: int,
    ) -> None:
        self.path_old = path_old
        self.path_new = path_new
        self.status = status
        self.max_lines = max_lines
        self.hunks: List[_HunkAccumulator] = []
        self.current: Optional[_HunkAccumulator] = None
        self.fallback_lines: List[str] = []
        self.additions = 0
        self.deletions = 0
        self.lines_seen = 0
        self.too_large = False
        self.old_mode: Optional[str] = None
        self.new_mode: Optional[str] = None
        self.old_remaining = 0
        self.new_remaining = 0
        self._hunk_counter = 0

    @classmethod
    def from_diff_git(cls, line: str, max_lines: int) -> "_FileAccumulator":
        paths = parse_diff_git_line(line)
        old, new = paths if paths else (None, None)
        return cls(
            None if old == _DEV_NULL else old,
            None if new == _DEV_NULL else new,
            FileStatus.MODIFIED,
            max_lines,
        )

    @classmethod
    def from_combined(cls, line: str, max_lines: int) -> "_FileAccumulator":
        prefix = _DIFF_CC if line.startswith(_DIFF_CC) else _DIFF_COMBINED
        path = _clean_path(line[len(prefix):])
        acc = cls(path, path, FileStatus.COMBINED_UNSUPPORTED, max_lines)
        acc.fallback_lines.append(line)
        return acc

    @property
    def captures_verbatim(self) -> bool:
        return self.status in (FileStatus.BINARY, FileStatus.COMBINED_UNSUPPORTED)

    @property
    def primary_path(self) -> str:
        return self.path_new or self.path_old or "Diff"

    @property
    def in_hunk_body(self) -> bool:
        """True while the last hunk header still expects old or new lines."""
        return self.old_remaining > 0 or self.new_remaining > 0

    def start_hunk(self, header: str) -> None:
        self._flush_hunk()
        self._hunk_counter += 1
        hunk = _HunkAccumulator(f"{self.primary_path}|{self._hunk_counter}", header)
        self.old_remaining = hunk.old_count
        self.new_remaining = hunk.new_count
        self.current = hunk

    def append_content(self, marker: str, text: str) -> None:
        self.lines_seen += 1
        if marker == "+":
            self.additions += 1
            self.new_remaining -= 1
        elif marker == "-":
            self.deletions += 1
            self.old_remaining -= 1
        else:
            self.old_remaining -= 1
            self.new_remaining -= 1
        if self._over_budget():
            return
        if self.current is None:
            self.start_hunk(_SYNTHETIC_HUNK)
        self.current.append(marker, text)  # type: ignore[union-attr]

    def append_meta(self, line: str) -> None:
        self.lines_seen += 1
        if self._over_budget():
            return
        if self.current is None:
            self.start_hunk(_SYNTHETIC_HUNK)
        self.current.append_meta(line)  # type: ignore[union-attr]

    def _over_budget(self) -> bool:
        if self.too_large:
            return True
        if self.lines_seen > self.max_lines:
            self.too_large = True
            self.hunks.clear()
            self.current = None
            return True
        return False

    def _flush_hunk(self) -> None:
        if self.current is not None:
            self.hunks.append(self.current)
            self.current = None

    def build(self) -> DiffFile:
        self._flush_hunk()
        hunks = tuple(h.build() for h in self.hunks)

        fallback: Optional[str] = None
        if self.status is FileStatus.BINARY:
            fallback = "\n".join(self.fallback_lines) or "Binary file not shown."
        elif self.status is FileStatus.COMBINED_UNSUPPORTED:
            fallback = "\n".join(self.fallback_lines) or "Combined diffs are not supported."
        elif self.too_large:
            fallback = f"Diff too large to render ({self.lines_seen} lines)."
        elif not hunks and self.old_mode and self.new_mode:
            fallback = f"File mode changed from {self.old_mode} to {self.new_mode}."
        elif not hunks and self.fallback_lines:
            fallback = "\n".join(self.fallback_lines)

        return DiffFile(
            path_old=self.path_old,
            path_new=self.path_new,
            status=self.status,
            additions=self.additions,
            deletions=self.deletions,
            hunks=() if self.too_large else hunks,
            fallback_text=fallback,
            is_too_large_to_render=self.too_large,
        )


class DiffParser:
    """Parse unified diff text into a DiffDocument.

    Usage::

        document = DiffParser(diff_text, source).parse()

    The parser holds no state between ``parse()`` calls beyond the input,
    so separate instances may run concurrently in worker threads.
    """

    def __init__(
        self,
        diff_text: str,
        source: Optional[DiffSource] = None,
        *,
        max_lines_per_file: int = DEFAULT_MAX_LINES_PER_FILE,
    ) -> None:
        self._text = diff_text or ""
        self._source = source or DiffSource()
        self._max_lines = max_lines_per_file

    def parse(self) -> DiffDocument:
        files: List[DiffFile] = []
        current: Optional[_FileAccumulator] = None

        for line in _iter_lines(self._text):
            # --- file section headers ---
            if line.startswith(_DIFF_GIT):
                if current is not None:
                    files.append(current.build())
                current = _FileAccumulator.from_diff_git(line, self._max_lines)
                continue
            if line.startswith((_DIFF_CC, _DIFF_COMBINED)):
                if current is not None:
                    files.append(current.build())
                current = _FileAccumulator.from_combined(line, self._max_lines)
                continue

            if current is None:
                continue

            if current.captures_verbatim:
                current.fallback_lines.append(line)
                continue

            # Inside a hunk body "--- x" is a deleted "-- x", not a file header.
            if current.in_hunk_body and line[:1] in ("+", "-", " "):
                current.append_content(line[0], line[1:])
                continue

            self._handle_line(current, line)

        if current is not None:
            files.append(current.build())
        return DiffDocument(source=self._source, files=tuple(files))

    def _handle_line(self, current: _FileAccumulator, line: str) -> None:
        # --- extended header lines ---
        if line.startswith("new file mode "):
            current.status = FileStatus.ADDED
            return
        if line.startswith("deleted file mode "):
            current.status = FileStatus.DELETED
            return
        if line.startswith("rename from "):
            current.status = FileStatus.RENAMED
            current.path_old = _clean_path(line[len("rename from "):])
            return
        if line.startswith("rename to "):
            current.status = FileStatus.RENAMED
            current.path_new = _clean_path(line[len("rename to "):])
            return
        if line.startswith("copy from "):
            current.status = FileStatus.COPIED
            current.path_old = _clean_path(line[len("copy from "):])
            return
        if line.startswith("copy to "):
            current.status = FileStatus.COPIED
            current.path_new = _clean_path(line[len("copy to "):])
            return
        if (m := _OLD_MODE_RE.match(line)):
            current.old_mode = m.group(1)
            return
        if (m := _NEW_MODE_RE.match(line)):
            current.new_mode = m.group(1)
            return

        # --- file headers (--- a/ and +++ b/) ---
        if line.startswith("--- "):
            path = _clean_path(line[4:])
            if path is None:
                current.status = FileStatus.ADDED
                current.path_old = None
            elif current.path_old is None and current.status is not FileStatus.ADDED:
                current.path_old = _strip_prefix(path)
            return
        if line.startswith("+++ "):
            path = _clean_path(line[4:])
            if path is None:
                current.status = FileStatus.DELETED
                current.path_new = None
            elif current.path_new is None and current.status is not FileStatus.DELETED:
                current.path_new = _strip_prefix(path)
            return

        # --- binary markers ---
        if line.startswith("Binary files ") or line.startswith("GIT binary patch"):
            current.status = FileStatus.BINARY
            current.hunks.clear()
            current.current = None
            current.fallback_lines.append(line)
            return

        # --- hunks and content ---
        if line.startswith("@@"):
            current.start_hunk(line)
            return
        if line[:1] in ("+", "-", " "):
            current.append_content(line[0], line[1:])
            return
        if line.startswith("\\"):
            current.append_meta(line)
            return
        # notes emitted by the tool, shown when the file has no hunks
        if line.startswith("# "):
            current.fallback_lines.append(line)
            return
        # index, similarity and other extended headers carry nothing we render


def parse_unified(
    text: str,
    source: Optional[DiffSource] = None,
    *,
    max_lines_per_file: int = DEFAULT_MAX_LINES_PER_FILE,
) -> DiffDocument:
    """Parse *text* into a DiffDocument. Never raises on malformed input."""
    return DiffParser(text, source, max_lines_per_file=max_lines_per_file).parse()
