"""JSON reporter for change listings and parsed diff documents."""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List

from diffsync.git.models import ChangeEntry, DiffDocument, DiffFile


def entry_to_dict(entry: ChangeEntry) -> Dict[str, Any]:
    return {
        "path": entry.path,
        "kind": entry.kind.value,
        "status": entry.status_code,
        "additions": entry.additions,
        "deletions": entry.deletions,
        **({"original_path": entry.original_path} if entry.original_path else {}),
    }


def _file_to_dict(diff_file: DiffFile) -> Dict[str, Any]:
    hunks: List[Dict[str, Any]] = []
    for hunk in diff_file.hunks:
        hunks.append({
            "id": hunk.id,
            "header": hunk.header,
            "old_start": hunk.old_start,
            "old_count": hunk.old_count,
            "new_start": hunk.new_start,
            "new_count": hunk.new_count,
            "lines": [
                {
                    "id": line.id,
                    "kind": line.kind.value,
                    "old": line.old_line,
                    "new": line.new_line,
                    "text": line.text,
                }
                for line in hunk.lines
            ],
        })
    return {
        "path_old": diff_file.path_old,
        "path_new": diff_file.path_new,
        "status": diff_file.status.value,
        "additions": diff_file.additions,
        "deletions": diff_file.deletions,
        "too_large": diff_file.is_too_large_to_render,
        "hunks": hunks,
        **({"fallback": diff_file.fallback_text} if diff_file.fallback_text else {}),
    }


def document_to_dict(document: DiffDocument) -> Dict[str, Any]:
    """Convert a DiffDocument to a JSON-serialisable dict."""
    source = document.source
    return {
        "version": "1.0",
        "source": {
            "scope": source.scope.value,
            **({"path": source.path} if source.path else {}),
            **({"pull_request": source.pull_request} if source.is_pull_request else {}),
        },
        "additions": document.additions,
        "deletions": document.deletions,
        "files": [_file_to_dict(f) for f in document.files],
    }


def render_document(document: DiffDocument) -> str:
    """Return formatted JSON string."""
    return json.dumps(document_to_dict(document), indent=2)


def render_entries(entries: Iterable[ChangeEntry]) -> str:
    return json.dumps({"version": "1.0", "entries": [entry_to_dict(e) for e in entries]}, indent=2)
