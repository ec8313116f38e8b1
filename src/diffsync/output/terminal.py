"""Rich terminal reporter — change tables and coloured hunks."""

from __future__ import annotations

from typing import Iterable, Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from diffsync.git.models import ChangeEntry, ChangeKind, DiffDocument, DiffFile, LineKind

_KIND_STYLE = {
    ChangeKind.MODIFIED: "yellow",
    ChangeKind.ADDED: "green",
    ChangeKind.DELETED: "red",
    ChangeKind.RENAMED: "cyan",
    ChangeKind.COPIED: "cyan",
    ChangeKind.UNTRACKED: "bright_black",
    ChangeKind.CONFLICTED: "bold white on red",
    ChangeKind.UNKNOWN: "dim",
}

_LINE_STYLE = {
    LineKind.ADD: "green",
    LineKind.DELETE: "red",
    LineKind.CONTEXT: "",
    LineKind.META: "dim italic",
}

_LINE_MARKER = {
    LineKind.ADD: "+",
    LineKind.DELETE: "-",
    LineKind.CONTEXT: " ",
    LineKind.META: "",
}


def _stat_text(additions: int, deletions: int) -> Text:
    text = Text()
    text.append(f"+{additions}", style="green")
    text.append(" ")
    text.append(f"-{deletions}", style="red")
    return text


def entries_table(entries: Iterable[ChangeEntry], *, title: str = "Changes") -> Table:
    table = Table(title=title, title_style="bold", border_style="dim")
    table.add_column("Status", justify="center", width=6)
    table.add_column("Kind", min_width=10)
    table.add_column("Path", style="magenta")
    table.add_column("Lines", justify="right")

    for entry in entries:
        style = _KIND_STYLE.get(entry.kind, "")
        table.add_row(
            Text(entry.status_code.replace(" ", "·"), style=style),
            Text(entry.kind.value, style=style),
            entry.display_path,
            _stat_text(entry.additions, entry.deletions),
        )
    return table


def render_entries(
    entries: Iterable[ChangeEntry],
    *,
    console: Optional[Console] = None,
    error: Optional[str] = None,
) -> None:
    """Print the change listing (or *error*) to the terminal."""
    console = console or Console()
    if error:
        console.print(f"[bold red]Error:[/bold red] {error}")
        return
    entries = list(entries)
    if not entries:
        console.print("[dim]Working tree clean.[/dim]")
        return
    console.print(entries_table(entries))


def _number(value: Optional[int]) -> str:
    return "" if value is None else str(value)


def _render_file(console: Console, diff_file: DiffFile) -> None:
    header = Text()
    header.append(diff_file.path or "(unknown)", style="bold magenta")
    if diff_file.path_old and diff_file.path_new and diff_file.path_old != diff_file.path_new:
        header.append(f" ← {diff_file.path_old}", style="magenta")
    header.append(f"  [{diff_file.status.value}]  ", style="dim")
    header.append_text(_stat_text(diff_file.additions, diff_file.deletions))
    console.print(header)

    if diff_file.fallback_text and not diff_file.hunks:
        console.print(Text(diff_file.fallback_text, style="dim"))
        console.print()
        return

    for hunk in diff_file.hunks:
        console.print(Text(hunk.header, style="cyan"))
        for line in hunk.lines:
            row = Text()
            row.append(f"{_number(line.old_line):>5} {_number(line.new_line):>5} ", style="dim")
            row.append(_LINE_MARKER[line.kind] + line.text, style=_LINE_STYLE[line.kind])
            console.print(row, soft_wrap=True)
    console.print()


def render_document(document: DiffDocument, *, console: Optional[Console] = None) -> None:
    """Print every file of *document* with line numbers on both sides."""
    console = console or Console()
    if not document.files:
        console.print("[dim]No differences.[/dim]")
        return
    for diff_file in document.files:
        _render_file(console, diff_file)
    console.print(
        f"[dim]{len(document.files)} file(s), "
        f"[green]+{document.additions}[/green] [red]-{document.deletions}[/red][/dim]"
    )
