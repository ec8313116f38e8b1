"""Shared test fixtures — sample diffs, status listings, fake runners, temp git repos."""

from __future__ import annotations

import subprocess
import textwrap
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from diffsync.git.adapter import CommandResult


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# ── sample diffs ──────────────────────────────────────────────────────────────


@pytest.fixture
def sample_diff_modified() -> str:
    """One deletion, one addition and a context line."""
    return textwrap.dedent("""\
        diff --git a/x.txt b/x.txt
        index 1234567..abcdef0 100644
        --- a/x.txt
        +++ b/x.txt
        @@ -1,2 +1,2 @@
        -a
        +b
         c
    """)


@pytest.fixture
def sample_diff_two_hunks() -> str:
    return textwrap.dedent("""\
        diff --git a/app.py b/app.py
        index 1234567..abcdef0 100644
        --- a/app.py
        +++ b/app.py
        @@ -1,3 +1,4 @@
         import os
        +import sys
         import re
         def main():
        @@ -10,3 +11,2 @@ def main():
             run()
        -    cleanup()
             return 0
    """)


@pytest.fixture
def sample_diff_new_file() -> str:
    return textwrap.dedent("""\
        diff --git a/hello.py b/hello.py
        new file mode 100644
        index 0000000..e69de29
        --- /dev/null
        +++ b/hello.py
        @@ -0,0 +1,3 @@
        +def greet(name):
        +    return f"Hello, {name}!"
        +
    """)


@pytest.fixture
def sample_diff_deleted_file() -> str:
    return textwrap.dedent("""\
        diff --git a/gone.txt b/gone.txt
        deleted file mode 100644
        index abc1234..0000000
        --- a/gone.txt
        +++ /dev/null
        @@ -1,2 +0,0 @@
        -first
        -second
    """)


@pytest.fixture
def sample_diff_binary() -> str:
    return textwrap.dedent("""\
        diff --git a/image.png b/image.png
        new file mode 100644
        index 0000000..abc1234
        Binary files /dev/null and b/image.png differ
    """)


@pytest.fixture
def sample_diff_rename() -> str:
    return textwrap.dedent("""\
        diff --git a/old_name.py b/new_name.py
        similarity index 97%
        rename from old_name.py
        rename to new_name.py
        index abc1234..def5678 100644
        --- a/old_name.py
        +++ b/new_name.py
        @@ -1,0 +2,1 @@
        +# New line added after rename
    """)


@pytest.fixture
def sample_diff_copy() -> str:
    return textwrap.dedent("""\
        diff --git a/base.cfg b/copy.cfg
        similarity index 100%
        copy from base.cfg
        copy to copy.cfg
    """)


@pytest.fixture
def sample_diff_mode_only() -> str:
    return textwrap.dedent("""\
        diff --git a/script.sh b/script.sh
        old mode 100644
        new mode 100755
    """)


@pytest.fixture
def sample_diff_combined() -> str:
    return textwrap.dedent("""\
        diff --cc conflict.txt
        index 1234567,89abcde..0000000
        --- a/conflict.txt
        +++ b/conflict.txt
        @@@ -1,1 -1,1 +1,5 @@@
        ++<<<<<<< HEAD
         +ours
        ++=======
        + theirs
        ++>>>>>>> feature
    """)


@pytest.fixture
def sample_diff_no_newline() -> str:
    return textwrap.dedent("""\
        diff --git a/data.txt b/data.txt
        new file mode 100644
        index 0000000..abc1234
        --- /dev/null
        +++ b/data.txt
        @@ -0,0 +1 @@
        +final line without newline
        \\ No newline at end of file
    """)


@pytest.fixture
def sample_diff_dashes_in_body() -> str:
    """A deleted line that itself starts with '-- ' and an added '++ ' line."""
    return textwrap.dedent("""\
        diff --git a/query.sql b/query.sql
        index 1234567..abcdef0 100644
        --- a/query.sql
        +++ b/query.sql
        @@ -1,2 +1,2 @@
        --- old comment
        +++ new comment
         SELECT 1;
    """)


@pytest.fixture
def sample_diff_quoted_paths() -> str:
    return textwrap.dedent("""\
        diff --git "a/docs/caf\\303\\251 menu.txt" "b/docs/caf\\303\\251 menu.txt"
        index 1234567..abcdef0 100644
        --- "a/docs/caf\\303\\251 menu.txt"
        +++ "b/docs/caf\\303\\251 menu.txt"
        @@ -1 +1 @@
        -espresso
        +lungo
    """)


# ── status listings ───────────────────────────────────────────────────────────


@pytest.fixture
def sample_status_listing() -> str:
    """``git status --porcelain=v1 -b -z`` output with a rename."""
    return "\0".join([
        "## main...origin/main",
        " M src/app.py",
        "R  new.txt",
        "old.txt",
        "A  added.py",
        "?? notes.md",
        "",
    ])


# ── fake command runner ───────────────────────────────────────────────────────


Handler = Callable[[Sequence[str]], CommandResult]


class FakeRunner:
    """CommandRunner that records every call and answers from handlers.

    Handlers are matched by the first argument that is not a git global
    option (``status``, ``diff``, ``rev-parse`` ...). Unmatched commands
    succeed with empty output.
    """

    def __init__(self, repo_root: Optional[Path] = None) -> None:
        self.repo_root = repo_root
        self.calls: List[List[str]] = []
        self.handlers: Dict[str, Handler] = {}
        self.delays: Dict[str, float] = {}
        self._lock = threading.Lock()

    @staticmethod
    def command_of(args: Sequence[str]) -> str:
        skip = False
        for arg in args:
            if skip:
                skip = False
                continue
            if arg == "-c":
                skip = True
                continue
            if arg.startswith("--"):
                continue
            return arg
        return ""

    def count(self, command: str) -> int:
        with self._lock:
            return sum(1 for call in self.calls if self.command_of(call) == command)

    def on(self, command: str, stdout: str = "", stderr: str = "", exit_code: int = 0) -> None:
        self.handlers[command] = lambda args: CommandResult(stdout, stderr, exit_code)

    def run(self, args: Sequence[str], cwd: Optional[Path] = None) -> CommandResult:
        command = self.command_of(args)
        with self._lock:
            self.calls.append(list(args))
        if command in self.delays:
            time.sleep(self.delays[command])
        if command in self.handlers:
            return self.handlers[command](args)
        if command == "rev-parse" and self.repo_root is not None:
            return CommandResult(f"{self.repo_root}\n", "", 0)
        return CommandResult("", "", 0)


@pytest.fixture
def fake_repo(tmp_path: Path) -> Path:
    """A directory that looks like a worktree root (has a .git directory)."""
    (tmp_path / ".git").mkdir()
    return tmp_path


@pytest.fixture
def fake_runner(fake_repo: Path) -> FakeRunner:
    return FakeRunner(fake_repo)


# ── real git ──────────────────────────────────────────────────────────────────


@pytest.fixture
def tmp_git_repo(tmp_path: Path) -> Path:
    """Create a temporary git repository for integration tests."""
    subprocess.run(["git", "init", str(tmp_path)], capture_output=True, check=True)
    subprocess.run(
        ["git", "config", "user.email", "test@test.com"],
        cwd=tmp_path, capture_output=True, check=True,
    )
    subprocess.run(
        ["git", "config", "user.name", "Test"],
        cwd=tmp_path, capture_output=True, check=True,
    )
    # Initial commit
    readme = tmp_path / "README.md"
    readme.write_text("# Test\n")
    subprocess.run(["git", "add", "."], cwd=tmp_path, capture_output=True, check=True)
    subprocess.run(
        ["git", "commit", "-m", "init"],
        cwd=tmp_path, capture_output=True, check=True,
    )
    return tmp_path
