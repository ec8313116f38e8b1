"""Git / gh subprocess wrapper — status listing, diff text, stage/unstage."""

from __future__ import annotations

import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Tuple

from diffsync.git.models import ChangeEntry, ChangeKind, DiffScope, DiffSource

DEFAULT_EXTRA_PATHS: Tuple[str, ...] = ("/opt/homebrew/bin", "/usr/local/bin")


class GitError(Exception):
    """Raised when git (or gh) is unavailable or returns an unexpected error."""

    def __init__(self, message: str, exit_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code

    @classmethod
    def from_result(cls, args: Sequence[str], result: "CommandResult") -> "GitError":
        """Build a readable error from a failed command's stderr."""
        stderr = result.stderr.strip()
        lines = [ln.strip() for ln in stderr.splitlines() if ln.strip()]
        preferred = [ln for ln in lines if ln.lower().startswith(("fatal:", "error:"))]
        if preferred:
            message = preferred[0]
        elif lines:
            message = lines[0]
        else:
            message = f"command failed with exit code {result.exit_code}: {' '.join(args)}"
        return cls(message, exit_code=result.exit_code)


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str
    exit_code: int


class CommandRunner(Protocol):
    def run(self, args: Sequence[str], cwd: Optional[Path] = None) -> CommandResult:
        ...


def augmented_path(extra_paths: Sequence[str], existing: Optional[str] = None) -> str:
    """Prepend *extra_paths* that are missing from the PATH value *existing*."""
    existing = os.environ.get("PATH", "") if existing is None else existing
    if not existing:
        return os.pathsep.join(extra_paths)
    present = set(existing.split(os.pathsep))
    missing = [p for p in extra_paths if p not in present]
    if not missing:
        return existing
    return os.pathsep.join([*missing, existing])


class ToolRunner:
    """Run an external tool with a resolved executable and augmented PATH."""

    def __init__(
        self,
        executable: str = "git",
        *,
        extra_paths: Sequence[str] = DEFAULT_EXTRA_PATHS,
        timeout: float = 30,
    ) -> None:
        self.executable = executable
        self.extra_paths = tuple(extra_paths)
        self.timeout = timeout
        self._resolved: Optional[str] = None
        self._env: Optional[dict] = None

    def _environment(self) -> dict:
        if self._env is None:
            env = dict(os.environ)
            env["PATH"] = augmented_path(self.extra_paths, env.get("PATH", ""))
            self._env = env
        return self._env

    def resolve(self) -> str:
        """Return the executable's full path. Raises GitError when missing."""
        if self._resolved is None:
            found = shutil.which(self.executable, path=self._environment()["PATH"])
            if found is None:
                raise GitError(f"{self.executable} is not installed or not on PATH")
            self._resolved = found
        return self._resolved

    def run(self, args: Sequence[str], cwd: Optional[Path] = None) -> CommandResult:
        executable = self.resolve()
        try:
            result = subprocess.run(
                [executable, *args],
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                encoding="utf-8",
                errors="replace",
                env=self._environment(),
            )
        except FileNotFoundError:
            raise GitError(f"{self.executable} is not installed or not on PATH")
        except subprocess.TimeoutExpired:
            raise GitError(
                f"{self.executable} command timed out after {self.timeout}s: "
                f"{self.executable} {' '.join(args)}"
            )
        return CommandResult(result.stdout, result.stderr, result.returncode)


def _run_checked(
    runner: CommandRunner,
    args: List[str],
    cwd: Optional[Path],
    ok_codes: Tuple[int, ...] = (0,),
) -> str:
    result = runner.run(args, cwd)
    if result.exit_code not in ok_codes:
        raise GitError.from_result(args, result)
    return result.stdout


def get_repo_root(runner: CommandRunner, cwd: Path) -> Optional[Path]:
    """Return the worktree root containing *cwd*, or None outside a repository.

    A missing executable still raises GitError.
    """
    if not cwd.is_dir():
        return None
    result = runner.run(["rev-parse", "--show-toplevel"], cwd)
    root = result.stdout.strip()
    if result.exit_code != 0 or not root:
        return None
    return Path(root)


def resolve_git_dir(worktree: Path) -> Optional[Path]:
    """Return the control directory for *worktree*.

    Linked worktrees and submodules have a ``.git`` file holding a
    ``gitdir:`` line instead of a directory.
    """
    dot_git = worktree / ".git"
    if dot_git.is_dir():
        return dot_git
    if not dot_git.is_file():
        return None
    try:
        first = dot_git.read_text(encoding="utf-8", errors="replace").splitlines()[0]
    except (OSError, IndexError):
        return None
    if not first.startswith("gitdir: "):
        return None
    target = Path(first[len("gitdir: "):].strip())
    return target if target.is_absolute() else (worktree / target)


def get_status_listing(runner: CommandRunner, repo_root: Path) -> str:
    """Return the NUL-separated porcelain v1 status listing."""
    return _run_checked(
        runner,
        ["--no-optional-locks", "status", "--porcelain=v1", "-b", "-z", "-M", "-uall"],
        repo_root,
    )


def get_numstat(runner: CommandRunner, repo_root: Path, *, staged: bool) -> str:
    args = ["--no-optional-locks", "diff", "--numstat", "-z"]
    if staged:
        args.insert(2, "--cached")
    return _run_checked(runner, args, repo_root)


def diff_args(source: DiffSource) -> List[str]:
    """Return the git arguments producing the diff text for a working-tree *source*."""
    args = ["-c", "color.ui=never", "diff", "--no-ext-diff"]
    if source.untracked and source.path:
        return [*args, "--no-index", "--", "/dev/null", source.path]
    if source.scope is DiffScope.STAGED:
        args.append("--cached")
    elif source.scope is DiffScope.ALL:
        args.append("HEAD")
    if source.path:
        args.extend(["--", source.path])
    return args


def get_diff_text(runner: CommandRunner, repo_root: Path, source: DiffSource) -> str:
    """Return raw diff text. Exit code 1 means differences were found."""
    return _run_checked(runner, diff_args(source), repo_root, ok_codes=(0, 1))


def get_pull_request_diff(gh_runner: CommandRunner, repo_root: Path, number: int) -> str:
    """Return the unified diff of pull request *number* via ``gh pr diff``."""
    return _run_checked(gh_runner, ["pr", "diff", str(number), "--color=never"], repo_root)


def stage_path(runner: CommandRunner, repo_root: Path, path: str) -> None:
    _run_checked(runner, ["add", "--", path], repo_root)


def unstage_path(runner: CommandRunner, repo_root: Path, path: str) -> None:
    _run_checked(runner, ["restore", "--staged", "--", path], repo_root)


def diff_command(entry: ChangeEntry) -> str:
    """Return a shell command line that shows *entry*'s diff in a terminal."""
    escaped = shlex.quote(entry.path)
    if entry.kind is ChangeKind.UNTRACKED:
        return f"git -c color.ui=always diff --no-index -- /dev/null {escaped}"
    return f"git -c color.ui=always diff -- {escaped}"
