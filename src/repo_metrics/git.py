from __future__ import annotations

import datetime as dt
import subprocess
from pathlib import Path
from typing import Optional, Protocol


class GitError(RuntimeError):
    pass


def run_git(args: list[str], cwd: Path, timeout_s: int = 300) -> tuple[int, str, str]:
    proc = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        timeout=timeout_s,
    )
    return proc.returncode, proc.stdout, proc.stderr


def run_git_bytes(args: list[str], cwd: Path, timeout_s: int = 300) -> tuple[int, bytes, str]:
    # Blob contents may not be valid UTF-8, so stdout stays raw.
    proc = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        capture_output=True,
        timeout=timeout_s,
    )
    return proc.returncode, proc.stdout, proc.stderr.decode("utf-8", errors="replace")


def get_repo_toplevel(candidate: Path) -> Optional[Path]:
    if not candidate.is_dir():
        return None
    try:
        code, out, _ = run_git(["rev-parse", "--show-toplevel"], cwd=candidate)
    except (subprocess.TimeoutExpired, OSError):
        return None
    if code != 0:
        return None
    try:
        return Path(out.strip()).resolve()
    except Exception:
        return None


class GitHistory(Protocol):
    def first_commit_date(self) -> dt.date | None: ...

    def latest_commit_at_or_before(self, moment: dt.datetime) -> str | None: ...

    def commit_count(self, commit: str) -> int: ...

    def list_files(self, commit: str, prefixes: tuple[str, ...]) -> list[str]: ...

    def read_file_at(self, commit: str, path: str) -> bytes: ...


class GitRepo:
    """Read-only history queries against one checkout, each one a `git` call."""

    def __init__(self, path: Path, timeout_s: int = 300) -> None:
        self.path = path
        self.timeout_s = timeout_s

    def _git(self, args: list[str]) -> str:
        try:
            code, out, err = run_git(args, cwd=self.path, timeout_s=self.timeout_s)
        except (subprocess.TimeoutExpired, OSError) as e:
            raise GitError(f"git {' '.join(args)} could not run in {self.path}: {e}") from e
        if code != 0:
            raise GitError(f"git {' '.join(args)} failed in {self.path}: {err.strip()}")
        return out

    def first_commit_date(self) -> dt.date | None:
        # `-n 1` would be applied before `--reverse`, so read the whole list.
        try:
            out = self._git(["log", "--reverse", "--format=%ad", "--date=short", "HEAD"])
        except GitError:
            return None
        for line in out.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                return dt.date.fromisoformat(line)
            except ValueError:
                return None
        return None

    def latest_commit_at_or_before(self, moment: dt.datetime) -> str | None:
        before = moment.strftime("%Y-%m-%dT%H:%M:%S")
        out = self._git(["rev-list", "-1", f"--before={before}", "HEAD"])
        sha = out.strip()
        return sha or None

    def commit_count(self, commit: str) -> int:
        out = self._git(["rev-list", "--count", commit])
        try:
            return int(out.strip())
        except ValueError as e:
            raise GitError(f"unexpected rev-list --count output in {self.path}: {out.strip()!r}") from e

    def list_files(self, commit: str, prefixes: tuple[str, ...]) -> list[str]:
        args = ["ls-tree", "-r", "-z", commit]
        if prefixes:
            args += ["--", *prefixes]
        out = self._git(args)
        paths: list[str] = []
        for entry in out.split("\0"):
            if not entry:
                continue
            meta, _, path = entry.partition("\t")
            parts = meta.split()
            # Submodules show up as "commit" entries and have no content to count.
            if len(parts) >= 2 and parts[1] == "blob" and path:
                paths.append(path)
        return paths

    def read_file_at(self, commit: str, path: str) -> bytes:
        try:
            code, out, err = run_git_bytes(["show", f"{commit}:{path}"], cwd=self.path, timeout_s=self.timeout_s)
        except (subprocess.TimeoutExpired, OSError) as e:
            raise GitError(f"git show {commit}:{path} could not run in {self.path}: {e}") from e
        if code != 0:
            raise GitError(f"git show {commit}:{path} failed in {self.path}: {err.strip()}")
        return out
