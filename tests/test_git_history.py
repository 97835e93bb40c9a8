from __future__ import annotations

import datetime as dt
import json
import os
import subprocess
from pathlib import Path

import pytest

from repo_metrics import git as git_mod
from repo_metrics.aggregator import compute_day, run_update
from repo_metrics.git import GitError, GitRepo, get_repo_toplevel
from repo_metrics.models import RepoSpec


def _run(cmd: list[str], *, cwd: Path, env: dict[str, str] | None = None) -> str:
    proc = subprocess.run(cmd, cwd=str(cwd), env=env, check=True, capture_output=True, text=True)
    return proc.stdout


def _init_repo(repo: Path) -> None:
    repo.mkdir(parents=True, exist_ok=True)
    _run(["git", "init"], cwd=repo)
    _run(["git", "config", "user.name", "Test User"], cwd=repo)
    _run(["git", "config", "user.email", "test@example.com"], cwd=repo)


def _commit_files(*, repo: Path, files: dict[str, str], when: str) -> str:
    for filename, content in files.items():
        p = repo / filename
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")
        _run(["git", "add", filename], cwd=repo)
    env = os.environ.copy()
    # Zone-less dates are read in local time, same as the --before boundary.
    env["GIT_AUTHOR_DATE"] = when
    env["GIT_COMMITTER_DATE"] = when
    _run(["git", "commit", "-m", f"commit at {when}"], cwd=repo, env=env)
    return _run(["git", "rev-parse", "HEAD"], cwd=repo).strip()


def _three_day_repo(repo: Path) -> list[str]:
    _init_repo(repo)
    return [
        _commit_files(repo=repo, files={"src/app.ts": "a\n", "README.md": "hi\n"}, when="2024-01-01T12:00:00"),
        _commit_files(repo=repo, files={"src/app.ts": "a\nb\n", "src/util.js": "x\n"}, when="2024-01-03T12:00:00"),
        _commit_files(repo=repo, files={"src/app.ts": "a\nb\nc\n", "docs/guide.ts": "1\n2\n"}, when="2024-01-05T12:00:00"),
    ]


def test_get_repo_toplevel(tmp_path: Path) -> None:
    repo = tmp_path / "r"
    _three_day_repo(repo)
    assert get_repo_toplevel(repo / "src") == repo.resolve()
    assert get_repo_toplevel(tmp_path / "missing") is None
    plain = tmp_path / "plain"
    plain.mkdir()
    assert get_repo_toplevel(plain) is None


def test_git_repo_history_queries(tmp_path: Path) -> None:
    repo = tmp_path / "r"
    shas = _three_day_repo(repo)
    history = GitRepo(repo)

    assert history.first_commit_date() == dt.date(2024, 1, 1)
    assert history.latest_commit_at_or_before(dt.datetime(2023, 12, 31, 23, 59, 59)) is None
    assert history.latest_commit_at_or_before(dt.datetime(2024, 1, 2, 23, 59, 59)) == shas[0]
    assert history.latest_commit_at_or_before(dt.datetime(2024, 1, 3, 23, 59, 59)) == shas[1]
    assert history.commit_count(shas[1]) == 2
    assert sorted(history.list_files(shas[2], ())) == ["README.md", "docs/guide.ts", "src/app.ts", "src/util.js"]
    assert sorted(history.list_files(shas[2], ("src/",))) == ["src/app.ts", "src/util.js"]
    assert history.read_file_at(shas[1], "src/app.ts") == b"a\nb\n"


def test_git_repo_errors(tmp_path: Path) -> None:
    repo = tmp_path / "r"
    shas = _three_day_repo(repo)
    history = GitRepo(repo)
    with pytest.raises(GitError):
        history.read_file_at(shas[0], "src/util.js")
    with pytest.raises(GitError):
        history.commit_count("0" * 40)


def test_empty_repo_has_no_history(tmp_path: Path) -> None:
    repo = tmp_path / "empty"
    _init_repo(repo)
    history = GitRepo(repo)
    assert history.first_commit_date() is None
    with pytest.raises(GitError):
        history.latest_commit_at_or_before(dt.datetime(2024, 1, 1, 23, 59, 59))


def test_run_update_seed_then_incremental(tmp_path: Path, capsys) -> None:
    repo = tmp_path / "app"
    _three_day_repo(repo)
    metrics = tmp_path / "metrics.json"
    specs = [
        RepoSpec(name="app", path=repo, scopes=("src/",), extensions=frozenset({"ts"})),
        RepoSpec(name="all", path=repo),
        RepoSpec(name="gone", path=tmp_path / "gone"),
    ]

    assert run_update(specs=specs, metrics_file=metrics, seed=True, today=dt.date(2024, 1, 6)) == 0
    err = capsys.readouterr().err
    assert "Seeding daily metrics from 2024-01-01 to 2024-01-06..." in err
    assert "gone: not a git checkout" in err
    assert "Done! 6 total data points" in err

    seeded = metrics.read_text(encoding="utf-8")
    entries = json.loads(seeded)
    assert [e["date"] for e in entries] == [f"2024-01-0{d}" for d in range(1, 7)]
    assert entries[1]["repos"] == {"app": {"commits": 1, "loc": 1}, "all": {"commits": 1, "loc": 2}}
    assert entries[5]["repos"] == {"app": {"commits": 3, "loc": 3}, "all": {"commits": 3, "loc": 7}}

    assert run_update(specs=specs, metrics_file=metrics, seed=False, today=dt.date(2024, 1, 6)) == 0
    assert metrics.read_text(encoding="utf-8") == seeded
    err = capsys.readouterr().err
    assert "2024-01-06: computed" in err

    _commit_files(repo=repo, files={"src/late.ts": "l\n"}, when="2024-01-07T09:00:00")
    assert run_update(specs=specs, metrics_file=metrics, seed=False, today=dt.date(2024, 1, 8)) == 0
    entries = json.loads(metrics.read_text(encoding="utf-8"))
    assert [e["date"] for e in entries][-3:] == ["2024-01-06", "2024-01-07", "2024-01-08"]
    assert entries[-1]["repos"]["app"] == {"commits": 4, "loc": 4}


def test_run_update_seed_without_history_fails_and_writes_nothing(tmp_path: Path) -> None:
    empty = tmp_path / "empty"
    _init_repo(empty)
    metrics = tmp_path / "metrics.json"
    specs = [RepoSpec(name="empty", path=empty), RepoSpec(name="gone", path=tmp_path / "gone")]
    assert run_update(specs=specs, metrics_file=metrics, seed=True, today=dt.date(2024, 1, 6)) == 2
    assert not metrics.exists()


def test_run_update_incremental_without_repos_keeps_file(tmp_path: Path) -> None:
    metrics = tmp_path / "metrics.json"
    original = '[\n  {"date":"2024-01-01","repos":{"app":{"commits":1,"loc":1}}}\n]\n'
    metrics.write_text(original, encoding="utf-8")
    specs = [RepoSpec(name="app", path=tmp_path / "gone")]
    assert run_update(specs=specs, metrics_file=metrics, seed=False, today=dt.date(2024, 1, 6)) == 0
    assert metrics.read_text(encoding="utf-8") == original


def test_git_timeout_is_reported_as_git_error(tmp_path: Path, monkeypatch, capsys) -> None:
    repo = tmp_path / "r"
    shas = _three_day_repo(repo)

    def slow_git(args: list[str], cwd: Path, timeout_s: int = 300) -> tuple[int, str, str]:
        raise subprocess.TimeoutExpired(cmd=["git", *args], timeout=timeout_s)

    def missing_git(args: list[str], cwd: Path, timeout_s: int = 300) -> tuple[int, bytes, str]:
        raise FileNotFoundError("git")

    monkeypatch.setattr(git_mod, "run_git_bytes", missing_git)
    with pytest.raises(GitError):
        GitRepo(repo).read_file_at(shas[0], "src/app.ts")

    monkeypatch.setattr(git_mod, "run_git", slow_git)
    history = GitRepo(repo)
    with pytest.raises(GitError):
        history.commit_count(shas[0])
    assert history.first_commit_date() is None

    spec = RepoSpec(name="slow", path=repo)
    assert compute_day(dt.date(2024, 1, 1), [(spec, history)]) is None
    assert "slow skipped for 2024-01-01" in capsys.readouterr().err


def test_incremental_runs_on_unborn_repo_keep_stored_days(tmp_path: Path) -> None:
    repo = tmp_path / "unborn"
    _init_repo(repo)
    metrics = tmp_path / "metrics.json"
    original = (
        "[\n"
        '  {"date":"2024-01-01","repos":{"app":{"commits":1,"loc":1}}},\n'
        '  {"date":"2024-01-02","repos":{"app":{"commits":2,"loc":2}}}\n'
        "]\n"
    )
    metrics.write_text(original, encoding="utf-8")
    specs = [RepoSpec(name="app", path=repo)]

    for _ in range(2):
        assert run_update(specs=specs, metrics_file=metrics, seed=False, today=dt.date(2024, 1, 2)) == 0
        assert metrics.read_text(encoding="utf-8") == original
