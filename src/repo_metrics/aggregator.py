from __future__ import annotations

import datetime as dt
import sys
from pathlib import Path

from .git import GitError, GitHistory, GitRepo, get_repo_toplevel
from .metrics_paths import count_lines, path_in_scope
from .metrics_periods import end_of_day, iter_days
from .models import DailySnapshot, RepoDayMetrics, RepoSpec
from .series import load_series, sort_series, write_series

RepoSource = tuple[RepoSpec, GitHistory]

# (repo name, commit sha) -> totals at that commit
CommitCache = dict[tuple[str, str], RepoDayMetrics]


def _warn(msg: str) -> None:
    print(f"Warning: {msg}", file=sys.stderr)


def _progress(msg: str) -> None:
    print(msg, file=sys.stderr)


def metrics_at_commit(spec: RepoSpec, history: GitHistory, commit: str) -> RepoDayMetrics:
    commits = history.commit_count(commit)
    loc = 0
    for path in history.list_files(commit, spec.scopes):
        if not path_in_scope(path, spec.scopes, spec.extensions):
            continue
        loc += count_lines(history.read_file_at(commit, path))
    return RepoDayMetrics(commits=commits, loc=loc)


def compute_repo_day(
    spec: RepoSpec,
    history: GitHistory,
    day: dt.date,
    cache: CommitCache | None = None,
) -> RepoDayMetrics | None:
    commit = history.latest_commit_at_or_before(end_of_day(day))
    if commit is None:
        return None
    if cache is not None and (spec.name, commit) in cache:
        return cache[(spec.name, commit)]
    metrics = metrics_at_commit(spec, history, commit)
    if cache is not None:
        cache[(spec.name, commit)] = metrics
    return metrics


def compute_day(day: dt.date, repos: list[RepoSource], cache: CommitCache | None = None) -> DailySnapshot | None:
    """
    Totals for every repository as of `day` 23:59:59 local time.

    Repositories without a commit by then, or whose history could not be read,
    are left out. Returns None when no repository contributed.
    """
    out: dict[str, RepoDayMetrics] = {}
    for spec, history in repos:
        try:
            metrics = compute_repo_day(spec, history, day, cache)
        except GitError as e:
            _warn(f"{spec.name} skipped for {day.isoformat()}: {e}")
            continue
        if metrics is not None:
            out[spec.name] = metrics
    if not out:
        return None
    return DailySnapshot(date=day, repos=out)


def first_history_date(repos: list[RepoSource]) -> dt.date | None:
    dates = [d for d in (history.first_commit_date() for _, history in repos) if d is not None]
    return min(dates) if dates else None


def update_series(
    snapshots: list[DailySnapshot],
    repos: list[RepoSource],
    *,
    seed: bool,
    today: dt.date,
) -> list[DailySnapshot] | None:
    """
    Extend `snapshots` with every missing day through `today`.

    The most recent stored day is always recomputed; the stored entry is kept
    only when recomputing it yields nothing. Returns the
    new series sorted by date, or None in seed mode when no repository has any
    history to start from.
    """
    existing = sort_series(snapshots)
    by_date: dict[dt.date, DailySnapshot] = {s.date: s for s in existing}

    evicted: DailySnapshot | None = None
    if existing:
        evicted = existing[-1]
        del by_date[evicted.date]

    end = today
    if seed:
        start = first_history_date(repos)
        if start is None:
            return None
        _progress(f"Seeding daily metrics from {start.isoformat()} to {today.isoformat()}...")
    else:
        start = evicted.date if evicted is not None else today
        _progress(f"Updating daily metrics from {start.isoformat()} to {today.isoformat()}...")
    if evicted is not None and evicted.date > end:
        # A stored day after `today` (clock skew) is still recomputed.
        end = evicted.date

    cache: CommitCache = {}
    for day in iter_days(start, end):
        if day in by_date:
            _progress(f"  {day.isoformat()}: (cached)")
            continue
        snap = compute_day(day, repos, cache)
        if snap is not None:
            by_date[day] = snap
            _progress(f"  {day.isoformat()}: computed")

    if evicted is not None and evicted.date not in by_date:
        # Outside the walk (seed start moved later) or no repository readable that day.
        _warn(f"could not recompute {evicted.date_iso}; keeping the stored entry")
        by_date[evicted.date] = evicted

    return sort_series(list(by_date.values()))


def open_repos(specs: list[RepoSpec]) -> list[RepoSource]:
    repos: list[RepoSource] = []
    for spec in specs:
        top = get_repo_toplevel(spec.path)
        if top is None:
            _warn(f"{spec.name}: not a git checkout, skipping: {spec.path}")
            continue
        repos.append((spec, GitRepo(top)))
    return repos


def run_update(
    *,
    specs: list[RepoSpec],
    metrics_file: Path,
    seed: bool,
    legacy_repo: str | None = None,
    today: dt.date | None = None,
) -> int:
    if today is None:
        today = dt.date.today()

    snapshots = load_series(metrics_file, legacy_repo=legacy_repo)
    repos = open_repos(specs)

    if not repos and not seed:
        _warn(f"no readable repositories; leaving {metrics_file} unchanged")
        return 0

    updated = update_series(snapshots, repos, seed=seed, today=today)
    if updated is None:
        print("No git history found in any configured repository; nothing to seed.", file=sys.stderr)
        return 2

    write_series(metrics_file, updated)
    _progress(f"Done! {len(updated)} total data points in {metrics_file}")
    return 0
