from __future__ import annotations

import argparse
import datetime as dt
import sys
from pathlib import Path

from .models import DailySnapshot
from .series import SeriesFormatError, load_series


def find_gaps(snapshots: list[DailySnapshot]) -> list[tuple[dt.date, dt.date]]:
    """Return (previous, next) pairs of stored days that are more than one day apart."""
    gaps: list[tuple[dt.date, dt.date]] = []
    for prev, nxt in zip(snapshots, snapshots[1:]):
        if (nxt.date - prev.date).days > 1:
            gaps.append((prev.date, nxt.date))
    return gaps


def find_commit_regressions(snapshots: list[DailySnapshot]) -> list[tuple[str, dt.date, int, int]]:
    # Cumulative counts only drop when history was rewritten.
    out: list[tuple[str, dt.date, int, int]] = []
    last: dict[str, int] = {}
    for snap in snapshots:
        for name, m in snap.repos.items():
            if name in last and m.commits < last[name]:
                out.append((name, snap.date, last[name], m.commits))
            last[name] = m.commits
    return out


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    ap = argparse.ArgumentParser(prog="repo-metrics validate", description="Sanity-check a metrics series file.")
    ap.add_argument("--metrics-file", type=Path, default=Path("metrics.json"), help="Series file to check.")
    ap.add_argument("--legacy-repo", type=str, default="", help="Accept flat single-repo entries under this name.")
    args = ap.parse_args(argv)

    if not args.metrics_file.exists():
        print(f"Metrics file not found: {args.metrics_file}", file=sys.stderr)
        return 1
    try:
        snapshots = load_series(args.metrics_file, legacy_repo=args.legacy_repo.strip() or None)
    except SeriesFormatError as e:
        print(f"[FAIL] {e}")
        return 1

    ok = True
    if [s.date for s in snapshots] != sorted(s.date for s in snapshots):
        ok = False
        print("[WARN] entries are not sorted by date")

    ordered = sorted(snapshots, key=lambda s: s.date)
    for prev, nxt in find_gaps(ordered):
        ok = False
        print(f"[WARN] gap: {prev.isoformat()} -> {nxt.isoformat()} ({(nxt - prev).days - 1} missing days)")
    for name, day, before, after in find_commit_regressions(ordered):
        print(f"[WARN] {name}: commit count dropped on {day.isoformat()} ({before} -> {after})")

    if ordered:
        print(f"{len(ordered)} data points, {ordered[0].date_iso} .. {ordered[-1].date_iso}")
    else:
        print("0 data points")
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
