from __future__ import annotations

import json
import os
import stat
import tempfile
from pathlib import Path

from .metrics_periods import parse_day
from .models import DailySnapshot, RepoDayMetrics


class SeriesFormatError(ValueError):
    pass


def _count(value: object, *, field: str, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise SeriesFormatError(f"{where}: {field!r} must be a non-negative integer, got {value!r}")
    return value


def snapshot_to_dict(snapshot: DailySnapshot) -> dict[str, object]:
    return {
        "date": snapshot.date_iso,
        "repos": {name: {"commits": m.commits, "loc": m.loc} for name, m in snapshot.repos.items()},
    }


def snapshot_from_dict(obj: object, *, legacy_repo: str | None = None, where: str = "entry") -> DailySnapshot:
    if not isinstance(obj, dict):
        raise SeriesFormatError(f"{where}: expected an object, got {type(obj).__name__}")
    raw_date = obj.get("date")
    if not isinstance(raw_date, str):
        raise SeriesFormatError(f"{where}: missing or non-string 'date'")
    try:
        day = parse_day(raw_date)
    except ValueError as e:
        raise SeriesFormatError(f"{where}: {e}") from e
    where = f"{where} ({raw_date})"

    if "repos" not in obj:
        # Single-repo entries written before per-repo breakdowns existed.
        if legacy_repo and "commits" in obj and "loc" in obj:
            metrics = RepoDayMetrics(
                commits=_count(obj["commits"], field="commits", where=where),
                loc=_count(obj["loc"], field="loc", where=where),
            )
            return DailySnapshot(date=day, repos={legacy_repo: metrics})
        raise SeriesFormatError(f"{where}: missing 'repos'")

    raw_repos = obj["repos"]
    if not isinstance(raw_repos, dict):
        raise SeriesFormatError(f"{where}: 'repos' must be an object")
    repos: dict[str, RepoDayMetrics] = {}
    for name, st in raw_repos.items():
        if not isinstance(st, dict):
            raise SeriesFormatError(f"{where}: repo {name!r} must be an object")
        repos[name] = RepoDayMetrics(
            commits=_count(st.get("commits"), field="commits", where=f"{where} repo {name!r}"),
            loc=_count(st.get("loc"), field="loc", where=f"{where} repo {name!r}"),
        )
    return DailySnapshot(date=day, repos=repos)


def parse_series(text: str, *, legacy_repo: str | None = None, source: str = "series") -> list[DailySnapshot]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SeriesFormatError(f"{source}: invalid JSON: {e}") from e
    if not isinstance(data, list):
        raise SeriesFormatError(f"{source}: expected a JSON array")

    snapshots: list[DailySnapshot] = []
    seen: set[str] = set()
    for i, obj in enumerate(data):
        snap = snapshot_from_dict(obj, legacy_repo=legacy_repo, where=f"{source}[{i}]")
        if snap.date_iso in seen:
            raise SeriesFormatError(f"{source}[{i}]: duplicate date {snap.date_iso}")
        seen.add(snap.date_iso)
        snapshots.append(snap)
    return snapshots


def load_series(path: Path, *, legacy_repo: str | None = None) -> list[DailySnapshot]:
    if not path.exists():
        return []
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise SeriesFormatError(f"{path}: not valid UTF-8: {e}") from e
    if not text.strip():
        return []
    return parse_series(text, legacy_repo=legacy_repo, source=str(path))


def sort_series(snapshots: list[DailySnapshot]) -> list[DailySnapshot]:
    return sorted(snapshots, key=lambda s: s.date)


def dump_series(snapshots: list[DailySnapshot]) -> str:
    entries = [json.dumps(snapshot_to_dict(s), separators=(",", ":")) for s in sort_series(snapshots)]
    if not entries:
        return "[]\n"
    return "[\n" + ",\n".join(f"  {e}" for e in entries) + "\n]\n"


def atomic_write(path: Path, content: str) -> None:
    """Replace `path` with `content` so readers see either the old or the new file."""
    path.parent.mkdir(parents=True, exist_ok=True)

    existing_mode: int | None = None
    try:
        existing_mode = path.stat().st_mode
    except OSError:
        pass

    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    ) as tmp_file:
        tmp_file.write(content)
        tmp_file.flush()
        os.fsync(tmp_file.fileno())
        tmp_path = Path(tmp_file.name)

    try:
        # NamedTemporaryFile creates 0600; the series is meant to be served.
        os.chmod(tmp_path, stat.S_IMODE(existing_mode) if existing_mode is not None else 0o644)
        os.replace(tmp_path, path)
    except OSError:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def write_series(path: Path, snapshots: list[DailySnapshot]) -> None:
    atomic_write(path, dump_series(snapshots))
