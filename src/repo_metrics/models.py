from __future__ import annotations

import dataclasses
import datetime as dt
from pathlib import Path


@dataclasses.dataclass(frozen=True)
class RepoSpec:
    name: str
    path: Path
    scopes: tuple[str, ...] = ()  # path prefixes, empty = whole tree
    extensions: frozenset[str] = frozenset()  # without leading dot, empty = every file


@dataclasses.dataclass(frozen=True)
class RepoDayMetrics:
    commits: int = 0
    loc: int = 0


@dataclasses.dataclass(frozen=True)
class DailySnapshot:
    date: dt.date
    repos: dict[str, RepoDayMetrics]  # repo name -> totals as of date 23:59:59

    @property
    def date_iso(self) -> str:
        return self.date.isoformat()
