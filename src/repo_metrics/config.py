from __future__ import annotations

import json
from pathlib import Path

from .metrics_paths import normalize_extension, normalize_scope
from .models import RepoSpec

DEFAULT_CONFIG: dict = {
    "metrics_file": "metrics.json",
    "legacy_repo": "clover-app",
    "repos": [
        {
            "name": "clover-app",
            "path": "../clover-app",
            "scopes": ["src/", "supabase/"],
            "extensions": ["ts", "tsx", "js", "jsx", "sql"],
        }
    ],
}


def load_config(config_path: Path) -> dict:
    if not config_path.exists():
        return json.loads(json.dumps(DEFAULT_CONFIG))
    config = json.loads(config_path.read_text(encoding="utf-8"))
    if not isinstance(config, dict):
        raise ValueError(f"{config_path}: expected a JSON object")
    return config


def save_config(config_path: Path, config: dict) -> None:
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(config, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def _str_list(value: object, *, field: str, where: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{where}: {field!r} must be a list of strings")
    return list(value)


def repo_specs_from_config(config: dict, *, base_dir: Path) -> list[RepoSpec]:
    """
    Build repository descriptors from the `repos` list of a config dict.

    Relative paths resolve against `base_dir` (the config file's directory).
    Scopes and extensions are normalized so `./src` and `src/`, `.TS` and `ts`
    mean the same thing.
    """
    raw_repos = config.get("repos")
    if not isinstance(raw_repos, list) or not raw_repos:
        raise ValueError("config: 'repos' must be a non-empty list")

    specs: list[RepoSpec] = []
    seen: set[str] = set()
    for i, raw in enumerate(raw_repos):
        where = f"config repos[{i}]"
        if not isinstance(raw, dict):
            raise ValueError(f"{where}: expected an object")
        name = str(raw.get("name", "") or "").strip()
        if not name:
            raise ValueError(f"{where}: 'name' is required")
        if name in seen:
            raise ValueError(f"{where}: duplicate repo name {name!r}")
        seen.add(name)
        raw_path = str(raw.get("path", "") or "").strip()
        if not raw_path:
            raise ValueError(f"{where}: 'path' is required")
        path = Path(raw_path).expanduser()
        if not path.is_absolute():
            path = base_dir / path

        scopes = tuple(s for s in (normalize_scope(s) for s in _str_list(raw.get("scopes"), field="scopes", where=where)) if s)
        extensions = frozenset(e for e in (normalize_extension(e) for e in _str_list(raw.get("extensions"), field="extensions", where=where)) if e)
        specs.append(RepoSpec(name=name, path=path.resolve(), scopes=scopes, extensions=extensions))
    return specs


def metrics_file_from_config(config: dict, *, base_dir: Path) -> Path:
    raw = str(config.get("metrics_file", "") or "").strip() or "metrics.json"
    p = Path(raw).expanduser()
    if not p.is_absolute():
        p = base_dir / p
    return p.resolve()


def legacy_repo_from_config(config: dict) -> str | None:
    raw = config.get("legacy_repo")
    if raw is None:
        return None
    name = str(raw).strip()
    return name or None
