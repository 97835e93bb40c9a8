from __future__ import annotations

import argparse
import sys
from pathlib import Path

from . import validate_series
from .aggregator import run_update
from .config import DEFAULT_CONFIG, legacy_repo_from_config, load_config, metrics_file_from_config, repo_specs_from_config, save_config
from .series import SeriesFormatError


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repo-metrics",
        description="Maintain a daily commit/line-count series from git history.",
    )
    parser.add_argument("--seed", action="store_true", help="Rebuild daily history from the earliest first commit to today.")
    parser.add_argument("--config", type=Path, default=Path("config.json"), help="Path to config.json (defaults apply when missing).")
    parser.add_argument("--metrics-file", type=Path, default=None, help="Override `metrics_file` from the config.")
    return parser


def _init_config(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="repo-metrics init-config", description="Write a starter config.json.")
    p.add_argument("--config", type=Path, default=Path("config.json"), help="Where to write the config.")
    p.add_argument("--force", action="store_true", help="Overwrite an existing file.")
    args = p.parse_args(argv)
    if args.config.exists() and not args.force:
        print(f"Config already exists: {args.config} (use --force to overwrite)", file=sys.stderr)
        return 1
    save_config(args.config, DEFAULT_CONFIG)
    print(f"Wrote {args.config}")
    return 0


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    if argv and argv[0] in ("-h", "--help"):
        p = _build_parser()
        p.print_help()
        print("")
        print("commands:")
        print("  init-config    Write a starter config.json.")
        print("  validate       Check a metrics series file for gaps and ordering.")
        print("")
        print("Run `repo-metrics <command> --help` for command-specific options.")
        return 0
    if argv and argv[0] == "init-config":
        return _init_config(argv[1:])
    if argv and argv[0] == "validate":
        return validate_series.main(argv[1:])

    args = _build_parser().parse_args(argv)
    config_path: Path = args.config
    base_dir = config_path.resolve().parent

    try:
        config = load_config(config_path)
        specs = repo_specs_from_config(config, base_dir=base_dir)
    except ValueError as e:
        print(f"Invalid config: {e}", file=sys.stderr)
        return 1

    if args.metrics_file is not None:
        metrics_file = args.metrics_file.resolve()
    else:
        metrics_file = metrics_file_from_config(config, base_dir=base_dir)

    try:
        return run_update(
            specs=specs,
            metrics_file=metrics_file,
            seed=bool(args.seed),
            legacy_repo=legacy_repo_from_config(config),
        )
    except SeriesFormatError as e:
        print(f"Refusing to overwrite malformed series: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
