from __future__ import annotations

from pathlib import PurePosixPath


def normalize_scope(prefix: str) -> str:
    p = (prefix or "").strip().replace("\\", "/")
    while p.startswith("./"):
        p = p[2:]
    p = p.lstrip("/")
    if p and not p.endswith("/"):
        p = p + "/"
    return p


def normalize_extension(ext: str) -> str:
    return (ext or "").strip().lstrip(".").lower()


def extension_for_path(path: str) -> str:
    base = path.replace("\\", "/").rsplit("/", 1)[-1]
    return normalize_extension(PurePosixPath(base).suffix)


def path_in_scope(path: str, scopes: tuple[str, ...], extensions: frozenset[str]) -> bool:
    p = path.replace("\\", "/")
    while p.startswith("./"):
        p = p[2:]
    if scopes:
        if not any(p.startswith(s) for s in (normalize_scope(s) for s in scopes) if s):
            return False
    if extensions:
        ext = extension_for_path(p)
        if not ext or ext not in extensions:
            return False
    return True


def count_lines(content: bytes) -> int:
    # Same as `wc -l`: a final line without a trailing newline is not counted.
    return content.count(b"\n")
