"""Hard precondition for every destructive operation."""

from __future__ import annotations

import os
from pathlib import Path

from core.domain.errors import UnsafeDestructivePathError

MIN_PATH_LENGTH = 5
FORBIDDEN_PATHS = frozenset({"/", "/opt"})


def _is_unsafe(text: str) -> bool:
    return text in FORBIDDEN_PATHS or len(text) < MIN_PATH_LENGTH


def ensure_safe_destructive_path(path: str | os.PathLike[str]) -> Path:
    """Return `path` as a `Path`, or raise before anything is touched.

    Trailing separators are ignored, and the resolved form is checked too, so
    `/opt/` and `/opt/acserver/..` are rejected like `/opt`.
    """

    raw = os.fspath(path).strip()
    normalized = raw.rstrip("/\\") or "/"
    if _is_unsafe(normalized):
        raise UnsafeDestructivePathError(raw)

    resolved = str(Path(normalized).resolve(strict=False))
    if _is_unsafe(resolved):
        raise UnsafeDestructivePathError(raw)
    return Path(normalized)
