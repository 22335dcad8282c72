"""Small filesystem helpers shared by the verifier, transplanter and cleanup steps."""

from __future__ import annotations

import os
import shutil
from pathlib import Path

_UNITS = ("K", "M", "G", "T", "P")


def directory_size(path: Path) -> int:
    """Total apparent size of regular files under `path` (symlinks not followed)."""

    if path.is_file():
        return path.stat().st_size
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            fp = os.path.join(root, name)
            try:
                st = os.lstat(fp)
            except OSError:
                continue
            total += st.st_size
    return total


def format_size(num_bytes: int) -> str:
    """Human-readable size in the style of `du -sh` (`0`, `512`, `4.0K`, `1.2G`)."""

    if num_bytes < 1024:
        return str(num_bytes)
    value = float(num_bytes)
    for unit in _UNITS:
        value /= 1024.0
        if value < 1024.0 or unit == _UNITS[-1]:
            if value < 10:
                return f"{value:.1f}{unit}"
            return f"{value:.0f}{unit}"
    return f"{value:.0f}{_UNITS[-1]}"


def count_subdirectories(path: Path) -> int:
    if not path.is_dir():
        return 0
    return sum(1 for entry in path.iterdir() if entry.is_dir())


def remove_tree(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink(missing_ok=True)
    elif path.exists():
        shutil.rmtree(path)
