from __future__ import annotations

from pathlib import Path
from typing import Optional


def find_context_dir(start: Path, context_dir_name: str = ".context") -> Optional[Path]:
    """Return the nearest ``context_dir_name`` directory at or above ``start``."""
    current = start.resolve()
    if current.name == context_dir_name and current.is_dir():
        return current

    for candidate in [current, *current.parents]:
        context_dir = candidate / context_dir_name
        if context_dir.is_dir():
            return context_dir
    return None


def resolve_context_dir(start: Path, context_dir_name: str = ".context") -> Path:
    """Like ``find_context_dir`` but falls back to ``start / context_dir_name``."""
    found = find_context_dir(start, context_dir_name)
    if found is not None:
        return found
    return start.resolve() / context_dir_name
