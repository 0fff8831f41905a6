"""Filesystem helpers for locating workflow modules."""

from __future__ import annotations

import fnmatch
from pathlib import Path
from typing import Iterable, Iterator, Set

# Always skipped, whether or not a .gitignore mentions them.
DEFAULT_IGNORES = frozenset(
    {
        "__pycache__/",
        ".git/",
        ".venv/",
        "venv/",
        "build/",
        "dist/",
        "*.egg-info/",
        ".eggs/",
        ".pytest_cache/",
        "node_modules/",
    }
)


def gitignore_patterns(search_path: Path) -> Set[str]:
    """Collect ignore patterns from ``search_path`` and every parent directory."""
    patterns: Set[str] = set(DEFAULT_IGNORES)
    directory = search_path if search_path.is_dir() else search_path.parent
    for candidate in (directory, *directory.parents):
        gitignore = candidate / ".gitignore"
        if not gitignore.is_file():
            continue
        try:
            lines = gitignore.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError):
            continue
        patterns.update(
            line.strip()
            for line in lines
            if line.strip() and not line.lstrip().startswith("#")
        )
    return patterns


def is_ignored(path: Path, patterns: Iterable[str], root: Path) -> bool:
    """Return ``True`` when ``path`` (relative to ``root``) matches a pattern."""
    try:
        relative = path.relative_to(root)
    except ValueError:
        return False

    rel_str = relative.as_posix()
    directories = relative.parts[:-1]
    for pattern in patterns:
        if pattern.endswith("/"):
            target = pattern.rstrip("/")
            if any(fnmatch.fnmatch(part, target) for part in directories):
                return True
            continue
        target = pattern.lstrip("/")
        if fnmatch.fnmatch(path.name, target) or fnmatch.fnmatch(rel_str, target):
            return True
        if any(fnmatch.fnmatch(part, target) for part in directories):
            return True
    return False


def iter_python_files(search_path: Path, respect_gitignore: bool = True) -> Iterator[Path]:
    """Yield ``.py`` files under ``search_path`` in sorted order."""
    if search_path.is_file():
        if search_path.suffix == ".py":
            yield search_path
        return

    patterns = gitignore_patterns(search_path) if respect_gitignore else set()
    for py_file in sorted(search_path.rglob("*.py")):
        if patterns and is_ignored(py_file, patterns, search_path):
            continue
        if py_file.is_file():
            yield py_file
