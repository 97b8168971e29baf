"""Shared path utilities — shorten paths for logs and prepare output folders."""

from __future__ import annotations

from pathlib import Path


def summarize_path(path: str) -> str:
    """Summarize a long path into ``/head/<...>/to/some/file``."""
    parts = path.split("/")
    last = len(parts) - 1
    if last < 5:
        return path
    head = parts[0] if parts[0] else f"{parts[0]}/{parts[1]}"
    tail = "/".join(parts[last - 2:])
    return f"{head}/<...>/{tail}"


def ensure_directory(path: Path) -> Path:
    """Create ``path`` and its parents if needed.

    Raises:
        NotADirectoryError: if ``path`` exists and is not a directory.
    """
    if path.exists() and not path.is_dir():
        raise NotADirectoryError(f"'{path}' exists and is not a directory")
    path.mkdir(parents=True, exist_ok=True)
    return path
