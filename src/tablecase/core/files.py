from __future__ import annotations

from pathlib import Path


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def remove_file(path: Path) -> bool:
    """Delete *path* if present. Returns True when a file was removed."""
    if not path.exists():
        return False
    path.unlink()
    return True
