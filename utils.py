"""Utility functions."""
from pathlib import Path

from errors import PathOutsideWorkspaceError


def resolve_under_root(root: Path, candidate: Path) -> Path:
    """Resolve a path ensuring it's under the root directory."""
    root = root.resolve()
    real = (root / candidate).resolve()
    if root not in real.parents and real != root:
        raise PathOutsideWorkspaceError(f"Path is outside workspace: {candidate}")
    return real


def to_relative(root: Path, path: Path) -> str:
    """Relative path of ``path`` under ``root`` with forward slashes."""
    return path.relative_to(root).as_posix()
