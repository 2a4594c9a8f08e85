"""Image scanning utilities."""
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List

from config import ALLOWED_EXTS, EXCLUDED_DIRS
from models import ScannedImage
from utils import to_relative


def iter_image_files(root: Path) -> Iterable[Path]:
    """Iterate through all image files under root, skipping settings and system folders."""
    for p in root.rglob("*"):
        if p.is_file() and p.suffix.lower().lstrip(".") in ALLOWED_EXTS:
            relative_parts = p.relative_to(root).parts[:-1]
            if not any(part in EXCLUDED_DIRS for part in relative_parts):
                yield p


def mtime_to_datetime(mtime: float) -> datetime:
    return datetime.fromtimestamp(mtime, tz=timezone.utc)


def read_file_meta(root: Path, path: Path) -> ScannedImage:
    """Collect catalog metadata for a single file."""
    stat = path.stat()
    return ScannedImage(
        name=path.name,
        relative_path=to_relative(root, path),
        file_size=stat.st_size,
        extension=path.suffix.lower().lstrip("."),
        modified_at=mtime_to_datetime(stat.st_mtime),
    )


def scan(root_dir: Path) -> List[ScannedImage]:
    """List every supported image under root_dir, sorted by relative path."""
    root_dir = root_dir.resolve()
    if not root_dir.exists():
        raise FileNotFoundError(f"Workspace directory does not exist: {root_dir}")
    if not root_dir.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {root_dir}")

    rows = [read_file_meta(root_dir, file) for file in iter_image_files(root_dir)]
    rows.sort(key=lambda row: row.relative_path)
    return rows
