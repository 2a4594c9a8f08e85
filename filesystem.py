"""Host filesystem service.

Everything that touches files on disk goes through this class; the domain
layer never opens, moves or deletes files itself. Failures are raised as the
built-in ``OSError`` family and are not translated.
"""
import base64
import logging
import mimetypes
import shutil
from pathlib import Path
from typing import List

from config import SETTINGS_DIRNAME, WORKSPACE_DB_NAME
from errors import ValidationError
from models import ScannedImage
from scanner import scan
from utils import resolve_under_root, to_relative

logger = logging.getLogger(__name__)


def free_destination(dest: Path) -> Path:
    """Return ``dest``, or ``name_1.ext``, ``name_2.ext``... if it is taken."""
    candidate = dest
    counter = 1
    while candidate.exists():
        candidate = dest.with_name(f"{dest.stem}_{counter}{dest.suffix}")
        counter += 1
    return candidate


class LocalFilesystem:
    """Host filesystem operations for workspace folders."""

    def validate_workspace_path(self, path: str) -> bool:
        workspace_path = Path(path)
        if not workspace_path.exists():
            raise FileNotFoundError(f"Path does not exist: {path}")
        if not workspace_path.is_dir():
            raise NotADirectoryError(f"Path is not a directory: {path}")
        return True

    def workspace_name_from_path(self, path: str) -> str:
        name = Path(path).name
        if not name:
            raise ValidationError(f"Could not extract workspace name from path: {path}")
        return name

    def ensure_workspace_structure(self, workspace_path: str) -> str:
        """Create the settings folder if needed and return the workspace database path."""
        workspace_dir = Path(workspace_path)
        if not workspace_dir.exists():
            raise FileNotFoundError(f"Workspace directory does not exist: {workspace_path}")

        settings_dir = workspace_dir / SETTINGS_DIRNAME
        settings_dir.mkdir(parents=True, exist_ok=True)
        return str(settings_dir / WORKSPACE_DB_NAME)

    def scan_images(self, workspace_path: str) -> List[ScannedImage]:
        return scan(Path(workspace_path))

    def move_image(self, old_path: str, new_path: str, workspace_path: str) -> str:
        """Move a file inside the workspace and return its resulting relative path.

        ``new_path`` may name the target file or an existing folder; when the
        target is taken a numeric suffix is appended.
        """
        root = Path(workspace_path).resolve()
        source = resolve_under_root(root, Path(old_path))
        if not source.is_file():
            raise FileNotFoundError(f"Image not found: {old_path}")

        dest = resolve_under_root(root, Path(new_path))
        if dest.is_dir():
            dest = dest / source.name
        if dest == source:
            return to_relative(root, source)

        dest.parent.mkdir(parents=True, exist_ok=True)
        dest = free_destination(dest)
        shutil.move(str(source), str(dest))
        logger.debug("Moved %s -> %s", source, dest)
        return to_relative(root, dest)

    def rename_image(self, old_name: str, new_name: str, relative_path: str, workspace_path: str) -> str:
        """Rename a file in place and return its resulting relative path."""
        new_name = new_name.strip()
        if not new_name or Path(new_name).name != new_name:
            raise ValidationError(f"Invalid file name: {new_name!r}")

        root = Path(workspace_path).resolve()
        source = resolve_under_root(root, Path(relative_path))
        if not source.is_file():
            raise FileNotFoundError(f"Image not found: {relative_path}")
        if source.name != old_name:
            raise FileNotFoundError(f"Image {relative_path} is not named {old_name}")

        dest = source.with_name(new_name)
        if dest == source:
            return to_relative(root, source)

        dest = free_destination(dest)
        source.rename(dest)
        logger.debug("Renamed %s -> %s", source, dest)
        return to_relative(root, dest)

    def delete_image(self, relative_path: str, workspace_path: str) -> None:
        target = resolve_under_root(Path(workspace_path), Path(relative_path))
        if not target.is_file():
            raise FileNotFoundError(f"Image not found: {relative_path}")
        target.unlink()
        logger.debug("Deleted %s", target)

    def get_image_absolute_path(self, relative_path: str, workspace_path: str) -> str:
        return str(resolve_under_root(Path(workspace_path), Path(relative_path)))

    def get_image_as_base64(self, relative_path: str, workspace_path: str) -> str:
        """Return the file contents as a ``data:`` URL."""
        target = resolve_under_root(Path(workspace_path), Path(relative_path))
        data = target.read_bytes()
        mime = mimetypes.guess_type(target.name)[0] or "application/octet-stream"
        return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"
