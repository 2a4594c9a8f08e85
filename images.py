"""Image catalog: scan reconciliation and path-keyed mutation."""
import logging
from typing import List, Optional

from sqlmodel import select

from database import WorkspaceBoundService, upsert_info
from errors import WorkspaceNotInitializedError
from models import Image, ReconcileResult, ScannedImage, utcnow

logger = logging.getLogger(__name__)

COMPARED_FIELDS = ("name", "file_size", "extension", "modified_at")


def needs_update(stored: Image, scanned: ScannedImage) -> bool:
    return any(getattr(stored, f) != getattr(scanned, f) for f in COMPARED_FIELDS)


class ImageCatalog(WorkspaceBoundService):
    """Keeps the ``images`` table in step with the workspace folder."""

    def __init__(self, host, engine=None):
        super().__init__(engine)
        self.host = host
        self.last_result: Optional[ReconcileResult] = None

    def reconcile(self, workspace_path: str) -> List[Image]:
        """Scan the folder and converge the stored rows on what is on disk.

        Rows are diffed by relative path: new files are inserted, files whose
        name, size, extension or mtime changed are updated, and rows whose file
        is gone are deleted (their tag links and connections cascade). Unchanged
        rows keep their ids and timestamps. Returns all rows afterwards.
        """
        result = ReconcileResult()
        with self.session() as s:
            scanned = {row.relative_path: row for row in self.host.scan_images(workspace_path)}
            stored = {img.relative_path: img for img in s.exec(select(Image)).all()}
            now = utcnow()

            for rel_path, row in scanned.items():
                current = stored.get(rel_path)
                if current is None:
                    s.add(Image(**row.model_dump(), created_at=now, updated_at=now))
                    result.added += 1
                elif needs_update(current, row):
                    for field in COMPARED_FIELDS:
                        setattr(current, field, getattr(row, field))
                    current.updated_at = now
                    s.add(current)
                    result.updated += 1
                else:
                    result.unchanged += 1

            for rel_path, current in stored.items():
                if rel_path not in scanned:
                    s.delete(current)
                    result.removed += 1

            upsert_info(s, "last_scan", now.isoformat())
            s.commit()

        self.last_result = result
        logger.info(
            "Image scan complete: %d new, %d updated, %d removed, %d unchanged",
            result.added, result.updated, result.removed, result.unchanged,
        )
        return self.get_all()

    def get_all(self) -> List[Image]:
        with self.session() as s:
            return list(s.exec(select(Image).order_by(Image.name, Image.id)).all())

    def get(self, image_id: int) -> Optional[Image]:
        with self.session() as s:
            return s.get(Image, image_id)

    def get_by_path(self, relative_path: str) -> Optional[Image]:
        with self.session() as s:
            return s.exec(select(Image).where(Image.relative_path == relative_path)).first()

    # -------------------------------
    # Store-only primitives
    # -------------------------------
    def update_path(self, old_path: str, new_path: str) -> None:
        with self.session() as s:
            image = s.exec(select(Image).where(Image.relative_path == old_path)).first()
            if image:
                image.relative_path = new_path
                image.updated_at = utcnow()
                s.add(image)
                s.commit()

    def update_name(self, relative_path: str, new_name: str, new_path: str) -> None:
        with self.session() as s:
            image = s.exec(select(Image).where(Image.relative_path == relative_path)).first()
            if image:
                image.name = new_name
                image.relative_path = new_path
                image.updated_at = utcnow()
                s.add(image)
                s.commit()

    def delete_from_store(self, relative_path: str) -> None:
        with self.session() as s:
            image = s.exec(select(Image).where(Image.relative_path == relative_path)).first()
            if image:
                s.delete(image)
                s.commit()

    # -------------------------------
    # Host-backed mutations: file first, then the row
    # -------------------------------
    def _require_store(self) -> None:
        if not self.is_bound:
            raise WorkspaceNotInitializedError()

    def move(self, old_path: str, new_path: str, workspace_path: str) -> str:
        """Move a file and repoint its row; returns the resulting relative path."""
        self._require_store()
        try:
            new_relative_path = self.host.move_image(old_path, new_path, workspace_path)
            resulting_name = new_relative_path.rsplit("/", 1)[-1]
            self.update_name(old_path, resulting_name, new_relative_path)
        except Exception:
            logger.exception("Failed to move image %s", old_path)
            raise
        return new_relative_path

    def rename(self, old_name: str, new_name: str, relative_path: str, workspace_path: str) -> str:
        """Rename a file and its row; returns the resulting relative path."""
        self._require_store()
        try:
            new_relative_path = self.host.rename_image(old_name, new_name, relative_path, workspace_path)
            resulting_name = new_relative_path.rsplit("/", 1)[-1]
            self.update_name(relative_path, resulting_name, new_relative_path)
        except Exception:
            logger.exception("Failed to rename image %s", relative_path)
            raise
        return new_relative_path

    def delete(self, relative_path: str, workspace_path: str) -> None:
        self._require_store()
        try:
            self.host.delete_image(relative_path, workspace_path)
            self.delete_from_store(relative_path)
        except Exception:
            logger.exception("Failed to delete image %s", relative_path)
            raise

    def get_absolute_path(self, relative_path: str, workspace_path: str) -> str:
        return self.host.get_image_absolute_path(relative_path, workspace_path)

    def get_as_base64(self, relative_path: str, workspace_path: str) -> str:
        return self.host.get_image_as_base64(relative_path, workspace_path)
