"""Workspace registry stored in the catalog database."""
import logging
from pathlib import Path
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from database import StoreRegistry
from errors import DuplicateWorkspaceError
from models import Workspace, utcnow

logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """Absolute, symlink-free form of a folder path, used as the catalog key."""
    return str(Path(path).resolve())


class WorkspaceDirectory:
    """CRUD over the catalog of known workspace folders."""

    def __init__(self, registry: StoreRegistry):
        self.registry = registry

    @property
    def host(self):
        return self.registry.host

    def init_catalog(self) -> None:
        self.registry.ensure_catalog_connection()

    def name_from_path(self, path: str) -> str:
        return self.host.workspace_name_from_path(path)

    def add(self, name: str, absolute_path: str) -> Workspace:
        """Register a new workspace folder."""
        self.host.validate_workspace_path(absolute_path)
        absolute_path = normalize_path(absolute_path)
        with self.registry.catalog_session() as s:
            existing = s.exec(
                select(Workspace).where(Workspace.absolute_path == absolute_path)
            ).first()
            if existing:
                raise DuplicateWorkspaceError(f"Workspace already registered: {absolute_path}")

            workspace = Workspace(name=name, absolute_path=absolute_path)
            s.add(workspace)
            try:
                s.commit()
            except IntegrityError as exc:
                s.rollback()
                raise DuplicateWorkspaceError(f"Workspace already registered: {absolute_path}") from exc
            s.refresh(workspace)
        logger.info("Workspace added: %s (%s)", workspace.name, workspace.absolute_path)
        return workspace

    def list(self) -> List[Workspace]:
        """All workspaces, most recently used first."""
        with self.registry.catalog_session() as s:
            return list(
                s.exec(
                    select(Workspace).order_by(Workspace.updated_at.desc(), Workspace.id.desc())
                ).all()
            )

    def get(self, workspace_id: int) -> Optional[Workspace]:
        with self.registry.catalog_session() as s:
            return s.get(Workspace, workspace_id)

    def get_by_path(self, path: str) -> Optional[Workspace]:
        with self.registry.catalog_session() as s:
            return s.exec(
                select(Workspace).where(Workspace.absolute_path == normalize_path(path))
            ).first()

    def touch(self, workspace_id: int) -> Optional[Workspace]:
        """Bump a workspace's updated_at."""
        with self.registry.catalog_session() as s:
            workspace = s.get(Workspace, workspace_id)
            if not workspace:
                return None
            workspace.updated_at = utcnow()
            s.add(workspace)
            s.commit()
            s.refresh(workspace)
            return workspace

    def remove(self, workspace_id: int) -> None:
        """Forget a workspace. The folder and its store file are left alone."""
        with self.registry.catalog_session() as s:
            workspace = s.get(Workspace, workspace_id)
            if workspace:
                s.delete(workspace)
                s.commit()
        logger.info("Workspace %s removed", workspace_id)

    def open(self, path: str) -> Workspace:
        """Register ``path`` if needed and open its workspace store."""
        try:
            self.host.validate_workspace_path(path)
            path = normalize_path(path)

            workspace = self.get_by_path(path)
            if not workspace:
                workspace = self.add(self.name_from_path(path), path)
            else:
                workspace = self.touch(workspace.id)

            self.registry.init_workspace_store(path)
        except Exception:
            logger.exception("Failed to open workspace %s", path)
            raise

        logger.info("Workspace opened: %s", workspace.absolute_path)
        return workspace
