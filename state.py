"""Application state layer.

``WorkspaceState`` is the single object a front end talks to. It owns the
store registry and the domain services, drives the workspace lifecycle

    no workspace -> opening -> ready -> closing -> no workspace

and keeps in-memory views (image list, tags, per-image caches) in step with
every mutation it routes to the domains.
"""
import logging
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from cache import KeyedCache
from config import CATALOG_DB_PATH
from connections import ConnectionService
from database import StoreRegistry
from errors import ValidationError, WorkspaceStateError
from filesystem import LocalFilesystem
from images import ImageCatalog
from models import (
    Connection,
    ConnectionStats,
    GraphData,
    Image,
    ImageConnection,
    ImageWithTags,
    Tag,
    TagUpdate,
    TagWithImageCount,
    Workspace,
)
from tags import TagService
from workspaces import WorkspaceDirectory

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    NO_WORKSPACE = "no_workspace"
    OPENING = "opening"
    READY = "ready"
    CLOSING = "closing"


class FilterMode(str, Enum):
    AND = "and"
    OR = "or"


class WorkspaceState:
    """In-memory state for the open workspace."""

    def __init__(self, registry: StoreRegistry):
        self.registry = registry
        self.directory = WorkspaceDirectory(registry)
        self.catalog = ImageCatalog(registry.host)
        self.tag_service = TagService()
        self.connection_service = ConnectionService()

        self.initialized = False
        self.phase = Phase.NO_WORKSPACE
        self.error: Optional[str] = None
        self.current_workspace: Optional[Workspace] = None
        self.workspaces: List[Workspace] = []

        self.images: List[Image] = []
        self.selected_image: Optional[Image] = None

        self.tags: List[Tag] = []
        self.tags_with_image_count: List[TagWithImageCount] = []
        self.selected_tag_ids: List[int] = []
        self.filter_mode = FilterMode.AND

        self.connections: List[Connection] = []
        self.connection_cache: KeyedCache[int, List[ImageConnection]] = KeyedCache("connections")
        self.image_tag_cache: KeyedCache[int, List[Tag]] = KeyedCache("image tags")

    @classmethod
    def create(cls, catalog_path: Path = CATALOG_DB_PATH, host=None) -> "WorkspaceState":
        return cls(StoreRegistry(host or LocalFilesystem(), catalog_path))

    # -------------------------------
    # Helpers
    # -------------------------------
    @property
    def is_ready(self) -> bool:
        return self.phase is Phase.READY

    @property
    def workspace_path(self) -> str:
        self._require_ready()
        return self.current_workspace.absolute_path

    def _require_ready(self) -> None:
        if not self.is_ready:
            raise WorkspaceStateError()

    @contextmanager
    def _tracking_errors(self) -> Iterator[None]:
        """Record the message of any error raised in the block, then re-raise it."""
        self.error = None
        try:
            yield
        except Exception as exc:
            self.error = str(exc)
            raise

    def _services(self):
        return (self.catalog, self.tag_service, self.connection_service)

    def _bind_services(self) -> None:
        engine = self.registry.require_workspace_engine()
        for service in self._services():
            service.bind(engine)

    def _unbind_services(self) -> None:
        for service in self._services():
            service.unbind()

    def _clear_workspace_views(self) -> None:
        self.images = []
        self.selected_image = None
        self.tags = []
        self.tags_with_image_count = []
        self.selected_tag_ids = []
        self.connections = []
        self.connection_cache.invalidate_all()
        self.image_tag_cache.invalidate_all()

    # -------------------------------
    # Workspace lifecycle
    # -------------------------------
    def initialize(self) -> None:
        """Open the catalog store and load the recent workspace list."""
        self.directory.init_catalog()
        self.refresh_workspaces()
        self.initialized = True
        logger.info("Workspace state initialized")

    def refresh_workspaces(self) -> List[Workspace]:
        self.workspaces = self.directory.list()
        return self.workspaces

    def open_workspace(self, path: str) -> Workspace:
        """Open ``path``, closing the current workspace first."""
        if self.phase in (Phase.OPENING, Phase.CLOSING):
            raise WorkspaceStateError(f"Workspace is {self.phase.value}")
        if self.is_ready:
            self.close_workspace()

        self.phase = Phase.OPENING
        self.error = None
        try:
            workspace = self.directory.open(path)
            self._bind_services()
            self.current_workspace = workspace
            self._clear_workspace_views()
            self._load_images()
            self._load_tags()
        except Exception as exc:
            self.error = str(exc)
            self._unbind_services()
            self.registry.close_workspace_store()
            self.current_workspace = None
            self._clear_workspace_views()
            self.phase = Phase.NO_WORKSPACE
            raise

        self.phase = Phase.READY
        self.refresh_workspaces()
        logger.info("Workspace ready: %s", workspace.absolute_path)
        return workspace

    def close_workspace(self) -> None:
        if self.phase is Phase.NO_WORKSPACE:
            return
        self.phase = Phase.CLOSING
        try:
            self.registry.close_workspace_store()
        finally:
            self._unbind_services()
            self.current_workspace = None
            self._clear_workspace_views()
            self.phase = Phase.NO_WORKSPACE
        logger.info("Workspace closed")

    def remove_workspace(self, workspace_id: int) -> None:
        """Forget a workspace, closing it first if it is the open one."""
        with self._tracking_errors():
            if self.current_workspace and self.current_workspace.id == workspace_id:
                self.close_workspace()
            self.directory.remove(workspace_id)
            self.refresh_workspaces()

    # -------------------------------
    # Images
    # -------------------------------
    def _load_images(self) -> None:
        try:
            existing = self.catalog.get_all()
        except SQLAlchemyError:
            logger.exception("Failed to load images, falling back to a scan")
            existing = []

        if existing:
            self.images = existing
            logger.info("Loaded %d images from database", len(existing))
        else:
            self.images = self.catalog.reconcile(self.current_workspace.absolute_path)

    def load_images(self) -> List[Image]:
        self._require_ready()
        with self._tracking_errors():
            self._load_images()
        return self.images

    def scan_images(self) -> List[Image]:
        """Reconcile the catalog with the folder and reset derived views."""
        self._require_ready()
        with self._tracking_errors():
            self.images = self.catalog.reconcile(self.workspace_path)
            self.connection_cache.invalidate_all()
            self.image_tag_cache.invalidate_all()
            if self.selected_image:
                self.selected_image = self.catalog.get_by_path(self.selected_image.relative_path)
            self._load_tags()
            self._refresh_connections()
        return self.images

    def refresh_images(self) -> List[Image]:
        self._require_ready()
        with self._tracking_errors():
            self.images = self.catalog.get_all()
        return self.images

    def select_image(self, image: Optional[Image]) -> None:
        self.selected_image = image

    def _replace_image(self, old_path: str, new_path: str) -> None:
        fresh = self.catalog.get_by_path(new_path)
        self.images = [
            fresh if img.relative_path == old_path and fresh else img for img in self.images
        ]
        if self.selected_image and self.selected_image.relative_path == old_path:
            self.selected_image = fresh

    def move_image(self, old_path: str, new_path: str) -> str:
        self._require_ready()
        with self._tracking_errors():
            new_relative_path = self.catalog.move(old_path, new_path, self.workspace_path)
            self._replace_image(old_path, new_relative_path)
        return new_relative_path

    def rename_image(self, old_name: str, new_name: str, relative_path: str) -> str:
        self._require_ready()
        with self._tracking_errors():
            new_relative_path = self.catalog.rename(
                old_name, new_name, relative_path, self.workspace_path
            )
            self._replace_image(relative_path, new_relative_path)
        return new_relative_path

    def delete_image(self, relative_path: str) -> None:
        self._require_ready()
        with self._tracking_errors():
            image = self.catalog.get_by_path(relative_path)
            self.catalog.delete(relative_path, self.workspace_path)
            self.images = [img for img in self.images if img.relative_path != relative_path]
            if self.selected_image and self.selected_image.relative_path == relative_path:
                self.selected_image = None
            if image:
                self.image_tag_cache.invalidate(image.id)
                # Peers of the deleted image lost a connection too.
                self.connection_cache.invalidate_all()
            self._load_tags()
            self._refresh_connections()

    def get_image_absolute_path(self, relative_path: str) -> str:
        return self.catalog.get_absolute_path(relative_path, self.workspace_path)

    def get_image_as_base64(self, relative_path: str) -> str:
        return self.catalog.get_as_base64(relative_path, self.workspace_path)

    # -------------------------------
    # Tags
    # -------------------------------
    def _load_tags(self) -> None:
        self.tags = self.tag_service.get_all()
        self.tags_with_image_count = self.tag_service.get_all_with_image_count()

    def load_tags(self) -> List[Tag]:
        """Reload tags; failures are kept in ``error`` instead of raised."""
        if not self.is_ready:
            self.tags = []
            self.tags_with_image_count = []
            return self.tags
        self.error = None
        try:
            self._load_tags()
        except Exception as exc:
            logger.exception("Failed to load tags")
            self.error = str(exc) or "Failed to load tags"
        return self.tags

    def tag_name_exists(self, name: str, exclude_id: Optional[int] = None) -> bool:
        if not self.is_ready:
            return False
        return self.tag_service.name_exists(name, exclude_id)

    def search_tags(self, query: str) -> List[Tag]:
        if not self.is_ready:
            return []
        return self.tag_service.search(query)

    def create_tag(self, name: str, color: Optional[str] = None) -> Tag:
        self._require_ready()
        with self._tracking_errors():
            if self.tag_service.name_exists(name):
                raise ValidationError(f"Tag name already exists: {name.strip()}")
            tag = self.tag_service.create(name, color)
            self._load_tags()
        return tag

    def update_tag(self, tag_id: int, changes: TagUpdate) -> Optional[Tag]:
        self._require_ready()
        with self._tracking_errors():
            if changes.name is not None and self.tag_service.name_exists(changes.name, exclude_id=tag_id):
                raise ValidationError(f"Tag name already exists: {changes.name.strip()}")
            tag = self.tag_service.update(tag_id, changes)
            self.image_tag_cache.invalidate_all()
            self._load_tags()
        return tag

    def delete_tag(self, tag_id: int) -> None:
        self._require_ready()
        with self._tracking_errors():
            self.tag_service.delete(tag_id)
            self.image_tag_cache.invalidate_all()
            self.selected_tag_ids = [t for t in self.selected_tag_ids if t != tag_id]
            self._load_tags()

    def get_tags_for_image(self, image_id: int) -> List[Tag]:
        if not self.is_ready:
            return []
        cached = self.image_tag_cache.get(image_id)
        if cached is not None:
            return cached
        tags = self.tag_service.get_for_image(image_id)
        self.image_tag_cache.set(image_id, tags)
        return tags

    def add_tag_to_image(self, image_id: int, tag_id: int) -> None:
        self._require_ready()
        with self._tracking_errors():
            self.tag_service.add_to_image(image_id, tag_id)
            self.image_tag_cache.invalidate(image_id)
            self._load_tags()

    def remove_tag_from_image(self, image_id: int, tag_id: int) -> None:
        self._require_ready()
        with self._tracking_errors():
            self.tag_service.remove_from_image(image_id, tag_id)
            self.image_tag_cache.invalidate(image_id)
            self._load_tags()

    # -------------------------------
    # Tag filter
    # -------------------------------
    def set_selected_tags(self, tag_ids: Iterable[int]) -> None:
        self.selected_tag_ids = list(dict.fromkeys(tag_ids))

    def set_filter_mode(self, mode) -> None:
        self.filter_mode = FilterMode(mode)

    def clear_tag_filter(self) -> None:
        self.selected_tag_ids = []

    def get_filtered_images(self) -> List[ImageWithTags]:
        if not self.is_ready:
            return []
        if self.filter_mode is FilterMode.AND:
            return self.tag_service.get_images_by_tags_and(self.selected_tag_ids)
        return self.tag_service.get_images_by_tags_or(self.selected_tag_ids)

    # -------------------------------
    # Connections
    # -------------------------------
    def _refresh_connections(self) -> None:
        self.connections = self.connection_service.get_all()

    def refresh_connections(self) -> List[Connection]:
        """Reload all connections; failures are kept in ``error`` instead of raised."""
        if not self.is_ready:
            self.connections = []
            return self.connections
        self.error = None
        try:
            self._refresh_connections()
        except Exception as exc:
            logger.exception("Failed to refresh connections")
            self.error = str(exc) or "Failed to refresh connections"
        return self.connections

    def create_connection(self, image_a_id: int, image_b_id: int) -> Connection:
        self._require_ready()
        with self._tracking_errors():
            connection = self.connection_service.create(image_a_id, image_b_id)
            self.connection_cache.invalidate(image_a_id, image_b_id)
            self._refresh_connections()
        return connection

    def remove_connection(self, image_a_id: int, image_b_id: int) -> None:
        self._require_ready()
        with self._tracking_errors():
            self.connection_service.remove(image_a_id, image_b_id)
            self.connection_cache.invalidate(image_a_id, image_b_id)
            self._refresh_connections()

    def get_connections_for_image(self, image_id: int, force_refresh: bool = False) -> List[ImageConnection]:
        """Connections of one image, served from cache unless ``force_refresh``.

        Failures are kept in ``error`` and an empty list is returned.
        """
        if not self.is_ready:
            return []
        if not force_refresh:
            cached = self.connection_cache.get(image_id)
            if cached is not None:
                return cached

        self.error = None
        try:
            connections = self.connection_service.get_for_image(image_id)
        except Exception as exc:
            logger.exception("Failed to get connections for image %s", image_id)
            self.error = str(exc) or "Failed to get connections for image"
            return []
        self.connection_cache.set(image_id, connections)
        return connections

    def connection_exists(self, image_a_id: int, image_b_id: int) -> bool:
        if not self.is_ready:
            return False
        return self.connection_service.exists_between(image_a_id, image_b_id)

    def get_connection_stats(self) -> ConnectionStats:
        if not self.is_ready:
            return ConnectionStats()
        return self.connection_service.get_stats()

    def get_graph_data(self) -> GraphData:
        if not self.is_ready:
            return GraphData()
        return self.connection_service.get_graph_data()
