from pathlib import Path

import pytest

from connections import ConnectionService
from database import StoreRegistry
from filesystem import LocalFilesystem
from images import ImageCatalog
from state import WorkspaceState
from tags import TagService


def write_image(path: Path, data: bytes = b"fake image bytes") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


@pytest.fixture
def workspace_dir(tmp_path: Path) -> Path:
    """A folder holding a.jpg, b.png and c.png."""
    root = tmp_path / "photos"
    write_image(root / "a.jpg", b"aaaa")
    write_image(root / "b.png", b"bbbbbb")
    write_image(root / "c.png", b"cc")
    return root


@pytest.fixture
def registry(tmp_path: Path):
    registry = StoreRegistry(LocalFilesystem(), tmp_path / "app" / "catalog.db")
    yield registry
    registry.close_workspace_store()
    if registry.catalog_engine is not None:
        registry.catalog_engine.dispose()


@pytest.fixture
def opened(registry: StoreRegistry, workspace_dir: Path) -> StoreRegistry:
    registry.ensure_catalog_connection()
    registry.init_workspace_store(str(workspace_dir))
    return registry


@pytest.fixture
def catalog(opened: StoreRegistry) -> ImageCatalog:
    return ImageCatalog(opened.host, opened.workspace_engine)


@pytest.fixture
def images(catalog: ImageCatalog, workspace_dir: Path) -> dict:
    """Reconciled images keyed by file name."""
    return {img.name: img for img in catalog.reconcile(str(workspace_dir))}


@pytest.fixture
def tag_service(opened: StoreRegistry) -> TagService:
    return TagService(opened.workspace_engine)


@pytest.fixture
def connection_service(opened: StoreRegistry) -> ConnectionService:
    return ConnectionService(opened.workspace_engine)


@pytest.fixture
def state(tmp_path: Path):
    state = WorkspaceState.create(catalog_path=tmp_path / "app" / "catalog.db")
    state.initialize()
    yield state
    state.close_workspace()
    if state.registry.catalog_engine is not None:
        state.registry.catalog_engine.dispose()
