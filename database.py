"""Database configuration and store handles.

``StoreRegistry`` owns the two kinds of SQLite store: the process-wide catalog
(known workspaces) and the store of the currently open workspace. Domain
services never create engines; they are bound to the handle the registry
hands out.
"""
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine, select

from config import CATALOG_DB_PATH
from errors import StoreUnavailableError, WorkspaceNotInitializedError
from models import CATALOG_TABLES, WORKSPACE_TABLES, WorkspaceInfo, utcnow

logger = logging.getLogger(__name__)


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless enabled per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def upsert_info(session: Session, key: str, value: str) -> None:
    """Insert or update a workspace_info row; the caller commits."""
    row = session.exec(select(WorkspaceInfo).where(WorkspaceInfo.key == key)).first()
    if row:
        row.value = value
        row.updated_at = utcnow()
        session.add(row)
    else:
        session.add(WorkspaceInfo(key=key, value=value))


def create_sqlite_engine(db_path: Path) -> Engine:
    engine = create_engine(
        f"sqlite:///{db_path}", connect_args={"check_same_thread": False}
    )
    event.listen(engine, "connect", _enable_foreign_keys)
    return engine


class StoreRegistry:
    """Hands out live handles to the catalog store and the open workspace store."""

    def __init__(self, host, catalog_path: Path = CATALOG_DB_PATH):
        self.host = host
        self.catalog_path = Path(catalog_path)
        self.catalog_engine: Optional[Engine] = None
        self.workspace_engine: Optional[Engine] = None
        self.workspace_store_path: Optional[str] = None

    # -------------------------------
    # Catalog store
    # -------------------------------
    def init_catalog_store(self) -> None:
        """Open or create the catalog store and make sure its tables exist."""
        logger.info("Loading catalog database at %s", self.catalog_path)
        self.catalog_path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_sqlite_engine(self.catalog_path)
        try:
            SQLModel.metadata.create_all(engine, tables=CATALOG_TABLES)
        except SQLAlchemyError:
            logger.exception("Failed to initialize catalog database")
            engine.dispose()
            raise
        self.catalog_engine = engine
        logger.info("Catalog database initialized")

    def probe(self, engine: Engine) -> None:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def ensure_catalog_connection(self) -> Engine:
        """Return a catalog handle that just answered a liveness probe.

        A failed probe discards the handle and reinitializes it once; a second
        failure raises ``StoreUnavailableError``.
        """
        if self.catalog_engine is None:
            logger.info("Catalog database not initialized, initializing now")
            self.init_catalog_store()

        try:
            self.probe(self.catalog_engine)
        except SQLAlchemyError as exc:
            logger.warning("Catalog connection test failed, reinitializing: %s", exc)
            self._dispose_catalog()
            try:
                self.init_catalog_store()
                self.probe(self.catalog_engine)
            except SQLAlchemyError as retry_exc:
                self._dispose_catalog()
                raise StoreUnavailableError(
                    "Failed to initialize catalog database connection"
                ) from retry_exc

        return self.catalog_engine

    @contextmanager
    def catalog_session(self) -> Iterator[Session]:
        with Session(self.ensure_catalog_connection()) as session:
            yield session

    def _dispose_catalog(self) -> None:
        if self.catalog_engine is not None:
            self.catalog_engine.dispose()
        self.catalog_engine = None

    # -------------------------------
    # Workspace store
    # -------------------------------
    def init_workspace_store(self, workspace_path: str) -> str:
        """Open the store of ``workspace_path`` and return its database path."""
        db_path = self.host.ensure_workspace_structure(workspace_path)
        self.close_workspace_store()

        engine = create_sqlite_engine(Path(db_path))
        try:
            SQLModel.metadata.create_all(engine, tables=WORKSPACE_TABLES)
        except SQLAlchemyError:
            logger.exception("Failed to initialize workspace database %s", db_path)
            engine.dispose()
            raise

        self.workspace_engine = engine
        self.workspace_store_path = db_path
        self.set_info("initialized", "true")
        logger.info("Workspace database initialized at %s", db_path)
        return db_path

    def close_workspace_store(self) -> None:
        if self.workspace_engine is not None:
            self.workspace_engine.dispose()
            logger.info("Workspace database connection closed")
        self.workspace_engine = None
        self.workspace_store_path = None

    def require_workspace_engine(self) -> Engine:
        if self.workspace_engine is None:
            raise WorkspaceNotInitializedError()
        return self.workspace_engine

    def get_info(self, key: str) -> Optional[str]:
        """Get a workspace_info value by key."""
        with Session(self.require_workspace_engine()) as s:
            row = s.exec(select(WorkspaceInfo).where(WorkspaceInfo.key == key)).first()
            return row.value if row else None

    def set_info(self, key: str, value: str) -> None:
        """Set a workspace_info value."""
        with Session(self.require_workspace_engine()) as s:
            upsert_info(s, key, value)
            s.commit()


class WorkspaceBoundService:
    """Base for domain services operating on the open workspace store.

    The coordinator calls ``bind`` after the store is (re)opened and
    ``unbind`` after it is closed.
    """

    def __init__(self, engine: Optional[Engine] = None):
        self._engine = engine

    def bind(self, engine: Optional[Engine]) -> None:
        self._engine = engine

    def unbind(self) -> None:
        self._engine = None

    @property
    def is_bound(self) -> bool:
        return self._engine is not None

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Get a session on the bound workspace store."""
        if self._engine is None:
            raise WorkspaceNotInitializedError()
        with Session(self._engine) as session:
            yield session
