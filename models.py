"""Database models for image workspaces.

Two stores share these definitions: the catalog store only holds
``Workspace`` rows, every workspace store holds the remaining tables.
"""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import CheckConstraint, DateTime, UniqueConstraint
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp, the format every timestamp column uses."""
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Aware UTC datetimes on top of SQLite's offset-less DATETIME.

    Values are converted to UTC and stored without an offset; rows read back
    carry ``timezone.utc`` again. Naive input is taken to be UTC already.
    """
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


# -------------------------------
# Catalog store
# -------------------------------
class Workspace(SQLModel, table=True):
    """A user-registered folder."""
    __tablename__ = "workspaces"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    absolute_path: str = Field(index=True, unique=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


# -------------------------------
# Workspace store
# -------------------------------
class WorkspaceInfo(SQLModel, table=True):
    """Key/value metadata about a workspace store."""
    __tablename__ = "workspace_info"

    id: Optional[int] = Field(default=None, primary_key=True)
    key: str = Field(unique=True)
    value: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class ImageBase(SQLModel):
    name: str
    relative_path: str = Field(index=True, unique=True, description="Path relative to the workspace root")
    file_size: int = 0
    extension: str = ""
    modified_at: datetime = Field(sa_type=UTCDateTime)


class Image(ImageBase, table=True):
    """A catalogued file inside a workspace."""
    __tablename__ = "images"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class TagBase(SQLModel):
    name: str = Field(index=True, unique=True)
    color: Optional[str] = None


class Tag(TagBase, table=True):
    """User-defined label."""
    __tablename__ = "tags"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class ImageTag(SQLModel, table=True):
    """Link table for the many-to-many relationship between images and tags."""
    __tablename__ = "image_tags"
    __table_args__ = (UniqueConstraint("image_id", "tag_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    image_id: int = Field(foreign_key="images.id", ondelete="CASCADE", index=True)
    tag_id: int = Field(foreign_key="tags.id", ondelete="CASCADE", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Connection(SQLModel, table=True):
    """Undirected edge between two images, stored with image_a_id < image_b_id."""
    __tablename__ = "connections"
    __table_args__ = (
        UniqueConstraint("image_a_id", "image_b_id"),
        CheckConstraint("image_a_id < image_b_id", name="ck_connections_canonical_order"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    image_a_id: int = Field(foreign_key="images.id", ondelete="CASCADE", index=True)
    image_b_id: int = Field(foreign_key="images.id", ondelete="CASCADE", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


CATALOG_TABLES = [Workspace.__table__]
WORKSPACE_TABLES = [
    WorkspaceInfo.__table__,
    Image.__table__,
    Tag.__table__,
    ImageTag.__table__,
    Connection.__table__,
]


# -------------------------------
# Read models
# -------------------------------
class ScannedImage(ImageBase):
    """File metadata reported by the host filesystem scan."""
    pass


class ImageWithTags(ImageBase):
    id: int
    created_at: datetime
    updated_at: datetime
    tags: List[Tag] = []


class TagWithImageCount(TagBase):
    id: int
    created_at: datetime
    updated_at: datetime
    image_count: int = 0


class ImageConnection(SQLModel):
    """A connection seen from one of its endpoints."""
    connection_id: int
    created_at: datetime
    connected_image: Image


class ConnectionStats(SQLModel):
    total_connections: int = 0
    connected_images: int = 0


class GraphNode(SQLModel):
    id: int
    name: str
    path: str
    extension: str
    size: int


class GraphEdge(SQLModel):
    source: int
    target: int
    id: int
    created_at: datetime


class GraphData(SQLModel):
    nodes: List[GraphNode] = []
    edges: List[GraphEdge] = []


class ReconcileResult(SQLModel):
    added: int = 0
    updated: int = 0
    removed: int = 0
    unchanged: int = 0


# -------------------------------
# Request bodies
# -------------------------------
class OpenWorkspaceRequest(SQLModel):
    path: str


class TagCreate(SQLModel):
    name: str
    color: Optional[str] = None


class TagUpdate(SQLModel):
    name: Optional[str] = None
    color: Optional[str] = None


class ImageTagRequest(SQLModel):
    tag_id: int


class ConnectionRequest(SQLModel):
    image_a_id: int
    image_b_id: int


class MoveImageRequest(SQLModel):
    old_path: str
    new_path: str


class RenameImageRequest(SQLModel):
    old_name: str
    new_name: str
    relative_path: str


class DeleteImageRequest(SQLModel):
    relative_path: str
