"""Undirected connections between images."""
import logging
from typing import List, Tuple

from sqlalchemy import func, or_, union
from sqlalchemy.orm import aliased
from sqlmodel import select

from database import WorkspaceBoundService
from errors import ConnectionExistsError, ValidationError
from models import (
    Connection,
    ConnectionStats,
    GraphData,
    GraphEdge,
    GraphNode,
    Image,
    ImageConnection,
)

logger = logging.getLogger(__name__)


def canonical_pair(image_a_id: int, image_b_id: int) -> Tuple[int, int]:
    """Order a pair so the smaller id comes first."""
    return (image_a_id, image_b_id) if image_a_id < image_b_id else (image_b_id, image_a_id)


class ConnectionService(WorkspaceBoundService):
    """Pairwise links between images, one row per unordered pair."""

    def create(self, image_a_id: int, image_b_id: int) -> Connection:
        if image_a_id == image_b_id:
            raise ValidationError("Cannot create connection between the same image")

        min_id, max_id = canonical_pair(image_a_id, image_b_id)
        with self.session() as s:
            for image_id in (min_id, max_id):
                if s.get(Image, image_id) is None:
                    raise ValidationError(f"Image not found: {image_id}")
            existing = s.exec(
                select(Connection).where(
                    Connection.image_a_id == min_id, Connection.image_b_id == max_id
                )
            ).first()
            if existing:
                raise ConnectionExistsError("Connection already exists between these images")

            connection = Connection(image_a_id=min_id, image_b_id=max_id)
            s.add(connection)
            s.commit()
            s.refresh(connection)
        logger.info("Connection created between images %s and %s", min_id, max_id)
        return connection

    def remove(self, image_a_id: int, image_b_id: int) -> None:
        min_id, max_id = canonical_pair(image_a_id, image_b_id)
        with self.session() as s:
            connection = s.exec(
                select(Connection).where(
                    Connection.image_a_id == min_id, Connection.image_b_id == max_id
                )
            ).first()
            if connection:
                s.delete(connection)
                s.commit()
        logger.info("Connection removed between images %s and %s", min_id, max_id)

    def exists_between(self, image_a_id: int, image_b_id: int) -> bool:
        min_id, max_id = canonical_pair(image_a_id, image_b_id)
        with self.session() as s:
            found = s.exec(
                select(Connection.id).where(
                    Connection.image_a_id == min_id, Connection.image_b_id == max_id
                )
            ).first()
        return found is not None

    def get_for_image(self, image_id: int) -> List[ImageConnection]:
        """Every connection touching ``image_id`` with the other image attached, newest first."""
        image_a = aliased(Image)
        image_b = aliased(Image)
        with self.session() as s:
            rows = s.exec(
                select(Connection, image_a, image_b)
                .join(image_a, Connection.image_a_id == image_a.id)
                .join(image_b, Connection.image_b_id == image_b.id)
                .where(or_(Connection.image_a_id == image_id, Connection.image_b_id == image_id))
                .order_by(Connection.created_at.desc(), Connection.id.desc())
            ).all()

        return [
            ImageConnection(
                connection_id=connection.id,
                created_at=connection.created_at,
                connected_image=other_b if connection.image_a_id == image_id else other_a,
            )
            for connection, other_a, other_b in rows
        ]

    def get_all(self) -> List[Connection]:
        with self.session() as s:
            return list(
                s.exec(
                    select(Connection).order_by(Connection.created_at.desc(), Connection.id.desc())
                ).all()
            )

    def get_stats(self) -> ConnectionStats:
        endpoints = union(
            select(Connection.image_a_id.label("image_id")),
            select(Connection.image_b_id.label("image_id")),
        ).subquery()
        with self.session() as s:
            total = s.exec(select(func.count()).select_from(Connection)).one()
            connected = s.exec(select(func.count()).select_from(endpoints)).one()
        return ConnectionStats(total_connections=total, connected_images=connected)

    def get_graph_data(self) -> GraphData:
        with self.session() as s:
            images = s.exec(select(Image).order_by(Image.id)).all()
        connections = self.get_all()

        nodes = [
            GraphNode(
                id=image.id,
                name=image.name,
                path=image.relative_path,
                extension=image.extension,
                size=image.file_size,
            )
            for image in images
        ]
        edges = [
            GraphEdge(
                source=connection.image_a_id,
                target=connection.image_b_id,
                id=connection.id,
                created_at=connection.created_at,
            )
            for connection in connections
        ]
        return GraphData(nodes=nodes, edges=edges)
