"""Tags, image-tag associations and tag-based image filtering."""
import logging
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from database import WorkspaceBoundService
from errors import ValidationError
from models import Image, ImageTag, ImageWithTags, Tag, TagUpdate, TagWithImageCount, utcnow

logger = logging.getLogger(__name__)


def clean_tag_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Tag name required")
    return name


class TagService(WorkspaceBoundService):
    """CRUD for tags plus the ``image_tags`` association table."""

    def create(self, name: str, color: Optional[str] = None) -> Tag:
        """Create a tag.

        Case-insensitive uniqueness is the caller's job (see ``name_exists``);
        only the raw unique constraint on ``name`` is enforced here.
        """
        tag = Tag(name=clean_tag_name(name), color=color or None)
        with self.session() as s:
            s.add(tag)
            s.commit()
            s.refresh(tag)
        logger.info("Tag created: %s", tag.name)
        return tag

    def get_all(self) -> List[Tag]:
        with self.session() as s:
            return list(s.exec(select(Tag).order_by(Tag.name)).all())

    def get(self, tag_id: int) -> Optional[Tag]:
        with self.session() as s:
            return s.get(Tag, tag_id)

    def get_all_with_image_count(self) -> List[TagWithImageCount]:
        """All tags with the number of images carrying each, for management views."""
        with self.session() as s:
            rows = s.exec(
                select(Tag, func.count(ImageTag.image_id))
                .join(ImageTag, ImageTag.tag_id == Tag.id, isouter=True)
                .group_by(Tag.id)
                .order_by(Tag.name)
            ).all()
        return [TagWithImageCount(**tag.model_dump(), image_count=count) for tag, count in rows]

    def search(self, query: str) -> List[Tag]:
        with self.session() as s:
            return list(s.exec(select(Tag).where(Tag.name.contains(query)).order_by(Tag.name)).all())

    def name_exists(self, name: str, exclude_id: Optional[int] = None) -> bool:
        """Case-insensitive name check; ``exclude_id`` skips the tag being renamed."""
        stmt = select(func.count()).select_from(Tag).where(
            func.lower(Tag.name) == func.lower(name.strip())
        )
        if exclude_id is not None:
            stmt = stmt.where(Tag.id != exclude_id)
        with self.session() as s:
            return s.exec(stmt).one() > 0

    def update(self, tag_id: int, changes: TagUpdate) -> Optional[Tag]:
        """Write only the fields set on ``changes``; nothing set is a no-op."""
        fields = changes.model_dump(exclude_unset=True)
        if "name" in fields:
            fields["name"] = clean_tag_name(fields["name"])
        if "color" in fields:
            fields["color"] = fields["color"] or None

        with self.session() as s:
            tag = s.get(Tag, tag_id)
            if not tag or not fields:
                return tag
            for key, value in fields.items():
                setattr(tag, key, value)
            tag.updated_at = utcnow()
            s.add(tag)
            s.commit()
            s.refresh(tag)
        logger.info("Tag %s updated", tag_id)
        return tag

    def delete(self, tag_id: int) -> None:
        """Delete the tag's image links first, then the tag itself."""
        with self.session() as s:
            links = s.exec(select(ImageTag).where(ImageTag.tag_id == tag_id)).all()
            for link in links:
                s.delete(link)
            tag = s.get(Tag, tag_id)
            if tag:
                s.delete(tag)
            s.commit()
        logger.info("Tag %s deleted", tag_id)

    # -------------------------------
    # Associations
    # -------------------------------
    def add_to_image(self, image_id: int, tag_id: int) -> None:
        with self.session() as s:
            if s.get(Image, image_id) is None:
                raise ValidationError(f"Image not found: {image_id}")
            if s.get(Tag, tag_id) is None:
                raise ValidationError(f"Tag not found: {tag_id}")
            existing = s.exec(
                select(ImageTag).where(ImageTag.image_id == image_id, ImageTag.tag_id == tag_id)
            ).first()
            if existing:
                return
            s.add(ImageTag(image_id=image_id, tag_id=tag_id))
            s.commit()
        logger.debug("Tag %s added to image %s", tag_id, image_id)

    def remove_from_image(self, image_id: int, tag_id: int) -> None:
        with self.session() as s:
            link = s.exec(
                select(ImageTag).where(ImageTag.image_id == image_id, ImageTag.tag_id == tag_id)
            ).first()
            if link:
                s.delete(link)
                s.commit()

    def get_for_image(self, image_id: int) -> List[Tag]:
        with self.session() as s:
            return self._tags_for_image(s, image_id)

    def _tags_for_image(self, s: Session, image_id: int) -> List[Tag]:
        return list(
            s.exec(
                select(Tag)
                .join(ImageTag, ImageTag.tag_id == Tag.id)
                .where(ImageTag.image_id == image_id)
                .order_by(Tag.name)
            ).all()
        )

    def _with_tags(self, s: Session, images: Iterable[Image]) -> List[ImageWithTags]:
        # One lookup per image; fine for workspace-sized galleries.
        return [
            ImageWithTags(**image.model_dump(), tags=self._tags_for_image(s, image.id))
            for image in images
        ]

    # -------------------------------
    # Filtering
    # -------------------------------
    def get_all_images_with_tags(self) -> List[ImageWithTags]:
        with self.session() as s:
            images = s.exec(select(Image).order_by(Image.name, Image.id)).all()
            return self._with_tags(s, images)

    def get_images_by_tags_and(self, tag_ids: Iterable[int]) -> List[ImageWithTags]:
        """Images carrying every one of ``tag_ids``; no ids means no filter."""
        ids = sorted(set(tag_ids))
        if not ids:
            return self.get_all_images_with_tags()

        with self.session() as s:
            images = s.exec(
                select(Image)
                .join(ImageTag, ImageTag.image_id == Image.id)
                .where(ImageTag.tag_id.in_(ids))
                .group_by(Image.id)
                .having(func.count(func.distinct(ImageTag.tag_id)) == len(ids))
                .order_by(Image.name, Image.id)
            ).all()
            return self._with_tags(s, images)

    def get_images_by_tags_or(self, tag_ids: Iterable[int]) -> List[ImageWithTags]:
        """Images carrying any of ``tag_ids``; no ids means no filter."""
        ids = sorted(set(tag_ids))
        if not ids:
            return self.get_all_images_with_tags()

        with self.session() as s:
            images = s.exec(
                select(Image)
                .join(ImageTag, ImageTag.image_id == Image.id)
                .where(ImageTag.tag_id.in_(ids))
                .distinct()
                .order_by(Image.name, Image.id)
            ).all()
            return self._with_tags(s, images)
