import pytest
from sqlalchemy.exc import IntegrityError

from errors import ValidationError
from models import TagUpdate


def names(images):
    return [img.name for img in images]


@pytest.fixture
def tagged(images, tag_service):
    """a.jpg: red, blue; b.png: red; c.png: untagged."""
    red = tag_service.create("red", "#ff0000")
    blue = tag_service.create("blue")
    tag_service.add_to_image(images["a.jpg"].id, red.id)
    tag_service.add_to_image(images["a.jpg"].id, blue.id)
    tag_service.add_to_image(images["b.png"].id, red.id)
    return red, blue


def test_create_trims_and_requires_name(tag_service):
    tag = tag_service.create("  sunset  ", "")
    assert tag.id is not None
    assert tag.name == "sunset"
    assert tag.color is None
    with pytest.raises(ValidationError):
        tag_service.create("   ")


def test_exact_duplicate_hits_unique_constraint(tag_service):
    tag_service.create("red")
    with pytest.raises(IntegrityError):
        tag_service.create("red")


def test_name_exists_is_case_insensitive(tag_service):
    red = tag_service.create("Red")
    assert tag_service.name_exists("red")
    assert tag_service.name_exists(" RED ")
    assert not tag_service.name_exists("red", exclude_id=red.id)
    assert not tag_service.name_exists("green")


def test_search_and_ordering(tag_service):
    for name in ("sunset", "beach", "sunrise"):
        tag_service.create(name)
    assert [t.name for t in tag_service.get_all()] == ["beach", "sunrise", "sunset"]
    assert [t.name for t in tag_service.search("sun")] == ["sunrise", "sunset"]
    assert tag_service.search("zzz") == []


def test_partial_update(tag_service):
    tag = tag_service.create("red", "#ff0000")

    renamed = tag_service.update(tag.id, TagUpdate(name="crimson"))
    assert (renamed.name, renamed.color) == ("crimson", "#ff0000")

    recolored = tag_service.update(tag.id, TagUpdate(color="#990000"))
    assert (recolored.name, recolored.color) == ("crimson", "#990000")

    cleared = tag_service.update(tag.id, TagUpdate(color=None))
    assert cleared.color is None


def test_empty_update_is_noop(tag_service):
    tag = tag_service.create("red")
    unchanged = tag_service.update(tag.id, TagUpdate())
    assert unchanged.updated_at == tag.updated_at
    assert tag_service.update(999, TagUpdate(name="x")) is None


def test_image_counts(tagged, tag_service):
    counts = {t.name: t.image_count for t in tag_service.get_all_with_image_count()}
    assert counts == {"red": 2, "blue": 1}


def test_add_to_image_is_idempotent(images, tagged, tag_service):
    red, _ = tagged
    tag_service.add_to_image(images["b.png"].id, red.id)
    assert [t.name for t in tag_service.get_for_image(images["b.png"].id)] == ["red"]


def test_remove_from_image(images, tagged, tag_service):
    red, _ = tagged
    tag_service.remove_from_image(images["a.jpg"].id, red.id)
    assert [t.name for t in tag_service.get_for_image(images["a.jpg"].id)] == ["blue"]
    # Removing a missing link does nothing.
    tag_service.remove_from_image(images["c.png"].id, red.id)


def test_and_filter(tagged, tag_service):
    red, blue = tagged
    assert names(tag_service.get_images_by_tags_and([red.id])) == ["a.jpg", "b.png"]
    assert names(tag_service.get_images_by_tags_and([red.id, blue.id])) == ["a.jpg"]
    assert names(tag_service.get_images_by_tags_and([red.id, red.id, blue.id])) == ["a.jpg"]


def test_or_filter(tagged, tag_service):
    red, blue = tagged
    assert names(tag_service.get_images_by_tags_or([blue.id])) == ["a.jpg"]
    assert names(tag_service.get_images_by_tags_or([red.id, blue.id])) == ["a.jpg", "b.png"]


def test_empty_filter_returns_everything_with_tags(tagged, tag_service):
    for query in (tag_service.get_images_by_tags_and, tag_service.get_images_by_tags_or):
        result = query([])
        assert names(result) == ["a.jpg", "b.png", "c.png"]
        assert [t.name for t in result[0].tags] == ["blue", "red"]
        assert result[2].tags == []


def test_delete_tag_removes_links(images, tagged, tag_service):
    red, blue = tagged
    tag_service.delete(red.id)

    assert tag_service.get(red.id) is None
    assert [t.name for t in tag_service.get_for_image(images["b.png"].id)] == []
    assert names(tag_service.get_images_by_tags_or([red.id])) == []
    assert names(tag_service.get_images_by_tags_and([blue.id])) == ["a.jpg"]


def test_links_need_existing_image_and_tag(images, tag_service):
    red = tag_service.create("red")
    with pytest.raises(ValidationError, match="Image not found"):
        tag_service.add_to_image(9999, red.id)
    with pytest.raises(ValidationError, match="Tag not found"):
        tag_service.add_to_image(images["a.jpg"].id, 9999)
    assert tag_service.get_all_with_image_count()[0].image_count == 0
