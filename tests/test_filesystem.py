import base64
import os

import pytest

from errors import PathOutsideWorkspaceError, ValidationError
from filesystem import LocalFilesystem, free_destination
from scanner import scan
from tests.conftest import write_image


@pytest.fixture
def host():
    return LocalFilesystem()


def test_scan_filters_extensions_and_settings_folder(workspace_dir):
    write_image(workspace_dir / "notes.txt", b"not an image")
    write_image(workspace_dir / "nested" / "deep" / "D.JPG", b"dddd")
    write_image(workspace_dir / ".im_settings" / "cache.png", b"hidden")

    rows = scan(workspace_dir)

    assert [r.relative_path for r in rows] == ["a.jpg", "b.png", "c.png", "nested/deep/D.JPG"]
    nested = rows[-1]
    assert nested.name == "D.JPG"
    assert nested.extension == "jpg"
    assert nested.file_size == 4


def test_scan_missing_folder_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        scan(tmp_path / "missing")


def test_validate_workspace_path(host, tmp_path, workspace_dir):
    assert host.validate_workspace_path(str(workspace_dir))
    with pytest.raises(FileNotFoundError):
        host.validate_workspace_path(str(tmp_path / "missing"))
    with pytest.raises(NotADirectoryError):
        host.validate_workspace_path(str(workspace_dir / "a.jpg"))


def test_workspace_name_from_path(host, workspace_dir):
    assert host.workspace_name_from_path(str(workspace_dir)) == "photos"
    with pytest.raises(ValidationError):
        host.workspace_name_from_path("/")


def test_ensure_workspace_structure(host, workspace_dir):
    db_path = host.ensure_workspace_structure(str(workspace_dir))
    assert db_path == str(workspace_dir / ".im_settings" / "workspace.db")
    assert (workspace_dir / ".im_settings").is_dir()


def test_free_destination_appends_counter(workspace_dir):
    write_image(workspace_dir / "b_1.png")
    assert free_destination(workspace_dir / "new.png") == workspace_dir / "new.png"
    assert free_destination(workspace_dir / "b.png") == workspace_dir / "b_2.png"


def test_move_into_folder(host, workspace_dir):
    (workspace_dir / "sub").mkdir()
    result = host.move_image("a.jpg", "sub", str(workspace_dir))
    assert result == "sub/a.jpg"
    assert (workspace_dir / "sub" / "a.jpg").is_file()
    assert not (workspace_dir / "a.jpg").exists()


def test_move_onto_taken_name_gets_suffix(host, workspace_dir):
    result = host.move_image("c.png", "b.png", str(workspace_dir))
    assert result == "b_1.png"
    assert (workspace_dir / "b.png").read_bytes() == b"bbbbbb"
    assert (workspace_dir / "b_1.png").read_bytes() == b"cc"


def test_move_missing_file(host, workspace_dir):
    with pytest.raises(FileNotFoundError):
        host.move_image("nope.jpg", "sub/nope.jpg", str(workspace_dir))


def test_paths_cannot_escape_workspace(host, workspace_dir):
    with pytest.raises(PathOutsideWorkspaceError):
        host.move_image("a.jpg", "../escaped.jpg", str(workspace_dir))
    with pytest.raises(PathOutsideWorkspaceError):
        host.delete_image("../photos/../outside.png", str(workspace_dir))
    assert (workspace_dir / "a.jpg").is_file()


def test_rename(host, workspace_dir):
    result = host.rename_image("a.jpg", "holiday.jpg", "a.jpg", str(workspace_dir))
    assert result == "holiday.jpg"
    assert (workspace_dir / "holiday.jpg").is_file()


def test_rename_rejects_bad_names(host, workspace_dir):
    with pytest.raises(ValidationError):
        host.rename_image("a.jpg", "  ", "a.jpg", str(workspace_dir))
    with pytest.raises(ValidationError):
        host.rename_image("a.jpg", "sub/x.jpg", "a.jpg", str(workspace_dir))
    with pytest.raises(FileNotFoundError):
        host.rename_image("wrong.jpg", "x.jpg", "a.jpg", str(workspace_dir))


def test_delete(host, workspace_dir):
    host.delete_image("b.png", str(workspace_dir))
    assert not (workspace_dir / "b.png").exists()
    with pytest.raises(FileNotFoundError):
        host.delete_image("b.png", str(workspace_dir))


def test_absolute_path_and_data_url(host, workspace_dir):
    absolute = host.get_image_absolute_path("b.png", str(workspace_dir))
    assert os.path.samefile(absolute, workspace_dir / "b.png")

    data_url = host.get_image_as_base64("b.png", str(workspace_dir))
    prefix = "data:image/png;base64,"
    assert data_url.startswith(prefix)
    assert base64.b64decode(data_url[len(prefix):]) == b"bbbbbb"
