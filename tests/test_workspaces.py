import pytest

from errors import DuplicateWorkspaceError
from tests.conftest import write_image
from workspaces import WorkspaceDirectory


@pytest.fixture
def directory(registry):
    directory = WorkspaceDirectory(registry)
    directory.init_catalog()
    return directory


def test_open_registers_and_opens_store(directory, registry, workspace_dir):
    workspace = directory.open(str(workspace_dir))

    assert workspace.id is not None
    assert workspace.name == "photos"
    assert workspace.absolute_path == str(workspace_dir)
    assert registry.workspace_engine is not None
    assert [w.id for w in directory.list()] == [workspace.id]


def test_reopen_touches_existing_row(directory, workspace_dir):
    first = directory.open(str(workspace_dir))
    second = directory.open(str(workspace_dir))

    assert second.id == first.id
    assert second.updated_at >= first.updated_at
    assert len(directory.list()) == 1


def test_list_orders_by_most_recent_use(directory, tmp_path):
    paths = []
    for name in ("one", "two", "three"):
        folder = tmp_path / name
        write_image(folder / "x.png")
        paths.append(str(folder))
        directory.open(str(folder))

    assert [w.name for w in directory.list()] == ["three", "two", "one"]

    directory.open(paths[0])
    assert [w.name for w in directory.list()] == ["one", "three", "two"]


def test_add_duplicate_path(directory, workspace_dir):
    directory.add("photos", str(workspace_dir))
    with pytest.raises(DuplicateWorkspaceError):
        directory.add("again", str(workspace_dir))


def test_add_rejects_missing_folder(directory, tmp_path):
    with pytest.raises(FileNotFoundError):
        directory.add("ghost", str(tmp_path / "ghost"))
    assert directory.list() == []


def test_open_invalid_path_leaves_catalog_untouched(directory, registry, tmp_path):
    with pytest.raises(FileNotFoundError):
        directory.open(str(tmp_path / "ghost"))
    assert directory.list() == []
    assert registry.workspace_engine is None


def test_remove_keeps_folder_and_store(directory, workspace_dir):
    workspace = directory.open(str(workspace_dir))
    directory.registry.close_workspace_store()

    directory.remove(workspace.id)

    assert directory.get(workspace.id) is None
    assert directory.get_by_path(str(workspace_dir)) is None
    assert (workspace_dir / "a.jpg").is_file()
    assert (workspace_dir / ".im_settings" / "workspace.db").is_file()


def test_remove_unknown_id_is_noop(directory):
    directory.remove(12345)
    assert directory.list() == []


def test_touch_unknown_id(directory):
    assert directory.touch(999) is None


def test_trailing_slash_opens_the_same_workspace(directory, workspace_dir):
    first = directory.open(str(workspace_dir))
    second = directory.open(str(workspace_dir) + "/")

    assert second.id == first.id
    assert [w.absolute_path for w in directory.list()] == [str(workspace_dir)]
    assert directory.get_by_path(str(workspace_dir) + "/").id == first.id


def test_relative_path_is_stored_absolute(directory, workspace_dir, monkeypatch):
    monkeypatch.chdir(workspace_dir.parent)
    workspace = directory.open("photos")
    assert workspace.absolute_path == str(workspace_dir)

    monkeypatch.chdir(workspace_dir)
    again = directory.open(".")
    assert again.id == workspace.id
    assert again.name == "photos"
