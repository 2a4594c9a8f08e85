"""FastAPI routes for image workspaces.

Thin JSON handlers over ``WorkspaceState``; domain errors are turned into
HTTP responses by the exception handlers registered in ``app.py``.
"""
from typing import List, Optional

from fastapi import Depends, HTTPException, Query, Request

from models import (
    ConnectionRequest,
    DeleteImageRequest,
    ImageTagRequest,
    MoveImageRequest,
    OpenWorkspaceRequest,
    RenameImageRequest,
    TagCreate,
    TagUpdate,
)
from state import FilterMode, WorkspaceState


def get_state(request: Request) -> WorkspaceState:
    return request.app.state.workspace


# -------------------------------
# Workspaces
# -------------------------------
def workspace_status(state: WorkspaceState = Depends(get_state)):
    """Current lifecycle phase and open workspace."""
    return {
        "phase": state.phase.value,
        "workspace": state.current_workspace,
        "error": state.error,
    }


def list_workspaces(state: WorkspaceState = Depends(get_state)):
    """Recent workspaces, most recently opened first."""
    return state.refresh_workspaces()


def open_workspace(body: OpenWorkspaceRequest, state: WorkspaceState = Depends(get_state)):
    return state.open_workspace(body.path)


def close_workspace(state: WorkspaceState = Depends(get_state)):
    state.close_workspace()
    return {"success": True}


def remove_workspace(workspace_id: int, state: WorkspaceState = Depends(get_state)):
    state.remove_workspace(workspace_id)
    return {"success": True}


# -------------------------------
# Images
# -------------------------------
def list_images(state: WorkspaceState = Depends(get_state)):
    return state.refresh_images()


def scan_images(state: WorkspaceState = Depends(get_state)):
    images = state.scan_images()
    result = state.catalog.last_result
    return {"images": images, "stats": result}


def image_by_path(path: str = Query(...), state: WorkspaceState = Depends(get_state)):
    image = state.catalog.get_by_path(path)
    if not image:
        raise HTTPException(404, "Image not found")
    return image


def move_image(body: MoveImageRequest, state: WorkspaceState = Depends(get_state)):
    return {"relative_path": state.move_image(body.old_path, body.new_path)}


def rename_image(body: RenameImageRequest, state: WorkspaceState = Depends(get_state)):
    new_path = state.rename_image(body.old_name, body.new_name, body.relative_path)
    return {"relative_path": new_path}


def delete_image(body: DeleteImageRequest, state: WorkspaceState = Depends(get_state)):
    state.delete_image(body.relative_path)
    return {"success": True}


def image_data(path: str = Query(...), state: WorkspaceState = Depends(get_state)):
    """Absolute path and data URL of an image file."""
    return {
        "absolute_path": state.get_image_absolute_path(path),
        "data_url": state.get_image_as_base64(path),
    }


def gallery(
    tag_ids: List[int] = Query([]),
    mode: FilterMode = Query(FilterMode.AND),
    state: WorkspaceState = Depends(get_state),
):
    """Images filtered by tags (AND/OR), each with its tags."""
    state.set_selected_tags(tag_ids)
    state.set_filter_mode(mode)
    return state.get_filtered_images()


def image_tags(image_id: int, state: WorkspaceState = Depends(get_state)):
    return state.get_tags_for_image(image_id)


def assign_tag(image_id: int, body: ImageTagRequest, state: WorkspaceState = Depends(get_state)):
    state.add_tag_to_image(image_id, body.tag_id)
    return state.get_tags_for_image(image_id)


def remove_tag(image_id: int, tag_id: int, state: WorkspaceState = Depends(get_state)):
    state.remove_tag_from_image(image_id, tag_id)
    return state.get_tags_for_image(image_id)


def image_connections(
    image_id: int,
    force_refresh: bool = Query(False),
    state: WorkspaceState = Depends(get_state),
):
    return state.get_connections_for_image(image_id, force_refresh=force_refresh)


# -------------------------------
# Tags
# -------------------------------
def get_tags(state: WorkspaceState = Depends(get_state)):
    """All tags with their image counts."""
    state.load_tags()
    if state.error:
        raise HTTPException(500, state.error)
    return state.tags_with_image_count


def search_tags(q: str = Query(""), state: WorkspaceState = Depends(get_state)):
    return state.search_tags(q)


def tag_exists(
    name: str = Query(...),
    exclude_id: Optional[int] = Query(None),
    state: WorkspaceState = Depends(get_state),
):
    return {"exists": state.tag_name_exists(name, exclude_id)}


def create_tag(body: TagCreate, state: WorkspaceState = Depends(get_state)):
    return state.create_tag(body.name, body.color)


def update_tag(tag_id: int, body: TagUpdate, state: WorkspaceState = Depends(get_state)):
    tag = state.update_tag(tag_id, body)
    if not tag:
        raise HTTPException(404, "Tag not found")
    return tag


def delete_tag(tag_id: int, state: WorkspaceState = Depends(get_state)):
    state.delete_tag(tag_id)
    return {"success": True}


# -------------------------------
# Connections
# -------------------------------
def list_connections(state: WorkspaceState = Depends(get_state)):
    return state.refresh_connections()


def create_connection(body: ConnectionRequest, state: WorkspaceState = Depends(get_state)):
    return state.create_connection(body.image_a_id, body.image_b_id)


def remove_connection(body: ConnectionRequest, state: WorkspaceState = Depends(get_state)):
    state.remove_connection(body.image_a_id, body.image_b_id)
    return {"success": True}


def connection_exists(
    image_a_id: int = Query(...),
    image_b_id: int = Query(...),
    state: WorkspaceState = Depends(get_state),
):
    return {"exists": state.connection_exists(image_a_id, image_b_id)}


def connection_stats(state: WorkspaceState = Depends(get_state)):
    return state.get_connection_stats()


def connection_graph(state: WorkspaceState = Depends(get_state)):
    return state.get_graph_data()
