"""
Image Workspaces – local image organiser (FastAPI + SQLite)

Quick start
-----------
1) python -m venv .venv && source .venv/bin/activate  # or .venv\\Scripts\\activate on Windows
2) pip install -e .
3) python app.py  # creates catalog.db next to this file
4) POST /workspaces/open {"path": "/path/to/folder"} → GET /images

Notes
-----
• The list of known workspaces lives in ./catalog.db (IMAGE_WORKSPACES_CATALOG overrides it).
• Each workspace keeps its own store in <folder>/.im_settings/workspace.db.
• Scanning is a diff against the stored rows, so image ids survive rescans.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from config import HOST, LOG_LEVEL, PORT
from errors import (
    ConnectionExistsError,
    DuplicateWorkspaceError,
    StoreUnavailableError,
    ValidationError,
    WorkspaceError,
    WorkspaceNotInitializedError,
    WorkspaceStateError,
)
from routes import (
    assign_tag,
    close_workspace,
    connection_exists,
    connection_graph,
    connection_stats,
    create_connection,
    create_tag,
    delete_image,
    delete_tag,
    gallery,
    get_tags,
    image_by_path,
    image_connections,
    image_data,
    image_tags,
    list_connections,
    list_images,
    list_workspaces,
    move_image,
    open_workspace,
    remove_connection,
    remove_tag,
    remove_workspace,
    rename_image,
    scan_images,
    search_tags,
    tag_exists,
    update_tag,
    workspace_status,
)
from state import WorkspaceState

logger = logging.getLogger(__name__)


def error_status(exc: WorkspaceError) -> int:
    if isinstance(exc, (ConnectionExistsError, DuplicateWorkspaceError)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, (WorkspaceNotInitializedError, WorkspaceStateError)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, StoreUnavailableError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def workspace_exception_handler(request: Request, exc: WorkspaceError):
    """Handle workspace data layer exceptions."""
    logger.warning(
        "Workspace exception on %s %s: %s: %s",
        request.method, request.url.path, type(exc).__name__, exc,
    )
    return JSONResponse(
        status_code=error_status(exc),
        content={"detail": str(exc), "type": type(exc).__name__},
    )


async def os_error_handler(request: Request, exc: OSError):
    """Host filesystem failures: missing files are 404, the rest are 400."""
    code = status.HTTP_404_NOT_FOUND if isinstance(exc, FileNotFoundError) else status.HTTP_400_BAD_REQUEST
    logger.warning("Filesystem error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc), "type": type(exc).__name__})


def create_app(state: Optional[WorkspaceState] = None) -> FastAPI:
    """Build the API around ``state`` (a default one on the configured catalog if omitted)."""
    workspace_state = state or WorkspaceState.create()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not workspace_state.initialized:
            workspace_state.initialize()
        yield
        workspace_state.close_workspace()

    app = FastAPI(title="Image Workspaces", lifespan=lifespan)
    app.state.workspace = workspace_state

    app.add_exception_handler(WorkspaceError, workspace_exception_handler)
    app.add_exception_handler(OSError, os_error_handler)

    # Workspaces
    app.get("/workspace")(workspace_status)
    app.get("/workspaces")(list_workspaces)
    app.post("/workspaces/open")(open_workspace)
    app.post("/workspaces/close")(close_workspace)
    app.delete("/workspaces/{workspace_id}")(remove_workspace)

    # Images - fixed paths MUST come before {image_id} routes
    app.get("/images")(list_images)
    app.post("/images/scan")(scan_images)
    app.get("/images/by-path")(image_by_path)
    app.get("/images/data")(image_data)
    app.post("/images/move")(move_image)
    app.post("/images/rename")(rename_image)
    app.post("/images/delete")(delete_image)
    app.get("/gallery")(gallery)
    app.get("/images/{image_id}/tags")(image_tags)
    app.post("/images/{image_id}/tags")(assign_tag)
    app.delete("/images/{image_id}/tags/{tag_id}")(remove_tag)
    app.get("/images/{image_id}/connections")(image_connections)

    # Tags
    app.get("/tags")(get_tags)
    app.get("/tags/search")(search_tags)
    app.get("/tags/exists")(tag_exists)
    app.post("/tags")(create_tag)
    app.patch("/tags/{tag_id}")(update_tag)
    app.delete("/tags/{tag_id}")(delete_tag)

    # Connections
    app.get("/connections")(list_connections)
    app.post("/connections")(create_connection)
    app.post("/connections/remove")(remove_connection)
    app.get("/connections/exists")(connection_exists)
    app.get("/connections/stats")(connection_stats)
    app.get("/connections/graph")(connection_graph)

    return app


logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()


if __name__ == "__main__":
    # Allow `python app.py 8000`
    port = int(sys.argv[1]) if len(sys.argv) > 1 else PORT
    print(f"→ Open http://localhost:{port}/docs")
    import uvicorn

    uvicorn.run("app:app", host=HOST, port=port, reload=True)
