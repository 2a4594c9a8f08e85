"""Application configuration."""
import os
from pathlib import Path

# Configuration
APP_DIR = Path(__file__).resolve().parent
CATALOG_DB_PATH = Path(
    os.environ.get("IMAGE_WORKSPACES_CATALOG", str(APP_DIR / "catalog.db"))
)

# Per-workspace layout: <workspace>/.im_settings/workspace.db
SETTINGS_DIRNAME = ".im_settings"
WORKSPACE_DB_NAME = "workspace.db"

DEFAULT_EXTS = "jpg,jpeg,png,gif,bmp,webp,tiff,tif,svg,ico"
ALLOWED_EXTS = {
    ext.strip().lower().lstrip(".")
    for ext in os.environ.get("IMAGE_WORKSPACES_EXTS", DEFAULT_EXTS).split(",")
    if ext.strip()
}
EXCLUDED_DIRS = {SETTINGS_DIRNAME, ".git", "__pycache__"}

LOG_LEVEL = os.environ.get("IMAGE_WORKSPACES_LOG_LEVEL", "INFO").upper()
HOST = os.environ.get("IMAGE_WORKSPACES_HOST", "127.0.0.1")
PORT = int(os.environ.get("IMAGE_WORKSPACES_PORT", "8001"))
