"""
Custom exceptions for the workspace data layer.

Host filesystem failures are not wrapped: they surface as the built-in
``OSError`` family raised by the host service.
"""


class WorkspaceError(Exception):
    """Base exception for all workspace data layer errors."""
    pass


class WorkspaceNotInitializedError(WorkspaceError):
    """Raised when the workspace store is used before it is opened."""

    def __init__(self, message: str = "Workspace database not initialized"):
        super().__init__(message)


class StoreUnavailableError(WorkspaceError):
    """Raised when the catalog store cannot be (re)initialized."""
    pass


class ValidationError(WorkspaceError):
    """Raised when input is rejected before any write."""
    pass


class ConnectionExistsError(ValidationError):
    """Raised when a connection between two images already exists."""
    pass


class DuplicateWorkspaceError(ValidationError):
    """Raised when a workspace with the same absolute path is registered."""
    pass


class PathOutsideWorkspaceError(ValidationError):
    """Raised when a relative path resolves outside the workspace root."""
    pass


class WorkspaceStateError(WorkspaceError):
    """Raised when an operation needs a ready workspace and none is open."""

    def __init__(self, message: str = "No workspace available"):
        super().__init__(message)
