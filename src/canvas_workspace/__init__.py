"""Client-side replica of a Canvas workspace tree: navigation, mutations, live sync."""

from canvas_workspace.api import CanvasApi
from canvas_workspace.config import Session, resolve_session
from canvas_workspace.errors import (
    ApiError,
    ConflictError,
    InvalidOperationError,
    NetworkError,
    NotFoundError,
    WorkspaceError,
)
from canvas_workspace.models.node import RootKey
from canvas_workspace.view import WorkspaceView

__all__ = [
    "ApiError",
    "CanvasApi",
    "ConflictError",
    "InvalidOperationError",
    "NetworkError",
    "NotFoundError",
    "RootKey",
    "Session",
    "WorkspaceError",
    "WorkspaceView",
    "resolve_session",
]
