"""Error taxonomy for workspace tree operations."""


class WorkspaceError(Exception):
    """Base class for every failure surfaced to the caller."""


class NotFoundError(WorkspaceError):
    """A path, node or layer does not exist."""


class ConflictError(WorkspaceError):
    """The operation conflicts with the current tree (e.g. non-empty node removed)."""


class NetworkError(WorkspaceError):
    """Transport failure or timeout talking to the server."""


class InvalidOperationError(WorkspaceError):
    """Client-side precondition failed; no remote call was made."""


class ApiError(WorkspaceError):
    """The server rejected a request with a status we do not map."""

    def __init__(self, message: str, *, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code
