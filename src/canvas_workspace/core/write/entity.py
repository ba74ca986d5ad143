"""Mutations on the root entity itself rather than its tree."""

from typing import Any

from loguru import logger

from canvas_workspace.api import payload_of
from canvas_workspace.errors import InvalidOperationError
from canvas_workspace.models.node import RootKey, RootKind
from canvas_workspace.protocols import ApiProtocol


def _require(root_key: RootKey, kind: RootKind, action: str) -> None:
    if root_key.kind is not kind:
        msg = f"Cannot {action} a {root_key.kind.value}; only {kind.value}s support it"
        raise InvalidOperationError(msg)


def set_context_url(api: ApiProtocol, root_key: RootKey, url: str) -> str:
    """Point a context at ``url``. Returns the URL the server stored."""
    _require(root_key, RootKind.CONTEXT, "set the URL of")
    if not url.strip():
        msg = "Context URL cannot be empty"
        raise InvalidOperationError(msg)
    payload = payload_of(api.request("POST", f"{root_key.base_path}/url", body={"url": url}))
    stored = payload.get("url") if isinstance(payload, dict) else None
    logger.debug("Context {} URL set to {}", root_key.id, stored or url)
    return stored or url


def _set_running(api: ApiProtocol, root_key: RootKey, action: str) -> dict[str, Any]:
    _require(root_key, RootKind.WORKSPACE, action)
    payload = payload_of(api.request("POST", f"{root_key.base_path}/{action}"))
    if isinstance(payload, dict):
        payload = payload.get("workspace", payload)
    return dict(payload) if isinstance(payload, dict) else {}


def start_workspace(api: ApiProtocol, root_key: RootKey) -> dict[str, Any]:
    """Start a workspace; returns the updated workspace fields."""
    return _set_running(api, root_key, "start")


def stop_workspace(api: ApiProtocol, root_key: RootKey) -> dict[str, Any]:
    return _set_running(api, root_key, "stop")
