"""Protocols for dependency injection in the workspace replica."""

from typing import Any, Protocol, runtime_checkable

from canvas_workspace.models.node import Notification


@runtime_checkable
class ApiProtocol(Protocol):
    """Protocol for Canvas REST clients."""

    def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | list[tuple[str, Any]] | None = None,
        body: Any = None,
    ) -> dict[str, Any]:
        """Invoke an endpoint and return the JSON response envelope."""
        ...


@runtime_checkable
class TransportProtocol(Protocol):
    """Protocol for push-event transports used by the live channel."""

    def connect(self, url: str, token: str) -> None:
        """Open the connection; raise ``OSError`` or ``ConnectionError`` on failure."""
        ...

    def send(self, message: dict[str, Any]) -> None:
        """Send one JSON message."""
        ...

    def receive(self, timeout: float | None = None) -> dict[str, Any] | None:
        """Return the next message, or None if nothing arrived within ``timeout``.

        Raises ``ConnectionError`` when the connection is lost.
        """
        ...

    def close(self) -> None:
        """Close the connection. Safe to call when already closed."""
        ...


@runtime_checkable
class NotifierProtocol(Protocol):
    """Protocol for showing notifications to the user."""

    def notify(self, notification: Notification) -> None:
        ...


@runtime_checkable
class ReplicaProtocol(Protocol):
    """State the event reconciler is allowed to touch."""

    def tracks(self, entity_id: str) -> bool:
        """True when the entity is the active root or is otherwise loaded."""
        ...

    def reload_tree(self) -> None:
        ...

    def reload_documents(self) -> None:
        ...

    def patch_entity(self, entity_id: str, fields: dict[str, Any]) -> bool:
        """Patch a loaded entity; return False when it is not loaded."""
        ...

    def drop_entity(self, entity_id: str) -> None:
        ...
