"""Apply push events to the replica: validate, deduplicate, then reload or patch."""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from loguru import logger

from canvas_workspace.config import DEDUP_EVICT_THRESHOLD, EVENT_DEDUP_WINDOW
from canvas_workspace.core.live.notifications import NotificationCoalescer
from canvas_workspace.models.node import Notification
from canvas_workspace.protocols import ReplicaProtocol

if TYPE_CHECKING:
    from canvas_workspace.core.live.channel import LiveChannel


class EventKind(StrEnum):
    STRUCTURAL = "structural"  # topology changed: reload the tree
    REMOVAL = "removal"  # the entity itself is gone
    MEMBERSHIP = "membership"  # document associations changed: reload the page
    SCALAR = "scalar"  # field change: patch the loaded entity


class Outcome(StrEnum):
    APPLIED = "applied"
    SUPERSEDED = "superseded"
    DUPLICATE = "duplicate"
    DROPPED = "dropped"
    IGNORED = "ignored"


Patcher = Callable[[dict[str, Any]], dict[str, Any]]
Notifier = Callable[[dict[str, Any]], Notification | None]


@dataclass(frozen=True)
class EventSpec:
    kind: EventKind
    id_fields: tuple[str, ...] = ("id", "contextId")
    unwrap: str | None = None
    patch: Patcher | None = None
    notification: Notifier | None = None
    reload_documents: bool = False


def _context_fields(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k != "id"}


def _granted(data: dict[str, Any]) -> Notification | None:
    user, level = data.get("sharedWithUserId"), data.get("accessLevel")
    if not user or not level:
        return None
    return Notification("Access Granted", f"{user} was granted {level} access to this context.")


def _revoked(data: dict[str, Any]) -> Notification | None:
    user = data.get("revokedFromUserId")
    if not user:
        return None
    return Notification("Access Revoked", f"Access was revoked from {user} for this context.")


def _status(data: dict[str, Any]) -> Notification | None:
    return Notification("Workspace Status", f"Workspace is now {data['status']}.")


_WORKSPACE_IDS = ("workspaceId", "id")
_DOCUMENT_IDS = ("contextId", "workspaceId", "id")

# Creation events name a new root that a single-root view never tracks; list views handle them.
EVENT_SPECS: dict[str, EventSpec] = {
    "context:tree:insert": EventSpec(EventKind.STRUCTURAL),
    "context:tree:remove": EventSpec(EventKind.STRUCTURAL),
    "context:tree:update": EventSpec(EventKind.STRUCTURAL),
    "context:deleted": EventSpec(
        EventKind.REMOVAL,
        notification=lambda _d: Notification(
            "Context Deleted", "This context has been deleted.", "destructive"
        ),
    ),
    "workspace:deleted": EventSpec(
        EventKind.REMOVAL,
        _WORKSPACE_IDS,
        notification=lambda _d: Notification(
            "Workspace Deleted", "This workspace has been deleted.", "destructive"
        ),
    ),
    "document:insert": EventSpec(EventKind.MEMBERSHIP, _DOCUMENT_IDS),
    "document:update": EventSpec(EventKind.MEMBERSHIP, _DOCUMENT_IDS),
    "document:remove": EventSpec(EventKind.MEMBERSHIP, _DOCUMENT_IDS),
    "document:delete": EventSpec(EventKind.MEMBERSHIP, _DOCUMENT_IDS),
    "context:updated": EventSpec(
        EventKind.SCALAR, unwrap="context", patch=_context_fields, reload_documents=True
    ),
    "context:url:set": EventSpec(
        EventKind.SCALAR, patch=lambda d: {"url": d["url"]}, reload_documents=True
    ),
    "context:url:changed": EventSpec(
        EventKind.SCALAR, patch=lambda d: {"url": d["url"]}, reload_documents=True
    ),
    "context:locked": EventSpec(EventKind.SCALAR, patch=lambda d: {"locked": True}),
    "context:unlocked": EventSpec(EventKind.SCALAR, patch=lambda d: {"locked": False}),
    "context:lock:changed": EventSpec(
        EventKind.SCALAR, patch=lambda d: {"locked": bool(d["locked"])}
    ),
    "context:acl:updated": EventSpec(
        EventKind.SCALAR, patch=lambda d: {"acl": d["acl"]}, notification=_granted
    ),
    "context:acl:revoked": EventSpec(
        EventKind.SCALAR, patch=lambda d: {"acl": d["acl"]}, notification=_revoked
    ),
    "workspace:status:changed": EventSpec(
        EventKind.SCALAR,
        _WORKSPACE_IDS,
        patch=lambda d: {"status": d["status"]},
        notification=_status,
    ),
}


def normalize_event_name(name: str) -> str:
    """``context.url.set`` and ``context:url:set`` are the same event."""
    return name.replace(".", ":")


def _sorted_ids(ids: list[Any]) -> list[Any]:
    try:
        return sorted(ids)
    except TypeError:
        return sorted(ids, key=str)


def event_key(event: str, entity_id: str, data: dict[str, Any]) -> str:
    """Dedup key: event type, entity, then any document target and operation."""
    key = f"{event}:{entity_id}"
    if data.get("documentId") is not None:
        key += f":doc:{data['documentId']}"
    document_ids = data.get("documentIds")
    if isinstance(document_ids, list) and document_ids:
        key += ":docs:" + ",".join(str(i) for i in _sorted_ids(document_ids))
    if data.get("operation"):
        key += f":op:{data['operation']}"
    return key


@dataclass
class ReconcileStats:
    counts: dict[Outcome, int] = field(default_factory=lambda: dict.fromkeys(Outcome, 0))

    def record(self, outcome: Outcome) -> Outcome:
        self.counts[outcome] += 1
        return outcome

    def __getitem__(self, outcome: Outcome) -> int:
        return self.counts[outcome]


class EventReconciler:
    """The only consumer that writes replica state in response to push events.

    Never raises into the channel: malformed events are logged and dropped.
    Dedup and notification state live as long as this instance and are evicted by age.
    """

    def __init__(
        self,
        replica: ReplicaProtocol,
        notifications: NotificationCoalescer,
        *,
        window: float = EVENT_DEDUP_WINDOW,
        evict_threshold: int = DEDUP_EVICT_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._replica = replica
        self._notifications = notifications
        self._window = window
        self._evict_threshold = evict_threshold
        self._clock = clock
        self._seen: dict[str, tuple[float, dict[str, Any]]] = {}
        self._handlers: dict[str, Callable[[Any], None]] = {}
        self.stats = ReconcileStats()

    def handle(self, event: str, data: Any) -> Outcome:
        event = normalize_event_name(event)
        spec = EVENT_SPECS.get(event)
        if spec is None:
            logger.debug("Ignoring unknown event {!r}", event)
            return self.stats.record(Outcome.IGNORED)

        if not isinstance(data, dict):
            logger.debug("Dropping {}: payload is not an object", event)
            return self.stats.record(Outcome.DROPPED)
        body = data.get(spec.unwrap) if spec.unwrap else data
        if not isinstance(body, dict):
            logger.debug("Dropping {}: missing {!r} object", event, spec.unwrap)
            return self.stats.record(Outcome.DROPPED)
        entity_id = next((str(body[f]) for f in spec.id_fields if body.get(f)), None)
        if entity_id is None:
            logger.debug("Dropping {}: none of {} present", event, spec.id_fields)
            return self.stats.record(Outcome.DROPPED)

        key = event_key(event, entity_id, data)
        now = self._clock()
        seen = self._seen.get(key)
        if seen is not None and now - seen[0] < self._window:
            if spec.kind is EventKind.SCALAR and seen[1] != data:
                self._seen[key] = (seen[0], data)
                try:
                    self._patch(spec, entity_id, body)
                except (KeyError, TypeError, ValueError):
                    logger.debug("Dropping superseding {}: malformed fields", key)
                    return self.stats.record(Outcome.DROPPED)
                logger.debug("Superseded {} with a newer payload", key)
                return self.stats.record(Outcome.SUPERSEDED)
            logger.debug("Skipping duplicate event {} ({:.0f}ms ago)", key, (now - seen[0]) * 1000)
            return self.stats.record(Outcome.DUPLICATE)

        self._seen[key] = (now, data)
        self._evict(now)

        try:
            return self.stats.record(self._apply(spec, event, entity_id, body))
        except (KeyError, TypeError, ValueError):
            logger.warning("Dropping {}: malformed payload", event)
            return self.stats.record(Outcome.DROPPED)
        except Exception:
            logger.exception("Applying {} failed", event)
            return self.stats.record(Outcome.DROPPED)

    def _evict(self, now: float) -> None:
        if len(self._seen) <= self._evict_threshold:
            return
        cutoff = now - self._window * 2
        self._seen = {k: v for k, v in self._seen.items() if v[0] >= cutoff}

    def _patch(self, spec: EventSpec, entity_id: str, body: dict[str, Any]) -> bool:
        if spec.patch is None:
            return False
        return self._replica.patch_entity(entity_id, spec.patch(body))

    def _apply(self, spec: EventSpec, event: str, entity_id: str, body: dict[str, Any]) -> Outcome:
        if spec.kind is EventKind.SCALAR:
            if not self._patch(spec, entity_id, body):
                return Outcome.IGNORED
            if spec.reload_documents:
                self._replica.reload_documents()
        elif not self._replica.tracks(entity_id):
            return Outcome.IGNORED
        elif spec.kind is EventKind.STRUCTURAL:
            self._replica.reload_tree()
        elif spec.kind is EventKind.MEMBERSHIP:
            self._replica.reload_documents()
        elif spec.kind is EventKind.REMOVAL:
            self._replica.drop_entity(entity_id)

        logger.debug("Applied {} for {}", event, entity_id)
        if spec.notification is not None:
            notification = spec.notification(body)
            if notification is not None:
                self._notifications.notify(notification)
        return Outcome.APPLIED

    # --- Channel wiring ---

    def attach(self, channel: "LiveChannel", topic: str) -> None:
        """Subscribe to ``topic`` and route every known event (both notations) here."""
        for name in EVENT_SPECS:
            for alias in {name, name.replace(":", ".")}:
                handler = self._handlers.setdefault(alias, self._make_handler(alias))
                channel.on(alias, handler)
        channel.subscribe(topic)

    def detach(self, channel: "LiveChannel", topic: str) -> None:
        channel.unsubscribe(topic)
        for alias, handler in self._handlers.items():
            channel.off(alias, handler)

    def _make_handler(self, name: str) -> Callable[[Any], None]:
        def handler(data: Any) -> None:
            self.handle(name, data)

        return handler
