"""Tests for push event reconciliation."""

import pytest

from canvas_workspace.config import Session
from canvas_workspace.core.live.channel import LiveChannel
from canvas_workspace.core.live.notifications import NotificationCoalescer
from canvas_workspace.core.live.reconciler import (
    EVENT_SPECS,
    EventReconciler,
    Outcome,
    event_key,
    normalize_event_name,
)
from tests.unit.fakes import FakeReplica, FakeTransport, ManualClock, RecordingNotifier


@pytest.fixture
def replica() -> FakeReplica:
    return FakeReplica({"ctx-1", "ws-1"})


@pytest.fixture
def reconciler(
    replica: FakeReplica, notifier: RecordingNotifier, clock: ManualClock
) -> EventReconciler:
    return EventReconciler(
        replica, NotificationCoalescer(notifier, window=0.5, clock=clock), clock=clock
    )


def test_normalize_event_name() -> None:
    assert normalize_event_name("context.url.set") == "context:url:set"
    assert normalize_event_name("context:url:set") == "context:url:set"


def test_event_key_includes_document_target_and_operation() -> None:
    assert event_key("document:insert", "ctx-1", {}) == "document:insert:ctx-1"
    assert (
        event_key("document:insert", "ctx-1", {"documentIds": [3, 1], "operation": "link"})
        == "document:insert:ctx-1:docs:1,3:op:link"
    )
    assert event_key("document:update", "ctx-1", {"documentId": 7}) == "document:update:ctx-1:doc:7"


def test_structural_event_reloads_tree(reconciler: EventReconciler, replica: FakeReplica) -> None:
    assert reconciler.handle("context:tree:insert", {"contextId": "ctx-1"}) is Outcome.APPLIED
    assert replica.tree_reloads == 1


def test_dot_alias_is_same_event(reconciler: EventReconciler, replica: FakeReplica) -> None:
    reconciler.handle("context.tree.update", {"id": "ctx-1"})
    assert replica.tree_reloads == 1


def test_duplicate_within_window_applied_once(
    reconciler: EventReconciler, replica: FakeReplica, clock: ManualClock
) -> None:
    data = {"contextId": "ctx-1", "documentIds": [1, 2]}

    assert reconciler.handle("document:insert", data) is Outcome.APPLIED
    clock.advance(0.3)
    assert reconciler.handle("document:insert", dict(data)) is Outcome.DUPLICATE

    assert replica.document_reloads == 1
    assert reconciler.stats[Outcome.DUPLICATE] == 1


def test_same_event_after_window_applied_again(
    reconciler: EventReconciler, replica: FakeReplica, clock: ManualClock
) -> None:
    reconciler.handle("context:tree:remove", {"contextId": "ctx-1"})
    clock.advance(1.5)
    reconciler.handle("context:tree:remove", {"contextId": "ctx-1"})

    assert replica.tree_reloads == 2


def test_different_documents_are_not_duplicates(
    reconciler: EventReconciler, replica: FakeReplica
) -> None:
    reconciler.handle("document:remove", {"contextId": "ctx-1", "documentId": 1})
    reconciler.handle("document:remove", {"contextId": "ctx-1", "documentId": 2})

    assert replica.document_reloads == 2


def test_scalar_burst_latest_payload_wins(
    reconciler: EventReconciler,
    replica: FakeReplica,
    notifier: RecordingNotifier,
    clock: ManualClock,
) -> None:
    event = "workspace:status:changed"
    first = reconciler.handle(event, {"workspaceId": "ws-1", "status": "inactive"})
    clock.advance(0.1)
    second = reconciler.handle(event, {"workspaceId": "ws-1", "status": "active"})

    assert (first, second) == (Outcome.APPLIED, Outcome.SUPERSEDED)
    assert replica.entities["ws-1"]["status"] == "active"
    assert reconciler.stats[Outcome.APPLIED] == 1
    assert notifier.titles == ["Workspace Status"]


def test_identical_scalar_repeat_is_duplicate(
    reconciler: EventReconciler, replica: FakeReplica
) -> None:
    data = {"id": "ctx-1", "url": "universe://a"}
    reconciler.handle("context:url:set", data)
    assert reconciler.handle("context.url.set", dict(data)) is Outcome.DUPLICATE
    assert replica.entities["ctx-1"]["url"] == "universe://a"
    assert replica.document_reloads == 1


def test_updated_event_patches_unwrapped_fields(
    reconciler: EventReconciler, replica: FakeReplica
) -> None:
    reconciler.handle("context:updated", {"context": {"id": "ctx-1", "url": "u://x", "name": "n"}})
    assert replica.entities["ctx-1"] == {"id": "ctx-1", "url": "u://x", "name": "n"}


@pytest.mark.parametrize(
    ("event", "data"),
    [
        ("context:tree:insert", None),
        ("context:tree:insert", ["ctx-1"]),
        ("context:tree:insert", {"unrelated": 1}),
        ("context:updated", {"id": "ctx-1"}),
        ("context:url:set", {"id": "ctx-1"}),
        ("workspace:status:changed", {"workspaceId": "ws-1"}),
    ],
)
def test_malformed_events_dropped_without_state_change(
    reconciler: EventReconciler, replica: FakeReplica, event: str, data: object
) -> None:
    before = {k: dict(v) for k, v in replica.entities.items()}

    assert reconciler.handle(event, data) is Outcome.DROPPED

    assert replica.entities == before
    assert replica.tree_reloads == 0


def test_unknown_event_ignored(reconciler: EventReconciler) -> None:
    assert reconciler.handle("context:frobnicated", {"id": "ctx-1"}) is Outcome.IGNORED


def test_creation_events_are_not_routed(
    reconciler: EventReconciler, replica: FakeReplica
) -> None:
    assert "context:created" not in EVENT_SPECS
    assert "workspace:created" not in EVENT_SPECS
    assert reconciler.handle("context:created", {"context": {"id": "ctx-new"}}) is Outcome.IGNORED
    assert replica.tree_reloads == 0


def test_event_for_untracked_entity_ignored(
    reconciler: EventReconciler, replica: FakeReplica
) -> None:
    assert reconciler.handle("context:tree:insert", {"contextId": "other"}) is Outcome.IGNORED
    assert reconciler.handle("context:locked", {"id": "other"}) is Outcome.IGNORED
    assert replica.tree_reloads == 0


def test_removal_drops_entity_and_notifies(
    reconciler: EventReconciler, replica: FakeReplica, notifier: RecordingNotifier
) -> None:
    reconciler.handle("context:deleted", {"id": "ctx-1"})

    assert replica.dropped == ["ctx-1"]
    assert notifier.notifications[0].variant == "destructive"


def test_acl_notifications_need_named_user(
    reconciler: EventReconciler, notifier: RecordingNotifier
) -> None:
    reconciler.handle("context:acl:updated", {"id": "ctx-1", "acl": {}})
    reconciler.handle(
        "context:acl:revoked", {"id": "ctx-1", "acl": {}, "revokedFromUserId": "bob"}
    )

    assert notifier.titles == ["Access Revoked"]


def test_replica_errors_are_dropped_not_raised(
    reconciler: EventReconciler, replica: FakeReplica
) -> None:
    def boom() -> None:
        msg = "refresh exploded"
        raise RuntimeError(msg)

    replica.reload_tree = boom  # type: ignore[method-assign]

    assert reconciler.handle("context:tree:update", {"id": "ctx-1"}) is Outcome.DROPPED


def test_dedup_map_evicts_stale_entries(replica: FakeReplica, clock: ManualClock) -> None:
    reconciler = EventReconciler(
        replica, NotificationCoalescer(RecordingNotifier()), clock=clock, evict_threshold=3
    )
    for i in range(3):
        reconciler.handle("document:update", {"contextId": "ctx-1", "documentId": i})
    clock.advance(5)
    reconciler.handle("document:update", {"contextId": "ctx-1", "documentId": 99})

    assert list(reconciler._seen) == ["document:update:ctx-1:doc:99"]


def test_attach_routes_both_notations(
    reconciler: EventReconciler, replica: FakeReplica
) -> None:
    transport = FakeTransport()
    channel = LiveChannel(transport, Session("http://h/rest/v2", "t", "ws://h/ws"))
    reconciler.attach(channel, "context:ctx-1")
    channel.connect()

    transport.push("context.tree.insert", {"contextId": "ctx-1"})
    transport.push("context:tree:insert", {"contextId": "ctx-1"})
    channel.poll()
    channel.poll()

    assert replica.tree_reloads == 1
    assert reconciler.stats[Outcome.DUPLICATE] == 1
    assert transport.sent == [{"event": "subscribe", "data": {"channel": "context:ctx-1"}}]

    reconciler.detach(channel, "context:ctx-1")
    transport.push("context:tree:remove", {"contextId": "ctx-1"})
    channel.poll()
    assert replica.tree_reloads == 1
