"""Shared test fixtures."""

import pytest

from canvas_workspace.models.node import Layer, Tree
from tests.unit.fakes import (
    BASE,
    ROOT,
    SAMPLE_DOCUMENTS,
    SAMPLE_LAYERS,
    SAMPLE_TREE,
    FakeApi,
    ManualClock,
    RecordingNotifier,
    envelope,
)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def sample_tree() -> Tree:
    return Tree(root_key=ROOT, root=Layer.from_payload(SAMPLE_TREE))


@pytest.fixture
def api() -> FakeApi:
    """FakeApi serving the sample workspace."""
    fake = FakeApi()
    fake.add_response("GET", BASE, envelope({"id": "ws-1", "name": "universe", "status": "active"}))
    fake.add_response("GET", f"{BASE}/tree", envelope(SAMPLE_TREE))
    fake.add_response("GET", f"{BASE}/layers", envelope(SAMPLE_LAYERS))
    fake.add_response(
        "GET", f"{BASE}/documents", envelope(SAMPLE_DOCUMENTS, totalCount=len(SAMPLE_DOCUMENTS))
    )
    return fake


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
