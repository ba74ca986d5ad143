"""Tests for the tree cache."""

import pytest

from canvas_workspace.core.tree.cache import TreeCache, fetch_layers, fetch_tree
from canvas_workspace.errors import NetworkError, WorkspaceError
from tests.unit.fakes import BASE, ROOT, FakeApi, envelope, tree_payload


def test_fetch_tree_builds_snapshot(api: FakeApi) -> None:
    tree = fetch_tree(api, ROOT)
    assert tree.root_key == ROOT
    assert tree.root.id == "root"
    assert [c.name for c in tree.root.children] == ["a", "work", "shared"]


def test_fetch_tree_rejects_missing_payload() -> None:
    api = FakeApi()
    api.add_response("GET", f"{BASE}/tree", envelope(None))
    with pytest.raises(WorkspaceError, match="Tree data not found"):
        fetch_tree(api, ROOT)


def test_fetch_layers_sorted_by_name(api: FakeApi) -> None:
    names = [layer.name for layer in fetch_layers(api, ROOT)]
    assert names == ["a", "b", "reports", "shared", "work"]


def test_reload_replaces_snapshot(api: FakeApi) -> None:
    cache = TreeCache(api)
    assert cache.get(ROOT) is None

    first = cache.reload(ROOT)
    api.add_response("GET", f"{BASE}/tree", envelope(tree_payload(**{"L-b": "c"})))
    second = cache.reload(ROOT)

    assert first is not second
    assert cache.get(ROOT) is second
    assert first.root.children[0].children[0].name == "b"
    assert len(cache.layers(ROOT)) == 5


def test_failed_reload_keeps_last_snapshot(api: FakeApi) -> None:
    cache = TreeCache(api)
    good = cache.reload(ROOT)
    api.add_error("GET", f"{BASE}/tree", NetworkError("offline"))

    with pytest.raises(NetworkError):
        cache.reload_tree(ROOT)

    assert cache.get(ROOT) is good


def test_invalidate_drops_root(api: FakeApi) -> None:
    cache = TreeCache(api)
    cache.reload(ROOT)
    cache.invalidate(ROOT)
    assert cache.get(ROOT) is None
    assert cache.layers(ROOT) == ()
