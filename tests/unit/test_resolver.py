"""Tests for path resolution over tree snapshots."""

import pytest

from canvas_workspace.core.tree.resolver import (
    canonical_path,
    find_layer,
    follow_path,
    iter_layers,
    parent_path,
    remap_renamed,
    resolve,
    resolve_chain,
    sanitize_path,
)
from canvas_workspace.errors import NotFoundError
from canvas_workspace.models.node import Layer, Tree
from tests.unit.fakes import ROOT, tree_payload


def _tree(payload: dict) -> Tree:
    return Tree(root_key=ROOT, root=Layer.from_payload(payload))


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("", "/"),
        ("/", "/"),
        ("///", "/"),
        ("a/b", "/a/b"),
        ("//a///b", "/a/b"),
        ("/a/b/", "/a/b"),
    ],
)
def test_sanitize_path(raw: str, expected: str) -> None:
    assert sanitize_path(raw) == expected


def test_parent_path() -> None:
    assert parent_path("/a/b") == "/a"
    assert parent_path("/a") == "/"
    assert parent_path("/") == "/"


def test_resolve_root(sample_tree: Tree) -> None:
    assert resolve(sample_tree, "/").id == "root"


def test_resolve_ignores_trailing_slash(sample_tree: Tree) -> None:
    assert resolve(sample_tree, "/a/b/").id == resolve(sample_tree, "/a/b").id == "L-b"


def test_resolve_missing_segment_raises_without_partial_result(sample_tree: Tree) -> None:
    with pytest.raises(NotFoundError):
        resolve(sample_tree, "/a/missing/b")
    assert resolve_chain(sample_tree, "/a/missing") is None


def test_every_node_round_trips_through_its_path(sample_tree: Tree) -> None:
    for path, node in iter_layers(sample_tree):
        assert resolve(sample_tree, path).id == node.id


def test_iter_layers_is_pre_order(sample_tree: Tree) -> None:
    paths = [path for path, _node in iter_layers(sample_tree)]
    assert paths == ["/", "/a", "/a/b", "/a/shared", "/work", "/work/reports", "/shared"]


def test_iter_layers_deep_and_wide_tree() -> None:
    leaves = tuple(Layer(id=f"leaf-{i}", name=f"leaf-{i}") for i in range(500))
    node = Layer(id="bottom", name="bottom", children=leaves)
    for depth in range(2000):
        node = Layer(id=f"d{depth}", name=f"d{depth}", children=(node,))
    tree = Tree(root_key=ROOT, root=Layer(id="root", name="", children=(node,)))

    layers = list(iter_layers(tree))

    assert len(layers) == 1 + 2000 + 1 + 500
    assert layers[-1][1].id == "leaf-499"
    assert layers[-500][0].endswith("/bottom/leaf-0")


def test_canonical_path_of_shared_layer_is_first_occurrence(sample_tree: Tree) -> None:
    assert canonical_path(sample_tree, "L-shared") == "/a/shared"
    assert resolve(sample_tree, "/shared").id == "L-shared"


def test_canonical_path_unknown_id(sample_tree: Tree) -> None:
    with pytest.raises(NotFoundError):
        canonical_path(sample_tree, "nope")
    assert find_layer(sample_tree, "nope") is None


def test_remap_renamed_rewrites_segment(sample_tree: Tree) -> None:
    assert remap_renamed(sample_tree, "/a/b", "L-b", "c") == "/a/c"
    assert remap_renamed(sample_tree, "/a/b", "L-a", "x") == "/x/b"


def test_remap_renamed_unrelated_path(sample_tree: Tree) -> None:
    assert remap_renamed(sample_tree, "/work", "L-b", "c") is None
    assert remap_renamed(sample_tree, "/nowhere", "L-b", "c") is None


def test_follow_path_keeps_unchanged_selection(sample_tree: Tree) -> None:
    assert follow_path(sample_tree, sample_tree, "/work/reports") == "/work/reports"


def test_follow_path_tracks_moved_node_by_id(sample_tree: Tree) -> None:
    moved = tree_payload()
    reports = moved["children"][1]["children"].pop()
    moved["children"][0]["children"].append(reports)

    assert follow_path(sample_tree, _tree(moved), "/work/reports") == "/a/reports"


def test_follow_path_falls_back_to_surviving_ancestor(sample_tree: Tree) -> None:
    removed = tree_payload()
    removed["children"][0]["children"] = []

    assert follow_path(sample_tree, _tree(removed), "/a/b") == "/a"


def test_follow_path_falls_back_to_root(sample_tree: Tree) -> None:
    removed = tree_payload()
    removed["children"] = []

    assert follow_path(sample_tree, _tree(removed), "/a/b") == "/"
