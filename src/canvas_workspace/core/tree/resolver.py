"""Path resolution over a tree snapshot: path -> node, node id -> path."""

import re
from collections.abc import Iterator

from canvas_workspace.errors import NotFoundError
from canvas_workspace.models.node import Layer, Tree

ROOT_PATH = "/"


def sanitize_path(path: str) -> str:
    """Collapse duplicate slashes, force a leading slash, drop a trailing one. Empty is root."""
    sanitized = re.sub(r"/+", "/", path).rstrip("/")
    if not sanitized:
        return ROOT_PATH
    return sanitized if sanitized.startswith("/") else "/" + sanitized


def split_path(path: str) -> list[str]:
    """Path segments, ignoring empty ones (trailing or doubled slashes)."""
    return [part for part in path.split("/") if part]


def join_path(segments: list[str] | tuple[str, ...]) -> str:
    return "/" + "/".join(segments)


def parent_path(path: str) -> str:
    return join_path(split_path(path)[:-1])


def resolve_chain(tree: Tree, path: str) -> tuple[Layer, ...] | None:
    """Walk from the root matching names; return root..target, or None if any segment misses."""
    node = tree.root
    chain = [node]
    for segment in split_path(path):
        for child in node.children:
            if child.name == segment:
                node = child
                break
        else:
            return None
        chain.append(node)
    return tuple(chain)


def resolve(tree: Tree, path: str) -> Layer:
    """Resolve a path to its node. ``/`` is always the root.

    Raises:
        NotFoundError: when any segment does not resolve; there is no partial result.
    """
    chain = resolve_chain(tree, path)
    if chain is None:
        msg = f"Path {path!r} not found in {tree.root_key}"
        raise NotFoundError(msg)
    return chain[-1]


def iter_layers(tree: Tree) -> Iterator[tuple[str, Layer]]:
    """Yield ``(path, node)`` for every node, pre-order, root first."""
    stack: list[tuple[tuple[str, ...], Layer]] = [((), tree.root)]
    while stack:
        segments, node = stack.pop()
        yield join_path(segments), node
        stack.extend(((*segments, child.name), child) for child in reversed(node.children))


def find_layer(tree: Tree, node_id: str) -> Layer | None:
    for _path, node in iter_layers(tree):
        if node.id == node_id:
            return node
    return None


def canonical_path(tree: Tree, node_id: str) -> str:
    """Path of the first pre-order occurrence of ``node_id``.

    A shared layer may appear at several paths; the first one in display order wins.

    Raises:
        NotFoundError: when the id is not in the snapshot.
    """
    for path, node in iter_layers(tree):
        if node.id == node_id:
            return path
    msg = f"Layer {node_id!r} not found in {tree.root_key}"
    raise NotFoundError(msg)


def remap_renamed(tree: Tree, path: str, renamed_id: str, new_name: str) -> str | None:
    """Rewrite ``path`` for a rename of ``renamed_id``, using the pre-rename snapshot.

    Returns None when ``path`` does not pass through the renamed node.
    """
    chain = resolve_chain(tree, path)
    if chain is None:
        return None
    segments = [node.name for node in chain[1:]]
    changed = False
    for index, node in enumerate(chain[1:]):
        if node.id == renamed_id:
            segments[index] = new_name
            changed = True
    return join_path(segments) if changed else None


def follow_path(old_tree: Tree, new_tree: Tree, path: str) -> str:
    """Recompute ``path`` in ``new_tree`` by node id after a structural change.

    Keeps ``path`` when it still reaches the same node, otherwise relocates the node
    by id, otherwise falls back to the nearest surviving ancestor, finally the root.
    """
    chain = resolve_chain(old_tree, path)
    if chain is None:
        return path if resolve_chain(new_tree, path) is not None else ROOT_PATH

    current = resolve_chain(new_tree, path)
    if current is not None and current[-1].id == chain[-1].id:
        return path

    for node in reversed(chain[1:]):
        try:
            return canonical_path(new_tree, node.id)
        except NotFoundError:
            continue
    return ROOT_PATH
