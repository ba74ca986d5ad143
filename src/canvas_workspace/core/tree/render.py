"""Render layer trees and document pages as indented text."""

import io

from canvas_workspace.core.tree.resolver import resolve, sanitize_path
from canvas_workspace.models.node import DocumentPage, Layer, LayerInfo, Tree


def render_tree(
    tree: Tree,
    *,
    path: str = "/",
    max_depth: int | None = None,
    selected: str | None = None,
    show_ids: bool = False,
) -> str:
    """Render the subtree at ``path`` as an indented bullet list.

    Args:
        tree: Snapshot to render.
        path: Start node; its descendants are rendered below it.
        max_depth: Max levels below the start node to include (None = unlimited).
        selected: Path to mark with ``*``.
        show_ids: Append each layer id.

    Returns:
        One line per node, four spaces of indent per level.
    """
    start = resolve(tree, path)
    start_path = sanitize_path(path)
    selected = sanitize_path(selected) if selected is not None else None

    out = io.StringIO()
    _render_node(out, start, start_path, 0, max_depth, selected, show_ids)
    return out.getvalue()


def _render_node(
    out: io.StringIO,
    node: Layer,
    node_path: str,
    depth: int,
    max_depth: int | None,
    selected: str | None,
    show_ids: bool,
) -> None:
    indent = "    " * depth
    marker = "* " if node_path == selected else "- "
    label = node.name if node_path != "/" else "/"
    if show_ids:
        label += f" [{node.id}]"
    out.write(f"{indent}{marker}{label}\n")

    if not node.children:
        return
    # Truncation indicator when children are cut off by max_depth
    if max_depth is not None and depth >= max_depth:
        count = len(node.children)
        noun = "child" if count == 1 else "children"
        out.write(f"{indent}    - ... ({count} {noun})\n")
        return
    for child in node.children:
        child_path = f"{node_path.rstrip('/')}/{child.name}"
        _render_node(out, child, child_path, depth + 1, max_depth, selected, show_ids)


def render_layers(layers: tuple[LayerInfo, ...]) -> str:
    """One line per layer: name, id, and lock state."""
    out = io.StringIO()
    for layer in layers:
        line = f"{layer.name}\t{layer.id}"
        if layer.locked_by:
            line += "\tlocked by " + ", ".join(layer.locked_by)
        elif layer.locked:
            line += "\tlocked"
        out.write(line + "\n")
    return out.getvalue()


def render_documents(page: DocumentPage) -> str:
    out = io.StringIO()
    for doc in page.documents:
        title = doc.get("title") or doc.get("name") or doc.get("url") or ""
        out.write(f"{doc.get('id')}\t{title}\n")
    start = (page.page - 1) * page.page_size
    shown = len(page.documents)
    if shown:
        out.write(f"({start + 1}-{start + shown} of {page.total_count})\n")
    else:
        out.write(f"(0 of {page.total_count})\n")
    return out.getvalue()
