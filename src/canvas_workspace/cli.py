"""CLI for browsing and editing a Canvas workspace tree."""

import json
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Annotated

import typer
from loguru import logger

from canvas_workspace.api import CanvasApi
from canvas_workspace.config import DEFAULT_PAGE_SIZE, Session, resolve_session
from canvas_workspace.core.address import from_address, to_address
from canvas_workspace.core.live.channel import LiveChannel
from canvas_workspace.core.live.transport import WebSocketTransport
from canvas_workspace.core.tree.render import render_documents, render_layers, render_tree
from canvas_workspace.errors import WorkspaceError
from canvas_workspace.logging_config import configure_logging
from canvas_workspace.models.node import FilterState, Notification, RootKey
from canvas_workspace.protocols import ApiProtocol
from canvas_workspace.view import ERROR_TITLE, WorkspaceView

app = typer.Typer(help="Canvas workspace: browse and edit the layer tree of a workspace.")

_DEFAULT_ROOT = os.environ.get("CANVAS_ROOT", "workspace:universe")

# Set by the callback from the global options.
_settings: dict[str, str | None] = {"api_url": None, "token": None}

RootOption = Annotated[
    str,
    typer.Option("--root", "-r", help="workspace:<name>, context:<id>, or a workspace name"),
]
RecursiveOption = Annotated[
    bool, typer.Option("--recursive", "-R", help="Include the whole subtree")
]


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    api_url: Annotated[
        str | None, typer.Option("--api-url", help="REST API base URL", envvar="CANVAS_API_URL")
    ] = None,
    token: Annotated[
        str | None, typer.Option("--token", help="API token", envvar="CANVAS_TOKEN")
    ] = None,
) -> None:
    configure_logging(verbose=verbose)
    _settings["api_url"] = api_url
    _settings["token"] = token


class _CliNotifier:
    """Prints notifications; errors are reported by :func:`_handle_errors`."""

    def notify(self, notification: Notification) -> None:
        if notification.title == ERROR_TITLE:
            return
        if notification.variant == "destructive":
            logger.warning("{}: {}", notification.title, notification.description)
        else:
            typer.echo(notification.description)


def _session() -> Session:
    try:
        return resolve_session(_settings["api_url"], _settings["token"])
    except RuntimeError as e:
        logger.error("{}", e)
        raise typer.Exit(1) from None


def _make_api(session: Session) -> ApiProtocol:
    return CanvasApi(session)


def _open_view(root: str, *, load: bool = True) -> WorkspaceView:
    view = WorkspaceView(_make_api(_session()), RootKey.parse(root), notifier=_CliNotifier())
    if load:
        with _handle_errors():
            view.load()
    return view


@contextmanager
def _handle_errors() -> Iterator[None]:
    try:
        yield
    except WorkspaceError as e:
        logger.error("{}", e)
        raise typer.Exit(1) from None


# --- Browsing ---


@app.command()
def tree(
    path: str = typer.Argument("/", help="Start path"),
    root: RootOption = _DEFAULT_ROOT,
    max_depth: Annotated[
        int | None,
        typer.Option("--max-depth", "-m", help="Max depth levels to render"),
    ] = None,
    ids: bool = typer.Option(False, "--ids", help="Show layer ids"),
) -> None:
    """Show the layer tree."""
    view = _open_view(root)
    if view.tree is None:
        logger.error("No tree loaded for {}", root)
        raise typer.Exit(1)
    with _handle_errors():
        typer.echo(render_tree(view.tree, path=path, max_depth=max_depth, show_ids=ids), nl=False)


@app.command()
def layers(root: RootOption = _DEFAULT_ROOT) -> None:
    """List all layers, sorted by name."""
    view = _open_view(root)
    typer.echo(f"{len(view.layers)} layers:\n")
    typer.echo(render_layers(view.layers), nl=False)


@app.command()
def ls(
    path: str = typer.Argument("/", help="Path to list documents under"),
    root: RootOption = _DEFAULT_ROOT,
    feature: Annotated[
        list[str] | None, typer.Option("--feature", "-f", help="Feature filter (repeatable)")
    ] = None,
    filter_: Annotated[
        list[str] | None, typer.Option("--filter", "-F", help="Extra filter (repeatable)")
    ] = None,
    page: int = typer.Option(1, "--page", "-p", help="Page number"),
    limit: int = typer.Option(DEFAULT_PAGE_SIZE, "--limit", "-n", help="Page size"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List documents visible under a path."""
    view = _open_view(root, load=False)
    with _handle_errors():
        view.pager.set_path(path)
        view.pager.set_filters(FilterState.of(feature or (), filter_ or ()))
        view.pager.set_page_size(limit)
        view.pager.set_page(page)
        result = view.pager.fetch()

    if output_json:
        data = {
            "documents": list(result.documents),
            "total": result.total_count,
            "page": result.page,
            "address": view.address,
        }
        typer.echo(json.dumps(data, indent=2))
    else:
        typer.echo(render_documents(result), nl=False)


@app.command()
def address(
    path: str = typer.Argument("/", help="Selected path"),
    root: RootOption = _DEFAULT_ROOT,
    feature: Annotated[
        list[str] | None, typer.Option("--feature", "-f", help="Feature filter (repeatable)")
    ] = None,
    filter_: Annotated[
        list[str] | None, typer.Option("--filter", "-F", help="Extra filter (repeatable)")
    ] = None,
    parse: Annotated[
        str | None, typer.Option("--parse", help="Decode an address instead of building one")
    ] = None,
) -> None:
    """Build (or decode) the shareable address for a path and filters."""
    if parse is not None:
        try:
            parsed = from_address(parse)
        except ValueError as e:
            logger.error("{}", e)
            raise typer.Exit(1) from None
        typer.echo(f"root: {parsed.root_key}")
        typer.echo(f"path: {parsed.path}")
        typer.echo(f"features: {', '.join(parsed.filters.features)}")
        typer.echo(f"filters: {', '.join(parsed.filters.filters)}")
        return
    key = RootKey.parse(root)
    typer.echo(to_address(key, path, FilterState.of(feature or (), filter_ or ())))


# --- Tree mutations ---


@app.command()
def insert(
    path: str = typer.Argument(..., help="Path to create"),
    root: RootOption = _DEFAULT_ROOT,
    auto_create: bool = typer.Option(
        True, "--auto-create/--no-auto-create", help="Create missing parent layers"
    ),
) -> None:
    """Create a path."""
    view = _open_view(root)
    with _handle_errors():
        view.insert(path, auto_create_layers=auto_create)


@app.command()
def rm(
    path: str = typer.Argument(..., help="Path to remove"),
    root: RootOption = _DEFAULT_ROOT,
    recursive: RecursiveOption = False,
) -> None:
    """Remove a path."""
    view = _open_view(root)
    with _handle_errors():
        view.remove(path, recursive=recursive)


@app.command()
def mv(
    from_path: str = typer.Argument(..., help="Source path"),
    to_path: str = typer.Argument(..., help="Destination path"),
    root: RootOption = _DEFAULT_ROOT,
    recursive: RecursiveOption = False,
) -> None:
    """Move a path."""
    view = _open_view(root)
    with _handle_errors():
        view.move(from_path, to_path, recursive=recursive)


@app.command()
def cp(
    from_path: str = typer.Argument(..., help="Source path"),
    to_path: str = typer.Argument(..., help="Destination path"),
    root: RootOption = _DEFAULT_ROOT,
    recursive: RecursiveOption = False,
) -> None:
    """Copy a path."""
    view = _open_view(root)
    with _handle_errors():
        view.copy(from_path, to_path, recursive=recursive)


@app.command()
def rename(
    path: str = typer.Argument(..., help="Path of the layer to rename"),
    new_name: str = typer.Argument(..., help="New layer name"),
    root: RootOption = _DEFAULT_ROOT,
) -> None:
    """Rename the layer at a path."""
    view = _open_view(root)
    with _handle_errors():
        view.rename(path, new_name)


@app.command()
def merge(
    layer_id: str = typer.Argument(..., help="Source layer id"),
    targets: list[str] = typer.Argument(..., help="Target layer ids"),
    root: RootOption = _DEFAULT_ROOT,
) -> None:
    """Merge a layer into target layers."""
    view = _open_view(root)
    with _handle_errors():
        view.merge(layer_id, targets)


@app.command()
def subtract(
    layer_id: str = typer.Argument(..., help="Source layer id"),
    targets: list[str] = typer.Argument(..., help="Target layer ids"),
    root: RootOption = _DEFAULT_ROOT,
) -> None:
    """Subtract a layer from target layers."""
    view = _open_view(root)
    with _handle_errors():
        view.subtract(layer_id, targets)


@app.command(name="merge-up")
def merge_up(path: str = typer.Argument(...), root: RootOption = _DEFAULT_ROOT) -> None:
    """Merge a path into its ancestors."""
    view = _open_view(root)
    with _handle_errors():
        view.merge_up(path)


@app.command(name="merge-down")
def merge_down(path: str = typer.Argument(...), root: RootOption = _DEFAULT_ROOT) -> None:
    """Merge a path into its descendants."""
    view = _open_view(root)
    with _handle_errors():
        view.merge_down(path)


@app.command(name="subtract-up")
def subtract_up(path: str = typer.Argument(...), root: RootOption = _DEFAULT_ROOT) -> None:
    """Subtract a path from its ancestors."""
    view = _open_view(root)
    with _handle_errors():
        view.subtract_up(path)


@app.command(name="subtract-down")
def subtract_down(path: str = typer.Argument(...), root: RootOption = _DEFAULT_ROOT) -> None:
    """Subtract a path from its descendants."""
    view = _open_view(root)
    with _handle_errors():
        view.subtract_down(path)


# --- Layer administration ---


@app.command()
def lock(
    layer_id: str = typer.Argument(..., help="Layer id"),
    root: RootOption = _DEFAULT_ROOT,
    by: Annotated[str | None, typer.Option("--by", help="Lock owner (default: the root id)")] = None,
) -> None:
    """Lock a layer."""
    view = _open_view(root)
    with _handle_errors():
        view.lock_layer(layer_id, by)


@app.command()
def unlock(
    layer_id: str = typer.Argument(..., help="Layer id"),
    root: RootOption = _DEFAULT_ROOT,
    by: Annotated[str | None, typer.Option("--by", help="Lock owner (default: the root id)")] = None,
) -> None:
    """Unlock a layer."""
    view = _open_view(root)
    with _handle_errors():
        view.unlock_layer(layer_id, by)


@app.command()
def destroy(
    layer_id: str = typer.Argument(..., help="Layer id"),
    root: RootOption = _DEFAULT_ROOT,
) -> None:
    """Delete a layer everywhere it appears."""
    view = _open_view(root)
    with _handle_errors():
        view.destroy_layer(layer_id)


# --- Documents ---


@app.command()
def paste(
    document_ids: list[str] = typer.Argument(..., help="Document ids"),
    to_path: str = typer.Option(..., "--to", "-t", help="Target path"),
    from_path: str = typer.Option("/", "--from", help="Source path (used with --cut)"),
    root: RootOption = _DEFAULT_ROOT,
    cut: bool = typer.Option(False, "--cut", help="Move instead of copy"),
) -> None:
    """Link documents to a path; with --cut also unlink them from the source path."""
    view = _open_view(root, load=False)
    with _handle_errors():
        view.pager.set_path(from_path)
        if cut:
            view.cut_documents(document_ids)
        else:
            view.copy_documents(document_ids)
        view.paste(to_path)


@app.command()
def unlink(
    document_ids: list[str] = typer.Argument(..., help="Document ids"),
    path: str = typer.Option(..., "--path", "-p", help="Path to unlink from"),
    root: RootOption = _DEFAULT_ROOT,
) -> None:
    """Remove documents from a path; the documents themselves survive."""
    try:
        ids = [int(v) for v in document_ids]
    except ValueError:
        logger.error("Invalid document ID(s): {}", ", ".join(document_ids))
        raise typer.Exit(1) from None
    view = _open_view(root, load=False)
    with _handle_errors():
        view.remove_documents(ids, path)


@app.command(name="delete")
def delete_docs(
    document_ids: list[str] = typer.Argument(..., help="Document ids"),
    path: str = typer.Option("/", "--path", "-p", help="Path the documents are listed under"),
    root: RootOption = _DEFAULT_ROOT,
) -> None:
    """Permanently delete documents from the database."""
    try:
        ids = [int(v) for v in document_ids]
    except ValueError:
        logger.error("Invalid document ID(s): {}", ", ".join(document_ids))
        raise typer.Exit(1) from None
    view = _open_view(root, load=False)
    with _handle_errors():
        view.delete_documents(ids, path)


# --- Root entity ---


@app.command(name="set-url")
def set_url(
    url: str = typer.Argument(..., help="New context URL"),
    root: RootOption = _DEFAULT_ROOT,
) -> None:
    """Change the URL of a context root."""
    view = _open_view(root, load=False)
    with _handle_errors():
        view.set_url(url)


@app.command()
def start(root: RootOption = _DEFAULT_ROOT) -> None:
    """Start a workspace."""
    view = _open_view(root, load=False)
    with _handle_errors():
        fields = view.start()
    if fields.get("status"):
        typer.echo(f"status: {fields['status']}")


@app.command()
def stop(root: RootOption = _DEFAULT_ROOT) -> None:
    """Stop a workspace."""
    view = _open_view(root, load=False)
    with _handle_errors():
        fields = view.stop()
    if fields.get("status"):
        typer.echo(f"status: {fields['status']}")


# --- Live ---


@app.command()
def watch(
    root: RootOption = _DEFAULT_ROOT,
    show_tree: bool = typer.Option(False, "--tree", help="Print the tree after each change"),
) -> None:
    """Follow live changes for a root until interrupted."""
    session = _session()
    view = WorkspaceView(_make_api(session), RootKey.parse(root), notifier=_CliNotifier())
    with _handle_errors():
        view.load()

    channel = LiveChannel(WebSocketTransport(), session)
    reconciler = view.attach(channel)
    if show_tree:
        # Runs after the reconciler, which registered first.
        def print_tree(_data: object) -> None:
            if view.tree is not None:
                typer.echo(render_tree(view.tree), nl=False)

        for event in ("context:tree:insert", "context:tree:remove", "context:tree:update"):
            channel.on(event, print_tree)
            channel.on(event.replace(":", "."), print_tree)

    typer.echo(f"Watching {view.topic} (Ctrl-C to stop)")
    try:
        channel.run()
    except KeyboardInterrupt:
        pass
    finally:
        channel.close()
        counts = ", ".join(f"{k.value}={v}" for k, v in reconciler.stats.counts.items() if v)
        logger.info("Stopped watching {}: {}", view.topic, counts or "no events")
