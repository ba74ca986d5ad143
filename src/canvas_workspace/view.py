"""The active view: owns one root's tree cache, selection, filters and address."""

from collections.abc import Callable
from typing import Any, TypeVar

from loguru import logger

from canvas_workspace.api import payload_of
from canvas_workspace.config import DEFAULT_PAGE_SIZE
from canvas_workspace.core.address import AddressBar, from_address, to_address
from canvas_workspace.core.documents.clipboard import Clipboard, delete_documents, unlink_documents
from canvas_workspace.core.documents.pager import DocumentPager
from canvas_workspace.core.live.channel import LiveChannel
from canvas_workspace.core.live.notifications import LogNotifier, NotificationCoalescer
from canvas_workspace.core.live.reconciler import EventReconciler
from canvas_workspace.core.tree.cache import TreeCache
from canvas_workspace.core.tree.resolver import ROOT_PATH, follow_path, remap_renamed
from canvas_workspace.core.write.entity import set_context_url, start_workspace, stop_workspace
from canvas_workspace.core.write.operations import Mutation, TreeOperations
from canvas_workspace.errors import WorkspaceError
from canvas_workspace.models.node import (
    ClipboardEntry,
    ClipboardOperation,
    DocumentPage,
    FilterState,
    LayerInfo,
    Notification,
    RootKey,
    Tree,
)
from canvas_workspace.protocols import ApiProtocol, NotifierProtocol

T = TypeVar("T")

ERROR_TITLE = "Error"


class WorkspaceView:
    """Navigation state for one root plus the mutations a user can issue from it.

    State changes first; the address is derived afterwards and recorded only when it
    differs. An external address change (back/forward, deep link) drives state instead.
    """

    def __init__(
        self,
        api: ApiProtocol,
        root_key: RootKey,
        *,
        cache: TreeCache | None = None,
        clipboard: Clipboard | None = None,
        notifier: NotifierProtocol | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.api = api
        self.root_key = root_key
        self.cache = cache or TreeCache(api)
        self.clipboard = clipboard or Clipboard()
        self.notifier = notifier or LogNotifier()
        self.operations = TreeOperations(api, self.cache, root_key)
        self.operations.add_listener(self._on_mutation)
        self.pager = DocumentPager(api, root_key, page_size=page_size)
        self.address_bar = AddressBar()
        self.entities: dict[str, dict[str, Any]] = {}
        self.error: str | None = None
        self._reconciler: EventReconciler | None = None

    # --- State accessors ---

    @property
    def tree(self) -> Tree | None:
        return self.cache.get(self.root_key)

    @property
    def layers(self) -> tuple[LayerInfo, ...]:
        return self.cache.layers(self.root_key)

    @property
    def selected_path(self) -> str:
        return self.pager.path

    @property
    def filters(self) -> FilterState:
        return self.pager.filters

    @property
    def documents(self) -> DocumentPage | None:
        return self.pager.current

    @property
    def address(self) -> str:
        return to_address(self.root_key, self.pager.path, self.pager.filters)

    @property
    def root_entity(self) -> dict[str, Any] | None:
        return self.entities.get(self.root_key.id)

    # --- Loading ---

    @classmethod
    def from_address(cls, api: ApiProtocol, address: str, **kwargs: Any) -> "WorkspaceView":
        parsed = from_address(address)
        view = cls(api, parsed.root_key, **kwargs)
        view.pager.set_path(parsed.path)
        view.pager.set_filters(parsed.filters)
        return view

    def load(self) -> None:
        """Fetch the root entity, tree, layers and the first document page."""
        self.load_entity()
        self.cache.reload(self.root_key)
        self.pager.fetch()
        self.address_bar.replace(self.address)
        self.error = None

    def load_entity(self) -> dict[str, Any]:
        payload = payload_of(self.api.request("GET", self.root_key.base_path))
        if isinstance(payload, dict):
            payload = payload.get(self.root_key.kind.value, payload)
        entity: dict[str, Any] = dict(payload) if isinstance(payload, dict) else {}
        self.entities[self.root_key.id] = entity
        if entity.get("id") is not None:
            self.entities[str(entity["id"])] = entity
        return entity

    # --- Navigation ---

    def select_path(self, path: str) -> None:
        self.pager.set_path(path)
        self._navigated()

    def set_filters(self, filters: FilterState) -> None:
        self.pager.set_filters(filters)
        self._navigated()

    def toggle_feature(self, feature: str) -> None:
        self.pager.toggle_feature(feature)
        self._navigated()

    def toggle_filter(self, name: str) -> None:
        self.pager.toggle_filter(name)
        self._navigated()

    def set_page(self, page: int) -> None:
        self.pager.set_page(page)
        self.reload_documents()

    def set_page_size(self, page_size: int) -> None:
        self.pager.set_page_size(page_size)
        self.reload_documents()

    def _navigated(self) -> None:
        self.address_bar.navigate(self.address)
        self.reload_documents()

    def apply_address(self, address: str) -> None:
        """Derive state from an address that changed outside the view."""
        parsed = from_address(address)
        if parsed.root_key != self.root_key:
            msg = f"Address {address!r} belongs to {parsed.root_key}, not {self.root_key}"
            raise ValueError(msg)
        self.pager.set_path(parsed.path)
        self.pager.set_filters(parsed.filters)
        self.address_bar.replace(address)
        self.reload_documents()

    def back(self) -> bool:
        address = self.address_bar.back()
        if address is None:
            return False
        self.apply_address(address)
        return True

    def forward(self) -> bool:
        address = self.address_bar.forward()
        if address is None:
            return False
        self.apply_address(address)
        return True

    # --- Tree mutations ---

    def _mutate(
        self,
        success: str,
        operation: Callable[..., T],
        *args: Any,
        follow_selection: bool = True,
        **kwargs: Any,
    ) -> T:
        old_tree = self.tree
        try:
            result = operation(*args, **kwargs)
        except WorkspaceError as e:
            self._notify_error(e)
            raise
        self.error = None
        if follow_selection and old_tree is not None and self.tree is not None:
            if self._move_selection(follow_path(old_tree, self.tree, self.pager.path)):
                self.reload_documents()
        self.notifier.notify(Notification("Success", success))
        return result

    def _on_mutation(self, mutation: Mutation) -> None:
        # Runs before the refresh: the cached tree is still the pre-mutation snapshot.
        if mutation.kind != "rename" or self.tree is None:
            return
        if mutation.layer_id is None or mutation.new_name is None:
            return
        new_path = remap_renamed(self.tree, self.pager.path, mutation.layer_id, mutation.new_name)
        if new_path is not None:
            self._move_selection(new_path)

    def _move_selection(self, path: str) -> bool:
        if path == self.pager.path:
            return False
        logger.debug("Selection follows {} -> {}", self.pager.path, path)
        self.pager.set_path(path)
        self.address_bar.replace(self.address)
        return True

    def insert(self, path: str, *, auto_create_layers: bool = True) -> None:
        self._mutate(
            f'Path "{path}" created successfully',
            self.operations.insert,
            path,
            auto_create_layers=auto_create_layers,
        )

    def remove(self, path: str, *, recursive: bool = False) -> None:
        self._mutate(
            f'Path "{path}" removed successfully', self.operations.remove, path, recursive=recursive
        )

    def move(self, from_path: str, to_path: str, *, recursive: bool = False) -> None:
        self._mutate(
            f'Path moved from "{from_path}" to "{to_path}"',
            self.operations.move,
            from_path,
            to_path,
            recursive=recursive,
        )

    def copy(self, from_path: str, to_path: str, *, recursive: bool = False) -> None:
        self._mutate(
            f'Path copied from "{from_path}" to "{to_path}"',
            self.operations.copy,
            from_path,
            to_path,
            recursive=recursive,
        )

    def rename(self, path: str, new_name: str) -> LayerInfo | None:
        return self._mutate(
            f'Layer "{path}" renamed to "{new_name}"',
            self.operations.rename,
            path,
            new_name,
            follow_selection=False,
        )

    def merge(self, layer_id: str, target_layer_ids: list[str]) -> Any:
        return self._mutate(
            "Layer merged successfully", self.operations.merge, layer_id, target_layer_ids
        )

    def subtract(self, layer_id: str, target_layer_ids: list[str]) -> Any:
        return self._mutate(
            "Layer subtracted successfully", self.operations.subtract, layer_id, target_layer_ids
        )

    def merge_up(self, path: str) -> None:
        self._mutate(f'Merged "{path}" up', self.operations.merge_up, path)

    def merge_down(self, path: str) -> None:
        self._mutate(f'Merged "{path}" down', self.operations.merge_down, path)

    def subtract_up(self, path: str) -> None:
        self._mutate(f'Subtracted "{path}" up', self.operations.subtract_up, path)

    def subtract_down(self, path: str) -> None:
        self._mutate(f'Subtracted "{path}" down', self.operations.subtract_down, path)

    def lock_layer(self, layer_id: str, lock_by: str | None = None) -> None:
        self._mutate("Layer locked", self.operations.lock_layer, layer_id, lock_by or self.root_key.id)

    def unlock_layer(self, layer_id: str, lock_by: str | None = None) -> None:
        self._mutate(
            "Layer unlocked", self.operations.unlock_layer, layer_id, lock_by or self.root_key.id
        )

    def destroy_layer(self, layer_id: str) -> None:
        self._mutate("Layer destroyed", self.operations.destroy_layer, layer_id)

    # --- Documents ---

    def copy_documents(self, document_ids: list[Any]) -> ClipboardEntry:
        entry = self.clipboard.copy(document_ids, self.pager.path, self.root_key)
        self.notifier.notify(
            Notification("Success", f"{len(entry.document_ids)} document(s) copied to clipboard")
        )
        return entry

    def cut_documents(self, document_ids: list[Any]) -> ClipboardEntry:
        entry = self.clipboard.cut(document_ids, self.pager.path, self.root_key)
        self.notifier.notify(
            Notification("Success", f"{len(entry.document_ids)} document(s) cut to clipboard")
        )
        return entry

    def paste(self, path: str | None = None) -> ClipboardEntry:
        target = path or self.pager.path
        try:
            entry = self.clipboard.paste(self.api, self.root_key, target)
        except WorkspaceError as e:
            self._notify_error(e)
            raise
        verb = "moved" if entry.operation is ClipboardOperation.CUT else "pasted"
        self.notifier.notify(
            Notification("Success", f'{len(entry.document_ids)} document(s) {verb} to "{target}"')
        )
        self.reload_documents()
        return entry

    def remove_documents(self, document_ids: list[int], path: str | None = None) -> None:
        """Unlink documents from a path (the selected one by default)."""
        target = path or self.pager.path
        try:
            unlink_documents(self.api, self.root_key, target, document_ids)
        except WorkspaceError as e:
            self._notify_error(e)
            raise
        self.notifier.notify(
            Notification("Success", f'{len(document_ids)} document(s) removed from "{target}"')
        )
        self.reload_documents()

    def delete_documents(self, document_ids: list[int], path: str | None = None) -> None:
        """Permanently delete documents; unlike :meth:`remove_documents` they are gone everywhere."""
        target = path or self.pager.path
        try:
            delete_documents(self.api, self.root_key, target, document_ids)
        except WorkspaceError as e:
            self._notify_error(e)
            raise
        self.notifier.notify(
            Notification(
                "Success",
                f"{len(document_ids)} document(s) deleted from {self.root_key.kind.value} successfully.",
            )
        )
        self.reload_documents()

    # --- Root entity ---

    def set_url(self, url: str) -> str:
        """Change a context's URL. The context tree is derived from it, so both are refetched."""
        try:
            stored = set_context_url(self.api, self.root_key, url)
        except WorkspaceError as e:
            self._notify_error(e)
            raise
        self.patch_entity(self.root_key.id, {"url": stored})
        self.notifier.notify(Notification("Success", f"Context URL set to {stored}"))
        self.reload_tree()
        return stored

    def start(self) -> dict[str, Any]:
        return self._set_running(start_workspace, "started")

    def stop(self) -> dict[str, Any]:
        return self._set_running(stop_workspace, "stopped")

    def _set_running(
        self, action: Callable[[ApiProtocol, RootKey], dict[str, Any]], verb: str
    ) -> dict[str, Any]:
        try:
            fields = action(self.api, self.root_key)
        except WorkspaceError as e:
            self._notify_error(e)
            raise
        self.patch_entity(self.root_key.id, fields)
        self.notifier.notify(Notification("Success", f"Workspace {verb}"))
        self.reload_documents()
        return fields

    # --- Replica state touched by the event reconciler ---

    def tracks(self, entity_id: str) -> bool:
        return entity_id in self.entities

    def reload_tree(self) -> None:
        """Replace the snapshot; on failure keep the last good one and surface the error."""
        old_tree = self.tree
        try:
            new_tree = self.cache.reload(self.root_key)
        except WorkspaceError as e:
            self._notify_error(e)
            return
        self.error = None
        if old_tree is not None:
            self._move_selection(follow_path(old_tree, new_tree, self.pager.path))
        self.reload_documents()

    def reload_documents(self) -> None:
        try:
            self.pager.fetch()
        except WorkspaceError as e:
            self._notify_error(e)

    def patch_entity(self, entity_id: str, fields: dict[str, Any]) -> bool:
        entity = self.entities.get(entity_id)
        if entity is None:
            return False
        entity.update(fields)
        return True

    def drop_entity(self, entity_id: str) -> None:
        entity = self.entities.pop(entity_id, None)
        if entity is None:
            return
        self.entities = {k: v for k, v in self.entities.items() if v is not entity}
        if not self.tracks(self.root_key.id):
            self.cache.invalidate(self.root_key)
            self.error = f"{self.root_key.kind.value.capitalize()} has been deleted."
            self._move_selection(ROOT_PATH)

    def _notify_error(self, error: WorkspaceError) -> None:
        self.error = str(error)
        self.notifier.notify(Notification(ERROR_TITLE, str(error), "destructive"))

    # --- Live events ---

    @property
    def topic(self) -> str:
        return f"{self.root_key.kind.value}:{self.root_key.id}"

    def attach(self, channel: LiveChannel) -> EventReconciler:
        """Start reconciling push events for this root from ``channel``."""
        if self._reconciler is None:
            self._reconciler = EventReconciler(self, NotificationCoalescer(self.notifier))
        self._reconciler.attach(channel, self.topic)
        return self._reconciler

    def detach(self, channel: LiveChannel) -> None:
        if self._reconciler is not None:
            self._reconciler.detach(channel, self.topic)
