"""Tree mutations against the Canvas API, each followed by a full tree refresh."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from canvas_workspace.api import payload_of
from canvas_workspace.core.tree.cache import TreeCache
from canvas_workspace.core.tree.resolver import (
    ROOT_PATH,
    parent_path,
    resolve,
    resolve_chain,
    sanitize_path,
)
from canvas_workspace.errors import ConflictError, InvalidOperationError, NotFoundError
from canvas_workspace.models.node import LayerInfo, RootKey, Tree
from canvas_workspace.protocols import ApiProtocol


@dataclass(frozen=True)
class Mutation:
    """A mutation the server accepted, reported before the refresh runs."""

    kind: str
    path: str | None = None
    target: str | None = None
    layer_id: str | None = None
    new_name: str | None = None


MutationListener = Callable[[Mutation], None]


class TreeOperations:
    """Issue named mutation intents for one root.

    Nothing is applied locally: a successful call is followed by a fresh tree and
    layer fetch; a failed call leaves every piece of local state untouched.
    """

    def __init__(self, api: ApiProtocol, cache: TreeCache, root_key: RootKey) -> None:
        self._api = api
        self._cache = cache
        self.root_key = root_key
        self._listeners: list[MutationListener] = []

    def add_listener(self, listener: MutationListener) -> None:
        self._listeners.append(listener)

    @property
    def _tree_base(self) -> str:
        return f"{self.root_key.base_path}/tree"

    @property
    def _layers_base(self) -> str:
        return f"{self.root_key.base_path}/layers"

    def _snapshot(self) -> Tree | None:
        return self._cache.get(self.root_key)

    def _call(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        return payload_of(self._api.request(method, path, params=params, body=body))

    def _applied(self, mutation: Mutation, *, refresh_tree: bool = True) -> None:
        logger.info("Applied {} on {}", mutation.kind, self.root_key)
        for listener in self._listeners:
            listener(mutation)
        if refresh_tree:
            self._cache.reload(self.root_key)
        else:
            self._cache.reload_layers(self.root_key)

    def _require_path(self, path: str) -> None:
        tree = self._snapshot()
        if tree is not None:
            resolve(tree, path)

    # --- Path operations ---

    def insert(self, path: str, *, auto_create_layers: bool = True) -> None:
        """Create ``path``; missing ancestors are created only with ``auto_create_layers``."""
        path = sanitize_path(path)
        tree = self._snapshot()
        if tree is not None and not auto_create_layers:
            parent = parent_path(path)
            if resolve_chain(tree, parent) is None:
                msg = f"Parent of {path!r} does not exist and auto-create is off"
                raise NotFoundError(msg)

        self._call(
            "POST", f"{self._tree_base}/paths", body={"path": path, "autoCreateLayers": auto_create_layers}
        )
        self._applied(Mutation("insert", path=path))

    def remove(self, path: str, *, recursive: bool = False) -> None:
        """Remove ``path``; a node with children needs ``recursive``."""
        path = sanitize_path(path)
        tree = self._snapshot()
        if tree is not None:
            node = resolve(tree, path)
            if node.children and not recursive:
                msg = f"Path {path!r} has {len(node.children)} children, use recursive removal"
                raise ConflictError(msg)

        self._call(
            "DELETE",
            f"{self._tree_base}/paths",
            params={"path": path, "recursive": str(recursive).lower()},
        )
        self._applied(Mutation("remove", path=path))

    def move(self, from_path: str, to_path: str, *, recursive: bool = False) -> None:
        self._relocate("move", from_path, to_path, recursive=recursive)

    def copy(self, from_path: str, to_path: str, *, recursive: bool = False) -> None:
        self._relocate("copy", from_path, to_path, recursive=recursive)

    def _relocate(self, kind: str, from_path: str, to_path: str, *, recursive: bool) -> None:
        from_path = sanitize_path(from_path)
        to_path = sanitize_path(to_path)
        self._require_path(from_path)
        self._call(
            "POST",
            f"{self._tree_base}/paths/{kind}",
            body={"from": from_path, "to": to_path, "recursive": recursive},
        )
        self._applied(Mutation(kind, path=from_path, target=to_path))

    def rename(self, path: str, new_name: str) -> LayerInfo | None:
        """Rename the layer at ``path``. Acts on the layer id, not on the path string.

        Raises:
            InvalidOperationError: for the root, or an empty / slash-containing name.
            NotFoundError: when ``path`` does not resolve in the cached snapshot.
        """
        path = sanitize_path(path)
        if path == ROOT_PATH:
            msg = "Cannot rename root layer"
            raise InvalidOperationError(msg)
        if not new_name or "/" in new_name:
            msg = f"Invalid layer name: {new_name!r}"
            raise InvalidOperationError(msg)

        tree = self._snapshot()
        if tree is None:
            tree = self._cache.reload_tree(self.root_key)
        node = resolve(tree, path)

        payload = self._call("PATCH", f"{self._layers_base}/{node.id}", body={"name": new_name})
        renamed = LayerInfo.from_payload(payload) if isinstance(payload, dict) and "id" in payload else None
        name = renamed.name if renamed else new_name
        self._applied(Mutation("rename", path=path, layer_id=node.id, new_name=name))
        return renamed

    def merge_up(self, path: str) -> None:
        self._path_algebra("merge-up", path)

    def merge_down(self, path: str) -> None:
        self._path_algebra("merge-down", path)

    def subtract_up(self, path: str) -> None:
        self._path_algebra("subtract-up", path)

    def subtract_down(self, path: str) -> None:
        self._path_algebra("subtract-down", path)

    def _path_algebra(self, kind: str, path: str) -> None:
        path = sanitize_path(path)
        self._require_path(path)
        self._call("POST", f"{self._tree_base}/paths/{kind}", body={"path": path})
        self._applied(Mutation(kind, path=path))

    # --- Layer operations ---

    def merge(self, layer_id: str, target_layer_ids: list[str]) -> Any:
        """Merge ``layer_id``'s document associations into the targets (server-defined)."""
        return self._layer_algebra("merge", layer_id, target_layer_ids)

    def subtract(self, layer_id: str, target_layer_ids: list[str]) -> Any:
        return self._layer_algebra("subtract", layer_id, target_layer_ids)

    def _layer_algebra(self, kind: str, layer_id: str, target_layer_ids: list[str]) -> Any:
        if not target_layer_ids:
            msg = f"{kind} needs at least one target layer"
            raise InvalidOperationError(msg)
        result = self._call(
            "POST",
            f"{self._tree_base}/layers/{kind}",
            body={"layerId": layer_id, "targetLayers": list(target_layer_ids)},
        )
        self._applied(Mutation(kind, layer_id=layer_id))
        return result

    def lock_layer(self, layer_id: str, lock_by: str) -> None:
        self._call("POST", f"{self._layers_base}/{layer_id}/lock", body={"lockBy": lock_by})
        self._applied(Mutation("lock", layer_id=layer_id), refresh_tree=False)

    def unlock_layer(self, layer_id: str, lock_by: str) -> None:
        self._call("POST", f"{self._layers_base}/{layer_id}/unlock", body={"lockBy": lock_by})
        self._applied(Mutation("unlock", layer_id=layer_id), refresh_tree=False)

    def destroy_layer(self, layer_id: str) -> None:
        """Delete a layer everywhere it appears. The root layer cannot be destroyed."""
        tree = self._snapshot()
        if tree is not None and tree.root.id == layer_id:
            msg = "Cannot destroy root layer"
            raise InvalidOperationError(msg)
        self._call("DELETE", f"{self._layers_base}/{layer_id}")
        self._applied(Mutation("destroy", layer_id=layer_id))
