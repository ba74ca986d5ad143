"""Latest tree snapshot and layer list per addressable root."""

from loguru import logger

from canvas_workspace.api import payload_of
from canvas_workspace.errors import WorkspaceError
from canvas_workspace.models.node import Layer, LayerInfo, RootKey, Tree
from canvas_workspace.protocols import ApiProtocol


def fetch_tree(api: ApiProtocol, root_key: RootKey) -> Tree:
    """Fetch one complete snapshot of the root's layer tree."""
    payload = payload_of(api.request("GET", f"{root_key.base_path}/tree"))
    if not isinstance(payload, dict):
        msg = f"Tree data not found in response for {root_key}"
        raise WorkspaceError(msg)
    return Tree(root_key=root_key, root=Layer.from_payload(payload))


def fetch_layers(api: ApiProtocol, root_key: RootKey) -> tuple[LayerInfo, ...]:
    """Fetch the flat layer list, sorted by name."""
    payload = payload_of(api.request("GET", f"{root_key.base_path}/layers")) or []
    layers = [LayerInfo.from_payload(item) for item in payload]
    return tuple(sorted(layers, key=lambda layer: layer.name))


class TreeCache:
    """Holds whole snapshots; never patched, only replaced.

    A failed reload leaves the previous snapshot in place and re-raises.
    """

    def __init__(self, api: ApiProtocol) -> None:
        self._api = api
        self._trees: dict[RootKey, Tree] = {}
        self._layers: dict[RootKey, tuple[LayerInfo, ...]] = {}

    def get(self, root_key: RootKey) -> Tree | None:
        return self._trees.get(root_key)

    def layers(self, root_key: RootKey) -> tuple[LayerInfo, ...]:
        return self._layers.get(root_key, ())

    def invalidate(self, root_key: RootKey) -> None:
        self._trees.pop(root_key, None)
        self._layers.pop(root_key, None)

    def reload_tree(self, root_key: RootKey) -> Tree:
        try:
            tree = fetch_tree(self._api, root_key)
        except WorkspaceError:
            logger.warning("Tree reload for {} failed, keeping last snapshot", root_key)
            raise
        self._trees[root_key] = tree
        logger.debug("Tree for {} replaced", root_key)
        return tree

    def reload_layers(self, root_key: RootKey) -> tuple[LayerInfo, ...]:
        layers = fetch_layers(self._api, root_key)
        self._layers[root_key] = layers
        return layers

    def reload(self, root_key: RootKey) -> Tree:
        """Fetch a fresh tree and layer list."""
        tree = self.reload_tree(root_key)
        self.reload_layers(root_key)
        return tree
