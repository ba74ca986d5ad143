"""Bidirectional mapping between navigation addresses and tree/filter state.

Address shape::

    /workspaces/<name>[/<segment>...][?feature=<f>&...&filter=<f>&...]
    /contexts/<id>[/<segment>...][?feature=<f>&...&filter=<f>&...]

Segments, ids and query values are percent-encoded, so any layer name round-trips.
"""

from urllib.parse import parse_qsl, quote, unquote, urlencode, urlsplit

from canvas_workspace.core.tree.resolver import join_path, split_path
from canvas_workspace.models.node import Address, FilterState, RootKey, RootKind

_PREFIXES = {"workspaces": RootKind.WORKSPACE, "contexts": RootKind.CONTEXT}


def to_address(root_key: RootKey, path: str, filters: FilterState | None = None) -> str:
    segments = [quote(s, safe="") for s in split_path(path)]
    address = f"/{root_key.kind.value}s/{quote(root_key.id, safe='')}"
    if segments:
        address += "/" + "/".join(segments)

    if filters is None or filters.is_empty:
        return address
    query = [("feature", f) for f in filters.features] + [("filter", f) for f in filters.filters]
    return f"{address}?{urlencode(query)}"


def from_address(address: str) -> Address:
    """Parse an address (absolute URL or path) into root, path and filters.

    Raises:
        ValueError: when the address does not name a workspace or context.
    """
    parts = urlsplit(address)
    raw_segments = [s for s in parts.path.split("/") if s]
    if len(raw_segments) < 2 or raw_segments[0] not in _PREFIXES:
        msg = f"Not a workspace or context address: {address!r}"
        raise ValueError(msg)

    root_key = RootKey(_PREFIXES[raw_segments[0]], unquote(raw_segments[1]))
    path = join_path([unquote(s) for s in raw_segments[2:]])

    features: list[str] = []
    filters: list[str] = []
    for name, value in parse_qsl(parts.query, keep_blank_values=True):
        if name == "feature":
            features.append(value)
        elif name == "filter":
            filters.append(value)
    return Address(root_key=root_key, path=path, filters=FilterState.of(features, filters))


class AddressBar:
    """Current address with back/forward history.

    :meth:`navigate` records a new entry only when the address actually changes.
    """

    def __init__(self, initial: str | None = None) -> None:
        self.current = initial
        self._back: list[str] = []
        self._forward: list[str] = []

    def navigate(self, address: str) -> bool:
        if address == self.current:
            return False
        if self.current is not None:
            self._back.append(self.current)
        self.current = address
        self._forward.clear()
        return True

    def replace(self, address: str) -> None:
        self.current = address

    @property
    def history(self) -> tuple[str, ...]:
        return (*self._back, *([self.current] if self.current else []))

    def back(self) -> str | None:
        if not self._back:
            return None
        if self.current is not None:
            self._forward.append(self.current)
        self.current = self._back.pop()
        return self.current

    def forward(self) -> str | None:
        if not self._forward:
            return None
        if self.current is not None:
            self._back.append(self.current)
        self.current = self._forward.pop()
        return self.current
