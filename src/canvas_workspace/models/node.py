"""Domain models for the workspace tree replica."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class RootKind(StrEnum):
    WORKSPACE = "workspace"
    CONTEXT = "context"


@dataclass(frozen=True)
class RootKey:
    """An addressable root: a workspace (by name) or a context (by id)."""

    kind: RootKind
    id: str

    @classmethod
    def parse(cls, value: str) -> "RootKey":
        """Parse ``workspace:<id>`` / ``context:<id>``; a bare value is a workspace."""
        kind, sep, ident = value.partition(":")
        if not sep:
            return cls(RootKind.WORKSPACE, value)
        try:
            return cls(RootKind(kind), ident)
        except ValueError:
            msg = f"unknown root kind: {kind!r}"
            raise ValueError(msg) from None

    @property
    def base_path(self) -> str:
        """REST base for this root."""
        return f"/{self.kind.value}s/{self.id}"

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


@dataclass(frozen=True)
class Layer:
    """A single node of the layer tree. Identity is ``id``; ``name`` is the path segment."""

    id: str
    name: str
    type: str = "layer"
    label: str = ""
    description: str = ""
    color: str | None = None
    children: tuple["Layer", ...] = ()

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "Layer":
        """Build a node (and its whole subtree) from a tree payload."""
        if "id" not in data or "name" not in data:
            msg = f"tree node without id/name: {sorted(data.keys())!r}"
            raise ValueError(msg)
        return cls(
            id=str(data["id"]),
            name=data["name"],
            type=data.get("type") or "layer",
            label=data.get("label") or "",
            description=data.get("description") or "",
            color=data.get("color"),
            children=tuple(cls.from_payload(c) for c in data.get("children") or ()),
        )


@dataclass(frozen=True)
class Tree:
    """One immutable snapshot of a root's layer hierarchy."""

    root_key: RootKey
    root: Layer


@dataclass(frozen=True)
class LayerInfo:
    """An entry of the flat layer list."""

    id: str
    name: str
    type: str = "layer"
    label: str = ""
    description: str = ""
    color: str | None = None
    locked: bool = False
    locked_by: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "LayerInfo":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            type=data.get("type") or "layer",
            label=data.get("label") or "",
            description=data.get("description") or "",
            color=data.get("color"),
            locked=bool(data.get("locked", False)),
            locked_by=tuple(data.get("lockedBy") or ()),
        )


def _ordered_unique(values: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(values))


@dataclass(frozen=True)
class FilterState:
    """Tag filters applied to document queries. Both sequences are ordered sets."""

    features: tuple[str, ...] = ()
    filters: tuple[str, ...] = ()

    @classmethod
    def of(cls, features: Iterable[str] = (), filters: Iterable[str] = ()) -> "FilterState":
        return cls(features=_ordered_unique(features), filters=_ordered_unique(filters))

    def toggle_feature(self, feature: str) -> "FilterState":
        if feature in self.features:
            return FilterState(tuple(f for f in self.features if f != feature), self.filters)
        return FilterState((*self.features, feature), self.filters)

    def toggle_filter(self, name: str) -> "FilterState":
        if name in self.filters:
            return FilterState(self.features, tuple(f for f in self.filters if f != name))
        return FilterState(self.features, (*self.filters, name))

    @property
    def is_empty(self) -> bool:
        return not self.features and not self.filters


@dataclass(frozen=True)
class DocumentPage:
    """One page of a document query."""

    documents: tuple[dict[str, Any], ...]
    total_count: int
    page: int = 1
    page_size: int = 50

    @property
    def document_ids(self) -> tuple[int, ...]:
        return tuple(d["id"] for d in self.documents if "id" in d)


class ClipboardOperation(StrEnum):
    COPY = "copy"
    CUT = "cut"


@dataclass(frozen=True)
class ClipboardEntry:
    """Documents carried from a copy/cut action to a later paste."""

    document_ids: tuple[int, ...]
    operation: ClipboardOperation
    source_path: str
    source_root: RootKey | None = None


@dataclass(frozen=True)
class Notification:
    """A user-facing message derived from an operation or a push event."""

    title: str
    description: str
    variant: str = "default"

    @property
    def key(self) -> str:
        return f"{self.title}:{self.description}"


@dataclass(frozen=True)
class Address:
    """A parsed navigation address."""

    root_key: RootKey
    path: str = "/"
    filters: FilterState = field(default_factory=FilterState)
