"""Local-only clipboard carrying documents between copy/cut and paste."""

from typing import Any

from loguru import logger

from canvas_workspace.core.tree.resolver import sanitize_path
from canvas_workspace.errors import InvalidOperationError
from canvas_workspace.models.node import ClipboardEntry, ClipboardOperation, RootKey, RootKind
from canvas_workspace.protocols import ApiProtocol


def link_documents(api: ApiProtocol, root_key: RootKey, path: str, document_ids: list[int]) -> None:
    """Associate documents with ``path``."""
    api.request(
        "POST",
        f"{root_key.base_path}/documents",
        body={"documentIds": list(document_ids), "contextSpec": path},
    )


def unlink_documents(
    api: ApiProtocol, root_key: RootKey, path: str, document_ids: list[int]
) -> None:
    """Remove the association of documents with ``path``; the documents survive."""
    api.request(
        "DELETE",
        f"{root_key.base_path}/documents/remove",
        params={"contextSpec": path},
        body=list(document_ids),
    )


def delete_documents(
    api: ApiProtocol, root_key: RootKey, path: str, document_ids: list[int]
) -> None:
    """Permanently delete documents from the database, not just from ``path``."""
    params = {"contextSpec": path} if root_key.kind is RootKind.WORKSPACE else None
    api.request("DELETE", f"{root_key.base_path}/documents", params=params, body=list(document_ids))


def _normalize_ids(document_ids: list[Any]) -> tuple[int, ...]:
    try:
        return tuple(int(v) for v in document_ids)
    except (TypeError, ValueError):
        msg = f"Invalid document ID(s): expected numbers, got {document_ids!r}"
        raise InvalidOperationError(msg) from None


class Clipboard:
    """Never talks to the server until :meth:`paste`. No expiry."""

    def __init__(self) -> None:
        self.entry: ClipboardEntry | None = None

    def copy(
        self, document_ids: list[Any], source_path: str, source_root: RootKey | None = None
    ) -> ClipboardEntry:
        return self._set(document_ids, ClipboardOperation.COPY, source_path, source_root)

    def cut(
        self, document_ids: list[Any], source_path: str, source_root: RootKey | None = None
    ) -> ClipboardEntry:
        return self._set(document_ids, ClipboardOperation.CUT, source_path, source_root)

    def _set(
        self,
        document_ids: list[Any],
        operation: ClipboardOperation,
        source_path: str,
        source_root: RootKey | None,
    ) -> ClipboardEntry:
        ids = _normalize_ids(document_ids)
        if not ids:
            msg = "Nothing selected"
            raise InvalidOperationError(msg)
        self.entry = ClipboardEntry(ids, operation, sanitize_path(source_path), source_root)
        logger.debug("{} {} document(s) from {}", operation.value, len(ids), source_path)
        return self.entry

    def clear(self) -> None:
        self.entry = None

    def paste(self, api: ApiProtocol, root_key: RootKey, target_path: str) -> ClipboardEntry:
        """Link the clipboard documents to ``target_path``.

        A cut also unlinks them from the source path and then clears the clipboard;
        a copy stays available for further pastes. On failure the clipboard is kept.
        """
        entry = self.entry
        if entry is None:
            msg = "Clipboard is empty"
            raise InvalidOperationError(msg)
        target_path = sanitize_path(target_path)
        source_root = entry.source_root or root_key
        if (
            entry.operation is ClipboardOperation.CUT
            and source_root == root_key
            and target_path == entry.source_path
        ):
            msg = f"Cannot move documents onto their own path {target_path!r}"
            raise InvalidOperationError(msg)

        link_documents(api, root_key, target_path, list(entry.document_ids))
        if entry.operation is ClipboardOperation.CUT:
            unlink_documents(api, source_root, entry.source_path, list(entry.document_ids))
            self.entry = None
        return entry
