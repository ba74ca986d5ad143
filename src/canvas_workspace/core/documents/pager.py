"""Filtered, paginated document queries scoped to a path."""

from typing import Any

from loguru import logger

from canvas_workspace.config import DEFAULT_PAGE_SIZE
from canvas_workspace.core.tree.resolver import ROOT_PATH, sanitize_path
from canvas_workspace.errors import InvalidOperationError
from canvas_workspace.models.node import DocumentPage, FilterState, RootKey
from canvas_workspace.protocols import ApiProtocol


def query_documents(
    api: ApiProtocol,
    root_key: RootKey,
    *,
    path: str = ROOT_PATH,
    features: tuple[str, ...] = (),
    filters: tuple[str, ...] = (),
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> DocumentPage:
    """Fetch documents visible under ``path`` with the given tag filters.

    Filters are passed through unchanged and in order; their combination is server-defined.
    """
    params: list[tuple[str, Any]] = [("contextSpec", path)]
    params += [("featureArray", f) for f in features]
    params += [("filterArray", f) for f in filters]
    params += [("limit", page_size), ("page", page)]

    envelope = api.request("GET", f"{root_key.base_path}/documents", params=params)
    payload = envelope.get("payload")
    if not isinstance(payload, list):
        logger.warning("Documents payload for {} is not a list: {!r}", root_key, type(payload))
        payload = []
    total = envelope.get("totalCount") or envelope.get("count") or 0
    return DocumentPage(
        documents=tuple(payload), total_count=int(total), page=page, page_size=page_size
    )


class DocumentPager:
    """Current path, filter state and page cursor for one root.

    Changing the path or any filter resets the cursor to the first page.
    """

    def __init__(
        self, api: ApiProtocol, root_key: RootKey, *, page_size: int = DEFAULT_PAGE_SIZE
    ) -> None:
        self._api = api
        self.root_key = root_key
        self.path = ROOT_PATH
        self.filters = FilterState()
        self.page = 1
        self.page_size = page_size
        self.current: DocumentPage | None = None

    def set_path(self, path: str) -> None:
        path = sanitize_path(path)
        if path != self.path:
            self.path = path
            self.page = 1

    def set_filters(self, filters: FilterState) -> None:
        if filters != self.filters:
            self.filters = filters
            self.page = 1

    def toggle_feature(self, feature: str) -> None:
        self.set_filters(self.filters.toggle_feature(feature))

    def toggle_filter(self, name: str) -> None:
        self.set_filters(self.filters.toggle_filter(name))

    def set_page(self, page: int) -> None:
        if page < 1:
            msg = f"Page must be >= 1, got {page}"
            raise InvalidOperationError(msg)
        self.page = page

    def set_page_size(self, page_size: int) -> None:
        if page_size < 1:
            msg = f"Page size must be >= 1, got {page_size}"
            raise InvalidOperationError(msg)
        if page_size != self.page_size:
            self.page_size = page_size
            self.page = 1

    @property
    def page_count(self) -> int:
        if self.current is None or self.current.total_count == 0:
            return 1
        return -(-self.current.total_count // self.page_size)

    def fetch(self) -> DocumentPage:
        """Query the current page. On failure ``current`` keeps the last good page."""
        self.current = query_documents(
            self._api,
            self.root_key,
            path=self.path,
            features=self.filters.features,
            filters=self.filters.filters,
            page=self.page,
            page_size=self.page_size,
        )
        return self.current
