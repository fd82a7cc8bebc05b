"""
core/pagination.py — list state for one paginated, searchable view.

The controller owns page/page-size/sort/search state and guarantees that the
rendered ``Page`` always matches the most recently *issued* query, even when
several requests are in flight.

Race rule (epoch fencing)
-------------------------
Every dispatch bumps ``state.request_epoch`` and captures the new value.  A
response (or failure) is applied only if its captured epoch still equals the
current one; anything older is silently dropped.  Underlying requests are
never cancelled, only ignored.

Debounce
--------
``set_search_text`` updates ``raw_search_text`` immediately and (re)starts a
quiet-period timer task.  A keystroke before the timer fires cancels it.
When it fires, ``committed_search_text`` is set, ``page`` resets to 1 and a
fetch is dispatched.

Usage:
    trades = PaginatedQueryController(gateway, "/api/trade-logs", page_size=10)
    await trades.refresh()
    trades.set_search_text("AAPL")
    trades.go_to_page(2)
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Protocol, TypeVar

from core.errors import HttpError, JournalClientError, Unauthenticated
from logging_config import get_sync_logger
from models.journal import ListEnvelope, Page


LOGGER = get_sync_logger()

T = TypeVar("T")

_SORT_DIRECTIONS = {"asc", "desc"}


class _Getter(Protocol):
    async def get(self, endpoint: str, **kwargs: Any) -> Any: ...


@dataclass(slots=True)
class QueryState:
    page: int = 1
    page_size: int = 10
    sort_key: str | None = "created_at"
    sort_dir: str | None = "desc"
    raw_search_text: str = ""
    committed_search_text: str = ""
    filters: dict[str, Any] = field(default_factory=dict)
    request_epoch: int = 0

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {
            "page": self.page,
            "per_page": self.page_size,
            "sort_by": self.sort_key,
            "sort_order": self.sort_dir,
        }
        params.update(self.filters)
        if self.committed_search_text:
            params["search"] = self.committed_search_text
        return params


class PaginatedQueryController(Generic[T]):
    """Drives one list view.  Instances never share state or epochs.

    Args:
        gateway:          Anything with ``async get(endpoint, params=...)``.
        endpoint:         List route, e.g. ``/api/strategies``.
        page_size:        Items per page (``per_page``).
        sort_key/sort_dir: Server-side ordering.
        debounce_seconds: Quiet period before committing search text.
        item_parser:      Optional callable turning a raw item dict into ``T``.
        page/search:      Initial page and committed search, applied on the first fetch.
        filters:          Extra query parameters, e.g. ``{"unread_only": True}``.
    """

    def __init__(
        self,
        gateway: _Getter,
        endpoint: str,
        *,
        page_size: int = 10,
        sort_key: str | None = "created_at",
        sort_dir: str | None = "desc",
        debounce_seconds: float = 0.5,
        item_parser: Callable[[Any], T] | None = None,
        name: str | None = None,
        page: int = 1,
        search: str = "",
        filters: dict[str, Any] | None = None,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.gateway = gateway
        self.endpoint = endpoint
        self.debounce_seconds = debounce_seconds
        self.item_parser = item_parser
        self.name = name or endpoint.rstrip("/").rsplit("/", 1)[-1]

        self.state = QueryState(
            page=max(1, page),
            page_size=page_size,
            sort_key=sort_key,
            sort_dir=sort_dir,
            raw_search_text=search,
            committed_search_text=search.strip(),
            filters=dict(filters or {}),
        )
        self.page: Page[T] = Page()
        self.loading = False
        self.error: str | None = None
        self.login_required = False

        self._debounce_task: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()
        self._subscribers: list[Callable[["PaginatedQueryController[T]"], Any]] = []
        self._closed = False

    # ------------------------------------------------------------------ #
    # User input                                                           #
    # ------------------------------------------------------------------ #

    def set_search_text(self, text: str) -> None:
        if self._closed:
            return
        self.state.raw_search_text = text
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = asyncio.get_running_loop().create_task(
            self._commit_after_quiet(text), name=f"debounce-{self.name}"
        )
        self._notify()

    def go_to_page(self, page: int) -> bool:
        if self._closed or page < 1 or page > self.page.total_pages:
            return False
        self.state.page = page
        self._dispatch()
        return True

    def next_page(self) -> bool:
        return self.go_to_page(self.state.page + 1)

    def prev_page(self) -> bool:
        return self.go_to_page(self.state.page - 1)

    def first_page(self) -> bool:
        return self.go_to_page(1)

    def last_page(self) -> bool:
        return self.go_to_page(self.page.total_pages)

    def set_page_size(self, page_size: int) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        if self._closed:
            return
        self.state.page_size = page_size
        self.state.page = 1
        self._dispatch()

    def set_sort(self, sort_key: str, sort_dir: str = "desc") -> None:
        if sort_dir not in _SORT_DIRECTIONS:
            raise ValueError(f"sort_dir must be one of {sorted(_SORT_DIRECTIONS)}")
        if self._closed:
            return
        self.state.sort_key = sort_key
        self.state.sort_dir = sort_dir
        self.state.page = 1
        self._dispatch()

    def set_filter(self, key: str, value: Any) -> None:
        """Set (or, with ``None``, drop) one query filter and reload from page 1."""
        if self._closed:
            return
        if value is None:
            self.state.filters.pop(key, None)
        else:
            self.state.filters[key] = value
        self.state.page = 1
        self._dispatch()

    async def refresh(self) -> Page[T]:
        """Re-issue the current query and wait for it (used on mount and after writes)."""
        if self._closed:
            return self.page
        await self._dispatch()
        return self.page

    # ------------------------------------------------------------------ #
    # Lifecycle                                                            #
    # ------------------------------------------------------------------ #

    def subscribe(self, callback: Callable[["PaginatedQueryController[T]"], Any]) -> None:
        self._subscribers.append(callback)

    async def wait_idle(self) -> None:
        """Wait until no debounce timer or fetch is pending."""
        while True:
            pending = [task for task in self._inflight if not task.done()]
            if self._debounce_task is not None and not self._debounce_task.done():
                pending.append(self._debounce_task)
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def close(self) -> None:
        """Unmount: stop the debounce timer and ignore any late responses."""
        if self._closed:
            return
        self._closed = True
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = None
        self._subscribers.clear()
        self.loading = False

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------ #
    # Fetching                                                             #
    # ------------------------------------------------------------------ #

    async def _commit_after_quiet(self, text: str) -> None:
        await asyncio.sleep(self.debounce_seconds)
        # Past this point the commit must not be cancelled by a later keystroke.
        self._debounce_task = None
        committed = text.strip()
        if committed == self.state.committed_search_text:
            return
        self.state.committed_search_text = committed
        self.state.page = 1
        LOGGER.debug("%s: committed search %r", self.name, committed)
        self._dispatch()

    def _dispatch(self) -> asyncio.Task:
        self.state.request_epoch += 1
        epoch = self.state.request_epoch
        params = self.state.to_params()
        self.loading = True
        task = asyncio.get_running_loop().create_task(
            self._fetch(epoch, params), name=f"fetch-{self.name}-{epoch}"
        )
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    def _is_current(self, epoch: int) -> bool:
        return not self._closed and epoch == self.state.request_epoch

    async def _fetch(self, epoch: int, params: dict[str, Any]) -> bool:
        try:
            data = await self.gateway.get(self.endpoint, params=params)
        except JournalClientError as exc:
            if not self._is_current(epoch):
                LOGGER.debug("%s: dropping stale failure for epoch %s", self.name, epoch)
                return False
            self._apply_failure(exc)
            return False

        if not self._is_current(epoch):
            LOGGER.debug(
                "%s: dropping stale response for epoch %s (current %s)",
                self.name,
                epoch,
                self.state.request_epoch,
            )
            return False

        try:
            page = self._build_page(data)
        except (TypeError, ValueError) as exc:
            # pydantic's ValidationError is a ValueError.
            LOGGER.debug("%s: malformed list response: %s", self.name, exc)
            self._apply_failure(HttpError(502, "Malformed list response"))
            return False

        self.page = page
        self.state.page = page.page
        self.error = None
        self.login_required = False
        self.loading = False
        self._notify()
        return True

    def _apply_failure(self, exc: JournalClientError) -> None:
        # Keep the counters, never the items: stale rows would misrepresent the backend.
        self.page = Page(
            items=[],
            page=self.page.page,
            total_pages=self.page.total_pages,
            total_items=self.page.total_items,
        )
        self.error = f"Failed to load {self.name}: {getattr(exc, 'message', str(exc))}"
        self.login_required = isinstance(exc, Unauthenticated)
        self.loading = False
        LOGGER.warning("%s", self.error)
        self._notify()

    def _build_page(self, data: Any) -> Page[T]:
        envelope = ListEnvelope.from_payload(data)
        raw_items = envelope.items or []
        pagination = envelope.pagination
        items = [self.item_parser(item) for item in raw_items] if self.item_parser else list(raw_items)
        if pagination is None:
            return Page(items=items, page=self.state.page)
        return Page(
            items=items,
            page=pagination.page or self.state.page,
            total_pages=pagination.pages or 0,
            total_items=pagination.total or 0,
        )

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self)
            except Exception as exc:
                LOGGER.error("%s: subscriber failed: %s", self.name, exc)
