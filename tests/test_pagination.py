from __future__ import annotations

import asyncio
from typing import Any, Callable

import pytest

from core.errors import HttpError, Unauthenticated
from core.journal_api import LIST_RESOURCES
from core.pagination import PaginatedQueryController
from models.journal import Notification, Page


def _payload(page: int, *, pages: int = 5, per_page: int = 10) -> dict[str, Any]:
    return {
        "items": [{"id": page * 100 + index, "symbol": f"P{page}"} for index in range(2)],
        "pagination": {"page": page, "pages": pages, "total": pages * per_page},
    }


class FakeGateway:
    """Records every GET.  Without a responder, each call waits on a future the test resolves."""

    def __init__(self, responder: Callable[[dict[str, Any]], Any] | None = None) -> None:
        self.responder = responder
        self.calls: list[tuple[str, dict[str, Any], asyncio.Future]] = []

    async def get(self, endpoint: str, params: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        future = asyncio.get_running_loop().create_future()
        self.calls.append((endpoint, dict(params or {}), future))
        if self.responder is not None:
            return self.responder(dict(params or {}))
        return await future

    @property
    def params(self) -> list[dict[str, Any]]:
        return [params for _, params, _ in self.calls]


def _controller(gateway: FakeGateway, **kwargs: Any) -> PaginatedQueryController:
    kwargs.setdefault("debounce_seconds", 0.01)
    return PaginatedQueryController(gateway, "/api/trade-logs", page_size=10, **kwargs)


@pytest.mark.asyncio
async def test_refresh_applies_page_and_counters():
    gateway = FakeGateway(lambda params: _payload(params["page"], pages=3))
    controller = _controller(gateway)

    page = await controller.refresh()

    assert [item["id"] for item in page.items] == [100, 101]
    assert (page.page, page.total_pages, page.total_items) == (1, 3, 30)
    assert gateway.params == [{"page": 1, "per_page": 10, "sort_by": "created_at", "sort_order": "desc"}]
    assert controller.loading is False
    assert controller.state.request_epoch == 1


@pytest.mark.asyncio
async def test_out_of_order_responses_keep_latest_page():
    gateway = FakeGateway()
    controller = _controller(gateway)
    controller.page = Page(items=[], page=1, total_pages=5, total_items=50)

    assert controller.go_to_page(2) is True
    assert controller.go_to_page(3) is True
    await asyncio.sleep(0)
    assert [params["page"] for params in gateway.params] == [2, 3]

    # Page 3 answers first, then the slower page 2 request lands.
    gateway.calls[1][2].set_result(_payload(3))
    await asyncio.sleep(0)
    gateway.calls[0][2].set_result(_payload(2))
    await controller.wait_idle()

    assert controller.page.page == 3
    assert controller.state.page == 3
    assert [item["id"] for item in controller.page.items] == [300, 301]


@pytest.mark.asyncio
async def test_debounced_search_issues_single_fetch_on_page_one():
    gateway = FakeGateway(lambda params: _payload(params["page"]))
    controller = _controller(gateway)
    controller.state.page = 3

    for text in ("A", "AA", "AAP", "AAPL"):
        controller.set_search_text(text)
    assert controller.state.raw_search_text == "AAPL"
    assert controller.state.committed_search_text == ""

    await controller.wait_idle()

    assert len(gateway.calls) == 1
    assert gateway.params[0]["search"] == "AAPL"
    assert gateway.params[0]["page"] == 1
    assert controller.state.committed_search_text == "AAPL"


@pytest.mark.asyncio
async def test_search_matching_committed_text_does_not_refetch():
    gateway = FakeGateway(lambda params: _payload(1))
    controller = _controller(gateway)
    controller.state.committed_search_text = "AAPL"

    controller.set_search_text("  AAPL ")
    await controller.wait_idle()

    assert gateway.calls == []


@pytest.mark.asyncio
async def test_go_to_page_out_of_range_is_noop():
    gateway = FakeGateway(lambda params: _payload(params["page"], pages=2))
    controller = _controller(gateway)
    await controller.refresh()

    assert controller.go_to_page(0) is False
    assert controller.go_to_page(3) is False
    assert controller.prev_page() is False
    assert len(gateway.calls) == 1

    assert controller.last_page() is True
    await controller.wait_idle()
    assert controller.page.page == 2
    assert controller.next_page() is False


@pytest.mark.asyncio
async def test_failure_empties_items_but_keeps_counters():
    responses = iter([_payload(1, pages=4)])

    def responder(params):
        try:
            return next(responses)
        except StopIteration:
            raise HttpError(500, "database unavailable") from None

    gateway = FakeGateway(responder)
    controller = _controller(gateway)
    await controller.refresh()
    await controller.refresh()

    assert controller.page.items == []
    assert controller.page.total_pages == 4
    assert controller.page.total_items == 40
    assert controller.error == "Failed to load trade-logs: database unavailable"
    assert controller.login_required is False
    assert controller.loading is False


@pytest.mark.asyncio
async def test_unauthenticated_failure_flags_login():
    def responder(params):
        raise Unauthenticated()

    controller = _controller(FakeGateway(responder))
    await controller.refresh()

    assert controller.login_required is True
    assert controller.error is not None


@pytest.mark.asyncio
async def test_stale_failure_is_discarded():
    gateway = FakeGateway()
    controller = _controller(gateway)
    controller.page = Page(items=[], page=1, total_pages=5, total_items=50)

    controller.go_to_page(2)
    controller.go_to_page(4)
    await asyncio.sleep(0)
    gateway.calls[1][2].set_result(_payload(4))
    await asyncio.sleep(0)
    gateway.calls[0][2].set_exception(HttpError(500, "late failure"))
    await controller.wait_idle()

    assert controller.error is None
    assert controller.page.page == 4


@pytest.mark.asyncio
async def test_sort_and_page_size_reset_to_first_page():
    gateway = FakeGateway(lambda params: _payload(params["page"]))
    controller = _controller(gateway)
    controller.state.page = 4

    controller.set_sort("symbol", "asc")
    await controller.wait_idle()
    controller.set_page_size(25)
    await controller.wait_idle()

    assert gateway.params[0]["sort_by"] == "symbol"
    assert gateway.params[0]["sort_order"] == "asc"
    assert gateway.params[0]["page"] == 1
    assert gateway.params[1]["per_page"] == 25
    with pytest.raises(ValueError):
        controller.set_sort("symbol", "sideways")


@pytest.mark.asyncio
async def test_close_ignores_late_response_and_stops_debounce():
    gateway = FakeGateway()
    controller = _controller(gateway)
    controller.page = Page(items=[], page=1, total_pages=5, total_items=50)

    controller.go_to_page(2)
    await asyncio.sleep(0)
    controller.set_search_text("TSLA")
    notified = []
    controller.subscribe(notified.append)
    controller.close()
    gateway.calls[0][2].set_result(_payload(2))
    await asyncio.sleep(0.03)

    assert controller.closed is True
    assert controller.page.page == 1
    assert len(gateway.calls) == 1
    assert notified == []


@pytest.mark.asyncio
async def test_bare_list_response_is_single_page():
    controller = _controller(FakeGateway(lambda params: [{"id": 1}, {"id": 2}]))
    page = await controller.refresh()

    assert page.total_pages == 1
    assert page.total_items == 2


@pytest.mark.asyncio
async def test_item_parser_and_independent_epochs():
    gateway = FakeGateway(lambda params: _payload(1))
    trades = _controller(gateway, item_parser=lambda item: item["id"])
    strategies = PaginatedQueryController(gateway, "/api/strategies", debounce_seconds=0.01)

    await trades.refresh()
    await trades.refresh()
    await strategies.refresh()

    assert trades.page.items == [100, 101]
    assert trades.state.request_epoch == 2
    assert strategies.state.request_epoch == 1
    assert strategies.name == "strategies"


@pytest.mark.asyncio
async def test_malformed_item_fails_like_a_request_error():
    pages = {
        1: {"items": [{"id": 1}], "pagination": {"page": 1, "pages": 2, "total": 2}},
        2: {"items": [{"title": "no id"}], "pagination": {"page": 2, "pages": 2, "total": 2}},
    }
    gateway = FakeGateway(lambda params: pages[params["page"]])
    controller = _controller(gateway, item_parser=Notification.model_validate)
    await controller.refresh()
    assert [item.id for item in controller.page.items] == [1]

    assert controller.go_to_page(2) is True
    await controller.wait_idle()
    page = await controller.refresh()

    assert page.items == []
    assert controller.loading is False
    assert controller.error == "Failed to load trade-logs: Malformed list response"
    assert controller.login_required is False
    assert page.total_pages == 2


@pytest.mark.asyncio
async def test_non_numeric_pagination_is_malformed():
    gateway = FakeGateway(lambda params: {"items": [{"id": 1}], "pagination": {"pages": "many"}})
    controller = _controller(gateway)

    page = await controller.refresh()

    assert page.items == []
    assert controller.loading is False
    assert controller.error == "Failed to load trade-logs: Malformed list response"


@pytest.mark.asyncio
async def test_initial_page_and_search_come_from_constructor():
    gateway = FakeGateway(lambda params: _payload(params["page"]))
    controller = _controller(gateway, page=3, search=" AAPL ")

    await controller.refresh()

    assert gateway.params[0]["page"] == 3
    assert gateway.params[0]["search"] == "AAPL"
    assert controller.state.raw_search_text == " AAPL "
    assert controller.page.page == 3


@pytest.mark.asyncio
async def test_unread_filter_flows_into_notification_fetch():
    gateway = FakeGateway(lambda params: _payload(params["page"]))
    controller = PaginatedQueryController(
        gateway,
        LIST_RESOURCES["notifications"],
        page_size=20,
        debounce_seconds=0.01,
        filters={"unread_only": True},
    )

    await controller.refresh()
    controller.go_to_page(2)
    await controller.wait_idle()
    controller.set_filter("unread_only", None)
    await controller.wait_idle()

    assert [call[0] for call in gateway.calls] == ["/api/notifications"] * 3
    assert gateway.params[0]["unread_only"] is True
    assert gateway.params[0]["per_page"] == 20
    assert (gateway.params[1]["page"], gateway.params[1]["unread_only"]) == (2, True)
    # Dropping the filter reloads from the first page without it.
    assert gateway.params[2]["page"] == 1
    assert "unread_only" not in gateway.params[2]
    assert controller.name == "notifications"
