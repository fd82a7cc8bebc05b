from __future__ import annotations

import json

import httpx
import pytest

from core.gateway import RequestGateway
from core.journal_api import JournalApi
from models.journal import NotificationType


def _api(context, handler) -> tuple[JournalApi, RequestGateway]:
    gateway = RequestGateway(context, transport=httpx.MockTransport(handler))
    return JournalApi(gateway), gateway


@pytest.mark.asyncio
async def test_list_notifications_params_and_parsing(signed_in_context):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={
            "items": [
                {"id": 2, "type": "analysis", "title": "Pre-trade", "message": "TSLA", "is_read": False},
                {"id": 1, "type": "margin_call", "title": "Odd", "message": "?", "is_read": True},
            ],
            "pagination": {"page": 1, "pages": 1, "total": 2},
        })

    api, gateway = _api(signed_in_context, handler)
    async with gateway:
        items = await api.list_notifications(per_page=5, unread_only=True)

    params = seen[0].url.params
    assert params["per_page"] == "5"
    assert params["sort_order"] == "desc"
    assert params["unread_only"] == "true"
    assert "page" not in params
    assert [item.id for item in items] == [2, 1]
    assert items[1].type is NotificationType.SYSTEM


@pytest.mark.asyncio
async def test_list_notifications_accepts_bare_list(signed_in_context):
    api, gateway = _api(signed_in_context, lambda request: httpx.Response(200, json=[{"id": 5}]))
    async with gateway:
        items = await api.list_notifications()
    assert items[0].id == 5
    assert items[0].is_read is False


@pytest.mark.asyncio
async def test_unread_count_is_floored(signed_in_context):
    api, gateway = _api(signed_in_context, lambda request: httpx.Response(200, json={"unread_count": -4}))
    async with gateway:
        assert await api.unread_count() == 0


@pytest.mark.asyncio
async def test_notification_writes_use_expected_routes(signed_in_context):
    seen: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        return httpx.Response(200, json={"message": "ok"})

    api, gateway = _api(signed_in_context, handler)
    async with gateway:
        await api.mark_notification_read(3)
        await api.mark_all_notifications_read()
        await api.delete_notification(4)

    assert seen == [
        ("PUT", "/api/notifications/3"),
        ("POST", "/api/notifications/mark-all-read"),
        ("DELETE", "/api/notifications/4"),
    ]


@pytest.mark.asyncio
async def test_resource_crud_routes(signed_in_context):
    seen: list[tuple[str, str, bytes]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path, request.content))
        return httpx.Response(200, json={"id": 1})

    api, gateway = _api(signed_in_context, handler)
    async with gateway:
        await api.create_trade_log({"symbol": "AAPL", "quantity": 10})
        await api.update_strategy(8, {"name": "Breakout"})
        await api.delete_analysis(9)
        await api.list_strategies(page=2, per_page=25, search="breakout")

    assert seen[0][:2] == ("POST", "/api/trade-logs")
    assert json.loads(seen[0][2]) == {"symbol": "AAPL", "quantity": 10}
    assert seen[1][:2] == ("PUT", "/api/strategies/8")
    assert seen[2][:2] == ("DELETE", "/api/analyses/9")
    assert seen[3][:2] == ("GET", "/api/strategies")


@pytest.mark.asyncio
async def test_trade_stats_flattens_payload(signed_in_context):
    payload = {
        "performance": {"total_trades": 40, "win_rate": 62.5, "total_pnl": 1520.75},
        "counts": {"success": 25, "loss": 15},
    }
    api, gateway = _api(signed_in_context, lambda request: httpx.Response(200, json=payload))
    async with gateway:
        stats = await api.trade_stats()

    assert stats.total_trades == 40
    assert stats.win_rate == 62.5
    assert stats.success == 25
    assert stats.loss == 15
