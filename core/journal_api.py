"""core/journal_api.py — endpoint wrappers over the request gateway.

Each method maps one-to-one onto a backend route; errors propagate as the
gateway's typed exceptions.
"""
from __future__ import annotations

from typing import Any

from core.gateway import RequestGateway
from models.journal import ListEnvelope, Notification, TradeStats


TRADE_LOGS = "/api/trade-logs"
STRATEGIES = "/api/strategies"
ANALYSES = "/api/analyses"
NOTIFICATIONS = "/api/notifications"

NOTIFICATIONS_PAGE_SIZE = 20

LIST_RESOURCES = {
    "trade-logs": TRADE_LOGS,
    "strategies": STRATEGIES,
    "analyses": ANALYSES,
    "notifications": NOTIFICATIONS,
}


class JournalApi:
    def __init__(self, gateway: RequestGateway) -> None:
        self.gateway = gateway

    # ------------------------------------------------------------------ #
    # Generic resource CRUD                                                #
    # ------------------------------------------------------------------ #

    async def list_resource(
        self,
        endpoint: str,
        *,
        page: int = 1,
        per_page: int = 10,
        sort_by: str | None = "created_at",
        sort_order: str | None = "desc",
        search: str | None = None,
    ) -> Any:
        params = {
            "page": page,
            "per_page": per_page,
            "sort_by": sort_by,
            "sort_order": sort_order,
            "search": search,
        }
        return await self.gateway.get(endpoint, params=params)

    async def create_resource(self, endpoint: str, payload: dict[str, Any]) -> Any:
        return await self.gateway.post(endpoint, json=payload)

    async def update_resource(self, endpoint: str, item_id: int | str, payload: dict[str, Any]) -> Any:
        return await self.gateway.put(f"{endpoint}/{item_id}", json=payload)

    async def delete_resource(self, endpoint: str, item_id: int | str) -> Any:
        return await self.gateway.delete(f"{endpoint}/{item_id}")

    async def list_trade_logs(self, **kwargs: Any) -> Any:
        return await self.list_resource(TRADE_LOGS, **kwargs)

    async def list_strategies(self, **kwargs: Any) -> Any:
        return await self.list_resource(STRATEGIES, **kwargs)

    async def list_analyses(self, **kwargs: Any) -> Any:
        return await self.list_resource(ANALYSES, **kwargs)

    async def create_trade_log(self, payload: dict[str, Any]) -> Any:
        return await self.create_resource(TRADE_LOGS, payload)

    async def update_trade_log(self, item_id: int | str, payload: dict[str, Any]) -> Any:
        return await self.update_resource(TRADE_LOGS, item_id, payload)

    async def delete_trade_log(self, item_id: int | str) -> Any:
        return await self.delete_resource(TRADE_LOGS, item_id)

    async def create_strategy(self, payload: dict[str, Any]) -> Any:
        return await self.create_resource(STRATEGIES, payload)

    async def update_strategy(self, item_id: int | str, payload: dict[str, Any]) -> Any:
        return await self.update_resource(STRATEGIES, item_id, payload)

    async def delete_strategy(self, item_id: int | str) -> Any:
        return await self.delete_resource(STRATEGIES, item_id)

    async def create_analysis(self, payload: dict[str, Any]) -> Any:
        return await self.create_resource(ANALYSES, payload)

    async def update_analysis(self, item_id: int | str, payload: dict[str, Any]) -> Any:
        return await self.update_resource(ANALYSES, item_id, payload)

    async def delete_analysis(self, item_id: int | str) -> Any:
        return await self.delete_resource(ANALYSES, item_id)

    async def trade_stats(self) -> TradeStats:
        return TradeStats.from_payload(await self.gateway.get(f"{TRADE_LOGS}/stats"))

    # ------------------------------------------------------------------ #
    # Notifications                                                        #
    # ------------------------------------------------------------------ #

    async def list_notifications(
        self,
        *,
        page: int | None = None,
        per_page: int = NOTIFICATIONS_PAGE_SIZE,
        sort_order: str | None = "desc",
        unread_only: bool = False,
    ) -> list[Notification]:
        params: dict[str, Any] = {
            "page": page,
            "per_page": per_page,
            "sort_order": sort_order,
            "unread_only": True if unread_only else None,
        }
        data = await self.gateway.get(NOTIFICATIONS, params=params)
        envelope = ListEnvelope.from_payload(data)
        return [Notification.model_validate(item) for item in envelope.items or []]

    async def unread_count(self) -> int:
        data = await self.gateway.get(f"{NOTIFICATIONS}/unread-count")
        return max(0, int((data or {}).get("unread_count") or 0))

    async def mark_notification_read(self, notification_id: int | str) -> Any:
        return await self.gateway.put(f"{NOTIFICATIONS}/{notification_id}")

    async def mark_all_notifications_read(self) -> Any:
        return await self.gateway.post(f"{NOTIFICATIONS}/mark-all-read")

    async def delete_notification(self, notification_id: int | str) -> Any:
        return await self.gateway.delete(f"{NOTIFICATIONS}/{notification_id}")
