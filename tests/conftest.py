from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

import pytest

from core.context import ClientContext
from journal_config import JournalClientConfig
from models.journal import Notification


@pytest.fixture
def journal_config(tmp_path: Path) -> JournalClientConfig:
    return JournalClientConfig(
        api_base_url="http://journal.test",
        ws_url="ws://journal.test/ws",
        request_timeout_seconds=8.0,
        search_debounce_seconds=0.01,
        default_page_size=10,
        notification_limit=5,
        ws_max_reconnect_attempts=2,
        ws_reconnect_delay_seconds=0.0,
        session_file=tmp_path / "session.json",
    )


@pytest.fixture
def context(journal_config: JournalClientConfig) -> ClientContext:
    return ClientContext.init(journal_config, persist=False)


@pytest.fixture
def signed_in_context(context: ClientContext) -> ClientContext:
    context.session.set_session("token-1", 7, profile={"email": "trader@example.com"})
    return context


@pytest.fixture
def make_notification() -> Callable[..., Notification]:
    base = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def _make(notification_id: int, **overrides: Any) -> Notification:
        payload = {
            "id": notification_id,
            "type": "trade",
            "title": f"Notification {notification_id}",
            "message": f"Body {notification_id}",
            "is_read": False,
            "created_at": (base + timedelta(minutes=notification_id)).isoformat(),
        }
        payload.update(overrides)
        return Notification.model_validate(payload)

    return _make


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    async def _wait(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
        async def _poll() -> None:
            while not predicate():
                await asyncio.sleep(0.001)

        await asyncio.wait_for(_poll(), timeout)

    return _wait
