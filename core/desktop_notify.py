"""core/desktop_notify.py — host desktop notification side effect.

The live channel shows a desktop notification for each pushed item, but only
when permission is already granted.  Permission is requested at most once per
session; the base notifier is headless and writes to the log.
"""
from __future__ import annotations

import logging
from enum import Enum


logger = logging.getLogger(__name__)


class NotificationPermission(str, Enum):
    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"


class DesktopNotifier:
    """Headless notifier.  Subclasses override ``_prompt`` and ``_show``."""

    def __init__(self, permission: NotificationPermission = NotificationPermission.DEFAULT) -> None:
        self.permission = permission
        self.request_count = 0
        self._requested_for: object | None = None

    async def ensure_permission(self, session_key: object) -> NotificationPermission:
        """Ask for permission once per ``session_key``; later calls return the cached answer."""
        if self.permission is not NotificationPermission.DEFAULT:
            return self.permission
        if self._requested_for == session_key:
            return self.permission
        self._requested_for = session_key
        self.request_count += 1
        self.permission = await self._prompt()
        logger.info("Desktop notification permission: %s", self.permission.value)
        return self.permission

    async def notify(self, title: str, body: str, *, tag: str | None = None) -> bool:
        if self.permission is not NotificationPermission.GRANTED:
            return False
        await self._show(title, body, tag=tag)
        return True

    async def _prompt(self) -> NotificationPermission:
        return NotificationPermission.DENIED

    async def _show(self, title: str, body: str, *, tag: str | None = None) -> None:
        logger.info("🔔 %s: %s", title, body)
