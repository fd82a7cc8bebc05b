"""
core/notifications.py
─────────────────────
Single source of truth for "unread count" and "recent notifications".

Inputs
  • REST snapshots (on ``Joined`` or ``refresh()``): top-N list + unread count,
    fetched independently.
  • Pushed events from the live channel (``NewItem``, ``UnreadCountSet``, …).
  • Local actions: mark read, mark all read, delete.

Ordering
  Every mutation gets a monotonic sequence number.  While a snapshot is in
  flight, mutations are also journalled; when the snapshot lands it replaces
  the state and the journalled mutations newer than the snapshot's issue
  point are replayed on top.  A push that races a snapshot therefore appears
  exactly once and adds exactly +1 to the snapshot's baseline count, and the
  state never goes backwards.

Invariants
  • ``unread_count >= 0`` and is never derived from ``len(recent_items)``.
  • ``recent_items`` holds at most N entries, newest first, unique by id.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable

from core.errors import JournalClientError
from core.session_store import SessionStore
from logging_config import get_sync_logger
from models.events import Connected, Disconnected, Joined, NewItem, NotificationEvent, UnreadCountSet
from models.journal import Notification


LOGGER = get_sync_logger()


@dataclass(slots=True)
class NotificationState:
    recent_items: list[Notification] = field(default_factory=list)
    unread_count: int = 0
    connected: bool = False
    last_error: str | None = None


@dataclass(frozen=True, slots=True)
class _Mutation:
    seq: int
    kind: str                      # push | count | read | read_all | delete
    item: Notification | None = None
    item_id: int | str | None = None
    count: int = 0
    decrement: bool = False        # decided when first applied, reused on replay


class NotificationReconciler:
    """Merges snapshots, pushes and local actions into one ``NotificationState``.

    Args:
        api:     ``JournalApi`` (or any object with the notification methods).
        limit:   N, the number of recent items kept (default 5).
        session: Optional session store; the state is torn down on logout.
    """

    def __init__(self, api: Any, *, limit: int = 5, session: SessionStore | None = None) -> None:
        if limit <= 0:
            raise ValueError("limit must be positive")
        self.api = api
        self.limit = limit
        self.state = NotificationState()

        self._seq = 0
        self._journal: list[_Mutation] = []
        self._snapshot_epoch = 0
        self._snapshots_in_flight = 0
        self._background: set[asyncio.Task] = set()
        self._subscribers: list[Callable[[NotificationState], Any]] = []
        self._handlers: dict[type, Callable[[Any], Any]] = {
            Connected: self._on_connected,
            Joined: self._on_joined,
            NewItem: self._on_new_item,
            UnreadCountSet: self._on_unread_count,
            Disconnected: self._on_disconnected,
        }
        if session is not None:
            session.on_invalidated(self.reset)

    def subscribe(self, callback: Callable[[NotificationState], Any]) -> None:
        self._subscribers.append(callback)

    # ------------------------------------------------------------------ #
    # Channel events                                                       #
    # ------------------------------------------------------------------ #

    async def handle(self, event: NotificationEvent) -> None:
        handler = self._handlers.get(type(event))
        if handler is None:
            LOGGER.debug("No reconciler handler for %r", event)
            return
        result = handler(event)
        if asyncio.iscoroutine(result):
            await result

    def _on_connected(self, event: Connected) -> None:
        self.state.connected = True
        self._notify()

    async def _on_joined(self, event: Joined) -> None:
        await self.refresh()

    def _on_new_item(self, event: NewItem) -> None:
        self._commit(kind="push", item=event.item)

    def _on_unread_count(self, event: UnreadCountSet) -> None:
        self._commit(kind="count", count=event.count)

    def _on_disconnected(self, event: Disconnected) -> None:
        # Keep the last-known state; only the connection flag changes.
        self.state.connected = False
        self._notify()

    # ------------------------------------------------------------------ #
    # Snapshots                                                            #
    # ------------------------------------------------------------------ #

    async def refresh(self) -> bool:
        """Fetch top-N items and the unread count; apply unless superseded."""
        self._snapshot_epoch += 1
        epoch = self._snapshot_epoch
        issued_seq = self._seq
        self._snapshots_in_flight += 1
        try:
            items_result, count_result = await asyncio.gather(
                self.api.list_notifications(per_page=self.limit, sort_order="desc"),
                self.api.unread_count(),
                return_exceptions=True,
            )
        finally:
            self._snapshots_in_flight -= 1

        if epoch != self._snapshot_epoch:
            LOGGER.debug("Dropping superseded notification snapshot %s", epoch)
            self._trim_journal()
            return False

        items_ok = not isinstance(items_result, BaseException)
        count_ok = not isinstance(count_result, BaseException)
        for failure in (items_result, count_result):
            if isinstance(failure, BaseException):
                self._record_failure("Notification snapshot failed", failure)

        if items_ok:
            self.state.recent_items = self._unique(list(items_result))[: self.limit]
        if count_ok:
            self.state.unread_count = max(0, int(count_result))
        if items_ok or count_ok:
            for mutation in self._journal:
                if mutation.seq > issued_seq:
                    self._apply(mutation, items=items_ok, count=count_ok)
            if items_ok and count_ok:
                self.state.last_error = None

        self._trim_journal()
        self._notify()
        return items_ok and count_ok

    # ------------------------------------------------------------------ #
    # Local actions                                                        #
    # ------------------------------------------------------------------ #

    async def mark_read(self, notification_id: int | str, *, was_unread: bool | None = None) -> bool:
        """Optimistically mark one notification read, then confirm with the server.

        ``was_unread`` is consulted only when the item is not cached locally.
        No rollback happens if the server call fails.
        """
        cached = self._find(notification_id)
        if cached is not None:
            decrement = not cached.is_read
        else:
            decrement = True if was_unread is None else was_unread
        self._commit(kind="read", item_id=notification_id, decrement=decrement)

        try:
            await self.api.mark_notification_read(notification_id)
        except JournalClientError as exc:
            self._record_failure(f"Failed to mark notification {notification_id} read", exc)
            self._notify()
            return False
        return True

    def mark_all_read(self) -> asyncio.Task:
        """Optimistically mark everything read; the server call is fire-and-forget."""
        self._commit(kind="read_all")
        task = asyncio.get_running_loop().create_task(self._send_mark_all_read(), name="notifications-mark-all-read")
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def delete(self, notification_id: int | str, *, was_unread: bool | None = None) -> bool:
        try:
            await self.api.delete_notification(notification_id)
        except JournalClientError as exc:
            self._record_failure(f"Failed to delete notification {notification_id}", exc)
            self._notify()
            return False

        cached = self._find(notification_id)
        if cached is not None:
            decrement = not cached.is_read
        else:
            decrement = bool(was_unread)
        self._commit(kind="delete", item_id=notification_id, decrement=decrement)
        return True

    def reset(self) -> None:
        """Tear down on logout; in-flight snapshots are ignored when they land."""
        self._snapshot_epoch += 1
        self._journal.clear()
        self.state = NotificationState()
        self._notify()

    async def wait_idle(self) -> None:
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _send_mark_all_read(self) -> None:
        try:
            await self.api.mark_all_notifications_read()
        except JournalClientError as exc:
            self._record_failure("Failed to mark all notifications read", exc)

    # ------------------------------------------------------------------ #
    # Mutations                                                            #
    # ------------------------------------------------------------------ #

    def _commit(self, **fields: Any) -> None:
        self._seq += 1
        mutation = _Mutation(seq=self._seq, **fields)
        if self._snapshots_in_flight:
            self._journal.append(mutation)
        self._apply(mutation, items=True, count=True)
        self._notify()

    def _apply(self, mutation: _Mutation, *, items: bool, count: bool) -> None:
        state = self.state
        kind = mutation.kind
        if kind == "push":
            if items and mutation.item is not None:
                fresh = mutation.item
                state.recent_items = [fresh, *(n for n in state.recent_items if n.id != fresh.id)][: self.limit]
            if count:
                state.unread_count += 1
        elif kind == "count":
            if count:
                state.unread_count = max(0, mutation.count)
        elif kind == "read":
            if items:
                state.recent_items = [
                    n.model_copy(update={"is_read": True}) if n.id == mutation.item_id else n
                    for n in state.recent_items
                ]
            if count and mutation.decrement:
                state.unread_count = max(0, state.unread_count - 1)
        elif kind == "read_all":
            if items:
                state.recent_items = [n.model_copy(update={"is_read": True}) for n in state.recent_items]
            if count:
                state.unread_count = 0
        elif kind == "delete":
            if items:
                state.recent_items = [n for n in state.recent_items if n.id != mutation.item_id]
            if count and mutation.decrement:
                state.unread_count = max(0, state.unread_count - 1)

    def _trim_journal(self) -> None:
        if not self._snapshots_in_flight:
            self._journal.clear()

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    def _find(self, notification_id: int | str) -> Notification | None:
        for item in self.state.recent_items:
            if item.id == notification_id:
                return item
        return None

    @staticmethod
    def _unique(items: list[Notification]) -> list[Notification]:
        seen: set[Any] = set()
        unique: list[Notification] = []
        for item in items:
            if item.id in seen:
                continue
            seen.add(item.id)
            unique.append(item)
        return unique

    def _record_failure(self, prefix: str, exc: BaseException) -> None:
        message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
        self.state.last_error = f"{prefix}: {message}"
        LOGGER.warning("%s", self.state.last_error)

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self.state)
            except Exception as exc:
                LOGGER.error("Notification state subscriber failed: %s", exc)
