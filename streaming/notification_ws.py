from __future__ import annotations

import asyncio
import inspect
import json
from enum import Enum
from typing import Any, Callable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import websockets
from pydantic import ValidationError

from core.context import ClientContext
from core.desktop_notify import DesktopNotifier
from core.errors import ChannelError
from logging_config import get_stream_logger
from models.events import Connected, Disconnected, Joined, NewItem, NotificationEvent, UnreadCountSet
from models.journal import Notification


LOGGER = get_stream_logger()


class ChannelState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    JOINED = "joined"


class LiveNotificationChannel:
    """Supervised push connection for per-user notifications.

    Frames are JSON text ``{"event": <name>, "data": {...}}``.  The client
    sends ``join``/``leave`` keyed by user id; the server answers ``joined``
    and pushes ``new_notification`` and ``unread_count``.

    State machine: DISCONNECTED → CONNECTING → CONNECTED → JOINED → DISCONNECTED,
    looping back to CONNECTING on automatic reconnect (fixed delay, bounded
    attempts).  ``close()`` is the only cancellation path.
    """

    def __init__(
        self,
        context: ClientContext,
        *,
        url: str | None = None,
        max_reconnect_attempts: int | None = None,
        reconnect_delay_seconds: float | None = None,
        notifier: DesktopNotifier | None = None,
        connect: Callable[..., Any] | None = None,
    ) -> None:
        config = context.config
        self.context = context
        self.url = url or config.ws_url
        self.max_reconnect_attempts = (
            max_reconnect_attempts if max_reconnect_attempts is not None else config.ws_max_reconnect_attempts
        )
        self.reconnect_delay_seconds = (
            reconnect_delay_seconds if reconnect_delay_seconds is not None else config.ws_reconnect_delay_seconds
        )
        self.notifier = notifier or DesktopNotifier()
        self._connect = connect or websockets.connect

        self.state = ChannelState.DISCONNECTED
        self.reconnect_attempt = 0
        self.last_error: ChannelError | None = None
        self.offline = False

        self._subscribers: list[Callable[[NotificationEvent], Any]] = []
        self._callback_tasks: set[asyncio.Task] = set()
        self._websocket: Any = None
        self._task: asyncio.Task | None = None
        self._closing = False
        self._joined_this_connection = False
        self._user_id: int | str | None = None
        self._unsubscribe_session = context.session.on_invalidated(self._on_session_invalidated)

    @property
    def joined(self) -> bool:
        return self.state is ChannelState.JOINED

    def subscribe(self, callback: Callable[[NotificationEvent], Any]) -> None:
        self._subscribers.append(callback)

    # ------------------------------------------------------------------ #
    # Lifecycle                                                            #
    # ------------------------------------------------------------------ #

    def start(self) -> bool:
        """Open the channel if a session exists and the backend answered at least once."""
        if self._task is not None and not self._task.done():
            return True
        session = self.context.session.get_session()
        if session is None:
            LOGGER.info("Notification channel not opened: no session")
            return False
        if not self.context.backend_confirmed:
            LOGGER.info("Notification channel not opened: backend not confirmed reachable")
            return False

        self._closing = False
        self.offline = False
        self.last_error = None
        self.reconnect_attempt = 0
        self._user_id = session.user_id
        self._task = asyncio.get_running_loop().create_task(self._supervise(), name="notification-channel")
        return True

    async def close(self) -> None:
        """Send ``leave``, close the socket and stop reconnecting.  Safe to call repeatedly."""
        if self._closing and self._task is None:
            return
        self._closing = True

        websocket = self._websocket
        if websocket is not None:
            try:
                await self._send(websocket, "leave", {"user_id": self._user_id})
            except Exception as exc:
                LOGGER.debug("Notification channel leave failed: %s", exc)
            try:
                await websocket.close()
            except Exception as exc:
                LOGGER.debug("Notification channel close failed: %s", exc)
            self._websocket = None

        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        current = asyncio.current_task()
        for callback_task in list(self._callback_tasks):
            if callback_task is not current:
                callback_task.cancel()
        self._set_state(ChannelState.DISCONNECTED)

    async def wait_closed(self) -> None:
        """Wait for the supervisor to finish on its own (e.g. retries exhausted)."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def _on_session_invalidated(self) -> None:
        self._closing = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.close(), name="notification-channel-close")
        self._callback_tasks.add(task)
        task.add_done_callback(self._callback_tasks.discard)

    # ------------------------------------------------------------------ #
    # Supervisor                                                           #
    # ------------------------------------------------------------------ #

    async def _supervise(self) -> None:
        attempt = 0
        try:
            while not self._closing:
                if self.context.session.get_session() is None:
                    LOGGER.info("Notification channel stopping: session ended")
                    break

                self._set_state(ChannelState.CONNECTING)
                self._joined_this_connection = False
                try:
                    await self._connect_and_listen(attempt)
                    reason = "connection closed by server"
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    reason = str(exc) or type(exc).__name__
                    self.last_error = ChannelError(reason, attempt=attempt)

                if self._closing:
                    break
                if self._joined_this_connection:
                    attempt = 0
                attempt += 1
                self.reconnect_attempt = attempt
                if attempt > self.max_reconnect_attempts:
                    self.offline = True
                    self.last_error = ChannelError(
                        f"Notification channel offline after {self.max_reconnect_attempts} reconnect attempts: {reason}",
                        attempt=attempt - 1,
                    )
                    LOGGER.error("%s", self.last_error)
                    break
                LOGGER.warning(
                    "Notification channel dropped: %s (retry %s/%s in %ss)",
                    reason,
                    attempt,
                    self.max_reconnect_attempts,
                    self.reconnect_delay_seconds,
                )
                await asyncio.sleep(self.reconnect_delay_seconds)
        finally:
            self._websocket = None
            self._set_state(ChannelState.DISCONNECTED)

    async def _connect_and_listen(self, attempt: int) -> None:
        async with self._connect(self._authenticated_url()) as websocket:
            self._websocket = websocket
            self._set_state(ChannelState.CONNECTED)
            LOGGER.info("Notification channel connected (attempt %s)", attempt)
            try:
                self._emit(Connected(attempt=attempt))
                await self._ensure_desktop_permission()
                await self._send(websocket, "join", {"user_id": self._user_id})

                async for raw_message in websocket:
                    if self._closing:
                        break
                    event = self._parse_frame(raw_message)
                    if event is None:
                        continue
                    if isinstance(event, Joined):
                        self._joined_this_connection = True
                        self.reconnect_attempt = 0
                        self._set_state(ChannelState.JOINED)
                        LOGGER.info("Notification channel joined for user %s", self._user_id)
                    elif isinstance(event, NewItem):
                        await self._show_desktop(event.item)
                    self._emit(event)
            finally:
                self._websocket = None
                self._emit(Disconnected(reason="closing" if self._closing else "connection lost"))

    # ------------------------------------------------------------------ #
    # Frames                                                               #
    # ------------------------------------------------------------------ #

    @staticmethod
    async def _send(websocket: Any, event: str, data: dict[str, Any]) -> None:
        await websocket.send(json.dumps({"event": event, "data": data}, separators=(",", ":")))

    def _parse_frame(self, raw_message: str | bytes) -> NotificationEvent | None:
        if isinstance(raw_message, bytes):
            text = raw_message.decode("utf-8", errors="ignore")
        else:
            text = raw_message

        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            LOGGER.debug("Skipping non-JSON notification frame: %s", text)
            return None
        if not isinstance(payload, dict):
            return None

        name = payload.get("event")
        data = payload.get("data") or {}
        if name == "joined":
            user_id = data.get("user_id", self._user_id) if isinstance(data, dict) else self._user_id
            return Joined(user_id=user_id)
        if name == "new_notification":
            try:
                return NewItem(item=Notification.model_validate(data))
            except ValidationError as exc:
                LOGGER.warning("Dropping malformed new_notification frame: %s", exc)
                return None
        if name == "unread_count":
            try:
                count = int(data.get("count"))
            except (AttributeError, TypeError, ValueError):
                LOGGER.warning("Dropping malformed unread_count frame: %s", text)
                return None
            return UnreadCountSet(count=max(0, count))

        LOGGER.debug("Ignoring notification channel event %r", name)
        return None

    def _authenticated_url(self) -> str:
        token = self.context.session.get_token()
        if not token:
            return self.url
        parts = urlsplit(self.url)
        query = dict(parse_qsl(parts.query))
        query["token"] = token
        return urlunsplit(parts._replace(query=urlencode(query)))

    # ------------------------------------------------------------------ #
    # Side effects                                                         #
    # ------------------------------------------------------------------ #

    async def _ensure_desktop_permission(self) -> None:
        try:
            await self.notifier.ensure_permission(self.context.session.get_token())
        except Exception as exc:
            LOGGER.debug("Desktop notification permission request failed: %s", exc)

    async def _show_desktop(self, item: Notification) -> None:
        try:
            await self.notifier.notify(item.title or "New notification", item.message, tag=str(item.id))
        except Exception as exc:
            LOGGER.debug("Desktop notification failed: %s", exc)

    def _emit(self, event: NotificationEvent) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(event)
            except Exception as exc:
                LOGGER.error("Notification subscriber failed on %s: %s", type(event).__name__, exc)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(self._await_callback(result, event))
                self._callback_tasks.add(task)
                task.add_done_callback(self._callback_tasks.discard)

    @staticmethod
    async def _await_callback(result: Any, event: NotificationEvent) -> None:
        try:
            await result
        except Exception as exc:
            LOGGER.error("Notification subscriber failed on %s: %s", type(event).__name__, exc)

    def _set_state(self, state: ChannelState) -> None:
        if state is not self.state:
            LOGGER.debug("Notification channel %s → %s", self.state.value, state.value)
        self.state = state
