"""
core/session_store.py
─────────────────────
Owner of the bearer credential and signed-in identity.

Only ``set_session`` (login/register) and ``clear`` (logout, or a 401 seen by
the gateway) mutate the session.  Readers receive a frozen ``Session``.

``clear`` is idempotent; the "login required" listeners fire only on the call
that actually removed credentials, so N concurrent 401s produce exactly one
redirect signal.  The store never navigates itself.

The session record is the only persisted client state.  It is kept in a small
JSON file rewritten atomically (write-to-temp + rename).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

logger = logging.getLogger(__name__)

_PROFILE_KEYS = ("email", "first_name", "last_name", "avatar_url")


@dataclass(frozen=True, slots=True)
class Session:
    token: str
    user_id: int | str
    expires_implicitly: bool = True
    profile: dict[str, Any] = field(default_factory=dict)


class SessionStore:
    """
    Parameters
    ----------
    path : Path | None
        JSON file used to persist the session across restarts.  ``None``
        keeps the session in memory only (useful in tests).
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._session: Session | None = None
        self._listeners: list[Callable[[], Any]] = []

    # ── public API ───────────────────────────────────────────────────────────

    def get_token(self) -> str | None:
        return self._session.token if self._session else None

    def get_session(self) -> Session | None:
        return self._session

    @property
    def user_id(self) -> int | str | None:
        return self._session.user_id if self._session else None

    def set_session(
        self,
        token: str,
        user_id: int | str,
        profile: dict[str, Any] | None = None,
    ) -> Session:
        if not token:
            raise ValueError("token must be a non-empty string")
        cleaned = {key: (profile or {}).get(key) for key in _PROFILE_KEYS if (profile or {}).get(key) is not None}
        self._session = Session(token=token, user_id=user_id, profile=cleaned)
        self._persist()
        logger.info("Session established for user %s", user_id)
        return self._session

    def update_profile(self, profile: dict[str, Any]) -> None:
        if self._session is None:
            return
        merged = dict(self._session.profile)
        for key in _PROFILE_KEYS:
            if profile.get(key) is not None:
                merged[key] = profile[key]
        self._session = Session(
            token=self._session.token,
            user_id=self._session.user_id,
            expires_implicitly=self._session.expires_implicitly,
            profile=merged,
        )
        self._persist()

    def clear(self) -> bool:
        """Remove credentials.  Returns True only if a session was removed."""
        if self._session is None:
            return False
        user_id = self._session.user_id
        self._session = None
        if self._path is not None:
            self._path.unlink(missing_ok=True)
        logger.info("Session cleared for user %s, login required", user_id)
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as exc:
                logger.error("Session invalidation listener failed: %s", exc)
        return True

    def on_invalidated(self, callback: Callable[[], Any]) -> Callable[[], None]:
        """Register a "redirect to login" listener; returns an unsubscribe callable."""
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    # ── persistence ──────────────────────────────────────────────────────────

    def load(self) -> Session | None:
        """Restore a persisted session, if any.  Malformed files are ignored."""
        if self._path is None or not self._path.exists():
            return None
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read session file %s: %s", self._path, exc)
            return None

        token = payload.get("access_token") if isinstance(payload, dict) else None
        user_id = payload.get("user_id") if isinstance(payload, dict) else None
        if not token or user_id is None:
            logger.warning("Ignoring incomplete session file %s", self._path)
            return None

        profile = {key: payload[key] for key in _PROFILE_KEYS if payload.get(key) is not None}
        self._session = Session(token=token, user_id=user_id, profile=profile)
        logger.info("Restored session for user %s from %s", user_id, self._path)
        return self._session

    def _persist(self) -> None:
        if self._path is None or self._session is None:
            return
        payload: dict[str, Any] = {
            "access_token": self._session.token,
            "user_id": self._session.user_id,
            **self._session.profile,
        }
        tmp = self._path.with_suffix(".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as fh:
                fh.write(json.dumps(payload))
                fh.flush()
                os.fsync(fh.fileno())
            tmp.replace(self._path)
        except OSError as exc:
            logger.error("Failed to persist session file %s: %s", self._path, exc)
