"""core/errors.py — error taxonomy shared by the gateway, controllers and channel.

  Unauthenticated – missing/expired/invalid token; resolve by re-login.
  NetworkError    – transport failure; backend treated as offline.
  HttpError       – non-2xx business or not-found failure, message is user-facing.
  ChannelError    – websocket failed to connect or join.
"""
from __future__ import annotations


class JournalClientError(Exception):
    """Base class for every failure the sync layer surfaces."""


class Unauthenticated(JournalClientError):
    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)
        self.message = message


class NetworkError(JournalClientError):
    def __init__(self, message: str = "Cannot connect to backend") -> None:
        super().__init__(message)
        self.message = message


class HttpError(JournalClientError):
    def __init__(self, status: int, message: str | None = None) -> None:
        self.status = status
        self.message = message or f"HTTP {status}"
        super().__init__(self.message)


class ChannelError(JournalClientError):
    def __init__(self, message: str, *, attempt: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.attempt = attempt
