"""models/events.py — events emitted by the live notification channel.

Each event is a frozen dataclass; ``NotificationEvent`` is their union.
Consumers dispatch on the concrete type.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from models.journal import Notification


@dataclass(frozen=True, slots=True)
class Connected:
    attempt: int = 0


@dataclass(frozen=True, slots=True)
class Joined:
    user_id: int | str | None = None


@dataclass(frozen=True, slots=True)
class NewItem:
    item: Notification


@dataclass(frozen=True, slots=True)
class UnreadCountSet:
    count: int


@dataclass(frozen=True, slots=True)
class Disconnected:
    reason: str | None = None


NotificationEvent = Union[Connected, Joined, NewItem, UnreadCountSet, Disconnected]
