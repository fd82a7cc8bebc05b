"""models/journal.py — wire models for the trading-journal REST API.

Pydantic models parse backend payloads; ``Page`` is the in-memory list
snapshot a paginated view renders (replaced wholesale, never merged).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, field_validator


T = TypeVar("T")


class NotificationType(str, Enum):
    TRADE = "trade"
    ANALYSIS = "analysis"
    STRATEGY = "strategy"
    ALERT = "alert"
    SYSTEM = "system"


class Notification(BaseModel):
    """Server-authoritative notification; only ``is_read`` is mutated locally."""

    id: int | str
    type: NotificationType = NotificationType.SYSTEM
    title: str = ""
    message: str = ""
    is_read: bool = False
    created_at: datetime | None = None
    link: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def unknown_type_is_system(cls, value: Any) -> Any:
        if value is None:
            return NotificationType.SYSTEM
        text = str(value).strip().lower()
        if text not in {item.value for item in NotificationType}:
            return NotificationType.SYSTEM
        return text


class User(BaseModel):
    id: int | str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    avatar_url: str | None = None
    bio: str | None = None
    location: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class AuthResponse(BaseModel):
    access_token: str
    user: User


class Pagination(BaseModel):
    """``pagination`` block of a list response; missing counters stay ``None``."""

    page: int | None = None
    pages: int | None = None
    total: int | None = None
    per_page: int | None = None
    has_prev: bool = False
    has_next: bool = False


class TradeStats(BaseModel):
    total_trades: int = 0
    win_rate: float = 0.0
    total_pnl: float = 0.0
    success: int = 0
    loss: int = 0

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> "TradeStats":
        """Flatten the ``{"performance": {...}, "counts": {...}}`` stats payload."""
        payload = payload or {}
        performance = payload.get("performance") or {}
        counts = payload.get("counts") or {}
        return cls(
            total_trades=performance.get("total_trades") or 0,
            win_rate=performance.get("win_rate") or 0.0,
            total_pnl=performance.get("total_pnl") or 0.0,
            success=counts.get("success") or 0,
            loss=counts.get("loss") or 0,
        )


@dataclass(slots=True)
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    page: int = 1
    total_pages: int = 0
    total_items: int = 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


class ListEnvelope(BaseModel):
    """``{items: [...], pagination: {...}}`` list response."""

    items: list[Any] | None = None
    pagination: Pagination | None = None

    @classmethod
    def from_payload(cls, data: Any) -> "ListEnvelope":
        """Accept the envelope, a bare array (one page), or an empty body."""
        if isinstance(data, list):
            return cls(items=data, pagination=Pagination(page=1, pages=1 if data else 0, total=len(data)))
        if data is None:
            return cls()
        return cls.model_validate(data)
