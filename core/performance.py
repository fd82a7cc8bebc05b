"""Trade performance math used by the stats views and the CLI.

Every helper returns 0 for a zero denominator.  Percentages are rounded to
one decimal place, money values to two.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class TradeMetrics:
    potential_profit: float
    potential_loss: float
    risk_reward_ratio: float


def _number(trade: Mapping[str, Any], *keys: str) -> float:
    for key in keys:
        value = trade.get(key)
        if value not in (None, ""):
            try:
                return float(value)
            except (TypeError, ValueError):
                return 0.0
    return 0.0


def calculate_trade_metrics(trade: Mapping[str, Any]) -> TradeMetrics:
    """Potential profit/loss and risk:reward for a planned trade.

    Short trades invert the sign of both legs.  ``potential_loss`` is always
    reported as a magnitude.
    """
    entry = _number(trade, "entry_price", "entryprice")
    target = _number(trade, "target_price", "targetprice")
    stop = _number(trade, "stop_loss", "stoploss")
    quantity = _number(trade, "quantity")
    trade_type = trade.get("trade_type") or trade.get("tradetype") or "Long"

    if trade_type == "Long":
        profit = (target - entry) * quantity
        loss = (entry - stop) * quantity
    else:
        profit = (entry - target) * quantity
        loss = (stop - entry) * quantity

    ratio = profit / abs(loss) if abs(loss) > 0 else 0.0
    return TradeMetrics(
        potential_profit=round(profit, 2),
        potential_loss=round(abs(loss), 2),
        risk_reward_ratio=round(ratio, 2),
    )


def calculate_win_rate(wins: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(wins / total * 100, 1)


def calculate_average_pnl(total_pnl: float, total_trades: int) -> float:
    if total_trades == 0:
        return 0.0
    return round(total_pnl / total_trades, 2)


def calculate_profit_loss(entry_price: float, exit_price: float, quantity: float) -> float:
    return (exit_price - entry_price) * quantity


def calculate_success_ratio(success_count: int, total_count: int) -> float:
    if total_count == 0:
        return 0.0
    return round(success_count / total_count * 100, 1)
