"""
Заработок курьера: кошелёк с бэкенда и подсчёт по доставленным заказам.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, Optional

from services.order_mapper import Order
from services.statuses import OrderStatusCode

logger = logging.getLogger(__name__)


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


@dataclass(slots=True)
class Wallet:
    balance: float = 0.0
    pending_amount: float = 0.0
    total_earnings: float = 0.0
    cash_in_hand: float = 0.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> Wallet:
        return cls(
            balance=_to_float(d.get("balance")),
            pending_amount=_to_float(d.get("pendingAmount")),
            total_earnings=_to_float(d.get("totalEarnings")),
            cash_in_hand=_to_float(d.get("cashInHand")),
        )


@dataclass(slots=True)
class Earnings:
    today: float = 0.0
    week: float = 0.0
    month: float = 0.0
    delivered_today: int = 0


def parse_created_at(value: str) -> Optional[datetime]:
    """created_at = "<orderDate>T<orderTime>"; бэкенд не всегда шлёт секунды."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        pass
    for fmt in ("%Y-%m-%dT%H:%M", "%Y-%m-%dT%I:%M %p", "%Y-%m-%dT%I:%M:%S %p"):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def week_start(day: date) -> date:
    """Начало недели (воскресенье)."""
    # weekday(): пн=0 ... вс=6
    return day - timedelta(days=(day.weekday() + 1) % 7)


def calculate_earnings(orders: Iterable[Order], now: Optional[datetime] = None) -> Earnings:
    """
    Сумма delivery_fee доставленных заказов за сегодня, неделю и месяц.
    Заказы с нечитаемой датой пропускаются.
    """
    now = now or datetime.now()
    today = now.date()
    start_of_week = week_start(today)
    result = Earnings()

    for order in orders:
        if order.status_id != OrderStatusCode.DELIVERED:
            continue
        created = parse_created_at(order.created_at)
        if created is None:
            logger.debug("Skipping order %s with unparsable created_at=%r", order.id, order.created_at)
            continue
        day = created.date()
        if day > today:
            continue
        if day == today:
            result.today += order.delivery_fee
            result.delivered_today += 1
        if day >= start_of_week:
            result.week += order.delivery_fee
        if (day.year, day.month) == (today.year, today.month):
            result.month += order.delivery_fee

    return result
