"""
Форматирование значений для сообщений курьеру.
"""
import re
from datetime import datetime
from typing import Optional

from config import config

STATUS_LABELS = {
    "pending": "Ожидает подтверждения",
    "accepted": "Принят рестораном",
    "cancelled": "Отменён",
    "assigned": "Назначен вам",
    "started": "В пути к ресторану",
    "picked": "Забран",
    "missing_items": "Не хватает позиций",
    "out_for_delivery": "Доставляется",
    "reached": "На месте",
    "delivered": "Доставлен",
    "not_picked": "Клиент не забрал",
    "at_the_restaurant": "В ресторане",
    "customer_not_showed_up": "Клиент не пришёл",
}

STATUS_EMOJI = {
    "pending": "⏳",
    "accepted": "🆕",
    "cancelled": "❌",
    "assigned": "📌",
    "started": "🛵",
    "picked": "📦",
    "missing_items": "⚠️",
    "out_for_delivery": "🚚",
    "reached": "📍",
    "delivered": "✅",
    "not_picked": "❌",
    "at_the_restaurant": "🏪",
    "customer_not_showed_up": "🚫",
}

TRAFFIC_LABELS = {
    "light": "🟢 свободно",
    "moderate": "🟡 средне",
    "heavy": "🔴 пробки",
}


def format_currency(amount: Optional[float], currency: str = config.CURRENCY_SYMBOL) -> str:
    return f"{currency}{(amount or 0):.2f}"


def format_distance(km: Optional[float]) -> str:
    km = km or 0
    if km < 1:
        return f"{round(km * 1000)} м"
    return f"{km:.1f} км"


def format_time(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes} мин"
    return f"{minutes // 60} ч {minutes % 60} мин"


def format_order_status(status: str) -> str:
    """Название стадии для курьера; неизвестные имена показываем как есть."""
    if status in STATUS_LABELS:
        return STATUS_LABELS[status]
    return status.replace("_", " ").capitalize()


def status_badge(status: str) -> str:
    return f"{STATUS_EMOJI.get(status, '•')} {format_order_status(status)}"


def format_phone_number(phone: str) -> str:
    """Индийский номер из 10 цифр → +91 XXXXX XXXXX."""
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) == 10:
        return f"+91 {digits[:5]} {digits[5:]}"
    return phone


def format_datetime(value: Optional[str]) -> str:
    if not value:
        return "нет"
    try:
        return datetime.fromisoformat(value).strftime("%d.%m.%Y %H:%M")
    except ValueError:
        return value


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."
