from typing import List, Sequence

from aiogram.types import (
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    KeyboardButton,
    ReplyKeyboardMarkup,
    ReplyKeyboardRemove,
)

from services.formatters import format_currency, format_order_status, truncate_text
from services.order_mapper import Order
from services.routing import NavigationMode
from services.statuses import lookup
from services.transitions import can_accept, can_reject, status_options

# Подписи кнопок перехода: куда ведёт статус
STATUS_ACTION_LABELS = {
    "started": "🛵 Выехал в ресторан",
    "at_the_restaurant": "🏪 Я в ресторане",
    "picked": "📦 Забрал заказ",
    "out_for_delivery": "🚚 Везу клиенту",
    "reached": "📍 На месте",
    "delivered": "✅ Доставлен",
    "customer_not_showed_up": "🚫 Клиент не пришёл",
}

NAV_MODE_LABELS = {
    NavigationMode.PICKUP: "🏪 До ресторана",
    NavigationMode.DROP: "🏠 До клиента",
    NavigationMode.ROUTE: "🗺 Весь маршрут",
}


def get_phone_request_kb() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text="📱 Отправить номер", request_contact=True)]],
        resize_keyboard=True,
        one_time_keyboard=True,
    )


def get_courier_reply_kb() -> ReplyKeyboardMarkup:
    """Постоянная клавиатура курьера: отправка геолокации."""
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text="📍 Отправить геолокацию", request_location=True)]],
        resize_keyboard=True,
    )


def remove_kb() -> ReplyKeyboardRemove:
    return ReplyKeyboardRemove()


def _order_button(order: Order) -> InlineKeyboardButton:
    text = (
        f"#{order.order_number} · {truncate_text(order.restaurant_name, 20)} · "
        f"{format_currency(order.total_amount)}"
    )
    return InlineKeyboardButton(text=text, callback_data=f"courier:order:{order.id}")


def get_dashboard_kb(is_online: bool, available: Sequence[Order]) -> InlineKeyboardMarkup:
    """Главный экран курьера."""
    rows: List[List[InlineKeyboardButton]] = []
    if is_online:
        rows.append([InlineKeyboardButton(text="🔴 Уйти с линии", callback_data="courier:online:off")])
        for order in available:
            rows.append([_order_button(order)])
    else:
        rows.append([InlineKeyboardButton(text="🟢 Выйти на линию", callback_data="courier:online:on")])
    rows.append([
        InlineKeyboardButton(text="📋 Мои заказы", callback_data="courier:orders:active"),
        InlineKeyboardButton(text="🔄 Обновить", callback_data="courier:refresh"),
    ])
    rows.append([InlineKeyboardButton(text="🚪 Выйти из аккаунта", callback_data="courier:logout")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def get_orders_list_kb(tab: str, orders: Sequence[Order]) -> InlineKeyboardMarkup:
    """Список заказов с вкладками "Активные" / "История"."""
    active_mark = "• " if tab == "active" else ""
    history_mark = "• " if tab == "history" else ""
    rows: List[List[InlineKeyboardButton]] = [[
        InlineKeyboardButton(text=f"{active_mark}Активные", callback_data="courier:orders:active"),
        InlineKeyboardButton(text=f"{history_mark}История", callback_data="courier:orders:history"),
    ]]
    for order in orders:
        rows.append([_order_button(order)])
    rows.append([
        InlineKeyboardButton(text="🔄 Обновить", callback_data="courier:refresh"),
        InlineKeyboardButton(text="⬅️ Назад", callback_data="courier:dashboard"),
    ])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def get_order_details_kb(order: Order, maps_link: str | None = None) -> InlineKeyboardMarkup:
    """Действия с заказом зависят от его статуса."""
    rows: List[List[InlineKeyboardButton]] = []

    if can_accept(order.status_id):
        rows.append([InlineKeyboardButton(text="✅ Принять", callback_data=f"courier:accept:{order.id}")])

    for code in status_options(order.status_id):
        name = lookup(code).name
        label = STATUS_ACTION_LABELS.get(name, format_order_status(name))
        rows.append([
            InlineKeyboardButton(text=label, callback_data=f"courier:status:{order.id}:{int(code)}")
        ])

    if can_reject(order.status_id):
        rows.append([InlineKeyboardButton(text="❌ Отказаться", callback_data=f"courier:reject:{order.id}")])

    rows.append([InlineKeyboardButton(text="🧭 Навигация", callback_data=f"courier:nav:{order.id}:route")])
    if maps_link:
        rows.append([InlineKeyboardButton(text="🗺 Открыть в Google Maps", url=maps_link)])
    rows.append([
        InlineKeyboardButton(text="🔄 Обновить", callback_data="courier:refresh"),
        InlineKeyboardButton(text="⬅️ К заказам", callback_data="courier:orders:active"),
    ])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def get_navigation_kb(order_id: str, mode: NavigationMode, maps_link: str) -> InlineKeyboardMarkup:
    rows: List[List[InlineKeyboardButton]] = []
    mode_row = []
    for m, label in NAV_MODE_LABELS.items():
        mark = "• " if m == mode else ""
        mode_row.append(InlineKeyboardButton(text=f"{mark}{label}", callback_data=f"courier:nav:{order_id}:{m.value}"))
    rows.append(mode_row)
    rows.append([InlineKeyboardButton(text="🗺 Открыть в Google Maps", url=maps_link)])
    rows.append([InlineKeyboardButton(text="⬅️ К заказу", callback_data=f"courier:order:{order_id}")])
    return InlineKeyboardMarkup(inline_keyboard=rows)
