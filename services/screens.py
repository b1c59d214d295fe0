"""
Экраны курьера.

Экран это сообщение бота, которое перерисовывается на месте. Пока экран
показан, он подписан на шину обновлений и перечитывает данные после каждой
смены статуса любого заказа. Неудачная перезагрузка оставляет прежние
данные; ошибку видно только если данных ещё не было.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from aiogram import Bot
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from config import config
from keyboards.courier_kbs import (
    get_dashboard_kb,
    get_navigation_kb,
    get_order_details_kb,
    get_orders_list_kb,
)
from services.courier_context import CourierContext
from services.earnings import Wallet, calculate_earnings
from services.errors import NetworkFailure, OrderNotFound
from services.event_bus import ORDER_UPDATED, OrderUpdateBus
from services.formatters import (
    TRAFFIC_LABELS,
    format_currency,
    format_datetime,
    format_distance,
    format_phone_number,
    format_time,
    status_badge,
)
from services.order_mapper import Order
from services.order_store import OrdersSnapshot
from services.routing import NavigationMode, maps_url, simulate_route
from services.telegram_utils import EditOutcome, edit_screen_message, escape_markdown

logger = logging.getLogger(__name__)

ScreenKey = Tuple[int, int]


def _retry_kb() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="🔄 Повторить", callback_data="courier:refresh")],
        [InlineKeyboardButton(text="⬅️ Главная", callback_data="courier:dashboard")],
    ])


class Screen:
    """Базовый экран: подписка на шину, загрузка, отрисовка."""

    def __init__(self, ctx: CourierContext, bot: Bot, bus: OrderUpdateBus, chat_id: int, message_id: int):
        self.ctx = ctx
        self.bot = bot
        self.bus = bus
        self.chat_id = chat_id
        self.message_id = message_id
        self.mounted = False
        self.has_data = False
        self.error: Optional[str] = None

    @property
    def key(self) -> ScreenKey:
        return self.chat_id, self.message_id

    async def mount(self) -> None:
        self.mounted = True
        self.bus.subscribe(self.reload, ORDER_UPDATED)
        await self.reload()

    async def unmount(self) -> None:
        self.mounted = False
        self.bus.unsubscribe(self.reload, ORDER_UPDATED)

    async def reload(self) -> None:
        """Перечитать данные и перерисовать сообщение."""
        if not self.mounted:
            return
        try:
            await self.load()
            self.has_data = True
            self.error = None
        except NetworkFailure as e:
            logger.warning("%s reload failed for chat=%s: %s", type(self).__name__, self.chat_id, e)
            if not self.has_data:
                self.error = "⚠️ Не удалось загрузить данные. Проверьте соединение и попробуйте ещё раз."
        except OrderNotFound:
            self.error = "Заказ не найден. Возможно, его уже забрал другой курьер."
            self.has_data = False
        if not self.mounted:
            return
        if self.error and not self.has_data:
            text, kb = self.error, _retry_kb()
        else:
            text, kb = self.render()
        outcome = await edit_screen_message(self.bot, self.chat_id, self.message_id, text, reply_markup=kb)
        if outcome is EditOutcome.GONE:
            await self.unmount()

    async def load(self) -> None:
        raise NotImplementedError

    def render(self) -> Tuple[str, InlineKeyboardMarkup]:
        raise NotImplementedError


class DashboardScreen(Screen):
    """Главная: статус на линии, кошелёк, заработок, свободные заказы."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.snapshot = OrdersSnapshot()
        self.wallet: Optional[Wallet] = None

    async def load(self) -> None:
        store = self.ctx.store
        orders, wallet = await asyncio.gather(
            store.fetch_all(),
            self.ctx.load_wallet(),
            return_exceptions=True,
        )
        # Заказы применяем только когда пришли оба ответа
        if isinstance(wallet, NetworkFailure):
            logger.warning("Wallet load failed for staff=%s: %s", self.ctx.session.staff_id, wallet)
        elif isinstance(wallet, BaseException):
            raise wallet
        else:
            self.wallet = wallet

        if isinstance(orders, BaseException):
            if not isinstance(orders, NetworkFailure) or not store.loaded:
                raise orders
        else:
            await store.apply(orders)
            if not self.ctx.is_online:
                await store.clear_available()
        self.snapshot = await store.snapshot()

    def render(self) -> Tuple[str, InlineKeyboardMarkup]:
        online = self.ctx.is_online
        snap = self.snapshot
        earnings = calculate_earnings(snap.past)
        lines = [
            "🛵 *Панель курьера*",
            "",
            f"Статус: {'🟢 на линии' if online else '🔴 не на линии'}",
        ]
        if self.wallet is not None:
            lines += [
                "",
                f"💰 Баланс: {format_currency(self.wallet.balance)}",
                f"💵 Наличные на руках: {format_currency(self.wallet.cash_in_hand)}",
            ]
        lines += [
            "",
            f"Сегодня: {format_currency(earnings.today)} ({earnings.delivered_today} дост.)",
            f"Неделя: {format_currency(earnings.week)}",
            f"Месяц: {format_currency(earnings.month)}",
            "",
            f"📋 Активных заказов: {len(snap.current)}",
        ]
        if online:
            if snap.available:
                lines.append(f"🆕 Свободных заказов: {len(snap.available)}")
            else:
                lines.append("Свободных заказов пока нет.")
        else:
            lines.append("Выйдите на линию, чтобы видеть свободные заказы.")
        if snap.last_updated:
            lines += ["", f"_Обновлено {snap.last_updated:%H:%M}_"]
        available = snap.available if online else []
        return "\n".join(lines), get_dashboard_kb(online, available)


class OrdersListScreen(Screen):
    """Мои заказы: вкладки "активные" и "история". Обновляется по таймеру."""

    def __init__(self, *args, tab: str = "active", refresh_interval: float = config.ORDERS_REFRESH_INTERVAL, **kwargs):
        super().__init__(*args, **kwargs)
        self.tab = tab
        self.refresh_interval = refresh_interval
        self.snapshot = OrdersSnapshot()
        self._refresh_task: Optional[asyncio.Task] = None

    async def mount(self) -> None:
        await super().mount()
        self._refresh_task = asyncio.create_task(self._auto_refresh())

    async def unmount(self) -> None:
        await super().unmount()
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            self._refresh_task = None

    async def _auto_refresh(self) -> None:
        while self.mounted:
            await asyncio.sleep(self.refresh_interval)
            if not self.mounted:
                break
            try:
                await self.reload()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Auto refresh failed for chat=%s", self.chat_id)

    async def load(self) -> None:
        await self.ctx.store.refresh()
        self.snapshot = await self.ctx.store.snapshot()

    @property
    def orders(self) -> List[Order]:
        return self.snapshot.current if self.tab == "active" else self.snapshot.past

    def render(self) -> Tuple[str, InlineKeyboardMarkup]:
        orders = self.orders
        title = "📋 *Активные заказы*" if self.tab == "active" else "📜 *История заказов*"
        lines = [title, ""]
        if not orders:
            lines.append("Заказов нет." if self.tab == "active" else "Доставленных заказов пока нет.")
        for order in orders:
            lines.append(
                f"#{escape_markdown(order.order_number)} · {status_badge(order.status)} · "
                f"{format_currency(order.total_amount)}"
            )
        if self.snapshot.last_updated:
            lines += ["", f"_Обновлено {self.snapshot.last_updated:%H:%M}_"]
        return "\n".join(lines), get_orders_list_kb(self.tab, orders)


class OrderDetailsScreen(Screen):
    """Карточка заказа с доступными действиями."""

    def __init__(self, *args, order_id: str, **kwargs):
        super().__init__(*args, **kwargs)
        self.order_id = str(order_id)
        self.order: Optional[Order] = None

    async def load(self) -> None:
        store = self.ctx.store
        try:
            await store.refresh()
        except NetworkFailure as e:
            # Карточку можно показать и без общего списка
            logger.debug("Orders refresh before details failed: %s", e)
        self.order = await store.locate_order(self.order_id)

    def render(self) -> Tuple[str, InlineKeyboardMarkup]:
        o = self.order
        lines = [
            f"📦 *Заказ #{escape_markdown(o.order_number)}*",
            status_badge(o.status),
            "",
            f"🏪 {escape_markdown(o.restaurant_name)}",
            f"   {escape_markdown(o.restaurant_address)}",
            f"🏠 {escape_markdown(o.delivery_address)}",
        ]
        if o.customer_name:
            lines.append(f"👤 {escape_markdown(o.customer_name)}")
        if o.customer_phone:
            lines.append(f"📞 {escape_markdown(format_phone_number(o.customer_phone))}")
        lines += ["", "*Состав:*"]
        for item in o.items:
            lines.append(f"• {escape_markdown(item.name)} × {item.quantity} = {format_currency(item.price * item.quantity)}")
            for note in item.customizations or []:
                lines.append(f"   _{escape_markdown(note)}_")
        lines += [
            "",
            f"Сумма: {format_currency(o.total_amount)}",
            f"Доставка: {format_currency(o.delivery_fee)}",
            f"Оплата: {o.payment_method.value.upper()}",
            f"Создан: {format_datetime(o.created_at)}",
        ]
        if o.delivered_at:
            lines.append(f"Доставлен: {format_datetime(o.delivered_at)}")
        if o.special_instructions:
            lines += ["", f"📝 {escape_markdown(o.special_instructions)}"]
        link = maps_url(o.drop_location.latitude, o.drop_location.longitude)
        return "\n".join(lines), get_order_details_kb(o, link)


class NavigationScreen(Screen):
    """Оценка поездки до ресторана/клиента."""

    def __init__(self, *args, order_id: str, mode: NavigationMode = NavigationMode.ROUTE, **kwargs):
        super().__init__(*args, **kwargs)
        self.order_id = str(order_id)
        self.mode = NavigationMode(mode)
        self.order: Optional[Order] = None

    async def load(self) -> None:
        self.order = await self.ctx.store.locate_order(self.order_id)

    def render(self) -> Tuple[str, InlineKeyboardMarkup]:
        o = self.order
        pickup = (o.pickup_location.latitude, o.pickup_location.longitude)
        drop = (o.drop_location.latitude, o.drop_location.longitude)
        route = simulate_route(self.mode, pickup, drop, self.ctx.session.location, now=datetime.now())
        destination = pickup if self.mode == NavigationMode.PICKUP else drop
        lines = [
            f"🧭 *Навигация · заказ #{escape_markdown(o.order_number)}*",
            "",
            f"Расстояние: {format_distance(route.distance_km)}",
            f"В пути: {format_time(route.duration_min)}",
            f"Скорость: {route.speed_kmh} км/ч",
            f"Дороги: {TRAFFIC_LABELS[route.traffic.value]}",
            f"Прибытие: {route.eta:%H:%M}",
        ]
        if self.ctx.session.location is None:
            lines += ["", "_Отправьте геолокацию, чтобы считать путь от вас._"]
        return "\n".join(lines), get_navigation_kb(o.id, self.mode, maps_url(*destination))


class ScreenManager:
    """
    Показанные экраны по сообщениям. В чате активен один экран:
    показ нового закрывает прежний.
    """

    def __init__(self):
        self._screens: Dict[ScreenKey, Screen] = {}

    def _prune(self) -> None:
        # Экран закрывается сам, если его сообщение удалено
        for key in [k for k, s in self._screens.items() if not s.mounted]:
            del self._screens[key]

    def get(self, chat_id: int, message_id: int) -> Optional[Screen]:
        self._prune()
        return self._screens.get((chat_id, message_id))

    def active(self, chat_id: int) -> Optional[Screen]:
        self._prune()
        for (chat, _), screen in self._screens.items():
            if chat == chat_id:
                return screen
        return None

    async def show(self, screen: Screen) -> Screen:
        for key in [k for k in self._screens if k[0] == screen.chat_id]:
            await self._screens.pop(key).unmount()
        self._screens[screen.key] = screen
        await screen.mount()
        return screen

    async def unmount_chat(self, chat_id: int) -> None:
        for key in [k for k in self._screens if k[0] == chat_id]:
            await self._screens.pop(key).unmount()

    async def close_all(self) -> None:
        for screen in list(self._screens.values()):
            await screen.unmount()
        self._screens.clear()

    def __len__(self) -> int:
        self._prune()
        return len(self._screens)
