import logging

from aiogram import Bot, F, Router, types

from middlewares.auth_middleware import CourierRequiredMiddleware
from services.courier_context import CourierContext, CourierRegistry
from services.errors import OrderNotFound, TransitionRejected
from services.event_bus import OrderUpdateBus
from services.formatters import format_order_status
from services.routing import NavigationMode
from services.screens import (
    DashboardScreen,
    NavigationScreen,
    OrderDetailsScreen,
    OrdersListScreen,
    Screen,
    ScreenManager,
)

logger = logging.getLogger(__name__)

router = Router()
router.message.middleware(CourierRequiredMiddleware())
router.callback_query.middleware(CourierRequiredMiddleware())


async def _show(
    callback: types.CallbackQuery,
    screen_cls: type[Screen],
    courier: CourierContext,
    bot: Bot,
    bus: OrderUpdateBus,
    screens: ScreenManager,
    **kwargs,
) -> Screen:
    """Показать экран в сообщении, к которому привязана кнопка."""
    msg = callback.message
    return await screens.show(screen_cls(courier, bot, bus, msg.chat.id, msg.message_id, **kwargs))


async def _ensure_shown(
    callback: types.CallbackQuery,
    courier: CourierContext,
    bot: Bot,
    bus: OrderUpdateBus,
    screens: ScreenManager,
    order_id: str,
) -> None:
    """
    После смены статуса показанный экран перерисуется сам (через шину).
    Если сообщение ничьё (например, после перезапуска бота), открываем карточку заказа.
    """
    msg = callback.message
    if screens.get(msg.chat.id, msg.message_id) is None:
        await _show(callback, OrderDetailsScreen, courier, bot, bus, screens, order_id=order_id)


@router.callback_query(F.data == "courier:dashboard")
async def courier_dashboard(callback: types.CallbackQuery, courier: CourierContext, bot: Bot,
                            bus: OrderUpdateBus, screens: ScreenManager):
    await callback.answer()
    await _show(callback, DashboardScreen, courier, bot, bus, screens)


@router.callback_query(F.data.startswith("courier:online:"))
async def courier_toggle_online(callback: types.CallbackQuery, courier: CourierContext, bot: Bot,
                                bus: OrderUpdateBus, screens: ScreenManager):
    """Выход на линию / уход с линии."""
    go_online = callback.data.split(":")[-1] == "on"
    try:
        await courier.set_online(go_online)
    except TransitionRejected as e:
        await callback.answer(str(e), show_alert=True)
        return
    await callback.answer("🟢 Вы на линии" if go_online else "🔴 Вы ушли с линии")
    await _show(callback, DashboardScreen, courier, bot, bus, screens)


@router.callback_query(F.data.in_({"courier:orders:active", "courier:orders:history"}))
async def courier_orders(callback: types.CallbackQuery, courier: CourierContext, bot: Bot,
                         bus: OrderUpdateBus, screens: ScreenManager):
    tab = callback.data.split(":")[-1]
    await callback.answer()
    await _show(callback, OrdersListScreen, courier, bot, bus, screens, tab=tab)


@router.callback_query(F.data.startswith("courier:order:"))
async def courier_order_details(callback: types.CallbackQuery, courier: CourierContext, bot: Bot,
                                bus: OrderUpdateBus, screens: ScreenManager):
    order_id = callback.data.split(":")[-1]
    await callback.answer()
    await _show(callback, OrderDetailsScreen, courier, bot, bus, screens, order_id=order_id)


@router.callback_query(F.data.startswith("courier:accept:"))
async def courier_accept(callback: types.CallbackQuery, courier: CourierContext, bot: Bot,
                         bus: OrderUpdateBus, screens: ScreenManager):
    """Забрать свободный заказ себе."""
    order_id = callback.data.split(":")[-1]
    try:
        order = await courier.store.accept(order_id)
    except (TransitionRejected, OrderNotFound) as e:
        await callback.answer(str(e), show_alert=True)
        return
    await callback.answer(f"✅ Заказ #{order.order_number} ваш")
    await _ensure_shown(callback, courier, bot, bus, screens, order_id)


@router.callback_query(F.data.startswith("courier:status:"))
async def courier_change_status(callback: types.CallbackQuery, courier: CourierContext, bot: Bot,
                                bus: OrderUpdateBus, screens: ScreenManager):
    """courier:status:{order_id}:{status_code}"""
    try:
        _, _, order_id, code = callback.data.split(":")
        requested = int(code)
    except ValueError:
        await callback.answer("Ошибка", show_alert=True)
        return

    try:
        order = await courier.store.apply_transition(order_id, requested)
    except (TransitionRejected, OrderNotFound) as e:
        await callback.answer(str(e), show_alert=True)
        return
    await callback.answer(f"Статус: {format_order_status(order.status)}")
    await _ensure_shown(callback, courier, bot, bus, screens, order_id)


@router.callback_query(F.data.startswith("courier:reject:"))
async def courier_reject(callback: types.CallbackQuery, courier: CourierContext, bot: Bot,
                         bus: OrderUpdateBus, screens: ScreenManager):
    """Отказ от заказа: он пропадает из списков курьера."""
    order_id = callback.data.split(":")[-1]
    try:
        await courier.store.reject(order_id)
    except TransitionRejected as e:
        await callback.answer(str(e), show_alert=True)
        return
    await callback.answer("Заказ скрыт из ваших списков")
    await _show(callback, DashboardScreen, courier, bot, bus, screens)


@router.callback_query(F.data.startswith("courier:nav:"))
async def courier_navigation(callback: types.CallbackQuery, courier: CourierContext, bot: Bot,
                             bus: OrderUpdateBus, screens: ScreenManager):
    """courier:nav:{order_id}:{mode}"""
    try:
        _, _, order_id, mode = callback.data.split(":")
        nav_mode = NavigationMode(mode)
    except ValueError:
        await callback.answer("Ошибка", show_alert=True)
        return
    await callback.answer()
    await _show(callback, NavigationScreen, courier, bot, bus, screens, order_id=order_id, mode=nav_mode)


@router.callback_query(F.data == "courier:refresh")
async def courier_refresh(callback: types.CallbackQuery, courier: CourierContext, bot: Bot,
                          bus: OrderUpdateBus, screens: ScreenManager):
    screen = screens.get(callback.message.chat.id, callback.message.message_id)
    await callback.answer("🔄 Обновляю...")
    if screen is None:
        await _show(callback, DashboardScreen, courier, bot, bus, screens)
        return
    await screen.reload()


@router.callback_query(F.data == "courier:logout")
async def courier_logout(callback: types.CallbackQuery, registry: CourierRegistry, screens: ScreenManager):
    await screens.unmount_chat(callback.message.chat.id)
    await registry.logout(callback.from_user.id)
    await callback.answer()
    await callback.message.edit_text("Вы вышли из аккаунта. Чтобы войти снова, отправьте /start")


@router.message(F.location)
async def courier_location(message: types.Message, courier: CourierContext, screens: ScreenManager):
    """Геолокация курьера для навигации."""
    await courier.set_location(message.location.latitude, message.location.longitude)
    await message.answer("📍 Геолокация сохранена")
    screen = screens.active(message.chat.id)
    if isinstance(screen, NavigationScreen):
        await screen.reload()
