import logging
from typing import Optional

from aiogram import Bot, Router, types
from aiogram.filters import Command, CommandStart
from aiogram.fsm.context import FSMContext

from keyboards.courier_kbs import get_courier_reply_kb, get_phone_request_kb, remove_kb
from services.courier_context import CourierContext, CourierRegistry
from services.event_bus import OrderUpdateBus
from services.screens import DashboardScreen, ScreenManager
from states.courier_states import AuthState

logger = logging.getLogger(__name__)
router = Router()


async def open_dashboard(
    message: types.Message,
    courier: CourierContext,
    bot: Bot,
    bus: OrderUpdateBus,
    screens: ScreenManager,
) -> None:
    """Отправить новое сообщение и показать в нём главный экран."""
    placeholder = await message.answer("⏳ Загрузка...")
    await screens.show(DashboardScreen(courier, bot, bus, placeholder.chat.id, placeholder.message_id))


@router.message(CommandStart())
async def cmd_start(
    message: types.Message,
    state: FSMContext,
    bot: Bot,
    bus: OrderUpdateBus,
    screens: ScreenManager,
    courier: Optional[CourierContext] = None,
):
    await state.clear()
    if courier is None:
        await state.set_state(AuthState.waiting_phone)
        await message.answer(
            "👋 Добро пожаловать!\n\nОтправьте номер телефона, на который зарегистрирован курьер "
            "(кнопкой ниже или текстом, 10 цифр).",
            reply_markup=get_phone_request_kb(),
        )
        return

    await message.answer("С возвращением! 🛵", reply_markup=get_courier_reply_kb())
    await open_dashboard(message, courier, bot, bus, screens)


@router.message(Command("logout"))
async def cmd_logout(
    message: types.Message,
    state: FSMContext,
    registry: CourierRegistry,
    screens: ScreenManager,
):
    await state.clear()
    await screens.unmount_chat(message.chat.id)
    await registry.logout(message.from_user.id)
    await message.answer("Вы вышли из аккаунта. Чтобы войти снова, отправьте /start", reply_markup=remove_kb())
