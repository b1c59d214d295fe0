"""
Вход курьера: номер телефона → код подтверждения.
"""
import logging
import re
from dataclasses import asdict

from aiogram import Bot, F, Router, types
from aiogram.fsm.context import FSMContext

from handlers.start import open_dashboard
from keyboards.courier_kbs import get_courier_reply_kb
from services.backend_api import StaffCredentials
from services.courier_context import CourierRegistry
from services.errors import AuthenticationFailed
from services.event_bus import OrderUpdateBus
from services.screens import ScreenManager
from states.courier_states import AuthState

logger = logging.getLogger(__name__)
router = Router()


def normalize_phone(raw: str) -> str | None:
    """
    Привести номер к 10 цифрам, как он хранится на бэкенде.
    Код страны +91 отбрасывается. None, если это не номер.
    """
    digits = re.sub(r"\D", "", raw or "")
    if len(digits) == 12 and digits.startswith("91"):
        digits = digits[2:]
    if len(digits) != 10:
        return None
    return digits


@router.message(AuthState.waiting_phone, F.contact | F.text)
async def process_phone(message: types.Message, state: FSMContext, registry: CourierRegistry):
    raw = message.contact.phone_number if message.contact else message.text
    phone = normalize_phone(raw)
    if phone is None:
        await message.answer("Номер должен состоять из 10 цифр. Попробуйте ещё раз.")
        return

    try:
        credentials = await registry.request_otp(phone)
    except AuthenticationFailed:
        await message.answer("❌ Этот номер не зарегистрирован как курьер. Проверьте номер и попробуйте ещё раз.")
        return

    await state.update_data(staff=asdict(credentials))
    await state.set_state(AuthState.waiting_otp)
    await message.answer("🔐 Введите код подтверждения из SMS.")


@router.message(AuthState.waiting_otp, F.text)
async def process_otp(
    message: types.Message,
    state: FSMContext,
    bot: Bot,
    bus: OrderUpdateBus,
    registry: CourierRegistry,
    screens: ScreenManager,
):
    data = await state.get_data()
    staff = data.get("staff")
    if not staff:
        await state.set_state(AuthState.waiting_phone)
        await message.answer("Сессия входа устарела. Отправьте номер телефона ещё раз.")
        return

    try:
        courier = await registry.login(message.from_user.id, StaffCredentials(**staff), message.text)
    except AuthenticationFailed:
        await message.answer("❌ Неверный код. Попробуйте ещё раз или отправьте /start, чтобы сменить номер.")
        return

    await state.clear()
    await message.answer(
        "✅ Вы вошли. Отправляйте геолокацию кнопкой ниже, чтобы навигация считала путь от вас.",
        reply_markup=get_courier_reply_kb(),
    )
    await open_dashboard(message, courier, bot, bus, screens)
